from fastapi import FastAPI, APIRouter, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from database import engine, Base
from errors import AppError
from routers.admin_attendance import router as admin_attendance_router
from routers.admin_dashboard import router as admin_dashboard_router
from routers.admin_events import router as admin_events_router
from routers.admin_exports import router as admin_exports_router
from routers.admin_form_control import router as admin_form_control_router
from routers.admin_logs import router as admin_logs_router
from routers.admin_payments import router as admin_payments_router
from routers.admin_registrations import router as admin_registrations_router
from routers.admin_users import router as admin_users_router
from routers.auth_users import router as auth_users_router
from routers.public import router as public_router
from routers.registration import router as registration_router

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Create tables
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Campus Events API", version="1.0.0")
api_router = APIRouter(prefix="/api")


# ==================== ERRORS ====================
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info("Invalid body on %s: %s", request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"success": False, "error": "Invalid body"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


api_router.include_router(public_router)
api_router.include_router(auth_users_router)
api_router.include_router(registration_router)
api_router.include_router(admin_events_router)
api_router.include_router(admin_attendance_router)
api_router.include_router(admin_registrations_router)
api_router.include_router(admin_payments_router)
api_router.include_router(admin_users_router)
api_router.include_router(admin_logs_router)
api_router.include_router(admin_form_control_router)
api_router.include_router(admin_exports_router)
api_router.include_router(admin_dashboard_router)


# Include router and add middleware
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)
