import os

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy import func
from sqlalchemy.orm import Session

from auth import get_password_hash, issue_tokens, load_profile_from_token, verify_password
from database import get_db
from errors import AuthenticationRequired
from models import Profile, UserRole
from schemas import LoginRequest, ProfileResponse, RefreshTokenRequest, SignupRequest, TokenResponse
from security import require_admin, require_user
from time_utils import now_tz
from utils import log_admin_action

router = APIRouter()


def _site_url() -> str:
    return os.environ.get("SITE_URL", "http://localhost:3000")


def _token_response(profile: Profile) -> TokenResponse:
    return TokenResponse(user=ProfileResponse.model_validate(profile), **issue_tokens(profile))


@router.post("/auth/signup", response_model=TokenResponse)
def signup(payload: SignupRequest, db: Session = Depends(get_db)):
    email = payload.email.lower()
    if db.query(Profile).filter(func.lower(Profile.email) == email).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")
    profile = Profile(
        full_name=payload.full_name,
        email=email,
        hashed_password=get_password_hash(payload.password),
        role=UserRole.STUDENT,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return _token_response(profile)


@router.post("/auth/login", response_model=TokenResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    profile = db.query(Profile).filter(func.lower(Profile.email) == payload.email.lower()).first()
    if not profile or not verify_password(payload.password, profile.hashed_password):
        raise AuthenticationRequired("Invalid credentials")
    if profile.is_disabled:
        raise AuthenticationRequired("Account disabled")
    return _token_response(profile)


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh_token(payload: RefreshTokenRequest, db: Session = Depends(get_db)):
    profile = load_profile_from_token(db, payload.refresh_token, token_type="refresh")
    return _token_response(profile)


@router.get("/me", response_model=ProfileResponse)
def get_me(user: Profile = Depends(require_user)):
    return ProfileResponse.model_validate(user)


@router.get("/logout")
def logout():
    return RedirectResponse(url=_site_url(), status_code=status.HTTP_303_SEE_OTHER)


@router.post("/admin/logout")
def admin_logout(
    request: Request,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    log_admin_action(db, admin, "ADMIN_LOGOUT", {
        "timestamp": now_tz().isoformat(),
        "user_agent": request.headers.get("user-agent"),
    })
    return RedirectResponse(url=_site_url(), status_code=status.HTTP_303_SEE_OTHER)
