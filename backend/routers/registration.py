import logging

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from sqlalchemy.orm import Session

from database import get_db
from errors import RateLimited, ValidationFailed
from models import EventFormField, FormFieldType, Profile
from payments import RazorpayGateway, get_payment_gateway
from procedures import check_in
from rate_limit import RateLimiter, get_rate_limiter, rate_limit_key
from registration_service import submit_registration, submit_test_registration
from schemas import CheckInRequest, RegisterEventRequest
from security import require_staff, require_user
from utils import upload_registration_file

router = APIRouter()
logger = logging.getLogger(__name__)


def _enforce_rate_limit(limiter: RateLimiter, user: Profile, request: Request) -> None:
    key = rate_limit_key(user.id, request)
    if not limiter.allow(key):
        logger.warning("Rate limit exceeded for %s on %s", key, request.url.path)
        raise RateLimited()


@router.post("/register-event")
def register_event(
    payload: RegisterEventRequest,
    request: Request,
    user: Profile = Depends(require_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
    gateway: RazorpayGateway = Depends(get_payment_gateway),
    db: Session = Depends(get_db),
):
    _enforce_rate_limit(limiter, user, request)
    if not payload.event_id:
        raise ValidationFailed("Missing event_id")
    return submit_registration(db, user, payload.event_id, payload.answers, gateway=gateway)


@router.post("/register-event-test")
def register_event_test(
    payload: RegisterEventRequest,
    request: Request,
    user: Profile = Depends(require_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
    db: Session = Depends(get_db),
):
    _enforce_rate_limit(limiter, user, request)
    if not payload.event_id:
        raise ValidationFailed("Missing event_id")
    return submit_test_registration(db, user, payload.event_id, payload.answers)


@router.post("/check-in")
def check_in_attendee(
    payload: CheckInRequest,
    request: Request,
    user: Profile = Depends(require_staff),
    limiter: RateLimiter = Depends(get_rate_limiter),
    db: Session = Depends(get_db),
):
    _enforce_rate_limit(limiter, user, request)
    try:
        result = check_in(
            db,
            registration_id=payload.registration_id,
            entry_code=payload.entry_code,
            checked_in_by=user.id,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return {"success": True, **result.to_dict()}


@router.post("/registration-files")
def upload_registration_answer_file(
    event_id: int = Form(...),
    field_id: int = Form(...),
    file: UploadFile = File(...),
    user: Profile = Depends(require_user),
    db: Session = Depends(get_db),
):
    field = db.query(EventFormField).filter(
        EventFormField.id == field_id,
        EventFormField.event_id == event_id,
        EventFormField.disabled.is_(False),
    ).first()
    if not field or field.field_type != FormFieldType.FILE:
        raise ValidationFailed("Unknown form field")
    url = upload_registration_file(event_id, field_id, file)
    logger.info("User %s uploaded a file for event %s field %s", user.id, event_id, field_id)
    return {"success": True, "url": url}
