from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from database import get_db
from errors import CapacityExceeded, NotFound, ValidationFailed
from models import Event, Profile, Registration, RegistrationStatus
from procedures import MANUAL_ENTRY_PREFIX, used_seats
from schemas import RegistrationActionRequest
from security import require_admin
from utils import log_admin_action

router = APIRouter()

REGISTRATION_ACTIONS = {
    "confirm": (RegistrationStatus.CONFIRMED, "REG_CONFIRM"),
    "cancel": (RegistrationStatus.CANCELLED, "REG_CANCEL"),
    "force_confirm": (RegistrationStatus.CONFIRMED, "REG_FORCE_CONFIRM"),
}


@router.get("/admin/registrations")
def list_registrations(
    search: Optional[str] = Query(None),
    event: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    paymentType: Optional[str] = Query(None),
    sourceType: Optional[str] = Query(None),
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(Registration).join(Profile, Registration.user_id == Profile.id).join(
        Event, Registration.event_id == Event.id
    ).options(
        joinedload(Registration.user),
        joinedload(Registration.event),
    )
    if event is not None:
        query = query.filter(Registration.event_id == event)
    if status and status != "all":
        try:
            query = query.filter(Registration.status == RegistrationStatus(status))
        except ValueError:
            raise ValidationFailed("Invalid status filter")
    if paymentType == "paid":
        query = query.filter(Event.is_paid.is_(True))
    elif paymentType == "free":
        query = query.filter(Event.is_paid.is_(False))
    if sourceType == "manual":
        query = query.filter(Registration.entry_code.like(f"{MANUAL_ENTRY_PREFIX}%"))
    elif sourceType == "auto":
        query = query.filter(~Registration.entry_code.like(f"{MANUAL_ENTRY_PREFIX}%"))
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Registration.entry_code.ilike(pattern),
            Profile.full_name.ilike(pattern),
            Profile.email.ilike(pattern),
        ))

    registrations = query.order_by(Registration.created_at.desc(), Registration.id.desc()).all()
    return {
        "registrations": [
            {
                "id": reg.id,
                "status": reg.status.value,
                "entry_code": reg.entry_code,
                "created_at": reg.created_at.isoformat() if reg.created_at else None,
                "event_id": reg.event_id,
                "event_title": reg.event.title,
                "event_date": reg.event.event_date.isoformat(),
                "is_paid": reg.event.is_paid,
                "user_id": reg.user_id,
                "user_name": reg.user.full_name,
                "user_email": reg.user.email,
                "is_manual": reg.entry_code.startswith(MANUAL_ENTRY_PREFIX),
            }
            for reg in registrations
        ]
    }


@router.post("/admin/registrations/{registration_id}/actions")
def registration_action(
    registration_id: int,
    payload: RegistrationActionRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if payload.action not in REGISTRATION_ACTIONS:
        raise ValidationFailed("Unknown registration action")
    new_status, log_action = REGISTRATION_ACTIONS[payload.action]

    registration = db.query(Registration).filter(Registration.id == registration_id).with_for_update().first()
    if not registration:
        raise NotFound("Registration not found")
    previous_status = registration.status
    if payload.action == "force_confirm" and previous_status != RegistrationStatus.PENDING:
        raise ValidationFailed("Only pending registrations can be force confirmed")
    if previous_status == new_status:
        raise ValidationFailed(f"Registration is already {new_status.value}")

    if previous_status == RegistrationStatus.CANCELLED:
        event = db.query(Event).filter(Event.id == registration.event_id).with_for_update().first()
        if used_seats(db, registration.event_id) >= event.capacity:
            raise CapacityExceeded("Event is full")

    registration.status = new_status
    log_admin_action(db, admin, log_action, {
        "registration_id": registration.id,
        "event_id": registration.event_id,
        "user_id": registration.user_id,
        "previous_status": previous_status.value,
        "new_status": new_status.value,
    }, commit=False)
    db.commit()
    return {
        "success": True,
        "registration_id": registration.id,
        "previous_status": previous_status.value,
        "status": new_status.value,
    }
