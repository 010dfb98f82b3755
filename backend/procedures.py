"""Atomic registration, confirmation and check-in units.

Each function runs inside the caller's transaction and only flushes; the
caller commits or rolls back. ``register_for_event`` locks the event row so
that concurrent registrations cannot oversell the capacity.
"""
import logging
import secrets
import string
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from errors import CapacityExceeded, NotFound, RegistrationFailed, ValidationFailed
from models import Attendance, Event, EventStatus, Registration, RegistrationStatus
from time_utils import now_tz

logger = logging.getLogger(__name__)

ACTIVE_REGISTRATION_STATUSES = (RegistrationStatus.PENDING, RegistrationStatus.CONFIRMED)
MANUAL_ENTRY_PREFIX = "MANUAL-"
_CODE_ALPHABET = string.ascii_uppercase + string.digits


def _random_code(length: int) -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))


def generate_entry_code() -> str:
    return f"EVT-{_random_code(10)}"


def generate_manual_entry_code(timestamp_ms: Optional[int] = None) -> str:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{MANUAL_ENTRY_PREFIX}{timestamp_ms}-{_random_code(9)}"


def used_seats(db: Session, event_id: int) -> int:
    return db.query(Registration).filter(
        Registration.event_id == event_id,
        Registration.status.in_(ACTIVE_REGISTRATION_STATUSES),
    ).count()


def _unique_entry_code(db: Session) -> str:
    while True:
        code = generate_entry_code()
        if not db.query(Registration.id).filter(Registration.entry_code == code).first():
            return code


def register_for_event(db: Session, event_id: int, user_id: int) -> Registration:
    event = db.query(Event).filter(Event.id == event_id).with_for_update().first()
    if not event:
        raise NotFound("Event not found")
    if event.status != EventStatus.APPROVED or not event.is_registration_open:
        raise RegistrationFailed("Registration is closed for this event")

    existing = db.query(Registration).filter(
        Registration.event_id == event_id,
        Registration.user_id == user_id,
        Registration.status.in_(ACTIVE_REGISTRATION_STATUSES),
    ).first()
    if existing:
        raise RegistrationFailed("Already registered for this event")

    taken = used_seats(db, event_id)
    if taken >= event.capacity:
        logger.info("Event %s is full (%s/%s), rejecting user %s", event_id, taken, event.capacity, user_id)
        raise CapacityExceeded("Event is full")

    registration = Registration(
        event_id=event_id,
        user_id=user_id,
        status=RegistrationStatus.PENDING,
        entry_code=_unique_entry_code(db),
    )
    db.add(registration)
    if taken + 1 >= event.capacity and event.auto_close_when_full:
        event.is_registration_open = False
    db.flush()
    return registration


def confirm_registration(db: Session, registration_id: int) -> Registration:
    registration = db.query(Registration).filter(Registration.id == registration_id).with_for_update().first()
    if not registration:
        raise NotFound("Registration not found")
    if registration.status == RegistrationStatus.CANCELLED:
        raise RegistrationFailed("Registration was cancelled")
    registration.status = RegistrationStatus.CONFIRMED
    db.flush()
    return registration


@dataclass
class CheckInResult:
    registration_id: int
    event_id: int
    user_id: int
    entry_code: str
    attendance_id: int
    checked_in_at: Optional[datetime]
    already_checked_in: bool

    def to_dict(self) -> dict:
        data = asdict(self)
        if self.checked_in_at is not None:
            data["checked_in_at"] = self.checked_in_at.isoformat()
        return data


def _coerce_registration_id(value) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return -1


def check_in(
    db: Session,
    registration_id=None,
    entry_code: Optional[str] = None,
    checked_in_by: Optional[int] = None,
) -> CheckInResult:
    reg_id = _coerce_registration_id(registration_id)
    code = (entry_code or "").strip().upper() or None
    if (reg_id is None) == (code is None):
        raise ValidationFailed("Provide exactly one of entry_code or registration_id")

    query = db.query(Registration).filter(Registration.status == RegistrationStatus.CONFIRMED)
    if code is not None:
        query = query.filter(Registration.entry_code == code)
    else:
        query = query.filter(Registration.id == reg_id)
    registration = query.with_for_update().first()
    if not registration:
        raise RegistrationFailed("Registration not found or not confirmed")

    attendance = db.query(Attendance).filter(Attendance.registration_id == registration.id).first()
    already = attendance is not None
    if not already:
        attendance = Attendance(
            registration_id=registration.id,
            event_id=registration.event_id,
            user_id=registration.user_id,
            checked_in_by=checked_in_by,
            checked_in_at=now_tz(),
        )
        db.add(attendance)
        db.flush()
        logger.info("Checked in registration %s for event %s", registration.id, registration.event_id)

    return CheckInResult(
        registration_id=registration.id,
        event_id=registration.event_id,
        user_id=registration.user_id,
        entry_code=registration.entry_code,
        attendance_id=attendance.id,
        checked_in_at=attendance.checked_in_at,
        already_checked_in=already,
    )
