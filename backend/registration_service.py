"""Registration submission: answer validation, answer building and the
register -> responses -> confirm (or pay) sequence."""
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from email_templates import build_registration_email
from emailer import send_email
from errors import NotFound, ValidationFailed
from models import Event, EventFormField, Payment, PaymentStatus, Profile, Registration, RegistrationResponse
from payments import RazorpayGateway, payments_enabled
from procedures import confirm_registration, register_for_event

logger = logging.getLogger(__name__)


@dataclass
class Answer:
    field_id: int
    value: str


def _attr(obj: Any, name: str, default=None):
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def field_type_of(field: Any) -> str:
    value = _attr(field, "field_type", "text")
    return str(getattr(value, "value", value) or "text").lower()


def field_options(field: Any) -> List[str]:
    options = _attr(field, "options") or []
    return [str(option) for option in options]


def active_fields(fields: Iterable[Any]) -> List[Any]:
    return [field for field in fields if not _attr(field, "disabled", False)]


def _is_number(value: str) -> bool:
    try:
        float(value)
    except ValueError:
        return False
    return True


def validate_answers(fields: Sequence[Any], answers: Iterable[Any]) -> List[Answer]:
    """Checks submitted answers against the event's non-disabled fields.

    Returns the answers to persist: trimmed, one per field, blanks dropped.
    """
    by_id = {int(_attr(field, "id")): field for field in active_fields(fields)}
    values: Dict[int, str] = {}
    for answer in answers or []:
        raw_id = _attr(answer, "field_id")
        try:
            field_id = int(raw_id)
        except (TypeError, ValueError):
            raise ValidationFailed("Unknown form field")
        if field_id not in by_id:
            raise ValidationFailed("Unknown form field")
        raw_value = _attr(answer, "value")
        values[field_id] = "" if raw_value is None else str(raw_value).strip()

    cleaned: List[Answer] = []
    for field_id, field in by_id.items():
        value = values.get(field_id, "")
        if not value:
            if _attr(field, "required", False):
                raise ValidationFailed("Missing required field response")
            continue
        kind = field_type_of(field)
        options = field_options(field)
        if kind == "select" and options and value not in options:
            raise ValidationFailed("Invalid option selected")
        if kind == "number" and not _is_number(value):
            raise ValidationFailed("Invalid number value")
        cleaned.append(Answer(field_id=field_id, value=value))
    return cleaned


def build_answers(
    fields: Sequence[Any],
    text_values: Dict[int, Optional[str]],
    file_values: Dict[int, Any],
    upload: Callable[[Any, Any], str],
) -> List[Answer]:
    """Prepares the answers payload the way the registration form does.

    Every check runs before the first upload, so an invalid form never
    touches storage or the API. ``upload(field, file)`` returns the public URL
    and any exception it raises aborts the whole submission.
    """
    pending_files = []
    answers: List[Answer] = []
    for field in active_fields(fields):
        field_id = int(_attr(field, "id"))
        label = _attr(field, "label", "")
        required = bool(_attr(field, "required", False))
        if field_type_of(field) == "file":
            file = file_values.get(field_id)
            if file:
                pending_files.append((field, file))
            elif required:
                raise ValidationFailed(f'Please upload a file for "{label}"')
            continue

        value = (text_values.get(field_id) or "").strip()
        if required and not value:
            raise ValidationFailed(f'Please fill out "{label}"')
        options = field_options(field)
        if value and field_type_of(field) == "select" and options and value not in options:
            raise ValidationFailed(f'Please choose a valid option for "{label}"')
        if value:
            answers.append(Answer(field_id=field_id, value=value))

    for field, file in pending_files:
        url = upload(field, file)
        answers.append(Answer(field_id=int(_attr(field, "id")), value=url))
    return answers


def registration_endpoint() -> str:
    return "/api/register-event" if payments_enabled() else "/api/register-event-test"


def _load_event_fields(db: Session, event_id: int):
    event = db.query(Event).filter(Event.id == event_id).first()
    if not event:
        raise NotFound("Event not found")
    fields = db.query(EventFormField).filter(
        EventFormField.event_id == event.id,
        EventFormField.disabled.is_(False),
    ).order_by(EventFormField.position.asc(), EventFormField.id.asc()).all()
    return event, fields


def _send_confirmation_email(user: Profile, event: Event, registration: Registration) -> None:
    site_url = os.environ.get("SITE_URL", "http://localhost:3000").rstrip("/")
    subject, html, text = build_registration_email(
        name=user.full_name,
        event_title=event.title,
        event_date=event.event_date,
        entry_code=registration.entry_code,
        ticket_url=f"{site_url}/tickets/{registration.id}",
    )
    try:
        send_email(user.email, subject, html, text)
    except Exception as exc:
        logger.warning("Registration email failed for registration %s: %s", registration.id, exc)


def submit_registration(
    db: Session,
    user: Profile,
    event_id: int,
    answers: Iterable[Any],
    gateway: Optional[RazorpayGateway] = None,
    always_confirm: bool = False,
) -> dict:
    event, fields = _load_event_fields(db, event_id)
    cleaned = validate_answers(fields, answers)
    free = always_confirm or not event.is_paid or not payments_enabled()

    try:
        registration = register_for_event(db, event.id, user.id)
        for answer in cleaned:
            db.add(RegistrationResponse(
                registration_id=registration.id,
                field_id=answer.field_id,
                value=answer.value,
            ))
        db.flush()

        if free:
            confirm_registration(db, registration.id)
            result = {"success": True, "free": True, "registration_id": registration.id}
        else:
            if gateway is None:
                raise ValueError("payment gateway required for paid registrations")
            order = gateway.create_order(
                amount=event.price,
                currency=event.currency or "INR",
                receipt=f"reg_{registration.id}",
                notes={"event_id": str(event.id), "user_id": str(user.id)},
            )
            db.add(Payment(
                registration_id=registration.id,
                event_id=event.id,
                user_id=user.id,
                amount=event.price,
                currency=event.currency or "INR",
                status=PaymentStatus.CREATED,
                razorpay_order_id=order["id"],
            ))
            result = {
                "success": True,
                "free": False,
                "registration_id": registration.id,
                "order_id": order["id"],
                "amount": event.price,
                "currency": event.currency or "INR",
                "razorpay_key": gateway.key_id,
            }
        db.commit()
    except Exception:
        db.rollback()
        raise

    if free:
        db.refresh(registration)
        _send_confirmation_email(user, event, registration)
    return result


def submit_test_registration(db: Session, user: Profile, event_id: int, answers: Iterable[Any]) -> dict:
    return submit_registration(db, user, event_id, answers, always_confirm=True)
