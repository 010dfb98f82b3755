from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session, joinedload

from database import get_db
from errors import AuthorizationDenied, NotFound
from event_service import serialize_event, usage_by_event
from models import Event, EventFormField, EventStatus, EventVisibility, Profile, Registration
from payments import payments_enabled
from procedures import used_seats
from registration_service import registration_endpoint
from schemas import FormFieldResponse
from security import is_staff, require_user
from tickets import build_ticket, render_ticket_qr_png, ticket_payload
from time_utils import today_tz

router = APIRouter()


@router.get("/")
def root():
    return {"message": "Campus Events API is running"}


@router.get("/health")
def health_check():
    return {"status": "healthy"}


@router.get("/events")
def list_public_events(
    type: Optional[str] = Query(None, pattern="^(free|paid)$"),
    db: Session = Depends(get_db),
):
    query = db.query(Event).filter(
        Event.status == EventStatus.APPROVED,
        Event.visibility == EventVisibility.PUBLIC,
        Event.event_date >= today_tz(),
    )
    if type == "free":
        query = query.filter(Event.is_paid.is_(False))
    elif type == "paid":
        query = query.filter(Event.is_paid.is_(True))
    events = query.order_by(Event.event_date.asc(), Event.start_time.asc()).all()

    usage = usage_by_event(db)
    payload = []
    for event in events:
        counts = usage.get(event.id, {"pending": 0, "confirmed": 0})
        used = counts["pending"] + counts["confirmed"]
        item = serialize_event(event)
        item["remaining"] = max(0, event.capacity - used)
        payload.append(item)
    return {"events": payload, "payments_enabled": payments_enabled()}


@router.get("/events/{event_id}")
def get_public_event(event_id: int, db: Session = Depends(get_db)):
    event = db.query(Event).filter(
        Event.id == event_id,
        Event.status == EventStatus.APPROVED,
    ).first()
    if not event:
        raise NotFound("Event not found")
    fields = db.query(EventFormField).filter(
        EventFormField.event_id == event.id,
        EventFormField.disabled.is_(False),
    ).order_by(EventFormField.position.asc(), EventFormField.id.asc()).all()

    used = used_seats(db, event.id)
    return {
        "event": serialize_event(event),
        "form_fields": [FormFieldResponse.model_validate(field).model_dump(mode="json") for field in fields],
        "used": used,
        "remaining": max(0, event.capacity - used),
        "payments_enabled": payments_enabled(),
        "registration_endpoint": registration_endpoint(),
    }


def _load_ticket(db: Session, registration_id: int, user: Profile) -> Registration:
    registration = db.query(Registration).options(
        joinedload(Registration.event),
        joinedload(Registration.user),
        joinedload(Registration.attendance),
    ).filter(Registration.id == registration_id).first()
    if not registration:
        raise NotFound("Ticket not found")
    if registration.user_id != user.id and not is_staff(user):
        raise AuthorizationDenied()
    return registration


@router.get("/tickets/{registration_id}")
def get_ticket(
    registration_id: int,
    user: Profile = Depends(require_user),
    db: Session = Depends(get_db),
):
    return build_ticket(_load_ticket(db, registration_id, user))


@router.get("/tickets/{registration_id}/qr.png")
def get_ticket_qr(
    registration_id: int,
    user: Profile = Depends(require_user),
    db: Session = Depends(get_db),
):
    registration = _load_ticket(db, registration_id, user)
    png = render_ticket_qr_png(ticket_payload(registration.id))
    return Response(content=png, media_type="image/png")
