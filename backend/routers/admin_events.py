from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from event_service import (
    apply_event_action,
    clone_event,
    create_event,
    events_with_usage,
    get_event_or_404,
    serialize_event,
    update_event,
)
from models import EventFormField, Profile
from schemas import (
    CloneEventRequest,
    CreateEventRequest,
    EventActionRequest,
    FormFieldResponse,
    UpdateEventRequest,
)
from security import require_admin

router = APIRouter()


@router.get("/admin/events")
def list_admin_events(
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return {"events": events_with_usage(db)}


@router.get("/admin/events/{event_id}")
def get_admin_event(
    event_id: int,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    event = get_event_or_404(db, event_id)
    fields = db.query(EventFormField).filter(
        EventFormField.event_id == event.id
    ).order_by(EventFormField.position.asc(), EventFormField.id.asc()).all()
    return {
        "event": serialize_event(event),
        "form_fields": [FormFieldResponse.model_validate(field).model_dump(mode="json") for field in fields],
    }


@router.post("/admin/create-event")
def create_event_route(
    payload: CreateEventRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    event = create_event(db, admin, payload.event, payload.form_fields)
    return {"success": True, "event_id": event.id, "event": serialize_event(event)}


@router.post("/admin/update-event")
def update_event_route(
    payload: UpdateEventRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    event = update_event(
        db,
        admin,
        payload.event_id,
        payload.event,
        payload.form_fields,
        allow_capacity_override=payload.allow_capacity_override,
    )
    return {"success": True, "event": serialize_event(event)}


@router.post("/admin/clone-event")
def clone_event_route(
    payload: CloneEventRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    clone = clone_event(db, admin, payload.event_id, title=payload.title, event_date=payload.event_date)
    return {"success": True, "event_id": clone.id, "event": serialize_event(clone)}


@router.post("/admin/events/{event_id}/actions")
def event_action_route(
    event_id: int,
    payload: EventActionRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return {"success": True, **apply_event_action(db, admin, event_id, payload)}
