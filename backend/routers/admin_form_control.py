from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from database import get_db
from errors import NotFound, ValidationFailed
from models import Event, EventFormField, EventStatus, Profile, RegistrationResponse
from schemas import FormControlActionRequest, FormFieldResponse
from security import require_admin
from time_utils import now_tz
from utils import log_admin_action

router = APIRouter()

FORM_FIELD_LOG_ACTIONS = {
    "disable_field": "FORM_FIELD_DISABLE",
    "enable_field": "FORM_FIELD_ENABLE",
    "override_field_required": "FORM_FIELD_OVERRIDE_REQUIRED",
    "remove_field_override": "FORM_FIELD_REMOVE_OVERRIDE",
}


@router.get("/admin/form-control")
def list_form_fields(
    event: Optional[int] = Query(None),
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(Event).filter(Event.status == EventStatus.APPROVED)
    if event is not None:
        query = query.filter(Event.id == event)
    events = query.order_by(Event.title.asc()).all()

    response_counts = dict(
        db.query(RegistrationResponse.field_id, func.count(RegistrationResponse.id))
        .group_by(RegistrationResponse.field_id)
        .all()
    )
    payload = []
    for row in events:
        fields = []
        for field in row.form_fields:
            item = FormFieldResponse.model_validate(field).model_dump(mode="json")
            item["response_count"] = int(response_counts.get(field.id, 0))
            fields.append(item)
        payload.append({"id": row.id, "title": row.title, "status": row.status.value, "form_fields": fields})
    return {"events": payload}


@router.post("/admin/events/{event_id}/form-fields/{field_id}/actions")
def form_field_action(
    event_id: int,
    field_id: int,
    payload: FormControlActionRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    log_action = FORM_FIELD_LOG_ACTIONS.get(payload.action)
    if not log_action:
        raise ValidationFailed("Unknown form field action")
    field = db.query(EventFormField).filter(
        EventFormField.id == field_id,
        EventFormField.event_id == event_id,
    ).first()
    if not field:
        raise NotFound("Form field not found")

    now = now_tz()
    if payload.action == "disable_field":
        field.disabled = True
        field.disabled_by = admin.id
        field.disabled_at = now
    elif payload.action == "enable_field":
        field.disabled = False
        field.disabled_by = None
        field.disabled_at = None
    elif payload.action == "override_field_required":
        if field.required:
            raise ValidationFailed("Field is already required")
        if field.original_required is None:
            field.original_required = field.required
        field.required = True
        field.overridden_by = admin.id
        field.overridden_at = now
    else:
        field.required = bool(field.original_required)
        field.overridden_by = None
        field.overridden_at = None

    log_admin_action(db, admin, log_action, {
        "event_id": event_id,
        "field_id": field_id,
        "action": payload.action,
    }, commit=False)
    db.commit()
    db.refresh(field)
    return {"success": True, "field": FormFieldResponse.model_validate(field).model_dump(mode="json")}
