"""Event create/update/clone and the admin event actions."""
import logging
from datetime import date, time
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from errors import NotFound, ValidationFailed
from models import (
    Event,
    EventFormField,
    EventStatus,
    EventVisibility,
    FormFieldType,
    Profile,
    Registration,
    RegistrationResponse,
    RegistrationStatus,
    UserRole,
)
from procedures import generate_manual_entry_code
from schemas import EventIn, EventResponse, FormFieldIn
from time_utils import now_tz, parse_date, parse_time, today_tz
from utils import log_admin_action

logger = logging.getLogger(__name__)

PAST_EVENT_EDIT_ERROR = (
    "Past events can only be edited for description and location. "
    "Date, time, and capacity cannot be changed."
)


def serialize_event(event: Event) -> dict:
    return EventResponse.model_validate(event).model_dump(mode="json")


def get_event_or_404(db: Session, event_id: int) -> Event:
    event = db.query(Event).filter(Event.id == event_id).first()
    if not event:
        raise NotFound("Event not found")
    return event


def confirmed_count(db: Session, event_id: int) -> int:
    return db.query(Registration).filter(
        Registration.event_id == event_id,
        Registration.status == RegistrationStatus.CONFIRMED,
    ).count()


def _parse_schedule(event_date: Optional[str], start_time: Optional[str], end_time: Optional[str]) -> Tuple[date, time, time]:
    parsed_date = parse_date(event_date)
    if parsed_date is None:
        raise ValidationFailed("Invalid event date")
    start = parse_time(start_time)
    end = parse_time(end_time)
    if start is None or end is None or end <= start:
        raise ValidationFailed("End time must be after start time")
    return parsed_date, start, end


def _resolve_pricing(event_type: Optional[str], price: Optional[float], default_paid: bool) -> Tuple[bool, float]:
    is_paid = default_paid if event_type is None else event_type == "paid"
    if not is_paid:
        return False, 0.0
    amount = float(price or 0)
    if amount <= 0:
        raise ValidationFailed("Price must be greater than 0 for paid events")
    return True, amount


def _resolve_organizer(db: Session, organizer_id: Optional[int]) -> Optional[int]:
    if organizer_id is None:
        return None
    organizer = db.query(Profile).filter(Profile.id == organizer_id).first()
    if not organizer or organizer.role not in (UserRole.ORGANIZER, UserRole.ADMIN):
        raise ValidationFailed("Assigned organizer not found")
    return organizer.id


def _new_field(event_id: int, payload: FormFieldIn, admin_id: int, position: int, now) -> Tuple[EventFormField, Optional[dict]]:
    required = bool(payload.required)
    disabled = bool(payload.disabled)
    original_required = payload.original_required if payload.original_required is not None else required
    overridden = original_required != required

    row = EventFormField(
        event_id=event_id,
        label=payload.label.strip(),
        field_type=FormFieldType(payload.field_type.value),
        required=required,
        options=payload.options,
        position=position,
        disabled=disabled,
        disabled_by=admin_id if disabled else None,
        disabled_at=now if disabled else None,
        original_required=original_required,
        overridden_by=admin_id if overridden else None,
        overridden_at=now if overridden else None,
    )
    change = None
    if disabled or overridden:
        change = {
            "label": row.label,
            "field_type": payload.field_type.value,
            "disabled": disabled,
            "original_required": original_required,
            "required": required,
        }
    return row, change


def create_event(db: Session, admin: Profile, event_in: Optional[EventIn], form_fields: List[FormFieldIn]) -> Event:
    if event_in is None:
        raise ValidationFailed("Missing event payload")
    if not event_in.title or not event_in.event_date or not event_in.start_time or not event_in.end_time:
        raise ValidationFailed("Missing required event fields")
    event_date, start, end = _parse_schedule(event_in.event_date, event_in.start_time, event_in.end_time)
    if not event_in.capacity or event_in.capacity <= 0:
        raise ValidationFailed("Capacity must be greater than 0")
    is_paid, price = _resolve_pricing(event_in.event_type, event_in.price, default_paid=bool(event_in.price and event_in.price > 0))

    if event_in.status is not None:
        status = EventStatus(event_in.status.value)
    elif event_in.save_mode == "draft":
        status = EventStatus.DRAFT
    else:
        status = EventStatus.APPROVED

    if event_in.registration_status is not None:
        registration_open = event_in.registration_status == "open"
    else:
        registration_open = bool(event_in.is_registration_open)
    if status == EventStatus.CANCELLED:
        registration_open = False

    event = Event(
        title=event_in.title,
        description=event_in.description,
        location=event_in.location,
        event_date=event_date,
        start_time=start,
        end_time=end,
        capacity=event_in.capacity,
        is_registration_open=registration_open,
        auto_close_when_full=True if event_in.auto_close_when_full is None else event_in.auto_close_when_full,
        is_paid=is_paid,
        price=price,
        currency=event_in.currency or "INR",
        status=status,
        visibility=EventVisibility(event_in.visibility.value) if event_in.visibility else EventVisibility.PUBLIC,
        assigned_organizer=_resolve_organizer(db, event_in.assigned_organizer),
        created_by=admin.id,
    )
    db.add(event)
    db.flush()

    now = now_tz()
    override_changes = []
    for position, payload in enumerate(form_fields):
        row, change = _new_field(event.id, payload, admin.id, position, now)
        db.add(row)
        if change:
            override_changes.append(change)

    log_admin_action(db, admin, "CREATE_EVENT", {
        "event_id": event.id,
        "override_changes": override_changes,
    }, commit=False)
    db.commit()
    db.refresh(event)
    return event


def _json_value(value):
    if isinstance(value, (date, time)):
        return value.isoformat()
    return getattr(value, "value", value)


def _reconcile_fields(
    db: Session,
    event: Event,
    form_fields: List[FormFieldIn],
    admin: Profile,
    now,
) -> Dict[str, dict]:
    existing_by_id = {
        row.id: row
        for row in db.query(EventFormField).filter(EventFormField.event_id == event.id).all()
    }
    incoming_by_id = {payload.id: payload for payload in form_fields if payload.id is not None}
    positions = {id(payload): index for index, payload in enumerate(form_fields)}

    updated = []
    for field_id, row in existing_by_id.items():
        payload = incoming_by_id.get(field_id)
        if payload is None:
            continue
        required = bool(payload.required)
        disabled = bool(payload.disabled)
        if row.original_required is not None:
            original_required = row.original_required
        elif payload.original_required is not None:
            original_required = payload.original_required
        else:
            original_required = required
        overridden = original_required != required

        updated.append({
            "id": field_id,
            "label": {"old": row.label, "new": payload.label},
            "required": {"old": row.required, "new": required},
            "disabled": {"old": row.disabled, "new": disabled},
            "original_required": {"old": row.original_required, "new": original_required},
        })
        if disabled and not row.disabled:
            row.disabled_by = admin.id
            row.disabled_at = now
        row.label = payload.label.strip()
        row.field_type = FormFieldType(payload.field_type.value)
        row.required = required
        row.options = payload.options
        row.disabled = disabled
        row.position = positions[id(payload)]
        row.original_required = original_required
        if overridden:
            row.overridden_by = admin.id
            row.overridden_at = now
        else:
            row.overridden_by = None
            row.overridden_at = None

    removed = []
    for field_id, row in existing_by_id.items():
        if field_id in incoming_by_id or row.disabled:
            continue
        row.disabled = True
        row.disabled_by = admin.id
        row.disabled_at = now
        removed.append({"id": field_id, "label": row.label})

    for payload in form_fields:
        if payload.id is not None and payload.id in existing_by_id:
            continue
        row, _ = _new_field(event.id, payload, admin.id, positions[id(payload)], now)
        db.add(row)

    changes: Dict[str, dict] = {}
    if removed:
        changes["form_fields_removed"] = {"old": removed, "new": []}
    if updated:
        changes["form_fields_updated"] = {"old": updated, "new": []}
    return changes


def update_event(
    db: Session,
    admin: Profile,
    event_id: Optional[int],
    event_in: Optional[EventIn],
    form_fields: List[FormFieldIn],
    allow_capacity_override: bool = False,
) -> Event:
    if not event_id:
        raise ValidationFailed("Missing event_id")
    if event_in is None:
        raise ValidationFailed("Missing event payload")
    event = get_event_or_404(db, event_id)

    capacity = event_in.capacity if event_in.capacity is not None else event.capacity
    if not capacity or capacity <= 0:
        raise ValidationFailed("Capacity must be greater than 0")
    confirmed = confirmed_count(db, event.id)
    if confirmed > capacity and not allow_capacity_override:
        raise ValidationFailed(
            "Capacity is lower than confirmed registrations",
            extra={"code": "CAPACITY_BELOW_CONFIRMED", "confirmed_registrations": confirmed},
        )

    if not event_in.start_time or not event_in.end_time or not event_in.event_date:
        raise ValidationFailed("Missing required date/time fields")
    event_date, start, end = _parse_schedule(event_in.event_date, event_in.start_time, event_in.end_time)

    if event.event_date < today_tz():
        changing_schedule = event_date != event.event_date or start != event.start_time or end != event.end_time
        if changing_schedule or capacity != event.capacity:
            raise ValidationFailed(PAST_EVENT_EDIT_ERROR)

    is_paid, price = _resolve_pricing(event_in.event_type, event_in.price if event_in.price is not None else event.price, default_paid=event.is_paid)

    if event_in.registration_status is not None:
        registration_open = event_in.registration_status != "closed"
    elif event_in.is_registration_open is not None:
        registration_open = event_in.is_registration_open
    else:
        registration_open = event.is_registration_open

    next_status = event.status
    if event_in.status == EventStatus.CANCELLED.value:
        next_status = EventStatus.CANCELLED
    elif event_in.save_mode == "draft":
        next_status = EventStatus.DRAFT
    elif event_in.save_mode == "publish":
        next_status = EventStatus.APPROVED
    elif event_in.status is not None:
        next_status = EventStatus(event_in.status.value)
    if next_status == EventStatus.CANCELLED:
        registration_open = False

    if "assigned_organizer" in event_in.model_fields_set:
        organizer = _resolve_organizer(db, event_in.assigned_organizer)
    else:
        organizer = event.assigned_organizer

    updates = {
        "title": event_in.title or event.title,
        "description": event_in.description if event_in.description is not None else event.description,
        "location": event_in.location if event_in.location is not None else event.location,
        "event_date": event_date,
        "start_time": start,
        "end_time": end,
        "capacity": capacity,
        "is_registration_open": registration_open,
        "is_paid": is_paid,
        "price": price,
        "status": next_status,
        "visibility": EventVisibility(event_in.visibility.value) if event_in.visibility else event.visibility,
        "assigned_organizer": organizer,
    }
    if event_in.auto_close_when_full is not None:
        updates["auto_close_when_full"] = event_in.auto_close_when_full
    if event_in.currency:
        updates["currency"] = event_in.currency

    changed_fields: Dict[str, dict] = {}
    for key, new_value in updates.items():
        old_value = getattr(event, key)
        if _json_value(old_value) != _json_value(new_value):
            changed_fields[key] = {"old": _json_value(old_value), "new": _json_value(new_value)}

    now = now_tz()
    changed_fields.update(_reconcile_fields(db, event, form_fields, admin, now))
    for key, value in updates.items():
        setattr(event, key, value)

    log_admin_action(db, admin, "UPDATE_EVENT", {
        "event_id": event.id,
        "changed_fields": changed_fields,
        "timestamp": now.isoformat(),
    }, commit=False)
    db.commit()
    db.refresh(event)
    return event


def clone_event(db: Session, admin: Profile, event_id: Optional[int], title: Optional[str] = None, event_date: Optional[str] = None) -> Event:
    if not event_id:
        raise ValidationFailed("Missing eventId")
    source = get_event_or_404(db, event_id)
    if event_date:
        cloned_date = parse_date(event_date)
        if cloned_date is None:
            raise ValidationFailed("Invalid event date")
    else:
        cloned_date = today_tz()

    clone = Event(
        title=(title or "").strip() or f"{source.title} (Copy)",
        description=source.description,
        location=source.location,
        event_date=cloned_date,
        start_time=source.start_time,
        end_time=source.end_time,
        capacity=source.capacity,
        is_registration_open=False,
        auto_close_when_full=source.auto_close_when_full,
        is_paid=source.is_paid,
        price=source.price,
        currency=source.currency,
        status=EventStatus.DRAFT,
        visibility=EventVisibility.HIDDEN,
        created_by=admin.id,
    )
    db.add(clone)
    db.flush()

    source_fields = db.query(EventFormField).filter(
        EventFormField.event_id == source.id
    ).order_by(EventFormField.position.asc(), EventFormField.id.asc()).all()
    for row in source_fields:
        db.add(EventFormField(
            event_id=clone.id,
            label=row.label,
            field_type=row.field_type,
            required=row.required,
            options=row.options,
            position=row.position,
            disabled=False,
            original_required=row.original_required,
        ))

    log_admin_action(db, admin, "EVENT_CLONE", {
        "original_event_id": source.id,
        "cloned_event_id": clone.id,
        "original_title": source.title,
        "cloned_title": clone.title,
    }, commit=False)
    db.commit()
    db.refresh(clone)
    return clone


def usage_by_event(db: Session) -> Dict[int, Dict[str, int]]:
    rows = db.query(
        Registration.event_id,
        Registration.status,
        func.count(Registration.id),
    ).filter(
        Registration.status.in_((RegistrationStatus.PENDING, RegistrationStatus.CONFIRMED))
    ).group_by(Registration.event_id, Registration.status).all()

    usage: Dict[int, Dict[str, int]] = {}
    for event_id, status, count in rows:
        bucket = usage.setdefault(event_id, {"pending": 0, "confirmed": 0})
        key = "pending" if status == RegistrationStatus.PENDING else "confirmed"
        bucket[key] = int(count)
    return usage


def utilization(used: int, capacity: int) -> int:
    if not capacity or capacity <= 0:
        return 0
    return min(100, round(used / capacity * 100))


def events_with_usage(db: Session) -> List[dict]:
    events = db.query(Event).order_by(Event.event_date.desc(), Event.id.desc()).all()
    usage = usage_by_event(db)
    names = dict(db.query(Profile.id, Profile.full_name).all())
    result = []
    for event in events:
        counts = usage.get(event.id, {"pending": 0, "confirmed": 0})
        used = counts["pending"] + counts["confirmed"]
        item = serialize_event(event)
        item.update({
            "organizer_name": names.get(event.assigned_organizer or event.created_by, "Unknown"),
            "pending_count": counts["pending"],
            "confirmed_count": counts["confirmed"],
            "utilization": utilization(used, event.capacity),
            "seats_left": max(0, event.capacity - used),
        })
        result.append(item)
    return result


def _edit_event_updates(db: Session, event: Event, payload) -> dict:
    updates = {}
    if payload.title:
        updates["title"] = payload.title.strip()
    if payload.location:
        updates["location"] = payload.location.strip()
    if payload.event_date:
        parsed = parse_date(payload.event_date)
        if parsed is None:
            raise ValidationFailed("Invalid event date")
        updates["event_date"] = parsed
    for key in ("start_time", "end_time"):
        raw = getattr(payload, key)
        if raw:
            parsed_time = parse_time(raw)
            if parsed_time is None:
                raise ValidationFailed("End time must be after start time")
            updates[key] = parsed_time
    if payload.capacity is not None:
        if payload.capacity <= 0:
            raise ValidationFailed("Capacity must be greater than 0")
        confirmed = confirmed_count(db, event.id)
        if confirmed > payload.capacity:
            raise ValidationFailed(
                "Capacity is lower than confirmed registrations",
                extra={"code": "CAPACITY_BELOW_CONFIRMED", "confirmed_registrations": confirmed},
            )
        updates["capacity"] = payload.capacity

    if event.event_date < today_tz():
        locked = ("event_date", "start_time", "end_time", "capacity")
        if any(key in updates and updates[key] != getattr(event, key) for key in locked):
            raise ValidationFailed(PAST_EVENT_EDIT_ERROR)

    start = updates.get("start_time", event.start_time)
    end = updates.get("end_time", event.end_time)
    if end <= start:
        raise ValidationFailed("End time must be after start time")
    return updates


def _manual_override(db: Session, admin: Profile, event: Event, email: Optional[str]) -> dict:
    email = (email or "").strip().lower()
    if not email:
        raise ValidationFailed("User email is required")
    user = db.query(Profile).filter(func.lower(Profile.email) == email).first()
    if not user:
        raise NotFound("User not found")
    existing = db.query(Registration).filter(
        Registration.event_id == event.id,
        Registration.user_id == user.id,
        Registration.status != RegistrationStatus.CANCELLED,
    ).first()
    if existing:
        raise ValidationFailed("User is already registered for this event")

    entry_code = generate_manual_entry_code()
    registration = Registration(
        event_id=event.id,
        user_id=user.id,
        status=RegistrationStatus.CONFIRMED,
        entry_code=entry_code,
    )
    db.add(registration)
    db.flush()
    log_admin_action(db, admin, "REG_MANUAL_OVERRIDE", {
        "event_id": event.id,
        "user_email": email,
        "entry_code": entry_code,
    }, commit=False)
    db.commit()
    return {"event_id": event.id, "action": "manual_override", "registration_id": registration.id, "entry_code": entry_code}


def _delete_event(db: Session, admin: Profile, event: Event) -> dict:
    if db.query(Registration.id).filter(Registration.event_id == event.id).first():
        raise ValidationFailed("Events with registrations cannot be deleted; cancel the event instead")
    field_ids = [row.id for row in db.query(EventFormField.id).filter(EventFormField.event_id == event.id).all()]
    if field_ids and db.query(RegistrationResponse.id).filter(RegistrationResponse.field_id.in_(field_ids)).first():
        raise ValidationFailed("Events with registrations cannot be deleted; cancel the event instead")
    event_id = event.id
    for field in list(event.form_fields):
        db.delete(field)
    db.delete(event)
    log_admin_action(db, admin, "EVENT_DELETE", {"event_id": event_id}, commit=False)
    db.commit()
    return {"event_id": event_id, "action": "delete"}


STATUS_ACTIONS = {
    "approve": ("EVENT_APPROVE", {"status": EventStatus.APPROVED}),
    "cancel": ("EVENT_CANCEL", {"status": EventStatus.CANCELLED, "is_registration_open": False}),
    "open_reg": ("EVENT_OPEN_REG", {"is_registration_open": True}),
    "close_reg": ("EVENT_CLOSE_REG", {"is_registration_open": False}),
    "emergency_disable": ("EVENT_EMERGENCY_DISABLE", {"status": EventStatus.CANCELLED, "is_registration_open": False}),
    "force_close_capacity": ("EVENT_FORCE_CLOSE_CAPACITY", {"is_registration_open": False}),
}


def apply_event_action(db: Session, admin: Profile, event_id: int, payload) -> dict:
    event = get_event_or_404(db, event_id)
    action = payload.action

    if action == "manual_override":
        return _manual_override(db, admin, event, payload.user_email)
    if action == "delete":
        return _delete_event(db, admin, event)
    if action == "clone_event":
        clone = clone_event(db, admin, event.id)
        return {"event_id": event.id, "action": action, "cloned_event_id": clone.id}

    if action == "edit_event":
        log_action, updates = "EVENT_EDIT", _edit_event_updates(db, event, payload)
    elif action in STATUS_ACTIONS:
        log_action, updates = STATUS_ACTIONS[action]
    else:
        raise ValidationFailed("Unknown event action")

    if action == "open_reg" and event.status == EventStatus.CANCELLED:
        raise ValidationFailed("Cancelled events cannot reopen registration")

    previous_status = event.status.value
    previous_open = event.is_registration_open
    for key, value in updates.items():
        setattr(event, key, value)
    if updates:
        log_admin_action(db, admin, log_action, {
            "event_id": event.id,
            "previous_status": previous_status,
            "previous_is_registration_open": previous_open,
            "updates": {key: _json_value(value) for key, value in updates.items()},
        }, commit=False)
    db.commit()
    db.refresh(event)
    logger.info("Admin %s applied %s to event %s", admin.id, action, event.id)
    return {"event_id": event.id, "action": action, "event": serialize_event(event)}
