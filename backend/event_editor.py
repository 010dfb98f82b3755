"""Draft state for the multi-section event create/edit form.

The form is one ``EditorState`` value. Every user interaction is an action
object and ``reduce(state, action)`` returns the next state without
mutating the previous one. ``validate_draft`` and ``compute_differences``
run against the draft before it is sent to the create/update endpoints.
"""
import math
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Union

from time_utils import format_time, parse_date, parse_time, today_tz

FieldId = Union[int, str]


@dataclass(frozen=True)
class FormFieldDraft:
    id: Optional[FieldId]
    label: str
    field_type: str = "text"
    required: bool = False
    options: Optional[List[str]] = None
    disabled: bool = False
    original_required: Optional[bool] = None

    def to_payload(self) -> dict:
        return {
            "id": self.id if isinstance(self.id, int) else None,
            "label": self.label,
            "field_type": self.field_type,
            "required": self.required,
            "options": list(self.options) if self.options is not None else None,
            "disabled": self.disabled,
            "original_required": self.original_required,
        }


@dataclass(frozen=True)
class EventDraft:
    title: str = ""
    description: str = ""
    location: str = ""
    event_date: str = ""
    start_time: str = ""
    end_time: str = ""
    total_capacity: int = 1
    registration_status: str = "open"
    auto_close_when_full: bool = True
    event_type: str = "free"
    price: float = 0
    currency: str = "INR"
    form_fields: tuple = ()
    visibility: str = "public"
    save_mode: str = "publish"
    assigned_organizer: Optional[int] = None


@dataclass(frozen=True)
class EditorState:
    data: EventDraft = field(default_factory=EventDraft)
    errors: Dict[str, str] = field(default_factory=dict)
    is_submitting: bool = False
    show_confirmation: bool = False


def initial_state(**overrides: Any) -> EditorState:
    if "form_fields" in overrides:
        overrides["form_fields"] = tuple(overrides["form_fields"])
    return EditorState(data=replace(EventDraft(), **overrides))


# actions

@dataclass(frozen=True)
class UpdateField:
    field: str
    value: Any


@dataclass(frozen=True)
class SetError:
    field: str
    error: str


@dataclass(frozen=True)
class ClearError:
    field: str


@dataclass(frozen=True)
class SetSubmitting:
    is_submitting: bool


@dataclass(frozen=True)
class ToggleConfirmation:
    pass


@dataclass(frozen=True)
class AddFormField:
    field: FormFieldDraft


@dataclass(frozen=True)
class UpdateFormField:
    id: FieldId
    updates: Dict[str, Any]


@dataclass(frozen=True)
class RemoveFormField:
    id: FieldId


@dataclass(frozen=True)
class MoveFormField:
    from_index: int
    to_index: int


@dataclass(frozen=True)
class ResetForm:
    pass


def _without(errors: Dict[str, str], key: str) -> Dict[str, str]:
    return {name: message for name, message in errors.items() if name != key}


def _update_field(state: EditorState, action: UpdateField) -> EditorState:
    value = tuple(action.value) if action.field == "form_fields" else action.value
    return replace(
        state,
        data=replace(state.data, **{action.field: value}),
        errors=_without(state.errors, action.field),
    )


def _set_error(state: EditorState, action: SetError) -> EditorState:
    return replace(state, errors={**state.errors, action.field: action.error})


def _clear_error(state: EditorState, action: ClearError) -> EditorState:
    return replace(state, errors=_without(state.errors, action.field))


def _set_submitting(state: EditorState, action: SetSubmitting) -> EditorState:
    return replace(state, is_submitting=action.is_submitting)


def _toggle_confirmation(state: EditorState, action: ToggleConfirmation) -> EditorState:
    return replace(state, show_confirmation=not state.show_confirmation)


def _with_fields(state: EditorState, fields) -> EditorState:
    return replace(state, data=replace(state.data, form_fields=tuple(fields)))


def _add_form_field(state: EditorState, action: AddFormField) -> EditorState:
    return _with_fields(state, [*state.data.form_fields, action.field])


def _update_form_field(state: EditorState, action: UpdateFormField) -> EditorState:
    return _with_fields(state, [
        replace(item, **action.updates) if item.id == action.id else item
        for item in state.data.form_fields
    ])


def _remove_form_field(state: EditorState, action: RemoveFormField) -> EditorState:
    return _with_fields(state, [item for item in state.data.form_fields if item.id != action.id])


def _move_form_field(state: EditorState, action: MoveFormField) -> EditorState:
    fields = list(state.data.form_fields)
    size = len(fields)
    if action.from_index == action.to_index:
        return state
    if not (0 <= action.from_index < size) or not (0 <= action.to_index < size):
        return state
    moved = fields.pop(action.from_index)
    fields.insert(action.to_index, moved)
    return _with_fields(state, fields)


def _reset_form(state: EditorState, action: ResetForm) -> EditorState:
    return EditorState()


_HANDLERS: Dict[type, Callable[[EditorState, Any], EditorState]] = {
    UpdateField: _update_field,
    SetError: _set_error,
    ClearError: _clear_error,
    SetSubmitting: _set_submitting,
    ToggleConfirmation: _toggle_confirmation,
    AddFormField: _add_form_field,
    UpdateFormField: _update_form_field,
    RemoveFormField: _remove_form_field,
    MoveFormField: _move_form_field,
    ResetForm: _reset_form,
}


def reduce(state: EditorState, action: Any) -> EditorState:
    handler = _HANDLERS.get(type(action))
    if handler is None:
        return state
    return handler(state, action)


def validate_draft(draft: EventDraft, today: Optional[date] = None) -> Dict[str, str]:
    today = today or today_tz()
    errors: Dict[str, str] = {}

    if not draft.title.strip():
        errors["title"] = "Event title is required"
    if not draft.description.strip():
        errors["description"] = "Event description is required"
    if not draft.location.strip():
        errors["location"] = "Location is required"

    if not draft.event_date:
        errors["event_date"] = "Event date is required"
    else:
        event_date = parse_date(draft.event_date)
        if event_date is None:
            errors["event_date"] = "Event date is required"
        elif event_date < today:
            errors["event_date"] = "Event date must be today or in the future"

    start = parse_time(draft.start_time)
    end = parse_time(draft.end_time)
    if start is None:
        errors["start_time"] = "Start time is required"
    if end is None:
        errors["end_time"] = "End time is required"
    elif start is not None and end <= start:
        errors["end_time"] = "End time must be after start time"

    capacity = _as_number(draft.total_capacity)
    if capacity is None or capacity <= 0 or capacity != int(capacity):
        errors["total_capacity"] = "Capacity must be greater than 0"
    if draft.event_type == "paid":
        price = _as_number(draft.price)
        if price is None or price <= 0:
            errors["price"] = "Price must be greater than 0 for paid events"
    return errors


def _as_number(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def validate_state(state: EditorState, today: Optional[date] = None) -> EditorState:
    """Runs ``validate_draft`` and folds every message into the state's errors."""
    for name, message in validate_draft(state.data, today).items():
        state = reduce(state, SetError(name, message))
    return state


DIFF_FIELDS = (
    ("title", "Title"),
    ("description", "Description"),
    ("location", "Location"),
    ("event_date", "Event Date"),
    ("start_time", "Start Time"),
    ("end_time", "End Time"),
    ("total_capacity", "Capacity"),
    ("registration_status", "Registration Status"),
    ("event_type", "Event Type"),
    ("price", "Price"),
    ("visibility", "Visibility"),
    ("save_mode", "Save Mode"),
)


def compute_differences(original: EventDraft, current: EventDraft) -> List[dict]:
    differences = []
    for key, label in DIFF_FIELDS:
        old_value = getattr(original, key)
        new_value = getattr(current, key)
        if old_value != new_value:
            differences.append({"field": key, "label": label, "old": old_value, "new": new_value})
    return differences


def can_submit_edit(original: EventDraft, current: EventDraft) -> bool:
    return bool(compute_differences(original, current))


def draft_from_event(event, fields=()) -> EventDraft:
    status = getattr(event.status, "value", event.status)
    visibility = getattr(event.visibility, "value", event.visibility)
    return EventDraft(
        title=event.title or "",
        description=event.description or "",
        location=event.location or "",
        event_date=event.event_date.isoformat() if event.event_date else "",
        start_time=format_time(event.start_time),
        end_time=format_time(event.end_time),
        total_capacity=event.capacity,
        registration_status="open" if event.is_registration_open else "closed",
        auto_close_when_full=bool(event.auto_close_when_full),
        event_type="paid" if event.is_paid else "free",
        price=float(event.price or 0),
        currency=event.currency or "INR",
        form_fields=tuple(
            FormFieldDraft(
                id=item.id,
                label=item.label,
                field_type=getattr(item.field_type, "value", item.field_type),
                required=bool(item.required),
                options=list(item.options) if item.options else None,
                disabled=bool(item.disabled),
                original_required=item.original_required,
            )
            for item in fields
        ),
        visibility=visibility or "public",
        save_mode="draft" if status == "draft" else "publish",
        assigned_organizer=event.assigned_organizer,
    )


def draft_to_payload(draft: EventDraft) -> dict:
    return {
        "event": {
            "title": draft.title,
            "description": draft.description,
            "location": draft.location,
            "event_date": draft.event_date,
            "start_time": draft.start_time,
            "end_time": draft.end_time,
            "capacity": draft.total_capacity,
            "registration_status": draft.registration_status,
            "auto_close_when_full": draft.auto_close_when_full,
            "event_type": draft.event_type,
            "price": draft.price if draft.event_type == "paid" else 0,
            "currency": draft.currency,
            "visibility": draft.visibility,
            "save_mode": draft.save_mode,
            "assigned_organizer": draft.assigned_organizer,
        },
        "form_fields": [item.to_payload() for item in draft.form_fields],
    }
