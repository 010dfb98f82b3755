from datetime import date, time
from types import SimpleNamespace

from event_editor import (
    AddFormField,
    ClearError,
    EventDraft,
    FormFieldDraft,
    MoveFormField,
    RemoveFormField,
    ResetForm,
    SetError,
    SetSubmitting,
    ToggleConfirmation,
    UpdateField,
    UpdateFormField,
    can_submit_edit,
    compute_differences,
    draft_from_event,
    draft_to_payload,
    initial_state,
    reduce,
    validate_draft,
    validate_state,
)

TODAY = date(2026, 3, 10)


def _valid_draft(**overrides):
    values = dict(
        title="Robotics Expo",
        description="Robots everywhere",
        location="Lab 3",
        event_date="2026-03-12",
        start_time="10:00",
        end_time="12:00",
        total_capacity=50,
    )
    values.update(overrides)
    return EventDraft(**values)


def test_update_field_clears_only_that_error():
    state = reduce(initial_state(), SetError("title", "Event title is required"))
    state = reduce(state, SetError("location", "Location is required"))

    next_state = reduce(state, UpdateField("title", "Expo"))

    assert next_state.data.title == "Expo"
    assert next_state.errors == {"location": "Location is required"}
    assert state.errors["title"] == "Event title is required"


def test_simple_flags_and_reset():
    state = reduce(initial_state(title="x"), SetSubmitting(True))
    state = reduce(state, ToggleConfirmation())
    assert state.is_submitting and state.show_confirmation
    state = reduce(state, ClearError("missing"))
    assert reduce(state, ResetForm()) == initial_state()


def test_form_field_actions():
    a = FormFieldDraft(id="tmp-a", label="A")
    b = FormFieldDraft(id="tmp-b", label="B")
    c = FormFieldDraft(id=7, label="C")
    state = initial_state()
    for item in (a, b, c):
        state = reduce(state, AddFormField(item))

    state = reduce(state, UpdateFormField("tmp-b", {"required": True}))
    assert state.data.form_fields[1].required is True

    moved = reduce(state, MoveFormField(0, 2))
    assert [f.label for f in moved.data.form_fields] == ["B", "C", "A"]
    assert reduce(state, MoveFormField(1, 1)) is state
    assert reduce(state, MoveFormField(0, 5)) is state

    removed = reduce(moved, RemoveFormField(7))
    assert [f.label for f in removed.data.form_fields] == ["B", "A"]


def test_validate_draft_messages():
    errors = validate_draft(EventDraft(total_capacity=0, event_type="paid", price=0), today=TODAY)
    assert errors == {
        "title": "Event title is required",
        "description": "Event description is required",
        "location": "Location is required",
        "event_date": "Event date is required",
        "start_time": "Start time is required",
        "end_time": "End time is required",
        "total_capacity": "Capacity must be greater than 0",
        "price": "Price must be greater than 0 for paid events",
    }


def test_validate_draft_date_and_time_ordering():
    assert validate_draft(_valid_draft(), today=TODAY) == {}
    assert validate_draft(_valid_draft(event_date="2026-03-09"), today=TODAY) == {
        "event_date": "Event date must be today or in the future",
    }
    assert validate_draft(_valid_draft(end_time="10:00"), today=TODAY) == {
        "end_time": "End time must be after start time",
    }


def test_validate_draft_reports_bad_numbers_instead_of_raising():
    assert validate_draft(_valid_draft(total_capacity=2.5), today=TODAY) == {
        "total_capacity": "Capacity must be greater than 0",
    }
    assert validate_draft(_valid_draft(total_capacity="abc"), today=TODAY) == {
        "total_capacity": "Capacity must be greater than 0",
    }
    assert validate_draft(_valid_draft(total_capacity="40"), today=TODAY) == {}
    assert validate_draft(_valid_draft(event_type="paid", price="abc"), today=TODAY) == {
        "price": "Price must be greater than 0 for paid events",
    }
    assert validate_draft(_valid_draft(event_type="paid", price="149.50"), today=TODAY) == {}


def test_validate_state_folds_errors():
    state = validate_state(initial_state(title="x"), today=TODAY)
    assert "title" not in state.errors
    assert state.errors["location"] == "Location is required"


def test_differences_and_submit_gate():
    original = _valid_draft()
    assert compute_differences(original, original) == []
    assert can_submit_edit(original, original) is False

    changed = _valid_draft(title="Robotics Expo 2", total_capacity=60)
    assert compute_differences(original, changed) == [
        {"field": "title", "label": "Title", "old": "Robotics Expo", "new": "Robotics Expo 2"},
        {"field": "total_capacity", "label": "Capacity", "old": 50, "new": 60},
    ]
    assert can_submit_edit(original, changed) is True


def test_draft_round_trip_with_event():
    event = SimpleNamespace(
        title="Expo",
        description="Desc",
        location="Hall",
        event_date=date(2026, 5, 1),
        start_time=time(9, 30),
        end_time=time(11, 0),
        capacity=40,
        is_registration_open=False,
        auto_close_when_full=True,
        is_paid=True,
        price=199.0,
        currency="INR",
        status="draft",
        visibility="hidden",
        assigned_organizer=None,
    )
    field = SimpleNamespace(id=3, label="College", field_type="text", required=True, options=None, disabled=False, original_required=True)

    draft = draft_from_event(event, [field])
    assert draft.start_time == "09:30"
    assert draft.registration_status == "closed"
    assert draft.save_mode == "draft"

    payload = draft_to_payload(reduce(initial_state(), UpdateField("form_fields", draft.form_fields + (FormFieldDraft(id="tmp", label="New"),))).data)
    assert payload["form_fields"][0]["id"] == 3
    assert payload["form_fields"][1]["id"] is None
    assert draft_to_payload(draft)["event"]["price"] == 199.0
    assert draft_to_payload(draft)["event"]["capacity"] == 40
