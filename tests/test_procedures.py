import re

import pytest

from conftest import make_event, make_profile
from errors import CapacityExceeded, NotFound, RegistrationFailed, ValidationFailed
from models import Attendance, EventStatus, Registration, RegistrationStatus
from procedures import (
    check_in,
    confirm_registration,
    generate_entry_code,
    generate_manual_entry_code,
    register_for_event,
    used_seats,
)


def test_entry_code_formats():
    assert re.fullmatch(r"EVT-[A-Z0-9]{10}", generate_entry_code())
    assert re.fullmatch(r"MANUAL-1700000000000-[A-Z0-9]{9}", generate_manual_entry_code(1700000000000))


def test_register_creates_pending_registration(db):
    event = make_event(db)
    user = make_profile(db, "a@uni.edu")

    registration = register_for_event(db, event.id, user.id)
    db.commit()

    assert registration.status == RegistrationStatus.PENDING
    assert registration.entry_code.startswith("EVT-")
    assert used_seats(db, event.id) == 1


def test_register_rejects_missing_closed_and_draft_events(db):
    user = make_profile(db, "a@uni.edu")
    closed = make_event(db, is_registration_open=False)
    draft = make_event(db, status=EventStatus.DRAFT)

    with pytest.raises(NotFound):
        register_for_event(db, 9999, user.id)
    with pytest.raises(RegistrationFailed, match="closed"):
        register_for_event(db, closed.id, user.id)
    with pytest.raises(RegistrationFailed, match="closed"):
        register_for_event(db, draft.id, user.id)


def test_register_rejects_duplicates(db):
    event = make_event(db)
    user = make_profile(db, "a@uni.edu")
    register_for_event(db, event.id, user.id)
    db.commit()

    with pytest.raises(RegistrationFailed, match="Already registered"):
        register_for_event(db, event.id, user.id)


def test_capacity_two_third_user_rejected_and_event_closed(db):
    event = make_event(db, capacity=2)
    users = [make_profile(db, f"user{i}@uni.edu") for i in range(3)]

    for user in users[:2]:
        register_for_event(db, event.id, user.id)
        db.commit()

    db.refresh(event)
    assert event.is_registration_open is False

    event.is_registration_open = True
    db.commit()
    with pytest.raises(CapacityExceeded, match="Event is full"):
        register_for_event(db, event.id, users[2].id)
    db.rollback()
    assert used_seats(db, event.id) == 2


def test_cancelled_registrations_free_their_seat(db):
    event = make_event(db, capacity=1, auto_close_when_full=False)
    first = make_profile(db, "first@uni.edu")
    second = make_profile(db, "second@uni.edu")
    registration = register_for_event(db, event.id, first.id)
    registration.status = RegistrationStatus.CANCELLED
    db.commit()

    register_for_event(db, event.id, second.id)
    db.commit()
    assert used_seats(db, event.id) == 1


def test_confirm_is_idempotent_and_refuses_cancelled(db):
    event = make_event(db)
    user = make_profile(db, "a@uni.edu")
    registration = register_for_event(db, event.id, user.id)
    db.commit()

    confirm_registration(db, registration.id)
    confirm_registration(db, registration.id)
    db.commit()
    assert registration.status == RegistrationStatus.CONFIRMED

    registration.status = RegistrationStatus.CANCELLED
    db.commit()
    with pytest.raises(RegistrationFailed):
        confirm_registration(db, registration.id)


def _confirmed_registration(db, email="a@uni.edu", entry_code=None):
    event = make_event(db)
    user = make_profile(db, email)
    registration = register_for_event(db, event.id, user.id)
    if entry_code:
        registration.entry_code = entry_code
    confirm_registration(db, registration.id)
    db.commit()
    return registration


def test_check_in_twice_creates_single_attendance(db):
    registration = _confirmed_registration(db)

    first = check_in(db, entry_code=registration.entry_code.lower())
    db.commit()
    second = check_in(db, registration_id=registration.id)
    db.commit()

    assert first.already_checked_in is False
    assert second.already_checked_in is True
    assert first.attendance_id == second.attendance_id
    assert db.query(Attendance).filter(Attendance.registration_id == registration.id).count() == 1


def test_check_in_requires_exactly_one_identifier(db):
    registration = _confirmed_registration(db)

    with pytest.raises(ValidationFailed):
        check_in(db)
    with pytest.raises(ValidationFailed):
        check_in(db, registration_id=registration.id, entry_code=registration.entry_code)


def test_check_in_rejects_pending_registration(db):
    event = make_event(db)
    user = make_profile(db, "a@uni.edu")
    registration = register_for_event(db, event.id, user.id)
    db.commit()

    with pytest.raises(RegistrationFailed, match="not confirmed"):
        check_in(db, entry_code=registration.entry_code)


def test_manual_entry_code_check_in(db):
    code = generate_manual_entry_code()
    registration = _confirmed_registration(db, entry_code=code)

    result = check_in(db, entry_code=code)
    db.commit()

    assert result.registration_id == registration.id
    assert result.entry_code == code
    assert db.query(Registration).filter(Registration.entry_code.like("MANUAL-%")).count() == 1
