import json
from datetime import timedelta

from conftest import auth_headers, make_event, make_field, make_profile
from models import EventStatus, EventVisibility, Registration, RegistrationStatus, UserRole
from tickets import render_ticket_qr_png, ticket_payload, ticket_status_label
from time_utils import today_tz


def test_ticket_helpers():
    assert json.loads(ticket_payload(12)) == {"registration_id": 12}
    assert ticket_status_label(RegistrationStatus.CONFIRMED) == "Confirmed"
    assert ticket_status_label("PENDING") == "Payment processing"
    assert ticket_status_label("CANCELLED") == "Cancelled"
    assert ticket_status_label("bogus") == "Cancelled"
    assert render_ticket_qr_png(ticket_payload(1)).startswith(b"\x89PNG")


def test_public_event_listing_filters(client, db):
    make_event(db, title="Free Talk")
    make_event(db, title="Paid Workshop", is_paid=True, price=99.0)
    make_event(db, title="Draft", status=EventStatus.DRAFT)
    make_event(db, title="Hidden", visibility=EventVisibility.HIDDEN)
    make_event(db, title="Old", event_date=today_tz() - timedelta(days=3))

    titles = [e["title"] for e in client.get("/api/events").json()["events"]]
    assert sorted(titles) == ["Free Talk", "Paid Workshop"]
    assert [e["title"] for e in client.get("/api/events?type=paid").json()["events"]] == ["Paid Workshop"]
    assert [e["title"] for e in client.get("/api/events?type=free").json()["events"]] == ["Free Talk"]


def test_public_event_detail(client, db):
    event = make_event(db, capacity=3)
    make_field(db, event, "Team", position=0)
    make_field(db, event, "Retired", position=1, disabled=True)
    user = make_profile(db, "a@uni.edu")
    db.add(Registration(event_id=event.id, user_id=user.id, status=RegistrationStatus.PENDING, entry_code="EVT-PENDING001"))
    db.commit()

    body = client.get(f"/api/events/{event.id}").json()

    assert [f["label"] for f in body["form_fields"]] == ["Team"]
    assert body["used"] == 1
    assert body["remaining"] == 2
    assert body["payments_enabled"] is False
    assert body["registration_endpoint"] == "/api/register-event-test"

    draft = make_event(db, status=EventStatus.DRAFT)
    assert client.get(f"/api/events/{draft.id}").status_code == 404


def test_ticket_visible_to_owner_and_staff_only(client, db):
    event = make_event(db, title="Gala")
    owner = make_profile(db, "owner@uni.edu")
    other = make_profile(db, "other@uni.edu")
    organizer = make_profile(db, "org@uni.edu", role=UserRole.ORGANIZER)
    registration = Registration(event_id=event.id, user_id=owner.id, status=RegistrationStatus.PENDING, entry_code="EVT-TICKET0001")
    db.add(registration)
    db.commit()

    ticket = client.get(f"/api/tickets/{registration.id}", headers=auth_headers(owner)).json()
    assert ticket["status_label"] == "Payment processing"
    assert ticket["event"]["title"] == "Gala"
    assert ticket["event"]["start_time"] == "10:00"
    assert json.loads(ticket["qr_payload"]) == {"registration_id": registration.id}

    assert client.get(f"/api/tickets/{registration.id}", headers=auth_headers(other)).status_code == 403
    assert client.get(f"/api/tickets/{registration.id}", headers=auth_headers(organizer)).status_code == 200
    assert client.get("/api/tickets/999", headers=auth_headers(owner)).status_code == 404

    image = client.get(f"/api/tickets/{registration.id}/qr.png", headers=auth_headers(owner))
    assert image.headers["content-type"] == "image/png"
    assert image.content.startswith(b"\x89PNG")
