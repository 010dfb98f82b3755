import pytest

from conftest import auth_headers, make_event, make_field, make_profile
from errors import PaymentGatewayError, ValidationFailed
from models import FormFieldType, Payment, PaymentStatus, Registration, RegistrationResponse, RegistrationStatus
from registration_service import build_answers, registration_endpoint, validate_answers


FIELDS = [
    {"id": 1, "label": "Team name", "field_type": "text", "required": True},
    {"id": 2, "label": "T-shirt", "field_type": "select", "required": False, "options": ["S", "M", "L"]},
    {"id": 3, "label": "Old question", "field_type": "text", "required": True, "disabled": True},
    {"id": 4, "label": "Resume", "field_type": "file", "required": True},
]


def test_validate_answers_trims_and_skips_disabled_fields():
    answers = validate_answers(FIELDS[:3], [{"field_id": 1, "value": "  Rockets "}, {"field_id": "2", "value": "M"}])
    assert [(a.field_id, a.value) for a in answers] == [(1, "Rockets"), (2, "M")]


def test_validate_answers_errors():
    with pytest.raises(ValidationFailed, match="Missing required field response"):
        validate_answers(FIELDS[:3], [{"field_id": 1, "value": "   "}])
    with pytest.raises(ValidationFailed, match="Invalid option selected"):
        validate_answers(FIELDS[:3], [{"field_id": 1, "value": "A"}, {"field_id": 2, "value": "XL"}])
    with pytest.raises(ValidationFailed, match="Unknown form field"):
        validate_answers(FIELDS[:3], [{"field_id": 1, "value": "A"}, {"field_id": 3, "value": "x"}])


def test_build_answers_validates_before_uploading():
    uploads = []

    def upload(field, file):
        uploads.append(field["id"])
        return "https://files.example/resume.pdf"

    with pytest.raises(ValidationFailed, match='Please fill out "Team name"'):
        build_answers(FIELDS, {1: " "}, {4: object()}, upload)
    with pytest.raises(ValidationFailed, match='Please choose a valid option for "T-shirt"'):
        build_answers(FIELDS, {1: "A", 2: "XL"}, {4: object()}, upload)
    with pytest.raises(ValidationFailed, match='Please upload a file for "Resume"'):
        build_answers(FIELDS, {1: "A"}, {}, upload)
    assert uploads == []

    answers = build_answers(FIELDS, {1: " A ", 2: "S"}, {4: object()}, upload)
    assert uploads == [4]
    assert [(a.field_id, a.value) for a in answers] == [(1, "A"), (2, "S"), (4, "https://files.example/resume.pdf")]


def test_registration_endpoint_follows_payment_flag(monkeypatch):
    assert registration_endpoint() == "/api/register-event-test"
    monkeypatch.setenv("PAYMENTS_ENABLED", "true")
    assert registration_endpoint() == "/api/register-event"


def test_register_requires_authentication(client):
    response = client.post("/api/register-event", json={"event_id": 1, "answers": []})
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Not authenticated"}


def test_register_requires_event_id(client, db):
    user = make_profile(db, "a@uni.edu")
    response = client.post("/api/register-event", json={"answers": []}, headers=auth_headers(user))
    assert response.status_code == 400
    assert response.json()["error"] == "Missing event_id"


def test_free_registration_is_confirmed_with_responses(client, db):
    event = make_event(db)
    field = make_field(db, event, "Team name", required=True)
    user = make_profile(db, "a@uni.edu")

    response = client.post(
        "/api/register-event",
        json={"event_id": event.id, "answers": [{"field_id": field.id, "value": " Rockets "}]},
        headers=auth_headers(user),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True and body["free"] is True
    registration = db.query(Registration).filter(Registration.id == body["registration_id"]).one()
    assert registration.status == RegistrationStatus.CONFIRMED
    assert [r.value for r in db.query(RegistrationResponse).all()] == ["Rockets"]


def test_invalid_select_option_creates_nothing(client, db):
    event = make_event(db)
    field = make_field(db, event, "T-shirt", field_type=FormFieldType.SELECT, options=["S", "M", "L"])
    user = make_profile(db, "a@uni.edu")

    response = client.post(
        "/api/register-event-test",
        json={"event_id": event.id, "answers": [{"field_id": field.id, "value": "XL"}]},
        headers=auth_headers(user),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid option selected"
    assert db.query(Registration).count() == 0


def test_full_event_returns_event_full(client, db):
    event = make_event(db, capacity=1)
    first = make_profile(db, "first@uni.edu")
    second = make_profile(db, "second@uni.edu")

    assert client.post("/api/register-event-test", json={"event_id": event.id}, headers=auth_headers(first)).status_code == 200
    response = client.post("/api/register-event-test", json={"event_id": event.id}, headers=auth_headers(second))

    assert response.status_code == 400
    assert response.json()["error"] in ("Event is full", "Registration is closed for this event")
    assert db.query(Registration).count() == 1


def test_paid_registration_creates_order_and_pending_registration(client, db, gateway, monkeypatch):
    monkeypatch.setenv("PAYMENTS_ENABLED", "true")
    event = make_event(db, is_paid=True, price=250.0)
    user = make_profile(db, "a@uni.edu")

    response = client.post("/api/register-event", json={"event_id": event.id}, headers=auth_headers(user))

    assert response.status_code == 200
    body = response.json()
    assert body["free"] is False
    assert body["order_id"] == "order_1"
    assert body["amount"] == 250.0
    assert body["razorpay_key"] == "rzp_test_key"
    payment = db.query(Payment).one()
    assert payment.status == PaymentStatus.CREATED
    assert payment.registration_id == body["registration_id"]
    assert db.query(Registration).one().status == RegistrationStatus.PENDING


def test_paid_event_takes_free_path_when_payments_disabled(client, db, gateway):
    event = make_event(db, is_paid=True, price=250.0)
    user = make_profile(db, "a@uni.edu")

    response = client.post("/api/register-event", json={"event_id": event.id}, headers=auth_headers(user))

    assert response.json()["free"] is True
    assert gateway.orders == []


def test_gateway_failure_rolls_back_registration(client, db, gateway, monkeypatch):
    monkeypatch.setenv("PAYMENTS_ENABLED", "true")
    event = make_event(db, is_paid=True, price=100.0)
    field = make_field(db, event, "Team name")
    user = make_profile(db, "a@uni.edu")

    def failing_order(**kwargs):
        raise PaymentGatewayError()

    monkeypatch.setattr(gateway, "create_order", failing_order)
    response = client.post(
        "/api/register-event",
        json={"event_id": event.id, "answers": [{"field_id": field.id, "value": "x"}]},
        headers=auth_headers(user),
    )

    assert response.status_code == 502
    assert db.query(Registration).count() == 0
    assert db.query(RegistrationResponse).count() == 0


def test_rate_limited_registration_returns_429(client, db, limiter):
    event = make_event(db)
    user = make_profile(db, "a@uni.edu")
    limiter.max_requests = 1

    client.post("/api/register-event-test", json={"event_id": event.id}, headers=auth_headers(user))
    response = client.post("/api/register-event-test", json={"event_id": event.id}, headers=auth_headers(user))

    assert response.status_code == 429
    assert response.json()["error"] == "Too many requests"
