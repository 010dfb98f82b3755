from types import SimpleNamespace

from attendance import AttendanceStats, compute_attendance_stats
from conftest import auth_headers, make_event, make_profile
from models import AdminLog, Attendance, Registration, RegistrationStatus, UserRole


def _reg(reg_id, event_id, status="CONFIRMED"):
    return SimpleNamespace(id=reg_id, event_id=event_id, status=status)


def test_stats_count_confirmed_only():
    registrations = [
        _reg(1, 10),
        _reg(2, 10),
        _reg(3, 10),
        _reg(4, 10, "PENDING"),
        _reg(5, 20),
    ]
    attendance = [SimpleNamespace(registration_id=1), SimpleNamespace(registration_id=4)]

    stats = compute_attendance_stats(registrations, attendance)

    assert stats[10].to_dict() == {"total": 3, "present": 1, "absent": 2, "rate": 33}
    assert stats[20].rate == 0
    assert AttendanceStats().rate == 0


def _setup(db, code="EVT-CHECKIN001"):
    event = make_event(db)
    student = make_profile(db, "student@uni.edu")
    registration = Registration(event_id=event.id, user_id=student.id, status=RegistrationStatus.CONFIRMED, entry_code=code)
    db.add(registration)
    db.commit()
    return event, registration


def test_check_in_endpoint_requires_staff(client, db):
    _, registration = _setup(db)
    student = db.query(Registration).one().user

    response = client.post("/api/check-in", json={"entry_code": registration.entry_code}, headers=auth_headers(student))

    assert response.status_code == 403


def test_check_in_endpoint_is_idempotent(client, db):
    _, registration = _setup(db)
    organizer = make_profile(db, "org@uni.edu", role=UserRole.ORGANIZER)
    headers = auth_headers(organizer)

    first = client.post("/api/check-in", json={"entry_code": "evt-checkin001"}, headers=headers)
    second = client.post("/api/check-in", json={"registration_id": registration.id}, headers=headers)

    assert first.status_code == 200 and first.json()["already_checked_in"] is False
    assert second.json()["already_checked_in"] is True
    assert first.json()["attendance_id"] == second.json()["attendance_id"]
    assert db.query(Attendance).count() == 1


def test_check_in_endpoint_rejects_both_identifiers(client, db):
    _, registration = _setup(db)
    organizer = make_profile(db, "org@uni.edu", role=UserRole.ORGANIZER)

    response = client.post(
        "/api/check-in",
        json={"entry_code": registration.entry_code, "registration_id": registration.id},
        headers=auth_headers(organizer),
    )

    assert response.status_code == 400


def test_admin_check_in_logs_once_and_undo(client, db):
    event, registration = _setup(db, code="MANUAL-1700000000000-ABCDEFGHI")
    admin = make_profile(db, "admin@uni.edu", role=UserRole.ADMIN)
    headers = auth_headers(admin)

    for _ in range(2):
        response = client.post(
            "/api/admin/attendance/actions",
            json={"action": "checkin_by_code", "entry_code": "MANUAL-1700000000000-ABCDEFGHI"},
            headers=headers,
        )
        assert response.status_code == 200

    logs = db.query(AdminLog).filter(AdminLog.action == "ATTENDANCE_CHECKIN").all()
    assert len(logs) == 1
    assert logs[0].details["method"] == "checkin_by_code"

    listing = client.get(f"/api/admin/attendance?event_id={event.id}", headers=headers).json()
    assert listing["registrations"][0]["checked_in"] is True
    assert listing["registrations"][0]["is_manual"] is True
    assert listing["stats"][0]["rate"] == 100

    undo = client.post("/api/admin/attendance/actions", json={"action": "undo", "registration_id": registration.id}, headers=headers)
    assert undo.status_code == 200
    assert db.query(Attendance).count() == 0
    assert db.query(AdminLog).filter(AdminLog.action == "ATTENDANCE_UNDO").count() == 1

    again = client.post("/api/admin/attendance/actions", json={"action": "undo", "registration_id": registration.id}, headers=headers)
    assert again.status_code == 404


def test_check_in_endpoint_is_rate_limited(client, db, limiter):
    _, registration = _setup(db)
    organizer = make_profile(db, "org@uni.edu", role=UserRole.ORGANIZER)
    headers = auth_headers(organizer)
    limiter.max_requests = 1

    missing = client.post("/api/check-in", json={"entry_code": "EVT-NOSUCHCODE"}, headers=headers)
    limited = client.post("/api/check-in", json={"entry_code": registration.entry_code}, headers=headers)

    assert missing.status_code == 400
    assert limited.status_code == 429
    assert limited.json() == {"success": False, "error": "Too many requests"}
    assert db.query(Attendance).count() == 0
