from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, joinedload

from attendance import CHECKIN_ACTIONS, admin_check_in, load_attendance_stats, undo_check_in
from database import get_db
from errors import ValidationFailed
from models import Event, Profile, Registration, RegistrationStatus
from procedures import MANUAL_ENTRY_PREFIX
from schemas import AttendanceActionRequest
from security import require_admin

router = APIRouter()


@router.get("/admin/attendance")
def list_attendance(
    event_id: Optional[int] = Query(None),
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(Registration).options(
        joinedload(Registration.user),
        joinedload(Registration.event),
        joinedload(Registration.attendance),
    ).filter(Registration.status == RegistrationStatus.CONFIRMED)
    if event_id is not None:
        query = query.filter(Registration.event_id == event_id)
    registrations = query.order_by(Registration.created_at.desc(), Registration.id.desc()).all()

    rows = []
    for reg in registrations:
        attendance = reg.attendance
        rows.append({
            "registration_id": reg.id,
            "event_id": reg.event_id,
            "event_title": reg.event.title if reg.event else "",
            "user_id": reg.user_id,
            "user_name": reg.user.full_name if reg.user else "",
            "user_email": reg.user.email if reg.user else "",
            "entry_code": reg.entry_code,
            "is_manual": reg.entry_code.startswith(MANUAL_ENTRY_PREFIX),
            "checked_in": attendance is not None,
            "checked_in_at": attendance.checked_in_at.isoformat() if attendance and attendance.checked_in_at else None,
        })

    stats = load_attendance_stats(db, event_id)
    titles = dict(db.query(Event.id, Event.title).filter(Event.id.in_(list(stats))).all()) if stats else {}
    return {
        "registrations": rows,
        "stats": [
            {"event_id": key, "event_title": titles.get(key, ""), **value.to_dict()}
            for key, value in sorted(stats.items())
        ],
    }


@router.post("/admin/attendance/actions")
def attendance_action(
    payload: AttendanceActionRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if payload.action == "undo":
        try:
            registration_id = int(payload.registration_id)
        except (TypeError, ValueError):
            raise ValidationFailed("Registration ID is required")
        return {"success": True, **undo_check_in(db, admin, registration_id)}
    if payload.action not in CHECKIN_ACTIONS:
        raise ValidationFailed("Unknown attendance action")
    result = admin_check_in(
        db,
        admin,
        payload.action,
        entry_code=payload.entry_code,
        registration_id=payload.registration_id,
    )
    return {"success": True, **result.to_dict()}
