from datetime import timezone

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from database import get_db
from event_service import serialize_event, usage_by_event, utilization
from models import Attendance, Event, EventStatus, Profile, Registration, RegistrationStatus
from payments import payments_enabled
from security import require_admin
from time_utils import now_tz, today_tz

router = APIRouter()


def _status_counts(db: Session, column, enum_cls) -> dict:
    counts = {member.value: 0 for member in enum_cls}
    for status, count in db.query(column, func.count()).group_by(column).all():
        counts[status.value] = int(count)
    return counts


@router.get("/admin/dashboard")
def admin_dashboard(
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    midnight = now_tz().replace(hour=0, minute=0, second=0, microsecond=0)
    attendance_today = db.query(Attendance).filter(
        Attendance.checked_in_at >= midnight.astimezone(timezone.utc)
    ).count()

    upcoming = db.query(Event).filter(
        Event.status == EventStatus.APPROVED,
        Event.event_date >= today_tz(),
    ).order_by(Event.event_date.asc(), Event.start_time.asc()).limit(5).all()

    usage = usage_by_event(db)
    total_capacity = 0
    total_used = 0
    for event_id, capacity in db.query(Event.id, Event.capacity).filter(Event.status == EventStatus.APPROVED).all():
        counts = usage.get(event_id, {"pending": 0, "confirmed": 0})
        total_capacity += capacity
        total_used += counts["pending"] + counts["confirmed"]

    paid_events = db.query(Event).filter(Event.is_paid.is_(True)).count()
    total_events = db.query(Event).count()
    return {
        "users": db.query(Profile).count(),
        "events_by_status": _status_counts(db, Event.status, EventStatus),
        "registrations_by_status": _status_counts(db, Registration.status, RegistrationStatus),
        "upcoming_events": [serialize_event(event) for event in upcoming],
        "attendance_today": attendance_today,
        "capacity": {
            "total": total_capacity,
            "used": total_used,
            "utilization": utilization(total_used, total_capacity),
        },
        "paid_events": paid_events,
        "free_events": total_events - paid_events,
        "payments_enabled": payments_enabled(),
    }
