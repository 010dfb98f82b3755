import logging
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, Optional

from sqlalchemy.orm import Session

from errors import NotFound, ValidationFailed
from models import Attendance, Profile, Registration, RegistrationStatus
from procedures import CheckInResult, check_in
from utils import log_admin_action

logger = logging.getLogger(__name__)

CHECKIN_ACTIONS = {"checkin_by_code", "checkin_by_id", "checkin"}


@dataclass
class AttendanceStats:
    total: int = 0
    present: int = 0

    @property
    def absent(self) -> int:
        return self.total - self.present

    @property
    def rate(self) -> int:
        if self.total <= 0:
            return 0
        return round(self.present / self.total * 100)

    def to_dict(self) -> dict:
        data = asdict(self)
        data.update({"absent": self.absent, "rate": self.rate})
        return data


def _status_of(registration) -> str:
    status = registration.status
    return getattr(status, "value", status)


def compute_attendance_stats(registrations: Iterable, attendance_rows: Iterable) -> Dict[int, AttendanceStats]:
    attended = {row.registration_id: row for row in attendance_rows}
    stats: Dict[int, AttendanceStats] = {}
    for registration in registrations:
        if _status_of(registration) != RegistrationStatus.CONFIRMED.value:
            continue
        bucket = stats.setdefault(registration.event_id, AttendanceStats())
        bucket.total += 1
        if registration.id in attended:
            bucket.present += 1
    return stats


def load_attendance_stats(db: Session, event_id: Optional[int] = None) -> Dict[int, AttendanceStats]:
    reg_query = db.query(Registration).filter(Registration.status == RegistrationStatus.CONFIRMED)
    att_query = db.query(Attendance)
    if event_id is not None:
        reg_query = reg_query.filter(Registration.event_id == event_id)
        att_query = att_query.filter(Attendance.event_id == event_id)
    return compute_attendance_stats(reg_query.all(), att_query.all())


def admin_check_in(
    db: Session,
    admin: Profile,
    action: str,
    entry_code: Optional[str] = None,
    registration_id=None,
) -> CheckInResult:
    if action not in CHECKIN_ACTIONS:
        raise ValidationFailed("Unknown attendance action")
    if action == "checkin_by_code":
        registration_id = None
        if not (entry_code or "").strip():
            raise ValidationFailed("Entry code is required")
    elif action == "checkin_by_id":
        entry_code = None
        if not registration_id:
            raise ValidationFailed("Registration ID is required")
    elif entry_code and registration_id:
        entry_code = None

    try:
        result = check_in(db, registration_id=registration_id, entry_code=entry_code, checked_in_by=admin.id)
        if not result.already_checked_in:
            log_admin_action(db, admin, "ATTENDANCE_CHECKIN", {
                "registration_id": result.registration_id,
                "event_id": result.event_id,
                "user_id": result.user_id,
                "entry_code": result.entry_code,
                "method": action,
            }, commit=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return result


def undo_check_in(db: Session, admin: Profile, registration_id: int) -> dict:
    row = db.query(Attendance).filter(Attendance.registration_id == registration_id).first()
    if not row:
        raise NotFound("No check-in found for this registration")
    details = {
        "registration_id": row.registration_id,
        "event_id": row.event_id,
        "user_id": row.user_id,
        "attendance_id": row.id,
    }
    db.delete(row)
    log_admin_action(db, admin, "ATTENDANCE_UNDO", details, commit=False)
    db.commit()
    logger.info("Admin %s undid check-in for registration %s", admin.id, registration_id)
    return details
