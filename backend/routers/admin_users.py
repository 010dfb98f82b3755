from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from database import get_db
from errors import NotFound, ValidationFailed
from models import Attendance, Event, Profile, Registration, UserRole
from schemas import ProfileResponse, UserActionRequest
from security import require_admin
from utils import log_admin_action

router = APIRouter()

ROLE_LADDER = [UserRole.STUDENT, UserRole.ORGANIZER, UserRole.ADMIN]
NAMED_ROLE_ACTIONS = {
    "promote_student_to_organizer": (UserRole.STUDENT, "promote"),
    "promote_organizer_to_admin": (UserRole.ORGANIZER, "promote"),
    "demote_organizer_to_student": (UserRole.ORGANIZER, "demote"),
    "demote_admin_to_organizer": (UserRole.ADMIN, "demote"),
}


def _counts_by(db: Session, column) -> dict:
    return {key: int(count) for key, count in db.query(column, func.count()).group_by(column).all()}


@router.get("/admin/users")
def list_users(
    search: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(Profile)
    if role and role != "all":
        try:
            query = query.filter(Profile.role == UserRole(role))
        except ValueError:
            raise ValidationFailed("Invalid role filter")
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Profile.full_name.ilike(pattern), Profile.email.ilike(pattern)))
    users = query.order_by(Profile.created_at.desc(), Profile.id.desc()).all()

    events_created = _counts_by(db, Event.created_by)
    registrations = _counts_by(db, Registration.user_id)
    attendance = _counts_by(db, Attendance.user_id)
    return {
        "users": [
            {
                **ProfileResponse.model_validate(user).model_dump(mode="json"),
                "stats": {
                    "events_created": events_created.get(user.id, 0),
                    "registrations_count": registrations.get(user.id, 0),
                    "attendance_count": attendance.get(user.id, 0),
                },
            }
            for user in users
        ]
    }


def _next_role(current: UserRole, direction: str) -> Optional[UserRole]:
    index = ROLE_LADDER.index(current) + (1 if direction == "promote" else -1)
    if 0 <= index < len(ROLE_LADDER):
        return ROLE_LADDER[index]
    return None


@router.post("/admin/users/{user_id}/actions")
def user_action(
    user_id: int,
    payload: UserActionRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if user_id == admin.id:
        raise ValidationFailed("You cannot change your own account")
    target = db.query(Profile).filter(Profile.id == user_id).first()
    if not target:
        raise NotFound("User not found")

    action = payload.action
    if action in ("disable", "disable_user", "enable", "enable_user"):
        disabled = action.startswith("disable")
        target.is_disabled = disabled
        log_admin_action(db, admin, "USER_DISABLE" if disabled else "USER_ENABLE", {
            "target_user_id": target.id,
            "disabled": disabled,
        })
        return {"success": True, "user_id": target.id, "is_disabled": disabled}

    if action in NAMED_ROLE_ACTIONS:
        expected, direction = NAMED_ROLE_ACTIONS[action]
        if target.role != expected:
            raise ValidationFailed(f"User is not a {expected.value}")
    elif action in ("promote", "demote"):
        direction = action
    else:
        raise ValidationFailed("Unknown user action")

    previous_role = target.role
    new_role = _next_role(previous_role, direction)
    if new_role is None:
        raise ValidationFailed(f"Cannot {direction} a {previous_role.value}")
    target.role = new_role
    log_action = f"ROLE_{direction.upper()}_{previous_role.value.upper()}_TO_{new_role.value.upper()}"
    log_admin_action(db, admin, log_action, {
        "target_user_id": target.id,
        "previous_role": previous_role.value,
        "new_role": new_role.value,
    })
    return {"success": True, "user_id": target.id, "role": new_role.value}
