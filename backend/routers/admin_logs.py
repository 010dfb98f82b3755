from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from errors import ValidationFailed
from models import AdminLog, Profile, UserRole
from security import require_admin
from time_utils import now_tz

router = APIRouter()


def range_start(date_filter: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    if not date_filter or date_filter == "all":
        return None
    now = now or now_tz()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if date_filter == "today":
        return midnight
    if date_filter == "week":
        return now - timedelta(days=7)
    if date_filter == "month":
        return midnight.replace(day=1)
    raise ValidationFailed("Invalid date filter")


@router.get("/admin/logs")
def list_admin_logs(
    admin_id: Optional[int] = Query(None, alias="admin"),
    action: Optional[str] = Query(None),
    date: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(AdminLog)
    if admin_id is not None:
        query = query.filter(AdminLog.admin_id == admin_id)
    if action and action != "all":
        query = query.filter(AdminLog.action == action)
    start = range_start(date)
    if start is not None:
        query = query.filter(AdminLog.created_at >= start.astimezone(timezone.utc))
    logs = query.order_by(AdminLog.created_at.desc(), AdminLog.id.desc()).limit(limit).all()

    admins = db.query(Profile).filter(Profile.role == UserRole.ADMIN).order_by(Profile.full_name.asc()).all()
    names = {row.id: row.full_name for row in admins}
    actions = [row[0] for row in db.query(AdminLog.action).distinct().order_by(AdminLog.action.asc()).all()]
    return {
        "logs": [
            {
                "id": log.id,
                "admin_id": log.admin_id,
                "admin_name": names.get(log.admin_id, "Unknown"),
                "action": log.action,
                "details": log.details or {},
                "created_at": log.created_at.isoformat() if log.created_at else None,
            }
            for log in logs
        ],
        "admins": [{"id": row.id, "full_name": row.full_name} for row in admins],
        "actions": actions,
    }
