from __future__ import annotations

import logging
import os
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from auth import get_password_hash
from database import Base, SessionLocal, engine
from models import AdminLog, Profile, UserRole
from time_utils import now_tz

logger = logging.getLogger(__name__)

BOOTSTRAP_MARKER_ACTION = "SYSTEM_BOOTSTRAP"


def ensure_tables() -> None:
    Base.metadata.create_all(bind=engine)


def has_bootstrap_marker(db: Session) -> bool:
    return db.query(AdminLog.id).filter(AdminLog.action == BOOTSTRAP_MARKER_ACTION).first() is not None


def set_bootstrap_marker(db: Session, admin: Optional[Profile]) -> None:
    db.add(AdminLog(
        admin_id=admin.id if admin else None,
        action=BOOTSTRAP_MARKER_ACTION,
        details={"timestamp": now_tz().isoformat()},
    ))
    db.commit()


def ensure_default_admin(db: Session, email: Optional[str], password: Optional[str], full_name: str = "Administrator") -> Optional[Profile]:
    """Creates the first admin profile, or promotes an existing account with
    the same e-mail. Does nothing when no credentials are configured."""
    if not email or not password:
        logger.info("DEFAULT_ADMIN_EMAIL / DEFAULT_ADMIN_PASSWORD not set; skipping admin seed.")
        return None
    email = email.strip().lower()
    profile = db.query(Profile).filter(func.lower(Profile.email) == email).first()
    if profile:
        if profile.role != UserRole.ADMIN:
            profile.role = UserRole.ADMIN
            db.commit()
            logger.info("Promoted existing profile %s to admin", email)
        return profile

    profile = Profile(
        full_name=full_name,
        email=email,
        hashed_password=get_password_hash(password),
        role=UserRole.ADMIN,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    logger.info("Default admin created: %s", email)
    return profile


def run_bootstrap(force: bool = False, email: Optional[str] = None, password: Optional[str] = None) -> bool:
    ensure_tables()
    db = SessionLocal()
    try:
        if has_bootstrap_marker(db) and not force:
            return False
        admin = ensure_default_admin(
            db,
            email or os.environ.get("DEFAULT_ADMIN_EMAIL"),
            password or os.environ.get("DEFAULT_ADMIN_PASSWORD"),
        )
        set_bootstrap_marker(db, admin)
        return True
    finally:
        db.close()
