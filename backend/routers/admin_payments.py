from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from database import get_db
from errors import NotFound, ValidationFailed
from models import (
    Event,
    Payment,
    PaymentStatus,
    Profile,
    Registration,
    RegistrationStatus,
    UserRole,
)
from payments import payments_enabled
from procedures import confirm_registration, generate_manual_entry_code
from schemas import ManualFixRequest
from security import require_admin
from utils import log_admin_action

router = APIRouter()


def is_suspicious(payment: Payment) -> bool:
    registration = payment.registration
    return payment.status == PaymentStatus.SUCCESS and (
        registration is None or registration.status != RegistrationStatus.CONFIRMED
    )


def _payment_row(payment: Payment) -> dict:
    registration = payment.registration
    return {
        "id": payment.id,
        "amount": payment.amount,
        "currency": payment.currency,
        "status": payment.status.value,
        "razorpay_order_id": payment.razorpay_order_id,
        "razorpay_payment_id": payment.razorpay_payment_id,
        "created_at": payment.created_at.isoformat() if payment.created_at else None,
        "event_id": payment.event_id,
        "event_title": payment.event.title if payment.event else "",
        "user_id": payment.user_id,
        "user_name": payment.user.full_name if payment.user else "",
        "user_email": payment.user.email if payment.user else "",
        "registration_id": registration.id if registration else None,
        "registration_status": registration.status.value if registration else None,
        "suspicious": is_suspicious(payment),
    }


def _payments_query(db: Session):
    return db.query(Payment).options(
        joinedload(Payment.registration),
        joinedload(Payment.event),
        joinedload(Payment.user),
    ).order_by(Payment.created_at.desc(), Payment.id.desc())


@router.get("/admin/payments")
def list_payments(
    status: Optional[str] = Query(None),
    event: Optional[int] = Query(None),
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = _payments_query(db)
    if status and status != "all":
        try:
            query = query.filter(Payment.status == PaymentStatus(status))
        except ValueError:
            raise ValidationFailed("Invalid status filter")
    if event is not None:
        query = query.filter(Payment.event_id == event)
    rows = [_payment_row(payment) for payment in query.all()]
    paid_events = db.query(Event.id, Event.title).filter(Event.is_paid.is_(True)).order_by(Event.title.asc()).all()
    return {
        "payments": rows,
        "suspicious_count": sum(1 for row in rows if row["suspicious"]),
        "paid_events": [{"id": event_id, "title": title} for event_id, title in paid_events],
        "payments_enabled": payments_enabled(),
    }


@router.get("/admin/payments/suspicious")
def list_suspicious_payments(
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    payments = _payments_query(db).filter(Payment.status == PaymentStatus.SUCCESS).all()
    return {"payments": [_payment_row(payment) for payment in payments if is_suspicious(payment)]}


def _find_profile_by_email(db: Session, email: str) -> Optional[Profile]:
    return db.query(Profile).filter(func.lower(Profile.email) == email.lower()).first()


def _active_registration(db: Session, user_id: int, event_id: int) -> Optional[Registration]:
    return db.query(Registration).filter(
        Registration.user_id == user_id,
        Registration.event_id == event_id,
        Registration.status != RegistrationStatus.CANCELLED,
    ).first()


def _create_manual_registration(db: Session, user_id: int, event_id: int) -> Registration:
    registration = Registration(
        user_id=user_id,
        event_id=event_id,
        status=RegistrationStatus.CONFIRMED,
        entry_code=generate_manual_entry_code(),
    )
    db.add(registration)
    db.flush()
    return registration


def _fix_payment(db: Session, admin: Profile, payment_id: Optional[int]) -> dict:
    if not payment_id:
        raise ValidationFailed("Payment ID is required")
    payment = db.query(Payment).options(joinedload(Payment.registration)).filter(Payment.id == payment_id).first()
    if not payment:
        raise NotFound("Payment not found")
    if not is_suspicious(payment):
        raise ValidationFailed("Payment does not need a fix")

    registration = _active_registration(db, payment.user_id, payment.event_id)
    if registration and registration.status == RegistrationStatus.CONFIRMED:
        raise ValidationFailed("User already has a confirmed registration for this event")
    if registration:
        confirm_registration(db, registration.id)
    else:
        registration = _create_manual_registration(db, payment.user_id, payment.event_id)
    payment.registration_id = registration.id

    log_admin_action(db, admin, "MANUAL_FIX_PAYMENT_SUCCESS_BUT_REG_MISSING", {
        "payment_id": payment.id,
        "user_id": payment.user_id,
        "event_id": payment.event_id,
        "amount": payment.amount,
        "razorpay_payment_id": payment.razorpay_payment_id,
        "registration_id": registration.id,
        "entry_code": registration.entry_code,
    }, commit=False)
    return {"registration_id": registration.id, "entry_code": registration.entry_code}


def _add_user_manually(db: Session, admin: Profile, email: Optional[str], event_id: Optional[int]) -> dict:
    if not email or not event_id:
        raise ValidationFailed("Email and event are required")
    if not db.query(Event.id).filter(Event.id == event_id).first():
        raise NotFound("Event not found")
    user = _find_profile_by_email(db, email)
    if not user:
        raise NotFound("User not found")
    if _active_registration(db, user.id, event_id):
        raise ValidationFailed("User is already registered for this event")

    registration = _create_manual_registration(db, user.id, event_id)
    log_admin_action(db, admin, "MANUAL_ADD_USER_INTERNET_FAILED", {
        "user_email": email,
        "user_id": user.id,
        "event_id": event_id,
        "registration_id": registration.id,
        "entry_code": registration.entry_code,
    }, commit=False)
    return {"registration_id": registration.id, "entry_code": registration.entry_code}


def _add_offline_registration(
    db: Session,
    admin: Profile,
    email: Optional[str],
    full_name: Optional[str],
    event_id: Optional[int],
) -> dict:
    if not email or not full_name or not event_id:
        raise ValidationFailed("Name, email and event are required")
    if not db.query(Event.id).filter(Event.id == event_id).first():
        raise NotFound("Event not found")
    user = _find_profile_by_email(db, email)
    if not user:
        user = Profile(full_name=full_name, email=email.lower(), role=UserRole.STUDENT)
        db.add(user)
        db.flush()
    if _active_registration(db, user.id, event_id):
        raise ValidationFailed("User is already registered for this event")

    registration = _create_manual_registration(db, user.id, event_id)
    log_admin_action(db, admin, "MANUAL_OFFLINE_REGISTRATION", {
        "user_email": email,
        "user_name": full_name,
        "user_id": user.id,
        "event_id": event_id,
        "registration_id": registration.id,
        "entry_code": registration.entry_code,
    }, commit=False)
    return {"registration_id": registration.id, "entry_code": registration.entry_code}


@router.post("/admin/manual-fixes")
def manual_fix(
    payload: ManualFixRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        if payload.action == "fix_payment_success_but_registration_missing":
            result = _fix_payment(db, admin, payload.payment_id)
        elif payload.action == "add_user_manually":
            result = _add_user_manually(db, admin, payload.email, payload.event_id)
        elif payload.action == "add_offline_registration":
            result = _add_offline_registration(db, admin, payload.email, payload.full_name, payload.event_id)
        else:
            raise ValidationFailed("Unknown manual fix action")
        db.commit()
    except Exception:
        db.rollback()
        raise
    return {"success": True, "action": payload.action, **result}
