import csv
import io
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Dict, List, Optional

from openpyxl import Workbook
from sqlalchemy.orm import Session, joinedload

from errors import ValidationFailed
from models import Attendance, Payment, Profile, Registration, RegistrationResponse
from procedures import MANUAL_ENTRY_PREFIX


@dataclass
class ExportTable:
    export_type: str
    filename: str
    headers: List[str]
    rows: List[List[object]]

    @property
    def record_count(self) -> int:
        return len(self.rows)


def _text(value) -> str:
    if value is None:
        return ""
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


def _date(value: Optional[date]) -> str:
    return value.isoformat() if value else ""


def _datetime(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else ""


def to_csv(headers: List[str], rows: List[List[object]]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows([[_text(cell) for cell in row] for row in rows])
    return output.getvalue()


def to_xlsx(headers: List[str], rows: List[List[object]]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.append(headers)
    for row in rows:
        ws.append([_text(cell) for cell in row])
    out = io.BytesIO()
    wb.save(out)
    out.seek(0)
    return out.read()


def _registration_query(db: Session):
    return db.query(Registration).options(
        joinedload(Registration.user),
        joinedload(Registration.event),
    ).order_by(Registration.created_at.desc(), Registration.id.desc())


def export_registrations(db: Session):
    headers = [
        "Registration ID", "User Name", "User Email", "Event Title", "Event Date",
        "Event Price", "Status", "Entry Code", "Created At",
    ]
    rows = []
    for reg in _registration_query(db).all():
        rows.append([
            reg.id,
            reg.user.full_name if reg.user else "",
            reg.user.email if reg.user else "",
            reg.event.title if reg.event else "",
            _date(reg.event.event_date) if reg.event else "",
            (reg.event.price or 0) if reg.event else 0,
            reg.status,
            reg.entry_code,
            _datetime(reg.created_at),
        ])
    return headers, rows


def export_manual_registrations(db: Session):
    headers = [
        "Registration ID", "User Name", "User Email", "Event Title", "Event Date",
        "Status", "Entry Code", "Created At",
    ]
    rows = []
    query = _registration_query(db).filter(Registration.entry_code.like(f"{MANUAL_ENTRY_PREFIX}%"))
    for reg in query.all():
        rows.append([
            reg.id,
            reg.user.full_name if reg.user else "",
            reg.user.email if reg.user else "",
            reg.event.title if reg.event else "",
            _date(reg.event.event_date) if reg.event else "",
            reg.status,
            reg.entry_code,
            _datetime(reg.created_at),
        ])
    return headers, rows


def export_attendance(db: Session):
    headers = [
        "Attendance ID", "User Name", "User Email", "Event Title", "Event Date",
        "Entry Code", "Checked In At",
    ]
    rows = []
    query = db.query(Attendance).options(
        joinedload(Attendance.registration).joinedload(Registration.user),
        joinedload(Attendance.registration).joinedload(Registration.event),
    ).order_by(Attendance.checked_in_at.desc(), Attendance.id.desc())
    for att in query.all():
        reg = att.registration
        user = reg.user if reg else None
        event = reg.event if reg else None
        rows.append([
            att.id,
            user.full_name if user else "",
            user.email if user else "",
            event.title if event else "",
            _date(event.event_date) if event else "",
            reg.entry_code if reg else "",
            _datetime(att.checked_in_at),
        ])
    return headers, rows


def export_payments(db: Session):
    headers = [
        "Payment ID", "User Name", "User Email", "Event Title", "Event Date", "Amount",
        "Status", "Razorpay Order ID", "Razorpay Payment ID", "Created At",
    ]
    rows = []
    query = db.query(Payment).options(
        joinedload(Payment.user),
        joinedload(Payment.event),
    ).order_by(Payment.created_at.desc(), Payment.id.desc())
    for payment in query.all():
        rows.append([
            payment.id,
            payment.user.full_name if payment.user else "",
            payment.user.email if payment.user else "",
            payment.event.title if payment.event else "",
            _date(payment.event.event_date) if payment.event else "",
            payment.amount,
            payment.status,
            payment.razorpay_order_id or "",
            payment.razorpay_payment_id or "",
            _datetime(payment.created_at),
        ])
    return headers, rows


def export_users(db: Session):
    headers = ["User ID", "Full Name", "Email", "Role", "Created At"]
    rows = [
        [user.id, user.full_name or "", user.email, user.role, _datetime(user.created_at)]
        for user in db.query(Profile).order_by(Profile.created_at.desc(), Profile.id.desc()).all()
    ]
    return headers, rows


def export_event_detailed(db: Session, event_id: int):
    registrations = _registration_query(db).options(
        joinedload(Registration.responses).joinedload(RegistrationResponse.field),
    ).filter(Registration.event_id == event_id).all()

    labels = sorted({
        resp.field.label
        for reg in registrations
        for resp in reg.responses
        if resp.field and resp.field.label
    })
    headers = [
        "Registration ID", "User Name", "User Email", "Event ID", "Event Title", "Event Date",
        "Event Price", "Event Is Paid", "Status", "Entry Code", "Created At",
    ] + labels

    rows = []
    for reg in registrations:
        by_label: Dict[str, str] = {}
        for resp in sorted(reg.responses, key=lambda item: item.id):
            if not resp.field or not resp.field.label:
                continue
            value = resp.value or ""
            label = resp.field.label
            by_label[label] = f"{by_label[label]}; {value}" if by_label.get(label) else value
        event = reg.event
        rows.append([
            reg.id,
            reg.user.full_name if reg.user else "",
            reg.user.email if reg.user else "",
            event.id if event else reg.event_id,
            event.title if event else "",
            _date(event.event_date) if event else "",
            event.price if event else "",
            ("true" if event.is_paid else "false") if event else "",
            reg.status,
            reg.entry_code,
            _datetime(reg.created_at),
        ] + [by_label.get(label, "") for label in labels])
    return headers, rows


_SIMPLE_EXPORTS: Dict[str, Callable] = {
    "registrations": export_registrations,
    "attendance": export_attendance,
    "manual_registrations": export_manual_registrations,
    "payments": export_payments,
    "users": export_users,
}

_FILENAME_STEMS = {
    "registrations": "registrations",
    "attendance": "attendance",
    "manual_registrations": "manual-registrations",
    "payments": "payments",
    "users": "users",
}

EXPORT_TYPES = tuple(_SIMPLE_EXPORTS) + ("event_detailed",)


def build_export(db: Session, export_type: str, event_id: Optional[int], today: date, extension: str = "csv") -> ExportTable:
    stamp = today.isoformat()
    if export_type == "event_detailed":
        if not event_id:
            raise ValidationFailed("Missing eventId")
        headers, rows = export_event_detailed(db, event_id)
        filename = f"event-{event_id}-detailed-{stamp}.{extension}"
    elif export_type in _SIMPLE_EXPORTS:
        headers, rows = _SIMPLE_EXPORTS[export_type](db)
        filename = f"{_FILENAME_STEMS[export_type]}-{stamp}.{extension}"
    else:
        raise ValidationFailed("Unknown exportType")
    return ExportTable(export_type=export_type, filename=filename, headers=headers, rows=rows)
