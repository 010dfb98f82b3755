import io
import json

import qrcode

from models import RegistrationStatus
from time_utils import format_time


STATUS_LABELS = {
    RegistrationStatus.CONFIRMED: "Confirmed",
    RegistrationStatus.PENDING: "Payment processing",
}


def ticket_payload(registration_id) -> str:
    return json.dumps({"registration_id": registration_id})


def ticket_status_label(status) -> str:
    if not isinstance(status, RegistrationStatus):
        try:
            status = RegistrationStatus(str(status))
        except ValueError:
            return "Cancelled"
    return STATUS_LABELS.get(status, "Cancelled")


def render_ticket_qr_png(payload: str, box_size: int = 10, border: int = 4) -> bytes:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def build_ticket(registration) -> dict:
    event = registration.event
    user = registration.user
    return {
        "registration_id": registration.id,
        "entry_code": registration.entry_code,
        "status": registration.status.value,
        "status_label": ticket_status_label(registration.status),
        "qr_payload": ticket_payload(registration.id),
        "checked_in": registration.attendance is not None,
        "event": {
            "id": event.id,
            "title": event.title,
            "location": event.location,
            "event_date": event.event_date.isoformat() if event.event_date else None,
            "start_time": format_time(event.start_time),
            "end_time": format_time(event.end_time),
        },
        "attendee": {
            "id": user.id,
            "full_name": user.full_name,
            "email": user.email,
        },
    }
