import io
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from database import get_db
from errors import ValidationFailed
from exports import build_export, to_csv, to_xlsx
from models import Profile
from security import require_admin
from time_utils import today_tz
from utils import log_admin_action

router = APIRouter()
logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.post("/admin/exports")
def export_data(
    exportType: str = Form(...),
    eventId: Optional[int] = Form(None),
    format: str = Form("csv"),
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if format not in ("csv", "xlsx"):
        raise ValidationFailed("Unknown format")
    table = build_export(db, exportType, eventId, today_tz(), extension=format)
    log_admin_action(db, admin, "EXPORT_DATA", {
        "export_type": table.export_type,
        "filename": table.filename,
        "record_count": table.record_count,
    })
    logger.info("Admin %s exported %s (%s rows)", admin.id, table.filename, table.record_count)

    headers = {"Content-Disposition": f'attachment; filename="{table.filename}"'}
    if format == "xlsx":
        return StreamingResponse(io.BytesIO(to_xlsx(table.headers, table.rows)), media_type=XLSX_MEDIA_TYPE, headers=headers)
    return StreamingResponse(
        iter([to_csv(table.headers, table.rows)]),
        media_type="text/csv; charset=utf-8",
        headers=headers,
    )
