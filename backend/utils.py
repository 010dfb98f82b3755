import logging
import os
import time
from pathlib import Path
from typing import Optional
from fastapi import UploadFile
from sqlalchemy.orm import Session
from errors import InternalError, ValidationFailed
from models import AdminLog, Profile
import boto3
from botocore.config import Config

logger = logging.getLogger(__name__)

AWS_REGION = os.environ.get("AWS_REGION")
S3_BUCKET_NAME = os.environ.get("S3_BUCKET_NAME", "registration-files")
S3_ACCESS_KEY = os.environ.get("S3_ACCESS_KEY") or os.environ.get("AWS_ACCESS_KEY_ID")
S3_SECRET_KEY = os.environ.get("S3_SECRET_KEY") or os.environ.get("AWS_SECRET_ACCESS_KEY")
MAX_REGISTRATION_FILE_BYTES = int(os.environ.get("MAX_REGISTRATION_FILE_BYTES", 10 * 1024 * 1024))

S3_CLIENT = None
if AWS_REGION and S3_BUCKET_NAME and S3_ACCESS_KEY and S3_SECRET_KEY:
    s3_config = Config(signature_version="s3v4", s3={"addressing_style": "virtual"})
    S3_CLIENT = boto3.client(
        "s3",
        region_name=AWS_REGION,
        aws_access_key_id=S3_ACCESS_KEY,
        aws_secret_access_key=S3_SECRET_KEY,
        endpoint_url=f"https://s3.{AWS_REGION}.amazonaws.com",
        config=s3_config,
    )


def log_admin_action(db: Session, admin: Optional[Profile], action: str, details: Optional[dict] = None, commit: bool = True):
    db.add(AdminLog(
        admin_id=admin.id if admin else None,
        action=action,
        details=details or {},
    ))
    if commit:
        db.commit()


def _build_s3_url(key: str) -> str:
    if not S3_BUCKET_NAME or not AWS_REGION:
        raise RuntimeError("S3 configuration missing")
    return f"https://{S3_BUCKET_NAME}.s3.{AWS_REGION}.amazonaws.com/{key}"


def registration_file_key(event_id: int, field_id: int, filename: str, timestamp_ms: Optional[int] = None) -> str:
    safe_name = Path(filename or "").name.strip()
    if not safe_name:
        raise ValidationFailed("Missing filename")
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{event_id}/{field_id}/{timestamp_ms}-{safe_name}"


def upload_registration_file(event_id: int, field_id: int, file: UploadFile) -> str:
    if not S3_CLIENT or not S3_BUCKET_NAME or not AWS_REGION:
        raise InternalError("File storage is not configured")
    data = file.file.read()
    if not data:
        raise ValidationFailed("Uploaded file is empty")
    if len(data) > MAX_REGISTRATION_FILE_BYTES:
        raise ValidationFailed("Uploaded file is too large")

    key = registration_file_key(event_id, field_id, file.filename or "")
    try:
        S3_CLIENT.put_object(
            Bucket=S3_BUCKET_NAME,
            Key=key,
            Body=data,
            ContentType=file.content_type or "application/octet-stream",
        )
    except Exception as exc:
        logger.error("Registration file upload failed for %s: %s", key, exc)
        raise InternalError("Upload failed") from exc

    return _build_s3_url(key)
