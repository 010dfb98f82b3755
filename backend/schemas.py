from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional, List, Any
from enum import Enum
from datetime import datetime, date, time


class UserRoleEnum(str, Enum):
    STUDENT = "student"
    ORGANIZER = "organizer"
    ADMIN = "admin"


class EventStatusEnum(str, Enum):
    DRAFT = "draft"
    APPROVED = "approved"
    CANCELLED = "cancelled"


class EventVisibilityEnum(str, Enum):
    PUBLIC = "public"
    HIDDEN = "hidden"


class FormFieldTypeEnum(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    SELECT = "select"
    FILE = "file"


class RegistrationStatusEnum(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


def _enum_value(value):
    return getattr(value, "value", value)


def _optional_text(value):
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class SignupRequest(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8)

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v):
        if not v.strip():
            raise ValueError("Full name is required")
        return v.strip()


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class ProfileResponse(BaseModel):
    id: int
    full_name: str
    email: str
    role: UserRoleEnum
    is_disabled: bool = False
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("role", mode="before")
    @classmethod
    def unwrap_role(cls, v):
        return _enum_value(v)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: ProfileResponse


class AnswerIn(BaseModel):
    field_id: Any = None
    value: Optional[str] = None

    @field_validator("value", mode="before")
    @classmethod
    def stringify_value(cls, v):
        if v is None:
            return None
        return str(v)


class RegisterEventRequest(BaseModel):
    event_id: Optional[int] = None
    answers: List[AnswerIn] = Field(default_factory=list)


class CheckInRequest(BaseModel):
    registration_id: Optional[Any] = None
    entry_code: Optional[str] = None


class FormFieldIn(BaseModel):
    id: Optional[int] = None
    label: str = Field(..., min_length=1, max_length=255)
    field_type: FormFieldTypeEnum = FormFieldTypeEnum.TEXT
    required: bool = False
    options: Optional[List[str]] = None
    disabled: bool = False
    original_required: Optional[bool] = None

    @field_validator("id", mode="before")
    @classmethod
    def drop_client_ids(cls, v):
        # draft-only fields carry client-generated string ids
        if isinstance(v, str) and not v.isdigit():
            return None
        return v

    @field_validator("options", mode="before")
    @classmethod
    def clean_options(cls, v):
        if v is None:
            return None
        cleaned = [str(item).strip() for item in v if str(item).strip()]
        return cleaned or None


class EventIn(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    event_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    capacity: Optional[int] = None
    is_registration_open: Optional[bool] = None
    registration_status: Optional[str] = None
    auto_close_when_full: Optional[bool] = None
    event_type: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    status: Optional[EventStatusEnum] = None
    save_mode: Optional[str] = None
    visibility: Optional[EventVisibilityEnum] = None
    assigned_organizer: Optional[int] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("title", "description", "location", "event_date", "start_time", "end_time", mode="before")
    @classmethod
    def normalize_text(cls, v):
        return _optional_text(v)


class CreateEventRequest(BaseModel):
    event: Optional[EventIn] = None
    form_fields: List[FormFieldIn] = Field(default_factory=list)


class UpdateEventRequest(BaseModel):
    event_id: Optional[int] = Field(default=None, alias="eventId")
    event: Optional[EventIn] = None
    form_fields: List[FormFieldIn] = Field(default_factory=list)
    allow_capacity_override: bool = False

    model_config = ConfigDict(populate_by_name=True)


class CloneEventRequest(BaseModel):
    event_id: Optional[int] = Field(default=None, alias="eventId")
    title: Optional[str] = None
    event_date: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class EventActionRequest(BaseModel):
    action: str
    title: Optional[str] = None
    event_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    location: Optional[str] = None
    capacity: Optional[int] = None
    user_email: Optional[str] = Field(default=None, alias="userEmail")

    model_config = ConfigDict(populate_by_name=True)


class AttendanceActionRequest(BaseModel):
    action: str
    entry_code: Optional[str] = None
    registration_id: Optional[Any] = None


class RegistrationActionRequest(BaseModel):
    action: str


class ManualFixRequest(BaseModel):
    action: str
    payment_id: Optional[int] = None
    email: Optional[str] = None
    event_id: Optional[int] = None
    full_name: Optional[str] = None

    @field_validator("email", "full_name", mode="before")
    @classmethod
    def normalize_text(cls, v):
        return _optional_text(v)


class UserActionRequest(BaseModel):
    action: str


class FormControlActionRequest(BaseModel):
    action: str


class FormFieldResponse(BaseModel):
    id: int
    event_id: int
    label: str
    field_type: FormFieldTypeEnum
    required: bool
    options: Optional[List[str]] = None
    position: int = 0
    disabled: bool = False
    disabled_by: Optional[int] = None
    disabled_at: Optional[datetime] = None
    original_required: Optional[bool] = None
    overridden_by: Optional[int] = None
    overridden_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("field_type", mode="before")
    @classmethod
    def unwrap_type(cls, v):
        return _enum_value(v)


class EventResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    event_date: date
    start_time: time
    end_time: time
    capacity: int
    is_registration_open: bool
    auto_close_when_full: bool = True
    is_paid: bool
    price: float
    currency: str = "INR"
    status: EventStatusEnum
    visibility: EventVisibilityEnum
    assigned_organizer: Optional[int] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("status", "visibility", mode="before")
    @classmethod
    def unwrap_enums(cls, v):
        return _enum_value(v)
