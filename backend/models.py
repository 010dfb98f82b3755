from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, Date, Time, Enum as SQLEnum, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base
import enum


class UserRole(enum.Enum):
    STUDENT = "student"
    ORGANIZER = "organizer"
    ADMIN = "admin"


class EventStatus(enum.Enum):
    DRAFT = "draft"
    APPROVED = "approved"
    CANCELLED = "cancelled"


class EventVisibility(enum.Enum):
    PUBLIC = "public"
    HIDDEN = "hidden"


class FormFieldType(enum.Enum):
    TEXT = "text"
    NUMBER = "number"
    SELECT = "select"
    FILE = "file"


class RegistrationStatus(enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class PaymentStatus(enum.Enum):
    CREATED = "CREATED"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=True)
    role = Column(SQLEnum(UserRole), default=UserRole.STUDENT, nullable=False)
    is_disabled = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    event_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    capacity = Column(Integer, nullable=False)
    is_registration_open = Column(Boolean, default=False, nullable=False)
    auto_close_when_full = Column(Boolean, default=True, nullable=False)
    is_paid = Column(Boolean, default=False, nullable=False)
    price = Column(Float, default=0, nullable=False)
    currency = Column(String(8), default="INR", nullable=False)
    status = Column(SQLEnum(EventStatus), default=EventStatus.DRAFT, nullable=False)
    visibility = Column(SQLEnum(EventVisibility), default=EventVisibility.PUBLIC, nullable=False)
    assigned_organizer = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    form_fields = relationship(
        "EventFormField",
        back_populates="event",
        order_by="EventFormField.position",
    )


class EventFormField(Base):
    __tablename__ = "event_form_fields"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    label = Column(String(255), nullable=False)
    field_type = Column(SQLEnum(FormFieldType), default=FormFieldType.TEXT, nullable=False)
    required = Column(Boolean, default=False, nullable=False)
    options = Column(JSON, nullable=True)
    position = Column(Integer, default=0, nullable=False)
    disabled = Column(Boolean, default=False, nullable=False)
    disabled_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    disabled_at = Column(DateTime(timezone=True), nullable=True)
    original_required = Column(Boolean, nullable=True)
    overridden_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    overridden_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    event = relationship("Event", back_populates="form_fields")


class Registration(Base):
    __tablename__ = "registrations"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    status = Column(SQLEnum(RegistrationStatus), default=RegistrationStatus.PENDING, nullable=False)
    entry_code = Column(String(64), unique=True, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    event = relationship("Event")
    user = relationship("Profile")
    responses = relationship("RegistrationResponse", back_populates="registration")
    attendance = relationship("Attendance", back_populates="registration", uselist=False)


class RegistrationResponse(Base):
    __tablename__ = "registration_responses"

    id = Column(Integer, primary_key=True, index=True)
    registration_id = Column(Integer, ForeignKey("registrations.id"), nullable=False, index=True)
    field_id = Column(Integer, ForeignKey("event_form_fields.id"), nullable=False, index=True)
    value = Column(Text, nullable=True)

    registration = relationship("Registration", back_populates="responses")
    field = relationship("EventFormField")


class Attendance(Base):
    __tablename__ = "attendance"

    id = Column(Integer, primary_key=True, index=True)
    registration_id = Column(Integer, ForeignKey("registrations.id"), unique=True, nullable=False)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    checked_in_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    checked_in_at = Column(DateTime(timezone=True), server_default=func.now())

    registration = relationship("Registration", back_populates="attendance")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    registration_id = Column(Integer, ForeignKey("registrations.id"), nullable=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    amount = Column(Float, nullable=False)
    currency = Column(String(8), default="INR", nullable=False)
    status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.CREATED, nullable=False)
    razorpay_order_id = Column(String(255), nullable=True, index=True)
    razorpay_payment_id = Column(String(255), nullable=True)
    razorpay_signature = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    registration = relationship("Registration")
    event = relationship("Event")
    user = relationship("Profile")


class AdminLog(Base):
    __tablename__ = "admin_logs"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(Integer, nullable=True, index=True)
    action = Column(String(255), nullable=False, index=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
