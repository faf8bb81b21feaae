from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class ServicePlan(str, Enum):
    """Subscription tiers"""

    PAY_AS_YOU_GO = "pay-as-you-go"
    COMPLETE_PROGRAM = "complete-program"


class AppointmentType(str, Enum):
    INITIAL = "Initial"
    FOLLOW_UP = "Follow-up"


class AppointmentStatus(str, Enum):
    """Appointment lifecycle statuses"""

    PENDING = "pending"  # Requested by client, awaiting admin confirmation
    CONFIRMED = "confirmed"
    RESCHEDULE_REQUESTED = "reschedule_requested"
    DONE = "done"
    NO_SHOW = "no-show"
    CANCELLED = "cancelled"


# Statuses that hold a slot
ACTIVE_APPOINTMENT_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)

TERMINAL_APPOINTMENT_STATUSES = (
    AppointmentStatus.DONE,
    AppointmentStatus.NO_SHOW,
    AppointmentStatus.CANCELLED,
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    firebase_uid = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), index=True, nullable=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), default="client", nullable=False)  # client, admin

    # Subscription fragment (owned by SubscriptionService only)
    service_plan = Column(String(50), default=ServicePlan.PAY_AS_YOU_GO.value, nullable=False)
    program_start_date = Column(DateTime, nullable=True)
    program_end_date = Column(DateTime, nullable=True)
    planned_downgrade = Column(Boolean, default=False, nullable=False)
    downgrade_effective_date = Column(DateTime, nullable=True)
    # Optimistic concurrency token for subscription writes
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    appointments = relationship("Appointment", back_populates="user")

    __mapper_args__ = {"version_id_col": version}


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(String(10), nullable=False)  # YYYY-MM-DD
    timeslot = Column(String(5), nullable=False)  # HH:MM
    type = Column(String(20), nullable=False)  # Initial, Follow-up
    status = Column(String(30), default=AppointmentStatus.PENDING.value, nullable=False)
    email = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)

    # Set when the client asks to move a confirmed session
    reschedule_requested_at = Column(DateTime, nullable=True)
    late_reschedule = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="appointments")
    invoices = relationship("Invoice", back_populates="appointment")

    __table_args__ = (
        # At most one slot-holding appointment per (date, timeslot)
        Index(
            "uq_appointments_active_slot",
            "date",
            "timeslot",
            unique=True,
            sqlite_where=text("status IN ('pending', 'confirmed')"),
            postgresql_where=text("status IN ('pending', 'confirmed')"),
        ),
        Index("ix_appointments_date_status", "date", "status"),
    )


class BlockedSlot(Base):
    """Admin-defined unavailable slot"""

    __tablename__ = "blocked_slots"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(String(10), nullable=False, index=True)
    timeslot = Column(String(5), nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (UniqueConstraint("date", "timeslot", name="uq_blocked_slots_date_timeslot"),)


class NotificationQueueEntry(Base):
    """Outbound notification awaiting delivery by the external notifier"""

    __tablename__ = "notification_queue"

    id = Column(Integer, primary_key=True, index=True)
    to = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False)  # appointment_confirmed, invoice_created, ...
    data = Column(JSON, default=dict)
    status = Column(String(20), default="pending", nullable=False)  # pending, sent, failed
    created_at = Column(DateTime, server_default=func.now())
