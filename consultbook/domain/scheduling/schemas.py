"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import AppointmentStatus, AppointmentType
from ...shared.validators import validate_email, validate_session_date, validate_timeslot


class SlotRequest(BaseModel):
    date: str
    timeslot: str

    @field_validator("date")
    @classmethod
    def check_date(cls, v: str) -> str:
        return validate_session_date(v)

    @field_validator("timeslot")
    @classmethod
    def check_timeslot(cls, v: str) -> str:
        return validate_timeslot(v)


class SlotCheckResponse(BaseModel):
    available: bool
    reason: str  # booked | blocked | ok


class DaySlot(BaseModel):
    timeslot: str
    available: bool
    reason: str


class BlockSlotsRequest(BaseModel):
    date: str
    timeslots: list[str]
    reason: Optional[str] = None

    @field_validator("date")
    @classmethod
    def check_date(cls, v: str) -> str:
        return validate_session_date(v)

    @field_validator("timeslots")
    @classmethod
    def check_timeslots(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("at least one timeslot is required")
        return [validate_timeslot(slot) for slot in v]


class BlockedSlotResponse(BaseModel):
    id: int
    date: str
    timeslot: str
    reason: Optional[str] = None

    model_config = {"from_attributes": True}


class AppointmentCreate(SlotRequest):
    """Client booking request"""

    type: AppointmentType
    email: str
    name: str

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        return validate_email(v)

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()


class TransitionRequest(BaseModel):
    """Admin status change; date/timeslot only when approving a reschedule"""

    newStatus: AppointmentStatus
    date: Optional[str] = None
    timeslot: Optional[str] = None

    @field_validator("date")
    @classmethod
    def check_date(cls, v: Optional[str]) -> Optional[str]:
        return validate_session_date(v) if v is not None else v

    @field_validator("timeslot")
    @classmethod
    def check_timeslot(cls, v: Optional[str]) -> Optional[str]:
        return validate_timeslot(v) if v is not None else v


class TransitionResponse(BaseModel):
    ok: bool
    appointmentId: int
    status: AppointmentStatus


class AppointmentResponse(BaseModel):
    id: int
    userId: int
    date: str
    timeslot: str
    type: AppointmentType
    status: AppointmentStatus
    email: str
    name: str
    lateReschedule: bool
    rescheduleRequestedAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None


class ReschedulePolicyResponse(BaseModel):
    hoursUntil: float
    canReschedule: bool
    requiresFee: bool
    feeAmount: float
    policyMessage: str
