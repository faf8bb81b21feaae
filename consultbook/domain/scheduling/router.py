"""Scheduling router - FastAPI endpoints for slots and appointments"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import Appointment, AppointmentStatus, User
from ...shared.clock import Clock, get_clock
from ...shared.validators import TIMESLOT_PATTERN
from .appointment_service import AppointmentService
from .availability_service import SlotAvailabilityChecker
from .schemas import (
    AppointmentCreate,
    AppointmentResponse,
    BlockedSlotResponse,
    BlockSlotsRequest,
    DaySlot,
    ReschedulePolicyResponse,
    SlotCheckResponse,
    TransitionRequest,
    TransitionResponse,
)

logger = logging.getLogger(__name__)

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"

router = APIRouter(prefix="/scheduling", tags=["Scheduling"])


def get_availability_checker(db: Session = Depends(get_db)) -> SlotAvailabilityChecker:
    """Dependency injection for SlotAvailabilityChecker"""
    return SlotAvailabilityChecker(db)


def get_appointment_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db, clock)


def to_appointment_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        userId=appointment.user_id,
        date=appointment.date,
        timeslot=appointment.timeslot,
        type=appointment.type,
        status=appointment.status,
        email=appointment.email,
        name=appointment.name,
        lateReschedule=bool(appointment.late_reschedule),
        rescheduleRequestedAt=appointment.reschedule_requested_at,
        createdAt=appointment.created_at,
    )


# ============================================================================
# SLOT AVAILABILITY
# ============================================================================


@router.get("/slots/check", response_model=SlotCheckResponse)
async def check_slot(
    date: str = Query(..., pattern=DATE_PATTERN),
    timeslot: str = Query(..., pattern=TIMESLOT_PATTERN.pattern),
    checker: SlotAvailabilityChecker = Depends(get_availability_checker),
):
    """Check whether a single slot can be booked"""
    result = checker.check(date, timeslot)
    return SlotCheckResponse(available=result.available, reason=result.reason.value)


@router.get("/slots", response_model=list[DaySlot])
async def list_day_slots(
    date: str = Query(..., pattern=DATE_PATTERN),
    checker: SlotAvailabilityChecker = Depends(get_availability_checker),
):
    """Availability of the default slot grid for a date"""
    return checker.list_day(date)


@router.get("/blocked-slots", response_model=list[BlockedSlotResponse])
async def list_blocked_slots(
    date: Optional[str] = Query(None, pattern=DATE_PATTERN),
    _admin: User = Depends(require_admin),
    checker: SlotAvailabilityChecker = Depends(get_availability_checker),
):
    return checker.list_blocked(date)


@router.post("/blocked-slots", response_model=list[BlockedSlotResponse])
async def block_slots(
    body: BlockSlotsRequest,
    _admin: User = Depends(require_admin),
    checker: SlotAvailabilityChecker = Depends(get_availability_checker),
):
    """Administratively block slots"""
    return checker.block_slots(body.date, body.timeslots, body.reason)


@router.post("/blocked-slots/unblock")
async def unblock_slots(
    body: BlockSlotsRequest,
    _admin: User = Depends(require_admin),
    checker: SlotAvailabilityChecker = Depends(get_availability_checker),
):
    removed = checker.unblock_slots(body.date, body.timeslots)
    return {"removed": removed}


# ============================================================================
# APPOINTMENTS
# ============================================================================


@router.post("/appointments", response_model=AppointmentResponse, status_code=201)
async def request_appointment(
    body: AppointmentCreate,
    user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Book a slot; the appointment awaits admin confirmation"""
    return to_appointment_response(service.request_appointment(user.id, body))


@router.get("/appointments", response_model=list[AppointmentResponse])
async def list_my_appointments(
    status: Optional[AppointmentStatus] = None,
    user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointments = service.list_appointments(user.id, status.value if status else None)
    return [to_appointment_response(a) for a in appointments]


@router.get("/admin/appointments", response_model=list[AppointmentResponse])
async def list_all_appointments(
    status: Optional[AppointmentStatus] = None,
    date: Optional[str] = Query(None, pattern=DATE_PATTERN),
    _admin: User = Depends(require_admin),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointments = service.list_appointments(
        None, status.value if status else None, date
    )
    return [to_appointment_response(a) for a in appointments]


@router.get("/appointments/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return to_appointment_response(service.get_appointment(appointment_id, user.id))


@router.post("/appointments/{appointment_id}/transition", response_model=TransitionResponse)
async def transition_appointment(
    appointment_id: int,
    body: TransitionRequest,
    _admin: User = Depends(require_admin),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Administrative status change (confirm, approve reschedule, record outcome, cancel)"""
    appointment = service.transition(appointment_id, body.newStatus, body.date, body.timeslot)
    return TransitionResponse(ok=True, appointmentId=appointment.id, status=appointment.status)


@router.post("/appointments/{appointment_id}/reschedule-request", response_model=AppointmentResponse)
async def request_reschedule(
    appointment_id: int,
    user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return to_appointment_response(service.request_reschedule(appointment_id, user.id))


@router.get(
    "/appointments/{appointment_id}/reschedule-policy", response_model=ReschedulePolicyResponse
)
async def get_reschedule_policy(
    appointment_id: int,
    user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.reschedule_policy(appointment_id, user.id)
