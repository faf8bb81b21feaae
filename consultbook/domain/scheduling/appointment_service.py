"""Appointment service - booking and the appointment status state machine"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import (
    ADMIN_NOTIFICATION_EMAIL,
    LATE_RESCHEDULE_FEE,
    LATE_RESCHEDULE_GRACE_HOURS,
    LATE_RESCHEDULE_WINDOW_HOURS,
)
from ...errors import IllegalTransition, NotFound, SlotConflict
from ...models import Appointment, AppointmentStatus
from ...shared.clock import Clock, system_clock
from ...shared.transactions import storage_guard, unit_of_work
from ...shared.validators import session_start
from ..notifications import enqueue_notification
from .availability_service import SlotAvailabilityChecker
from .repository import SchedulingRepository
from .schemas import AppointmentCreate

logger = logging.getLogger(__name__)

S = AppointmentStatus

# Allowed edges. done, no-show and cancelled are terminal.
APPOINTMENT_TRANSITIONS: dict[AppointmentStatus, set[AppointmentStatus]] = {
    S.PENDING: {S.CONFIRMED, S.CANCELLED},
    S.CONFIRMED: {S.RESCHEDULE_REQUESTED, S.DONE, S.NO_SHOW, S.CANCELLED},
    S.RESCHEDULE_REQUESTED: {S.CONFIRMED, S.CANCELLED},
    S.DONE: set(),
    S.NO_SHOW: set(),
    S.CANCELLED: set(),
}

# Only the client may ask to move a session
CLIENT_ONLY_TARGETS = {S.RESCHEDULE_REQUESTED}

# Outcomes that can only be recorded once the session has started
OUTCOME_STATUSES = {S.DONE, S.NO_SHOW}


def validate_status_transition(current: AppointmentStatus, new: AppointmentStatus) -> bool:
    return new in APPOINTMENT_TRANSITIONS.get(current, set())


def compute_reschedule_policy(starts_at: datetime, now: datetime) -> dict:
    """
    Reschedule policy for a session starting at ``starts_at``.

    More than one hour after the start the session can no longer be changed.
    Requests made more than the grace period and at most the late window before
    the start carry the late reschedule fee.
    """
    hours_until = (starts_at - now).total_seconds() / 3600

    if hours_until < -LATE_RESCHEDULE_GRACE_HOURS:
        return {
            "hoursUntil": hours_until,
            "canReschedule": False,
            "requiresFee": False,
            "feeAmount": 0.0,
            "policyMessage": "This appointment has already passed and cannot be modified.",
        }

    if LATE_RESCHEDULE_GRACE_HOURS < hours_until <= LATE_RESCHEDULE_WINDOW_HOURS:
        return {
            "hoursUntil": hours_until,
            "canReschedule": True,
            "requiresFee": True,
            "feeAmount": LATE_RESCHEDULE_FEE,
            "policyMessage": (
                f"Rescheduling within {LATE_RESCHEDULE_WINDOW_HOURS:g} hours requires a "
                f"€{LATE_RESCHEDULE_FEE:.2f} administrative fee."
            ),
        }

    return {
        "hoursUntil": hours_until,
        "canReschedule": True,
        "requiresFee": False,
        "feeAmount": 0.0,
        "policyMessage": "You can reschedule free of charge.",
    }


class AppointmentService:
    """Service layer for appointment business logic"""

    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.repo = SchedulingRepository()
        self.checker = SlotAvailabilityChecker(db)

    def get_appointment(self, appointment_id: int, user_id: Optional[int] = None) -> Appointment:
        """Get an appointment; when user_id is given it must belong to that user"""
        with storage_guard(self.db, "get appointment"):
            appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment or (user_id is not None and appointment.user_id != user_id):
            raise NotFound("Appointment not found", details={"appointment_id": appointment_id})
        return appointment

    def list_appointments(
        self, user_id: Optional[int] = None, status: Optional[str] = None, date: Optional[str] = None
    ) -> list[Appointment]:
        with storage_guard(self.db, "list appointments"):
            return self.repo.list_appointments(self.db, user_id, status, date)

    def request_appointment(self, user_id: int, data: AppointmentCreate) -> Appointment:
        """Reserve a slot atomically; the new appointment starts as pending"""
        try:
            with unit_of_work(self.db, "request appointment"):
                self.checker.ensure_available(data.date, data.timeslot)
                appointment = self.repo.add_appointment(
                    self.db,
                    user_id=user_id,
                    date=data.date,
                    timeslot=data.timeslot,
                    type=data.type.value,
                    status=S.PENDING.value,
                    email=data.email,
                    name=data.name,
                    created_at=self.clock.now(),
                )
                enqueue_notification(
                    self.db,
                    ADMIN_NOTIFICATION_EMAIL,
                    "appointment_requested",
                    {
                        "appointmentId": appointment.id,
                        "name": data.name,
                        "email": data.email,
                        "date": data.date,
                        "timeslot": data.timeslot,
                        "type": data.type.value,
                    },
                )
        except IntegrityError as e:
            # Lost the race to a concurrent booking of the same slot
            logger.warning(f"⚠️ Concurrent booking rejected for {data.date} {data.timeslot}")
            raise SlotConflict(
                f"The {data.timeslot} slot on {data.date} is no longer available",
                details={"date": data.date, "timeslot": data.timeslot, "reason": "booked"},
            ) from e

        logger.info(
            f"📅 Appointment {appointment.id} requested by user {user_id} for {data.date} {data.timeslot}"
        )
        return appointment

    def transition(
        self,
        appointment_id: int,
        new_status: AppointmentStatus,
        date: Optional[str] = None,
        timeslot: Optional[str] = None,
    ) -> Appointment:
        """
        Apply an administrative status change.

        Confirming re-verifies the slot in the same transaction. When approving
        a reschedule, ``date``/``timeslot`` name the new slot (defaults to the
        current one).
        """
        if new_status in CLIENT_ONLY_TARGETS:
            raise IllegalTransition(
                "Reschedule requests are made by the client",
                details={"appointment_id": appointment_id, "new_status": new_status.value},
            )

        try:
            with unit_of_work(self.db, "transition appointment"):
                appointment = self.repo.get_appointment(self.db, appointment_id, for_update=True)
                if not appointment:
                    raise NotFound("Appointment not found", details={"appointment_id": appointment_id})

                current = AppointmentStatus(appointment.status)
                self._assert_transition(appointment, current, new_status)

                if new_status is S.CONFIRMED:
                    target_date = date or appointment.date
                    target_timeslot = timeslot or appointment.timeslot
                    if current is S.PENDING and (target_date, target_timeslot) != (
                        appointment.date,
                        appointment.timeslot,
                    ):
                        raise IllegalTransition(
                            "A pending appointment is confirmed on its requested slot",
                            details={"appointment_id": appointment_id},
                        )
                    self.checker.ensure_available(
                        target_date, target_timeslot, exclude_appointment_id=appointment.id
                    )
                    appointment.date = target_date
                    appointment.timeslot = target_timeslot

                if new_status in OUTCOME_STATUSES:
                    starts_at = session_start(appointment.date, appointment.timeslot)
                    if self.clock.now() < starts_at:
                        raise IllegalTransition(
                            "An outcome can only be recorded after the session has started",
                            details={"appointment_id": appointment_id, "new_status": new_status.value},
                        )

                appointment.status = new_status.value
                self.db.flush()

                if new_status is S.CONFIRMED:
                    enqueue_notification(
                        self.db,
                        appointment.email,
                        "appointment_confirmed",
                        {
                            "appointmentId": appointment.id,
                            "name": appointment.name,
                            "date": appointment.date,
                            "timeslot": appointment.timeslot,
                            "type": appointment.type,
                        },
                    )
        except IntegrityError as e:
            logger.warning(f"⚠️ Slot taken while confirming appointment {appointment_id}")
            raise SlotConflict(
                "The requested slot is no longer available",
                details={"appointment_id": appointment_id, "reason": "booked"},
            ) from e

        logger.info(f"✅ Appointment {appointment_id} transitioned: {current.value} → {new_status.value}")
        return appointment

    def request_reschedule(self, appointment_id: int, user_id: int) -> Appointment:
        """Client asks to move a confirmed session; flags the late fee when inside the late window"""
        with unit_of_work(self.db, "request reschedule"):
            appointment = self.repo.get_appointment(self.db, appointment_id, for_update=True)
            if not appointment or appointment.user_id != user_id:
                raise NotFound("Appointment not found", details={"appointment_id": appointment_id})

            current = AppointmentStatus(appointment.status)
            self._assert_transition(appointment, current, S.RESCHEDULE_REQUESTED)

            now = self.clock.now()
            policy = compute_reschedule_policy(
                session_start(appointment.date, appointment.timeslot), now
            )
            if not policy["canReschedule"]:
                raise IllegalTransition(
                    policy["policyMessage"], details={"appointment_id": appointment_id}
                )

            appointment.status = S.RESCHEDULE_REQUESTED.value
            appointment.reschedule_requested_at = now
            # A late request stays billable even if later requests are on time
            appointment.late_reschedule = bool(appointment.late_reschedule or policy["requiresFee"])

            enqueue_notification(
                self.db,
                ADMIN_NOTIFICATION_EMAIL,
                "reschedule_requested",
                {
                    "appointmentId": appointment.id,
                    "name": appointment.name,
                    "date": appointment.date,
                    "timeslot": appointment.timeslot,
                    "lateReschedule": appointment.late_reschedule,
                },
            )

        if policy["requiresFee"]:
            logger.info(f"⏰ Late reschedule requested for appointment {appointment_id}")
        logger.info(f"🔁 Appointment {appointment_id} transitioned: confirmed → reschedule_requested")
        return appointment

    def reschedule_policy(self, appointment_id: int, user_id: Optional[int] = None) -> dict:
        appointment = self.get_appointment(appointment_id, user_id)
        return compute_reschedule_policy(
            session_start(appointment.date, appointment.timeslot), self.clock.now()
        )

    @staticmethod
    def _assert_transition(
        appointment: Appointment, current: AppointmentStatus, new_status: AppointmentStatus
    ) -> None:
        if not validate_status_transition(current, new_status):
            logger.warning(
                f"⚠️ Rejected transition for appointment {appointment.id}: {current.value} → {new_status.value}"
            )
            raise IllegalTransition(
                f"Cannot move appointment from {current.value} to {new_status.value}",
                details={
                    "appointment_id": appointment.id,
                    "current_status": current.value,
                    "new_status": new_status.value,
                },
            )
