"""Scheduling domain - slot availability and the appointment lifecycle"""

from .appointment_service import AppointmentService
from .availability_service import SlotAvailabilityChecker, SlotCheck, SlotReason
from .router import router

__all__ = ["router", "AppointmentService", "SlotAvailabilityChecker", "SlotCheck", "SlotReason"]
