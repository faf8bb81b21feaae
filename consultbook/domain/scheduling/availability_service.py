"""Slot availability - read-only conflict detection plus admin slot blocking"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from ...config import DEFAULT_TIMESLOTS
from ...errors import SlotConflict
from ...models import BlockedSlot
from ...shared.transactions import storage_guard, unit_of_work
from .repository import SchedulingRepository

logger = logging.getLogger(__name__)


class SlotReason(str, Enum):
    BOOKED = "booked"
    BLOCKED = "blocked"
    OK = "ok"


@dataclass(frozen=True)
class SlotCheck:
    available: bool
    reason: SlotReason


class SlotAvailabilityChecker:
    """
    Answers whether a (date, timeslot) can be reserved.

    ``check`` has no side effects. Callers that write a booking must call it
    (or ``ensure_available``) inside the same unit of work as the write; the
    partial unique index on appointments is the final guard.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = SchedulingRepository()

    def check(self, date: str, timeslot: str, exclude_appointment_id: Optional[int] = None) -> SlotCheck:
        with storage_guard(self.db, "check slot"):
            booked = self.repo.get_active_appointments_for_slot(
                self.db, date, timeslot, exclude_appointment_id
            )
            blocked = not booked and self.repo.get_blocked_slot(self.db, date, timeslot)
        if booked:
            return SlotCheck(False, SlotReason.BOOKED)
        if blocked:
            return SlotCheck(False, SlotReason.BLOCKED)
        return SlotCheck(True, SlotReason.OK)

    def ensure_available(
        self, date: str, timeslot: str, exclude_appointment_id: Optional[int] = None
    ) -> None:
        """Raise SlotConflict unless the slot is free"""
        result = self.check(date, timeslot, exclude_appointment_id)
        if not result.available:
            logger.warning(f"⚠️ Slot {date} {timeslot} unavailable: {result.reason.value}")
            raise SlotConflict(
                f"The {timeslot} slot on {date} is no longer available",
                details={"date": date, "timeslot": timeslot, "reason": result.reason.value},
            )

    def list_day(self, date: str) -> list[dict]:
        """Availability of every slot on the default grid for a date"""
        with storage_guard(self.db, "list day slots"):
            booked = self.repo.get_booked_timeslots(self.db, date)
            blocked = {b.timeslot for b in self.repo.get_blocked_slots(self.db, date)}

        slots = []
        for timeslot in DEFAULT_TIMESLOTS:
            if timeslot in booked:
                reason = SlotReason.BOOKED
            elif timeslot in blocked:
                reason = SlotReason.BLOCKED
            else:
                reason = SlotReason.OK
            slots.append(
                {"timeslot": timeslot, "available": reason is SlotReason.OK, "reason": reason.value}
            )
        return slots

    # Admin blocking

    def block_slots(self, date: str, timeslots: list[str], reason: Optional[str] = None) -> list[BlockedSlot]:
        """Block slots for a date. Already-blocked slots are left as they are."""
        created = []
        with unit_of_work(self.db, "block slots"):
            for timeslot in dict.fromkeys(timeslots):
                if self.repo.get_blocked_slot(self.db, date, timeslot):
                    continue
                created.append(self.repo.add_blocked_slot(self.db, date, timeslot, reason))
        logger.info(f"🚫 Blocked {len(created)} slot(s) on {date}")
        return created

    def unblock_slots(self, date: str, timeslots: list[str]) -> int:
        with unit_of_work(self.db, "unblock slots"):
            removed = self.repo.delete_blocked_slots(self.db, date, timeslots)
        logger.info(f"✅ Unblocked {removed} slot(s) on {date}")
        return removed

    def list_blocked(self, date: Optional[str] = None) -> list[BlockedSlot]:
        with storage_guard(self.db, "list blocked slots"):
            return self.repo.get_blocked_slots(self.db, date)
