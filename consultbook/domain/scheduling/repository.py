"""Scheduling repository - Database operations for appointments and blocked slots"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import ACTIVE_APPOINTMENT_STATUSES, Appointment, BlockedSlot

_ACTIVE = [s.value for s in ACTIVE_APPOINTMENT_STATUSES]


class SchedulingRepository:
    """Repository for scheduling database operations"""

    @staticmethod
    def get_active_appointments_for_slot(
        db: Session, date: str, timeslot: str, exclude_id: Optional[int] = None
    ) -> list[Appointment]:
        """Appointments currently holding a slot"""
        query = db.query(Appointment).filter(
            Appointment.date == date,
            Appointment.timeslot == timeslot,
            Appointment.status.in_(_ACTIVE),
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.all()

    @staticmethod
    def get_booked_timeslots(db: Session, date: str) -> set[str]:
        rows = (
            db.query(Appointment.timeslot)
            .filter(Appointment.date == date, Appointment.status.in_(_ACTIVE))
            .all()
        )
        return {row[0] for row in rows}

    @staticmethod
    def get_blocked_slot(db: Session, date: str, timeslot: str) -> Optional[BlockedSlot]:
        return (
            db.query(BlockedSlot)
            .filter(BlockedSlot.date == date, BlockedSlot.timeslot == timeslot)
            .first()
        )

    @staticmethod
    def get_blocked_slots(db: Session, date: Optional[str] = None) -> list[BlockedSlot]:
        query = db.query(BlockedSlot)
        if date:
            query = query.filter(BlockedSlot.date == date)
        return query.order_by(BlockedSlot.date.asc(), BlockedSlot.timeslot.asc()).all()

    @staticmethod
    def add_blocked_slot(db: Session, date: str, timeslot: str, reason: Optional[str]) -> BlockedSlot:
        blocked = BlockedSlot(date=date, timeslot=timeslot, reason=reason)
        db.add(blocked)
        return blocked

    @staticmethod
    def delete_blocked_slots(db: Session, date: str, timeslots: list[str]) -> int:
        return (
            db.query(BlockedSlot)
            .filter(BlockedSlot.date == date, BlockedSlot.timeslot.in_(timeslots))
            .delete(synchronize_session=False)
        )

    @staticmethod
    def get_appointment(
        db: Session, appointment_id: int, for_update: bool = False
    ) -> Optional[Appointment]:
        """Get an appointment, optionally locking the row for the current transaction"""
        query = db.query(Appointment).filter(Appointment.id == appointment_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def list_appointments(
        db: Session,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        date: Optional[str] = None,
    ) -> list[Appointment]:
        query = db.query(Appointment)
        if user_id is not None:
            query = query.filter(Appointment.user_id == user_id)
        if status:
            query = query.filter(Appointment.status == status)
        if date:
            query = query.filter(Appointment.date == date)
        return query.order_by(Appointment.date.desc(), Appointment.timeslot.desc()).all()

    @staticmethod
    def add_appointment(db: Session, **appointment_data) -> Appointment:
        """Stage a new appointment and flush so the slot index is checked immediately"""
        appointment = Appointment(**appointment_data)
        db.add(appointment)
        db.flush()
        return appointment
