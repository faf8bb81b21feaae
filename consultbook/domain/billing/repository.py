"""Billing repository - Database operations for invoices and service plans"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Appointment, User
from ...models_invoice import Invoice


class BillingRepository:
    """Repository for billing database operations"""

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Optional[Appointment]:
        return db.query(Appointment).filter(Appointment.id == appointment_id).first()

    @staticmethod
    def get_invoice(db: Session, invoice_id: int, for_update: bool = False) -> Optional[Invoice]:
        query = db.query(Invoice).filter(Invoice.id == invoice_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_invoice_by_number(db: Session, invoice_number: str) -> Optional[Invoice]:
        return db.query(Invoice).filter(Invoice.invoice_number == invoice_number).first()

    @staticmethod
    def get_active_invoice_for_appointment(db: Session, appointment_id: int) -> Optional[Invoice]:
        return (
            db.query(Invoice)
            .filter(Invoice.appointment_id == appointment_id, Invoice.is_active.is_(True))
            .first()
        )

    @staticmethod
    def get_invoice_history(db: Session, appointment_id: int) -> list[Invoice]:
        """Every invoice ever issued for an appointment, oldest first"""
        return (
            db.query(Invoice)
            .filter(Invoice.appointment_id == appointment_id)
            .order_by(Invoice.id.asc())
            .all()
        )

    @staticmethod
    def list_invoices(
        db: Session,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        include_inactive: bool = False,
    ) -> list[Invoice]:
        query = db.query(Invoice)
        if user_id is not None:
            query = query.filter(Invoice.user_id == user_id)
        if status:
            query = query.filter(Invoice.status == status)
        if not include_inactive:
            query = query.filter(Invoice.is_active.is_(True))
        return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()

    @staticmethod
    def count_invoices_with_prefix(db: Session, prefix: str) -> int:
        return db.query(Invoice).filter(Invoice.invoice_number.like(f"{prefix}%")).count()

    @staticmethod
    def deactivate_invoice(db: Session, invoice_id: int) -> int:
        """Flip is_active true -> false; returns the number of rows changed (0 if already superseded)"""
        return (
            db.query(Invoice)
            .filter(Invoice.id == invoice_id, Invoice.is_active.is_(True))
            .update({Invoice.is_active: False}, synchronize_session="fetch")
        )

    @staticmethod
    def add_invoice(db: Session, **invoice_data) -> Invoice:
        """Stage a new invoice and flush so the unique indexes are checked immediately"""
        invoice = Invoice(**invoice_data)
        db.add(invoice)
        db.flush()
        return invoice
