"""
Invoice model for consultation billing
"""

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class Invoice(Base):
    """Session invoice. Append-only: a reissue deactivates the predecessor and inserts a successor."""

    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    client_name = Column(String(255), nullable=False)
    client_email = Column(String(255), nullable=False)
    session_type = Column(String(20), nullable=True)
    session_date = Column(String(10), nullable=True)
    description = Column(Text, nullable=True)

    invoice_number = Column(String(50), unique=True, nullable=False, index=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(10), default="EUR")
    status = Column(String(20), default=InvoiceStatus.PENDING.value, nullable=False)

    # Reissue chain
    is_active = Column(Boolean, default=True, nullable=False)
    is_reissued = Column(Boolean, default=False, nullable=False)
    original_amount = Column(Float, nullable=True)  # Set only on a reissued invoice
    credit_note_number = Column(String(60), nullable=True)  # Set only on a reissued invoice
    reissue_reason = Column(Text, nullable=True)
    supersedes_invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=True)

    # Payment confirmation (external collaborator)
    payment_reference = Column(String(255), nullable=True)
    due_date = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    appointment = relationship("Appointment", back_populates="invoices")
    supersedes = relationship("Invoice", remote_side=[id])

    __table_args__ = (
        # At most one active invoice per appointment
        Index(
            "uq_invoices_active_appointment",
            "appointment_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )
