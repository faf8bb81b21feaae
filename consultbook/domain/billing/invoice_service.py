"""
Invoice service - issuing, reissuing and settling session invoices.

Invoices are append-only. A reissue deactivates the predecessor and inserts a
successor in one transaction; the partial unique index on
``invoices(appointment_id) WHERE is_active`` guarantees a single active invoice
per appointment even under concurrent writers.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import ADMIN_NOTIFICATION_EMAIL, INVOICE_CURRENCY, INVOICE_DUE_DAYS
from ...errors import DuplicateInvoice, IllegalTransition, InvalidAmount, NotFound, StorageUnavailable
from ...models import TERMINAL_APPOINTMENT_STATUSES, Appointment, AppointmentStatus, ServicePlan
from ...models_invoice import Invoice, InvoiceStatus
from ...shared.clock import Clock, system_clock
from ...shared.transactions import storage_guard, unit_of_work
from ..notifications import enqueue_notification
from .plan_state import PlanState, effective_plan
from .pricing import LineItemToggles, PricedInvoice, price_invoice, suggest_toggles
from .repository import BillingRepository
from .schemas import InvoiceCreate

logger = logging.getLogger(__name__)

# Attempts at allocating a free invoice number before giving up
INVOICE_NUMBER_ATTEMPTS = 5

INVOICE_TRANSITIONS: dict[InvoiceStatus, set[InvoiceStatus]] = {
    InvoiceStatus.PENDING: {InvoiceStatus.PAID, InvoiceStatus.OVERDUE},
    InvoiceStatus.OVERDUE: {InvoiceStatus.PAID},
    InvoiceStatus.PAID: set(),
}


def generate_invoice_number(db: Session, now: datetime) -> str:
    """Next sequential number for the calendar year, e.g. INV-2024-00042"""
    prefix = f"INV-{now.year}-"
    count = BillingRepository.count_invoices_with_prefix(db, prefix) + 1
    return f"{prefix}{count:05d}"


def credit_note_number(invoice_number: str) -> str:
    return f"CN-{invoice_number}"


class InvoiceService:
    """Service layer for invoice business logic"""

    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.repo = BillingRepository()

    def get_invoice(self, invoice_id: int) -> Invoice:
        with storage_guard(self.db, "get invoice"):
            invoice = self.repo.get_invoice(self.db, invoice_id)
        if not invoice:
            raise NotFound("Invoice not found", details={"invoice_id": invoice_id})
        return invoice

    def get_invoice_by_number(self, invoice_number: str) -> Invoice:
        with storage_guard(self.db, "get invoice by number"):
            invoice = self.repo.get_invoice_by_number(self.db, invoice_number)
        if not invoice:
            raise NotFound("Invoice not found", details={"invoice_number": invoice_number})
        return invoice

    def list_invoices(
        self,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        include_inactive: bool = False,
    ) -> list[Invoice]:
        with storage_guard(self.db, "list invoices"):
            return self.repo.list_invoices(self.db, user_id, status, include_inactive)

    def invoice_history(self, appointment_id: int) -> list[Invoice]:
        with storage_guard(self.db, "invoice history"):
            return self.repo.get_invoice_history(self.db, appointment_id)

    def suggest_line_items(self, appointment_id: int) -> dict:
        """Default line items for the appointment outcome and what they would cost"""
        appointment = self._billable_appointment(appointment_id)
        toggles = suggest_toggles(appointment.status, appointment.late_reschedule)
        plan = self._effective_plan(appointment.user_id)

        try:
            priced = price_invoice(appointment.type, appointment.status, toggles, plan=plan)
            lines, total = priced.lines, priced.total
        except InvalidAmount:
            # Cancelled, or fully covered by the program
            lines, total = [], 0.0

        return {
            "appointmentId": appointment.id,
            "includeSessionRate": toggles.session_rate,
            "includeNoShowPenalty": toggles.no_show_penalty,
            "includeLateRescheduleFee": toggles.late_reschedule_fee,
            "effectivePlan": plan,
            "lines": lines,
            "total": total,
        }

    def create_invoice(self, data: InvoiceCreate) -> tuple[Invoice, PricedInvoice]:
        """
        Issue the invoice for a finished appointment.

        Raises:
            NotFound: unknown appointment, or it belongs to another user
            IllegalTransition: appointment is not in a terminal state
            DuplicateInvoice: an active invoice already exists
            InvalidAmount: nothing billable or non-positive override
        """
        appointment = self._billable_appointment(data.appointmentId)
        if data.userId is not None and data.userId != appointment.user_id:
            raise NotFound(
                "Appointment not found for this client",
                details={"appointment_id": appointment.id, "user_id": data.userId},
            )
        self._ensure_no_active_invoice(appointment.id)

        toggles = LineItemToggles(
            session_rate=data.includeSessionRate,
            no_show_penalty=data.includeNoShowPenalty,
            late_reschedule_fee=data.includeLateRescheduleFee,
        )
        priced = price_invoice(
            appointment.type,
            appointment.status,
            toggles,
            override=data.amount,
            plan=self._effective_plan(appointment.user_id),
        )

        client_email = data.clientEmail or appointment.email
        description = data.description or self._describe(appointment, priced)

        for attempt in range(1, INVOICE_NUMBER_ATTEMPTS + 1):
            try:
                with unit_of_work(self.db, "create invoice"):
                    now = self.clock.now()
                    invoice = self.repo.add_invoice(
                        self.db,
                        appointment_id=appointment.id,
                        user_id=appointment.user_id,
                        client_name=data.clientName or appointment.name,
                        client_email=client_email,
                        session_type=data.sessionType.value if data.sessionType else appointment.type,
                        session_date=data.sessionDate or appointment.date,
                        description=description,
                        invoice_number=generate_invoice_number(self.db, now),
                        amount=priced.total,
                        currency=INVOICE_CURRENCY,
                        status=InvoiceStatus.PENDING.value,
                        due_date=now + timedelta(days=INVOICE_DUE_DAYS),
                        created_at=now,
                    )
                    enqueue_notification(
                        self.db,
                        client_email,
                        "invoice_created",
                        self._notification_data(invoice),
                    )
            except IntegrityError as e:
                self._ensure_no_active_invoice(appointment.id, cause=e)
                logger.warning(f"⚠️ Invoice number collision, retrying (attempt {attempt})")
                continue

            logger.info(
                f"🧾 Invoice {invoice.invoice_number} created for appointment {appointment.id}: "
                f"{invoice.amount:.2f} {invoice.currency}"
            )
            return invoice, priced

        raise StorageUnavailable(
            "Could not allocate an invoice number, please retry",
            details={"appointment_id": appointment.id},
        )

    def reissue_invoice(
        self, original_invoice_id: int, new_amount: float, reason: Optional[str] = None
    ) -> Invoice:
        """
        Replace an active, unpaid invoice with a corrected amount.

        The predecessor is only deactivated; every other field is left as
        issued. The successor carries the original amount and a credit note
        reference back to the predecessor's number.
        """
        if new_amount is None or new_amount <= 0:
            raise InvalidAmount(
                "New invoice amount must be greater than zero", details={"amount": new_amount}
            )

        for attempt in range(1, INVOICE_NUMBER_ATTEMPTS + 1):
            try:
                with unit_of_work(self.db, "reissue invoice"):
                    source = self.repo.get_invoice(self.db, original_invoice_id, for_update=True)
                    if not source:
                        raise NotFound("Invoice not found", details={"invoice_id": original_invoice_id})
                    if source.status == InvoiceStatus.PAID.value:
                        raise IllegalTransition(
                            "A paid invoice cannot be reissued",
                            details={"invoice_id": source.id, "invoice_number": source.invoice_number},
                        )
                    if not source.is_active or self.repo.deactivate_invoice(self.db, source.id) != 1:
                        raise IllegalTransition(
                            "Only the active invoice can be reissued",
                            details={"invoice_id": source.id, "invoice_number": source.invoice_number},
                        )

                    now = self.clock.now()
                    successor = self.repo.add_invoice(
                        self.db,
                        appointment_id=source.appointment_id,
                        user_id=source.user_id,
                        client_name=source.client_name,
                        client_email=source.client_email,
                        session_type=source.session_type,
                        session_date=source.session_date,
                        description=source.description,
                        invoice_number=generate_invoice_number(self.db, now),
                        amount=round(new_amount, 2),
                        currency=source.currency,
                        status=InvoiceStatus.PENDING.value,
                        is_reissued=True,
                        original_amount=source.amount,
                        credit_note_number=credit_note_number(source.invoice_number),
                        reissue_reason=reason,
                        supersedes_invoice_id=source.id,
                        due_date=now + timedelta(days=INVOICE_DUE_DAYS),
                        created_at=now,
                    )
                    enqueue_notification(
                        self.db,
                        successor.client_email,
                        "invoice_reissued",
                        {
                            **self._notification_data(successor),
                            "originalAmount": successor.original_amount,
                            "creditNoteNumber": successor.credit_note_number,
                            "reason": reason,
                        },
                    )
            except IntegrityError:
                logger.warning(f"⚠️ Invoice number collision during reissue, retrying (attempt {attempt})")
                continue

            logger.info(
                f"🔁 Invoice {source.invoice_number} reissued as {successor.invoice_number}: "
                f"{successor.original_amount:.2f} → {successor.amount:.2f} ({successor.credit_note_number})"
            )
            return successor

        raise StorageUnavailable(
            "Could not allocate an invoice number, please retry",
            details={"invoice_id": original_invoice_id},
        )

    def mark_paid(self, invoice_number: str, payment_reference: Optional[str] = None) -> Invoice:
        """Record an external payment confirmation; repeated confirmations are no-ops"""
        with unit_of_work(self.db, "mark invoice paid"):
            invoice = self.get_invoice_by_number(invoice_number)
            if invoice.status == InvoiceStatus.PAID.value:
                logger.info(f"Invoice {invoice_number} already marked as paid")
                return invoice
            if not invoice.is_active:
                raise IllegalTransition(
                    "A superseded invoice cannot be paid",
                    details={"invoice_number": invoice_number},
                )
            self._assert_transition(invoice, InvoiceStatus.PAID)

            invoice.status = InvoiceStatus.PAID.value
            invoice.paid_at = self.clock.now()
            invoice.payment_reference = payment_reference
            enqueue_notification(
                self.db,
                ADMIN_NOTIFICATION_EMAIL,
                "invoice_paid",
                {**self._notification_data(invoice), "paymentReference": payment_reference},
            )

        logger.info(f"💰 Invoice {invoice_number} marked as paid")
        return invoice

    def mark_overdue(self, invoice_id: int) -> Invoice:
        with unit_of_work(self.db, "mark invoice overdue"):
            invoice = self.get_invoice(invoice_id)
            if invoice.status == InvoiceStatus.OVERDUE.value:
                return invoice
            self._assert_transition(invoice, InvoiceStatus.OVERDUE)
            invoice.status = InvoiceStatus.OVERDUE.value

        logger.info(f"⏰ Invoice {invoice.invoice_number} marked as overdue")
        return invoice

    def _billable_appointment(self, appointment_id: int) -> Appointment:
        with storage_guard(self.db, "load billable appointment"):
            appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment:
            raise NotFound("Appointment not found", details={"appointment_id": appointment_id})
        if AppointmentStatus(appointment.status) not in TERMINAL_APPOINTMENT_STATUSES:
            raise IllegalTransition(
                "Only finished appointments can be invoiced",
                details={"appointment_id": appointment_id, "status": appointment.status},
            )
        return appointment

    def _ensure_no_active_invoice(self, appointment_id: int, cause: Optional[Exception] = None) -> None:
        with storage_guard(self.db, "check active invoice"):
            existing = self.repo.get_active_invoice_for_appointment(self.db, appointment_id)
        if existing:
            logger.warning(
                f"⚠️ Duplicate invoice rejected for appointment {appointment_id} "
                f"(active: {existing.invoice_number})"
            )
            raise DuplicateInvoice(
                "This appointment already has an active invoice",
                details={"appointment_id": appointment_id, "invoice_number": existing.invoice_number},
            ) from cause

    def _effective_plan(self, user_id: int) -> ServicePlan:
        with storage_guard(self.db, "load pricing tier"):
            user = self.repo.get_user_by_id(self.db, user_id)
            state = PlanState.from_user(user) if user else None
        if state is None:
            return ServicePlan.PAY_AS_YOU_GO
        return effective_plan(state, self.clock.now())

    @staticmethod
    def _describe(appointment: Appointment, priced: PricedInvoice) -> str:
        items = ", ".join(line["description"] for line in priced.lines)
        return f"{items} - {appointment.date} {appointment.timeslot}"

    @staticmethod
    def _notification_data(invoice: Invoice) -> dict:
        return {
            "invoiceId": invoice.id,
            "invoiceNumber": invoice.invoice_number,
            "appointmentId": invoice.appointment_id,
            "clientName": invoice.client_name,
            "amount": invoice.amount,
            "currency": invoice.currency,
            "sessionDate": invoice.session_date,
            "dueDate": invoice.due_date.isoformat() if invoice.due_date else None,
        }

    @staticmethod
    def _assert_transition(invoice: Invoice, new_status: InvoiceStatus) -> None:
        current = InvoiceStatus(invoice.status)
        if new_status not in INVOICE_TRANSITIONS[current]:
            logger.warning(
                f"⚠️ Rejected transition for invoice {invoice.invoice_number}: {current.value} → {new_status.value}"
            )
            raise IllegalTransition(
                f"Cannot move invoice from {current.value} to {new_status.value}",
                details={"invoice_number": invoice.invoice_number, "current_status": current.value},
            )
