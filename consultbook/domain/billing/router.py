"""Billing router - FastAPI endpoints for invoices and service plans"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user, is_admin, require_admin
from ...database import get_db
from ...errors import NotFound
from ...models import User
from ...models_invoice import Invoice, InvoiceStatus
from ...shared.clock import Clock, get_clock
from .invoice_service import InvoiceService
from .schemas import (
    CancelDowngradeRequest,
    InvoiceCreate,
    InvoiceCreateResponse,
    InvoiceResponse,
    LineItemSuggestion,
    MarkPaidRequest,
    ReissueRequest,
    ReissueResponse,
    ServicePlanResponse,
    UpdateServicePlanRequest,
)
from .subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])


def get_invoice_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> InvoiceService:
    """Dependency injection for InvoiceService"""
    return InvoiceService(db, clock)


def get_subscription_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> SubscriptionService:
    """Dependency injection for SubscriptionService"""
    return SubscriptionService(db, clock)


def to_invoice_response(invoice: Invoice) -> InvoiceResponse:
    return InvoiceResponse(
        id=invoice.id,
        appointmentId=invoice.appointment_id,
        userId=invoice.user_id,
        invoiceNumber=invoice.invoice_number,
        clientName=invoice.client_name,
        clientEmail=invoice.client_email,
        sessionType=invoice.session_type,
        sessionDate=invoice.session_date,
        description=invoice.description,
        amount=invoice.amount,
        currency=invoice.currency,
        status=invoice.status,
        isActive=invoice.is_active,
        isReissued=invoice.is_reissued,
        originalAmount=invoice.original_amount,
        creditNoteNumber=invoice.credit_note_number,
        reissueReason=invoice.reissue_reason,
        supersedesInvoiceId=invoice.supersedes_invoice_id,
        paymentReference=invoice.payment_reference,
        dueDate=invoice.due_date,
        paidAt=invoice.paid_at,
        createdAt=invoice.created_at,
    )


# ============================================================================
# INVOICES
# ============================================================================


@router.post("/invoices", response_model=InvoiceCreateResponse, status_code=201)
async def create_invoice(
    body: InvoiceCreate,
    _admin: User = Depends(require_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Issue the invoice for a finished appointment"""
    invoice, priced = service.create_invoice(body)
    return InvoiceCreateResponse(
        invoiceId=invoice.id,
        invoiceNumber=invoice.invoice_number,
        amount=invoice.amount,
        lines=priced.lines,
    )


@router.post("/invoices/reissue", response_model=ReissueResponse, status_code=201)
async def reissue_invoice(
    body: ReissueRequest,
    _admin: User = Depends(require_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Replace an active invoice with a corrected amount"""
    invoice = service.reissue_invoice(body.originalInvoiceId, body.newAmount, body.reason)
    return ReissueResponse(
        newInvoiceId=invoice.id,
        invoiceNumber=invoice.invoice_number,
        creditNoteNumber=invoice.credit_note_number,
    )


@router.get("/invoices", response_model=list[InvoiceResponse])
async def list_invoices(
    userId: Optional[int] = None,
    status: Optional[InvoiceStatus] = None,
    includeInactive: bool = False,
    _admin: User = Depends(require_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoices = service.list_invoices(userId, status.value if status else None, includeInactive)
    return [to_invoice_response(i) for i in invoices]


@router.get("/my-invoices", response_model=list[InvoiceResponse])
async def list_my_invoices(
    user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Current invoices of the signed-in client"""
    return [to_invoice_response(i) for i in service.list_invoices(user.id)]


@router.get("/invoices/number/{invoice_number}", response_model=InvoiceResponse)
async def get_invoice_by_number(
    invoice_number: str,
    user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = service.get_invoice_by_number(invoice_number)
    if invoice.user_id != user.id and not is_admin(user):
        raise NotFound("Invoice not found", details={"invoice_number": invoice_number})
    return to_invoice_response(invoice)


@router.post("/invoices/number/{invoice_number}/mark-paid", response_model=InvoiceResponse)
async def mark_invoice_paid(
    invoice_number: str,
    body: MarkPaidRequest,
    _admin: User = Depends(require_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Record a payment confirmed outside the platform"""
    return to_invoice_response(service.mark_paid(invoice_number, body.paymentReference))


@router.post("/invoices/{invoice_id}/mark-overdue", response_model=InvoiceResponse)
async def mark_invoice_overdue(
    invoice_id: int,
    _admin: User = Depends(require_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    return to_invoice_response(service.mark_overdue(invoice_id))


@router.get("/appointments/{appointment_id}/invoice-history", response_model=list[InvoiceResponse])
async def get_invoice_history(
    appointment_id: int,
    _admin: User = Depends(require_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Every invoice issued for an appointment, oldest first"""
    return [to_invoice_response(i) for i in service.invoice_history(appointment_id)]


@router.get("/appointments/{appointment_id}/line-items", response_model=LineItemSuggestion)
async def suggest_line_items(
    appointment_id: int,
    _admin: User = Depends(require_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.suggest_line_items(appointment_id)


# ============================================================================
# SERVICE PLAN
# ============================================================================


@router.get("/service-plan", response_model=ServicePlanResponse)
async def get_service_plan(
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Current plan, with expiry evaluated as of now"""
    return service.get_service_plan(user.id)


@router.put("/service-plan", response_model=ServicePlanResponse)
async def update_service_plan(
    body: UpdateServicePlanRequest,
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return service.update_service_plan(
        user.id, body.servicePlan, confirm=body.confirm, expected_version=body.expectedVersion
    )


@router.post("/service-plan/cancel-downgrade", response_model=ServicePlanResponse)
async def cancel_planned_downgrade(
    body: CancelDowngradeRequest,
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return service.cancel_planned_downgrade(user.id, expected_version=body.expectedVersion)


@router.get("/admin/users/{user_id}/service-plan", response_model=ServicePlanResponse)
async def admin_get_service_plan(
    user_id: int,
    _admin: User = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return service.get_service_plan(user_id)


@router.put("/admin/users/{user_id}/service-plan", response_model=ServicePlanResponse)
async def admin_update_service_plan(
    user_id: int,
    body: UpdateServicePlanRequest,
    admin: User = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Change a client's plan on their behalf"""
    logger.info(f"🔧 Admin {admin.id} changing service plan for user {user_id}")
    return service.update_service_plan(
        user_id, body.servicePlan, confirm=body.confirm, expected_version=body.expectedVersion
    )
