"""Billing domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import AppointmentType, ServicePlan
from ...models_invoice import InvoiceStatus
from ...shared.validators import validate_email, validate_session_date


class InvoiceCreate(BaseModel):
    """Schema for issuing an invoice against a finished appointment"""

    appointmentId: int
    userId: Optional[int] = None
    clientName: Optional[str] = None
    clientEmail: Optional[str] = None
    sessionType: Optional[AppointmentType] = None
    sessionDate: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[float] = None  # Overrides the computed total
    includeSessionRate: bool = False
    includeNoShowPenalty: bool = False
    includeLateRescheduleFee: bool = False

    @field_validator("clientEmail")
    @classmethod
    def check_email(cls, v: Optional[str]) -> Optional[str]:
        return validate_email(v) if v is not None else v

    @field_validator("sessionDate")
    @classmethod
    def check_session_date(cls, v: Optional[str]) -> Optional[str]:
        return validate_session_date(v) if v is not None else v


class InvoiceCreateResponse(BaseModel):
    invoiceId: int
    invoiceNumber: str
    amount: float
    lines: list[dict]


class ReissueRequest(BaseModel):
    """Schema for replacing an active invoice with a corrected amount"""

    originalInvoiceId: int
    newAmount: float
    reason: Optional[str] = None


class ReissueResponse(BaseModel):
    newInvoiceId: int
    invoiceNumber: str
    creditNoteNumber: str


class MarkPaidRequest(BaseModel):
    paymentReference: Optional[str] = None


class InvoiceResponse(BaseModel):
    id: int
    appointmentId: int
    userId: int
    invoiceNumber: str
    clientName: str
    clientEmail: str
    sessionType: Optional[str] = None
    sessionDate: Optional[str] = None
    description: Optional[str] = None
    amount: float
    currency: str
    status: InvoiceStatus
    isActive: bool
    isReissued: bool
    originalAmount: Optional[float] = None
    creditNoteNumber: Optional[str] = None
    reissueReason: Optional[str] = None
    supersedesInvoiceId: Optional[int] = None
    paymentReference: Optional[str] = None
    dueDate: Optional[datetime] = None
    paidAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None


class LineItemSuggestion(BaseModel):
    appointmentId: int
    includeSessionRate: bool
    includeNoShowPenalty: bool
    includeLateRescheduleFee: bool
    effectivePlan: ServicePlan
    lines: list[dict]
    total: float


class UpdateServicePlanRequest(BaseModel):
    """Schema for changing the client's service plan"""

    servicePlan: ServicePlan
    confirm: bool = False  # Required for upgrades and renewals
    expectedVersion: Optional[int] = None


class CancelDowngradeRequest(BaseModel):
    expectedVersion: Optional[int] = None


class ServicePlanResponse(BaseModel):
    storedPlan: ServicePlan
    effectivePlan: ServicePlan
    status: str  # active | expired | pending | none
    daysRemaining: int
    isExpiring: bool
    programStartDate: Optional[datetime] = None
    programEndDate: Optional[datetime] = None
    plannedDowngrade: bool
    downgradeEffectiveDate: Optional[datetime] = None
    version: int
    action: Optional[str] = None
