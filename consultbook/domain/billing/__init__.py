"""Billing domain - invoices and service plans"""

from .invoice_service import InvoiceService
from .router import router
from .subscription_service import SubscriptionService

__all__ = ["router", "InvoiceService", "SubscriptionService"]
