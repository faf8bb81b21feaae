"""
Session pricing rules.

Invoice totals are a pure function of the appointment's type and status, the
line items the operator enabled, an optional override and the client's
effective plan. Rates come from configuration.
"""

from dataclasses import dataclass
from typing import Optional

from ...config import (
    LATE_RESCHEDULE_FEE,
    NO_SHOW_PENALTY_RATIO,
    SESSION_RATE_FOLLOW_UP,
    SESSION_RATE_INITIAL,
)
from ...errors import InvalidAmount
from ...models import AppointmentStatus, AppointmentType, ServicePlan

SESSION_RATES = {
    AppointmentType.INITIAL: SESSION_RATE_INITIAL,
    AppointmentType.FOLLOW_UP: SESSION_RATE_FOLLOW_UP,
}


def session_rate(appointment_type: AppointmentType) -> float:
    return SESSION_RATES[AppointmentType(appointment_type)]


def no_show_penalty(appointment_type: AppointmentType) -> float:
    return round(NO_SHOW_PENALTY_RATIO * session_rate(appointment_type), 2)


@dataclass(frozen=True)
class LineItemToggles:
    session_rate: bool = False
    no_show_penalty: bool = False
    late_reschedule_fee: bool = False

    def any_enabled(self) -> bool:
        return self.session_rate or self.no_show_penalty or self.late_reschedule_fee


@dataclass(frozen=True)
class PricedInvoice:
    total: float
    lines: list[dict]
    overridden: bool = False


def price_invoice(
    appointment_type: AppointmentType,
    status: AppointmentStatus,
    toggles: LineItemToggles,
    override: Optional[float] = None,
    plan: ServicePlan = ServicePlan.PAY_AS_YOU_GO,
) -> PricedInvoice:
    """
    Compute the invoice total.

    An override replaces the computed total. Otherwise the enabled line items
    are summed; the session itself is covered for Complete Program clients.

    Raises:
        InvalidAmount: non-positive override, a no-show penalty on a session
            that was not a no-show, nothing enabled, or a zero total
    """
    if override is not None:
        if override <= 0:
            raise InvalidAmount("Invoice amount must be greater than zero", details={"amount": override})
        return PricedInvoice(
            total=round(override, 2),
            lines=[{"type": "override", "description": "Custom amount", "amount": round(override, 2)}],
            overridden=True,
        )

    if not toggles.any_enabled():
        raise InvalidAmount("Enable at least one line item or supply an amount")

    appointment_type = AppointmentType(appointment_type)
    status = AppointmentStatus(status)
    lines = []

    if toggles.session_rate:
        covered = ServicePlan(plan) is ServicePlan.COMPLETE_PROGRAM
        lines.append(
            {
                "type": "session",
                "description": f"{appointment_type.value} Consultation"
                + (" (Complete Program)" if covered else ""),
                "amount": 0.0 if covered else session_rate(appointment_type),
            }
        )

    if toggles.no_show_penalty:
        if status is not AppointmentStatus.NO_SHOW:
            raise InvalidAmount(
                "The no-show penalty only applies to no-show appointments",
                details={"status": status.value},
            )
        lines.append(
            {
                "type": "penalty",
                "description": "No-Show Penalty",
                "amount": no_show_penalty(appointment_type),
            }
        )

    if toggles.late_reschedule_fee:
        lines.append(
            {"type": "penalty", "description": "Late Reschedule Fee", "amount": LATE_RESCHEDULE_FEE}
        )

    total = round(sum(line["amount"] for line in lines), 2)
    if total <= 0:
        raise InvalidAmount("Nothing billable for this appointment", details={"lines": lines})
    return PricedInvoice(total=total, lines=lines)


def suggest_toggles(status: AppointmentStatus, late_reschedule: bool) -> LineItemToggles:
    """Default line items for an appointment outcome"""
    status = AppointmentStatus(status)
    return LineItemToggles(
        session_rate=status is AppointmentStatus.DONE,
        no_show_penalty=status is AppointmentStatus.NO_SHOW,
        late_reschedule_fee=bool(late_reschedule),
    )
