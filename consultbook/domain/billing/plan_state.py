"""
Service plan state machine.

All transitions are pure functions of ``(state, now)``; nothing here reads the
clock or touches the database. ``SubscriptionService`` loads a ``PlanState``
from the user row, applies one of these and writes the result back.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from dateutil.relativedelta import relativedelta

from ...config import PROGRAM_EXPIRY_WARNING_DAYS, PROGRAM_LENGTH_MONTHS
from ...errors import ConfirmationRequired
from ...models import ServicePlan, User

PAYG = ServicePlan.PAY_AS_YOU_GO
COMPLETE = ServicePlan.COMPLETE_PROGRAM


@dataclass(frozen=True)
class PlanState:
    service_plan: ServicePlan = PAYG
    program_start_date: Optional[datetime] = None
    program_end_date: Optional[datetime] = None
    planned_downgrade: bool = False
    downgrade_effective_date: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "PlanState":
        return cls(
            service_plan=ServicePlan(user.service_plan or PAYG.value),
            program_start_date=user.program_start_date,
            program_end_date=user.program_end_date,
            planned_downgrade=bool(user.planned_downgrade),
            downgrade_effective_date=user.downgrade_effective_date,
        )

    def apply_to(self, user: User) -> None:
        user.service_plan = self.service_plan.value
        user.program_start_date = self.program_start_date
        user.program_end_date = self.program_end_date
        user.planned_downgrade = self.planned_downgrade
        user.downgrade_effective_date = self.downgrade_effective_date


PAY_AS_YOU_GO_STATE = PlanState()


def first_of_next_month(now: datetime) -> datetime:
    return (now + relativedelta(months=1)).replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def new_program_period(now: datetime) -> PlanState:
    return PlanState(
        service_plan=COMPLETE,
        program_start_date=now,
        program_end_date=now + relativedelta(months=PROGRAM_LENGTH_MONTHS),
    )


def is_expired(state: PlanState, now: datetime) -> bool:
    return (
        state.service_plan is COMPLETE
        and state.program_end_date is not None
        and state.program_end_date < now
    )


def downgrade_due(state: PlanState, now: datetime) -> bool:
    return (
        state.planned_downgrade
        and state.downgrade_effective_date is not None
        and state.downgrade_effective_date <= now
    )


def effective_plan(state: PlanState, now: datetime) -> ServicePlan:
    """Plan presented to callers; expiry and due downgrades are applied lazily"""
    if state.service_plan is COMPLETE and (is_expired(state, now) or downgrade_due(state, now)):
        return PAYG
    return state.service_plan


def materialize(state: PlanState, now: datetime) -> PlanState:
    """Fold a downgrade whose effective date has passed into the stored state"""
    if downgrade_due(state, now):
        return PAY_AS_YOU_GO_STATE
    return state


def apply_plan_request(
    state: PlanState, requested: ServicePlan, now: datetime, confirmed: bool = False
) -> tuple[PlanState, str]:
    """
    Resolve a requested plan against the current state.

    Returns the next state and the action taken: upgraded, renewed, unchanged,
    downgrade_scheduled, downgrade_cancelled or downgraded. Re-submitting
    complete-program during an active period never touches the period dates.
    """
    requested = ServicePlan(requested)
    state = materialize(state, now)

    if requested is COMPLETE:
        if state.service_plan is PAYG or state.program_end_date is None:
            _require_confirmation(confirmed, "upgrade")
            return new_program_period(now), "upgraded"
        if is_expired(state, now):
            _require_confirmation(confirmed, "renew")
            return new_program_period(now), "renewed"
        if state.planned_downgrade:
            return replace(state, planned_downgrade=False, downgrade_effective_date=None), "downgrade_cancelled"
        return state, "unchanged"

    if state.service_plan is PAYG:
        return state, "unchanged"
    if state.program_end_date is None or is_expired(state, now):
        # Nothing left of the paid period to honour
        return PAY_AS_YOU_GO_STATE, "downgraded"
    if state.planned_downgrade:
        return state, "unchanged"
    return (
        replace(state, planned_downgrade=True, downgrade_effective_date=first_of_next_month(now)),
        "downgrade_scheduled",
    )


def cancel_downgrade(state: PlanState, now: datetime) -> tuple[PlanState, str]:
    state = materialize(state, now)
    if not state.planned_downgrade:
        return state, "unchanged"
    return replace(state, planned_downgrade=False, downgrade_effective_date=None), "downgrade_cancelled"


def describe(state: PlanState, now: datetime) -> dict:
    """Read model for the plan widget"""
    plan = effective_plan(state, now)

    if state.service_plan is PAYG or (plan is PAYG and downgrade_due(state, now)):
        status, days_remaining = "none", 0
    elif state.program_end_date is None:
        status, days_remaining = "pending", 0
    elif is_expired(state, now):
        status, days_remaining = "expired", 0
    else:
        status = "active"
        days_remaining = math.ceil((state.program_end_date - now).total_seconds() / 86400)

    return {
        "storedPlan": state.service_plan.value,
        "effectivePlan": plan.value,
        "status": status,
        "daysRemaining": days_remaining,
        "isExpiring": status == "active" and days_remaining <= PROGRAM_EXPIRY_WARNING_DAYS,
        "programStartDate": state.program_start_date,
        "programEndDate": state.program_end_date,
        "plannedDowngrade": state.planned_downgrade,
        "downgradeEffectiveDate": state.downgrade_effective_date,
    }


def _require_confirmation(confirmed: bool, action: str) -> None:
    if not confirmed:
        raise ConfirmationRequired(
            f"Explicit confirmation is required to {action} the Complete Program",
            details={"action": action},
        )
