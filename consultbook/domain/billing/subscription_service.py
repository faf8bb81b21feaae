"""Subscription service - Complete Program lifecycle for a client's service plan"""

import logging
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ...config import ADMIN_NOTIFICATION_EMAIL
from ...errors import NotFound, StaleSubscriptionWrite
from ...models import ServicePlan, User
from ...shared.clock import Clock, system_clock
from ...shared.transactions import storage_guard, unit_of_work
from ..notifications import enqueue_notification
from .plan_state import PlanState, apply_plan_request, cancel_downgrade, describe, effective_plan
from .repository import BillingRepository

logger = logging.getLogger(__name__)

# Plan actions that are announced to the client
PLAN_NOTIFICATIONS = {
    "upgraded": "plan_upgraded",
    "renewed": "plan_renewed",
    "downgrade_scheduled": "downgrade_scheduled",
}


class SubscriptionService:
    """Service for service plan management"""

    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.repo = BillingRepository()

    def get_service_plan(self, user_id: int) -> dict:
        """Current plan as seen by the client; expiry and due downgrades are evaluated, never written"""
        user = self._get_user(user_id)
        return self._summary(user)

    def get_effective_plan(self, user_id: int) -> ServicePlan:
        user = self._get_user(user_id)
        return effective_plan(PlanState.from_user(user), self.clock.now())

    def update_service_plan(
        self,
        user_id: int,
        requested_plan: ServicePlan,
        confirm: bool = False,
        expected_version: Optional[int] = None,
    ) -> dict:
        """
        Apply a plan request from the client or an admin.

        Upgrades and renewals require ``confirm``. Downgrading an active
        program is deferred to the first day of next month. When
        ``expected_version`` is given the write only happens if the record is
        still at that version.

        Raises:
            ConfirmationRequired: upgrade or renewal without confirmation
            StaleSubscriptionWrite: the record changed underneath the caller
        """
        requested_plan = ServicePlan(requested_plan)

        def transition(state: PlanState):
            return apply_plan_request(state, requested_plan, self.clock.now(), confirmed=confirm)

        return self._write(user_id, transition, expected_version, "update service plan")

    def cancel_planned_downgrade(self, user_id: int, expected_version: Optional[int] = None) -> dict:
        def transition(state: PlanState):
            return cancel_downgrade(state, self.clock.now())

        return self._write(user_id, transition, expected_version, "cancel planned downgrade")

    def _write(self, user_id: int, transition, expected_version: Optional[int], operation: str) -> dict:
        try:
            with unit_of_work(self.db, operation):
                user = self._get_user(user_id)
                if expected_version is not None and user.version != expected_version:
                    raise StaleSubscriptionWrite(
                        "The service plan was changed by someone else, reload and try again",
                        details={"expected_version": expected_version, "current_version": user.version},
                    )

                current = PlanState.from_user(user)
                new_state, action = transition(current)

                if new_state != current:
                    new_state.apply_to(user)
                    self.db.flush()

                notification = PLAN_NOTIFICATIONS.get(action)
                if notification:
                    enqueue_notification(
                        self.db,
                        user.email,
                        notification,
                        {
                            "userId": user.id,
                            "servicePlan": new_state.service_plan.value,
                            "programStartDate": _iso(new_state.program_start_date),
                            "programEndDate": _iso(new_state.program_end_date),
                            "downgradeEffectiveDate": _iso(new_state.downgrade_effective_date),
                        },
                    )
                    if action == "upgraded":
                        enqueue_notification(
                            self.db,
                            ADMIN_NOTIFICATION_EMAIL,
                            "plan_upgraded",
                            {"userId": user.id, "email": user.email},
                        )
        except StaleDataError as e:
            logger.warning(f"⚠️ Concurrent service plan write rejected for user {user_id}")
            raise StaleSubscriptionWrite(
                "The service plan was changed by someone else, reload and try again",
                details={"user_id": user_id},
            ) from e

        if new_state != current:
            logger.info(
                f"📋 Service plan for user {user_id}: {action} "
                f"({current.service_plan.value} → {new_state.service_plan.value})"
            )
        return {**self._summary(user), "action": action}

    def _get_user(self, user_id: int) -> User:
        with storage_guard(self.db, "load client"):
            user = self.repo.get_user_by_id(self.db, user_id)
        if not user:
            raise NotFound("User not found", details={"user_id": user_id})
        return user

    def _summary(self, user: User) -> dict:
        # Attribute access reloads the row after a commit
        with storage_guard(self.db, "describe service plan"):
            state, version = PlanState.from_user(user), user.version
        return {**describe(state, self.clock.now()), "version": version}


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None
