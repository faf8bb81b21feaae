from datetime import datetime

import pytest

from consultbook.domain.billing.plan_state import (
    PAY_AS_YOU_GO_STATE,
    PlanState,
    apply_plan_request,
    cancel_downgrade,
    describe,
    effective_plan,
    first_of_next_month,
    new_program_period,
)
from consultbook.errors import ConfirmationRequired
from consultbook.models import ServicePlan

PAYG = ServicePlan.PAY_AS_YOU_GO
COMPLETE = ServicePlan.COMPLETE_PROGRAM

NOW = datetime(2024, 3, 4, 8, 0)


def active_program(start=datetime(2024, 2, 1)):
    return PlanState(
        service_plan=COMPLETE, program_start_date=start, program_end_date=datetime(2024, 5, 1)
    )


def test_first_of_next_month():
    assert first_of_next_month(NOW) == datetime(2024, 4, 1)
    assert first_of_next_month(datetime(2024, 12, 31, 23, 59)) == datetime(2025, 1, 1)


def test_program_lasts_three_months():
    state = new_program_period(datetime(2024, 11, 30, 9, 0))

    assert state.program_end_date == datetime(2025, 2, 28, 9, 0)


def test_upgrade_requires_confirmation():
    with pytest.raises(ConfirmationRequired):
        apply_plan_request(PAY_AS_YOU_GO_STATE, COMPLETE, NOW)


def test_upgrade_sets_program_window():
    state, action = apply_plan_request(PAY_AS_YOU_GO_STATE, COMPLETE, NOW, confirmed=True)

    assert action == "upgraded"
    assert state.service_plan is COMPLETE
    assert state.program_start_date == NOW
    assert state.program_end_date == datetime(2024, 6, 4, 8, 0)


def test_resubmitting_complete_program_keeps_the_window():
    current = active_program()

    state, action = apply_plan_request(current, COMPLETE, NOW, confirmed=True)

    assert action == "unchanged"
    assert state == current


def test_resubmitting_complete_program_cancels_planned_downgrade():
    current, _ = apply_plan_request(active_program(), PAYG, NOW)

    state, action = apply_plan_request(current, COMPLETE, NOW)

    assert action == "downgrade_cancelled"
    assert state == active_program()


def test_expired_program_presents_pay_as_you_go_without_mutation():
    current = active_program()
    later = datetime(2024, 5, 2)

    assert effective_plan(current, later) is PAYG
    assert current.service_plan is COMPLETE
    assert describe(current, later)["status"] == "expired"


def test_renew_expired_program():
    later = datetime(2024, 5, 2, 10, 0)

    state, action = apply_plan_request(active_program(), COMPLETE, later, confirmed=True)

    assert action == "renewed"
    assert state.program_start_date == later
    assert state.program_end_date == datetime(2024, 8, 2, 10, 0)


def test_renew_requires_confirmation():
    with pytest.raises(ConfirmationRequired):
        apply_plan_request(active_program(), COMPLETE, datetime(2024, 5, 2))


def test_downgrade_from_active_program_is_deferred():
    state, action = apply_plan_request(active_program(), PAYG, NOW)

    assert action == "downgrade_scheduled"
    assert state.service_plan is COMPLETE
    assert state.planned_downgrade is True
    assert state.downgrade_effective_date == datetime(2024, 4, 1)
    assert effective_plan(state, NOW) is COMPLETE
    assert effective_plan(state, datetime(2024, 4, 1)) is PAYG


def test_downgrade_from_expired_program_is_immediate():
    state, action = apply_plan_request(active_program(), PAYG, datetime(2024, 5, 2))

    assert action == "downgraded"
    assert state == PAY_AS_YOU_GO_STATE


def test_pay_as_you_go_to_pay_as_you_go_is_a_no_op():
    state, action = apply_plan_request(PAY_AS_YOU_GO_STATE, PAYG, NOW)

    assert action == "unchanged"
    assert state == PAY_AS_YOU_GO_STATE


def test_due_downgrade_is_materialised_before_a_request():
    scheduled, _ = apply_plan_request(active_program(), PAYG, NOW)

    state, action = apply_plan_request(scheduled, PAYG, datetime(2024, 4, 2))

    assert action == "unchanged"
    assert state == PAY_AS_YOU_GO_STATE


def test_upgrade_after_due_downgrade_starts_a_new_period():
    scheduled, _ = apply_plan_request(active_program(), PAYG, NOW)
    later = datetime(2024, 4, 2)

    state, action = apply_plan_request(scheduled, COMPLETE, later, confirmed=True)

    assert action == "upgraded"
    assert state.program_start_date == later


def test_cancel_downgrade():
    scheduled, _ = apply_plan_request(active_program(), PAYG, NOW)

    state, action = cancel_downgrade(scheduled, NOW)

    assert action == "downgrade_cancelled"
    assert state.planned_downgrade is False
    assert state.downgrade_effective_date is None


def test_cancel_without_planned_downgrade():
    assert cancel_downgrade(active_program(), NOW) == (active_program(), "unchanged")


class TestDescribe:
    def test_pay_as_you_go(self):
        summary = describe(PAY_AS_YOU_GO_STATE, NOW)

        assert summary["status"] == "none"
        assert summary["effectivePlan"] == "pay-as-you-go"
        assert summary["isExpiring"] is False

    def test_active_program(self):
        summary = describe(active_program(), NOW)

        assert summary["status"] == "active"
        assert summary["daysRemaining"] == 58
        assert summary["isExpiring"] is False

    def test_expiring_program(self):
        summary = describe(active_program(), datetime(2024, 4, 20))

        assert summary["daysRemaining"] == 11
        assert summary["isExpiring"] is True

    def test_program_without_dates_is_pending(self):
        summary = describe(PlanState(service_plan=COMPLETE), NOW)

        assert summary["status"] == "pending"
