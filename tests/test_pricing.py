import pytest

from consultbook.domain.billing.pricing import (
    LineItemToggles,
    no_show_penalty,
    price_invoice,
    session_rate,
    suggest_toggles,
)
from consultbook.errors import InvalidAmount
from consultbook.models import AppointmentStatus, AppointmentType, ServicePlan

INITIAL = AppointmentType.INITIAL
FOLLOW_UP = AppointmentType.FOLLOW_UP
DONE = AppointmentStatus.DONE
NO_SHOW = AppointmentStatus.NO_SHOW


def test_rates():
    assert session_rate(INITIAL) == 95.0
    assert session_rate(FOLLOW_UP) == 75.0
    assert no_show_penalty(INITIAL) == 47.5
    assert no_show_penalty(FOLLOW_UP) == 37.5


def test_session_rate_only():
    priced = price_invoice(INITIAL, DONE, LineItemToggles(session_rate=True))

    assert priced.total == 95.0
    assert [line["description"] for line in priced.lines] == ["Initial Consultation"]


def test_session_rate_with_late_reschedule_fee():
    priced = price_invoice(INITIAL, DONE, LineItemToggles(session_rate=True, late_reschedule_fee=True))

    assert priced.total == 100.0


def test_no_show_penalty_with_late_fee():
    priced = price_invoice(
        FOLLOW_UP, NO_SHOW, LineItemToggles(no_show_penalty=True, late_reschedule_fee=True)
    )

    assert priced.total == 42.5


def test_override_replaces_computed_total():
    priced = price_invoice(
        INITIAL, DONE, LineItemToggles(session_rate=True, late_reschedule_fee=True), override=60
    )

    assert priced.total == 60
    assert priced.overridden is True


def test_override_alone_is_enough():
    assert price_invoice(INITIAL, DONE, LineItemToggles(), override=80).total == 80


@pytest.mark.parametrize("override", [0, -10])
def test_non_positive_override_is_rejected(override):
    with pytest.raises(InvalidAmount):
        price_invoice(INITIAL, DONE, LineItemToggles(session_rate=True), override=override)


def test_nothing_enabled_is_rejected():
    with pytest.raises(InvalidAmount):
        price_invoice(INITIAL, DONE, LineItemToggles())


def test_no_show_penalty_requires_a_no_show():
    with pytest.raises(InvalidAmount):
        price_invoice(INITIAL, DONE, LineItemToggles(no_show_penalty=True))


def test_complete_program_covers_the_session():
    priced = price_invoice(
        INITIAL,
        DONE,
        LineItemToggles(session_rate=True, late_reschedule_fee=True),
        plan=ServicePlan.COMPLETE_PROGRAM,
    )

    assert priced.total == 5.0
    assert priced.lines[0]["amount"] == 0.0


def test_complete_program_session_alone_is_not_billable():
    with pytest.raises(InvalidAmount):
        price_invoice(
            INITIAL, DONE, LineItemToggles(session_rate=True), plan=ServicePlan.COMPLETE_PROGRAM
        )


def test_suggested_toggles_follow_the_outcome():
    assert suggest_toggles(DONE, False) == LineItemToggles(session_rate=True)
    assert suggest_toggles(NO_SHOW, True) == LineItemToggles(
        no_show_penalty=True, late_reschedule_fee=True
    )
    assert suggest_toggles(AppointmentStatus.CANCELLED, False) == LineItemToggles()
