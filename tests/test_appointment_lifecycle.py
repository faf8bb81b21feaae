from datetime import datetime

import pytest

from consultbook.domain.notifications import list_pending_notifications
from consultbook.domain.scheduling import AppointmentService
from consultbook.domain.scheduling.appointment_service import (
    compute_reschedule_policy,
    validate_status_transition,
)
from consultbook.domain.scheduling.schemas import AppointmentCreate
from consultbook.errors import IllegalTransition, NotFound, SlotConflict
from consultbook.models import AppointmentStatus, AppointmentType, User

S = AppointmentStatus


@pytest.fixture
def service(db, clock):
    return AppointmentService(db, clock)


def test_request_appointment_starts_pending_and_notifies_admin(db, service, client_user):
    appointment = service.request_appointment(
        client_user.id,
        AppointmentCreate(
            date="2024-03-05",
            timeslot="10:00",
            type=AppointmentType.FOLLOW_UP,
            email="Client@Example.com",
            name="Ada Client",
        ),
    )

    assert appointment.status == S.PENDING.value
    assert appointment.email == "client@example.com"
    queued = list_pending_notifications(db)
    assert [n.type for n in queued] == ["appointment_requested"]
    assert queued[0].data["appointmentId"] == appointment.id


def test_confirm_pending_appointment_queues_confirmation(db, service, make_appointment):
    appointment = make_appointment(status=S.PENDING)

    service.transition(appointment.id, S.CONFIRMED)

    assert appointment.status == S.CONFIRMED.value
    queued = list_pending_notifications(db)
    assert [(n.to, n.type) for n in queued] == [("client@example.com", "appointment_confirmed")]


def test_pending_appointment_cannot_be_moved_while_confirming(service, make_appointment):
    appointment = make_appointment(status=S.PENDING)

    with pytest.raises(IllegalTransition):
        service.transition(appointment.id, S.CONFIRMED, date="2024-03-06", timeslot="11:00")


def test_admin_cannot_request_a_reschedule(service, make_appointment):
    appointment = make_appointment(status=S.CONFIRMED)

    with pytest.raises(IllegalTransition):
        service.transition(appointment.id, S.RESCHEDULE_REQUESTED)


@pytest.mark.parametrize("terminal", [S.DONE, S.NO_SHOW, S.CANCELLED])
def test_terminal_states_have_no_exits(service, make_appointment, terminal):
    appointment = make_appointment(status=terminal)

    with pytest.raises(IllegalTransition):
        service.transition(appointment.id, S.CONFIRMED)


def test_transition_table():
    assert validate_status_transition(S.PENDING, S.CONFIRMED)
    assert validate_status_transition(S.PENDING, S.CANCELLED)
    assert not validate_status_transition(S.PENDING, S.DONE)
    assert validate_status_transition(S.CONFIRMED, S.NO_SHOW)
    assert validate_status_transition(S.RESCHEDULE_REQUESTED, S.CONFIRMED)
    assert not validate_status_transition(S.RESCHEDULE_REQUESTED, S.DONE)
    assert not validate_status_transition(S.DONE, S.CANCELLED)


def test_outcome_requires_session_to_have_started(service, make_appointment, clock):
    appointment = make_appointment(date="2024-03-04", timeslot="10:00", status=S.CONFIRMED)

    with pytest.raises(IllegalTransition):
        service.transition(appointment.id, S.DONE)

    clock.advance(hours=2)
    service.transition(appointment.id, S.DONE)

    assert appointment.status == S.DONE.value


def test_confirmed_session_can_be_cancelled_before_it_starts(service, make_appointment):
    appointment = make_appointment(status=S.CONFIRMED)

    service.transition(appointment.id, S.CANCELLED)

    assert appointment.status == S.CANCELLED.value


def test_unknown_appointment(service):
    with pytest.raises(NotFound):
        service.transition(999, S.CONFIRMED)


def test_late_reschedule_request_is_flagged(db, service, make_appointment, client_user):
    # 2.5 hours before the session
    appointment = make_appointment(date="2024-03-04", timeslot="10:30", status=S.CONFIRMED)

    service.request_reschedule(appointment.id, client_user.id)

    assert appointment.status == S.RESCHEDULE_REQUESTED.value
    assert appointment.late_reschedule is True
    assert appointment.reschedule_requested_at == datetime(2024, 3, 4, 8, 0)
    queued = list_pending_notifications(db)
    assert queued[-1].type == "reschedule_requested"
    assert queued[-1].data["lateReschedule"] is True


def test_early_reschedule_request_is_free(service, make_appointment, client_user):
    appointment = make_appointment(date="2024-03-05", timeslot="10:00", status=S.CONFIRMED)

    service.request_reschedule(appointment.id, client_user.id)

    assert appointment.late_reschedule is False


def test_reschedule_of_a_long_past_session_is_rejected(service, make_appointment, client_user):
    appointment = make_appointment(date="2024-03-04", timeslot="06:00", status=S.CONFIRMED)

    with pytest.raises(IllegalTransition):
        service.request_reschedule(appointment.id, client_user.id)


def test_reschedule_request_by_another_client(db, service, make_appointment):
    other = User(firebase_uid="other-uid", email="other@example.com", full_name="Other")
    db.add(other)
    db.commit()
    appointment = make_appointment(status=S.CONFIRMED)

    with pytest.raises(NotFound):
        service.request_reschedule(appointment.id, other.id)


def test_reschedule_request_frees_the_slot(db, service, make_appointment, client_user):
    appointment = make_appointment(status=S.CONFIRMED)
    service.request_reschedule(appointment.id, client_user.id)

    other = service.request_appointment(
        client_user.id,
        AppointmentCreate(
            date="2024-03-05",
            timeslot="10:00",
            type=AppointmentType.INITIAL,
            email="client@example.com",
            name="Ada Client",
        ),
    )

    assert other.status == S.PENDING.value


def test_approve_reschedule_moves_to_new_slot(service, make_appointment, client_user):
    appointment = make_appointment(status=S.CONFIRMED)
    service.request_reschedule(appointment.id, client_user.id)

    service.transition(appointment.id, S.CONFIRMED, date="2024-03-06", timeslot="11:00")

    assert appointment.status == S.CONFIRMED.value
    assert (appointment.date, appointment.timeslot) == ("2024-03-06", "11:00")


def test_approve_reschedule_into_taken_slot_conflicts(service, make_appointment, client_user):
    appointment = make_appointment(status=S.CONFIRMED)
    service.request_reschedule(appointment.id, client_user.id)
    make_appointment(date="2024-03-06", timeslot="11:00", status=S.PENDING)

    with pytest.raises(SlotConflict):
        service.transition(appointment.id, S.CONFIRMED, date="2024-03-06", timeslot="11:00")

    assert service.get_appointment(appointment.id).status == S.RESCHEDULE_REQUESTED.value


class TestReschedulePolicy:
    start = datetime(2024, 3, 4, 12, 0)

    def test_free_outside_late_window(self):
        policy = compute_reschedule_policy(self.start, datetime(2024, 3, 4, 7, 0))

        assert policy["canReschedule"] is True
        assert policy["requiresFee"] is False
        assert policy["feeAmount"] == 0.0

    def test_fee_inside_late_window(self):
        policy = compute_reschedule_policy(self.start, datetime(2024, 3, 4, 9, 0))

        assert policy["hoursUntil"] == 3
        assert policy["requiresFee"] is True
        assert policy["feeAmount"] == 5.0

    def test_window_boundary_is_late(self):
        policy = compute_reschedule_policy(self.start, datetime(2024, 3, 4, 8, 0))

        assert policy["requiresFee"] is True

    def test_session_more_than_an_hour_past(self):
        policy = compute_reschedule_policy(self.start, datetime(2024, 3, 4, 13, 30))

        assert policy["canReschedule"] is False
