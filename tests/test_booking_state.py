"""
Tests for the booking state machine.
"""

import pytest

from tourbook.core.exceptions import AlreadyProcessed, InvalidTransition
from tourbook.domain.booking_state import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    BookingStatus,
    assert_booking_transition,
    is_terminal,
    releases_seats,
)


@pytest.mark.parametrize(
    "current,target",
    [
        (BookingStatus.HOLDING, BookingStatus.PENDING),
        (BookingStatus.HOLDING, BookingStatus.EXPIRED),
        (BookingStatus.PENDING, BookingStatus.CONFIRMED),
        (BookingStatus.PENDING, BookingStatus.REJECTED),
        (BookingStatus.PENDING, BookingStatus.CANCELLED),
        (BookingStatus.CONFIRMED, BookingStatus.REFUNDED),
        (BookingStatus.CONFIRMED, BookingStatus.CANCELLED),
    ],
)
def test_allowed_transitions(current, target):
    assert_booking_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (BookingStatus.HOLDING, BookingStatus.CONFIRMED),
        (BookingStatus.HOLDING, BookingStatus.REFUNDED),
        (BookingStatus.PENDING, BookingStatus.EXPIRED),
        (BookingStatus.CONFIRMED, BookingStatus.REJECTED),
    ],
)
def test_skipping_states_is_invalid(current, target):
    with pytest.raises(InvalidTransition):
        assert_booking_transition(current, target)


@pytest.mark.parametrize("current", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
def test_terminal_states_never_move(current):
    assert is_terminal(current)
    with pytest.raises(AlreadyProcessed):
        assert_booking_transition(current, BookingStatus.CONFIRMED)


def test_terminal_and_active_partition_all_states():
    assert ACTIVE_STATUSES | TERMINAL_STATUSES == set(BookingStatus)
    assert not ACTIVE_STATUSES & TERMINAL_STATUSES


def test_only_releasing_moves_credit_seats():
    assert releases_seats(BookingStatus.HOLDING, BookingStatus.EXPIRED)
    assert releases_seats(BookingStatus.PENDING, BookingStatus.REJECTED)
    assert releases_seats(BookingStatus.CONFIRMED, BookingStatus.CANCELLED)
    assert not releases_seats(BookingStatus.HOLDING, BookingStatus.PENDING)
    assert not releases_seats(BookingStatus.PENDING, BookingStatus.CONFIRMED)
    assert not releases_seats(BookingStatus.CONFIRMED, BookingStatus.REFUNDED)
