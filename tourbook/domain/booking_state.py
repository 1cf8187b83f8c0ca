"""Booking state machine."""

from enum import Enum

from tourbook.core.exceptions import AlreadyProcessed, InvalidTransition


class BookingStatus(str, Enum):
    HOLDING = "holding"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    REJECTED = "rejected"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    REVIEWING = "reviewing"
    PAID = "paid"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    TRANSFER = "transfer"
    CARD = "card"


BOOKING_TRANSITIONS = {
    BookingStatus.HOLDING: {BookingStatus.PENDING, BookingStatus.EXPIRED},
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.REJECTED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.REFUNDED, BookingStatus.CANCELLED},
    BookingStatus.CANCELLED: set(),
    BookingStatus.EXPIRED: set(),
    BookingStatus.REJECTED: set(),
    BookingStatus.REFUNDED: set(),
}

# Statuses whose seats are debited from the tour's inventory.
ACTIVE_STATUSES = frozenset({BookingStatus.HOLDING, BookingStatus.PENDING, BookingStatus.CONFIRMED})

TERMINAL_STATUSES = frozenset(
    status for status, targets in BOOKING_TRANSITIONS.items() if not targets
)

# Entering one of these from an active status hands the seats back.
# A refund does not: the tour is already closed to new bookings.
SEAT_RELEASING_STATUSES = frozenset({BookingStatus.EXPIRED, BookingStatus.CANCELLED, BookingStatus.REJECTED})

PAYMENT_STATUS_ON_ENTRY = {
    BookingStatus.CONFIRMED: PaymentStatus.PAID,
    BookingStatus.REJECTED: PaymentStatus.REJECTED,
    BookingStatus.EXPIRED: PaymentStatus.EXPIRED,
    BookingStatus.CANCELLED: PaymentStatus.CANCELLED,
    BookingStatus.REFUNDED: PaymentStatus.REFUNDED,
}

SETTLED_PAYMENT_STATUSES = frozenset({PaymentStatus.PAID, PaymentStatus.REJECTED})


def is_terminal(status: BookingStatus) -> bool:
    return BookingStatus(status) in TERMINAL_STATUSES


def releases_seats(current: BookingStatus, target: BookingStatus) -> bool:
    return BookingStatus(current) in ACTIVE_STATUSES and BookingStatus(target) in SEAT_RELEASING_STATUSES


def assert_booking_transition(current: BookingStatus, target: BookingStatus) -> None:
    current = BookingStatus(current)
    target = BookingStatus(target)
    if current in TERMINAL_STATUSES:
        raise AlreadyProcessed(f"Booking is already {current.value}")
    if target not in BOOKING_TRANSITIONS[current]:
        raise InvalidTransition(
            f"Invalid booking transition: {current.value} → {target.value}"
        )
