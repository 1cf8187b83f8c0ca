"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# Reservation metrics
reservation_attempts = Counter(
    'reservation_attempts_total',
    'Total seat reservation attempts',
    ['outcome']  # created, resumed, capacity_exceeded, rejected
)

reservation_latency = Histogram(
    'reservation_latency_seconds',
    'Seat reservation latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Lifecycle metrics
booking_transitions = Counter(
    'booking_transitions_total',
    'Booking state transitions',
    ['from_status', 'to_status']
)

transition_conflicts = Counter(
    'booking_transition_conflicts_total',
    'Compare-and-set transitions that lost a race'
)

# Sweeper metrics
holds_expired = Counter(
    'holds_expired_total',
    'Holds reclaimed by the expiry sweeper'
)

sweep_failures = Counter(
    'sweep_failures_total',
    'Bookings the sweeper failed to expire'
)

sweep_duration = Histogram(
    'sweep_duration_seconds',
    'Duration of a periodic task run',
    ['task'],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0]
)

periodic_task_skipped = Counter(
    'periodic_task_skipped_total',
    'Periodic task runs skipped because another run held the lease',
    ['task']
)

# Ticket scanning
ticket_scans = Counter(
    'ticket_scans_total',
    'Venue ticket scans',
    ['result']  # valid, already_redeemed, invalid
)

# HTTP
request_latency = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency',
    ['method', 'status_code'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)

active_holds = Gauge(
    'active_holds',
    'Holds still pending when the last sweep finished'
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_reservation(outcome: str):
    """Record reservation attempt. Outcome: created, resumed, capacity_exceeded, rejected"""
    reservation_attempts.labels(outcome=outcome).inc()


def record_transition(from_status: str, to_status: str):
    booking_transitions.labels(from_status=from_status, to_status=to_status).inc()


def record_ticket_scan(result: str):
    """Record ticket scan. Result: valid, already_redeemed, invalid"""
    ticket_scans.labels(result=result).inc()
