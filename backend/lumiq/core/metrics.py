"""
Prometheus instrumentation for room lifecycle and booking flows.
Served at /metrics by the application.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Room lifecycle metrics
room_transitions = Counter(
    'room_transitions_total',
    'Room lifecycle operations by outcome',
    ['transition', 'result']  # result: success or the error code
)

reservation_latency = Histogram(
    'reservation_latency_seconds',
    'Latency of the compare-and-set reserve statement',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Booking / coordinator metrics
booking_reservations = Counter(
    'booking_reservations_total',
    'Reservation attempts made right after booking creation',
    ['outcome']  # confirmed, deferred
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set/invalidate, hit/miss/error
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    """Prometheus text exposition of every registered metric."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_transition(transition: str, result: str = "success"):
    """Record a lifecycle operation. Result: success or an error code."""
    room_transitions.labels(transition=transition, result=result).inc()


def record_booking_reservation(confirmed: bool):
    outcome = "confirmed" if confirmed else "deferred"
    booking_reservations.labels(outcome=outcome).inc()


def record_cache_operation(operation: str, result: str):
    cache_operations.labels(operation=operation, result=result).inc()
