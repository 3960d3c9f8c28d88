"""
Prometheus metrics for the studio ledger.

Service timings are fed by the @measure_operation decorator; the domain
counters below are incremented by the booking and payment services after
their transactions commit.
"""

from typing import Optional, cast

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest

# Custom registry so test runs and multiple app instances do not collide with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "studio_ledger_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "studio_ledger_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "studio_ledger_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

bookings_total = Counter(
    "studio_ledger_bookings_total",
    "Booking attempts by outcome",
    ["outcome"],  # booked | already_booked
    registry=REGISTRY,
)

cancellations_total = Counter(
    "studio_ledger_cancellations_total",
    "Cancelled bookings",
    ["refunded"],
    registry=REGISTRY,
)

pass_grants_total = Counter(
    "studio_ledger_pass_grants_total",
    "Pass grants applied from payments",
    ["kind", "source"],  # kind: credits | unlimited; source: webhook | confirm
    registry=REGISTRY,
)

duplicate_payment_events_total = Counter(
    "studio_ledger_duplicate_payment_events_total",
    "Payment references seen again after they were already applied",
    ["source"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'BookingService')
            operation: Operation name (e.g., 'book_class')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def inc_booking(outcome: str) -> None:
        bookings_total.labels(outcome=outcome).inc()

    @staticmethod
    def inc_cancellation(refunded: bool) -> None:
        cancellations_total.labels(refunded=str(refunded).lower()).inc()

    @staticmethod
    def inc_pass_grant(kind: str, source: str) -> None:
        pass_grants_total.labels(kind=kind, source=source).inc()

    @staticmethod
    def inc_duplicate_payment_event(source: str) -> None:
        duplicate_payment_events_total.labels(source=source).inc()

    @staticmethod
    def get_metrics() -> bytes:
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)


# Singleton instance
prometheus_metrics = PrometheusMetrics()
