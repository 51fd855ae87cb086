"""
Prometheus metrics module for motoserve.

Service timings are fed by the @measure_operation decorator; the booking
core adds counters for locks, reassignment outcomes and the cancellation
economy. Metric names follow Prometheus naming conventions.
"""

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "motoserve_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "motoserve_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "motoserve_errors_total",
    "Total number of errors by type",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

booking_lock_total = Counter(
    "motoserve_booking_lock_total",
    "Booking lock operations by outcome",
    ["action", "outcome"],
    registry=REGISTRY,
)

reassignment_outcomes_total = Counter(
    "motoserve_reassignment_outcomes_total",
    "Reassignment attempts by trigger and outcome",
    ["trigger", "outcome"],
    registry=REGISTRY,
)

cancellations_total = Counter(
    "motoserve_cancellations_total",
    "Customer cancellations by outcome",
    ["outcome"],
    registry=REGISTRY,
)

cancellation_tokens_charged_total = Counter(
    "motoserve_cancellation_tokens_charged_total",
    "Cancellation tokens deducted from customer ledgers",
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
            operation: Operation/method name (e.g., 'cancel_booking')
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
    def record_booking_lock(action: str, outcome: str) -> None:
        booking_lock_total.labels(action=action, outcome=outcome).inc()

    @staticmethod
    def record_reassignment(trigger: str, outcome: str) -> None:
        reassignment_outcomes_total.labels(trigger=trigger, outcome=outcome).inc()

    @staticmethod
    def record_cancellation(outcome: str, tokens_charged: int = 0) -> None:
        cancellations_total.labels(outcome=outcome).inc()
        if tokens_charged:
            cancellation_tokens_charged_total.inc(tokens_charged)

    @staticmethod
    def get_metrics() -> bytes:
        return generate_latest(REGISTRY)

    @staticmethod
    def get_content_type() -> str:
        return CONTENT_TYPE_LATEST


prometheus_metrics = PrometheusMetrics()
