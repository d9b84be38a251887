"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry
import structlog

from .config import settings

SERVICE_NAME = "charter-reservation-engine"

# Prometheus metrics
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Calendar metrics
SLOT_CLAIMS = Counter(
    'calendar_slot_claims_total',
    'Binding slot claims by outcome',
    ['outcome'],
    registry=REGISTRY
)

HOLDS_EXPIRED = Counter(
    'calendar_holds_expired_total',
    'Pending holds reverted to available by the sweep',
    registry=REGISTRY
)

# Booking metrics
BOOKINGS_CONFIRMED = Counter(
    'bookings_confirmed_total',
    'Total bookings confirmed',
    registry=REGISTRY
)

BOOKINGS_TERMINATED = Counter(
    'bookings_terminated_total',
    'Bookings that ended without confirmation or were cancelled',
    ['status'],
    registry=REGISTRY
)

PAYMENT_HANDOFF_FAILURES = Counter(
    'payment_handoff_failures_total',
    'Payment session requests that could not reach the processor',
    registry=REGISTRY
)

REFERRALS_REDEEMED = Counter(
    'referral_redemptions_total',
    'Referral codes redeemed on confirmed bookings',
    registry=REGISTRY
)

# Waitlist metrics
WAITLIST_PROMOTIONS = Counter(
    'waitlist_promotions_total',
    'Waitlist entries offered a freed slot',
    registry=REGISTRY
)

WAITLIST_WAITING = Gauge(
    'waitlist_entries_waiting',
    'Waitlist entries still waiting after the last sweep',
    registry=REGISTRY
)

# Price alert metrics
PRICE_ALERTS_TRIGGERED = Counter(
    'price_alerts_triggered_total',
    'Price alerts that fired a notification',
    registry=REGISTRY
)

PRICE_ALERTS_REARMED = Counter(
    'price_alerts_rearmed_total',
    'Price alerts re-armed after the price rose above target',
    registry=REGISTRY
)


def setup_structured_logging():
    """
    Configure structlog and route stdlib logging through the same renderer.

    Services log with the stdlib logger and ``extra={...}``; those fields,
    the request context bound by the correlation middleware and the active
    span all end up in one JSON line (console output in development).
    """

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict["trace_id"] = format(ctx.trace_id, "032x")
            event_dict["span_id"] = format(ctx.span_id, "016x")
        return event_dict

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        add_trace_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
    ]
    renderer = structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors + [structlog.stdlib.ExtraAdder()],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    ))

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(settings.log_level)


def _resource(app_name: str) -> Resource:
    return Resource.create({
        "service.name": app_name,
        "service.version": "1.0.0",
        "deployment.environment": settings.environment,
    })


def setup_tracing(app_name: str = SERVICE_NAME):
    """Install the tracer provider; spans leave the process only when an OTLP endpoint is set."""
    provider = TracerProvider(resource=_resource(app_name))
    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))
    trace.set_tracer_provider(provider)
    return trace.get_tracer(app_name)


def setup_metrics(app_name: str = SERVICE_NAME):
    """OTLP metric export next to the Prometheus registry, when an endpoint is configured."""
    if settings.otlp_endpoint:
        reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=settings.otlp_endpoint),
            export_interval_millis=60000,
        )
        metrics.set_meter_provider(MeterProvider(resource=_resource(app_name), metric_readers=[reader]))
    return metrics.get_meter(app_name)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)
    

def instrument_sqlalchemy(engine):
    """Instrument the async engine's sync core with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


class MetricsCollector:
    """Collector for reservation metrics."""

    @staticmethod
    def record_claim(outcome: str):
        """Record a binding claim outcome (claimed or conflict)."""
        SLOT_CLAIMS.labels(outcome=outcome).inc()

    @staticmethod
    def record_holds_expired(count: int):
        """Record holds released by the sweep."""
        if count:
            HOLDS_EXPIRED.inc(count)

    @staticmethod
    def record_booking_confirmed():
        BOOKINGS_CONFIRMED.inc()

    @staticmethod
    def record_booking_terminated(status: str):
        """Record a booking that became expired or cancelled."""
        BOOKINGS_TERMINATED.labels(status=status).inc()

    @staticmethod
    def record_handoff_failure():
        PAYMENT_HANDOFF_FAILURES.inc()

    @staticmethod
    def record_referral_redeemed():
        REFERRALS_REDEEMED.inc()

    @staticmethod
    def record_waitlist_promotion():
        WAITLIST_PROMOTIONS.inc()

    @staticmethod
    def set_waitlist_waiting(count: int):
        WAITLIST_WAITING.set(count)

    @staticmethod
    def record_price_alert_triggered():
        PRICE_ALERTS_TRIGGERED.inc()

    @staticmethod
    def record_price_alert_rearmed():
        PRICE_ALERTS_REARMED.inc()


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()
