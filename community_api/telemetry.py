"""
Observability setup:
  - OpenTelemetry distributed tracing → Jaeger (via OTLP gRPC)
  - Prometheus counters for write paths and best-effort side effects

Tracing is configured once per process from ``create_app``; the counters
are registered at import time and exposed on /metrics.
"""
import logging

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import Counter
from sqlalchemy.ext.asyncio import AsyncEngine

from community_api.config import Settings

logger = logging.getLogger(__name__)

# ─────────────────────────── Prometheus Metrics ───────────────────────────
POSTS_CREATED_TOTAL = Counter(
    "posts_created_total",
    "Total number of posts published",
)

LIKE_TOGGLES_TOTAL = Counter(
    "like_toggles_total",
    "Like toggles by target kind and resulting state",
    ["target", "state"],  # target: 'post' | 'comment'; state: 'liked' | 'unliked'
)

FOLLOW_EVENTS_TOTAL = Counter(
    "follow_events_total",
    "Follow graph mutations",
    ["action"],  # 'follow' | 'unfollow'
)

NOTIFICATIONS_CREATED_TOTAL = Counter(
    "notifications_created_total",
    "In-app notifications written",
    ["type"],
)

BEST_EFFORT_FAILURES_TOTAL = Counter(
    "best_effort_failures_total",
    "Swallowed failures of side effects that never fail the primary action",
    ["stage"],  # 'notification' | 'retract' | 'email' | 'media_cleanup'
)


# ─────────────────────────── OpenTelemetry Setup ──────────────────────────
def setup_tracing(settings: Settings) -> None:
    """Configure the global OTel TracerProvider with OTLP/Jaeger export."""
    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "deployment.environment": settings.environment,
        }
    )

    provider = TracerProvider(resource=resource)

    try:
        otlp_exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        logger.info(
            "OTel tracing configured → %s", settings.otel_exporter_otlp_endpoint
        )
    except Exception as exc:
        logger.warning("Could not connect to OTLP exporter: %s — traces disabled", exc)

    trace.set_tracer_provider(provider)


def instrument_engine(engine: AsyncEngine) -> None:
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def instrument_app(app) -> None:  # noqa: ANN001
    """Call after app is created to add FastAPI request spans."""
    FastAPIInstrumentor.instrument_app(app)
