"""
OpenTelemetry tracing setup.

Spans are exported over OTLP when an instrumentation key is configured, and
printed to the console in the development environment.
"""

import logging
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Tracer

from pinger import __version__
from pinger.config import Settings

logger = logging.getLogger(__name__)

# Global tracer instance
_tracer: Tracer | None = None


def setup_tracing(settings: Settings) -> Tracer:
    """
    Set up OpenTelemetry tracing.

    Args:
        settings: The application settings.

    Returns:
        Tracer: The tracer instance.
    """
    global _tracer

    resource = Resource.create(
        {
            "service.name": settings.otel_service_name,
            "service.version": __version__,
            "deployment.environment": settings.environment,
        }
    )

    provider = TracerProvider(resource=resource)

    insights = settings.application_insights
    if insights.instrumentation_key:
        otlp_exporter = OTLPSpanExporter(
            endpoint=insights.otlp_endpoint,
            headers={"x-instrumentation-key": insights.instrumentation_key},
            insecure=insights.otlp_endpoint.startswith("http://"),
        )
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        logger.info("OTLP span export enabled", extra={"endpoint": insights.otlp_endpoint})

    if settings.is_development:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)

    _tracer = trace.get_tracer(settings.otel_service_name)

    return _tracer


def instrument_fastapi(app: Any) -> None:
    """Instrument FastAPI application with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine: Any) -> None:
    """
    Instrument SQLAlchemy engine with OpenTelemetry.

    Args:
        engine: The async engine; its sync engine is instrumented.
    """
    SQLAlchemyInstrumentor().instrument(engine=getattr(engine, "sync_engine", engine))


def get_tracer() -> Tracer:
    """
    Get the tracer instance.

    Falls back to the global provider's tracer when setup_tracing was not
    called, which is a no-op tracer unless a provider is installed.
    """
    if _tracer is None:
        return trace.get_tracer("webapp-pinger")
    return _tracer
