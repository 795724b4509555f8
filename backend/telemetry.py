# telemetry.py — OpenTelemetry tracing for the staff panel
"""
Exports spans to an OTLP collector when OTEL_EXPORTER_OTLP_ENDPOINT is set.
Without an endpoint nothing is installed, which is the mode tests run in.
"""
import os
import logging

logger = logging.getLogger("arcadia-panel.telemetry")

SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "arcadia-staff-panel")
OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "")

# Health probes are not traced
EXCLUDED_URLS = "health"


def setup_telemetry(app=None, version: str = "", endpoint: str = None):
    """Install a tracer provider and instrument FastAPI, SQLAlchemy and httpx.

    Returns the provider, or None when tracing is disabled.
    """
    endpoint = OTLP_ENDPOINT if endpoint is None else endpoint
    if not endpoint:
        logger.info("OpenTelemetry disabled (OTEL_EXPORTER_OTLP_ENDPOINT not set)")
        return None

    from opentelemetry import trace
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
    from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
    from opentelemetry.sdk.resources import Resource, SERVICE_NAME as RES_SVC_NAME
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    provider = TracerProvider(resource=Resource.create({
        RES_SVC_NAME: SERVICE_NAME,
        "service.version": version,
        "deployment.environment": os.getenv("ENVIRONMENT", "development"),
    }))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True)))
    trace.set_tracer_provider(provider)

    if app is not None:
        FastAPIInstrumentor.instrument_app(app, excluded_urls=EXCLUDED_URLS, tracer_provider=provider)
    SQLAlchemyInstrumentor().instrument(tracer_provider=provider)
    # OAuth exchanges and webhook deliveries
    HTTPXClientInstrumentor().instrument(tracer_provider=provider)

    logger.info(f"OpenTelemetry initialised → {endpoint}")
    return provider
