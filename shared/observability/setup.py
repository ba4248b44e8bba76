import os
import logging
import structlog
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

# OpenTelemetry
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
OTEL_TRACING_ENABLED = os.getenv("OTEL_TRACING_ENABLED", "true").lower() == "true"

# 1. Structlog Processor: stamps trace/span ids onto every log line
def add_otel_ids(logger, log_method, event_dict):
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = trace.format_trace_id(ctx.trace_id)
        event_dict["span_id"] = trace.format_span_id(ctx.span_id)
    return event_dict

# 2. Configure Structlog for JSON output
def configure_logging():
    level = getattr(logging, LOG_LEVEL, logging.INFO)
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_otel_ids,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

# 3. Configure OpenTelemetry Tracing
def configure_tracing(app: FastAPI, service_name: str):
    resource = Resource.create({SERVICE_NAME: service_name})
    provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(provider)

    # Export to Jaeger via OTLP gRPC (defaults to localhost:4317)
    otlp_endpoint = os.getenv("OTLP_ENDPOINT", "http://localhost:4317")
    exporter = OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)
    provider.add_span_processor(BatchSpanProcessor(exporter))

    # Spans for incoming requests and for calls to the remote blob store
    FastAPIInstrumentor.instrument_app(app)
    HTTPXClientInstrumentor().instrument()

# 4. Configure Prometheus Metrics
def configure_metrics(app: FastAPI):
    # Request latency / status codes, exposed at /metrics
    Instrumentator().instrument(app).expose(app, include_in_schema=False)

# --- THE MASTER SETUP FUNCTION ---
def setup_observability(app: FastAPI, service_name: str):
    """
    Bootstraps Logging, Tracing, and Metrics for a FastAPI app.
    Call this once per process, on the app that serves traffic.
    """
    configure_logging()
    if OTEL_TRACING_ENABLED:
        configure_tracing(app, service_name)
    configure_metrics(app)
