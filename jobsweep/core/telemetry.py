from __future__ import annotations

from dataclasses import dataclass
import logging
import os

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from jobsweep.core.config import Settings
from jobsweep.schemas.crawl_runs import SourceResult, StaleCheckSummary

logger = logging.getLogger(__name__)

_ZERO_TRACE_ID = "0" * 32
_ZERO_SPAN_ID = "0" * 16
_OTLP_ENDPOINT_ENV = ("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT", "OTEL_EXPORTER_OTLP_ENDPOINT")
_HTTPX_INSTRUMENTOR = HTTPXClientInstrumentor()
_base_record_factory = logging.getLogRecordFactory()
_correlation_installed = False


@dataclass(slots=True)
class TelemetryRuntime:
    enabled: bool
    provider: TracerProvider | None
    app: FastAPI | None = None


def configure_logging(level: int = logging.INFO) -> None:
    _install_log_correlation()
    if logging.getLogger().handlers:
        return
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s trace_id=%(trace_id)s span_id=%(span_id)s %(message)s",
    )


def setup_telemetry(settings: Settings, *, app: FastAPI | None = None) -> TelemetryRuntime:
    """Install the tracer provider shared by the API, the worker and the CLI."""
    if not settings.otel_enabled:
        return TelemetryRuntime(enabled=False, provider=None)

    if settings.otel_log_correlation:
        _install_log_correlation()

    provider = TracerProvider(
        resource=Resource.create(
            {
                SERVICE_NAME: settings.otel_service_name,
                DEPLOYMENT_ENVIRONMENT: settings.environment,
                "jobsweep.crawl_concurrency": settings.crawl_concurrency,
                "jobsweep.stale_fail_threshold": settings.stale_fail_threshold,
            }
        ),
        sampler=TraceIdRatioBased(settings.otel_trace_sample_ratio),
    )
    exporter = _build_exporter(settings)
    if exporter is not None:
        provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    _HTTPX_INSTRUMENTOR.instrument()
    if app is not None:
        FastAPIInstrumentor.instrument_app(app, tracer_provider=provider)
    return TelemetryRuntime(enabled=True, provider=provider, app=app)


def shutdown_telemetry(runtime: TelemetryRuntime) -> None:
    if not runtime.enabled:
        return
    if runtime.app is not None:
        FastAPIInstrumentor.uninstrument_app(runtime.app)
    _HTTPX_INSTRUMENTOR.uninstrument()
    if runtime.provider is not None:
        runtime.provider.force_flush()
        runtime.provider.shutdown()


def record_source_result(span: trace.Span, result: SourceResult) -> None:
    span.set_attribute("crawl.source", result.source)
    span.set_attribute("crawl.jobs_found", result.jobs_found)
    span.set_attribute("crawl.jobs_new", result.jobs_new)
    span.set_attribute("crawl.jobs_skipped", result.jobs_skipped)
    span.set_attribute("crawl.completed", result.completed)
    if result.errors:
        span.set_attribute("crawl.errors", result.errors)


def record_stale_summary(span: trace.Span, summary: StaleCheckSummary, *, deadline_reached: bool) -> None:
    span.set_attribute("stale_check.total_checked", summary.total_checked)
    span.set_attribute("stale_check.still_live", summary.still_live)
    span.set_attribute("stale_check.failed_checks", summary.failed_checks)
    span.set_attribute("stale_check.marked_taken_down", summary.marked_taken_down)
    span.set_attribute("stale_check.deadline_reached", deadline_reached)


def _build_exporter(settings: Settings) -> OTLPSpanExporter | None:
    endpoint = settings.otel_exporter_otlp_endpoint
    if not endpoint and not any(os.getenv(name) for name in _OTLP_ENDPOINT_ENV):
        logger.info("OTel exporter endpoint not set; spans stay local for service=%s", settings.otel_service_name)
        return None
    # Unset arguments fall back to the standard OTEL_EXPORTER_OTLP_* variables.
    headers = parse_headers(settings.otel_exporter_otlp_headers)
    return OTLPSpanExporter(endpoint=endpoint or None, headers=headers or None)


def parse_headers(raw: str | None) -> dict[str, str]:
    if raw is None:
        return {}
    parsed: dict[str, str] = {}
    for item in raw.split(","):
        key, separator, value = item.partition("=")
        if separator and key.strip():
            parsed[key.strip()] = value.strip()
    return parsed


def _install_log_correlation() -> None:
    global _correlation_installed
    if _correlation_installed:
        return

    def record_factory(*args: object, **kwargs: object) -> logging.LogRecord:
        record = _base_record_factory(*args, **kwargs)
        context = trace.get_current_span().get_span_context()
        record.trace_id = format(context.trace_id, "032x") if context.is_valid else _ZERO_TRACE_ID
        record.span_id = format(context.span_id, "016x") if context.is_valid else _ZERO_SPAN_ID
        return record

    logging.setLogRecordFactory(record_factory)
    _correlation_installed = True
