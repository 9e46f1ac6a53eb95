"""Logging and tracing bootstrap for ingest runs.

Every log line carries the active trace/span ids. When tracing is enabled,
outbound httpx calls are instrumented and each span is tagged with the job
board it talks to, so slow probes can be grouped per provider.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

from jobingest.core.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s trace_id=%(trace_id)s span_id=%(span_id)s %(message)s"
PROVIDER_HOST_SUFFIXES = {
    "greenhouse.io": "greenhouse",
    "lever.co": "lever",
    "jobs.personio.de": "personio",
}
PROVIDER_SPAN_ATTRIBUTE = "jobingest.provider"
SERVICE_NAMESPACE = "jobingest"

_BASE_LOG_RECORD_FACTORY = logging.getLogRecordFactory()
_LOG_CORRELATION_INSTALLED = False
_HTTPX_INSTRUMENTOR = HTTPXClientInstrumentor()
_EMPTY_TRACE_ID = "0" * 32
_EMPTY_SPAN_ID = "0" * 16


@dataclass(slots=True)
class TelemetryRuntime:
    enabled: bool
    provider: TracerProvider | None


def configure_logging(level: int | str = logging.INFO) -> None:
    _install_log_correlation()
    if logging.getLogger().handlers:
        return
    logging.basicConfig(level=level.upper() if isinstance(level, str) else level, format=LOG_FORMAT)


def setup_telemetry(settings: Settings) -> TelemetryRuntime:
    if not settings.otel_enabled:
        return TelemetryRuntime(enabled=False, provider=None)

    if settings.otel_log_correlation:
        _install_log_correlation()

    provider = TracerProvider(
        resource=Resource.create(
            {
                SERVICE_NAME: settings.otel_service_name,
                "service.namespace": SERVICE_NAMESPACE,
                DEPLOYMENT_ENVIRONMENT: settings.environment,
                "jobingest.probe_timeout_seconds": settings.probe_timeout_seconds,
                "jobingest.fetch_timeout_seconds": settings.fetch_timeout_seconds,
                "jobingest.detail_concurrency": settings.detail_concurrency,
            }
        ),
        sampler=ParentBased(TraceIdRatioBased(settings.otel_trace_sample_ratio)),
    )
    exporter = _build_exporter(settings)
    if exporter is not None:
        provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    _HTTPX_INSTRUMENTOR.instrument(
        tracer_provider=provider,
        request_hook=tag_provider_span,
        async_request_hook=_tag_provider_span_async,
    )
    return TelemetryRuntime(enabled=True, provider=provider)


def shutdown_telemetry(runtime: TelemetryRuntime) -> None:
    if not runtime.enabled:
        return
    _HTTPX_INSTRUMENTOR.uninstrument()
    if runtime.provider is not None:
        runtime.provider.force_flush()
        runtime.provider.shutdown()


def provider_for_host(host: str | None) -> str | None:
    """Job board behind an upstream host, or None for anything else."""
    normalized = (host or "").lower().rstrip(".")
    for suffix, provider in PROVIDER_HOST_SUFFIXES.items():
        if normalized == suffix or normalized.endswith(f".{suffix}"):
            return provider
    return None


def tag_provider_span(span: Any, request: Any) -> None:
    if span is None or not span.is_recording():
        return
    provider = provider_for_host(getattr(request.url, "host", None))
    if provider is not None:
        span.set_attribute(PROVIDER_SPAN_ATTRIBUTE, provider)


async def _tag_provider_span_async(span: Any, request: Any) -> None:
    tag_provider_span(span, request)


def _build_exporter(settings: Settings) -> OTLPSpanExporter | None:
    endpoint = (
        settings.otel_exporter_otlp_endpoint
        or os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT")
        or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    )
    if not endpoint:
        logging.getLogger(__name__).info(
            "OTel exporter endpoint not set; ingest spans stay local for service=%s",
            settings.otel_service_name,
        )
        return None

    headers = parse_headers(settings.otel_exporter_otlp_headers or os.getenv("OTEL_EXPORTER_OTLP_HEADERS"))
    return OTLPSpanExporter(endpoint=endpoint, headers=headers or None)


def parse_headers(raw: str | None) -> dict[str, str]:
    """Parse ``key=value,key2=value2`` exporter headers, skipping malformed items."""
    parsed: dict[str, str] = {}
    for item in (raw or "").split(","):
        key, separator, value = item.partition("=")
        if separator and key.strip():
            parsed[key.strip()] = value.strip()
    return parsed


def _current_trace_ids() -> tuple[str, str]:
    context = trace.get_current_span().get_span_context()
    if not context.is_valid:
        return _EMPTY_TRACE_ID, _EMPTY_SPAN_ID
    return format(context.trace_id, "032x"), format(context.span_id, "016x")


def _install_log_correlation() -> None:
    global _LOG_CORRELATION_INSTALLED
    if _LOG_CORRELATION_INSTALLED:
        return

    def record_factory(*args: object, **kwargs: object) -> logging.LogRecord:
        record = _BASE_LOG_RECORD_FACTORY(*args, **kwargs)
        record.trace_id, record.span_id = _current_trace_ids()
        return record

    logging.setLogRecordFactory(record_factory)
    _LOG_CORRELATION_INSTALLED = True
