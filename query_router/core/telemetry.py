"""Telemetry service: OpenTelemetry configuration and instrumentation helpers.

Configures tracing once at application start-up and provides a decorator
that wraps router steps and capability calls in spans.
"""

from __future__ import annotations

import functools
import inspect
import logging
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)
from opentelemetry.semconv.resource import ResourceAttributes

from query_router.config.models import TelemetryConfig

P = ParamSpec("P")
R = TypeVar("R")

logger = logging.getLogger(__name__)


class TelemetryService:
    """Configures OpenTelemetry tracing and log correlation."""

    def __init__(self, config: TelemetryConfig, version: str = "0.1.0") -> None:
        self.config = config
        self.resource = Resource.create(
            {
                ResourceAttributes.SERVICE_NAME: config.service_name,
                ResourceAttributes.SERVICE_VERSION: version,
            }
        )
        self.provider = TracerProvider(resource=self.resource)

        match config.exporter:
            case "cloud":
                # Imported lazily; only deployments on GCP install the exporter
                from opentelemetry.exporter.cloud_trace import CloudTraceSpanExporter
                from opentelemetry.sdk.trace.export import BatchSpanProcessor

                self.provider.add_span_processor(
                    BatchSpanProcessor(CloudTraceSpanExporter())
                )
                self._setup_cloud_logging()
            case "console":
                self.provider.add_span_processor(
                    SimpleSpanProcessor(ConsoleSpanExporter())
                )
            case _:
                pass  # spans are created but not exported

        trace.set_tracer_provider(self.provider)
        self.tracer = trace.get_tracer(config.service_name, version)
        logger.info(
            "Telemetry configured: service=%s exporter=%s",
            config.service_name,
            config.exporter,
        )

    @staticmethod
    def _setup_cloud_logging() -> None:
        """Attach Google Cloud Logging with trace correlation to the root logger."""
        import google.cloud.logging
        from google.cloud.logging.handlers import CloudLoggingHandler

        client = google.cloud.logging.Client()
        root_logger = logging.getLogger()
        root_logger.addHandler(CloudLoggingHandler(client))
        root_logger.setLevel(logging.INFO)

    def shutdown(self) -> None:
        """Flush pending spans.  Call during app shutdown."""
        self.provider.shutdown()


def trace_span(name: str | None = None) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Decorator to wrap a function execution in an OpenTelemetry span.

    Args:
        name: Optional span name. If not provided, uses the function name.
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        span_name = name or func.__qualname__

        @functools.wraps(func)
        async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            tracer = trace.get_tracer(__name__)
            with tracer.start_as_current_span(span_name) as span:
                try:
                    return await func(*args, **kwargs)  # type: ignore
                except Exception as e:
                    span.record_exception(e)
                    span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                    raise

        @functools.wraps(func)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            tracer = trace.get_tracer(__name__)
            with tracer.start_as_current_span(span_name) as span:
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    span.record_exception(e)
                    span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                    raise

        if inspect.iscoroutinefunction(func):
            return async_wrapper  # type: ignore
        return sync_wrapper

    return decorator


def annotate_span(**attributes: str | int | float | bool) -> None:
    """Set attributes on the currently active span, if any."""
    span = trace.get_current_span()
    for key, value in attributes.items():
        span.set_attribute(key, value)
