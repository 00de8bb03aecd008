"""OpenTelemetry setup: traces and logs to an OTLP collector, plus stdlib logging."""

import logging
from typing import Optional

from opentelemetry import _logs, trace
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from tickreplay.core.config import settings

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def setup_telemetry(
    service_name: str = "tickreplay", endpoint: Optional[str] = None
) -> bool:
    """
    Route traces and log records to the OTLP collector at ``endpoint``.
    Returns False (and leaves the no-op providers in place) when no endpoint is configured.
    """
    endpoint = endpoint or settings.OTEL_EXPORTER_OTLP_ENDPOINT

    if not endpoint:
        logger.info("Telemetry: OTLP endpoint not set. Skipping setup.")
        return False

    logger.info(f"Telemetry: Initializing for {service_name} at {endpoint}")

    resource = Resource(attributes={SERVICE_NAME: service_name})

    # traces
    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=f"{endpoint}/v1/traces"))
    )
    trace.set_tracer_provider(tracer_provider)

    # logs
    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(
        BatchLogRecordProcessor(OTLPLogExporter(endpoint=f"{endpoint}/v1/logs"))
    )
    _logs.set_logger_provider(logger_provider)

    # Forward stdlib logging records to the collector as well
    handler = LoggingHandler(level=logging.NOTSET, logger_provider=logger_provider)
    logging.getLogger().addHandler(handler)

    logger.info("Telemetry: OTLP export enabled (traces, logs)")
    return True
