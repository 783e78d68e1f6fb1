"""Public observability primitives: structured logging and regeneration metrics."""

from regen_orchestrator.observability.logging import (
    LoggingConfig,
    StructuredLoggingHandle,
    configure_structlog,
    correlation_scope,
    default_log_redactor,
    get_active_logging_handle,
    get_correlation_context,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)
from regen_orchestrator.observability.metrics import (
    MetricsRegistry,
    MetricsSink,
    RegenerationMetricRecord,
    RegistryMetricsSink,
)

__all__ = [
    "LoggingConfig",
    "MetricsRegistry",
    "MetricsSink",
    "RegenerationMetricRecord",
    "RegistryMetricsSink",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "default_log_redactor",
    "get_active_logging_handle",
    "get_correlation_context",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
