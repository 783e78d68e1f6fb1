"""
regen-orchestrator — structured logging

File: src/regen_orchestrator/observability/logging.py
Last updated: 2026-10-19

Purpose
- Route every regeneration event to a JSON-lines sink with correlation fields and redaction.

What should be included in this file
- Queue-backed stdlib handler with file and optional stdout sinks.
- structlog wiring so ``structlog.get_logger(__name__)`` events land in the same sink.
- ``correlation_scope`` binding run/stage/phase/course identifiers through
  ``structlog.contextvars``.
- Deep redaction of API keys and provider transcripts.

Functional requirements
- Logging must never block a regeneration run; a full queue drops records and counts them.
- Redaction runs on every message, field, and exception text.
"""

from __future__ import annotations

import atexit
import logging
import logging.handlers
import queue
import re
from collections.abc import Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

import structlog

REDACTED: Final[str] = "***REDACTED***"
DEFAULT_LOG_FILENAME: Final[str] = "regeneration.jsonl"
DEFAULT_LOGGER_NAME: Final[str] = "regen_orchestrator"

CORRELATION_KEYS: Final[tuple[str, ...]] = (
    "run_id",
    "request_id",
    "stage",
    "phase_id",
    "course_id",
    "layer",
)

# Attributes every LogRecord carries; anything else was passed as ``extra``.
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(logging.makeLogRecord({}).__dict__) | {
    "message",
    "asctime",
    "correlation",
}

_SECRET_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "private_key",
    "transcript",
    "provider_prompt",
    "provider_response",
    "prompt_messages",
)

_TEXT_SCRUBBERS: Final[tuple[tuple[re.Pattern[str], str], ...]] = (
    (
        re.compile(
            r"(?i)\b(api[_-]?key|password|secret|client_secret|authorization)\b\s*([:=])\s*[^\s,;]+"
        ),
        rf"\1\2{REDACTED}",
    ),
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*"), f"Bearer {REDACTED}"),
    (re.compile(r"\bsk-(?:ant|or)-[A-Za-z0-9_-]{12,}"), REDACTED),
    (re.compile(r"\bsk-[A-Za-z0-9]{12,}\b"), REDACTED),
)

_active: StructuredLoggingHandle | None = None
_atexit_hooked = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Settings for one run's JSON-lines log."""

    run_id: str
    base_log_dir: Path | str = Path("logs")
    logger_name: str = DEFAULT_LOGGER_NAME
    level: int | str = "INFO"
    queue_size: int = 4096
    log_filename: str = DEFAULT_LOG_FILENAME
    log_to_stdout: bool = False
    redact: bool = True
    configure_structlog: bool = True


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
    logger_name: str = DEFAULT_LOGGER_NAME,
) -> StructuredLoggingHandle:
    """Configure structured logging from the ``[observability]`` config section."""

    cfg = dict(observability_config or {})
    level = cfg.get("log_level", "INFO")
    base = log_dir if log_dir is not None else cfg.get("log_dir", "logs")
    return setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=base if isinstance(base, (str, Path)) else "logs",
            logger_name=logger_name,
            level=level if isinstance(level, (int, str)) else "INFO",
            log_to_stdout=bool(cfg.get("log_to_stdout", False)),
            redact=bool(cfg.get("redact_secrets", True)),
        )
    )


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    """Captures the caller's correlation fields and never waits on a full queue."""

    def __init__(self, log_queue: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(log_queue)
        self.dropped = 0

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # The listener thread cannot see this thread's contextvars.
        record.correlation = get_correlation_context()
        return super().prepare(record)

    def enqueue(self, record: logging.LogRecord) -> None:
        # ``Handler.handle`` holds the handler lock here.
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self.dropped += 1


class _JsonLinesFormatter(logging.Formatter):
    def __init__(self, *, run_id: str, redact: bool) -> None:
        super().__init__()
        self._run_id = run_id
        self._scrub = default_log_redactor if redact else _unchanged
        self._render = structlog.processors.JSONRenderer(
            sort_keys=True, separators=(",", ":"), ensure_ascii=False
        )

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=UTC)
        event: dict[str, Any] = {
            "timestamp": stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": self._scrub(record.getMessage()),
            **self._correlation(record),
        }
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRIBUTES
            and key not in CORRELATION_KEYS
            and not key.startswith("_")
        }
        if extras:
            event["fields"] = self._scrub(extras)
        if record.exc_info:
            event["exception"] = self._scrub(self.formatException(record.exc_info))
        return str(self._render(None, record.levelname.lower(), event))

    def _correlation(self, record: logging.LogRecord) -> dict[str, str]:
        merged = {"run_id": self._run_id}
        merged.update(getattr(record, "correlation", None) or {})
        for key in CORRELATION_KEYS:
            value = getattr(record, key, None)
            if isinstance(value, str) and value.strip():
                merged[key] = value.strip()
        return merged


class StructuredLoggingHandle:
    """Active logging setup for one run; ``shutdown`` drains the queue."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        run_id: str,
        log_path: Path,
        queue_handler: _DroppingQueueHandler,
        listener: logging.handlers.QueueListener,
    ) -> None:
        self.logger = logger
        self.run_id = run_id
        self.log_path = log_path
        self._queue_handler = queue_handler
        self._listener = listener
        self.is_shutdown = False

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    def shutdown(self) -> None:
        if self.is_shutdown:
            return
        self.is_shutdown = True
        self._listener.stop()
        self.logger.removeHandler(self._queue_handler)
        self._queue_handler.close()
        for sink in self._listener.handlers:
            sink.flush()
            sink.close()


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Install a queue-backed JSON-lines handler on ``config.logger_name``."""

    global _active, _atexit_hooked
    run_id = _non_empty(config.run_id, "run_id")
    logger_name = _non_empty(config.logger_name, "logger_name")
    filename = _non_empty(config.log_filename, "log_filename")
    if Path(filename).name != filename:
        raise ValueError("log_filename must not include path separators")
    if not isinstance(config.queue_size, int) or config.queue_size <= 0:
        raise ValueError("queue_size must be a positive integer")
    level = _level_number(config.level)

    shutdown_logging()

    log_path = Path(config.base_log_dir) / run_id / filename
    log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = _JsonLinesFormatter(run_id=run_id, redact=config.redact)
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stdout:
        sinks.append(logging.StreamHandler())
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    queue_handler = _DroppingQueueHandler(queue.Queue(maxsize=config.queue_size))
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(
        queue_handler.queue, *sinks, respect_handler_level=True
    )
    listener.start()
    logger.addHandler(queue_handler)

    if config.configure_structlog:
        configure_structlog()

    _active = StructuredLoggingHandle(
        logger=logger,
        run_id=run_id,
        log_path=log_path,
        queue_handler=queue_handler,
        listener=listener,
    )
    if not _atexit_hooked:
        atexit.register(shutdown_logging)
        _atexit_hooked = True
    return _active


def configure_structlog() -> None:
    """Send structlog events through stdlib loggers so the JSON-lines sink receives them."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            _rename_reserved_fields,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Drain and close ``handle`` (default: the active one)."""

    global _active
    target = handle if handle is not None else _active
    if target is None:
        return
    target.shutdown()
    if _active is target:
        _active = None


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    return _active


def get_correlation_context() -> dict[str, str]:
    return {key: str(value) for key, value in structlog.contextvars.get_contextvars().items()}


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields for log records emitted in scope.

    ``None`` hides a field for the duration of the scope.
    """

    bound: dict[str, str] = {}
    for key, value in fields.items():
        if value is not None:
            bound[key] = _non_empty(value, "correlation value")
    outer = structlog.contextvars.get_contextvars()
    hidden = {key: outer[key] for key, value in fields.items() if value is None and key in outer}
    structlog.contextvars.unbind_contextvars(*hidden)
    try:
        with structlog.contextvars.bound_contextvars(**bound):
            yield
    finally:
        structlog.contextvars.bind_contextvars(**hidden)


def default_log_redactor(value: Any, *, key: str | None = None) -> Any:
    """Mask secret-bearing keys and scrub key-like substrings, recursively."""

    if key is not None and _is_secret_key(key):
        return REDACTED
    if isinstance(value, str):
        for pattern, replacement in _TEXT_SCRUBBERS:
            value = pattern.sub(replacement, value)
        return value
    if isinstance(value, Mapping):
        return {str(k): default_log_redactor(item, key=str(k)) for k, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [default_log_redactor(item) for item in value]
    return value


def _is_secret_key(key: str) -> bool:
    lowered = key.lower()
    # Names of environment variables are not secrets.
    if lowered.endswith("_env"):
        return False
    return any(term in lowered for term in _SECRET_KEY_TERMS)


def _rename_reserved_fields(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    # stdlib ``makeRecord`` rejects extras that shadow LogRecord attributes.
    for key in list(event_dict):
        if key != "event" and key in _RECORD_ATTRIBUTES:
            event_dict[f"field_{key}"] = event_dict.pop(key)
    return event_dict


def _unchanged(value: Any) -> Any:
    return value


def _non_empty(value: object, label: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{label} must be a string, got {type(value).__name__}")
    text = value.strip()
    if not text:
        raise ValueError(f"{label} must not be empty")
    return text


def _level_number(value: int | str) -> int:
    if isinstance(value, int):
        return value
    number = logging.getLevelNamesMapping().get(str(value).strip().upper())
    if number is None:
        raise ValueError(f"unsupported logging level {value!r}")
    return number


__all__ = [
    "CORRELATION_KEYS",
    "LoggingConfig",
    "REDACTED",
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
