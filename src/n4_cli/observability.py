"""Diagnostics for a provisioning run.

Log records carry the run id, the resolved account and the current step
from context variables, and render either as one JSON object per line or
as plain text with trailing ``key=value`` pairs. Everything goes to stderr
so it never mixes with the interactive console on stdout.

Step and stage durations are also published as metrics to any registered
sinks.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

PACKAGE_LOGGER = "n4_cli"

run_id_var: ContextVar[str | None] = ContextVar("run_id", default=None)
account_id_var: ContextVar[str | None] = ContextVar("account_id", default=None)
step_var: ContextVar[str | None] = ContextVar("step", default=None)


class LogLevel(str, Enum):
    """Log levels accepted by ``--log-level`` and the config file."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class LogContext:
    """Run-scoped fields attached to every record."""

    run_id: str | None = None
    account_id: str | None = None
    step: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def current(cls) -> "LogContext":
        return cls(run_id=run_id_var.get(), account_id=account_id_var.get(), step=step_var.get())

    def to_dict(self) -> dict[str, Any]:
        """Set fields only, followed by ``extra``."""
        known = {"run_id": self.run_id, "account_id": self.account_id, "step": self.step}
        result = {key: value for key, value in known.items() if value}
        result.update(self.extra)
        return result


@dataclass
class LogEntry:
    """One rendered JSON log line."""

    level: LogLevel
    message: str
    timestamp: str
    logger: str
    context: dict[str, Any] = field(default_factory=dict)
    error: dict[str, Any] | None = None
    duration_ms: float | None = None

    def to_json(self) -> str:
        data: dict[str, Any] = {
            "level": self.level.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "logger": self.logger,
        }
        optional = {"context": self.context, "error": self.error}
        data.update({key: value for key, value in optional.items() if value})
        if self.duration_ms is not None:
            data["duration_ms"] = self.duration_ms
        return json.dumps(data)


def _record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Run context merged with the ``context`` passed to the logging call."""
    context = LogContext.current().to_dict()
    extra = getattr(record, "context", None)
    if isinstance(extra, dict):
        context.update(extra)
    return context


class StructuredFormatter(logging.Formatter):
    """Renders records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        error = None
        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            error = {"type": type(exc).__name__, "message": str(exc)}

        return LogEntry(
            level=LogLevel(record.levelname),
            message=record.getMessage(),
            timestamp=datetime.now(timezone.utc).isoformat(),
            logger=record.name,
            context=_record_context(record),
            error=error,
            duration_ms=getattr(record, "duration_ms", None),
        ).to_json()


class TextFormatter(logging.Formatter):
    """Human-readable lines with the context appended in brackets."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _record_context(record)
        if not context:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        return f"{line} [{pairs}]"


class StructuredLogger:
    """Thin wrapper taking ``context``, ``error`` and ``duration_ms`` keywords.

    Example:
        logger = get_logger(__name__)
        logger.info("Bucket created", context={"bucket": "assets"})
        logger.warning("DNS scan failed", error=exc)
    """

    def __init__(self, name: str) -> None:
        self.logger = logging.getLogger(name)

    def log(
        self,
        level: LogLevel,
        message: str,
        context: dict[str, Any] | None = None,
        error: BaseException | None = None,
        duration_ms: float | None = None,
    ) -> None:
        extra: dict[str, Any] = {}
        if context:
            extra["context"] = context
        if duration_ms is not None:
            extra["duration_ms"] = duration_ms

        exc_info = (type(error), error, error.__traceback__) if error is not None else None
        self.logger.log(getattr(logging, level.value), message, exc_info=exc_info, extra=extra)

    def debug(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self.log(LogLevel.DEBUG, message, context, duration_ms=duration_ms)

    def info(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self.log(LogLevel.INFO, message, context, duration_ms=duration_ms)

    def warning(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        error: BaseException | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self.log(LogLevel.WARNING, message, context, error, duration_ms)

    def error(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        error: BaseException | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self.log(LogLevel.ERROR, message, context, error, duration_ms)


class RunContext:
    """Tags every record logged inside the block with a run id.

    Usable with ``with`` and ``async with``; the previous run id is
    restored on exit.
    """

    def __init__(self, run_id: str | None = None) -> None:
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self._token: Token | None = None

    def __enter__(self) -> "RunContext":
        self._token = run_id_var.set(self.run_id)
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            run_id_var.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "RunContext":
        return self.__enter__()

    async def __aexit__(self, *args: Any) -> None:
        self.__exit__(*args)


def bind_account(account_id: str) -> None:
    """Attach the resolved account id to all later records of this run."""
    account_id_var.set(account_id)


class StepContext:
    """Marks the provisioning step currently executing."""

    def __init__(self, step: str) -> None:
        self.step = step
        self._token: Token | None = None

    def __enter__(self) -> "StepContext":
        self._token = step_var.set(self.step)
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            step_var.reset(self._token)
            self._token = None


class Timer:
    """Wall-clock duration of a block, readable as ``duration_ms`` afterwards."""

    def __init__(self) -> None:
        self._started = 0.0
        self._stopped = 0.0

    @property
    def duration_ms(self) -> float:
        return (self._stopped - self._started) * 1000

    def __enter__(self) -> "Timer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        self._stopped = time.perf_counter()

    async def __aenter__(self) -> "Timer":
        return self.__enter__()

    async def __aexit__(self, *args: Any) -> None:
        self.__exit__(*args)


# name, value, labels
MetricCallback = Callable[[str, float, dict[str, Any]], None]

_metric_sinks: list[MetricCallback] = []


def register_metric_callback(callback: MetricCallback) -> None:
    _metric_sinks.append(callback)


def unregister_metric_callback(callback: MetricCallback) -> None:
    if callback in _metric_sinks:
        _metric_sinks.remove(callback)


def emit_metric(name: str, value: float, labels: dict[str, Any] | None = None) -> None:
    """Publish a metric to every registered sink.

    The bound account id is added as a label unless the caller set one.
    A failing sink is logged and skipped; the run carries on.
    """
    merged: dict[str, Any] = {}
    account_id = account_id_var.get()
    if account_id:
        merged["account_id"] = account_id
    merged.update(labels or {})

    for sink in list(_metric_sinks):
        try:
            sink(name, value, merged)
        except Exception as e:
            logging.getLogger(PACKAGE_LOGGER).debug(
                "Metric sink failed", exc_info=(type(e), e, e.__traceback__)
            )


def emit_counter(name: str, labels: dict[str, Any] | None = None) -> None:
    emit_metric(name, 1.0, labels)


def emit_timer(name: str, duration_ms: float, labels: dict[str, Any] | None = None) -> None:
    emit_metric(name, duration_ms, labels)


def configure_logging(
    level: LogLevel = LogLevel.WARNING,
    format: str = "text",
) -> None:
    """Send package logs to stderr at ``level`` in ``format`` ("json" or "text").

    Calling it again replaces the previous handler.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level.value)
    package_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter() if format == "json" else TextFormatter())
    package_logger.addHandler(handler)


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(name)
