"""Telemetry sink protocol and the default logging-backed implementation."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

logger = logging.getLogger("codeweave.telemetry")


class TelemetrySink(Protocol):
    def log_event(self, name: str, fields: Mapping[str, Any] | None = None) -> None: ...

    def log_error(
        self,
        name: str,
        err: BaseException,
        fields: Mapping[str, Any] | None = None,
    ) -> None: ...


class LoggingTelemetrySink:
    """Writes telemetry through the standard logging module."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    def log_event(self, name: str, fields: Mapping[str, Any] | None = None) -> None:
        logger.log(self.level, "event=%s %s", name, _format_fields(fields))

    def log_error(
        self,
        name: str,
        err: BaseException,
        fields: Mapping[str, Any] | None = None,
    ) -> None:
        logger.error(
            "error=%s type=%s message=%s %s",
            name,
            type(err).__name__,
            err,
            _format_fields(fields),
        )


class NullTelemetrySink:
    def log_event(self, name: str, fields: Mapping[str, Any] | None = None) -> None:
        pass

    def log_error(
        self,
        name: str,
        err: BaseException,
        fields: Mapping[str, Any] | None = None,
    ) -> None:
        pass


def _format_fields(fields: Mapping[str, Any] | None) -> str:
    if not fields:
        return ""
    return " ".join(f"{k}={v}" for k, v in sorted(fields.items()))
