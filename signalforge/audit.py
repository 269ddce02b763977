"""Audit sink — structured key/value context logging for decisions.

A sink collects fields between ``start`` and ``flush`` and emits them as one
line.  The engine tolerates having no sink at all.
"""

import logging
from typing import Any, Optional, Protocol, runtime_checkable

logger = logging.getLogger("signalforge.audit")


@runtime_checkable
class AuditSink(Protocol):
    def start(self, context: str, **fields: Any) -> None: ...

    def append(self, key: str, value: Any) -> None: ...

    def flush(self) -> None: ...

    def note(self, message: str) -> None: ...


class LoggingAuditSink:
    """``AuditSink`` writing ``context key=value ...`` lines to ``logging``."""

    def __init__(self, log: Optional[logging.Logger] = None, level: int = logging.INFO) -> None:
        self._log = log or logger
        self._level = level
        self._context: Optional[str] = None
        self._fields: dict[str, Any] = {}

    def start(self, context: str, **fields: Any) -> None:
        if self._context is not None:
            self.flush()
        self._context = context
        self._fields = dict(fields)

    def append(self, key: str, value: Any) -> None:
        if self._context is None:
            self._context = "audit"
        self._fields[key] = value

    def flush(self) -> None:
        if self._context is None:
            return
        body = " ".join(f"{k}={v}" for k, v in self._fields.items())
        self._log.log(self._level, "[%s] %s", self._context, body)
        self._context = None
        self._fields = {}

    def note(self, message: str) -> None:
        self._log.log(self._level, "%s", message)
