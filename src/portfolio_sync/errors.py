"""Error reporting sink for job and query failures."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from portfolio_sync.providers.base import ProviderErrorKind, classify_error

logger = logging.getLogger(__name__)

DEFAULT_ERROR_LOG_SIZE = 50


class ErrorSink(Protocol):
    """Receives errors together with a context string naming where they occurred."""

    def report(self, error: BaseException, context: str) -> None: ...


@dataclass(frozen=True)
class ErrorRecord:
    """One reported error."""

    message: str
    context: str
    kind: ProviderErrorKind
    error_type: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, str]:
        return {
            "message": self.message,
            "context": self.context,
            "kind": self.kind.value,
            "error_type": self.error_type,
            "timestamp": self.timestamp.isoformat(),
        }


class LoggingErrorSink:
    """Logs reported errors and keeps the most recent ones in memory."""

    def __init__(self, *, max_records: int = DEFAULT_ERROR_LOG_SIZE) -> None:
        self._records: deque[ErrorRecord] = deque(maxlen=max_records)

    def report(self, error: BaseException, context: str) -> None:
        record = ErrorRecord(
            message=str(error) or "Unknown error",
            context=context,
            kind=classify_error(error),
            error_type=type(error).__name__,
        )
        self._records.append(record)
        logger.error("[%s] %s", context, record.message, exc_info=error)

    def recent(self) -> list[ErrorRecord]:
        """Return reported errors, oldest first."""
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()
