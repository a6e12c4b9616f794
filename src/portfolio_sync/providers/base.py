"""Wallet data provider interface and typed provider errors."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from portfolio_sync.analytics.models import PortfolioSnapshot


class ProviderErrorKind(str, Enum):
    """Classification of provider failures at the provider boundary."""

    RATE_LIMITED = "rate_limited"
    NETWORK = "network"
    INVALID_ADDRESS = "invalid_address"
    AUTH = "auth"
    UNKNOWN = "unknown"


_USER_MESSAGES: dict[ProviderErrorKind, str] = {
    ProviderErrorKind.RATE_LIMITED: "Too many requests. Please wait a moment and try again.",
    ProviderErrorKind.NETWORK: "Network error. Please check your connection and try again.",
    ProviderErrorKind.INVALID_ADDRESS: "Invalid wallet address. Please check and try again.",
    ProviderErrorKind.AUTH: "API configuration issue. Please check your settings.",
    ProviderErrorKind.UNKNOWN: "Something went wrong. Please try again.",
}


def user_message(kind: ProviderErrorKind | str | None) -> str:
    """Return user-facing text for an error kind."""
    try:
        return _USER_MESSAGES[ProviderErrorKind(kind)]
    except ValueError:
        return _USER_MESSAGES[ProviderErrorKind.UNKNOWN]


class ProviderError(Exception):
    """Raised by a data provider when a fetch fails."""

    def __init__(self, kind: ProviderErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind

    @property
    def user_message(self) -> str:
        return user_message(self.kind)


def classify_error(error: BaseException) -> ProviderErrorKind:
    """Return the error kind for any exception raised during a fetch."""
    if isinstance(error, ProviderError):
        return error.kind
    return ProviderErrorKind.UNKNOWN


@dataclass
class FetchResult:
    """Outcome of one provider fetch.

    Attributes:
        snapshot: Portfolio snapshot to persist, when the sync kind produces one.
        payload: Opaque summary recorded as the job result.
    """

    snapshot: PortfolioSnapshot | None = None
    payload: dict[str, Any] = field(default_factory=dict)


class DataProvider(Protocol):
    """Produces fresh wallet data for a sync job."""

    async def fetch(
        self,
        wallet_id: str,
        kind: str,
        options: dict[str, Any] | None = None,
    ) -> FetchResult: ...
