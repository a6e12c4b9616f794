"""Data provider layer - Wallet data sources for sync jobs."""

from portfolio_sync.providers.base import (
    DataProvider,
    FetchResult,
    ProviderError,
    ProviderErrorKind,
    classify_error,
    user_message,
)
from portfolio_sync.providers.zerion import ZerionProvider

__all__ = [
    "DataProvider",
    "FetchResult",
    "ProviderError",
    "ProviderErrorKind",
    "ZerionProvider",
    "classify_error",
    "user_message",
]
