"""Zerion REST API provider with rate limiting and typed errors."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
from web3 import AsyncWeb3

from portfolio_sync.analytics.models import PortfolioSnapshot
from portfolio_sync.providers.base import FetchResult, ProviderError, ProviderErrorKind

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.zerion.io/v1"
DEFAULT_TIMEOUT_SECONDS = 20.0
MAX_REQUESTS_PER_SECOND = 5

AUTH_STATUS_CODES = (401, 403)
INVALID_ADDRESS_STATUS_CODES = (400, 404, 422)
SUPPORTED_KINDS = ("full", "portfolio-only", "transactions-only", "nfts-only")

AddressResolver = Callable[[str], Awaitable[str]]


class RateLimiter:
    """Minimum-interval rate limiter for API requests."""

    def __init__(self, max_requests_per_second: float = MAX_REQUESTS_PER_SECOND) -> None:
        self._min_interval = 1.0 / max_requests_per_second
        self._last_request_time: float = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a request slot is available."""
        async with self._lock:
            elapsed = time.monotonic() - self._last_request_time
            if elapsed < self._min_interval:
                await asyncio.sleep(self._min_interval - elapsed)
            self._last_request_time = time.monotonic()


def _to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal(0)
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        return Decimal(0)
    return parsed if parsed.is_finite() else Decimal(0)


def _chain_id(item: dict[str, Any]) -> str | None:
    chain = ((item.get("relationships") or {}).get("chain") or {}).get("data") or {}
    chain_id = chain.get("id")
    return str(chain_id) if chain_id else None


class ZerionProvider:
    """Fetches wallet portfolio data from the Zerion API.

    Wallet identifiers are resolved to on-chain addresses through
    ``resolve_address``; by default the identifier is the address itself.

    Example:
        ```python
        async with ZerionProvider(api_key="zk_...") as provider:
            result = await provider.fetch("0xabc...", "portfolio-only")
        ```
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        currency: str = "usd",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        requests_per_second: float = MAX_REQUESTS_PER_SECOND,
        resolve_address: AddressResolver | None = None,
        client: httpx.AsyncClient | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._currency = currency
        self._resolve_address = resolve_address
        self._rate_limiter = RateLimiter(requests_per_second)
        self._now = now or (lambda: datetime.now(UTC))
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            auth=(api_key, ""),
            timeout=timeout_seconds,
            headers={"accept": "application/json"},
        )
        logger.info("Initialized ZerionProvider with base_url=%s", base_url)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> ZerionProvider:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _address_for(self, wallet_id: str) -> str:
        address = await self._resolve_address(wallet_id) if self._resolve_address else wallet_id
        # Mixed-case input must carry a valid EIP-55 checksum.
        if not address or not AsyncWeb3.is_address(address):
            raise ProviderError(
                ProviderErrorKind.INVALID_ADDRESS, f"Invalid wallet address: {address}"
            )
        return AsyncWeb3.to_checksum_address(address)

    async def _get(self, path: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        await self._rate_limiter.acquire()
        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise ProviderError(ProviderErrorKind.NETWORK, f"Zerion request timed out: {e}") from e
        except httpx.TransportError as e:
            raise ProviderError(ProviderErrorKind.NETWORK, f"Zerion network error: {e}") from e

        status = response.status_code
        if status == 429:
            raise ProviderError(ProviderErrorKind.RATE_LIMITED, "Zerion rate limit exceeded")
        if status in AUTH_STATUS_CODES:
            raise ProviderError(ProviderErrorKind.AUTH, f"Zerion rejected the API key ({status})")
        if status in INVALID_ADDRESS_STATUS_CODES:
            raise ProviderError(
                ProviderErrorKind.INVALID_ADDRESS, f"Zerion rejected the wallet ({status})"
            )
        if status >= 400:
            raise ProviderError(ProviderErrorKind.UNKNOWN, f"Zerion returned HTTP {status}")

        try:
            body: dict[str, Any] = response.json()
        except ValueError as e:
            raise ProviderError(ProviderErrorKind.UNKNOWN, "Zerion returned invalid JSON") from e
        return body

    async def _portfolio(self, address: str) -> dict[str, Any]:
        body = await self._get(
            f"/wallets/{address}/portfolio", params={"currency": self._currency}
        )
        return (body.get("data") or {}).get("attributes") or {}

    async def _list(self, path: str, params: dict[str, str]) -> list[dict[str, Any]]:
        body = await self._get(path, params=params)
        data = body.get("data") or []
        return [item for item in data if isinstance(item, dict)]

    async def _positions(self, address: str) -> list[dict[str, Any]]:
        return await self._list(
            f"/wallets/{address}/positions/",
            {"currency": self._currency, "filter[positions]": "only_simple"},
        )

    async def _transactions(self, address: str) -> list[dict[str, Any]]:
        return await self._list(
            f"/wallets/{address}/transactions/", {"currency": self._currency}
        )

    async def _nfts(self, address: str) -> list[dict[str, Any]]:
        return await self._list(f"/wallets/{address}/nft-positions/", {})

    async def fetch(
        self,
        wallet_id: str,
        kind: str,
        options: dict[str, Any] | None = None,
    ) -> FetchResult:
        """Fetch fresh data for a wallet.

        Args:
            wallet_id: Wallet identifier (resolved to an address).
            kind: One of ``full``, ``portfolio-only``, ``transactions-only``,
                ``nfts-only``.
            options: ``include_transactions`` / ``include_nfts`` toggles for
                ``full`` syncs (both default to True).

        Raises:
            ProviderError: On any API or transport failure.
        """
        kind = str(getattr(kind, "value", kind))
        if kind not in SUPPORTED_KINDS:
            raise ProviderError(ProviderErrorKind.UNKNOWN, f"Unsupported sync kind: {kind}")
        opts = options or {}
        address = await self._address_for(wallet_id)
        synced_at = self._now()
        payload: dict[str, Any] = {
            "kind": kind,
            "address": address,
            "synced_at": synced_at.isoformat(),
        }
        snapshot: PortfolioSnapshot | None = None

        if kind in ("full", "portfolio-only"):
            attributes = await self._portfolio(address)
            positions = await self._positions(address)
            total_value = _to_decimal((attributes.get("total") or {}).get("positions"))
            chains = {c for c in (_chain_id(p) for p in positions) if c}
            snapshot = PortfolioSnapshot(
                wallet_id=wallet_id,
                date=synced_at.date(),
                total_value=max(total_value, Decimal(0)),
                positions_count=len(positions),
                chains_count=len(chains),
            )
            payload["total_value"] = str(snapshot.total_value)
            payload["positions"] = snapshot.positions_count
            payload["chains"] = snapshot.chains_count

        if kind == "transactions-only" or (
            kind == "full" and opts.get("include_transactions", True)
        ):
            payload["transactions"] = len(await self._transactions(address))

        if kind == "nfts-only" or (kind == "full" and opts.get("include_nfts", True)):
            payload["nfts"] = len(await self._nfts(address))

        logger.debug("Fetched %s data for wallet %s", kind, wallet_id)
        return FetchResult(snapshot=snapshot, payload=payload)
