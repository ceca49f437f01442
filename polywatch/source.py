"""Async snapshot fetchers for the poller — Gamma market discovery + CLOB trades."""

import logging

import httpx

from polyconnect.auth import RequestAuthenticator
from polyconnect.constants import CLOB_BASE_URL, DEFAULT_TIMEOUT, GAMMA_BASE_URL
from polyconnect.errors import AuthError, MalformedResponseError, TransientNetworkError, decode_response
from polyconnect.models import Market, Trade, parse_response, unwrap_list

logger = logging.getLogger(__name__)


class SnapshotSource:
    """Read-side client used by the poll engine.

    One request per call, no retry: a failed fetch fails the cycle and the
    next tick tries again.

    Args:
        authenticator: Signs the CLOB trade-history request. Only needed for
            ``fetch_trades``.
        gamma_url: Gamma market-discovery API base URL.
        clob_url: CLOB API base URL.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        authenticator: RequestAuthenticator | None = None,
        gamma_url: str = GAMMA_BASE_URL,
        clob_url: str = CLOB_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._auth = authenticator
        self._gamma = httpx.AsyncClient(base_url=gamma_url, timeout=timeout)
        self._clob = httpx.AsyncClient(base_url=clob_url, timeout=timeout)

    async def _get(self, http: httpx.AsyncClient, path: str, params: dict | None = None,
                   headers: dict | None = None):
        try:
            resp = await http.get(path, params=params, headers=headers)
        except httpx.TimeoutException as exc:
            logger.warning("Timeout on GET %s", path)
            raise TransientNetworkError(f"Timeout on GET {path}") from exc
        except httpx.TransportError as exc:
            logger.warning("Connection error on GET %s: %s", path, exc)
            raise TransientNetworkError(f"Connection failed on GET {path}: {exc}") from exc
        return decode_response(resp, "GET", path)

    async def fetch_markets(self, limit: int = 100) -> list[Market]:
        """Active, open markets, newest first."""
        params = {
            "active": "true",
            "closed": "false",
            "limit": str(limit),
            "order": "id",
            "ascending": "false",
        }
        data = await self._get(self._gamma, "/markets", params=params)
        rows = parse_response(lambda d: unwrap_list(d, "markets"), data, "GET", "/markets")
        return [parse_response(Market.from_dict, r, "GET", "/markets") for r in rows]

    async def fetch_market(self, market_ref: str) -> Market:
        """One market by Gamma id, or by 0x condition id (a trade's ``market``)."""
        if market_ref.startswith("0x"):
            data = await self._get(self._gamma, "/markets", params={"condition_ids": market_ref})
            rows = parse_response(lambda d: unwrap_list(d, "markets"), data, "GET", "/markets")
            if not rows:
                raise MalformedResponseError(
                    f"no market with condition id {market_ref}", "[]", "GET", "/markets",
                )
            return parse_response(Market.from_dict, rows[0], "GET", "/markets")
        path = f"/markets/{market_ref}"
        return parse_response(Market.from_dict, await self._get(self._gamma, path), "GET", path)

    async def fetch_trades(self) -> list[Trade]:
        """The authenticated user's recent trades (CLOB, HMAC-signed)."""
        if self._auth is None:
            raise AuthError("Trade history requires credentials")
        path = "/data/trades"
        headers = self._auth.headers("GET", path)
        data = await self._get(self._clob, path, headers=headers)
        rows = parse_response(lambda d: unwrap_list(d, "trades"), data, "GET", path)
        return [parse_response(Trade.from_dict, r, "GET", path) for r in rows]

    async def close(self) -> None:
        await self._gamma.aclose()
        await self._clob.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()
