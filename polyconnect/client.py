"""Polymarket CLOB trading client — sync, one round-trip per call, no retry.

Order mutations are never retried here: a POST /order that timed out may
still have been placed. Callers decide what to do after checking
``get_open_orders()``.
"""

import json
import logging
import re
from dataclasses import replace

import httpx
from eth_utils import to_checksum_address

from .auth import RequestAuthenticator
from .constants import CLOB_BASE_URL, DEFAULT_TIMEOUT, POLYGON
from .credentials import Credentials
from .errors import (
    AuthError,
    MalformedResponseError,
    TransientNetworkError,
    UpstreamError,
    ValidationError,
    decode_response,
)
from .models import CancelResult, OpenOrder, OrderBook, OrderResult, Trade, parse_response, unwrap_list
from .order import Order, OrderBuilder, OrderIntent, SignedOrder, parse_side, wire_order_type
from .signer import Signer, serialize_body

logger = logging.getLogger(__name__)

# not_canceled reasons meaning the order is no longer resting
_BENIGN_CANCEL = re.compile(r"not found|can't be found|cannot be found|already", re.IGNORECASE)


class TradingClient:
    """Synchronous client for the authenticated Polymarket order service.

    Args:
        credentials: API key/secret/passphrase, wallet key and chain. May be
            None for a public-only client (order book and price).
        base_url: CLOB API base URL.
        timeout: Per-request timeout in seconds.
        nonce_source: Optional zero-arg callable for order nonces.
    """

    def __init__(
        self,
        credentials: Credentials | None = None,
        base_url: str = CLOB_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        nonce_source=None,
    ):
        self._creds = credentials
        self.base_url = base_url
        self._http = httpx.Client(base_url=base_url, timeout=timeout)

        if credentials is None:
            self.chain_id = POLYGON
            self._signer = None
            self._auth = None
            self._builder = None
            return

        self.chain_id = credentials.chain_id
        self._signer = Signer(credentials.private_key)
        self._auth = RequestAuthenticator(self._signer, credentials)
        if credentials.funder:
            try:
                maker = to_checksum_address(credentials.funder)
            except ValueError as exc:
                raise ValidationError(f"Invalid funder address {credentials.funder!r}") from exc
        else:
            maker = self._signer.address
        self._builder = OrderBuilder(
            maker=maker,
            signer=self._signer.address,
            signature_type=credentials.signature_type,
            nonce_source=nonce_source,
        )

    @property
    def address(self) -> str | None:
        return self._signer.address if self._signer else None

    def _require_credentials(self, what: str) -> None:
        if self._signer is None:
            raise AuthError(f"{what} requires credentials (public-only client)")

    def __repr__(self) -> str:
        return f"TradingClient(address={self.address}, chain_id={self.chain_id})"

    # ------------------------------------------------------------------
    # Low-level request
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        body: dict | list | None = None,
        params: dict | None = None,
        auth: bool = True,
    ) -> dict | list:
        body_str = serialize_body(body)
        headers = {
            "User-Agent": "polyconnect",
            "Accept": "application/json",
        }
        if auth:
            self._require_credentials(f"{method} {path}")
            headers.update(self._auth.headers(method, path, body_str))
        elif body_str:
            headers["Content-Type"] = "application/json"

        try:
            resp = self._http.request(
                method,
                path,
                params=params,
                content=body_str.encode() if body_str else None,
                headers=headers,
            )
        except httpx.TimeoutException as exc:
            logger.warning("CLOB timeout on %s %s", method, path)
            raise TransientNetworkError(f"Timeout on {method} {path}") from exc
        except httpx.TransportError as exc:
            logger.warning("CLOB connection error on %s %s: %s", method, path, exc)
            raise TransientNetworkError(f"Connection failed on {method} {path}: {exc}") from exc
        return decode_response(resp, method, path)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def build_order(self, intent: OrderIntent) -> Order:
        """Validate intent and build the unsigned order (no I/O)."""
        self._require_credentials("Building an order")
        return self._builder.build(
            token_id=intent.token_id,
            side=intent.side,
            price=intent.price,
            size=intent.size,
            order_kind=intent.order_kind,
            expiration_seconds=intent.expiration_seconds,
            fee_rate_bps=intent.fee_rate_bps,
            tick_size=intent.tick_size,
        )

    def sign_order(self, order: Order, neg_risk: bool = False) -> SignedOrder:
        self._require_credentials("Signing an order")
        return SignedOrder(order, self._signer.sign_order(order, self.chain_id, neg_risk=neg_risk))

    def create_order(self, intent: OrderIntent) -> OrderResult:
        """Build, sign, and submit an order to the CLOB.

        Not idempotent: each call places a new live order. Do not retry
        blindly after a timeout or 5xx; look at open orders first.
        """
        order_type = wire_order_type(intent.order_kind)
        signed = self.sign_order(self.build_order(intent), neg_risk=intent.neg_risk)
        body = {
            "order": signed.to_payload(),
            "owner": self._creds.api_key,
            "orderType": order_type,
            "postOnly": intent.post_only,
        }
        logger.info(
            "POST /order %s token=%s price=%s size=%s type=%s",
            signed.order.side_name, intent.token_id, signed.order.price,
            signed.order.size, order_type,
        )
        data = self._request("POST", "/order", body=body)
        result = parse_response(OrderResult.from_dict, data, "POST", "/order")
        if not result.success:
            logger.error("Order rejected: %s", result.error_msg or data)
            raise UpstreamError(200, json.dumps(data, default=str), "POST", "/order")
        logger.info("Order accepted: id=%s status=%s", result.order_id, result.status)
        return result

    def cancel_order(self, order_id: str) -> CancelResult:
        """Cancel one order. An order that is already gone is not an error."""
        try:
            data = self._request("DELETE", "/order", body={"orderID": order_id})
        except UpstreamError as exc:
            if exc.status == 404:
                logger.info("Order %s not found — already filled or cancelled", order_id)
                return CancelResult(
                    canceled=[],
                    not_canceled={order_id: exc.message or "not found"},
                    already_closed=[order_id],
                )
            raise
        result = self._mark_closed(parse_response(CancelResult.from_dict, data, "DELETE", "/order"))
        if order_id in result.not_canceled and order_id not in result.already_closed:
            raise UpstreamError(200, json.dumps(data, default=str), "DELETE", "/order")
        return result

    def cancel_orders(self, order_ids: list[str]) -> CancelResult:
        """Cancel several orders by id."""
        data = self._request("DELETE", "/orders", body=list(order_ids))
        return self._mark_closed(parse_response(CancelResult.from_dict, data, "DELETE", "/orders"))

    def cancel_all(self, market_id: str | None = None) -> CancelResult:
        """Cancel all resting orders, or only those in one market."""
        if market_id:
            path, body = "/cancel-market-orders", {"market": market_id}
        else:
            path, body = "/cancel-all", None
        data = self._request("DELETE", path, body=body)
        return self._mark_closed(parse_response(CancelResult.from_dict, data, "DELETE", path))

    def get_open_orders(
        self, market_id: str | None = None, token_id: str | None = None,
    ) -> list[OpenOrder]:
        """Fetch open orders for the authenticated user."""
        params = {}
        if market_id:
            params["market"] = market_id
        if token_id:
            params["asset_id"] = token_id
        data = self._request("GET", "/data/orders", params=params or None)
        rows = parse_response(lambda d: unwrap_list(d, "orders"), data, "GET", "/data/orders")
        return [parse_response(OpenOrder.from_dict, r, "GET", "/data/orders") for r in rows]

    def get_order(self, order_id: str) -> OpenOrder:
        """Fetch a single order by ID."""
        path = f"/data/order/{order_id}"
        return parse_response(OpenOrder.from_dict, self._request("GET", path), "GET", path)

    def get_trades(self, market_id: str | None = None) -> list[Trade]:
        """Fetch the authenticated user's trade history."""
        params = {"market": market_id} if market_id else None
        data = self._request("GET", "/data/trades", params=params)
        rows = parse_response(lambda d: unwrap_list(d, "trades"), data, "GET", "/data/trades")
        return [parse_response(Trade.from_dict, r, "GET", "/data/trades") for r in rows]

    # ------------------------------------------------------------------
    # Public market data
    # ------------------------------------------------------------------

    def get_order_book(self, token_id: str) -> OrderBook:
        """Fetch the orderbook for a token (no auth)."""
        data = self._request("GET", "/book", params={"token_id": token_id}, auth=False)
        return parse_response(OrderBook.from_dict, data, "GET", "/book")

    def get_price(self, token_id: str, side: str) -> float:
        """Best price available to a taker on *side* (no auth)."""
        side_name = "BUY" if parse_side(side) == 0 else "SELL"
        data = self._request(
            "GET", "/price", params={"token_id": token_id, "side": side_name}, auth=False,
        )
        if not isinstance(data, dict) or data.get("price") in (None, ""):
            raise MalformedResponseError("missing 'price'", json.dumps(data, default=str), "GET", "/price")
        try:
            return float(data["price"])
        except (TypeError, ValueError):
            raise MalformedResponseError(
                f"price is not a number: {data['price']!r}", json.dumps(data), "GET", "/price",
            ) from None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _mark_closed(result: CancelResult) -> CancelResult:
        closed = [oid for oid, reason in result.not_canceled.items() if _BENIGN_CANCEL.search(reason)]
        if closed:
            logger.info("%d order(s) already closed: %s", len(closed), ", ".join(closed))
        return replace(result, already_closed=closed)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
