"""Typed records for exchange responses, validated on ingress.

Every ``from_dict`` raises MalformedResponseError when a required field is
missing or has the wrong shape; optional fields fall back to neutral
defaults the way the Gamma API's loose JSON requires.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from .errors import MalformedResponseError


def _require_dict(raw, model: str) -> dict:
    if not isinstance(raw, dict):
        raise MalformedResponseError(f"{model}: expected object, got {type(raw).__name__}")
    return raw


def _require(raw: dict, key: str, model: str):
    value = raw.get(key)
    if value is None or value == "":
        raise MalformedResponseError(f"{model}: missing '{key}'")
    return value


def _float(value, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        raise MalformedResponseError(f"not a number: {value!r}") from None


def _int(value, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        raise MalformedResponseError(f"not an integer: {value!r}") from None


def _json_list(value) -> list:
    """Gamma returns some list fields as JSON strings, some as real lists."""
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            raise MalformedResponseError(f"not a JSON list: {value[:80]!r}") from None
        if isinstance(parsed, list):
            return parsed
    raise MalformedResponseError(f"not a list: {value!r}")


def unwrap_list(data, model: str) -> list:
    """Accept a bare list or a paginated ``{"data": [...]}`` envelope."""
    if isinstance(data, dict) and "data" in data:
        data = data["data"]
    if not isinstance(data, list):
        raise MalformedResponseError(f"{model}: expected a list, got {type(data).__name__}")
    return data


# ── Order book / prices ───────────────────────────────────────────────


@dataclass(frozen=True)
class BookLevel:
    price: float
    size: float

    @classmethod
    def from_dict(cls, raw) -> BookLevel:
        raw = _require_dict(raw, "BookLevel")
        return cls(
            price=_float(_require(raw, "price", "BookLevel")),
            size=_float(_require(raw, "size", "BookLevel")),
        )


@dataclass(frozen=True)
class OrderBook:
    market: str
    asset_id: str
    bids: list[BookLevel]
    asks: list[BookLevel]
    timestamp: str = ""
    hash: str = ""

    @property
    def best_bid(self) -> float | None:
        return max((lvl.price for lvl in self.bids), default=None)

    @property
    def best_ask(self) -> float | None:
        return min((lvl.price for lvl in self.asks), default=None)

    @classmethod
    def from_dict(cls, raw) -> OrderBook:
        raw = _require_dict(raw, "OrderBook")
        bids = raw.get("bids") or []
        asks = raw.get("asks") or []
        if not isinstance(bids, list) or not isinstance(asks, list):
            raise MalformedResponseError("OrderBook: bids/asks must be lists")
        return cls(
            market=str(raw.get("market", "")),
            asset_id=str(raw.get("asset_id", "")),
            bids=[BookLevel.from_dict(b) for b in bids],
            asks=[BookLevel.from_dict(a) for a in asks],
            timestamp=str(raw.get("timestamp", "")),
            hash=str(raw.get("hash", "")),
        )


# ── Orders ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class OrderResult:
    """Response to POST /order."""

    success: bool
    order_id: str
    status: str
    error_msg: str = ""
    transaction_hashes: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw) -> OrderResult:
        raw = _require_dict(raw, "OrderResult")
        return cls(
            success=bool(raw.get("success", False)),
            order_id=str(raw.get("orderID") or raw.get("orderId") or ""),
            status=str(raw.get("status", "")),
            error_msg=str(raw.get("errorMsg") or ""),
            transaction_hashes=list(raw.get("transactionsHashes") or []),
        )


@dataclass(frozen=True)
class CancelResult:
    """Response to the cancel endpoints.

    ``already_closed`` lists ids the exchange no longer knows as resting
    (filled, cancelled, expired): benign for a cancel.
    """

    canceled: list[str]
    not_canceled: dict[str, str]
    already_closed: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw) -> CancelResult:
        raw = _require_dict(raw, "CancelResult")
        canceled = raw.get("canceled") or []
        not_canceled = raw.get("not_canceled") or {}
        if not isinstance(canceled, list) or not isinstance(not_canceled, dict):
            raise MalformedResponseError("CancelResult: unexpected canceled/not_canceled shape")
        return cls(
            canceled=[str(c) for c in canceled],
            not_canceled={str(k): str(v) for k, v in not_canceled.items()},
        )


@dataclass(frozen=True)
class OpenOrder:
    id: str
    status: str
    market: str
    asset_id: str
    side: str
    price: float
    original_size: float
    size_matched: float
    created_at: int = 0
    order_type: str = ""

    @property
    def is_filled(self) -> bool:
        return self.status.upper() == "MATCHED" or (
            self.original_size > 0 and abs(self.size_matched - self.original_size) < 1e-9
        )

    @classmethod
    def from_dict(cls, raw) -> OpenOrder:
        raw = _require_dict(raw, "OpenOrder")
        return cls(
            id=str(_require(raw, "id", "OpenOrder")),
            status=str(raw.get("status", "")),
            market=str(raw.get("market", "")),
            asset_id=str(raw.get("asset_id", "")),
            side=str(raw.get("side", "")),
            price=_float(raw.get("price")),
            original_size=_float(raw.get("original_size")),
            size_matched=_float(raw.get("size_matched")),
            created_at=_int(raw.get("created_at")),
            order_type=str(raw.get("order_type", "")),
        )


# ── Trades ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Trade:
    id: str
    market: str
    asset_id: str
    side: str
    price: float
    size: float
    status: str
    match_time: int
    raw: dict = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, raw) -> Trade:
        raw = _require_dict(raw, "Trade")
        return cls(
            id=str(_require(raw, "id", "Trade")),
            market=str(raw.get("market", "")),
            asset_id=str(raw.get("asset_id", "")),
            side=str(raw.get("side", "")),
            price=_float(raw.get("price")),
            size=_float(raw.get("size")),
            status=str(raw.get("status", "")),
            match_time=_int(raw.get("match_time") or raw.get("timestamp")),
            raw=dict(raw),
        )


# ── Markets (Gamma market-discovery records) ──────────────────────────


@dataclass(frozen=True)
class Market:
    id: str
    question: str
    volume: float
    price: float | None
    outcomes: list[str]
    outcome_prices: list[float]
    active: bool
    closed: bool
    resolved: bool
    outcome: str | None = None
    raw: dict = field(default_factory=dict, repr=False, compare=False)

    @property
    def is_resolved(self) -> bool:
        return self.resolved or self.closed

    @classmethod
    def from_dict(cls, raw) -> Market:
        raw = _require_dict(raw, "Market")
        outcomes = [str(o) for o in _json_list(raw.get("outcomes"))]
        outcome_prices = [_float(p) for p in _json_list(raw.get("outcomePrices"))]

        if raw.get("price") not in (None, ""):
            price = _float(raw["price"])
        elif outcome_prices:
            price = outcome_prices[0]
        elif raw.get("lastTradePrice") not in (None, ""):
            price = _float(raw["lastTradePrice"])
        else:
            price = None

        closed = raw.get("closed") is True
        resolved = raw.get("resolved") is True
        outcome = raw.get("outcome")
        if not outcome and (closed or resolved):
            outcome = _winning_outcome(outcomes, outcome_prices)

        return cls(
            id=str(_require(raw, "id", "Market")),
            question=str(raw.get("question", "")),
            volume=_float(raw.get("volume")),
            price=price,
            outcomes=outcomes,
            outcome_prices=outcome_prices,
            active=raw.get("active", True) is True,
            closed=closed,
            resolved=resolved,
            outcome=outcome or None,
            raw=dict(raw),
        )


def _winning_outcome(outcomes: list[str], prices: list[float]) -> str | None:
    """A resolved market has one outcome at ~1.0 and the others at ~0.0."""
    for name, price in zip(outcomes, prices):
        if price >= 0.95:
            return name
    return None


def parse_response(parser, data, method: str, path: str):
    """Run a ``from_dict``-style parser, attaching request context to errors."""
    try:
        return parser(data)
    except MalformedResponseError as exc:
        raise MalformedResponseError(
            exc.detail, json.dumps(data, default=str), method, path,
        ) from exc
