"""Change detectors — one per trigger kind.

Each detector knows which snapshot to fetch and how to compare it with the
previous PollState. ``detect`` is pure: it returns the events to emit and
the next state, and never touches the network or the current state.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from polyconnect.errors import MalformedResponseError
from polyconnect.models import Market, Trade

from .config import (
    TRIGGER_MARKET_RESOLUTION,
    TRIGGER_NEW_MARKET,
    TRIGGER_ORDER_FILLED,
    TRIGGER_PRICE_CHANGE,
    TriggerConfig,
)
from .state import PollState

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DetectionEvent:
    trigger: str
    payload: list[dict]
    emitted_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        return {
            "trigger": self.trigger,
            "emittedAt": self.emitted_at.isoformat(),
            "data": self.payload,
        }


class ChangeDetector:
    """Base class: subclasses set ``kind`` and implement fetch/detect."""

    kind = ""

    async def fetch(self, source):
        raise NotImplementedError

    def detect(self, snapshot, state: PollState) -> tuple[list[DetectionEvent], PollState]:
        raise NotImplementedError

    def detail_ref(self, record: dict) -> str | None:
        """Market reference to enrich *record* with, or None to leave it as is."""
        return None


class NewMarketDetector(ChangeDetector):
    kind = TRIGGER_NEW_MARKET

    def __init__(self, min_volume: float = 0.0, limit: int = 100):
        self.min_volume = min_volume
        self.limit = limit

    async def fetch(self, source) -> list[Market]:
        return await source.fetch_markets(self.limit)

    def detect(self, markets: list[Market], state: PollState):
        next_state = state.with_markets(m.id for m in markets)
        if state.known_market_ids is None:
            logger.info("Seeded %d known markets", len(next_state.known_market_ids))
            return [], next_state

        new: dict[str, Market] = {}
        for m in markets:
            if m.id not in state.known_market_ids and m.id not in new:
                new[m.id] = m
        fresh = [m for m in new.values() if m.volume >= self.min_volume]
        if len(fresh) < len(new):
            logger.debug("%d new market(s) below min volume %.2f", len(new) - len(fresh), self.min_volume)
        if not fresh:
            return [], next_state
        return [DetectionEvent(self.kind, [m.raw for m in fresh])], next_state

    def detail_ref(self, record: dict) -> str | None:
        return str(record["id"]) if record.get("id") else None


class PriceChangeDetector(ChangeDetector):
    kind = TRIGGER_PRICE_CHANGE

    def __init__(self, market_id: str, threshold: float):
        self.market_id = market_id
        self.threshold = threshold

    async def fetch(self, source) -> Market:
        return await source.fetch_market(self.market_id)

    def detect(self, market: Market, state: PollState):
        if market.price is None:
            raise MalformedResponseError(f"market {market.id} has no price")
        current = market.price
        previous = state.last_price
        next_state = state.with_price(current)

        if previous is None:
            logger.info("Seeded price %.4f for market %s", current, market.id)
            return [], next_state
        if previous == 0:
            return [], next_state

        change = abs(current - previous) * 100 / previous
        if change < self.threshold:
            logger.debug("Market %s moved %.2f%% (< %.2f%%)", market.id, change, self.threshold)
            return [], next_state

        payload = dict(market.raw)
        payload.update({
            "priceChange": change,
            "previousPrice": previous,
            "currentPrice": current,
            "direction": "up" if current > previous else "down",
        })
        return [DetectionEvent(self.kind, [payload])], next_state


class OrderFilledDetector(ChangeDetector):
    kind = TRIGGER_ORDER_FILLED

    async def fetch(self, source) -> list[Trade]:
        return await source.fetch_trades()

    def detect(self, trades: list[Trade], state: PollState):
        newest_first = sorted(trades, key=lambda t: t.match_time, reverse=True)
        next_state = state.with_trades(newest_first)
        if state.seen_trade_ids is None:
            logger.info("Seeded %d recent trade(s)", len(next_state.seen_trade_ids))
            return [], next_state

        new: dict[str, Trade] = {}
        for t in newest_first:
            if not state.has_seen(t) and t.id not in new:
                new[t.id] = t
        if not new:
            return [], next_state
        # oldest fill first
        payload = [t.raw for t in reversed(list(new.values()))]
        return [DetectionEvent(self.kind, payload)], next_state

    def detail_ref(self, record: dict) -> str | None:
        return str(record["market"]) if record.get("market") else None


class MarketResolutionDetector(ChangeDetector):
    kind = TRIGGER_MARKET_RESOLUTION

    def __init__(self, market_id: str):
        self.market_id = market_id

    async def fetch(self, source) -> Market:
        return await source.fetch_market(self.market_id)

    def detect(self, market: Market, state: PollState):
        resolved = market.is_resolved
        next_state = state.with_resolved(resolved)
        if state.resolved is None:
            if resolved:
                logger.info("Market %s was already resolved at activation", market.id)
            return [], next_state
        if not resolved or state.resolved:
            return [], next_state

        payload = dict(market.raw)
        payload.update({
            "resolvedAt": _utcnow().isoformat(),
            "outcome": market.outcome,
        })
        return [DetectionEvent(self.kind, [payload])], next_state


def build_detector(config: TriggerConfig) -> ChangeDetector:
    """Detector for a validated TriggerConfig."""
    config.validate()
    if config.trigger_on == TRIGGER_NEW_MARKET:
        return NewMarketDetector(min_volume=config.min_volume, limit=config.market_limit)
    if config.trigger_on == TRIGGER_PRICE_CHANGE:
        return PriceChangeDetector(config.market_id, config.price_threshold)
    if config.trigger_on == TRIGGER_ORDER_FILLED:
        return OrderFilledDetector()
    return MarketResolutionDetector(config.market_id)
