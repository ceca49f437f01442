"""Per-trigger poll state — what the previous cycle saw.

One PollState belongs to one PollEngine. It is never mutated: every
successful comparison produces a new instance, and the engine swaps it in
only after that comparison succeeded. Nothing is persisted.
"""

from dataclasses import dataclass, replace

from polyconnect.models import Trade

SEEN_TRADES_LIMIT = 100


@dataclass(frozen=True)
class PollState:
    known_market_ids: frozenset[str] | None = None   # None until seeded
    last_price: float | None = None
    seen_trade_ids: tuple[str, ...] | None = None    # newest first; None until seeded
    seen_watermark: int | None = None                # match time of oldest retained id
    resolved: bool | None = None                     # None until first observation

    def with_markets(self, market_ids) -> "PollState":
        return replace(self, known_market_ids=frozenset(market_ids))

    def with_price(self, price: float) -> "PollState":
        return replace(self, last_price=price)

    def with_resolved(self, resolved: bool) -> "PollState":
        return replace(self, resolved=resolved)

    def with_trades(self, newest_first: list[Trade]) -> "PollState":
        """Remember the newest trades of the latest fetch.

        An empty fetch keeps what was remembered before (but still marks
        the state as seeded).
        """
        unique: dict[str, Trade] = {}
        for t in newest_first:
            unique.setdefault(t.id, t)
        trades = list(unique.values())
        kept = trades[:SEEN_TRADES_LIMIT]
        if not kept:
            return replace(self, seen_trade_ids=self.seen_trade_ids or ())
        oldest = min(t.match_time for t in kept)
        # trades tied at the boundary time stay together, past the limit if need be
        kept += [t for t in trades[SEEN_TRADES_LIMIT:] if t.match_time == oldest]
        ids = [t.id for t in kept]
        watermark = oldest if self.seen_watermark is None else max(oldest, self.seen_watermark)
        return replace(self, seen_trade_ids=tuple(ids), seen_watermark=watermark)

    def has_seen(self, trade: Trade) -> bool:
        if self.seen_trade_ids is not None and trade.id in self.seen_trade_ids:
            return True
        return self.seen_watermark is not None and trade.match_time < self.seen_watermark
