"""Poll engine — fetch, compare, emit on an interval, one cycle at a time."""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from polyconnect.errors import PolymarketError

from .detectors import ChangeDetector, DetectionEvent
from .state import PollState

logger = logging.getLogger(__name__)


class EngineState:
    IDLE = "idle"
    FETCHING = "fetching"
    COMPARING = "comparing"
    EMITTING = "emitting"
    CANCELLED = "cancelled"


@dataclass
class EngineStats:
    cycles: int = 0
    failures: int = 0
    consecutive_failures: int = 0
    events_emitted: int = 0
    dropped_ticks: int = 0
    last_success: str = ""
    last_error: str = ""


class PollEngine:
    """Drives one detector against one SnapshotSource.

    Args:
        detector: Which change to look for.
        source: SnapshotSource (or anything with the same fetch methods).
        on_events: Called with the list of events of a cycle that found any.
        interval_seconds: Time between the starts of two cycles in ``run()``.
        include_details: Attach ``fullDetails`` to list payload items.
        manual: Raise cycle failures to the caller instead of logging them.
    """

    def __init__(
        self,
        detector: ChangeDetector,
        source,
        on_events,
        interval_seconds: float,
        include_details: bool = False,
        manual: bool = False,
    ):
        self.detector = detector
        self.source = source
        self.on_events = on_events
        self.interval_seconds = interval_seconds
        self.include_details = include_details
        self.manual = manual

        self.state = PollState()
        self.status = EngineState.IDLE
        self.stats = EngineStats()
        self._in_flight = False
        self._stop = asyncio.Event()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def poll_once(self) -> list[DetectionEvent]:
        """Run one fetch/compare/emit cycle and return the emitted events.

        A call made while another cycle is still running does nothing and
        returns an empty list.
        """
        if self._stop.is_set():
            return []
        if self._in_flight:
            self.stats.dropped_ticks += 1
            logger.warning("Previous poll still running — tick dropped (%d so far)",
                           self.stats.dropped_ticks)
            return []

        self._in_flight = True
        try:
            return await self._cycle()
        finally:
            self._in_flight = False
            self._set_status(EngineState.IDLE)

    async def _cycle(self) -> list[DetectionEvent]:
        self.stats.cycles += 1
        try:
            self._set_status(EngineState.FETCHING)
            snapshot = await self.detector.fetch(self.source)
            self._set_status(EngineState.COMPARING)
            events, next_state = self.detector.detect(snapshot, self.state)
        except PolymarketError as exc:
            self._record_failure(exc)
            logger.error("Poll failed (%s, attempt %d): %s",
                         type(exc).__name__, self.stats.consecutive_failures, exc)
            if self.manual:
                raise
            return []
        except Exception as exc:
            self._record_failure(exc)
            logger.exception("Unexpected error in poll: %s", exc)
            if self.manual:
                raise
            return []

        self.state = next_state
        self.stats.consecutive_failures = 0
        self.stats.last_success = datetime.now(timezone.utc).isoformat()
        if not events:
            return []

        self._set_status(EngineState.EMITTING)
        if self.include_details:
            events = [await self._enrich(event) for event in events]
        self.stats.events_emitted += len(events)
        logger.info("%s: %d event(s), %d item(s)", self.detector.kind, len(events),
                    sum(len(e.payload) for e in events))
        try:
            self.on_events(events)
        except Exception as exc:
            logger.exception("Event consumer failed: %s", exc)
            if self.manual:
                raise
        return events

    async def _enrich(self, event: DetectionEvent) -> DetectionEvent:
        """Attach full market records to payload items; skip any that fail."""
        items = []
        for item in event.payload:
            ref = self.detector.detail_ref(item)
            if ref:
                try:
                    market = await self.source.fetch_market(ref)
                except Exception as exc:
                    logger.warning("Could not fetch details for %s: %s", ref, exc)
                else:
                    item = {**item, "fullDetails": market.raw}
            items.append(item)
        return replace(event, payload=items)

    def _set_status(self, status: str) -> None:
        # Cancelled is terminal
        if not self._stop.is_set():
            self.status = status

    def _record_failure(self, exc: Exception) -> None:
        self.stats.failures += 1
        self.stats.consecutive_failures += 1
        self.stats.last_error = f"{type(exc).__name__}: {exc}"

    async def run(self) -> None:
        """Poll now, then every interval until close().

        A cycle that overruns the interval delays the next one; cycles never
        overlap.
        """
        logger.info("Poll engine started (trigger=%s, interval=%.0fs)",
                    self.detector.kind, self.interval_seconds)
        while not self._stop.is_set():
            started = time.monotonic()
            await self.poll_once()
            if self._stop.is_set():
                break
            delay = self.interval_seconds - (time.monotonic() - started)
            if delay <= 0:
                logger.warning("Poll took longer than the %.0fs interval", self.interval_seconds)
                await asyncio.sleep(0)
                continue
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        self.status = EngineState.CANCELLED
        logger.info("Poll engine stopped (%d cycles, %d events, %d failures)",
                    self.stats.cycles, self.stats.events_emitted, self.stats.failures)

    def close(self) -> None:
        """Stop scheduling; a running cycle is allowed to finish."""
        self._stop.set()
        self.status = EngineState.CANCELLED
