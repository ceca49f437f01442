"""Polymarket trigger — poll for changes and emit events."""

from .config import TriggerConfig
from .detectors import (
    DetectionEvent,
    MarketResolutionDetector,
    NewMarketDetector,
    OrderFilledDetector,
    PriceChangeDetector,
    build_detector,
)
from .engine import EngineState, PollEngine
from .source import SnapshotSource
from .state import PollState

__all__ = [
    "DetectionEvent",
    "EngineState",
    "MarketResolutionDetector",
    "NewMarketDetector",
    "OrderFilledDetector",
    "PollEngine",
    "PollState",
    "PriceChangeDetector",
    "SnapshotSource",
    "TriggerConfig",
    "build_detector",
]
