"""Trigger configuration — dataclass with config.json > env > defaults."""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path

from polyconnect.errors import ValidationError

logger = logging.getLogger(__name__)

TRIGGER_NEW_MARKET = "newMarket"
TRIGGER_PRICE_CHANGE = "priceChange"
TRIGGER_ORDER_FILLED = "orderFilled"
TRIGGER_MARKET_RESOLUTION = "marketResolution"
TRIGGER_KINDS = (
    TRIGGER_NEW_MARKET,
    TRIGGER_PRICE_CHANGE,
    TRIGGER_ORDER_FILLED,
    TRIGGER_MARKET_RESOLUTION,
)

MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_MINUTES = 1440

_ENV_MAP = {
    "trigger_on": "POLYWATCH_TRIGGER",
    "market_id": "POLYWATCH_MARKET_ID",
    "price_threshold": "POLYWATCH_PRICE_THRESHOLD",
    "poll_interval_minutes": "POLYWATCH_POLL_INTERVAL",
    "min_volume": "POLYWATCH_MIN_VOLUME",
    "include_market_details": "POLYWATCH_INCLUDE_DETAILS",
    "log_level": "POLYWATCH_LOG_LEVEL",
}


@dataclass
class TriggerConfig:
    # What to watch
    trigger_on: str = TRIGGER_NEW_MARKET
    market_id: str = ""                  # required for priceChange / marketResolution

    # Filters
    price_threshold: float = 5.0         # percent move
    min_volume: float = 0.0              # newMarket only

    # Polling
    poll_interval_minutes: float = 5.0
    market_limit: int = 100              # markets per newMarket fetch
    request_timeout: float = 15.0

    # Output
    include_market_details: bool = False

    # Logging
    log_level: str = "INFO"

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_minutes * 60

    @classmethod
    def load(cls, config_dir: str) -> "TriggerConfig":
        config_path = Path(config_dir) / "config.json"
        file_cfg: dict = {}
        if config_path.exists():
            try:
                with open(config_path) as f:
                    file_cfg = json.load(f)
            except (json.JSONDecodeError, IOError) as exc:
                logger.warning("Failed to load %s: %s", config_path, exc)

        kwargs: dict = {}
        field_types = {f.name: f.type for f in fields(cls)}

        for f in fields(cls):
            name = f.name
            if name in file_cfg:
                kwargs[name] = _coerce(file_cfg[name], field_types[name])
            elif name in _ENV_MAP:
                env_val = os.environ.get(_ENV_MAP[name])
                if env_val is not None:
                    kwargs[name] = _coerce(env_val, field_types[name])

        return cls(**kwargs)

    def save(self, config_dir: str) -> None:
        config_path = Path(config_dir) / "config.json"
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)
        logger.info("Config saved to %s", config_path)

    def update(self, overrides: dict) -> None:
        field_types = {f.name: f.type for f in fields(self)}
        for key, value in overrides.items():
            if key not in field_types:
                logger.warning("Unknown config key: %s", key)
                continue
            setattr(self, key, _coerce(value, field_types[key]))

    def validate(self) -> None:
        """Raise ValidationError if this configuration cannot be activated."""
        if self.trigger_on not in TRIGGER_KINDS:
            raise ValidationError(
                f"trigger_on must be one of {', '.join(TRIGGER_KINDS)}, got {self.trigger_on!r}"
            )
        if self.trigger_on in (TRIGGER_PRICE_CHANGE, TRIGGER_MARKET_RESOLUTION) and not self.market_id:
            raise ValidationError(f"{self.trigger_on} needs a market_id")
        if self.trigger_on == TRIGGER_PRICE_CHANGE and not 0 < self.price_threshold <= 100:
            raise ValidationError(f"price_threshold must be in (0, 100], got {self.price_threshold}")
        if not MIN_INTERVAL_MINUTES <= self.poll_interval_minutes <= MAX_INTERVAL_MINUTES:
            raise ValidationError(
                f"poll_interval_minutes must be between {MIN_INTERVAL_MINUTES} and "
                f"{MAX_INTERVAL_MINUTES}, got {self.poll_interval_minutes}"
            )
        if self.min_volume < 0:
            raise ValidationError(f"min_volume must be >= 0, got {self.min_volume}")
        if self.market_limit < 1:
            raise ValidationError(f"market_limit must be >= 1, got {self.market_limit}")
        if self.request_timeout <= 0:
            raise ValidationError(f"request_timeout must be > 0, got {self.request_timeout}")


def _coerce(value, type_hint):
    if type_hint == "bool" or type_hint is bool:
        if isinstance(value, bool):
            return value
        return str(value).lower() in ("true", "1", "yes")
    try:
        if type_hint == "int" or type_hint is int:
            return int(value)
        if type_hint == "float" or type_hint is float:
            return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Expected a number, got {value!r}") from None
    return str(value)
