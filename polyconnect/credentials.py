"""API credentials — env / creds.json loading, immutable per client instance."""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .constants import POLYGON, SUPPORTED_CHAINS
from .errors import AuthError, ValidationError

logger = logging.getLogger(__name__)

SIGNATURE_TYPE_EOA = 0
SIGNATURE_TYPE_POLY_PROXY = 1
SIGNATURE_TYPE_POLY_GNOSIS_SAFE = 2
_SIGNATURE_TYPES = {SIGNATURE_TYPE_EOA, SIGNATURE_TYPE_POLY_PROXY, SIGNATURE_TYPE_POLY_GNOSIS_SAFE}

_ENV_MAP = {
    "api_key": "POLY_API_KEY",
    "api_secret": "POLY_API_SECRET",
    "api_passphrase": "POLY_API_PASSPHRASE",
    "private_key": "POLY_PRIVATE_KEY",
    "chain_id": "POLY_CHAIN_ID",
    "funder": "POLY_FUNDER",
    "signature_type": "POLY_SIGNATURE_TYPE",
}


@dataclass(frozen=True)
class Credentials:
    """Everything needed to talk to the authenticated order service.

    Rotating any value means building a new Credentials and a new client.
    """

    api_key: str
    api_secret: str = field(repr=False)
    api_passphrase: str = field(repr=False)
    private_key: str = field(repr=False)
    chain_id: int = POLYGON
    funder: str | None = None
    signature_type: int = SIGNATURE_TYPE_EOA

    def __post_init__(self):
        if self.chain_id not in SUPPORTED_CHAINS:
            raise ValidationError(
                f"Unsupported chain id {self.chain_id} (expected one of {sorted(SUPPORTED_CHAINS)})"
            )
        if self.signature_type not in _SIGNATURE_TYPES:
            raise ValidationError(f"Unknown signature type {self.signature_type}")
        if self.signature_type != SIGNATURE_TYPE_EOA and not self.funder:
            raise ValidationError("Proxy/Safe signature types need a funder address")

    @classmethod
    def from_env(cls, environ: dict | None = None) -> "Credentials":
        """Build credentials from POLY_* environment variables."""
        env = os.environ if environ is None else environ
        values = {name: env.get(var) for name, var in _ENV_MAP.items()}
        missing = [
            _ENV_MAP[name]
            for name in ("api_key", "api_secret", "api_passphrase", "private_key")
            if not values[name]
        ]
        if missing:
            raise AuthError(f"Missing credentials: set {', '.join(missing)}")
        try:
            chain_id = int(values["chain_id"] or POLYGON)
            signature_type = int(values["signature_type"] or SIGNATURE_TYPE_EOA)
        except ValueError:
            raise ValidationError(
                f"{_ENV_MAP['chain_id']} and {_ENV_MAP['signature_type']} must be integers"
            ) from None
        return cls(
            api_key=values["api_key"],
            api_secret=values["api_secret"],
            api_passphrase=values["api_passphrase"],
            private_key=values["private_key"],
            chain_id=chain_id,
            funder=values["funder"] or None,
            signature_type=signature_type,
        )

    @classmethod
    def load(cls, creds_file: str, private_key: str, **kwargs) -> "Credentials":
        """Load API creds from a JSON file as issued by the exchange.

        The file holds apiKey, secret and passphrase; the private key is
        passed separately and never read from or written to disk here.
        """
        path = Path(creds_file)
        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise AuthError(f"Cannot read creds file {path}: {exc}") from exc
        try:
            creds = cls(
                api_key=data["apiKey"],
                api_secret=data["secret"],
                api_passphrase=data["passphrase"],
                private_key=private_key,
                **kwargs,
            )
        except KeyError as exc:
            raise AuthError(f"Creds file {path} is missing {exc}") from exc
        logger.info("Loaded API creds from %s", path)
        return creds
