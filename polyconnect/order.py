"""Polymarket CLOB order construction — human units to on-wire integer amounts."""

import math
import secrets
import threading
import time
from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation

from .credentials import SIGNATURE_TYPE_EOA
from .errors import ValidationError

# Side encoding for the Order struct
SIDE_BUY = 0
SIDE_SELL = 1
_SIDE_MAP = {"BUY": SIDE_BUY, "SELL": SIDE_SELL}
_SIDE_NAMES = {SIDE_BUY: "BUY", SIDE_SELL: "SELL"}

# Zero address used as default taker (anyone can fill)
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# USDC has 6 decimals
USDC_DECIMALS = 6
USDC_UNIT = 10**USDC_DECIMALS

MIN_PRICE = Decimal("0.01")
MAX_PRICE = Decimal("0.99")
SIZE_QUANTUM = Decimal("0.01")
TICK_SIZES = ("0.1", "0.01", "0.001", "0.0001")

# Order kind -> orderType sent to the exchange (the exchange calls GTT "GTD")
ORDER_GTC = "GTC"
ORDER_GTT = "GTT"
ORDER_FOK = "FOK"
_WIRE_ORDER_TYPES = {"GTC": "GTC", "FOK": "FOK", "GTT": "GTD", "GTD": "GTD"}


class MonotonicNonce:
    """Strictly increasing nonce source, safe to share between threads.

    Seeded from wall-clock microseconds, so values also keep increasing
    across restarts as long as the clock does not step backwards.
    """

    def __init__(self, clock=time.time_ns):
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            self._last = max(self._last + 1, self._clock() // 1000)
            return self._last


@dataclass(frozen=True)
class Order:
    """Unsigned CTF Exchange order. Amounts are integers in 1e-6 units."""

    salt: int
    maker: str
    signer: str
    taker: str
    token_id: int
    maker_amount: int
    taker_amount: int
    expiration: int
    nonce: int
    fee_rate_bps: int
    side: int
    signature_type: int

    @property
    def side_name(self) -> str:
        return _SIDE_NAMES[self.side]

    @property
    def price(self) -> Decimal:
        """Limit price implied by the amounts."""
        if self.side == SIDE_BUY:
            return Decimal(self.maker_amount) / Decimal(self.taker_amount)
        return Decimal(self.taker_amount) / Decimal(self.maker_amount)

    @property
    def size(self) -> Decimal:
        """Number of outcome tokens implied by the amounts."""
        tokens = self.taker_amount if self.side == SIDE_BUY else self.maker_amount
        return Decimal(tokens) / USDC_UNIT

    def to_message(self) -> dict:
        """EIP-712 message values, keyed by the Order type field names."""
        return {
            "salt": self.salt,
            "maker": self.maker,
            "signer": self.signer,
            "taker": self.taker,
            "tokenId": self.token_id,
            "makerAmount": self.maker_amount,
            "takerAmount": self.taker_amount,
            "expiration": self.expiration,
            "nonce": self.nonce,
            "feeRateBps": self.fee_rate_bps,
            "side": self.side,
            "signatureType": self.signature_type,
        }


@dataclass(frozen=True)
class SignedOrder:
    """An Order plus its EIP-712 signature. Any field change needs a re-sign."""

    order: Order
    signature: str

    def to_payload(self) -> dict:
        """Wire format: numeric fields as strings, side as BUY/SELL."""
        o = self.order
        return {
            "salt": o.salt,
            "maker": o.maker,
            "signer": o.signer,
            "taker": o.taker,
            "tokenId": str(o.token_id),
            "makerAmount": str(o.maker_amount),
            "takerAmount": str(o.taker_amount),
            "expiration": str(o.expiration),
            "nonce": str(o.nonce),
            "feeRateBps": str(o.fee_rate_bps),
            "side": o.side_name,
            "signatureType": o.signature_type,
            "signature": self.signature,
        }


@dataclass(frozen=True)
class OrderIntent:
    """What the user wants to trade, in human units."""

    token_id: str
    side: str
    price: float
    size: float
    order_kind: str = ORDER_GTC
    expiration_seconds: int | None = None
    fee_rate_bps: int = 0
    tick_size: str = "0.01"
    neg_risk: bool = False
    post_only: bool = False


def _generate_salt() -> int:
    """Generate a cryptographically random salt."""
    return secrets.randbelow(2**128)


def _to_decimal(value, name: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number, got {value!r}")
    try:
        as_float = float(value)
        as_decimal = Decimal(str(value))
    except (TypeError, ValueError, InvalidOperation):
        raise ValidationError(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(as_float):
        raise ValidationError(f"{name} must be finite, got {value!r}")
    return as_decimal


def _to_units(amount: Decimal) -> int:
    scaled = amount * USDC_UNIT
    if scaled != scaled.to_integral_value():
        raise ValidationError(f"Amount {amount} has more than {USDC_DECIMALS} decimals")
    return int(scaled)


def parse_side(side: str) -> int:
    try:
        return _SIDE_MAP[side.upper()]
    except (KeyError, AttributeError):
        raise ValidationError(f"Side must be BUY or SELL, got {side!r}") from None


def wire_order_type(order_kind: str) -> str:
    """Map GTC/GTT/FOK to the orderType value the exchange expects."""
    try:
        return _WIRE_ORDER_TYPES[order_kind.upper()]
    except (KeyError, AttributeError):
        raise ValidationError(
            f"Order kind must be one of GTC, GTT, FOK, got {order_kind!r}"
        ) from None


def compute_amounts(side: int, price, size, tick_size: str = "0.01") -> tuple[int, int]:
    """Return (maker_amount, taker_amount) for a price/size pair.

    Price is rounded to the tick and size down to 2 decimals *before*
    scaling, so the scaled amounts are exact integers.
    """
    if tick_size not in TICK_SIZES:
        raise ValidationError(f"Unknown tick size {tick_size!r}")
    d_price = _to_decimal(price, "price")
    if not MIN_PRICE <= d_price <= MAX_PRICE:
        raise ValidationError(f"Price {price} outside [{MIN_PRICE}, {MAX_PRICE}]")
    tick = Decimal(tick_size)
    d_price = d_price.quantize(tick, rounding=ROUND_HALF_UP)
    if not tick <= d_price <= 1 - tick:
        raise ValidationError(f"Price {price} rounds to {d_price}, outside the tick range")

    d_size = _to_decimal(size, "size")
    if d_size <= 0:
        raise ValidationError(f"Size must be positive, got {size}")
    d_size = d_size.quantize(SIZE_QUANTUM, rounding=ROUND_DOWN)
    if d_size <= 0:
        raise ValidationError(f"Size {size} rounds down to zero")

    notional = d_price * d_size
    if side == SIDE_BUY:
        return _to_units(notional), _to_units(d_size)
    return _to_units(d_size), _to_units(notional)


class OrderBuilder:
    """Turns order intent into an unsigned Order for one maker.

    Args:
        maker: Address that funds the order (proxy/Safe wallet, or the EOA).
        signer: EOA address that signs (defaults to maker).
        signature_type: 0 EOA, 1 POLY_PROXY, 2 POLY_GNOSIS_SAFE.
        nonce_source: Zero-arg callable returning the next nonce. Defaults
            to a MonotonicNonce so concurrently built orders never collide.
    """

    def __init__(
        self,
        maker: str,
        signer: str | None = None,
        signature_type: int = SIGNATURE_TYPE_EOA,
        nonce_source=None,
    ):
        self.maker = maker
        self.signer = signer or maker
        self.signature_type = signature_type
        self._next_nonce = nonce_source or MonotonicNonce()

    def build(
        self,
        token_id: str,
        side: str,
        price: float,
        size: float,
        order_kind: str = ORDER_GTC,
        expiration_seconds: int | None = None,
        fee_rate_bps: int = 0,
        tick_size: str = "0.01",
        taker: str | None = None,
    ) -> Order:
        """Validate and convert; raises ValidationError before any I/O."""
        side_int = parse_side(side)
        wire_type = wire_order_type(order_kind)
        maker_amount, taker_amount = compute_amounts(side_int, price, size, tick_size)

        try:
            token = int(token_id)
        except (TypeError, ValueError):
            raise ValidationError(f"Token id must be an integer string, got {token_id!r}") from None
        if token < 0:
            raise ValidationError(f"Token id must be non-negative, got {token_id!r}")
        if fee_rate_bps < 0:
            raise ValidationError(f"Fee rate must be non-negative, got {fee_rate_bps}")

        if wire_type == "GTD":
            if not expiration_seconds or expiration_seconds <= 0:
                raise ValidationError("Good-till-time orders need expiration_seconds > 0")
            expiration = int(time.time()) + int(expiration_seconds)
        else:
            expiration = 0

        return Order(
            salt=_generate_salt(),
            maker=self.maker,
            signer=self.signer,
            taker=taker or ZERO_ADDRESS,
            token_id=token,
            maker_amount=maker_amount,
            taker_amount=taker_amount,
            expiration=expiration,
            nonce=self._next_nonce(),
            fee_rate_bps=fee_rate_bps,
            side=side_int,
            signature_type=self.signature_type,
        )
