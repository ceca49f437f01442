"""Polymarket CLOB connector — signed order submission and order-service queries."""

from .auth import RequestAuthenticator
from .client import TradingClient
from .credentials import Credentials
from .errors import (
    AuthError,
    MalformedResponseError,
    PolymarketError,
    TransientNetworkError,
    UpstreamError,
    ValidationError,
)
from .order import Order, OrderBuilder, OrderIntent, SignedOrder
from .signer import Signer

__all__ = [
    "AuthError",
    "Credentials",
    "MalformedResponseError",
    "Order",
    "OrderBuilder",
    "OrderIntent",
    "PolymarketError",
    "RequestAuthenticator",
    "SignedOrder",
    "Signer",
    "TradingClient",
    "TransientNetworkError",
    "UpstreamError",
    "ValidationError",
]
