"""Request and order signing — HMAC-SHA256 envelope + EIP-712 order signatures."""

import base64
import binascii
import hashlib
import hmac
import json

from eth_abi import encode
from eth_account import Account
from eth_utils import keccak

from .constants import (
    CTF_EXCHANGE,
    NEG_RISK_CTF_EXCHANGE,
    ORDER_DOMAIN_NAME,
    ORDER_DOMAIN_VERSION,
    ORDER_TYPES,
)
from .errors import AuthError
from .order import Order

# EIP-712 type hashes (precomputed keccak256 of type strings)
_DOMAIN_TYPE_HASH = keccak(
    b"EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)
_ORDER_FIELDS = ORDER_TYPES["Order"]
_ORDER_TYPE_HASH = keccak(
    text="Order(" + ",".join(f"{f['type']} {f['name']}" for f in _ORDER_FIELDS) + ")"
)

# Domain name and version hashes
_NAME_HASH = keccak(text=ORDER_DOMAIN_NAME)
_VERSION_HASH = keccak(text=ORDER_DOMAIN_VERSION)


def serialize_body(body) -> str:
    """Compact JSON matching the exchange's HMAC validation (no spaces).

    Strings are taken as already serialised; None becomes "".
    """
    if body is None:
        return ""
    if isinstance(body, str):
        return body
    try:
        return json.dumps(body, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise AuthError(f"Request body cannot be serialised for signing: {exc}") from exc


def build_hmac_signature(
    secret: str, timestamp: str, method: str, path: str, body: str = ""
) -> str:
    """Compute the urlsafe-base64 HMAC-SHA256 signature for request auth."""
    message = timestamp + method + path
    if body:
        message += body
    try:
        key = base64.urlsafe_b64decode(secret)
    except (binascii.Error, ValueError, TypeError) as exc:
        raise AuthError("API secret is not valid base64") from exc
    sig = hmac.new(key, message.encode(), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(sig).decode()


def verifying_contract(neg_risk: bool = False) -> str:
    return NEG_RISK_CTF_EXCHANGE if neg_risk else CTF_EXCHANGE


def domain_separator(chain_id: int, neg_risk: bool = False) -> bytes:
    """Compute the EIP-712 domain separator."""
    return keccak(
        encode(
            ["bytes32", "bytes32", "bytes32", "uint256", "address"],
            [_DOMAIN_TYPE_HASH, _NAME_HASH, _VERSION_HASH, chain_id, verifying_contract(neg_risk)],
        )
    )


def order_struct_hash(order: Order) -> bytes:
    """Compute the EIP-712 struct hash for an Order, field by field in type order."""
    message = order.to_message()
    return keccak(
        encode(
            ["bytes32"] + [f["type"] for f in _ORDER_FIELDS],
            [_ORDER_TYPE_HASH] + [message[f["name"]] for f in _ORDER_FIELDS],
        )
    )


def order_digest(order: Order, chain_id: int, neg_risk: bool = False) -> bytes:
    """keccak256("\\x19\\x01" || domainSeparator || structHash)."""
    return keccak(b"\x19\x01" + domain_separator(chain_id, neg_risk) + order_struct_hash(order))


class Signer:
    """Holds the wallet key for the process lifetime and signs with it.

    The key is never exposed: ``repr`` shows the address only.
    """

    def __init__(self, private_key: str):
        key = private_key.strip() if isinstance(private_key, str) else private_key
        if isinstance(key, str) and not key.startswith("0x"):
            key = "0x" + key
        try:
            self._account = Account.from_key(key)
        except Exception as exc:
            raise AuthError("Malformed private key") from exc
        self.address = self._account.address

    def __repr__(self) -> str:
        return f"Signer(address={self.address})"

    def sign_request(self, secret: str, timestamp, method: str, path: str, body=None) -> str:
        """HMAC over timestamp + METHOD + path + compact-JSON body."""
        return build_hmac_signature(
            secret, str(timestamp), method.upper(), path, serialize_body(body)
        )

    def sign_order(self, order: Order, chain_id: int, neg_risk: bool = False) -> str:
        """Sign an Order via EIP-712 and return the 0x-prefixed hex signature."""
        try:
            digest = order_digest(order, chain_id, neg_risk)
            signed = self._account.unsafe_sign_hash(digest)
        except Exception as exc:
            raise AuthError(f"Cannot sign order: {exc}") from exc
        sig = signed.signature.hex()
        return sig if sig.startswith("0x") else "0x" + sig
