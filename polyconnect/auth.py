"""Polymarket CLOB request authentication — HMAC header set per request."""

import time

from .constants import (
    POLY_ADDRESS,
    POLY_API_KEY,
    POLY_PASSPHRASE,
    POLY_SIGNATURE,
    POLY_TIMESTAMP,
)
from .credentials import Credentials
from .signer import Signer, serialize_body


class RequestAuthenticator:
    """Builds the authentication headers for the order-service endpoints.

    Public endpoints (book, price) must never be sent these headers.
    """

    def __init__(self, signer: Signer, credentials: Credentials):
        self._signer = signer
        self._creds = credentials

    @property
    def address(self) -> str:
        return self._signer.address

    def headers(self, method: str, path: str, body=None) -> dict:
        """Sign ``method path body`` with a fresh unix-second timestamp.

        *path* is the request path without query string. *body* may be a
        dict/list (serialised compactly) or an already-serialised string;
        send exactly ``serialize_body(body)`` so the signed bytes match.
        """
        ts = str(int(time.time()))
        body_str = serialize_body(body)
        sig = self._signer.sign_request(self._creds.api_secret, ts, method, path, body_str)
        headers = {
            POLY_ADDRESS: self._signer.address,
            POLY_SIGNATURE: sig,
            POLY_TIMESTAMP: ts,
            POLY_API_KEY: self._creds.api_key,
            POLY_PASSPHRASE: self._creds.api_passphrase,
        }
        if body_str:
            headers["Content-Type"] = "application/json"
        return headers
