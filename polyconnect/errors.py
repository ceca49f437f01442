"""Error taxonomy shared by the trading client and the poller."""

import json
import logging

import httpx

logger = logging.getLogger(__name__)


class PolymarketError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(PolymarketError, ValueError):
    """Bad user input (price, size, threshold...). Raised before any network call."""


class AuthError(PolymarketError):
    """Signing or credential failure. Fatal for the operation, never retried."""


class TransientNetworkError(PolymarketError):
    """Timeout or connection failure talking to the exchange."""


class UpstreamError(PolymarketError):
    """Non-2xx response from the exchange.

    Carries the HTTP status, the upstream body verbatim, and the request
    method/path so callers can tell validation errors, auth failures and
    exchange-side rejections apart.
    """

    def __init__(self, status: int, body: str, method: str, path: str):
        self.status = status
        self.body = body
        self.method = method
        self.path = path
        self.message = _extract_message(body)
        super().__init__(f"{method} {path} -> HTTP {status}: {self.message or body}")


class MalformedResponseError(UpstreamError):
    """2xx response whose body is not the JSON shape we expect."""

    def __init__(self, detail: str, body: str = "", method: str = "", path: str = "", status: int = 200):
        self.status = status
        self.body = body
        self.method = method
        self.path = path
        self.message = detail
        self.detail = detail
        PolymarketError.__init__(self, f"{method} {path}: malformed response ({detail})")


def _extract_message(body: str) -> str:
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return ""
    if isinstance(data, dict):
        for key in ("error", "errorMsg", "message"):
            if data.get(key):
                return str(data[key])
    return ""


def decode_response(resp: httpx.Response, method: str, path: str):
    """Return the JSON body of *resp*, raising UpstreamError on non-2xx."""
    if not 200 <= resp.status_code < 300:
        logger.error("CLOB %d %s %s: %s", resp.status_code, method, path, resp.text)
        raise UpstreamError(resp.status_code, resp.text, method, path)
    try:
        return resp.json()
    except ValueError as exc:
        raise MalformedResponseError(
            f"invalid JSON: {exc}", resp.text, method, path, resp.status_code,
        ) from exc
