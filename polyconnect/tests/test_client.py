"""Tests for polyconnect.client — sync trading client with mocked HTTP."""

import base64
import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from polyconnect.client import TradingClient
from polyconnect.credentials import Credentials
from polyconnect.errors import (
    AuthError,
    MalformedResponseError,
    TransientNetworkError,
    UpstreamError,
    ValidationError,
)
from polyconnect.order import OrderIntent

_SECRET = base64.urlsafe_b64encode(b"mysecretkey12345mysecretkey12345").decode()
_FAKE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
_FAKE_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
_TOKEN = "1234567890"


def _make_client(**kwargs) -> TradingClient:
    creds = Credentials(
        api_key="test-api-key",
        api_secret=_SECRET,
        api_passphrase="test-passphrase",
        private_key=_FAKE_KEY,
        **kwargs,
    )
    client = TradingClient(creds, nonce_source=lambda: 0)
    client._http = MagicMock()
    return client


def _mock_response(status_code=200, json_data=None, text=None):
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.json.return_value = json_data if json_data is not None else {}
    resp.text = text if text is not None else json.dumps(json_data) if json_data is not None else ""
    return resp


def _sent(client) -> tuple[str, str, dict, dict]:
    """(method, path, kwargs, decoded body) of the last request."""
    args, kwargs = client._http.request.call_args
    content = kwargs.get("content")
    body = json.loads(content) if content else None
    return args[0], args[1], kwargs, body


class TestClientInit:
    def test_address_and_chain(self):
        client = _make_client(chain_id=80002)
        assert client.address == _FAKE_ADDRESS
        assert client.chain_id == 80002

    def test_repr_hides_key(self):
        assert _FAKE_KEY[2:] not in repr(_make_client())

    def test_funder_is_maker(self):
        funder = "0x70997970c51812dc3a010c7d01b50e0d17dc79c8"
        client = _make_client(funder=funder, signature_type=2)
        order = client.build_order(OrderIntent(_TOKEN, "BUY", 0.5, 10))
        assert order.maker == "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
        assert order.signer == _FAKE_ADDRESS

    def test_bad_funder(self):
        with pytest.raises(ValidationError):
            _make_client(funder="0xnothex", signature_type=1)


class TestCreateOrder:
    def test_posts_signed_order(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(
            200, {"success": True, "orderID": "0xorder1", "status": "live"},
        )
        result = client.create_order(OrderIntent(_TOKEN, "BUY", 0.65, 100))

        assert result.success
        assert result.order_id == "0xorder1"
        assert result.status == "live"

        method, path, kwargs, body = _sent(client)
        assert (method, path) == ("POST", "/order")
        assert body["owner"] == "test-api-key"
        assert body["orderType"] == "GTC"
        assert body["postOnly"] is False
        assert body["order"]["makerAmount"] == "65000000"
        assert body["order"]["takerAmount"] == "100000000"
        assert body["order"]["side"] == "BUY"
        assert body["order"]["signature"].startswith("0x")
        headers = kwargs["headers"]
        assert headers["POLY_API_KEY"] == "test-api-key"
        assert headers["POLY_ADDRESS"] == _FAKE_ADDRESS
        assert headers["Content-Type"] == "application/json"

    def test_gtt_sent_as_gtd(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, {"success": True, "orderID": "x"})
        client.create_order(OrderIntent(_TOKEN, "SELL", 0.5, 1, order_kind="GTT", expiration_seconds=60))
        _, _, _, body = _sent(client)
        assert body["orderType"] == "GTD"
        assert int(body["order"]["expiration"]) > 0

    def test_invalid_intent_never_hits_network(self):
        client = _make_client()
        with pytest.raises(ValidationError):
            client.create_order(OrderIntent(_TOKEN, "BUY", 1.2, 10))
        client._http.request.assert_not_called()

    def test_upstream_error_carries_context(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(
            400, {"error": "not enough balance / allowance"},
        )
        with pytest.raises(UpstreamError) as exc_info:
            client.create_order(OrderIntent(_TOKEN, "BUY", 0.5, 10))
        err = exc_info.value
        assert err.status == 400
        assert err.method == "POST"
        assert err.path == "/order"
        assert err.message == "not enough balance / allowance"
        assert "not enough balance" in err.body

    def test_rejected_order_raises(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(
            200, {"success": False, "errorMsg": "order crosses book"},
        )
        with pytest.raises(UpstreamError, match="order crosses book"):
            client.create_order(OrderIntent(_TOKEN, "BUY", 0.5, 10, post_only=True))

    def test_timeout_is_transient(self):
        client = _make_client()
        client._http.request.side_effect = httpx.ReadTimeout("timed out")
        with pytest.raises(TransientNetworkError):
            client.create_order(OrderIntent(_TOKEN, "BUY", 0.5, 10))
        assert client._http.request.call_count == 1

    def test_connection_error_is_transient(self):
        client = _make_client()
        client._http.request.side_effect = httpx.ConnectError("refused")
        with pytest.raises(TransientNetworkError):
            client.get_open_orders()

    def test_invalid_json_is_malformed(self):
        client = _make_client()
        resp = _mock_response(200, text="<html>")
        resp.json.side_effect = ValueError("Expecting value")
        client._http.request.return_value = resp
        with pytest.raises(MalformedResponseError):
            client.create_order(OrderIntent(_TOKEN, "BUY", 0.5, 10))


class TestCancel:
    def test_cancel_order(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, {"canceled": ["0xa"], "not_canceled": {}})
        result = client.cancel_order("0xa")
        assert result.canceled == ["0xa"]
        method, path, _, body = _sent(client)
        assert (method, path, body) == ("DELETE", "/order", {"orderID": "0xa"})

    def test_cancel_not_found_is_benign(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(404, {"error": "order not found"})
        result = client.cancel_order("0xgone")
        assert result.canceled == []
        assert result.already_closed == ["0xgone"]

    def test_cancel_already_matched_is_benign(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(
            200, {"canceled": [], "not_canceled": {"0xa": "order already matched"}},
        )
        result = client.cancel_order("0xa")
        assert result.already_closed == ["0xa"]

    def test_cancel_other_reason_raises(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(
            200, {"canceled": [], "not_canceled": {"0xa": "exchange paused"}},
        )
        with pytest.raises(UpstreamError):
            client.cancel_order("0xa")

    def test_cancel_server_error_raises(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(500, text="boom")
        with pytest.raises(UpstreamError) as exc_info:
            client.cancel_order("0xa")
        assert exc_info.value.status == 500
        assert exc_info.value.body == "boom"

    def test_cancel_orders_sends_list(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, {"canceled": ["1", "2"], "not_canceled": {}})
        client.cancel_orders(["1", "2"])
        method, path, _, body = _sent(client)
        assert (method, path, body) == ("DELETE", "/orders", ["1", "2"])

    def test_cancel_all(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, {"canceled": [], "not_canceled": {}})
        client.cancel_all()
        method, path, kwargs, body = _sent(client)
        assert (method, path, body) == ("DELETE", "/cancel-all", None)
        assert "Content-Type" not in kwargs["headers"]

    def test_cancel_market(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, {"canceled": ["1"], "not_canceled": {}})
        client.cancel_all(market_id="0xcond")
        _, path, _, body = _sent(client)
        assert path == "/cancel-market-orders"
        assert body == {"market": "0xcond"}


class TestQueries:
    def test_open_orders(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, [
            {"id": "0x1", "status": "LIVE", "side": "BUY", "price": "0.5",
             "original_size": "10", "size_matched": "0"},
        ])
        orders = client.get_open_orders(market_id="0xcond")
        assert len(orders) == 1
        assert orders[0].price == 0.5
        assert not orders[0].is_filled
        method, path, kwargs, _ = _sent(client)
        assert (method, path) == ("GET", "/data/orders")
        assert kwargs["params"] == {"market": "0xcond"}
        assert "POLY_SIGNATURE" in kwargs["headers"]

    def test_open_orders_paginated_envelope(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(
            200, {"data": [{"id": "0x1"}, {"id": "0x2"}], "next_cursor": "LTE="},
        )
        assert [o.id for o in client.get_open_orders()] == ["0x1", "0x2"]

    def test_open_orders_malformed(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, [{"status": "LIVE"}])
        with pytest.raises(MalformedResponseError) as exc_info:
            client.get_open_orders()
        assert exc_info.value.path == "/data/orders"

    def test_get_order(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, {"id": "0x1", "status": "MATCHED"})
        assert client.get_order("0x1").is_filled
        _, path, _, _ = _sent(client)
        assert path == "/data/order/0x1"

    def test_trades(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, [
            {"id": "t1", "market": "0xcond", "price": "0.4", "size": "5", "match_time": "1700000000"},
        ])
        trades = client.get_trades()
        assert trades[0].id == "t1"
        assert trades[0].match_time == 1700000000

    @patch("polyconnect.auth.time")
    def test_signed_path_excludes_query(self, mock_time):
        mock_time.time.return_value = 1700000000
        client = _make_client()
        client._http.request.return_value = _mock_response(200, [])
        client.get_open_orders(market_id="0xcond")
        _, _, kwargs, _ = _sent(client)
        assert kwargs["headers"]["POLY_SIGNATURE"] == "WP4T-K3qoYhYlcjUC5c85HUFjhT5e5LAKio9cXFymsw="


class TestPublicEndpoints:
    def test_book_without_auth_headers(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, {
            "market": "0xcond", "asset_id": _TOKEN,
            "bids": [{"price": "0.48", "size": "100"}, {"price": "0.47", "size": "50"}],
            "asks": [{"price": "0.52", "size": "80"}],
        })
        book = client.get_order_book(_TOKEN)
        assert book.best_bid == 0.48
        assert book.best_ask == 0.52
        _, path, kwargs, _ = _sent(client)
        assert path == "/book"
        assert kwargs["params"] == {"token_id": _TOKEN}
        assert not any(h.startswith("POLY_") for h in kwargs["headers"])

    def test_price(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, {"price": "0.55"})
        assert client.get_price(_TOKEN, "buy") == 0.55
        _, _, kwargs, _ = _sent(client)
        assert kwargs["params"] == {"token_id": _TOKEN, "side": "BUY"}

    def test_price_missing(self):
        client = _make_client()
        client._http.request.return_value = _mock_response(200, {})
        with pytest.raises(MalformedResponseError):
            client.get_price(_TOKEN, "SELL")

    def test_public_only_client(self):
        client = TradingClient()
        client._http = MagicMock()
        client._http.request.return_value = _mock_response(200, {"price": "0.3"})
        assert client.get_price(_TOKEN, "SELL") == 0.3
        with pytest.raises(AuthError):
            client.get_open_orders()
        with pytest.raises(AuthError):
            client.create_order(OrderIntent(_TOKEN, "BUY", 0.5, 1))


class TestLifecycle:
    def test_context_manager_closes(self):
        client = _make_client()
        http = client._http
        with client:
            pass
        http.close.assert_called_once()
