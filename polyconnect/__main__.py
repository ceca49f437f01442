"""Polymarket CLOB CLI — run with: python3 -m polyconnect <command>"""

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict

from .client import TradingClient
from .credentials import Credentials
from .errors import PolymarketError
from .order import OrderIntent

logging.basicConfig(
    format="%(asctime)s %(levelname)s %(message)s",
    level=logging.INFO,
)
logger = logging.getLogger(__name__)


def _load_credentials(args) -> Credentials:
    """Env vars, or POLY_CREDS_FILE + POLY_PRIVATE_KEY."""
    key = args.private_key or os.environ.get("POLY_PRIVATE_KEY")
    creds_file = os.environ.get("POLY_CREDS_FILE")
    if creds_file and os.path.exists(creds_file):
        if not key:
            print("Error: set POLY_PRIVATE_KEY env var or pass --private-key")
            sys.exit(1)
        return Credentials.load(
            creds_file, key,
            chain_id=int(os.environ.get("POLY_CHAIN_ID", "137")),
            funder=os.environ.get("POLY_FUNDER") or None,
            signature_type=int(os.environ.get("POLY_SIGNATURE_TYPE", "0")),
        )
    env = dict(os.environ)
    if key:
        env["POLY_PRIVATE_KEY"] = key
    return Credentials.from_env(env)


def _get_client(args) -> TradingClient:
    return TradingClient(_load_credentials(args))


def _get_public_client() -> TradingClient:
    """Credential-less client for the public endpoints."""
    return TradingClient()


# -- Commands ----------------------------------------------------------------

def cmd_book(args):
    """Show orderbook for a token (public endpoint)."""
    with _get_public_client() as client:
        book = client.get_order_book(args.token_id)
        print("=== ASKS ===")
        for ask in sorted(book.asks, key=lambda lvl: lvl.price, reverse=True):
            print(f"  {ask.price:>8.4f}  |  {ask.size}")
        print("------------")
        for bid in sorted(book.bids, key=lambda lvl: lvl.price, reverse=True):
            print(f"  {bid.price:>8.4f}  |  {bid.size}")
        print("=== BIDS ===")


def cmd_price(args):
    """Show current price for a token and side (public endpoint)."""
    with _get_public_client() as client:
        price = client.get_price(args.token_id, args.side)
        print(json.dumps({"token_id": args.token_id, "side": args.side.upper(), "price": price}))


def cmd_orders(args):
    """List open orders."""
    with _get_client(args) as client:
        orders = client.get_open_orders(market_id=args.market)
        if not orders:
            print("No open orders.")
            return
        for o in orders:
            print(f"  {o.id}  {o.side}  price={o.price}  "
                  f"size={o.original_size}  matched={o.size_matched}")
        print(f"\n{len(orders)} open order(s)")


def cmd_order(args):
    """Place a limit order. Each invocation places a NEW order."""
    intent = OrderIntent(
        token_id=args.token_id,
        side=args.side.upper(),
        price=args.price,
        size=args.size,
        order_kind=args.kind,
        expiration_seconds=args.expires_in,
        tick_size=args.tick_size,
        neg_risk=args.neg_risk,
        post_only=args.post_only,
    )
    with _get_client(args) as client:
        result = client.create_order(intent)
        print(json.dumps(asdict(result), indent=2))


def cmd_cancel(args):
    """Cancel an order, or all orders (optionally in one market)."""
    with _get_client(args) as client:
        if args.order_id == "all":
            result = client.cancel_all(market_id=args.market)
        else:
            result = client.cancel_order(args.order_id)
        print(json.dumps(asdict(result), indent=2))


def cmd_trades(args):
    """Show trade history."""
    with _get_client(args) as client:
        trades = client.get_trades(market_id=args.market)
        if not trades:
            print("No trades.")
            return
        for t in trades:
            print(f"  {t.id}  {t.side}  price={t.price}  size={t.size}  status={t.status}")
        print(f"\n{len(trades)} trade(s)")


# -- CLI setup ---------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(
        prog="python3 -m polyconnect",
        description="Polymarket CLOB trading connector",
    )
    parser.add_argument("--private-key", help="Wallet private key (or set POLY_PRIVATE_KEY)")
    parser.add_argument("--verbose", action="store_true", help="DEBUG logging")
    sub = parser.add_subparsers(dest="command", required=True)

    # book
    p = sub.add_parser("book", help="Show orderbook")
    p.add_argument("token_id")
    p.set_defaults(func=cmd_book)

    # price
    p = sub.add_parser("price", help="Show price")
    p.add_argument("token_id")
    p.add_argument("side", choices=["buy", "sell", "BUY", "SELL"])
    p.set_defaults(func=cmd_price)

    # orders
    p = sub.add_parser("orders", help="List open orders")
    p.add_argument("--market", help="Only orders in this market (condition id)")
    p.set_defaults(func=cmd_orders)

    # order
    p = sub.add_parser("order", help="Place a limit order")
    p.add_argument("token_id")
    p.add_argument("side", choices=["buy", "sell", "BUY", "SELL"])
    p.add_argument("price", type=float)
    p.add_argument("size", type=float)
    p.add_argument("--kind", default="GTC", choices=["GTC", "GTT", "FOK"])
    p.add_argument("--expires-in", type=int, metavar="SECONDS",
                   help="Lifetime of a GTT order")
    p.add_argument("--tick-size", default="0.01")
    p.add_argument("--neg-risk", action="store_true")
    p.add_argument("--post-only", action="store_true")
    p.set_defaults(func=cmd_order)

    # cancel
    p = sub.add_parser("cancel", help="Cancel order(s)")
    p.add_argument("order_id", help="Order ID or 'all'")
    p.add_argument("--market", help="With 'all': only this market")
    p.set_defaults(func=cmd_cancel)

    # trades
    p = sub.add_parser("trades", help="Show trade history")
    p.add_argument("--market", help="Only trades in this market")
    p.set_defaults(func=cmd_trades)

    args = parser.parse_args()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    try:
        args.func(args)
    except PolymarketError as exc:
        logger.error("%s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
