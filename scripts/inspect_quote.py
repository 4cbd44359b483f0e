#!/usr/bin/env python3
"""Fetch a Relay quote and print its calls and summary without signing anything."""

import argparse
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from eth_account import Account

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from gasless.config import load_config
from gasless.core.quotes import QuoteRequest, extract_calls, extract_request_id, has_signature_steps, summarize_quote
from gasless.core.relay import RelayClient
from gasless.core.utils import parse_units, to_hex

load_dotenv()

FALLBACK_USER = "0x03508bB71268BBA25ECaCC8F620e01866650532c"


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Inspect a Relay quote")
    parser.add_argument("--origin-chain", type=int, default=8453)
    parser.add_argument("--destination-chain", type=int, default=42161)
    parser.add_argument("--origin-currency", default="USDC")
    parser.add_argument("--destination-currency", default="USDC")
    parser.add_argument("--amount", default="1")
    parser.add_argument("--user", default=None, help="Quote on behalf of this address")
    parser.add_argument("--permit", action="store_true", help="Request a usePermit quote")
    return parser.parse_args()


def main() -> None:
    """Print what a quote would ask the wallet to do."""
    args = _parse_args()
    config = load_config()

    user = args.user
    if not user:
        private_key = os.getenv("PRIVATE_KEY")
        if private_key:
            user = Account.from_key(private_key).address
        else:
            user = FALLBACK_USER
            print("⚠️  PRIVATE_KEY not set, quoting for a fallback address")

    origin = config.find_currency(args.origin_chain, args.origin_currency)
    destination = config.find_currency(args.destination_chain, args.destination_currency)
    if origin is None or destination is None:
        print("❌ Error: unknown origin or destination currency")
        sys.exit(1)

    request = QuoteRequest(
        user=user,
        origin_chain_id=args.origin_chain,
        destination_chain_id=args.destination_chain,
        origin_currency=origin.address,
        destination_currency=destination.address,
        amount=parse_units(args.amount, origin.decimals),
        use_permit=True if args.permit else None,
    )
    print(f"🔍 Quoting {args.amount} {origin.symbol} -> {destination.symbol} for {user}\n")

    try:
        quote = RelayClient(config.relay).get_quote(request.to_payload())
    except Exception as exc:  # pragma: no cover - debugging script
        print(f"\n❌ Error fetching quote: {exc}")
        sys.exit(1)

    summary = summarize_quote(quote)
    print("=" * 60)
    print("QUOTE")
    print("=" * 60)
    print(f"\n📤 Receive: ~{summary.amount_out} {summary.symbol} on chain {summary.destination_chain_id}")
    print(f"💵 Value: ${summary.value_usd}")
    print(f"🧾 Relay fee: ${summary.relay_fee_usd}")
    print(f"⛽ Gas: ${summary.gas_usd}")
    print(f"⏱️  Est. time: ~{summary.time_estimate}s")
    print(f"🔀 Flow: {summary.flow_label}")
    print(f"🆔 Request ID: {extract_request_id(quote) or '(none)'}")

    calls = extract_calls(quote)
    print(f"\n📞 Calls ({len(calls)}):")
    for idx, call in enumerate(calls, start=1):
        print(f"   [{idx}] to={call.to} value={call.value} data={to_hex(call.data)[:10]}... ({len(call.data)} bytes)")
    if has_signature_steps(quote):
        print("\n✍️  Quote contains signature steps")

    print("\n✅ Quote inspection complete.")


if __name__ == "__main__":
    main()
