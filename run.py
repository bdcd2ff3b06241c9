#!/usr/bin/env python3
"""
LP Ledger -- Uniswap V3 Position Accounting
============================================

PnL and APR for Uniswap V3 positions from an event ledger, with exact
fixed-point math and fee-growth accounting.

Usage:
  python run.py pnl  <ledger.json> --position <id>                 PnL breakdown
  python run.py pnl  <ledger.json> --position <id> --live          ... with live chain reads
  python run.py apr  <ledger.json> --position <id>                 APR breakdown
  python run.py apr  <ledger.json> --position <id> --unclaimed N   ... with unclaimed fee override
  python run.py tick --price P --base 0x… --quote 0x… ...          Price → tick
  python run.py tick --tick T  --base 0x… --quote 0x… ...          Tick → price
  python run.py info                                               System overview

Sources:
  Uniswap V3 Whitepaper : https://uniswap.org/whitepaper-v3.pdf
  Uniswap V3 Docs       : https://docs.uniswap.org/
"""

import sys
import asyncio
import argparse

from lp_ledger.central_config import PROJECT_VERSION, PROJECT_NAME
from lp_ledger.commands import cmd_apr, cmd_info, cmd_pnl, cmd_tick


# ── CLI Parser ────────────────────────────────────────────────────────────


def _add_ledger_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("ledger", help="Ledger JSON file (positions, pool state, events)")
    p.add_argument("--position", type=str, required=True, help="Position id in the ledger file")
    p.add_argument(
        "--live",
        action="store_true",
        help="Read pool, NFT and tick state from chain instead of the ledger file",
    )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lp-ledger",
        description=f"{PROJECT_NAME} v{PROJECT_VERSION} — Uniswap V3 Position Accounting",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py pnl  ledger.json --position arb-5260106
  python run.py apr  ledger.json --position arb-5260106 --unclaimed 1250000
  python run.py tick --price 4336.76 --base 0x82aF49447D8a07e3bd95BD0d56f35241523fBab1 \\
                     --quote 0xaf88d065e77c8cC2239327C5EDb3A432268e5831 \\
                     --base-decimals 18 --quote-decimals 6 --spacing 10
  python run.py info

Amounts are printed in token units; --unclaimed takes quote smallest units.
""",
    )
    parser.add_argument(
        "--version", action="version", version=f"{PROJECT_NAME} v{PROJECT_VERSION}"
    )

    sub = parser.add_subparsers(dest="command", help="Available commands")

    pnl_p = sub.add_parser("pnl", help="PnL breakdown for a position")
    _add_ledger_args(pnl_p)

    apr_p = sub.add_parser("apr", help="Realized / unrealized / total APR for a position")
    _add_ledger_args(apr_p)
    apr_p.add_argument(
        "--unclaimed",
        type=int,
        default=None,
        help="Unclaimed fee value in quote smallest units (default: computed)",
    )

    tick_p = sub.add_parser("tick", help="Convert between prices and ticks")
    group = tick_p.add_mutually_exclusive_group(required=True)
    group.add_argument("--price", type=str, help="Human price: quote per 1 base token")
    group.add_argument("--tick", type=int, help="Tick index")
    tick_p.add_argument("--base", type=str, required=True, help="Base token address (0x…)")
    tick_p.add_argument("--quote", type=str, required=True, help="Quote token address (0x…)")
    tick_p.add_argument("--base-decimals", type=int, default=18, help="Base token decimals (default: 18)")
    tick_p.add_argument("--quote-decimals", type=int, default=6, help="Quote token decimals (default: 6)")
    tick_p.add_argument("--spacing", type=int, default=1, help="Pool tick spacing (default: 1)")

    sub.add_parser("info", help="System & architecture info")

    return parser


# ── Main ──────────────────────────────────────────────────────────────────


def main() -> int:
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    if args.command == "info":
        cmd_info()
        return 0

    if args.command == "pnl":
        ok = asyncio.run(cmd_pnl(args.ledger, args.position, live=args.live))
        return 0 if ok else 1

    if args.command == "apr":
        ok = asyncio.run(
            cmd_apr(args.ledger, args.position, unclaimed=args.unclaimed, live=args.live)
        )
        return 0 if ok else 1

    if args.command == "tick":
        ok = cmd_tick(
            base_address=args.base,
            quote_address=args.quote,
            base_decimals=args.base_decimals,
            quote_decimals=args.quote_decimals,
            tick_spacing=args.spacing,
            price=args.price,
            tick=args.tick,
        )
        return 0 if ok else 1

    parser.print_help()
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n❌ Cancelled.")
        sys.exit(130)
