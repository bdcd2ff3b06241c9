"""
LP Ledger — Command Implementations
===================================

All CLI command handlers live here, keeping run.py as a thin argparse
dispatcher. Each public function corresponds to a subcommand
(pnl, apr, tick, info).

Engine wiring (which collaborators back the engines) is also housed here:
the ledger file always supplies positions and events; with --live the
pool, NFT and tick reads go to the chain instead of the file.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from fractions import Fraction

from apr_engine import AprEngine
from fixed_point_math import (
    get_sqrt_ratio_at_tick,
    get_tick_at_sqrt_ratio,
    price_to_closest_usable_tick,
    price_to_sqrt_ratio_x96,
    price_to_tick,
    tick_to_price,
    to_human,
)
from pnl_engine import PnLEngine
from lp_ledger.central_config import PROJECT_NAME, PROJECT_VERSION, NetworkConfig
from lp_ledger.exceptions import PositionAccountingError
from lp_ledger.ledger_store import LedgerStore


# ── Engine Wiring ────────────────────────────────────────────────────────


def build_engines(store: LedgerStore, live: bool = False):
    """(PnLEngine, AprEngine) backed by the ledger file, optionally the chain."""
    if live:
        from position_reader import MultiChainReader

        chain = MultiChainReader()
        refresh_pool, reader = chain.refresh_pool, chain
    else:
        refresh_pool, reader = store.refresh_pool, store

    pnl = PnLEngine(
        position_lookup=store.get_position,
        refresh_pool=refresh_pool,
        sync_ledger=store.sync_ledger,
        reader=reader,
    )
    apr = AprEngine(load_events=store.load_events, pnl_engine=pnl)
    return pnl, apr


def _fmt(amount: int, decimals: int) -> str:
    return f"{to_human(amount, decimals):,.{min(decimals, 6)}f}"


# ── Commands ─────────────────────────────────────────────────────────────


async def cmd_pnl(ledger_path: str, position_id: str, live: bool = False) -> bool:
    """Print the PnL breakdown of one position."""
    try:
        store = LedgerStore.load(ledger_path)
        pnl_engine, _ = build_engines(store, live)
        position = await store.get_position(position_id)
        breakdown = await pnl_engine.get_pnl_breakdown(position_id)
    except (PositionAccountingError, FileNotFoundError, RuntimeError) as e:
        print(f"\n❌ {e}")
        return False

    d = position.quote_decimals
    status_icon = "🟢" if breakdown.range_status == "in-range" else "🔴"
    print(f"\n📊 PnL Breakdown — position {breakdown.position_id} ({position.chain})")
    print("=" * 55)
    print(f"  {status_icon} Status       : {breakdown.range_status} (tick {breakdown.current_tick})")
    print(f"  💲 Price        : {_fmt(breakdown.current_price, d)}")
    print(f"  💼 Value        : {_fmt(breakdown.current_value, d)}")
    print(f"  🧾 Cost basis   : {_fmt(breakdown.current_cost_basis, d)}")
    print(f"  📉 Unrealized   : {_fmt(breakdown.unrealized_pnl, d)}")
    print(f"  ✅ Realized     : {_fmt(breakdown.realized_pnl, d)}")
    print(f"  💰 Collected    : {_fmt(breakdown.collected_fees, d)}")
    print(f"  ⏳ Unclaimed    : {_fmt(breakdown.unclaimed_fee_value, d)}")
    fees = breakdown.unclaimed_fees
    print(f"       token0     : {_fmt(fees.total_claimable0, position.token0_decimals)}"
          f" (checkpointed {fees.checkpointed0}, incremental {fees.incremental0})")
    print(f"       token1     : {_fmt(fees.total_claimable1, position.token1_decimals)}"
          f" (checkpointed {fees.checkpointed1}, incremental {fees.incremental1})")
    print("-" * 55)
    print(f"  🏁 Total PnL    : {_fmt(breakdown.total_pnl, d)}")
    print(f"  🕒 Calculated   : {breakdown.calculated_at.isoformat(timespec='seconds')}")
    return True


async def cmd_apr(
    ledger_path: str,
    position_id: str,
    unclaimed: int | None = None,
    live: bool = False,
) -> bool:
    """Print the APR breakdown of one position."""
    try:
        store = LedgerStore.load(ledger_path)
        _, apr_engine = build_engines(store, live)
        position = await store.get_position(position_id)
        if position is None:
            print(f"\n❌ Position not found: {position_id}")
            return False
        result = await apr_engine.get_apr_breakdown(position_id, unclaimed)
    except (PositionAccountingError, FileNotFoundError, RuntimeError) as e:
        print(f"\n❌ {e}")
        return False

    d = position.quote_decimals
    print(f"\n📈 APR Breakdown — position {result.position_id}")
    print("=" * 55)
    print(f"  ✅ Realized     : {result.realized_apr:8.2f}%  over {result.realized_active_days} days"
          f"  (TW cost {_fmt(result.realized_tw_cost_basis, d)}, fees {_fmt(result.realized_fees, d)})")
    print(f"  ⏳ Unrealized   : {result.unrealized_apr:8.2f}%  over {result.unrealized_active_days} days"
          f"  (cost {_fmt(result.unrealized_cost_basis, d)}, unclaimed {_fmt(result.unclaimed_fees, d)})")
    print("-" * 55)
    print(f"  🏁 Total        : {result.total_apr:8.2f}%  over {result.total_active_days} days"
          f"  (TW cost {_fmt(result.total_tw_cost_basis, d)})")

    if result.periods:
        print("\n  Capital periods:")
        for p in result.periods:
            end = p.end.date().isoformat() if p.end else "open"
            print(f"    {p.start.date().isoformat()} → {end:<10} {p.event_kind.value:<8} "
                  f"cost {_fmt(p.cost_basis, d):>14}  fees {_fmt(p.allocated_fees, d):>12}  "
                  f"{p.apr:7.2f}%")
    return True


def cmd_tick(
    base_address: str,
    quote_address: str,
    base_decimals: int,
    quote_decimals: int,
    tick_spacing: int = 1,
    price: str | None = None,
    tick: int | None = None,
) -> bool:
    """Convert a human price to ticks, or a tick to its price."""
    try:
        if tick is not None:
            sqrt_ratio = get_sqrt_ratio_at_tick(tick)
            raw_price = tick_to_price(tick, base_address, quote_address, base_decimals)
            print(f"\n🎯 Tick {tick}")
            print(f"  √P (X96)      : {sqrt_ratio}")
            print(f"  Price         : {_fmt(raw_price, quote_decimals)} ({raw_price} smallest units)")
            return True

        try:
            human = Decimal(price)
        except (InvalidOperation, TypeError):
            print(f"\n❌ Invalid price: {price}")
            return False
        exact = Fraction(human) * 10 ** quote_decimals
        sqrt_ratio = price_to_sqrt_ratio_x96(exact, base_address, quote_address, base_decimals)
        print(f"\n🎯 Price {human}")
        print(f"  √P (X96)      : {sqrt_ratio}")
        print(f"  Tick          : {get_tick_at_sqrt_ratio(sqrt_ratio)}")
        print(f"  Floor usable  : {price_to_tick(exact, tick_spacing, base_address, quote_address, base_decimals)}"
              f"  (spacing {tick_spacing})")
        print(f"  Closest usable: "
              f"{price_to_closest_usable_tick(exact, tick_spacing, base_address, quote_address, base_decimals)}")
        return True
    except (PositionAccountingError, ValueError) as e:
        print(f"\n❌ {e}")
        return False


def cmd_info() -> None:
    """Display system and architecture information."""
    print(f"\n📊 {PROJECT_NAME} v{PROJECT_VERSION}")
    print("=" * 55)
    print("🔗 Protocol   : Uniswap V3 (concentrated liquidity)")
    print(f"🌐 On-Chain   : {', '.join(n.title() for n in NetworkConfig.RPC_URLS)}")
    print("🧮 Arithmetic : exact integers (Q64.96 / Q128.128, uint256 wraparound)")
    print()
    print("📁 Files:")
    print("   run.py                — CLI entry point")
    print("   fixed_point_math.py   — TickMath, sqrtPriceX96 ↔ price ↔ tick")
    print("   liquidity_math.py     — token amounts ↔ liquidity")
    print("   fee_accounting.py     — fee growth inside, principal/fee split")
    print("   position_valuation.py — value in quote, range status, PnL curve")
    print("   cost_basis_ledger.py  — event-sourced cost basis & realized PnL")
    print("   pnl_engine.py         — cached PnL breakdown")
    print("   apr_engine.py         — capital periods & time-weighted APR")
    print("   position_reader.py    — on-chain pool / NFT / tick reader")
    print("   lp_ledger/            — config, errors, RPC helpers, ledger store")
    print()
    print("🔗 Quick Start:")
    print("   python run.py pnl ledger.json --position arb-5260106")
    print("   python run.py apr ledger.json --position arb-5260106 --unclaimed 1250000")
    print("   python run.py tick --price 4336.76 --base 0x82aF… --quote 0xaf88… \\")
    print("                      --base-decimals 18 --quote-decimals 6 --spacing 10")
    print()
    print("📚 References:")
    print("   Uniswap V3 Whitepaper : https://uniswap.org/whitepaper-v3.pdf")
    print("   Uniswap V3 Docs       : https://docs.uniswap.org/")
    print()
    print("⚠️  Educational tool — NOT financial or tax advice.")
