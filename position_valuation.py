#!/usr/bin/env python3
"""
Position Valuation
==================

Values a Uniswap V3 position in its QUOTE token, in smallest units.

  value = quoteAmount + baseAmount × price / 10^baseDecimals

where (amount0, amount1) come from liquidity_math.amounts_for_liquidity()
and `price` is quote smallest units per one whole base token.

Base/quote roles are a user choice, recorded per position as
`token0_is_quote`; they are independent of the pool's token0/token1 order.

Also here: range status, PnL over a price sweep (the chart curve), and
the LP-vs-hold comparison.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from fixed_point_math import (
    Q192,
    base_is_token0,
    price_to_tick,
    value_in_quote,
)
from liquidity_math import amounts_for_liquidity
from lp_ledger.central_config import config
from lp_ledger.exceptions import PoolDataUnavailable

IN_RANGE = "in-range"
OUT_OF_RANGE_BELOW = "out-of-range-below"
OUT_OF_RANGE_ABOVE = "out-of-range-above"

PHASE_BELOW = "below"
PHASE_IN_RANGE = "in-range"
PHASE_ABOVE = "above"

CURVE_POINTS = config.engine.CURVE_POINTS


# ── Position & Pool Records ──────────────────────────────────────────────


@dataclass(frozen=True)
class Position:
    """A tracked LP position and the caller's base/quote choice."""

    position_id: str
    nft_id: int
    chain: str
    pool_address: str
    token0_address: str
    token1_address: str
    token0_decimals: int
    token1_decimals: int
    tick_lower: int
    tick_upper: int
    liquidity: int = 0
    tick_spacing: int = 60
    token0_is_quote: bool = False

    @property
    def base_decimals(self) -> int:
        return self.token1_decimals if self.token0_is_quote else self.token0_decimals

    @property
    def quote_decimals(self) -> int:
        return self.token0_decimals if self.token0_is_quote else self.token1_decimals

    @property
    def base_address(self) -> str:
        return self.token1_address if self.token0_is_quote else self.token0_address

    @property
    def quote_address(self) -> str:
        return self.token0_address if self.token0_is_quote else self.token1_address


@dataclass(frozen=True)
class PoolSnapshot:
    """
    Pool state read in ONE block. current_price is quote per whole base
    for the position it was refreshed for; None means the read failed.
    """

    current_tick: Optional[int]
    sqrt_price_x96: Optional[int]
    current_price: Optional[int]
    fee_growth_global0_x128: int = 0
    fee_growth_global1_x128: int = 0
    token0_decimals: int = 18
    token1_decimals: int = 18
    block_number: int = 0


def require_pool_data(pool: PoolSnapshot, position_id: str) -> Tuple[int, int]:
    """(current_tick, current_price) or PoolDataUnavailable naming the gap."""
    if pool is None:
        raise PoolDataUnavailable(position_id, "pool snapshot")
    if pool.current_tick is None:
        raise PoolDataUnavailable(position_id, "current_tick")
    if pool.current_price is None:
        raise PoolDataUnavailable(position_id, "current_price")
    return pool.current_tick, pool.current_price


# ── Valuation ────────────────────────────────────────────────────────────

def value_at_sqrt_price(amount0: int, amount1: int, sqrt_price_x96: int, token0_is_quote: bool) -> int:
    """
    Value of raw token amounts in quote units at an exact pool sqrt price.

    Used for ledger events, where the block's sqrtPriceX96 is known and a
    truncated human price would lose precision on large amounts.
    """
    squared = sqrt_price_x96 * sqrt_price_x96
    if token0_is_quote:
        # token1 → token0 at price token0/token1 = 2^192 / √P²
        return amount0 + (amount1 * Q192) // squared
    # token0 → token1 at price token1/token0 = √P² / 2^192
    return amount1 + (amount0 * squared) // Q192


def current_value(
    liquidity: int,
    current_tick: int,
    tick_lower: int,
    tick_upper: int,
    current_price: int,
    base_decimals: int,
    token0_is_quote: bool,
) -> int:
    """Position value in quote smallest units at the given tick and price."""
    amount0, amount1 = amounts_for_liquidity(liquidity, current_tick, tick_lower, tick_upper)
    return value_in_quote(amount0, amount1, current_price, token0_is_quote, base_decimals)


# ── Range Status ─────────────────────────────────────────────────────────

def range_status(current_tick: int, tick_lower: int, tick_upper: int) -> str:
    if tick_lower <= current_tick < tick_upper:
        return IN_RANGE
    if current_tick < tick_lower:
        return OUT_OF_RANGE_BELOW
    return OUT_OF_RANGE_ABOVE


def position_phase(current_tick: int, tick_lower: int, tick_upper: int) -> str:
    if current_tick < tick_lower:
        return PHASE_BELOW
    if current_tick >= tick_upper:
        return PHASE_ABOVE
    return PHASE_IN_RANGE


# ── PnL Curve & Hold Comparison ──────────────────────────────────────────


@dataclass(frozen=True)
class PnLPoint:
    price: int
    position_value: int
    pnl: int
    pnl_percent: float
    phase: str


def calculate_pnl(current: int, initial: int) -> Tuple[int, float]:
    """(pnl, pnl_percent) with the percent truncated to two decimals."""
    pnl = current - initial
    if initial <= 0:
        return pnl, 0.0
    # basis points, truncated toward zero
    bps = abs(pnl) * 10_000 // initial
    return pnl, (-bps if pnl < 0 else bps) / 100


def generate_pnl_curve(
    liquidity: int,
    tick_lower: int,
    tick_upper: int,
    initial_value: int,
    base_address: str,
    quote_address: str,
    base_decimals: int,
    tick_spacing: int,
    price_min: int,
    price_max: int,
    num_points: int = CURVE_POINTS,
) -> List[PnLPoint]:
    """
    Position value and PnL across an evenly spaced price sweep.

    Each sample price is mapped to its (spacing-floored) tick, so the
    curve shows exactly the discrete states the pool can be in.
    """
    if price_min <= 0 or price_max <= price_min:
        raise ValueError("price range must satisfy 0 < price_min < price_max")
    if num_points <= 0:
        raise ValueError(f"num_points must be positive, got {num_points}")

    token0_is_quote = not base_is_token0(base_address, quote_address)
    step = (price_max - price_min) // num_points

    points = []
    for i in range(num_points + 1):
        price = price_min + i * step
        tick = price_to_tick(price, tick_spacing, base_address, quote_address, base_decimals)
        value = current_value(
            liquidity, tick, tick_lower, tick_upper, price, base_decimals, token0_is_quote
        )
        pnl, pnl_percent = calculate_pnl(value, initial_value)
        points.append(PnLPoint(
            price=price,
            position_value=value,
            pnl=pnl,
            pnl_percent=pnl_percent,
            phase=position_phase(tick, tick_lower, tick_upper),
        ))
    return points


@dataclass(frozen=True)
class HoldComparison:
    position_value: int
    hold_value: int
    advantage: int
    advantage_percent: float


def compare_to_hold_strategy(
    position_value: int,
    initial_amount0: int,
    initial_amount1: int,
    current_price: int,
    token0_is_quote: bool,
    base_decimals: int,
) -> HoldComparison:
    """LP value vs. simply holding the tokens originally deposited."""
    hold_value = value_in_quote(
        initial_amount0, initial_amount1, current_price, token0_is_quote, base_decimals
    )
    advantage, advantage_percent = calculate_pnl(position_value, hold_value)
    return HoldComparison(position_value, hold_value, advantage, advantage_percent)
