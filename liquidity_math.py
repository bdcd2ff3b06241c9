#!/usr/bin/env python3
"""
Liquidity Math for Uniswap V3
=============================

Token amounts ↔ liquidity for a tick range, in exact integer arithmetic.

Formulas (Whitepaper §6.2, SqrtPriceMath.sol / LiquidityAmounts.sol):
──────────────────────────────────────────────────────────────────────
  Δx = L × (√Pb − √Pa) × 2^96 / (√Pb × √Pa)        (token0)
  Δy = L × (√Pb − √Pa) / 2^96                       (token1)

  Below range  (tick < tickLower):   all token0, amount1 = 0
  In range     (lower ≤ tick < upper): token0 over [√P, √Pu], token1 over [√Pl, √P]
  Above range  (tick ≥ tickUpper):   all token1, amount0 = 0

Division truncates (rounds toward zero for these non-negative values),
which is what the pool pays out on burn. Round-up is available for the
mint side, where the pool asks for the ceiling.

The float estimator liquidity_for_value() is the ONE approximate function
in this module. It exists for UI sizing hints; its result must never be
stored, cached, or fed back into valuation.
"""

import math
from typing import Tuple

from fixed_point_math import Q96, get_sqrt_ratio_at_tick


def _div(numerator: int, denominator: int, round_up: bool) -> int:
    quotient, remainder = divmod(numerator, denominator)
    return quotient + 1 if round_up and remainder else quotient


def _ordered(sqrt_a: int, sqrt_b: int) -> Tuple[int, int]:
    return (sqrt_a, sqrt_b) if sqrt_a <= sqrt_b else (sqrt_b, sqrt_a)


# ── Amounts from Liquidity ───────────────────────────────────────────────

def amount0_for_liquidity(sqrt_lower: int, sqrt_upper: int, liquidity: int, round_up: bool = False) -> int:
    """Δx = L·(√Pb − √Pa)·2^96 / (√Pb·√Pa)."""
    sqrt_lower, sqrt_upper = _ordered(sqrt_lower, sqrt_upper)
    if sqrt_upper == sqrt_lower or liquidity == 0:
        return 0
    numerator = liquidity * (sqrt_upper - sqrt_lower) * Q96
    return _div(numerator, sqrt_upper * sqrt_lower, round_up)


def amount1_for_liquidity(sqrt_lower: int, sqrt_upper: int, liquidity: int, round_up: bool = False) -> int:
    """Δy = L·(√Pb − √Pa) / 2^96."""
    sqrt_lower, sqrt_upper = _ordered(sqrt_lower, sqrt_upper)
    if sqrt_upper == sqrt_lower or liquidity == 0:
        return 0
    return _div(liquidity * (sqrt_upper - sqrt_lower), Q96, round_up)


def amounts_for_liquidity(
    liquidity: int,
    current_tick: int,
    tick_lower: int,
    tick_upper: int,
    round_up: bool = False,
) -> Tuple[int, int]:
    """
    (amount0, amount1) held by `liquidity` over [tick_lower, tick_upper)
    when the pool sits at `current_tick`.

    The current tick's own sqrt ratio is used for the in-range split, so
    the result only depends on integers the caller already has.
    """
    if tick_lower >= tick_upper:
        raise ValueError(f"tick_lower ({tick_lower}) must be below tick_upper ({tick_upper})")
    if liquidity == 0:
        return 0, 0

    sqrt_lower = get_sqrt_ratio_at_tick(tick_lower)
    sqrt_upper = get_sqrt_ratio_at_tick(tick_upper)

    if current_tick < tick_lower:
        return amount0_for_liquidity(sqrt_lower, sqrt_upper, liquidity, round_up), 0
    if current_tick >= tick_upper:
        return 0, amount1_for_liquidity(sqrt_lower, sqrt_upper, liquidity, round_up)

    sqrt_current = get_sqrt_ratio_at_tick(current_tick)
    return (
        amount0_for_liquidity(sqrt_current, sqrt_upper, liquidity, round_up),
        amount1_for_liquidity(sqrt_lower, sqrt_current, liquidity, round_up),
    )


# ── Liquidity from Amounts ───────────────────────────────────────────────

def liquidity_for_amount0(sqrt_lower: int, sqrt_upper: int, amount0: int) -> int:
    """L = Δx·√Pa·√Pb / (2^96·(√Pb − √Pa)), floored."""
    sqrt_lower, sqrt_upper = _ordered(sqrt_lower, sqrt_upper)
    if sqrt_upper == sqrt_lower or amount0 <= 0:
        return 0
    return (amount0 * sqrt_lower * sqrt_upper) // (Q96 * (sqrt_upper - sqrt_lower))


def liquidity_for_amount1(sqrt_lower: int, sqrt_upper: int, amount1: int) -> int:
    """L = Δy·2^96 / (√Pb − √Pa), floored."""
    sqrt_lower, sqrt_upper = _ordered(sqrt_lower, sqrt_upper)
    if sqrt_upper == sqrt_lower or amount1 <= 0:
        return 0
    return (amount1 * Q96) // (sqrt_upper - sqrt_lower)


def liquidity_for_amounts(
    current_tick: int,
    tick_lower: int,
    tick_upper: int,
    amount0: int,
    amount1: int,
) -> int:
    """Largest liquidity both amounts can fund (in range: the smaller side)."""
    sqrt_lower = get_sqrt_ratio_at_tick(tick_lower)
    sqrt_upper = get_sqrt_ratio_at_tick(tick_upper)

    if current_tick < tick_lower:
        return liquidity_for_amount0(sqrt_lower, sqrt_upper, amount0)
    if current_tick >= tick_upper:
        return liquidity_for_amount1(sqrt_lower, sqrt_upper, amount1)

    sqrt_current = get_sqrt_ratio_at_tick(current_tick)
    return min(
        liquidity_for_amount0(sqrt_current, sqrt_upper, amount0),
        liquidity_for_amount1(sqrt_lower, sqrt_current, amount1),
    )


# ── Display-Only Estimation ──────────────────────────────────────────────

def liquidity_for_value(
    value_in_quote: float,
    current_price: float,
    price_lower: float,
    price_upper: float,
    token0_is_quote: bool = False,
) -> float:
    """
    APPROXIMATE liquidity that a quote-denominated budget would buy.

    Floats, human prices (quote per base, decimals already applied).
    For sizing hints only — never store or revalue with the result.

    Per unit of liquidity the position holds (in token1 per token0 terms):
        x = 1/√P − 1/√Pu,   y = √P − √Pl   (clamped to the range)
    """
    if value_in_quote <= 0 or current_price <= 0:
        return 0.0
    if price_lower <= 0 or price_upper <= price_lower:
        raise ValueError("price range must satisfy 0 < price_lower < price_upper")

    if token0_is_quote:
        # Pool prices are token1/token0 = base per quote; invert the range
        current_price = 1 / current_price
        price_lower, price_upper = 1 / price_upper, 1 / price_lower

    sqrt_p = math.sqrt(min(max(current_price, price_lower), price_upper))
    sqrt_l = math.sqrt(price_lower)
    sqrt_u = math.sqrt(price_upper)

    per_l_token0 = 1 / sqrt_p - 1 / sqrt_u
    per_l_token1 = sqrt_p - sqrt_l

    # value of one unit of L, in token1, at the actual pool price
    value_per_l = per_l_token0 * current_price + per_l_token1
    if token0_is_quote:
        # token1 value → token0 (quote) value
        value_per_l = value_per_l / current_price

    if value_per_l <= 0:
        return 0.0
    return value_in_quote / value_per_l
