#!/usr/bin/env python3
"""
Fixed-Point Math for Uniswap V3
===============================

Exact integer conversions between ticks, sqrtPriceX96 and prices.
No floats anywhere in this module: every result matches what the pool
contracts compute on-chain.

FORMULA SOURCES:
────────────────
1. Uniswap V3 Whitepaper §6.1 — https://uniswap.org/whitepaper-v3.pdf
   p(i) = 1.0001^i,  √p(i) = 1.0001^(i/2)

2. TickMath.sol — https://github.com/Uniswap/v3-core/blob/main/contracts/libraries/TickMath.sol
   getSqrtRatioAtTick: product of precomputed 1/√1.0001^(2^k) in Q128,
   inverted for positive ticks, then Q128.128 → Q64.96 rounding UP.
   getTickAtSqrtRatio: greatest tick whose sqrt ratio ≤ the input.

3. FixedPoint96.sol / FixedPoint128.sol
   Q96 = 2^96, Q128 = 2^128 (Q192 = Q96², the scale of a squared sqrt price)

4. v3-sdk encodeSqrtRatioX96 / nearestUsableTick
   √(amount1 / amount0) × 2^96, floored

Price convention:
  "price" = smallest units of the QUOTE token per ONE WHOLE base token
  (10^baseDecimals smallest base units). Token order is the pool's:
  token0 is the numerically smaller address.

Wraparound:
  Fee-growth counters are uint256 and wrap. wrapped_sub() is the only
  subtraction allowed on them.
"""

import math
from decimal import Decimal
from fractions import Fraction
from typing import Tuple, Union

from lp_ledger.exceptions import OutOfBoundsTick, WraparoundMisuse

# ── Fixed-Point Constants ────────────────────────────────────────────────

Q96 = 2 ** 96                # sqrtPriceX96 denominator
Q128 = 2 ** 128              # feeGrowthX128 denominator
Q192 = 2 ** 192              # sqrtPriceX96² denominator
Q256 = 2 ** 256              # uint256 wraparound modulus
MAX_UINT256 = Q256 - 1

# ── Tick Bounds (TickMath.sol) ───────────────────────────────────────────

MIN_TICK = -887272
MAX_TICK = -MIN_TICK
MIN_SQRT_RATIO = 4295128739
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

# 1/√1.0001^(2^k) in Q128, for k = 1..19 (bit 0 seeds the product)
_TICK_BIT_FACTORS = (
    (0x2, 0xFFF97272373D413259A46990580E213A),
    (0x4, 0xFFF2E50F5F656932EF12357CF3C7FDCC),
    (0x8, 0xFFE5CACA7E10E4E61C3624EAA0941CD0),
    (0x10, 0xFFCB9843D60F6159C9DB58835C926644),
    (0x20, 0xFF973B41FA98C081472E6896DFB254C0),
    (0x40, 0xFF2EA16466C96A3843EC78B326B52861),
    (0x80, 0xFE5DEE046A99A2A811C461F1969C3053),
    (0x100, 0xFCBE86C7900A88AEDCFFC83B479AA3A4),
    (0x200, 0xF987A7253AC413176F2B074CF7815E54),
    (0x400, 0xF3392B0822B70005940C7A398E4B70F3),
    (0x800, 0xE7159475A2C29B7443B29C7FA6E889D9),
    (0x1000, 0xD097F3BDFD2022B8845AD8F792AA5825),
    (0x2000, 0xA9F746462D870FDF8A65DC1F90E061E5),
    (0x4000, 0x70D869A156D2A1B890BB3DF62BAF32F7),
    (0x8000, 0x31BE135F97D08FD981231505542FCFA6),
    (0x10000, 0x9AA508B5B7A84E1C677DE54F3E99BC9),
    (0x20000, 0x5D6AF8DEDB81196699C329225EE604),
    (0x40000, 0x2216E584F5FA1EA926041BEDFE98),
    (0x80000, 0x48A170391F7DC42444E8FA2),
)
_TICK_BIT0_FACTOR = 0xFFFCB933BD6FAD37AA2D162D1A594001

_LOG_SQRT_TICK_BASE = math.log(1.0001) / 2

Price = Union[int, Fraction]


# ── Wrap-Safe Arithmetic ─────────────────────────────────────────────────

def wrapped_sub(a: int, b: int, modulus: int = Q256) -> int:
    """
    Unsigned modular subtraction: (a − b) mod modulus.

    Both operands must already be valid unsigned values of the modulus'
    width; anything else means a signed difference leaked into fee math.

    >>> wrapped_sub(5, 10, 2 ** 8)
    251
    """
    if not (0 <= a < modulus and 0 <= b < modulus):
        raise WraparoundMisuse(
            f"Operands must lie in [0, {modulus}): got a={a}, b={b}"
        )
    return (a - b) % modulus


# ── TickMath ─────────────────────────────────────────────────────────────

def get_sqrt_ratio_at_tick(tick: int) -> int:
    """
    √(1.0001^tick) × 2^96, bit-exact with TickMath.getSqrtRatioAtTick.

    Raises:
        OutOfBoundsTick: tick outside [MIN_TICK, MAX_TICK].
    """
    if isinstance(tick, bool) or not isinstance(tick, int):
        raise TypeError(f"tick must be an int, got {type(tick).__name__}")
    if tick < MIN_TICK or tick > MAX_TICK:
        raise OutOfBoundsTick(tick)

    abs_tick = abs(tick)
    ratio = _TICK_BIT0_FACTOR if abs_tick & 0x1 else 1 << 128
    for bit, factor in _TICK_BIT_FACTORS:
        if abs_tick & bit:
            ratio = (ratio * factor) >> 128

    if tick > 0:
        ratio = MAX_UINT256 // ratio

    # Q128.128 → Q64.96, rounding up so getTickAtSqrtRatio stays consistent
    return (ratio >> 32) + (1 if ratio % (1 << 32) else 0)


def tick_to_sqrt_price_x96(tick: int) -> int:
    """Alias kept for callers that speak in sqrtPriceX96 terms."""
    return get_sqrt_ratio_at_tick(tick)


def get_tick_at_sqrt_ratio(sqrt_price_x96: int) -> int:
    """
    Greatest tick t such that get_sqrt_ratio_at_tick(t) ≤ sqrt_price_x96.

    A float log gives an estimate within a tick or two; the exact integer
    TickMath comparison then settles the boundary. MAX_SQRT_RATIO itself
    maps to MAX_TICK.

    Raises:
        OutOfBoundsTick: sqrt ratio outside [MIN_SQRT_RATIO, MAX_SQRT_RATIO].
    """
    if sqrt_price_x96 < MIN_SQRT_RATIO or sqrt_price_x96 > MAX_SQRT_RATIO:
        raise OutOfBoundsTick(
            sqrt_price_x96,
            f"sqrtPriceX96 {sqrt_price_x96} is outside "
            f"[{MIN_SQRT_RATIO}, {MAX_SQRT_RATIO}]",
        )

    log_ratio = math.log(sqrt_price_x96) - 96 * math.log(2)
    tick = math.floor(log_ratio / _LOG_SQRT_TICK_BASE)
    tick = max(MIN_TICK, min(MAX_TICK, tick))

    while tick > MIN_TICK and get_sqrt_ratio_at_tick(tick) > sqrt_price_x96:
        tick -= 1
    while tick < MAX_TICK and get_sqrt_ratio_at_tick(tick + 1) <= sqrt_price_x96:
        tick += 1
    return tick


# ── Tick Spacing ─────────────────────────────────────────────────────────

def _check_spacing(tick_spacing: int) -> None:
    if tick_spacing <= 0:
        raise ValueError(f"tick_spacing must be positive, got {tick_spacing}")


def floor_to_spacing(tick: int, tick_spacing: int) -> int:
    """
    Round DOWN (toward −∞) to a multiple of tick_spacing.

    The result is kept inside the tick bounds: a floor below MIN_TICK
    moves up to the first usable tick.
    """
    _check_spacing(tick_spacing)
    snapped = (tick // tick_spacing) * tick_spacing
    if snapped < MIN_TICK:
        snapped += tick_spacing
    return snapped


def nearest_usable_tick(tick: int, tick_spacing: int) -> int:
    """Nearest multiple of tick_spacing (halves round up), clamped to bounds."""
    _check_spacing(tick_spacing)
    rounded = ((2 * tick + tick_spacing) // (2 * tick_spacing)) * tick_spacing
    if rounded < MIN_TICK:
        return rounded + tick_spacing
    if rounded > MAX_TICK:
        return rounded - tick_spacing
    return rounded


# ── Token Order ──────────────────────────────────────────────────────────

def base_is_token0(base_address: str, quote_address: str) -> bool:
    """Pool token0 is the numerically smaller address."""
    return int(base_address, 16) < int(quote_address, 16)


# ── sqrtPriceX96 → Price ─────────────────────────────────────────────────

def sqrt_ratio_to_token1_per_token0(sqrt_price_x96: int, token0_decimals: int) -> int:
    """token1 smallest units per whole token0: √P² × 10^d0 / 2^192."""
    return (sqrt_price_x96 * sqrt_price_x96 * 10 ** token0_decimals) // Q192


def sqrt_ratio_to_token0_per_token1(sqrt_price_x96: int, token1_decimals: int) -> int:
    """token0 smallest units per whole token1: 2^192 × 10^d1 / √P²."""
    if sqrt_price_x96 == 0:
        raise ZeroDivisionError("sqrtPriceX96 is zero")
    return (Q192 * 10 ** token1_decimals) // (sqrt_price_x96 * sqrt_price_x96)


def sqrt_price_x96_to_price(
    sqrt_price_x96: int,
    base_address: str,
    quote_address: str,
    base_decimals: int,
) -> int:
    """
    Quote smallest units per one whole base token, truncated.

    Multiplies before dividing; inverts the pool's token1/token0 ratio
    when the base token is token1.

    Example (Arbitrum WETH/USDC, WETH is token0):
        sqrtPriceX96 = 5217497569124140394546365, base WETH (18)
        → 5217497569124140394546365² × 10^18 / 2^192 = 4336759547 (≈ 4336.76 USDC)
    """
    if base_is_token0(base_address, quote_address):
        return sqrt_ratio_to_token1_per_token0(sqrt_price_x96, base_decimals)
    return sqrt_ratio_to_token0_per_token1(sqrt_price_x96, base_decimals)


def sqrt_price_x96_to_exact_price(
    sqrt_price_x96: int,
    base_address: str,
    quote_address: str,
    base_decimals: int,
) -> Fraction:
    """Same conversion as sqrt_price_x96_to_price(), without truncation."""
    scale = 10 ** base_decimals
    squared = sqrt_price_x96 * sqrt_price_x96
    if base_is_token0(base_address, quote_address):
        return Fraction(squared * scale, Q192)
    return Fraction(Q192 * scale, squared)


def tick_to_price(tick: int, base_address: str, quote_address: str, base_decimals: int) -> int:
    """Price at a tick boundary (quote smallest units per whole base)."""
    return sqrt_price_x96_to_price(
        get_sqrt_ratio_at_tick(tick), base_address, quote_address, base_decimals
    )


def tick_to_exact_price(tick: int, base_address: str, quote_address: str, base_decimals: int) -> Fraction:
    return sqrt_price_x96_to_exact_price(
        get_sqrt_ratio_at_tick(tick), base_address, quote_address, base_decimals
    )


# ── Price → sqrtPriceX96 / Tick ──────────────────────────────────────────

def price_to_sqrt_ratio_x96(
    price: Price,
    base_address: str,
    quote_address: str,
    base_decimals: int,
) -> int:
    """
    encodeSqrtRatioX96(amount1, amount0) for a quote-per-base price.

    Accepts an int price or an exact Fraction; the ratio is floored once,
    right before the integer square root.
    """
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")

    one_base = 10 ** base_decimals
    if base_is_token0(base_address, quote_address):
        amount0, amount1 = one_base, price
    else:
        amount0, amount1 = price, one_base

    ratio_x192 = (amount1 * Q192) // amount0
    return math.isqrt(int(ratio_x192))


def price_to_tick(
    price: Price,
    tick_spacing: int,
    base_address: str,
    quote_address: str,
    base_decimals: int,
) -> int:
    """
    Tick containing `price`, floored to a multiple of tick_spacing.

    Floor (not nearest) mirrors the on-chain spacing rule: a price always
    maps into the usable range whose lower boundary is at or below it.
    """
    sqrt_ratio = price_to_sqrt_ratio_x96(price, base_address, quote_address, base_decimals)
    return floor_to_spacing(get_tick_at_sqrt_ratio(sqrt_ratio), tick_spacing)


def price_to_closest_usable_tick(
    price: Price,
    tick_spacing: int,
    base_address: str,
    quote_address: str,
    base_decimals: int,
) -> int:
    """Nearest tick by sqrt-price distance, then the nearest usable tick."""
    sqrt_ratio = price_to_sqrt_ratio_x96(price, base_address, quote_address, base_decimals)
    t0 = get_tick_at_sqrt_ratio(sqrt_ratio)

    if t0 >= MAX_TICK:
        return nearest_usable_tick(MAX_TICK, tick_spacing)
    if t0 <= MIN_TICK:
        return nearest_usable_tick(MIN_TICK, tick_spacing)

    d0 = abs(sqrt_ratio - get_sqrt_ratio_at_tick(t0))
    d1 = abs(get_sqrt_ratio_at_tick(t0 + 1) - sqrt_ratio)
    closest = t0 if d0 < d1 else t0 + 1
    return nearest_usable_tick(closest, tick_spacing)


# ── Quote Valuation ──────────────────────────────────────────────────────

def split_base_quote(amount0: int, amount1: int, token0_is_quote: bool) -> Tuple[int, int]:
    """(base_amount, quote_amount) from pool-ordered amounts."""
    if token0_is_quote:
        return amount1, amount0
    return amount0, amount1


def value_in_quote(
    amount0: int,
    amount1: int,
    current_price: int,
    token0_is_quote: bool,
    base_decimals: int,
) -> int:
    """quote + base × price / 10^baseDecimals (multiply first, then divide)."""
    base_amount, quote_amount = split_base_quote(amount0, amount1, token0_is_quote)
    if base_amount == 0:
        return quote_amount
    return quote_amount + (base_amount * current_price) // (10 ** base_decimals)


# ── Display ──────────────────────────────────────────────────────────────

def to_human(amount: int, decimals: int) -> Decimal:
    """Smallest units → token units, exact (for printing only)."""
    return Decimal(amount).scaleb(-decimals)
