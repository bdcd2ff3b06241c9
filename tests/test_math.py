"""
Test Suite — Fixed-Point, Liquidity & Valuation Math
====================================================

Tests the exact integer formulas in fixed_point_math.py,
liquidity_math.py and position_valuation.py against known on-chain
values and reverse calculations.

Formula Sources:
  - Uniswap V3 Whitepaper §6.1, §6.2
  - TickMath.sol / SqrtPriceMath.sol / LiquidityAmounts.sol
  - v3-core TickMath test vectors (MIN_TICK + 1, MAX_TICK − 1, tick 50)

Run:  python -m pytest tests/test_math.py -v
"""

import math
import random
from fractions import Fraction

import pytest

from fixed_point_math import (
    Q96,
    Q192,
    Q256,
    MIN_TICK,
    MAX_TICK,
    MIN_SQRT_RATIO,
    MAX_SQRT_RATIO,
    wrapped_sub,
    get_sqrt_ratio_at_tick,
    tick_to_sqrt_price_x96,
    get_tick_at_sqrt_ratio,
    floor_to_spacing,
    nearest_usable_tick,
    base_is_token0,
    sqrt_price_x96_to_price,
    sqrt_price_x96_to_exact_price,
    tick_to_price,
    tick_to_exact_price,
    price_to_sqrt_ratio_x96,
    price_to_tick,
    price_to_closest_usable_tick,
    to_human,
    value_in_quote,
)
from liquidity_math import (
    amount0_for_liquidity,
    amount1_for_liquidity,
    amounts_for_liquidity,
    liquidity_for_amounts,
    liquidity_for_value,
)
from position_valuation import (
    IN_RANGE,
    OUT_OF_RANGE_ABOVE,
    OUT_OF_RANGE_BELOW,
    PoolSnapshot,
    calculate_pnl,
    compare_to_hold_strategy,
    current_value,
    generate_pnl_curve,
    range_status,
    require_pool_data,
    value_at_sqrt_price,
)
from lp_ledger.central_config import config
from lp_ledger.exceptions import OutOfBoundsTick, PoolDataUnavailable, WraparoundMisuse

# Arbitrum One: WETH (token0) / USDC (token1)
WETH = "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1"
USDC = "0xaf88d065e77c8cC2239327C5EDb3A432268e5831"
# Ethereum: USDC (token0) / WETH (token1)
USDC_ETH = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
WETH_ETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"


# ── Wrap-Safe Subtraction ────────────────────────────────────────────────

class TestWrappedSub:
    def test_underflow_wraps_on_small_modulus(self):
        assert wrapped_sub(5, 10, 2 ** 8) == 251

    def test_no_wrap_when_a_ge_b(self):
        assert wrapped_sub(10, 5) == 5

    def test_wraps_at_uint256(self):
        assert wrapped_sub(0, 1) == Q256 - 1

    def test_randomized_pairs(self):
        rng = random.Random(20240601)
        for _ in range(500):
            a, b = rng.randrange(Q256), rng.randrange(Q256)
            diff = wrapped_sub(a, b)
            assert 0 <= diff < Q256
            assert (diff + b) % Q256 == a

    @pytest.mark.parametrize("a,b", [(-1, 0), (0, -1), (Q256, 0), (0, Q256)])
    def test_out_of_range_operands_raise(self, a, b):
        with pytest.raises(WraparoundMisuse):
            wrapped_sub(a, b)


# ── TickMath ─────────────────────────────────────────────────────────────

class TestSqrtRatioAtTick:
    @pytest.mark.parametrize("tick,expected", [
        (0, 2 ** 96),
        (MIN_TICK, MIN_SQRT_RATIO),
        (MAX_TICK, MAX_SQRT_RATIO),
        (MIN_TICK + 1, 4295343490),
        (MAX_TICK - 1, 1461373636630004318706518188784493106690254656249),
        (50, 79426470787362580746886972461),
        (-1000, 75364347830767020784054125655),
        (1000, 83290069058676223003182343270),
    ])
    def test_known_values(self, tick, expected):
        assert get_sqrt_ratio_at_tick(tick) == expected

    @pytest.mark.parametrize("tick", [MIN_TICK - 1, MAX_TICK + 1])
    def test_out_of_bounds_raises(self, tick):
        with pytest.raises(OutOfBoundsTick) as exc:
            get_sqrt_ratio_at_tick(tick)
        assert exc.value.tick == tick

    def test_out_of_bounds_is_value_error(self):
        with pytest.raises(ValueError):
            tick_to_sqrt_price_x96(MAX_TICK + 1)

    @pytest.mark.parametrize("tick", [1.5, "10", True])
    def test_non_int_rejected(self, tick):
        with pytest.raises(TypeError):
            get_sqrt_ratio_at_tick(tick)

    def test_strictly_increasing(self):
        ticks = [-887000, -200000, -1, 0, 1, 200000, 887000]
        ratios = [get_sqrt_ratio_at_tick(t) for t in ticks]
        assert ratios == sorted(ratios)
        assert len(set(ratios)) == len(ratios)

    @pytest.mark.parametrize("tick", [-500000, -200311, -60, 60, 200311, 500000])
    def test_matches_float_formula(self, tick):
        expected = 1.0001 ** (tick / 2) * Q96
        assert get_sqrt_ratio_at_tick(tick) == pytest.approx(expected, rel=1e-9)


class TestTickAtSqrtRatio:
    @pytest.mark.parametrize("tick", [MIN_TICK, -887271, -200310, -1, 0, 1, 50, 200310, 887271])
    def test_exact_ratio_maps_back(self, tick):
        assert get_tick_at_sqrt_ratio(get_sqrt_ratio_at_tick(tick)) == tick

    @pytest.mark.parametrize("tick", [-200310, -1, 0, 1, 200310])
    def test_ratio_just_below_boundary_is_previous_tick(self, tick):
        assert get_tick_at_sqrt_ratio(get_sqrt_ratio_at_tick(tick) - 1) == tick - 1

    def test_max_sqrt_ratio_maps_to_max_tick(self):
        assert get_tick_at_sqrt_ratio(MAX_SQRT_RATIO) == MAX_TICK
        assert get_tick_at_sqrt_ratio(MAX_SQRT_RATIO - 1) == MAX_TICK - 1

    @pytest.mark.parametrize("ratio", [0, MIN_SQRT_RATIO - 1, MAX_SQRT_RATIO + 1])
    def test_out_of_bounds_raises(self, ratio):
        with pytest.raises(OutOfBoundsTick):
            get_tick_at_sqrt_ratio(ratio)


# ── Tick Spacing ─────────────────────────────────────────────────────────

class TestTickSpacing:
    @pytest.mark.parametrize("tick,spacing,expected", [
        (125, 60, 120),
        (120, 60, 120),
        (-1, 60, -60),      # floor, not truncation toward zero
        (-60, 60, -60),
        (-61, 60, -120),
        (7, 1, 7),
    ])
    def test_floor_to_spacing(self, tick, spacing, expected):
        assert floor_to_spacing(tick, spacing) == expected

    def test_floor_stays_in_bounds(self):
        # -887272 // 60 * 60 = -887280 < MIN_TICK
        assert floor_to_spacing(MIN_TICK, 60) == -887220

    @pytest.mark.parametrize("tick,spacing,expected", [
        (29, 60, 0),
        (30, 60, 60),       # halves round up
        (-30, 60, 0),
        (-31, 60, -60),
        (MAX_TICK, 60, 887220),
        (MIN_TICK, 60, -887220),
    ])
    def test_nearest_usable_tick(self, tick, spacing, expected):
        assert nearest_usable_tick(tick, spacing) == expected

    @pytest.mark.parametrize("spacing", [0, -10])
    def test_bad_spacing(self, spacing):
        with pytest.raises(ValueError):
            floor_to_spacing(0, spacing)


# ── sqrtPriceX96 ↔ Price ↔ Tick ──────────────────────────────────────────

class TestPriceConversion:
    def test_token_order_by_address_value(self):
        assert base_is_token0(WETH, USDC)
        assert not base_is_token0(WETH_ETH, USDC_ETH)

    def test_end_to_end_weth_usdc(self):
        """√P² × 10^18 / 2^192, WETH base (token0) → USDC smallest units per WETH."""
        sqrt_price = 5217497569124140394546365
        assert sqrt_price_x96_to_price(sqrt_price, WETH, USDC, 18) == 4336759547

    def test_multiply_before_divide(self):
        sqrt_price = 5217497569124140394546365
        lossy = (sqrt_price * sqrt_price // Q192) * 10 ** 18
        assert lossy == 0
        assert sqrt_price_x96_to_price(sqrt_price, WETH, USDC, 18) > 0

    def test_inverted_when_base_is_token1(self):
        # Ethereum USDC/WETH pool: token0 = USDC, token1 = WETH, base = WETH
        sqrt_price = get_sqrt_ratio_at_tick(200310)
        price = sqrt_price_x96_to_price(sqrt_price, WETH_ETH, USDC_ETH, 18)
        expected = Q192 * 10 ** 18 // (sqrt_price * sqrt_price)
        assert price == expected
        # ≈ 1 / (1.0001^200310) × 10^18 USDC units per WETH ≈ 2000 USDC
        assert 1_900_000_000 < price < 2_100_000_000

    def test_exact_price_truncates_to_int_price(self):
        sqrt_price = 5217497569124140394546365
        exact = sqrt_price_x96_to_exact_price(sqrt_price, WETH, USDC, 18)
        assert isinstance(exact, Fraction)
        assert math.floor(exact) == sqrt_price_x96_to_price(sqrt_price, WETH, USDC, 18)

    def test_tick_zero_price(self):
        # Equal raw amounts: 1 whole base token (10^18) buys 10^18 quote units
        assert tick_to_price(0, WETH, USDC, 18) == 10 ** 18

    @pytest.mark.parametrize("tick", [MIN_TICK + 1, -200310, -887, -1, 0, 1, 887, 200310, MAX_TICK - 1])
    def test_roundtrip_base_token0(self, tick):
        price = tick_to_exact_price(tick, WETH, USDC, 18)
        assert price_to_tick(price, 1, WETH, USDC, 18) == tick

    @pytest.mark.parametrize("tick", [-200310, -1, 0, 1, 200310])
    def test_roundtrip_base_token1(self, tick):
        price = tick_to_exact_price(tick, WETH_ETH, USDC_ETH, 18)
        assert price_to_tick(price, 1, WETH_ETH, USDC_ETH, 18) == tick

    def test_roundtrip_randomized(self):
        rng = random.Random(7)
        for _ in range(100):
            tick = rng.randint(MIN_TICK + 1, MAX_TICK - 1)
            price = tick_to_exact_price(tick, WETH, USDC, 18)
            assert price_to_tick(price, 1, WETH, USDC, 18) == tick

    def test_price_to_tick_floors_to_spacing(self):
        price = tick_to_exact_price(-200305, WETH, USDC, 18)
        assert price_to_tick(price, 10, WETH, USDC, 18) == -200310
        assert price_to_tick(price, 60, WETH, USDC, 18) == -200340

    def test_closest_usable_tick_rounds_to_nearest(self):
        price = tick_to_exact_price(-200306, WETH, USDC, 18)
        assert price_to_closest_usable_tick(price, 10, WETH, USDC, 18) == -200310
        price = tick_to_exact_price(-200304, WETH, USDC, 18)
        assert price_to_closest_usable_tick(price, 10, WETH, USDC, 18) == -200300

    def test_price_to_sqrt_ratio_inverts_tick(self):
        sqrt_ratio = get_sqrt_ratio_at_tick(-200310)
        price = tick_to_exact_price(-200310, WETH, USDC, 18)
        assert price_to_sqrt_ratio_x96(price, WETH, USDC, 18) == sqrt_ratio

    @pytest.mark.parametrize("price", [0, -1])
    def test_non_positive_price_raises(self, price):
        with pytest.raises(ValueError):
            price_to_tick(price, 1, WETH, USDC, 18)

    def test_to_human(self):
        assert str(to_human(4336759547, 6)) == "4336.759547"


# ── Liquidity ↔ Amounts ──────────────────────────────────────────────────

class TestAmountsForLiquidity:
    """L = 1,000,000 over [-1000, 1000): exact amounts from the integer formulas."""

    def test_below_range_all_token0(self):
        assert amounts_for_liquidity(1_000_000, -2000, -1000, 1000) == (100036, 0)

    def test_above_range_all_token1(self):
        assert amounts_for_liquidity(1_000_000, 2000, -1000, 1000) == (0, 100036)

    def test_in_range_mixed(self):
        assert amounts_for_liquidity(1_000_000, 0, -1000, 1000) == (48768, 48768)

    def test_at_lower_boundary_equals_below(self):
        assert amounts_for_liquidity(1_000_000, -1000, -1000, 1000) == (100036, 0)

    def test_at_upper_boundary_is_above(self):
        assert amounts_for_liquidity(1_000_000, 1000, -1000, 1000) == (0, 100036)

    def test_zero_liquidity(self):
        assert amounts_for_liquidity(0, 0, -1000, 1000) == (0, 0)

    @pytest.mark.parametrize("lower,upper", [(1000, 1000), (1000, -1000)])
    def test_invalid_range(self, lower, upper):
        with pytest.raises(ValueError):
            amounts_for_liquidity(1, 0, lower, upper)

    def test_round_up_never_below_round_down(self):
        sl, su = get_sqrt_ratio_at_tick(-1000), get_sqrt_ratio_at_tick(1000)
        down = amount0_for_liquidity(sl, su, 1_000_001)
        up = amount0_for_liquidity(sl, su, 1_000_001, round_up=True)
        assert down <= up <= down + 1

    def test_sqrt_arguments_order_independent(self):
        sl, su = get_sqrt_ratio_at_tick(-1000), get_sqrt_ratio_at_tick(1000)
        assert amount1_for_liquidity(su, sl, 10 ** 18) == amount1_for_liquidity(sl, su, 10 ** 18)


class TestLiquidityForAmounts:
    @pytest.mark.parametrize("current_tick", [-5000, -200, 0, 700, 5000])
    def test_inverse_never_exceeds_original(self, current_tick):
        liquidity = 10 ** 18
        a0, a1 = amounts_for_liquidity(liquidity, current_tick, -1000, 1000)
        recovered = liquidity_for_amounts(current_tick, -1000, 1000, a0, a1)
        assert recovered <= liquidity
        assert recovered >= liquidity * (1 - 1e-9)

    def test_in_range_limited_by_smaller_side(self):
        full = liquidity_for_amounts(0, -1000, 1000, 10 ** 12, 10 ** 12)
        starved = liquidity_for_amounts(0, -1000, 1000, 10 ** 12, 10 ** 6)
        assert starved < full


class TestLiquidityForValue:
    """Display-only float estimator."""

    def test_scales_linearly_with_value(self):
        l1 = liquidity_for_value(1000.0, 2000.0, 1500.0, 2500.0)
        l2 = liquidity_for_value(2000.0, 2000.0, 1500.0, 2500.0)
        assert l2 == pytest.approx(2 * l1)

    def test_zero_value(self):
        assert liquidity_for_value(0, 2000.0, 1500.0, 2500.0) == 0.0

    def test_bad_range(self):
        with pytest.raises(ValueError):
            liquidity_for_value(1000.0, 2000.0, 2500.0, 1500.0)

    def test_estimate_revalues_to_budget(self):
        price, lower, upper = 2000.0, 1500.0, 2500.0
        liquidity = liquidity_for_value(1000.0, price, lower, upper)
        x = liquidity * (1 / math.sqrt(price) - 1 / math.sqrt(upper))
        y = liquidity * (math.sqrt(price) - math.sqrt(lower))
        assert x * price + y == pytest.approx(1000.0)


# ── Position Valuation ───────────────────────────────────────────────────

class TestCurrentValue:
    L, LOWER, UPPER = 1_000_000, -1000, 1000

    def value(self, tick, price=2_000_000, token0_is_quote=False):
        return current_value(self.L, tick, self.LOWER, self.UPPER, price, 18, token0_is_quote)

    def test_flat_below_range(self):
        assert self.value(-2000) == self.value(-1000)

    def test_flat_above_range(self):
        assert self.value(2000) == self.value(1000)

    def test_quote_only_side_ignores_price(self):
        # above range the position is all token1 = quote
        assert self.value(2000, price=1) == self.value(2000, price=10 ** 12) == 100036

    def test_base_only_side_scales_with_price(self):
        # below range: 100036 base units × price / 10^18
        assert self.value(-2000, price=10 ** 18) == 100036
        assert self.value(-2000, price=2 * 10 ** 18) == 200072

    def test_in_range(self):
        assert self.value(0, price=10 ** 18) == 48768 + 48768

    def test_token0_is_quote_swaps_roles(self):
        # below range: all token0 = quote, price irrelevant
        assert self.value(-2000, price=123, token0_is_quote=True) == 100036


class TestValueHelpers:
    def test_value_in_quote_multiplies_first(self):
        # 1 wei of WETH at 4336.759547 USDC rounds to 0; 10^18 wei to the full price
        assert value_in_quote(1, 0, 4336759547, False, 18) == 0
        assert value_in_quote(10 ** 18, 5, 4336759547, False, 18) == 4336759552

    def test_value_at_sqrt_price_unit_price(self):
        assert value_at_sqrt_price(500, 700, Q96, False) == 1200
        assert value_at_sqrt_price(500, 700, Q96, True) == 1200

    def test_require_pool_data(self):
        pool = PoolSnapshot(current_tick=5, sqrt_price_x96=Q96, current_price=10)
        assert require_pool_data(pool, "p1") == (5, 10)

    @pytest.mark.parametrize("pool,missing", [
        (None, "pool snapshot"),
        (PoolSnapshot(current_tick=None, sqrt_price_x96=Q96, current_price=1), "current_tick"),
        (PoolSnapshot(current_tick=0, sqrt_price_x96=Q96, current_price=None), "current_price"),
    ])
    def test_missing_pool_fields(self, pool, missing):
        with pytest.raises(PoolDataUnavailable) as exc:
            require_pool_data(pool, "pos-7")
        assert exc.value.position_id == "pos-7"
        assert exc.value.missing_field == missing


class TestRangeStatus:
    @pytest.mark.parametrize("tick,expected", [
        (-1001, OUT_OF_RANGE_BELOW),
        (-1000, IN_RANGE),
        (999, IN_RANGE),
        (1000, OUT_OF_RANGE_ABOVE),
    ])
    def test_boundaries(self, tick, expected):
        assert range_status(tick, -1000, 1000) == expected


class TestPnLHelpers:
    @pytest.mark.parametrize("current,initial,expected", [
        (1100, 1000, (100, 10.0)),
        (900, 1000, (-100, -10.0)),
        (1001, 3000, (-1999, -66.63)),
        (50, 0, (50, 0.0)),
    ])
    def test_calculate_pnl(self, current, initial, expected):
        assert calculate_pnl(current, initial) == expected

    def test_hold_comparison(self):
        result = compare_to_hold_strategy(
            position_value=3_900_000_000,
            initial_amount0=10 ** 18,
            initial_amount1=2_000_000_000,
            current_price=2_000_000_000,
            token0_is_quote=False,
            base_decimals=18,
        )
        assert result.hold_value == 4_000_000_000
        assert result.advantage == -100_000_000
        assert result.advantage_percent == -2.5

    def test_pnl_curve_spans_phases(self):
        points = generate_pnl_curve(
            liquidity=10 ** 15,
            tick_lower=-203000,
            tick_upper=-198000,
            initial_value=1_000_000_000,
            base_address=WETH,
            quote_address=USDC,
            base_decimals=18,
            tick_spacing=10,
            price_min=1_000_000_000,
            price_max=5_000_000_000,
            num_points=40,
        )
        assert len(points) == 41
        assert points[0].phase == "below"
        assert points[-1].phase == "above"
        assert any(p.phase == "in-range" for p in points)
        # above the range the value is pure quote and stops moving
        above = [p.position_value for p in points if p.phase == "above"]
        assert len(set(above)) == 1

    def test_pnl_curve_default_sample_count(self):
        points = generate_pnl_curve(
            10 ** 15, -203000, -198000, 1_000_000_000, WETH, USDC, 18, 10,
            1_000_000_000, 5_000_000_000,
        )
        assert len(points) == config.engine.CURVE_POINTS + 1

    def test_pnl_curve_bad_range(self):
        with pytest.raises(ValueError):
            generate_pnl_curve(1, -10, 10, 0, WETH, USDC, 18, 10, 5, 5)
