#!/usr/bin/env python3
"""
Fee Growth Accounting for Uniswap V3 Positions
==============================================

Computes uncollected fees exactly as the pool would pay them, and
separates true fees from withdrawn principal still parked in tokensOwed.

Logic mirrors UniswapV3Pool.sol::_getFeeGrowthInside() and
Position.sol::update():

  1. feeGrowthBelow(lower) = outside(lower)            if tick ≥ lower
                           = global − outside(lower)   otherwise
  2. feeGrowthAbove(upper) = outside(upper)            if tick < upper
                           = global − outside(upper)   otherwise
  3. feeGrowthInside = global − below − above                 (mod 2^256)
  4. incremental = (inside_now − inside_last) × L / 2^128     (mod 2^256 diff)

Principal vs. fees:
  DecreaseLiquidity moves the withdrawn token amounts into tokensOwed,
  next to the fees checkpointed at that moment. Until collect() runs the
  two are indistinguishable on-chain. The ledger records how much of the
  buffer is principal; only the remainder is yield:

      checkpointed = max(tokensOwed − uncollectedPrincipal, 0)
      claimable    = checkpointed + incremental

Every counter subtraction goes through wrapped_sub(); fee-growth values
are uint256 and wrap by design.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from fixed_point_math import Q128, value_in_quote, wrapped_sub


# ── On-Chain Snapshots ───────────────────────────────────────────────────


@dataclass(frozen=True)
class TickSnapshot:
    """Pool.ticks(tick) fields needed for fee accounting (slots 2, 3, 7)."""

    fee_growth_outside0_x128: int = 0
    fee_growth_outside1_x128: int = 0
    initialized: bool = True


@dataclass(frozen=True)
class NFTCheckpoint:
    """
    NonfungiblePositionManager.positions(tokenId) — the fee-relevant fields.

    tokens_owed0/1 is the withdrawable buffer: checkpointed fees PLUS any
    principal released by a decrease that has not been collected yet.
    """

    liquidity: int
    fee_growth_inside0_last_x128: int
    fee_growth_inside1_last_x128: int
    tokens_owed0: int = 0
    tokens_owed1: int = 0
    tick_lower: Optional[int] = None
    tick_upper: Optional[int] = None


@dataclass(frozen=True)
class UnclaimedFees:
    """Claimable fees per token, split by origin (smallest units)."""

    incremental0: int = 0
    incremental1: int = 0
    checkpointed0: int = 0
    checkpointed1: int = 0

    @property
    def total_claimable0(self) -> int:
        return self.checkpointed0 + self.incremental0

    @property
    def total_claimable1(self) -> int:
        return self.checkpointed1 + self.incremental1

    @classmethod
    def zero(cls) -> "UnclaimedFees":
        """Terminal state: burned NFT or nothing to claim."""
        return cls()


# ── Fee Growth Inside ────────────────────────────────────────────────────

def fee_growth_below(tick: int, current_tick: int, fee_growth_global: int, fee_growth_outside: int) -> int:
    """Fee growth accumulated below `tick`, seen from `current_tick`."""
    if current_tick >= tick:
        return fee_growth_outside
    return wrapped_sub(fee_growth_global, fee_growth_outside)


def fee_growth_above(tick: int, current_tick: int, fee_growth_global: int, fee_growth_outside: int) -> int:
    """Fee growth accumulated at or above `tick`, seen from `current_tick`."""
    if current_tick < tick:
        return fee_growth_outside
    return wrapped_sub(fee_growth_global, fee_growth_outside)


def fee_growth_inside(
    current_tick: int,
    tick_lower: int,
    tick_upper: int,
    fee_growth_global0_x128: int,
    fee_growth_global1_x128: int,
    lower: TickSnapshot,
    upper: TickSnapshot,
) -> Tuple[int, int]:
    """
    Per-liquidity fee growth inside [tick_lower, tick_upper) for both tokens.

    inside = global − below(lower) − above(upper), each step mod 2^256.
    """
    inside = []
    for fg_global, outside_lower, outside_upper in (
        (fee_growth_global0_x128, lower.fee_growth_outside0_x128, upper.fee_growth_outside0_x128),
        (fee_growth_global1_x128, lower.fee_growth_outside1_x128, upper.fee_growth_outside1_x128),
    ):
        below = fee_growth_below(tick_lower, current_tick, fg_global, outside_lower)
        above = fee_growth_above(tick_upper, current_tick, fg_global, outside_upper)
        inside.append(wrapped_sub(wrapped_sub(fg_global, below), above))
    return inside[0], inside[1]


# ── Fee Amounts ──────────────────────────────────────────────────────────

def incremental_fees(fee_growth_inside_now: int, fee_growth_inside_last: int, liquidity: int) -> int:
    """Fees earned since the NFT's last checkpoint: Δinside × L / 2^128."""
    if liquidity == 0:
        return 0
    return (wrapped_sub(fee_growth_inside_now, fee_growth_inside_last) * liquidity) // Q128


def separate_checkpointed_fees(tokens_owed: int, uncollected_principal: int) -> int:
    """Pure fee part of tokensOwed; never negative."""
    return max(tokens_owed - uncollected_principal, 0)


def compute_unclaimed_fees(
    checkpoint: NFTCheckpoint,
    current_tick: int,
    tick_lower: int,
    tick_upper: int,
    fee_growth_global0_x128: int,
    fee_growth_global1_x128: int,
    lower: TickSnapshot,
    upper: TickSnapshot,
    uncollected_principal0: int = 0,
    uncollected_principal1: int = 0,
) -> UnclaimedFees:
    """
    Total claimable fees = pure checkpointed fees + incremental fees.

    The tick snapshots and globals must come from the same pool read;
    mixing reads from different blocks breaks the inside computation.
    """
    inside0, inside1 = fee_growth_inside(
        current_tick, tick_lower, tick_upper,
        fee_growth_global0_x128, fee_growth_global1_x128,
        lower, upper,
    )
    return UnclaimedFees(
        incremental0=incremental_fees(inside0, checkpoint.fee_growth_inside0_last_x128, checkpoint.liquidity),
        incremental1=incremental_fees(inside1, checkpoint.fee_growth_inside1_last_x128, checkpoint.liquidity),
        checkpointed0=separate_checkpointed_fees(checkpoint.tokens_owed0, uncollected_principal0),
        checkpointed1=separate_checkpointed_fees(checkpoint.tokens_owed1, uncollected_principal1),
    )


def fee_value_in_quote(
    fees: UnclaimedFees,
    current_price: int,
    token0_is_quote: bool,
    base_decimals: int,
) -> int:
    """Claimable fees of both tokens valued in quote smallest units."""
    return value_in_quote(
        fees.total_claimable0, fees.total_claimable1,
        current_price, token0_is_quote, base_decimals,
    )
