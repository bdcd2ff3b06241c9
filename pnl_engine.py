#!/usr/bin/env python3
"""
PnL Engine
==========

Orchestrates valuation, the cost-basis ledger and fee accounting into one
cached breakdown per position:

  unrealizedPnL = currentValue − costBasis          (signed)
  totalPnL      = unrealizedPnL + collectedFees + unclaimedFees

Collaborators are injected, never looked up globally:

  position_lookup(position_id)  → Position | None     (async)
  refresh_pool(position)        → PoolSnapshot        (async)
  sync_ledger(position)         → [LedgerEvent, ...]  (async)
  reader.read_checkpoint(position) → NFTCheckpoint    (async, may raise InvalidNftId)
  reader.read_ticks(position)      → (lower, upper) TickSnapshots (async)
  cache                         → PnLCacheStore

Cache validity is caller-controlled: an entry is served until
invalidate_cache() is called for its position. Concurrent misses for the
same position may both recompute; the last put wins.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Iterable, Optional

from cost_basis_ledger import CostBasisLedger, LedgerEvent
from fee_accounting import UnclaimedFees, compute_unclaimed_fees, fee_value_in_quote
from position_valuation import (
    Position,
    PoolSnapshot,
    current_value,
    range_status,
    require_pool_data,
)
from lp_ledger.exceptions import InvalidNftId, PositionNotFound


@dataclass(frozen=True)
class PnLBreakdown:
    position_id: str
    current_value: int
    current_cost_basis: int
    collected_fees: int
    unclaimed_fee_value: int
    unclaimed_fees: UnclaimedFees
    realized_pnl: int
    unrealized_pnl: int
    total_pnl: int
    liquidity: int
    current_tick: int
    current_price: int
    range_status: str
    calculated_at: datetime


# ── Cache Store ──────────────────────────────────────────────────────────


@dataclass
class PnLCacheEntry:
    breakdown: PnLBreakdown
    valid: bool = True


class PnLCacheStore(ABC):
    """Key-value side table for breakdowns, keyed by position id."""

    @abstractmethod
    def get(self, position_id: str) -> Optional[PnLBreakdown]:
        """The cached breakdown if a VALID entry exists, else None."""

    @abstractmethod
    def put(self, position_id: str, breakdown: PnLBreakdown) -> None:
        """Upsert and mark valid."""

    @abstractmethod
    def invalidate(self, position_id: str) -> None:
        """Mark invalid; unknown ids are a no-op."""


class InMemoryPnLCache(PnLCacheStore):
    def __init__(self):
        self._entries: Dict[str, PnLCacheEntry] = {}

    def get(self, position_id: str) -> Optional[PnLBreakdown]:
        entry = self._entries.get(position_id)
        if entry is None or not entry.valid:
            return None
        return entry.breakdown

    def put(self, position_id: str, breakdown: PnLBreakdown) -> None:
        self._entries[position_id] = PnLCacheEntry(breakdown)

    def invalidate(self, position_id: str) -> None:
        entry = self._entries.get(position_id)
        if entry is not None:
            entry.valid = False


# ── Engine ───────────────────────────────────────────────────────────────


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PnLEngine:
    def __init__(
        self,
        position_lookup: Callable[[str], Awaitable[Optional[Position]]],
        refresh_pool: Callable[[Position], Awaitable[PoolSnapshot]],
        sync_ledger: Callable[[Position], Awaitable[Iterable[LedgerEvent]]],
        reader,
        cache: PnLCacheStore = None,
        clock: Callable[[], datetime] = None,
    ):
        self.position_lookup = position_lookup
        self.refresh_pool = refresh_pool
        self.sync_ledger = sync_ledger
        self.reader = reader
        self.cache = cache if cache is not None else InMemoryPnLCache()
        self.clock = clock or _utc_now

    async def get_pnl_breakdown(self, position_id: str) -> PnLBreakdown:
        cached = self.cache.get(position_id)
        if cached is not None:
            print(f"  ⚡ Cache hit for position {position_id}")
            return cached

        print(f"  🔄 Computing PnL for position {position_id}...")
        position, pool, ledger = await self._load(position_id)
        breakdown = await self._compute(position, pool, ledger)
        self.cache.put(position_id, breakdown)
        print(
            f"  ✅ Position {position_id}: value={breakdown.current_value} "
            f"cost={breakdown.current_cost_basis} total PnL={breakdown.total_pnl}"
        )
        return breakdown

    def invalidate_cache(self, position_id: str) -> None:
        self.cache.invalidate(position_id)

    async def current_value(self, position_id: str) -> int:
        """Fresh position value in quote smallest units (bypasses the cache)."""
        position, pool, ledger = await self._load(position_id)
        tick, price = require_pool_data(pool, position.position_id)
        return current_value(
            self._liquidity(position, ledger), tick,
            position.tick_lower, position.tick_upper,
            price, position.base_decimals, position.token0_is_quote,
        )

    async def unclaimed_fees(self, position_id: str) -> UnclaimedFees:
        """Fresh claimable fees per token (bypasses the cache)."""
        position, pool, ledger = await self._load(position_id)
        require_pool_data(pool, position.position_id)
        return await self._unclaimed(position, pool, ledger)

    # ── internals ──

    async def _load(self, position_id: str):
        position = await self.position_lookup(position_id)
        if position is None:
            raise PositionNotFound(position_id)
        # sequential: fee math is only valid against the pool read it follows
        pool = await self.refresh_pool(position)
        events = await self.sync_ledger(position)
        return position, pool, CostBasisLedger(events)

    @staticmethod
    def _liquidity(position: Position, ledger: CostBasisLedger) -> int:
        latest = ledger.latest_liquidity()
        return position.liquidity if latest is None else latest

    async def _unclaimed(self, position: Position, pool: PoolSnapshot, ledger: CostBasisLedger) -> UnclaimedFees:
        checkpoint, ticks = await asyncio.gather(
            self.reader.read_checkpoint(position),
            self.reader.read_ticks(position),
            return_exceptions=True,
        )
        # checkpoint outcome decides first; both reads are always awaited
        for result in (checkpoint, ticks):
            if isinstance(result, InvalidNftId):
                print(f"  ⚠️  NFT #{result.nft_id} {result.reason}: unclaimed fees are zero")
                return UnclaimedFees.zero()
            if isinstance(result, BaseException):
                raise result
        lower, upper = ticks

        principal0, principal1 = ledger.latest_uncollected_principal()
        return compute_unclaimed_fees(
            checkpoint,
            pool.current_tick,
            position.tick_lower,
            position.tick_upper,
            pool.fee_growth_global0_x128,
            pool.fee_growth_global1_x128,
            lower,
            upper,
            uncollected_principal0=principal0,
            uncollected_principal1=principal1,
        )

    async def _compute(self, position: Position, pool: PoolSnapshot, ledger: CostBasisLedger) -> PnLBreakdown:
        tick, price = require_pool_data(pool, position.position_id)
        liquidity = self._liquidity(position, ledger)

        value = current_value(
            liquidity, tick, position.tick_lower, position.tick_upper,
            price, position.base_decimals, position.token0_is_quote,
        )
        cost_basis = ledger.latest_cost_basis()
        collected = ledger.total_collected_fee_value()
        realized = ledger.latest_realized_pnl()

        unclaimed = await self._unclaimed(position, pool, ledger)
        unclaimed_value = fee_value_in_quote(
            unclaimed, price, position.token0_is_quote, position.base_decimals
        )

        unrealized = value - cost_basis
        return PnLBreakdown(
            position_id=position.position_id,
            current_value=value,
            current_cost_basis=cost_basis,
            collected_fees=collected,
            unclaimed_fee_value=unclaimed_value,
            unclaimed_fees=unclaimed,
            realized_pnl=realized,
            unrealized_pnl=unrealized,
            total_pnl=unrealized + collected + unclaimed_value,
            liquidity=liquidity,
            current_tick=tick,
            current_price=price,
            range_status=range_status(tick, position.tick_lower, position.tick_upper),
            calculated_at=self.clock(),
        )
