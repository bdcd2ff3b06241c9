#!/usr/bin/env python3
"""
APR Engine — time-weighted yield on a position's capital
========================================================

1. Capital periods
   Every ledger event opens a period that runs until the next event.
   The cost basis is constant inside a period (the event's costBasisAfter).
   The last period is OPEN (end = None).

2. Fee distribution
   Each COLLECT's fee value is spread over the CLOSED periods that started
   before it, weighted by  costBasis × duration:

       share_i = fees × w_i / Σw        (floored, quote smallest units)

3. Realized APR (closed periods with duration > 0 and cost > 0)

       TW cost basis = Σ(cost × duration) / Σ duration
       realizedApr   = allocatedFees / TWcost / (days / 365) × 100

4. Unrealized APR — unclaimed fees since the last COLLECT (or since the
   first event when nothing was ever collected), on the current cost basis.
   With no collect yet, realized days are 0 and totalApr == unrealizedApr.

5. Total — duration-weighted blend

       totalApr = (rApr × rDays + uApr × uDays) / (rDays + uDays)

   A closed position has uDays = 0, so totalApr == realizedApr.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, List, Optional

from cost_basis_ledger import CostBasisLedger, EventKind, LedgerEvent
from lp_ledger.central_config import config

DAYS_PER_YEAR = config.engine.DAYS_PER_YEAR
SECONDS_PER_DAY = config.engine.SECONDS_PER_DAY


@dataclass
class CapitalPeriod:
    start: datetime
    end: Optional[datetime]
    cost_basis: int
    event_kind: EventKind
    allocated_fees: int = 0

    @property
    def is_open(self) -> bool:
        return self.end is None

    @property
    def duration_seconds(self) -> int:
        if self.end is None:
            return 0
        return max(int((self.end - self.start).total_seconds()), 0)

    @property
    def duration_days(self) -> float:
        return self.duration_seconds / SECONDS_PER_DAY

    @property
    def weight(self) -> int:
        return self.cost_basis * self.duration_seconds

    @property
    def is_active(self) -> bool:
        return not self.is_open and self.duration_seconds > 0 and self.cost_basis > 0

    @property
    def apr(self) -> float:
        if not self.is_active:
            return 0.0
        return annualize(self.allocated_fees, self.cost_basis, self.duration_days)


@dataclass
class AprCalculationResult:
    total_fees: int = 0
    tw_cost_basis: int = 0
    active_days: float = 0.0
    apr: float = 0.0
    periods: List[CapitalPeriod] = field(default_factory=list)


@dataclass(frozen=True)
class AprBreakdown:
    position_id: str
    realized_apr: float = 0.0
    realized_active_days: int = 0
    realized_tw_cost_basis: int = 0
    realized_fees: int = 0
    unrealized_apr: float = 0.0
    unrealized_active_days: int = 0
    unrealized_cost_basis: int = 0
    unclaimed_fees: int = 0
    total_apr: float = 0.0
    total_active_days: int = 0
    total_tw_cost_basis: int = 0
    periods: tuple = ()
    calculated_at: Optional[datetime] = None


def annualize(fees: int, cost_basis: int, days: float) -> float:
    """fees / cost / (days / 365) × 100, or 0 when cost or days is not positive."""
    if cost_basis <= 0 or days <= 0:
        return 0.0
    return fees / cost_basis / (days / DAYS_PER_YEAR) * 100


# ── Periods & Distribution ───────────────────────────────────────────────

def build_capital_periods(events: List[LedgerEvent]) -> List[CapitalPeriod]:
    periods = []
    for i, event in enumerate(events):
        end = events[i + 1].timestamp if i + 1 < len(events) else None
        periods.append(CapitalPeriod(
            start=event.timestamp,
            end=end,
            cost_basis=event.cost_basis_after,
            event_kind=event.kind,
        ))
    return periods


def distribute_fees(periods: List[CapitalPeriod], collects: Iterable[LedgerEvent]) -> None:
    """Add each COLLECT's fee value to the eligible periods, in place."""
    for collect in collects:
        fees = collect.fee_value_in_quote
        if fees <= 0:
            continue
        eligible = [
            p for p in periods
            if not p.is_open and p.start < collect.timestamp and p.cost_basis != 0
        ]
        total_weight = sum(p.weight for p in eligible)
        if total_weight <= 0:
            continue
        for p in eligible:
            p.allocated_fees += fees * p.weight // total_weight


# ── Engine ───────────────────────────────────────────────────────────────


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AprEngine:
    """
    load_events(position_id) supplies the stored ledger (async). The PnL
    engine, when given, is the fallback source of unclaimed fee value.
    """

    def __init__(
        self,
        load_events: Callable[[str], Awaitable[Iterable[LedgerEvent]]],
        pnl_engine=None,
        clock: Callable[[], datetime] = None,
    ):
        self.load_events = load_events
        self.pnl_engine = pnl_engine
        self.clock = clock or _utc_now

    def calculate_position_apr(self, events: Iterable[LedgerEvent]) -> AprCalculationResult:
        """Realized APR over closed periods. Pure; no I/O."""
        ledger = CostBasisLedger(events)
        if not len(ledger):
            return AprCalculationResult()

        periods = build_capital_periods(list(ledger.events))
        distribute_fees(periods, ledger.collect_events())

        active = [p for p in periods if p.is_active]
        total_seconds = sum(p.duration_seconds for p in active)
        total_fees = sum(p.allocated_fees for p in active)
        if total_seconds == 0:
            return AprCalculationResult(total_fees=total_fees, periods=periods)

        tw_cost_basis = sum(p.weight for p in active) // total_seconds
        active_days = total_seconds / SECONDS_PER_DAY
        return AprCalculationResult(
            total_fees=total_fees,
            tw_cost_basis=tw_cost_basis,
            active_days=active_days,
            apr=annualize(total_fees, tw_cost_basis, active_days),
            periods=periods,
        )

    async def get_apr_breakdown(
        self,
        position_id: str,
        unclaimed_fees_override: Optional[int] = None,
    ) -> AprBreakdown:
        ledger = CostBasisLedger(await self.load_events(position_id))
        now = self.clock()
        if not len(ledger):
            return AprBreakdown(position_id=position_id, calculated_at=now)

        realized = self.calculate_position_apr(ledger.events)
        collects = ledger.collect_events()
        # without a collect the whole history is the unrealized window
        realized_days = round(realized.active_days) if collects else 0

        if unclaimed_fees_override is not None:
            unclaimed = unclaimed_fees_override
        elif self.pnl_engine is not None:
            unclaimed = (await self.pnl_engine.get_pnl_breakdown(position_id)).unclaimed_fee_value
        else:
            unclaimed = 0

        current_cost = ledger.latest_cost_basis()
        since = collects[-1].timestamp if collects else ledger.events[0].timestamp
        elapsed_days = max((now - since).total_seconds(), 0) / SECONDS_PER_DAY

        if current_cost > 0:
            unrealized_days = max(math.floor(elapsed_days), 1)
            unrealized_apr = annualize(unclaimed, current_cost, elapsed_days)
        else:
            unrealized_days = 0
            unrealized_apr = 0.0

        total_days = realized_days + unrealized_days
        if unrealized_days == 0:
            total_apr = realized.apr
        elif total_days > 0:
            total_apr = (realized.apr * realized_days + unrealized_apr * unrealized_days) / total_days
        else:
            total_apr = 0.0
        total_tw_cost = (
            (realized.tw_cost_basis * realized_days + current_cost * unrealized_days) // total_days
            if total_days else 0
        )

        return AprBreakdown(
            position_id=position_id,
            realized_apr=realized.apr,
            realized_active_days=realized_days,
            realized_tw_cost_basis=realized.tw_cost_basis,
            realized_fees=realized.total_fees,
            unrealized_apr=unrealized_apr,
            unrealized_active_days=unrealized_days,
            unrealized_cost_basis=current_cost if unrealized_days else 0,
            unclaimed_fees=unclaimed,
            total_apr=total_apr,
            total_active_days=total_days,
            total_tw_cost_basis=total_tw_cost,
            periods=tuple(realized.periods),
            calculated_at=now,
        )
