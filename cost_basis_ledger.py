#!/usr/bin/env python3
"""
Cost-Basis Ledger — Event-Sourced Position History
==================================================

Every position is described by an append-only list of lifecycle events
in blockchain order (blockNumber, transactionIndex, logIndex):

  CREATE    position NFT minted (no capital yet)
  INCREASE  liquidity added        → cost basis grows by the deposit value
  DECREASE  liquidity removed      → cost basis shrinks pro rata, PnL realized,
                                      withdrawn tokens parked as principal
  COLLECT   tokensOwed withdrawn   → principal released first, the rest are fees
  CLOSE     position burned

Each stored event carries the position state AFTER it (cost basis,
realized PnL, liquidity, uncollected principal). Readers only ever look at
the latest event, so a ledger never has to be replayed to be queried.

Two parts:
  • EventStateCalculator — folds raw on-chain events into stored events
                           (run by the ledger sync, never by the readers)
  • CostBasisLedger      — read-only queries over stored events

All values are integers in quote-token smallest units.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Tuple

from position_valuation import value_at_sqrt_price
from lp_ledger.exceptions import EventOrderingError


class EventKind(str, Enum):
    CREATE = "CREATE"
    INCREASE = "INCREASE"
    DECREASE = "DECREASE"
    COLLECT = "COLLECT"
    CLOSE = "CLOSE"


STATUS_NEW = "new"
STATUS_OPEN = "open"
STATUS_CLOSED = "closed"


# ── Stored Events (tagged union) ─────────────────────────────────────────


@dataclass(frozen=True)
class LedgerEvent:
    """Fields common to every event kind; subclasses fix `kind`."""

    block_number: int
    tx_index: int
    log_index: int
    timestamp: datetime
    liquidity_after: int = 0
    cost_basis_after: int = 0
    realized_pnl_after: int = 0
    uncollected_principal0_after: int = 0
    uncollected_principal1_after: int = 0
    token0_delta: int = 0
    token1_delta: int = 0
    tx_hash: str = ""
    ignored: bool = False

    kind: ClassVar[EventKind]

    @property
    def order_key(self) -> Tuple[int, int, int]:
        return self.block_number, self.tx_index, self.log_index


@dataclass(frozen=True)
class CreateEvent(LedgerEvent):
    kind: ClassVar[EventKind] = EventKind.CREATE


@dataclass(frozen=True)
class IncreaseEvent(LedgerEvent):
    liquidity_delta: int = 0
    value_in_quote: int = 0
    kind: ClassVar[EventKind] = EventKind.INCREASE


@dataclass(frozen=True)
class DecreaseEvent(LedgerEvent):
    liquidity_delta: int = 0
    value_in_quote: int = 0
    cost_basis_removed: int = 0
    kind: ClassVar[EventKind] = EventKind.DECREASE


@dataclass(frozen=True)
class CollectEvent(LedgerEvent):
    """token{0,1}_delta is what left the NFT; fees exclude released principal."""

    fees0: int = 0
    fees1: int = 0
    fee_value_in_quote: int = 0
    kind: ClassVar[EventKind] = EventKind.COLLECT


@dataclass(frozen=True)
class CloseEvent(LedgerEvent):
    kind: ClassVar[EventKind] = EventKind.CLOSE


EVENT_TYPES = {
    EventKind.CREATE: CreateEvent,
    EventKind.INCREASE: IncreaseEvent,
    EventKind.DECREASE: DecreaseEvent,
    EventKind.COLLECT: CollectEvent,
    EventKind.CLOSE: CloseEvent,
}


def parse_timestamp(value: Any) -> datetime:
    """Unix seconds or ISO-8601 → aware UTC datetime."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def event_from_dict(data: Dict[str, Any]) -> LedgerEvent:
    """
    Build a stored event from its JSON form. Integer fields may be given
    as strings (bigint-safe JSON); unknown keys are rejected.
    """
    payload = dict(data)
    kind = EventKind(str(payload.pop("kind")).upper())
    cls = EVENT_TYPES[kind]
    payload["timestamp"] = parse_timestamp(payload["timestamp"])
    for key, value in payload.items():
        if key not in ("timestamp", "tx_hash", "ignored") and isinstance(value, str):
            payload[key] = int(value)
    return cls(**payload)


def sort_events(events: Iterable[LedgerEvent]) -> List[LedgerEvent]:
    return sorted(events, key=lambda e: e.order_key)


def validate_event_ordering(events: List[Any]) -> bool:
    """True when every event's key is strictly greater than the previous one."""
    for i in range(1, len(events)):
        prev, curr = events[i - 1], events[i]
        if curr.order_key <= prev.order_key:
            print(
                f"  ❌ Event ordering violation at index {i}: "
                f"{prev.order_key} → {curr.order_key}"
            )
            return False
    return True


# ── Read-Only Ledger ─────────────────────────────────────────────────────


class CostBasisLedger:
    """
    Queries over a position's stored events.

    "Latest" is the event with the greatest (block, tx, log) key, whatever
    order the events were supplied in. Events flagged `ignored` are left
    out of every query. An empty ledger reads as all zeros.
    """

    def __init__(self, events: Iterable[LedgerEvent] = ()):
        self._events = tuple(sort_events(e for e in events if not e.ignored))

    @property
    def events(self) -> Tuple[LedgerEvent, ...]:
        return self._events

    def __len__(self) -> int:
        return len(self._events)

    def latest_event(self) -> Optional[LedgerEvent]:
        return self._events[-1] if self._events else None

    def latest_cost_basis(self) -> int:
        latest = self.latest_event()
        return latest.cost_basis_after if latest else 0

    def latest_realized_pnl(self) -> int:
        latest = self.latest_event()
        return latest.realized_pnl_after if latest else 0

    def latest_liquidity(self) -> Optional[int]:
        latest = self.latest_event()
        return latest.liquidity_after if latest else None

    def latest_uncollected_principal(self) -> Tuple[int, int]:
        latest = self.latest_event()
        if latest is None:
            return 0, 0
        return latest.uncollected_principal0_after, latest.uncollected_principal1_after

    def collect_events(self) -> List[CollectEvent]:
        return [e for e in self._events if e.kind is EventKind.COLLECT]

    def total_collected_fee_value(self) -> int:
        return sum(e.fee_value_in_quote for e in self.collect_events())

    def position_status(self) -> str:
        latest = self.latest_event()
        if latest is None:
            return STATUS_NEW
        if latest.kind is EventKind.CLOSE or latest.liquidity_after == 0:
            return STATUS_CLOSED
        return STATUS_OPEN


# ── Event State Calculator (ledger sync side) ────────────────────────────


@dataclass(frozen=True)
class RawPositionEvent:
    """
    One decoded NonfungiblePositionManager log plus the pool sqrt price at
    its block. `liquidity` is the delta for INCREASE/DECREASE; `amount0/1`
    are the token amounts the log reports.
    """

    kind: EventKind
    block_number: int
    tx_index: int
    log_index: int
    timestamp: datetime
    sqrt_price_x96: int = 0
    liquidity: int = 0
    amount0: int = 0
    amount1: int = 0
    tx_hash: str = ""

    @property
    def order_key(self) -> Tuple[int, int, int]:
        return self.block_number, self.tx_index, self.log_index


@dataclass(frozen=True)
class PositionState:
    liquidity: int = 0
    cost_basis: int = 0
    realized_pnl: int = 0
    fees_collected0: int = 0
    fees_collected1: int = 0
    uncollected_principal0: int = 0
    uncollected_principal1: int = 0


class EventStateCalculator:
    """
    Folds raw events into stored events with before→after state.

    Rules (quote-token smallest units, exact integers):
      INCREASE  cost += value(amounts)
      DECREASE  removed = cost × ΔL / L;  realized += value(amounts) − removed;
                cost −= removed;  principal += amounts
      COLLECT   principal part = min(amount, principal);  fees = rest;
                fee value = value(fees)
    """

    def __init__(self, token0_is_quote: bool):
        self.token0_is_quote = token0_is_quote

    def process_events(
        self,
        raw_events: Iterable[RawPositionEvent],
        initial_state: PositionState = None,
    ) -> List[LedgerEvent]:
        ordered = sorted(raw_events, key=lambda e: e.order_key)
        if not ordered:
            return []
        if not validate_event_ordering(ordered):
            raise EventOrderingError("Duplicate (block, tx, log) keys in raw events")

        print(f"  📊 Processing {len(ordered)} events in blockchain order...")
        state = initial_state or PositionState()
        processed = []
        for raw in ordered:
            event, state = self.apply(raw, state)
            processed.append(event)
        print(
            f"  ✅ Ledger folded: L={state.liquidity} | "
            f"cost basis={state.cost_basis} | realized={state.realized_pnl}"
        )
        return processed

    def apply(self, raw: RawPositionEvent, before: PositionState) -> Tuple[LedgerEvent, PositionState]:
        """One event → (stored event, state after)."""
        common = dict(
            block_number=raw.block_number,
            tx_index=raw.tx_index,
            log_index=raw.log_index,
            timestamp=raw.timestamp,
            tx_hash=raw.tx_hash,
        )

        if raw.kind is EventKind.INCREASE:
            value = self._value(raw.amount0, raw.amount1, raw.sqrt_price_x96)
            after = replace(
                before,
                liquidity=before.liquidity + raw.liquidity,
                cost_basis=before.cost_basis + value,
            )
            event = IncreaseEvent(
                **common, **self._state_fields(after),
                token0_delta=raw.amount0, token1_delta=raw.amount1,
                liquidity_delta=raw.liquidity, value_in_quote=value,
            )

        elif raw.kind is EventKind.DECREASE:
            if raw.liquidity > before.liquidity:
                raise ValueError(
                    f"DECREASE of {raw.liquidity} exceeds liquidity {before.liquidity} "
                    f"at block {raw.block_number}"
                )
            value = self._value(raw.amount0, raw.amount1, raw.sqrt_price_x96)
            removed = (
                before.cost_basis * raw.liquidity // before.liquidity
                if before.liquidity else 0
            )
            after = replace(
                before,
                liquidity=before.liquidity - raw.liquidity,
                cost_basis=before.cost_basis - removed,
                realized_pnl=before.realized_pnl + value - removed,
                uncollected_principal0=before.uncollected_principal0 + raw.amount0,
                uncollected_principal1=before.uncollected_principal1 + raw.amount1,
            )
            event = DecreaseEvent(
                **common, **self._state_fields(after),
                token0_delta=-raw.amount0, token1_delta=-raw.amount1,
                liquidity_delta=raw.liquidity, value_in_quote=-value,
                cost_basis_removed=removed,
            )

        elif raw.kind is EventKind.COLLECT:
            principal0 = min(raw.amount0, before.uncollected_principal0)
            principal1 = min(raw.amount1, before.uncollected_principal1)
            fees0 = raw.amount0 - principal0
            fees1 = raw.amount1 - principal1
            after = replace(
                before,
                fees_collected0=before.fees_collected0 + fees0,
                fees_collected1=before.fees_collected1 + fees1,
                uncollected_principal0=before.uncollected_principal0 - principal0,
                uncollected_principal1=before.uncollected_principal1 - principal1,
            )
            event = CollectEvent(
                **common, **self._state_fields(after),
                token0_delta=raw.amount0, token1_delta=raw.amount1,
                fees0=fees0, fees1=fees1,
                fee_value_in_quote=self._value(fees0, fees1, raw.sqrt_price_x96),
            )

        else:
            after = before
            event = EVENT_TYPES[raw.kind](**common, **self._state_fields(after))

        return event, after

    def _value(self, amount0: int, amount1: int, sqrt_price_x96: int) -> int:
        if amount0 == 0 and amount1 == 0:
            return 0
        if sqrt_price_x96 <= 0:
            raise ValueError("sqrt_price_x96 is required to value token amounts")
        return value_at_sqrt_price(amount0, amount1, sqrt_price_x96, self.token0_is_quote)

    @staticmethod
    def _state_fields(state: PositionState) -> Dict[str, int]:
        return {
            "liquidity_after": state.liquidity,
            "cost_basis_after": state.cost_basis,
            "realized_pnl_after": state.realized_pnl,
            "uncollected_principal0_after": state.uncollected_principal0,
            "uncollected_principal1_after": state.uncollected_principal1,
        }
