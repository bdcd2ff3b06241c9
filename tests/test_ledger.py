"""
Test Suite — Cost-Basis Ledger
==============================

Covers cost_basis_ledger.py:
  - event-state fold (INCREASE / DECREASE / COLLECT rules)
  - read-only queries over stored events ("latest" by block/tx/log)
  - JSON event parsing and ordering validation

Run:  python -m pytest tests/test_ledger.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest

from fixed_point_math import Q96
from cost_basis_ledger import (
    STATUS_CLOSED,
    STATUS_NEW,
    STATUS_OPEN,
    CloseEvent,
    CollectEvent,
    CostBasisLedger,
    CreateEvent,
    DecreaseEvent,
    EventKind,
    EventStateCalculator,
    IncreaseEvent,
    PositionState,
    RawPositionEvent,
    event_from_dict,
    parse_timestamp,
    sort_events,
    validate_event_ordering,
)
from lp_ledger.exceptions import EventOrderingError

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def raw(kind, block, liquidity=0, amount0=0, amount1=0, log=0, sqrt_price=Q96, day=0):
    return RawPositionEvent(
        kind=kind,
        block_number=block,
        tx_index=0,
        log_index=log,
        timestamp=T0 + timedelta(days=day),
        sqrt_price_x96=sqrt_price,
        liquidity=liquidity,
        amount0=amount0,
        amount1=amount1,
    )


# ── Event-State Fold ─────────────────────────────────────────────────────

class TestEventStateCalculator:
    """At sqrtPriceX96 = 2^96 one raw token0 unit is worth one token1 unit."""

    def lifecycle(self):
        return [
            raw(EventKind.CREATE, 100, log=0),
            raw(EventKind.INCREASE, 100, liquidity=1000, amount0=500, amount1=500, log=1),
            raw(EventKind.DECREASE, 200, liquidity=400, amount0=250, amount1=250, day=10),
            raw(EventKind.COLLECT, 200, amount0=300, amount1=260, log=1, day=10),
        ]

    def test_fold_lifecycle(self):
        events = EventStateCalculator(token0_is_quote=False).process_events(self.lifecycle())
        create, increase, decrease, collect = events

        assert isinstance(create, CreateEvent)
        assert create.cost_basis_after == 0

        assert isinstance(increase, IncreaseEvent)
        assert increase.value_in_quote == 1000
        assert increase.cost_basis_after == 1000
        assert increase.liquidity_after == 1000

        assert isinstance(decrease, DecreaseEvent)
        assert decrease.cost_basis_removed == 400          # 1000 × 400 / 1000
        assert decrease.cost_basis_after == 600
        assert decrease.realized_pnl_after == 100          # withdrawn 500 − removed 400
        assert decrease.liquidity_after == 600
        assert decrease.uncollected_principal0_after == 250
        assert decrease.uncollected_principal1_after == 250

        assert isinstance(collect, CollectEvent)
        assert (collect.fees0, collect.fees1) == (50, 10)  # principal released first
        assert collect.fee_value_in_quote == 60
        assert collect.uncollected_principal0_after == 0
        assert collect.uncollected_principal1_after == 0
        assert collect.cost_basis_after == 600

    def test_fold_sorts_raw_events(self):
        shuffled = list(reversed(self.lifecycle()))
        events = EventStateCalculator(False).process_events(shuffled)
        assert [e.kind for e in events] == [
            EventKind.CREATE, EventKind.INCREASE, EventKind.DECREASE, EventKind.COLLECT,
        ]

    def test_collect_smaller_than_principal(self):
        events = EventStateCalculator(False).process_events([
            raw(EventKind.INCREASE, 1, liquidity=100, amount0=100, amount1=100),
            raw(EventKind.DECREASE, 2, liquidity=100, amount0=100, amount1=100),
            raw(EventKind.COLLECT, 3, amount0=40, amount1=0),
        ])
        collect = events[-1]
        assert collect.fees0 == 0
        assert collect.uncollected_principal0_after == 60
        assert collect.uncollected_principal1_after == 100

    def test_full_decrease_zeroes_cost_basis(self):
        events = EventStateCalculator(False).process_events([
            raw(EventKind.INCREASE, 1, liquidity=3, amount0=10, amount1=0),
            raw(EventKind.DECREASE, 2, liquidity=3, amount0=7, amount1=0),
            raw(EventKind.CLOSE, 3),
        ])
        assert events[1].cost_basis_after == 0
        assert events[1].realized_pnl_after == -3
        assert isinstance(events[2], CloseEvent)
        assert events[2].realized_pnl_after == -3

    def test_token0_quote_valuation(self):
        # √P = 2·2^96 → token1/token0 = 4, so 1 token1 = 1/4 token0
        events = EventStateCalculator(token0_is_quote=True).process_events([
            raw(EventKind.INCREASE, 1, liquidity=1, amount0=100, amount1=400, sqrt_price=2 * Q96),
        ])
        assert events[0].cost_basis_after == 200

    def test_initial_state_carries_over(self):
        start = PositionState(liquidity=10, cost_basis=500, realized_pnl=7)
        events = EventStateCalculator(False).process_events(
            [raw(EventKind.COLLECT, 9, amount0=5)], initial_state=start
        )
        assert events[0].cost_basis_after == 500
        assert events[0].realized_pnl_after == 7
        assert events[0].fee_value_in_quote == 5

    def test_duplicate_keys_rejected(self):
        with pytest.raises(EventOrderingError):
            EventStateCalculator(False).process_events([
                raw(EventKind.INCREASE, 1, liquidity=1, amount0=1),
                raw(EventKind.COLLECT, 1, amount0=1),
            ])

    def test_decrease_beyond_liquidity_rejected(self):
        with pytest.raises(ValueError, match="exceeds liquidity"):
            EventStateCalculator(False).process_events([
                raw(EventKind.INCREASE, 1, liquidity=10, amount0=1),
                raw(EventKind.DECREASE, 2, liquidity=11, amount0=1),
            ])

    def test_amounts_without_price_rejected(self):
        with pytest.raises(ValueError, match="sqrt_price_x96"):
            EventStateCalculator(False).process_events([
                raw(EventKind.INCREASE, 1, liquidity=10, amount0=1, sqrt_price=0),
            ])

    def test_empty(self):
        assert EventStateCalculator(False).process_events([]) == []


# ── Read-Only Ledger ─────────────────────────────────────────────────────

def stored(cls, block, log=0, day=0, **fields):
    return cls(block_number=block, tx_index=0, log_index=log,
               timestamp=T0 + timedelta(days=day), **fields)


class TestCostBasisLedger:
    def events(self):
        return [
            stored(IncreaseEvent, 10, cost_basis_after=1000, liquidity_after=50),
            stored(CollectEvent, 20, fee_value_in_quote=30, cost_basis_after=1000,
                   liquidity_after=50),
            stored(DecreaseEvent, 30, cost_basis_after=600, realized_pnl_after=25,
                   liquidity_after=30, uncollected_principal0_after=11,
                   uncollected_principal1_after=22),
            stored(CollectEvent, 30, log=5, fee_value_in_quote=12, cost_basis_after=600,
                   realized_pnl_after=25, liquidity_after=30,
                   uncollected_principal0_after=3, uncollected_principal1_after=4),
        ]

    def test_latest_by_block_tx_log_regardless_of_input_order(self):
        ledger = CostBasisLedger(reversed(self.events()))
        latest = ledger.latest_event()
        assert latest.block_number == 30 and latest.log_index == 5
        assert ledger.latest_cost_basis() == 600
        assert ledger.latest_realized_pnl() == 25
        assert ledger.latest_uncollected_principal() == (3, 4)
        assert ledger.latest_liquidity() == 30

    def test_total_collected_fee_value(self):
        assert CostBasisLedger(self.events()).total_collected_fee_value() == 42

    def test_empty_ledger_reads_zero(self):
        ledger = CostBasisLedger([])
        assert ledger.latest_cost_basis() == 0
        assert ledger.latest_realized_pnl() == 0
        assert ledger.latest_uncollected_principal() == (0, 0)
        assert ledger.total_collected_fee_value() == 0
        assert ledger.latest_liquidity() is None
        assert ledger.position_status() == STATUS_NEW

    def test_ignored_events_excluded(self):
        events = self.events() + [
            stored(CollectEvent, 99, fee_value_in_quote=10 ** 9, cost_basis_after=1,
                   ignored=True),
        ]
        ledger = CostBasisLedger(events)
        assert ledger.total_collected_fee_value() == 42
        assert ledger.latest_cost_basis() == 600

    def test_status(self):
        assert CostBasisLedger(self.events()).position_status() == STATUS_OPEN
        closed = self.events() + [stored(CloseEvent, 40, liquidity_after=0)]
        assert CostBasisLedger(closed).position_status() == STATUS_CLOSED

    def test_kind_is_fixed_per_class(self):
        assert stored(CollectEvent, 1).kind is EventKind.COLLECT
        assert stored(IncreaseEvent, 1).kind is EventKind.INCREASE


# ── Parsing & Ordering ───────────────────────────────────────────────────

class TestEventParsing:
    def test_collect_from_dict_with_string_integers(self):
        event = event_from_dict({
            "kind": "collect",
            "block_number": "120",
            "tx_index": 3,
            "log_index": "7",
            "timestamp": "2024-03-01T12:00:00Z",
            "fees0": "115792089237316195423570985008687907853269984665640564039457584007913129639935",
            "fee_value_in_quote": "1500000",
            "cost_basis_after": 10,
        })
        assert isinstance(event, CollectEvent)
        assert event.order_key == (120, 3, 7)
        assert event.fees0 == 2 ** 256 - 1
        assert event.fee_value_in_quote == 1_500_000
        assert event.timestamp == datetime(2024, 3, 1, 12, tzinfo=timezone.utc)

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            event_from_dict({
                "kind": "INCREASE", "block_number": 1, "tx_index": 0, "log_index": 0,
                "timestamp": 0, "fees0": 5,
            })

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            event_from_dict({"kind": "SWAP", "block_number": 1, "tx_index": 0,
                             "log_index": 0, "timestamp": 0})

    @pytest.mark.parametrize("value", [1704067200, "2024-01-01T00:00:00+00:00", "2024-01-01T00:00:00"])
    def test_parse_timestamp(self, value):
        assert parse_timestamp(value) == T0


class TestOrdering:
    def test_validate_ordering(self):
        a, b = stored(CreateEvent, 1), stored(IncreaseEvent, 1, log=1)
        assert validate_event_ordering([a, b])
        assert not validate_event_ordering([b, a])
        assert not validate_event_ordering([a, a])

    def test_sort_events(self):
        a, b, c = stored(CreateEvent, 1), stored(IncreaseEvent, 1, log=1), stored(CollectEvent, 2)
        assert sort_events([c, a, b]) == [a, b, c]
