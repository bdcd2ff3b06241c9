"""
Ledger Store — JSON-file collaborators for the engines
======================================================

The CLI keeps positions, their last known chain state and their event
ledgers in one JSON file. LedgerStore exposes that file through the same
async collaborator interface the engines use for live data:

  get_position(position_id)   → Position | None
  refresh_pool(position)      → PoolSnapshot
  sync_ledger(position)       → [LedgerEvent, ...]
  load_events(position_id)    → [LedgerEvent, ...]
  read_checkpoint(position)   → NFTCheckpoint   (InvalidNftId when null)
  read_ticks(position)        → (TickSnapshot, TickSnapshot)

File layout (integers may be JSON strings, for uint256 values):

  {"positions": [{
      "position_id": "arb-5260106", "nft_id": 5260106, "chain": "arbitrum",
      "pool_address": "0x…",
      "token0": {"address": "0x…", "symbol": "WETH", "decimals": 18},
      "token1": {"address": "0x…", "symbol": "USDC", "decimals": 6},
      "tick_lower": -199020, "tick_upper": -197940, "tick_spacing": 10,
      "token0_is_quote": false,                      (optional)
      "pool": {"current_tick": …, "sqrt_price_x96": "…",
               "fee_growth_global0_x128": "…", "fee_growth_global1_x128": "…"},
      "checkpoint": {…} | null,                      (null = burned NFT)
      "ticks": {"lower": {…}, "upper": {…}},
      "events": [{"kind": "INCREASE", …}]            (stored, with *_after state)
      "raw_events": [{"kind": "INCREASE", …}]        (or raw, folded on load)
  }]}
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from cost_basis_ledger import (
    EventKind,
    EventStateCalculator,
    LedgerEvent,
    RawPositionEvent,
    event_from_dict,
    parse_timestamp,
)
from fee_accounting import NFTCheckpoint, TickSnapshot
from fixed_point_math import sqrt_price_x96_to_price
from position_valuation import Position, PoolSnapshot
from lp_ledger.exceptions import InvalidNftId
from lp_ledger.stablecoins import default_token0_is_quote


def _int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    if value is None:
        return default
    return int(value)


def _position_from_dict(data: Dict[str, Any]) -> Position:
    token0, token1 = data["token0"], data["token1"]
    token0_is_quote = data.get("token0_is_quote")
    if token0_is_quote is None:
        token0_is_quote = default_token0_is_quote(
            token0.get("symbol", ""), token1.get("symbol", "")
        )
    return Position(
        position_id=str(data["position_id"]),
        nft_id=_int(data["nft_id"]),
        chain=data.get("chain", "arbitrum"),
        pool_address=data["pool_address"],
        token0_address=token0["address"],
        token1_address=token1["address"],
        token0_decimals=_int(token0["decimals"]),
        token1_decimals=_int(token1["decimals"]),
        tick_lower=_int(data["tick_lower"]),
        tick_upper=_int(data["tick_upper"]),
        liquidity=_int(data.get("liquidity")),
        tick_spacing=_int(data.get("tick_spacing"), 60),
        token0_is_quote=bool(token0_is_quote),
    )


def _raw_event_from_dict(data: Dict[str, Any]) -> RawPositionEvent:
    return RawPositionEvent(
        kind=EventKind(str(data["kind"]).upper()),
        block_number=_int(data["block_number"]),
        tx_index=_int(data["tx_index"]),
        log_index=_int(data["log_index"]),
        timestamp=parse_timestamp(data["timestamp"]),
        sqrt_price_x96=_int(data.get("sqrt_price_x96")),
        liquidity=_int(data.get("liquidity")),
        amount0=_int(data.get("amount0")),
        amount1=_int(data.get("amount1")),
        tx_hash=data.get("tx_hash", ""),
    )


def _tick_from_dict(data: Dict[str, Any]) -> TickSnapshot:
    return TickSnapshot(
        fee_growth_outside0_x128=_int(data.get("fee_growth_outside0_x128")),
        fee_growth_outside1_x128=_int(data.get("fee_growth_outside1_x128")),
        initialized=bool(data.get("initialized", True)),
    )


class LedgerStore:
    """In-memory view of a ledger file; never writes back."""

    def __init__(self, document: Dict[str, Any]):
        self._records: Dict[str, Dict[str, Any]] = {}
        self._positions: Dict[str, Position] = {}
        self._events: Dict[str, List[LedgerEvent]] = {}
        for record in document.get("positions", []):
            position = _position_from_dict(record)
            self._records[position.position_id] = record
            self._positions[position.position_id] = position

    @classmethod
    def load(cls, path) -> "LedgerStore":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Ledger file not found: {path}")
        with path.open(encoding="utf-8") as fh:
            return cls(json.load(fh))

    @property
    def position_ids(self) -> List[str]:
        return list(self._positions)

    async def get_position(self, position_id: str) -> Optional[Position]:
        return self._positions.get(str(position_id))

    async def refresh_pool(self, position: Position) -> PoolSnapshot:
        pool = self._records[position.position_id].get("pool") or {}
        sqrt_price_x96 = _int(pool.get("sqrt_price_x96"), None)
        current_price = _int(pool.get("current_price"), None)
        if current_price is None and sqrt_price_x96:
            current_price = sqrt_price_x96_to_price(
                sqrt_price_x96, position.base_address, position.quote_address, position.base_decimals
            )
        return PoolSnapshot(
            current_tick=_int(pool.get("current_tick"), None),
            sqrt_price_x96=sqrt_price_x96,
            current_price=current_price,
            fee_growth_global0_x128=_int(pool.get("fee_growth_global0_x128")),
            fee_growth_global1_x128=_int(pool.get("fee_growth_global1_x128")),
            token0_decimals=position.token0_decimals,
            token1_decimals=position.token1_decimals,
            block_number=_int(pool.get("block_number")),
        )

    def _ledger_events(self, position: Position) -> List[LedgerEvent]:
        if position.position_id not in self._events:
            record = self._records[position.position_id]
            if record.get("raw_events"):
                calculator = EventStateCalculator(position.token0_is_quote)
                events = calculator.process_events(
                    _raw_event_from_dict(e) for e in record["raw_events"]
                )
            else:
                events = [event_from_dict(e) for e in record.get("events", [])]
            self._events[position.position_id] = events
        return self._events[position.position_id]

    async def sync_ledger(self, position: Position) -> List[LedgerEvent]:
        return self._ledger_events(position)

    async def load_events(self, position_id: str) -> List[LedgerEvent]:
        position = self._positions.get(str(position_id))
        if position is None:
            return []
        return self._ledger_events(position)

    async def read_checkpoint(self, position: Position) -> NFTCheckpoint:
        data = self._records[position.position_id].get("checkpoint")
        if data is None:
            raise InvalidNftId(position.nft_id)
        return NFTCheckpoint(
            liquidity=_int(data.get("liquidity")),
            fee_growth_inside0_last_x128=_int(data.get("fee_growth_inside0_last_x128")),
            fee_growth_inside1_last_x128=_int(data.get("fee_growth_inside1_last_x128")),
            tokens_owed0=_int(data.get("tokens_owed0")),
            tokens_owed1=_int(data.get("tokens_owed1")),
            tick_lower=position.tick_lower,
            tick_upper=position.tick_upper,
        )

    async def read_ticks(self, position: Position) -> Tuple[TickSnapshot, TickSnapshot]:
        ticks = self._records[position.position_id].get("ticks") or {}
        return _tick_from_dict(ticks.get("lower", {})), _tick_from_dict(ticks.get("upper", {}))
