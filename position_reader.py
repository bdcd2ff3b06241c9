#!/usr/bin/env python3
"""
On-Chain Position Reader for Uniswap V3
========================================

Supplies the engine's chain-side inputs via public JSON-RPC (httpx, raw
eth_call; no web3.py, no API key):

  refresh_pool(position)     → PoolSnapshot
  read_checkpoint(position)  → NFTCheckpoint     (InvalidNftId if burned)
  read_ticks(position)       → (lower, upper) TickSnapshots

Data Sources (per RPC call):
─────────────────────────────
1. NonfungiblePositionManager.positions(tokenId)
   Returns 12 words: nonce, operator, token0, token1, fee, tickLower,
   tickUpper, liquidity, feeGrowthInside0LastX128,
   feeGrowthInside1LastX128, tokensOwed0, tokensOwed1
   Reverts with "Invalid token ID" once the NFT is burned.
   Ref: https://github.com/Uniswap/v3-periphery/blob/main/contracts/NonfungiblePositionManager.sol

2. Pool.slot0()                          → sqrtPriceX96 [0], tick [1]
   Pool.feeGrowthGlobal{0,1}X128()       → fee growth globals
   Pool.ticks(int24)                     → feeGrowthOutside{0,1}X128 [2, 3],
                                           initialized [7]
   Ref: https://github.com/Uniswap/v3-core/blob/main/contracts/UniswapV3Pool.sol

Pool state is read in ONE batched request so slot0 and the globals come
from the same block.
"""

import asyncio
from typing import Dict, Tuple

from fee_accounting import NFTCheckpoint, TickSnapshot
from fixed_point_math import sqrt_price_x96_to_price
from position_valuation import Position, PoolSnapshot
from lp_ledger.central_config import NetworkConfig, config
from lp_ledger.exceptions import InvalidNftId
from lp_ledger.rpc_helpers import (
    SELECTORS,
    ZERO_ADDRESS,
    encode_uint256 as _encode_uint256,
    encode_int24 as _encode_int24,
    decode_uint as _decode_uint,
    decode_int as _decode_int,
    decode_address as _decode_address,
    eth_call as _eth_call,
    eth_call_batch as _eth_call_batch,
    eth_block_number as _eth_block_number,
)

# Revert messages that mean "no such NFT" rather than a transport failure
_MISSING_NFT_MARKERS = ("invalid token id", "execution reverted", "empty response")


class ChainPositionReader:
    """
    Reads Uniswap V3 pool and position state for one network.

    Usage:
        reader = ChainPositionReader("arbitrum")
        pool = await reader.refresh_pool(position)
        checkpoint, (lower, upper) = await asyncio.gather(
            reader.read_checkpoint(position), reader.read_ticks(position))
    """

    def __init__(self, network: str = "arbitrum", timeout: int = None):
        self.network = NetworkConfig.normalize(network)
        self.rpc_url = NetworkConfig.rpc_url(network)
        self.position_manager = NetworkConfig.position_manager(network)
        self.timeout = timeout or config.engine.RPC_TIMEOUT_SECONDS

    async def _get_block_number(self) -> int:
        """Block number for the snapshot's audit trail; 0 when unavailable."""
        try:
            return await _eth_block_number(self.rpc_url)
        except (RuntimeError, ValueError, KeyError) as e:
            print(f"  ⚠️  Block number unavailable: {e}")
            return 0

    # ── Pool State ───────────────────────────────────────────────────

    async def refresh_pool(self, position: Position) -> PoolSnapshot:
        """
        slot0 + fee growth globals in one batch. A missing slot0 leaves
        tick/price as None so valuation reports PoolDataUnavailable.
        """
        print(f"  📊 Reading pool {position.pool_address[:16]}... on {self.network}")
        batch_calls = [
            (position.pool_address, SELECTORS["slot0"]),
            (position.pool_address, SELECTORS["feeGrowthGlobal0X128"]),
            (position.pool_address, SELECTORS["feeGrowthGlobal1X128"]),
        ]
        (slot0_data, fg0_data, fg1_data), block_number = await asyncio.gather(
            _eth_call_batch(self.rpc_url, batch_calls, timeout=self.timeout),
            self._get_block_number(),
        )

        sqrt_price_x96 = _decode_uint(slot0_data, 0) if slot0_data else None
        current_tick = _decode_int(slot0_data, 1) if slot0_data else None
        current_price = None
        if sqrt_price_x96:
            current_price = sqrt_price_x96_to_price(
                sqrt_price_x96,
                position.base_address,
                position.quote_address,
                position.base_decimals,
            )
        else:
            print("  ⚠️  slot0() returned no data")

        return PoolSnapshot(
            current_tick=current_tick,
            sqrt_price_x96=sqrt_price_x96,
            current_price=current_price,
            fee_growth_global0_x128=_decode_uint(fg0_data, 0) if fg0_data else 0,
            fee_growth_global1_x128=_decode_uint(fg1_data, 0) if fg1_data else 0,
            token0_decimals=position.token0_decimals,
            token1_decimals=position.token1_decimals,
            block_number=block_number,
        )

    # ── Position NFT ─────────────────────────────────────────────────

    async def read_position_record(self, nft_id: int) -> Dict:
        """positions(tokenId) decoded into its 12 named fields."""
        if nft_id < 0:
            raise ValueError(f"nft_id must be non-negative, got {nft_id}")

        print(f"  📖 Reading position #{nft_id} from {self.network}...")
        calldata = SELECTORS["positions"] + _encode_uint256(nft_id)
        try:
            result = await _eth_call(self.rpc_url, self.position_manager, calldata, timeout=self.timeout)
        except RuntimeError as e:
            if any(marker in str(e).lower() for marker in _MISSING_NFT_MARKERS):
                raise InvalidNftId(nft_id) from e
            raise

        record = {
            "nonce":                       _decode_uint(result, 0),
            "operator":                    _decode_address(result, 1),
            "token0":                      _decode_address(result, 2),
            "token1":                      _decode_address(result, 3),
            "fee":                         _decode_uint(result, 4),
            "tickLower":                   _decode_int(result, 5),
            "tickUpper":                   _decode_int(result, 6),
            "liquidity":                   _decode_uint(result, 7),
            "feeGrowthInside0LastX128":    _decode_uint(result, 8),
            "feeGrowthInside1LastX128":    _decode_uint(result, 9),
            "tokensOwed0":                 _decode_uint(result, 10),
            "tokensOwed1":                 _decode_uint(result, 11),
        }
        if record["token0"] == ZERO_ADDRESS and record["token1"] == ZERO_ADDRESS:
            raise InvalidNftId(nft_id, "an empty record")
        return record

    async def read_checkpoint(self, position: Position) -> NFTCheckpoint:
        record = await self.read_position_record(position.nft_id)
        if record["liquidity"] == 0:
            print("  ⚠️  Position has zero liquidity (may be closed)")
        return NFTCheckpoint(
            liquidity=record["liquidity"],
            fee_growth_inside0_last_x128=record["feeGrowthInside0LastX128"],
            fee_growth_inside1_last_x128=record["feeGrowthInside1LastX128"],
            tokens_owed0=record["tokensOwed0"],
            tokens_owed1=record["tokensOwed1"],
            tick_lower=record["tickLower"],
            tick_upper=record["tickUpper"],
        )

    # ── Tick Boundaries ──────────────────────────────────────────────

    async def read_ticks(self, position: Position) -> Tuple[TickSnapshot, TickSnapshot]:
        """ticks(tickLower) and ticks(tickUpper) in one batch."""
        print("  💰 Reading tick boundaries for fee growth...")
        lower_data, upper_data = await _eth_call_batch(self.rpc_url, [
            (position.pool_address, SELECTORS["ticks"] + _encode_int24(position.tick_lower)),
            (position.pool_address, SELECTORS["ticks"] + _encode_int24(position.tick_upper)),
        ], timeout=self.timeout)
        if not lower_data or not upper_data:
            raise RuntimeError(
                f"Missing tick data for [{position.tick_lower}, {position.tick_upper}] "
                f"in pool {position.pool_address}"
            )
        return self._decode_tick(lower_data), self._decode_tick(upper_data)

    @staticmethod
    def _decode_tick(data: str) -> TickSnapshot:
        # ticks() returns: liquidityGross[0], liquidityNet[1],
        #   feeGrowthOutside0X128[2], feeGrowthOutside1X128[3], ..., initialized[7]
        return TickSnapshot(
            fee_growth_outside0_x128=_decode_uint(data, 2),
            fee_growth_outside1_x128=_decode_uint(data, 3),
            initialized=bool(_decode_uint(data, 7)),
        )


class MultiChainReader:
    """Routes each position to a ChainPositionReader for its own chain."""

    def __init__(self, timeout: int = None):
        self.timeout = timeout
        self._readers: Dict[str, ChainPositionReader] = {}

    def reader_for(self, position: Position) -> ChainPositionReader:
        network = NetworkConfig.normalize(position.chain)
        if network not in self._readers:
            self._readers[network] = ChainPositionReader(network, timeout=self.timeout)
        return self._readers[network]

    async def refresh_pool(self, position: Position) -> PoolSnapshot:
        return await self.reader_for(position).refresh_pool(position)

    async def read_checkpoint(self, position: Position) -> NFTCheckpoint:
        return await self.reader_for(position).read_checkpoint(position)

    async def read_ticks(self, position: Position) -> Tuple[TickSnapshot, TickSnapshot]:
        return await self.reader_for(position).read_ticks(position)
