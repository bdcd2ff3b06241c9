#!/usr/bin/env python3
"""
RPC Helpers — ABI Encoding/Decoding and JSON-RPC Client
=======================================================

Low-level EVM read primitives used by position_reader.py:

  • ABI encoding (uint256, int24) and decoding (uint, int, address)
  • JSON-RPC client (eth_call, eth_call_batch, eth_blockNumber) over httpx

All constants reference the Ethereum ABI specification:
  https://docs.soliditylang.org/en/latest/abi-spec.html

Terminology:
  • Word:  32 bytes = 256 bits = 64 hex characters
  • Slot:  Position of a 32-byte word in an ABI response
"""

from typing import List, Tuple

import httpx

from lp_ledger.central_config import config

# ── ABI Word Constants ──────────────────────────────────────────────────

ABI_WORD_HEX = 64             # 32 bytes × 2 hex chars
ADDRESS_PAD_HEX = 24          # left padding of an address inside a word
WORD_MODULUS = 1 << 256
SIGN_BIT = 1 << 255           # two's complement sign bit for int256

ZERO_ADDRESS = "0x" + "0" * 40

# ── ABI Function Selectors ──────────────────────────────────────────────
# First 4 bytes of keccak256(function_signature).

SELECTORS: dict = {
    # NonfungiblePositionManager
    "positions":              "0x99fbab88",  # positions(uint256)

    # UniswapV3Pool (read-only state)
    "slot0":                  "0x3850c7bd",  # slot0()
    "feeGrowthGlobal0X128":   "0xf3058399",  # feeGrowthGlobal0X128()
    "feeGrowthGlobal1X128":   "0x46141319",  # feeGrowthGlobal1X128()
    "ticks":                  "0xf30dba93",  # ticks(int24)

    # ERC-20 metadata
    "decimals":               "0x313ce567",  # decimals()
}


# ── ABI Encoding ────────────────────────────────────────────────────────

def encode_uint256(value: int) -> str:
    """ABI-encode a uint256 as 32-byte hex (no 0x prefix).

    >>> encode_uint256(1)
    '0000000000000000000000000000000000000000000000000000000000000001'
    """
    if value < 0:
        raise ValueError(f"uint256 cannot be negative: {value}")
    return format(value, f'0{ABI_WORD_HEX}x')


def encode_int24(value: int) -> str:
    """ABI-encode an int24 sign-extended to int256 (for ticks).

    >>> encode_int24(-887220)
    'fffffffffffffffffffffffffffffffffffffffffffffffffffffffffff27e8c'
    """
    if value < 0:
        value = WORD_MODULUS + value
    return format(value, f'0{ABI_WORD_HEX}x')


# ── ABI Decoding ────────────────────────────────────────────────────────

def decode_uint(hex_data: str, slot: int = 0) -> int:
    """uint256 at a 32-byte slot of an ABI response (hex, no 0x)."""
    start = slot * ABI_WORD_HEX
    word = hex_data[start:start + ABI_WORD_HEX]
    if len(word) != ABI_WORD_HEX:
        raise ValueError(f"ABI response too short for slot {slot}")
    return int(word, 16)


def decode_int(hex_data: str, slot: int = 0) -> int:
    """int256 (two's complement) at a 32-byte slot."""
    val = decode_uint(hex_data, slot)
    if val >= SIGN_BIT:
        return val - WORD_MODULUS
    return val


def decode_address(hex_data: str, slot: int = 0) -> str:
    """Address held in the last 20 bytes of a slot."""
    start = slot * ABI_WORD_HEX
    return "0x" + hex_data[start + ADDRESS_PAD_HEX:start + ABI_WORD_HEX]


# ── JSON-RPC Client ─────────────────────────────────────────────────────

def _call_payload(request_id: int, to: str, data: str) -> dict:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "eth_call",
        "params": [{"to": to, "data": data}, "latest"],
    }


async def eth_call(rpc_url: str, to: str, data: str, timeout: int = None) -> str:
    """
    Execute eth_call on an EVM node.

    Returns:
        Hex response string (without 0x prefix).

    Raises:
        RuntimeError: If RPC returns an error or empty response.
    """
    timeout = timeout or config.engine.RPC_TIMEOUT_SECONDS
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.post(rpc_url, json=_call_payload(1, to, data))
        result = resp.json()
        if "error" in result:
            raise RuntimeError(f"RPC error: {result['error'].get('message', result['error'])}")
        raw = result.get("result", "0x")
        if raw == "0x" or len(raw) < 4:
            raise RuntimeError("Empty response — contract may not exist at this address")
        return raw[2:]


async def eth_call_batch(rpc_url: str, calls: List[Tuple[str, str]], timeout: int = None) -> List[str]:
    """
    Batch several eth_call requests into one HTTP request.

    Returns hex results (no 0x) in call order; a failed call yields "".
    All calls are answered against the same "latest" block by nodes that
    support batching, which keeps pool reads mutually consistent.
    """
    timeout = timeout or config.engine.RPC_TIMEOUT_SECONDS
    payloads = [_call_payload(i + 1, to, data) for i, (to, data) in enumerate(calls)]

    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.post(rpc_url, json=payloads)
        results = resp.json()

    if isinstance(results, list):
        results.sort(key=lambda r: r.get("id", 0))
        return [r["result"][2:] if r.get("result") else "" for r in results]
    if "error" in results:
        raise RuntimeError(f"RPC error: {results['error'].get('message', results['error'])}")
    # Single result (RPC without batch support)
    return [results.get("result", "0x")[2:]]


async def eth_block_number(rpc_url: str, timeout: int = 10) -> int:
    """Latest block number, recorded on every pool snapshot."""
    payload = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "eth_blockNumber",
        "params": [],
    }
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.post(rpc_url, json=payload)
        result = resp.json()
        if "error" in result:
            raise RuntimeError(f"RPC error: {result['error']}")
        return int(result["result"], 16)
