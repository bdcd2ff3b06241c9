"""
Project Configuration — version, engine constants, network endpoints
=====================================================================

Single home for values shared by the engine, the chain reader and the CLI.
Nothing here performs I/O except the one-time version lookup.

Sources:
  Uniswap V3 deployments : https://docs.uniswap.org/contracts/v3/reference/deployments/
  1RPC public relays     : https://docs.1rpc.io/using-the-web3-api/networks
"""

import re
from dataclasses import dataclass
from importlib.metadata import version, PackageNotFoundError
from pathlib import Path
from types import MappingProxyType

from lp_ledger.exceptions import NoRpcClient

# Version: single source of truth is pyproject.toml
try:
    PROJECT_VERSION = version("lp-ledger")
except PackageNotFoundError:
    # Dev / CI: package not installed: read pyproject.toml directly
    _toml = Path(__file__).resolve().parent.parent / "pyproject.toml"
    _m = (
        re.search(r'version\s*=\s*"([^"]+)"', _toml.read_text())
        if _toml.exists()
        else None
    )
    PROJECT_VERSION = _m.group(1) if _m else "0.0.0-dev"
PROJECT_NAME = "LP Ledger"


@dataclass(frozen=True)
class EngineConfig:
    """Constants used by the accounting engine."""

    # APR annualisation
    DAYS_PER_YEAR: int = 365
    SECONDS_PER_DAY: int = 86_400

    # JSON-RPC timeout for pool/NFT/tick reads
    RPC_TIMEOUT_SECONDS: int = 20

    # Default sample count for PnL curves (matches the web chart)
    CURVE_POINTS: int = 150


@dataclass(frozen=True)
class NetworkConfig:
    """RPC endpoints and periphery contracts per supported network."""

    # Privacy relays: no API key required
    RPC_URLS = MappingProxyType(
        {
            "arbitrum": "https://1rpc.io/arb",
            "ethereum": "https://1rpc.io/eth",
            "polygon": "https://1rpc.io/matic",
            "base": "https://1rpc.io/base",
            "optimism": "https://1rpc.io/op",
        }
    )

    # NonfungiblePositionManager (Uniswap V3)
    POSITION_MANAGERS = MappingProxyType(
        {
            "arbitrum": "0xC36442b4a4522E871399CD717aBDD847Ab11FE88",
            "ethereum": "0xC36442b4a4522E871399CD717aBDD847Ab11FE88",
            "polygon": "0xC36442b4a4522E871399CD717aBDD847Ab11FE88",
            "optimism": "0xC36442b4a4522E871399CD717aBDD847Ab11FE88",
            "base": "0x03a520b32C04BF3bEEf7BEb72E919cf822Ed34f1",
        }
    )

    # Aliases accepted on the command line
    ALIASES = MappingProxyType(
        {
            "eth": "ethereum",
            "arb": "arbitrum",
            "matic": "polygon",
            "op": "optimism",
        }
    )

    @classmethod
    def normalize(cls, network: str) -> str:
        key = network.strip().lower()
        return cls.ALIASES.get(key, key)

    @classmethod
    def rpc_url(cls, network: str) -> str:
        """RPC endpoint for a network; unknown networks have no client."""
        key = cls.normalize(network)
        if key not in cls.RPC_URLS:
            raise NoRpcClient(network)
        return cls.RPC_URLS[key]

    @classmethod
    def position_manager(cls, network: str) -> str:
        key = cls.normalize(network)
        if key not in cls.POSITION_MANAGERS:
            raise NoRpcClient(network)
        return cls.POSITION_MANAGERS[key]


# Unified configuration
class LedgerConfig:
    """Unified configuration for engine and networks."""

    engine = EngineConfig()
    networks = NetworkConfig()


# Global instance
config = LedgerConfig()
