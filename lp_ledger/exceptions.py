"""
Error Kinds — Position Accounting Engine
=========================================

Every error derives from PositionAccountingError and from the builtin that
best matches it, so callers catching ValueError / LookupError / RuntimeError
keep working.

Propagation policy:
  • OutOfBoundsTick, PoolDataUnavailable  → abort the computation, surface
  • PositionNotFound, NoRpcClient         → surface unchanged to the caller
  • InvalidNftId                          → recovered by the engine (zero fees)
  • WraparoundMisuse                      → invariant violation, never caught
"""


class PositionAccountingError(Exception):
    """Base class for all engine errors."""


class OutOfBoundsTick(PositionAccountingError, ValueError):
    """Tick (or sqrt ratio) outside the protocol's representable range."""

    def __init__(self, tick, message: str = None):
        self.tick = tick
        super().__init__(message or f"Tick {tick} is outside the protocol tick range")


class PoolDataUnavailable(PositionAccountingError, RuntimeError):
    """Pool snapshot lacks a field required for valuation."""

    def __init__(self, position_id: str, missing_field: str):
        self.position_id = position_id
        self.missing_field = missing_field
        super().__init__(
            f"Pool data unavailable for position {position_id}: missing {missing_field}"
        )


class PositionNotFound(PositionAccountingError, LookupError):
    def __init__(self, position_id: str):
        self.position_id = position_id
        super().__init__(f"Position not found: {position_id}")


class NoRpcClient(PositionAccountingError, RuntimeError):
    def __init__(self, network: str):
        self.network = network
        super().__init__(f"No RPC client configured for network: {network}")


class InvalidNftId(PositionAccountingError, LookupError):
    """NFT burned or never minted; the engine treats it as zero unclaimed fees."""

    def __init__(self, nft_id, reason: str = "burned or nonexistent"):
        self.nft_id = nft_id
        self.reason = reason
        super().__init__(f"Position NFT #{nft_id} is {reason}")


class WraparoundMisuse(PositionAccountingError, ArithmeticError):
    """A value outside [0, modulus) reached wrap-safe arithmetic."""


class EventOrderingError(PositionAccountingError, ValueError):
    """Ledger events are not in strict (block, tx, log) order."""
