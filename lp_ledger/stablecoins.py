"""
Quote Token Selection — which side of a pair values the position
================================================================

Positions are valued in their QUOTE token. When a ledger file does not
say which token is the quote, it is chosen by symbol:

  1. the only stablecoin in the pair
  2. otherwise the only "major" asset (WETH, WBTC, ...) facing an alt
  3. otherwise token1 (the pool's own price direction)

Known stablecoins are recognized by normalized symbol, including bridged
variants. Sources: CoinGecko stablecoin category, DeFiLlama tracker.
"""

# ── Known Stablecoin Symbols ────────────────────────────────────────────

STABLECOIN_SYMBOLS: frozenset = frozenset({
    # USD-pegged: major
    "USDC", "USDT", "DAI", "BUSD", "TUSD", "FRAX", "LUSD",
    "USDP", "GUSD", "SUSD", "CUSD", "USDD", "PYUSD", "GHO",
    "FDUSD", "CRVUSD", "MKUSD",

    # USD-pegged: bridged variants
    "USDC.E", "USDT.E", "DAI.E", "USDBC", "USDCE", "AXLUSDC",
    "USD₮0", "USDT0",

    # EUR / GBP-pegged
    "EURS", "EURT", "AGEUR", "CEUR", "EURC", "GBPT",

    # Algorithmic / CDP stables
    "MIM", "DOLA", "ALUSD", "USDS", "OUSD",
})

# Assets preferred as quote against anything that is not a stablecoin
MAJOR_QUOTE_SYMBOLS: frozenset = frozenset({"WETH", "ETH", "WBTC", "BTC", "CBBTC"})


def is_stablecoin(symbol: str) -> bool:
    """
    Examples:
        >>> is_stablecoin("usdc.e")
        True
        >>> is_stablecoin("WETH")
        False
    """
    return symbol.strip().upper() in STABLECOIN_SYMBOLS


def stablecoin_side(symbol0: str, symbol1: str) -> int:
    """0 or 1 for the single stablecoin side, -1 when neither or both."""
    s0 = is_stablecoin(symbol0)
    s1 = is_stablecoin(symbol1)
    if s0 and not s1:
        return 0
    if s1 and not s0:
        return 1
    return -1


def default_token0_is_quote(symbol0: str, symbol1: str) -> bool:
    """
    Default quote role for a pool's token pair.

    Examples:
        >>> default_token0_is_quote("USDC", "WETH")
        True
        >>> default_token0_is_quote("WETH", "USDC")
        False
        >>> default_token0_is_quote("WETH", "ARB")
        True
        >>> default_token0_is_quote("LINK", "UNI")
        False
    """
    side = stablecoin_side(symbol0, symbol1)
    if side != -1:
        return side == 0
    major0 = symbol0.strip().upper() in MAJOR_QUOTE_SYMBOLS
    major1 = symbol1.strip().upper() in MAJOR_QUOTE_SYMBOLS
    return major0 and not major1
