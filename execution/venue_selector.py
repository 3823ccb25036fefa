"""Venue selection: route a consensus trade to the venue that can fill it."""
from typing import Optional, Sequence

from shared.schemas import Recommendation, Venue, VenueSelection

SOLANA_NATIVE_TOKENS = ("SOL", "BONK", "JUP", "PYTH", "RAY", "ORCA")
PERPETUAL_QUOTE_SUFFIX = "USDT"


class VenueSelector:
    """Deterministic, I/O-free venue classification. First matching rule wins:

    1. Solana-native token -> Jupiter on solana.
    2. ``*USDT`` symbol -> AsterDEX perpetuals, leverage tiered on size.
    3. Anything else -> 1inch spot on the default chain.
    """

    def __init__(
        self,
        solana_tokens: Sequence[str] = SOLANA_NATIVE_TOKENS,
        leverage_high: int = 10,
        leverage_low: int = 5,
        leverage_size_threshold_pct: float = 20.0,
        default_spot_chain: str = "base",
    ):
        self.solana_tokens = {t.upper() for t in solana_tokens}
        self.leverage_high = leverage_high
        self.leverage_low = leverage_low
        self.leverage_size_threshold_pct = leverage_size_threshold_pct
        self.default_spot_chain = default_spot_chain

    def leverage_for(self, suggested_size: Optional[float]) -> int:
        if suggested_size is not None and suggested_size > self.leverage_size_threshold_pct:
            return self.leverage_high
        return self.leverage_low

    def select(
        self,
        symbol: str,
        action: Recommendation,
        suggested_size: Optional[float] = None,
    ) -> VenueSelection:
        normalized = symbol.upper()

        if normalized in self.solana_tokens:
            return VenueSelection(
                venue=Venue.JUPITER,
                reason="Solana native token - Jupiter provides the best native liquidity",
                chain="solana",
            )

        if normalized.endswith(PERPETUAL_QUOTE_SUFFIX):
            leverage = self.leverage_for(suggested_size)
            return VenueSelection(
                venue=Venue.ASTERDEX,
                reason=f"Perpetual futures pair - {action.value} with {leverage}x leverage",
                leverage=leverage,
            )

        return VenueSelection(
            venue=Venue.ONEINCH,
            reason=f"Spot swap via 1inch aggregation on {self.default_spot_chain}",
            chain=self.default_spot_chain,
        )
