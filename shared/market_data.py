"""Spot price lookups from Binance, used to size swaps in native-asset units."""
import logging
from typing import Optional

from binance import AsyncClient

logger = logging.getLogger(__name__)

# Wrapped/bridged tickers priced by their underlying asset
PRICE_ALIASES = {
    "WETH": "ETH",
    "WBTC": "BTC",
    "WBNB": "BNB",
    "WSOL": "SOL",
}


def to_ticker(symbol: str) -> str:
    """Normalize a trading symbol (``eth``, ``ETHUSDT``, ``WETH``) to a USDT pair."""
    base = symbol.upper()
    if base.endswith("USDT"):
        base = base[: -len("USDT")]
    base = PRICE_ALIASES.get(base, base)
    return f"{base}USDT"


class MarketDataClient:
    """Read-only market data capability backed by the Binance REST API."""

    def __init__(self):
        self._client: Optional[AsyncClient] = None

    async def _get_client(self) -> AsyncClient:
        if self._client is None:
            self._client = await AsyncClient.create()
        return self._client

    async def get_current_price(self, symbol: str) -> float:
        """Return the latest USD price for ``symbol``.

        Raises ValueError when the exchange returns a non-positive price so
        callers never size a trade off a zero quote.
        """
        client = await self._get_client()
        ticker = to_ticker(symbol)
        data = await client.get_symbol_ticker(symbol=ticker)
        price = float(data.get("price", 0))
        if price <= 0:
            raise ValueError(f"No price available for {ticker}")
        logger.debug("Price lookup", extra={"symbol": ticker, "price": price})
        return price

    async def close(self):
        if self._client is not None:
            await self._client.close_connection()
            self._client = None
