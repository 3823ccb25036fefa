"""AsterDEX perpetual futures REST client (Binance-style signed endpoints)."""
import hashlib
import hmac
import logging
import math
import time
from typing import Optional
from urllib.parse import urlencode

import httpx

logger = logging.getLogger(__name__)

ASTER_BASE_URL = "https://fapi.asterdex.com"


class AsterDexClient:
    """Places market orders on AsterDEX perpetuals for the swarm principal."""

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: str = ASTER_BASE_URL,
        quantity_precision: int = 3,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = base_url.rstrip("/")
        self.quantity_precision = quantity_precision
        self.timeout = timeout
        self._transport = transport

    def round_quantity(self, quantity: float) -> float:
        """Round down to the contract's quantity precision."""
        multiplier = 10 ** self.quantity_precision
        return math.floor(quantity * multiplier) / multiplier

    def _sign(self, params: dict) -> str:
        """Return the signed query string for ``params``."""
        query = urlencode({**params, "timestamp": int(time.time() * 1000)})
        signature = hmac.new(
            self.api_secret.encode("utf-8"),
            query.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return f"{query}&signature={signature}"

    async def _signed_request(self, method: str, path: str, params: dict) -> dict:
        if not self.api_key or not self.api_secret:
            raise RuntimeError("ASTER_API_KEY and ASTER_API_SECRET are required for live trading")
        url = f"{self.base_url}{path}?{self._sign(params)}"
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.request(method, url, headers={"X-MBX-APIKEY": self.api_key})
            if resp.status_code >= 400:
                raise RuntimeError(f"AsterDEX {path} error {resp.status_code}: {resp.text[:200]}")
        return resp.json()

    async def set_leverage(self, symbol: str, leverage: int) -> dict:
        resp = await self._signed_request(
            "POST", "/fapi/v1/leverage", {"symbol": symbol, "leverage": leverage}
        )
        logger.info("Leverage set", extra={"symbol": symbol, "leverage": leverage})
        return resp

    async def place_order(
        self,
        symbol: str,
        side: str,
        quantity: float,
        order_type: str = "MARKET",
    ) -> dict:
        """Place an order and return the venue response.

        The response carries ``orderId``, ``avgPrice``/``price`` and
        ``executedQty`` as strings.
        """
        params = {
            "symbol": symbol,
            "side": side,
            "type": order_type,
            "quantity": f"{self.round_quantity(quantity):.{self.quantity_precision}f}",
        }
        resp = await self._signed_request("POST", "/fapi/v1/order", params)
        logger.info(
            "AsterDEX order placed",
            extra={
                "symbol": symbol,
                "side": side,
                "quantity": params["quantity"],
                "order_id": resp.get("orderId"),
            },
        )
        return resp
