"""Jupiter aggregator client for Solana-native swaps."""
import asyncio
import logging
from typing import Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

JUPITER_API_URL = "https://quote-api.jup.ag/v6"
SOLANA_RPC_URL = "https://api.mainnet-beta.solana.com"

LAMPORTS_PER_SOL = 1_000_000_000
SOL_MINT = "So11111111111111111111111111111111111111112"

# symbol -> (mint, decimals)
SOLANA_MINTS = {
    "USDC": ("EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", 6),
    "BONK": ("DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263", 5),
    "JUP": ("JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN", 6),
    "PYTH": ("HZ1JovNiVvGrGNiiYvEozEVgZ58xaU3RKwX8eACQBCt3", 6),
    "RAY": ("4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R", 6),
    "ORCA": ("orcaEKTdK7LKz57vaAYr9QeNsVEPfiu6QeMU1kQZE", 6),
}


class SolanaSigner(Protocol):
    """Signs a base64 serialized transaction for the configured wallet."""

    async def sign(self, transaction_b64: str) -> str:
        ...


class JupiterClient:
    """Quotes and executes SOL -> token swaps through Jupiter."""

    def __init__(
        self,
        wallet_address: str,
        signer: Optional[SolanaSigner] = None,
        api_url: str = JUPITER_API_URL,
        rpc_url: str = SOLANA_RPC_URL,
        slippage_bps: int = 50,
        timeout: float = 30.0,
        confirm_attempts: int = 30,
        confirm_interval: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.wallet_address = wallet_address
        self.signer = signer
        self.api_url = api_url.rstrip("/")
        self.rpc_url = rpc_url
        self.slippage_bps = slippage_bps
        self.timeout = timeout
        self.confirm_attempts = confirm_attempts
        self.confirm_interval = confirm_interval
        self._transport = transport

    @staticmethod
    def mint_for(symbol: str) -> tuple[str, int]:
        try:
            return SOLANA_MINTS[symbol.upper()]
        except KeyError:
            raise ValueError(f"No Solana mint configured for {symbol}") from None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _rpc(self, method: str, params: list) -> dict:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        async with self._client() as client:
            resp = await client.post(self.rpc_url, json=payload)
            resp.raise_for_status()
        data = resp.json()
        if data.get("error"):
            raise RuntimeError(f"Solana RPC {method} error: {data['error']}")
        return data["result"]

    async def get_sol_balance(self) -> float:
        result = await self._rpc("getBalance", [self.wallet_address])
        return result["value"] / LAMPORTS_PER_SOL

    async def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: Optional[int] = None,
    ) -> dict:
        """Request a quote; ``amount`` is in the input mint's base units."""
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": str(slippage_bps if slippage_bps is not None else self.slippage_bps),
        }
        async with self._client() as client:
            resp = await client.get(f"{self.api_url}/quote", params=params)
            resp.raise_for_status()
        return resp.json()

    async def get_swap_transaction(self, quote: dict) -> str:
        """Ask Jupiter to build the swap transaction for ``quote`` (base64)."""
        async with self._client() as client:
            resp = await client.post(
                f"{self.api_url}/swap",
                json={
                    "quoteResponse": quote,
                    "userPublicKey": self.wallet_address,
                    "wrapAndUnwrapSol": True,
                    "dynamicComputeUnitLimit": True,
                    "prioritizationFeeLamports": "auto",
                },
            )
            resp.raise_for_status()
        return resp.json()["swapTransaction"]

    async def _wait_for_confirmation(self, signature: str):
        for _ in range(self.confirm_attempts):
            result = await self._rpc("getSignatureStatuses", [[signature]])
            status = (result.get("value") or [None])[0]
            if status:
                if status.get("err"):
                    raise RuntimeError(f"Swap transaction failed: {status['err']}")
                if status.get("confirmationStatus") in ("confirmed", "finalized"):
                    return
            await asyncio.sleep(self.confirm_interval)
        raise RuntimeError(f"Swap transaction {signature} not confirmed")

    async def swap(self, quote: dict) -> dict:
        """Sign, send and confirm the swap for ``quote``."""
        if self.signer is None:
            raise RuntimeError("No Solana signer configured for Jupiter swaps")

        transaction = await self.get_swap_transaction(quote)
        signed = await self.signer.sign(transaction)
        signature = await self._rpc(
            "sendTransaction",
            [signed, {"encoding": "base64", "skipPreflight": False, "maxRetries": 3}],
        )
        await self._wait_for_confirmation(signature)

        logger.info(
            "Jupiter swap confirmed",
            extra={
                "signature": signature,
                "in_amount": quote.get("inAmount"),
                "out_amount": quote.get("outAmount"),
            },
        )
        return {
            "signature": signature,
            "input_amount": float(quote.get("inAmount", 0)),
            "output_amount": float(quote.get("outAmount", 0)),
        }
