"""1inch aggregation client for EVM spot swaps.

Swap calldata comes from the 1inch API; signing is local (eth_account) and
broadcast/receipt polling goes straight to the chain's JSON-RPC endpoint.
"""
import asyncio
import logging
from typing import Optional

import httpx
from eth_account import Account
from eth_utils import to_checksum_address

logger = logging.getLogger(__name__)

ONEINCH_API_URL = "https://api.1inch.dev/swap/v6.0"
NATIVE_TOKEN_ADDRESS = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"
NATIVE_DECIMALS = 18

CHAIN_IDS = {
    "ethereum": 1,
    "optimism": 10,
    "bsc": 56,
    "polygon": 137,
    "base": 8453,
    "arbitrum": 42161,
}

NATIVE_SYMBOLS = {
    "ethereum": "ETH",
    "optimism": "ETH",
    "base": "ETH",
    "arbitrum": "ETH",
    "bsc": "BNB",
    "polygon": "POL",
}

# chain -> symbol -> (address, decimals)
TOKEN_ADDRESSES = {
    "ethereum": {
        "WETH": ("0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", 18),
        "USDC": ("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", 6),
        "WBTC": ("0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599", 8),
        "LINK": ("0x514910771AF9Ca656af840dff83E8264EcF986CA", 18),
        "UNI": ("0x1f9840a85d5aF5bf1D1762F925BDADdC4201F984", 18),
    },
    "base": {
        "WETH": ("0x4200000000000000000000000000000000000006", 18),
        "USDC": ("0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913", 6),
        "DAI": ("0x50c5725949A6F0c72E6C4a641F24049A917DB0Cb", 18),
        "CBBTC": ("0xcbB7C0000aB88B473b1f5aFd9ef808440eed33Bf", 8),
        "AERO": ("0x940181a94A35A4569E4529A3CDfB74e38FD98631", 18),
        "DEGEN": ("0x4ed4E862860beD51a9570b96d89aF5E1B0Efefed", 18),
    },
    "arbitrum": {
        "WETH": ("0x82aF49447D8a07e3bd95BD0d56f35241523fBab1", 18),
        "USDC": ("0xaf88d065e77c8cC2239327C5EDb3A432268e5831", 6),
        "ARB": ("0x912CE59144191C1204E64559FE8253a0e49E6548", 18),
    },
}

TOKEN_ALIASES = {"ETH": "WETH", "BTC": "WBTC", "BNB": "WBNB"}
QUOTE_SUFFIXES = ("USDT", "USDC", "USD")


def normalize_token_symbol(symbol: str) -> str:
    """ETHUSD -> WETH, btc -> WBTC, AERO -> AERO."""
    token = symbol.upper()
    for suffix in QUOTE_SUFFIXES:
        if token.endswith(suffix) and len(token) > len(suffix):
            token = token[: -len(suffix)]
            break
    return TOKEN_ALIASES.get(token, token)


class OneInchClient:
    """Swaps between the chain's native token and ERC-20s through 1inch."""

    def __init__(
        self,
        api_key: str,
        private_key: str = "",
        rpc_urls: Optional[dict[str, str]] = None,
        api_url: str = ONEINCH_API_URL,
        slippage_pct: float = 1.0,
        timeout: float = 30.0,
        receipt_attempts: int = 60,
        receipt_interval: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.account = Account.from_key(private_key) if private_key else None
        self.rpc_urls = rpc_urls or {}
        self.api_url = api_url.rstrip("/")
        self.slippage_pct = slippage_pct
        self.timeout = timeout
        self.receipt_attempts = receipt_attempts
        self.receipt_interval = receipt_interval
        self._transport = transport

    @property
    def address(self) -> str:
        if self.account is None:
            raise RuntimeError("EVM_PRIVATE_KEY is required for 1inch trading")
        return self.account.address

    @staticmethod
    def chain_id(chain: str) -> int:
        try:
            return CHAIN_IDS[chain]
        except KeyError:
            raise ValueError(f"Unsupported chain: {chain}") from None

    @staticmethod
    def native_symbol(chain: str) -> str:
        return NATIVE_SYMBOLS.get(chain, "ETH")

    @staticmethod
    def get_token(symbol: str, chain: str) -> tuple[str, int]:
        """Return (address, decimals) for ``symbol`` on ``chain``."""
        token = normalize_token_symbol(symbol)
        try:
            return TOKEN_ADDRESSES[chain][token]
        except KeyError:
            raise ValueError(f"Token {token} not supported on {chain}") from None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _rpc_url(self, chain: str) -> str:
        try:
            return self.rpc_urls[chain]
        except KeyError:
            raise ValueError(f"No RPC endpoint configured for {chain}") from None

    async def _rpc(self, chain: str, method: str, params: list):
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        async with self._client() as client:
            resp = await client.post(self._rpc_url(chain), json=payload)
            resp.raise_for_status()
        data = resp.json()
        if data.get("error"):
            raise RuntimeError(f"RPC {method} error: {data['error']}")
        return data.get("result")

    async def _api_get(self, chain: str, path: str, params: dict) -> dict:
        url = f"{self.api_url}/{self.chain_id(chain)}{path}"
        async with self._client() as client:
            resp = await client.get(
                url,
                params=params,
                headers={"Authorization": f"Bearer {self.api_key}", "Accept": "application/json"},
            )
            if resp.status_code >= 400:
                raise RuntimeError(f"1inch {path} error {resp.status_code}: {resp.text[:200]}")
        return resp.json()

    async def get_native_balance(self, chain: str) -> float:
        result = await self._rpc(chain, "eth_getBalance", [self.address, "latest"])
        return int(result, 16) / 10 ** NATIVE_DECIMALS

    async def get_swap_data(self, chain: str, src: str, dst: str, amount: int) -> dict:
        """Fetch a ready-to-sign swap transaction (``tx``) for ``amount`` base units of ``src``."""
        return await self._api_get(
            chain,
            "/swap",
            {
                "src": src,
                "dst": dst,
                "amount": str(amount),
                "from": self.address,
                "origin": self.address,
                "slippage": self.slippage_pct,
            },
        )

    async def ensure_allowance(self, chain: str, token_address: str, amount: int):
        """Approve the 1inch router to spend ``amount`` of an ERC-20 if needed."""
        allowance = await self._api_get(
            chain,
            "/approve/allowance",
            {"tokenAddress": token_address, "walletAddress": self.address},
        )
        if int(allowance.get("allowance", 0)) >= amount:
            return None

        approve_tx = await self._api_get(
            chain,
            "/approve/transaction",
            {"tokenAddress": token_address, "amount": str(amount)},
        )
        receipt = await self.sign_and_broadcast(chain, approve_tx)
        logger.info(
            "Token allowance approved",
            extra={"chain": chain, "token": token_address, "tx_hash": receipt["tx_hash"]},
        )
        return receipt

    async def _wait_for_receipt(self, chain: str, tx_hash: str) -> dict:
        for _ in range(self.receipt_attempts):
            receipt = await self._rpc(chain, "eth_getTransactionReceipt", [tx_hash])
            if receipt:
                if receipt.get("status") != "0x1":
                    raise RuntimeError(f"Transaction {tx_hash} reverted")
                return receipt
            await asyncio.sleep(self.receipt_interval)
        raise RuntimeError(f"Transaction {tx_hash} not mined")

    async def sign_and_broadcast(self, chain: str, tx: dict) -> dict:
        """Sign ``tx`` locally, send it and wait for a successful receipt.

        Returns {"tx_hash", "block_number"}.
        """
        address = self.address
        nonce = await self._rpc(chain, "eth_getTransactionCount", [address, "pending"])
        gas_price = tx.get("gasPrice") or await self._rpc(chain, "eth_gasPrice", [])

        unsigned = {
            "to": to_checksum_address(tx["to"]),
            "data": tx.get("data", "0x"),
            "value": int(tx.get("value", 0) or 0),
            "gasPrice": int(str(gas_price), 0),
            "nonce": int(nonce, 16),
            "chainId": self.chain_id(chain),
        }
        if tx.get("gas"):
            unsigned["gas"] = int(tx["gas"]) * 120 // 100
        else:
            estimate = await self._rpc(
                chain,
                "eth_estimateGas",
                [{"from": address, "to": tx["to"], "data": unsigned["data"], "value": hex(unsigned["value"])}],
            )
            unsigned["gas"] = int(estimate, 16) * 120 // 100

        signed = self.account.sign_transaction(unsigned)
        tx_hash = await self._rpc(
            chain, "eth_sendRawTransaction", ["0x" + bytes(signed.raw_transaction).hex()]
        )
        receipt = await self._wait_for_receipt(chain, tx_hash)
        block_number = int(receipt["blockNumber"], 16)

        logger.info(
            "EVM transaction confirmed",
            extra={"chain": chain, "tx_hash": tx_hash, "block_number": block_number},
        )
        return {"tx_hash": tx_hash, "block_number": block_number}
