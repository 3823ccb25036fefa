"""Configuration management for swarm-trader."""
import os
from pydantic import BaseModel


class Config(BaseModel):
    """Application configuration loaded from environment variables."""
    TRADING_MODE: str = "paper"
    DB_PATH: str = "data/swarm.db"
    DASHBOARD_PORT: int = 8080
    STATUS_INTERVAL_SECONDS: int = 60
    OLLAMA_HOST: str = "https://ollama.com"
    OLLAMA_API_KEY: str = ""
    LLM_MODEL_DEFAULT: str = "gpt-oss:120b"
    AGENT_TIMEOUT_SECONDS: float = 60.0
    CONSENSUS_THRESHOLD: float = 60.0
    PRINCIPAL_NAME: str = "Swarm Consensus Agent"
    PRINCIPAL_BALANCE_USD: float = 100.0
    DEFAULT_POSITION_SIZE_PCT: float = 5.0
    LEVERAGE_HIGH: int = 10
    LEVERAGE_LOW: int = 5
    LEVERAGE_SIZE_THRESHOLD_PCT: float = 20.0
    DEFAULT_SPOT_CHAIN: str = "base"
    SOLANA_NATIVE_TOKENS: str = "SOL,BONK,JUP,PYTH,RAY,ORCA"
    VENUE_TIMEOUT_SECONDS: float = 60.0
    ASTER_BASE_URL: str = "https://fapi.asterdex.com"
    ASTER_API_KEY: str = ""
    ASTER_API_SECRET: str = ""
    ASTER_QUANTITY_PRECISION: int = 3
    JUPITER_API_URL: str = "https://quote-api.jup.ag/v6"
    JUPITER_SLIPPAGE_BPS: int = 50
    SOLANA_RPC_URL: str = "https://api.mainnet-beta.solana.com"
    SOLANA_WALLET_ADDRESS: str = ""
    ONEINCH_API_URL: str = "https://api.1inch.dev/swap/v6.0"
    ONEINCH_API_KEY: str = ""
    ONEINCH_SLIPPAGE_PCT: float = 1.0
    EVM_PRIVATE_KEY: str = ""
    EVM_RPC_URL: str = "https://mainnet.base.org"

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            TRADING_MODE=os.getenv("TRADING_MODE", "paper"),
            DB_PATH=os.getenv("DB_PATH", "data/swarm.db"),
            DASHBOARD_PORT=int(os.getenv("DASHBOARD_PORT", "8080")),
            STATUS_INTERVAL_SECONDS=int(os.getenv("STATUS_INTERVAL_SECONDS", "60")),
            OLLAMA_HOST=os.getenv("OLLAMA_HOST", "https://ollama.com"),
            OLLAMA_API_KEY=os.getenv("OLLAMA_API_KEY", ""),
            LLM_MODEL_DEFAULT=os.getenv("LLM_MODEL_DEFAULT", "gpt-oss:120b"),
            AGENT_TIMEOUT_SECONDS=float(os.getenv("AGENT_TIMEOUT_SECONDS", "60")),
            CONSENSUS_THRESHOLD=float(os.getenv("CONSENSUS_THRESHOLD", "60")),
            PRINCIPAL_NAME=os.getenv("PRINCIPAL_NAME", "Swarm Consensus Agent"),
            PRINCIPAL_BALANCE_USD=float(os.getenv("PRINCIPAL_BALANCE_USD", "100")),
            DEFAULT_POSITION_SIZE_PCT=float(os.getenv("DEFAULT_POSITION_SIZE_PCT", "5")),
            LEVERAGE_HIGH=int(os.getenv("LEVERAGE_HIGH", "10")),
            LEVERAGE_LOW=int(os.getenv("LEVERAGE_LOW", "5")),
            LEVERAGE_SIZE_THRESHOLD_PCT=float(os.getenv("LEVERAGE_SIZE_THRESHOLD_PCT", "20")),
            DEFAULT_SPOT_CHAIN=os.getenv("DEFAULT_SPOT_CHAIN", "base"),
            SOLANA_NATIVE_TOKENS=os.getenv("SOLANA_NATIVE_TOKENS", "SOL,BONK,JUP,PYTH,RAY,ORCA"),
            VENUE_TIMEOUT_SECONDS=float(os.getenv("VENUE_TIMEOUT_SECONDS", "60")),
            ASTER_BASE_URL=os.getenv("ASTER_BASE_URL", "https://fapi.asterdex.com"),
            ASTER_API_KEY=os.getenv("ASTER_API_KEY", ""),
            ASTER_API_SECRET=os.getenv("ASTER_API_SECRET", ""),
            ASTER_QUANTITY_PRECISION=int(os.getenv("ASTER_QUANTITY_PRECISION", "3")),
            JUPITER_API_URL=os.getenv("JUPITER_API_URL", "https://quote-api.jup.ag/v6"),
            JUPITER_SLIPPAGE_BPS=int(os.getenv("JUPITER_SLIPPAGE_BPS", "50")),
            SOLANA_RPC_URL=os.getenv("SOLANA_RPC_URL", "https://api.mainnet-beta.solana.com"),
            SOLANA_WALLET_ADDRESS=os.getenv("SOLANA_WALLET_ADDRESS", ""),
            ONEINCH_API_URL=os.getenv("ONEINCH_API_URL", "https://api.1inch.dev/swap/v6.0"),
            ONEINCH_API_KEY=os.getenv("ONEINCH_API_KEY", ""),
            ONEINCH_SLIPPAGE_PCT=float(os.getenv("ONEINCH_SLIPPAGE_PCT", "1.0")),
            EVM_PRIVATE_KEY=os.getenv("EVM_PRIVATE_KEY", ""),
            EVM_RPC_URL=os.getenv("EVM_RPC_URL", "https://mainnet.base.org"),
        )

    @property
    def solana_native_tokens_list(self) -> list[str]:
        return [s.strip().upper() for s in self.SOLANA_NATIVE_TOKENS.split(",") if s.strip()]

    @property
    def is_live(self) -> bool:
        return self.TRADING_MODE == "live"
