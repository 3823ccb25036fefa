"""Main entry point: wires all layers together."""
import asyncio
import signal

from dotenv import load_dotenv

load_dotenv()

from shared.config import Config
from shared.logging import setup_logging
from shared.market_data import MarketDataClient
from shared.ollama_client import OllamaClient
from execution.aster_client import AsterDexClient
from execution.jupiter_client import JupiterClient
from execution.oneinch_client import OneInchClient
from execution.trade_executor import TradeExecutor
from execution.venue_selector import VenueSelector
from storage.db import Database
from swarm.analysis_collector import AnalysisCollector
from swarm.orchestrator import DebateOrchestrator
from swarm.registry import AgentRegistry
from dashboard.main import app as dashboard_app, set_orchestrator

logger = setup_logging("swarm-trader")


class SwarmAgent:
    """Process wrapper: store, swarm panel, venues, dashboard and status loop."""

    def __init__(self, config: Config):
        self.config = config
        self._shutdown = asyncio.Event()

        # Components (initialized in start())
        self.db: Database | None = None
        self.market_data: MarketDataClient | None = None
        self.orchestrator: DebateOrchestrator | None = None

    def _build_executor(self) -> TradeExecutor:
        cfg = self.config
        aster = AsterDexClient(
            api_key=cfg.ASTER_API_KEY,
            api_secret=cfg.ASTER_API_SECRET,
            base_url=cfg.ASTER_BASE_URL,
            quantity_precision=cfg.ASTER_QUANTITY_PRECISION,
        )
        jupiter = JupiterClient(
            wallet_address=cfg.SOLANA_WALLET_ADDRESS,
            api_url=cfg.JUPITER_API_URL,
            rpc_url=cfg.SOLANA_RPC_URL,
            slippage_bps=cfg.JUPITER_SLIPPAGE_BPS,
        )
        oneinch = OneInchClient(
            api_key=cfg.ONEINCH_API_KEY,
            private_key=cfg.EVM_PRIVATE_KEY,
            rpc_urls={cfg.DEFAULT_SPOT_CHAIN: cfg.EVM_RPC_URL},
            api_url=cfg.ONEINCH_API_URL,
            slippage_pct=cfg.ONEINCH_SLIPPAGE_PCT,
        )
        return TradeExecutor(
            aster=aster,
            jupiter=jupiter,
            oneinch=oneinch,
            market_data=self.market_data,
            live=cfg.is_live,
            default_position_size_pct=cfg.DEFAULT_POSITION_SIZE_PCT,
            timeout_seconds=cfg.VENUE_TIMEOUT_SECONDS,
        )

    async def start(self):
        """Initialize and run all components."""
        cfg = self.config
        logger.info(
            "Starting swarm agent",
            extra={
                "mode": cfg.TRADING_MODE,
                "model": cfg.LLM_MODEL_DEFAULT,
                "consensus_threshold": cfg.CONSENSUS_THRESHOLD,
            },
        )

        # Database
        self.db = Database(cfg.DB_PATH)
        await self.db.init()

        # Panel and principal
        registry = AgentRegistry(self.db)
        agents = await registry.seed_default_panel(cfg.LLM_MODEL_DEFAULT)
        principal = await registry.ensure_principal(cfg.PRINCIPAL_NAME, cfg.PRINCIPAL_BALANCE_USD)

        # AI capability
        ollama = OllamaClient(
            host=cfg.OLLAMA_HOST,
            model=cfg.LLM_MODEL_DEFAULT,
            api_key=cfg.OLLAMA_API_KEY,
        )
        if not await ollama.is_available():
            logger.warning("AI backend unreachable, agents will fall back to PASS votes")
        collector = AnalysisCollector(ollama, self.db, timeout_seconds=cfg.AGENT_TIMEOUT_SECONDS)

        # Execution
        self.market_data = MarketDataClient()
        venue_selector = VenueSelector(
            solana_tokens=cfg.solana_native_tokens_list,
            leverage_high=cfg.LEVERAGE_HIGH,
            leverage_low=cfg.LEVERAGE_LOW,
            leverage_size_threshold_pct=cfg.LEVERAGE_SIZE_THRESHOLD_PCT,
            default_spot_chain=cfg.DEFAULT_SPOT_CHAIN,
        )

        self.orchestrator = DebateOrchestrator(
            db=self.db,
            registry=registry,
            collector=collector,
            venue_selector=venue_selector,
            executor=self._build_executor(),
            principal_id=principal.id,
            consensus_threshold=cfg.CONSENSUS_THRESHOLD,
        )
        await self.orchestrator.recover()

        # Dashboard
        set_orchestrator(self.orchestrator, mode=cfg.TRADING_MODE)

        tasks = [
            asyncio.create_task(self._status_loop(), name="status"),
            asyncio.create_task(self._run_dashboard(), name="dashboard"),
        ]

        logger.info(
            "All components started",
            extra={"agents": len(agents), "principal": principal.name},
        )

        # Wait for shutdown signal
        await self._shutdown.wait()

        # Cleanup
        logger.info("Shutting down...")
        await self.orchestrator.shutdown()
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.market_data.close()
        await self.db.close()
        logger.info("Shutdown complete")

    async def _status_loop(self):
        """Periodically log debate statistics."""
        while not self._shutdown.is_set():
            await asyncio.sleep(self.config.STATUS_INTERVAL_SECONDS)
            try:
                stats = await self.orchestrator.get_stats()
                principal = await self.db.get_principal(self.orchestrator.principal_id)
                logger.info(
                    "Status update",
                    extra={
                        "total_debates": stats["total_debates"],
                        "completed_debates": stats["completed_debates"],
                        "running_debates": stats["running_debates"],
                        "executed_decisions": stats["executed_decisions"],
                        "completion_rate": f"{stats['completion_rate']:.1f}%",
                        "balance_usd": f"${principal.balance_usd:.2f}" if principal else None,
                    },
                )
            except Exception as e:
                logger.error("Status loop error", extra={"error": str(e)})

    async def _run_dashboard(self):
        """Run the FastAPI dashboard."""
        import uvicorn
        config = uvicorn.Config(
            dashboard_app,
            host="0.0.0.0",
            port=self.config.DASHBOARD_PORT,
            log_level="warning",
        )
        server = uvicorn.Server(config)
        logger.info(
            "Dashboard starting",
            extra={"port": self.config.DASHBOARD_PORT},
        )
        await server.serve()

    def shutdown(self):
        self._shutdown.set()


def main():
    config = Config.from_env()

    agent = SwarmAgent(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_signal(sig, frame):
        logger.info("Received signal", extra={"signal": sig})
        agent.shutdown()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        loop.run_until_complete(agent.start())
    except KeyboardInterrupt:
        agent.shutdown()
        loop.run_until_complete(asyncio.sleep(1))
    finally:
        loop.close()


if __name__ == "__main__":
    main()
