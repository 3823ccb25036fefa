"""Agent registry: the panel of swarm agents and the trading principal."""
import logging
import uuid
from typing import Optional

from shared.schemas import Agent, Principal, SwarmRole
from storage.db import Database

logger = logging.getLogger(__name__)

# (name, role, voting weight) for the panel seeded on first start
DEFAULT_PANEL = [
    ("Guardian", SwarmRole.RISK_ASSESSOR, 1.5),
    ("Surge", SwarmRole.MOMENTUM_TRADER, 1.0),
    ("Pendulum", SwarmRole.MEAN_REVERSION, 1.0),
    ("Pulse", SwarmRole.SENTIMENT_ANALYZER, 0.8),
    ("Chartist", SwarmRole.TECHNICAL_ANALYST, 1.2),
    ("Ledger", SwarmRole.FUNDAMENTAL_ANALYST, 1.0),
    ("Vega", SwarmRole.VOLATILITY_SPECIALIST, 0.8),
]


class AgentRegistry:
    """Store-backed view of the swarm panel.

    Weights are always read from the store so a vote carries the agent's
    weight at vote time, never a cached copy.
    """

    def __init__(self, db: Database):
        self.db = db

    async def list_active(self) -> list[Agent]:
        return await self.db.get_agents(active_only=True)

    async def list_all(self) -> list[Agent]:
        return await self.db.get_agents()

    async def current_weight(self, agent_id: str) -> float:
        agent = await self.db.get_agent(agent_id)
        if agent is None:
            raise LookupError(f"Agent {agent_id} not found")
        return agent.voting_weight

    async def register(
        self,
        name: str,
        role: SwarmRole,
        ai_backend: str,
        voting_weight: float = 1.0,
        is_active: bool = True,
    ) -> Agent:
        agent = Agent(
            id=str(uuid.uuid4()),
            name=name,
            role=role,
            voting_weight=voting_weight,
            ai_backend=ai_backend,
            is_active=is_active,
        )
        await self.db.add_agent(agent)
        logger.info(
            "Agent registered",
            extra={"agent": name, "role": role.value, "weight": voting_weight},
        )
        return agent

    async def seed_default_panel(self, ai_backend: str) -> list[Agent]:
        """Create one agent per role if the registry is empty."""
        existing = await self.list_all()
        if existing:
            return existing
        agents = []
        for name, role, weight in DEFAULT_PANEL:
            agents.append(await self.register(name, role, ai_backend, weight))
        logger.info("Seeded default swarm panel", extra={"agents": len(agents)})
        return agents

    async def ensure_principal(self, name: str, initial_balance_usd: float) -> Principal:
        """Return the named principal, creating it with the initial balance if absent."""
        principal: Optional[Principal] = await self.db.get_principal_by_name(name)
        if principal is not None:
            return principal
        principal = Principal(id=str(uuid.uuid4()), name=name, balance_usd=initial_balance_usd)
        await self.db.add_principal(principal)
        logger.info(
            "Principal created",
            extra={"principal": name, "balance_usd": initial_balance_usd},
        )
        return principal
