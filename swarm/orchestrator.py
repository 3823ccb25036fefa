"""Debate orchestrator: runs one opportunity through the swarm, end to end."""
import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import Optional

from execution.trade_executor import TradeExecutor, build_trade
from execution.venue_selector import VenueSelector
from shared.schemas import (
    AgentAnalysis,
    Debate,
    DebateDetail,
    DebateStatus,
    Decision,
    ExecutionResult,
    MarketOpportunity,
    Recommendation,
    Trade,
    VenueSelection,
    Vote,
)
from storage.db import Database, DecisionAlreadyExecuted
from swarm.analysis_collector import AnalysisCollector
from swarm.consensus import AggregationError, calculate_consensus, is_consensus
from swarm.registry import AgentRegistry

logger = logging.getLogger(__name__)

ACTIONABLE = (Recommendation.BUY, Recommendation.SELL)
INTERRUPTED_EXECUTION_ERROR = "Interrupted during execution; venue outcome unknown"


def _vote_reasoning(analysis: AgentAnalysis) -> str:
    reasoning = analysis.reasoning
    if reasoning.error:
        return reasoning.error
    if reasoning.key_points:
        return "; ".join(reasoning.key_points)
    return analysis.message[:500]


class DebateOrchestrator:
    """State machine for debates: IN_PROGRESS -> VOTING -> COMPLETED | CANCELLED.

    ``initiate`` persists the debate and returns its id immediately; the rest
    of the debate runs as a background task. Any failure before the debate is
    COMPLETED cancels it. Execution failures never do: they are recorded as a
    CANCELLED trade against the completed decision.
    """

    def __init__(
        self,
        db: Database,
        registry: AgentRegistry,
        collector: AnalysisCollector,
        venue_selector: VenueSelector,
        executor: TradeExecutor,
        principal_id: str,
        consensus_threshold: float = 60.0,
    ):
        self.db = db
        self.registry = registry
        self.collector = collector
        self.venue_selector = venue_selector
        self.executor = executor
        self.principal_id = principal_id
        self.consensus_threshold = consensus_threshold
        self._tasks: dict[str, asyncio.Task] = {}
        self._executing: set[int] = set()

    @property
    def active_debates(self) -> list[str]:
        return list(self._tasks)

    async def initiate(self, opportunity: MarketOpportunity) -> str:
        """Create the debate and schedule it. Returns the debate id."""
        debate = Debate(
            id=str(uuid.uuid4()),
            symbol=opportunity.symbol.upper(),
            trigger_reason=opportunity.trigger_reason,
            current_price=opportunity.current_price,
            price_change_24h=opportunity.price_change_24h,
            volume_24h=opportunity.volume_24h,
            market_data=dict(opportunity.market_data),
        )
        await self.db.create_debate(debate)
        logger.info(
            "Debate initiated",
            extra={
                "debate_id": debate.id,
                "symbol": debate.symbol,
                "trigger": debate.trigger_reason,
                "price": debate.current_price,
            },
        )

        task = asyncio.create_task(self.conduct(debate), name=f"debate-{debate.id}")
        self._tasks[debate.id] = task
        task.add_done_callback(lambda _t, debate_id=debate.id: self._tasks.pop(debate_id, None))
        return debate.id

    async def wait(self, debate_id: str):
        """Wait for a running debate's background task, if there is one."""
        task = self._tasks.get(debate_id)
        if task is not None:
            await asyncio.shield(task)

    async def conduct(self, debate: Debate) -> Optional[Decision]:
        """Run phases 2-6 for an already persisted debate."""
        start = time.monotonic()
        try:
            decision, consensus_reached = await self._deliberate(debate, start)
        except Exception as e:
            logger.exception(
                "Debate failed, cancelling",
                extra={"debate_id": debate.id, "symbol": debate.symbol},
            )
            await self._cancel(debate.id, str(e) or type(e).__name__)
            return None

        if consensus_reached and decision.action in ACTIONABLE:
            await self.execute_decision(debate, decision)
        else:
            logger.info(
                "No execution",
                extra={
                    "debate_id": debate.id,
                    "action": decision.action.value,
                    "confidence": round(decision.confidence, 2),
                    "consensus_reached": consensus_reached,
                },
            )
        return decision

    async def _deliberate(self, debate: Debate, start: float) -> tuple[Decision, bool]:
        agents = await self.registry.list_active()
        if not agents:
            raise AggregationError("No active agents")

        # Phase 2: independent analyses, joined before voting
        logger.info(
            "Debate: collecting analyses",
            extra={"debate_id": debate.id, "agents": len(agents)},
        )
        analyses = await self.collector.collect(debate, agents)

        # Phase 3: votes carry each agent's weight as of now
        await self.db.update_debate(debate.id, status=DebateStatus.VOTING)
        votes = []
        for analysis in analyses:
            vote = Vote(
                debate_id=debate.id,
                agent_id=analysis.agent_id,
                decision=analysis.recommendation,
                confidence=analysis.confidence,
                weight=await self.registry.current_weight(analysis.agent_id),
                reasoning=_vote_reasoning(analysis),
            )
            vote.id = await self.db.add_vote(vote)
            votes.append(vote)

        # Phase 4: consensus
        messages = await self.db.get_debate_messages(debate.id)
        result = calculate_consensus(votes, messages)
        decision = Decision(debate_id=debate.id, **result.model_dump())
        consensus_reached = is_consensus(result.confidence, self.consensus_threshold)

        logger.info(
            "Debate: consensus",
            extra={
                "debate_id": debate.id,
                "action": result.action.value,
                "confidence": round(result.confidence, 2),
                "total_weight": result.total_weight,
                "buy_score": round(result.buy_score, 3),
                "sell_score": round(result.sell_score, 3),
                "hold_score": round(result.hold_score, 3),
                "pass_score": round(result.pass_score, 3),
                "consensus_reached": consensus_reached,
            },
        )

        # Phase 5: decision and COMPLETED status land together
        completed_at = datetime.utcnow()
        decision.id = await self.db.complete_debate(
            decision,
            consensus_reached=consensus_reached,
            completed_at=completed_at,
            duration=int(time.monotonic() - start),
        )
        logger.info(
            "Debate completed",
            extra={
                "debate_id": debate.id,
                "final_decision": decision.action.value,
                "duration_s": round(time.monotonic() - start, 2),
            },
        )
        return decision, consensus_reached

    async def _cancel(self, debate_id: str, error: str):
        try:
            await self.db.update_debate(
                debate_id,
                status=DebateStatus.CANCELLED,
                completed_at=datetime.utcnow(),
                error=error[:1000],
            )
        except Exception:
            logger.exception("Could not mark debate cancelled", extra={"debate_id": debate_id})

    async def execute_decision(self, debate: Debate, decision: Decision) -> Optional[Trade]:
        """Attempt execution of a decision at most once.

        The claim is persisted before the venue is called, so a process that
        dies mid-call never places the order again. Returns the recorded Trade
        (OPEN or CANCELLED), or None when the decision was already executed
        or claimed.
        """
        if decision.id is None or decision.id in self._executing:
            return None
        self._executing.add(decision.id)
        try:
            if not await self.db.claim_execution(decision.id):
                logger.info(
                    "Decision already executed or claimed, skipping",
                    extra={"debate_id": debate.id, "decision_id": decision.id},
                )
                return None
            return await self._execute(debate, decision)
        finally:
            self._executing.discard(decision.id)

    async def _execute(self, debate: Debate, decision: Decision) -> Optional[Trade]:
        selection = self._select_venue(debate, decision)
        try:
            principal = await self.db.get_principal(self.principal_id)
            if principal is None:
                result = ExecutionResult(
                    success=False,
                    venue=selection.venue,
                    error=f"Principal {self.principal_id} not found",
                )
            else:
                result = await self.executor.execute(debate, decision, selection, principal)
        except Exception as e:
            logger.exception("Unexpected execution error", extra={"debate_id": debate.id})
            result = ExecutionResult(success=False, venue=selection.venue, error=str(e) or type(e).__name__)

        return await self._record(debate, decision, selection, result)

    def _select_venue(self, debate: Debate, decision: Decision) -> VenueSelection:
        selection = self.venue_selector.select(debate.symbol, decision.action, decision.suggested_size)
        logger.info(
            "Venue selected",
            extra={
                "debate_id": debate.id,
                "venue": selection.venue.value,
                "chain": selection.chain,
                "leverage": selection.leverage,
                "reason": selection.reason,
            },
        )
        return selection

    async def _record(
        self,
        debate: Debate,
        decision: Decision,
        selection: VenueSelection,
        result: ExecutionResult,
    ) -> Optional[Trade]:
        trade = build_trade(self.principal_id, debate, decision, selection, result)
        try:
            trade.id = await self.db.record_execution(decision.id, trade)
        except DecisionAlreadyExecuted:
            logger.warning(
                "Execution already recorded for decision",
                extra={"debate_id": debate.id, "decision_id": decision.id},
            )
            return None
        except Exception:
            logger.exception(
                "Failed to record execution",
                extra={"debate_id": debate.id, "tx_ref": result.tx_ref},
            )
            return None

        logger.info(
            "Trade recorded",
            extra={
                "debate_id": debate.id,
                "trade_id": trade.id,
                "status": trade.status.value,
                "venue": trade.venue.value,
                "error": trade.error_message,
            },
        )
        return trade

    async def recover(self) -> dict:
        """Sweep state left by a previous process.

        Debates that never reached a terminal state are cancelled. Executions
        that were claimed but never recorded are closed out as CANCELLED
        trades without calling the venue again. Completed BUY/SELL decisions
        whose execution never started are executed once.
        """
        cancelled = 0
        for debate in await self.db.get_stale_debates():
            if debate.id in self._tasks:
                continue
            await self._cancel(debate.id, "Interrupted before completion")
            cancelled += 1

        interrupted = 0
        for debate, decision in await self.db.get_interrupted_executions():
            if decision.id in self._executing:
                continue
            selection = self._select_venue(debate, decision)
            result = ExecutionResult(
                success=False,
                venue=selection.venue,
                error=INTERRUPTED_EXECUTION_ERROR,
            )
            if await self._record(debate, decision, selection, result) is not None:
                interrupted += 1

        executed = 0
        for debate, decision in await self.db.get_unexecuted_decisions():
            if await self.execute_decision(debate, decision) is not None:
                executed += 1

        logger.info(
            "Recovery sweep finished",
            extra={
                "cancelled_debates": cancelled,
                "interrupted_executions": interrupted,
                "executed_decisions": executed,
            },
        )
        return {
            "cancelled_debates": cancelled,
            "interrupted_executions": interrupted,
            "executed_decisions": executed,
        }

    async def get_debate(self, debate_id: str) -> Optional[DebateDetail]:
        return await self.db.get_debate_detail(debate_id)

    async def get_recent_debates(
        self, limit: int = 20, status: Optional[DebateStatus] = None
    ) -> list[Debate]:
        return await self.db.get_recent_debates(limit=limit, status=status)

    async def get_stats(self) -> dict:
        stats = await self.db.get_debate_stats()
        stats["running_debates"] = len(self._tasks)
        return stats

    async def shutdown(self):
        """Cancel running debates; the next recovery sweep cancels their rows."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
