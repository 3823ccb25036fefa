"""Tests for swarm.orchestrator."""
import asyncio
from datetime import datetime

import pytest
from unittest.mock import AsyncMock, MagicMock

from execution.trade_executor import TradeExecutor
from execution.venue_selector import VenueSelector
from helpers import agent_json, make_debate, make_opportunity
from shared.schemas import (
    DebateStatus,
    Decision,
    ExecutionResult,
    Recommendation,
    SwarmRole,
    TradeStatus,
    Venue,
)
from swarm.analysis_collector import AnalysisCollector
from swarm.orchestrator import DebateOrchestrator
from swarm.registry import AgentRegistry

ROLES = list(SwarmRole)
HANG = "hang"


async def _swarm(db, panel, executor=None, timeout=0.2):
    """Build an orchestrator over a real store.

    ``panel`` is a list of (weight, answer); an answer is the model's text,
    an exception to raise, or HANG to never answer.
    """
    registry = AgentRegistry(db)
    answers = {}
    agents = []
    for i, (weight, answer) in enumerate(panel):
        agent = await registry.register(f"Agent{i}", ROLES[i % len(ROLES)], "test-model", weight)
        agents.append(agent)
        answers[f"You are Agent{i},"] = answer
    principal = await registry.ensure_principal("Swarm Consensus Agent", 100.0)

    async def ask(system_prompt, user_prompt, model=None):
        for prefix, answer in answers.items():
            if system_prompt.startswith(prefix):
                if isinstance(answer, Exception):
                    raise answer
                if answer == HANG:
                    await asyncio.sleep(10)
                return answer
        raise AssertionError("unexpected agent")

    client = MagicMock()
    client.ask = ask
    orchestrator = DebateOrchestrator(
        db=db,
        registry=registry,
        collector=AnalysisCollector(client, db, timeout_seconds=timeout),
        venue_selector=VenueSelector(),
        executor=executor or TradeExecutor(live=False),
        principal_id=principal.id,
    )
    return orchestrator, agents, principal


async def _run(orchestrator, opportunity=None):
    debate_id = await orchestrator.initiate(opportunity or make_opportunity())
    await orchestrator.wait(debate_id)
    return await orchestrator.get_debate(debate_id)


@pytest.mark.asyncio
async def test_low_confidence_majority_completes_without_execution(db):
    orchestrator, _, principal = await _swarm(db, [
        (1, agent_json("BUY", 90)),
        (1, agent_json("BUY", 80)),
        (1, agent_json("HOLD", 50, sentiment="NEUTRAL")),
        (1, agent_json("SELL", 60, sentiment="BEARISH")),
        (1, agent_json("PASS", 0, sentiment="NEUTRAL")),
    ])

    detail = await _run(orchestrator)

    assert detail.debate.status == DebateStatus.COMPLETED
    assert detail.debate.consensus_reached is False
    assert detail.debate.final_decision == Recommendation.BUY
    assert detail.debate.confidence == pytest.approx(34.0)
    assert detail.decision.buy_score == pytest.approx(1.7)
    assert detail.decision.executed is False
    assert detail.trades == []
    assert len(detail.messages) == 5
    assert len(detail.votes) == 5
    assert (await db.get_principal(principal.id)).balance_usd == 100.0


@pytest.mark.asyncio
async def test_weighted_consensus_executes_paper_trade(db):
    orchestrator, _, principal = await _swarm(db, [
        (2, agent_json("BUY", 100, suggestedSize=10)),
        (1, agent_json("BUY", 100, suggestedSize=20)),
        (1, agent_json("SELL", 100, sentiment="BEARISH", suggestedSize=90)),
    ])

    detail = await _run(orchestrator, make_opportunity("ethusdt", 3000.0))

    assert detail.debate.symbol == "ETHUSDT"
    assert detail.debate.status == DebateStatus.COMPLETED
    assert detail.debate.consensus_reached is True
    assert detail.decision.action == Recommendation.BUY
    assert detail.decision.confidence == pytest.approx(75.0)
    assert detail.decision.suggested_size == pytest.approx(15.0)
    assert detail.decision.executed is True
    assert detail.decision.executed_at is not None

    assert len(detail.trades) == 1
    trade = detail.trades[0]
    assert trade.status == TradeStatus.OPEN
    assert trade.venue == Venue.ASTERDEX
    assert trade.leverage == 5
    assert trade.usd_value == pytest.approx(15.0)
    assert trade.tx_ref.startswith("paper-")
    assert trade.is_real is False

    updated = await db.get_principal(principal.id)
    assert updated.balance_usd == pytest.approx(85.0)
    assert updated.total_trades == 1


@pytest.mark.asyncio
async def test_agent_timeout_degrades_to_pass_vote(db):
    orchestrator, agents, _ = await _swarm(db, [
        (1, agent_json("BUY", 100)),
        (1, agent_json("BUY", 100)),
        (1, agent_json("BUY", 100)),
        (1, agent_json("BUY", 100)),
        (1, HANG),
    ], timeout=0.1)

    detail = await _run(orchestrator)

    assert detail.debate.status == DebateStatus.COMPLETED
    hung_vote = next(v for v in detail.votes if v.agent_id == agents[4].id)
    assert hung_vote.decision == Recommendation.PASS
    assert hung_vote.confidence == 0.0
    assert hung_vote.weight == 1.0
    assert detail.decision.total_weight == 5.0
    assert detail.decision.pass_score == 0.0
    assert detail.decision.confidence == pytest.approx(80.0)


@pytest.mark.asyncio
async def test_provider_error_and_garbage_answers(db):
    orchestrator, agents, _ = await _swarm(db, [
        (1, ConnectionError("provider down")),
        (1, "I am feeling bearish about this one."),
    ])

    detail = await _run(orchestrator)

    votes = {v.agent_id: v for v in detail.votes}
    assert votes[agents[0].id].decision == Recommendation.PASS
    assert votes[agents[0].id].confidence == 0.0
    assert "provider down" in votes[agents[0].id].reasoning
    assert votes[agents[1].id].decision == Recommendation.SELL
    assert votes[agents[1].id].confidence == 50.0
    # SELL 0.5 / 2.0 = 25% -> no consensus
    assert detail.decision.action == Recommendation.SELL
    assert detail.debate.consensus_reached is False


@pytest.mark.asyncio
async def test_vote_weights_match_active_panel(db):
    orchestrator, agents, _ = await _swarm(db, [
        (1.5, agent_json("BUY", 70)),
        (0.8, ValueError("bad")),
        (1.2, agent_json("HOLD", 40)),
        (2.0, agent_json("SELL", 90)),
    ])
    await db.update_agent(agents[3].id, is_active=False)

    detail = await _run(orchestrator)

    assert {v.agent_id for v in detail.votes} == {a.id for a in agents[:3]}
    assert sum(v.weight for v in detail.votes) == pytest.approx(1.5 + 0.8 + 1.2)
    assert detail.decision.total_weight == pytest.approx(3.5)


@pytest.mark.asyncio
async def test_vote_uses_weight_at_vote_time(db):
    orchestrator, agents, _ = await _swarm(db, [(1.0, agent_json("BUY", 100))])
    original_ask = orchestrator.collector.client.ask

    async def ask_and_reweight(system_prompt, user_prompt, model=None):
        await db.update_agent(agents[0].id, voting_weight=3.0)
        return await original_ask(system_prompt, user_prompt, model)

    orchestrator.collector.client.ask = ask_and_reweight
    detail = await _run(orchestrator)
    assert detail.votes[0].weight == 3.0


@pytest.mark.asyncio
async def test_non_actionable_consensus_creates_no_trade(db):
    orchestrator, _, _ = await _swarm(db, [
        (1, agent_json("HOLD", 90, sentiment="NEUTRAL")),
        (1, agent_json("HOLD", 80, sentiment="NEUTRAL")),
    ])

    detail = await _run(orchestrator)

    assert detail.debate.consensus_reached is True
    assert detail.decision.action == Recommendation.HOLD
    assert detail.decision.executed is False
    assert detail.trades == []


@pytest.mark.asyncio
async def test_execution_failure_keeps_debate_completed(db):
    executor = MagicMock()
    executor.execute = AsyncMock(
        return_value=ExecutionResult(success=False, venue=Venue.ASTERDEX, usd_amount=5.0, error="Margin is insufficient")
    )
    orchestrator, _, principal = await _swarm(db, [
        (1, agent_json("SELL", 95, sentiment="BEARISH")),
        (1, agent_json("SELL", 85, sentiment="BEARISH")),
    ], executor=executor)

    detail = await _run(orchestrator)

    assert detail.debate.status == DebateStatus.COMPLETED
    assert detail.debate.consensus_reached is True
    assert detail.decision.executed is True
    assert len(detail.trades) == 1
    assert detail.trades[0].status == TradeStatus.CANCELLED
    assert detail.trades[0].error_message == "Margin is insufficient"
    assert (await db.get_principal(principal.id)).balance_usd == 100.0


@pytest.mark.asyncio
async def test_unexpected_executor_exception_is_contained(db):
    executor = MagicMock()
    executor.execute = AsyncMock(side_effect=RuntimeError("kaboom"))
    orchestrator, _, _ = await _swarm(db, [(1, agent_json("BUY", 95))], executor=executor)

    detail = await _run(orchestrator)

    assert detail.debate.status == DebateStatus.COMPLETED
    assert detail.decision.executed is True
    assert detail.trades[0].status == TradeStatus.CANCELLED
    assert detail.trades[0].error_message == "kaboom"


@pytest.mark.asyncio
async def test_no_active_agents_cancels_debate(db):
    orchestrator, _, _ = await _swarm(db, [])

    detail = await _run(orchestrator)

    assert detail.debate.status == DebateStatus.CANCELLED
    assert "No active agents" in detail.debate.error
    assert detail.decision is None
    assert detail.trades == []


@pytest.mark.asyncio
async def test_persistence_failure_cancels_debate(db, monkeypatch):
    orchestrator, _, _ = await _swarm(db, [(1, agent_json("BUY", 95))])
    monkeypatch.setattr(db, "add_vote", AsyncMock(side_effect=RuntimeError("disk I/O error")))

    detail = await _run(orchestrator)

    assert detail.debate.status == DebateStatus.CANCELLED
    assert detail.debate.error == "disk I/O error"
    assert detail.debate.completed_at is not None
    assert detail.decision is None


@pytest.mark.asyncio
async def test_concurrent_debates_are_independent(db):
    orchestrator, _, principal = await _swarm(db, [
        (1, agent_json("BUY", 100)),
        (1, agent_json("BUY", 100)),
    ])

    ids = [await orchestrator.initiate(make_opportunity(s, 100.0)) for s in ("ETHUSDT", "AERO", "JUP")]
    await asyncio.gather(*(orchestrator.wait(i) for i in ids))

    for debate_id in ids:
        detail = await orchestrator.get_debate(debate_id)
        assert detail.debate.status == DebateStatus.COMPLETED
        assert len(detail.votes) == 2
        assert len(detail.trades) == 1
    assert (await db.get_principal(principal.id)).total_trades == 3
    assert orchestrator.active_debates == []


@pytest.mark.asyncio
async def test_execute_decision_at_most_once(db):
    orchestrator, _, _ = await _swarm(db, [(1, agent_json("BUY", 95))])
    detail = await _run(orchestrator)
    assert len(detail.trades) == 1

    again = await orchestrator.execute_decision(detail.debate, detail.decision)
    assert again is None
    assert len(await db.get_trades(debate_id=detail.debate.id)) == 1


@pytest.mark.asyncio
async def test_recover_cancels_stale_and_executes_pending(db):
    orchestrator, _, principal = await _swarm(db, [])

    stale = make_debate()
    await db.create_debate(stale)

    pending = make_debate(symbol="ETHUSDT", price=3000.0)
    await db.create_debate(pending)
    decision = Decision(
        debate_id=pending.id, action=Recommendation.BUY, confidence=80.0,
        total_votes=1, total_weight=1.0, buy_votes=1, buy_score=0.8,
    )
    await db.complete_debate(decision, consensus_reached=True, completed_at=datetime.utcnow(), duration=2)

    summary = await orchestrator.recover()

    assert summary == {"cancelled_debates": 1, "interrupted_executions": 0, "executed_decisions": 1}
    assert (await db.get_debate(stale.id)).status == DebateStatus.CANCELLED
    assert (await db.get_decision(pending.id)).executed is True
    assert (await db.get_trades(debate_id=pending.id))[0].status == TradeStatus.OPEN

    assert await orchestrator.recover() == {
        "cancelled_debates": 0, "interrupted_executions": 0, "executed_decisions": 0,
    }
    assert (await db.get_principal(principal.id)).total_trades == 1


@pytest.mark.asyncio
async def test_stats_and_recent_debates(db):
    orchestrator, _, _ = await _swarm(db, [(1, agent_json("BUY", 95))])
    await _run(orchestrator)

    stats = await orchestrator.get_stats()
    assert stats["total_debates"] == 1
    assert stats["executed_decisions"] == 1
    assert stats["running_debates"] == 0

    recent = await orchestrator.get_recent_debates(status=DebateStatus.COMPLETED)
    assert len(recent) == 1


@pytest.mark.asyncio
async def test_shutdown_during_venue_call_is_not_retried_on_recovery(db):
    calls = []

    async def execute(debate, decision, selection, principal):
        calls.append(decision.id)
        if len(calls) == 1:
            await asyncio.sleep(10)
        return ExecutionResult(success=True, venue=selection.venue, tx_ref="order-1", usd_amount=5.0)

    executor = MagicMock()
    executor.execute = execute
    orchestrator, _, principal = await _swarm(db, [(1, agent_json("BUY", 95))], executor=executor)

    debate_id = await orchestrator.initiate(make_opportunity())
    while not calls:
        await asyncio.sleep(0.01)
    await orchestrator.shutdown()

    decision = await db.get_decision(debate_id)
    assert decision.executed is False
    assert decision.execution_started_at is not None

    summary = await orchestrator.recover()

    assert summary == {"cancelled_debates": 0, "interrupted_executions": 1, "executed_decisions": 0}
    assert len(calls) == 1
    detail = await orchestrator.get_debate(debate_id)
    assert detail.debate.status == DebateStatus.COMPLETED
    assert detail.decision.executed is True
    assert len(detail.trades) == 1
    assert detail.trades[0].status == TradeStatus.CANCELLED
    assert "Interrupted during execution" in detail.trades[0].error_message
    assert (await db.get_principal(principal.id)).balance_usd == 100.0

    assert (await orchestrator.recover())["interrupted_executions"] == 0
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_claimed_decision_is_not_executed_again(db):
    executor = MagicMock()
    executor.execute = AsyncMock()
    orchestrator, _, _ = await _swarm(db, [], executor=executor)

    debate = make_debate(symbol="ETHUSDT", price=3000.0)
    await db.create_debate(debate)
    decision = Decision(
        debate_id=debate.id, action=Recommendation.BUY, confidence=80.0,
        total_votes=1, total_weight=1.0, buy_votes=1, buy_score=0.8,
    )
    decision.id = await db.complete_debate(
        decision, consensus_reached=True, completed_at=datetime.utcnow(), duration=2
    )
    assert await db.claim_execution(decision.id) is True

    assert await orchestrator.execute_decision(debate, decision) is None
    executor.execute.assert_not_called()
