"""Test helpers shared across test files."""
import json
import uuid

from shared.ollama_client import _merge_fields
from shared.schemas import (
    Agent,
    Debate,
    Decision,
    MarketOpportunity,
    Principal,
    Recommendation,
    SwarmRole,
    Vote,
)


def mcr(response="", thinking="", eval_count=0, eval_duration=0):
    """Build a mock Ollama chat return dict with merged field.

    Use instead of raw dicts so mocks match ollama_client.chat_async() format.
    Short name (mock chat response) for compact test code.
    """
    return {
        "response": response,
        "thinking": thinking,
        "merged": _merge_fields(response, thinking),
        "eval_count": eval_count,
        "eval_duration": eval_duration,
    }


def agent_json(recommendation="BUY", confidence=80, sentiment="BULLISH", **extra):
    """Well-formed agent answer, as the model would emit it."""
    payload = {
        "message": f"{recommendation} looks right here.",
        "sentiment": sentiment,
        "recommendation": recommendation,
        "confidence": confidence,
        "reasoning": {
            "keyPoints": ["volume expanding", "trend intact"],
            "dataSupport": "24h volume up",
            "concerns": "macro risk",
        },
    }
    payload.update(extra)
    return json.dumps(payload)


def make_agent(name="Guardian", role=SwarmRole.RISK_ASSESSOR, weight=1.0, active=True):
    return Agent(
        id=str(uuid.uuid4()),
        name=name,
        role=role,
        voting_weight=weight,
        ai_backend="test-model",
        is_active=active,
    )


def make_opportunity(symbol="ETHUSDT", price=3000.0, **kwargs):
    return MarketOpportunity(
        symbol=symbol,
        current_price=price,
        price_change_24h=kwargs.pop("price_change_24h", 4.2),
        volume_24h=kwargs.pop("volume_24h", 250_000_000.0),
        trigger_reason=kwargs.pop("trigger_reason", "Volume spike"),
        **kwargs,
    )


def make_debate(symbol="ETHUSDT", price=3000.0, debate_id=None):
    return Debate(
        id=debate_id or str(uuid.uuid4()),
        symbol=symbol,
        trigger_reason="Volume spike",
        current_price=price,
        price_change_24h=4.2,
        volume_24h=250_000_000.0,
    )


def make_vote(decision, confidence, weight=1.0, agent_id=None, debate_id="d1"):
    return Vote(
        debate_id=debate_id,
        agent_id=agent_id or str(uuid.uuid4()),
        decision=Recommendation(decision),
        confidence=confidence,
        weight=weight,
    )


def make_decision(action="BUY", confidence=75.0, debate_id="d1", decision_id=1, **kwargs):
    return Decision(
        id=decision_id,
        debate_id=debate_id,
        action=Recommendation(action),
        confidence=confidence,
        total_votes=kwargs.pop("total_votes", 3),
        total_weight=kwargs.pop("total_weight", 4.0),
        **kwargs,
    )


def make_principal(balance=100.0):
    return Principal(id="principal-1", name="Swarm Consensus Agent", balance_usd=balance)
