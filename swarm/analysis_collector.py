"""Analysis collector: asks every active agent for an independent opinion."""
import asyncio
import json
import logging
import re
import time
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from shared.ollama_client import OllamaClient
from shared.schemas import (
    Agent,
    AgentAnalysis,
    AgentReasoning,
    Debate,
    DebateMessage,
    Recommendation,
    Sentiment,
)
from storage.db import Database
from swarm.prompts import build_analysis_prompt, build_system_prompt

logger = logging.getLogger(__name__)

JSON_PATTERN = re.compile(r"\{.*\}", re.DOTALL)
THINK_PATTERN = re.compile(r"<think>.*?</think>", re.DOTALL)

KEYWORD_CONFIDENCE = 50.0


class AgentResponse(BaseModel):
    """Schema an agent's JSON answer must satisfy to be taken as-is."""
    model_config = ConfigDict(populate_by_name=True)

    message: str = "No message provided"
    sentiment: Sentiment = Sentiment.NEUTRAL
    recommendation: Recommendation
    confidence: float
    reasoning: AgentReasoning = Field(default_factory=AgentReasoning)
    suggested_price: Optional[float] = Field(default=None, alias="suggestedPrice")
    suggested_size: Optional[float] = Field(default=None, alias="suggestedSize")
    stop_loss: Optional[float] = Field(default=None, alias="stopLoss")
    take_profit: Optional[float] = Field(default=None, alias="takeProfit")

    @field_validator("sentiment", "recommendation", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: Any) -> float:
        if isinstance(v, bool):
            raise ValueError("confidence must be a number")
        return max(0.0, min(100.0, float(v)))

    @field_validator("reasoning", mode="before")
    @classmethod
    def _normalize_reasoning(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, str):
            return {"data_support": v}
        if not isinstance(v, dict):
            raise ValueError("reasoning must be an object")
        key_points = v.get("keyPoints", v.get("key_points", []))
        if isinstance(key_points, str):
            key_points = [key_points]
        concerns = v.get("concerns", "")
        if isinstance(concerns, list):
            concerns = "; ".join(str(c) for c in concerns)
        return {
            "key_points": [str(p) for p in key_points or []],
            "data_support": str(v.get("dataSupport", v.get("data_support", "")) or ""),
            "concerns": str(concerns or ""),
        }

    @field_validator("suggested_price", "suggested_size", "stop_loss", "take_profit", mode="before")
    @classmethod
    def _positive_or_none(cls, v: Any) -> Optional[float]:
        # Models emit null, "", "N/A" or 0 when a parameter does not apply
        try:
            value = float(v)
        except (TypeError, ValueError):
            return None
        return value if value > 0 else None


def keyword_classify(text: str) -> tuple[Sentiment, Recommendation]:
    """Directional keyword sniffing used when structured parsing fails."""
    lower = text.lower()
    if "buy" in lower or "bullish" in lower:
        return Sentiment.BULLISH, Recommendation.BUY
    if "sell" in lower or "bearish" in lower:
        return Sentiment.BEARISH, Recommendation.SELL
    return Sentiment.NEUTRAL, Recommendation.HOLD


def fallback_analysis(agent: Agent, error: str, latency_ms: float = 0.0) -> AgentAnalysis:
    """PASS/zero-confidence analysis for an agent whose call failed."""
    return AgentAnalysis(
        agent_id=agent.id,
        agent_name=agent.name,
        role=agent.role,
        message="Unable to analyze due to error. Recommending PASS.",
        sentiment=Sentiment.NEUTRAL,
        confidence=0.0,
        recommendation=Recommendation.PASS,
        reasoning=AgentReasoning(error=error),
        source="error",
        latency_ms=latency_ms,
    )


def parse_response(text: str, agent: Agent, latency_ms: float = 0.0) -> AgentAnalysis:
    """Parse an agent's raw answer into an AgentAnalysis.

    Strategy: strip <think> blocks, take the outermost JSON object and
    validate it against AgentResponse. Anything that does not validate falls
    back to keyword classification at a fixed confidence of 50.
    """
    clean = THINK_PATTERN.sub("", text or "").strip() or (text or "")

    match = JSON_PATTERN.search(clean)
    if match:
        try:
            parsed = AgentResponse.model_validate(json.loads(match.group(0)))
            return AgentAnalysis(
                agent_id=agent.id,
                agent_name=agent.name,
                role=agent.role,
                message=parsed.message,
                sentiment=parsed.sentiment,
                confidence=parsed.confidence,
                recommendation=parsed.recommendation,
                reasoning=parsed.reasoning,
                suggested_price=parsed.suggested_price,
                suggested_size=parsed.suggested_size,
                stop_loss=parsed.stop_loss,
                take_profit=parsed.take_profit,
                source="parsed",
                latency_ms=latency_ms,
            )
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning(
                "Agent response failed validation, using keyword fallback",
                extra={"agent": agent.name, "error": str(e)[:200]},
            )

    sentiment, recommendation = keyword_classify(clean)
    return AgentAnalysis(
        agent_id=agent.id,
        agent_name=agent.name,
        role=agent.role,
        message=clean[:500],
        sentiment=sentiment,
        confidence=KEYWORD_CONFIDENCE,
        recommendation=recommendation,
        reasoning=AgentReasoning(raw_response=text),
        source="keyword",
        latency_ms=latency_ms,
    )


class AnalysisCollector:
    """Fans a debate out to every agent and records each answer as it lands."""

    def __init__(self, client: OllamaClient, db: Database, timeout_seconds: float = 60.0):
        self.client = client
        self.db = db
        self.timeout_seconds = timeout_seconds

    async def analyze(self, debate: Debate, agent: Agent) -> AgentAnalysis:
        """Get one agent's analysis. Never raises."""
        system_prompt = build_system_prompt(agent.role, agent.name, debate.symbol)
        user_prompt = build_analysis_prompt(debate, agent.role)

        start = time.monotonic()
        try:
            text = await asyncio.wait_for(
                self.client.ask(system_prompt, user_prompt, model=agent.ai_backend),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            latency = (time.monotonic() - start) * 1000
            logger.warning(
                "Agent analysis timed out",
                extra={"agent": agent.name, "timeout_s": self.timeout_seconds},
            )
            return fallback_analysis(
                agent, f"Analysis timed out after {self.timeout_seconds:g}s", latency
            )
        except Exception as e:
            latency = (time.monotonic() - start) * 1000
            logger.error(
                "Agent analysis failed",
                extra={"agent": agent.name, "error": str(e)[:200]},
            )
            return fallback_analysis(agent, f"Analysis failed: {e}", latency)

        latency = (time.monotonic() - start) * 1000
        return parse_response(text, agent, latency)

    async def _collect_one(self, debate: Debate, agent: Agent) -> AgentAnalysis:
        analysis = await self.analyze(debate, agent)
        await self.db.add_debate_message(DebateMessage.from_analysis(debate.id, analysis))
        logger.info(
            "Agent analysis recorded",
            extra={
                "debate_id": debate.id,
                "agent": agent.name,
                "role": agent.role.value,
                "recommendation": analysis.recommendation.value,
                "confidence": analysis.confidence,
                "source": analysis.source,
                "latency_ms": round(analysis.latency_ms),
            },
        )
        return analysis

    async def collect(self, debate: Debate, agents: list[Agent]) -> list[AgentAnalysis]:
        """Run all agents concurrently and return once every one has answered.

        Persistence errors propagate: they are orchestration failures, not
        agent failures.
        """
        return list(await asyncio.gather(*(self._collect_one(debate, a) for a in agents)))
