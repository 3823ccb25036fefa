"""Pydantic models for all data flowing through the swarm."""
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class SwarmRole(str, Enum):
    RISK_ASSESSOR = "RISK_ASSESSOR"
    MOMENTUM_TRADER = "MOMENTUM_TRADER"
    MEAN_REVERSION = "MEAN_REVERSION"
    SENTIMENT_ANALYZER = "SENTIMENT_ANALYZER"
    TECHNICAL_ANALYST = "TECHNICAL_ANALYST"
    FUNDAMENTAL_ANALYST = "FUNDAMENTAL_ANALYST"
    VOLATILITY_SPECIALIST = "VOLATILITY_SPECIALIST"


class Sentiment(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class Recommendation(str, Enum):
    """Vote options. Declaration order is the consensus tie-break order."""
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"
    PASS = "PASS"


class DebateStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    VOTING = "VOTING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TradeStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class Venue(str, Enum):
    ASTERDEX = "ASTERDEX"
    JUPITER = "JUPITER"
    ONEINCH = "ONEINCH"


class TradeType(str, Enum):
    PERPETUAL = "PERPETUAL"
    SPOT = "SPOT"


class MarketOpportunity(BaseModel):
    """A detected opportunity handed to the swarm. Consumed once per debate."""
    model_config = ConfigDict(frozen=True)

    symbol: str
    current_price: float = Field(gt=0)
    price_change_24h: float = 0.0
    volume_24h: float = 0.0
    trigger_reason: str
    market_data: dict[str, Any] = Field(default_factory=dict)


class Agent(BaseModel):
    """A swarm member with a role, a voting weight and a model binding."""
    id: str
    name: str
    role: SwarmRole
    voting_weight: float = Field(default=1.0, gt=0)
    ai_backend: str
    is_active: bool = True


class Principal(BaseModel):
    """Capital-holding entity on whose behalf swarm trades are placed."""
    id: str
    name: str
    balance_usd: float = 0.0
    total_trades: int = 0


class Debate(BaseModel):
    id: str
    symbol: str
    trigger_reason: str
    current_price: float
    price_change_24h: float = 0.0
    volume_24h: float = 0.0
    market_data: dict[str, Any] = Field(default_factory=dict)
    status: DebateStatus = DebateStatus.IN_PROGRESS
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    duration: Optional[int] = None  # seconds
    consensus_reached: bool = False
    final_decision: Optional[Recommendation] = None
    confidence: Optional[float] = None
    error: Optional[str] = None


class AgentReasoning(BaseModel):
    """Structured reasoning attached to each agent message."""
    key_points: list[str] = Field(default_factory=list)
    data_support: str = ""
    concerns: str = ""
    error: Optional[str] = None
    raw_response: Optional[str] = None


class AgentAnalysis(BaseModel):
    """One agent's opinion on a debate, before it is persisted."""
    agent_id: str
    agent_name: str
    role: SwarmRole
    message: str
    sentiment: Sentiment = Sentiment.NEUTRAL
    confidence: float = Field(default=0.0, ge=0.0, le=100.0)
    recommendation: Recommendation = Recommendation.PASS
    reasoning: AgentReasoning = Field(default_factory=AgentReasoning)
    suggested_price: Optional[float] = None
    suggested_size: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    source: str = "parsed"  # parsed | keyword | error
    latency_ms: float = 0.0


class DebateMessage(BaseModel):
    id: Optional[int] = None
    debate_id: str
    agent_id: str
    message: str
    sentiment: Sentiment
    confidence: float = Field(ge=0.0, le=100.0)
    recommendation: Recommendation
    reasoning: AgentReasoning = Field(default_factory=AgentReasoning)
    suggested_price: Optional[float] = None
    suggested_size: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def from_analysis(cls, debate_id: str, analysis: AgentAnalysis) -> "DebateMessage":
        return cls(
            debate_id=debate_id,
            agent_id=analysis.agent_id,
            message=analysis.message,
            sentiment=analysis.sentiment,
            confidence=analysis.confidence,
            recommendation=analysis.recommendation,
            reasoning=analysis.reasoning,
            suggested_price=analysis.suggested_price,
            suggested_size=analysis.suggested_size,
            stop_loss=analysis.stop_loss,
            take_profit=analysis.take_profit,
        )


class Vote(BaseModel):
    id: Optional[int] = None
    debate_id: str
    agent_id: str
    decision: Recommendation
    confidence: float = Field(ge=0.0, le=100.0)
    weight: float = Field(ge=0.0)
    reasoning: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ConsensusResult(BaseModel):
    """Output of the consensus calculator."""
    action: Recommendation
    confidence: float
    total_votes: int
    total_weight: float
    buy_votes: int = 0
    sell_votes: int = 0
    hold_votes: int = 0
    pass_votes: int = 0
    buy_score: float = 0.0
    sell_score: float = 0.0
    hold_score: float = 0.0
    pass_score: float = 0.0
    suggested_price: Optional[float] = None
    suggested_size: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None


class Decision(ConsensusResult):
    """Persisted consensus outcome of a completed debate."""
    id: Optional[int] = None
    debate_id: str
    executed: bool = False
    executed_at: Optional[datetime] = None
    execution_started_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class VenueSelection(BaseModel):
    venue: Venue
    reason: str
    chain: Optional[str] = None
    leverage: Optional[int] = None


class ExecutionResult(BaseModel):
    """Uniform result of any venue execution protocol."""
    success: bool
    venue: Venue
    tx_ref: Optional[str] = None
    executed_price: Optional[float] = None
    executed_quantity: Optional[float] = None
    usd_amount: float = 0.0
    block_number: Optional[int] = None
    is_real: bool = False
    error: Optional[str] = None


class Trade(BaseModel):
    """Persisted execution record, kept for audit even when cancelled."""
    id: Optional[int] = None
    agent_id: str
    symbol: str
    venue: Venue
    trade_type: TradeType
    side: Recommendation
    quantity: float = 0.0
    entry_price: float
    usd_value: float = 0.0
    status: TradeStatus
    tx_ref: Optional[str] = None
    debate_id: str
    decision_id: int
    confidence: Optional[float] = None
    leverage: Optional[int] = None
    error_message: Optional[str] = None
    is_real: bool = False
    opened_at: datetime = Field(default_factory=datetime.utcnow)
    closed_at: Optional[datetime] = None


class DebateDetail(BaseModel):
    """Read model for dashboards: a debate with everything it produced."""
    debate: Debate
    messages: list[DebateMessage] = Field(default_factory=list)
    votes: list[Vote] = Field(default_factory=list)
    decision: Optional[Decision] = None
    trades: list[Trade] = Field(default_factory=list)
