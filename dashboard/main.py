"""FastAPI dashboard API for inspecting and starting swarm debates."""
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from shared.schemas import DebateDetail, DebateStatus, MarketOpportunity
from swarm.orchestrator import DebateOrchestrator

app = FastAPI(title="Swarm Trader Dashboard")

# Shared orchestrator instance (set by swarm_agent.py)
_orchestrator: DebateOrchestrator | None = None
_mode: str = "paper"


class InitiateDebateRequest(BaseModel):
    symbol: str = Field(min_length=1)
    current_price: float = Field(gt=0)
    trigger_reason: str = Field(min_length=1)
    price_change_24h: float = 0.0
    volume_24h: float = 0.0
    market_data: dict[str, Any] = Field(default_factory=dict)


def set_orchestrator(orchestrator: DebateOrchestrator, mode: str = "paper"):
    global _orchestrator, _mode
    _orchestrator = orchestrator
    _mode = mode


def _get_orchestrator() -> DebateOrchestrator:
    if _orchestrator is None:
        raise RuntimeError("Orchestrator not initialized")
    return _orchestrator


@app.post("/api/debates", status_code=202)
async def api_initiate_debate(request: InitiateDebateRequest):
    orchestrator = _get_orchestrator()
    debate_id = await orchestrator.initiate(MarketOpportunity(**request.model_dump()))
    return {"debate_id": debate_id, "status": DebateStatus.IN_PROGRESS.value}


@app.get("/api/debates")
async def api_debates(
    limit: int = Query(20, ge=1, le=200),
    status: Optional[DebateStatus] = None,
):
    orchestrator = _get_orchestrator()
    debates = await orchestrator.get_recent_debates(limit=limit, status=status)
    return {"debates": debates}


@app.get("/api/debates/{debate_id}", response_model=DebateDetail)
async def api_debate(debate_id: str):
    orchestrator = _get_orchestrator()
    detail = await orchestrator.get_debate(debate_id)
    if detail is None:
        raise HTTPException(status_code=404, detail="Debate not found")
    return detail


@app.get("/api/stats")
async def api_stats():
    orchestrator = _get_orchestrator()
    return await orchestrator.get_stats()


@app.get("/api/status")
async def api_status():
    orchestrator = _get_orchestrator()
    principal = await orchestrator.db.get_principal(orchestrator.principal_id)
    return {
        "status": "running",
        "mode": _mode,
        "running_debates": len(orchestrator.active_debates),
        "principal": principal,
    }
