"""SQLite database via aiosqlite."""
import asyncio
import aiosqlite
import json
import logging
import os
from datetime import datetime
from enum import Enum
from typing import Optional

from shared.schemas import (
    Agent,
    AgentReasoning,
    Debate,
    DebateDetail,
    DebateMessage,
    DebateStatus,
    Decision,
    Principal,
    Recommendation,
    Trade,
    TradeStatus,
    Vote,
)
from storage.models import ALL_TABLES

logger = logging.getLogger(__name__)

DEBATE_UPDATABLE_COLUMNS = {
    "status", "completed_at", "duration", "consensus_reached",
    "final_decision", "confidence", "error",
}


class DecisionAlreadyExecuted(Exception):
    """Raised when an execution is recorded for a decision already executed."""


def _to_db(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return 1 if value else 0
    return value


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _rows(cursor, rows) -> list[dict]:
    columns = [d[0] for d in cursor.description]
    return [dict(zip(columns, row)) for row in rows]


def _debate_from_row(row: dict) -> Debate:
    return Debate(
        id=row["id"],
        symbol=row["symbol"],
        trigger_reason=row["trigger_reason"],
        current_price=row["current_price"],
        price_change_24h=row["price_change_24h"],
        volume_24h=row["volume_24h"],
        market_data=json.loads(row["market_data"] or "{}"),
        status=DebateStatus(row["status"]),
        started_at=_parse_dt(row["started_at"]),
        completed_at=_parse_dt(row["completed_at"]),
        duration=row["duration"],
        consensus_reached=bool(row["consensus_reached"]),
        final_decision=row["final_decision"],
        confidence=row["confidence"],
        error=row["error"],
    )


def _message_from_row(row: dict) -> DebateMessage:
    return DebateMessage(
        id=row["id"],
        debate_id=row["debate_id"],
        agent_id=row["agent_id"],
        message=row["message"],
        sentiment=row["sentiment"],
        confidence=row["confidence"],
        recommendation=row["recommendation"],
        reasoning=AgentReasoning.model_validate_json(row["reasoning"] or "{}"),
        suggested_price=row["suggested_price"],
        suggested_size=row["suggested_size"],
        stop_loss=row["stop_loss"],
        take_profit=row["take_profit"],
        created_at=_parse_dt(row["created_at"]),
    )


def _vote_from_row(row: dict) -> Vote:
    return Vote(
        id=row["id"],
        debate_id=row["debate_id"],
        agent_id=row["agent_id"],
        decision=row["decision"],
        confidence=row["confidence"],
        weight=row["weight"],
        reasoning=row["reasoning"] or "",
        created_at=_parse_dt(row["created_at"]),
    )


def _decision_from_row(row: dict) -> Decision:
    data = dict(row)
    data["executed"] = bool(data["executed"])
    data["executed_at"] = _parse_dt(data["executed_at"])
    data["execution_started_at"] = _parse_dt(data.get("execution_started_at"))
    data["created_at"] = _parse_dt(data["created_at"])
    return Decision(**data)


def _trade_from_row(row: dict) -> Trade:
    data = dict(row)
    data["is_real"] = bool(data["is_real"])
    data["opened_at"] = _parse_dt(data["opened_at"])
    data["closed_at"] = _parse_dt(data["closed_at"])
    return Trade(**data)


class Database:
    """Async SQLite store for agents, debates and their outcomes.

    A single connection is shared by concurrent debates. Writes go through
    ``_lock`` so one debate's commit never flushes another debate's
    half-written transaction.
    """

    def __init__(self, db_path: str = "data/swarm.db"):
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def init(self):
        """Initialize database and create tables."""
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._db = await aiosqlite.connect(self.db_path)
        await self._db.execute("PRAGMA foreign_keys = ON")
        for ddl in ALL_TABLES:
            await self._db.execute(ddl)
        await self._db.commit()
        logger.info("Database initialized", extra={"path": self.db_path})

    async def close(self):
        if self._db:
            await self._db.close()

    async def _write(self, sql: str, params: tuple = ()) -> aiosqlite.Cursor:
        async with self._lock:
            try:
                cursor = await self._db.execute(sql, params)
                await self._db.commit()
            except Exception:
                await self._db.rollback()
                raise
        return cursor

    async def _fetchall(self, sql: str, params: tuple = ()) -> list[dict]:
        cursor = await self._db.execute(sql, params)
        rows = await cursor.fetchall()
        return _rows(cursor, rows)

    async def _fetchone(self, sql: str, params: tuple = ()) -> Optional[dict]:
        rows = await self._fetchall(sql, params)
        return rows[0] if rows else None

    # --- agents -----------------------------------------------------------

    async def add_agent(self, agent: Agent):
        await self._write(
            """INSERT INTO agents (id, name, role, voting_weight, ai_backend, is_active)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                agent.id, agent.name, agent.role.value, agent.voting_weight,
                agent.ai_backend, 1 if agent.is_active else 0,
            ),
        )

    async def get_agents(self, active_only: bool = False) -> list[Agent]:
        sql = "SELECT * FROM agents"
        if active_only:
            sql += " WHERE is_active = 1"
        sql += " ORDER BY role ASC, name ASC"
        rows = await self._fetchall(sql)
        return [Agent(**{**r, "is_active": bool(r["is_active"])}) for r in rows]

    async def get_agent(self, agent_id: str) -> Optional[Agent]:
        row = await self._fetchone("SELECT * FROM agents WHERE id = ?", (agent_id,))
        if row is None:
            return None
        return Agent(**{**row, "is_active": bool(row["is_active"])})

    async def update_agent(self, agent_id: str, **fields):
        allowed = {"voting_weight", "is_active", "ai_backend", "name"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Cannot update agent columns: {sorted(unknown)}")
        assignments = ", ".join(f"{k} = ?" for k in fields)
        params = tuple(_to_db(v) for v in fields.values()) + (agent_id,)
        await self._write(f"UPDATE agents SET {assignments} WHERE id = ?", params)

    # --- principals -------------------------------------------------------

    async def add_principal(self, principal: Principal):
        await self._write(
            """INSERT INTO principals (id, name, balance_usd, total_trades)
               VALUES (?, ?, ?, ?)""",
            (principal.id, principal.name, principal.balance_usd, principal.total_trades),
        )

    async def get_principal(self, principal_id: str) -> Optional[Principal]:
        row = await self._fetchone("SELECT * FROM principals WHERE id = ?", (principal_id,))
        return Principal(**row) if row else None

    async def get_principal_by_name(self, name: str) -> Optional[Principal]:
        row = await self._fetchone("SELECT * FROM principals WHERE name = ?", (name,))
        return Principal(**row) if row else None

    # --- debates ----------------------------------------------------------

    async def create_debate(self, debate: Debate):
        await self._write(
            """INSERT INTO debates
               (id, symbol, trigger_reason, current_price, price_change_24h,
                volume_24h, market_data, status, started_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                debate.id, debate.symbol, debate.trigger_reason,
                debate.current_price, debate.price_change_24h, debate.volume_24h,
                json.dumps(debate.market_data, default=str),
                debate.status.value, debate.started_at.isoformat(),
            ),
        )

    async def update_debate(self, debate_id: str, **fields):
        """Update debate columns in place (status transitions and outcome)."""
        unknown = set(fields) - DEBATE_UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update debate columns: {sorted(unknown)}")
        assignments = ", ".join(f"{k} = ?" for k in fields)
        params = tuple(_to_db(v) for v in fields.values()) + (debate_id,)
        await self._write(f"UPDATE debates SET {assignments} WHERE id = ?", params)

    async def get_debate(self, debate_id: str) -> Optional[Debate]:
        row = await self._fetchone("SELECT * FROM debates WHERE id = ?", (debate_id,))
        return _debate_from_row(row) if row else None

    async def get_recent_debates(
        self, limit: int = 20, status: Optional[DebateStatus] = None
    ) -> list[Debate]:
        if status is not None:
            rows = await self._fetchall(
                "SELECT * FROM debates WHERE status = ? ORDER BY started_at DESC LIMIT ?",
                (_to_db(status), limit),
            )
        else:
            rows = await self._fetchall(
                "SELECT * FROM debates ORDER BY started_at DESC LIMIT ?", (limit,)
            )
        return [_debate_from_row(r) for r in rows]

    async def get_stale_debates(self) -> list[Debate]:
        """Debates left in a non-terminal state (e.g. by a crashed process)."""
        rows = await self._fetchall(
            "SELECT * FROM debates WHERE status IN (?, ?) ORDER BY started_at ASC",
            (DebateStatus.IN_PROGRESS.value, DebateStatus.VOTING.value),
        )
        return [_debate_from_row(r) for r in rows]

    # --- messages and votes -----------------------------------------------

    async def add_debate_message(self, message: DebateMessage) -> int:
        cursor = await self._write(
            """INSERT INTO debate_messages
               (debate_id, agent_id, message, sentiment, confidence,
                recommendation, reasoning, suggested_price, suggested_size,
                stop_loss, take_profit, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                message.debate_id, message.agent_id, message.message,
                message.sentiment.value, message.confidence,
                message.recommendation.value, message.reasoning.model_dump_json(),
                message.suggested_price, message.suggested_size,
                message.stop_loss, message.take_profit,
                message.created_at.isoformat(),
            ),
        )
        return cursor.lastrowid

    async def get_debate_messages(self, debate_id: str) -> list[DebateMessage]:
        rows = await self._fetchall(
            "SELECT * FROM debate_messages WHERE debate_id = ? ORDER BY created_at ASC, id ASC",
            (debate_id,),
        )
        return [_message_from_row(r) for r in rows]

    async def add_vote(self, vote: Vote) -> int:
        cursor = await self._write(
            """INSERT INTO votes
               (debate_id, agent_id, decision, confidence, weight, reasoning, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                vote.debate_id, vote.agent_id, vote.decision.value,
                vote.confidence, vote.weight, vote.reasoning,
                vote.created_at.isoformat(),
            ),
        )
        return cursor.lastrowid

    async def get_votes(self, debate_id: str) -> list[Vote]:
        rows = await self._fetchall(
            "SELECT * FROM votes WHERE debate_id = ? ORDER BY id ASC", (debate_id,)
        )
        return [_vote_from_row(r) for r in rows]

    # --- decisions and trades ---------------------------------------------

    @staticmethod
    def _decision_params(decision: Decision) -> tuple:
        return (
            decision.debate_id, decision.action.value, decision.confidence,
            decision.total_votes, decision.total_weight,
            decision.buy_votes, decision.sell_votes,
            decision.hold_votes, decision.pass_votes,
            decision.buy_score, decision.sell_score,
            decision.hold_score, decision.pass_score,
            decision.suggested_price, decision.suggested_size,
            decision.stop_loss, decision.take_profit,
            0, None, decision.created_at.isoformat(),
        )

    async def complete_debate(
        self,
        decision: Decision,
        consensus_reached: bool,
        completed_at: datetime,
        duration: int,
    ) -> int:
        """Insert the debate's Decision and mark the debate COMPLETED in one transaction."""
        async with self._lock:
            try:
                cursor = await self._db.execute(
                    """INSERT INTO decisions
                       (debate_id, action, confidence, total_votes, total_weight,
                        buy_votes, sell_votes, hold_votes, pass_votes,
                        buy_score, sell_score, hold_score, pass_score,
                        suggested_price, suggested_size, stop_loss, take_profit,
                        executed, executed_at, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    self._decision_params(decision),
                )
                decision_id = cursor.lastrowid
                await self._db.execute(
                    """UPDATE debates
                       SET status = ?, completed_at = ?, duration = ?,
                           consensus_reached = ?, final_decision = ?, confidence = ?
                       WHERE id = ?""",
                    (
                        DebateStatus.COMPLETED.value, completed_at.isoformat(), duration,
                        1 if consensus_reached else 0, decision.action.value,
                        decision.confidence, decision.debate_id,
                    ),
                )
                await self._db.commit()
            except Exception:
                await self._db.rollback()
                raise
        return decision_id

    async def get_decision(self, debate_id: str) -> Optional[Decision]:
        row = await self._fetchone("SELECT * FROM decisions WHERE debate_id = ?", (debate_id,))
        return _decision_from_row(row) if row else None

    async def get_decision_by_id(self, decision_id: int) -> Optional[Decision]:
        row = await self._fetchone("SELECT * FROM decisions WHERE id = ?", (decision_id,))
        return _decision_from_row(row) if row else None

    async def claim_execution(self, decision_id: int) -> bool:
        """Mark execution as started before any venue call.

        Returns False if the decision is already executed or claimed. A claim
        that never reaches ``record_execution`` is reported by
        ``get_interrupted_executions`` and is never retried.
        """
        cursor = await self._write(
            """UPDATE decisions SET execution_started_at = ?
               WHERE id = ? AND executed = 0 AND execution_started_at IS NULL""",
            (datetime.utcnow().isoformat(), decision_id),
        )
        return cursor.rowcount == 1

    async def _actionable_decisions(self, claimed: bool) -> list[tuple[Debate, Decision]]:
        claim_clause = "IS NOT NULL" if claimed else "IS NULL"
        rows = await self._fetchall(
            f"""SELECT d.id AS decision_id FROM decisions d
                JOIN debates b ON b.id = d.debate_id
                WHERE b.status = ? AND b.consensus_reached = 1
                  AND d.action IN (?, ?) AND d.executed = 0
                  AND d.execution_started_at {claim_clause}
                ORDER BY d.created_at ASC""",
            (
                DebateStatus.COMPLETED.value,
                Recommendation.BUY.value, Recommendation.SELL.value,
            ),
        )
        pending = []
        for row in rows:
            decision = await self.get_decision_by_id(row["decision_id"])
            debate = await self.get_debate(decision.debate_id)
            pending.append((debate, decision))
        return pending

    async def get_unexecuted_decisions(self) -> list[tuple[Debate, Decision]]:
        """Completed, actionable decisions whose execution never started."""
        return await self._actionable_decisions(claimed=False)

    async def get_interrupted_executions(self) -> list[tuple[Debate, Decision]]:
        """Decisions claimed for execution whose outcome was never recorded."""
        return await self._actionable_decisions(claimed=True)

    async def record_execution(self, decision_id: int, trade: Trade) -> int:
        """Flip the decision's executed flag and insert its trade atomically.

        OPEN trades also debit the principal by the trade's USD value. Raises
        DecisionAlreadyExecuted if the flag was already set.
        """
        now = datetime.utcnow().isoformat()
        async with self._lock:
            try:
                cursor = await self._db.execute(
                    "UPDATE decisions SET executed = 1, executed_at = ? WHERE id = ? AND executed = 0",
                    (now, decision_id),
                )
                if cursor.rowcount != 1:
                    raise DecisionAlreadyExecuted(f"Decision {decision_id} already executed")

                cursor = await self._db.execute(
                    """INSERT INTO trades
                       (agent_id, symbol, venue, trade_type, side, quantity,
                        entry_price, usd_value, status, tx_ref, debate_id,
                        decision_id, confidence, leverage, error_message,
                        is_real, opened_at, closed_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        trade.agent_id, trade.symbol, trade.venue.value,
                        trade.trade_type.value, trade.side.value, trade.quantity,
                        trade.entry_price, trade.usd_value, trade.status.value,
                        trade.tx_ref, trade.debate_id, decision_id,
                        trade.confidence, trade.leverage, trade.error_message,
                        1 if trade.is_real else 0, trade.opened_at.isoformat(),
                        trade.closed_at.isoformat() if trade.closed_at else None,
                    ),
                )
                trade_id = cursor.lastrowid

                if trade.status == TradeStatus.OPEN:
                    await self._db.execute(
                        """UPDATE principals
                           SET balance_usd = balance_usd - ?, total_trades = total_trades + 1
                           WHERE id = ?""",
                        (trade.usd_value, trade.agent_id),
                    )
                await self._db.commit()
            except Exception:
                await self._db.rollback()
                raise
        return trade_id

    async def get_trades(self, debate_id: Optional[str] = None, limit: int = 50) -> list[Trade]:
        if debate_id is not None:
            rows = await self._fetchall(
                "SELECT * FROM trades WHERE debate_id = ? ORDER BY opened_at DESC", (debate_id,)
            )
        else:
            rows = await self._fetchall(
                "SELECT * FROM trades ORDER BY opened_at DESC LIMIT ?", (limit,)
            )
        return [_trade_from_row(r) for r in rows]

    # --- read models ------------------------------------------------------

    async def get_debate_detail(self, debate_id: str) -> Optional[DebateDetail]:
        debate = await self.get_debate(debate_id)
        if debate is None:
            return None
        return DebateDetail(
            debate=debate,
            messages=await self.get_debate_messages(debate_id),
            votes=await self.get_votes(debate_id),
            decision=await self.get_decision(debate_id),
            trades=await self.get_trades(debate_id),
        )

    async def get_debate_stats(self) -> dict:
        """Aggregate debate/decision counts for status reporting."""
        counts = await self._fetchone(
            """SELECT
                 COUNT(*) AS total_debates,
                 SUM(CASE WHEN status = 'COMPLETED' THEN 1 ELSE 0 END) AS completed_debates,
                 SUM(CASE WHEN status IN ('IN_PROGRESS', 'VOTING') THEN 1 ELSE 0 END) AS active_debates,
                 SUM(CASE WHEN status = 'CANCELLED' THEN 1 ELSE 0 END) AS cancelled_debates
               FROM debates"""
        )
        decisions = await self._fetchone(
            """SELECT
                 COUNT(*) AS total_decisions,
                 SUM(CASE WHEN executed = 1 THEN 1 ELSE 0 END) AS executed_decisions
               FROM decisions"""
        )
        breakdown_rows = await self._fetchall(
            "SELECT action, COUNT(*) AS n FROM decisions GROUP BY action"
        )
        recent = await self._fetchall(
            """SELECT id, symbol, final_decision, confidence, completed_at FROM debates
               WHERE status = 'COMPLETED' AND consensus_reached = 1
               ORDER BY completed_at DESC LIMIT 5"""
        )

        total = counts["total_debates"] or 0
        completed = counts["completed_debates"] or 0
        return {
            "total_debates": total,
            "completed_debates": completed,
            "active_debates": counts["active_debates"] or 0,
            "cancelled_debates": counts["cancelled_debates"] or 0,
            "total_decisions": decisions["total_decisions"] or 0,
            "executed_decisions": decisions["executed_decisions"] or 0,
            "decision_breakdown": {r["action"]: r["n"] for r in breakdown_rows},
            "completion_rate": (completed / total * 100) if total > 0 else 0.0,
            "recent_successful": recent,
        }
