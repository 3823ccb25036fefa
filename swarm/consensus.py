"""Weighted consensus over swarm votes.

Everything here is pure: no I/O, no clock, no randomness. Given the same
votes and messages the result is always identical.
"""
from typing import Iterable, Optional

from shared.schemas import ConsensusResult, DebateMessage, Recommendation, Vote

# Tie-break order: the first action reaching the max score wins
ACTION_ORDER = (
    Recommendation.BUY,
    Recommendation.SELL,
    Recommendation.HOLD,
    Recommendation.PASS,
)

TRADE_PARAMETERS = ("suggested_price", "suggested_size", "stop_loss", "take_profit")

# Decimal places kept on confidence; float sums drift below exact percentages
CONFIDENCE_DIGITS = 6


class AggregationError(ValueError):
    """Votes cannot be aggregated (no votes, or no voting weight)."""


def _mean(values: list[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def tally(votes: Iterable[Vote]) -> tuple[dict, dict, float]:
    """Return (scores, counts, total_weight) keyed by Recommendation."""
    scores = {action: 0.0 for action in ACTION_ORDER}
    counts = {action: 0 for action in ACTION_ORDER}
    total_weight = 0.0
    for vote in votes:
        scores[vote.decision] += (vote.confidence / 100.0) * vote.weight
        counts[vote.decision] += 1
        total_weight += vote.weight
    return scores, counts, total_weight


def winning_action(scores: dict) -> Recommendation:
    best = ACTION_ORDER[0]
    for action in ACTION_ORDER[1:]:
        if scores[action] > scores[best]:
            best = action
    return best


def average_trade_parameters(
    action: Recommendation,
    votes: Iterable[Vote],
    messages: Iterable[DebateMessage],
) -> dict:
    """Mean of each trade parameter over messages from agents that voted ``action``.

    Absent values are ignored; a parameter nobody supplied stays None.
    """
    winners = {v.agent_id for v in votes if v.decision == action}
    matching = [m for m in messages if m.agent_id in winners]
    averages = {}
    for field in TRADE_PARAMETERS:
        values = [getattr(m, field) for m in matching if getattr(m, field) is not None]
        averages[field] = _mean(values)
    return averages


def calculate_consensus(
    votes: list[Vote], messages: Optional[list[DebateMessage]] = None
) -> ConsensusResult:
    """Reduce a debate's votes to one action with a normalized confidence.

    confidence = score[winner] / total_weight * 100, where an action's score
    is the sum of confidence/100 * weight over the votes for it.
    """
    if not votes:
        raise AggregationError("No votes to aggregate")

    scores, counts, total_weight = tally(votes)
    if total_weight <= 0:
        raise AggregationError("Total voting weight is zero")

    action = winning_action(scores)
    confidence = round(scores[action] / total_weight * 100.0, CONFIDENCE_DIGITS)
    averages = average_trade_parameters(action, votes, messages or [])

    return ConsensusResult(
        action=action,
        confidence=confidence,
        total_votes=len(votes),
        total_weight=total_weight,
        buy_votes=counts[Recommendation.BUY],
        sell_votes=counts[Recommendation.SELL],
        hold_votes=counts[Recommendation.HOLD],
        pass_votes=counts[Recommendation.PASS],
        buy_score=scores[Recommendation.BUY],
        sell_score=scores[Recommendation.SELL],
        hold_score=scores[Recommendation.HOLD],
        pass_score=scores[Recommendation.PASS],
        **averages,
    )


def is_consensus(confidence: float, threshold: float = 60.0) -> bool:
    return round(confidence, CONFIDENCE_DIGITS) >= threshold
