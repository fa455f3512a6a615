"""Score a placed prediction against a finished match."""
from datetime import datetime
from typing import Optional

from scoreline.exceptions import PreconditionError
from scoreline.models.entities import BetResult, MatchFact, Prediction, ScoringRule


def score_bet(
    prediction: Prediction,
    match: MatchFact,
    rule: ScoringRule,
    calculated_at: Optional[datetime] = None,
) -> BetResult:
    """Calculate the points a prediction earned.

    Exact score earns the exact-match points (and counts as a correct
    outcome); the right home win / draw / away win earns the correct-outcome
    points; anything else earns nothing.

    Raises:
        PreconditionError: match is not finished or has no final score
    """
    if not match.is_finished or match.home_score is None or match.away_score is None:
        raise PreconditionError(
            f"Cannot score prediction on match {match.external_id}: status is {match.status.value}"
        )
    if prediction.match_id != match.external_id:
        raise PreconditionError(
            f"Prediction for match {prediction.match_id} scored against {match.external_id}"
        )

    is_exact = (
        prediction.home_score == match.home_score
        and prediction.away_score == match.away_score
    )
    is_correct = is_exact or prediction.outcome == match.outcome

    if is_exact:
        points = rule.exact_match_points
    elif is_correct:
        points = rule.correct_outcome_points
    else:
        points = 0

    kwargs = {"calculated_at": calculated_at} if calculated_at else {}
    return BetResult(
        league_id=prediction.league_id,
        participant_id=prediction.participant_id,
        match_id=prediction.match_id,
        points=points,
        is_exact_match=is_exact,
        is_correct_outcome=is_correct,
        **kwargs,
    )
