"""Operations exposed to the league, bet and bot services."""
import logging
from typing import Optional

from scoreline.models import bet_scorer
from scoreline.models.entities import (
    BetResult,
    BotProfile,
    MatchFact,
    Prediction,
    ScoringRule,
    StandingEntry,
)
from scoreline.services.integration_health import IntegrationStatus, get_health_monitor

logger = logging.getLogger(__name__)

__all__ = ["score_bet", "recompute_standings", "predict", "provider_health"]


def score_bet(prediction: Prediction, finished_match: MatchFact, scoring_rule: ScoringRule) -> BetResult:
    """Points a placed prediction earned on a finished match."""
    return bet_scorer.score_bet(prediction, finished_match, scoring_rule)


def recompute_standings(league_id: str, pipeline=None) -> list[StandingEntry]:
    """Rebuild and persist a league's standings from its bet results."""
    if pipeline is None:
        from scoreline.services.results_pipeline import get_results_pipeline

        pipeline = get_results_pipeline()
    return pipeline.recompute_standings(league_id)


async def predict(
    bot_profile: BotProfile,
    upcoming_match: MatchFact,
    league_id: Optional[str] = None,
    engine=None,
) -> Prediction:
    """A bot's prediction for an upcoming match, with diagnostics attached."""
    if engine is None:
        from scoreline.models.prediction_engine import get_prediction_engine

        engine = get_prediction_engine()
    return await engine.predict(bot_profile, upcoming_match, league_id=league_id)


def provider_health(provider_name: str) -> IntegrationStatus:
    """Current health of a signal provider."""
    return get_health_monitor().status(provider_name)
