"""Scoring, standings, form and scoreline models."""
from scoreline.models.bet_scorer import score_bet
from scoreline.models.entities import (
    BetResult,
    BotProfile,
    MatchFact,
    MatchStatus,
    Outcome,
    Prediction,
    PredictionDiagnostics,
    PredictionStyle,
    ScoredBet,
    ScoringRule,
    StandingEntry,
)
from scoreline.models.form_aggregator import FormAggregator, TeamForm, form_aggregator
from scoreline.models.poisson_matrix import PoissonCalculator, PoissonResult, poisson_calc
from scoreline.models.standings import (
    RankedStanding,
    aggregate_standings,
    compute_streaks,
    rank_standings,
)

__all__ = [
    "score_bet",
    "BetResult",
    "BotProfile",
    "MatchFact",
    "MatchStatus",
    "Outcome",
    "Prediction",
    "PredictionDiagnostics",
    "PredictionStyle",
    "ScoredBet",
    "ScoringRule",
    "StandingEntry",
    "FormAggregator",
    "TeamForm",
    "form_aggregator",
    "PoissonCalculator",
    "PoissonResult",
    "poisson_calc",
    "RankedStanding",
    "aggregate_standings",
    "compute_streaks",
    "rank_standings",
]
