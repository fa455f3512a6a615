"""Domain values for matches, predictions, results and standings.

Every value validates itself on construction, so the scorer, the standings
aggregator and the prediction engine can assume well-formed inputs.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

MAX_PREDICTED_GOALS = 99

# Signal categories a bot can weight. home_advantage needs no provider.
WEIGHT_CATEGORIES = (
    "form",
    "defensive_form",
    "xg",
    "xg_against",
    "odds",
    "injuries",
    "elo",
    "home_advantage",
)


class MatchStatus(str, Enum):
    """Lifecycle of a fixture as delivered by the match feed."""
    SCHEDULED = "scheduled"
    IN_PLAY = "in_play"
    FINISHED = "finished"
    POSTPONED = "postponed"
    CANCELLED = "cancelled"


class Outcome(str, Enum):
    """Match result from the home side's point of view."""
    HOME_WIN = "home_win"
    DRAW = "draw"
    AWAY_WIN = "away_win"

    @classmethod
    def from_score(cls, home: int, away: int) -> "Outcome":
        if home > away:
            return cls.HOME_WIN
        if home < away:
            return cls.AWAY_WIN
        return cls.DRAW


class PredictionStyle(str, Enum):
    """How a bot turns expected goals into a scoreline."""
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    BOLD = "bold"

    @property
    def goal_range(self) -> tuple[int, int]:
        return {
            PredictionStyle.CONSERVATIVE: (0, 2),
            PredictionStyle.MODERATE: (0, 4),
            PredictionStyle.BOLD: (1, 5),
        }[self]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_goals(value: Optional[int], name: str, upper: Optional[int] = None) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise ValueError(f"{name} cannot be negative, got {value}")
    if upper is not None and value > upper:
        raise ValueError(f"{name} cannot exceed {upper}, got {value}")


@dataclass(frozen=True)
class MatchFact:
    """A fixture and, once finished, its final score."""
    external_id: str
    competition_id: str
    home_team_id: str
    away_team_id: str
    kickoff: datetime
    status: MatchStatus = MatchStatus.SCHEDULED
    home_score: Optional[int] = None
    away_score: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "status", MatchStatus(self.status))
        if self.home_team_id == self.away_team_id:
            raise ValueError(f"Match {self.external_id} has the same team on both sides")
        _check_goals(self.home_score, "home_score")
        _check_goals(self.away_score, "away_score")

        has_scores = self.home_score is not None and self.away_score is not None
        any_score = self.home_score is not None or self.away_score is not None
        if self.status == MatchStatus.FINISHED and not has_scores:
            raise ValueError(f"Finished match {self.external_id} must have both scores")
        if self.status != MatchStatus.FINISHED and any_score:
            raise ValueError(
                f"Match {self.external_id} has scores but status is {self.status.value}"
            )

    @property
    def is_finished(self) -> bool:
        return self.status == MatchStatus.FINISHED

    @property
    def outcome(self) -> Optional[Outcome]:
        if not self.is_finished:
            return None
        return Outcome.from_score(self.home_score, self.away_score)

    def involves(self, team_id: str) -> bool:
        return team_id in (self.home_team_id, self.away_team_id)

    def finish(self, home_score: int, away_score: int) -> "MatchFact":
        """Return the finished version of this fixture."""
        return replace(
            self,
            status=MatchStatus.FINISHED,
            home_score=home_score,
            away_score=away_score,
        )


@dataclass(frozen=True)
class ScoringRule:
    """League scoring constants."""
    exact_match_points: int = 3
    correct_outcome_points: int = 1

    def __post_init__(self):
        if self.exact_match_points < 0 or self.correct_outcome_points < 0:
            raise ValueError("Scoring points cannot be negative")
        if self.exact_match_points < self.correct_outcome_points:
            raise ValueError("Exact match must be worth at least a correct outcome")


@dataclass(frozen=True)
class PredictionDiagnostics:
    """How a bot prediction was produced."""
    signals_used: tuple[str, ...] = ()
    effective_weights: dict = field(default_factory=dict)
    data_quality: float = 0.0
    used_fallback: bool = False
    fallback_reason: Optional[str] = None
    expected_home_goals: float = 0.0
    expected_away_goals: float = 0.0
    volatility: float = 0.0
    outcome_probabilities: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Prediction:
    """A scoreline guess owned by one (league, participant, match) triple."""
    league_id: str
    participant_id: str
    match_id: str
    home_score: int
    away_score: int
    is_bot: bool = False
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: Optional[datetime] = None
    diagnostics: Optional[PredictionDiagnostics] = field(default=None, compare=False)

    def __post_init__(self):
        _check_goals(self.home_score, "home_score", MAX_PREDICTED_GOALS)
        _check_goals(self.away_score, "away_score", MAX_PREDICTED_GOALS)
        if self.updated_at is None:
            object.__setattr__(self, "updated_at", self.created_at)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.league_id, self.participant_id, self.match_id)

    @property
    def outcome(self) -> Outcome:
        return Outcome.from_score(self.home_score, self.away_score)

    def revise(self, home_score: int, away_score: int, at: Optional[datetime] = None) -> "Prediction":
        """Replace the guess, keeping the original creation time."""
        return replace(
            self,
            home_score=home_score,
            away_score=away_score,
            updated_at=at or _utcnow(),
        )


@dataclass(frozen=True)
class BetResult:
    """Points earned by one prediction on a finished match."""
    league_id: str
    participant_id: str
    match_id: str
    points: int
    is_exact_match: bool
    is_correct_outcome: bool
    calculated_at: datetime = field(default_factory=_utcnow, compare=False)

    def __post_init__(self):
        if self.points < 0:
            raise ValueError(f"Points earned cannot be negative, got {self.points}")
        if self.is_exact_match and not self.is_correct_outcome:
            raise ValueError("An exact match is always a correct outcome")


@dataclass(frozen=True)
class ScoredBet:
    """A BetResult tagged with the kickoff of its match, for ordering."""
    result: BetResult
    kickoff: datetime


@dataclass(frozen=True)
class StandingEntry:
    """Cumulative record of one participant in one league."""
    league_id: str
    participant_id: str
    total_points: int = 0
    bets_placed: int = 0
    exact_matches: int = 0
    correct_outcomes: int = 0
    current_streak: int = 0
    best_streak: int = 0
    last_updated: Optional[datetime] = field(default=None, compare=False)


@dataclass(frozen=True)
class BotProfile:
    """Configuration of an autonomous participant."""
    participant_id: str
    name: str
    weights: dict
    style: PredictionStyle = PredictionStyle.MODERATE
    variance: float = 0.1
    form_window: int = 5

    def __post_init__(self):
        object.__setattr__(self, "style", PredictionStyle(self.style))
        if not self.weights:
            raise ValueError(f"Bot {self.name} has no signal weights")
        unknown = set(self.weights) - set(WEIGHT_CATEGORIES)
        if unknown:
            raise ValueError(f"Bot {self.name} has unknown weight categories: {sorted(unknown)}")
        if any(w < 0 for w in self.weights.values()):
            raise ValueError(f"Bot {self.name} has negative signal weights")
        if self.variance < 0:
            raise ValueError(f"Bot {self.name} variance cannot be negative")
        if self.form_window < 1:
            raise ValueError(f"Bot {self.name} form window must be positive")

    @property
    def total_weight(self) -> float:
        return sum(self.weights.values())
