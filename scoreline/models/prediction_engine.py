"""Blend signal snapshots into a bot's scoreline prediction.

Signals are turned into per-category expected-goal estimates, weighted by
the bot's profile after removing whatever is missing, stale or unhealthy,
and mapped to an integer scoreline by the bot's style.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from scoreline.config.settings import settings
from scoreline.fetchers import CollectedSignals, ProviderSignals, SignalCollector
from scoreline.fetchers.base import SignalScope
from scoreline.models.entities import (
    BotProfile,
    MatchFact,
    Prediction,
    PredictionDiagnostics,
    PredictionStyle,
)
from scoreline.models.form_aggregator import LEAGUE_AVERAGE_GOALS, NEUTRAL_FORM_SCORE
from scoreline.models.poisson_matrix import PoissonCalculator, poisson_calc
from scoreline.services.events import PREDICTION_FALLBACK, SIGNAL_LOST, Outbox
from scoreline.services.integration_health import IntegrationHealth

logger = logging.getLogger(__name__)

# Expected goals with no information at all
BASELINE_HOME_GOALS = 1.5
BASELINE_AWAY_GOALS = 1.2

HOME_FACTOR = BASELINE_HOME_GOALS / LEAGUE_AVERAGE_GOALS
AWAY_FACTOR = BASELINE_AWAY_GOALS / LEAGUE_AVERAGE_GOALS

EDGE_SCALE = 0.7  # log-ratio of expected goals per unit of strength edge
INJURY_ATTACK_LOSS = 0.30
INJURY_DEFENCE_LOSS = 0.15
HOME_ADVANTAGE_BOOST = 0.15
AWAY_DISADVANTAGE = 0.10
ELO_SCALE = 400.0  # rating gap worth a full unit of strength edge
MIN_LAMBDA = 0.05

NEUTRAL_SCORE = (1, 1)

# Categories computed from the fixture itself, always usable
INTRINSIC_CATEGORIES = ("home_advantage",)


@dataclass(frozen=True)
class CategoryEstimate:
    """Expected goals implied by one signal category."""
    category: str
    home_lambda: float
    away_lambda: float
    confidence: float


@dataclass(frozen=True)
class Usability:
    """Whether a category can be used, and at what discount."""
    usable: bool
    factor: float = 0.0
    reason: Optional[str] = None


def _edge_lambdas(edge: float) -> tuple[float, float]:
    """Shift the baseline toward the side a strength edge in [-1, 1] favours."""
    return (
        BASELINE_HOME_GOALS * math.exp(EDGE_SCALE * edge),
        BASELINE_AWAY_GOALS * math.exp(-EDGE_SCALE * edge),
    )


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _shrink(value: float, baseline: float, confidence: float) -> float:
    return baseline + confidence * (value - baseline)


def category_lambdas(category: str, home, away, match_snapshot) -> tuple[float, float]:
    """Expected goals (home, away) implied by a category's snapshots.

    Team-scoped categories read the home and away team snapshots,
    match-scoped ones read the single match snapshot.
    """
    if category == "form":
        edge = (home.get("form_score", NEUTRAL_FORM_SCORE) - away.get("form_score", NEUTRAL_FORM_SCORE)) / 100
        return _edge_lambdas(edge)

    if category == "defensive_form":
        return (
            away.get("goals_conceded_per_match", LEAGUE_AVERAGE_GOALS) * HOME_FACTOR,
            home.get("goals_conceded_per_match", LEAGUE_AVERAGE_GOALS) * AWAY_FACTOR,
        )

    if category == "xg":
        return (
            home.get("xg_per_match", LEAGUE_AVERAGE_GOALS) * HOME_FACTOR,
            away.get("xg_per_match", LEAGUE_AVERAGE_GOALS) * AWAY_FACTOR,
        )

    if category == "xg_against":
        return (
            away.get("xga_per_match", LEAGUE_AVERAGE_GOALS) * HOME_FACTOR,
            home.get("xga_per_match", LEAGUE_AVERAGE_GOALS) * AWAY_FACTOR,
        )

    if category == "odds":
        edge = match_snapshot.get("home_win") - match_snapshot.get("away_win")
        return _edge_lambdas(edge)

    if category == "elo":
        edge = (home.get("elo") - away.get("elo")) / ELO_SCALE
        return _edge_lambdas(max(-1.0, min(1.0, edge)))

    if category == "home_advantage":
        return (
            LEAGUE_AVERAGE_GOALS * (1 + HOME_ADVANTAGE_BOOST),
            LEAGUE_AVERAGE_GOALS * (1 - AWAY_DISADVANTAGE),
        )

    if category == "injuries":
        home_impact = home.get("impact") / 100
        away_impact = away.get("impact") / 100
        return (
            BASELINE_HOME_GOALS * (1 - INJURY_ATTACK_LOSS * home_impact) * (1 + INJURY_DEFENCE_LOSS * away_impact),
            BASELINE_AWAY_GOALS * (1 - INJURY_ATTACK_LOSS * away_impact) * (1 + INJURY_DEFENCE_LOSS * home_impact),
        )

    raise ValueError(f"Unknown signal category: {category}")


class PredictionEngine:
    """Weighted blend with redistribution and explicit fallback."""

    def __init__(
        self,
        collector: Optional[SignalCollector] = None,
        calculator: Optional[PoissonCalculator] = None,
        outbox: Optional[Outbox] = None,
        data_quality_floor: Optional[float] = None,
        degraded_weight_factor: Optional[float] = None,
        tie_margin: Optional[float] = None,
    ):
        cfg = settings.engine
        self._collector = collector
        self.calculator = calculator or poisson_calc
        self.outbox = outbox if outbox is not None else Outbox()
        self.data_quality_floor = cfg.data_quality_floor if data_quality_floor is None else data_quality_floor
        self.degraded_weight_factor = (
            cfg.degraded_weight_factor if degraded_weight_factor is None else degraded_weight_factor
        )
        self.tie_margin = cfg.tie_margin if tie_margin is None else tie_margin

    @property
    def collector(self) -> SignalCollector:
        """Lazy initialization of the collector."""
        if self._collector is None:
            self._collector = SignalCollector()
        return self._collector

    async def predict(
        self,
        profile: BotProfile,
        match: MatchFact,
        league_id: Optional[str] = None,
        as_of: Optional[datetime] = None,
    ) -> Prediction:
        """Collect signals for the match and produce the bot's prediction."""
        signals = await self.collector.collect(match, as_of, window=profile.form_window)
        return self.blend(profile, match, signals, league_id=league_id)

    # --- usability -------------------------------------------------------

    def _required_subjects(self, source: ProviderSignals, match: MatchFact) -> list[str]:
        if source.scope == SignalScope.MATCH:
            return [match.external_id]
        return [match.home_team_id, match.away_team_id]

    def assess(self, category: str, signals: CollectedSignals) -> Usability:
        """Decide whether a category's signal can be trusted right now."""
        if category in INTRINSIC_CATEGORIES:
            return Usability(True, factor=1.0)

        source = signals.for_category(category)
        if source is None:
            return Usability(False, reason="no provider")

        status = source.status
        if status.is_manually_disabled or status.health in (IntegrationHealth.FAILED, IntegrationHealth.DISABLED):
            return Usability(False, reason=f"{source.provider} is {status.health.value}")
        if status.is_stale(signals.as_of):
            return Usability(False, reason=f"{source.provider} data is stale")

        for subject_id in self._required_subjects(source, signals.match):
            snapshot = source.snapshot_for(subject_id)
            if snapshot is None:
                return Usability(False, reason=source.reason or f"no {source.provider} data for {subject_id}")
            if signals.as_of - snapshot.computed_at > status.stale_threshold:
                return Usability(False, reason=f"{source.provider} snapshot for {subject_id} is stale")

        factor = self.degraded_weight_factor if status.health == IntegrationHealth.DEGRADED else 1.0
        return Usability(True, factor=factor)

    def effective_weights(self, weights: dict, usability: dict) -> tuple[dict, float]:
        """Redistribute unusable and discounted weight across usable categories.

        Returns:
            (effective weights summing to the configured total, data quality)
        """
        total = sum(weights.values())
        usable_mass = {
            category: weight * usability[category].factor
            for category, weight in weights.items()
            if weight > 0 and usability[category].usable
        }
        usable_total = sum(usable_mass.values())

        if total <= 0 or usable_total <= 0:
            return {}, 0.0

        scale = total / usable_total
        effective = {category: mass * scale for category, mass in usable_mass.items()}
        quality = max(0.0, min(1.0, usable_total / total))
        return effective, quality

    # --- estimation ------------------------------------------------------

    def estimate(self, category: str, signals: CollectedSignals) -> CategoryEstimate:
        if category in INTRINSIC_CATEGORIES:
            home_lambda, away_lambda = category_lambdas(category, None, None, None)
            return CategoryEstimate(category, home_lambda, away_lambda, 1.0)

        source = signals.for_category(category)
        match = signals.match
        if source.scope == SignalScope.MATCH:
            snapshot = source.snapshot_for(match.external_id)
            home_lambda, away_lambda = category_lambdas(category, None, None, snapshot)
            confidence = snapshot.confidence
        else:
            home = source.snapshot_for(match.home_team_id)
            away = source.snapshot_for(match.away_team_id)
            home_lambda, away_lambda = category_lambdas(category, home, away, None)
            confidence = min(home.confidence, away.confidence)

        return CategoryEstimate(
            category=category,
            home_lambda=_shrink(home_lambda, BASELINE_HOME_GOALS, confidence),
            away_lambda=_shrink(away_lambda, BASELINE_AWAY_GOALS, confidence),
            confidence=confidence,
        )

    @staticmethod
    def combine(estimates: list[CategoryEstimate], weights: dict) -> tuple[float, float, float]:
        """Weighted expected goals plus the weighted disagreement between categories."""
        total = sum(weights[e.category] for e in estimates)
        home = sum(weights[e.category] * e.home_lambda for e in estimates) / total
        away = sum(weights[e.category] * e.away_lambda for e in estimates) / total
        spread = sum(
            weights[e.category] * ((e.home_lambda - home) ** 2 + (e.away_lambda - away) ** 2)
            for e in estimates
        ) / total
        return home, away, math.sqrt(spread)

    # --- scoreline -------------------------------------------------------

    @staticmethod
    def apply_style(home_lambda: float, away_lambda: float, profile: BotProfile) -> tuple[float, float]:
        """Stretch or shrink the goal differential according to the bot's temperament."""
        mean = (home_lambda + away_lambda) / 2
        diff = home_lambda - away_lambda
        if profile.style == PredictionStyle.BOLD:
            diff *= 1 + profile.variance
        elif profile.style == PredictionStyle.CONSERVATIVE:
            diff *= max(0.0, 1 - profile.variance)
        return max(MIN_LAMBDA, mean + diff / 2), max(MIN_LAMBDA, mean - diff / 2)

    def to_scoreline(
        self,
        home_lambda: float,
        away_lambda: float,
        style: PredictionStyle,
        volatility: float = 0.0,
    ) -> tuple[int, int]:
        """Deterministic rounding of expected goals into a scoreline."""
        if style == PredictionStyle.CONSERVATIVE:
            round_goals = math.floor
        elif style == PredictionStyle.BOLD:
            round_goals = math.ceil
        else:
            round_goals = _round_half_up

        low, high = style.goal_range
        home = min(high, max(low, int(round_goals(home_lambda))))
        away = min(high, max(low, int(round_goals(away_lambda))))

        gap = home_lambda - away_lambda
        if style == PredictionStyle.CONSERVATIVE and abs(gap) < self.tie_margin + volatility:
            # Low confidence: settle narrow leans as a draw
            home = away = min(home, away)
        elif style == PredictionStyle.BOLD and home == away and abs(gap) >= self.tie_margin:
            # High confidence: break the draw toward the favoured side
            if gap > 0:
                home, away = (home + 1, away) if home < high else (home, away - 1)
            else:
                home, away = (home, away + 1) if away < high else (home - 1, away)

        return home, away

    # --- orchestration ---------------------------------------------------

    def blend(
        self,
        profile: BotProfile,
        match: MatchFact,
        signals: CollectedSignals,
        league_id: Optional[str] = None,
    ) -> Prediction:
        """Produce a prediction from already-collected signals.

        Never raises for missing signals. Below the data quality floor the
        bot predicts from form alone, or a neutral 1-1 when form is unusable
        too.
        """
        weights = {c: float(w) for c, w in profile.weights.items()}
        categories = set(weights) | {"form"}
        usability = {c: self.assess(c, signals) for c in categories}

        lost = {
            c: usability[c].reason
            for c, w in weights.items()
            if w > 0 and not usability[c].usable
        }
        for category, reason in sorted(lost.items()):
            logger.info(f"{profile.name}: {category} signal unusable for {match.external_id} ({reason})")
            self.outbox.append(SIGNAL_LOST, {
                "participant_id": profile.participant_id,
                "match_id": match.external_id,
                "category": category,
                "reason": reason,
            })

        effective, quality = self.effective_weights(weights, usability)
        form_usable = usability["form"].usable

        fallback_reason = None
        if quality < self.data_quality_floor:
            fallback_reason = f"data quality {quality:.2f} below floor {self.data_quality_floor:.2f}"

        if fallback_reason:
            if form_usable:
                effective = {"form": profile.total_weight or 1.0}
            else:
                effective = {}
            logger.warning(
                f"{profile.name}: falling back to "
                f"{'pure-form' if effective else 'neutral'} prediction for {match.external_id}: "
                f"{fallback_reason}"
            )
            self.outbox.append(PREDICTION_FALLBACK, {
                "participant_id": profile.participant_id,
                "match_id": match.external_id,
                "strategy": "pure_form" if effective else "neutral",
                "reason": fallback_reason,
                "data_quality": quality,
            })

        if effective:
            estimates = [self.estimate(c, signals) for c in sorted(effective)]
            home_lambda, away_lambda, volatility = self.combine(estimates, effective)
            home_lambda, away_lambda = self.apply_style(home_lambda, away_lambda, profile)
            home_score, away_score = self.to_scoreline(home_lambda, away_lambda, profile.style, volatility)
        else:
            home_lambda, away_lambda, volatility = BASELINE_HOME_GOALS, BASELINE_AWAY_GOALS, 0.0
            home_score, away_score = NEUTRAL_SCORE

        result = self.calculator.calculate(home_lambda, away_lambda)

        diagnostics = PredictionDiagnostics(
            signals_used=tuple(sorted(effective)),
            effective_weights=effective,
            data_quality=quality,
            used_fallback=fallback_reason is not None,
            fallback_reason=fallback_reason,
            expected_home_goals=home_lambda,
            expected_away_goals=away_lambda,
            volatility=volatility,
            outcome_probabilities=result.outcome_probabilities,
        )

        logger.info(
            f"{profile.name} predicts {match.home_team_id} {home_score}-{away_score} {match.away_team_id} "
            f"(quality={quality:.2f}, signals={','.join(diagnostics.signals_used) or 'none'})"
        )

        return Prediction(
            league_id=league_id or match.competition_id,
            participant_id=profile.participant_id,
            match_id=match.external_id,
            home_score=home_score,
            away_score=away_score,
            is_bot=True,
            created_at=signals.as_of,
            diagnostics=diagnostics,
        )


# Singleton instance
_engine: Optional[PredictionEngine] = None


def get_prediction_engine() -> PredictionEngine:
    """Get prediction engine singleton."""
    global _engine
    if _engine is None:
        _engine = PredictionEngine()
    return _engine
