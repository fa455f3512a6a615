"""Tests for the prediction engine's blending, redistribution and fallback."""
import pytest
from datetime import datetime, timedelta, timezone

from scoreline.fetchers import CollectedSignals, FormSignalProvider, ProviderSignals, SignalCollector
from scoreline.fetchers.base import SignalProvider, SignalScope, SignalSnapshot
from scoreline.models.entities import BotProfile, MatchFact, PredictionStyle
from scoreline.models.form_aggregator import FormAggregator
from scoreline.models.prediction_engine import (
    BASELINE_AWAY_GOALS,
    BASELINE_HOME_GOALS,
    CategoryEstimate,
    PredictionEngine,
    Usability,
    category_lambdas,
)
from scoreline.services.events import PREDICTION_FALLBACK, SIGNAL_LOST, Outbox
from scoreline.services.integration_health import (
    IntegrationHealth,
    IntegrationHealthMonitor,
    IntegrationStatus,
    apply_disable,
    apply_success,
)

AS_OF = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
MATCH = MatchFact("m1", "EPL", "Arsenal", "Chelsea", AS_OF + timedelta(hours=3))


def _healthy(name, synced_at=AS_OF, stale_hours=48):
    return apply_success(IntegrationStatus(name, stale_threshold=timedelta(hours=stale_hours)), synced_at)


def _team_source(provider, categories, status, home_payload, away_payload, computed_at=AS_OF, confidence=1.0):
    return ProviderSignals(
        provider=provider,
        scope=SignalScope.TEAM,
        categories=categories,
        status=status,
        snapshots={
            "Arsenal": SignalSnapshot(provider, "Arsenal", home_payload, confidence, computed_at),
            "Chelsea": SignalSnapshot(provider, "Chelsea", away_payload, confidence, computed_at),
        },
    )


def _form_source(home_score=70.0, away_score=40.0, **kwargs):
    return _team_source(
        "form", ("form", "defensive_form"), kwargs.pop("status", _healthy("form")),
        {"form_score": home_score, "goals_conceded_per_match": 1.0},
        {"form_score": away_score, "goals_conceded_per_match": 1.6},
        **kwargs,
    )


def _xg_source(status=None, computed_at=AS_OF):
    return _team_source(
        "xg", ("xg", "xg_against"), status or _healthy("xg"),
        {"xg_per_match": 2.0, "xga_per_match": 1.0},
        {"xg_per_match": 1.2, "xga_per_match": 1.5},
        computed_at=computed_at,
    )


def _odds_source(status=None):
    return ProviderSignals(
        provider="odds",
        scope=SignalScope.MATCH,
        categories=("odds",),
        status=status or _healthy("odds", stale_hours=12),
        snapshots={"m1": SignalSnapshot("odds", "m1", {"home_win": 0.55, "draw": 0.25, "away_win": 0.20}, 1.0, AS_OF)},
    )


def _signals(*sources):
    return CollectedSignals(match=MATCH, as_of=AS_OF, providers={s.provider: s for s in sources})


def _profile(weights, style="moderate", variance=0.1):
    return BotProfile("bot-1", "Test Bot", weights, style=style, variance=variance)


@pytest.fixture
def engine():
    return PredictionEngine(
        collector=object(),
        outbox=Outbox(),
        data_quality_floor=0.5,
        degraded_weight_factor=0.75,
        tie_margin=0.35,
    )


class TestWeightRedistribution:
    """Unusable signals hand their weight to the rest."""

    def test_disabled_and_stale_signals_leave_form(self, engine):
        """odds disabled, xg stale: form carries the whole weight at half quality."""
        stale_xg = _xg_source(status=_healthy("xg", synced_at=AS_OF - timedelta(hours=72)),
                              computed_at=AS_OF - timedelta(hours=72))
        disabled_odds = _odds_source(status=apply_disable(_healthy("odds"), "quota", "ops", AS_OF))
        profile = _profile({"form": 0.5, "xg": 0.3, "odds": 0.2})

        prediction = engine.blend(profile, MATCH, _signals(_form_source(), stale_xg, disabled_odds))

        diag = prediction.diagnostics
        assert diag.effective_weights == pytest.approx({"form": 1.0})
        assert diag.data_quality == pytest.approx(0.5)
        assert diag.used_fallback is False
        assert diag.signals_used == ("form",)

        lost = sorted(e.payload["category"] for e in engine.outbox.pending if e.event_type == SIGNAL_LOST)
        assert lost == ["odds", "xg"]

    def test_effective_weights_sum_to_total(self, engine):
        weights = {"form": 0.4, "xg": 0.3, "odds": 0.2, "injuries": 0.1}
        usability = {
            "form": Usability(True, 1.0),
            "xg": Usability(True, 0.75),
            "odds": Usability(False, reason="down"),
            "injuries": Usability(True, 1.0),
        }

        effective, quality = engine.effective_weights(weights, usability)

        assert sum(effective.values()) == pytest.approx(1.0)
        assert "odds" not in effective
        assert quality == pytest.approx(0.4 + 0.225 + 0.1)
        assert effective["xg"] / effective["form"] == pytest.approx(0.225 / 0.4)

    def test_nothing_usable(self, engine):
        effective, quality = engine.effective_weights({"form": 1.0}, {"form": Usability(False)})
        assert effective == {}
        assert quality == 0.0

    def test_degraded_provider_is_discounted(self, engine):
        degraded = IntegrationStatus("xg", health=IntegrationHealth.DEGRADED, last_successful_sync=AS_OF)
        usability = engine.assess("xg", _signals(_xg_source(status=degraded)))
        assert usability.usable
        assert usability.factor == pytest.approx(0.75)

    def test_missing_snapshot_is_unusable(self, engine):
        source = _form_source()
        del source.snapshots["Chelsea"]
        assert engine.assess("form", _signals(source)).usable is False

    def test_no_provider_for_category(self, engine):
        assert engine.assess("injuries", _signals(_form_source())).reason == "no provider"


class TestFallback:
    """Low data quality never raises; it degrades the prediction."""

    def test_no_signals_predicts_neutral_draw(self, engine):
        prediction = engine.blend(_profile({"form": 0.6, "odds": 0.4}), MATCH, _signals())

        assert (prediction.home_score, prediction.away_score) == (1, 1)
        assert prediction.diagnostics.used_fallback is True
        assert prediction.diagnostics.data_quality == 0.0
        assert prediction.diagnostics.signals_used == ()
        events = [e for e in engine.outbox.pending if e.event_type == PREDICTION_FALLBACK]
        assert events[0].payload["strategy"] == "neutral"

    def test_low_quality_falls_back_to_pure_form(self, engine):
        disabled = apply_disable(_healthy("odds"), "quota", "ops", AS_OF)
        profile = _profile({"form": 0.3, "odds": 0.7})

        prediction = engine.blend(profile, MATCH, _signals(_form_source(), _odds_source(status=disabled)))

        diag = prediction.diagnostics
        assert diag.used_fallback is True
        assert diag.data_quality == pytest.approx(0.3)
        assert diag.effective_weights == pytest.approx({"form": 1.0})
        events = [e for e in engine.outbox.pending if e.event_type == PREDICTION_FALLBACK]
        assert events[0].payload["strategy"] == "pure_form"

    def test_form_not_needed_when_quality_is_good(self, engine):
        """Losing form only redistributes its weight."""
        profile = _profile({"form": 0.3, "odds": 0.7})
        disabled = apply_disable(_healthy("form"), "maintenance", "ops", AS_OF)

        prediction = engine.blend(profile, MATCH, _signals(_form_source(status=disabled), _odds_source()))

        diag = prediction.diagnostics
        assert diag.used_fallback is False
        assert diag.data_quality == pytest.approx(0.7)
        assert diag.effective_weights == pytest.approx({"odds": 1.0})
        assert prediction.home_score > prediction.away_score

    def test_profile_without_form(self, engine):
        prediction = engine.blend(_profile({"odds": 1.0}), MATCH, _signals(_odds_source()))

        assert prediction.diagnostics.used_fallback is False
        assert prediction.diagnostics.signals_used == ("odds",)


class TestBlend:
    """Full blends with every signal present."""

    def test_prediction_identity(self, engine):
        profile = _profile({"form": 0.5, "xg": 0.3, "odds": 0.2})

        prediction = engine.blend(profile, MATCH, _signals(_form_source(), _xg_source(), _odds_source()))

        assert prediction.is_bot is True
        assert prediction.league_id == "EPL"
        assert prediction.participant_id == "bot-1"
        assert prediction.created_at == AS_OF
        assert prediction.diagnostics.data_quality == pytest.approx(1.0)
        assert set(prediction.diagnostics.signals_used) == {"form", "odds", "xg"}

    def test_strong_home_side_is_favoured(self, engine):
        profile = _profile({"form": 0.5, "xg": 0.3, "odds": 0.2})

        prediction = engine.blend(profile, MATCH, _signals(_form_source(85, 20), _xg_source(), _odds_source()))

        assert prediction.home_score > prediction.away_score
        probs = prediction.diagnostics.outcome_probabilities
        assert probs["home_win"] > probs["away_win"]

    def test_league_override(self, engine):
        prediction = engine.blend(_profile({"form": 1.0}), MATCH, _signals(_form_source()), league_id="friends")
        assert prediction.league_id == "friends"

    def test_deterministic(self, engine):
        profile = _profile({"form": 0.5, "xg": 0.5}, style="bold", variance=0.3)
        signals = _signals(_form_source(), _xg_source())

        first = engine.blend(profile, MATCH, signals)
        second = engine.blend(profile, MATCH, signals)

        assert (first.home_score, first.away_score) == (second.home_score, second.away_score)


class TestEstimates:

    def test_neutral_form_is_baseline(self):
        home, away = category_lambdas("form", _snap({"form_score": 50}), _snap({"form_score": 50}), None)
        assert home == pytest.approx(BASELINE_HOME_GOALS)
        assert away == pytest.approx(BASELINE_AWAY_GOALS)

    def test_unknown_category(self):
        with pytest.raises(ValueError):
            category_lambdas("vibes", None, None, None)

    def test_low_confidence_shrinks_to_baseline(self, engine):
        source = _form_source(100, 0, confidence=0.0)
        estimate = engine.estimate("form", _signals(source))
        assert estimate.home_lambda == pytest.approx(BASELINE_HOME_GOALS)
        assert estimate.away_lambda == pytest.approx(BASELINE_AWAY_GOALS)

    def test_elo_gap_favours_stronger_side(self):
        home, away = category_lambdas("elo", _snap({"elo": 1900}), _snap({"elo": 1700}), None)
        assert home > BASELINE_HOME_GOALS
        assert away < BASELINE_AWAY_GOALS

    def test_elo_edge_is_capped(self):
        capped = category_lambdas("elo", _snap({"elo": 2400}), _snap({"elo": 1400}), None)
        full = category_lambdas("elo", _snap({"elo": 2100}), _snap({"elo": 1700}), None)
        assert capped == pytest.approx(full)

    def test_home_advantage_needs_no_provider(self, engine):
        usability = engine.assess("home_advantage", _signals())
        estimate = engine.estimate("home_advantage", _signals())

        assert usability.usable is True
        assert estimate.home_lambda == pytest.approx(1.5 * 1.15)
        assert estimate.away_lambda == pytest.approx(1.5 * 0.90)

    def test_home_advantage_anchors_the_blend(self, engine):
        profile = _profile({"form": 0.5, "home_advantage": 0.5})
        disabled = apply_disable(_healthy("form"), "maintenance", "ops", AS_OF)

        prediction = engine.blend(profile, MATCH, _signals(_form_source(status=disabled)))

        diag = prediction.diagnostics
        assert diag.data_quality == pytest.approx(0.5)
        assert diag.used_fallback is False
        assert diag.effective_weights == pytest.approx({"home_advantage": 1.0})
        assert (prediction.home_score, prediction.away_score) == (2, 1)

    def test_combine_volatility(self):
        estimates = [
            CategoryEstimate("form", 2.0, 1.0, 1.0),
            CategoryEstimate("xg", 2.0, 1.0, 1.0),
        ]
        home, away, volatility = PredictionEngine.combine(estimates, {"form": 0.5, "xg": 0.5})
        assert (home, away) == pytest.approx((2.0, 1.0))
        assert volatility == pytest.approx(0.0)


def _snap(payload):
    return SignalSnapshot("form", "x", payload)


class TestStyles:
    """Deterministic mapping of expected goals to a scoreline."""

    def test_moderate_rounds_half_up(self, engine):
        assert engine.to_scoreline(1.5, 0.49, PredictionStyle.MODERATE) == (2, 0)

    def test_conservative_floors_and_caps(self, engine):
        assert engine.to_scoreline(3.9, 0.2, PredictionStyle.CONSERVATIVE) == (2, 0)

    def test_conservative_draws_narrow_gaps(self, engine):
        assert engine.to_scoreline(1.6, 1.4, PredictionStyle.CONSERVATIVE) == (1, 1)

    def test_volatility_widens_conservative_draws(self, engine):
        assert engine.to_scoreline(2.1, 1.5, PredictionStyle.CONSERVATIVE) == (2, 1)
        assert engine.to_scoreline(2.1, 1.5, PredictionStyle.CONSERVATIVE, volatility=0.5) == (1, 1)

    def test_bold_breaks_draws(self, engine):
        assert engine.to_scoreline(1.9, 1.3, PredictionStyle.BOLD) == (3, 2)
        assert engine.to_scoreline(1.2, 1.8, PredictionStyle.BOLD) == (2, 3)

    def test_bold_keeps_close_draws(self, engine):
        assert engine.to_scoreline(1.5, 1.4, PredictionStyle.BOLD) == (2, 2)

    def test_bold_minimum_one_goal(self, engine):
        assert engine.to_scoreline(0.1, 0.05, PredictionStyle.BOLD) == (1, 1)

    def test_apply_style_stretches_bold(self):
        bold = _profile({"form": 1.0}, style="bold", variance=0.5)
        home, away = PredictionEngine.apply_style(2.0, 1.0, bold)
        assert home - away == pytest.approx(1.5)
        assert home + away == pytest.approx(3.0)

    def test_apply_style_shrinks_conservative(self):
        conservative = _profile({"form": 1.0}, style="conservative", variance=0.5)
        home, away = PredictionEngine.apply_style(2.0, 1.0, conservative)
        assert home - away == pytest.approx(0.5)


class TestPredict:

    @pytest.mark.asyncio
    async def test_predict_uses_profile_window(self):
        class FakeCollector:
            def __init__(self):
                self.window = None

            async def collect(self, match, as_of=None, window=None):
                self.window = window
                return _signals(_form_source())

        collector = FakeCollector()
        engine = PredictionEngine(collector=collector, outbox=Outbox())
        profile = BotProfile("bot-1", "Bot", {"form": 1.0}, form_window=8)

        prediction = await engine.predict(profile, MATCH)

        assert collector.window == 8
        assert prediction.match_id == "m1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("weights", [{"form": 0.3, "odds": 0.7}, {"odds": 1.0}])
    async def test_promoted_side_without_history(self, weights):
        """A team with no finished matches still gets a full prediction."""

        def history(team_id, competition_id, before, limit):
            if team_id != "Arsenal":
                return []
            return [
                MatchFact(f"h{i}", "EPL", "Arsenal", "Spurs", before - timedelta(days=7 * (i + 1)),
                          status="finished", home_score=3, away_score=0)
                for i in range(5)
            ]

        class MarketOdds(SignalProvider):
            name = "odds"
            scope = SignalScope.MATCH
            categories = ("odds",)

            async def fetch(self, subject, as_of):
                return SignalSnapshot("odds", subject.external_id, {"home_win": 0.80, "draw": 0.15, "away_win": 0.05}, 1.0, as_of)

        collector = SignalCollector(
            providers=[FormSignalProvider(history=history, aggregator=FormAggregator(window=5)), MarketOdds()],
            monitor=IntegrationHealthMonitor(),
        )
        engine = PredictionEngine(collector=collector, outbox=Outbox())
        match = MatchFact("m1", "EPL", "Arsenal", "Sunderland", AS_OF + timedelta(hours=3))
        profile = BotProfile("bot-1", "Bold Bot", weights, style="bold", variance=0.3)

        prediction = await engine.predict(profile, match, as_of=AS_OF)

        diag = prediction.diagnostics
        assert diag.used_fallback is False
        assert "odds" in diag.signals_used
        assert diag.data_quality == pytest.approx(1.0)
        assert prediction.home_score > prediction.away_score
