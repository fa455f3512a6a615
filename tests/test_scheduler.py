"""Tests for scheduler service."""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from scoreline.config.settings import get_bot_profile, load_bot_roster
from scoreline.fetchers import FormSignalProvider, SignalCollector
from scoreline.models.entities import Prediction
from scoreline.models.prediction_engine import PredictionEngine
from scoreline.services.bot_predictions import BotPredictionService
from scoreline.services.events import Outbox
from scoreline.services.integration_health import IntegrationHealthMonitor
from scoreline.services.results_pipeline import ResultsPipeline
from scoreline.services.scheduler import SchedulerService, get_scheduler
from scoreline.storage import repository


class TestSchedulerService:
    """Tests for SchedulerService."""

    def test_scheduler_initialization(self):
        """Test scheduler initializes correctly."""
        scheduler = SchedulerService()
        assert scheduler._scheduler is None
        assert scheduler.is_running is False

    def test_scheduler_singleton(self):
        """Test get_scheduler returns singleton."""
        import scoreline.services.scheduler as scheduler_module
        scheduler_module._scheduler = None

        s1 = get_scheduler()
        s2 = get_scheduler()
        assert s1 is s2

    def test_scheduler_start(self):
        """Test scheduler start adds the four jobs."""
        with patch("apscheduler.schedulers.asyncio.AsyncIOScheduler") as mock_scheduler_class:
            mock_scheduler = MagicMock()
            mock_scheduler.get_jobs.return_value = ["job1", "job2", "job3", "job4"]
            mock_scheduler_class.return_value = mock_scheduler

            scheduler = SchedulerService()
            scheduler.start()

            assert scheduler.is_running is True
            mock_scheduler.start.assert_called_once()
            job_ids = [call.kwargs["id"] for call in mock_scheduler.add_job.call_args_list]
            assert job_ids == ["pending_results", "provider_probes", "form_rebuild", "bot_predictions"]

    def test_results_job_never_overlaps(self):
        with patch("apscheduler.schedulers.asyncio.AsyncIOScheduler") as mock_scheduler_class:
            mock_scheduler = MagicMock()
            mock_scheduler_class.return_value = mock_scheduler

            SchedulerService().start()

            first = mock_scheduler.add_job.call_args_list[0]
            assert first.kwargs["max_instances"] == 1

    def test_bot_job_never_overlaps(self):
        with patch("apscheduler.schedulers.asyncio.AsyncIOScheduler") as mock_scheduler_class:
            mock_scheduler = MagicMock()
            mock_scheduler_class.return_value = mock_scheduler

            SchedulerService().start()

            last = mock_scheduler.add_job.call_args_list[-1]
            assert last.kwargs["id"] == "bot_predictions"
            assert last.kwargs["max_instances"] == 1

    def test_scheduler_stop(self):
        """Test scheduler stop."""
        with patch("apscheduler.schedulers.asyncio.AsyncIOScheduler") as mock_scheduler_class:
            mock_scheduler = MagicMock()
            mock_scheduler.get_jobs.return_value = []
            mock_scheduler_class.return_value = mock_scheduler

            scheduler = SchedulerService()
            scheduler.start()
            scheduler.stop()

            assert scheduler.is_running is False
            mock_scheduler.shutdown.assert_called_once_with(wait=False)

    def test_scheduler_stop_when_not_running(self):
        """Test scheduler stop when not running is safe."""
        scheduler = SchedulerService()
        scheduler.stop()  # Should not raise

        assert scheduler.is_running is False


class TestPendingResults:
    """Tests for the pending_results job."""

    @pytest.mark.asyncio
    async def test_processes_unscored_matches(self, database, make_match, days):
        with database.session() as session:
            repository.upsert_match(session, make_match("m1", home_score=1, away_score=0))
            repository.upsert_match(session, make_match("m2", "Spurs", "Everton", home_score=0, away_score=0))
            repository.upsert_prediction(session, Prediction("L1", "alice", "m1", 1, 0, created_at=days(-1)))
            repository.upsert_prediction(session, Prediction("L1", "alice", "m2", 0, 0, created_at=days(-1)))

        pipeline = ResultsPipeline(database=database)
        scheduler = SchedulerService(pipeline=pipeline, database=database)

        processed = await scheduler.process_pending_results()

        assert processed == 2
        assert len(pipeline.outbox) == 0
        [row] = pipeline.standings_table("L1")
        assert row.entry.total_points == 6

        assert await scheduler.process_pending_results() == 0

    @pytest.mark.asyncio
    async def test_failures_are_logged_not_raised(self, database, make_match, days):
        with database.session() as session:
            repository.upsert_match(session, make_match("m1", home_score=1, away_score=0))
            repository.upsert_prediction(session, Prediction("L1", "alice", "m1", 1, 0, created_at=days(-1)))

        pipeline = MagicMock()
        pipeline.process_finished_match.side_effect = RuntimeError("db locked")
        scheduler = SchedulerService(pipeline=pipeline, database=database)

        assert await scheduler.process_pending_results() == 0


class TestProbesAndForm:

    @pytest.mark.asyncio
    async def test_probe_providers(self):
        collector = MagicMock()
        status = MagicMock()
        status.health.value = "healthy"
        collector.probe_all = AsyncMock(return_value={"form": status})

        scheduler = SchedulerService(collector=collector)
        statuses = await scheduler.probe_providers()

        assert statuses == {"form": status}
        collector.probe_all.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rebuild_form(self, database, make_match):
        with database.session() as session:
            repository.upsert_match(session, make_match("m1", home_score=1, away_score=0))

        scheduler = SchedulerService(database=database)

        assert await scheduler.rebuild_form() == 2

    @pytest.mark.asyncio
    async def test_rebuild_form_handles_errors(self):
        """Test form rebuild errors are swallowed by the job."""
        scheduler = SchedulerService(database=MagicMock())

        with patch("scoreline.services.form_cache.rebuild_team_forms", side_effect=Exception("db error")):
            assert await scheduler.rebuild_form() == 0

    @pytest.mark.asyncio
    async def test_close_releases_collector(self):
        collector = MagicMock()
        collector.close = AsyncMock()
        scheduler = SchedulerService(collector=collector)

        await scheduler.close()

        collector.close.assert_awaited_once()


class TestBotPredictions:
    """Tests for the bot_predictions job."""

    @staticmethod
    def bots_for(database):
        def history(team_id, competition_id, before, limit):
            with database.session() as session:
                return repository.recent_finished_matches(session, team_id, competition_id, before, limit)

        collector = SignalCollector(
            providers=[FormSignalProvider(history=history)],
            monitor=IntegrationHealthMonitor(),
        )
        outbox = Outbox()
        return BotPredictionService(
            engine=PredictionEngine(collector=collector, outbox=outbox),
            database=database,
            outbox=outbox,
        )

    @pytest.mark.asyncio
    async def test_bots_bet_on_upcoming_fixtures(self, database, make_match):
        now = datetime.now(timezone.utc)
        with database.session() as session:
            for i in range(5):
                repository.upsert_match(session, make_match(
                    f"h{i}", "Arsenal", "Everton", kickoff=now - timedelta(days=7 * (i + 1)),
                    home_score=3, away_score=0,
                ))
            repository.upsert_match(session, make_match("soon", "Arsenal", "Chelsea", kickoff=now + timedelta(hours=3)))
            repository.upsert_match(session, make_match("later", "Spurs", "Everton", kickoff=now + timedelta(hours=20)))
            repository.upsert_match(session, make_match("next-week", "Chelsea", "Spurs", kickoff=now + timedelta(days=7)))

        roster = [
            (get_bot_profile("form_focused", "bot-form"), "L1"),
            (get_bot_profile("chaotic", "bot-chaos"), "L1"),
        ]
        bots = self.bots_for(database)
        scheduler = SchedulerService(database=database, bots=bots, roster=roster)

        assert await scheduler.place_bot_predictions() == 4
        assert len(bots.outbox) == 0

        with database.session() as session:
            soon = repository.predictions_for_match(session, "soon")
            later = repository.predictions_for_match(session, "later")
            next_week = repository.predictions_for_match(session, "next-week")

        assert sorted(p.participant_id for p in soon) == ["bot-chaos", "bot-form"]
        assert all(p.is_bot and p.league_id == "L1" for p in soon + later)
        assert len(later) == 2
        assert next_week == []

    @pytest.mark.asyncio
    async def test_rerun_replaces_bot_bets(self, database, make_match):
        now = datetime.now(timezone.utc)
        with database.session() as session:
            repository.upsert_match(session, make_match("soon", kickoff=now + timedelta(hours=3)))

        roster = [(get_bot_profile("balanced", "bot-balanced"), "L1")]
        scheduler = SchedulerService(database=database, bots=self.bots_for(database), roster=roster)

        assert await scheduler.place_bot_predictions() == 1
        assert await scheduler.place_bot_predictions() == 1

        with database.session() as session:
            [stored] = repository.predictions_for_match(session, "soon")
        assert stored.participant_id == "bot-balanced"
        assert stored.updated_at is not None

    @pytest.mark.asyncio
    async def test_failures_are_logged_not_raised(self):
        bots = MagicMock()
        bots.place_upcoming = AsyncMock(side_effect=RuntimeError("engine down"))
        scheduler = SchedulerService(bots=bots, roster=[])

        assert await scheduler.place_bot_predictions() == 0

    def test_bundled_roster_loads(self):
        roster = load_bot_roster()

        assert roster
        for profile, league_id in roster:
            assert profile.participant_id.startswith("bot-")
            assert league_id
