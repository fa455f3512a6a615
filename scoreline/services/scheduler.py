"""APScheduler service for periodic tasks."""
import asyncio
import logging
from typing import Optional

from scoreline.config.settings import settings

logger = logging.getLogger(__name__)


class SchedulerService:
    """Manages scheduled results processing, provider probes, form rebuilds and bot bets."""

    def __init__(self, pipeline=None, collector=None, database=None, bots=None, roster=None):
        """Initialize scheduler service."""
        self._scheduler = None
        self._is_running = False
        self._pipeline = pipeline
        self._collector = collector
        self._database = database
        self._bots = bots
        self._roster = roster

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._is_running

    @property
    def pipeline(self):
        if self._pipeline is None:
            from scoreline.services.results_pipeline import get_results_pipeline

            self._pipeline = get_results_pipeline()
        return self._pipeline

    @property
    def collector(self):
        if self._collector is None:
            from scoreline.fetchers import SignalCollector

            self._collector = SignalCollector()
        return self._collector

    @property
    def database(self):
        if self._database is None:
            from scoreline.storage.database import db

            self._database = db
        return self._database

    @property
    def bots(self):
        if self._bots is None:
            from scoreline.models.prediction_engine import PredictionEngine
            from scoreline.services.bot_predictions import BotPredictionService
            from scoreline.services.events import Outbox

            outbox = Outbox()
            self._bots = BotPredictionService(
                engine=PredictionEngine(collector=self.collector, outbox=outbox),
                database=self.database,
                outbox=outbox,
            )
        return self._bots

    @property
    def roster(self) -> list:
        if self._roster is None:
            from scoreline.config.settings import load_bot_roster

            self._roster = load_bot_roster()
        return self._roster

    def _get_scheduler(self):
        """Lazy initialization of scheduler."""
        if self._scheduler is None:
            try:
                from apscheduler.schedulers.asyncio import AsyncIOScheduler

                self._scheduler = AsyncIOScheduler()
            except ImportError:
                logger.error("apscheduler not installed")
                raise
        return self._scheduler

    def start(self):
        """Start the scheduler with all jobs."""
        from apscheduler.triggers.interval import IntervalTrigger
        from apscheduler.triggers.cron import CronTrigger

        scheduler = self._get_scheduler()

        # Finished matches -> results -> standings
        scheduler.add_job(
            self.process_pending_results,
            IntervalTrigger(minutes=settings.results_interval_minutes),
            id="pending_results",
            name="Pending Results Processing",
            replace_existing=True,
            max_instances=1,
        )

        # Provider health probes
        scheduler.add_job(
            self.probe_providers,
            IntervalTrigger(minutes=settings.provider_probe_minutes),
            id="provider_probes",
            name="Provider Health Probes",
            replace_existing=True,
        )

        # Daily form rebuild
        scheduler.add_job(
            self.rebuild_form,
            CronTrigger(hour=settings.form_refresh_hour, minute=0),
            id="form_rebuild",
            name="Daily Form Rebuild",
            replace_existing=True,
        )

        # Bots bet on fixtures kicking off soon
        scheduler.add_job(
            self.place_bot_predictions,
            IntervalTrigger(minutes=settings.bot_interval_minutes),
            id="bot_predictions",
            name="Bot Predictions",
            replace_existing=True,
            max_instances=1,
        )

        scheduler.start()
        self._is_running = True
        logger.info("Scheduler started with %d jobs", len(scheduler.get_jobs()))

    def stop(self):
        """Stop the scheduler."""
        if self._scheduler and self._is_running:
            self._scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("Scheduler stopped")

    async def close(self):
        """Release provider network resources."""
        if self._collector is not None:
            await self._collector.close()

    async def process_pending_results(self) -> int:
        """Score finished matches that still have unscored predictions.

        Matches are processed in parallel worker threads; per-league locks in
        the pipeline keep standings writes for one league serialized.

        Returns:
            Number of matches processed successfully
        """
        from scoreline.storage import repository

        with self.database.session() as session:
            match_ids = repository.unscored_finished_matches(session)

        if not match_ids:
            logger.debug("No finished matches awaiting scoring")
            return 0

        logger.info(f"Processing {len(match_ids)} finished matches")
        loop = asyncio.get_running_loop()
        outcomes = await asyncio.gather(
            *(loop.run_in_executor(None, self.pipeline.process_finished_match, m) for m in match_ids),
            return_exceptions=True,
        )

        processed = 0
        for match_id, outcome in zip(match_ids, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Processing match {match_id} failed: {outcome}")
            else:
                processed += 1

        events = self.pipeline.outbox.drain()
        logger.info(f"Processed {processed}/{len(match_ids)} matches, {len(events)} events")
        return processed

    async def probe_providers(self) -> dict:
        """Probe every provider and log the resulting health."""
        statuses = await self.collector.probe_all()
        summary = ", ".join(f"{name}={status.health.value}" for name, status in sorted(statuses.items()))
        logger.info(f"Provider health: {summary}")
        return statuses

    async def rebuild_form(self) -> int:
        """Recompute the team form cache off the event loop."""
        from scoreline.services.form_cache import rebuild_team_forms

        loop = asyncio.get_running_loop()
        try:
            count = await loop.run_in_executor(None, rebuild_team_forms, self.database)
        except Exception as e:
            logger.error(f"Form rebuild failed: {e}")
            return 0
        return count

    async def place_bot_predictions(self) -> int:
        """Place bets for every rostered bot on upcoming fixtures."""
        try:
            placed = await self.bots.place_upcoming(self.roster, hours_ahead=settings.bot_hours_ahead)
        except Exception as e:
            logger.error(f"Bot predictions failed: {e}")
            return 0

        events = self.bots.outbox.drain()
        logger.info(f"Bots placed {len(placed)} predictions, {len(events)} events")
        return len(placed)


# Singleton instance
_scheduler: Optional[SchedulerService] = None


def get_scheduler() -> SchedulerService:
    """Get scheduler singleton."""
    global _scheduler
    if _scheduler is None:
        _scheduler = SchedulerService()
    return _scheduler
