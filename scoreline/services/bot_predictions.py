"""Place predictions on behalf of bot participants."""
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, Optional

from scoreline.models.entities import BotProfile, MatchFact, Prediction
from scoreline.models.prediction_engine import PredictionEngine
from scoreline.services.events import BOT_PREDICTION_PLACED, Outbox
from scoreline.storage import repository
from scoreline.storage.database import Database

logger = logging.getLogger(__name__)


class BotPredictionService:
    """Run the prediction engine for bots and store the result as their bet."""

    def __init__(
        self,
        engine: Optional[PredictionEngine] = None,
        database: Optional[Database] = None,
        outbox: Optional[Outbox] = None,
    ):
        self.outbox = outbox if outbox is not None else Outbox()
        self.engine = engine or PredictionEngine(outbox=self.outbox)
        self._database = database

    @property
    def database(self) -> Database:
        """Lazy initialization of the database."""
        if self._database is None:
            from scoreline.storage.database import db

            self._database = db
        return self._database

    async def place(self, profile: BotProfile, match: MatchFact, league_id: str) -> Prediction:
        """Predict one match for one bot and upsert it."""
        prediction = await self.engine.predict(profile, match, league_id=league_id)

        with self.database.session() as session:
            stored = repository.upsert_prediction(session, prediction)

        self.outbox.append(BOT_PREDICTION_PLACED, {
            "league_id": league_id,
            "participant_id": profile.participant_id,
            "match_id": match.external_id,
            "score": f"{stored.home_score}-{stored.away_score}",
            "data_quality": prediction.diagnostics.data_quality,
        })
        return replace(stored, diagnostics=prediction.diagnostics)

    async def place_upcoming(
        self,
        roster: Iterable[tuple[BotProfile, str]],
        hours_ahead: int = 48,
        now: Optional[datetime] = None,
    ) -> list[Prediction]:
        """Predict every upcoming fixture for each (bot, league) pair."""
        now = now or datetime.now(timezone.utc)
        with self.database.session() as session:
            matches = repository.upcoming_matches(session, now, hours_ahead)

        roster = list(roster)
        placed = []
        for match in matches:
            for profile, league_id in roster:
                placed.append(await self.place(profile, match, league_id))

        logger.info(f"Placed {len(placed)} bot predictions on {len(matches)} upcoming matches")
        return placed
