"""Form signal built from stored match history."""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from scoreline.config.settings import settings
from scoreline.fetchers.base import FetchResult, SignalProvider, SignalScope, SignalSnapshot, TeamRef
from scoreline.models.entities import MatchFact
from scoreline.models.form_aggregator import FormAggregator, TeamForm, form_aggregator

logger = logging.getLogger(__name__)

# (team_id, competition_id, before, limit) -> finished matches
HistorySource = Callable[[str, str, datetime, int], Iterable[MatchFact]]
# (team_id, competition_id) -> cached form, None when not cached
FormCache = Callable[[str, str], Optional[TeamForm]]


def stored_history(team_id: str, competition_id: str, before: datetime, limit: int) -> list[MatchFact]:
    """Read recent finished matches from the database."""
    from scoreline.storage.database import db
    from scoreline.storage import repository

    with db.session() as session:
        return repository.recent_finished_matches(session, team_id, competition_id, before, limit)


def cached_team_form(team_id: str, competition_id: str) -> Optional[TeamForm]:
    """Read the nightly team form cache."""
    from scoreline.storage.database import db
    from scoreline.storage import repository

    with db.session() as session:
        return repository.load_team_form(session, team_id, competition_id)


class FormSignalProvider(SignalProvider):
    """Recent results of each side, via the Form Aggregator.

    A team without finished matches gets a neutral form at zero confidence,
    so the category stays usable and simply carries no edge.
    """

    name = "form"
    scope = SignalScope.TEAM
    categories = ("form", "defensive_form")

    def __init__(
        self,
        history: Optional[HistorySource] = None,
        aggregator: Optional[FormAggregator] = None,
        window: Optional[int] = None,
        cache: Optional[FormCache] = None,
        max_cache_age: Optional[timedelta] = None,
    ):
        if history is None:
            history, cache = stored_history, cache or cached_team_form
        self.history = history
        self.cache = cache
        self.aggregator = aggregator or form_aggregator
        self.window = window or self.aggregator.window
        self.max_cache_age = max_cache_age or timedelta(hours=settings.health.stale_hours_form)

    def _from_cache(self, subject: TeamRef, as_of: datetime, window: int) -> Optional[TeamForm]:
        # The cache is built with the aggregator's default window only
        if self.cache is None or window != self.aggregator.window:
            return None

        form = self.cache(subject.team_id, subject.competition_id)
        if form is None or form.calculated_at > as_of:
            return None
        if as_of - form.calculated_at > self.max_cache_age:
            logger.debug(f"Cached form for {subject.team_id} is too old, recomputing")
            return None
        return form

    def team_form(self, subject: TeamRef, as_of: datetime, window: int) -> TeamForm:
        """Cached form when fresh, otherwise computed from stored history."""
        form = self._from_cache(subject, as_of, window)
        if form is not None:
            return form

        matches = list(self.history(subject.team_id, subject.competition_id, as_of, window))
        return self.aggregator.calculate(
            subject.team_id,
            subject.competition_id,
            matches,
            as_of=as_of,
            window=window,
        )

    async def fetch(self, subject: TeamRef, as_of: datetime) -> FetchResult:
        window = subject.window or self.window
        loop = asyncio.get_running_loop()
        form = await loop.run_in_executor(None, self.team_form, subject, as_of, window)

        if form.matches_analyzed == 0:
            logger.info(f"No finished matches for {subject.team_id}, using neutral form")

        return SignalSnapshot(
            provider=self.name,
            subject_id=subject.team_id,
            payload={
                "form_score": form.form_score,
                "points_per_match": form.points_per_match,
                "goals_per_match": form.attack_strength,
                "goals_conceded_per_match": form.defense_strength,
                "home_win_rate": form.home_win_rate,
                "away_win_rate": form.away_win_rate,
                "current_streak": float(form.current_streak),
                "matches_analyzed": float(form.matches_analyzed),
            },
            confidence=min(1.0, form.matches_analyzed / window),
            computed_at=as_of,
        )
