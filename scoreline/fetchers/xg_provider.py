"""Expected-goals signal from Understat."""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from understatapi import UnderstatClient

from scoreline.config.settings import settings
from scoreline.exceptions import ProviderError
from scoreline.fetchers.base import FetchResult, SignalProvider, SignalScope, SignalSnapshot, TeamRef

logger = logging.getLogger(__name__)


# Team id -> Understat team slug, for ids that do not match directly
TEAM_NAME_MAP = {
    "Man City": "Manchester_City",
    "Man United": "Manchester_United",
    "Newcastle": "Newcastle_United",
    "Spurs": "Tottenham",
    "Wolves": "Wolverhampton_Wanderers",
    "Nott'm Forest": "Nottingham_Forest",
    "West Ham": "West_Ham",
    "Brighton": "Brighton",
    "Leicester": "Leicester",
    "Bournemouth": "Bournemouth",
}


class XgSignalProvider(SignalProvider):
    """Rolling xG and xGA per match over a team's latest results."""

    name = "xg"
    scope = SignalScope.TEAM
    categories = ("xg", "xg_against")

    CACHE_TTL = timedelta(hours=1)

    def __init__(self, season: Optional[str] = None, window: Optional[int] = None, client_factory=None):
        self.season = season or settings.understat.season
        self.window = window or settings.understat.window
        self.client_factory = client_factory or UnderstatClient
        self._cache: dict[str, tuple[datetime, list]] = {}

    def _team_slug(self, team_id: str) -> str:
        return TEAM_NAME_MAP.get(team_id, team_id.replace(" ", "_"))

    def _load_matches(self, slug: str) -> list:
        """Blocking Understat request."""
        with self.client_factory() as understat:
            return understat.team(team=slug).get_match_data(season=self.season)

    async def _team_matches(self, slug: str) -> tuple[datetime, list]:
        now = datetime.now(timezone.utc)
        cached = self._cache.get(slug)
        if cached and now - cached[0] < self.CACHE_TTL:
            return cached

        loop = asyncio.get_running_loop()
        try:
            matches = await loop.run_in_executor(None, self._load_matches, slug)
        except Exception as e:
            raise ProviderError(self.name, f"Understat request for {slug} failed: {e}") from e

        self._cache[slug] = (now, matches)
        return now, matches

    async def fetch(self, subject: TeamRef, as_of: datetime) -> FetchResult:
        slug = self._team_slug(subject.team_id)
        fetched_at, matches = await self._team_matches(slug)

        played = [m for m in matches if m.get("isResult")]
        if not played:
            return self.unavailable(f"no Understat results for {slug}")

        window = subject.window or self.window
        recent = played[-window:]
        try:
            xg_for = []
            xg_against = []
            for m in recent:
                is_home = m.get("side") == "h"
                xg_for.append(float(m["xG"]["h"] if is_home else m["xG"]["a"]))
                xg_against.append(float(m["xG"]["a"] if is_home else m["xG"]["h"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError(self.name, f"Malformed Understat payload for {slug}: {e}") from e

        xg_pm = sum(xg_for) / len(xg_for)
        xga_pm = sum(xg_against) / len(xg_against)

        return SignalSnapshot(
            provider=self.name,
            subject_id=subject.team_id,
            payload={
                "xg_per_match": xg_pm,
                "xga_per_match": xga_pm,
                "xg_diff_per_match": xg_pm - xga_pm,
                "matches": float(len(recent)),
            },
            confidence=min(1.0, len(recent) / window),
            computed_at=fetched_at,
        )

    async def probe(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._load_matches, "Arsenal")
        except Exception as e:
            raise ProviderError(self.name, f"Understat probe failed: {e}") from e
