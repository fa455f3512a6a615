"""Club Elo rating signal from clubelo.com."""
import logging
from datetime import date, datetime, timedelta, timezone
from io import StringIO
from typing import Optional

import httpx
import pandas as pd

from scoreline.config.settings import settings
from scoreline.exceptions import ProviderError
from scoreline.fetchers.base import FetchResult, SignalProvider, SignalScope, SignalSnapshot, TeamRef

logger = logging.getLogger(__name__)

# Team id -> clubelo club name, for ids that do not match directly
CLUBELO_NAMES = {
    "Manchester City": "Man City",
    "Manchester United": "Man United",
    "Tottenham Hotspur": "Tottenham",
    "Spurs": "Tottenham",
    "Wolverhampton Wanderers": "Wolves",
    "Newcastle United": "Newcastle",
    "Brighton and Hove Albion": "Brighton",
    "West Ham United": "West Ham",
    "Nottingham Forest": "Forest",
    "Nott'm Forest": "Forest",
    "Leicester City": "Leicester",
    "Leeds United": "Leeds",
    "Ipswich Town": "Ipswich",
    "AFC Bournemouth": "Bournemouth",
    "Sheffield Utd": "Sheffield United",
}

REQUIRED_COLUMNS = ["Club", "Elo"]


def clubelo_name(team_id: str) -> str:
    return CLUBELO_NAMES.get(team_id, team_id).lower().strip()


class EloSignalProvider(SignalProvider):
    """Each side's Elo rating on the day of the prediction."""

    name = "elo"
    scope = SignalScope.TEAM
    categories = ("elo",)

    def __init__(self, base_url: Optional[str] = None, cache_hours: Optional[float] = None, client: httpx.AsyncClient = None):
        self.base_url = (base_url or settings.elo.base_url).rstrip("/")
        self.cache_ttl = timedelta(hours=cache_hours or settings.elo.cache_hours)
        self.client = client or httpx.AsyncClient(timeout=30.0)
        self._ratings: dict[date, tuple[datetime, pd.DataFrame]] = {}

    async def _download(self, day: date) -> pd.DataFrame:
        url = f"{self.base_url}/{day.isoformat()}"
        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"Failed to download ratings for {day}: {e}") from e

        try:
            df = pd.read_csv(StringIO(response.text))
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise ProviderError(self.name, f"Failed to parse ratings for {day}: {e}") from e

        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ProviderError(self.name, f"Missing required columns: {missing}")

        df["Elo"] = pd.to_numeric(df["Elo"], errors="coerce")
        df = df.dropna(subset=["Elo"]).copy()
        df["club_key"] = df["Club"].astype(str).str.lower().str.strip()

        logger.info(f"Downloaded Elo ratings for {len(df)} clubs on {day}")
        return df

    async def _ratings_for(self, day: date) -> tuple[datetime, pd.DataFrame]:
        now = datetime.now(timezone.utc)
        cached = self._ratings.get(day)
        if cached and now - cached[0] <= self.cache_ttl:
            return cached

        df = await self._download(day)
        self._ratings[day] = (now, df)
        return now, df

    async def fetch(self, subject: TeamRef, as_of: datetime) -> FetchResult:
        fetched_at, df = await self._ratings_for(as_of.date())

        rows = df[df["club_key"] == clubelo_name(subject.team_id)]
        if rows.empty:
            return self.unavailable(f"no Elo rating for {subject.team_id}")

        row = rows.iloc[0]
        rank = pd.to_numeric(row.get("Rank"), errors="coerce")
        return SignalSnapshot(
            provider=self.name,
            subject_id=subject.team_id,
            payload={
                "elo": float(row["Elo"]),
                "rank": 0.0 if pd.isna(rank) else float(rank),
            },
            confidence=1.0,
            computed_at=fetched_at,
        )

    async def probe(self) -> None:
        today = datetime.now(timezone.utc).date()
        self._ratings[today] = (datetime.now(timezone.utc), await self._download(today))

    async def close(self) -> None:
        await self.client.aclose()
