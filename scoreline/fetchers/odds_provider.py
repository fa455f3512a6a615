"""Market-odds signal from the football-data.co.uk fixtures feed."""
import logging
from datetime import datetime, timedelta, timezone
from io import StringIO
from typing import Optional

import httpx
import pandas as pd

from scoreline.config.settings import settings
from scoreline.exceptions import ProviderError
from scoreline.fetchers.base import FetchResult, SignalProvider, SignalScope, SignalSnapshot
from scoreline.models.entities import MatchFact

logger = logging.getLogger(__name__)

# Preferred bookmaker columns, in order
ODDS_COLUMN_SETS = [
    ("AvgH", "AvgD", "AvgA"),
    ("B365H", "B365D", "B365A"),
    ("PSH", "PSD", "PSA"),
]
REQUIRED_COLUMNS = ["HomeTeam", "AwayTeam"]

# Team id -> football-data.co.uk team name, for ids that do not match directly
FEED_TEAM_NAMES = {
    "Manchester City": "Man City",
    "Manchester United": "Man United",
    "Newcastle United": "Newcastle",
    "Tottenham Hotspur": "Tottenham",
    "Spurs": "Tottenham",
    "Wolverhampton Wanderers": "Wolves",
    "Nottingham Forest": "Nott'm Forest",
    "West Ham United": "West Ham",
    "Brighton and Hove Albion": "Brighton",
    "Brighton & Hove Albion": "Brighton",
    "Leicester City": "Leicester",
    "Leeds United": "Leeds",
    "Ipswich Town": "Ipswich",
    "Luton Town": "Luton",
    "Sheffield Utd": "Sheffield United",
    "AFC Bournemouth": "Bournemouth",
}


def feed_team_name(team_id: str) -> str:
    """Normalized name the odds feed uses for a team."""
    return FEED_TEAM_NAMES.get(team_id, team_id).lower().strip()


def implied_probabilities(home_odds: float, draw_odds: float, away_odds: float) -> Optional[dict]:
    """Convert decimal odds to probabilities with the overround removed.

    Returns:
        {"home_win", "draw", "away_win", "favorite", "favorite_confidence"}
        or None when no odds are usable
    """
    raw = {
        "home_win": 1 / home_odds if home_odds and home_odds > 0 else 0.0,
        "draw": 1 / draw_odds if draw_odds and draw_odds > 0 else 0.0,
        "away_win": 1 / away_odds if away_odds and away_odds > 0 else 0.0,
    }
    total = sum(raw.values())
    if total <= 0:
        return None

    probs = {k: v / total for k, v in raw.items()}

    if probs["home_win"] >= probs["draw"] and probs["home_win"] >= probs["away_win"]:
        favorite = "home_win"
    elif probs["away_win"] >= probs["draw"]:
        favorite = "away_win"
    else:
        favorite = "draw"

    return {**probs, "favorite": favorite, "favorite_confidence": probs[favorite]}


class OddsSignalProvider(SignalProvider):
    """Bookmaker-implied result probabilities for a match."""

    name = "odds"
    scope = SignalScope.MATCH
    categories = ("odds",)

    def __init__(self, fixtures_url: Optional[str] = None, cache_minutes: Optional[int] = None, client: httpx.AsyncClient = None):
        self.fixtures_url = fixtures_url or settings.odds.fixtures_url
        self.cache_ttl = timedelta(minutes=cache_minutes or settings.odds.cache_minutes)
        self.client = client or httpx.AsyncClient(timeout=30.0)
        self._frame: Optional[pd.DataFrame] = None
        self._fetched_at: Optional[datetime] = None

    async def _download(self) -> pd.DataFrame:
        try:
            response = await self.client.get(self.fixtures_url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"Failed to download fixtures CSV: {e}") from e

        try:
            df = pd.read_csv(StringIO(response.text))
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise ProviderError(self.name, f"Failed to parse fixtures CSV: {e}") from e

        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ProviderError(self.name, f"Missing required columns: {missing}")

        logger.info(f"Downloaded odds for {len(df)} fixtures")
        return df

    async def _fixtures(self) -> tuple[datetime, pd.DataFrame]:
        now = datetime.now(timezone.utc)
        if self._frame is None or self._fetched_at is None or now - self._fetched_at > self.cache_ttl:
            self._frame = await self._download()
            self._fetched_at = now
        return self._fetched_at, self._frame

    def _find_row(self, df: pd.DataFrame, match: MatchFact) -> Optional[pd.Series]:
        home = df["HomeTeam"].astype(str).str.lower().str.strip()
        away = df["AwayTeam"].astype(str).str.lower().str.strip()
        rows = df[(home == feed_team_name(match.home_team_id)) & (away == feed_team_name(match.away_team_id))]
        if rows.empty:
            return None
        return rows.iloc[0]

    async def fetch(self, subject: MatchFact, as_of: datetime) -> FetchResult:
        fetched_at, df = await self._fixtures()

        row = self._find_row(df, subject)
        if row is None:
            return self.unavailable(
                f"no odds for {subject.home_team_id} vs {subject.away_team_id}"
            )

        for columns in ODDS_COLUMN_SETS:
            if all(c in row.index and pd.notna(row[c]) for c in columns):
                probs = implied_probabilities(*(float(row[c]) for c in columns))
                if probs:
                    break
        else:
            probs = None

        if probs is None:
            return self.unavailable(f"odds columns empty for {subject.external_id}")

        favorite = probs.pop("favorite")
        return SignalSnapshot(
            provider=self.name,
            subject_id=subject.external_id,
            payload={
                **probs,
                "favorite_home": 1.0 if favorite == "home_win" else 0.0,
                "favorite_away": 1.0 if favorite == "away_win" else 0.0,
            },
            confidence=1.0,
            computed_at=fetched_at,
        )

    async def probe(self) -> None:
        self._frame = await self._download()
        self._fetched_at = datetime.now(timezone.utc)

    async def close(self) -> None:
        await self.client.aclose()
