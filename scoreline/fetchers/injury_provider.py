"""Injury-impact signal from API-Football."""
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from scoreline.config.settings import settings
from scoreline.exceptions import ProviderError
from scoreline.fetchers.base import FetchResult, SignalProvider, SignalScope, SignalSnapshot, TeamRef

logger = logging.getLogger(__name__)

MISSING_WEIGHT = 5
DOUBTFUL_WEIGHT = 2
KEY_PLAYER_WEIGHT = 15


def injury_impact(missing: int, doubtful: int, key_players: int = 0) -> float:
    """Score 0-100 of how much absences weaken a side."""
    impact = missing * MISSING_WEIGHT + doubtful * DOUBTFUL_WEIGHT + key_players * KEY_PLAYER_WEIGHT
    return float(min(100, impact))


class InjurySignalProvider(SignalProvider):
    """Current absences of each side."""

    name = "injuries"
    scope = SignalScope.TEAM
    categories = ("injuries",)

    def __init__(
        self,
        api_key: Optional[str] = None,
        team_ids: Optional[dict] = None,
        key_players: Optional[dict] = None,
        client: httpx.AsyncClient = None,
    ):
        """Initialize provider.

        Args:
            api_key: API-Football key, loaded from settings when omitted
            team_ids: Our team id -> API-Football numeric team id
            key_players: Our team id -> set of player names that count as key
        """
        cfg = settings.api_football
        self.api_key = api_key if api_key is not None else cfg.api_key.get_secret_value()
        self.base_url = cfg.base_url
        self.season = cfg.season
        self.team_ids = team_ids or {}
        self.key_players = key_players or {}
        self.client = client or httpx.AsyncClient(timeout=30.0)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_headers(self) -> dict:
        return {"x-apisports-key": self.api_key}

    async def _get(self, path: str, params: dict) -> dict:
        try:
            response = await self.client.get(
                f"{self.base_url}{path}", headers=self._get_headers(), params=params
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429:
                logger.warning("API-Football rate limit exceeded")
            raise ProviderError(self.name, f"HTTP {e.response.status_code} from {path}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(self.name, f"Request to {path} failed: {e}") from e

    async def fetch(self, subject: TeamRef, as_of: datetime) -> FetchResult:
        if not self.is_configured:
            return self.unavailable("API-Football key not configured")

        api_team = self.team_ids.get(subject.team_id)
        if api_team is None:
            return self.unavailable(f"no API-Football id for {subject.team_id}")

        data = await self._get("/injuries", {"team": api_team, "season": self.season})
        entries = data.get("response", [])

        # The feed lists absences per fixture for the whole season; keep the latest fixture
        dates = [e.get("fixture", {}).get("date") for e in entries if e.get("fixture", {}).get("date")]
        if dates:
            latest = max(dates)
            entries = [e for e in entries if e.get("fixture", {}).get("date") == latest]

        missing = 0
        doubtful = 0
        key_injured = 0
        key_names = self.key_players.get(subject.team_id, set())
        for entry in entries:
            player = entry.get("player", {})
            if player.get("type") == "Questionable":
                doubtful += 1
            else:
                missing += 1
                if player.get("name") in key_names:
                    key_injured += 1

        return SignalSnapshot(
            provider=self.name,
            subject_id=subject.team_id,
            payload={
                "impact": injury_impact(missing, doubtful, key_injured),
                "missing": float(missing),
                "doubtful": float(doubtful),
                "key_players_missing": float(key_injured),
            },
            confidence=1.0,
            computed_at=datetime.now(timezone.utc),
        )

    async def probe(self) -> None:
        if not self.is_configured:
            return None
        await self._get("/status", {})

    async def close(self) -> None:
        await self.client.aclose()
