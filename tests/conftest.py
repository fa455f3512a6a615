"""Shared fixtures."""
from datetime import datetime, timedelta, timezone

import pytest

from scoreline.models.entities import MatchFact, MatchStatus
from scoreline.storage.database import Database

KICKOFF = datetime(2025, 3, 1, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def database(tmp_path):
    """Fresh SQLite database with all tables."""
    database = Database(db_path=tmp_path / "test.db")
    database.create_tables()
    return database


@pytest.fixture
def make_match():
    """Factory for MatchFacts; passing scores makes the match finished."""

    def _make(
        external_id: str,
        home: str = "Arsenal",
        away: str = "Chelsea",
        kickoff: datetime = KICKOFF,
        home_score: int = None,
        away_score: int = None,
        competition_id: str = "EPL",
    ) -> MatchFact:
        status = MatchStatus.FINISHED if home_score is not None else MatchStatus.SCHEDULED
        return MatchFact(
            external_id=external_id,
            competition_id=competition_id,
            home_team_id=home,
            away_team_id=away,
            kickoff=kickoff,
            status=status,
            home_score=home_score,
            away_score=away_score,
        )

    return _make


@pytest.fixture
def days():
    """Offset helper: days(n) is n days after the reference kickoff."""
    return lambda n: KICKOFF + timedelta(days=n)
