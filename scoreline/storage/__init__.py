"""Data persistence layer."""
from scoreline.storage.database import Database, db
from scoreline.storage.models import (
    Base,
    BetResultRecord,
    IntegrationStatusRecord,
    LeagueRecord,
    MatchRecord,
    PredictionRecord,
    StandingRecord,
    TeamFormRecord,
)

__all__ = [
    "Database",
    "db",
    "Base",
    "MatchRecord",
    "LeagueRecord",
    "PredictionRecord",
    "BetResultRecord",
    "StandingRecord",
    "TeamFormRecord",
    "IntegrationStatusRecord",
]
