"""Database models for the prediction game core."""
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# All datetimes are stored as naive UTC; the repository converts at the boundary.


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class MatchRecord(Base):
    """Fixture as delivered by the match feed."""
    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(primary_key=True)
    external_id: Mapped[str] = mapped_column(String(100), unique=True)
    competition_id: Mapped[str] = mapped_column(String(100), index=True)
    home_team_id: Mapped[str] = mapped_column(String(100))
    away_team_id: Mapped[str] = mapped_column(String(100))
    kickoff: Mapped[datetime] = mapped_column(DateTime, index=True)
    status: Mapped[str] = mapped_column(String(20), default="scheduled")  # MatchStatus value

    # Final score (filled when finished)
    home_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    away_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime)


class LeagueRecord(Base):
    """League scoring constants, owned by the league service."""
    __tablename__ = "leagues"

    id: Mapped[int] = mapped_column(primary_key=True)
    league_id: Mapped[str] = mapped_column(String(100), unique=True)
    name: Mapped[str] = mapped_column(String(200), default="")
    exact_match_points: Mapped[int] = mapped_column(Integer, default=3)
    correct_outcome_points: Mapped[int] = mapped_column(Integer, default=1)


class PredictionRecord(Base):
    """Active prediction of one participant for one match in one league."""
    __tablename__ = "predictions"
    __table_args__ = (
        UniqueConstraint("league_id", "participant_id", "match_id", name="uq_prediction_triple"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    league_id: Mapped[str] = mapped_column(String(100), index=True)
    participant_id: Mapped[str] = mapped_column(String(100))
    match_id: Mapped[str] = mapped_column(ForeignKey("matches.external_id"), index=True)
    home_score: Mapped[int] = mapped_column(Integer)
    away_score: Mapped[int] = mapped_column(Integer)
    is_bot: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)

    # Bot diagnostics
    data_quality: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    used_fallback: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    signals_used: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)  # comma-separated


class BetResultRecord(Base):
    """Points earned by a prediction on a finished match."""
    __tablename__ = "bet_results"
    __table_args__ = (
        UniqueConstraint("league_id", "participant_id", "match_id", name="uq_bet_result_triple"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    league_id: Mapped[str] = mapped_column(String(100), index=True)
    participant_id: Mapped[str] = mapped_column(String(100))
    match_id: Mapped[str] = mapped_column(ForeignKey("matches.external_id"), index=True)
    points: Mapped[int] = mapped_column(Integer)
    is_exact_match: Mapped[bool] = mapped_column(Boolean)
    is_correct_outcome: Mapped[bool] = mapped_column(Boolean)
    calculated_at: Mapped[datetime] = mapped_column(DateTime)


class StandingRecord(Base):
    """Cached league standing, rebuilt from bet results."""
    __tablename__ = "league_standings"
    __table_args__ = (
        UniqueConstraint("league_id", "participant_id", name="uq_standing"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    league_id: Mapped[str] = mapped_column(String(100), index=True)
    participant_id: Mapped[str] = mapped_column(String(100))
    total_points: Mapped[int] = mapped_column(Integer, default=0)
    bets_placed: Mapped[int] = mapped_column(Integer, default=0)
    exact_matches: Mapped[int] = mapped_column(Integer, default=0)
    correct_outcomes: Mapped[int] = mapped_column(Integer, default=0)
    current_streak: Mapped[int] = mapped_column(Integer, default=0)
    best_streak: Mapped[int] = mapped_column(Integer, default=0)
    last_updated: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class TeamFormRecord(Base):
    """Cached rolling form of a team in a competition."""
    __tablename__ = "team_forms"
    __table_args__ = (
        UniqueConstraint("team_id", "competition_id", name="uq_team_form"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    team_id: Mapped[str] = mapped_column(String(100))
    competition_id: Mapped[str] = mapped_column(String(100))
    matches_analyzed: Mapped[int] = mapped_column(Integer, default=0)
    wins: Mapped[int] = mapped_column(Integer, default=0)
    draws: Mapped[int] = mapped_column(Integer, default=0)
    losses: Mapped[int] = mapped_column(Integer, default=0)
    goals_for: Mapped[int] = mapped_column(Integer, default=0)
    goals_against: Mapped[int] = mapped_column(Integer, default=0)

    # Home/Away splits
    home_matches: Mapped[int] = mapped_column(Integer, default=0)
    home_wins: Mapped[int] = mapped_column(Integer, default=0)
    home_goals_for: Mapped[int] = mapped_column(Integer, default=0)
    home_goals_against: Mapped[int] = mapped_column(Integer, default=0)
    away_matches: Mapped[int] = mapped_column(Integer, default=0)
    away_wins: Mapped[int] = mapped_column(Integer, default=0)
    away_goals_for: Mapped[int] = mapped_column(Integer, default=0)
    away_goals_against: Mapped[int] = mapped_column(Integer, default=0)

    points_per_match: Mapped[float] = mapped_column(Float, default=0.0)
    goals_per_match: Mapped[float] = mapped_column(Float, default=0.0)
    goals_conceded_per_match: Mapped[float] = mapped_column(Float, default=0.0)
    home_win_rate: Mapped[float] = mapped_column(Float, default=0.0)
    away_win_rate: Mapped[float] = mapped_column(Float, default=0.0)

    current_streak: Mapped[int] = mapped_column(Integer, default=0)
    unbeaten_run: Mapped[int] = mapped_column(Integer, default=0)
    recent_form: Mapped[str] = mapped_column(String(20), default="")
    form_score: Mapped[float] = mapped_column(Float, default=50.0)

    calculated_at: Mapped[datetime] = mapped_column(DateTime)
    last_match_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class IntegrationStatusRecord(Base):
    """Persisted health of a signal provider."""
    __tablename__ = "integration_statuses"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(50), unique=True)
    health: Mapped[str] = mapped_column(String(20), default="unknown")
    consecutive_failures: Mapped[int] = mapped_column(Integer, default=0)
    total_failures: Mapped[int] = mapped_column(Integer, default=0)
    successful_syncs: Mapped[int] = mapped_column(Integer, default=0)

    last_successful_sync: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_attempted_sync: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_failed_sync: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    stale_threshold_seconds: Mapped[float] = mapped_column(Float, default=48 * 3600)

    # Manual override
    is_manually_disabled: Mapped[bool] = mapped_column(Boolean, default=False)
    disabled_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    disabled_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    disabled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    average_sync_seconds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
