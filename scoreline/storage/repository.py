"""Translate between database records and domain values.

Every function takes an open session and leaves transaction control to the
caller, so several writes can share one commit.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from scoreline.config.settings import settings
from scoreline.models.entities import (
    BetResult,
    MatchFact,
    MatchStatus,
    Prediction,
    ScoredBet,
    ScoringRule,
    StandingEntry,
)
from scoreline.models.form_aggregator import TeamForm
from scoreline.services.integration_health import IntegrationHealth, IntegrationStatus
from scoreline.storage.models import (
    BetResultRecord,
    IntegrationStatusRecord,
    LeagueRecord,
    MatchRecord,
    PredictionRecord,
    StandingRecord,
    TeamFormRecord,
)

logger = logging.getLogger(__name__)

TEAM_FORM_FIELDS = (
    "matches_analyzed", "wins", "draws", "losses", "goals_for", "goals_against",
    "home_matches", "home_wins", "home_goals_for", "home_goals_against",
    "away_matches", "away_wins", "away_goals_for", "away_goals_against",
    "points_per_match", "goals_per_match", "goals_conceded_per_match",
    "home_win_rate", "away_win_rate",
    "current_streak", "unbeaten_run", "recent_form", "form_score",
)


def _naive(dt: Optional[datetime]) -> Optional[datetime]:
    """Aware datetime -> naive UTC for storage."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    """Stored naive UTC -> aware datetime."""
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=timezone.utc)


# --- matches -------------------------------------------------------------

def to_match_fact(record: MatchRecord) -> MatchFact:
    return MatchFact(
        external_id=record.external_id,
        competition_id=record.competition_id,
        home_team_id=record.home_team_id,
        away_team_id=record.away_team_id,
        kickoff=_aware(record.kickoff),
        status=MatchStatus(record.status),
        home_score=record.home_score,
        away_score=record.away_score,
    )


def upsert_match(session: Session, match: MatchFact) -> MatchRecord:
    """Insert or update a fixture by external id."""
    record = session.query(MatchRecord).filter_by(external_id=match.external_id).first()
    if record is None:
        record = MatchRecord(external_id=match.external_id)
        session.add(record)

    record.competition_id = match.competition_id
    record.home_team_id = match.home_team_id
    record.away_team_id = match.away_team_id
    record.kickoff = _naive(match.kickoff)
    record.status = match.status.value
    record.home_score = match.home_score
    record.away_score = match.away_score
    record.updated_at = _naive(datetime.now(timezone.utc))
    session.flush()
    return record


def get_match(session: Session, match_id: str) -> Optional[MatchFact]:
    record = session.query(MatchRecord).filter_by(external_id=match_id).first()
    return to_match_fact(record) if record else None


def finished_matches(session: Session, competition_id: Optional[str] = None) -> list[MatchFact]:
    query = session.query(MatchRecord).filter(MatchRecord.status == MatchStatus.FINISHED.value)
    if competition_id is not None:
        query = query.filter(MatchRecord.competition_id == competition_id)
    return [to_match_fact(r) for r in query.order_by(MatchRecord.kickoff).all()]


def recent_finished_matches(
    session: Session,
    team_id: str,
    competition_id: str,
    before: datetime,
    limit: int,
) -> list[MatchFact]:
    """A team's latest finished matches up to a point in time, most recent first."""
    records = (
        session.query(MatchRecord)
        .filter(
            MatchRecord.status == MatchStatus.FINISHED.value,
            MatchRecord.competition_id == competition_id,
            (MatchRecord.home_team_id == team_id) | (MatchRecord.away_team_id == team_id),
            MatchRecord.kickoff <= _naive(before),
        )
        .order_by(MatchRecord.kickoff.desc())
        .limit(limit)
        .all()
    )
    return [to_match_fact(r) for r in records]


def upcoming_matches(session: Session, now: datetime, hours_ahead: int = 48) -> list[MatchFact]:
    """Scheduled fixtures kicking off within the horizon."""
    records = (
        session.query(MatchRecord)
        .filter(
            MatchRecord.status == MatchStatus.SCHEDULED.value,
            MatchRecord.kickoff > _naive(now),
            MatchRecord.kickoff <= _naive(now + timedelta(hours=hours_ahead)),
        )
        .order_by(MatchRecord.kickoff)
        .all()
    )
    return [to_match_fact(r) for r in records]


def unscored_finished_matches(session: Session) -> list[str]:
    """Finished matches that have predictions without a bet result."""
    rows = (
        session.query(PredictionRecord.match_id)
        .join(MatchRecord, MatchRecord.external_id == PredictionRecord.match_id)
        .outerjoin(
            BetResultRecord,
            and_(
                BetResultRecord.league_id == PredictionRecord.league_id,
                BetResultRecord.participant_id == PredictionRecord.participant_id,
                BetResultRecord.match_id == PredictionRecord.match_id,
            ),
        )
        .filter(
            MatchRecord.status == MatchStatus.FINISHED.value,
            BetResultRecord.id.is_(None),
        )
        .distinct()
        .all()
    )
    return sorted(r[0] for r in rows)


# --- leagues -------------------------------------------------------------

def upsert_league(session: Session, league_id: str, rule: ScoringRule = None, name: str = "") -> LeagueRecord:
    rule = rule or ScoringRule()
    record = session.query(LeagueRecord).filter_by(league_id=league_id).first()
    if record is None:
        record = LeagueRecord(league_id=league_id)
        session.add(record)
    record.name = name or record.name or league_id
    record.exact_match_points = rule.exact_match_points
    record.correct_outcome_points = rule.correct_outcome_points
    session.flush()
    return record


def scoring_rule_for_league(session: Session, league_id: str) -> ScoringRule:
    """League scoring constants, configured defaults for unknown leagues."""
    record = session.query(LeagueRecord).filter_by(league_id=league_id).first()
    if record is None:
        return ScoringRule(
            exact_match_points=settings.scoring.exact_match_points,
            correct_outcome_points=settings.scoring.correct_outcome_points,
        )
    return ScoringRule(
        exact_match_points=record.exact_match_points,
        correct_outcome_points=record.correct_outcome_points,
    )


def league_ids(session: Session) -> list[str]:
    """Every league that has predictions or a scoring rule."""
    ids = {r[0] for r in session.query(LeagueRecord.league_id).all()}
    ids.update(r[0] for r in session.query(PredictionRecord.league_id).distinct().all())
    return sorted(ids)


# --- predictions ---------------------------------------------------------

def to_prediction(record: PredictionRecord) -> Prediction:
    return Prediction(
        league_id=record.league_id,
        participant_id=record.participant_id,
        match_id=record.match_id,
        home_score=record.home_score,
        away_score=record.away_score,
        is_bot=record.is_bot,
        created_at=_aware(record.created_at),
        updated_at=_aware(record.updated_at),
    )


def upsert_prediction(session: Session, prediction: Prediction) -> Prediction:
    """Store the active prediction for its triple.

    A later submission replaces the scoreline but keeps the original
    creation time.
    """
    record = (
        session.query(PredictionRecord)
        .filter_by(
            league_id=prediction.league_id,
            participant_id=prediction.participant_id,
            match_id=prediction.match_id,
        )
        .first()
    )
    if record is None:
        record = PredictionRecord(
            league_id=prediction.league_id,
            participant_id=prediction.participant_id,
            match_id=prediction.match_id,
            created_at=_naive(prediction.created_at),
        )
        session.add(record)
        updated_at = prediction.updated_at
    else:
        updated_at = max(prediction.updated_at, _aware(record.updated_at))
        logger.debug(f"Replacing prediction for {prediction.key}")

    record.home_score = prediction.home_score
    record.away_score = prediction.away_score
    record.is_bot = prediction.is_bot
    record.updated_at = _naive(updated_at)

    diagnostics = prediction.diagnostics
    if diagnostics is not None:
        record.data_quality = diagnostics.data_quality
        record.used_fallback = diagnostics.used_fallback
        record.signals_used = ",".join(diagnostics.signals_used)

    session.flush()
    return to_prediction(record)


def predictions_for_match(session: Session, match_id: str) -> list[Prediction]:
    records = (
        session.query(PredictionRecord)
        .filter_by(match_id=match_id)
        .order_by(PredictionRecord.league_id, PredictionRecord.participant_id)
        .all()
    )
    return [to_prediction(r) for r in records]


# --- bet results ---------------------------------------------------------

def to_bet_result(record: BetResultRecord) -> BetResult:
    return BetResult(
        league_id=record.league_id,
        participant_id=record.participant_id,
        match_id=record.match_id,
        points=record.points,
        is_exact_match=record.is_exact_match,
        is_correct_outcome=record.is_correct_outcome,
        calculated_at=_aware(record.calculated_at),
    )


def upsert_bet_result(session: Session, result: BetResult) -> bool:
    """Store a bet result, overwriting any earlier computation.

    Returns:
        True when the stored value changed
    """
    record = (
        session.query(BetResultRecord)
        .filter_by(
            league_id=result.league_id,
            participant_id=result.participant_id,
            match_id=result.match_id,
        )
        .first()
    )
    if record is not None and to_bet_result(record) == result:
        return False

    if record is None:
        record = BetResultRecord(
            league_id=result.league_id,
            participant_id=result.participant_id,
            match_id=result.match_id,
        )
        session.add(record)

    record.points = result.points
    record.is_exact_match = result.is_exact_match
    record.is_correct_outcome = result.is_correct_outcome
    record.calculated_at = _naive(result.calculated_at)
    session.flush()
    return True


def scored_bets_for_league(session: Session, league_id: str) -> list[ScoredBet]:
    """All bet results of a league, tagged with their match kickoff."""
    rows = (
        session.query(BetResultRecord, MatchRecord.kickoff)
        .join(MatchRecord, MatchRecord.external_id == BetResultRecord.match_id)
        .filter(BetResultRecord.league_id == league_id)
        .all()
    )
    return [ScoredBet(result=to_bet_result(record), kickoff=_aware(kickoff)) for record, kickoff in rows]


# --- standings -----------------------------------------------------------

def to_standing(record: StandingRecord) -> StandingEntry:
    return StandingEntry(
        league_id=record.league_id,
        participant_id=record.participant_id,
        total_points=record.total_points,
        bets_placed=record.bets_placed,
        exact_matches=record.exact_matches,
        correct_outcomes=record.correct_outcomes,
        current_streak=record.current_streak,
        best_streak=record.best_streak,
        last_updated=_aware(record.last_updated),
    )


def replace_league_standings(session: Session, league_id: str, entries: Iterable[StandingEntry]) -> int:
    """Swap a league's cached standings for a fresh set."""
    session.query(StandingRecord).filter_by(league_id=league_id).delete()
    count = 0
    for entry in entries:
        if entry.league_id != league_id:
            raise ValueError(f"Standing for {entry.participant_id} belongs to {entry.league_id}, not {league_id}")
        session.add(StandingRecord(
            league_id=entry.league_id,
            participant_id=entry.participant_id,
            total_points=entry.total_points,
            bets_placed=entry.bets_placed,
            exact_matches=entry.exact_matches,
            correct_outcomes=entry.correct_outcomes,
            current_streak=entry.current_streak,
            best_streak=entry.best_streak,
            last_updated=_naive(entry.last_updated),
        ))
        count += 1
    session.flush()
    return count


def load_standings(session: Session, league_id: str) -> list[StandingEntry]:
    records = (
        session.query(StandingRecord)
        .filter_by(league_id=league_id)
        .order_by(StandingRecord.participant_id)
        .all()
    )
    return [to_standing(r) for r in records]


# --- team form -----------------------------------------------------------

def save_team_forms(session: Session, forms: Iterable[TeamForm]) -> int:
    """Replace the whole team form cache."""
    session.query(TeamFormRecord).delete()
    count = 0
    for form in forms:
        record = TeamFormRecord(
            team_id=form.team_id,
            competition_id=form.competition_id,
            calculated_at=_naive(form.calculated_at),
            last_match_date=_naive(form.last_match_date),
        )
        for name in TEAM_FORM_FIELDS:
            setattr(record, name, getattr(form, name))
        session.add(record)
        count += 1
    session.flush()
    return count


def load_team_form(session: Session, team_id: str, competition_id: str) -> Optional[TeamForm]:
    record = session.query(TeamFormRecord).filter_by(team_id=team_id, competition_id=competition_id).first()
    if record is None:
        return None
    return TeamForm(
        team_id=record.team_id,
        competition_id=record.competition_id,
        calculated_at=_aware(record.calculated_at),
        last_match_date=_aware(record.last_match_date),
        **{name: getattr(record, name) for name in TEAM_FORM_FIELDS},
    )


# --- integration health --------------------------------------------------

def save_integration_status(session: Session, status: IntegrationStatus) -> None:
    record = session.query(IntegrationStatusRecord).filter_by(name=status.name).first()
    if record is None:
        record = IntegrationStatusRecord(name=status.name)
        session.add(record)

    record.health = status.health.value
    record.consecutive_failures = status.consecutive_failures
    record.total_failures = status.total_failures
    record.successful_syncs = status.successful_syncs
    record.last_successful_sync = _naive(status.last_successful_sync)
    record.last_attempted_sync = _naive(status.last_attempted_sync)
    record.last_failed_sync = _naive(status.last_failed_sync)
    record.last_error = status.last_error[:500] if status.last_error else None
    record.stale_threshold_seconds = status.stale_threshold.total_seconds()
    record.is_manually_disabled = status.is_manually_disabled
    record.disabled_reason = status.disabled_reason
    record.disabled_by = status.disabled_by
    record.disabled_at = _naive(status.disabled_at)
    record.average_sync_seconds = status.average_sync_seconds
    session.flush()


def load_integration_statuses(session: Session) -> list[IntegrationStatus]:
    records = session.query(IntegrationStatusRecord).order_by(IntegrationStatusRecord.name).all()
    return [
        IntegrationStatus(
            name=r.name,
            health=IntegrationHealth(r.health),
            consecutive_failures=r.consecutive_failures,
            total_failures=r.total_failures,
            successful_syncs=r.successful_syncs,
            last_successful_sync=_aware(r.last_successful_sync),
            last_attempted_sync=_aware(r.last_attempted_sync),
            last_failed_sync=_aware(r.last_failed_sync),
            last_error=r.last_error,
            stale_threshold=timedelta(seconds=r.stale_threshold_seconds),
            is_manually_disabled=r.is_manually_disabled,
            disabled_reason=r.disabled_reason,
            disabled_by=r.disabled_by,
            disabled_at=_aware(r.disabled_at),
            average_sync_seconds=r.average_sync_seconds,
        )
        for r in records
    ]
