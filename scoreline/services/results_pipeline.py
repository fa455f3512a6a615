"""Finished match -> bet results -> league standings."""
import logging
import threading
from datetime import datetime
from typing import Optional

from scoreline.exceptions import PreconditionError
from scoreline.models.bet_scorer import score_bet
from scoreline.models.entities import BetResult, StandingEntry
from scoreline.models.standings import RankedStanding, aggregate_standings, rank_standings
from scoreline.services.events import BET_SCORED, STANDINGS_RECOMPUTED, Outbox
from scoreline.storage import repository
from scoreline.storage.database import Database

logger = logging.getLogger(__name__)


class ResultsPipeline:
    """Score predictions and rebuild standings.

    Bet results for a match are committed before any league standings are
    rebuilt from them. Each league rebuild runs under that league's lock
    and replaces the whole league in one transaction.
    """

    def __init__(self, database: Optional[Database] = None, outbox: Optional[Outbox] = None):
        self._database = database
        self.outbox = outbox if outbox is not None else Outbox()
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def database(self) -> Database:
        """Lazy initialization of the database."""
        if self._database is None:
            from scoreline.storage.database import db

            self._database = db
        return self._database

    def _league_lock(self, league_id: str) -> threading.Lock:
        with self._locks_guard:
            if league_id not in self._locks:
                self._locks[league_id] = threading.Lock()
            return self._locks[league_id]

    def score_match(self, match_id: str, calculated_at: Optional[datetime] = None) -> list[BetResult]:
        """Score every prediction on a finished match in one transaction.

        Raises:
            PreconditionError: match is unknown or not finished
        """
        events = []
        with self.database.session() as session:
            match = repository.get_match(session, match_id)
            if match is None:
                raise PreconditionError(f"Cannot score unknown match {match_id}")
            if not match.is_finished:
                raise PreconditionError(
                    f"Cannot score match {match_id}: status is {match.status.value}"
                )

            rules = {}
            results = []
            for prediction in repository.predictions_for_match(session, match_id):
                if prediction.league_id not in rules:
                    rules[prediction.league_id] = repository.scoring_rule_for_league(session, prediction.league_id)

                result = score_bet(prediction, match, rules[prediction.league_id], calculated_at)
                if repository.upsert_bet_result(session, result):
                    events.append({
                        "league_id": result.league_id,
                        "participant_id": result.participant_id,
                        "match_id": result.match_id,
                        "points": result.points,
                    })
                results.append(result)

        for payload in events:
            self.outbox.append(BET_SCORED, payload)

        logger.info(
            f"Scored {len(results)} predictions for match {match_id} "
            f"({len(events)} new or changed)"
        )
        return results

    def recompute_standings(self, league_id: str) -> list[StandingEntry]:
        """Rebuild a league's standings from its bet results."""
        with self._league_lock(league_id):
            with self.database.session() as session:
                bets = repository.scored_bets_for_league(session, league_id)
                entries = aggregate_standings(league_id, bets)
                repository.replace_league_standings(session, league_id, entries)

        self.outbox.append(STANDINGS_RECOMPUTED, {
            "league_id": league_id,
            "participants": len(entries),
        })
        logger.info(f"Recomputed standings for league {league_id}: {len(entries)} participants")
        return entries

    def process_finished_match(self, match_id: str) -> dict[str, list[StandingEntry]]:
        """Score a finished match, then rebuild every league it touched."""
        results = self.score_match(match_id)
        leagues = sorted({r.league_id for r in results})
        return {league_id: self.recompute_standings(league_id) for league_id in leagues}

    def recompute_all(self, cancel_event: Optional[threading.Event] = None) -> dict[str, list[StandingEntry]]:
        """Rebuild every league, stopping between leagues when cancelled."""
        with self.database.session() as session:
            league_ids = repository.league_ids(session)

        rebuilt = {}
        for league_id in league_ids:
            if cancel_event is not None and cancel_event.is_set():
                logger.info(
                    f"Recompute cancelled after {len(rebuilt)}/{len(league_ids)} leagues"
                )
                break
            rebuilt[league_id] = self.recompute_standings(league_id)
        return rebuilt

    def standings_table(self, league_id: str) -> list[RankedStanding]:
        """Ranked standings as currently cached."""
        with self.database.session() as session:
            entries = repository.load_standings(session, league_id)
        return rank_standings(entries)


# Singleton instance
_pipeline: Optional[ResultsPipeline] = None


def get_results_pipeline() -> ResultsPipeline:
    """Get results pipeline singleton."""
    global _pipeline
    if _pipeline is None:
        _pipeline = ResultsPipeline()
    return _pipeline
