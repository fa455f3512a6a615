"""Fold scored bets into league standings and rank them."""
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable

from scoreline.models.entities import ScoredBet, StandingEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankedStanding:
    """A standing with its 1-based league position."""
    rank: int
    entry: StandingEntry


def compute_streaks(correct_flags: list[bool]) -> tuple[int, int]:
    """Return (current_streak, best_streak) over chronological outcomes.

    Only results that exist are passed in, so a match the participant skipped
    neither breaks nor extends a run.
    """
    best = 0
    run = 0
    for correct in correct_flags:
        run = run + 1 if correct else 0
        best = max(best, run)

    current = 0
    for correct in reversed(correct_flags):
        if not correct:
            break
        current += 1

    return current, best


def build_entry(league_id: str, participant_id: str, bets: Iterable[ScoredBet]) -> StandingEntry:
    """Rebuild one participant's standing from scratch."""
    ordered = sorted(bets, key=lambda b: (b.kickoff, b.result.match_id))
    current, best = compute_streaks([b.result.is_correct_outcome for b in ordered])

    return StandingEntry(
        league_id=league_id,
        participant_id=participant_id,
        total_points=sum(b.result.points for b in ordered),
        bets_placed=len(ordered),
        exact_matches=sum(1 for b in ordered if b.result.is_exact_match),
        correct_outcomes=sum(1 for b in ordered if b.result.is_correct_outcome),
        current_streak=current,
        best_streak=best,
        last_updated=max((b.result.calculated_at for b in ordered), default=None),
    )


def aggregate_standings(league_id: str, bets: Iterable[ScoredBet]) -> list[StandingEntry]:
    """Rebuild every standing of a league from its scored bets.

    Args:
        league_id: League being rebuilt
        bets: All scored bets of the league, any order

    Returns:
        One StandingEntry per participant, ordered by participant id
    """
    by_participant: dict[str, list[ScoredBet]] = defaultdict(list)
    for bet in bets:
        if bet.result.league_id != league_id:
            raise ValueError(
                f"Result for league {bet.result.league_id} passed to league {league_id}"
            )
        by_participant[bet.result.participant_id].append(bet)

    entries = [
        build_entry(league_id, participant_id, participant_bets)
        for participant_id, participant_bets in sorted(by_participant.items())
    ]
    logger.debug(f"Aggregated {len(entries)} standings for league {league_id}")
    return entries


def ranking_key(entry: StandingEntry) -> tuple:
    """Points desc, exact matches desc, fewer bets first, then participant id."""
    return (-entry.total_points, -entry.exact_matches, entry.bets_placed, entry.participant_id)


def rank_standings(entries: Iterable[StandingEntry]) -> list[RankedStanding]:
    """Order standings into a strict total order and assign positions."""
    ordered = sorted(entries, key=ranking_key)
    return [RankedStanding(rank=i, entry=entry) for i, entry in enumerate(ordered, 1)]
