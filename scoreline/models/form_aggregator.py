"""Rolling team form from historical results."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from scoreline.config.settings import settings
from scoreline.models.entities import MatchFact

logger = logging.getLogger(__name__)

NEUTRAL_FORM_SCORE = 50.0
LEAGUE_AVERAGE_GOALS = 1.5


@dataclass
class TeamForm:
    """Rolling performance summary for a team in a competition."""
    team_id: str
    competition_id: str
    matches_analyzed: int = 0

    wins: int = 0
    draws: int = 0
    losses: int = 0
    goals_for: int = 0
    goals_against: int = 0

    # Home/Away splits
    home_matches: int = 0
    home_wins: int = 0
    home_goals_for: int = 0
    home_goals_against: int = 0
    away_matches: int = 0
    away_wins: int = 0
    away_goals_for: int = 0
    away_goals_against: int = 0

    # Rates
    points_per_match: float = 0.0
    goals_per_match: float = 0.0
    goals_conceded_per_match: float = 0.0
    home_win_rate: float = 0.0
    away_win_rate: float = 0.0

    current_streak: int = 0  # +N wins in a row, -N losses in a row, 0 after a draw
    unbeaten_run: int = 0
    recent_form: str = ""  # most recent first, e.g. "WWDLW"
    form_score: float = NEUTRAL_FORM_SCORE  # 0-100, 50 is neutral

    calculated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_match_date: Optional[datetime] = None

    @property
    def attack_strength(self) -> float:
        """Goals scored per match, league average when nothing was analyzed."""
        return self.goals_per_match if self.matches_analyzed else LEAGUE_AVERAGE_GOALS

    @property
    def defense_strength(self) -> float:
        """Goals conceded per match, league average when nothing was analyzed."""
        return self.goals_conceded_per_match if self.matches_analyzed else LEAGUE_AVERAGE_GOALS


class FormAggregator:
    """Compute TeamForm from a window of finished matches."""

    def __init__(self, window: int = None, recency_decay: float = None):
        self.window = window or settings.form.window
        self.recency_decay = recency_decay if recency_decay is not None else settings.form.recency_decay

    def calculate(
        self,
        team_id: str,
        competition_id: str,
        matches: Iterable[MatchFact],
        as_of: Optional[datetime] = None,
        window: Optional[int] = None,
    ) -> TeamForm:
        """Build a fresh TeamForm.

        Args:
            team_id: Team to summarise
            competition_id: Competition the form applies to
            matches: Historical matches, any order; unfinished or unrelated
                matches and matches kicking off after as_of are ignored
            as_of: Only consider matches before this time
            window: Override the configured number of matches

        Returns:
            TeamForm; a neutral one when no match qualifies
        """
        now = as_of or datetime.now(timezone.utc)
        window = window or self.window

        played = [
            m for m in matches
            if m.is_finished
            and m.competition_id == competition_id
            and m.involves(team_id)
            and (as_of is None or m.kickoff <= as_of)
        ]
        # Most recent first
        played.sort(key=lambda m: m.kickoff, reverse=True)
        recent = played[:window]

        form = TeamForm(team_id=team_id, competition_id=competition_id, calculated_at=now)
        if not recent:
            logger.debug(f"No finished matches for {team_id} in {competition_id}, using neutral form")
            return form

        form.last_match_date = recent[0].kickoff
        results = []

        for match in recent:
            is_home = match.home_team_id == team_id
            scored = match.home_score if is_home else match.away_score
            conceded = match.away_score if is_home else match.home_score

            form.matches_analyzed += 1
            form.goals_for += scored
            form.goals_against += conceded

            if is_home:
                form.home_matches += 1
                form.home_goals_for += scored
                form.home_goals_against += conceded
            else:
                form.away_matches += 1
                form.away_goals_for += scored
                form.away_goals_against += conceded

            if scored > conceded:
                form.wins += 1
                if is_home:
                    form.home_wins += 1
                else:
                    form.away_wins += 1
                results.append("W")
            elif scored < conceded:
                form.losses += 1
                results.append("L")
            else:
                form.draws += 1
                results.append("D")

        played_count = form.matches_analyzed
        form.points_per_match = (3 * form.wins + form.draws) / played_count
        form.goals_per_match = form.goals_for / played_count
        form.goals_conceded_per_match = form.goals_against / played_count
        if form.home_matches:
            form.home_win_rate = form.home_wins / form.home_matches
        if form.away_matches:
            form.away_win_rate = form.away_wins / form.away_matches

        form.recent_form = "".join(results)
        form.current_streak = self._signed_streak(results)
        form.unbeaten_run = self._unbeaten_run(results)
        form.form_score = self._form_score(results)

        logger.debug(
            f"Calculated form for {team_id}: {form.recent_form} ({form.points_per_match:.2f} PPM)"
        )
        return form

    @staticmethod
    def _signed_streak(results: list[str]) -> int:
        """Run of identical wins or losses ending at the most recent match."""
        if not results or results[0] == "D":
            return 0
        first = results[0]
        run = 0
        for r in results:
            if r != first:
                break
            run += 1
        return run if first == "W" else -run

    @staticmethod
    def _unbeaten_run(results: list[str]) -> int:
        run = 0
        for r in results:
            if r == "L":
                break
            run += 1
        return run

    def _form_score(self, results: list[str]) -> float:
        """Recency-weighted share of available points, scaled to 0-100."""
        points = {"W": 3, "D": 1, "L": 0}
        weighted = 0.0
        total_weight = 0.0
        for i, r in enumerate(results):
            w = self.recency_decay ** i
            weighted += w * points[r]
            total_weight += w
        return 100.0 * weighted / (3.0 * total_weight)

    def rebuild_all(self, matches: Iterable[MatchFact], as_of: Optional[datetime] = None) -> dict:
        """Recompute form for every (team, competition) pair seen in matches.

        Returns:
            Dict keyed by (team_id, competition_id) -> TeamForm
        """
        matches = [m for m in matches if m.is_finished]
        pairs = set()
        for m in matches:
            pairs.add((m.home_team_id, m.competition_id))
            pairs.add((m.away_team_id, m.competition_id))

        forms = {
            (team_id, competition_id): self.calculate(team_id, competition_id, matches, as_of)
            for team_id, competition_id in sorted(pairs)
        }
        logger.info(f"Rebuilt form for {len(forms)} team-competition pairs")
        return forms


# Singleton instance
form_aggregator = FormAggregator()
