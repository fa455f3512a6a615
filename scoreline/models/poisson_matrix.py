"""Poisson scoreline matrix for outcome probabilities."""
from dataclasses import dataclass

import numpy as np
from scipy.stats import poisson


@dataclass
class PoissonResult:
    """Results from Poisson matrix calculation."""
    matrix: np.ndarray  # 2D probability matrix [home_goals][away_goals]
    home_lambda: float
    away_lambda: float

    # {"home_win": float, "draw": float, "away_win": float}
    outcome_probabilities: dict


class PoissonCalculator:
    """Turn expected goals into scoreline and outcome probabilities."""

    MAX_GOALS = 10  # Consider scorelines 0-0 to 9-9

    def calculate(self, home_lambda: float, away_lambda: float) -> PoissonResult:
        """Build the scoreline matrix.

        Args:
            home_lambda: Expected goals for the home team
            away_lambda: Expected goals for the away team

        Returns:
            PoissonResult with matrix and win/draw/loss probabilities
        """
        # Clamp to reasonable range
        home_lambda = max(0.05, min(home_lambda, 6.0))
        away_lambda = max(0.05, min(away_lambda, 6.0))

        goals = np.arange(self.MAX_GOALS)
        matrix = np.outer(poisson.pmf(goals, home_lambda), poisson.pmf(goals, away_lambda))
        matrix = matrix / matrix.sum()

        return PoissonResult(
            matrix=matrix,
            home_lambda=home_lambda,
            away_lambda=away_lambda,
            outcome_probabilities={
                "home_win": float(np.tril(matrix, -1).sum()),
                "draw": float(np.trace(matrix)),
                "away_win": float(np.triu(matrix, 1).sum()),
            },
        )

    def most_likely_score(self, matrix: np.ndarray) -> tuple[int, int]:
        """Single most probable scoreline (lowest goals on ties)."""
        flat = int(np.argmax(matrix))
        home, away = np.unravel_index(flat, matrix.shape)
        return int(home), int(away)


# Singleton instance
poisson_calc = PoissonCalculator()
