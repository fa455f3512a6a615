"""Common contract for signal providers."""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from scoreline.models.entities import MatchFact

logger = logging.getLogger(__name__)


class SignalScope(str, Enum):
    """What a provider produces snapshots for."""
    TEAM = "team"
    MATCH = "match"


@dataclass(frozen=True)
class TeamRef:
    """A team within a competition, as seen by team-scoped providers."""
    team_id: str
    competition_id: str
    is_home: bool = True
    window: Optional[int] = None  # number of recent matches to summarise, provider default when None


@dataclass(frozen=True)
class SignalSnapshot:
    """Normalized output of one provider for one subject."""
    provider: str
    subject_id: str
    payload: dict
    confidence: float = 1.0
    computed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Snapshot confidence must be in [0, 1], got {self.confidence}")

    def get(self, key: str, default: float = 0.0) -> float:
        return float(self.payload.get(key, default))


@dataclass(frozen=True)
class Unavailable:
    """Explicit "no data" answer, distinct from a provider failure."""
    provider: str
    reason: str


FetchResult = Union[SignalSnapshot, Unavailable]
Subject = Union[TeamRef, MatchFact]


class SignalProvider(ABC):
    """A source of one or more signal categories.

    Providers return Unavailable when they have nothing for a subject and
    raise (ProviderError or the underlying client error) on hard failures.
    """

    name: str = ""
    scope: SignalScope = SignalScope.TEAM
    categories: tuple[str, ...] = ()

    @abstractmethod
    async def fetch(self, subject: Subject, as_of: datetime) -> FetchResult:
        """Produce a snapshot for a team or a match."""

    async def probe(self) -> None:
        """Lightweight reachability check used by scheduled health probes.

        Raises on failure. Local providers have nothing to probe.
        """
        return None

    def unavailable(self, reason: str) -> Unavailable:
        logger.info(f"{self.name} signal unavailable: {reason}")
        return Unavailable(provider=self.name, reason=reason)

    async def close(self) -> None:
        """Release network resources."""
        return None
