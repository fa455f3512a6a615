"""Signal providers and concurrent signal collection."""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from scoreline.config.settings import settings
from scoreline.exceptions import ProviderError
from scoreline.fetchers.base import (
    FetchResult,
    SignalProvider,
    SignalScope,
    SignalSnapshot,
    TeamRef,
    Unavailable,
)
from scoreline.fetchers.elo_provider import EloSignalProvider
from scoreline.fetchers.form_provider import FormSignalProvider
from scoreline.fetchers.injury_provider import InjurySignalProvider, injury_impact
from scoreline.fetchers.odds_provider import OddsSignalProvider, implied_probabilities
from scoreline.fetchers.xg_provider import XgSignalProvider
from scoreline.models.entities import MatchFact
from scoreline.services.integration_health import (
    IntegrationHealth,
    IntegrationHealthMonitor,
    IntegrationStatus,
    get_health_monitor,
)

logger = logging.getLogger(__name__)

__all__ = [
    "SignalCollector",
    "ProviderSignals",
    "CollectedSignals",
    "default_providers",
    "SignalProvider",
    "SignalScope",
    "SignalSnapshot",
    "TeamRef",
    "Unavailable",
    "FormSignalProvider",
    "XgSignalProvider",
    "OddsSignalProvider",
    "InjurySignalProvider",
    "EloSignalProvider",
    "implied_probabilities",
    "injury_impact",
]


@dataclass
class ProviderSignals:
    """What one provider contributed for one match."""
    provider: str
    scope: SignalScope
    categories: tuple[str, ...]
    status: IntegrationStatus
    snapshots: dict = field(default_factory=dict)  # subject_id -> SignalSnapshot
    reason: Optional[str] = None  # why snapshots are missing, if they are

    def snapshot_for(self, subject_id: str) -> Optional[SignalSnapshot]:
        return self.snapshots.get(subject_id)


@dataclass
class CollectedSignals:
    """All provider output gathered for one upcoming match."""
    match: MatchFact
    as_of: datetime
    providers: dict = field(default_factory=dict)  # provider name -> ProviderSignals

    def for_category(self, category: str) -> Optional[ProviderSignals]:
        for signals in self.providers.values():
            if category in signals.categories:
                return signals
        return None


def default_providers() -> list[SignalProvider]:
    """The provider set used in production."""
    return [
        FormSignalProvider(),
        XgSignalProvider(),
        OddsSignalProvider(),
        InjurySignalProvider(),
        EloSignalProvider(),
    ]


class SignalCollector:
    """Fan out provider calls for a match and feed outcomes to the health monitor."""

    def __init__(
        self,
        providers: Optional[list[SignalProvider]] = None,
        monitor: Optional[IntegrationHealthMonitor] = None,
        timeout: Optional[float] = None,
    ):
        self.providers = providers if providers is not None else default_providers()
        self.monitor = monitor or get_health_monitor()
        self.timeout = timeout or settings.engine.provider_timeout_seconds

        for provider in self.providers:
            self.monitor.register(
                provider.name,
                timedelta(hours=settings.health.stale_hours(provider.name)),
            )

    @staticmethod
    def _subjects(provider: SignalProvider, match: MatchFact, window: Optional[int] = None) -> list:
        if provider.scope == SignalScope.MATCH:
            return [match]
        return [
            TeamRef(match.home_team_id, match.competition_id, is_home=True, window=window),
            TeamRef(match.away_team_id, match.competition_id, is_home=False, window=window),
        ]

    async def _fetch_one(self, provider: SignalProvider, subject, as_of: datetime) -> FetchResult:
        try:
            return await asyncio.wait_for(provider.fetch(subject, as_of), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise ProviderError(provider.name, f"timed out after {self.timeout}s")

    async def _collect_provider(
        self,
        provider: SignalProvider,
        match: MatchFact,
        as_of: datetime,
        window: Optional[int] = None,
    ) -> ProviderSignals:
        status = self.monitor.status(provider.name)
        if status.is_manually_disabled or status.health in (
            IntegrationHealth.FAILED,
            IntegrationHealth.DISABLED,
        ):
            logger.info(f"Skipping {provider.name}: provider is {status.health.value}")
            return ProviderSignals(
                provider=provider.name,
                scope=provider.scope,
                categories=provider.categories,
                status=status,
                reason=f"provider {status.health.value}",
            )

        started = time.monotonic()
        results = await asyncio.gather(
            *(self._fetch_one(provider, s, as_of) for s in self._subjects(provider, match, window)),
            return_exceptions=True,
        )
        elapsed = time.monotonic() - started

        errors = [r for r in results if isinstance(r, Exception)]
        snapshots = {r.subject_id: r for r in results if isinstance(r, SignalSnapshot)}
        unavailable = [r for r in results if isinstance(r, Unavailable)]

        reason = None
        if errors:
            reason = str(errors[0])
            logger.warning(f"Provider {provider.name} failed for {match.external_id}: {reason}")
            status = self.monitor.record_failure(provider.name, reason)
            snapshots = {}
        elif unavailable:
            reason = unavailable[0].reason
            status = self.monitor.record_attempt(provider.name)
        else:
            status = self.monitor.record_success(provider.name, duration_seconds=elapsed)

        return ProviderSignals(
            provider=provider.name,
            scope=provider.scope,
            categories=provider.categories,
            status=status,
            snapshots=snapshots,
            reason=reason,
        )

    async def collect(
        self,
        match: MatchFact,
        as_of: Optional[datetime] = None,
        window: Optional[int] = None,
    ) -> CollectedSignals:
        """Gather every provider's snapshots for a match concurrently.

        Args:
            match: Upcoming fixture
            as_of: Point in time the signals describe, now by default
            window: Recent-match window for team-scoped providers
        """
        as_of = as_of or datetime.now(timezone.utc)
        gathered = await asyncio.gather(
            *(self._collect_provider(p, match, as_of, window) for p in self.providers)
        )
        collected = CollectedSignals(
            match=match,
            as_of=as_of,
            providers={signals.provider: signals for signals in gathered},
        )
        usable = [name for name, s in collected.providers.items() if s.snapshots]
        logger.info(
            f"Collected signals for {match.home_team_id} vs {match.away_team_id} "
            f"from {len(usable)}/{len(self.providers)} providers"
        )
        return collected

    async def probe_all(self) -> dict[str, IntegrationStatus]:
        """Run every provider's health probe; disabled providers are skipped."""
        statuses = {}
        for provider in self.providers:
            status = self.monitor.status(provider.name)
            if status.is_manually_disabled:
                statuses[provider.name] = status
                continue

            started = time.monotonic()
            try:
                await asyncio.wait_for(provider.probe(), timeout=self.timeout)
            except Exception as e:
                reason = str(e) or e.__class__.__name__
                logger.warning(f"Probe of {provider.name} failed: {reason}")
                statuses[provider.name] = self.monitor.record_failure(provider.name, reason)
            else:
                statuses[provider.name] = self.monitor.record_success(
                    provider.name, duration_seconds=time.monotonic() - started
                )
        return statuses

    async def close(self):
        """Clean up resources."""
        for provider in self.providers:
            await provider.close()
