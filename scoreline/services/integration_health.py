"""Operational health of signal providers.

Each provider has an IntegrationStatus that only changes through sync
outcomes and manual overrides:

    unknown  -> healthy    first successful sync
    healthy  -> degraded   consecutive failures >= low threshold, or stale data
    degraded -> failed     consecutive failures >= high threshold
    degraded/failed -> healthy   successful sync (failures reset to 0)
    any      -> disabled   manual override; only a manual enable leaves it
    disabled -> unknown    manual enable

The transition functions are pure; IntegrationHealthMonitor is the
thread-safe registry the prediction engine and the scheduler share.
"""
import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from scoreline.config.settings import settings

logger = logging.getLogger(__name__)


class IntegrationHealth(str, Enum):
    """Provider health verdict."""
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILED = "failed"
    DISABLED = "disabled"


@dataclass(frozen=True)
class HealthThresholds:
    """Consecutive-failure counts that trigger transitions."""
    degraded_after: int = 2
    failed_after: int = 5

    @classmethod
    def from_settings(cls) -> "HealthThresholds":
        return cls(
            degraded_after=settings.health.degraded_after_failures,
            failed_after=settings.health.failed_after_failures,
        )


@dataclass(frozen=True)
class IntegrationStatus:
    """Health and freshness record for one provider."""
    name: str
    health: IntegrationHealth = IntegrationHealth.UNKNOWN
    consecutive_failures: int = 0
    total_failures: int = 0
    successful_syncs: int = 0
    last_successful_sync: Optional[datetime] = None
    last_attempted_sync: Optional[datetime] = None
    last_failed_sync: Optional[datetime] = None
    last_error: Optional[str] = None
    stale_threshold: timedelta = timedelta(hours=48)
    is_manually_disabled: bool = False
    disabled_reason: Optional[str] = None
    disabled_by: Optional[str] = None
    disabled_at: Optional[datetime] = None
    average_sync_seconds: Optional[float] = None

    def is_stale(self, now: datetime) -> bool:
        """Data older than the threshold, regardless of failure count."""
        if self.last_successful_sync is None:
            return False
        return now - self.last_successful_sync > self.stale_threshold

    @property
    def is_operational(self) -> bool:
        return not self.is_manually_disabled and self.health in (
            IntegrationHealth.HEALTHY,
            IntegrationHealth.DEGRADED,
        )

    def is_usable(self, now: datetime) -> bool:
        """Whether the prediction engine may consult this provider.

        Never-tried providers are allowed so that they can prove themselves.
        """
        if self.is_manually_disabled:
            return False
        if self.health in (IntegrationHealth.FAILED, IntegrationHealth.DISABLED):
            return False
        return not self.is_stale(now)


def _health_for_failures(current: IntegrationHealth, failures: int, thresholds: HealthThresholds) -> IntegrationHealth:
    if failures >= thresholds.failed_after and current in (
        IntegrationHealth.DEGRADED,
        IntegrationHealth.FAILED,
        IntegrationHealth.UNKNOWN,
    ):
        return IntegrationHealth.FAILED
    if failures >= thresholds.degraded_after:
        if current == IntegrationHealth.FAILED:
            return current
        return IntegrationHealth.DEGRADED
    return current


def apply_success(
    status: IntegrationStatus,
    at: datetime,
    duration_seconds: Optional[float] = None,
) -> IntegrationStatus:
    """A sync succeeded."""
    average = status.average_sync_seconds
    if duration_seconds is not None:
        average = duration_seconds if average is None else (average + duration_seconds) / 2

    health = status.health
    if not status.is_manually_disabled:
        health = IntegrationHealth.HEALTHY

    return replace(
        status,
        health=health,
        consecutive_failures=0,
        successful_syncs=status.successful_syncs + 1,
        last_successful_sync=at,
        last_attempted_sync=at,
        last_error=None,
        average_sync_seconds=average,
    )


def apply_failure(
    status: IntegrationStatus,
    error: str,
    at: datetime,
    thresholds: HealthThresholds = HealthThresholds(),
) -> IntegrationStatus:
    """A sync failed hard."""
    failures = status.consecutive_failures + 1
    health = status.health
    if not status.is_manually_disabled:
        health = _health_for_failures(health, failures, thresholds)

    return replace(
        status,
        health=health,
        consecutive_failures=failures,
        total_failures=status.total_failures + 1,
        last_attempted_sync=at,
        last_failed_sync=at,
        last_error=error,
    )


def apply_attempt(status: IntegrationStatus, at: datetime) -> IntegrationStatus:
    """A sync ran but had nothing to report; neither success nor failure."""
    return replace(status, last_attempted_sync=at)


def apply_staleness(status: IntegrationStatus, now: datetime) -> IntegrationStatus:
    """Demote a healthy provider whose data went stale."""
    if status.health == IntegrationHealth.HEALTHY and status.is_stale(now):
        return replace(status, health=IntegrationHealth.DEGRADED)
    return status


def apply_disable(status: IntegrationStatus, reason: str, by: str, at: datetime) -> IntegrationStatus:
    """Manual override; excludes the provider until re-enabled."""
    return replace(
        status,
        health=IntegrationHealth.DISABLED,
        is_manually_disabled=True,
        disabled_reason=reason,
        disabled_by=by,
        disabled_at=at,
    )


def apply_enable(status: IntegrationStatus) -> IntegrationStatus:
    """Manual re-enable; health is re-learned from the next sync."""
    return replace(
        status,
        health=IntegrationHealth.UNKNOWN,
        is_manually_disabled=False,
        disabled_reason=None,
        disabled_by=None,
        disabled_at=None,
    )


class IntegrationHealthMonitor:
    """Thread-safe registry of provider statuses, optionally persisted."""

    def __init__(self, thresholds: HealthThresholds = None, database=None):
        self.thresholds = thresholds or HealthThresholds.from_settings()
        self.database = database
        self._statuses: dict[str, IntegrationStatus] = {}
        self._lock = threading.Lock()

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _default(self, name: str) -> IntegrationStatus:
        return IntegrationStatus(
            name=name,
            stale_threshold=timedelta(hours=settings.health.stale_hours(name)),
        )

    def _get(self, name: str) -> IntegrationStatus:
        if name not in self._statuses:
            self._statuses[name] = self._default(name)
        return self._statuses[name]

    def _put(self, status: IntegrationStatus) -> IntegrationStatus:
        self._statuses[status.name] = status
        if self.database is not None:
            from scoreline.storage import repository

            with self.database.session() as session:
                repository.save_integration_status(session, status)
        return status

    def register(self, name: str, stale_threshold: Optional[timedelta] = None) -> IntegrationStatus:
        """Ensure a provider has a status record."""
        with self._lock:
            status = self._get(name)
            if stale_threshold is not None and stale_threshold != status.stale_threshold:
                status = self._put(replace(status, stale_threshold=stale_threshold))
            return status

    def status(self, name: str, now: Optional[datetime] = None) -> IntegrationStatus:
        """Current status with staleness applied."""
        now = now or self._now()
        with self._lock:
            current = self._get(name)
            evaluated = apply_staleness(current, now)
            if evaluated != current:
                logger.warning(f"Integration {name} data is stale, marking degraded")
                self._put(evaluated)
            return evaluated

    def all_statuses(self, now: Optional[datetime] = None) -> list[IntegrationStatus]:
        with self._lock:
            names = sorted(self._statuses)
        return [self.status(name, now) for name in names]

    def record_success(self, name: str, duration_seconds: Optional[float] = None, at: Optional[datetime] = None) -> IntegrationStatus:
        at = at or self._now()
        with self._lock:
            status = self._put(apply_success(self._get(name), at, duration_seconds))
        logger.info(f"Integration {name} sync successful")
        return status

    def record_failure(self, name: str, error: str, at: Optional[datetime] = None) -> IntegrationStatus:
        at = at or self._now()
        with self._lock:
            status = self._put(apply_failure(self._get(name), error, at, self.thresholds))
        logger.warning(
            f"Integration {name} sync failed ({status.consecutive_failures} consecutive): {error}"
        )
        return status

    def record_attempt(self, name: str, at: Optional[datetime] = None) -> IntegrationStatus:
        at = at or self._now()
        with self._lock:
            return self._put(apply_attempt(self._get(name), at))

    def disable(self, name: str, reason: str, by: str = "admin") -> IntegrationStatus:
        with self._lock:
            status = self._put(apply_disable(self._get(name), reason, by, self._now()))
        logger.warning(f"Integration {name} manually disabled by {by}: {reason}")
        return status

    def enable(self, name: str) -> IntegrationStatus:
        with self._lock:
            status = self._put(apply_enable(self._get(name)))
        logger.info(f"Integration {name} re-enabled")
        return status

    def load(self) -> int:
        """Restore statuses from the database."""
        if self.database is None:
            return 0
        from scoreline.storage import repository

        with self.database.session() as session:
            loaded = repository.load_integration_statuses(session)
        with self._lock:
            for status in loaded:
                self._statuses[status.name] = status
        logger.info(f"Loaded {len(loaded)} integration statuses")
        return len(loaded)


# Singleton instance
_monitor: Optional[IntegrationHealthMonitor] = None


def get_health_monitor() -> IntegrationHealthMonitor:
    """Get health monitor singleton, persisted to the application database."""
    global _monitor
    if _monitor is None:
        from scoreline.storage.database import db

        _monitor = IntegrationHealthMonitor(database=db)
    return _monitor
