"""Full rebuild of the cached team forms."""
import logging
from datetime import datetime, timezone
from typing import Optional

from scoreline.models.form_aggregator import FormAggregator, form_aggregator
from scoreline.storage import repository
from scoreline.storage.database import Database

logger = logging.getLogger(__name__)


def rebuild_team_forms(
    database: Optional[Database] = None,
    aggregator: Optional[FormAggregator] = None,
    as_of: Optional[datetime] = None,
) -> int:
    """Recompute every team form from stored matches and replace the cache.

    Returns:
        Number of (team, competition) forms written
    """
    if database is None:
        from scoreline.storage.database import db

        database = db
    aggregator = aggregator or form_aggregator
    as_of = as_of or datetime.now(timezone.utc)

    with database.session() as session:
        matches = repository.finished_matches(session)
        forms = aggregator.rebuild_all(matches, as_of)
        count = repository.save_team_forms(session, forms.values())

    logger.info(f"Team form cache rebuilt from {len(matches)} matches")
    return count
