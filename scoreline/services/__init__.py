"""Background services: results pipeline, bot predictions, health and scheduling."""
from scoreline.services.scheduler import SchedulerService, get_scheduler

__all__ = ["SchedulerService", "get_scheduler"]
