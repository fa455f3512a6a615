"""Configuration module initialization."""
import logging
import sys

from .settings import settings, load_bot_profiles, get_bot_profile


def setup_logging() -> None:
    """Configure application logging."""
    handlers = [logging.StreamHandler(sys.stdout)]

    if settings.log_file:
        # Ensure log directory exists
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(settings.log_file, mode="a"))

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )


# Auto-setup on import
setup_logging()

__all__ = ["settings", "setup_logging", "load_bot_profiles", "get_bot_profile"]
