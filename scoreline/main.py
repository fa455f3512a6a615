"""Main entry point for the Scoreline service."""
import asyncio
import logging
import signal

logger = logging.getLogger(__name__)


async def startup():
    """Startup routine."""
    from scoreline.config import setup_logging
    from scoreline.services import get_scheduler
    from scoreline.services.integration_health import get_health_monitor
    from scoreline.storage.database import db

    setup_logging()
    logger.info("Starting Scoreline")

    # Initialize database and restore provider health
    db.create_tables()
    get_health_monitor().load()

    # Start scheduler
    scheduler = get_scheduler()
    scheduler.start()

    # Catch up on anything that finished while we were down
    logger.info("Running initial results pass...")
    await scheduler.process_pending_results()
    await scheduler.probe_providers()

    logger.info("Startup complete")


async def shutdown():
    """Shutdown routine."""
    from scoreline.services import get_scheduler

    logger.info("Shutting down...")

    scheduler = get_scheduler()
    scheduler.stop()
    await scheduler.close()

    logger.info("Shutdown complete")


async def run_service():
    """Run until SIGTERM or SIGINT."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    try:
        await startup()
        await stop.wait()
        logger.info("Received stop signal")
    except asyncio.CancelledError:
        logger.info("Service cancelled")
    finally:
        await shutdown()


def main():
    """Main function - entry point for service."""
    try:
        asyncio.run(run_service())
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")


if __name__ == "__main__":
    main()
