"""
Entry point: run the scheduling and publication core.

Rehydrates the schedule from Supabase, then runs the maintenance loop
until interrupted.

Usage::

    python run.py
"""

import asyncio
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("run")


async def main() -> None:
    from command_center.config import get_settings, validate_env
    from command_center.database import get_db
    from command_center.exceptions import RetryExhaustedError
    from command_center.logging import LogLevel, init_logger
    from command_center.notifications import LoggingNotifier, TelegramNotifier
    from command_center.platforms import PlatformPublisher, default_clients
    from command_center.scheduling import ContentSchedulingService

    validate_env(strict=True)
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    db = await get_db()
    telegram = TelegramNotifier.from_env()
    audit = init_logger(
        log_dir=settings.log_dir,
        db=db,
        telegram_notifier=telegram,
        min_level=LogLevel.from_name(settings.log_level),
    )

    service = ContentSchedulingService(
        db,
        PlatformPublisher(default_clients(settings.platforms)),
        notifier=telegram or LoggingNotifier(),
        settings=settings,
    )

    try:
        report = await service.start()
    except RetryExhaustedError:
        logger.exception("Store unavailable during rehydration, exiting")
        await audit.flush()
        sys.exit(1)

    logger.info(
        "Schedule rehydrated: armed=%d executed=%d recovered=%d",
        len(report.armed),
        len(report.executed),
        len(report.recovered),
    )

    try:
        await service.run_maintenance()
    finally:
        await service.stop()
        await audit.flush()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(0)
