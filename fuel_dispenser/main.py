"""
Fuel Dispenser Controller - Main entry point.

Builds the controller from settings, connects every peripheral channel
and runs the fueling state machine until interrupted.

Usage:
    python -m fuel_dispenser.main
"""

import asyncio
from typing import Optional

from redis.asyncio import Redis

from fuel_dispenser.application.main_controller import MainController
from fuel_dispenser.infrastructure.redis_repository import PumpStatusRepository
from fuel_dispenser.infrastructure.settings import Settings, get_settings
from fuel_dispenser.loggers import logger


def create_status_repository(settings: Settings) -> Optional[PumpStatusRepository]:
    """
    Create the Redis status mirror if it is enabled.

    Args:
        settings: Application settings.

    Returns:
        The repository, or None when the mirror is disabled.
    """
    if not settings.redis.enabled:
        return None

    redis = Redis(
        host=settings.redis.host,
        port=settings.redis.port,
        decode_responses=settings.redis.decode_responses,
    )
    logger.info(f"Mirroring pump status to Redis at {settings.redis.host}:{settings.redis.port}")
    return PumpStatusRepository(redis, key_prefix=settings.redis.key_prefix)


async def main() -> None:
    """
    Main entry point for the dispenser controller.

    Starts the peripheral channels and runs the controller loop; every
    channel is closed on the way out.
    """
    settings = get_settings()
    repository = create_status_repository(settings)
    controller = MainController.from_settings(settings, status_repository=repository)

    await controller.start()
    try:
        await controller.run()
    finally:
        await controller.shutdown()
        if repository is not None:
            await repository.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Application stopped by user")
