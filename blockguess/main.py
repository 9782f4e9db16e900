"""Process entry point: logging setup, session lifespan and background cycles."""
import argparse
import asyncio
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, UTC
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import AsyncIterator, Optional

from blockguess.config import Settings, get_settings
from blockguess.services.game_session import GameSession
from blockguess.version import APP_VERSION

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(settings: Settings) -> Path:
    """
    Configure console and rotating file logging on the root logger.

    Returns the path of the general log file.
    """
    logs_dir = Path(settings.log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = logs_dir / "blockguess.log"

    # 1 MB per file, keep 5 backups
    rotating_handler = RotatingFileHandler(
        log_file,
        maxBytes=1024 * 1024,
        backupCount=5,
        encoding='utf-8',
    )
    rotating_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    # force=True overrides any configuration done by imported libraries
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),
            rotating_handler,
        ],
        force=True,
    )

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger.info("=" * 80)
    logger.info(f"Block Guess {APP_VERSION} logging to {log_file.absolute()}")
    logger.info(f"Current UTC time: {datetime.now(UTC)}")
    logger.info("=" * 80)
    return log_file


async def resolution_watch_cycle(session: GameSession, interval: float) -> None:
    """
    Background task that re-scans the rounds table.

    Picks up rounds written by other store clients, which do not raise local
    table notifications.
    """
    logger.info(f"Resolution watch cycle starting (every {interval}s)")
    while True:
        try:
            if session.connected:
                session.engine.refresh()
            else:
                logger.warning("Store disconnected, skipping resolution watch")
        except Exception as e:
            logger.error(f"Resolution watch cycle error: {e}")

        await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(settings: Optional[Settings] = None) -> AsyncIterator[GameSession]:
    """Start a game session with its background tasks and tear both down on exit."""
    settings = settings or get_settings()

    logger.info("=" * 60)
    logger.info("Block Guess Starting")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Store backend: {settings.store_backend}")
    logger.info(f"Block data API: {settings.block_api_url}")
    logger.info("=" * 60)

    session = GameSession(settings)
    session.connection.connected.subscribe(
        lambda connected: logger.info(f"Connectivity changed: connected={connected}")
    )
    await session.start()

    watch_task = None
    try:
        watch_task = asyncio.create_task(
            resolution_watch_cycle(session, settings.resolution_poll_interval_seconds)
        )
    except Exception as e:
        logger.error(f"Failed to start resolution watch cycle: {e}")

    try:
        yield session
    finally:
        logger.info("Shutting down background tasks...")
        if watch_task:
            watch_task.cancel()
            try:
                await asyncio.wait_for(watch_task, timeout=2.0)
            except asyncio.CancelledError:
                logger.info("Resolution watch task cancelled")
            except asyncio.TimeoutError:
                logger.warning("Resolution watch task did not cancel within timeout, forcing shutdown")
            except Exception as e:
                logger.error(f"Error cancelling resolution watch task: {e}")

        await session.close()
        logger.info("Block Guess Shutting Down... Goodbye!")


async def serve(settings: Optional[Settings] = None) -> None:
    """Run the session until cancelled."""
    async with lifespan(settings):
        await asyncio.Event().wait()


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Run the Block Guess resolution service")
    parser.add_argument("--backend", choices=["memory", "redis"], help="Override STORE_BACKEND")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    args = parser.parse_args(argv)

    if args.backend:
        os.environ["STORE_BACKEND"] = args.backend
    if args.log_level:
        os.environ["LOG_LEVEL"] = args.log_level
    get_settings.cache_clear()
    settings = get_settings()

    configure_logging(settings)
    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
