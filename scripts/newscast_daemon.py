#!/usr/bin/env python3
"""Newscast daemon - runs the generation service, sweepers and status server.

Wires the record store, speech provider, object store and job service
together, starts the recurrence / retry / cleanup sweepers and serves the
HTTP status API until SIGINT or SIGTERM.

Usage:
    ./scripts/newscast_daemon.py

Exit codes:
    0: Clean shutdown
    1: Configuration error
"""
import asyncio
import logging
import signal
import sys
from pathlib import Path

from aiohttp import web

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from newscast.brief_store import BriefStore
from newscast.config import config
from newscast.object_store import LocalObjectStore
from newscast.progress_bus import ProgressBus
from newscast.runner import JobRunner
from newscast.service import GenerationService
from newscast.status_server import create_app
from newscast.sweepers import CleanupSweeper, RecurrenceSweeper, RetrySweeper
from newscast.voice_synth import get_speech_provider

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def run() -> None:
    store = BriefStore(config.paths.db_path)
    store.init_schema()

    provider = get_speech_provider(config)
    object_store = LocalObjectStore(
        public_root=config.paths.audio_path,
        public_base_url=config.branding.public_base_url,
        private_root=config.paths.private_audio_path,
    )
    bus = ProgressBus()
    runner = JobRunner.from_config(config, store, provider, object_store, bus)
    service = GenerationService.from_config(config, store, runner, bus)
    service.start()

    ops = config.operational
    locks = config.paths.locks_path
    sweepers = [
        RecurrenceSweeper(
            store, service,
            interval_seconds=ops.recurrence_interval_seconds,
            lock_path=locks / "recurrence.lock",
        ),
        RetrySweeper(
            store, service,
            ceiling=ops.retry_ceiling,
            interval_seconds=ops.retry_interval_seconds,
            lock_path=locks / "retry.lock",
        ),
        CleanupSweeper(
            object_store,
            max_age_minutes=ops.temp_file_max_age_minutes,
            interval_seconds=ops.cleanup_interval_seconds,
            lock_path=locks / "cleanup.lock",
        ),
    ]
    for sweeper in sweepers:
        sweeper.start()

    app_runner = web.AppRunner(create_app(service), access_log=None)
    await app_runner.setup()
    site = web.TCPSite(app_runner, host=ops.status_host, port=ops.status_port)
    await site.start()
    logger.info(f"Status server listening on {ops.status_host}:{ops.status_port}")

    # Handle signals for graceful shutdown
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop_event.set)

    await stop_event.wait()
    logger.info("Shutting down...")

    for sweeper in sweepers:
        await sweeper.stop()
    await service.stop(timeout=config.tts.synthesis_timeout_seconds * 2)
    await app_runner.cleanup()
    if hasattr(provider, "aclose"):
        await provider.aclose()
    store.close()
    logger.info("Shutdown complete")


def main() -> int:
    try:
        config.validate_production_config()
    except ValueError as e:
        logger.error(str(e))
        return 1

    asyncio.run(run())
    return 0


if __name__ == "__main__":
    sys.exit(main())
