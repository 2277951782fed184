import asyncio
import logging
import os
import signal
import sys
import threading

from config import Settings, load_settings
from config.constants import LOG_LEVEL_ENV
from config.settings import summarize_settings
from database import close_client
from migrations import apply_migrations
from services.change_stream_service import MatchChangeStream, enable_pre_images
from services.heartbeat_service import upsert_worker_heartbeat
from services.recovery_service import reconcile_leaderboards, run_startup_recovery
from services.scheduler import Scheduler
from utils.metrics import snapshot

LOG_FORMAT = "%(asctime)s level=%(levelname)s name=%(name)s msg=\"%(message)s\""


def setup_logging() -> None:
    level = os.getenv(LOG_LEVEL_ENV, "INFO").upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.captureWarnings(True)


def install_excepthook() -> None:
    def _hook(exc_type, exc_value, exc_traceback):
        logging.error(
            "Uncaught exception",
            exc_info=(exc_type, exc_value, exc_traceback),
        )
    sys.excepthook = _hook


def install_asyncio_exception_handler(loop: asyncio.AbstractEventLoop) -> None:
    def _handle(loop: asyncio.AbstractEventLoop, context: dict) -> None:
        msg = context.get("message", "Asyncio task exception")
        exc = context.get("exception")
        logging.error("%s", msg, exc_info=exc)
    loop.set_exception_handler(_handle)


def install_signal_handlers(loop: asyncio.AbstractEventLoop, stop: asyncio.Event) -> None:
    """
    Install SIGTERM/SIGINT handlers to trigger a graceful shutdown.
    """
    try:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop.set)
    except (NotImplementedError, RuntimeError):
        logging.debug("Signal handlers not installed on this platform.")


class LeaderboardWorker:
    def __init__(self, settings: Settings, *, stream: MatchChangeStream | None = None) -> None:
        self.settings = settings
        self.stream = stream or MatchChangeStream(settings)
        self.scheduler = Scheduler()
        self.stop_event = threading.Event()

    def heartbeat(self) -> None:
        upsert_worker_heartbeat(
            self.settings,
            last_event_at=self.stream.last_event_at,
            events_handled=self.stream.events_handled,
        )
        if "metrics_log" in {flag.lower() for flag in self.settings.feature_flags}:
            counters, timings = snapshot()
            logging.info("Worker metrics counters=%s timings=%s", counters, timings)

    def reconcile(self) -> None:
        result = reconcile_leaderboards(self.settings)
        logging.info(
            "Periodic reconcile checked=%s updated=%s skipped=%s failed=%s",
            result.checked,
            result.updated,
            result.skipped,
            len(result.failed),
        )

    def register_jobs(self) -> None:
        self.scheduler.add_job("heartbeat", float(self.settings.heartbeat_interval_seconds), self.heartbeat)
        if self.settings.reconcile_interval_seconds > 0:
            self.scheduler.add_job("reconcile", float(self.settings.reconcile_interval_seconds), self.reconcile)

    async def run(self, shutdown: asyncio.Event) -> None:
        """
        Run the change stream in a thread until shutdown is requested or the stream gives up.
        """
        self.register_jobs()
        await self.scheduler.start()
        stream_task = asyncio.create_task(asyncio.to_thread(self.stream.run, self.stop_event))
        shutdown_task = asyncio.create_task(shutdown.wait())
        try:
            await asyncio.wait({stream_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            self.stop_event.set()
            shutdown_task.cancel()
            try:
                await self.scheduler.stop()
            except Exception:
                logging.exception("Scheduler stop failed.")
        # Surfaces the stream's error, if it stopped on one.
        await stream_task


async def _serve(settings: Settings) -> None:
    loop = asyncio.get_running_loop()
    install_asyncio_exception_handler(loop)
    shutdown = asyncio.Event()
    install_signal_handlers(loop, shutdown)
    worker = LeaderboardWorker(settings)
    await worker.run(shutdown)


def main() -> None:
    setup_logging()
    install_excepthook()
    settings: Settings
    try:
        settings = load_settings()
    except RuntimeError as exc:
        logging.error("Configuration error: %s", exc)
        raise
    logging.info("Loaded configuration (non-secret): %s", summarize_settings(settings))
    # Run migrations and recovery before consuming events.
    try:
        latest = apply_migrations(settings=settings, logger=logging.getLogger(__name__))
        logging.info("Schema migrations complete; current version %s.", latest)
    except Exception:
        logging.exception("Failed during migrations.")
        raise
    if settings.change_stream_pre_images:
        enable_pre_images(settings)
    if settings.reconcile_on_start:
        try:
            run_startup_recovery(settings, logger=logging.getLogger(__name__))
        except Exception:
            logging.exception("Startup recovery encountered an error.")
            raise

    try:
        asyncio.run(_serve(settings))
    except KeyboardInterrupt:
        logging.info("Shutdown requested, exiting.")
    except Exception:
        logging.exception("Worker exited with an error.")
        raise
    finally:
        logging.info("Worker shutdown complete.")
        close_client()


if __name__ == "__main__":
    main()
