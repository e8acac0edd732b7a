"""
Simple Update Checker - Update Scheduler
Periodically checks all programs for updates until a shutdown signal arrives.
"""

import logging
import signal
import sys
import threading
from typing import Callable, Optional

import schedule

from core.engine import UpdateEngine
from core.errors import UpdateCheckerError
from core.models import UpdateCheckType
from core.notifications import NotificationDispatcher
from core.store import ProgramStore

logger = logging.getLogger(__name__)

POLL_INTERVAL = 1.0


class UpdateScheduler:
    """
    Runs timed update check passes on a background thread.

    The thread is idle between passes and runs one check and notify pass
    every ``interval`` seconds, counted from the end of the previous pass.
    Errors of a pass are logged and reported as an error notification; they
    never end the loop. Only :meth:`stop` (or a shutdown signal while
    :meth:`run` waits) ends it.
    """

    def __init__(
        self,
        store: ProgramStore,
        engine: UpdateEngine,
        dispatcher: NotificationDispatcher,
        interval: int,
        topic: Optional[str] = None,
    ):
        """
        Args:
            store: Shared program store.
            engine: Engine performing the update checks.
            dispatcher: Dispatcher for update and error notifications.
            interval: Seconds between passes.
            topic: Notification topic; notifications are skipped when None.
        """
        self.store = store
        self.engine = engine
        self.dispatcher = dispatcher
        self.interval = interval
        self.topic = topic
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._schedule = schedule.Scheduler()
        self.passes = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def check_store(self) -> None:
        """
        Make sure the store is usable before starting the loop.

        Raises:
            UpdateCheckerError: If the programs cannot be read.
        """
        logger.info("Checking database connection")
        programs = self.store.get_all_programs()
        logger.info(f"Database connection successful. Currently watched programs: {len(programs)}")
        for program in programs:
            logger.info(f"  {program.name}: {program.display_version} ({program.provider.describe()})")

    def run_pass(self) -> None:
        """Run one timed check and notify pass, handling any error it raises."""
        logger.info("Starting update check")
        try:
            updates = self.engine.check_for_updates(UpdateCheckType.TIMED)
            if updates:
                logger.info("Found updates for the following programs:")
                for program in updates:
                    logger.info(f"  {program.name}: {program.current_version} -> {program.latest_version}")
                if self.topic:
                    self.dispatcher.notify_updates(self.topic, updates)
        except Exception as e:
            logger.error(f"Error while checking for updates: {e}")
            if self.topic:
                self.dispatcher.notify_error(self.topic, str(e))
        finally:
            self.passes += 1
        logger.info(f"Starting next update check in {self.interval} seconds")

    def _loop(self) -> None:
        logger.info(f"Starting update checker loop, check interval: {self.interval} seconds")
        self.run_pass()
        self._schedule.every(self.interval).seconds.do(self.run_pass)
        while not self._stop_event.is_set():
            self._schedule.run_pending()
            self._stop_event.wait(POLL_INTERVAL)
        self._schedule.clear()
        logger.info("Update checker loop stopped")

    def start(self) -> None:
        """Start the background loop."""
        if self.running:
            return
        if not self.topic:
            logger.warning("No notification topic configured, push notifications are disabled")
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="update-checker", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Ask the loop to stop and wait for the current pass to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Update checker loop is still finishing the current pass")
            else:
                self._thread = None

    def _handle_signal(self, signum, frame) -> None:
        logger.info(f"Received {signal.Signals(signum).name}")
        self._stop_event.set()

    def install_signal_handlers(self) -> None:
        for signum in (signal.SIGINT, signal.SIGTERM):
            signal.signal(signum, self._handle_signal)

    def run(self, exit_func: Callable[[int], None] = sys.exit) -> None:
        """
        Check the store, start the loop and block until SIGINT or SIGTERM.

        A failing store check is fatal and exits the process with status 1.
        """
        try:
            self.check_store()
        except UpdateCheckerError as e:
            logger.error(f"Error while connecting to database: {e}")
            exit_func(1)
            return

        self.install_signal_handlers()
        self.start()
        logger.info("Waiting for shutdown signal")
        while not self._stop_event.wait(POLL_INTERVAL):
            pass
        logger.info("Received shutdown signal, shutting down")
        self.stop()
