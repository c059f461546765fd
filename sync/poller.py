# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Polling Session - Periodic task fetching with fan-out to subscribers

A session owns at most one repeating timer. Every tick fetches tasks for the
session's date window and delivers the outcome, success or failure, to every
subscriber. Ticks never overlap: a tick that comes due while the previous
fetch or its notifications are still running is skipped, not queued.

A fetch that exceeds the timeout is reported as failed, but a blocking HTTP
call running in a worker thread cannot be interrupted. It finishes in the
background, may overlap the next tick's request, and its late result is
discarded.
"""
import asyncio
import inspect
import logging
from typing import Awaitable, Callable, List, Optional, Union

import config
from models import DateWindow, FetchOutcome, TaskRecord
from sync.history import PollHistory
from utils.logger import StructuredLogger
from utils.timezone import format_local_time, utc_now

logger = logging.getLogger(__name__)

Fetcher = Callable[[DateWindow], Awaitable[List[TaskRecord]]]
Subscriber = Callable[[FetchOutcome], Union[None, Awaitable[None]]]


class ConfigurationError(Exception):
    """Raised when a session cannot run with the given configuration"""


class SessionStateError(RuntimeError):
    """Raised when an operation is not valid in the session's current state"""


class _Subscription:
    __slots__ = ('callback', 'active')

    def __init__(self, callback: Subscriber):
        self.callback = callback
        self.active = True


class PollingSession:
    """Keeps a task view fresh by fetching on a fixed cadence"""

    def __init__(self, fetcher: Fetcher, interval: Optional[float] = None,
                 settle_delay: Optional[float] = None, fetch_timeout: Optional[float] = None,
                 clock: Callable = utc_now, history: Optional[PollHistory] = None,
                 name: str = "tasks"):
        self.fetcher = fetcher
        self.interval = config.POLL_INTERVAL_SECONDS if interval is None else interval
        self.settle_delay = config.RESTART_SETTLE_SECONDS if settle_delay is None else settle_delay
        self.fetch_timeout = config.FETCH_TIMEOUT_SECONDS if fetch_timeout is None else fetch_timeout
        self.clock = clock
        self.history = history or PollHistory()
        self.name = name

        if self.interval <= 0:
            raise ConfigurationError("Polling interval must be positive")

        # Session state
        self.window: Optional[DateWindow] = None
        self.last_outcome: Optional[FetchOutcome] = None
        self.last_success: Optional[FetchOutcome] = None
        self.skipped_ticks = 0

        self._timer_task: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._in_flight = set()
        self._subscriptions: List[_Subscription] = []
        self._restart_lock = asyncio.Lock()
        self._closed = False

        self.structured_logger = StructuredLogger(__name__)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    @property
    def is_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def tick_in_flight(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    def start(self, window: DateWindow):
        """
        Start a new polling cycle for the window.

        Performs one fetch immediately, then one per interval. Must be called
        from a running event loop.

        Raises:
            ConfigurationError: The window has no branch identifier
            SessionStateError: A cycle is already running or the session is closed
        """
        self._ensure_open()
        self._validate_window(window)

        if self.is_running:
            raise SessionStateError(f"Polling session '{self.name}' is already running; stop it first")

        loop = asyncio.get_running_loop()
        self.window = window

        started_at = loop.time()
        # A late tick from a previous cycle never blocks the new cycle's first fetch
        self._fire_tick(window, force=True)
        self._timer_task = loop.create_task(self._run_timer(window, started_at))

        logger.info(
            f"Started polling session '{self.name}' for branch {window.branch_id} "
            f"every {self.interval:g}s at {format_local_time(self.clock())}"
        )

    def stop(self):
        """Cancel the timer; an in-flight fetch still completes and is delivered"""
        if not self.is_running:
            logger.debug(f"Polling session '{self.name}' is not running")
            return

        self._timer_task.cancel()
        self._timer_task = None
        logger.info(f"Stopped polling session '{self.name}' at {format_local_time(self.clock())}")

    async def restart(self, window: Optional[DateWindow] = None):
        """Stop, let the old cycle settle, then start with the new (or current) window"""
        self._ensure_open()
        window = window or self.window
        self._validate_window(window)

        async with self._restart_lock:
            self.stop()
            await asyncio.sleep(self.settle_delay)

            # Results from the old cycle reach subscribers before the new one begins
            if self.tick_in_flight:
                await asyncio.wait({self._tick_task})

            self._ensure_open()
            self.start(window)

    async def set_window(self, window: DateWindow):
        """Switch to a new window, restarting the cycle if it is running"""
        self._validate_window(window)
        if window == self.window:
            return

        if self.is_running:
            logger.info(f"Date window changed for '{self.name}' - restarting cycle")
            await self.restart(window)
        else:
            self.window = window

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback for every fetch outcome.

        Callbacks may be plain functions or coroutine functions. Returns a
        handle that unsubscribes the callback; calling it more than once is
        harmless, including from inside the callback itself.
        """
        if not callable(callback):
            raise TypeError("Subscriber must be callable")

        subscription = _Subscription(callback)
        self._subscriptions.append(subscription)

        def unsubscribe():
            if subscription.active:
                subscription.active = False
                self._subscriptions.remove(subscription)

        return unsubscribe

    async def fetch_manually(self, window: Optional[DateWindow] = None) -> FetchOutcome:
        """Fetch once outside the cadence; the outcome goes to subscribers and is returned"""
        self._ensure_open()
        window = window or self.window
        self._validate_window(window)

        outcome = await self._fetch(window, source="manual")
        await self._notify(outcome)
        return outcome

    async def close(self):
        """Tear the session down; late results are no longer delivered"""
        if self._closed:
            return

        self.stop()
        self._closed = True

        pending = [task for task in self._in_flight if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for subscription in self._subscriptions:
            subscription.active = False
        self._subscriptions.clear()
        logger.info(f"Closed polling session '{self.name}'")

    def get_status(self) -> dict:
        """Report the session state for status views"""
        window = self.window
        return {
            'name': self.name,
            'is_running': self.is_running,
            'subscribers_count': len(self._subscriptions),
            'tick_in_flight': self.tick_in_flight,
            'skipped_ticks': self.skipped_ticks,
            'interval_seconds': self.interval,
            'window': window.to_params() if window else None,
            'last_outcome_at': self.last_outcome.timestamp.isoformat() if self.last_outcome else None,
            'last_success_at': self.last_success.timestamp.isoformat() if self.last_success else None,
            'statistics': self.history.get_statistics(now=self.clock()),
        }

    async def _run_timer(self, window: DateWindow, started_at: float):
        """Fire ticks on fixed interval boundaries until cancelled"""
        loop = asyncio.get_running_loop()
        next_tick = started_at

        while True:
            next_tick += self.interval
            delay = next_tick - loop.time()
            if delay < 0:
                # The loop fell behind; realign to the next boundary
                missed = int(-delay // self.interval) + 1
                next_tick += missed * self.interval
                delay = next_tick - loop.time()

            await asyncio.sleep(delay)
            self._fire_tick(window)

    def _fire_tick(self, window: DateWindow, force: bool = False):
        if self.tick_in_flight and not force:
            self.skipped_ticks += 1
            logger.warning(f"⏭️ Previous fetch for '{self.name}' still in flight - skipping tick")
            return

        self._tick_task = self._spawn(self._tick(window))

    async def _tick(self, window: DateWindow):
        outcome = await self._fetch(window, source="timer")
        await self._notify(outcome)

    async def _fetch(self, window: DateWindow, source: str) -> FetchOutcome:
        """Run the fetcher and wrap the result; never raises for fetch errors"""
        loop = asyncio.get_running_loop()
        started = loop.time()

        try:
            records = await asyncio.wait_for(self.fetcher(window), timeout=self.fetch_timeout)
        except asyncio.TimeoutError:
            outcome = FetchOutcome.failed(
                f"Fetch timed out after {self.fetch_timeout:g}s", self.clock(), window,
                duration=loop.time() - started, source=source)
        except ConfigurationError as e:
            # Nothing will succeed until the configuration changes
            logger.error(f"❌ Configuration error in '{self.name}', halting cycle: {e}")
            self.stop()
            outcome = FetchOutcome.failed(str(e), self.clock(), window,
                                          duration=loop.time() - started, source=source)
        except Exception as e:
            outcome = FetchOutcome.failed(str(e) or type(e).__name__, self.clock(), window,
                                          duration=loop.time() - started, source=source)
        else:
            outcome = FetchOutcome.succeeded(list(records or []), self.clock(), window,
                                             duration=loop.time() - started, source=source)

        self._record(outcome)
        return outcome

    def _record(self, outcome: FetchOutcome):
        self.last_outcome = outcome
        if outcome.success:
            self.last_success = outcome
        self.history.add_entry(outcome)

        details = {
            'session': self.name,
            'source': outcome.source,
            'branch_id': outcome.window.branch_id if outcome.window else None,
            'count': outcome.count,
            'duration_seconds': round(outcome.duration, 3),
        }
        if outcome.success:
            self.structured_logger.log_sync_event('tasks_fetched', details)
        else:
            details['error'] = outcome.error
            self.structured_logger.log_sync_event('tasks_fetch_failed', details)

    async def _notify(self, outcome: FetchOutcome):
        """Deliver an outcome to every active subscriber"""
        if self._closed:
            logger.debug(f"Session '{self.name}' closed - dropping outcome from {outcome.timestamp}")
            return

        # Iterate over a snapshot so callbacks can unsubscribe mid-notification
        for subscription in list(self._subscriptions):
            if not subscription.active or self._closed:
                continue
            try:
                result = subscription.callback(outcome)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"❌ Error in subscriber callback for '{self.name}': {e}", exc_info=True)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    def _ensure_open(self):
        if self._closed:
            raise SessionStateError(f"Polling session '{self.name}' is closed")

    @staticmethod
    def _validate_window(window: Optional[DateWindow]):
        if window is None:
            raise ConfigurationError("No date window given")
        branch_id = window.branch_id
        if branch_id is None or not str(branch_id).strip():
            raise ConfigurationError("A branch identifier is required to poll tasks")
