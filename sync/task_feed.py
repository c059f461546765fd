# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Enriched Task Feed - Subscriber that turns fetch outcomes into display records
"""
import logging
from typing import Callable, List, Optional

from models import DateWindow, EnrichedTaskRecord, FetchOutcome, MasterRecord
from sync.merger import SortKey, merge

logger = logging.getLogger(__name__)


class EnrichedTaskFeed:
    """
    Keeps the latest enriched task list for one date window.

    A failed tick or roster fetch leaves the previous records in place and
    sets last_error, so views can show stale data with an error badge.
    Outcomes fetched for a different window are ignored. When attached to a
    session the feed follows the session's window; records from a previous
    window are dropped as soon as the window changes.
    """

    def __init__(self, roster_fetcher, window: Optional[DateWindow] = None,
                 sort_by: Optional[SortKey] = None, descending: bool = False,
                 on_update: Optional[Callable[[List[EnrichedTaskRecord]], None]] = None):
        self.roster_fetcher = roster_fetcher
        self._window = window
        self._session = None
        self.sort_by = sort_by
        self.descending = descending
        self.on_update = on_update

        self.records: List[EnrichedTaskRecord] = []
        self.roster: Optional[List[MasterRecord]] = None
        self.last_error: Optional[str] = None
        self.last_updated = None

        # Delivery sequence numbers
        self._delivered = 0
        self._applied = 0
        self._last_failure = 0
        self._shown_window: Optional[DateWindow] = None

    @property
    def window(self) -> Optional[DateWindow]:
        if self._session is not None and self._session.window is not None:
            return self._session.window
        return self._window

    def attach(self, session) -> Callable[[], None]:
        """Subscribe to a polling session, following its current window"""
        self._session = session
        unsubscribe = session.subscribe(self)

        def detach():
            unsubscribe()
            self._window = self.window
            self._session = None

        return detach

    def set_window(self, window: DateWindow):
        """Pin the window of a feed that is not attached to a session"""
        if self._session is not None:
            raise RuntimeError("An attached feed follows its session's window; use session.set_window")
        self._window = window

    async def __call__(self, outcome: FetchOutcome):
        window = self.window
        if window is not None and outcome.window is not None and outcome.window != window:
            logger.debug(f"Ignoring outcome for another window ({outcome.window.to_params()})")
            return

        self._follow_window(window)

        # Delivery order decides which outcome wins, even if a later one merges first
        self._delivered += 1
        sequence = self._delivered

        if not outcome.success:
            self._fail(sequence, outcome.error)
            logger.warning(f"⚠️ Task refresh failed, keeping {len(self.records)} previous records: {outcome.error}")
            return

        roster = await self._load_roster(outcome.window.branch_id, sequence)
        if roster is None:
            return

        if sequence < self._applied:
            logger.debug(f"Discarding superseded outcome from {outcome.timestamp}")
            return
        if self.window is not None and outcome.window != self.window:
            logger.debug("Window changed while loading the roster - discarding outcome")
            return

        self.records = merge(outcome.records, roster, sort_by=self.sort_by,
                             descending=self.descending, log=logger)
        self._applied = sequence
        self._shown_window = outcome.window
        # A failure delivered after this outcome keeps its error badge
        if sequence > self._last_failure:
            self.last_error = None
        self.last_updated = outcome.timestamp

        if self.on_update:
            self.on_update(self.records)

    def _follow_window(self, window: Optional[DateWindow]):
        if window is None or self._shown_window is None or window == self._shown_window:
            return

        logger.info(f"Date window changed - dropping {len(self.records)} records from the previous window")
        self.records = []
        self.last_error = None
        self.last_updated = None
        self._shown_window = None

    def _fail(self, sequence: int, error: Optional[str]):
        if sequence > self._last_failure:
            self._last_failure = sequence
        if sequence >= self._applied:
            self.last_error = error

    async def _load_roster(self, branch_id: str, sequence: int) -> Optional[List[MasterRecord]]:
        try:
            self.roster = list(await self.roster_fetcher(branch_id))
        except Exception as e:
            if self.roster is None:
                self._fail(sequence, f"Roster unavailable: {e}")
                logger.error(f"❌ Cannot enrich tasks without a roster: {e}")
                return None
            logger.warning(f"⚠️ Roster fetch failed, reusing previous roster: {e}")
        return self.roster
