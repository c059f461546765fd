# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Working Date Reconciler - Turn calendar picks into working date changes

The user picks dates on a calendar to toggle a master's working status.
Picked dates that are already working days are removed; the rest are added.
After every commit the persisted set is fetched again from the server and
the picks are cleared, so the calendar always shows what actually committed.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

import config
from models import WorkingDate
from sync.poller import ConfigurationError, SessionStateError
from utils.logger import StructuredLogger
from utils.timezone import parse_api_time, utc_now

logger = logging.getLogger(__name__)

TimeValue = Union[str, time, None]


class ReconcilerState(Enum):
    """Edit session states"""
    IDLE = "idle"
    PENDING = "pending"
    COMMITTING = "committing"


@dataclass(frozen=True)
class SelectionDiff:
    """Split of a tentative selection against the persisted working dates"""
    to_add: FrozenSet[date]
    to_delete: FrozenSet[date]

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_delete


def diff_selection(selection: Iterable[date], persisted: Iterable[date]) -> SelectionDiff:
    """
    Partition the selection into dates to add and dates to delete.

    Selecting a date that is already a working day means removing it, so
    every selected date lands in exactly one of the two sets.
    """
    selected = frozenset(selection)
    existing = frozenset(persisted)
    return SelectionDiff(to_add=selected - existing, to_delete=selected & existing)


@dataclass
class CommitSummary:
    """Per-date results of one commit branch"""
    action: str
    requested: Tuple[date, ...] = ()
    succeeded: List[date] = field(default_factory=list)
    failed: Dict[date, str] = field(default_factory=dict)
    cancelled: bool = False
    refresh_error: Optional[str] = None

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def ok(self) -> bool:
        return not self.cancelled and not self.failed and self.refresh_error is None

    def message(self) -> str:
        """User-facing summary line"""
        if self.cancelled:
            return f"{self.action}: cancelled, {len(self.requested)} date(s) left unchanged"

        text = f"{self.action}: {self.success_count} of {len(self.requested)} date(s) succeeded"
        if self.failed:
            reasons = "; ".join(f"{day.isoformat()}: {reason}" for day, reason in sorted(self.failed.items()))
            text += f", {self.failure_count} failed ({reasons})"
        if self.refresh_error:
            text += f"; could not reload working dates: {self.refresh_error}"
        return text


def _parse_hours(value: TimeValue, default: str) -> time:
    parsed = parse_api_time(value if value is not None else default)
    if parsed is None:
        raise ValueError(f"Invalid time value: {value!r}")
    return parsed


def _month_span(first: date, last: date) -> List[Tuple[int, int]]:
    months = []
    year, month = first.year, first.month
    while (year, month) <= (last.year, last.month):
        months.append((year, month))
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return months


class WorkingDateReconciler:
    """Edit session for one master's working dates at one branch"""

    def __init__(self, master_id: str, branch_id: str, reader, writer,
                 confirm: Optional[Callable[[List[date]], object]] = None,
                 default_start: Optional[str] = None, default_end: Optional[str] = None):
        if not master_id:
            raise ConfigurationError("A master identifier is required")
        if not branch_id:
            raise ConfigurationError("A branch identifier is required")

        self.master_id = str(master_id)
        self.branch_id = str(branch_id)
        self.reader = reader
        self.writer = writer
        self.confirm = confirm
        self.default_start = default_start or config.DEFAULT_WORK_START
        self.default_end = default_end or config.DEFAULT_WORK_END

        self.state = ReconcilerState.IDLE
        self.stale = False
        self.last_refreshed = None

        self._selection = set()
        self._persisted: Dict[date, WorkingDate] = {}
        self._visible: Optional[Tuple[date, date]] = None

        self.structured_logger = StructuredLogger(__name__)

    # ------------------------------------------------------------------
    # Visible range and tentative selection
    # ------------------------------------------------------------------

    def set_visible_range(self, first: date, last: date):
        """Set the dates the calendar widget shows; picks outside it are dropped"""
        if last < first:
            raise ValueError("Visible range ends before it starts")

        self._visible = (first, last)
        outside = {day for day in self._selection if not self.is_visible(day)}
        if outside:
            logger.info(f"Dropping {len(outside)} selected date(s) outside the visible range")
            self._selection -= outside
        self._sync_state()

    @property
    def visible_months(self) -> List[Tuple[int, int]]:
        if self._visible is None:
            return []
        return _month_span(*self._visible)

    def is_visible(self, day: date) -> bool:
        return self._visible is not None and self._visible[0] <= day <= self._visible[1]

    @property
    def selection(self) -> FrozenSet[date]:
        return frozenset(self._selection)

    def toggle(self, day: date) -> bool:
        """Toggle a pick; returns True if the date is now selected"""
        self._check_editable(day)
        if day in self._selection:
            self._selection.discard(day)
            selected = False
        else:
            self._selection.add(day)
            selected = True
        self._sync_state()
        return selected

    def select(self, days: Iterable[date]):
        days = list(days)
        for day in days:
            self._check_editable(day)
        self._selection.update(days)
        self._sync_state()

    def clear_selection(self):
        self._check_not_committing()
        self._selection.clear()
        self._sync_state()

    def pending_diff(self) -> SelectionDiff:
        return diff_selection(self._selection, self._persisted)

    # ------------------------------------------------------------------
    # Persisted set
    # ------------------------------------------------------------------

    @property
    def persisted_dates(self) -> FrozenSet[date]:
        return frozenset(self._persisted)

    def is_working_day(self, day: date) -> bool:
        return day in self._persisted

    def working_days(self) -> List[date]:
        return sorted(self._persisted)

    def working_date(self, day: date) -> Optional[WorkingDate]:
        return self._persisted.get(day)

    async def refresh(self) -> List[date]:
        """Reload the persisted working dates for every visible month"""
        if self._visible is None:
            raise SessionStateError("Set the visible range before loading working dates")

        batches = await asyncio.gather(*(
            asyncio.to_thread(self.reader.get_working_dates, self.master_id, month, year, self.branch_id)
            for year, month in self.visible_months
        ))

        persisted = {}
        for batch in batches:
            for working_date in batch:
                persisted[working_date.work_date] = working_date

        self._persisted = persisted
        self.stale = False
        self.last_refreshed = utc_now()
        logger.info(f"Loaded {len(persisted)} working dates for master {self.master_id}")
        return self.working_days()

    # ------------------------------------------------------------------
    # Commits
    # ------------------------------------------------------------------

    async def commit_additions(self, start_time: TimeValue = None,
                               end_time: TimeValue = None) -> CommitSummary:
        """Add every selected date that is not yet a working day"""
        self._check_not_committing()
        diff = self.pending_diff()
        if not diff.to_add:
            return CommitSummary(action="add")

        start, end = self._hours(start_time, end_time)
        summaries = await self._commit([("add", diff.to_add)], start, end)
        return summaries[0]

    async def commit_deletions(self) -> CommitSummary:
        """Remove every selected date that is already a working day, after confirmation"""
        self._check_not_committing()
        diff = self.pending_diff()
        if not diff.to_delete:
            return CommitSummary(action="delete")

        if not await self._confirm_deletion(diff.to_delete):
            return CommitSummary(action="delete", requested=tuple(sorted(diff.to_delete)), cancelled=True)

        summaries = await self._commit([("delete", diff.to_delete)])
        return summaries[0]

    async def commit(self, start_time: TimeValue = None,
                     end_time: TimeValue = None) -> List[CommitSummary]:
        """Apply the whole pending diff: additions first, then confirmed deletions"""
        self._check_not_committing()
        diff = self.pending_diff()
        if diff.is_empty:
            return []

        batches = []
        start = end = None
        if diff.to_add:
            start, end = self._hours(start_time, end_time)
            batches.append(("add", diff.to_add))

        declined = None
        if diff.to_delete:
            if await self._confirm_deletion(diff.to_delete):
                batches.append(("delete", diff.to_delete))
            else:
                declined = CommitSummary(action="delete", requested=tuple(sorted(diff.to_delete)),
                                         cancelled=True)

        if not batches:
            return [declined]

        summaries = await self._commit(batches, start, end)
        if declined is not None:
            # Declined deletions stay selected for another attempt
            self._selection.update(day for day in declined.requested if day in self._persisted)
            self._sync_state()
            summaries.append(declined)
        return summaries

    async def reschedule(self, day: date, start_time: TimeValue, end_time: TimeValue) -> CommitSummary:
        """Change the hours of an existing working day (delete, then add)"""
        self._check_not_committing()
        if day not in self._persisted:
            raise ValueError(f"{day.isoformat()} is not a working day")
        start, end = self._hours(start_time, end_time)

        previous_state = self.state
        self.state = ReconcilerState.COMMITTING
        summary = CommitSummary(action="reschedule", requested=(day,))
        try:
            try:
                await asyncio.to_thread(self.writer.delete_working_date, self.master_id, day, self.branch_id)
                await asyncio.to_thread(self.writer.add_working_date, self.master_id,
                                        WorkingDate(day, start, end, self.branch_id))
            except Exception as e:
                summary.failed[day] = str(e) or type(e).__name__
            else:
                summary.succeeded.append(day)

            await self._reload_after_commit([summary])
        finally:
            self.state = previous_state

        self._log_summary(summary)
        return summary

    async def _commit(self, batches, start: Optional[time] = None,
                      end: Optional[time] = None) -> List[CommitSummary]:
        self.state = ReconcilerState.COMMITTING
        try:
            summaries = []
            for action, dates in batches:
                if action == "add":
                    summary = await self._run_batch(
                        action, dates,
                        lambda day: self.writer.add_working_date(
                            self.master_id, WorkingDate(day, start, end, self.branch_id))
                    )
                else:
                    summary = await self._run_batch(
                        action, dates,
                        lambda day: self.writer.delete_working_date(self.master_id, day, self.branch_id)
                    )
                summaries.append(summary)

            # The server is the source of truth after every commit
            await self._reload_after_commit(summaries)
            self._selection.clear()
        except BaseException:
            self.state = ReconcilerState.PENDING if self._selection else ReconcilerState.IDLE
            raise

        self.state = ReconcilerState.IDLE
        for summary in summaries:
            self._log_summary(summary)
        return summaries

    async def _run_batch(self, action: str, dates: Iterable[date], operation) -> CommitSummary:
        """Run one operation per date concurrently; failures stay per date"""
        ordered = sorted(dates)
        results = await asyncio.gather(
            *(asyncio.to_thread(operation, day) for day in ordered),
            return_exceptions=True
        )

        summary = CommitSummary(action=action, requested=tuple(ordered))
        for day, result in zip(ordered, results):
            if isinstance(result, Exception):
                summary.failed[day] = str(result) or type(result).__name__
            elif isinstance(result, BaseException):
                raise result
            elif result is False:
                summary.failed[day] = "rejected by server"
            else:
                summary.succeeded.append(day)
        return summary

    async def _reload_after_commit(self, summaries: List[CommitSummary]):
        try:
            await self.refresh()
        except Exception as e:
            self.stale = True
            logger.error(f"❌ Could not reload working dates for master {self.master_id}: {e}")
            for summary in summaries:
                summary.refresh_error = str(e) or type(e).__name__

    async def _confirm_deletion(self, dates: Iterable[date]) -> bool:
        ordered = sorted(dates)
        if self.confirm is None:
            logger.warning(f"Deletion of {len(ordered)} working date(s) needs confirmation; none available")
            return False

        answer = self.confirm(ordered)
        if inspect.isawaitable(answer):
            answer = await answer
        if not answer:
            logger.info(f"Deletion of {len(ordered)} working date(s) declined")
        return bool(answer)

    def _hours(self, start_time: TimeValue, end_time: TimeValue) -> Tuple[time, time]:
        start = _parse_hours(start_time, self.default_start)
        end = _parse_hours(end_time, self.default_end)
        if end <= start:
            raise ValueError(f"End time {end} must be after start time {start}")
        return start, end

    def _log_summary(self, summary: CommitSummary):
        event_type = 'working_dates_committed' if summary.ok else 'working_dates_commit_warning'
        self.structured_logger.log_sync_event(event_type, {
            'master_id': self.master_id,
            'branch_id': self.branch_id,
            'action': summary.action,
            'succeeded': summary.success_count,
            'failed': summary.failure_count,
            'failures': {day.isoformat(): reason for day, reason in summary.failed.items()},
            'refresh_error': summary.refresh_error,
        })

    def _check_editable(self, day: date):
        self._check_not_committing()
        if self._visible is None:
            raise SessionStateError("Set the visible range before selecting dates")
        if not self.is_visible(day):
            raise ValueError(f"{day.isoformat()} is outside the visible calendar range")

    def _check_not_committing(self):
        if self.state is ReconcilerState.COMMITTING:
            raise SessionStateError("A working date commit is already in progress")

    def _sync_state(self):
        self.state = ReconcilerState.PENDING if self._selection else ReconcilerState.IDLE
