"""
Working date reconciler tests - selection diffing, commits and refetch
"""

import asyncio
import pytest
from datetime import date, time
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models import WorkingDate
from sync.poller import ConfigurationError, SessionStateError
from sync.working_dates import (
    CommitSummary,
    ReconcilerState,
    WorkingDateReconciler,
    diff_selection,
)

BRANCH = "3"
MASTER = "7"


def working(day, start=time(9, 0), end=time(18, 0)):
    return WorkingDate(day, start, end, BRANCH)


class FakeServer:
    """In-memory stand-in for the working date endpoints"""

    def __init__(self, dates=(), fail_add=(), fail_delete=()):
        self.dates = {d.work_date: d for d in dates}
        self.fail_add = set(fail_add)
        self.fail_delete = set(fail_delete)
        self.fail_reads = False
        self.reads = []
        self.added = []
        self.deleted = []

    # Reader side
    def get_working_dates(self, master_id, month, year, branch_id):
        self.reads.append((year, month))
        if self.fail_reads:
            raise ConnectionError("server unreachable")
        return [d for d in self.dates.values()
                if d.work_date.year == year and d.work_date.month == month]

    # Writer side
    def add_working_date(self, master_id, working_date):
        if working_date.work_date in self.fail_add:
            raise RuntimeError("conflict")
        self.added.append(working_date)
        self.dates[working_date.work_date] = working_date
        return True

    def delete_working_date(self, master_id, work_date, branch_id):
        if work_date in self.fail_delete:
            raise RuntimeError("locked")
        self.deleted.append(work_date)
        self.dates.pop(work_date, None)
        return True


def make_reconciler(server, confirm=lambda dates: True):
    reconciler = WorkingDateReconciler(MASTER, BRANCH, server, server, confirm=confirm)
    reconciler.set_visible_range(date(2025, 1, 1), date(2025, 1, 31))
    return reconciler


class TestDiffSelection:
    """Partition of the selection into additions and deletions"""

    @pytest.mark.working_dates
    def test_new_year_scenario(self):
        diff = diff_selection({date(2025, 1, 1), date(2025, 1, 2)}, {date(2025, 1, 2)})
        assert diff.to_add == {date(2025, 1, 1)}
        assert diff.to_delete == {date(2025, 1, 2)}

    @pytest.mark.working_dates
    def test_bipartition_is_exact(self):
        selection = {date(2025, 1, d) for d in range(1, 11)}
        persisted = {date(2025, 1, d) for d in range(5, 20)}

        diff = diff_selection(selection, persisted)

        assert diff.to_add | diff.to_delete == selection
        assert not diff.to_add & diff.to_delete

    @pytest.mark.working_dates
    def test_empty_selection(self):
        diff = diff_selection([], {date(2025, 1, 2)})
        assert diff.is_empty


class TestSelection:
    """Tentative selection and state transitions"""

    @pytest.mark.working_dates
    def test_toggle_moves_between_idle_and_pending(self):
        reconciler = make_reconciler(FakeServer())
        assert reconciler.state is ReconcilerState.IDLE

        assert reconciler.toggle(date(2025, 1, 5)) is True
        assert reconciler.state is ReconcilerState.PENDING

        assert reconciler.toggle(date(2025, 1, 5)) is False
        assert reconciler.state is ReconcilerState.IDLE

    @pytest.mark.working_dates
    def test_date_outside_visible_range_rejected(self):
        reconciler = make_reconciler(FakeServer())
        with pytest.raises(ValueError):
            reconciler.toggle(date(2025, 2, 1))

    @pytest.mark.working_dates
    def test_selection_requires_visible_range(self):
        reconciler = WorkingDateReconciler(MASTER, BRANCH, FakeServer(), FakeServer())
        with pytest.raises(SessionStateError):
            reconciler.toggle(date(2025, 1, 5))

    @pytest.mark.working_dates
    def test_shrinking_range_drops_hidden_picks(self):
        reconciler = make_reconciler(FakeServer())
        reconciler.select([date(2025, 1, 5), date(2025, 1, 25)])

        reconciler.set_visible_range(date(2025, 1, 1), date(2025, 1, 15))

        assert reconciler.selection == {date(2025, 1, 5)}

    @pytest.mark.working_dates
    def test_visible_months_span_year_boundary(self):
        reconciler = make_reconciler(FakeServer())
        reconciler.set_visible_range(date(2024, 12, 30), date(2025, 2, 2))
        assert reconciler.visible_months == [(2024, 12), (2025, 1), (2025, 2)]

    @pytest.mark.working_dates
    def test_missing_identifiers_rejected(self):
        with pytest.raises(ConfigurationError):
            WorkingDateReconciler("", BRANCH, FakeServer(), FakeServer())


class TestCommits:
    """Committing additions and deletions"""

    @pytest.mark.working_dates
    def test_commit_applies_both_sets_and_refetches(self):
        server = FakeServer([working(date(2025, 1, 2))])
        reconciler = make_reconciler(server)

        async def scenario():
            await reconciler.refresh()
            reconciler.select([date(2025, 1, 1), date(2025, 1, 2)])
            return await reconciler.commit()

        summaries = asyncio.run(scenario())

        assert [s.action for s in summaries] == ["add", "delete"]
        assert all(s.ok for s in summaries)
        assert [d.work_date for d in server.added] == [date(2025, 1, 1)]
        assert server.deleted == [date(2025, 1, 2)]
        assert reconciler.working_days() == [date(2025, 1, 1)]
        assert reconciler.selection == frozenset()
        assert reconciler.state is ReconcilerState.IDLE

    @pytest.mark.working_dates
    def test_added_dates_use_given_hours(self):
        server = FakeServer()
        reconciler = make_reconciler(server)

        async def scenario():
            await reconciler.refresh()
            reconciler.toggle(date(2025, 1, 10))
            return await reconciler.commit_additions("10:00", "16:30")

        summary = asyncio.run(scenario())

        assert summary.success_count == 1
        added = server.added[0]
        assert (added.start_time, added.end_time) == (time(10, 0), time(16, 30))
        assert added.branch_id == BRANCH

    @pytest.mark.working_dates
    def test_invalid_hours_rejected_before_any_write(self):
        server = FakeServer()
        reconciler = make_reconciler(server)

        async def scenario():
            reconciler.toggle(date(2025, 1, 10))
            await reconciler.commit_additions("18:00", "09:00")

        with pytest.raises(ValueError):
            asyncio.run(scenario())
        assert server.added == []
        assert reconciler.state is ReconcilerState.PENDING

    @pytest.mark.working_dates
    def test_partial_failure_reports_per_date(self):
        server = FakeServer(fail_add=[date(2025, 1, 4)])
        reconciler = make_reconciler(server)

        async def scenario():
            await reconciler.refresh()
            reconciler.select([date(2025, 1, 3), date(2025, 1, 4), date(2025, 1, 5)])
            return await reconciler.commit_additions()

        summary = asyncio.run(scenario())

        assert summary.success_count == 2
        assert summary.failure_count == 1
        assert summary.failed == {date(2025, 1, 4): "conflict"}
        assert not summary.ok
        assert "2 of 3" in summary.message()
        # The refetched set reflects what actually committed
        assert reconciler.working_days() == [date(2025, 1, 3), date(2025, 1, 5)]

    @pytest.mark.working_dates
    def test_declined_confirmation_issues_no_deletes(self):
        server = FakeServer([working(date(2025, 1, 2))])
        reconciler = make_reconciler(server, confirm=lambda dates: False)

        async def scenario():
            await reconciler.refresh()
            reconciler.toggle(date(2025, 1, 2))
            return await reconciler.commit_deletions()

        summary = asyncio.run(scenario())

        assert summary.cancelled
        assert server.deleted == []
        assert reconciler.state is ReconcilerState.PENDING
        assert reconciler.selection == {date(2025, 1, 2)}

    @pytest.mark.working_dates
    def test_async_confirmation_supported(self):
        server = FakeServer([working(date(2025, 1, 2))])
        asked = []

        async def confirm(dates):
            asked.append(dates)
            return True

        reconciler = make_reconciler(server, confirm=confirm)

        async def scenario():
            await reconciler.refresh()
            reconciler.toggle(date(2025, 1, 2))
            return await reconciler.commit_deletions()

        summary = asyncio.run(scenario())

        assert asked == [[date(2025, 1, 2)]]
        assert summary.ok
        assert not reconciler.is_working_day(date(2025, 1, 2))

    @pytest.mark.working_dates
    def test_no_confirm_callback_means_declined(self):
        server = FakeServer([working(date(2025, 1, 2))])
        reconciler = make_reconciler(server, confirm=None)

        async def scenario():
            await reconciler.refresh()
            reconciler.toggle(date(2025, 1, 2))
            return await reconciler.commit()

        summaries = asyncio.run(scenario())

        assert len(summaries) == 1
        assert summaries[0].cancelled
        assert server.deleted == []

    @pytest.mark.working_dates
    def test_commit_with_declined_deletes_still_adds(self):
        server = FakeServer([working(date(2025, 1, 2))])
        reconciler = make_reconciler(server, confirm=lambda dates: False)

        async def scenario():
            await reconciler.refresh()
            reconciler.select([date(2025, 1, 1), date(2025, 1, 2)])
            return await reconciler.commit()

        summaries = asyncio.run(scenario())

        assert [s.action for s in summaries] == ["add", "delete"]
        assert summaries[0].ok
        assert summaries[1].cancelled
        assert reconciler.working_days() == [date(2025, 1, 1), date(2025, 1, 2)]
        assert reconciler.selection == {date(2025, 1, 2)}
        assert reconciler.state is ReconcilerState.PENDING

    @pytest.mark.working_dates
    def test_refetch_failure_keeps_previous_set_and_flags_stale(self):
        server = FakeServer()
        reconciler = make_reconciler(server)

        async def scenario():
            await reconciler.refresh()
            reconciler.toggle(date(2025, 1, 10))
            server.fail_reads = True
            return await reconciler.commit_additions()

        summary = asyncio.run(scenario())

        assert summary.success_count == 1
        assert summary.refresh_error == "server unreachable"
        assert not summary.ok
        assert reconciler.stale
        # No optimistic update: the persisted set is whatever was last fetched
        assert reconciler.working_days() == []
        assert reconciler.state is ReconcilerState.IDLE

    @pytest.mark.working_dates
    def test_nothing_to_commit(self):
        reconciler = make_reconciler(FakeServer())
        summary = asyncio.run(reconciler.commit_additions())
        assert summary == CommitSummary(action="add")
        assert asyncio.run(reconciler.commit()) == []


class TestRefreshAndReschedule:
    """Persisted set loading and hour changes"""

    @pytest.mark.working_dates
    def test_refresh_reads_every_visible_month(self):
        server = FakeServer([working(date(2025, 1, 31)), working(date(2025, 2, 1))])
        reconciler = make_reconciler(server)
        reconciler.set_visible_range(date(2025, 1, 27), date(2025, 3, 2))

        days = asyncio.run(reconciler.refresh())

        assert sorted(server.reads) == [(2025, 1), (2025, 2), (2025, 3)]
        assert days == [date(2025, 1, 31), date(2025, 2, 1)]
        assert reconciler.working_date(date(2025, 2, 1)).start_time == time(9, 0)

    @pytest.mark.working_dates
    def test_refresh_requires_visible_range(self):
        reconciler = WorkingDateReconciler(MASTER, BRANCH, FakeServer(), FakeServer())
        with pytest.raises(SessionStateError):
            asyncio.run(reconciler.refresh())

    @pytest.mark.working_dates
    def test_reschedule_replaces_hours(self):
        server = FakeServer([working(date(2025, 1, 2))])
        reconciler = make_reconciler(server)

        async def scenario():
            await reconciler.refresh()
            return await reconciler.reschedule(date(2025, 1, 2), "12:00", "20:00")

        summary = asyncio.run(scenario())

        assert summary.ok
        assert server.deleted == [date(2025, 1, 2)]
        assert reconciler.working_date(date(2025, 1, 2)).end_time == time(20, 0)
        assert reconciler.state is ReconcilerState.IDLE

    @pytest.mark.working_dates
    def test_reschedule_unknown_day(self):
        reconciler = make_reconciler(FakeServer())
        with pytest.raises(ValueError):
            asyncio.run(reconciler.reschedule(date(2025, 1, 2), "12:00", "20:00"))
