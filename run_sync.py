#!/usr/bin/env python3
# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Salon Sync Command Line

Runs the sync core against a live CRM API, either polling a branch's tasks
for one day or editing one master's working dates.

Usage:
    python run_sync.py poll --branch 3 --date 2025-01-15 [--cycles 3]
    python run_sync.py working-dates --master 7 --branch 3 \\
        --visible 2025-01-01 2025-01-31 --toggle 2025-01-02 2025-01-03 [--yes]

Options:
    --verbose    Show detailed logging
"""

import argparse
import asyncio
import logging
import sys
from datetime import date

import config
from auth import BearerAuth
from crm_ops import CrmReader, CrmWriter, RosterFetcher, TaskFetcher
from models import DateWindow
from sync import EnrichedTaskFeed, PollingSession, SortKey, WorkingDateReconciler
from utils import configure_logging, get_local_time

logger = logging.getLogger(__name__)


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}', expected YYYY-MM-DD")


async def poll_tasks(reader: CrmReader, branch_id: str, target: date, cycles: int,
                     sort_by: SortKey = None) -> int:
    """Poll one day's tasks for a number of ticks and log every refresh"""
    window = DateWindow.for_day(target, branch_id)
    finished = asyncio.Event()
    ticks = 0

    def on_update(records):
        for record in records:
            task = record.task
            logger.info(
                f"  {task.scheduled_time or '--:--'} {record.client_name} - "
                f"{task.service_type or 'service'} ({record.master_name or 'unassigned'}) [{task.status.value}]"
            )

    feed = EnrichedTaskFeed(RosterFetcher(reader), window=window, sort_by=sort_by, on_update=on_update)

    def count_tick(outcome):
        nonlocal ticks
        ticks += 1
        if outcome.success:
            logger.info(f"📥 Tick {ticks}/{cycles}: {outcome.count} tasks")
        else:
            logger.warning(f"⚠️ Tick {ticks}/{cycles} failed: {outcome.error}")
        if ticks >= cycles:
            finished.set()

    async with PollingSession(TaskFetcher(reader)) as session:
        feed.attach(session)
        session.subscribe(count_tick)
        session.start(window)
        await finished.wait()
        session.stop()

        stats = session.get_status()['statistics']
        logger.info(
            f"📊 {stats['successful_fetches']}/{stats['total_fetches']} fetches succeeded "
            f"({stats['success_rate']}%)"
        )

    return 0 if feed.last_error is None else 1


async def edit_working_dates(reader: CrmReader, writer: CrmWriter, master_id: str, branch_id: str,
                             visible: tuple, toggles: list, start_time: str, end_time: str,
                             assume_yes: bool) -> int:
    """Toggle working dates for one master and commit the result"""

    def confirm(dates):
        if assume_yes:
            return True
        logger.warning(f"🗑️ Refusing to delete {len(dates)} working date(s) without --yes")
        return False

    reconciler = WorkingDateReconciler(master_id, branch_id, reader, writer, confirm=confirm)
    reconciler.set_visible_range(*visible)

    await reconciler.refresh()
    logger.info(f"📅 Current working days: {', '.join(d.isoformat() for d in reconciler.working_days()) or 'none'}")

    for day in toggles:
        reconciler.toggle(day)

    diff = reconciler.pending_diff()
    logger.info(f"➕ To add: {', '.join(d.isoformat() for d in sorted(diff.to_add)) or 'none'}")
    logger.info(f"➖ To delete: {', '.join(d.isoformat() for d in sorted(diff.to_delete)) or 'none'}")

    if diff.is_empty:
        logger.info("Nothing to change")
        return 0

    summaries = await reconciler.commit(start_time, end_time)
    for summary in summaries:
        if summary.ok:
            logger.info(f"✅ {summary.message()}")
        else:
            logger.error(f"❌ {summary.message()}")

    logger.info(f"📅 Working days now: {', '.join(d.isoformat() for d in reconciler.working_days()) or 'none'}")
    return 0 if all(summary.ok for summary in summaries) else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Salon CRM sync core')
    parser.add_argument('--verbose', action='store_true', help='Show detailed logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    poll = subparsers.add_parser('poll', help="Poll a branch's tasks for one day")
    poll.add_argument('--branch', default=config.DEFAULT_BRANCH_ID, help='Branch identifier')
    poll.add_argument('--date', type=_parse_date, default=None, help='Day to poll (default: today)')
    poll.add_argument('--cycles', type=int, default=1, help='Number of ticks before exiting')
    poll.add_argument('--sort-by', choices=[key.value for key in SortKey], default=None,
                      help='Sort the enriched list by this key')

    dates = subparsers.add_parser('working-dates', help="Toggle a master's working dates")
    dates.add_argument('--master', required=True, help='Master identifier')
    dates.add_argument('--branch', default=config.DEFAULT_BRANCH_ID, help='Branch identifier')
    dates.add_argument('--visible', nargs=2, type=_parse_date, required=True, metavar=('FROM', 'TO'),
                       help='Date range shown on the calendar')
    dates.add_argument('--toggle', nargs='+', type=_parse_date, default=[], metavar='DATE',
                       help='Dates to toggle')
    dates.add_argument('--start', default=config.DEFAULT_WORK_START, help='Start time for added dates')
    dates.add_argument('--end', default=config.DEFAULT_WORK_END, help='End time for added dates')
    dates.add_argument('--yes', action='store_true', help='Confirm deletion of working dates')

    return parser


def main(argv=None):
    """Main function"""
    args = build_parser().parse_args(argv)
    configure_logging(level='DEBUG' if args.verbose else None)

    try:
        logger.info("🔐 Initializing authentication...")
        auth_manager = BearerAuth()

        if not auth_manager.is_authenticated():
            logger.error("❌ No API token configured (set API_TOKEN)")
            return 1

        reader = CrmReader(auth_manager)

        if args.command == 'poll':
            if args.cycles < 1:
                logger.error("❌ --cycles must be at least 1")
                return 1
            target = args.date or get_local_time().date()
            sort_by = SortKey(args.sort_by) if args.sort_by else None
            return asyncio.run(poll_tasks(reader, args.branch, target, args.cycles, sort_by))

        writer = CrmWriter(auth_manager)
        return asyncio.run(edit_working_dates(
            reader, writer, args.master, args.branch, tuple(args.visible), args.toggle,
            args.start, args.end, args.yes
        ))

    except (ValueError, RuntimeError) as e:
        logger.error(f"❌ {e}")
        return 1
    except Exception as e:
        logger.error(f"❌ Unexpected error: {e}")
        import traceback
        logger.error(traceback.format_exc())
        return 1


if __name__ == "__main__":
    sys.exit(main())
