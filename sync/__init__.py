# Expose the sync core's public entry points
from sync.history import PollHistory
from sync.merger import SortKey, merge, resolve_client_name, sort_enriched
from sync.poller import ConfigurationError, PollingSession, SessionStateError
from sync.task_feed import EnrichedTaskFeed
from sync.working_dates import (
    CommitSummary,
    ReconcilerState,
    SelectionDiff,
    WorkingDateReconciler,
    diff_selection,
)

__all__ = [
    "CommitSummary",
    "ConfigurationError",
    "EnrichedTaskFeed",
    "PollHistory",
    "PollingSession",
    "ReconcilerState",
    "SelectionDiff",
    "SessionStateError",
    "SortKey",
    "WorkingDateReconciler",
    "diff_selection",
    "merge",
    "resolve_client_name",
    "sort_enriched",
]
