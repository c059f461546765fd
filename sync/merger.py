# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Task Merger - Enrich raw tasks with roster and client display data
"""
import logging
from datetime import date, time
from enum import Enum
from typing import Dict, Iterable, List, Optional

import config
from models import ClientSnapshot, EnrichedTaskRecord, MasterRecord, TaskRecord
from utils.logger import StructuredLogger

logger = logging.getLogger(__name__)


class SortKey(Enum):
    """Primary keys the enriched list can be ordered by"""
    SCHEDULED_DATE = "scheduled_date"
    SCHEDULED_TIME = "scheduled_time"
    CLIENT_NAME = "client_name"
    SERVICE_TYPE = "service_type"
    MASTER_NAME = "master_name"


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def resolve_client_name(client: ClientSnapshot, fallback: Optional[str] = None) -> str:
    """
    Compute the client's display name.

    Precedence: custom name, first name, first and last name joined,
    then the locale fallback literal.
    """
    custom_name = _clean(client.custom_name)
    if custom_name:
        return custom_name

    first_name = _clean(client.first_name)
    if first_name:
        return first_name

    full_name = " ".join(part for part in (first_name, _clean(client.last_name)) if part)
    if full_name:
        return full_name

    return fallback if fallback is not None else config.UNKNOWN_CLIENT_NAME


def _primary_value(record: EnrichedTaskRecord, sort_by: SortKey):
    task = record.task
    if sort_by is SortKey.SCHEDULED_DATE:
        return task.scheduled_date
    if sort_by is SortKey.SCHEDULED_TIME:
        return task.scheduled_time
    if sort_by is SortKey.CLIENT_NAME:
        return record.client_name.casefold()
    if sort_by is SortKey.SERVICE_TYPE:
        service = _clean(task.service_type)
        return service.casefold() if service else None
    master = _clean(record.master_name)
    return master.casefold() if master else None


def sort_enriched(records: Iterable[EnrichedTaskRecord], sort_by: SortKey,
                  descending: bool = False) -> List[EnrichedTaskRecord]:
    """
    Order enriched records by a primary key.

    Ties fall back to scheduled time ascending, then identifier, so the order
    is fully deterministic. Records missing the primary value go last in
    either direction.
    """
    sort_by = SortKey(sort_by)

    # Tie-breakers first; sorted() is stable so the primary pass keeps them
    ordered = sorted(
        records,
        key=lambda r: (r.task.scheduled_time is None, r.task.scheduled_time or time.min, r.task.id)
    )

    def primary(record):
        value = _primary_value(record, sort_by)
        missing = value is None
        if missing:
            value = date.min if sort_by is SortKey.SCHEDULED_DATE else (
                time.min if sort_by is SortKey.SCHEDULED_TIME else "")
        # With reverse=True the missing flag has to flip to stay last
        return (not missing if descending else missing, value)

    return sorted(ordered, key=primary, reverse=descending)


def merge(tasks: Iterable[TaskRecord], roster: Iterable[MasterRecord],
          sort_by: Optional[SortKey] = None, descending: bool = False,
          log: Optional[logging.Logger] = None,
          client_fallback: Optional[str] = None) -> List[EnrichedTaskRecord]:
    """
    Combine raw tasks with the staff roster into display-ready records.

    Every task yields exactly one enriched record. Input order is kept unless
    sort_by is given. Neither input is modified. A task assigned to a master
    missing from the roster gets master_name None and a data-integrity
    warning on the given logger.

    Args:
        tasks: Raw task records
        roster: Staff roster for the branch
        sort_by: Optional primary sort key
        descending: Reverse the primary key order
        log: Logger that receives data-integrity warnings
        client_fallback: Override for the unknown-client literal
    """
    structured_logger = StructuredLogger(log.name if log else __name__)

    # Rebuilt on every call; never shared between merges
    masters_by_id: Dict[str, MasterRecord] = {master.id: master for master in roster}

    enriched = []
    for task in tasks:
        master_name = None
        if task.master_id is not None:
            master = masters_by_id.get(task.master_id)
            if master is not None:
                master_name = master.name
            else:
                structured_logger.log_sync_event('data_integrity_warning', {
                    'anomaly': 'unknown_master',
                    'task_id': task.id,
                    'master_id': task.master_id,
                    'roster_size': len(masters_by_id),
                })

        enriched.append(EnrichedTaskRecord(
            task=task,
            master_name=master_name,
            client_name=resolve_client_name(task.client, client_fallback),
        ))

    if sort_by is not None:
        return sort_enriched(enriched, sort_by, descending)
    return enriched
