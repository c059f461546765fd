# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
CRM Reader - Handles all read operations against the CRM API
"""
import logging
from datetime import timedelta
from threading import Lock
from typing import Any, Dict, List, Optional

import config
from crm_ops.client import CrmApiError, CrmClient, TRANSIENT_ERRORS
from models import DateWindow, MasterRecord, TaskRecord, WorkingDate
from utils.retry import retry_with_backoff
from utils.timezone import get_local_time

logger = logging.getLogger(__name__)


def _unwrap_list(payload: Any, envelope_keys: tuple, what: str) -> List[Dict]:
    """Accept either a bare JSON array or an envelope object holding one"""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in envelope_keys:
            if isinstance(payload.get(key), list):
                return payload[key]
    raise CrmApiError(f"Unexpected {what} payload: expected a list")


class CrmReader:
    """Handles reading tasks, staff and working dates from the CRM"""

    def __init__(self, auth_manager, client: Optional[CrmClient] = None,
                 roster_ttl_seconds: Optional[int] = None):
        self.auth = auth_manager
        self.client = client or CrmClient(auth_manager)
        self.roster_ttl = config.ROSTER_CACHE_TTL_SECONDS if roster_ttl_seconds is None else roster_ttl_seconds

        # Roster cache per branch
        self._roster_cache: Dict[str, List[MasterRecord]] = {}
        self._cache_expiry = {}
        self._cache_lock = Lock()

    @retry_with_backoff(max_retries=config.MAX_RETRIES, base_delay=config.BASE_DELAY,
                        retry_on=TRANSIENT_ERRORS)
    def get_tasks(self, window: DateWindow, sort_by: Optional[str] = None,
                  sort_order: Optional[str] = None, user_role: Optional[str] = None,
                  user_master_id: Optional[str] = None) -> List[TaskRecord]:
        """Get raw appointment records for a branch and date window"""
        params = window.to_params()
        params.update({
            'sortBy': sort_by or config.DEFAULT_SORT_BY,
            'sortOrder': sort_order or config.DEFAULT_SORT_ORDER,
            'userRole': user_role,
            'userMasterId': user_master_id,
        })

        response = self.client.request('GET', '/tasks', params=params)
        raw_tasks = _unwrap_list(self.client.parse_json(response), ('tasks', 'data'), 'tasks')

        tasks = []
        skipped = 0
        for item in raw_tasks:
            try:
                tasks.append(TaskRecord.from_api(item))
            except (ValueError, TypeError, AttributeError) as e:
                skipped += 1
                logger.warning(f"Skipping malformed task record: {e}")

        if skipped:
            logger.warning(f"Skipped {skipped} of {len(raw_tasks)} task records")
        logger.info(f"Retrieved {len(tasks)} tasks for branch {window.branch_id}")
        return tasks

    def get_staff(self, branch_id: str, force_refresh: bool = False) -> List[MasterRecord]:
        """Get the staff roster for a branch with caching"""
        with self._cache_lock:
            if not force_refresh and branch_id in self._roster_cache:
                expiry = self._cache_expiry.get(branch_id)
                if expiry and get_local_time() < expiry:
                    logger.debug(f"Using cached roster for branch {branch_id}")
                    return list(self._roster_cache[branch_id])

        roster = self._fetch_staff(branch_id)

        with self._cache_lock:
            self._roster_cache[branch_id] = roster
            self._cache_expiry[branch_id] = get_local_time() + timedelta(seconds=self.roster_ttl)

        return list(roster)

    @retry_with_backoff(max_retries=config.MAX_RETRIES, base_delay=config.BASE_DELAY,
                        retry_on=TRANSIENT_ERRORS)
    def _fetch_staff(self, branch_id: str) -> List[MasterRecord]:
        response = self.client.request('GET', '/staff', params={'branchId': branch_id})
        raw_staff = _unwrap_list(self.client.parse_json(response), ('data', 'staff'), 'staff')

        roster = []
        for item in raw_staff:
            try:
                roster.append(MasterRecord.from_api(item))
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed staff record: {e}")

        logger.info(f"Retrieved {len(roster)} masters for branch {branch_id}")
        return roster

    @retry_with_backoff(max_retries=config.MAX_RETRIES, base_delay=config.BASE_DELAY,
                        retry_on=TRANSIENT_ERRORS)
    def get_working_dates(self, master_id: str, month: int, year: int,
                          branch_id: str) -> List[WorkingDate]:
        """Get the active working dates of one master for a month at a branch"""
        params = {'month': month, 'year': year, 'branchId': branch_id}
        response = self.client.request('GET', f'/masters/{master_id}/working-dates', params=params)
        raw_dates = _unwrap_list(self.client.parse_json(response), ('data', 'workingDates'), 'working dates')

        working_dates = []
        for item in raw_dates:
            try:
                working_date = WorkingDate.from_api(item)
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed working date for master {master_id}: {e}")
                continue

            if not working_date.is_active:
                continue
            if working_date.branch_id and working_date.branch_id != str(branch_id):
                continue
            working_dates.append(working_date)

        logger.info(
            f"Retrieved {len(working_dates)} working dates for master {master_id} "
            f"({year}-{month:02d}, branch {branch_id})"
        )
        return working_dates
