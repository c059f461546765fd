# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Async fetchers - run the blocking CRM reads off the event loop
"""
import asyncio
from typing import List, Optional

from crm_ops.reader import CrmReader
from models import DateWindow, MasterRecord, TaskRecord


class TaskFetcher:
    """Fetches raw tasks for a date window"""

    def __init__(self, reader: CrmReader, sort_by: Optional[str] = None,
                 sort_order: Optional[str] = None, user_role: Optional[str] = None,
                 user_master_id: Optional[str] = None):
        self.reader = reader
        self.sort_by = sort_by
        self.sort_order = sort_order
        self.user_role = user_role
        self.user_master_id = user_master_id

    async def __call__(self, window: DateWindow) -> List[TaskRecord]:
        return await asyncio.to_thread(
            self.reader.get_tasks,
            window,
            sort_by=self.sort_by,
            sort_order=self.sort_order,
            user_role=self.user_role,
            user_master_id=self.user_master_id,
        )


class RosterFetcher:
    """Fetches the (briefly cached) staff roster for a branch"""

    def __init__(self, reader: CrmReader):
        self.reader = reader

    async def __call__(self, branch_id: str) -> List[MasterRecord]:
        return await asyncio.to_thread(self.reader.get_staff, branch_id)
