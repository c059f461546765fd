# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
CRM Writer - Handles working date write operations against the CRM API
"""
import logging
from datetime import date
from typing import Optional

import config
from crm_ops.client import CrmClient, TRANSIENT_ERRORS, WRITE_RETRY_ERRORS
from models import WorkingDate
from utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)


class CrmWriter:
    """Handles writing working dates to the CRM"""

    def __init__(self, auth_manager, client: Optional[CrmClient] = None):
        self.auth = auth_manager
        self.client = client or CrmClient(auth_manager)

    @retry_with_backoff(max_retries=config.MAX_RETRIES, base_delay=config.BASE_DELAY,
                        retry_on=WRITE_RETRY_ERRORS)
    def add_working_date(self, master_id: str, working_date: WorkingDate) -> bool:
        """Create one working date for a master"""
        self.client.request('POST', f'/masters/{master_id}/working-dates',
                            json=working_date.to_api())
        logger.info(f"✅ Added working date {working_date.work_date} for master {master_id}")
        return True

    @retry_with_backoff(max_retries=config.MAX_RETRIES, base_delay=config.BASE_DELAY,
                        retry_on=TRANSIENT_ERRORS)
    def delete_working_date(self, master_id: str, work_date: date, branch_id: str) -> bool:
        """Delete one working date for a master"""
        response = self.client.request(
            'DELETE',
            f'/masters/{master_id}/working-dates/{work_date.isoformat()}',
            params={'branchId': branch_id},
            allow_statuses=(404,)
        )

        if response.status_code == 404:
            logger.warning(f"Working date {work_date} not found for master {master_id}")
            return True  # Consider already deleted as success

        logger.info(f"✅ Deleted working date {work_date} for master {master_id}")
        return True
