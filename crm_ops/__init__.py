from crm_ops.client import CrmApiError, CrmClient, TransientApiError
from crm_ops.fetchers import RosterFetcher, TaskFetcher
from crm_ops.reader import CrmReader
from crm_ops.writer import CrmWriter

__all__ = [
    "CrmApiError",
    "CrmClient",
    "CrmReader",
    "CrmWriter",
    "RosterFetcher",
    "TaskFetcher",
    "TransientApiError",
]
