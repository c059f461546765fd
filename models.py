# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Data models for the salon sync core

All records are frozen snapshots of server state. The core never mutates
them; enrichment and reconciliation always produce new objects.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import config
from utils.timezone import (
    day_window,
    format_api_time,
    parse_api_date,
    parse_api_time,
    to_api_timestamp,
)

logger = logging.getLogger(__name__)


def _optional_id(value) -> Optional[str]:
    """Normalize API identifiers (numbers or strings) to opaque strings"""
    if value is None or value == '':
        return None
    return str(value)


def _optional_float(value) -> Optional[float]:
    if value is None or value == '':
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_int(value) -> Optional[int]:
    number = _optional_float(value)
    return int(number) if number is not None else None


class TaskStatus(Enum):
    """Appointment lifecycle states reported by the CRM"""
    NEW = "new"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    @classmethod
    def parse(cls, value) -> "TaskStatus":
        """Parse a raw status, falling back to SCHEDULED for blank or unknown values"""
        normalized = (value or '').strip().lower()
        if not normalized:
            return cls.SCHEDULED
        try:
            return cls(normalized)
        except ValueError:
            logger.warning(f"Unknown task status '{value}', using fallback 'scheduled'")
            return cls.SCHEDULED


@dataclass(frozen=True)
class ClientSnapshot:
    """Client details embedded in a task at fetch time"""
    custom_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None

    @classmethod
    def from_api(cls, data: Optional[Dict[str, Any]]) -> "ClientSnapshot":
        data = data or {}
        return cls(
            custom_name=data.get('customName'),
            first_name=data.get('firstName'),
            last_name=data.get('lastName'),
            phone=data.get('phoneNumber') or data.get('phone'),
        )


@dataclass(frozen=True)
class TaskRecord:
    """Raw appointment record as returned by the task query endpoint"""
    id: str
    client_id: Optional[str] = None
    status: TaskStatus = TaskStatus.SCHEDULED
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[time] = None
    end_time: Optional[time] = None
    master_id: Optional[str] = None
    service_type: Optional[str] = None
    duration: Optional[int] = None
    price: Optional[float] = None
    payment_status: Optional[str] = None
    notes: Optional[str] = None
    client: ClientSnapshot = field(default_factory=ClientSnapshot)
    branch_id: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "TaskRecord":
        """Build a TaskRecord from the CRM's camelCase JSON"""
        if data.get('id') is None:
            raise ValueError("Task record has no id")

        duration = data.get('serviceDuration', data.get('duration'))
        price = data.get('finalPrice', data.get('servicePrice'))

        return cls(
            id=str(data['id']),
            client_id=_optional_id(data.get('clientId')),
            status=TaskStatus.parse(data.get('status')),
            scheduled_date=parse_api_date(data.get('scheduleDate')),
            scheduled_time=parse_api_time(data.get('scheduleTime')),
            end_time=parse_api_time(data.get('endTime')),
            master_id=_optional_id(data.get('masterId')),
            service_type=data.get('serviceType'),
            duration=_optional_int(duration),
            price=_optional_float(price),
            payment_status=data.get('paid'),
            notes=data.get('notes'),
            client=ClientSnapshot.from_api(data.get('client')),
            branch_id=_optional_id(data.get('branchId')),
        )


@dataclass(frozen=True)
class MasterRecord:
    """Staff member from the branch roster"""
    id: str
    name: str
    specialization: Optional[str] = None
    is_active: bool = True
    work_start: Optional[time] = None
    work_end: Optional[time] = None
    branch_id: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "MasterRecord":
        if data.get('id') is None:
            raise ValueError("Master record has no id")

        return cls(
            id=str(data['id']),
            name=data.get('name') or '',
            specialization=data.get('specialization'),
            is_active=bool(data.get('isActive', True)),
            work_start=parse_api_time(data.get('startWorkHour')),
            work_end=parse_api_time(data.get('endWorkHour')),
            branch_id=_optional_id(data.get('branchId')),
        )


@dataclass(frozen=True)
class EnrichedTaskRecord:
    """A task with resolved master and client display names"""
    task: TaskRecord
    master_name: Optional[str]
    client_name: str

    @property
    def id(self) -> str:
        return self.task.id

    def to_dict(self) -> Dict[str, Any]:
        """Flatten into the shape the calendar views consume"""
        task = self.task
        return {
            'id': task.id,
            'clientId': task.client_id,
            'clientName': self.client_name,
            'status': task.status.value,
            'serviceType': task.service_type,
            'scheduleDate': task.scheduled_date.isoformat() if task.scheduled_date else None,
            'scheduleTime': format_api_time(task.scheduled_time),
            'endTime': format_api_time(task.end_time),
            'masterId': task.master_id,
            'masterName': self.master_name,
            'duration': task.duration,
            'price': task.price,
            'paid': task.payment_status,
            'notes': task.notes,
            'branchId': task.branch_id,
        }


@dataclass(frozen=True)
class WorkingDate:
    """A day on which one master is available at a branch"""
    work_date: date
    start_time: time
    end_time: time
    branch_id: str
    is_active: bool = True

    def __post_init__(self):
        if self.end_time <= self.start_time:
            raise ValueError(
                f"Working hours for {self.work_date} end ({self.end_time}) "
                f"before they start ({self.start_time})"
            )

    @property
    def key(self) -> Tuple[date, str]:
        return self.work_date, self.branch_id

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "WorkingDate":
        work_date = parse_api_date(data.get('work_date'))
        start = parse_api_time(data.get('start_time'))
        end = parse_api_time(data.get('end_time'))
        if work_date is None or start is None or end is None:
            raise ValueError(f"Incomplete working date record: {data}")

        return cls(
            work_date=work_date,
            start_time=start,
            end_time=end,
            branch_id=str(data.get('branch_id') or ''),
            is_active=bool(data.get('is_active', True)),
        )

    def to_api(self) -> Dict[str, Any]:
        """Request body for the add-working-date endpoint"""
        return {
            'workDate': self.work_date.isoformat(),
            'startTime': format_api_time(self.start_time),
            'endTime': format_api_time(self.end_time),
            'branchId': self.branch_id,
        }


@dataclass(frozen=True)
class DateWindow:
    """Branch-scoped time window the task query is issued for"""
    branch_id: str
    scheduled_after: datetime
    scheduled_before: datetime
    target_date: Optional[date] = None

    @classmethod
    def for_day(cls, target: date, branch_id: str, tz_name: Optional[str] = None) -> "DateWindow":
        """Window from 23:59 of the day before target through the end of target"""
        after, before = day_window(target, tz_name or config.BUSINESS_TIMEZONE)
        return cls(branch_id=branch_id, scheduled_after=after,
                   scheduled_before=before, target_date=target)

    def to_params(self) -> Dict[str, str]:
        return {
            'branchId': self.branch_id,
            'scheduledAfter': to_api_timestamp(self.scheduled_after),
            'scheduledBefore': to_api_timestamp(self.scheduled_before),
        }


@dataclass(frozen=True)
class FetchOutcome:
    """Result of one fetch, delivered to every subscriber"""
    success: bool
    records: Tuple[TaskRecord, ...]
    timestamp: datetime
    window: Optional[DateWindow] = None
    error: Optional[str] = None
    duration: float = 0.0
    source: str = "timer"

    @property
    def count(self) -> int:
        return len(self.records)

    @classmethod
    def succeeded(cls, records: List[TaskRecord], timestamp: datetime, window: DateWindow,
                  duration: float = 0.0, source: str = "timer") -> "FetchOutcome":
        return cls(success=True, records=tuple(records), timestamp=timestamp,
                   window=window, duration=duration, source=source)

    @classmethod
    def failed(cls, error: str, timestamp: datetime, window: DateWindow,
               duration: float = 0.0, source: str = "timer") -> "FetchOutcome":
        return cls(success=False, records=(), timestamp=timestamp, window=window,
                   error=error, duration=duration, source=source)
