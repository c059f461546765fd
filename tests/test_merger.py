"""
Merger tests - enrichment of tasks with roster and client display data
"""

import logging
import pytest
from datetime import date, time
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import config
from models import ClientSnapshot, MasterRecord, TaskRecord
from sync.merger import SortKey, merge, resolve_client_name, sort_enriched


def make_task(task_id, master_id=None, scheduled_time=None, scheduled_date=date(2025, 1, 15),
              service_type=None, **client):
    return TaskRecord(
        id=task_id,
        master_id=master_id,
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        service_type=service_type,
        client=ClientSnapshot(**client),
    )


ROSTER = [
    MasterRecord(id="7", name="Anna"),
    MasterRecord(id="8", name="Bob"),
]


class TestMergeResolution:
    """Master and client name resolution"""

    @pytest.mark.merger
    def test_roster_and_client_from_api_payloads(self):
        """Roster Anna (3) and a task for master 3 with client Bob"""
        roster = [MasterRecord.from_api({'id': 3, 'name': 'Anna'})]
        task = TaskRecord.from_api({'id': 1, 'masterId': 3, 'client': {'firstName': 'Bob'}})

        result = merge([task], roster)

        assert len(result) == 1
        assert result[0].master_name == "Anna"
        assert result[0].client_name == "Bob"

    @pytest.mark.merger
    def test_masters_resolved_in_input_order(self):
        """Tasks keep their order and pick up roster names"""
        tasks = [
            make_task("1", master_id="7", first_name="Ira"),
            make_task("2", master_id="8", first_name="Oleg"),
        ]

        result = merge(tasks, ROSTER)

        assert [r.id for r in result] == ["1", "2"]
        assert [r.master_name for r in result] == ["Anna", "Bob"]
        assert [r.client_name for r in result] == ["Ira", "Oleg"]

    @pytest.mark.merger
    def test_unknown_master_logs_and_keeps_task(self, caplog):
        """A master missing from the roster yields a null name and a warning"""
        tasks = [make_task("1", master_id="99", first_name="Ira")]

        with caplog.at_level(logging.WARNING):
            result = merge(tasks, ROSTER)

        assert len(result) == 1
        assert result[0].master_name is None
        assert result[0].task.master_id == "99"
        assert any("99" in rec.getMessage() for rec in caplog.records)

    @pytest.mark.merger
    def test_unassigned_task_has_no_master_and_no_warning(self, caplog):
        """A task with no master is not an anomaly"""
        with caplog.at_level(logging.WARNING):
            result = merge([make_task("1")], ROSTER)

        assert result[0].master_name is None
        assert not caplog.records

    @pytest.mark.merger
    def test_empty_roster_still_yields_every_task(self):
        tasks = [make_task(str(i), master_id="7") for i in range(5)]
        result = merge(tasks, [])
        assert len(result) == 5
        assert all(r.master_name is None for r in result)

    @pytest.mark.merger
    def test_inputs_not_modified(self):
        tasks = [make_task("2", master_id="8"), make_task("1", master_id="7")]
        roster = list(ROSTER)

        merge(tasks, roster, sort_by=SortKey.MASTER_NAME)

        assert [t.id for t in tasks] == ["2", "1"]
        assert roster == ROSTER

    @pytest.mark.merger
    def test_to_dict_shape(self):
        task = make_task("1", master_id="7", scheduled_time=time(10, 30), first_name="Ira")
        row = merge([task], ROSTER)[0].to_dict()
        assert row['masterName'] == "Anna"
        assert row['clientName'] == "Ira"
        assert row['scheduleTime'] == "10:30"
        assert row['scheduleDate'] == "2025-01-15"
        assert row['status'] == "scheduled"


class TestClientName:
    """Client display name precedence"""

    @pytest.mark.merger
    def test_custom_name_wins(self):
        client = ClientSnapshot(custom_name="VIP Ira", first_name="Irina", last_name="Petrova")
        assert resolve_client_name(client) == "VIP Ira"

    @pytest.mark.merger
    def test_first_name_next(self):
        client = ClientSnapshot(first_name="Irina", last_name="Petrova")
        assert resolve_client_name(client) == "Irina"

    @pytest.mark.merger
    def test_last_name_only(self):
        client = ClientSnapshot(last_name="Petrova")
        assert resolve_client_name(client) == "Petrova"

    @pytest.mark.merger
    def test_blank_names_use_fallback(self):
        client = ClientSnapshot(custom_name="  ", first_name="")
        assert resolve_client_name(client) == config.UNKNOWN_CLIENT_NAME

    @pytest.mark.merger
    def test_fallback_override(self):
        assert resolve_client_name(ClientSnapshot(), fallback="Unknown client") == "Unknown client"


class TestSorting:
    """Ordering by primary key with deterministic tie-breaks"""

    @pytest.mark.merger
    def test_sort_by_master_name(self):
        tasks = [
            make_task("1", master_id="8"),
            make_task("2", master_id="7"),
        ]
        result = merge(tasks, ROSTER, sort_by=SortKey.MASTER_NAME)
        assert [r.master_name for r in result] == ["Anna", "Bob"]

    @pytest.mark.merger
    def test_ties_break_by_time_then_id(self):
        tasks = [
            make_task("b", master_id="7", scheduled_time=time(11, 0)),
            make_task("c", master_id="7", scheduled_time=time(10, 0)),
            make_task("a", master_id="7", scheduled_time=time(11, 0)),
        ]
        result = merge(tasks, ROSTER, sort_by=SortKey.MASTER_NAME)
        assert [r.id for r in result] == ["c", "a", "b"]

    @pytest.mark.merger
    def test_missing_values_last_both_directions(self):
        tasks = [
            make_task("1", service_type=None),
            make_task("2", service_type="manicure"),
            make_task("3", service_type="Haircut"),
        ]
        enriched = merge(tasks, ROSTER)

        ascending = sort_enriched(enriched, SortKey.SERVICE_TYPE)
        descending = sort_enriched(enriched, SortKey.SERVICE_TYPE, descending=True)

        assert [r.id for r in ascending] == ["3", "2", "1"]
        assert [r.id for r in descending] == ["2", "3", "1"]

    @pytest.mark.merger
    def test_sort_by_client_name_case_insensitive(self):
        tasks = [
            make_task("1", first_name="boris"),
            make_task("2", first_name="Alla"),
        ]
        result = merge(tasks, ROSTER, sort_by=SortKey.CLIENT_NAME)
        assert [r.client_name for r in result] == ["Alla", "boris"]

    @pytest.mark.merger
    def test_sort_accepts_string_key(self):
        tasks = [
            make_task("1", scheduled_date=date(2025, 1, 16)),
            make_task("2", scheduled_date=date(2025, 1, 15)),
        ]
        result = sort_enriched(merge(tasks, ROSTER), "scheduled_date")
        assert [r.id for r in result] == ["2", "1"]
