"""Unit tests for sitepulse.services.task_status_mapper.

Pure functions, no DB; the autouse session fixture still runs but is unused.
"""

import pytest

from sitepulse.core.exceptions import ValidationError
from sitepulse.services.survey_types import TaskUpdate
from sitepulse.services.task_status_mapper import (
    NON_PRODUCTIVE,
    PRODUCTIVE,
    filter_active_tasks,
    map_task_updates,
    task_id_of,
)


def _make_tasks(*ids, status="in_progress"):
    return [{"id": tid, "title": f"Task {tid}", "status": status} for tid in ids]


class TestActiveTasks:
    def test_completed_tasks_are_excluded(self):
        tasks = _make_tasks("t1") + _make_tasks("t2", status="completed") + _make_tasks("t3", status="not_started")
        assert [t["id"] for t in filter_active_tasks(tasks)] == ["t1", "t3"]

    def test_none_gives_empty_list(self):
        assert filter_active_tasks(None) == []

    def test_task_objects_are_supported(self):
        class Task:
            def __init__(self, id, status):
                self.id = id
                self.status = status

        active = filter_active_tasks([Task(7, "in_progress"), Task(8, "completed")])
        assert [task_id_of(t) for t in active] == ["7"]

    def test_task_without_id_is_rejected(self):
        with pytest.raises(ValidationError):
            task_id_of({"title": "no id"})


class TestMapTaskUpdates:
    """Output keys always equal the active-task ids."""

    def test_normal_marks_every_task_productive(self):
        updates = map_task_updates("normal", {}, _make_tasks("T1", "T2"))
        assert updates == {"T1": PRODUCTIVE, "T2": PRODUCTIVE}

    def test_closed_marks_every_task_non_productive_ignoring_toggles(self):
        toggles = {"T1": PRODUCTIVE, "T2": TaskUpdate("non_productive", "Bad Weather")}
        updates = map_task_updates("closed", toggles, _make_tasks("T1", "T2"))
        assert updates == {"T1": NON_PRODUCTIVE, "T2": NON_PRODUCTIVE}
        assert all(u.delay_reason is None for u in updates.values())

    def test_delayed_defaults_untoggled_tasks_to_productive(self):
        toggles = {"T2": TaskUpdate("non_productive", "Material Delay")}
        updates = map_task_updates("delayed", toggles, _make_tasks("T1", "T2"))
        assert updates["T1"] == PRODUCTIVE
        assert updates["T2"].delay_reason == "Material Delay"

    def test_delayed_non_productive_without_reason_is_rejected(self):
        with pytest.raises(ValidationError) as exc:
            map_task_updates("delayed", {"T1": NON_PRODUCTIVE}, _make_tasks("T1"))
        assert "task_updates.T1" in exc.value.details

    def test_toggles_for_inactive_tasks_are_dropped(self):
        toggles = {"ghost": TaskUpdate("non_productive", "Other")}
        updates = map_task_updates("delayed", toggles, _make_tasks("T1"))
        assert set(updates) == {"T1"}

    @pytest.mark.parametrize("status", ["normal", "closed", "delayed"])
    def test_empty_task_list_gives_empty_mapping(self, status):
        assert map_task_updates(status, {}, []) == {}

    @pytest.mark.parametrize("status", [None, "", "open"])
    def test_unknown_site_status_is_rejected(self, status):
        with pytest.raises(ValidationError):
            map_task_updates(status, {}, _make_tasks("T1"))
