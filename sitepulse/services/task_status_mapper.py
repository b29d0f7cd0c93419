"""
Task-Status Mapper — survey answers to per-task productivity records.

Pure functions, no DB access. The output of ``map_task_updates`` always
covers exactly the active-task ids handed to the survey, whatever the
per-task toggles contain.

Usage:
    from sitepulse.services.task_status_mapper import filter_active_tasks, map_task_updates

    active = filter_active_tasks(project_tasks)
    updates = map_task_updates("normal", {}, active)
    # -> {"t1": TaskUpdate(status="productive"), ...}
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from sitepulse.core.exceptions import ValidationError
from sitepulse.models.survey import ACTIVE_TASK_STATUSES, SITE_STATUSES
from sitepulse.services.survey_types import TaskUpdate

PRODUCTIVE = TaskUpdate(status="productive")
NON_PRODUCTIVE = TaskUpdate(status="non_productive")


def _field(task: Any, name: str) -> Any:
    # Tasks arrive as JSON dicts from the API or as objects from in-process callers
    if isinstance(task, Mapping):
        return task.get(name)
    return getattr(task, name, None)


def task_id_of(task: Any) -> str:
    """Return the task id as a string."""
    tid = _field(task, "id")
    if tid is None or str(tid) == "":
        raise ValidationError("Task is missing an id", details={"task": "id is required"})
    return str(tid)


def is_active_task(task: Any) -> bool:
    """Only not_started / in_progress tasks take part in the survey."""
    return _field(task, "status") in ACTIVE_TASK_STATUSES


def filter_active_tasks(tasks: Iterable[Any] | None) -> list:
    """Keep the active tasks, in their original order."""
    return [t for t in (tasks or []) if is_active_task(t)]


def missing_delay_reasons(
    toggles: Mapping[str, TaskUpdate],
    task_ids: Iterable[str],
) -> list[str]:
    """Ids of tasks toggled non-productive that have no delay reason yet."""
    missing = []
    for tid in task_ids:
        update = toggles.get(tid)
        if update is not None and not update.is_productive and not update.delay_reason:
            missing.append(tid)
    return missing


def map_task_updates(
    site_status: str | None,
    toggles: Mapping[str, TaskUpdate] | None,
    active_tasks: Iterable[Any],
) -> dict[str, TaskUpdate]:
    """
    Build the per-task records for one survey.

    - normal:  every active task productive
    - closed:  every active task non-productive; the reason is captured once
               at site level, so per-task toggles are ignored
    - delayed: the engineer's toggle for the task, productive when untoggled

    Toggles for ids outside ``active_tasks`` are dropped.

    Raises:
        ValidationError: unknown site status, or a delayed-day task marked
            non-productive without a delay reason.
    """
    if site_status not in SITE_STATUSES:
        raise ValidationError(
            "Site status is required",
            details={"site_status": f"must be one of {list(SITE_STATUSES)}"},
        )

    task_ids = [task_id_of(t) for t in active_tasks]
    toggles = toggles or {}

    if site_status == "normal":
        return {tid: PRODUCTIVE for tid in task_ids}
    if site_status == "closed":
        return {tid: NON_PRODUCTIVE for tid in task_ids}

    missing = missing_delay_reasons(toggles, task_ids)
    if missing:
        raise ValidationError(
            "Select a delay reason for every non-productive task",
            details={f"task_updates.{tid}": "delay_reason is required" for tid in missing},
        )
    return {tid: toggles.get(tid, PRODUCTIVE) for tid in task_ids}
