"""
Survey State Machine — drives one engineer through one daily survey.

Steps and allowed edges live in ``sitepulse.models.survey.SURVEY_TRANSITIONS``:

    overview ──normal──────────────────────────────▶ submitted
    overview ──closed──▶ site_closed_detail ──────▶ submitted
    overview ──delayed─▶ task_delay_detail ───────▶ submitted
    any non-terminal step ─────────────────────────▶ skipped
    detail steps ──back──▶ overview

The machine never fetches tasks and never calls the network: the host hands
it the active-task list, and the submission pipeline
(``sitepulse.services.survey_service``) submits what ``prepare_submission``
returns and then calls ``mark_submitted``.

Usage:
    machine = SurveyStateMachine("p1", "Dana Cruz", active_tasks)
    machine.select_site_status("delayed")
    machine.toggle_task("t1", productive=False)
    machine.set_delay_reason("t1", "Material Delay")
    data = machine.prepare_submission()
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from sitepulse.core.exceptions import InvalidTransitionError, ValidationError
from sitepulse.models.survey import (
    DELAY_REASONS,
    DETAIL_STEP_FOR_STATUS,
    OTHER_REASON,
    SITE_CLOSED_REASONS,
    SITE_STATUSES,
    TASK_UPDATE_STATUSES,
    validate_survey_transition,
)
from sitepulse.services.survey_types import SurveyData, TaskUpdate
from sitepulse.services.task_status_mapper import (
    NON_PRODUCTIVE,
    PRODUCTIVE,
    map_task_updates,
    task_id_of,
)

logger = logging.getLogger(__name__)

TERMINAL_STEPS = frozenset({"submitted", "skipped"})


def survey_guard_errors(
    site_status: str | None,
    site_closed_reason: str | None,
    task_updates: Mapping[str, TaskUpdate],
    task_ids: Iterable[str] | None = None,
) -> dict[str, str]:
    """
    Field-level reasons why a survey may not be submitted yet.

    Shared by the state machine (before "Next"/"Submit") and the submission
    pipeline (before the remote call). Free text for an "Other" closure is
    intentionally not required.
    """
    errors: dict[str, str] = {}
    if site_status is None:
        errors["site_status"] = "required"
        return errors
    if site_status not in SITE_STATUSES:
        errors["site_status"] = f"must be one of {list(SITE_STATUSES)}"
        return errors

    if site_status == "closed":
        if not site_closed_reason:
            errors["site_closed_reason"] = "required when the site is closed"
        elif site_closed_reason not in SITE_CLOSED_REASONS:
            errors["site_closed_reason"] = f"must be one of {list(SITE_CLOSED_REASONS)}"

    ids = list(task_ids) if task_ids is not None else list(task_updates)
    for tid in ids:
        update = task_updates.get(tid)
        if update is None:
            continue
        if update.status not in TASK_UPDATE_STATUSES:
            errors[f"task_updates.{tid}"] = f"status must be one of {list(TASK_UPDATE_STATUSES)}"
        elif site_status == "delayed" and not update.is_productive:
            if not update.delay_reason:
                errors[f"task_updates.{tid}"] = "delay_reason is required"
            elif update.delay_reason not in DELAY_REASONS:
                errors[f"task_updates.{tid}"] = f"delay_reason must be one of {list(DELAY_REASONS)}"
    return errors


class SurveyStateMachine:
    """One survey session. Build a new instance each time the survey opens."""

    def __init__(self, project_id: str, engineer_name: str, active_tasks: Iterable[Any]):
        if not project_id:
            raise ValidationError("project_id is required", details={"project_id": "required"})
        self.project_id = str(project_id)
        self.engineer_name = engineer_name or ""
        self.active_tasks = list(active_tasks)
        self.task_ids = [task_id_of(t) for t in self.active_tasks]
        self.reset()

    # ── Session state ────────────────────────────────────────────────────

    def reset(self) -> None:
        """Back to the overview with nothing selected."""
        self.step = "overview"
        self.site_status: str | None = None
        self.site_closed_reason: str | None = None
        self.site_closed_reason_other = ""
        self._toggles: dict[str, TaskUpdate] = {}

    @property
    def is_finished(self) -> bool:
        return self.step in TERMINAL_STEPS

    @property
    def task_updates(self) -> dict[str, TaskUpdate]:
        """Current per-task answers, one entry per active task."""
        if self.site_status == "delayed":
            return {tid: self._toggles.get(tid, PRODUCTIVE) for tid in self.task_ids}
        return dict(self._toggles)

    def _move(self, new_step: str, action: str) -> None:
        if not validate_survey_transition(self.step, new_step):
            raise InvalidTransitionError(self.step, action)
        logger.debug("Survey step %s → %s", self.step, new_step,
                     extra={"project_id": self.project_id})
        self.step = new_step

    def _require_step(self, step: str, action: str) -> None:
        if self.step != step:
            raise InvalidTransitionError(self.step, action)

    def _require_task(self, task_id: str) -> str:
        tid = str(task_id)
        if tid not in self.task_ids:
            raise ValidationError(
                f"Task {tid} is not an active task of this survey",
                details={f"task_updates.{tid}": "unknown task"},
            )
        return tid

    # ── Overview ─────────────────────────────────────────────────────────

    def select_site_status(self, status: str) -> None:
        """Choose the overall site status and derive per-task answers."""
        self._require_step("overview", "select a site status")
        if status not in SITE_STATUSES:
            raise ValidationError(
                f"Unknown site status {status!r}",
                details={"site_status": f"must be one of {list(SITE_STATUSES)}"},
            )

        self.site_status = status
        if status == "normal":
            self._toggles = {tid: PRODUCTIVE for tid in self.task_ids}
        elif status == "closed":
            self._toggles = {tid: NON_PRODUCTIVE for tid in self.task_ids}

        detail_step = DETAIL_STEP_FOR_STATUS.get(status)
        if detail_step:
            self._move(detail_step, f"select '{status}'")

    def back(self) -> None:
        """Return to the overview; the site status has to be chosen again."""
        if self.step not in DETAIL_STEP_FOR_STATUS.values():
            raise InvalidTransitionError(self.step, "go back")
        self._move("overview", "go back")
        self.site_status = None

    # ── Site closed detail ───────────────────────────────────────────────

    def set_site_closed_reason(self, reason: str, other_text: str = "") -> None:
        self._require_step("site_closed_detail", "set a site-closed reason")
        if reason not in SITE_CLOSED_REASONS:
            raise ValidationError(
                f"Unknown site-closed reason {reason!r}",
                details={"site_closed_reason": f"must be one of {list(SITE_CLOSED_REASONS)}"},
            )
        self.site_closed_reason = reason
        self.site_closed_reason_other = (other_text or "") if reason == OTHER_REASON else ""

    # ── Task delay detail ────────────────────────────────────────────────

    def toggle_task(self, task_id: str, productive: bool) -> None:
        """Flip one task between productive and non-productive."""
        self._require_step("task_delay_detail", "toggle a task")
        tid = self._require_task(task_id)
        if productive:
            self._toggles[tid] = PRODUCTIVE
            return
        prior = self._toggles.get(tid)
        if prior is not None and not prior.is_productive:
            return
        self._toggles[tid] = NON_PRODUCTIVE

    def set_delay_reason(self, task_id: str, reason: str, other_text: str | None = None) -> None:
        self._require_step("task_delay_detail", "set a delay reason")
        tid = self._require_task(task_id)
        current = self._toggles.get(tid, PRODUCTIVE)
        if current.is_productive:
            raise ValidationError(
                f"Task {tid} is productive; only non-productive tasks take a delay reason",
                details={f"task_updates.{tid}": "task is productive"},
            )
        if reason not in DELAY_REASONS:
            raise ValidationError(
                f"Unknown delay reason {reason!r}",
                details={f"task_updates.{tid}": f"delay_reason must be one of {list(DELAY_REASONS)}"},
            )
        self._toggles[tid] = TaskUpdate(
            status="non_productive",
            delay_reason=reason,
            delay_reason_other=(other_text or None) if reason == OTHER_REASON else None,
        )

    # ── Guard & terminal steps ───────────────────────────────────────────

    def guard_errors(self) -> dict[str, str]:
        """Everything that currently blocks the primary action."""
        return survey_guard_errors(
            self.site_status, self.site_closed_reason, self.task_updates, self.task_ids,
        )

    def can_proceed(self) -> bool:
        return not self.is_finished and not self.guard_errors()

    def prepare_submission(self, now: datetime | None = None) -> SurveyData:
        """
        Validate and freeze the answers.

        The machine stays in its current step; call ``mark_submitted`` once
        the pipeline reports success.

        Raises:
            InvalidTransitionError: the survey already finished.
            ValidationError: a guard is not satisfied; nothing leaves the device.
        """
        if not validate_survey_transition(self.step, "submitted"):
            raise InvalidTransitionError(self.step, "submit")
        errors = self.guard_errors()
        if errors:
            raise ValidationError("Survey is incomplete", details=errors)

        return SurveyData(
            project_id=self.project_id,
            date=now or datetime.now(timezone.utc),
            engineer_name=self.engineer_name,
            site_status=self.site_status,
            task_updates=map_task_updates(self.site_status, self._toggles, self.active_tasks),
            site_closed_reason=self.site_closed_reason if self.site_status == "closed" else None,
            site_closed_reason_other=(
                self.site_closed_reason_other or None
                if self.site_status == "closed" else None
            ),
        )

    def mark_submitted(self) -> None:
        self._move("submitted", "submit")

    def skip(self) -> None:
        """Dismiss the survey; allowed from any non-terminal step."""
        self._move("skipped", "skip")

    # ── Replay ───────────────────────────────────────────────────────────

    @classmethod
    def from_answers(
        cls,
        project_id: str,
        engineer_name: str,
        active_tasks: Iterable[Any],
        answers: Mapping[str, Any],
    ) -> "SurveyStateMachine":
        """
        Rebuild a session from answers captured on the client.

        ``answers`` holds ``site_status``, ``site_closed_reason``,
        ``site_closed_reason_other`` and ``task_updates`` (task_id →
        ``{status, delay_reason, delay_reason_other}``). Every answer goes
        through the same operations the UI uses, so the same rules apply.
        """
        machine = cls(project_id, engineer_name, active_tasks)
        site_status = answers.get("site_status")
        if site_status is None:
            return machine
        machine.select_site_status(site_status)

        if site_status == "closed" and answers.get("site_closed_reason"):
            machine.set_site_closed_reason(
                answers["site_closed_reason"],
                answers.get("site_closed_reason_other") or "",
            )
        elif site_status == "delayed":
            for tid, update in (answers.get("task_updates") or {}).items():
                update = update or {}
                status = update.get("status", "productive")
                if status not in TASK_UPDATE_STATUSES:
                    raise ValidationError(
                        f"Unknown task status {status!r}",
                        details={f"task_updates.{tid}": f"status must be one of {list(TASK_UPDATE_STATUSES)}"},
                    )
                if status == "productive":
                    machine.toggle_task(tid, productive=True)
                    continue
                machine.toggle_task(tid, productive=False)
                if update.get("delay_reason"):
                    machine.set_delay_reason(
                        tid, update["delay_reason"], update.get("delay_reason_other"),
                    )
        return machine
