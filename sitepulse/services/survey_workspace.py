"""
Survey workspace — one engineer's view of one project for one session.

Sequences gate → task loading → state machine, exactly once per workspace:
``survey_checked`` is set before the gate is asked and stays set until the
workspace is closed, so a second ``open_survey`` call never re-issues the
check. Results arriving after ``close()`` are dropped.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from sitepulse.core.exceptions import ValidationError
from sitepulse.services.survey_service import complete_survey, dismiss_survey
from sitepulse.services.survey_state_machine import SurveyStateMachine
from sitepulse.services.survey_tracking_service import should_show_survey
from sitepulse.services.survey_types import SubmissionResult
from sitepulse.services.task_status_mapper import filter_active_tasks

logger = logging.getLogger(__name__)

TaskLoader = Callable[[str], Iterable[Any]]


class SurveyWorkspace:
    def __init__(self, user_id: str, project_id: str, engineer_name: str, task_loader: TaskLoader):
        self.user_id = user_id
        self.project_id = project_id
        self.engineer_name = engineer_name
        self.task_loader = task_loader
        self.survey_checked = False
        self.closed = False
        self.machine: SurveyStateMachine | None = None

    def open_survey(self) -> SurveyStateMachine | None:
        """
        Return a fresh survey session, or None when there is nothing to ask.

        None when: already checked in this workspace, already addressed
        today, the workspace was closed meanwhile, or the project has no
        active tasks.
        """
        if self.closed or self.survey_checked:
            return None
        self.survey_checked = True

        if not should_show_survey(self.user_id, self.project_id):
            return None

        # Tasks are only loaded once the gate said yes
        active = filter_active_tasks(self.task_loader(self.project_id))
        if self.closed:
            return None
        if not active:
            logger.info("No active tasks, survey not shown", extra={"project_id": self.project_id})
            return None

        self.machine = SurveyStateMachine(self.project_id, self.engineer_name, active)
        return self.machine

    def _require_machine(self) -> SurveyStateMachine:
        if self.machine is None:
            raise ValidationError("No survey is open", details={"survey": "not open"})
        return self.machine

    def submit(self) -> SubmissionResult | None:
        result = complete_survey(self.user_id, self._require_machine())
        return None if self.closed else result

    def skip(self) -> None:
        dismiss_survey(self.user_id, self._require_machine())

    def close(self) -> None:
        self.closed = True
        self.machine = None
