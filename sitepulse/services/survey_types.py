"""
Value objects exchanged by the survey services.

    TaskUpdate        — productivity classification of one task for one day
    SurveyData        — one day's survey answers, immutable once built
    SubmissionResult  — what the prediction boundary answered to a submission

``to_payload()`` renders the camelCase wire shape the prediction boundary
expects; ``to_dict()`` renders the snake_case shape of the REST API.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class TaskUpdate:
    """Per-task answer: productive, or non-productive with a reason."""
    status: str
    delay_reason: str | None = None
    delay_reason_other: str | None = None

    @property
    def is_productive(self) -> bool:
        return self.status == "productive"

    def to_dict(self) -> dict:
        data = {"status": self.status}
        if self.delay_reason:
            data["delay_reason"] = self.delay_reason
        if self.delay_reason_other:
            data["delay_reason_other"] = self.delay_reason_other
        return data

    def to_payload(self) -> dict:
        data = {"status": self.status}
        if self.delay_reason:
            data["delayReason"] = self.delay_reason
        if self.delay_reason_other:
            data["delayReasonOther"] = self.delay_reason_other
        return data


@dataclass(frozen=True)
class SurveyData:
    """A single day's submission for one project."""
    project_id: str
    date: datetime
    engineer_name: str
    site_status: str
    task_updates: dict[str, TaskUpdate] = field(default_factory=dict)
    site_closed_reason: str | None = None
    site_closed_reason_other: str | None = None

    def to_dict(self) -> dict:
        return {
            "project_id": self.project_id,
            "date": self.date.isoformat(),
            "engineer_name": self.engineer_name,
            "site_status": self.site_status,
            "site_closed_reason": self.site_closed_reason,
            "site_closed_reason_other": self.site_closed_reason_other,
            "task_updates": {tid: u.to_dict() for tid, u in self.task_updates.items()},
        }

    def to_payload(self) -> dict:
        """Wire shape of ``submitDailySurvey``; absent optionals are omitted."""
        payload: dict[str, Any] = {
            "projectId": self.project_id,
            "date": self.date.isoformat(),
            "engineerName": self.engineer_name,
            "siteStatus": self.site_status,
            "taskUpdates": {tid: u.to_payload() for tid, u in self.task_updates.items()},
        }
        if self.site_closed_reason:
            payload["siteClosedReason"] = self.site_closed_reason
        if self.site_closed_reason_other:
            payload["siteClosedReasonOther"] = self.site_closed_reason_other
        return payload


@dataclass
class SubmissionResult:
    """Boundary answer to ``submitDailySurvey``, passed through for display."""
    success: bool
    updates_processed: int
    updates: list[dict] = field(default_factory=list)

    @classmethod
    def from_response(cls, data: dict | None) -> "SubmissionResult":
        data = data or {}
        updates = data.get("updates") or []
        return cls(
            success=bool(data.get("success", True)),
            updates_processed=int(data.get("updatesProcessed", len(updates)) or 0),
            updates=list(updates),
        )

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "updates_processed": self.updates_processed,
            "updates": self.updates,
        }
