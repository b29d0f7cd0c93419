"""
Daily survey submission pipeline.

    validate → claim the day → submitDailySurvey → mark claim submitted
                                   │
                                   └─ failure → release claim, raise

The claim is the DailySurvey row for (user, project, local day). It is
committed as ``pending`` before the remote call, so two devices submitting
for the same engineer on the same day cannot both reach the boundary.
The tracking record is written by ``complete_survey`` only after the
boundary accepted the survey; a failed submission leaves the day
re-promptable.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from sitepulse.core.exceptions import ConflictError, PredictionServiceError, ValidationError
from sitepulse.integrations import prediction_gateway
from sitepulse.models import db
from sitepulse.models.survey import DailySurvey
from sitepulse.services.survey_state_machine import SurveyStateMachine, survey_guard_errors
from sitepulse.services.survey_tracking_service import (
    as_utc,
    local_today,
    record_survey_submission,
    skip_survey_for_today,
    survey_tz,
)
from sitepulse.services.survey_types import SubmissionResult, SurveyData

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 30
MAX_HISTORY_LIMIT = 200


def validate_survey_data(data: SurveyData) -> None:
    """Apply the survey guard to an assembled SurveyData.

    Raises:
        ValidationError: with field-level details.
    """
    errors = {}
    if not data.project_id:
        errors["project_id"] = "required"
    errors.update(survey_guard_errors(data.site_status, data.site_closed_reason, data.task_updates))
    if errors:
        raise ValidationError("Survey is incomplete", details=errors)


# ── Same-day claim ───────────────────────────────────────────────────────────


def _fill(row: DailySurvey, data: SurveyData) -> None:
    row.submitted_at = as_utc(data.date)
    row.engineer_name = data.engineer_name or ""
    row.site_status = data.site_status
    row.site_closed_reason = data.site_closed_reason
    row.site_closed_reason_other = data.site_closed_reason_other
    row.task_updates = {tid: u.to_dict() for tid, u in data.task_updates.items()}


def _claim_is_stale(row: DailySurvey, now: datetime) -> bool:
    ttl = current_app.config.get("SURVEY_CLAIM_TTL_SECONDS", 300)
    created = as_utc(row.created_at) if row.created_at else now
    return now - created > timedelta(seconds=ttl)


def _claim_day(user_id: str, data: SurveyData, survey_date: date) -> DailySurvey:
    """Insert the pending claim, or take over an abandoned one.

    Raises:
        ConflictError: the day is already submitted or being submitted.
    """
    conflict = ConflictError(
        "DailySurvey", "user_id+project_id+survey_date",
        f"{user_id}/{data.project_id}/{survey_date.isoformat()}",
    )
    now = datetime.now(timezone.utc)

    existing = db.session.execute(
        select(DailySurvey).where(
            DailySurvey.user_id == user_id,
            DailySurvey.project_id == data.project_id,
            DailySurvey.survey_date == survey_date,
        )
    ).scalar_one_or_none()

    if existing is not None:
        if existing.status != "pending" or not _claim_is_stale(existing, now):
            raise conflict
        logger.warning(
            "Taking over abandoned survey claim id=%s", existing.id,
            extra={"user_id": user_id, "project_id": data.project_id},
        )
        _fill(existing, data)
        existing.created_at = now
        db.session.commit()
        return existing

    claim = DailySurvey(
        project_id=data.project_id,
        user_id=user_id,
        survey_date=survey_date,
        status="pending",
    )
    _fill(claim, data)
    try:
        db.session.add(claim)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise conflict
    return claim


def _is_submitted(user_id: str, project_id: str, survey_date: date) -> bool:
    status = db.session.execute(
        select(DailySurvey.status).where(
            DailySurvey.user_id == user_id,
            DailySurvey.project_id == project_id,
            DailySurvey.survey_date == survey_date,
        )
    ).scalar_one_or_none()
    return status == "submitted"


def _release_claim(claim: DailySurvey) -> None:
    db.session.delete(claim)
    db.session.commit()


# ── Pipeline ─────────────────────────────────────────────────────────────────


def submit_survey(data: SurveyData, *, user_id: str | None = None) -> SubmissionResult:
    """
    Send one day's survey to the prediction boundary.

    Args:
        data: Answers produced by ``SurveyStateMachine.prepare_submission``.
        user_id: The engineer. When given, the (user, project, day) claim
            guarantees at most one boundary call per day.

    Returns:
        SubmissionResult with the boundary's updates passed through.

    Raises:
        ValidationError: answers fail the survey guard; nothing is sent.
        ConflictError: the day was already submitted (or is in flight).
        PredictionServiceError: the boundary rejected or failed the call;
            the message is the boundary's own.
    """
    validate_survey_data(data)
    survey_date = local_today(survey_tz())

    claim = _claim_day(user_id, data, survey_date) if user_id else None

    gateway = prediction_gateway.build_prediction_gateway()
    result = gateway.submit_daily_survey(data.to_payload())

    error = None
    if not result.ok:
        error = result.error or "Survey submission failed"
    elif isinstance(result.data, dict) and result.data.get("success") is False:
        error = result.data.get("message") or "Survey submission was not accepted"

    if error:
        if claim is not None:
            _release_claim(claim)
        logger.warning(
            "Survey submission failed: %s", error,
            extra={"user_id": user_id, "project_id": data.project_id},
        )
        raise PredictionServiceError(
            error,
            status_code=result.status_code,
            function=prediction_gateway.FN_SUBMIT_DAILY_SURVEY,
        )

    submission = SubmissionResult.from_response(result.data)

    row = claim
    if row is None:
        row = DailySurvey(project_id=data.project_id, survey_date=survey_date)
        _fill(row, data)
        db.session.add(row)
    row.status = "submitted"
    row.updates_processed = submission.updates_processed
    db.session.commit()

    logger.info(
        "Survey submitted site_status=%s updates=%d",
        data.site_status, submission.updates_processed,
        extra={"user_id": user_id, "project_id": data.project_id},
    )
    return submission


def complete_survey(user_id: str, machine: SurveyStateMachine) -> SubmissionResult:
    """prepare → submit → record → mark submitted.

    Nothing is recorded when the submission fails, so the survey shows
    again on the next check. When the day is already submitted but the
    tracking write was lost, a retry writes it and still raises ConflictError.
    """
    data = machine.prepare_submission()
    try:
        result = submit_survey(data, user_id=user_id)
    except ConflictError:
        # Boundary already accepted today's survey but the tracking write
        # was lost; finish it so the gate stops asking, then report the duplicate.
        if _is_submitted(user_id, data.project_id, local_today(survey_tz())):
            logger.warning(
                "Repairing tracking record for an already submitted day",
                extra={"user_id": user_id, "project_id": data.project_id},
            )
            record_survey_submission(user_id, machine.project_id)
        raise
    record_survey_submission(user_id, machine.project_id)
    machine.mark_submitted()
    return result


def dismiss_survey(user_id: str, machine: SurveyStateMachine) -> None:
    machine.skip()
    skip_survey_for_today(user_id, machine.project_id)


def list_survey_history(
    project_id: str, limit: int = DEFAULT_HISTORY_LIMIT, *, user_id: str | None = None,
) -> list[dict]:
    """Submitted surveys for a project, newest first."""
    limit = max(1, min(int(limit), MAX_HISTORY_LIMIT))
    stmt = (
        select(DailySurvey)
        .where(DailySurvey.project_id == project_id, DailySurvey.status == "submitted")
        .order_by(DailySurvey.survey_date.desc(), DailySurvey.id.desc())
        .limit(limit)
    )
    if user_id:
        stmt = stmt.where(DailySurvey.user_id == user_id)
    return [s.to_dict() for s in db.session.execute(stmt).scalars()]


def release_stale_claims(now: datetime | None = None) -> int:
    """Delete pending claims older than SURVEY_CLAIM_TTL_SECONDS.

    Returns the number of claims removed.
    """
    now = now or datetime.now(timezone.utc)
    stale = [
        row for row in db.session.execute(
            select(DailySurvey).where(DailySurvey.status == "pending")
        ).scalars()
        if _claim_is_stale(row, now)
    ]
    for row in stale:
        db.session.delete(row)
    db.session.commit()
    if stale:
        logger.info("Released %d abandoned survey claims", len(stale))
    return len(stale)
