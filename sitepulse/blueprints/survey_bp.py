"""
Daily Site Survey Blueprint.

Endpoints:
  GET  /api/v1/survey/options                               — fixed answer sets
  GET  /api/v1/projects/<project_id>/survey/status?user_id= — should the survey show today?
  POST /api/v1/projects/<project_id>/survey                 — submit today's survey
  POST /api/v1/projects/<project_id>/survey/skip            — dismiss for today
  GET  /api/v1/projects/<project_id>/survey/history         — submitted surveys, newest first

Submission answers are replayed through SurveyStateMachine, so the API
enforces exactly the same rules as the survey modal.
"""

import logging

from flask import Blueprint, jsonify, request

from sitepulse.core.exceptions import (
    ConflictError,
    NotFoundError,
    PredictionServiceError,
    ValidationError,
)
from sitepulse.models.survey import DELAY_REASONS, SITE_CLOSED_REASONS, SITE_STATUSES
from sitepulse.services.survey_service import (
    DEFAULT_HISTORY_LIMIT,
    complete_survey,
    list_survey_history,
)
from sitepulse.services.survey_state_machine import SurveyStateMachine
from sitepulse.services.survey_tracking_service import should_show_survey, skip_survey_for_today
from sitepulse.services.task_status_mapper import filter_active_tasks
from sitepulse.utils.errors import E, api_error

logger = logging.getLogger(__name__)

survey_bp = Blueprint("survey", __name__, url_prefix="/api/v1")


# ── Error handlers ───────────────────────────────────────────────────────────


@survey_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@survey_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.SURVEY_GUARD, str(error), details=error.details)


@survey_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return api_error(E.CONFLICT_DUPLICATE, "Today's survey has already been submitted")


@survey_bp.errorhandler(PredictionServiceError)
def _handle_prediction(error: PredictionServiceError):
    return api_error(E.PREDICTION_UNAVAILABLE, str(error))


@survey_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    logger.exception("Unexpected error in survey_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


# ── Routes ───────────────────────────────────────────────────────────────────


@survey_bp.route("/survey/options", methods=["GET"])
def survey_options():
    return jsonify({
        "site_statuses": list(SITE_STATUSES),
        "site_closed_reasons": list(SITE_CLOSED_REASONS),
        "delay_reasons": list(DELAY_REASONS),
    })


@survey_bp.route("/projects/<project_id>/survey/status", methods=["GET"])
def survey_status(project_id):
    """Whether the engineer still has to address today's survey."""
    user_id = request.args.get("user_id", "").strip()
    if not user_id:
        return api_error(E.VALIDATION_REQUIRED, "user_id is required")
    return jsonify({
        "project_id": project_id,
        "user_id": user_id,
        "should_show": should_show_survey(user_id, project_id),
    })


@survey_bp.route("/projects/<project_id>/survey", methods=["POST"])
def submit_survey(project_id):
    """
    Submit today's survey.

    Body: {user_id, engineer_name, tasks: [{id, status, ...}], site_status,
           site_closed_reason?, site_closed_reason_other?, task_updates?}
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")

    user_id = str(data.get("user_id") or "").strip()
    if not user_id:
        return api_error(E.VALIDATION_REQUIRED, "user_id is required")
    tasks = data.get("tasks", [])
    if not isinstance(tasks, list) or not all(isinstance(t, dict) for t in tasks):
        return api_error(E.VALIDATION_INVALID, "tasks must be a list of objects")
    task_updates = data.get("task_updates") or {}
    if not isinstance(task_updates, dict):
        return api_error(E.VALIDATION_INVALID, "task_updates must be an object")

    answers = {
        "site_status": data.get("site_status"),
        "site_closed_reason": data.get("site_closed_reason"),
        "site_closed_reason_other": data.get("site_closed_reason_other"),
        "task_updates": task_updates,
    }
    machine = SurveyStateMachine.from_answers(
        project_id,
        str(data.get("engineer_name") or ""),
        filter_active_tasks(tasks),
        answers,
    )
    result = complete_survey(user_id, machine)
    return jsonify(result.to_dict()), 201


@survey_bp.route("/projects/<project_id>/survey/skip", methods=["POST"])
def skip_survey(project_id):
    data = request.get_json(silent=True) or {}
    user_id = str(data.get("user_id") or "").strip()
    if not user_id:
        return api_error(E.VALIDATION_REQUIRED, "user_id is required")
    # A failed write is logged by the service; the engineer is not blocked
    recorded = skip_survey_for_today(user_id, project_id) is not None
    return jsonify({"skipped": True, "recorded": recorded})


@survey_bp.route("/projects/<project_id>/survey/history", methods=["GET"])
def survey_history(project_id):
    limit = request.args.get("limit", DEFAULT_HISTORY_LIMIT, type=int)
    items = list_survey_history(project_id, limit, user_id=request.args.get("user_id") or None)
    return jsonify({"items": items, "total": len(items)})
