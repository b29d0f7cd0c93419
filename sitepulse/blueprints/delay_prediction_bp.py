"""
Delay Prediction Blueprint.

Endpoints:
  GET  /api/v1/projects/<project_id>/delay-predictions — predictions + risk summary
  POST /api/v1/delay-predictions/predict                — single-task prediction

The project endpoint always answers 200: when the prediction service is
down the summary is all zeros and ``error`` says why.
"""

import logging

from flask import Blueprint, jsonify, request

from sitepulse.core.exceptions import PredictionServiceError, ValidationError
from sitepulse.services.delay_prediction_service import (
    RiskAggregator,
    format_delay_days,
    predict_task_delay,
)
from sitepulse.utils.errors import E, api_error

logger = logging.getLogger(__name__)

delay_prediction_bp = Blueprint("delay_prediction", __name__, url_prefix="/api/v1")


@delay_prediction_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_REQUIRED, str(error), details=error.details)


@delay_prediction_bp.errorhandler(PredictionServiceError)
def _handle_prediction(error: PredictionServiceError):
    return api_error(E.PREDICTION_UNAVAILABLE, str(error))


@delay_prediction_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    logger.exception("Unexpected error in delay_prediction_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


def _with_display(prediction):
    if not isinstance(prediction, dict) or "delayDays" not in prediction:
        return prediction
    display = format_delay_days(prediction.get("delayDays"))
    if display is None:
        return prediction
    return {**prediction, "delay_display": display}


@delay_prediction_bp.route("/projects/<project_id>/delay-predictions", methods=["GET"])
def project_delay_predictions(project_id):
    aggregator = RiskAggregator()
    aggregator.refresh(project_id)
    body = aggregator.to_dict()
    body["project_id"] = project_id
    body["predictions"] = [_with_display(p) for p in body["predictions"]]
    return jsonify(body)


@delay_prediction_bp.route("/delay-predictions/predict", methods=["POST"])
def predict_single():
    """Body: the task input, e.g. {taskId, projectId, ...}."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    return jsonify(_with_display(predict_task_delay(data)))
