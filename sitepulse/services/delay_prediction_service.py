"""
Delay-risk aggregation over the prediction boundary.

``summarize_predictions`` is the pure reduction; ``RiskAggregator`` wraps the
``predictAllDelays`` call and keeps the last good (or zeroed) summary for a
dashboard. A failed refresh never raises: the summary drops to zeros and
``last_error`` holds the reason.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Iterable

from sitepulse.core.exceptions import PredictionServiceError, ValidationError
from sitepulse.integrations import prediction_gateway

logger = logging.getLogger(__name__)


@dataclass
class RiskSummary:
    high_risk: int = 0
    medium_risk: int = 0
    low_risk: int = 0
    total: int = 0

    @classmethod
    def zero(cls) -> "RiskSummary":
        return cls()

    def to_dict(self) -> dict:
        return asdict(self)


def _risk_level(prediction: Any) -> Any:
    if isinstance(prediction, dict):
        return prediction.get("riskLevel", prediction.get("risk_level"))
    return getattr(prediction, "risk_level", None)


def summarize_predictions(
    predictions: Iterable[Any] | None, total_tasks: int | None = None,
) -> RiskSummary:
    """
    Count predictions per risk level.

    Only the exact strings "High" and "Medium" count as such; every other
    value, missing ones included, counts as low.
    """
    preds = list(predictions or [])
    high = medium = low = 0
    for p in preds:
        level = _risk_level(p)
        if level == "High":
            high += 1
        elif level == "Medium":
            medium += 1
        else:
            low += 1
    return RiskSummary(
        high_risk=high,
        medium_risk=medium,
        low_risk=low,
        total=total_tasks if total_tasks is not None else len(preds),
    )


class RiskAggregator:
    """Holds the latest risk summary for one dashboard view."""

    def __init__(self) -> None:
        self.summary = RiskSummary.zero()
        self.predictions: list[dict] = []
        self.last_error: str | None = None

    def _reset(self, error: str) -> RiskSummary:
        self.summary = RiskSummary.zero()
        self.predictions = []
        self.last_error = error
        return self.summary

    def refresh(self, project_id: str) -> RiskSummary:
        """Re-run predictions for every active task of ``project_id``."""
        if not project_id:
            return self._reset("project_id is required")

        gateway = prediction_gateway.build_prediction_gateway()
        result = gateway.predict_all_delays(project_id)
        if not result.ok:
            logger.warning(
                "Delay predictions unavailable: %s", result.error,
                extra={"project_id": project_id},
            )
            return self._reset(result.error or "Prediction service unavailable")

        data = result.data if isinstance(result.data, dict) else {}
        predictions = data.get("predictions")
        if not isinstance(predictions, list):
            logger.warning("Malformed predictAllDelays result", extra={"project_id": project_id})
            return self._reset("Malformed prediction response")

        total = data.get("totalTasks")
        self.predictions = predictions
        self.summary = summarize_predictions(
            predictions, total if isinstance(total, int) else None,
        )
        self.last_error = None
        logger.info(
            "Delay risk refreshed high=%d medium=%d low=%d",
            self.summary.high_risk, self.summary.medium_risk, self.summary.low_risk,
            extra={"project_id": project_id},
        )
        return self.summary

    def to_dict(self) -> dict:
        return {
            "summary": self.summary.to_dict(),
            "predictions": self.predictions,
            "error": self.last_error,
        }


def predict_task_delay(payload: dict) -> dict:
    """
    Single-task prediction.

    Raises:
        ValidationError: payload is not an object or has no taskId.
        PredictionServiceError: the boundary failed.
    """
    if not isinstance(payload, dict) or not payload.get("taskId"):
        raise ValidationError("taskId is required", details={"taskId": "required"})

    gateway = prediction_gateway.build_prediction_gateway()
    result = gateway.predict_delay(payload)
    if not result.ok:
        raise PredictionServiceError(
            result.error or "Prediction failed",
            status_code=result.status_code,
            function=prediction_gateway.FN_PREDICT_DELAY,
        )
    return result.data or {}


def format_delay_days(days: float | int | str | None) -> str | None:
    """Display text for a predicted delay.

    Numeric strings are accepted; anything that is not a finite number
    gives None so the caller can leave the prediction undecorated.
    """
    if days is None:
        return "On track"
    try:
        value = float(days)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    if value <= 0:
        return "On track"
    rounded = round(value, 1)
    if rounded == 1:
        return "1 day delayed"
    text = str(int(rounded)) if rounded.is_integer() else str(rounded)
    return f"{text} days delayed"
