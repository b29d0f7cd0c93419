"""Tests for risk aggregation, single-task prediction and delay display text."""

import pytest

from sitepulse.core.exceptions import PredictionServiceError, ValidationError
from sitepulse.integrations.prediction_gateway import GatewayResult
from sitepulse.services.delay_prediction_service import (
    RiskAggregator,
    RiskSummary,
    format_delay_days,
    predict_task_delay,
    summarize_predictions,
)


def _ok_result(data) -> GatewayResult:
    return GatewayResult(ok=True, status_code=200, data=data, error=None, duration_ms=90)


def _err_result(error="Prediction service temporarily unavailable") -> GatewayResult:
    return GatewayResult(ok=False, status_code=None, data=None, error=error, duration_ms=0)


class TestSummarizePredictions:
    def test_scenario_e(self):
        preds = [{"riskLevel": "High"}, {"riskLevel": "Medium"}, {"riskLevel": "Medium"}, {"riskLevel": "Low"}]
        assert summarize_predictions(preds) == RiskSummary(high_risk=1, medium_risk=2, low_risk=1, total=4)

    def test_matching_is_exact_and_case_sensitive(self):
        preds = [{"riskLevel": "high"}, {"riskLevel": "MEDIUM"}, {"riskLevel": None}, {}]
        summary = summarize_predictions(preds)
        assert (summary.high_risk, summary.medium_risk, summary.low_risk) == (0, 0, 4)

    def test_counts_always_sum_to_prediction_count(self):
        preds = [{"riskLevel": lvl} for lvl in ("High", "Low", "Unknown", "Medium", "High")]
        s = summarize_predictions(preds, total_tasks=9)
        assert s.high_risk + s.medium_risk + s.low_risk == len(preds)
        assert s.total == 9

    def test_empty(self):
        assert summarize_predictions([]) == RiskSummary.zero()
        assert summarize_predictions(None).total == 0


class TestRiskAggregator:
    def test_refresh_replaces_summary(self, fake_gateway):
        fake_gateway.predict_all_delays.return_value = _ok_result({
            "projectId": "p1",
            "predictions": [{"taskId": "t1", "riskLevel": "High"}, {"taskId": "t2", "riskLevel": "Low"}],
            "totalTasks": 2,
        })
        agg = RiskAggregator()
        summary = agg.refresh("p1")
        assert summary.to_dict() == {"high_risk": 1, "medium_risk": 0, "low_risk": 1, "total": 2}
        assert len(agg.predictions) == 2
        assert agg.last_error is None
        fake_gateway.predict_all_delays.assert_called_once_with("p1")

    def test_failure_resets_to_zero(self, fake_gateway):
        fake_gateway.predict_all_delays.return_value = _ok_result({
            "predictions": [{"riskLevel": "High"}], "totalTasks": 1,
        })
        agg = RiskAggregator()
        agg.refresh("p1")

        fake_gateway.predict_all_delays.return_value = _err_result()
        summary = agg.refresh("p1")
        assert summary == RiskSummary.zero()
        assert agg.predictions == []
        assert agg.last_error == "Prediction service temporarily unavailable"

    def test_malformed_result_resets_to_zero(self, fake_gateway):
        fake_gateway.predict_all_delays.return_value = _ok_result({"predictions": "nope"})
        agg = RiskAggregator()
        assert agg.refresh("p1") == RiskSummary.zero()
        assert agg.last_error

    def test_missing_project_never_calls_boundary(self, fake_gateway):
        agg = RiskAggregator()
        assert agg.refresh("") == RiskSummary.zero()
        fake_gateway.predict_all_delays.assert_not_called()


class TestPredictTaskDelay:
    def test_passes_result_through(self, fake_gateway):
        fake_gateway.predict_delay.return_value = _ok_result({"taskId": "t1", "delayDays": 3, "riskLevel": "Medium"})
        assert predict_task_delay({"taskId": "t1"})["riskLevel"] == "Medium"

    def test_failure_raises(self, fake_gateway):
        fake_gateway.predict_delay.return_value = _err_result("internal")
        with pytest.raises(PredictionServiceError, match="internal"):
            predict_task_delay({"taskId": "t1"})

    def test_task_id_required(self, fake_gateway):
        with pytest.raises(ValidationError):
            predict_task_delay({})
        fake_gateway.predict_delay.assert_not_called()


class TestFormatDelayDays:
    @pytest.mark.parametrize("days, text", [
        (0, "On track"),
        (-2, "On track"),
        (None, "On track"),
        (1, "1 day delayed"),
        (1.04, "1 day delayed"),
        (2, "2 days delayed"),
        (2.46, "2.5 days delayed"),
        (0.3, "0.3 days delayed"),
    ])
    def test_format(self, days, text):
        assert format_delay_days(days) == text

    def test_numeric_string_is_coerced(self):
        assert format_delay_days("3") == "3 days delayed"

    @pytest.mark.parametrize("days", ["soon", {"d": 1}, float("nan"), float("inf")])
    def test_non_numeric_gives_none(self, days):
        assert format_delay_days(days) is None
