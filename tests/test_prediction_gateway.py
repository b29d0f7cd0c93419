"""Tests for sitepulse.integrations.prediction_gateway.

A MagicMock stands in for requests.Session; time.sleep is patched so retry
backoff costs nothing.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

import sitepulse.integrations.prediction_gateway as gw_module
from sitepulse.integrations.prediction_gateway import PredictionGateway, build_prediction_gateway


def _make_response(status_code=200, body=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    resp.content = b"{}" if body is not None else b""
    resp.json.return_value = body
    resp.text = str(body)
    return resp


def _make_gateway(*responses, token="tok"):
    session = MagicMock()
    session.post.side_effect = list(responses)
    return PredictionGateway("http://fn.test/base/", api_token=token, timeout=5, session=session), session


@pytest.fixture(autouse=True)
def _no_sleep():
    with patch.object(gw_module.time, "sleep") as sleep:
        yield sleep


class TestCallProtocol:
    def test_wraps_payload_and_unwraps_result(self):
        gw, session = _make_gateway(_make_response(200, {"result": {"predictions": []}}))
        result = gw.predict_all_delays("p1")

        assert result.ok is True
        assert result.data == {"predictions": []}
        args, kwargs = session.post.call_args
        assert args[0] == "http://fn.test/base/predictAllDelays"
        assert kwargs["json"] == {"data": {"projectId": "p1"}}
        assert kwargs["headers"]["Authorization"] == "Bearer tok"
        assert kwargs["timeout"] == 5

    def test_no_token_sends_no_authorization(self):
        gw, session = _make_gateway(_make_response(200, {"result": {}}), token=None)
        gw.predict_delay({"taskId": "t1"})
        assert "Authorization" not in session.post.call_args.kwargs["headers"]

    def test_error_message_comes_from_error_body(self):
        body = {"error": {"message": "Task not found", "status": "NOT_FOUND"}}
        gw, session = _make_gateway(_make_response(404, body))
        result = gw.predict_delay({"taskId": "t1"})
        assert result.ok is False
        assert result.status_code == 404
        assert result.error == "Task not found"
        assert session.post.call_count == 1


class TestRetries:
    def test_idempotent_call_retries_server_errors(self, _no_sleep):
        gw, session = _make_gateway(
            _make_response(500, {"error": {"message": "INTERNAL"}}),
            _make_response(503, {"error": {"message": "UNAVAILABLE"}}),
            _make_response(200, {"result": {"predictions": []}}),
        )
        result = gw.predict_all_delays("p1")
        assert result.ok is True
        assert result.attempts == 3
        assert [c.args[0] for c in _no_sleep.call_args_list] == [1, 4]

    def test_gives_up_after_max_attempts(self):
        gw, session = _make_gateway(*[requests.ConnectionError("refused")] * 3)
        result = gw.predict_all_delays("p1")
        assert result.ok is False
        assert result.status_code is None
        assert "refused" in result.error
        assert session.post.call_count == 3

    def test_survey_submission_is_sent_once(self):
        gw, session = _make_gateway(
            _make_response(500, {"error": {"message": "INTERNAL"}}),
            _make_response(200, {"result": {"success": True}}),
        )
        result = gw.submit_daily_survey({"projectId": "p1"})
        assert result.ok is False
        assert result.error == "INTERNAL"
        assert session.post.call_count == 1

    def test_timeout_reports_message(self):
        gw, _ = _make_gateway(requests.Timeout())
        result = gw.submit_daily_survey({"projectId": "p1"})
        assert result.ok is False
        assert "timed out" in result.error


class TestCircuitBreaker:
    def test_opens_after_repeated_failures(self):
        gw, session = _make_gateway(*[requests.ConnectionError("down")] * 5)
        for _ in range(5):
            gw.submit_daily_survey({"projectId": "p1"})
        assert session.post.call_count == 5

        result = gw.submit_daily_survey({"projectId": "p1"})
        assert result.ok is False
        assert result.attempts == 0
        assert session.post.call_count == 5

    def test_breaker_is_per_function(self):
        gw, session = _make_gateway(
            *[requests.ConnectionError("down")] * 5,
            _make_response(200, {"result": {"predictions": []}}),
        )
        for _ in range(5):
            gw.submit_daily_survey({"projectId": "p1"})
        assert gw.predict_all_delays("p1").ok is True

    def test_success_resets_failures(self):
        gw, _ = _make_gateway(
            *[requests.ConnectionError("down")] * 4,
            _make_response(200, {"result": {}}),
        )
        for _ in range(5):
            gw.submit_daily_survey({"projectId": "p1"})
        assert not gw._breaker("submitDailySurvey").failures


class TestBuildGateway:
    def test_built_from_config_and_cached(self, app):
        gw = build_prediction_gateway()
        assert gw.base_url == app.config["PREDICTION_API_URL"]
        assert gw.api_token == app.config["PREDICTION_API_TOKEN"]
        assert build_prediction_gateway() is gw
