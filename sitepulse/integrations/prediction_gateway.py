"""
Delay-prediction boundary gateway.

All outbound calls to the remote prediction functions go through this
class. Direct `requests` calls in services or blueprints are FORBIDDEN.

Protocol (callable cloud functions over HTTPS):
  - POST {PREDICTION_API_URL}/{function}   body {"data": <payload>}
  - 2xx → {"result": <payload>}
  - non-2xx → {"error": {"message": str, "status": str}}

Behaviour:
  - Bearer token from PREDICTION_API_TOKEN (omitted when unset, e.g. emulator)
  - Retry: up to 2 extra attempts with backoff (1 s → 4 s), only for calls
    marked idempotent; survey submission is sent exactly once
  - Timeout: PREDICTION_TIMEOUT_SECONDS (default 30 s)
  - Circuit breaker: ≥5 failures in 60 s → 30 s pause per function

Testability: pass a mock `session` to PredictionGateway() in tests, or patch
`build_prediction_gateway` to hand services a MagicMock.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Any

import requests
from flask import current_app

logger = logging.getLogger(__name__)

# ── Remote function names ──────────────────────────────────────────────────
FN_SUBMIT_DAILY_SURVEY = "submitDailySurvey"
FN_PREDICT_ALL_DELAYS = "predictAllDelays"
FN_PREDICT_DELAY = "predictDelay"

# ── Circuit breaker constants ──────────────────────────────────────────────
_CB_FAILURE_THRESHOLD = 5
_CB_WINDOW_SECONDS = 60
_CB_OPEN_DURATION_SECONDS = 30

# ── Retry constants ────────────────────────────────────────────────────────
_RETRY_MAX = 2
_RETRY_BACKOFF_SECONDS = [1, 4]

_DEFAULT_TIMEOUT = 30

_EXTENSION_KEY = "prediction_gateway"


class GatewayResult:
    """Structured return value from PredictionGateway calls.

    Attributes:
        ok:             True if the function answered 2xx with a result.
        status_code:    HTTP status code (None if network-level failure).
        data:           The function's ``result`` payload, else None.
        error:          Error message reported by the function or transport.
        duration_ms:    Round-trip latency of the last attempt in milliseconds.
        attempts:       Number of HTTP attempts made.
    """

    def __init__(
        self,
        ok: bool,
        status_code: int | None,
        data: Any,
        error: str | None,
        duration_ms: int,
        attempts: int = 1,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.data = data
        self.error = error
        self.duration_ms = duration_ms
        self.attempts = attempts

    def __repr__(self) -> str:
        return f"<GatewayResult ok={self.ok} status={self.status_code} error={self.error!r}>"


def _error_message(resp: requests.Response) -> str:
    """Pull the callable-protocol error message out of a failed response."""
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}: {resp.text[:500]}"
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return str(err["message"])[:500]
    if isinstance(err, str):
        return err[:500]
    return f"HTTP {resp.status_code}"


class _Breaker:
    """Failure window for one remote function.

    ``_CB_FAILURE_THRESHOLD`` failures inside ``_CB_WINDOW_SECONDS`` open the
    breaker for ``_CB_OPEN_DURATION_SECONDS``; one success closes it again.
    """

    def __init__(self, function: str) -> None:
        self.function = function
        self.failures: deque[float] = deque()
        self.open_until: float | None = None

    def allow(self) -> bool:
        now = time.monotonic()
        if self.open_until is not None and now < self.open_until:
            logger.warning("Circuit open for %s (%.0fs left)", self.function, self.open_until - now,
                           extra={"remote_function": self.function})
            return False

        while self.failures and self.failures[0] < now - _CB_WINDOW_SECONDS:
            self.failures.popleft()
        if len(self.failures) < _CB_FAILURE_THRESHOLD:
            return True

        self.open_until = now + _CB_OPEN_DURATION_SECONDS
        logger.error(
            "Circuit opened for %s: %d failures in %ds",
            self.function, len(self.failures), _CB_WINDOW_SECONDS,
            extra={"remote_function": self.function},
        )
        return False

    def failure(self) -> None:
        self.failures.append(time.monotonic())

    def success(self) -> None:
        self.failures.clear()
        self.open_until = None


class PredictionGateway:
    """Client for the remote delay-prediction functions.

    One instance per Flask app (see ``build_prediction_gateway``) so that the
    circuit-breaker state is shared across requests.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_token: str | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self._session: requests.Session | None = session
        self._breakers: dict[str, _Breaker] = {}

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ── Circuit breaker ───────────────────────────────────────────────────────

    def _breaker(self, function: str) -> _Breaker:
        return self._breakers.setdefault(function, _Breaker(function))

    # ── Core dispatcher ───────────────────────────────────────────────────────

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def call(self, function: str, payload: dict, *, idempotent: bool = True) -> GatewayResult:
        """Invoke a remote function.

        Implements:
          1. Reject immediately while the function's breaker is open.
          2. POST {"data": payload}; on 2xx → success with ``result``.
          3. On non-2xx or network error: record the failure; when
             ``idempotent`` retry up to _RETRY_MAX times with backoff.
          4. 4xx answers other than 408/429 are the function rejecting the
             input and are never retried.

        Returns:
            GatewayResult; never raises. Callers check ``.ok``.
        """
        if not self._breaker(function).allow():
            return GatewayResult(
                ok=False,
                status_code=None,
                data=None,
                error="Prediction service temporarily unavailable, please retry shortly",
                duration_ms=0,
                attempts=0,
            )

        url = f"{self.base_url}/{function}"
        max_attempts = _RETRY_MAX + 1 if idempotent else 1
        last_error = "Unknown error"
        last_status: int | None = None
        duration_ms = 0

        for attempt in range(max_attempts):
            retryable = True
            t0 = time.perf_counter()
            try:
                resp = self.session.post(
                    url, json={"data": payload}, headers=self._headers(), timeout=self.timeout,
                )
                duration_ms = int((time.perf_counter() - t0) * 1000)
                last_status = resp.status_code

                if resp.ok:
                    self._breaker(function).success()
                    try:
                        body = resp.json() if resp.content else {}
                    except ValueError:
                        body = {}
                    result = body.get("result") if isinstance(body, dict) else None
                    logger.info("Prediction call %s ok in %dms", function, duration_ms,
                                extra={"remote_function": function, "duration_ms": duration_ms})
                    return GatewayResult(
                        ok=True,
                        status_code=resp.status_code,
                        data=result,
                        error=None,
                        duration_ms=duration_ms,
                        attempts=attempt + 1,
                    )

                last_error = _error_message(resp)
                retryable = resp.status_code >= 500 or resp.status_code in (408, 429)
                if retryable:
                    self._breaker(function).failure()
                logger.warning(
                    "Prediction call failed attempt=%d/%d status=%d function=%s error=%s",
                    attempt + 1, max_attempts, resp.status_code, function, last_error,
                    extra={"remote_function": function, "attempt": attempt + 1},
                )

            except requests.Timeout:
                duration_ms = int(self.timeout * 1000)
                last_error = f"Prediction service timed out after {self.timeout}s"
                self._breaker(function).failure()
                logger.warning(
                    "Prediction call timed out attempt=%d/%d function=%s",
                    attempt + 1, max_attempts, function,
                    extra={"remote_function": function, "attempt": attempt + 1},
                )

            except requests.RequestException as exc:
                duration_ms = 0
                last_error = str(exc)[:500]
                self._breaker(function).failure()
                logger.warning(
                    "Prediction network error attempt=%d/%d function=%s error=%s",
                    attempt + 1, max_attempts, function, last_error,
                    extra={"remote_function": function, "attempt": attempt + 1},
                )

            if not retryable:
                return GatewayResult(
                    ok=False,
                    status_code=last_status,
                    data=None,
                    error=last_error,
                    duration_ms=duration_ms,
                    attempts=attempt + 1,
                )

            if attempt < max_attempts - 1:
                sleep_s = _RETRY_BACKOFF_SECONDS[min(attempt, len(_RETRY_BACKOFF_SECONDS) - 1)]
                logger.info("Retrying %s in %ss (attempt %d)", function, sleep_s, attempt + 2)
                time.sleep(sleep_s)

        return GatewayResult(
            ok=False,
            status_code=last_status,
            data=None,
            error=last_error,
            duration_ms=duration_ms,
            attempts=max_attempts,
        )

    # ── Prediction functions ──────────────────────────────────────────────────

    def submit_daily_survey(self, survey_payload: dict) -> GatewayResult:
        """Send one day's survey; the function updates task states and re-predicts.

        Expected result: {success, updatesProcessed, updates: [{taskId,
        delayDays, riskLevel, predictedDuration, lastSurveyUpdate}]}.
        Not retried: a replay would record the day twice downstream.
        """
        return self.call(FN_SUBMIT_DAILY_SURVEY, survey_payload, idempotent=False)

    def predict_all_delays(self, project_id: str) -> GatewayResult:
        """Risk predictions for every active task of a project.

        Expected result: {projectId, predictions: [{taskId, riskLevel, ...}],
        totalTasks, ...}.
        """
        return self.call(FN_PREDICT_ALL_DELAYS, {"projectId": project_id})

    def predict_delay(self, task_input: dict) -> GatewayResult:
        """Prediction for a single task described by ``task_input``."""
        return self.call(FN_PREDICT_DELAY, task_input)


def build_prediction_gateway() -> PredictionGateway:
    """Return the current app's PredictionGateway, creating it on first use.

    Services call this instead of instantiating PredictionGateway. In tests,
    patch it:
        patch("sitepulse.integrations.prediction_gateway.build_prediction_gateway",
              return_value=mock_gateway)
    """
    app = current_app._get_current_object()
    gateway = app.extensions.get(_EXTENSION_KEY)
    if gateway is None:
        gateway = PredictionGateway(
            app.config["PREDICTION_API_URL"],
            api_token=app.config.get("PREDICTION_API_TOKEN"),
            timeout=app.config.get("PREDICTION_TIMEOUT_SECONDS", _DEFAULT_TIMEOUT),
        )
        app.extensions[_EXTENSION_KEY] = gateway
    return gateway
