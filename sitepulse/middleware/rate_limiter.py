"""
Rate limiting for the survey API.

The Limiter instance lives in sitepulse/__init__.py with no default limits.
Each blueprint below gets its own per-IP quota; the health probes are exempt
so load balancers are never throttled.

Usage:
    from sitepulse.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Survey writes fan out to the prediction boundary; every prediction call runs the model.
SURVEY_LIMIT = "30/minute"
PREDICTION_LIMIT = "20/minute"

BLUEPRINT_LIMITS = {
    "survey": SURVEY_LIMIT,
    "delay_prediction": PREDICTION_LIMIT,
}
EXEMPT_BLUEPRINTS = ("health_bp",)


def init_rate_limits(app, limiter):
    """Attach ``BLUEPRINT_LIMITS`` to registered blueprints. No-op under TESTING."""
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        logger.info("Rate limiter disabled")
        return

    applied = {}
    for name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(name)
        if bp is None:
            continue
        limiter.limit(limit)(bp)
        applied[name] = limit

    for name in EXEMPT_BLUEPRINTS:
        bp = app.blueprints.get(name)
        if bp is not None:
            limiter.exempt(bp)

    logger.info("Rate limits applied: %s", applied)
