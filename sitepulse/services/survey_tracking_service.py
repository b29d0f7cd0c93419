"""
Survey tracking — "has this engineer addressed today's survey yet?"

One SurveyTrackingRecord per (user, project), key "{user_id}_{project_id}".
Submitting and skipping both merge the current instant into it; the gate
compares its calendar date with today's in the survey timezone.

Failure policy:
    - gate read error        → logged, survey shown (fail open)
    - submit record error    → propagated to the caller
    - skip record error      → logged and swallowed
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from sitepulse.core.exceptions import ValidationError
from sitepulse.models import db
from sitepulse.models.survey import SurveyTrackingRecord, tracking_key

logger = logging.getLogger(__name__)


# ── Timezone & date helpers ──────────────────────────────────────────────────


def survey_tz() -> tzinfo | None:
    """Configured survey timezone, or None for the server's local time."""
    name = current_app.config.get("SURVEY_TIMEZONE")
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        logger.warning("Unknown SURVEY_TIMEZONE %r, using server local time", name)
        return None


def local_today(tz: tzinfo | None = None) -> date:
    return datetime.now(timezone.utc).astimezone(tz).date()


def as_utc(value: datetime) -> datetime:
    # The store writes UTC; SQLite hands it back without tzinfo
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_survey_date(value, tz: tzinfo | None = None) -> str | None:
    """
    Reduce a stored "last survey" value to a ``YYYY-MM-DD`` string.

    Accepts server timestamp objects (``to_datetime()`` / ``to_date()``),
    ``datetime`` / ``date`` values and ISO-8601 strings. Timestamps with no
    offset, as datetimes or as strings, are taken as UTC before conversion
    to ``tz``. Anything else, or an unparsable string, gives None.
    """
    if value is None:
        return None

    for accessor in ("to_datetime", "to_date"):
        fn = getattr(value, accessor, None)
        if callable(fn):
            try:
                value = fn()
            except (TypeError, ValueError):
                return None
            break

    if isinstance(value, datetime):
        return as_utc(value).astimezone(tz).date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        # A date-only string is already a calendar day; a timestamp without
        # an offset is UTC, same as a naive datetime.
        if parsed is not None and len(text) > 10:
            return as_utc(parsed).astimezone(tz).date().isoformat()
        try:
            return date.fromisoformat(text.split("T")[0]).isoformat()
        except ValueError:
            return None
    return None


def _require_ids(user_id, project_id) -> None:
    errors = {}
    if not user_id:
        errors["user_id"] = "required"
    if not project_id:
        errors["project_id"] = "required"
    if errors:
        raise ValidationError("user_id and project_id are required", details=errors)


# ── Reads ────────────────────────────────────────────────────────────────────


def get_tracking_record(user_id: str, project_id: str) -> SurveyTrackingRecord | None:
    return db.session.get(SurveyTrackingRecord, tracking_key(user_id, project_id))


def should_show_survey(user_id: str, project_id: str, *, today: date | None = None) -> bool:
    """
    True unless the survey was already submitted or skipped today.

    Read failures fail open: showing the survey twice is better than never.

    Raises:
        ValidationError: user_id or project_id is empty.
    """
    _require_ids(user_id, project_id)
    tz = survey_tz()
    try:
        record = get_tracking_record(user_id, project_id)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Survey gate read failed, showing survey",
            extra={"user_id": user_id, "project_id": project_id},
        )
        return True

    if record is None or record.last_survey_date is None:
        return True

    last = normalize_survey_date(record.last_survey_date, tz)
    if last is None:
        return True
    current = (today or local_today(tz)).isoformat()
    return last != current


# ── Writes ───────────────────────────────────────────────────────────────────


def _merge(user_id: str, project_id: str, now: datetime, skipped: bool) -> SurveyTrackingRecord:
    record = get_tracking_record(user_id, project_id)
    if record is None:
        record = SurveyTrackingRecord(
            id=tracking_key(user_id, project_id),
            user_id=user_id,
            project_id=project_id,
        )
        db.session.add(record)
    # A late write from an older request must not move the day backwards
    if record.last_survey_date is None or as_utc(record.last_survey_date) <= now:
        record.last_survey_date = now
        record.skipped = skipped
    record.updated_at = datetime.now(timezone.utc)
    db.session.commit()
    return record


def _upsert(user_id: str, project_id: str, now: datetime | None, skipped: bool) -> SurveyTrackingRecord:
    _require_ids(user_id, project_id)
    now = as_utc(now or datetime.now(timezone.utc))
    try:
        return _merge(user_id, project_id, now, skipped)
    except IntegrityError:
        # Another request inserted the record first; merge into theirs
        db.session.rollback()
        return _merge(user_id, project_id, now, skipped)


def record_survey_submission(
    user_id: str, project_id: str, *, now: datetime | None = None,
) -> SurveyTrackingRecord:
    """Mark today's survey as submitted. Store errors propagate."""
    try:
        record = _upsert(user_id, project_id, now, skipped=False)
    except SQLAlchemyError:
        db.session.rollback()
        raise
    logger.info("Survey submission recorded", extra={"user_id": user_id, "project_id": project_id})
    return record


def skip_survey_for_today(
    user_id: str, project_id: str, *, now: datetime | None = None,
) -> SurveyTrackingRecord | None:
    """Mark today's survey as dismissed. Store errors are logged, never raised."""
    try:
        record = _upsert(user_id, project_id, now, skipped=True)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Could not record survey skip",
            extra={"user_id": user_id, "project_id": project_id},
        )
        return None
    logger.info("Survey skipped for today", extra={"user_id": user_id, "project_id": project_id})
    return record
