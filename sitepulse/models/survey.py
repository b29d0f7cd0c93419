"""
SitePulse survey service
Daily Site Survey domain models.

Models:
    - SurveyTrackingRecord:  one per (user, project); remembers the last day the
                             survey was addressed (submitted or skipped)
    - DailySurvey:           append-only history of submitted surveys; doubles as
                             the same-day submission claim

Architecture:
    (user_id, project_id) ──1:1──▶ SurveyTrackingRecord   key "{user_id}_{project_id}"
    (user_id, project_id, survey_date) ──1:1──▶ DailySurvey

Survey steps (in-memory, driven by SurveyStateMachine):
    overview → site_closed_detail | task_delay_detail | submitted | skipped
    site_closed_detail | task_delay_detail → overview | submitted | skipped
    submitted, skipped → (terminal)

DailySurvey lifecycle:
    pending → submitted   (a failed remote call deletes the pending claim)
"""

from datetime import datetime, timezone

from sqlalchemy import JSON

from sitepulse.models import db


# ── Constants ────────────────────────────────────────────────────────────────

SITE_STATUSES = ("normal", "delayed", "closed")

TASK_UPDATE_STATUSES = ("productive", "non_productive")

# Task statuses owned by the task-listing collaborator
TASK_STATUSES = ("not_started", "in_progress", "completed")
ACTIVE_TASK_STATUSES = frozenset({"not_started", "in_progress"})

SITE_CLOSED_REASONS = (
    "Weather Disruption",
    "Permit/Inspection Issue",
    "Material Delivery Failure",
    "Safety Hazard",
    "Holiday/No Work Scheduled",
    "Other",
)

DELAY_REASONS = (
    "Bad Weather",
    "Material Delay",
    "Permit Issue",
    "Equipment Breakdown",
    "Manpower Shortage",
    "Safety/Hazard",
    "Other",
)

OTHER_REASON = "Other"

RISK_LEVELS = ("Low", "Medium", "High")

DAILY_SURVEY_STATUSES = ("pending", "submitted")


# ── Survey step transitions ──────────────────────────────────────────────────

SURVEY_STEPS = (
    "overview",
    "site_closed_detail",
    "task_delay_detail",
    "submitted",
    "skipped",
)

SURVEY_TRANSITIONS = {
    "overview":           ["site_closed_detail", "task_delay_detail", "submitted", "skipped"],
    "site_closed_detail": ["overview", "submitted", "skipped"],
    "task_delay_detail":  ["overview", "submitted", "skipped"],
    "submitted":          [],
    "skipped":            [],
}

# Which detail step a site status leads to; normal goes straight to submit.
DETAIL_STEP_FOR_STATUS = {
    "closed": "site_closed_detail",
    "delayed": "task_delay_detail",
}


def validate_survey_transition(old_step, new_step):
    """Return True if the survey may move from old_step to new_step."""
    return new_step in SURVEY_TRANSITIONS.get(old_step, [])


def tracking_key(user_id, project_id):
    """Document key of the tracking record for (user, project)."""
    return f"{user_id}_{project_id}"


def _utcnow():
    return datetime.now(timezone.utc)


def _isoformat(value):
    return value.isoformat() if value else None


class SurveyTrackingRecord(db.Model):
    """
    Per (user, project) marker of the last day the survey was addressed.

    Merged on every submit or skip, never deleted here. last_survey_date is
    only ever moved forward.
    """

    __tablename__ = "survey_tracking"

    id = db.Column(
        db.String(300), primary_key=True,
        comment='Composite key "{user_id}_{project_id}"',
    )
    user_id = db.Column(db.String(128), nullable=False, index=True)
    project_id = db.Column(db.String(128), nullable=False, index=True)
    last_survey_date = db.Column(
        db.DateTime(timezone=True), nullable=True,
        comment="Server-assigned instant of the last submit or skip (UTC)",
    )
    skipped = db.Column(
        db.Boolean, nullable=False, default=False,
        comment="True when the last addressing action was a dismissal",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "project_id", name="uq_survey_tracking_user_project"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "project_id": self.project_id,
            "last_survey_date": _isoformat(self.last_survey_date),
            "skipped": self.skipped,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<SurveyTrackingRecord {self.id} last={self.last_survey_date} skipped={self.skipped}>"


class DailySurvey(db.Model):
    """
    One submitted daily site survey.

    Rows are written once as ``pending`` (the claim for the day), flipped to
    ``submitted`` when the prediction boundary accepted them, and not
    modified afterwards. Rows without a user_id are unclaimed submissions and
    are not subject to the one-per-day constraint.
    """

    __tablename__ = "daily_surveys"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.String(128), nullable=False, index=True)
    user_id = db.Column(db.String(128), nullable=True, index=True)
    survey_date = db.Column(
        db.Date, nullable=False,
        comment="Local calendar date the survey covers",
    )
    submitted_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        comment="Submission instant reported by the engineer's device",
    )
    engineer_name = db.Column(db.String(200), nullable=False, default="")
    site_status = db.Column(db.String(20), nullable=False)
    site_closed_reason = db.Column(db.String(100), nullable=True)
    site_closed_reason_other = db.Column(db.Text, nullable=True)
    task_updates = db.Column(
        JSON, nullable=False, default=dict,
        comment="task_id → {status, delay_reason?, delay_reason_other?}",
    )
    status = db.Column(db.String(20), nullable=False, default="pending")
    updates_processed = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "project_id", "survey_date",
            name="uq_daily_surveys_user_project_date",
        ),
        db.CheckConstraint(
            "site_status IN ('normal','delayed','closed')",
            name="ck_daily_surveys_site_status",
        ),
        db.CheckConstraint(
            "status IN ('pending','submitted')",
            name="ck_daily_surveys_status",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "survey_date": _isoformat(self.survey_date),
            "submitted_at": _isoformat(self.submitted_at),
            "engineer_name": self.engineer_name,
            "site_status": self.site_status,
            "site_closed_reason": self.site_closed_reason,
            "site_closed_reason_other": self.site_closed_reason_other,
            "task_updates": self.task_updates or {},
            "status": self.status,
            "updates_processed": self.updates_processed,
            "created_at": _isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<DailySurvey {self.id} project={self.project_id} date={self.survey_date} {self.status}>"
