"""Tests for the survey state machine (steps, guards, replay)."""

from datetime import datetime, timezone

import pytest

from sitepulse.core.exceptions import InvalidTransitionError, ValidationError
from sitepulse.models.survey import SURVEY_TRANSITIONS, validate_survey_transition
from sitepulse.services.survey_state_machine import SurveyStateMachine
from sitepulse.services.task_status_mapper import NON_PRODUCTIVE, PRODUCTIVE

NOW = datetime(2026, 10, 19, 15, 30, tzinfo=timezone.utc)


def _make_machine(*ids):
    tasks = [{"id": tid, "title": tid, "status": "in_progress"} for tid in ids]
    return SurveyStateMachine("p1", "Dana Cruz", tasks)


class TestTransitionTable:
    def test_terminal_steps_have_no_exits(self):
        assert SURVEY_TRANSITIONS["submitted"] == []
        assert SURVEY_TRANSITIONS["skipped"] == []

    def test_detail_steps_can_go_back(self):
        assert validate_survey_transition("site_closed_detail", "overview")
        assert validate_survey_transition("task_delay_detail", "overview")

    def test_cannot_jump_between_detail_steps(self):
        assert not validate_survey_transition("site_closed_detail", "task_delay_detail")


class TestNormalDay:
    """Scenario A: two active tasks, normal site."""

    def test_normal_submission_marks_all_productive(self):
        m = _make_machine("T1", "T2")
        m.select_site_status("normal")
        assert m.step == "overview"
        data = m.prepare_submission(now=NOW)
        assert data.task_updates == {"T1": PRODUCTIVE, "T2": PRODUCTIVE}
        assert data.site_closed_reason is None
        assert data.date == NOW

    def test_prepare_does_not_finish_the_survey(self):
        m = _make_machine("T1")
        m.select_site_status("normal")
        m.prepare_submission()
        assert m.step == "overview"
        m.mark_submitted()
        assert m.is_finished


class TestClosedDay:
    def test_closed_moves_to_detail_and_requires_reason(self):
        m = _make_machine("T1", "T2")
        m.select_site_status("closed")
        assert m.step == "site_closed_detail"
        assert not m.can_proceed()
        assert "site_closed_reason" in m.guard_errors()

    def test_closed_overrides_earlier_toggles(self):
        m = _make_machine("T1", "T2")
        m.select_site_status("delayed")
        m.toggle_task("T1", productive=False)
        m.set_delay_reason("T1", "Bad Weather")
        m.back()
        m.select_site_status("closed")
        m.set_site_closed_reason("Weather Disruption")
        data = m.prepare_submission()
        assert data.task_updates == {"T1": NON_PRODUCTIVE, "T2": NON_PRODUCTIVE}
        assert data.site_closed_reason == "Weather Disruption"

    def test_other_reason_keeps_free_text(self):
        m = _make_machine("T1")
        m.select_site_status("closed")
        m.set_site_closed_reason("Other", "Crane inspection")
        assert m.prepare_submission().site_closed_reason_other == "Crane inspection"

    def test_other_reason_with_empty_text_is_accepted(self):
        m = _make_machine("T1")
        m.select_site_status("closed")
        m.set_site_closed_reason("Other")
        data = m.prepare_submission()
        assert data.site_closed_reason == "Other"
        assert data.site_closed_reason_other is None

    def test_free_text_dropped_for_listed_reason(self):
        m = _make_machine("T1")
        m.select_site_status("closed")
        m.set_site_closed_reason("Safety Hazard", "ignored")
        assert m.site_closed_reason_other == ""

    def test_unknown_reason_is_rejected(self):
        m = _make_machine("T1")
        m.select_site_status("closed")
        with pytest.raises(ValidationError):
            m.set_site_closed_reason("Aliens")


class TestDelayedDay:
    def test_scenario_b_reason_given(self):
        m = _make_machine("T1")
        m.select_site_status("delayed")
        assert m.step == "task_delay_detail"
        m.toggle_task("T1", productive=False)
        m.set_delay_reason("T1", "Material Delay")
        data = m.prepare_submission()
        assert data.task_updates["T1"].status == "non_productive"
        assert data.task_updates["T1"].delay_reason == "Material Delay"

    def test_scenario_c_missing_reason_blocks_submit(self):
        m = _make_machine("T1")
        m.select_site_status("delayed")
        m.toggle_task("T1", productive=False)
        assert not m.can_proceed()
        with pytest.raises(ValidationError) as exc:
            m.prepare_submission()
        assert "task_updates.T1" in exc.value.details
        assert m.step == "task_delay_detail"

    def test_toggle_back_to_productive_clears_reason(self):
        m = _make_machine("T1")
        m.select_site_status("delayed")
        m.toggle_task("T1", productive=False)
        m.set_delay_reason("T1", "Manpower Shortage")
        m.toggle_task("T1", productive=True)
        m.toggle_task("T1", productive=False)
        assert m.task_updates["T1"].delay_reason is None

    def test_other_text_kept_only_for_other(self):
        m = _make_machine("T1", "T2")
        m.select_site_status("delayed")
        m.toggle_task("T1", productive=False)
        m.toggle_task("T2", productive=False)
        m.set_delay_reason("T1", "Other", "Scaffold collapse")
        m.set_delay_reason("T2", "Permit Issue", "ignored")
        assert m.task_updates["T1"].delay_reason_other == "Scaffold collapse"
        assert m.task_updates["T2"].delay_reason_other is None

    def test_reason_on_productive_task_is_rejected(self):
        m = _make_machine("T1")
        m.select_site_status("delayed")
        with pytest.raises(ValidationError):
            m.set_delay_reason("T1", "Bad Weather")

    def test_unknown_task_is_rejected(self):
        m = _make_machine("T1")
        m.select_site_status("delayed")
        with pytest.raises(ValidationError):
            m.toggle_task("T9", productive=False)

    def test_every_active_task_present_when_delayed(self):
        m = _make_machine("T1", "T2", "T3")
        m.select_site_status("delayed")
        assert set(m.task_updates) == {"T1", "T2", "T3"}


class TestNavigation:
    def test_back_clears_site_status(self):
        m = _make_machine("T1")
        m.select_site_status("closed")
        m.back()
        assert m.step == "overview"
        assert m.site_status is None
        assert "site_status" in m.guard_errors()

    def test_back_from_overview_is_invalid(self):
        m = _make_machine("T1")
        with pytest.raises(InvalidTransitionError):
            m.back()

    def test_select_status_outside_overview_is_invalid(self):
        m = _make_machine("T1")
        m.select_site_status("delayed")
        with pytest.raises(InvalidTransitionError):
            m.select_site_status("normal")

    def test_toggle_outside_delay_step_is_invalid(self):
        m = _make_machine("T1")
        with pytest.raises(InvalidTransitionError):
            m.toggle_task("T1", productive=False)

    def test_skip_from_any_open_step(self):
        for status in (None, "closed", "delayed"):
            m = _make_machine("T1")
            if status:
                m.select_site_status(status)
            m.skip()
            assert m.step == "skipped"

    def test_nothing_allowed_after_submit(self):
        m = _make_machine("T1")
        m.select_site_status("normal")
        m.mark_submitted()
        with pytest.raises(InvalidTransitionError):
            m.skip()
        with pytest.raises(InvalidTransitionError):
            m.prepare_submission()

    def test_missing_site_status_blocks_submit(self):
        m = _make_machine("T1")
        with pytest.raises(ValidationError) as exc:
            m.prepare_submission()
        assert exc.value.details == {"site_status": "required"}

    def test_empty_project_is_rejected(self):
        with pytest.raises(ValidationError):
            SurveyStateMachine("", "Dana", [])


class TestFromAnswers:
    def test_replays_delayed_answers(self):
        tasks = [{"id": "T1", "status": "in_progress"}, {"id": "T2", "status": "not_started"}]
        m = SurveyStateMachine.from_answers("p1", "Dana", tasks, {
            "site_status": "delayed",
            "task_updates": {"T2": {"status": "non_productive", "delay_reason": "Bad Weather"}},
        })
        data = m.prepare_submission()
        assert data.task_updates["T1"] == PRODUCTIVE
        assert data.task_updates["T2"].delay_reason == "Bad Weather"

    def test_closed_answers_ignore_task_updates(self):
        tasks = [{"id": "T1", "status": "in_progress"}]
        m = SurveyStateMachine.from_answers("p1", "Dana", tasks, {
            "site_status": "closed",
            "site_closed_reason": "Holiday/No Work Scheduled",
            "task_updates": {"T1": {"status": "productive"}},
        })
        assert m.prepare_submission().task_updates == {"T1": NON_PRODUCTIVE}

    def test_unknown_task_status_is_rejected(self):
        tasks = [{"id": "T1", "status": "in_progress"}]
        with pytest.raises(ValidationError):
            SurveyStateMachine.from_answers("p1", "Dana", tasks, {
                "site_status": "delayed",
                "task_updates": {"T1": {"status": "half_done"}},
            })
