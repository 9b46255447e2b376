from unittest.mock import Mock

import pytest

from motion_engine.engine import MotionAnalysisEngine, create_engine
from motion_engine.exercise_analysis.config_utils import EngineConfig
from motion_engine.exercise_analysis.profiles import ExerciseProfile, ProfileRegistry
from motion_engine.feedback.coaching import CoachingService
from motion_engine.models import CueCategory, RepPhase, Urgency

from conftest import DeferredExecutor, ImmediateExecutor, leg_frame, squat_frames


@pytest.fixture
def callbacks():
    return Mock(), Mock(), Mock()


@pytest.fixture
def engine(profile, callbacks):
    on_rep, on_form, on_cue = callbacks
    return MotionAnalysisEngine(
        profile,
        config=EngineConfig(),
        on_rep_completed=on_rep,
        on_form_updated=on_form,
        on_coaching_cue=on_cue,
    )


def service_mock(text="Drive through the heels."):
    service = Mock(spec=CoachingService)
    service.get_cue.return_value = text
    return service


class TestLifecycle:
    def test_frames_before_start_are_ignored(self, engine, callbacks):
        assert engine.process_frame(leg_frame(0.0, 170)) is None
        for callback in callbacks:
            callback.assert_not_called()

    def test_stop_when_not_running(self, engine):
        assert engine.stop() is None

    def test_double_start_warns(self, engine, caplog):
        engine.start()
        engine.start()
        assert "already running" in caplog.text
        assert engine.is_running

    def test_frames_after_stop_change_nothing(self, engine, callbacks):
        on_rep, on_form, on_cue = callbacks
        engine.start()
        for frame in squat_frames(reps=1):
            engine.process_frame(frame)
        engine.stop()
        state = engine.get_rep_state()
        calls = (on_rep.call_count, on_form.call_count, on_cue.call_count)

        for frame in squat_frames(reps=2, start=10.0):
            assert engine.process_frame(frame) is None
        assert engine.get_rep_state() == state
        assert (on_rep.call_count, on_form.call_count, on_cue.call_count) == calls
        assert engine.rep_count == 1

    def test_restart_resumes_session(self, engine):
        engine.start()
        for frame in squat_frames(reps=1):
            engine.process_frame(frame)
        engine.stop()
        engine.start()
        for frame in squat_frames(reps=1, start=30.0):
            engine.process_frame(frame)
        summary = engine.stop()
        assert summary.total_reps == 2
        # the pause between sessions is not counted
        assert summary.duration < 5.0

    def test_reset_keeps_profile(self, engine, profile):
        engine.start()
        for frame in squat_frames(reps=2):
            engine.process_frame(frame)
        engine.reset()
        assert engine.profile is profile
        assert engine.rep_count == 0
        assert engine.confirmed_phase == profile.start_phase
        assert engine.get_rep_state().phase == RepPhase.IDLE
        assert engine.get_summary().total_reps == 0
        assert engine.is_running

    def test_close_releases_service(self, profile):
        service = service_mock()
        engine = MotionAnalysisEngine(profile, config=EngineConfig(), coaching_service=service, executor=ImmediateExecutor())
        engine.start()
        engine.close()
        assert not engine.is_running
        service.close.assert_called_once()


class TestPipeline:
    def test_counts_reps_and_reports_form(self, engine, callbacks):
        on_rep, on_form, _ = callbacks
        frames = squat_frames(reps=3)
        engine.start()
        for frame in frames:
            assert engine.process_frame(frame) is not None
        assert [c.args[0] for c in on_rep.call_args_list] == [1, 2, 3]
        assert on_form.call_count == len(frames)

        summary = engine.stop()
        assert summary.total_reps == 3
        assert summary.valid_reps == 3
        assert [r.rep_number for r in summary.rep_log] == [1, 2, 3]
        assert summary.calories == pytest.approx(1.5)
        assert engine.get_summary() is summary

    def test_confirmed_phase_follows_movement(self, engine):
        engine.start()
        for i in range(5):
            engine.process_frame(leg_frame(i / 30, 90))
        assert engine.confirmed_phase == "down"
        assert engine.get_running_stats()["phase"] == "down"

    def test_hidden_landmarks_skip_frame(self, engine, callbacks):
        _, on_form, _ = callbacks
        engine.start()
        assert engine.process_frame(leg_frame(0.0, 170, visibility=0.2)) is None
        on_form.assert_not_called()

    def test_out_of_order_frame_is_ignored(self, engine):
        engine.start()
        assert engine.process_frame(leg_frame(1.0, 170)) is not None
        assert engine.process_frame(leg_frame(0.5, 170)) is None

    def test_safety_cue_is_logged_in_summary(self, engine, callbacks):
        _, _, on_cue = callbacks
        engine.start()
        metrics = engine.process_frame(leg_frame(0.0, 170, knee_shift=0.1))
        assert metrics.has_critical()
        cue = on_cue.call_args[0][0]
        assert cue.category == CueCategory.SAFETY
        assert cue.urgency == Urgency.CRITICAL
        assert engine.stop().cue_log == (cue,)

    def test_hold_profile(self, profile_data):
        profile_data["rep_counting"] = {"signal": "timer"}
        profile_data["hold_phase"] = "down"
        profile_data.pop("calories_per_rep")
        profile_data["calories_per_minute"] = 6.0
        engine = MotionAnalysisEngine(ExerciseProfile.from_dict(profile_data), config=EngineConfig())
        engine.start()
        for i in range(90):
            engine.process_frame(leg_frame(i / 30, 90))
        assert engine.get_running_stats()["hold_seconds"] == pytest.approx(2.9, abs=0.05)
        summary = engine.stop()
        assert summary.total_reps == 0
        assert summary.best_hold_seconds == pytest.approx(2.9, abs=0.05)
        assert summary.calories == pytest.approx(0.3)


class TestServiceThroughEngine:
    def test_service_calls_are_debounced(self, profile):
        service = service_mock()
        on_cue = Mock()
        engine = MotionAnalysisEngine(
            profile, config=EngineConfig(service_debounce=1.5), coaching_service=service,
            on_coaching_cue=on_cue, executor=ImmediateExecutor(),
        )
        engine.start()
        for i in range(90):
            engine.process_frame(leg_frame(i / 30, 170))
        assert service.get_cue.call_count <= 2
        assert on_cue.call_args[0][0].source == "service"

    def test_pending_cue_dropped_after_stop(self, profile):
        executor = DeferredExecutor()
        on_cue = Mock()
        engine = MotionAnalysisEngine(
            profile, config=EngineConfig(), coaching_service=service_mock(), on_coaching_cue=on_cue, executor=executor,
        )
        engine.start()
        engine.process_frame(leg_frame(0.0, 170))
        engine.stop()
        executor.run_pending()
        on_cue.assert_not_called()

    def test_pending_cue_dropped_after_reset(self, profile):
        executor = DeferredExecutor()
        on_cue = Mock()
        engine = MotionAnalysisEngine(
            profile, config=EngineConfig(), coaching_service=service_mock(), on_coaching_cue=on_cue, executor=executor,
        )
        engine.start()
        engine.process_frame(leg_frame(0.0, 170))
        engine.reset()
        executor.run_pending()
        on_cue.assert_not_called()


class TestCreateEngine:
    def test_packaged_exercise(self):
        engine = create_engine("Squats")
        assert engine.profile.exercise_id == "squat"

    def test_unknown_exercise(self):
        assert create_engine("burpee") is None

    def test_custom_registry_and_options(self, profile):
        on_rep = Mock()
        engine = create_engine("test squats", registry=ProfileRegistry([profile]), on_rep_completed=on_rep)
        assert engine.profile is profile
        assert engine.on_rep_completed is on_rep
