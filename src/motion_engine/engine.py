"""
engine.py - Motion analysis engine: lifecycle and the per-frame pipeline.

Frame -> visibility check -> {phase classifier -> debouncer -> rep counter} and {form scorer}
      -> session aggregator -> coaching dispatcher -> callbacks

One engine owns one session. Frames must be fed serially from a single thread. Coaching service
cues are delivered to on_coaching_cue on the coaching worker thread; stop() and reset() wait for
any such delivery in progress, and none arrive after they return.
"""
import logging
from concurrent.futures import Executor
from typing import Any, Callable, Dict, Optional

from .exercise_analysis.config_utils import EngineConfig, load_engine_config
from .exercise_analysis.form_scorer import FormScorer
from .exercise_analysis.phase_tracking import PhaseClassifier, PhaseDebouncer
from .exercise_analysis.pose_utils import check_landmark_visibility
from .exercise_analysis.profiles import ExerciseProfile, ProfileRegistry, default_registry
from .exercise_analysis.rep_counter import RepCounter
from .feedback.coaching import CoachingDispatcher, CoachingService
from .models import CoachingCue, FormMetrics, Frame, RepState
from .session import SessionAggregator, SessionSummary

# --- Logger Setup ---
logger = logging.getLogger("MotionEngine")
if not logger.hasHandlers():
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s %(levelname)s %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
logger.setLevel(logging.INFO)


class MotionAnalysisEngine:
    """Turns a stream of landmark frames into reps, form scores and coaching cues for one exercise."""

    def __init__(
        self,
        profile: ExerciseProfile,
        config: Optional[EngineConfig] = None,
        coaching_service: Optional[CoachingService] = None,
        on_rep_completed: Optional[Callable[[int], None]] = None,
        on_form_updated: Optional[Callable[[FormMetrics], None]] = None,
        on_coaching_cue: Optional[Callable[[CoachingCue], None]] = None,
        executor: Optional[Executor] = None,
    ):
        """
        Initialize the engine.

        Args:
            profile: Validated exercise profile
            config: Engine tunables; the packaged engine_config.json when omitted
            coaching_service: Optional external cue generator, called at most once per debounce window
            on_rep_completed: Called with the new rep count each time a rep fires
            on_form_updated: Called with the metrics of every analyzed frame
            on_coaching_cue: Called with each cue; service cues arrive from a worker thread
            executor: Executor for coaching service calls
        """
        self.profile = profile
        self.config = config or load_engine_config()
        self.coaching_service = coaching_service
        self.on_rep_completed = on_rep_completed
        self.on_form_updated = on_form_updated
        self.on_coaching_cue = on_coaching_cue

        cfg = self.config
        self.classifier = PhaseClassifier(profile.phases, cfg.min_visibility)
        self.debouncer = PhaseDebouncer(profile.start_phase, cfg.debounce_frames)
        self.rep_counter = RepCounter(profile.rep_counting, cfg.rep_cooldown, cfg.min_visibility, profile.hold_phase)
        self.form_scorer = FormScorer(profile, cfg.violation_penalty, cfg.min_visibility, cfg.velocity_window, cfg.score_history)
        self.aggregator = SessionAggregator(profile, cfg.pass_threshold, cfg.rolling_window)
        self.dispatcher = CoachingDispatcher(profile, cfg, self._emit_cue, coaching_service, executor)

        self.is_running = False
        self.last_metrics: Optional[FormMetrics] = None
        self._last_timestamp: Optional[float] = None
        self._summary: Optional[SessionSummary] = None

    # --- Lifecycle ---
    def start(self) -> None:
        if self.is_running:
            logger.warning(f"Engine for '{self.profile.exercise_id}' is already running")
            return
        self.is_running = True
        self._summary = None
        self.aggregator.pause()
        logger.info(f"Motion analysis started: {self.profile.name}")

    def stop(self) -> Optional[SessionSummary]:
        """
        Stop analysis and finalize the session. Frames are ignored until start() is called again.

        Returns:
            The finalized summary, or None if the engine was not running
        """
        if not self.is_running:
            logger.debug("stop() called on an engine that is not running")
            return None
        self.is_running = False
        self.dispatcher.invalidate()
        self.aggregator.pause()
        self._summary = self.aggregator.finalize()
        logger.info(
            f"Motion analysis stopped: {self._summary.total_reps} reps, "
            f"average score {self._summary.average_score:.1f}"
        )
        return self._summary

    def reset(self) -> None:
        """Zero every counter, timer and the session; the profile stays loaded."""
        self.dispatcher.reset()
        self.debouncer.reset()
        self.rep_counter.reset()
        self.form_scorer.reset()
        self.aggregator.reset()
        self.last_metrics = None
        self._last_timestamp = None
        self._summary = None
        logger.info(f"Motion analysis reset: {self.profile.name}")

    def close(self) -> None:
        """Stop and release the coaching worker."""
        self.stop()
        self.dispatcher.shutdown()
        if self.coaching_service is not None:
            self.coaching_service.close()

    # --- Frames ---
    def is_frame_usable(self, frame: Frame) -> bool:
        ok, missing = check_landmark_visibility(frame, self.profile.required_landmarks, self.config.min_visibility)
        if not ok:
            logger.debug(f"Skipping frame at {frame.timestamp:.2f}s, landmarks not visible: {missing}")
        return ok

    def process_frame(self, frame: Frame) -> Optional[FormMetrics]:
        """
        Analyze one frame.

        Frames received while stopped, with required landmarks below the visibility
        threshold, or with a timestamp older than the previous frame are ignored.

        Returns:
            Metrics for the frame, or None if it was ignored
        """
        if not self.is_running:
            logger.debug("Ignoring frame: engine not running")
            return None
        if self._last_timestamp is not None and frame.timestamp < self._last_timestamp:
            logger.debug(f"Ignoring out-of-order frame at {frame.timestamp:.3f}s")
            return None
        if not self.is_frame_usable(frame):
            return None
        self._last_timestamp = frame.timestamp
        now = frame.timestamp

        raw_phase, _confidence = self.classifier.classify(frame, self.debouncer.confirmed_phase)
        if self.debouncer.update(raw_phase, now):
            self.dispatcher.note_phase_change(now)
            logger.info(f"[PHASE] {self.debouncer.confirmed_phase}")
        confirmed = self.debouncer.confirmed_phase

        fired = self.rep_counter.update(frame, confirmed)
        rep_state = self.rep_counter.state(confirmed)
        metrics = self.form_scorer.evaluate(frame, raw_phase, rep_state.range_of_motion)
        self.aggregator.record_frame(metrics, now)
        if self.profile.rep_counting.is_timer:
            self.aggregator.record_hold(self.rep_counter.hold_seconds)
        self.last_metrics = metrics

        if fired:
            self.aggregator.record_rep(
                self.rep_counter.count,
                now,
                self.rep_counter.last_cycle_duration,
                self.rep_counter.last_range_of_motion,
            )
            if self.on_rep_completed:
                self.on_rep_completed(self.rep_counter.count)
        if self.on_form_updated:
            self.on_form_updated(metrics)

        self.dispatcher.on_frame(metrics, rep_state, now)
        return metrics

    def _emit_cue(self, cue: CoachingCue) -> None:
        self.aggregator.record_cue(cue)
        if self.on_coaching_cue:
            self.on_coaching_cue(cue)

    # --- Getters ---
    @property
    def rep_count(self) -> int:
        return self.rep_counter.count

    @property
    def confirmed_phase(self) -> Optional[str]:
        return self.debouncer.confirmed_phase

    def get_rep_state(self) -> RepState:
        return self.rep_counter.state(self.debouncer.confirmed_phase)

    def get_running_stats(self) -> Dict[str, Any]:
        stats = self.aggregator.running_stats()
        stats["phase"] = self.debouncer.confirmed_phase
        stats["hold_seconds"] = self.rep_counter.hold_seconds
        stats["is_running"] = self.is_running
        return stats

    def get_summary(self) -> SessionSummary:
        """The summary finalized at stop(), or a snapshot of the session so far."""
        if self._summary is not None:
            return self._summary
        return self.aggregator.finalize()


def create_engine(exercise_id: str, registry: Optional[ProfileRegistry] = None, **kwargs) -> Optional[MotionAnalysisEngine]:
    """
    Build an engine for an exercise id (case and separator insensitive).

    Returns:
        The engine, or None when the exercise is not supported for motion analysis
    """
    registry = registry or default_registry()
    profile = registry.resolve(exercise_id)
    if profile is None:
        return None
    return MotionAnalysisEngine(profile, **kwargs)
