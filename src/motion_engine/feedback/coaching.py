"""
coaching.py - Rate-limited coaching cue dispatch.

Two timers gate what reaches the user:
- a settle window after each confirmed phase change, during which violation-based cues are withheld
- a longer debounce on the external coaching service (at most one call per window, never two in flight)

Safety violations skip the long debounce and go out locally as critical cues, repeated no more
often than their display duration. Service calls run on a single worker thread; their results
arrive through the emit callback on that thread after process_frame has returned. A result is
emitted under the dispatcher lock, so once invalidate() returns no earlier call can emit.
"""
import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from functools import partial
from typing import Callable, List, Optional

from ..exercise_analysis.config_utils import EngineConfig
from ..exercise_analysis.profiles import ExerciseProfile
from ..models import CoachingCue, CueCategory, FormMetrics, RepState, Severity, Urgency

logger = logging.getLogger("CoachingDispatcher")

HOLD_MILESTONE_SECONDS = 10


class CoachingServiceError(RuntimeError):
    """Raised by coaching service adapters when a cue cannot be produced."""


class CoachingService(ABC):
    """External natural-language coaching backend."""

    @abstractmethod
    def get_cue(self, movement_pattern: str, metrics: FormMetrics, rep_state: RepState) -> Optional[str]:
        """
        Produce one short coaching cue.

        Args:
            movement_pattern: Profile movement pattern tag, e.g. "squat-pattern"
            metrics: Latest form metrics
            rep_state: Latest rep counter state

        Returns:
            Cue text, or None for no cue this cycle
        """
        pass

    def close(self) -> None:
        pass


def classify_service_cue(text: str, metrics: FormMetrics, timestamp: float, config: EngineConfig) -> CoachingCue:
    """Wrap service text in a cue, deriving category and urgency from the metrics it answered."""
    is_stop = "STOP" in text.upper()
    has_critical = metrics.has_critical()
    if is_stop or has_critical:
        category = CueCategory.SAFETY
    elif metrics.violations:
        category = CueCategory.FORM
    else:
        category = CueCategory.MOTIVATION
    if has_critical:
        urgency = Urgency.CRITICAL
    elif metrics.score < config.pass_threshold:
        urgency = Urgency.HIGH
    else:
        urgency = Urgency.NORMAL
    duration = config.safety_cue_duration if is_stop else config.cue_duration
    return CoachingCue(text.strip(), category, urgency, timestamp, duration, source="service")


class CoachingDispatcher:
    def __init__(
        self,
        profile: ExerciseProfile,
        config: EngineConfig,
        emit: Callable[[CoachingCue], None],
        service: Optional[CoachingService] = None,
        executor: Optional[Executor] = None,
    ):
        """
        Args:
            profile: Active exercise profile (safety rules and cue banks)
            config: Engine tunables (settle window, debounce, durations)
            emit: Called with every cue, from the frame thread or the service worker
            service: Optional external coaching service; without one cues are generated locally
            executor: Executor for service calls; a single-worker pool by default
        """
        self.profile = profile
        self.config = config
        self._emit = emit
        self.service = service
        self._owns_executor = executor is None and service is not None
        self._executor = executor
        if self._owns_executor:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="coaching")
        self._lock = threading.RLock()
        self._generation = 0
        self._in_flight: Optional[Future] = None
        self.service_calls = 0
        self.reset()

    def reset(self) -> None:
        """
        Forget timers and discard any pending service result.

        A call still in flight keeps blocking new calls until it finishes; only its result is dropped.
        """
        self.invalidate()
        self._last_window_time: Optional[float] = None
        self._last_phase_change: Optional[float] = None
        self._last_safety_time: Optional[float] = None
        self._last_milestone = 0
        self._motivation_index = 0

    def invalidate(self) -> None:
        """Results of calls issued before this point are dropped on arrival."""
        with self._lock:
            self._generation += 1

    def shutdown(self) -> None:
        self.invalidate()
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    # --- Timers ---
    def note_phase_change(self, timestamp: float) -> None:
        self._last_phase_change = timestamp

    def in_settle_window(self, timestamp: float) -> bool:
        return self._last_phase_change is not None and timestamp - self._last_phase_change < self.config.settle_window

    def service_busy(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    # --- Per frame ---
    def on_frame(self, metrics: FormMetrics, rep_state: RepState, timestamp: float) -> List[CoachingCue]:
        """
        Decide which cues this frame produces.

        Returns:
            Cues emitted synchronously on this frame (service cues arrive later)
        """
        emitted = []
        settling = self.in_settle_window(timestamp)

        safety_cue = None if settling else self._safety_cue(metrics, timestamp)
        if safety_cue is not None:
            self._send(safety_cue)
            emitted.append(safety_cue)

        window_open = self._last_window_time is None or timestamp - self._last_window_time >= self.config.service_debounce
        if not window_open:
            return emitted

        if self.service is not None:
            if self.service_busy():
                logger.debug("Coaching service call still in flight; skipping this window")
                return emitted
            self._last_window_time = timestamp
            visible = metrics if not settling else self._without_violations(metrics)
            self._call_service(visible, rep_state, timestamp)
        else:
            self._last_window_time = timestamp
            if safety_cue is None:
                cue = self._local_cue(metrics, rep_state, timestamp, settling)
                if cue is not None:
                    self._send(cue)
                    emitted.append(cue)
        return emitted

    def _send(self, cue: CoachingCue) -> None:
        logger.info(f"[CUE] {cue.category.value}/{cue.urgency.value}: {cue.message}")
        self._emit(cue)

    def _safety_cue(self, metrics: FormMetrics, timestamp: float) -> Optional[CoachingCue]:
        for violation in metrics.violations:
            rule = self.profile.rule(violation.rule_id)
            is_safety = violation.severity == Severity.CRITICAL or (rule is not None and self.profile.is_safety_rule(rule))
            if not is_safety:
                continue
            if self._last_safety_time is not None and timestamp - self._last_safety_time < self.config.safety_cue_duration:
                return None
            self._last_safety_time = timestamp
            return CoachingCue(
                f"STOP. {violation.correction}",
                CueCategory.SAFETY,
                Urgency.CRITICAL,
                timestamp,
                self.config.safety_cue_duration,
            )
        return None

    @staticmethod
    def _without_violations(metrics: FormMetrics) -> FormMetrics:
        return FormMetrics(
            score=metrics.score,
            violations=[],
            velocity=metrics.velocity,
            consistency=metrics.consistency,
            range_of_motion=metrics.range_of_motion,
            fatigue=metrics.fatigue,
            phase=metrics.phase,
        )

    def _next_motivation(self, fallback: str) -> str:
        bank = self.profile.coaching.motivational_cues
        if not bank:
            return fallback
        cue = bank[self._motivation_index % len(bank)]
        self._motivation_index += 1
        return cue

    def _local_cue(self, metrics: FormMetrics, rep_state: RepState, timestamp: float, settling: bool) -> Optional[CoachingCue]:
        duration = self.config.cue_duration
        if not settling and metrics.violations and metrics.score < self.config.pass_threshold:
            return CoachingCue(metrics.violations[0].correction, CueCategory.FORM, Urgency.HIGH, timestamp, duration)
        if metrics.fatigue > self.config.fatigue_alert:
            return CoachingCue(
                f"Form slipping. {rep_state.count} reps done.", CueCategory.MOTIVATION, Urgency.NORMAL, timestamp, duration
            )
        if self.profile.rep_counting.is_timer:
            milestone = int(rep_state.hold_seconds // HOLD_MILESTONE_SECONDS)
            if milestone > self._last_milestone:
                self._last_milestone = milestone
                message = f"{milestone * HOLD_MILESTONE_SECONDS} seconds. {self._next_motivation('Hold steady.')}"
                return CoachingCue(message, CueCategory.MOTIVATION, Urgency.NORMAL, timestamp, duration)
            if rep_state.hold_seconds == 0:
                self._last_milestone = 0
            return None
        interval = self.config.milestone_interval
        if rep_state.count > 0 and interval > 0 and rep_state.count % interval == 0 and rep_state.count != self._last_milestone:
            self._last_milestone = rep_state.count
            message = f"{rep_state.count} reps. {self._next_motivation('Keep it clean.')}"
            return CoachingCue(message, CueCategory.MOTIVATION, Urgency.NORMAL, timestamp, duration)
        return None

    # --- External service ---
    def _call_service(self, metrics: FormMetrics, rep_state: RepState, timestamp: float) -> None:
        self.service_calls += 1
        future = self._executor.submit(self.service.get_cue, self.profile.movement_pattern, metrics, rep_state)
        self._in_flight = future
        future.add_done_callback(partial(self._on_service_done, self._generation, metrics, timestamp))

    def _on_service_done(self, generation: int, metrics: FormMetrics, timestamp: float, future: Future) -> None:
        try:
            text = future.result()
        except Exception as e:
            logger.error(f"Coaching service failed: {type(e).__name__}: {e}")
            return
        if not text or not text.strip():
            return
        cue = classify_service_cue(text, metrics, timestamp, self.config)
        with self._lock:
            if generation != self._generation:
                logger.debug("Discarding coaching cue from a stopped or reset session")
                return
            self._send(cue)
