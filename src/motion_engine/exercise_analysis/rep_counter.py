import logging
import numpy as np
from typing import Optional

from ..models import Frame, RepPhase, RepState
from .pose_utils import calculate_angle, resolve_point, resolve_points
from .profiles import RepCountingConfig, SignalKind

logger = logging.getLogger("RepCounter")


class RepCounter:
    """
    Hysteresis rep counter over one scalar signal (landmark position or joint angle).

    idle -> descending -> bottom (armed) <-> ascending -> fire -> descending

    The counter arms once the signal passes start_threshold and fires once it then passes
    end_threshold, provided the cooldown since the last fire has elapsed and, when the profile
    requires it, the cycle covered enough range of motion. A rep held back by cooldown stays
    armed; one held back by range of motion starts a new cycle from the current value. Timer
    profiles skip all of this and report seconds held in the hold phase instead.
    """

    def __init__(
        self,
        config: RepCountingConfig,
        cooldown: float = 0.5,
        min_visibility: float = 0.5,
        hold_phase: str = "hold",
    ):
        self.config = config
        self.cooldown = max(cooldown, config.min_duration)
        self.min_visibility = min_visibility
        self.hold_phase = hold_phase
        # start < end means the movement flexes toward lower values
        self._rising = config.start_threshold < config.end_threshold
        self.reset()

    def reset(self) -> None:
        self.count = 0
        self.phase = RepPhase.IDLE
        self.armed = False
        self.cycle_start: Optional[float] = None
        self.cycle_start_time: Optional[float] = None
        self.extreme: Optional[float] = None
        self.last_fire_time: Optional[float] = None
        self.last_range_of_motion = 0.0
        self.last_cycle_duration = 0.0
        self.last_value: Optional[float] = None
        self._hold_started: Optional[float] = None
        self.hold_seconds = 0.0
        self.best_hold_seconds = 0.0

    # --- Signal ---
    def read_signal(self, frame: Frame) -> Optional[float]:
        """Current signal value, or None when its landmarks are not visible."""
        signal = self.config.signal
        if signal == SignalKind.POSITION:
            point = resolve_point(frame, self.config.points[0], self.min_visibility)
            return None if point is None else point.axis_value(self.config.axis)
        if signal == SignalKind.ANGLE:
            points = resolve_points(frame, self.config.points, self.min_visibility)
            if points is None:
                return None
            angle = calculate_angle(points[0].coords(), points[1].coords(), points[2].coords())
            return None if np.isnan(angle) else angle
        return None

    def _past_start(self, value: float) -> bool:
        if self._rising:
            return value <= self.config.start_threshold
        return value >= self.config.start_threshold

    def _past_end(self, value: float) -> bool:
        if self._rising:
            return value >= self.config.end_threshold
        return value <= self.config.end_threshold

    def _deeper(self, value: float, reference: float) -> float:
        if self._rising:
            return min(value, reference)
        return max(value, reference)

    def _shallower(self, value: float, reference: Optional[float]) -> float:
        if reference is None:
            return value
        if self._rising:
            return max(value, reference)
        return min(value, reference)

    def range_of_motion(self, start: Optional[float] = None, extreme: Optional[float] = None) -> float:
        """|cycle start - extreme| as a percentage of the threshold span, clamped to [0, 100]."""
        start = self.cycle_start if start is None else start
        extreme = self.extreme if extreme is None else extreme
        if start is None or extreme is None:
            return 0.0
        span = abs(self.config.end_threshold - self.config.start_threshold)
        if span == 0:
            return 0.0
        return float(np.clip(abs(start - extreme) / span * 100, 0, 100))

    # --- Update ---
    def update(self, frame: Frame, confirmed_phase: Optional[str] = None) -> bool:
        """
        Advance the state machine by one frame.

        Args:
            frame: Current frame
            confirmed_phase: Debounced phase, used by timer profiles

        Returns:
            True if a rep fired on this frame
        """
        if self.config.is_timer:
            self._update_hold(confirmed_phase, frame.timestamp)
            return False

        value = self.read_signal(frame)
        if value is None:
            return False
        self.last_value = value
        now = frame.timestamp

        if self.phase == RepPhase.IDLE:
            self.cycle_start = value
            self.cycle_start_time = now
            self.phase = RepPhase.DESCENDING
        elif self.phase == RepPhase.DESCENDING:
            if self._past_start(value):
                self.armed = True
                self.extreme = value
                self.phase = RepPhase.BOTTOM
            else:
                # cycle starts from the most extended point seen before arming
                self.cycle_start = self._shallower(value, self.cycle_start)
        elif self.phase == RepPhase.BOTTOM:
            if self._past_start(value):
                self.extreme = self._deeper(value, self.extreme)
            else:
                self.phase = RepPhase.ASCENDING
        elif self.phase == RepPhase.ASCENDING:
            if self._past_start(value):
                self.extreme = self._deeper(value, self.extreme)
                self.phase = RepPhase.BOTTOM
            elif self._past_end(value):
                return self._try_fire(value, now)
        return False

    def _try_fire(self, value: float, now: float) -> bool:
        if self.last_fire_time is not None and now - self.last_fire_time < self.cooldown:
            logger.debug(f"Rep held back by cooldown ({now - self.last_fire_time:.2f}s < {self.cooldown:.2f}s)")
            return False
        rom = self.range_of_motion()
        if self.config.requires_full_range and rom < self.config.min_range_of_motion:
            logger.debug(f"Rep held back by range of motion ({rom:.0f}% < {self.config.min_range_of_motion:.0f}%)")
            self._restart_cycle(value, now)
            return False

        previous = self.count
        self.count += 1
        assert self.count == previous + 1, "rep count must advance by exactly one"
        self.last_range_of_motion = rom
        self.last_cycle_duration = now - self.cycle_start_time if self.cycle_start_time is not None else 0.0
        self.last_fire_time = now
        self._restart_cycle(value, now)
        logger.info(f"Rep {self.count} completed (ROM {rom:.0f}%)")
        return True

    def _restart_cycle(self, value: float, now: float) -> None:
        self.armed = False
        self.extreme = None
        self.cycle_start = value
        self.cycle_start_time = now
        self.phase = RepPhase.DESCENDING

    def _update_hold(self, confirmed_phase: Optional[str], now: float) -> None:
        if confirmed_phase == self.hold_phase:
            if self._hold_started is None:
                self._hold_started = now
                logger.info("Hold started")
            self.hold_seconds = now - self._hold_started
            self.best_hold_seconds = max(self.best_hold_seconds, self.hold_seconds)
        elif self._hold_started is not None:
            logger.info(f"Hold ended after {self.hold_seconds:.1f}s")
            self._hold_started = None
            self.hold_seconds = 0.0

    def state(self, confirmed_phase: Optional[str] = None) -> RepState:
        rom = self.range_of_motion() if self.armed else self.last_range_of_motion
        return RepState(
            count=self.count,
            phase=self.phase,
            confirmed_phase=confirmed_phase,
            armed=self.armed,
            range_of_motion=rom,
            hold_seconds=self.hold_seconds,
        )
