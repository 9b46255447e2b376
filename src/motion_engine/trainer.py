import logging
import time
from typing import Dict, Optional

import cv2
import numpy as np

from .engine import MotionAnalysisEngine
from .feedback.voice_feedback import VoiceFeedback
from .models import CoachingCue, Urgency
from .pose_detection.base_detector import BasePoseDetector
from .pose_detection.mediapipe_detector import MediaPipePoseDetector
from .session import SessionSummary

logger = logging.getLogger("MotionEngine")

WINDOW_NAME = 'Motion Coach'
_URGENCY_COLORS = {
    Urgency.CRITICAL: (0, 0, 255),
    Urgency.HIGH: (0, 165, 255),
    Urgency.NORMAL: (0, 255, 0),
}


class LiveTrainer:
    """Camera/video front end: pose detection -> engine -> overlay and voice."""

    def __init__(
        self,
        engine: MotionAnalysisEngine,
        pose_detector: Optional[BasePoseDetector] = None,
        voice_feedback: Optional[VoiceFeedback] = None,
        show_window: bool = True,
    ):
        """
        Initialize the trainer.

        Args:
            engine: Engine for the selected exercise; its callbacks are wired here
            pose_detector: Landmark provider, MediaPipe by default
            voice_feedback: Optional speech output for cues and rep counts
            show_window: Render an OpenCV window with the overlay
        """
        self.engine = engine
        self.pose_detector = pose_detector or MediaPipePoseDetector()
        self.voice_feedback = voice_feedback
        self.show_window = show_window
        self.current_cue: Optional[CoachingCue] = None
        self._cue_shown_at = 0.0
        self.cap = None
        self.is_running = False
        self.missing_pose_counter = 0
        self.missing_pose_threshold = 30  # ~1 second at 30fps

        self.engine.on_coaching_cue = self._on_cue
        self.engine.on_rep_completed = self._on_rep

    def _on_cue(self, cue: CoachingCue) -> None:
        self.current_cue = cue
        self._cue_shown_at = time.time()
        if self.voice_feedback is not None:
            self.voice_feedback.on_cue(cue)

    def _on_rep(self, count: int) -> None:
        logger.info(f"Rep {count}")
        if self.voice_feedback is not None:
            self.voice_feedback.on_rep(count)

    def start(self, camera_id: int = 0) -> SessionSummary:
        """
        Run live analysis from a camera until 'q' is pressed.

        Args:
            camera_id: Camera device ID
        """
        self.cap = cv2.VideoCapture(camera_id)
        if not self.cap.isOpened():
            raise RuntimeError("Failed to open camera")
        started = time.monotonic()
        return self._run(lambda: time.monotonic() - started)

    def run_video(self, video_path: str) -> SessionSummary:
        """Analyze a video file, stamping frames with their position in the video."""
        self.cap = cv2.VideoCapture(video_path)
        if not self.cap.isOpened():
            raise RuntimeError(f"Failed to open video: {video_path}")
        fps = self.cap.get(cv2.CAP_PROP_FPS) or 30.0
        frame_index = [0]

        def clock():
            frame_index[0] += 1
            return frame_index[0] / fps
        return self._run(clock)

    def _run(self, clock) -> SessionSummary:
        self.is_running = True
        self.engine.start()
        try:
            while self.is_running:
                ret, image = self.cap.read()
                if not ret:
                    break
                result = self.process_image(image, clock())
                if self.show_window:
                    self._display_results(image, result)
                    if cv2.waitKey(1) & 0xFF == ord('q'):
                        break
        except KeyboardInterrupt:
            logger.info("KeyboardInterrupt received. Exiting gracefully...")
        finally:
            summary = self.stop()
        return summary

    def stop(self) -> SessionSummary:
        """Stop the session and release resources."""
        self.is_running = False
        self.engine.stop()
        if self.cap is not None:
            self.cap.release()
            self.cap = None
        if self.show_window:
            cv2.destroyAllWindows()
        return self.engine.get_summary()

    def process_image(self, image: np.ndarray, timestamp: float) -> Dict:
        """
        Detect landmarks in one image and push them through the engine.

        Returns:
            Dictionary with the frame metrics, running stats and any error message
        """
        frame = self.pose_detector.detect_frame(image, timestamp)
        if frame is None:
            self.missing_pose_counter += 1
            error = None
            if self.missing_pose_counter >= self.missing_pose_threshold:
                error = "We can't see your full body. Please adjust your position or camera."
            return {"error": error or "No pose detected", "stats": self.engine.get_running_stats()}
        self.missing_pose_counter = 0
        metrics = self.engine.process_frame(frame)
        return {
            "metrics": metrics,
            "stats": self.engine.get_running_stats(),
            "error": None if metrics is not None else "Move so your whole body is visible",
        }

    def _display_results(self, image: np.ndarray, result: Dict) -> None:
        stats = result["stats"]
        metrics = result.get("metrics")
        if self.engine.profile.rep_counting.is_timer:
            counter_text = f"Hold: {stats['hold_seconds']:.1f}s"
        else:
            counter_text = f"Reps: {stats['rep_count']}"
        cv2.putText(image, counter_text, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 1, (255, 255, 255), 2)
        cv2.putText(image, f"Phase: {stats['phase']}", (10, 65), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (255, 255, 255), 2)
        if metrics is not None:
            cv2.putText(image, f"Form: {metrics.score:.0f}", (10, 100), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (255, 255, 255), 2)
        if result.get("error"):
            cv2.putText(image, result["error"], (10, image.shape[0] - 50), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 255), 2)
        cue = self.current_cue
        if cue is not None and time.time() - self._cue_shown_at < cue.duration:
            color = _URGENCY_COLORS.get(cue.urgency, (255, 255, 255))
            cv2.putText(image, cue.message, (10, image.shape[0] - 20), cv2.FONT_HERSHEY_SIMPLEX, 0.7, color, 2)
        cv2.imshow(WINDOW_NAME, image)

