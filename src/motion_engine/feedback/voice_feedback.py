import logging
import queue
import threading
from typing import Optional

import pyttsx3

from ..models import CoachingCue, Urgency

logger = logging.getLogger("VoiceFeedback")


class VoiceFeedback:
    """Speaks coaching cues on a background text-to-speech thread."""

    def __init__(self, rate: int = 150, volume: float = 1.0, repeat_cooldown: float = 4.0):
        """
        Initialize the voice feedback system.

        Args:
            rate: Speech rate (words per minute)
            volume: Speech volume (0.0 to 1.0)
            repeat_cooldown: Seconds before the same message may be spoken again
        """
        self.engine = pyttsx3.init()
        self.engine.setProperty('rate', rate)
        self.engine.setProperty('volume', volume)
        self.repeat_cooldown = repeat_cooldown

        self._tts_queue = queue.Queue()
        self._tts_thread = threading.Thread(target=self._tts_worker, daemon=True)
        self._tts_thread.start()

        self._last_message: Optional[str] = None
        self._last_time: Optional[float] = None

    def on_cue(self, cue: CoachingCue) -> bool:
        """
        Speak a cue unless it repeats the previous one within the cooldown.
        Critical cues are always spoken.

        Returns:
            True if the cue was queued
        """
        repeated = (
            cue.message == self._last_message
            and self._last_time is not None
            and cue.timestamp - self._last_time < self.repeat_cooldown
        )
        if repeated and cue.urgency != Urgency.CRITICAL:
            return False
        self._last_message = cue.message
        self._last_time = cue.timestamp
        self.speak(cue.message)
        return True

    def on_rep(self, count: int) -> None:
        self.speak(str(count))

    def speak(self, message: str) -> None:
        """
        Queue the given message to be spoken by the background TTS thread.

        Args:
            message: Message to speak
        """
        self._tts_queue.put(message)

    def _tts_worker(self):
        while True:
            msg = self._tts_queue.get()
            if msg is None:
                break
            try:
                self.engine.say(msg)
                self.engine.runAndWait()
            except RuntimeError as e:
                logger.error(f"Speech engine error: {e}")

    def close(self) -> None:
        self._tts_queue.put(None)
