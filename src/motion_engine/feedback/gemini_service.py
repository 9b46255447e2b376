# requires: pip install -U google-genai
import json
import logging
import os
from typing import Any, Dict, Optional

from google import genai
from google.genai import types

from ..models import FormMetrics, RepState
from .coaching import CoachingService, CoachingServiceError

logger = logging.getLogger("GeminiCoaching")

GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
MAX_CUE_WORDS = 15

COACH_SYSTEM_PROMPT = """
You are a real-time bodyweight exercise coach. Every couple of seconds you receive a JSON object:
{"exercise_type", "rep_velocity", "consistency_score", "form_violations", "fatigue_detected", "rep_count", "rep_phase"}

Decision rules, in priority order:
1. If form_violations contains a critical severity, answer with STOP and one corrective cue.
   Example: "STOP. Neutral spine. Chest up."
2. If form is fine and fatigue_detected is true, motivate. Example: "Strong. 3 more. Hold your form."
   If form is degrading and fatigue_detected is true, suggest a reset. Example: "Take a pause. Reset form."
3. Otherwise give one high-impact coaching cue. Example: "Good depth. Push knees out."

Constraints: at most 15 words, no filler, no medical diagnosis, immediately actionable.
""".strip()


def build_payload(movement_pattern: str, metrics: FormMetrics, rep_state: RepState, fatigue_alert: float = 0.7) -> Dict[str, Any]:
    return {
        "exercise_type": movement_pattern,
        "rep_velocity": round(metrics.velocity, 3),
        "consistency_score": round(metrics.consistency, 3),
        "form_violations": [{"severity": v.severity.value, "message": v.message} for v in metrics.violations],
        "fatigue_detected": metrics.fatigue > fatigue_alert,
        "rep_count": rep_state.count,
        "rep_phase": rep_state.confirmed_phase or rep_state.phase.value,
    }


def _trim_words(text: str, limit: int = MAX_CUE_WORDS) -> str:
    words = text.split()
    return " ".join(words[:limit])


class GeminiCoachingService(CoachingService):
    """Coaching cues from Gemini via the google-genai SDK."""

    def __init__(self, api_key: Optional[str] = None, model: str = GEMINI_MODEL, fatigue_alert: float = 0.7):
        key = api_key or os.getenv("GEMINI_API_KEY")
        if not key:
            raise CoachingServiceError("Gemini API key missing. Set env var GEMINI_API_KEY.")
        self.client = genai.Client(api_key=key)
        self.model = model
        self.fatigue_alert = fatigue_alert
        self._config = types.GenerateContentConfig(
            system_instruction=COACH_SYSTEM_PROMPT,
            max_output_tokens=50,
            temperature=0.7,
        )

    def get_cue(self, movement_pattern: str, metrics: FormMetrics, rep_state: RepState) -> Optional[str]:
        payload = build_payload(movement_pattern, metrics, rep_state, self.fatigue_alert)
        try:
            resp = self.client.models.generate_content(
                model=self.model,
                contents=[json.dumps(payload)],
                config=self._config,
            )
        except Exception as e:
            raise CoachingServiceError(f"Gemini request failed: {type(e).__name__}: {e}") from e
        text = (resp.text or "").strip()
        if not text:
            logger.debug("Gemini returned an empty cue")
            return None
        return _trim_words(text)

    def close(self) -> None:
        close = getattr(self.client, "close", None)
        if callable(close):
            close()
