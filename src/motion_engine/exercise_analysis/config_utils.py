import glob
import json
import logging
import os
from dataclasses import dataclass, fields
from typing import Any, Dict, List

logger = logging.getLogger("EngineConfig")

PROFILE_CONFIG_DIR = os.path.join(os.path.dirname(__file__), "configs")
ENGINE_CONFIG_PATH = os.path.join(os.path.dirname(os.path.dirname(__file__)), "engine_config.json")


@dataclass
class EngineConfig:
    """Engine tunables. Durations are seconds."""
    min_visibility: float = 0.5
    debounce_frames: int = 3
    rep_cooldown: float = 0.5
    violation_penalty: float = 15.0
    pass_threshold: float = 70.0
    settle_window: float = 1.0
    service_debounce: float = 1.5
    safety_cue_duration: float = 5.0
    cue_duration: float = 3.0
    milestone_interval: int = 5
    fatigue_alert: float = 0.7
    rolling_window: int = 30
    velocity_window: int = 5
    score_history: int = 60

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown engine config keys: {sorted(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})

    def replace(self, **overrides) -> "EngineConfig":
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update(overrides)
        return EngineConfig(**values)


def load_json_config(config_path: str) -> Dict[str, Any]:
    """Load one JSON config file."""
    with open(config_path, "r") as f:
        return json.load(f)


def list_profile_files(config_dir: str = None) -> List[str]:
    """Exercise profile files in a directory, sorted by name."""
    if config_dir is None:
        config_dir = PROFILE_CONFIG_DIR
    return sorted(glob.glob(os.path.join(config_dir, "*.json")))


def load_engine_config(config_path: str = None) -> EngineConfig:
    """
    Load engine tunables, falling back to the built-in defaults when the file is unreadable.

    Args:
        config_path: JSON file; defaults to the packaged engine_config.json
    """
    if config_path is None:
        config_path = ENGINE_CONFIG_PATH
    try:
        return EngineConfig.from_dict(load_json_config(config_path))
    except (OSError, ValueError, TypeError) as e:
        logger.error(f"Could not load engine config from {config_path}: {e}")
        return EngineConfig()
