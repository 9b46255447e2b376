import argparse
import json
import logging
import os
import sys
import traceback
from typing import Optional

from motion_engine.engine import MotionAnalysisEngine, create_engine
from motion_engine.exercise_analysis.config_utils import load_engine_config
from motion_engine.exercise_analysis.profiles import default_registry
from motion_engine.feedback.coaching import CoachingService, CoachingServiceError
from motion_engine.models import CoachingCue
from motion_engine.pose_detection.landmarks import read_frame_recording
from motion_engine.session import SessionSummary

logger = logging.getLogger("MotionEngine")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Motion Coach - rep counting and form feedback from pose landmarks")
    parser.add_argument('--mode', type=str, choices=['camera', 'video', 'replay'], default='camera',
                        help='Run mode: camera (default), video file, or replay of recorded landmark frames')
    parser.add_argument('--exercise', type=str, default='squat', help='Exercise id, e.g. squat, push-ups, wall_sit')
    parser.add_argument('--camera', type=int, default=0, help='Camera device ID')
    parser.add_argument('--video', type=str, help='Path to the video file to analyze (required if mode=video)')
    parser.add_argument('--frames', type=str, help='Path to a JSON-lines landmark recording (required if mode=replay)')
    parser.add_argument('--config', type=str, help='Engine config JSON overriding the packaged defaults')
    parser.add_argument('--gemini', action='store_true', help='Ask Gemini for coaching cues (needs GEMINI_API_KEY)')
    parser.add_argument('--no-voice', action='store_true', help='Disable spoken feedback')
    parser.add_argument('--no-window', action='store_true', help='Do not open a preview window')
    parser.add_argument('--summary-out', type=str, help='Write the session summary JSON to this path')
    parser.add_argument('--list', action='store_true', help='List supported exercises and exit')
    return parser


def build_coaching_service(use_gemini: bool) -> Optional[CoachingService]:
    if not use_gemini:
        return None
    from motion_engine.feedback.gemini_service import GeminiCoachingService
    try:
        return GeminiCoachingService()
    except CoachingServiceError as e:
        logger.warning(f"{e} Falling back to local coaching.")
        return None


def print_cue(cue: CoachingCue) -> None:
    print(f"[{cue.urgency.value.upper()}] {cue.message}")


def run_replay(engine: MotionAnalysisEngine, frames_path: str) -> SessionSummary:
    """Feed a recorded landmark stream through the engine."""
    engine.on_coaching_cue = print_cue
    engine.on_rep_completed = lambda count: print(f"Rep {count}")
    engine.start()
    processed = 0
    for frame in read_frame_recording(frames_path):
        engine.process_frame(frame)
        processed += 1
    summary = engine.stop() or engine.get_summary()
    print(f"Replay complete. Processed {processed} frames.")
    return summary


def write_summary(summary: SessionSummary, path: Optional[str]) -> None:
    data = summary.to_dict()
    print(json.dumps({k: v for k, v in data.items() if k not in ("rep_log", "cue_log")}, indent=2))
    if path:
        with open(path, "w") as f:
            json.dump(data, f, indent=2)
        print(f"Summary written to {path}")


def main(argv=None) -> int:
    """Main entry point for Motion Coach."""
    args = build_parser().parse_args(argv)
    registry = default_registry()

    if args.list:
        for exercise_id in registry.exercise_ids():
            print(exercise_id)
        return 0

    if args.mode == 'video' and not args.video:
        print("Error: --video argument is required when mode is 'video'.")
        return 1
    if args.mode == 'video' and not os.path.isfile(args.video):
        print(f"Video file not found: {args.video}")
        return 1
    if args.mode == 'replay' and not args.frames:
        print("Error: --frames argument is required when mode is 'replay'.")
        return 1

    config = load_engine_config(args.config) if args.config else load_engine_config()
    engine = create_engine(
        args.exercise,
        registry=registry,
        config=config,
        coaching_service=build_coaching_service(args.gemini),
    )
    if engine is None:
        print(f"'{args.exercise}' is not supported for motion analysis. Use manual counting instead.")
        return 2

    profile = engine.profile
    print(f"{profile.name}: place the camera for a {profile.camera_view} view.")
    if profile.safety.requires_warmup:
        print("Warm up before starting.")
    for cue in profile.coaching.setup_cues:
        print(f"Setup: {cue}")

    try:
        if args.mode == 'replay':
            summary = run_replay(engine, args.frames)
        else:
            from motion_engine.trainer import LiveTrainer
            voice = None
            if not args.no_voice:
                from motion_engine.feedback.voice_feedback import VoiceFeedback
                voice = VoiceFeedback()
            trainer = LiveTrainer(engine, voice_feedback=voice, show_window=not args.no_window)
            if args.mode == 'video':
                summary = trainer.run_video(args.video)
            else:
                summary = trainer.start(camera_id=args.camera)
    except Exception as e:
        print(f"Error running Motion Coach: {e}")
        traceback.print_exc()
        return 1
    finally:
        engine.close()

    write_summary(summary, args.summary_out)
    return 0


if __name__ == "__main__":
    sys.exit(main())
