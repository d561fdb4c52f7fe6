#!/usr/bin/env python3
"""
Main entry point for the interview proctoring engine.
Provides command-line interface for monitoring a local camera, printing
integrity reports, and running the HTTP server.
"""

import os
import warnings
import logging

# Suppress warnings unless verbose mode
os.environ['TF_CPP_MIN_LOG_LEVEL'] = '3'
warnings.filterwarnings('ignore')

import argparse
import sys
import time
import uuid

from interview_proctor.core.event_store import create_event_sink
from interview_proctor.core.exceptions import SessionNotFoundError
from interview_proctor.core.face_landmarks import FaceLandmarkProvider
from interview_proctor.core.monitoring import ProctoringEngine
from interview_proctor.core.object_detection import ObjectDetectionProvider
from interview_proctor.core.video_capture import CameraFrameSource
from interview_proctor.utils.config import config
from interview_proctor.utils.logger import logger


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Remote Interview Proctoring Engine")

    parser.add_argument("--camera", "-c", type=int, default=config.camera.device_id,
                       help="Camera device index (default: %(default)s)")
    parser.add_argument("--session-id", type=str, default="",
                       help="Session ID to monitor (default: auto-generated)")
    parser.add_argument("--candidate", type=str, default="",
                       help="Candidate display name for the report")
    parser.add_argument("--duration", "-d", type=float, default=0.0,
                       help="Stop after this many seconds (default: run until Ctrl+C)")
    parser.add_argument("--report", "-r", type=str, default="",
                       help="Print the integrity report for a session ID and exit")
    parser.add_argument("--serve", action="store_true",
                       help="Run the HTTP server instead of monitoring a camera")
    parser.add_argument("--port", "-p", type=int, default=8000,
                       help="HTTP server port (default: %(default)s)")
    parser.add_argument("--events-dir", type=str, default="",
                       help="Directory for the JSONL event log")
    parser.add_argument("--config", type=str, default="",
                       help="Path to a JSON configuration file")
    parser.add_argument("--verbose", "-v", action="store_true",
                       help="Enable verbose output")

    return parser.parse_args(argv)


def print_alert(alert: dict):
    """Print an alert as it is emitted."""
    stamp = alert['timestamp'][11:19]
    print(f"[{stamp}] ALERT {alert['alert_type']}: {alert['message']}")


def print_report(engine: ProctoringEngine, session_id: str) -> bool:
    """Print the integrity report for a session. Returns False if it has no events."""
    try:
        report = engine.compute_report(session_id)
    except SessionNotFoundError as e:
        print(f"✗ {e}")
        return False

    events = engine.sink.list_by_session(session_id)
    breakdown = engine.scorer.compute_breakdown(events)

    print("\n" + "=" * 60)
    print("INTEGRITY REPORT")
    print("=" * 60)
    print(f"Session ID: {report.session_id}")
    print(f"Candidate: {report.candidate_name}")
    print(f"Duration: {report.duration}")
    print(f"Integrity Score: {report.integrity_score} ({engine.scorer.get_grade(report.integrity_score)})")
    print(f"Focus Lost: {report.focus_lost_count} times")
    print(f"Events: {report.session_stats['total_events']} "
          f"({report.events_per_minute:.2f} per minute)")
    print("Deductions:")
    for alert_type, entry in sorted(breakdown['by_type'].items()):
        print(f"  {alert_type}: {entry['count']} x -> -{entry['points']}")
    print("=" * 60)
    return True


def run_camera_session(engine: ProctoringEngine, args) -> str:
    """Monitor the local camera until interrupted or the duration elapses."""
    session_id = args.session_id or uuid.uuid4().hex
    if args.candidate:
        engine.identity.register(session_id, args.candidate)

    print("=" * 60)
    print("Remote Interview Proctoring")
    print("=" * 60)
    print(f"Camera: {args.camera}")
    print(f"Session ID: {session_id}")
    print(f"Tick interval: {config.monitoring.tick_interval_ms} ms")
    print("=" * 60)

    try:
        frame_source = CameraFrameSource(device_id=args.camera)
    except Exception as e:
        print(f"✗ Error: Could not open camera {args.camera}: {e}")
        sys.exit(1)

    engine.start_monitoring(session_id, frame_source=frame_source)
    print("Monitoring started. Press Ctrl+C to stop.\n")

    start_time = time.time()
    try:
        while engine.is_monitoring(session_id):
            if args.duration and time.time() - start_time >= args.duration:
                break
            time.sleep(0.2)
    except KeyboardInterrupt:
        print("\nMonitoring interrupted by user")
    finally:
        if args.verbose:
            metrics = frame_source.get_performance_metrics()
            print(f"Camera FPS: {metrics['fps']:.1f}")
        engine.stop_monitoring(session_id)
        print("Monitoring ended")

    return session_id


def main(argv=None):
    """Main function."""
    args = parse_arguments(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)
        logger.log_system_info()
    else:
        logging.getLogger().setLevel(logging.ERROR)

    if args.config:
        config.load_from_file(args.config)
        if not config.validate_config():
            sys.exit(1)
    if args.events_dir:
        config.storage.events_dir = args.events_dir

    if args.serve:
        from web_server import run_server
        run_server(port=args.port)
        return

    sink = create_event_sink()

    if args.report:
        engine = ProctoringEngine(sink=sink)
        sys.exit(0 if print_report(engine, args.report) else 1)

    object_provider = ObjectDetectionProvider()
    print("Loading object detection model...")
    if not object_provider.load():
        print("⚠ Object detection unavailable, monitoring faces only")
        object_provider = None

    face_provider = FaceLandmarkProvider()
    if not face_provider.is_ready():
        print("✗ Face landmark provider unavailable. Exiting.")
        sys.exit(1)

    engine = ProctoringEngine(
        sink=sink,
        face_provider=face_provider,
        object_provider=object_provider,
        on_alert=print_alert,
    )

    try:
        session_id = run_camera_session(engine, args)
    finally:
        face_provider.close()

    print_report(engine, session_id)


if __name__ == "__main__":
    main()
