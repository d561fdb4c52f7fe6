#!/usr/bin/env python3
"""
Flask web server for the interview proctoring engine.

Clients push webcam frames for a monitored session, record externally
detected events, and fetch integrity reports and live session stats.
"""

import uuid

from flask import Flask, request, jsonify

from interview_proctor.core.exceptions import SessionNotFoundError, SinkError
from interview_proctor.core.face_landmarks import FaceLandmarkProvider
from interview_proctor.core.monitoring import ProctoringEngine
from interview_proctor.core.object_detection import ObjectDetectionProvider
from interview_proctor.core.video_capture import decode_base64_frame
from interview_proctor.utils.identity import email_display_name
from interview_proctor.utils.logger import get_logger

logger = get_logger(__name__)

NOT_FOUND_MESSAGE = "No events found for this interview ID."


def initialize_components() -> ProctoringEngine:
    """
    Build the engine with the MediaPipe and YOLO providers.

    Every session gets its own face mesh, since the mesh tracks faces across
    frames. The YOLO model is loaded once and shared.
    """
    object_provider = ObjectDetectionProvider()
    object_provider.load_async()

    engine = ProctoringEngine(
        face_provider_factory=lambda session_id: FaceLandmarkProvider(),
        object_provider=object_provider,
        on_alert=lambda alert: logger.info(f"[{alert['session_id']}] {alert['message']}"),
    )
    logger.info("All components initialized successfully")
    return engine


def create_app(engine: ProctoringEngine = None) -> Flask:
    """
    Create the Flask application.

    Args:
        engine: Proctoring engine to serve (built from config if None)
    """
    app = Flask(__name__)
    engine = engine if engine is not None else initialize_components()
    app.config['ENGINE'] = engine

    @app.route('/health', methods=['GET'])
    def health_check():
        """Health check endpoint."""
        return jsonify({
            'status': 'healthy',
            'providers_ready': engine.provider_status(),
            'active_sessions': engine.active_sessions(),
        })

    @app.route('/start_monitoring', methods=['POST'])
    def start_monitoring():
        """Begin monitoring a session fed by pushed frames."""
        try:
            data = request.get_json(silent=True) or {}
            session_id = data.get('session_id') or uuid.uuid4().hex

            candidate_name = data.get('candidate_name')
            if not candidate_name and data.get('candidate_email'):
                candidate_name = email_display_name(data['candidate_email'])
            if candidate_name:
                engine.identity.register(session_id, candidate_name)

            engine.start_monitoring(session_id)
            return jsonify({'success': True, 'session_id': session_id})

        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            logger.error(f"Error starting monitoring: {e}")
            return jsonify({'error': str(e)}), 500

    @app.route('/stop_monitoring', methods=['POST'])
    def stop_monitoring():
        """Stop monitoring a session. Stopping twice is not an error."""
        try:
            data = request.get_json(silent=True) or {}
            session_id = data.get('session_id')
            if not session_id:
                return jsonify({'error': 'No session_id provided'}), 400

            stopped = engine.stop_monitoring(session_id)
            return jsonify({'success': True, 'stopped': stopped})

        except Exception as e:
            logger.error(f"Error stopping monitoring: {e}")
            return jsonify({'error': str(e)}), 500

    @app.route('/sessions/<session_id>/frame', methods=['POST'])
    def push_frame(session_id):
        """Hand the newest webcam frame to a monitored session."""
        try:
            data = request.get_json(silent=True)
            if not data or 'image' not in data:
                return jsonify({'error': 'No image data provided'}), 400

            frame = decode_base64_frame(data['image'])
            if not engine.push_frame(session_id, frame):
                return jsonify({'error': f'Session {session_id} is not being monitored'}), 409

            return jsonify({'success': True})

        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            logger.error(f"Error pushing frame: {e}")
            return jsonify({'error': str(e)}), 500

    @app.route('/events', methods=['POST'])
    def record_event():
        """Record an event detected outside the engine."""
        try:
            data = request.get_json(silent=True) or {}
            session_id = data.get('session_id')
            alert_type = data.get('alert_type')
            if not session_id or not alert_type:
                return jsonify({'error': 'session_id and alert_type are required'}), 400

            event = engine.record_event(
                session_id,
                alert_type,
                details=data.get('details') or {},
                timestamp=data.get('timestamp'),
            )
            return jsonify({'success': True, 'event': event.to_dict()}), 201

        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        except SinkError as e:
            logger.log_sink_failure(data.get('session_id'), data.get('alert_type'), e)
            return jsonify({'error': str(e)}), 500
        except Exception as e:
            logger.error(f"Error recording event: {e}")
            return jsonify({'error': str(e)}), 500

    @app.route('/report/<session_id>', methods=['GET'])
    def get_report(session_id):
        """Integrity report for a session."""
        try:
            report = engine.compute_report(session_id)
            return jsonify(report.to_dict())

        except SessionNotFoundError:
            return jsonify({'message': NOT_FOUND_MESSAGE}), 404
        except Exception as e:
            logger.error(f"Error generating report: {e}")
            return jsonify({'error': str(e)}), 500

    @app.route('/session/<session_id>/stats', methods=['GET'])
    def get_session_stats(session_id):
        """Live statistics for a session."""
        try:
            return jsonify(engine.session_stats(session_id))
        except Exception as e:
            logger.error(f"Error getting session stats: {e}")
            return jsonify({'error': str(e)}), 500

    @app.route('/interviews', methods=['GET'])
    def list_interviews():
        """Ids of every session with recorded events."""
        try:
            return jsonify({'success': True, 'sessions': engine.list_sessions()})
        except Exception as e:
            logger.error(f"Error listing sessions: {e}")
            return jsonify({'error': str(e)}), 500

    return app


def run_server(host: str = '0.0.0.0', port: int = 8000) -> None:
    """Run the HTTP server until interrupted."""
    app = create_app()
    engine = app.config['ENGINE']

    print(f"Starting interview proctoring server on port {port}...")
    print("Available endpoints:")
    print("  GET  /health - Health check")
    print("  POST /start_monitoring - Start monitoring a session")
    print("  POST /stop_monitoring - Stop monitoring a session")
    print("  POST /sessions/<id>/frame - Push a webcam frame")
    print("  POST /events - Record an event")
    print("  GET  /report/<id> - Integrity report")
    print("  GET  /session/<id>/stats - Live session statistics")
    print("  GET  /interviews - Recorded sessions")

    try:
        app.run(host=host, port=port, debug=False, threaded=True)
    finally:
        engine.stop_all()
        if engine.face_provider is not None:
            engine.face_provider.close()


if __name__ == '__main__':
    run_server()
