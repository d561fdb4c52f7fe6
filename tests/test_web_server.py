"""
HTTP API tests for the proctoring web server.
"""

import sys
import os
import io
import base64
import unittest

# Add project root to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from PIL import Image

from interview_proctor.core.event_store import InMemoryEventSink
from interview_proctor.core.monitoring import ProctoringEngine
from web_server import create_app


class StubProvider:

    def __init__(self, result):
        self.result = result

    def is_ready(self):
        return True

    def detect(self, frame):
        return self.result


def encoded_image():
    buffer = io.BytesIO()
    Image.new('RGB', (16, 12), color=(0, 128, 0)).save(buffer, format='JPEG')
    return base64.b64encode(buffer.getvalue()).decode('ascii')


class TestWebServer(unittest.TestCase):
    """Test the HTTP endpoints."""

    def setUp(self):
        self.engine = ProctoringEngine(
            sink=InMemoryEventSink(),
            face_provider=StubProvider([]),
            interval=0.05,
            provider_timeout=1.0,
        )
        self.app = create_app(self.engine)
        self.client = self.app.test_client()

    def tearDown(self):
        self.engine.stop_all()

    def test_health(self):
        response = self.client.get('/health')

        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual(data['status'], 'healthy')
        self.assertTrue(data['providers_ready']['face'])
        self.assertFalse(data['providers_ready']['objects'])

    def test_report_not_found(self):
        response = self.client.get('/report/unknown-session')

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()['message'], "No events found for this interview ID.")

    def test_start_and_stop_monitoring(self):
        response = self.client.post('/start_monitoring', json={'session_id': 'interview-7'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {'success': True, 'session_id': 'interview-7'})
        self.assertTrue(self.engine.is_monitoring('interview-7'))

        response = self.client.post('/stop_monitoring', json={'session_id': 'interview-7'})
        self.assertTrue(response.get_json()['stopped'])

        response = self.client.post('/stop_monitoring', json={'session_id': 'interview-7'})
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.get_json()['stopped'])

    def test_start_monitoring_generates_session_id(self):
        response = self.client.post('/start_monitoring', json={'candidate_email': 'jane.doe@example.com'})

        session_id = response.get_json()['session_id']
        self.assertTrue(session_id)
        self.assertEqual(self.engine.identity.name_for(session_id), 'jane.doe')

    def test_stop_monitoring_requires_session_id(self):
        response = self.client.post('/stop_monitoring', json={})
        self.assertEqual(response.status_code, 400)

    def test_push_frame(self):
        self.client.post('/start_monitoring', json={'session_id': 'interview-8'})

        response = self.client.post('/sessions/interview-8/frame', json={'image': encoded_image()})
        self.assertEqual(response.status_code, 200)

        response = self.client.post('/sessions/interview-8/frame', json={'image': 'not-an-image'})
        self.assertEqual(response.status_code, 400)

        response = self.client.post('/sessions/interview-9/frame', json={'image': encoded_image()})
        self.assertEqual(response.status_code, 409)

    def test_record_events_and_report(self):
        response = self.client.post('/events', json={
            'session_id': 'interview-abc123',
            'alert_type': 'MULTIPLE_FACES',
            'timestamp': '2024-05-01T12:00:00Z',
            'details': {'face_count': 2},
        })
        self.assertEqual(response.status_code, 201)
        self.client.post('/events', json={
            'session_id': 'interview-abc123',
            'alert_type': 'LOOKING_AWAY',
            'timestamp': '2024-05-01T12:00:05Z',
        })

        response = self.client.get('/report/interview-abc123')
        self.assertEqual(response.status_code, 200)
        report = response.get_json()
        self.assertEqual(report['integrity_score'], 67)
        self.assertEqual(report['focus_lost_count'], 1)
        self.assertEqual(report['candidate_name'], 'Candidate_abc123')
        self.assertEqual(report['duration'], '00:05')
        self.assertEqual(len(report['events']), 2)

        response = self.client.get('/interviews')
        self.assertEqual(response.get_json()['sessions'], ['interview-abc123'])

    def test_record_event_validation(self):
        response = self.client.post('/events', json={'session_id': 'interview-1'})
        self.assertEqual(response.status_code, 400)

        response = self.client.post('/events', json={
            'session_id': 'interview-1',
            'alert_type': 'LOOKING_AWAY',
            'timestamp': 'yesterday',
        })
        self.assertEqual(response.status_code, 400)

    def test_session_stats(self):
        response = self.client.get('/session/interview-empty/stats')
        data = response.get_json()

        self.assertEqual(response.status_code, 200)
        self.assertFalse(data['is_active'])
        self.assertEqual(data['total_events'], 0)
        self.assertEqual(data['recent_events'], [])
        self.assertIsNone(data['last_activity'])

        self.client.post('/events', json={'session_id': 'interview-live', 'alert_type': 'LOOKING_AWAY'})
        data = self.client.get('/session/interview-live/stats').get_json()
        self.assertTrue(data['is_active'])
        self.assertEqual(data['total_events'], 1)


if __name__ == "__main__":
    unittest.main()
