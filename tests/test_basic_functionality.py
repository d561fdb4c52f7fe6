"""
Basic functionality tests for the interview proctoring engine.
"""

import sys
import os
import io
import base64
import tempfile
import unittest
import numpy as np
from datetime import datetime, timezone

# Add project root to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from PIL import Image

from interview_proctor.utils.config import Config, config
from interview_proctor.utils.logger import ProctorLogger, get_logger, logger
from interview_proctor.utils.identity import IdentityResolver, email_display_name, placeholder_name
from interview_proctor.core.alerts import (
    CANDIDATE_ABSENT,
    LOOKING_AWAY,
    MULTIPLE_FACES,
    Event,
    alert_message,
    build_alert_specs,
    object_alert_type,
    parse_timestamp,
)
from interview_proctor.core.video_capture import PushFrameSource, decode_base64_frame


class TestBasicFunctionality(unittest.TestCase):
    """Test basic system functionality."""

    def setUp(self):
        """Set up test environment."""
        logger.info("Setting up test environment")

    def test_config_loading(self):
        """Test configuration loading."""
        self.assertIsNotNone(config)
        self.assertIsNotNone(config.camera)
        self.assertIsNotNone(config.monitoring)
        self.assertIsNotNone(config.detection)
        self.assertIsNotNone(config.alerts)
        self.assertIsNotNone(config.scoring)
        self.assertIsNotNone(config.storage)

        logger.info("Configuration loading test passed")

    def test_config_defaults(self):
        """Test default detection and alert settings."""
        defaults = Config()
        self.assertEqual(defaults.monitoring.tick_interval_ms, 500)
        self.assertAlmostEqual(defaults.tick_interval, 0.5)
        self.assertAlmostEqual(defaults.frame_max_age, 1.0)
        self.assertEqual(defaults.detection.object_confidence_threshold, 0.65)
        self.assertEqual(defaults.detection.gaze_deviation_ratio, 0.4)
        self.assertIn('cell phone', defaults.detection.target_objects)
        self.assertEqual(defaults.alerts.absent_sustain_sec, 10.0)
        self.assertEqual(defaults.alerts.absent_cooldown_sec, 20.0)
        self.assertEqual(defaults.alerts.looking_away_sustain_sec, 5.0)
        self.assertEqual(defaults.alerts.default_cooldown_sec, 15.0)

    def test_config_validation(self):
        """Test configuration validation."""
        # Test valid configuration
        self.assertTrue(Config().validate_config())

        # Test invalid configuration
        invalid = Config()
        invalid.camera.width = -1
        invalid.detection.object_confidence_threshold = 1.5
        self.assertFalse(invalid.validate_config())

        stale = Config()
        stale.monitoring.frame_max_age_ms = 0
        self.assertFalse(stale.validate_config())

        logger.info("Configuration validation test passed")

    def test_config_save_and_load(self):
        """Test saving configuration to a file and reading it back."""
        original = Config()
        original.alerts.absent_sustain_sec = 3.0
        original.storage.backend = "memory"

        with tempfile.TemporaryDirectory() as tmp_dir:
            path = os.path.join(tmp_dir, "configs", "proctor.json")
            original.save_to_file(path)

            loaded = Config(path)
            self.assertEqual(loaded.alerts.absent_sustain_sec, 3.0)
            self.assertEqual(loaded.storage.backend, "memory")
            self.assertEqual(loaded.to_dict(), original.to_dict())

    def test_logger_functionality(self):
        """Test logger functionality."""
        test_logger = get_logger("test_logger")
        self.assertIsInstance(test_logger, ProctorLogger)

        # Test different log levels
        test_logger.debug("Debug message")
        test_logger.info("Info message")
        test_logger.warning("Warning message")
        test_logger.error("Error message")

        # Test domain helpers
        test_logger.log_alert("session-1", CANDIDATE_ABSENT, {})
        test_logger.log_tick_skipped("session-1", "provider timeout")
        test_logger.log_report("session-1", 67, 2)

        logger.info("Logger functionality test passed")


class TestIdentity(unittest.TestCase):
    """Test candidate identity resolution."""

    def test_placeholder_name(self):
        """Test the placeholder uses the last six characters of the id."""
        self.assertEqual(placeholder_name("interview-0042abcdef"), "Candidate_abcdef")

    def test_resolver_falls_back_to_placeholder(self):
        """Test unknown sessions resolve to the placeholder name."""
        resolver = IdentityResolver({"known-session": "Ada Lovelace"})
        self.assertEqual(resolver.name_for("known-session"), "Ada Lovelace")
        self.assertEqual(resolver.name_for("unknown-123456"), "Candidate_123456")
        self.assertIsNone(resolver.lookup("unknown-123456"))

        resolver.register("unknown-123456", "Grace Hopper")
        self.assertEqual(resolver.name_for("unknown-123456"), "Grace Hopper")

    def test_email_display_name(self):
        """Test the email local part is used as a display name."""
        self.assertEqual(email_display_name("jane.doe@example.com"), "jane.doe")


class TestAlerts(unittest.TestCase):
    """Test alert types, messages, and events."""

    def test_object_alert_type(self):
        """Test object labels map to upper-case alert types."""
        self.assertEqual(object_alert_type("cell phone"), "OBJECT_DETECTED_CELL_PHONE")
        self.assertEqual(object_alert_type("book"), "OBJECT_DETECTED_BOOK")

    def test_alert_specs(self):
        """Test the alert enumeration and its timings."""
        specs = build_alert_specs(target_objects=['cell phone', 'book'])
        by_type = {spec.alert_type: spec for spec in specs}

        self.assertEqual([spec.alert_type for spec in specs][:3],
                         [CANDIDATE_ABSENT, MULTIPLE_FACES, LOOKING_AWAY])
        self.assertEqual(by_type[CANDIDATE_ABSENT].sustain_sec, 10.0)
        self.assertEqual(by_type[CANDIDATE_ABSENT].cooldown_sec, 20.0)
        self.assertEqual(by_type[MULTIPLE_FACES].sustain_sec, 0.0)
        self.assertEqual(by_type[LOOKING_AWAY].sustain_sec, 5.0)
        self.assertEqual(by_type["OBJECT_DETECTED_CELL_PHONE"].sustain_sec, 0.0)
        self.assertEqual(by_type["OBJECT_DETECTED_CELL_PHONE"].cooldown_sec, 15.0)
        self.assertEqual(by_type["OBJECT_DETECTED_BOOK"].label, "book")

    def test_alert_messages(self):
        """Test human readable alert messages."""
        self.assertEqual(alert_message(CANDIDATE_ABSENT), "Candidate is not visible.")
        self.assertEqual(alert_message(MULTIPLE_FACES, {'face_count': 3}),
                         "3 faces detected in the frame.")
        self.assertEqual(alert_message("OBJECT_DETECTED_CELL_PHONE", {'object': 'cell phone'}),
                         "Suspicious object detected: cell phone.")

    def test_parse_timestamp(self):
        """Test timestamps are normalized to aware UTC datetimes."""
        expected = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
        self.assertEqual(parse_timestamp("2024-05-01T12:00:00Z"), expected)
        self.assertEqual(parse_timestamp("2024-05-01T12:00:00.000Z"), expected)
        self.assertEqual(parse_timestamp(expected.timestamp()), expected)
        self.assertEqual(parse_timestamp(datetime(2024, 5, 1, 12, 0, 0)), expected)

        with self.assertRaises(ValueError):
            parse_timestamp("not a timestamp")

    def test_event_is_immutable(self):
        """Test events cannot be changed once created."""
        event = Event("session-1", LOOKING_AWAY, "2024-05-01T12:00:00Z", {'deviation_ratio': 0.6})

        with self.assertRaises(Exception):
            event.alert_type = CANDIDATE_ABSENT
        with self.assertRaises(TypeError):
            event.details['deviation_ratio'] = 0.1

        self.assertEqual(Event.from_dict(event.to_dict()), event)


class TestFrameSources(unittest.TestCase):
    """Test frame sources and frame decoding."""

    def test_push_frame_source_keeps_latest(self):
        """Test only the newest pushed frame is returned."""
        source = PushFrameSource()
        self.assertIsNone(source.latest_frame())

        first = np.zeros((4, 4, 3), dtype=np.uint8)
        second = np.ones((4, 4, 3), dtype=np.uint8)
        source.push(first)
        source.push(second)

        self.assertIs(source.latest_frame(), second)
        self.assertEqual(source.frames_received, 2)

        source.close()
        self.assertIsNone(source.latest_frame())

    def test_push_frame_source_expires_old_frames(self):
        """Test a frame is dropped once the client stops pushing."""
        now = [100.0]
        source = PushFrameSource(max_age=1.0, clock=lambda: now[0])
        frame = np.zeros((4, 4, 3), dtype=np.uint8)
        source.push(frame)

        now[0] = 101.0
        self.assertIs(source.latest_frame(), frame)

        now[0] = 101.5
        self.assertIsNone(source.latest_frame())
        self.assertEqual(source.last_frame_time, 100.0)

        source.push(frame)
        self.assertIs(source.latest_frame(), frame)

    def test_decode_base64_frame(self):
        """Test decoding a base64 image into a BGR frame."""
        buffer = io.BytesIO()
        Image.new('RGB', (8, 6), color=(255, 0, 0)).save(buffer, format='PNG')
        encoded = base64.b64encode(buffer.getvalue()).decode('ascii')

        frame = decode_base64_frame("data:image/png;base64," + encoded)
        self.assertEqual(frame.shape, (6, 8, 3))
        # Red in RGB is the last channel in BGR
        self.assertEqual(tuple(frame[0, 0]), (0, 0, 255))

    def test_decode_invalid_frame(self):
        """Test undecodable payloads raise ValueError."""
        with self.assertRaises(ValueError):
            decode_base64_frame(base64.b64encode(b"not an image").decode('ascii'))


if __name__ == "__main__":
    unittest.main()
