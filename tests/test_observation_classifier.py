"""
Tests for the observation classifier.
"""

import sys
import os
import unittest

# Add project root to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from interview_proctor.core.alerts import SIGNAL_ABSENT, SIGNAL_LOOKING_AWAY, SIGNAL_MULTIPLE_FACES
from interview_proctor.core.observation_classifier import ObservationClassifier


def make_face(nose_x=0.5, left_x=0.4, right_x=0.6):
    return {
        'nose_tip': (nose_x, 0.5),
        'left_eye': (left_x, 0.4),
        'right_eye': (right_x, 0.4),
    }


class TestFaceSignals(unittest.TestCase):
    """Test face count and gaze signals."""

    def setUp(self):
        self.classifier = ObservationClassifier(target_objects=['cell phone', 'book'],
                                                object_threshold=0.65, gaze_ratio=0.4)

    def test_no_face_is_absent(self):
        signals = self.classifier.classify_faces([])

        self.assertTrue(signals[SIGNAL_ABSENT].is_true)
        self.assertFalse(signals[SIGNAL_MULTIPLE_FACES].is_true)
        self.assertTrue(signals[SIGNAL_LOOKING_AWAY].is_unknown)

    def test_multiple_faces(self):
        signals = self.classifier.classify_faces([make_face(), make_face()])

        self.assertTrue(signals[SIGNAL_MULTIPLE_FACES].is_true)
        self.assertEqual(signals[SIGNAL_MULTIPLE_FACES].details['face_count'], 2)
        self.assertIs(signals[SIGNAL_ABSENT].value, False)
        # Gaze is only evaluated for a single face
        self.assertTrue(signals[SIGNAL_LOOKING_AWAY].is_unknown)

    def test_missing_provider_result_is_unknown(self):
        signals = self.classifier.classify(None, None)

        for name in (SIGNAL_ABSENT, SIGNAL_MULTIPLE_FACES, SIGNAL_LOOKING_AWAY,
                     'object:cell phone', 'object:book'):
            self.assertTrue(signals[name].is_unknown, name)

    def test_centered_face_is_not_looking_away(self):
        signal = self.classifier.classify_gaze(make_face(nose_x=0.5))

        self.assertIs(signal.value, False)
        self.assertEqual(signal.details['deviation_ratio'], 0.0)

    def test_turned_face_is_looking_away(self):
        # Nose 0.1 off the eye midpoint with an eye distance of 0.2
        signal = self.classifier.classify_gaze(make_face(nose_x=0.6))

        self.assertIs(signal.value, True)
        self.assertAlmostEqual(signal.details['deviation_ratio'], 0.5)

    def test_small_deviation_is_tolerated(self):
        signal = self.classifier.classify_gaze(make_face(nose_x=0.55))
        self.assertIs(signal.value, False)

    def test_gaze_is_scale_independent(self):
        near = self.classifier.classify_gaze(make_face(nose_x=0.6, left_x=0.4, right_x=0.6))
        far = self.classifier.classify_gaze(make_face(nose_x=0.525, left_x=0.475, right_x=0.525))
        self.assertEqual(near.value, far.value)

    def test_mapping_points_are_accepted(self):
        face = {
            'nose_tip': {'x': 0.6, 'y': 0.5},
            'left_eye': {'x': 0.4, 'y': 0.4},
            'right_eye': {'x': 0.6, 'y': 0.4},
        }
        self.assertIs(self.classifier.classify_gaze(face).value, True)

    def test_malformed_landmarks_are_unknown(self):
        self.assertTrue(self.classifier.classify_gaze({'nose_tip': (0.5, 0.5)}).is_unknown)
        self.assertTrue(self.classifier.classify_gaze(make_face(nose_x='left')).is_unknown)
        self.assertTrue(self.classifier.classify_gaze(make_face(left_x=0.5, right_x=0.5)).is_unknown)


class TestObjectSignals(unittest.TestCase):
    """Test per-label object signals."""

    def setUp(self):
        self.classifier = ObservationClassifier(target_objects=['cell phone', 'book'],
                                                object_threshold=0.65)

    def test_detected_object(self):
        signals = self.classifier.classify_objects([{'label': 'cell phone', 'confidence': 0.912}])

        phone = signals['object:cell phone']
        self.assertIs(phone.value, True)
        self.assertEqual(phone.details, {'object': 'cell phone', 'confidence': 0.91})
        self.assertIs(signals['object:book'].value, False)

    def test_confidence_threshold(self):
        below = self.classifier.classify_objects([{'label': 'book', 'confidence': 0.64}])
        at = self.classifier.classify_objects([{'label': 'book', 'confidence': 0.65}])

        self.assertIs(below['object:book'].value, False)
        self.assertIs(at['object:book'].value, True)

    def test_highest_confidence_wins(self):
        signals = self.classifier.classify_objects([
            {'label': 'book', 'confidence': 0.7},
            {'label': 'book', 'confidence': 0.95},
            {'label': 'book', 'confidence': 0.8},
        ])
        self.assertEqual(signals['object:book'].details['confidence'], 0.95)

    def test_non_target_labels_are_ignored(self):
        signals = self.classifier.classify_objects([{'label': 'person', 'confidence': 0.99}])

        self.assertNotIn('object:person', signals)
        self.assertIs(signals['object:cell phone'].value, False)

    def test_malformed_detections_are_skipped(self):
        signals = self.classifier.classify_objects([
            {'label': 'book'},
            {'confidence': 0.9},
            {'label': 'cell phone', 'confidence': 'high'},
            {'label': 'cell phone', 'confidence': 0.8},
        ])
        self.assertIs(signals['object:cell phone'].value, True)
        self.assertIs(signals['object:book'].value, False)

    def test_classification_is_deterministic(self):
        faces = [make_face(nose_x=0.6)]
        detections = [{'label': 'cell phone', 'confidence': 0.9}]

        self.assertEqual(self.classifier.classify(faces, detections),
                         self.classifier.classify(faces, detections))


if __name__ == "__main__":
    unittest.main()
