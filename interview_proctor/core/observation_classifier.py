"""
Observation Classifier Module

Turns one frame's raw provider output (face landmarks and object detections)
into boolean condition signals. The classifier is stateless: the same inputs
always produce the same signals.

A signal whose inputs are malformed or not applicable is reported as unknown
(value None) rather than as a violation.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Any, Mapping, Optional, Sequence

from .alerts import (
    SIGNAL_ABSENT,
    SIGNAL_LOOKING_AWAY,
    SIGNAL_MULTIPLE_FACES,
    object_signal_name,
)
from ..utils.config import config
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Landmark names expected on every face
NOSE_TIP = 'nose_tip'
LEFT_EYE = 'left_eye'
RIGHT_EYE = 'right_eye'


@dataclass(frozen=True)
class ConditionSignal:
    """Value of one named predicate at a single instant."""
    name: str
    value: Optional[bool]
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_true(self) -> bool:
        return self.value is True

    @property
    def is_unknown(self) -> bool:
        return self.value is None


def _point_x(face: Mapping[str, Any], name: str) -> Optional[float]:
    """Horizontal coordinate of a named landmark, or None when missing or malformed."""
    try:
        point = face[name]
    except (KeyError, TypeError):
        return None

    if isinstance(point, Mapping):
        x = point.get('x')
    else:
        try:
            x = point[0]
        except (IndexError, KeyError, TypeError):
            return None

    try:
        x = float(x)
    except (TypeError, ValueError):
        return None
    return x if math.isfinite(x) else None


class ObservationClassifier:
    """Computes condition signals from face-landmark and object-detection results."""

    def __init__(self, target_objects: Optional[Sequence[str]] = None,
                 object_threshold: Optional[float] = None,
                 gaze_ratio: Optional[float] = None):
        """
        Initialize the classifier.

        Args:
            target_objects: Object labels that raise an object signal
            object_threshold: Minimum detection confidence for object signals
            gaze_ratio: Nose offset / eye distance ratio above which the
                candidate is looking away
        """
        self.target_objects = list(target_objects if target_objects is not None
                                   else config.detection.target_objects)
        self.object_threshold = (object_threshold if object_threshold is not None
                                 else config.detection.object_confidence_threshold)
        self.gaze_ratio = gaze_ratio if gaze_ratio is not None else config.detection.gaze_deviation_ratio

    def classify(self, faces: Optional[Sequence[Mapping[str, Any]]],
                 detections: Optional[Sequence[Mapping[str, Any]]]) -> Dict[str, ConditionSignal]:
        """
        Classify one frame.

        Args:
            faces: Faces from the landmark provider, or None when the
                provider produced no result for this frame
            detections: Object detections, or None when unavailable

        Returns:
            Dictionary of signal name -> ConditionSignal
        """
        signals: Dict[str, ConditionSignal] = {}
        signals.update(self.classify_faces(faces))
        signals.update(self.classify_objects(detections))
        return signals

    def classify_faces(self, faces: Optional[Sequence[Mapping[str, Any]]]) -> Dict[str, ConditionSignal]:
        """Face count and gaze signals."""
        if faces is None:
            return {
                SIGNAL_ABSENT: ConditionSignal(SIGNAL_ABSENT, None),
                SIGNAL_MULTIPLE_FACES: ConditionSignal(SIGNAL_MULTIPLE_FACES, None),
                SIGNAL_LOOKING_AWAY: ConditionSignal(SIGNAL_LOOKING_AWAY, None),
            }

        face_count = len(faces)
        signals = {
            SIGNAL_ABSENT: ConditionSignal(SIGNAL_ABSENT, face_count == 0),
            SIGNAL_MULTIPLE_FACES: ConditionSignal(
                SIGNAL_MULTIPLE_FACES, face_count > 1, {'face_count': face_count}
            ),
        }

        if face_count == 1:
            signals[SIGNAL_LOOKING_AWAY] = self.classify_gaze(faces[0])
        else:
            signals[SIGNAL_LOOKING_AWAY] = ConditionSignal(SIGNAL_LOOKING_AWAY, None)

        return signals

    def classify_gaze(self, face: Mapping[str, Any]) -> ConditionSignal:
        """
        Horizontal gaze deviation for a single face.

        The nose offset from the eye midpoint is normalized by the distance
        between the eyes, so the test does not depend on face size.
        """
        nose_x = _point_x(face, NOSE_TIP)
        left_x = _point_x(face, LEFT_EYE)
        right_x = _point_x(face, RIGHT_EYE)

        if nose_x is None or left_x is None or right_x is None:
            logger.debug("Face payload missing gaze landmarks")
            return ConditionSignal(SIGNAL_LOOKING_AWAY, None)

        eye_distance = abs(left_x - right_x)
        if eye_distance == 0:
            return ConditionSignal(SIGNAL_LOOKING_AWAY, None)

        eye_midpoint_x = (left_x + right_x) / 2.0
        offset = abs(nose_x - eye_midpoint_x)
        deviation = offset / eye_distance

        return ConditionSignal(
            SIGNAL_LOOKING_AWAY,
            offset > self.gaze_ratio * eye_distance,
            {'deviation_ratio': round(deviation, 3)},
        )

    def classify_objects(self, detections: Optional[Sequence[Mapping[str, Any]]]) -> Dict[str, ConditionSignal]:
        """One signal per target object label."""
        if detections is None:
            return {
                object_signal_name(label): ConditionSignal(object_signal_name(label), None)
                for label in self.target_objects
            }

        best: Dict[str, float] = {}
        for detection in detections:
            try:
                label = str(detection['label']).strip().lower()
                confidence = float(detection['confidence'])
            except (KeyError, TypeError, ValueError):
                logger.debug(f"Skipping malformed detection: {detection!r}")
                continue

            if not math.isfinite(confidence):
                continue
            if confidence >= self.object_threshold and confidence > best.get(label, -1.0):
                best[label] = confidence

        signals = {}
        for label in self.target_objects:
            name = object_signal_name(label)
            key = label.lower()
            if key in best:
                signals[name] = ConditionSignal(
                    name, True, {'object': label, 'confidence': round(best[key], 2)}
                )
            else:
                signals[name] = ConditionSignal(name, False)
        return signals
