"""
Face Landmark Provider

This module wraps MediaPipe Face Mesh and reduces each detected face to the
named, normalized landmark points the observation classifier needs:

- nose_tip  (mesh index 1)
- left_eye  (mesh index 33)
- right_eye (mesh index 263)
"""

import os
import threading
import warnings
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np

# Suppress TensorFlow warnings
os.environ['TF_CPP_MIN_LOG_LEVEL'] = '3'
warnings.filterwarnings('ignore', category=UserWarning)

# Import MediaPipe (may show protobuf warning but should still work)
try:
    import mediapipe as mp
    MP_AVAILABLE = True
except Exception:
    MP_AVAILABLE = False
    mp = None

from ..utils.config import config
from ..utils.logger import get_logger
from .exceptions import ProviderError

logger = get_logger(__name__)

# MediaPipe face mesh indices
LANDMARK_INDICES = {
    'nose_tip': 1,
    'left_eye': 33,
    'right_eye': 263,
}

Face = Dict[str, Tuple[float, float]]


class FaceLandmarkProvider:
    """Detects faces and returns named normalized landmark points."""

    def __init__(self, max_faces: Optional[int] = None,
                 min_detection_confidence: Optional[float] = None,
                 min_tracking_confidence: Optional[float] = None):
        """
        Initialize the face mesh.

        Args:
            max_faces: Maximum number of faces to report
            min_detection_confidence: Face detection confidence threshold
            min_tracking_confidence: Landmark tracking confidence threshold
        """
        self.max_faces = max_faces or config.detection.max_faces
        self.face_mesh = None
        self.failed = False
        self._lock = threading.Lock()

        if not MP_AVAILABLE:
            self.failed = True
            logger.warning("MediaPipe not available, face landmark provider disabled")
            return

        try:
            self.face_mesh = mp.solutions.face_mesh.FaceMesh(
                static_image_mode=False,
                max_num_faces=self.max_faces,
                refine_landmarks=True,
                min_detection_confidence=(min_detection_confidence
                                          if min_detection_confidence is not None
                                          else config.detection.min_detection_confidence),
                min_tracking_confidence=(min_tracking_confidence
                                         if min_tracking_confidence is not None
                                         else config.detection.min_tracking_confidence),
            )
            logger.info(f"Face landmark provider initialized (max faces: {self.max_faces})")
        except Exception as e:
            logger.log_error_with_context(e, "face_mesh_initialization")
            self.face_mesh = None
            self.failed = True

    def is_ready(self) -> bool:
        return self.face_mesh is not None

    def has_failed(self) -> bool:
        return self.failed

    def detect(self, frame: np.ndarray) -> List[Face]:
        """
        Detect faces in a BGR frame.

        Args:
            frame: Input frame (BGR format)

        Returns:
            One dictionary of named (x, y) points per face
        """
        with self._lock:
            # FaceMesh tracks across frames, so one instance must see one stream at a time
            if self.face_mesh is None:
                raise ProviderError("Face landmark provider is not initialized")
            try:
                rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
                results = self.face_mesh.process(rgb_frame)
            except Exception as e:
                raise ProviderError(f"Face mesh inference failed: {e}") from e

        if not results.multi_face_landmarks:
            return []

        return [self._extract_points(face) for face in results.multi_face_landmarks]

    @staticmethod
    def _extract_points(face_landmarks: Any) -> Face:
        """Pick the named points out of a full face mesh."""
        points = {}
        for name, idx in LANDMARK_INDICES.items():
            if idx < len(face_landmarks.landmark):
                landmark = face_landmarks.landmark[idx]
                points[name] = (float(landmark.x), float(landmark.y))
        return points

    def close(self) -> None:
        with self._lock:
            if self.face_mesh is not None:
                self.face_mesh.close()
                self.face_mesh = None
