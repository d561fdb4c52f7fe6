"""
Object Detection Provider

Detects objects in a frame with a YOLO model (COCO classes) and returns them
as plain {label, confidence, box} dictionaries. The model is loaded lazily on
first use so that importing this module stays cheap.
"""

import threading
from typing import Any, Dict, List, Optional

import numpy as np

from ..utils.config import config
from ..utils.logger import get_logger
from .exceptions import ProviderError

logger = get_logger(__name__)


class ObjectDetectionProvider:
    """YOLO-backed object detector."""

    def __init__(self, weights: Optional[str] = None, min_confidence: float = 0.25):
        """
        Initialize the detector.

        Args:
            weights: YOLO weights file (defaults to config)
            min_confidence: Confidence below which detections are not returned
        """
        self.weights = weights or config.detection.yolo_weights
        self.min_confidence = min_confidence
        self.model = None
        self._load_attempted = False
        self._load_failed = False
        self._loading = False
        self._lock = threading.Lock()
        self._predict_lock = threading.Lock()

    def load(self) -> bool:
        """Load the model once. Returns True when it is available."""
        with self._lock:
            if self.model is not None or self._load_attempted:
                return self.model is not None
            self._load_attempted = True

        try:
            from ultralytics import YOLO
            model = YOLO(self.weights)
            with self._lock:
                self.model = model
            logger.info(f"YOLO model loaded from {self.weights}")
            return True
        except Exception as e:
            logger.error(f"Failed to load YOLO model: {e}")
            with self._lock:
                self._load_failed = True
            return False

    def load_async(self) -> None:
        """Load the model in the background; detection is unavailable until it finishes."""
        with self._lock:
            if self._loading or self._load_attempted:
                return
            self._loading = True
        threading.Thread(target=self.load, daemon=True).start()

    def is_ready(self) -> bool:
        return self.model is not None

    def has_failed(self) -> bool:
        """True once loading has failed; the detector will not become ready."""
        return self._load_failed

    def detect(self, frame: np.ndarray) -> List[Dict[str, Any]]:
        """
        Detect objects in a BGR frame.

        Returns:
            List of {'label', 'confidence', 'box': (x1, y1, x2, y2)}
        """
        if not self.is_ready():
            raise ProviderError("Object detection model is not loaded")

        if frame is None or frame.size == 0:
            return []

        try:
            with self._predict_lock:
                results = self.model.predict(frame, conf=self.min_confidence, verbose=False)
        except Exception as e:
            raise ProviderError(f"YOLO inference failed: {e}") from e

        detections = []
        for result in results:
            if result.boxes is None:
                continue
            for box in result.boxes:
                cls_id = int(box.cls[0])
                detections.append({
                    'label': str(self.model.names.get(cls_id, f"class_{cls_id}")).lower(),
                    'confidence': float(box.conf[0]),
                    'box': tuple(float(v) for v in box.xyxy[0].tolist()),
                })
        return detections
