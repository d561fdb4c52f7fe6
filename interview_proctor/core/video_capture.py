"""
Frame sources for the monitoring loop.

The loop only ever asks for the most recent frame; older frames are dropped.
Two sources are provided:

- CameraFrameSource: reads a local camera on a background thread
- PushFrameSource: holds the latest frame pushed by a client (e.g. over HTTP)
"""

import base64
import io
import threading
import time
from queue import Queue, Empty, Full
from typing import Any, Callable, Dict, Optional

import cv2
import numpy as np
from PIL import Image

from ..utils.config import config
from ..utils.logger import get_logger, log_performance_metrics

logger = get_logger(__name__)


class FrameSource:
    """Latest-frame contract consumed by the monitoring loop."""

    def latest_frame(self) -> Optional[np.ndarray]:
        raise NotImplementedError

    def close(self) -> None:
        pass


class PushFrameSource(FrameSource):
    """
    Keeps only the most recent frame handed to it.

    A frame older than max_age seconds is no longer reported, so a client
    that stops pushing is not judged on its last picture.
    """

    def __init__(self, max_age: Optional[float] = None, clock: Callable[[], float] = time.time):
        self.max_age = config.frame_max_age if max_age is None else max_age
        self.clock = clock
        self._frame: Optional[np.ndarray] = None
        self._frame_time: Optional[float] = None
        self._lock = threading.Lock()
        self.frames_received = 0

    def push(self, frame: np.ndarray) -> None:
        with self._lock:
            self._frame = frame
            self._frame_time = self.clock()
            self.frames_received += 1

    def latest_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            if self._frame is None:
                return None
            if self.max_age and self.clock() - self._frame_time > self.max_age:
                return None
            return self._frame

    @property
    def last_frame_time(self) -> Optional[float]:
        return self._frame_time

    def close(self) -> None:
        with self._lock:
            self._frame = None


class CameraFrameSource(FrameSource):
    """Local camera capture on a background thread."""

    def __init__(self, device_id: Optional[int] = None):
        """Initialize video capture with specified device."""
        self.device_id = config.camera.device_id if device_id is None else device_id
        self.cap = None
        self.is_running = False
        self.frame_queue: Queue = Queue(maxsize=1)
        self.capture_thread: Optional[threading.Thread] = None

        # Performance tracking
        self.fps_counter = 0
        self.last_fps_time = time.time()
        self.current_fps = 0.0

        self._initialize_camera()

        logger.info(f"Camera frame source initialized - Device: {self.device_id}")

    def _initialize_camera(self) -> None:
        """Open the camera with the configured settings."""
        try:
            self.cap = cv2.VideoCapture(self.device_id)

            if not self.cap.isOpened():
                raise RuntimeError(f"Could not open camera device {self.device_id}")

            self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, config.camera.width)
            self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, config.camera.height)
            self.cap.set(cv2.CAP_PROP_FPS, config.camera.fps)
            self.cap.set(cv2.CAP_PROP_BUFFERSIZE, config.camera.buffer_size)

            logger.info(f"Camera initialized: {config.camera.width}x{config.camera.height} @ {config.camera.fps}fps")

        except Exception as e:
            logger.log_error_with_context(e, "camera_initialization")
            raise

    @log_performance_metrics
    def read_frame(self) -> Optional[np.ndarray]:
        """Read a frame from the camera."""
        if not self.cap or not self.cap.isOpened():
            return None

        ret, frame = self.cap.read()
        if not ret:
            logger.warning("Failed to read frame from camera")
            return None

        self._update_fps()
        return frame

    def _update_fps(self) -> None:
        """Update FPS calculation."""
        self.fps_counter += 1
        current_time = time.time()

        if current_time - self.last_fps_time >= 1.0:
            self.current_fps = self.fps_counter / (current_time - self.last_fps_time)
            self.fps_counter = 0
            self.last_fps_time = current_time

    def start(self) -> None:
        """Start background capture thread."""
        if self.is_running:
            return

        self.is_running = True
        self.capture_thread = threading.Thread(target=self._capture_loop, daemon=True)
        self.capture_thread.start()
        logger.info("Started camera capture thread")

    def stop(self) -> None:
        """Stop background capture thread."""
        self.is_running = False
        if self.capture_thread:
            self.capture_thread.join(timeout=config.monitoring.stop_join_timeout_sec)
            self.capture_thread = None
            logger.info("Stopped camera capture thread")

    def _capture_loop(self) -> None:
        """Keep the queue filled with the newest frame."""
        while self.is_running:
            try:
                frame = self.read_frame()

                if frame is not None:
                    # Replace the stale frame, if any
                    try:
                        self.frame_queue.get_nowait()
                    except Empty:
                        pass
                    try:
                        self.frame_queue.put_nowait(frame)
                    except Full:
                        pass

                time.sleep(1.0 / config.camera.fps)

            except Exception as e:
                logger.log_error_with_context(e, "capture_loop")
                time.sleep(0.1)  # Brief pause on error

    def latest_frame(self) -> Optional[np.ndarray]:
        """Get the newest captured frame, or None when none is waiting."""
        if not self.is_running:
            self.start()
        try:
            return self.frame_queue.get_nowait()
        except Empty:
            return None

    def get_performance_metrics(self) -> Dict[str, Any]:
        return {
            'fps': self.current_fps,
            'queue_size': self.frame_queue.qsize(),
            'is_running': self.is_running
        }

    def close(self) -> None:
        """Release camera resources."""
        self.stop()

        if self.cap:
            self.cap.release()
            self.cap = None

        logger.info("Camera resources released")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def decode_base64_frame(base64_string: str) -> np.ndarray:
    """
    Convert a base64 encoded image (optionally a data URL) to a BGR frame.

    Raises:
        ValueError: If the payload is not a decodable image
    """
    if ',' in base64_string:
        base64_string = base64_string.split(',', 1)[1]

    try:
        img_data = base64.b64decode(base64_string, validate=False)
        img = Image.open(io.BytesIO(img_data)).convert('RGB')
    except Exception as e:
        raise ValueError(f"Invalid image data: {e}") from e

    return cv2.cvtColor(np.array(img), cv2.COLOR_RGB2BGR)
