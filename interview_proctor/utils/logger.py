"""
Logging utilities for the interview integrity monitor.
"""

import logging
import sys
import time
import traceback
from datetime import datetime
from typing import Optional, Dict, Any
from pathlib import Path

from .config import config


class ProctorLogger:
    """Custom logger for the interview integrity monitor."""

    def __init__(self, name: str = "interview_proctor", log_file: Optional[str] = None):
        """Initialize the logger."""
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG)

        # Prevent duplicate handlers
        if self.logger.handlers:
            return

        # Create formatters
        detailed_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
        )
        simple_formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s'
        )

        # Console handler - errors only, alerts go to the file log
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.ERROR)
        console_handler.setFormatter(simple_formatter)
        self.logger.addHandler(console_handler)

        # File handler (if logging is enabled)
        if config.logging.enable_file_logging:
            if log_file is None:
                logs_dir = Path(config.logging.log_dir)
                logs_dir.mkdir(parents=True, exist_ok=True)

                timestamp = datetime.now().strftime("%Y%m%d")
                log_file = logs_dir / f"interview_proctor_{timestamp}.log"

            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(getattr(logging, config.logging.log_level.upper(), logging.INFO))
            file_handler.setFormatter(detailed_formatter)
            self.logger.addHandler(file_handler)

    def debug(self, message: str) -> None:
        """Log debug message."""
        self.logger.debug(message)

    def info(self, message: str) -> None:
        """Log info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log error message."""
        self.logger.error(message)

    def critical(self, message: str) -> None:
        """Log critical message."""
        self.logger.critical(message)

    def log_alert(self, session_id: str, alert_type: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Log an emitted integrity alert."""
        message = f"[ALERT] session={session_id} type={alert_type}"
        if details:
            message += " " + " ".join(f"{k}={v}" for k, v in details.items())
        self.warning(message)

    def log_sink_failure(self, session_id: str, alert_type: str, error: Exception) -> None:
        """Log an event that fired but could not be persisted."""
        self.error(f"Event store append failed - session={session_id} type={alert_type}: {error}")

    def log_tick_skipped(self, session_id: str, reason: str) -> None:
        """Log a monitoring tick that was dropped."""
        self.debug(f"Tick skipped - session={session_id} reason={reason}")

    def log_report(self, session_id: str, integrity_score: int, total_events: int) -> None:
        """Log a computed integrity report."""
        self.info(f"Report - session={session_id} score={integrity_score} events={total_events}")

    def log_session_state(self, session_id: str, state: str) -> None:
        """Log a monitoring lifecycle change."""
        self.info(f"Monitoring {state} - session={session_id}")

    def log_error_with_context(self, error: Exception, context: str) -> None:
        """Log error with additional context."""
        self.error(f"Error in {context}: {str(error)}")
        if error.__traceback__ is not None:
            self.debug(f"Traceback: {''.join(traceback.format_exception(type(error), error, error.__traceback__))}")

    def log_system_info(self) -> None:
        """Log system information."""
        import cv2

        self.info("=== System Information ===")
        self.info(f"Python Version: {sys.version}")
        self.info(f"OpenCV Version: {cv2.__version__}")

        try:
            import mediapipe as mp
            self.info(f"MediaPipe Version: {mp.__version__}")
        except Exception:
            self.info("MediaPipe: not available")

        # Log configuration
        self.info("=== Configuration ===")
        self.info(f"Camera: {config.camera.width}x{config.camera.height} @ {config.camera.fps}fps")
        self.info(f"Tick Interval: {config.monitoring.tick_interval_ms}ms")
        self.info(f"Object Threshold: {config.detection.object_confidence_threshold}")
        self.info(f"Event Store: {config.storage.backend} ({config.storage.events_dir})")


# Global logger instance
logger = ProctorLogger()


def get_logger(name: str = "interview_proctor") -> ProctorLogger:
    """Get a logger instance."""
    return ProctorLogger(name)


def log_function_call(func):
    """Decorator to log function calls."""
    def wrapper(*args, **kwargs):
        logger.debug(f"Calling {func.__name__}")
        try:
            result = func(*args, **kwargs)
            logger.debug(f"Completed {func.__name__}")
            return result
        except Exception as e:
            logger.log_error_with_context(e, func.__name__)
            raise
    return wrapper


def log_performance_metrics(func):
    """Decorator to log performance metrics."""
    def wrapper(*args, **kwargs):
        start_time = time.time()
        try:
            result = func(*args, **kwargs)
            processing_time = (time.time() - start_time) * 1000  # Convert to milliseconds
            logger.debug(f"{func.__name__} took {processing_time:.2f}ms")
            return result
        except Exception as e:
            logger.log_error_with_context(e, func.__name__)
            raise
    return wrapper
