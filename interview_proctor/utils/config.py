"""
Configuration management for the interview integrity monitor.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
import json


@dataclass
class CameraConfig:
    """Camera configuration settings."""
    device_id: int = 0
    width: int = 640
    height: int = 480
    fps: int = 30
    buffer_size: int = 1


@dataclass
class MonitoringConfig:
    """Monitoring loop cadence settings."""
    tick_interval_ms: int = 500
    provider_timeout_ms: int = 400
    stop_join_timeout_sec: float = 2.0
    frame_max_age_ms: int = 1000


@dataclass
class DetectionConfig:
    """Observation classifier and signal provider settings."""
    object_confidence_threshold: float = 0.65
    gaze_deviation_ratio: float = 0.4
    target_objects: List[str] = field(default_factory=lambda: [
        'cell phone', 'book', 'laptop', 'mouse', 'keyboard', 'remote'
    ])
    max_faces: int = 5
    min_detection_confidence: float = 0.5
    min_tracking_confidence: float = 0.5
    yolo_weights: str = "yolov8n.pt"


@dataclass
class AlertConfig:
    """Sustain and cooldown durations (seconds) per alert type."""
    absent_sustain_sec: float = 10.0
    looking_away_sustain_sec: float = 5.0
    default_cooldown_sec: float = 15.0
    absent_cooldown_sec: float = 20.0


@dataclass
class ScoringConfig:
    """Integrity scoring and session statistics settings."""
    default_deduction: int = 10
    activity_window_sec: float = 30.0
    recent_events_limit: int = 10


@dataclass
class StorageConfig:
    """Event store settings."""
    backend: str = "jsonl"    # jsonl, memory
    events_dir: str = "data/events"


@dataclass
class LoggingConfig:
    """Logging settings."""
    enable_file_logging: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"


class Config:
    """Main configuration class for the interview integrity monitor."""

    SECTIONS = ['camera', 'monitoring', 'detection', 'alerts', 'scoring', 'storage', 'logging']

    def __init__(self, config_file: Optional[str] = None):
        """Initialize configuration with optional config file."""
        self.camera = CameraConfig()
        self.monitoring = MonitoringConfig()
        self.detection = DetectionConfig()
        self.alerts = AlertConfig()
        self.scoring = ScoringConfig()
        self.storage = StorageConfig()
        self.logging = LoggingConfig()

        if config_file and os.path.exists(config_file):
            self.load_from_file(config_file)

    def load_from_file(self, config_file: str) -> None:
        """Load configuration from JSON file."""
        try:
            with open(config_file, 'r') as f:
                config_data = json.load(f)

            # Update each config section
            for section_name, section_data in config_data.items():
                if section_name in self.SECTIONS:
                    section = getattr(self, section_name)
                    for key, value in section_data.items():
                        if hasattr(section, key):
                            setattr(section, key, value)
        except (OSError, ValueError) as e:
            print(f"Warning: Could not load config file {config_file}: {e}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert every config section to a plain dictionary."""
        config_data = {}
        for section_name in self.SECTIONS:
            section = getattr(self, section_name)
            config_data[section_name] = {
                key: getattr(section, key)
                for key in section.__dataclass_fields__.keys()
            }
        return config_data

    def save_to_file(self, config_file: str) -> None:
        """Save current configuration to JSON file."""
        try:
            directory = os.path.dirname(config_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(config_file, 'w') as f:
                json.dump(self.to_dict(), f, indent=2)
        except OSError as e:
            print(f"Warning: Could not save config file {config_file}: {e}")

    def validate_config(self) -> bool:
        """Validate configuration settings."""
        errors = []

        # Validate camera settings
        if self.camera.width <= 0 or self.camera.height <= 0:
            errors.append("Camera dimensions must be positive")

        if self.camera.fps <= 0:
            errors.append("Camera FPS must be positive")

        # Validate monitoring cadence
        if self.monitoring.tick_interval_ms <= 0:
            errors.append("Tick interval must be positive")

        if self.monitoring.provider_timeout_ms <= 0:
            errors.append("Provider timeout must be positive")

        if self.monitoring.frame_max_age_ms <= 0:
            errors.append("Frame max age must be positive")

        # Validate detection thresholds
        if not 0 <= self.detection.object_confidence_threshold <= 1:
            errors.append("Object confidence threshold must be between 0 and 1")

        if self.detection.gaze_deviation_ratio <= 0:
            errors.append("Gaze deviation ratio must be positive")

        # Validate alert timings
        for name in ('absent_sustain_sec', 'looking_away_sustain_sec',
                     'default_cooldown_sec', 'absent_cooldown_sec'):
            if getattr(self.alerts, name) < 0:
                errors.append(f"Alert timing {name} must not be negative")

        if self.scoring.default_deduction < 0:
            errors.append("Default deduction must not be negative")

        if self.storage.backend not in ('jsonl', 'memory'):
            errors.append(f"Unknown storage backend: {self.storage.backend}")

        if errors:
            print("Configuration validation errors:")
            for error in errors:
                print(f"  - {error}")
            return False

        return True

    @property
    def tick_interval(self) -> float:
        """Tick interval in seconds."""
        return self.monitoring.tick_interval_ms / 1000.0

    @property
    def provider_timeout(self) -> float:
        """Provider call timeout in seconds."""
        return self.monitoring.provider_timeout_ms / 1000.0

    @property
    def frame_max_age(self) -> float:
        """Age in seconds after which a pushed frame no longer counts as live."""
        return self.monitoring.frame_max_age_ms / 1000.0


# Global configuration instance
config = Config()

# Default configuration file path
DEFAULT_CONFIG_FILE = os.environ.get("PROCTOR_CONFIG", "data/configs/default_config.json")

# Load default configuration if available
if os.path.exists(DEFAULT_CONFIG_FILE):
    config.load_from_file(DEFAULT_CONFIG_FILE)
