"""
Alert Types and Events

This module defines the fixed alert type enumeration, the per-type sustain
and cooldown timings, the immutable Event record written to the event store,
and the process-wide deduction table used for integrity scoring.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Dict, Any, List, Mapping, Optional, Tuple

from ..utils.config import config, AlertConfig

# Alert types
CANDIDATE_ABSENT = "CANDIDATE_ABSENT"
LOOKING_AWAY = "LOOKING_AWAY"
MULTIPLE_FACES = "MULTIPLE_FACES"
OBJECT_ALERT_PREFIX = "OBJECT_DETECTED_"

# Condition signal names
SIGNAL_ABSENT = "absent"
SIGNAL_LOOKING_AWAY = "looking_away"
SIGNAL_MULTIPLE_FACES = "multiple_faces"
OBJECT_SIGNAL_PREFIX = "object:"

FOCUS_LOST_TYPES = frozenset({LOOKING_AWAY, CANDIDATE_ABSENT})

# Points deducted from the integrity score per recorded event
DEDUCTION_POINTS: Mapping[str, int] = MappingProxyType({
    CANDIDATE_ABSENT: 15,
    MULTIPLE_FACES: 25,
    "OBJECT_DETECTED_CELL_PHONE": 20,
    "OBJECT_DETECTED_BOOK": 15,
    "OBJECT_DETECTED_LAPTOP": 10,
    "OBJECT_DETECTED_MOUSE": 5,
    "OBJECT_DETECTED_KEYBOARD": 5,
    "OBJECT_DETECTED_REMOTE": 10,
    LOOKING_AWAY: 8,
})


def object_alert_type(label: str) -> str:
    """Alert type for a target object label, e.g. 'cell phone' -> OBJECT_DETECTED_CELL_PHONE."""
    return OBJECT_ALERT_PREFIX + label.strip().upper().replace(' ', '_')


def object_signal_name(label: str) -> str:
    return OBJECT_SIGNAL_PREFIX + label


def is_object_alert(alert_type: str) -> bool:
    return alert_type.startswith(OBJECT_ALERT_PREFIX)


@dataclass(frozen=True)
class AlertSpec:
    """Timing rules for one alert type."""
    alert_type: str
    signal: str
    sustain_sec: float
    cooldown_sec: float
    label: Optional[str] = None


def build_alert_specs(alert_config: Optional[AlertConfig] = None,
                      target_objects: Optional[List[str]] = None) -> Tuple[AlertSpec, ...]:
    """
    Build the fixed alert type enumeration.

    Args:
        alert_config: Sustain and cooldown timings (defaults to global config)
        target_objects: Object labels that get their own alert type

    Returns:
        Tuple of AlertSpec in evaluation order
    """
    timings = alert_config or config.alerts
    labels = target_objects if target_objects is not None else config.detection.target_objects

    specs = [
        AlertSpec(CANDIDATE_ABSENT, SIGNAL_ABSENT,
                  timings.absent_sustain_sec, timings.absent_cooldown_sec),
        AlertSpec(MULTIPLE_FACES, SIGNAL_MULTIPLE_FACES,
                  0.0, timings.default_cooldown_sec),
        AlertSpec(LOOKING_AWAY, SIGNAL_LOOKING_AWAY,
                  timings.looking_away_sustain_sec, timings.default_cooldown_sec),
    ]
    for label in labels:
        specs.append(AlertSpec(object_alert_type(label), object_signal_name(label),
                               0.0, timings.default_cooldown_sec, label=label))
    return tuple(specs)


def alert_message(alert_type: str, details: Optional[Mapping[str, Any]] = None) -> str:
    """Human readable message for an alert."""
    details = details or {}
    if alert_type == CANDIDATE_ABSENT:
        return "Candidate is not visible."
    if alert_type == MULTIPLE_FACES:
        return f"{details.get('face_count', 'Multiple')} faces detected in the frame."
    if alert_type == LOOKING_AWAY:
        return "Candidate is looking away from the screen."
    if is_object_alert(alert_type):
        label = details.get('object') or alert_type[len(OBJECT_ALERT_PREFIX):].replace('_', ' ').lower()
        return f"Suspicious object detected: {label}."
    return f"Integrity alert: {alert_type}."


def _utc(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string, epoch seconds, or datetime into an aware UTC datetime."""
    if isinstance(value, datetime):
        return _utc(value)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        return _utc(datetime.fromisoformat(text))
    raise ValueError(f"Unsupported timestamp: {value!r}")


@dataclass(frozen=True)
class Event:
    """Immutable record of one emitted alert."""
    session_id: str
    alert_type: str
    timestamp: datetime
    details: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'timestamp', parse_timestamp(self.timestamp))
        object.__setattr__(self, 'details', MappingProxyType(dict(self.details or {})))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'session_id': self.session_id,
            'alert_type': self.alert_type,
            'timestamp': self.timestamp.isoformat(),
            'details': dict(self.details),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Event":
        return cls(
            session_id=data['session_id'],
            alert_type=data['alert_type'],
            timestamp=parse_timestamp(data['timestamp']),
            details=data.get('details') or {},
        )
