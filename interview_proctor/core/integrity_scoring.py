"""
Integrity Scoring Module

Aggregates a session's ordered alert events into an integrity report:

    integrity_score = 100 - sum(deduction per event), floored at 0

The aggregation is a pure function of the event sequence, so a report can be
recomputed any number of times and always comes out identical.
"""

import json
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, List, Mapping, Optional, Sequence

from .alerts import DEDUCTION_POINTS, FOCUS_LOST_TYPES, Event, is_object_alert, parse_timestamp
from .exceptions import SessionNotFoundError
from ..utils.config import config
from ..utils.identity import placeholder_name
from ..utils.logger import get_logger

logger = get_logger(__name__)

MAX_SCORE = 100


def format_duration(start: datetime, end: datetime) -> str:
    """Elapsed time between two timestamps as MM:SS (whole seconds)."""
    total_seconds = max(0, math.floor((end - start).total_seconds()))
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


def events_per_minute(count: int, start: datetime, end: datetime) -> float:
    """
    Event rate over the session, rounded to 2 decimals.

    A session whose first and last events share a timestamp has no measurable
    duration; its rate is reported as 0.0.
    """
    elapsed_minutes = (end - start).total_seconds() / 60.0
    if elapsed_minutes <= 0:
        return 0.0
    return round(count / elapsed_minutes, 2)


@dataclass
class Report:
    """Integrity report for one session. Derived on request, never stored."""
    session_id: str
    candidate_name: str
    duration: str
    integrity_score: int
    focus_lost_count: int
    events: List[Dict[str, Any]] = field(default_factory=list)
    session_stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def events_per_minute(self) -> float:
        return self.session_stats.get('events_per_minute', 0.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'session_id': self.session_id,
            'candidate_name': self.candidate_name,
            'duration': self.duration,
            'integrity_score': self.integrity_score,
            'focus_lost_count': self.focus_lost_count,
            'events_per_minute': self.events_per_minute,
            'events': [dict(e) for e in self.events],
            'session_stats': dict(self.session_stats),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)


class IntegrityScorer:
    """Computes integrity scores and reports from alert events."""

    def __init__(self, deductions: Optional[Mapping[str, int]] = None,
                 default_deduction: Optional[int] = None,
                 unknown_object_deduction: Optional[int] = None):
        """
        Initialize the scorer.

        Args:
            deductions: Alert type -> points table (defaults to DEDUCTION_POINTS)
            default_deduction: Points for alert types missing from the table
            unknown_object_deduction: Points for unrecognized OBJECT_DETECTED_*
                types (defaults to default_deduction)
        """
        self.deductions = dict(DEDUCTION_POINTS if deductions is None else deductions)
        self.default_deduction = (config.scoring.default_deduction
                                  if default_deduction is None else default_deduction)
        self.unknown_object_deduction = (self.default_deduction
                                         if unknown_object_deduction is None else unknown_object_deduction)

        if any(points < 0 for points in self.deductions.values()) or \
                self.default_deduction < 0 or self.unknown_object_deduction < 0:
            raise ValueError("Deductions must not be negative")

    def deduction_for(self, alert_type: str) -> int:
        """Points deducted for one event of the given type."""
        points = self.deductions.get(alert_type)
        if points is None:
            points = self.deductions.get(alert_type.upper())
        if points is not None:
            return points
        if is_object_alert(alert_type.upper()):
            return self.unknown_object_deduction
        return self.default_deduction

    def compute_score(self, events: Sequence[Event]) -> int:
        """Integrity score in [0, 100] for a sequence of events."""
        score = MAX_SCORE
        for event in events:
            score = max(0, score - self.deduction_for(event.alert_type))
        return score

    def compute_report(self, session_id: str, events: Sequence[Event],
                       candidate_name: Optional[str] = None) -> Report:
        """
        Build the integrity report for a session.

        Args:
            session_id: Session being reported
            events: The session's events, ascending by timestamp
            candidate_name: Display name (placeholder derived from the id if None)

        Returns:
            Report

        Raises:
            SessionNotFoundError: If there are no events for the session
        """
        if not events:
            raise SessionNotFoundError(session_id)

        ordered = sorted(events, key=lambda e: e.timestamp)
        start_time = ordered[0].timestamp
        end_time = ordered[-1].timestamp

        focus_lost_count = sum(1 for e in ordered if e.alert_type in FOCUS_LOST_TYPES)

        report = Report(
            session_id=session_id,
            candidate_name=candidate_name or placeholder_name(session_id),
            duration=format_duration(start_time, end_time),
            integrity_score=self.compute_score(ordered),
            focus_lost_count=focus_lost_count,
            events=[
                {
                    'timestamp': e.timestamp.isoformat(),
                    'alert_type': e.alert_type,
                    'details': dict(e.details),
                }
                for e in ordered
            ],
            session_stats={
                'total_events': len(ordered),
                'start_time': start_time.isoformat(),
                'end_time': end_time.isoformat(),
                'events_per_minute': events_per_minute(len(ordered), start_time, end_time),
            },
        )

        logger.log_report(session_id, report.integrity_score, len(ordered))
        return report

    def compute_breakdown(self, events: Sequence[Event]) -> Dict[str, Any]:
        """Per alert type event counts and points deducted."""
        breakdown: Dict[str, Dict[str, int]] = {}
        for event in events:
            entry = breakdown.setdefault(event.alert_type, {'count': 0, 'points': 0})
            entry['count'] += 1
            entry['points'] += self.deduction_for(event.alert_type)

        total = sum(entry['points'] for entry in breakdown.values())
        return {
            'integrity_score': max(0, MAX_SCORE - total),
            'total_deduction': total,
            'by_type': breakdown,
        }

    @staticmethod
    def get_grade(score: int) -> str:
        """
        Convert score to letter grade.

        Returns:
            'A' (excellent), 'B' (good), 'C' (warning), 'D' (concerning), 'F' (failed)
        """
        if score >= 90:
            return "A"
        elif score >= 80:
            return "B"
        elif score >= 70:
            return "C"
        elif score >= 60:
            return "D"
        else:
            return "F"


def compute_session_stats(events: Sequence[Event], now: datetime,
                          activity_window_sec: Optional[float] = None,
                          recent_limit: Optional[int] = None) -> Dict[str, Any]:
    """
    Live statistics for a session that may still be in progress.

    A session counts as active while its newest event is younger than the
    activity window.
    """
    window = config.scoring.activity_window_sec if activity_window_sec is None else activity_window_sec
    limit = config.scoring.recent_events_limit if recent_limit is None else recent_limit

    if not events:
        return {
            'is_active': False,
            'total_events': 0,
            'recent_events': [],
            'last_activity': None,
        }

    newest_first = sorted(events, key=lambda e: e.timestamp, reverse=True)
    last_event = newest_first[0].timestamp
    first_event = newest_first[-1].timestamp
    now = parse_timestamp(now)

    return {
        'is_active': (now - last_event).total_seconds() < window,
        'total_events': len(newest_first),
        'recent_events': [e.to_dict() for e in newest_first[:limit]],
        'last_activity': last_event.isoformat(),
        'session_duration': format_duration(first_event, last_event),
    }
