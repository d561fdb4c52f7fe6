"""
Event Store Module

Append-only, session-scoped log of emitted alert events. The engine depends
only on the EventSink interface; two implementations are provided: an
in-memory store and a JSON-lines store with one file per session.
"""

import json
import re
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional

from .alerts import Event
from .exceptions import SinkError
from ..utils.config import config
from ..utils.logger import get_logger

logger = get_logger(__name__)


class EventSink(ABC):
    """Append/retrieve contract for session events."""

    @abstractmethod
    def append(self, event: Event) -> None:
        """Append one event. Raises SinkError on failure."""

    @abstractmethod
    def list_by_session(self, session_id: str) -> List[Event]:
        """All events of a session, ascending by timestamp."""

    @abstractmethod
    def list_sessions(self) -> List[str]:
        """Ids of every session with at least one event."""


class InMemoryEventSink(EventSink):
    """Thread-safe in-process event store."""

    def __init__(self):
        self._events: Dict[str, List[Event]] = defaultdict(list)
        self._lock = threading.Lock()

    def append(self, event: Event) -> None:
        with self._lock:
            self._events[event.session_id].append(event)

    def list_by_session(self, session_id: str) -> List[Event]:
        with self._lock:
            events = list(self._events.get(session_id, []))
        # Stable sort keeps append order for equal timestamps
        return sorted(events, key=lambda e: e.timestamp)

    def list_sessions(self) -> List[str]:
        with self._lock:
            return sorted(sid for sid, events in self._events.items() if events)


_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9_.-]')


class JsonlEventSink(EventSink):
    """
    File-backed event store.

    Each session is stored as an append-only JSON-lines file named after the
    session id. Writes are serialized per process with a single lock.
    """

    def __init__(self, events_dir: Optional[str] = None):
        self.events_dir = Path(events_dir or config.storage.events_dir)
        self._lock = threading.Lock()
        self.events_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Event store initialized at {self.events_dir}")

    def _session_file(self, session_id: str) -> Path:
        if not session_id:
            raise SinkError("Session id must not be empty")
        return self.events_dir / f"{_UNSAFE_CHARS.sub('_', session_id)}.jsonl"

    def append(self, event: Event) -> None:
        path = self._session_file(event.session_id)
        line = json.dumps(event.to_dict(), sort_keys=True)
        try:
            with self._lock:
                with open(path, 'a', encoding='utf-8') as f:
                    f.write(line + "\n")
        except OSError as e:
            raise SinkError(f"Could not append event to {path}: {e}") from e

    def list_by_session(self, session_id: str) -> List[Event]:
        path = self._session_file(session_id)
        if not path.exists():
            return []

        events = []
        try:
            with self._lock:
                # Undecodable bytes surface as a corrupt line and are skipped below
                with open(path, 'r', encoding='utf-8', errors='replace') as f:
                    lines = f.readlines()
        except OSError as e:
            raise SinkError(f"Could not read events from {path}: {e}") from e

        for line_no, line in enumerate(lines, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                event = Event.from_dict(json.loads(line))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Skipping corrupt event at {path}:{line_no}: {e}")
                continue
            if event.session_id == session_id:
                events.append(event)

        return sorted(events, key=lambda e: e.timestamp)

    def list_sessions(self) -> List[str]:
        sessions = set()
        with self._lock:
            paths = sorted(self.events_dir.glob("*.jsonl"))
        for path in paths:
            try:
                with open(path, 'r', encoding='utf-8', errors='replace') as f:
                    first = f.readline().strip()
                if first:
                    sessions.add(json.loads(first)['session_id'])
            except (OSError, ValueError, KeyError) as e:
                logger.warning(f"Could not inspect {path}: {e}")
        return sorted(sessions)


def create_event_sink(backend: Optional[str] = None, events_dir: Optional[str] = None) -> EventSink:
    """Build the configured event store."""
    backend = backend or config.storage.backend
    if backend == "memory":
        return InMemoryEventSink()
    if backend == "jsonl":
        return JsonlEventSink(events_dir)
    raise ValueError(f"Unknown event store backend: {backend}")
