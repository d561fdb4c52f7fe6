"""
Candidate identity resolution for reports.
"""

import threading
from typing import Dict, Optional

from .logger import get_logger

logger = get_logger(__name__)


def placeholder_name(session_id: str) -> str:
    """Deterministic display name derived from the session id."""
    return f"Candidate_{session_id[-6:]}"


class IdentityResolver:
    """Maps session ids to candidate display names."""

    def __init__(self, names: Optional[Dict[str, str]] = None):
        self._names: Dict[str, str] = dict(names or {})
        self._lock = threading.Lock()

    def register(self, session_id: str, candidate_name: str) -> None:
        """Associate a display name with a session."""
        with self._lock:
            self._names[session_id] = candidate_name
        logger.debug(f"Registered candidate for session {session_id}")

    def lookup(self, session_id: str) -> Optional[str]:
        with self._lock:
            return self._names.get(session_id)

    def name_for(self, session_id: str) -> str:
        """
        Resolve the candidate name for a session.

        Falls back to a placeholder derived from the session id when the
        candidate is unknown.
        """
        name = self.lookup(session_id)
        if name:
            return name
        return placeholder_name(session_id)


def email_display_name(email: str) -> str:
    """Use the local part of an email address as the display name."""
    return email.split('@')[0]
