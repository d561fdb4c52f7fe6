"""
Exceptions raised by the detection and scoring engine.
"""


class ProctorError(Exception):
    """Base class for engine errors."""


class SinkError(ProctorError):
    """The event store could not append or read events."""


class SessionNotFoundError(ProctorError):
    """No events have been recorded for the requested session."""

    def __init__(self, session_id: str):
        super().__init__(f"No events found for session {session_id}")
        self.session_id = session_id


class ProviderError(ProctorError):
    """A signal provider failed while processing a frame."""
