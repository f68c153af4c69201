"""Exception hierarchy for the live transcription relay.

None of these are retried: each either refuses/terminates the affected
connection or is absorbed and logged by the component that catches it.
"""


class RelayError(Exception):
    """Base exception for relay errors."""


class ValidationError(RelayError):
    """Raised when connection parameters are missing or malformed."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(", ".join(self.errors))


class DuplicateSessionError(RelayError):
    """Raised when trying to register a session id that is already live."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session already active: {session_id}")


class BackendUnavailableError(RelayError):
    """Raised when the speech backend rejects stream setup."""


class BackendNotAvailableError(RelayError):
    """Raised when a configured backend name is unknown or cannot be loaded."""


class FrameRejected(RelayError):
    """Raised when an audio frame fails size validation."""

    def __init__(self, size: int, reason: str):
        self.size = size
        self.reason = reason
        super().__init__(reason)


class DispatchFailure(RelayError):
    """Raised when the notification collaborator cannot be reached."""
