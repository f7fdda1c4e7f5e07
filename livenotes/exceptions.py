"""
Exceptions raised by the live notes pipeline.

None of these are fatal: each one maps to "no update this cycle" for the
component that hit it.
"""

from typing import Any, Dict, List, Optional


class LiveNotesError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SourceUnavailable(LiveNotesError):
    """Raised when the transcription line source cannot be reached."""

    def __init__(self, operation: str, cause: Optional[Exception] = None):
        details: Dict[str, Any] = {"operation": operation}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Line source unavailable during {operation}", details)
        self.operation = operation
        self.cause = cause


class StreamInterrupted(LiveNotesError):
    """Raised when a fragment stream ends abnormally mid-accumulation."""

    def __init__(self, partial_text: str = "", cause: Optional[Exception] = None):
        details: Dict[str, Any] = {"received_chars": len(partial_text)}
        if cause:
            details["cause"] = str(cause)
        super().__init__("Fragment stream interrupted", details)
        self.partial_text = partial_text
        self.cause = cause


class NoteParseError(LiveNotesError):
    """Raised when a response is missing one or more required note sections."""

    def __init__(self, missing: List[str]):
        super().__init__(
            f"Note response missing sections: {', '.join(missing)}",
            {"missing": list(missing)},
        )
        self.missing = list(missing)


class PersistenceFailure(LiveNotesError):
    """Raised when a persistence call fails after its retries are exhausted."""

    def __init__(self, operation: str, cause: Optional[Exception] = None):
        details: Dict[str, Any] = {"operation": operation}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Persistence operation failed: {operation}", details)
        self.operation = operation
        self.cause = cause


class RecordingStateError(LiveNotesError):
    """Raised when start/stop is requested in the wrong recording state."""

    def __init__(self, recording: bool):
        state = "already recording" if recording else "not recording"
        super().__init__(f"Recorder is {state}", {"recording": recording})
        self.recording = recording
