"""Exception hierarchy for browser-relay."""

from __future__ import annotations


class RelayError(Exception):
    """Base exception for all browser-relay errors."""


class BatchValidationError(RelayError):
    """Raised when an action batch is malformed and no action may run."""


class ActionError(RelayError):
    """Raised by a single action; captured into its result, never fatal to the batch."""


class SelectorTimeout(ActionError):
    """Raised when a selector did not appear within the wait budget.

    Attributes:
        selector: The normalized selector that was awaited.
        timeout_ms: The wait budget in milliseconds.
    """

    def __init__(self, selector: str, timeout_ms: int) -> None:
        self.selector = selector
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Waiting for selector `{selector}` failed: {timeout_ms}ms exceeded"
        )


class UnsupportedActionKind(ActionError):
    """Raised for an action whose ``type`` has no handler."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__("Unsupported action type")


class QuiescenceTimeout(RelayError):
    """Raised when a page did not go network-idle before the hard deadline."""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"waitForNetworkIdle: timeout of {timeout_ms}ms exceeded")


class SnapshotError(RelayError):
    """Raised when the page cannot be read or serialized mid-navigation."""


class SessionNotFound(RelayError):
    """Raised by strict operations that require an existing session."""

    def __init__(self, session_id: str | None) -> None:
        self.session_id = session_id
        super().__init__(
            "Valid sessionId is required"
            if not session_id
            else f"Session {session_id} not found"
        )


class DriverUnavailable(RelayError):
    """Raised when the browser driver cannot serve requests at all."""


class LivenessFatal(RelayError):
    """Marks an intentional self-termination by the liveness policy."""
