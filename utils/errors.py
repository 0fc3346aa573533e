"""
utils/errors.py
---------------
Exception hierarchy for the relay core.
Every error carries a short machine-readable ``code`` next to its message.
"""

from typing import Optional


class RelayError(Exception):
    """Base exception for the relay bot."""

    def __init__(self, message: str, code: str = "RELAY_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class RecipientNotFoundError(RelayError):
    """Raised when a recipient reference or token does not resolve to a user."""

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"No user matches reference '{reference}'", code="NOT_FOUND")


class SelfAddressingError(RelayError):
    """Raised when a user tries to relay a message to themselves."""

    def __init__(self, stable_id: str):
        self.stable_id = stable_id
        super().__init__(f"User {stable_id} addressed themselves", code="SELF_ADDRESSING")


class InvalidHandleError(RelayError):
    """Raised when a proposed handle breaks the format rules."""

    def __init__(self, handle: str):
        self.handle = handle
        super().__init__(f"Invalid handle: {handle!r}", code="INVALID_HANDLE")


class HandleTakenError(RelayError):
    """Raised when a handle is already owned by another user."""

    def __init__(self, handle: str):
        self.handle = handle
        super().__init__(f"Handle '{handle}' is already taken", code="HANDLE_TAKEN")


class MalformedCallbackError(RelayError):
    """Raised when button callback data cannot be decoded."""

    def __init__(self, data: Optional[str], reason: str = "malformed"):
        self.data = data
        super().__init__(f"Malformed callback data {data!r}: {reason}", code="MALFORMED_CALLBACK")


class StateConflictError(RelayError):
    """Raised when a compare-and-set on a user's state loses a race."""

    def __init__(self, stable_id: str):
        self.stable_id = stable_id
        super().__init__(
            f"State of user {stable_id} changed concurrently", code="STATE_CONFLICT"
        )
