"""
services/conversation_service.py
---------------------------------
The per-user conversation state machine.

Each user has exactly one state slot: Idle, ComposingOutbound or
RegisteringHandle. Every transition computes the target state and writes it
with a single compare-and-set against the version read at the start of the
event, so two events racing for the same user cannot both win.
"""

from enum import Enum

from models.user import (
    IDLE,
    REGISTERING_HANDLE,
    ComposingOutbound,
    ConversationState,
    RegisteringHandle,
    User,
    UserUpdate,
)
from repositories.user_repo import UserRepository
from services.identity_service import validate_handle
from utils.errors import HandleTakenError, StateConflictError
from utils.logger import get_logger

logger = get_logger(__name__)


class TextAction(str, Enum):
    """What an incoming free-text message means in the sender's current state."""
    RELAY = "relay"
    REGISTER_HANDLE = "register_handle"
    UNEXPECTED = "unexpected"


class HandleOutcome(str, Enum):
    SET = "set"
    ALREADY_OWNED = "already_owned"


def text_action(state: ConversationState) -> TextAction:
    if isinstance(state, ComposingOutbound):
        return TextAction.RELAY
    if isinstance(state, RegisteringHandle):
        return TextAction.REGISTER_HANDLE
    return TextAction.UNEXPECTED


class ConversationService:
    """Applies state transitions for one user at a time."""

    def __init__(self, repo: UserRepository):
        self.repo = repo

    def _apply(self, user: User, changes: UserUpdate) -> None:
        """
        Compare-and-set ``changes`` against ``user.version``.
        On success the in-memory user mirrors the stored row.

        Raises:
            StateConflictError: If another event wrote the user first.
        """
        if not self.repo.update(user.stable_id, changes, expected_version=user.version):
            logger.warning(f"Lost state race for user {user.stable_id} at version {user.version}")
            raise StateConflictError(user.stable_id)
        if changes.state is not None:
            user.state = changes.state
        if changes.handle is not None:
            user.handle = changes.handle
        elif changes.clear_handle:
            user.handle = None
        user.version += 1

    # ── COMPOSING ─────────────────────────────────────────

    def start_composing(self, user: User, recipient: User) -> None:
        """Recipient link opened: address the next message to ``recipient``."""
        self._apply(user, UserUpdate(state=ComposingOutbound(contact_stable_id=recipient.stable_id)))

    def start_reply(
        self,
        user: User,
        counterpart_stable_id: str,
        reply_to_message_id: int,
        pending_delivery_message_id: int,
    ) -> None:
        """Reply button pressed: load the addressing context carried by the button."""
        self._apply(
            user,
            UserUpdate(
                state=ComposingOutbound(
                    contact_stable_id=counterpart_stable_id,
                    reply_to_message_id=reply_to_message_id,
                    pending_delivery_message_id=pending_delivery_message_id,
                )
            ),
        )

    def finish_relay(self, user: User) -> None:
        """The composed message went out; back to idle."""
        if not isinstance(user.state, ComposingOutbound):
            raise ValueError(f"User {user.stable_id} is not composing")
        self._apply(user, UserUpdate(state=IDLE))

    # ── HANDLES ───────────────────────────────────────────

    def start_handle_registration(self, user: User) -> None:
        """Drops any stale composing context before waiting for a handle."""
        self._apply(user, UserUpdate(state=REGISTERING_HANDLE))

    def register_handle(self, user: User, raw: str) -> tuple[HandleOutcome, str]:
        """
        Validate and claim ``raw`` as the user's handle.

        Returns:
            (outcome, normalized handle). Both outcomes leave the user idle.

        Raises:
            InvalidHandleError: Format rules broken; the user keeps registering.
            HandleTakenError: Another user owns it; the user keeps registering.
        """
        if not isinstance(user.state, RegisteringHandle):
            raise ValueError(f"User {user.stable_id} is not registering a handle")
        handle = validate_handle(raw)

        owner = self.repo.get_by_handle(handle)
        if owner is not None:
            if owner.stable_id != user.stable_id:
                raise HandleTakenError(handle)
            self._apply(user, UserUpdate(state=IDLE))
            return HandleOutcome.ALREADY_OWNED, handle

        self._apply(user, UserUpdate(state=IDLE, handle=handle))
        logger.info(f"User {user.stable_id} set handle '{handle}'")
        return HandleOutcome.SET, handle

    def remove_handle(self, user: User) -> None:
        self._apply(user, UserUpdate(state=IDLE, clear_handle=True))
        logger.info(f"User {user.stable_id} removed their handle")

    # ── RESETS ────────────────────────────────────────────

    def reset(self, user: User) -> None:
        """
        Cancel whatever flow the user was in.
        Skips the write when the user is already idle.
        """
        if user.state == IDLE:
            return
        self._apply(user, UserUpdate(state=IDLE))
