"""
models/user.py
--------------
Domain model for relay users and their conversation state.

The conversation state is a tagged variant: the composing fields only exist
on ``ComposingOutbound``, so an idle user carrying a contact is unrepresentable.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Union


class UserState(str, Enum):
    """Values stored in the ``users.state`` column."""
    IDLE = "idle"
    COMPOSING = "composing"
    REGISTERING_HANDLE = "registering_handle"


@dataclass(frozen=True)
class Idle:
    """Default state. Free text is not expected."""
    kind = UserState.IDLE


@dataclass(frozen=True)
class ComposingOutbound:
    """
    Waiting for the next message, which is relayed to ``contact_stable_id``.

    Attributes:
        contact_stable_id: Stable ID of the counterpart.
        reply_to_message_id: Counterpart's message being replied to (0 = fresh exchange).
        pending_delivery_message_id: Delivery notice in the counterpart's chat
            to clean up once the reply is relayed (0 = none).
    """
    contact_stable_id: str
    reply_to_message_id: int = 0
    pending_delivery_message_id: int = 0
    kind = UserState.COMPOSING

    @property
    def is_reply(self) -> bool:
        return self.reply_to_message_id != 0


@dataclass(frozen=True)
class RegisteringHandle:
    """Waiting for the next message, which is validated and stored as the handle."""
    kind = UserState.REGISTERING_HANDLE


ConversationState = Union[Idle, ComposingOutbound, RegisteringHandle]

IDLE = Idle()
REGISTERING_HANDLE = RegisteringHandle()


def state_from_columns(
    state: str,
    contact_stable_id: Optional[str],
    reply_to_message_id: Optional[int],
    pending_delivery_message_id: Optional[int],
) -> ConversationState:
    """Rebuild the tagged state from its flat database columns."""
    kind = UserState(state)
    if kind is UserState.COMPOSING:
        if not contact_stable_id:
            # A composing row without a contact cannot be resumed.
            return IDLE
        return ComposingOutbound(
            contact_stable_id=contact_stable_id,
            reply_to_message_id=reply_to_message_id or 0,
            pending_delivery_message_id=pending_delivery_message_id or 0,
        )
    if kind is UserState.REGISTERING_HANDLE:
        return REGISTERING_HANDLE
    return IDLE


def state_to_columns(state: ConversationState) -> tuple[str, Optional[str], int, int]:
    """Flatten a tagged state into (state, contact, reply_to, pending_delivery)."""
    if isinstance(state, ComposingOutbound):
        return (
            state.kind.value,
            state.contact_stable_id,
            state.reply_to_message_id,
            state.pending_delivery_message_id,
        )
    return state.kind.value, None, 0, 0


@dataclass
class User:
    """
    Represents one Telegram account known to the bot.

    Attributes:
        platform_id: Telegram user ID (also the private chat ID).
        stable_id: Opaque ID assigned at creation, used in links and tokens.
        handle: Optional lowercase handle.
        state: Current conversation state.
        version: Bumped on every write; guards compare-and-set updates.
        created_at: Timestamp when the record was created.
    """
    platform_id: int
    stable_id: str
    handle: Optional[str] = None
    state: ConversationState = field(default=IDLE)
    version: int = 0
    created_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        """How the user is named to someone about to message them."""
        return self.handle or self.stable_id

    def __str__(self) -> str:
        return f"User({self.stable_id}, handle={self.handle}, state={self.state.kind.value})"


@dataclass
class UserUpdate:
    """
    Explicit partial update applied in a single write.

    ``state=None`` leaves the state untouched. ``handle`` sets a new handle,
    ``clear_handle`` removes the current one.
    """
    state: Optional[ConversationState] = None
    handle: Optional[str] = None
    clear_handle: bool = False

    def __post_init__(self) -> None:
        if self.handle is not None and self.clear_handle:
            raise ValueError("UserUpdate cannot both set and clear the handle")
