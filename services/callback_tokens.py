"""
services/callback_tokens.py
----------------------------
Encoding and decoding of inline-button callback data.

No conversation log is stored, so the Open and Reply buttons carry everything
needed to resume an exchange. Fields are positional and pipe-delimited to stay
under Telegram's 64-byte ``callback_data`` limit:

    o|<sender stable id>|<sender message id>|<sender delivery notice id>
    r|<recipient stable id>|<recipient message id>|<recipient delivery notice id>

Handle management buttons carry a bare tag: ``u`` (set), ``ru`` (remove),
``cu`` (cancel).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union

from utils.errors import MalformedCallbackError

SEPARATOR = "|"
MAX_CALLBACK_BYTES = 64


class CallbackTag(str, Enum):
    OPEN = "o"
    REPLY = "r"
    SET_HANDLE = "u"
    REMOVE_HANDLE = "ru"
    CANCEL_HANDLE = "cu"


# Number of fields, tag included.
_ARITY = {
    CallbackTag.OPEN: 4,
    CallbackTag.REPLY: 4,
    CallbackTag.SET_HANDLE: 1,
    CallbackTag.REMOVE_HANDLE: 1,
    CallbackTag.CANCEL_HANDLE: 1,
}


@dataclass(frozen=True)
class MessageToken:
    """
    Addressing context carried by Open and Reply buttons.

    Attributes:
        tag: OPEN or REPLY.
        stable_id: The user whose message the button refers to.
        message_id: That user's original message, in their own chat.
        delivery_message_id: That user's delivery notice, in their own chat.
    """
    tag: CallbackTag
    stable_id: str
    message_id: int
    delivery_message_id: int

    def encode(self) -> str:
        return _join(self.tag, self.stable_id, str(self.message_id), str(self.delivery_message_id))


@dataclass(frozen=True)
class HandleAction:
    """A handle-management button press."""
    tag: CallbackTag

    def encode(self) -> str:
        return _join(self.tag)


CallbackToken = Union[MessageToken, HandleAction]


def open_token(sender_stable_id: str, message_id: int, delivery_message_id: int) -> str:
    return MessageToken(CallbackTag.OPEN, sender_stable_id, message_id, delivery_message_id).encode()


def reply_token(recipient_stable_id: str, message_id: int, delivery_message_id: int) -> str:
    return MessageToken(CallbackTag.REPLY, recipient_stable_id, message_id, delivery_message_id).encode()


def _join(tag: CallbackTag, *fields: str) -> str:
    for value in fields:
        if not value or SEPARATOR in value:
            raise ValueError(f"Callback field {value!r} is empty or contains '{SEPARATOR}'")
    data = SEPARATOR.join((tag.value, *fields))
    if len(data.encode("ascii")) > MAX_CALLBACK_BYTES:
        raise ValueError(f"Callback data exceeds {MAX_CALLBACK_BYTES} bytes: {data!r}")
    return data


def decode(data: str) -> CallbackToken:
    """
    Parse callback data into a token.

    Raises:
        MalformedCallbackError: Unknown tag, wrong field count or non-numeric
            message IDs. Nothing is partially parsed.
    """
    if not data:
        raise MalformedCallbackError(data, "empty payload")
    parts = data.split(SEPARATOR)
    try:
        tag = CallbackTag(parts[0])
    except ValueError:
        raise MalformedCallbackError(data, f"unknown tag {parts[0]!r}")

    if len(parts) != _ARITY[tag]:
        raise MalformedCallbackError(data, f"expected {_ARITY[tag]} fields, got {len(parts)}")

    if tag not in (CallbackTag.OPEN, CallbackTag.REPLY):
        return HandleAction(tag)

    stable_id = parts[1]
    if not stable_id:
        raise MalformedCallbackError(data, "empty stable id")
    try:
        message_id = int(parts[2])
        delivery_message_id = int(parts[3])
    except ValueError:
        raise MalformedCallbackError(data, "message ids must be integers")
    return MessageToken(tag, stable_id, message_id, delivery_message_id)
