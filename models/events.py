"""
models/events.py
----------------
Inbound events as seen by the relay core, detached from Telegram's Update objects.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class IncomingMessage:
    """
    A non-command message sent to the bot.

    Attributes:
        platform_id: Telegram ID of the author.
        chat_id: Private chat the message arrived in.
        message_id: ID of the message in that chat.
        text: Message text, None for media messages.
    """
    platform_id: int
    chat_id: int
    message_id: int
    text: Optional[str] = None


@dataclass(frozen=True)
class ButtonPress:
    """
    An inline button press.

    Attributes:
        callback_id: ID to answer the press with.
        data: Raw callback data from the button.
        message_id: The message carrying the button.
        reply_to_message_id: What that message was itself replying to, if anything.
    """
    platform_id: int
    chat_id: int
    callback_id: str
    data: Optional[str]
    message_id: int
    reply_to_message_id: Optional[int] = None
