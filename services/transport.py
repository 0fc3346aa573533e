"""
services/transport.py
---------------------
Outbound Telegram operations used by the relay core.

The core only depends on the ``Transport`` protocol; ``TelegramTransport`` is
the Bot API implementation. Every method may raise ``telegram.error.TelegramError``.
"""

from typing import Optional, Protocol

from telegram import Bot, InlineKeyboardMarkup, ReactionTypeEmoji, ReplyParameters


class Transport(Protocol):
    async def send_message(
        self,
        chat_id: int,
        text: str,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
        reply_to_message_id: Optional[int] = None,
    ) -> int: ...

    async def edit_message_text(self, chat_id: int, message_id: int, text: str) -> None: ...

    async def remove_reply_markup(self, chat_id: int, message_id: int) -> None: ...

    async def delete_message(self, chat_id: int, message_id: int) -> None: ...

    async def copy_message(
        self,
        to_chat_id: int,
        from_chat_id: int,
        message_id: int,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
        reply_to_message_id: Optional[int] = None,
    ) -> int: ...

    async def set_reaction(self, chat_id: int, message_id: int, emoji: str) -> None: ...

    async def answer_callback(
        self, callback_id: str, text: Optional[str] = None, show_alert: bool = False
    ) -> None: ...


def _reply_parameters(message_id: Optional[int]) -> Optional[ReplyParameters]:
    """Thread under ``message_id`` if it still exists, send standalone otherwise."""
    if not message_id:
        return None
    return ReplyParameters(message_id=message_id, allow_sending_without_reply=True)


class TelegramTransport:
    """Transport backed by a python-telegram-bot ``Bot``."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send_message(self, chat_id, text, reply_markup=None, reply_to_message_id=None) -> int:
        message = await self.bot.send_message(
            chat_id=chat_id,
            text=text,
            reply_markup=reply_markup,
            reply_parameters=_reply_parameters(reply_to_message_id),
        )
        return message.message_id

    async def edit_message_text(self, chat_id, message_id, text) -> None:
        await self.bot.edit_message_text(text=text, chat_id=chat_id, message_id=message_id)

    async def remove_reply_markup(self, chat_id, message_id) -> None:
        await self.bot.edit_message_reply_markup(chat_id=chat_id, message_id=message_id, reply_markup=None)

    async def delete_message(self, chat_id, message_id) -> None:
        await self.bot.delete_message(chat_id=chat_id, message_id=message_id)

    async def copy_message(
        self, to_chat_id, from_chat_id, message_id, reply_markup=None, reply_to_message_id=None
    ) -> int:
        copied = await self.bot.copy_message(
            chat_id=to_chat_id,
            from_chat_id=from_chat_id,
            message_id=message_id,
            reply_markup=reply_markup,
            reply_parameters=_reply_parameters(reply_to_message_id),
        )
        return copied.message_id

    async def set_reaction(self, chat_id, message_id, emoji) -> None:
        await self.bot.set_message_reaction(
            chat_id=chat_id,
            message_id=message_id,
            reaction=[ReactionTypeEmoji(emoji)],
            is_big=True,
        )

    async def answer_callback(self, callback_id, text=None, show_alert=False) -> None:
        await self.bot.answer_callback_query(callback_query_id=callback_id, text=text, show_alert=show_alert)
