"""
services/keyboards.py
---------------------
Inline keyboards attached to relay messages.
"""

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from services.callback_tokens import CallbackTag, HandleAction, open_token, reply_token

OPEN_BUTTON_TEXT = "Open Message"
REPLY_BUTTON_TEXT = "Reply"


def open_keyboard(sender_stable_id: str, message_id: int, delivery_message_id: int) -> InlineKeyboardMarkup:
    data = open_token(sender_stable_id, message_id, delivery_message_id)
    return InlineKeyboardMarkup([[InlineKeyboardButton(OPEN_BUTTON_TEXT, callback_data=data)]])


def reply_keyboard(recipient_stable_id: str, message_id: int, delivery_message_id: int) -> InlineKeyboardMarkup:
    data = reply_token(recipient_stable_id, message_id, delivery_message_id)
    return InlineKeyboardMarkup([[InlineKeyboardButton(REPLY_BUTTON_TEXT, callback_data=data)]])


def handle_keyboard(has_handle: bool) -> InlineKeyboardMarkup:
    """Buttons under the /username menu. Remove is only offered when there is something to remove."""
    cancel = InlineKeyboardButton("Cancel", callback_data=HandleAction(CallbackTag.CANCEL_HANDLE).encode())
    if has_handle:
        row = [
            InlineKeyboardButton("Change", callback_data=HandleAction(CallbackTag.SET_HANDLE).encode()),
            InlineKeyboardButton("Remove", callback_data=HandleAction(CallbackTag.REMOVE_HANDLE).encode()),
            cancel,
        ]
    else:
        row = [
            InlineKeyboardButton("Set one", callback_data=HandleAction(CallbackTag.SET_HANDLE).encode()),
            cancel,
        ]
    return InlineKeyboardMarkup([row])
