"""
handlers/relay_handler.py
--------------------------
Handles free-text messages, inline button presses and unhandled errors.
Translates Telegram updates into relay events and delegates to RelayService.
"""

from telegram import Update
from telegram.ext import ContextTypes

from config import BOT_INFO_TEXT, BOT_USERNAME
from models.events import ButtonPress, IncomingMessage
from repositories.user_repo import UserRepository
from security.rate_limiter import rate_limited
from services.relay_service import RelayService
from services.transport import TelegramTransport
from utils.logger import get_logger

logger = get_logger(__name__)
user_repo = UserRepository()

ERROR_TEXT = "Something went wrong. Please try again later."


def build_relay_service(context: ContextTypes.DEFAULT_TYPE) -> RelayService:
    """Bind the relay core to the bot that received the update."""
    return RelayService(
        repo=user_repo,
        transport=TelegramTransport(context.bot),
        bot_username=BOT_USERNAME or context.bot.username,
        info_text=BOT_INFO_TEXT,
    )


@rate_limited
async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle any non-command message.
    Relayed when the user is composing, read as a handle when registering one.
    """
    message = update.effective_message
    user = update.effective_user
    if message is None or user is None:
        return

    await build_relay_service(context).handle_message(
        IncomingMessage(
            platform_id=user.id,
            chat_id=message.chat_id,
            message_id=message.message_id,
            text=message.text,
        )
    )


@rate_limited
async def handle_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle Open / Reply / handle-management button presses."""
    query = update.callback_query
    if query is None or query.message is None:
        return

    # Buttons on messages older than 48h come back as InaccessibleMessage without reply info.
    reply_to = getattr(query.message, "reply_to_message", None)
    await build_relay_service(context).handle_button(
        ButtonPress(
            platform_id=query.from_user.id,
            chat_id=query.message.chat.id,
            callback_id=query.id,
            data=query.data,
            message_id=query.message.message_id,
            reply_to_message_id=reply_to.message_id if reply_to else None,
        )
    )


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log errors raised by handlers and tell the user the event failed."""
    logger.error("Unhandled error while processing an update", exc_info=context.error)

    if not isinstance(update, Update):
        return
    try:
        if update.callback_query:
            await update.callback_query.answer(ERROR_TEXT, show_alert=True)
        elif update.effective_message:
            await update.effective_message.reply_text(ERROR_TEXT)
    except Exception as e:
        logger.error(f"Failed to report error to user: {e}")
