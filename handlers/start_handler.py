"""
handlers/start_handler.py
--------------------------
Handles /start, /link, /info and /username commands.
/start doubles as the entry point of every deep link.
"""

from telegram import Update
from telegram.ext import ContextTypes

from handlers.relay_handler import build_relay_service
from security.rate_limiter import rate_limited
from utils.logger import get_logger

logger = get_logger(__name__)


@rate_limited
async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /start command.

    Usage:
        /start              - welcome message, resets any pending flow
        /start _<handle>    - message the user owning <handle>
        /start <stable id>  - message the user with that stable ID
    """
    user = update.effective_user
    argument = context.args[0] if context.args else None
    logger.info(f"User {user.id} started the bot (argument: {argument}).")
    await build_relay_service(context).start(user.id, update.effective_chat.id, argument)


@rate_limited
async def link_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /link command - show the user's personal deep links."""
    await build_relay_service(context).link(
        update.effective_user.id, update.effective_chat.id, update.effective_message.message_id
    )


@rate_limited
async def info_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /info command - show bot info."""
    await build_relay_service(context).info(update.effective_user.id, update.effective_chat.id)


@rate_limited
async def username_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /username command - show the current handle with set/remove/cancel buttons."""
    await build_relay_service(context).show_handle_menu(update.effective_user.id, update.effective_chat.id)
