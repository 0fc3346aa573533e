"""
main.py
-------
Entry point for the anonymous relay Telegram bot.

Responsibilities:
    - Initialize the database connection pool and schema.
    - Configure and start the Telegram bot with all handlers.
"""

from telegram import BotCommand, Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    MessageHandler,
    filters,
)

from config import BOT_USERNAME, TELEGRAM_BOT_TOKEN
from db.connection import init_pool, close_pool
from db.init_db import create_tables
from handlers.start_handler import start_command, link_command, info_command, username_command
from handlers.relay_handler import handle_message, handle_callback, error_handler
from utils.logger import get_logger

logger = get_logger(__name__)


async def set_bot_commands(application: Application) -> None:
    """Register bot commands menu in Telegram on startup."""
    commands = [
        BotCommand("start", "Start the bot"),
        BotCommand("link", "Get your anonymous link"),
        BotCommand("username", "Set or remove your username"),
        BotCommand("info", "About this bot"),
    ]
    await application.bot.set_my_commands(commands)
    logger.info(
        f"Bot commands menu registered; deep links use @{BOT_USERNAME or application.bot.username}."
    )


def main() -> None:
    """Initialize and run the bot."""

    # ── 1. Database setup ─────────────────────────────────
    logger.info("Initializing database...")
    init_pool()
    create_tables()

    # ── 2. Build the Telegram application ─────────────────
    logger.info("Starting Telegram bot...")
    app = (
        Application.builder()
        .token(TELEGRAM_BOT_TOKEN)
        .concurrent_updates(True)
        .post_init(set_bot_commands)
        .build()
    )

    # ── 3. Register command handlers ──────────────────────
    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("link", link_command))
    app.add_handler(CommandHandler("info", info_command))
    app.add_handler(CommandHandler("username", username_command))

    # ── 4. Register message + button handlers (catch-all) ─
    app.add_handler(
        MessageHandler(filters.ChatType.PRIVATE & ~filters.COMMAND & ~filters.StatusUpdate.ALL, handle_message)
    )
    app.add_handler(CallbackQueryHandler(handle_callback))
    app.add_error_handler(error_handler)

    # ── 5. Start polling ──────────────────────────────────
    logger.info("Relay bot is running! Press Ctrl+C to stop.")
    app.run_polling(drop_pending_updates=True, allowed_updates=[Update.MESSAGE, Update.CALLBACK_QUERY])

    # ── 6. Cleanup on shutdown ────────────────────────────
    close_pool()
    logger.info("Relay bot stopped.")


if __name__ == "__main__":
    main()
