"""
security/rate_limiter.py
-------------------------
Rate limiting middleware to prevent relay spam.
Limits the number of events (messages, commands, button presses) a user can
trigger within a time window.
"""

import time
from collections import defaultdict
from functools import wraps
from typing import Callable

from telegram import Update
from telegram.ext import ContextTypes

from config import RATE_LIMIT_MESSAGES, RATE_LIMIT_WINDOW_SECONDS
from utils.logger import get_logger

logger = get_logger(__name__)

RATE_LIMIT_TEXT = "You are sending too many messages. Wait a little and try again."

# In-memory storage for rate tracking: {user_id: [timestamp1, timestamp2, ...]}
_user_timestamps: dict[int, list[float]] = defaultdict(list)
_last_sweep: float = 0.0


def _cleanup(user_id: int) -> None:
    """Remove expired timestamps for a user, and the user once none are left."""
    cutoff = time.time() - RATE_LIMIT_WINDOW_SECONDS
    recent = [t for t in _user_timestamps.get(user_id, ()) if t > cutoff]
    if recent:
        _user_timestamps[user_id] = recent
    else:
        _user_timestamps.pop(user_id, None)


def _sweep_idle_users() -> None:
    """Once per window, drop users whose newest event has expired."""
    global _last_sweep
    now = time.time()
    if now - _last_sweep < RATE_LIMIT_WINDOW_SECONDS:
        return
    cutoff = now - RATE_LIMIT_WINDOW_SECONDS
    for user_id in [u for u, stamps in _user_timestamps.items() if not stamps or stamps[-1] <= cutoff]:
        del _user_timestamps[user_id]
    _last_sweep = now


def reset_rate_limits() -> None:
    """Forget all tracked timestamps."""
    global _last_sweep
    _user_timestamps.clear()
    _last_sweep = 0.0


def rate_limited(func: Callable):
    """
    Decorator that enforces rate limiting per user.

    Configuration (via .env):
        RATE_LIMIT_MESSAGES: Max events per window (default: 30).
        RATE_LIMIT_WINDOW_SECONDS: Window duration in seconds (default: 60).

    Behavior:
        - Tracks event timestamps per user.
        - If exceeded, blocks the handler. Button presses get an alert,
          everything else a chat reply.
    """
    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
        user = update.effective_user
        if not user:
            return

        _sweep_idle_users()
        _cleanup(user.id)

        if len(_user_timestamps[user.id]) >= RATE_LIMIT_MESSAGES:
            logger.warning(f"Rate limit hit for user {user.id}")
            if update.callback_query:
                await update.callback_query.answer(RATE_LIMIT_TEXT, show_alert=True)
            elif update.effective_message:
                await update.effective_message.reply_text(RATE_LIMIT_TEXT)
            return

        _user_timestamps[user.id].append(time.time())
        return await func(update, context, *args, **kwargs)

    return wrapper
