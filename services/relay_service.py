"""
services/relay_service.py
-------------------------
Top-level dispatcher for every user-visible action of the relay bot.

Each public method handles one inbound event: it loads (or lazily creates)
the acting user, looks at their state, and drives the identity resolver,
the callback token protocol and the conversation state machine.
"""

import asyncio
from typing import Awaitable, Optional

from telegram.error import TelegramError

from models.events import ButtonPress, IncomingMessage
from models.user import ComposingOutbound, User
from repositories.user_repo import UserRepository
from services import callback_tokens
from services.callback_tokens import CallbackTag, HandleAction, MessageToken
from services.conversation_service import ConversationService, HandleOutcome, TextAction, text_action
from services.identity_service import IdentityResolver, format_links
from services.keyboards import handle_keyboard, open_keyboard, reply_keyboard
from services.transport import Transport
from utils.errors import (
    HandleTakenError,
    InvalidHandleError,
    MalformedCallbackError,
    RecipientNotFoundError,
    SelfAddressingError,
    StateConflictError,
)
from utils.logger import get_logger

logger = get_logger(__name__)

# ── User-facing texts ─────────────────────────────────────
WELCOME_TEXT = "Welcome! Use /link command to get your link!"
NOT_FOUND_TEXT = "User not found! Wrong link?"
SELF_ADDRESSING_TEXT = "Do you really want to talk to yourself? So sad! Share your /link with someone else instead."
COMPOSE_PROMPT = "You are sending message to:\n{name}\n\nEnter your message:"
UNKNOWN_COMMAND_TEXT = "Error: Unknown Command"
PARTNER_NOT_FOUND_TEXT = "Could not find this conversation partner."
TRY_AGAIN_TEXT = "Something changed in the meantime. Please try again."
STALE_BUTTON_TEXT = "This button is no longer valid."

DELIVERY_TEXT = "Message sent"
SEEN_TEXT = "Your message has been seen"
NEW_MESSAGE_TEXT = "You have a new message."
NEW_REPLY_TEXT = "New reply to your message."
OPENED_ANSWER = "Message opened!"
REPLYING_ANSWER = "Replying to message..."
REPLY_PROMPT = "Reply to this message:"
SEEN_REACTION = "👀"

HANDLE_CURRENT_TEXT = "Your current username is: {handle}"
NO_HANDLE_TEXT = "You don't have a username!"
HANDLE_RULES_TEXT = (
    "Create a username that starts with a letter, includes 3-20 characters, "
    "and may contain letters, numbers, or underscores (_). "
    "Usernames are automatically converted to lowercase.\n\nEnter new username:"
)
HANDLE_INVALID_TEXT = "The entered username is not valid. Enter another one:"
HANDLE_TAKEN_TEXT = "The entered username exists. Enter another one:"
HANDLE_OWNED_TEXT = "You already own this username! If you want to change it, run /username once more."
HANDLE_SET_TEXT = "Username has been set: {handle}"
HANDLE_REMOVED_TEXT = "Username has been removed!"
HANDLE_CANCEL_ANSWER = "Never mind!"
HANDLE_SETTING_ANSWER = "Setting username..."
HANDLE_REMOVED_ANSWER = "Username removed!"


class RelayService:
    """
    Realizes start, link, info, handle management, free text and button presses.

    Args:
        repo: User store.
        transport: Outbound Telegram operations.
        bot_username: Used to build deep links.
        info_text: Reply to /info.
    """

    def __init__(self, repo: UserRepository, transport: Transport, bot_username: str, info_text: str = ""):
        self.repo = repo
        self.transport = transport
        self.bot_username = bot_username
        self.info_text = info_text
        self.identity = IdentityResolver(repo)
        self.conversations = ConversationService(repo)

    def _acting_user(self, platform_id: int) -> User:
        return self.repo.ensure(platform_id)

    # ── COMMANDS ──────────────────────────────────────────

    async def start(self, platform_id: int, chat_id: int, argument: Optional[str] = None) -> None:
        """
        /start with no argument resets and greets.
        /start <reference> addresses the next message to the referenced user.
        """
        user = self._acting_user(platform_id)
        if not argument:
            self._reset_after_command(user)
            await self.transport.send_message(chat_id, WELCOME_TEXT)
            return

        try:
            recipient = self.identity.resolve_recipient(user, argument)
        except RecipientNotFoundError:
            logger.info(f"User {user.stable_id} opened a link to unknown reference '{argument}'")
            await self.transport.send_message(chat_id, NOT_FOUND_TEXT)
            return
        except SelfAddressingError:
            await self.transport.send_message(chat_id, SELF_ADDRESSING_TEXT)
            return

        try:
            self.conversations.start_composing(user, recipient)
        except StateConflictError:
            await self.transport.send_message(chat_id, TRY_AGAIN_TEXT)
            return
        await self.transport.send_message(chat_id, COMPOSE_PROMPT.format(name=recipient.display_name))

    async def info(self, platform_id: int, chat_id: int) -> None:
        user = self._acting_user(platform_id)
        await self.transport.send_message(chat_id, self.info_text)
        self._reset_after_command(user)

    async def link(self, platform_id: int, chat_id: int, message_id: Optional[int] = None) -> None:
        """Send the user their own deep link(s)."""
        user = self._acting_user(platform_id)
        await self.transport.send_message(
            chat_id, format_links(self.bot_username, user), reply_to_message_id=message_id
        )
        self._reset_after_command(user)

    async def show_handle_menu(self, platform_id: int, chat_id: int) -> None:
        user = self._acting_user(platform_id)
        text = HANDLE_CURRENT_TEXT.format(handle=user.handle) if user.handle else NO_HANDLE_TEXT
        await self.transport.send_message(chat_id, text, reply_markup=handle_keyboard(bool(user.handle)))

    # ── FREE TEXT ─────────────────────────────────────────

    async def handle_message(self, message: IncomingMessage) -> None:
        user = self._acting_user(message.platform_id)
        action = text_action(user.state)
        if action is TextAction.RELAY:
            await self._relay(user, message)
        elif action is TextAction.REGISTER_HANDLE:
            await self._register_handle(user, message)
        else:
            await self.transport.send_message(
                message.chat_id, UNKNOWN_COMMAND_TEXT, reply_to_message_id=message.message_id
            )

    async def _relay(self, sender: User, message: IncomingMessage) -> None:
        state = sender.state
        if not isinstance(state, ComposingOutbound):
            raise ValueError(f"User {sender.stable_id} has no outbound contact to relay to")

        # Resolution at send time is authoritative, however old the addressing context is.
        try:
            counterpart = self.identity.resolve_counterpart(sender, state.contact_stable_id)
        except (RecipientNotFoundError, SelfAddressingError) as e:
            logger.info(f"Dropping relay from {sender.stable_id}: {e.message}")
            try:
                self.conversations.reset(sender)
            except StateConflictError:
                logger.warning(f"State of {sender.stable_id} changed before the stale contact was cleared")
            await self.transport.send_message(
                message.chat_id, PARTNER_NOT_FOUND_TEXT, reply_to_message_id=message.message_id
            )
            return

        delivery_id = await self.transport.send_message(
            message.chat_id, DELIVERY_TEXT, reply_to_message_id=message.message_id
        )
        try:
            await self.transport.send_message(
                counterpart.platform_id,
                NEW_REPLY_TEXT if state.is_reply else NEW_MESSAGE_TEXT,
                reply_markup=open_keyboard(sender.stable_id, message.message_id, delivery_id),
                reply_to_message_id=state.reply_to_message_id or None,
            )
        except TelegramError:
            # Nothing was delivered, so the sender must not keep a "Message sent" notice.
            await self._best_effort(
                withdraw_delivery_notice=self.transport.delete_message(message.chat_id, delivery_id),
            )
            raise
        logger.info(f"Relayed message {message.message_id} from {sender.stable_id} to {counterpart.stable_id}")

        if state.pending_delivery_message_id:
            await self._best_effort(
                delete_superseded_notice=self.transport.delete_message(
                    counterpart.platform_id, state.pending_delivery_message_id
                ),
            )

        try:
            self.conversations.finish_relay(sender)
        except StateConflictError:
            # The message is already out; whatever won the race owns the state now.
            logger.warning(f"State of {sender.stable_id} changed while relaying; leaving it as is")

    async def _register_handle(self, user: User, message: IncomingMessage) -> None:
        try:
            outcome, handle = self.conversations.register_handle(user, message.text or "")
        except InvalidHandleError:
            text = HANDLE_INVALID_TEXT
        except HandleTakenError:
            text = HANDLE_TAKEN_TEXT
        except StateConflictError:
            text = TRY_AGAIN_TEXT
        else:
            text = HANDLE_OWNED_TEXT if outcome is HandleOutcome.ALREADY_OWNED else HANDLE_SET_TEXT.format(handle=handle)
        await self.transport.send_message(message.chat_id, text, reply_to_message_id=message.message_id)

    # ── BUTTONS ───────────────────────────────────────────

    async def handle_button(self, press: ButtonPress) -> None:
        user = self._acting_user(press.platform_id)
        try:
            token = callback_tokens.decode(press.data or "")
        except MalformedCallbackError as e:
            logger.warning(f"User {user.stable_id} pressed a malformed button: {e.message}")
            await self.transport.answer_callback(press.callback_id, STALE_BUTTON_TEXT, show_alert=True)
            return

        try:
            if isinstance(token, MessageToken) and token.tag is CallbackTag.OPEN:
                await self._open(user, press, token)
            elif isinstance(token, MessageToken):
                await self._reply(user, press, token)
            else:
                await self._handle_action(user, press, token)
        except (RecipientNotFoundError, SelfAddressingError) as e:
            logger.info(f"Button press by {user.stable_id} rejected: {e.message}")
            await self.transport.answer_callback(press.callback_id, PARTNER_NOT_FOUND_TEXT, show_alert=True)
        except StateConflictError:
            await self.transport.answer_callback(press.callback_id, TRY_AGAIN_TEXT, show_alert=True)

    async def _open(self, opener: User, press: ButtonPress, token: MessageToken) -> None:
        sender = self.identity.resolve_counterpart(opener, token.stable_id)

        await self.transport.answer_callback(press.callback_id, OPENED_ANSWER)
        await self.transport.copy_message(
            press.chat_id,
            sender.platform_id,
            token.message_id,
            reply_markup=reply_keyboard(sender.stable_id, token.message_id, token.delivery_message_id),
            reply_to_message_id=press.reply_to_message_id,
        )
        logger.info(f"User {opener.stable_id} opened message {token.message_id} from {sender.stable_id}")

        await self._best_effort(
            mark_seen=self.transport.edit_message_text(sender.platform_id, token.delivery_message_id, SEEN_TEXT),
            react=self.transport.set_reaction(sender.platform_id, token.message_id, SEEN_REACTION),
            remove_open_button=self.transport.delete_message(press.chat_id, press.message_id),
        )

    async def _reply(self, user: User, press: ButtonPress, token: MessageToken) -> None:
        counterpart = self.identity.resolve_counterpart(user, token.stable_id)
        self.conversations.start_reply(user, counterpart.stable_id, token.message_id, token.delivery_message_id)
        await self.transport.answer_callback(press.callback_id, REPLYING_ANSWER)
        await self.transport.send_message(press.chat_id, REPLY_PROMPT, reply_to_message_id=press.message_id)

    async def _handle_action(self, user: User, press: ButtonPress, action: HandleAction) -> None:
        await self._best_effort(
            remove_menu_buttons=self.transport.remove_reply_markup(press.chat_id, press.message_id),
        )

        if action.tag is CallbackTag.CANCEL_HANDLE:
            self.conversations.reset(user)
            await self.transport.answer_callback(press.callback_id, HANDLE_CANCEL_ANSWER)
        elif action.tag is CallbackTag.SET_HANDLE:
            self.conversations.start_handle_registration(user)
            await self.transport.send_message(press.chat_id, HANDLE_RULES_TEXT, reply_to_message_id=press.message_id)
            await self.transport.answer_callback(press.callback_id, HANDLE_SETTING_ANSWER)
        elif action.tag is CallbackTag.REMOVE_HANDLE:
            self.conversations.remove_handle(user)
            await self.transport.edit_message_text(press.chat_id, press.message_id, HANDLE_REMOVED_TEXT)
            await self.transport.answer_callback(press.callback_id, HANDLE_REMOVED_ANSWER)

    # ── HELPERS ───────────────────────────────────────────

    def _reset_after_command(self, user: User) -> None:
        """Reset once the command's reply is settled; a concurrent event that won keeps its state."""
        try:
            self.conversations.reset(user)
        except StateConflictError:
            logger.warning(f"State of {user.stable_id} changed during a command; leaving it as is")

    async def _best_effort(self, **operations: Awaitable) -> list[str]:
        """
        Run ancillary transport calls concurrently.
        Failures are logged and reported by name, never raised.
        """
        results = await asyncio.gather(*operations.values(), return_exceptions=True)
        failed = []
        for name, result in zip(operations, results):
            if isinstance(result, Exception):
                logger.warning(f"Best-effort step '{name}' failed: {result}")
                failed.append(name)
        return failed
