"""Shared fixtures: an in-memory user store and a recording transport."""

import copy
import itertools
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

import pytest
from telegram.error import Forbidden, TelegramError

from models.user import IDLE, User, UserUpdate
from services.relay_service import RelayService
from utils.errors import HandleTakenError

BOT_USERNAME = "relay_test_bot"


class InMemoryUserRepository:
    """Dict-backed stand-in for UserRepository with the same compare-and-set rules."""

    def __init__(self):
        self.users: dict[str, User] = {}
        self.fail_next_update = False

    # Reads hand out copies, like rows fetched from a database.
    def _copy(self, user: Optional[User]) -> Optional[User]:
        return copy.deepcopy(user) if user else None

    def create(self, platform_id: int) -> User:
        user = User(platform_id=platform_id, stable_id=str(uuid.uuid4()))
        self.users[user.stable_id] = user
        return self._copy(user)

    def ensure(self, platform_id: int) -> User:
        return self.get_by_platform_id(platform_id) or self.create(platform_id)

    def get_by_platform_id(self, platform_id: int) -> Optional[User]:
        return self._copy(next((u for u in self.users.values() if u.platform_id == platform_id), None))

    def get_by_stable_id(self, stable_id: str) -> Optional[User]:
        return self._copy(self.users.get(stable_id))

    def get_by_handle(self, handle: str) -> Optional[User]:
        wanted = handle.lower()
        return self._copy(next((u for u in self.users.values() if u.handle and u.handle.lower() == wanted), None))

    def update(self, stable_id: str, changes: UserUpdate, expected_version: Optional[int] = None) -> bool:
        if self.fail_next_update:
            self.fail_next_update = False
            raise RuntimeError("database unavailable")
        user = self.users.get(stable_id)
        if user is None or (expected_version is not None and user.version != expected_version):
            return False
        if changes.handle is not None:
            owner = self.get_by_handle(changes.handle)
            if owner is not None and owner.stable_id != stable_id:
                raise HandleTakenError(changes.handle)
            user.handle = changes.handle
        elif changes.clear_handle:
            user.handle = None
        if changes.state is not None:
            user.state = changes.state
        user.version += 1
        return True

    def reset_state(self, stable_id: str, expected_version: Optional[int] = None) -> bool:
        return self.update(stable_id, UserUpdate(state=IDLE), expected_version)

    # Test helpers
    def add(self, platform_id: int, handle: Optional[str] = None) -> User:
        user = self.create(platform_id)
        if handle:
            self.users[user.stable_id].handle = handle
        return self.get_by_stable_id(user.stable_id)

    def stored(self, user: User) -> User:
        return self.users[user.stable_id]


@dataclass
class Call:
    method: str
    args: dict[str, Any] = field(default_factory=dict)
    result: Any = None


class RecordingTransport:
    """Transport that records every call and hands out increasing message IDs."""

    def __init__(self):
        self.calls: list[Call] = []
        self.failing: set[str] = set()
        # Chats that have blocked the bot.
        self.blocked_chats: set[int] = set()
        self._ids = itertools.count(1000)

    def _record(self, method: str, **kwargs) -> Call:
        call = Call(method, kwargs)
        self.calls.append(call)
        if method in self.failing:
            raise TelegramError(f"{method} failed")
        if kwargs.get("chat_id") in self.blocked_chats:
            raise Forbidden("Forbidden: bot was blocked by the user")
        return call

    def named(self, method: str) -> list[Call]:
        return [c for c in self.calls if c.method == method]

    async def send_message(self, chat_id, text, reply_markup=None, reply_to_message_id=None) -> int:
        call = self._record(
            "send_message",
            chat_id=chat_id,
            text=text,
            reply_markup=reply_markup,
            reply_to_message_id=reply_to_message_id,
        )
        call.result = next(self._ids)
        return call.result

    async def edit_message_text(self, chat_id, message_id, text) -> None:
        self._record("edit_message_text", chat_id=chat_id, message_id=message_id, text=text)

    async def remove_reply_markup(self, chat_id, message_id) -> None:
        self._record("remove_reply_markup", chat_id=chat_id, message_id=message_id)

    async def delete_message(self, chat_id, message_id) -> None:
        self._record("delete_message", chat_id=chat_id, message_id=message_id)

    async def copy_message(self, to_chat_id, from_chat_id, message_id, reply_markup=None, reply_to_message_id=None) -> int:
        call = self._record(
            "copy_message",
            to_chat_id=to_chat_id,
            from_chat_id=from_chat_id,
            message_id=message_id,
            reply_markup=reply_markup,
            reply_to_message_id=reply_to_message_id,
        )
        call.result = next(self._ids)
        return call.result

    async def set_reaction(self, chat_id, message_id, emoji) -> None:
        self._record("set_reaction", chat_id=chat_id, message_id=message_id, emoji=emoji)

    async def answer_callback(self, callback_id, text=None, show_alert=False) -> None:
        self._record("answer_callback", callback_id=callback_id, text=text, show_alert=show_alert)


@pytest.fixture
def repo() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def relay(repo: InMemoryUserRepository, transport: RecordingTransport) -> RelayService:
    return RelayService(repo, transport, BOT_USERNAME, info_text="Anonymous relay bot")


def button_data(markup) -> str:
    """callback_data of the single button in an inline keyboard."""
    return markup.inline_keyboard[0][0].callback_data
