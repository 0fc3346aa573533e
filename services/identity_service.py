"""
services/identity_service.py
-----------------------------
Resolves recipient references to users and owns the handle rules.

A reference is either a handle-form token (``_alice``) or a stable-ID token
(``3f2c...``). The leading underscore is the only discriminator, which is safe
because a valid handle can never start with one.
"""

import re
from dataclasses import dataclass

from models.user import User
from repositories.user_repo import UserRepository
from utils.errors import InvalidHandleError, RecipientNotFoundError, SelfAddressingError
from utils.logger import get_logger

logger = get_logger(__name__)

HANDLE_MARKER = "_"
HANDLE_MIN_LENGTH = 3
HANDLE_MAX_LENGTH = 20

_HANDLE_CHARS = re.compile(r"[A-Za-z0-9_]+")


def is_valid_handle(handle: str) -> bool:
    """
    Check the handle format rules.

    - 3 to 20 characters
    - ASCII letters, digits and underscores only
    - must start with a letter
    """
    if len(handle) < HANDLE_MIN_LENGTH or len(handle) > HANDLE_MAX_LENGTH:
        return False
    if not _HANDLE_CHARS.fullmatch(handle):
        return False
    first = handle[0]
    return not (first == "_" or first.isdigit())


def normalize_handle(handle: str) -> str:
    """Lowercase a handle for storage and comparisons."""
    return handle.strip().lower()


def validate_handle(raw: str) -> str:
    """
    Validate user input and return the normalized handle.

    Raises:
        InvalidHandleError: If the input breaks the format rules.
    """
    candidate = raw.strip()
    if not is_valid_handle(candidate):
        raise InvalidHandleError(raw)
    return normalize_handle(candidate)


@dataclass(frozen=True)
class RecipientReference:
    """A parsed deep-link argument."""
    value: str
    is_handle: bool

    @classmethod
    def parse(cls, raw: str) -> "RecipientReference":
        if raw.startswith(HANDLE_MARKER):
            return cls(value=raw[len(HANDLE_MARKER):], is_handle=True)
        return cls(value=raw, is_handle=False)

    def __str__(self) -> str:
        return f"{HANDLE_MARKER}{self.value}" if self.is_handle else self.value


class IdentityResolver:
    """Maps recipient references and stable IDs to users."""

    def __init__(self, repo: UserRepository):
        self.repo = repo

    def resolve(self, raw_reference: str) -> User:
        """
        Find the user a deep-link argument points at.

        Raises:
            RecipientNotFoundError: If nobody matches.
        """
        reference = RecipientReference.parse(raw_reference)
        if reference.is_handle:
            # Lookup is case-insensitive; malformed handles cannot exist in the store.
            user = self.repo.get_by_handle(reference.value) if is_valid_handle(reference.value) else None
        else:
            user = self.repo.get_by_stable_id(reference.value) if reference.value else None
        if user is None:
            raise RecipientNotFoundError(str(reference))
        return user

    def resolve_stable_id(self, stable_id: str) -> User:
        """Exact stable-ID lookup, used for IDs carried in tokens and state."""
        user = self.repo.get_by_stable_id(stable_id)
        if user is None:
            raise RecipientNotFoundError(stable_id)
        return user

    def resolve_recipient(self, sender: User, raw_reference: str) -> User:
        """Resolve a reference on behalf of ``sender``, rejecting self-relay."""
        recipient = self.resolve(raw_reference)
        ensure_not_self(sender, recipient)
        return recipient

    def resolve_counterpart(self, actor: User, stable_id: str) -> User:
        """Resolve a stable ID on behalf of ``actor``, rejecting self-relay."""
        counterpart = self.resolve_stable_id(stable_id)
        ensure_not_self(actor, counterpart)
        return counterpart


def ensure_not_self(actor: User, target: User) -> None:
    """
    Raises:
        SelfAddressingError: If both users are the same account.
    """
    if actor.stable_id == target.stable_id or actor.platform_id == target.platform_id:
        raise SelfAddressingError(actor.stable_id)


def build_links(bot_username: str, user: User) -> list[str]:
    """
    Deep links that open a conversation with ``user``.
    The handle link comes first when the user has one.
    """
    base = f"https://t.me/{bot_username}?start="
    links = []
    if user.handle:
        links.append(f"{base}{HANDLE_MARKER}{user.handle}")
    links.append(f"{base}{user.stable_id}")
    return links


def format_links(bot_username: str, user: User) -> str:
    return "\n\nor:\n\n".join(build_links(bot_username, user))
