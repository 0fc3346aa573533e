"""Tests for handle rules, reference resolution and deep links."""

import pytest

from models.user import User
from services.identity_service import (
    IdentityResolver,
    RecipientReference,
    build_links,
    format_links,
    is_valid_handle,
    validate_handle,
)
from utils.errors import InvalidHandleError, RecipientNotFoundError, SelfAddressingError


class TestHandleRules:
    @pytest.mark.parametrize("handle", ["abc", "abc_1", "Alice", "a" * 20, "x_y_z"])
    def test_valid(self, handle: str) -> None:
        assert is_valid_handle(handle)

    @pytest.mark.parametrize(
        "handle",
        ["ab", "a" * 21, "3abc", "_abc", "ab-c", "ab c", "ábc", ""],
    )
    def test_invalid(self, handle: str) -> None:
        assert not is_valid_handle(handle)

    @pytest.mark.parametrize("handle", ["alice\n", "alice\r\n", "\nalice"])
    def test_line_breaks_are_invalid(self, handle: str) -> None:
        assert not is_valid_handle(handle)

    def test_validate_normalizes_to_lowercase(self) -> None:
        assert validate_handle("  Alice_1 ") == "alice_1"

    def test_validate_rejects(self) -> None:
        with pytest.raises(InvalidHandleError):
            validate_handle("3abc")


class TestRecipientReference:
    def test_handle_form(self) -> None:
        ref = RecipientReference.parse("_bob")
        assert ref.is_handle
        assert ref.value == "bob"
        assert str(ref) == "_bob"

    def test_identifier_form(self) -> None:
        ref = RecipientReference.parse("1234-abcd")
        assert not ref.is_handle
        assert ref.value == "1234-abcd"


class TestIdentityResolver:
    def test_resolves_handle_case_insensitively(self, repo) -> None:
        bob = repo.add(2, handle="bob")
        resolver = IdentityResolver(repo)

        assert resolver.resolve("_Bob").stable_id == bob.stable_id
        assert resolver.resolve("_bob").stable_id == bob.stable_id

    def test_resolves_stable_id_exactly(self, repo) -> None:
        bob = repo.add(2)
        resolver = IdentityResolver(repo)

        assert resolver.resolve(bob.stable_id).platform_id == 2
        with pytest.raises(RecipientNotFoundError):
            resolver.resolve(bob.stable_id.upper())

    @pytest.mark.parametrize("reference", ["_nobody", "_", "", "_3bad", "missing-id"])
    def test_unknown_reference(self, repo, reference: str) -> None:
        with pytest.raises(RecipientNotFoundError):
            IdentityResolver(repo).resolve(reference)

    def test_rejects_self_by_handle_and_by_id(self, repo) -> None:
        alice = repo.add(1, handle="alice")
        resolver = IdentityResolver(repo)

        with pytest.raises(SelfAddressingError):
            resolver.resolve_recipient(alice, "_ALICE")
        with pytest.raises(SelfAddressingError):
            resolver.resolve_recipient(alice, alice.stable_id)
        with pytest.raises(SelfAddressingError):
            resolver.resolve_counterpart(alice, alice.stable_id)


class TestLinks:
    def test_user_without_handle_gets_one_link(self) -> None:
        user = User(platform_id=1, stable_id="abc-123")
        assert build_links("relaybot", user) == ["https://t.me/relaybot?start=abc-123"]

    def test_user_with_handle_gets_both_links(self) -> None:
        user = User(platform_id=1, stable_id="abc-123", handle="alice")
        assert format_links("relaybot", user) == (
            "https://t.me/relaybot?start=_alice\n\nor:\n\nhttps://t.me/relaybot?start=abc-123"
        )
