"""Unit tests for homectrl/auth/credentials.py.

Verifies:
  - add_user then verify: right password True, wrong password False
  - unknown users are rejected (and still pay a bcrypt check)
  - last write wins; replace_users drops users absent from the new map
  - plaintext is never retained; oversized passwords rejected on add
"""

from __future__ import annotations

from unittest.mock import patch

import bcrypt
import pytest

from homectrl.auth.credentials import CredentialStore
from homectrl.errors import ValidationError

ROUNDS = 4


@pytest.fixture
def store() -> CredentialStore:
    return CredentialStore(rounds=ROUNDS)


class TestVerify:
    def test_valid_pair_verifies(self, store: CredentialStore) -> None:
        store.add_user("alice", "wonderland")
        assert store.verify("alice", "wonderland") is True

    def test_wrong_password_rejected(self, store: CredentialStore) -> None:
        store.add_user("alice", "wonderland")
        assert store.verify("alice", "looking-glass") is False

    def test_unknown_user_rejected(self, store: CredentialStore) -> None:
        assert store.verify("nobody", "anything") is False

    def test_unknown_user_still_checks_a_hash(self, store: CredentialStore) -> None:
        """Timing equalisation: bcrypt runs even when the username is absent."""
        with patch("homectrl.auth.credentials.bcrypt.checkpw", return_value=True) as checkpw:
            assert store.verify("nobody", "anything") is False
        checkpw.assert_called_once()

    def test_empty_password_is_just_a_wrong_password(self, store: CredentialStore) -> None:
        store.add_user("alice", "wonderland")
        assert store.verify("alice", "") is False

    def test_oversized_candidate_rejected(self, store: CredentialStore) -> None:
        store.add_user("alice", "wonderland")
        assert store.verify("alice", "x" * 200) is False

    def test_candidate_past_72_bytes_does_not_match_prefix(
        self, store: CredentialStore
    ) -> None:
        password = "a" * 72
        store.add_user("alice", password)
        assert store.verify("alice", password) is True
        assert store.verify("alice", password + "b") is False

    def test_oversized_candidate_never_reaches_stored_hash(
        self, store: CredentialStore
    ) -> None:
        """bcrypt 4.x truncates instead of raising; the length check must come first."""
        store.add_user("alice", "a" * 72)
        with patch("homectrl.auth.credentials.bcrypt.checkpw", return_value=True) as checkpw:
            assert store.verify("alice", "a" * 73) is False
        checkpw.assert_called_once()
        candidate, hashed = checkpw.call_args.args
        assert hashed is store._dummy_hash
        assert len(candidate) == 72


class TestAddUser:
    def test_last_write_wins(self, store: CredentialStore) -> None:
        store.add_user("alice", "first")
        store.add_user("alice", "second")
        assert store.verify("alice", "second") is True
        assert store.verify("alice", "first") is False

    def test_plaintext_not_retained(self, store: CredentialStore) -> None:
        store.add_user("alice", "wonderland")
        stored = store._hashes["alice"]
        assert stored != b"wonderland"
        assert bcrypt.checkpw(b"wonderland", stored)

    def test_empty_username_rejected(self, store: CredentialStore) -> None:
        with pytest.raises(ValidationError):
            store.add_user("", "pw")

    def test_password_over_72_bytes_rejected(self, store: CredentialStore) -> None:
        with pytest.raises(ValidationError):
            store.add_user("alice", "é" * 40)


class TestReplaceUsers:
    def test_replace_swaps_whole_map(self, store: CredentialStore) -> None:
        store.add_user("alice", "a")
        store.replace_users({"bob": "b"})
        assert store.verify("bob", "b") is True
        assert store.verify("alice", "a") is False
        assert store.usernames() == ["bob"]

    def test_invalid_map_leaves_previous_users(self, store: CredentialStore) -> None:
        store.add_user("alice", "a")
        with pytest.raises(ValidationError):
            store.replace_users({"bob": "b", "carol": "x" * 100})
        assert store.usernames() == ["alice"]

    def test_len(self, store: CredentialStore) -> None:
        store.replace_users({"a": "1", "b": "2"})
        assert len(store) == 2
