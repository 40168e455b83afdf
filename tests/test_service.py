"""Unit tests for auth/service.py -- the signup, signin, update, and search flows.

Covers:
- signup creates exactly one user + account with balance in [0, ceiling)
- signup ignores nothing it should trust: no client balance path exists
- duplicate userId -> DuplicateIdentity, no second user
- signin: identical InvalidCredentials for wrong password and unknown user
- update_profile: partial semantics, no-op detection, validation, NotFound
- search_directory: caller always excluded, secrets never exposed
- storage failures are downgraded to InternalFailure
"""

from __future__ import annotations

from dataclasses import fields
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from auth import service
from auth.errors import DuplicateIdentity, InternalFailure, InvalidCredentials, NotFound, ValidationError
from auth.models import DirectoryEntry, TokenClaims
from auth.store import UserStore
from auth.tokens import verify_access_token, verify_password
from core.config import get_settings


def _claims(user_id: int, login: str = "someone") -> TokenClaims:
    now = datetime.now(timezone.utc)
    return TokenClaims(id=user_id, user_id=login, first_name="X", issued_at=now, expires_at=now + timedelta(days=7))


class TestSignup:
    def test_creates_user_account_and_token(self, store: UserStore, make_user) -> None:
        result = make_user()
        assert result.user.id is not None
        assert 0 <= result.account.balance < get_settings().initial_balance_ceiling
        stored_account = store.get_account(result.user.id)
        assert stored_account is not None
        assert stored_account.balance == result.account.balance
        assert verify_access_token(result.token).id == result.user.id

    def test_password_is_hashed(self, store: UserStore, make_user) -> None:
        make_user(password="hunter2")
        stored = store.get_by_user_id("ann1")
        assert stored.hashed_password != "hunter2"
        assert verify_password("hunter2", stored.hashed_password)

    def test_balance_drawn_from_ceiling(self, store: UserStore, monkeypatch: pytest.MonkeyPatch) -> None:
        seen: list[int] = []

        def fake_randbelow(n: int) -> int:
            seen.append(n)
            return n - 1

        monkeypatch.setattr(service.secrets, "randbelow", fake_randbelow)
        result = service.signup(store, "Ann", "Lee", "ann1", "p")
        assert seen == [get_settings().initial_balance_ceiling]
        assert result.account.balance == get_settings().initial_balance_ceiling - 1

    def test_duplicate_rejected(self, store: UserStore, make_user) -> None:
        make_user()
        with pytest.raises(DuplicateIdentity):
            make_user(first="Other", last="Person")
        assert len(store.search_users(None, exclude_id=-1)) == 1

    def test_names_are_stripped(self, store: UserStore, make_user) -> None:
        result = make_user(first="  Ann ", last=" Lee")
        assert result.user.first_name == "Ann"
        assert store.get_by_id(result.user.id).last_name == "Lee"

    @pytest.mark.parametrize(
        "first, last, user_id, password, bad_field",
        [
            ("", "Lee", "ann1", "p", "firstName"),
            ("Ann", "   ", "ann1", "p", "lastName"),
            ("Ann", "Lee", "a", "p", "userId"),
            ("Ann", "Lee", "ann 1", "p", "userId"),
            ("Ann", "Lee", "ann1", "", "password"),
            ("Ann", "Lee", "ann1", "x" * 73, "password"),
            ("Ann", "Lee", "ann1", "é" * 37, "password"),
        ],
    )
    def test_invalid_input(self, store: UserStore, first, last, user_id, password, bad_field) -> None:
        with pytest.raises(ValidationError) as info:
            service.signup(store, first, last, user_id, password)
        assert bad_field in {d["field"] for d in info.value.detail}
        assert not store.has_users()


class TestSignin:
    def test_valid_credentials(self, store: UserStore, make_user) -> None:
        created = make_user()
        result = service.signin(store, "ann1", "p")
        assert result.user.id == created.user.id
        assert verify_access_token(result.token).id == created.user.id

    def test_password_whitespace_is_significant(self, store: UserStore, make_user) -> None:
        make_user(password="  secret  ")
        assert service.signin(store, "ann1", "  secret  ").user.user_id == "ann1"
        with pytest.raises(InvalidCredentials):
            service.signin(store, "ann1", "secret")

    def test_overlong_password_is_bad_credentials(self, store: UserStore, make_user) -> None:
        make_user()
        with pytest.raises(InvalidCredentials):
            service.signin(store, "ann1", "x" * 100)

    def test_wrong_password_and_unknown_user_indistinguishable(self, store: UserStore, make_user) -> None:
        make_user()
        with pytest.raises(InvalidCredentials) as wrong:
            service.signin(store, "ann1", "wrong")
        with pytest.raises(InvalidCredentials) as unknown:
            service.signin(store, "nobody", "p")
        assert wrong.value.message == unknown.value.message
        assert wrong.value.code == unknown.value.code
        assert wrong.value.status_code == unknown.value.status_code


class TestUpdateProfile:
    def test_last_name_only(self, store: UserStore, make_user) -> None:
        created = make_user()
        before = store.get_by_id(created.user.id)
        result = service.update_profile(store, _claims(created.user.id), {"lastName": "X"})
        after = store.get_by_id(created.user.id)
        assert result.changed_fields == ["lastName"]
        assert after.last_name == "X"
        assert after.first_name == before.first_name
        assert after.hashed_password == before.hashed_password

    def test_none_values_are_absent(self, store: UserStore, make_user) -> None:
        created = make_user()
        result = service.update_profile(
            store, _claims(created.user.id), {"firstName": "Annie", "lastName": None, "password": None}
        )
        assert result.changed_fields == ["firstName"]
        assert store.get_by_id(created.user.id).last_name == "Lee"

    def test_same_values_are_no_change(self, store: UserStore, make_user) -> None:
        created = make_user()
        result = service.update_profile(
            store, _claims(created.user.id), {"firstName": "Ann", "lastName": "Lee", "password": "p"}
        )
        assert not result.changed
        assert result.changed_fields == []

    def test_empty_changes_are_no_change(self, store: UserStore, make_user) -> None:
        created = make_user()
        assert not service.update_profile(store, _claims(created.user.id), {}).changed

    def test_password_change_rehashes(self, store: UserStore, make_user) -> None:
        created = make_user()
        result = service.update_profile(store, _claims(created.user.id), {"password": "new-secret"})
        assert result.changed_fields == ["password"]
        stored = store.get_by_id(created.user.id)
        assert verify_password("new-secret", stored.hashed_password)
        assert not verify_password("p", stored.hashed_password)

    def test_only_callers_record_changes(self, store: UserStore, make_user) -> None:
        ann = make_user()
        bob = make_user(first="Bob", last="Ray", user_id="bob1")
        service.update_profile(store, _claims(bob.user.id), {"firstName": "Robert"})
        assert store.get_by_id(bob.user.id).first_name == "Robert"
        assert store.get_by_id(ann.user.id).first_name == "Ann"

    def test_identity_fields_cannot_be_updated(self, store: UserStore, make_user) -> None:
        created = make_user()
        with pytest.raises(ValidationError) as info:
            service.update_profile(store, _claims(created.user.id), {"userId": "hijack"})
        assert info.value.detail == [{"field": "userId", "message": "cannot be updated"}]
        assert store.get_by_user_id("ann1") is not None

    def test_blank_name_rejected(self, store: UserStore, make_user) -> None:
        created = make_user()
        with pytest.raises(ValidationError):
            service.update_profile(store, _claims(created.user.id), {"firstName": "  "})
        assert store.get_by_id(created.user.id).first_name == "Ann"

    def test_overlong_password_rejected(self, store: UserStore, make_user) -> None:
        created = make_user()
        with pytest.raises(ValidationError) as info:
            service.update_profile(store, _claims(created.user.id), {"password": "é" * 37})
        assert info.value.detail[0]["field"] == "password"
        assert verify_password("p", store.get_by_id(created.user.id).hashed_password)

    def test_overlong_name_rejected(self, store: UserStore, make_user) -> None:
        created = make_user()
        with pytest.raises(ValidationError):
            service.update_profile(store, _claims(created.user.id), {"lastName": "x" * 51})

    def test_missing_record_is_not_found(self, store: UserStore) -> None:
        with pytest.raises(NotFound):
            service.update_profile(store, _claims(424242), {"firstName": "Ghost"})


class TestSearchDirectory:
    @pytest.fixture
    def people(self, make_user) -> dict[str, int]:
        return {
            "ann": make_user().user.id,
            "joanna": make_user(first="Joanna", last="Smith", user_id="jo22").user.id,
            "bob": make_user(first="Bob", last="Ray", user_id="bob1").user.id,
        }

    @pytest.mark.parametrize("name_filter", [None, "", "   ", "ann", "ANN", "a"])
    def test_caller_never_in_results(self, store: UserStore, people: dict[str, int], name_filter) -> None:
        entries = service.search_directory(store, _claims(people["ann"]), name_filter)
        assert people["ann"] not in {e.id for e in entries}

    def test_no_filter_returns_all_others(self, store: UserStore, people: dict[str, int]) -> None:
        entries = service.search_directory(store, _claims(people["bob"]))
        assert {e.id for e in entries} == {people["ann"], people["joanna"]}

    def test_filter_matches_other_user(self, store: UserStore, people: dict[str, int]) -> None:
        entries = service.search_directory(store, _claims(people["bob"]), "ann")
        assert [e.display_name for e in entries] == ["Ann Lee", "Joanna Smith"]

    def test_no_match_is_empty(self, store: UserStore, people: dict[str, int]) -> None:
        assert service.search_directory(store, _claims(people["bob"]), "zzz") == []

    def test_entries_carry_no_secret(self) -> None:
        assert {f.name for f in fields(DirectoryEntry)} == {"id", "first_name", "last_name", "display_name"}


class TestFailureBoundary:
    def test_storage_error_becomes_internal_failure(self, store: UserStore, monkeypatch: pytest.MonkeyPatch) -> None:
        def boom(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(store, "search_users", boom)
        with pytest.raises(InternalFailure) as info:
            service.search_directory(store, _claims(1), "x")
        assert "disk" not in info.value.message

    def test_signin_storage_error(self, store: UserStore, monkeypatch: pytest.MonkeyPatch) -> None:
        def boom(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("db locked"))

        monkeypatch.setattr(store, "get_by_user_id", boom)
        with pytest.raises(InternalFailure):
            service.signin(store, "ann1", "p")


class TestBalance:
    def test_own_balance(self, store: UserStore, make_user) -> None:
        created = make_user()
        assert service.get_balance(store, _claims(created.user.id)).balance == created.account.balance

    def test_missing_account(self, store: UserStore) -> None:
        with pytest.raises(NotFound):
            service.get_balance(store, _claims(99))
