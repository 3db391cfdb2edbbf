"""Unit tests for SessionService: register, login, refresh rotation, logout."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from instructor_auth.errors import (
    ConcurrencyConflictError,
    DuplicateIdentityError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    ValidationError,
)
from instructor_auth.models.auth import RegisterRequest
from instructor_auth.models.user import RegisteredUser, Role
from instructor_auth.services.session_service import SessionService, _parse


async def _login(service, alice):
    await service.register(alice)
    pair = await service.login(alice["username"], alice["password"])
    user = await service.store.get_user(alice["username"])
    return user.id, pair


class TestParse:
    """Tests for input parsing at the service boundary."""

    def test_mapping_is_validated_into_model(self, alice):
        request = _parse(RegisterRequest, alice)
        assert isinstance(request, RegisterRequest)
        assert request.username == "alice"

    def test_model_instance_passes_through(self, alice):
        request = RegisterRequest(**alice)
        assert _parse(RegisterRequest, request) is request

    def test_pydantic_errors_become_validation_error(self):
        with pytest.raises(ValidationError) as exc:
            _parse(RegisterRequest, {"username": "alice"})
        assert exc.value.detail["fields"] == ["email", "name", "password"]


class TestRegister:
    async def test_returns_name_and_email(self, session_service, alice):
        result = await session_service.register(alice)
        assert result == RegisteredUser(name="Alice Liddell", email="alice@x.com")

    async def test_accepts_request_model(self, session_service, alice):
        result = await session_service.register(RegisterRequest(**alice))
        assert result.email == "alice@x.com"

    async def test_password_is_stored_hashed(self, session_service, alice, hasher):
        await session_service.register(alice)
        user = await session_service.store.get_user("alice")
        assert user.password_hash != alice["password"]
        assert hasher.verify_sync(alice["password"], user.password_hash)
        assert user.role == Role.INSTRUCTOR

    @pytest.mark.parametrize(
        "field,value",
        [
            ("username", "a b"),
            ("username", "ab"),
            ("email", "not-an-email"),
            ("password", "     "),
            ("password", "short"),
            ("name", "   "),
        ],
    )
    async def test_bad_shape_raises_validation_error(self, session_service, alice, field, value):
        with pytest.raises(ValidationError) as exc:
            await session_service.register({**alice, field: value})
        assert field in exc.value.detail["fields"]

    async def test_missing_field_raises_validation_error(self, session_service, alice):
        data = dict(alice)
        del data["email"]
        with pytest.raises(ValidationError):
            await session_service.register(data)

    async def test_duplicate_email_rejected(self, session_service, alice):
        await session_service.register(alice)
        with pytest.raises(DuplicateIdentityError):
            await session_service.register({**alice, "username": "alice2"})

    async def test_duplicate_username_rejected(self, session_service, alice):
        await session_service.register(alice)
        with pytest.raises(DuplicateIdentityError):
            await session_service.register({**alice, "email": "other@x.com"})

    async def test_concurrent_colliding_registrations(self, session_service, alice):
        results = await asyncio.gather(
            session_service.register(alice),
            session_service.register({**alice, "username": "alice-two"}),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], DuplicateIdentityError)
        profiles = await session_service.list_instructors()
        assert len(profiles) == 1

    async def test_store_conflict_surfaces_as_duplicate(self, hasher, issuer, alice):
        store = AsyncMock()
        store.create_user.side_effect = ConcurrencyConflictError()
        service = SessionService(store=store, hasher=hasher, issuer=issuer)
        with pytest.raises(DuplicateIdentityError):
            await service.register(alice)


class TestLogin:
    async def test_returns_token_pair_and_opens_session(self, session_service, alice, issuer):
        user_id, pair = await _login(session_service, alice)

        assert issuer.validate_token(pair.access_token, expected_type="access").subject == user_id
        assert issuer.validate_token(pair.refresh_token, expected_type="refresh").subject == user_id
        record = await session_service.store.get_refresh_token(user_id)
        assert record.token_hash != pair.refresh_token

    async def test_email_login_works(self, session_service, alice):
        await session_service.register(alice)
        pair = await session_service.login("alice@x.com", alice["password"])
        assert pair.access_token

    async def test_wrong_password_and_unknown_user_look_the_same(self, session_service, alice):
        await session_service.register(alice)
        with pytest.raises(InvalidCredentialsError) as wrong_password:
            await session_service.login("alice", "not-the-password")
        with pytest.raises(InvalidCredentialsError) as unknown_user:
            await session_service.login("mallory", "whatever")
        assert str(wrong_password.value) == str(unknown_user.value)

    async def test_empty_username_is_invalid_credentials(self, session_service):
        with pytest.raises(InvalidCredentialsError):
            await session_service.login("", "x")

    async def test_second_login_replaces_session(self, session_service, alice):
        user_id, first = await _login(session_service, alice)
        second = await session_service.login("alice", alice["password"])

        with pytest.raises(InvalidTokenError):
            await session_service.refresh(first.refresh_token, user_id)
        assert await session_service.refresh(second.refresh_token, user_id)


class TestProfileAndListing:
    async def test_profile(self, session_service, alice):
        await session_service.register(alice)
        user = await session_service.store.get_user("alice")
        profile = await session_service.profile(user.id)
        assert profile.model_dump() == {
            "name": "Alice Liddell",
            "username": "alice",
            "email": "alice@x.com",
            "role": Role.INSTRUCTOR,
        }

    async def test_profile_unknown_user(self, session_service):
        with pytest.raises(NotFoundError):
            await session_service.profile("01HZZZZZZZZZZZZZZZZZZZZZZZ")

    async def test_list_instructors_one_entry_per_user(self, session_service, alice):
        await session_service.register(alice)
        await session_service.register(
            {"name": "Bob", "username": "bob", "email": "bob@x.com", "password": "hunter22"}
        )
        profiles = await session_service.list_instructors()
        assert sorted(p.username for p in profiles) == ["alice", "bob"]

    async def test_list_refresh_tokens_holds_hashes_only(self, session_service, alice):
        user_id, pair = await _login(session_service, alice)
        records = await session_service.list_refresh_tokens()
        assert [r.user_id for r in records] == [user_id]
        assert records[0].token_hash != pair.refresh_token


class TestRefresh:
    async def test_rotation(self, session_service, alice):
        user_id, original = await _login(session_service, alice)

        rotated = await session_service.refresh(original.refresh_token, user_id)
        assert rotated.refresh_token != original.refresh_token

        with pytest.raises(InvalidTokenError):
            await session_service.refresh(original.refresh_token, user_id)
        assert await session_service.refresh(rotated.refresh_token, user_id)

    async def test_failed_refresh_leaves_record_intact(self, session_service, alice):
        user_id, pair = await _login(session_service, alice)
        before = await session_service.store.get_refresh_token(user_id)

        with pytest.raises(InvalidTokenError):
            await session_service.refresh("garbage", user_id)

        assert await session_service.store.get_refresh_token(user_id) == before
        assert await session_service.refresh(pair.refresh_token, user_id)

    async def test_access_token_is_not_a_refresh_token(self, session_service, alice):
        user_id, pair = await _login(session_service, alice)
        with pytest.raises(InvalidTokenError):
            await session_service.refresh(pair.access_token, user_id)

    async def test_token_of_another_user_rejected(self, session_service, alice, issuer):
        user_id, _ = await _login(session_service, alice)
        foreign = issuer.issue_refresh_token("someone-else")
        with pytest.raises(InvalidTokenError):
            await session_service.refresh(foreign, user_id)

    async def test_validly_signed_but_unstored_token_rejected(self, session_service, alice, issuer):
        user_id, _ = await _login(session_service, alice)
        minted = issuer.issue_refresh_token(user_id)
        with pytest.raises(InvalidTokenError):
            await session_service.refresh(minted, user_id)

    async def test_expired_record_rejected(self, session_service, alice):
        user_id, pair = await _login(session_service, alice)
        record = await session_service.store.get_refresh_token(user_id)
        past = datetime.now(timezone.utc) - timedelta(seconds=1)
        await session_service.store.put_refresh_token(
            user_id, record.token_hash, record.issued_at, past
        )

        with pytest.raises(InvalidTokenError):
            await session_service.refresh(pair.refresh_token, user_id)

    async def test_no_session_raises_not_found(self, session_service, alice):
        await session_service.register(alice)
        user = await session_service.store.get_user("alice")
        with pytest.raises(NotFoundError):
            await session_service.refresh("anything", user.id)

    async def test_concurrent_refreshes_one_wins(self, session_service, alice):
        user_id, pair = await _login(session_service, alice)

        results = await asyncio.gather(
            session_service.refresh(pair.refresh_token, user_id),
            session_service.refresh(pair.refresh_token, user_id),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], (ConcurrencyConflictError, InvalidTokenError))


class TestLogout:
    async def test_logout_ends_session(self, session_service, alice):
        user_id, pair = await _login(session_service, alice)

        assert await session_service.logout(pair.refresh_token, user_id) is True
        with pytest.raises(NotFoundError):
            await session_service.refresh(pair.refresh_token, user_id)

    async def test_logout_with_bad_token_keeps_session(self, session_service, alice):
        user_id, pair = await _login(session_service, alice)

        with pytest.raises(InvalidTokenError):
            await session_service.logout("garbage", user_id)
        assert await session_service.refresh(pair.refresh_token, user_id)


class TestScenario:
    """Register, duplicate, login, rotate, replay, logout, refresh after logout."""

    async def test_full_lifecycle(self, session_service):
        registered = await session_service.register(
            {"name": "Alice", "username": "alice", "email": "alice@x.com", "password": "secret1"}
        )
        assert registered.email == "alice@x.com"

        with pytest.raises(DuplicateIdentityError):
            await session_service.register(
                {"name": "Alice", "username": "alice-b", "email": "alice@x.com", "password": "secret1"}
            )

        first = await session_service.login("alice", "secret1")
        user_id = (await session_service.store.get_user("alice")).id

        second = await session_service.refresh(first.refresh_token, user_id)
        assert second.access_token != first.access_token
        assert second.refresh_token != first.refresh_token

        with pytest.raises(InvalidTokenError):
            await session_service.refresh(first.refresh_token, user_id)

        assert await session_service.logout(second.refresh_token, user_id) is True
        with pytest.raises(NotFoundError):
            await session_service.refresh(second.refresh_token, user_id)
