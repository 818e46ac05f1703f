"""Tests for the authorization service on the in-memory backend."""

import pytest
import pytest_asyncio

from planner_auth.core.exceptions import (
    CacheError,
    DuplicateAccountError,
    IdentityStoreError,
    InvalidCredentialsError,
    InvalidSessionError,
    InvalidTokenError,
    PermissionDeniedError,
    PermissionServiceUnavailableError,
    RateLimitedError,
    ResourceNotFoundError,
    UserInactiveError,
    ValidationError,
)
from planner_auth.features.auth import SessionState
from planner_auth.features.identity import ExternalIdentity, User

EMAIL = "a@example.com"
PASSWORD = "longenough1"


@pytest_asyncio.fixture
async def registered(auth_service):
    return await auth_service.register(EMAIL, PASSWORD, "Ann", "Lee", client_ip="10.0.0.1")


@pytest_asyncio.fixture
async def logged_in(auth_service, registered):
    return await auth_service.login(EMAIL, PASSWORD, client_ip="10.0.0.1", user_agent="pytest")


class TestRegistration:
    """Local account creation."""

    @pytest.mark.asyncio
    async def test_register_creates_account_and_admin_grant(
        self, auth_service, identity_store, relationship_store, registered
    ):
        assert registered.email == EMAIL
        assert registered.password_hash != PASSWORD
        assert registered.organization_id

        organization = await identity_store.get_organization(registered.organization_id)
        assert organization.name == "Ann's Organization"
        assert organization.created_by == registered.id
        assert await relationship_store.check_permission(
            registered.id, "manage_members", "organization", registered.organization_id
        )

        audit = await identity_store.list_audit_log(user_id=registered.id)
        assert [e.action for e in audit] == ["register"]

    @pytest.mark.asyncio
    async def test_email_is_normalized(self, auth_service):
        user = await auth_service.register("Ann@Example.COM", PASSWORD, "Ann")

        assert user.email == "ann@example.com"

    @pytest.mark.asyncio
    async def test_duplicate_email(self, auth_service, registered):
        with pytest.raises(DuplicateAccountError):
            await auth_service.register(EMAIL.upper(), PASSWORD, "Other")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "email, password, first_name",
        [
            ("not-an-email", PASSWORD, "Ann"),
            ("", PASSWORD, "Ann"),
            (EMAIL, "short", "Ann"),
            (EMAIL, PASSWORD, "   "),
        ],
    )
    async def test_invalid_input(self, auth_service, email, password, first_name):
        with pytest.raises(ValidationError):
            await auth_service.register(email, password, first_name)

    @pytest.mark.asyncio
    async def test_failed_durable_write_removes_grant(
        self, auth_service, identity_store, relationship_store, mocker
    ):
        mocker.patch.object(identity_store, "create_account", side_effect=IdentityStoreError("down"))

        with pytest.raises(IdentityStoreError):
            await auth_service.register(EMAIL, PASSWORD, "Ann")

        assert len(relationship_store) == 0
        assert await identity_store.find_user_by_email(EMAIL) is None

    @pytest.mark.asyncio
    async def test_failed_compensation_keeps_original_error(
        self, auth_service, identity_store, relationship_store, mocker
    ):
        mocker.patch.object(identity_store, "create_account", side_effect=IdentityStoreError("down"))
        mocker.patch.object(
            relationship_store, "delete_relationship", side_effect=PermissionServiceUnavailableError("down")
        )

        with pytest.raises(IdentityStoreError):
            await auth_service.register(EMAIL, PASSWORD, "Ann")


class TestLogin:
    """Credential verification and session creation."""

    @pytest.mark.asyncio
    async def test_register_then_login(self, auth_service, session_cache, identity_store, registered, logged_in):
        assert logged_in.user["id"] == registered.id
        assert "password_hash" not in logged_in.user

        session = await session_cache.get_session(logged_in.session_id)
        assert session.user_id == registered.id
        assert session.token == logged_in.token
        assert session.ip_address == "10.0.0.1"
        assert session.attributes["email"] == EMAIL

        user = await identity_store.find_user_by_id(registered.id)
        assert user.last_login_at is not None
        audit = await identity_store.list_audit_log(user_id=registered.id)
        assert audit[0].action == "login"

    @pytest.mark.asyncio
    async def test_each_login_gets_a_fresh_token(self, auth_service, registered):
        first = await auth_service.login(EMAIL, PASSWORD, client_ip="10.0.0.2")
        second = await auth_service.login(EMAIL, PASSWORD, client_ip="10.0.0.2")

        assert first.session_id != second.session_id
        assert first.token != second.token

    @pytest.mark.asyncio
    async def test_wrong_password(self, auth_service, registered):
        with pytest.raises(InvalidCredentialsError):
            await auth_service.login(EMAIL, "wrongpassword", client_ip="10.0.0.1")

    @pytest.mark.asyncio
    async def test_unknown_and_inactive_users_look_the_same(self, auth_service, identity_store, registered):
        with pytest.raises(InvalidCredentialsError) as unknown:
            await auth_service.login("nobody@example.com", PASSWORD, client_ip="10.0.0.1")

        await identity_store.deactivate_user(registered.id)
        with pytest.raises(InvalidCredentialsError) as inactive:
            await auth_service.login(EMAIL, PASSWORD, client_ip="10.0.0.1")

        assert str(unknown.value) == str(inactive.value)

    @pytest.mark.asyncio
    async def test_sixth_attempt_is_rate_limited(self, auth_service, registered):
        for _ in range(5):
            with pytest.raises(InvalidCredentialsError):
                await auth_service.login(EMAIL, "wrongpassword", client_ip="10.0.0.9")

        with pytest.raises(RateLimitedError) as exc_info:
            await auth_service.login(EMAIL, PASSWORD, client_ip="10.0.0.9")

        assert 0 < exc_info.value.retry_after <= 300

    @pytest.mark.asyncio
    async def test_rate_limiter_outage_allows_login(self, auth_service, session_cache, registered, mocker):
        mocker.patch.object(session_cache, "check_rate_limit", side_effect=CacheError("down"))

        result = await auth_service.login(EMAIL, PASSWORD, client_ip="10.0.0.1")

        assert result.token

    @pytest.mark.asyncio
    async def test_login_seeds_settings_cache(self, auth_service, identity_store, session_cache, registered):
        await identity_store.upsert_setting("user", registered.id, "theme", "dark")

        await auth_service.login(EMAIL, PASSWORD, client_ip="10.0.0.1")

        assert await session_cache.get_setting("user", registered.id, "theme") == "dark"

    @pytest.mark.asyncio
    async def test_login_reports_rate_limit_state(self, auth_service, registered):
        result = await auth_service.login(EMAIL, PASSWORD, client_ip="10.0.0.3")

        assert result.rate_limit.limit == 5
        assert result.rate_limit.remaining == 4
        assert "rate_limit" not in result.to_dict()

    @pytest.mark.asyncio
    async def test_rate_limited_error_carries_counter_state(self, auth_service, registered):
        for _ in range(5):
            await auth_service.login(EMAIL, PASSWORD, client_ip="10.0.0.4")

        with pytest.raises(RateLimitedError) as exc_info:
            await auth_service.login(EMAIL, PASSWORD, client_ip="10.0.0.4")

        assert exc_info.value.limit == 5
        assert exc_info.value.remaining == 0

    @pytest.mark.asyncio
    async def test_settings_cache_outage_does_not_fail_login(self, auth_service, session_cache, registered, mocker):
        mocker.patch.object(session_cache, "set_all_settings", side_effect=CacheError("down"))

        result = await auth_service.login(EMAIL, PASSWORD, client_ip="10.0.0.1")

        assert await session_cache.peek_session(result.session_id) is not None

    @pytest.mark.asyncio
    async def test_failed_login_bookkeeping_discards_session(
        self, auth_service, identity_store, session_cache, registered, mocker
    ):
        mocker.patch.object(identity_store, "update_last_login", side_effect=IdentityStoreError("down"))
        delete_spy = mocker.spy(session_cache, "delete_session")

        with pytest.raises(IdentityStoreError):
            await auth_service.login(EMAIL, PASSWORD, client_ip="10.0.0.1")

        session_id = delete_spy.call_args.args[0]
        assert await session_cache.peek_session(session_id) is None

    @pytest.mark.asyncio
    async def test_identity_provider_login(self, auth_service, session_cache):
        result = await auth_service.login_with_identity(ExternalIdentity("ext-1", "Ann"), client_ip="10.0.0.1")

        session = await session_cache.get_session(result.session_id)
        assert session.attributes["display_name"] == "Ann"
        assert result.user["display_name"] == "Ann"


class TestSessions:
    """Session validation and logout."""

    @pytest.mark.asyncio
    async def test_validate_session(self, auth_service, registered, logged_in):
        session = await auth_service.validate_session(logged_in.session_id, logged_in.token)

        assert session.user_id == registered.id

    @pytest.mark.asyncio
    async def test_missing_credentials(self, auth_service, logged_in):
        with pytest.raises(InvalidSessionError):
            await auth_service.validate_session(None, logged_in.token)
        with pytest.raises(InvalidTokenError):
            await auth_service.validate_session(logged_in.session_id, None)

    @pytest.mark.asyncio
    async def test_unknown_session_and_wrong_token(self, auth_service, logged_in):
        with pytest.raises(InvalidSessionError):
            await auth_service.validate_session("missing", logged_in.token)
        with pytest.raises(InvalidTokenError):
            await auth_service.validate_session(logged_in.session_id, "forged")

    @pytest.mark.asyncio
    async def test_wrong_token_does_not_extend_session(self, auth_service, clock, logged_in):
        clock.advance(3000)
        with pytest.raises(InvalidTokenError):
            await auth_service.validate_session(logged_in.session_id, "forged")

        clock.advance(700)
        with pytest.raises(InvalidSessionError):
            await auth_service.validate_session(logged_in.session_id, logged_in.token)

    @pytest.mark.asyncio
    async def test_valid_token_extends_session(self, auth_service, clock, logged_in):
        clock.advance(3000)
        session = await auth_service.validate_session(logged_in.session_id, logged_in.token)
        assert session.last_accessed_at == clock.now

        clock.advance(700)
        assert await auth_service.validate_session(logged_in.session_id, logged_in.token)

    @pytest.mark.asyncio
    async def test_inactive_user_session_is_dropped(
        self, auth_service, identity_store, session_cache, registered, logged_in
    ):
        await identity_store.deactivate_user(registered.id)

        with pytest.raises(UserInactiveError):
            await auth_service.validate_session(logged_in.session_id, logged_in.token)

        assert await session_cache.get_session(logged_in.session_id) is None

    @pytest.mark.asyncio
    async def test_logout(self, auth_service, identity_store, session_cache, registered, logged_in):
        await auth_service.logout(logged_in.session_id)

        assert await session_cache.get_session(logged_in.session_id) is None
        audit = await identity_store.list_audit_log(user_id=registered.id)
        assert audit[0].action == "logout"

        await auth_service.logout(logged_in.session_id)

    @pytest.mark.asyncio
    async def test_logout_deletes_even_when_audit_fails(
        self, auth_service, identity_store, session_cache, logged_in
    ):
        identity_store.available = False

        await auth_service.logout(logged_in.session_id)

        assert await session_cache.get_session(logged_in.session_id) is None

    @pytest.mark.asyncio
    async def test_session_state(self, auth_service, logged_in):
        assert (await auth_service.session_state(None, None))[0] == SessionState.ANONYMOUS
        assert (await auth_service.session_state("missing", "tok"))[0] == SessionState.EXPIRED
        assert (await auth_service.session_state(logged_in.session_id, "forged"))[0] == SessionState.REVOKED

        state, session = await auth_service.session_state(logged_in.session_id, logged_in.token)
        assert state == SessionState.AUTHENTICATED
        assert session.session_id == logged_in.session_id

    @pytest.mark.asyncio
    async def test_current_user_records_activity(self, auth_service, registered):
        user = await auth_service.current_user(registered.id)

        assert user.id == registered.id
        with pytest.raises(ResourceNotFoundError):
            await auth_service.current_user("missing")


class TestAuthorization:
    """Fail-closed permission checks with auditing of sensitive ones."""

    @pytest.mark.asyncio
    async def test_authorize_allows_and_audits_sensitive(self, auth_service, identity_store, registered):
        allowed = await auth_service.authorize(registered.id, "delete", "organization", registered.organization_id)

        assert allowed is True
        entry = (await identity_store.list_audit_log(user_id=registered.id))[0]
        assert entry.action == "permission_check_delete"
        assert entry.after_value == {"allowed": True}

    @pytest.mark.asyncio
    async def test_non_sensitive_checks_are_not_audited(self, auth_service, identity_store, registered):
        await auth_service.authorize(registered.id, "view", "organization", registered.organization_id)

        actions = [e.action for e in await identity_store.list_audit_log(user_id=registered.id)]
        assert actions == ["register"]

    @pytest.mark.asyncio
    async def test_store_outage_denies(self, auth_service, identity_store, relationship_store, registered):
        relationship_store.available = False

        allowed = await auth_service.authorize(registered.id, "update", "organization", registered.organization_id)

        assert allowed is False
        entry = (await identity_store.list_audit_log(user_id=registered.id))[0]
        assert entry.after_value == {"allowed": False, "error": "PermissionServiceUnavailableError"}

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_change_decision(self, auth_service, identity_store, registered):
        identity_store.available = False

        assert await auth_service.authorize(registered.id, "delete", "organization", registered.organization_id)

    @pytest.mark.asyncio
    async def test_require_permission(self, auth_service, registered):
        await auth_service.require_permission(registered.id, "view", "organization", registered.organization_id)

        with pytest.raises(PermissionDeniedError):
            await auth_service.require_permission("stranger", "view", "organization", registered.organization_id)

    @pytest.mark.asyncio
    async def test_role_permissions(self, auth_service, identity_store, organization_service):
        organization = await organization_service.create_organization("Acme")
        group = await organization_service.create_group(organization.id, "Devs")
        role = await organization_service.create_role(group.id, "Dev", ["tasks.*", "boards.view"])
        await identity_store.create_user(
            User(id="u1", organization_id=organization.id, group_id=group.id, role_id=role.id)
        )
        await identity_store.create_user(User(id="u2"))
        await identity_store.create_user(User(id="root", is_admin=True))

        assert await auth_service.has_role_permission("u1", "tasks.create")
        assert await auth_service.has_role_permission("u1", "boards.view")
        assert not await auth_service.has_role_permission("u1", "boards.delete")
        assert not await auth_service.has_role_permission("u2", "tasks.view")
        assert await auth_service.has_role_permission("root", "anything")
        assert not await auth_service.has_role_permission("missing", "tasks.view")

        identity_store.available = False
        assert not await auth_service.has_role_permission("u1", "tasks.create")


class TestSettings:
    """Cache-aside reads and write-through writes."""

    @pytest.mark.asyncio
    async def test_cache_aside_read(self, auth_service, identity_store, mocker):
        await identity_store.upsert_setting("user", "u1", "theme", "dark")
        spy = mocker.spy(identity_store, "get_setting")

        assert await auth_service.get_setting("user", "u1", "theme") == "dark"
        assert await auth_service.get_setting("user", "u1", "theme") == "dark"

        assert spy.call_count == 1

    @pytest.mark.asyncio
    async def test_miss_returns_default(self, auth_service, session_cache):
        assert await auth_service.get_setting("user", "u1", "theme", "light") == "light"
        assert await session_cache.get_all_settings("user", "u1") == {}

    @pytest.mark.asyncio
    async def test_cache_outage_reads_durable_store(self, auth_service, identity_store, session_cache):
        await identity_store.upsert_setting("team", "t1", "color", "blue")
        session_cache.store.available = False

        assert await auth_service.get_setting("team", "t1", "color") == "blue"

    @pytest.mark.asyncio
    async def test_write_through(self, auth_service, identity_store, session_cache):
        await auth_service.set_setting("user", "u1", "theme", {"mode": "dark"})

        assert await identity_store.get_setting("user", "u1", "theme") == {"mode": "dark"}
        assert await session_cache.get_setting("user", "u1", "theme") == {"mode": "dark"}

    @pytest.mark.asyncio
    async def test_failed_cache_write_evicts(self, auth_service, identity_store, session_cache, mocker):
        await session_cache.set_setting("user", "u1", "theme", "stale")
        mocker.patch.object(session_cache, "set_setting", side_effect=CacheError("down"))

        await auth_service.set_setting("user", "u1", "theme", "fresh")

        assert await session_cache.get_setting("user", "u1", "theme") is None
        assert await auth_service.get_setting("user", "u1", "theme") == "fresh"

    @pytest.mark.asyncio
    async def test_failed_durable_write_leaves_cache(self, auth_service, identity_store, session_cache, mocker):
        mocker.patch.object(identity_store, "upsert_setting", side_effect=IdentityStoreError("down"))

        with pytest.raises(IdentityStoreError):
            await auth_service.set_setting("user", "u1", "theme", "dark")

        assert await session_cache.get_setting("user", "u1", "theme") is None

    @pytest.mark.asyncio
    async def test_delete(self, auth_service, session_cache):
        await auth_service.set_setting("user", "u1", "theme", "dark")

        assert await auth_service.delete_setting("user", "u1", "theme") is True
        assert await session_cache.get_setting("user", "u1", "theme") is None
        assert await auth_service.get_setting("user", "u1", "theme") is None
        assert await auth_service.delete_setting("user", "u1", "theme") is False

    @pytest.mark.asyncio
    async def test_get_all_falls_back_and_repopulates(self, auth_service, identity_store, session_cache):
        await identity_store.upsert_setting("project", "p1", "a", 1)
        await identity_store.upsert_setting("project", "p1", "b", 2)

        assert await auth_service.get_all_settings("project", "p1") == {"a": 1, "b": 2}
        assert await session_cache.get_all_settings("project", "p1") == {"a": 1, "b": 2}

    @pytest.mark.asyncio
    async def test_get_all_ignores_partially_cached_entity(self, auth_service, identity_store):
        await identity_store.upsert_setting("board", "b1", "a", 1)
        await identity_store.upsert_setting("board", "b1", "b", 2)

        assert await auth_service.get_setting("board", "b1", "a") == 1
        assert await auth_service.get_all_settings("board", "b1") == {"a": 1, "b": 2}

    @pytest.mark.asyncio
    async def test_complete_listing_is_served_from_cache(self, auth_service, identity_store, mocker):
        await identity_store.upsert_setting("project", "p1", "a", 1)
        await auth_service.get_all_settings("project", "p1")
        list_spy = mocker.spy(identity_store, "list_settings")

        await auth_service.set_setting("project", "p1", "b", 2)

        assert await auth_service.get_all_settings("project", "p1") == {"a": 1, "b": 2}
        assert list_spy.call_count == 0

    @pytest.mark.asyncio
    async def test_deleted_setting_leaves_listing(self, auth_service, identity_store):
        await identity_store.upsert_setting("project", "p1", "a", 1)
        await identity_store.upsert_setting("project", "p1", "b", 2)
        await auth_service.get_all_settings("project", "p1")

        await auth_service.delete_setting("project", "p1", "b")

        assert await auth_service.get_all_settings("project", "p1") == {"a": 1}

    @pytest.mark.asyncio
    async def test_failed_cache_write_drops_listing(self, auth_service, identity_store, session_cache, mocker):
        await identity_store.upsert_setting("team", "t1", "a", 1)
        await auth_service.get_all_settings("team", "t1")
        mocker.patch.object(session_cache, "set_setting", side_effect=CacheError("down"))

        await auth_service.set_setting("team", "t1", "c", 3)

        assert await auth_service.get_all_settings("team", "t1") == {"a": 1, "c": 3}


class TestUserAdministration:
    """Identity-provider users, role assignment and deactivation."""

    @pytest.mark.asyncio
    async def test_find_or_create_user(self, auth_service):
        created = await auth_service.find_or_create_user(ExternalIdentity("ext-1", "Ann", trust_level=1))
        refreshed = await auth_service.find_or_create_user(
            ExternalIdentity("ext-1", "Annie", avatar_url="a.png", trust_level=2)
        )

        assert refreshed.id == created.id
        assert refreshed.display_name == "Annie"
        assert refreshed.trust_level == 2

    @pytest.mark.asyncio
    async def test_find_or_create_user_race(self, auth_service, identity_store, mocker):
        existing = User(id="u1", external_id="ext-1")
        mocker.patch.object(identity_store, "find_user_by_external_id", side_effect=[None, existing])
        mocker.patch.object(identity_store, "create_user", side_effect=DuplicateAccountError())

        user = await auth_service.find_or_create_user(ExternalIdentity("ext-1", "Ann"))

        assert user is existing

    @pytest.mark.asyncio
    async def test_update_user_roles(self, auth_service, identity_store, organization_service):
        organization = await organization_service.create_organization("Acme")
        group = await organization_service.create_group(organization.id, "Devs")
        role = await organization_service.create_role(group.id, "Lead")
        await identity_store.create_user(User(id="u1"))

        updated = await auth_service.update_user_roles(
            "admin", "u1", organization_id=organization.id, group_id=group.id, role_id=role.id
        )

        assert (updated.organization_id, updated.group_id, updated.role_id) == (
            organization.id, group.id, role.id,
        )
        entry = (await identity_store.list_audit_log(user_id="admin"))[0]
        assert entry.action == "update_user_roles"
        assert entry.before_value == {"organization_id": None, "group_id": None, "role_id": None}
        assert entry.after_value["role_id"] == role.id

        cleared = await auth_service.update_user_roles("admin", "u1", role_id=None)
        assert cleared.group_id == group.id
        assert cleared.role_id is None

    @pytest.mark.asyncio
    async def test_update_user_roles_rejects_inconsistent_hierarchy(
        self, auth_service, identity_store, organization_service
    ):
        acme = await organization_service.create_organization("Acme")
        other = await organization_service.create_organization("Other")
        group = await organization_service.create_group(other.id, "Devs")
        await identity_store.create_user(User(id="u1"))

        with pytest.raises(ValidationError):
            await auth_service.update_user_roles("admin", "u1", organization_id=acme.id, group_id=group.id)
        with pytest.raises(ValidationError):
            await auth_service.update_user_roles("admin", "u1", role_id="missing")
        with pytest.raises(ResourceNotFoundError):
            await auth_service.update_user_roles("admin", "missing", role_id=None)

    @pytest.mark.asyncio
    async def test_update_without_changes_returns_user(self, auth_service, identity_store):
        await identity_store.create_user(User(id="u1"))

        assert (await auth_service.update_user_roles("admin", "u1")).id == "u1"
        assert await identity_store.list_audit_log(user_id="admin") == []

    @pytest.mark.asyncio
    async def test_deactivate_revokes_sessions(self, auth_service, registered):
        first = await auth_service.login(EMAIL, PASSWORD, client_ip="10.0.0.3")
        await auth_service.login(EMAIL, PASSWORD, client_ip="10.0.0.3")

        assert await auth_service.deactivate_user("admin", registered.id) == 2

        with pytest.raises(InvalidSessionError):
            await auth_service.validate_session(first.session_id, first.token)
        with pytest.raises(ResourceNotFoundError):
            await auth_service.deactivate_user("admin", "missing")
