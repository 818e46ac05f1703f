"""Authorization service.

Orchestrates the identity store, the session cache and the relationship
store: registration, login and logout, session validation, fail-closed
permission checks and the settings cache protocol (cache-aside reads,
write-through writes).
"""

import hmac
import logging
from typing import Any, Dict, Optional, Tuple

from email_validator import EmailNotValidError, validate_email

from ....config.constants import SENSITIVE_PERMISSIONS, AuditAction
from ....config.settings import AuthSettings
from ....core.exceptions import (
    CacheError,
    DuplicateAccountError,
    InvalidCredentialsError,
    InvalidSessionError,
    InvalidTokenError,
    PermissionDeniedError,
    RateLimitedError,
    ResourceNotFoundError,
    UserInactiveError,
    ValidationError,
)
from ....utils.datetime import utc_now
from ....utils.uuid import generate_token, generate_uuid_v7
from ...identity.entities import (
    AuditLogEntry,
    ExternalIdentity,
    IdentityStoreProtocol,
    Organization,
    User,
)
from ...organizations import make_slug
from ...permissions import PermissionSet
from ...relationships.entities import RelationshipStoreProtocol
from ...sessions.entities import RateLimitResult, SessionCacheProtocol, SessionRecord
from ..entities import LoginResult, SessionState
from .password_hasher import PasswordHasher

logger = logging.getLogger(__name__)

_MISSING = object()

# Marks a role assignment field as "leave unchanged"
UNSET: Any = object()


class AuthorizationService:
    """Authentication, sessions, permission checks and settings."""

    def __init__(
        self,
        identity_store: IdentityStoreProtocol,
        session_cache: SessionCacheProtocol,
        relationship_store: RelationshipStoreProtocol,
        password_hasher: PasswordHasher,
        settings: AuthSettings,
    ):
        self.identity_store = identity_store
        self.session_cache = session_cache
        self.relationship_store = relationship_store
        self.password_hasher = password_hasher
        self.settings = settings

    # Audit

    async def _audit(
        self,
        action: str,
        user_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        before: Any = None,
        after: Any = None,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """Write an audit entry; failures are logged and never propagate."""
        entry = AuditLogEntry(
            action=action,
            user_id=user_id,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            before_value=before,
            after_value=after,
            ip_address=client_ip,
            user_agent=user_agent,
        )
        try:
            await self.identity_store.create_audit_log_entry(entry)
        except Exception as e:
            logger.error(
                f"Audit log write failed: action={action} user={user_id} "
                f"resource={resource_type}:{resource_id}: {e}"
            )

    # Registration

    def _validate_registration(self, email: str, password: str, first_name: str) -> str:
        try:
            email = validate_email(email or "", check_deliverability=False).normalized
        except EmailNotValidError as e:
            raise ValidationError(f"Invalid email address: {e}") from e

        if not password or len(password) < self.settings.password_min_length:
            raise ValidationError(
                f"Password must be at least {self.settings.password_min_length} characters"
            )
        if not first_name or not first_name.strip():
            raise ValidationError("First name is required")
        return email.lower()

    async def register(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: Optional[str] = None,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> User:
        """Create a local account with a default organization it administers.

        The organization admin tuple is written before the durable records.
        If the durable write fails the tuple is removed again, so a failed
        registration leaves neither an account nor a dangling grant.
        """
        email = self._validate_registration(email, password, first_name)

        if await self.identity_store.find_user_by_email(email) is not None:
            raise DuplicateAccountError()

        password_hash = await self.password_hasher.hash(password)

        user_id = generate_uuid_v7()
        organization_id = generate_uuid_v7()
        first_name = first_name.strip()

        await self.relationship_store.make_organization_admin(user_id, organization_id)

        try:
            user = await self.identity_store.create_account(
                User(
                    id=user_id,
                    email=email,
                    password_hash=password_hash,
                    first_name=first_name,
                    last_name=(last_name or "").strip() or None,
                    organization_id=organization_id,
                ),
                Organization(
                    id=organization_id,
                    name=f"{first_name}'s Organization",
                    slug=make_slug(f"{first_name}-org"),
                    created_by=user_id,
                ),
            )
        except Exception:
            await self._revoke_registration_grant(user_id, organization_id)
            raise

        await self._audit(
            AuditAction.REGISTER,
            user_id=user.id,
            resource_type="user",
            resource_id=user.id,
            after={"email": user.email, "organization_id": organization_id},
            client_ip=client_ip,
            user_agent=user_agent,
        )
        logger.info(f"User registered: {user.id}")
        return user

    async def _revoke_registration_grant(self, user_id: str, organization_id: str) -> None:
        try:
            await self.relationship_store.delete_relationship(
                "organization", organization_id, "admin", "user", user_id
            )
        except Exception as e:
            logger.error(
                f"Could not remove admin grant of failed registration "
                f"(user:{user_id} organization:{organization_id}), manual repair needed: {e}"
            )

    # Login / logout

    async def _check_login_rate_limit(self, client_ip: Optional[str]) -> Optional[RateLimitResult]:
        identifier = client_ip or "unknown"
        try:
            result = await self.session_cache.check_rate_limit(
                identifier,
                "login",
                self.settings.login_rate_limit,
                self.settings.login_rate_window,
            )
        except CacheError as e:
            logger.warning(f"Login rate limit unavailable, allowing attempt from {identifier}: {e}")
            return None

        if not result.allowed:
            raise RateLimitedError(
                retry_after=result.retry_after(utc_now()),
                reset_at=result.reset_at,
                limit=result.limit,
                remaining=result.remaining,
            )
        return result

    async def login(
        self,
        email: str,
        password: str,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LoginResult:
        """Authenticate a local account and open a session.

        Steps run strictly in order: rate limit, identity lookup, secret
        verification, session creation, settings cache seeding, audit.
        """
        rate_limit = await self._check_login_rate_limit(client_ip)

        user = await self.identity_store.find_user_by_email((email or "").strip())
        if user is None or not user.is_active or not user.password_hash:
            raise InvalidCredentialsError()

        if not await self.password_hasher.verify(password, user.password_hash):
            raise InvalidCredentialsError()

        return await self._open_session(user, client_ip, user_agent, rate_limit)

    async def login_with_identity(
        self,
        identity: ExternalIdentity,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LoginResult:
        """Open a session for a user verified by the identity provider."""
        user = await self.find_or_create_user(identity)
        if not user.is_active:
            raise InvalidCredentialsError()
        return await self._open_session(user, client_ip, user_agent)

    async def _open_session(
        self,
        user: User,
        client_ip: Optional[str],
        user_agent: Optional[str],
        rate_limit: Optional[RateLimitResult] = None,
    ) -> LoginResult:
        session_id = generate_uuid_v7()
        token = generate_token()

        session = await self.session_cache.create_session(
            session_id,
            {
                "user_id": user.id,
                "token": token,
                "ip_address": client_ip,
                "user_agent": user_agent,
                "attributes": {
                    "email": user.email,
                    "display_name": user.name,
                    "avatar_url": user.avatar_url,
                    "is_admin": user.is_admin,
                    "is_moderator": user.is_moderator,
                },
            },
            self.settings.session_ttl,
        )

        try:
            await self._seed_settings(user.id)
            await self.identity_store.update_last_login(user.id)
        except Exception:
            await self._discard_session(session_id)
            raise

        await self._audit(
            AuditAction.LOGIN,
            user_id=user.id,
            resource_type="session",
            resource_id=session_id,
            client_ip=client_ip,
            user_agent=user_agent,
        )
        logger.info(f"User logged in: {user.id} (session {session_id})")

        return LoginResult(
            user=user.to_public_dict(),
            session_id=session_id,
            token=token,
            expires_at=session.expires_at,
            rate_limit=rate_limit,
        )

    async def _seed_settings(self, user_id: str) -> None:
        settings = await self.identity_store.list_settings("user", user_id)
        await self._cache_all_settings("user", user_id, settings)

    async def _discard_session(self, session_id: str) -> None:
        try:
            await self.session_cache.delete_session(session_id)
        except CacheError as e:
            logger.error(f"Could not discard session {session_id} of a failed login: {e}")

    async def logout(
        self,
        session_id: str,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """Audit if possible, then delete the session regardless."""
        try:
            session = await self.session_cache.peek_session(session_id)
            if session is not None:
                await self._audit(
                    AuditAction.LOGOUT,
                    user_id=session.user_id,
                    resource_type="session",
                    resource_id=session_id,
                    client_ip=client_ip,
                    user_agent=user_agent,
                )
        except Exception as e:
            logger.warning(f"Logout audit skipped for session {session_id}: {e}")

        await self.session_cache.delete_session(session_id)
        logger.info(f"Session closed: {session_id}")

    # Sessions

    async def validate_session(self, session_id: Optional[str], token: Optional[str]) -> SessionRecord:
        """Resolve a live session.

        The identity is re-read on every call so that deactivation takes
        effect on the next request rather than at session expiry. Expiry
        slides only after the token and the identity check out.
        """
        if not session_id:
            raise InvalidSessionError()
        if not token:
            raise InvalidTokenError()

        session = await self.session_cache.peek_session(session_id)
        if session is None:
            raise InvalidSessionError()

        if not hmac.compare_digest(session.token.encode(), token.encode()):
            raise InvalidTokenError()

        user = await self.identity_store.find_user_by_id(session.user_id)
        if user is None or not user.is_active:
            await self.session_cache.delete_session(session_id)
            logger.info(f"Session {session_id} dropped: user {session.user_id} is inactive")
            raise UserInactiveError()

        refreshed = await self.session_cache.get_session(session_id)
        if refreshed is None:
            raise InvalidSessionError()
        return refreshed

    async def session_state(
        self, session_id: Optional[str], token: Optional[str]
    ) -> Tuple[SessionState, Optional[SessionRecord]]:
        """Lifecycle state of the presented credentials, with the session when live."""
        if not session_id or not token:
            return SessionState.ANONYMOUS, None
        try:
            session = await self.validate_session(session_id, token)
        except InvalidSessionError:
            return SessionState.EXPIRED, None
        except (InvalidTokenError, UserInactiveError):
            return SessionState.REVOKED, None
        return SessionState.AUTHENTICATED, session

    async def current_user(self, user_id: str) -> User:
        """Load the user behind a session and record activity."""
        user = await self.identity_store.find_user_by_id(user_id)
        if user is None:
            raise ResourceNotFoundError(f"User {user_id} not found")
        try:
            await self.identity_store.update_last_seen(user_id)
        except Exception as e:
            logger.warning(f"Could not update last seen for user {user_id}: {e}")
        return user

    async def revoke_sessions(self, user_id: str) -> int:
        return await self.session_cache.delete_all_sessions_for_subject(user_id)

    # Identity provider users

    async def find_or_create_user(self, identity: ExternalIdentity) -> User:
        """Refresh an existing provider user or create one with the default assignment."""
        existing = await self.identity_store.find_user_by_external_id(identity.external_id)
        if existing is not None:
            updated = await self.identity_store.update_external_profile(existing.id, identity)
            return updated or existing

        now = utc_now()
        user = User(
            id=generate_uuid_v7(),
            external_id=identity.external_id,
            display_name=identity.display_name,
            avatar_url=identity.avatar_url,
            trust_level=identity.trust_level,
            is_admin=identity.is_admin,
            is_moderator=identity.is_moderator,
            organization_id=self.settings.default_organization_id,
            group_id=self.settings.default_group_id,
            role_id=self.settings.default_role_id,
            last_login_at=now,
            last_seen_at=now,
        )
        try:
            created = await self.identity_store.create_user(user)
        except DuplicateAccountError:
            # A concurrent login created the user first
            existing = await self.identity_store.find_user_by_external_id(identity.external_id)
            if existing is None:
                raise
            return existing

        logger.info(f"User created from identity provider: {created.id}")
        return created

    # Administration

    async def update_user_roles(
        self,
        actor_id: Optional[str],
        user_id: str,
        organization_id: Optional[str] = UNSET,
        group_id: Optional[str] = UNSET,
        role_id: Optional[str] = UNSET,
    ) -> User:
        """Change a user's organization/group/role assignment.

        Fields left UNSET keep their value; None clears a reference. The
        resulting assignment must be consistent: the role belongs to the
        group and the group to the organization.
        """
        user = await self.identity_store.find_user_by_id(user_id)
        if user is None:
            raise ResourceNotFoundError(f"User {user_id} not found")

        changes = {
            name: value
            for name, value in (
                ("organization_id", organization_id),
                ("group_id", group_id),
                ("role_id", role_id),
            )
            if value is not UNSET
        }
        if not changes:
            return user

        before = {"organization_id": user.organization_id, "group_id": user.group_id, "role_id": user.role_id}
        after = {**before, **changes}
        await self._validate_assignment(after)

        updated = await self.identity_store.update_user_roles(user_id, changes)
        if updated is None:
            raise ResourceNotFoundError(f"User {user_id} not found")

        await self._audit(
            AuditAction.UPDATE_ROLES,
            user_id=actor_id,
            resource_type="user",
            resource_id=user_id,
            before=before,
            after=after,
        )
        logger.info(f"Roles updated for user {user_id} by {actor_id}")
        return updated

    async def _validate_assignment(self, assignment: Dict[str, Optional[str]]) -> None:
        organization_id = assignment["organization_id"]
        group_id = assignment["group_id"]
        role_id = assignment["role_id"]

        if organization_id and await self.identity_store.get_organization(organization_id) is None:
            raise ValidationError(f"Organization {organization_id} does not exist")

        if group_id:
            group = await self.identity_store.get_group(group_id)
            if group is None:
                raise ValidationError(f"Group {group_id} does not exist")
            if group.organization_id != organization_id:
                raise ValidationError(f"Group {group_id} does not belong to organization {organization_id}")

        if role_id:
            role = await self.identity_store.get_role(role_id)
            if role is None:
                raise ValidationError(f"Role {role_id} does not exist")
            if role.group_id != group_id:
                raise ValidationError(f"Role {role_id} does not belong to group {group_id}")

    async def deactivate_user(self, actor_id: Optional[str], user_id: str) -> int:
        """Deactivate a user and revoke every session; returns the number revoked."""
        if not await self.identity_store.deactivate_user(user_id):
            raise ResourceNotFoundError(f"User {user_id} not found")

        revoked = await self.revoke_sessions(user_id)
        await self._audit(
            AuditAction.DEACTIVATE,
            user_id=actor_id,
            resource_type="user",
            resource_id=user_id,
            before={"is_active": True},
            after={"is_active": False, "revoked_sessions": revoked},
        )
        logger.info(f"User {user_id} deactivated by {actor_id}, {revoked} sessions revoked")
        return revoked

    # Authorization

    async def authorize(
        self,
        user_id: str,
        permission: str,
        resource_type: str,
        resource_id: str,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> bool:
        """Check a resource permission. Any error resolves to False."""
        error = None
        try:
            allowed = await self.relationship_store.check_permission(
                user_id, permission, resource_type, str(resource_id)
            )
            allowed = allowed is True
        except Exception as e:
            logger.error(f"Authorization failed closed for user:{user_id} {permission} {resource_type}:{resource_id}: {e}")
            allowed = False
            error = type(e).__name__

        if permission in SENSITIVE_PERMISSIONS:
            outcome: Dict[str, Any] = {"allowed": allowed}
            if error:
                outcome["error"] = error
            await self._audit(
                AuditAction.PERMISSION_CHECK.format(permission=permission),
                user_id=user_id,
                resource_type=resource_type,
                resource_id=resource_id,
                after=outcome,
                client_ip=client_ip,
                user_agent=user_agent,
            )

        return allowed

    async def require_permission(
        self,
        user_id: str,
        permission: str,
        resource_type: str,
        resource_id: str,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        if not await self.authorize(user_id, permission, resource_type, resource_id, client_ip, user_agent):
            raise PermissionDeniedError("Permission denied")

    async def has_role_permission(self, user_id: str, permission: str) -> bool:
        """Check the flat permission list of the user's role. Fails closed."""
        try:
            user = await self.identity_store.find_user_by_id(user_id)
            if user is None or not user.is_active:
                return False
            if user.is_admin:
                return True
            if not user.role_id:
                return False
            role = await self.identity_store.get_role(user.role_id)
        except Exception as e:
            logger.error(f"Role permission check failed closed for user {user_id}: {e}")
            return False

        return role is not None and PermissionSet.parse(role.permissions).allows(permission)

    # Settings

    async def get_setting(self, entity_type: str, entity_id: str, key: str, default: Any = None) -> Any:
        """Cache-aside read: cache first, durable store on a miss."""
        entity_id = str(entity_id)
        try:
            cached = await self.session_cache.get_setting(entity_type, entity_id, key, _MISSING)
        except CacheError as e:
            logger.warning(f"Settings cache read failed, using durable store: {e}")
            cached = _MISSING

        if cached is not _MISSING:
            return cached

        value = await self.identity_store.get_setting(entity_type, entity_id, key, _MISSING)
        if value is _MISSING:
            return default

        await self._cache_setting(entity_type, entity_id, key, value)
        return value

    async def set_setting(self, entity_type: str, entity_id: str, key: str, value: Any) -> None:
        """Write-through: durable store first, then the cache."""
        entity_id = str(entity_id)
        await self.identity_store.upsert_setting(entity_type, entity_id, key, value)
        if not await self._cache_setting(entity_type, entity_id, key, value):
            await self._invalidate_setting(entity_type, entity_id, key)
            await self._forget_settings_listing(entity_type, entity_id)

    async def delete_setting(self, entity_type: str, entity_id: str, key: str) -> bool:
        """Delete from the durable store, then drop the cached copy."""
        entity_id = str(entity_id)
        deleted = await self.identity_store.delete_setting(entity_type, entity_id, key)
        await self._invalidate_setting(entity_type, entity_id, key)
        return deleted

    async def get_all_settings(self, entity_type: str, entity_id: str) -> Dict[str, Any]:
        """Serve the cached listing only when it is complete, else list and repopulate."""
        entity_id = str(entity_id)
        try:
            cached = await self.session_cache.get_complete_settings(entity_type, entity_id)
        except CacheError as e:
            logger.warning(f"Settings cache read failed, using durable store: {e}")
            cached = None

        if cached is not None:
            return cached

        settings = await self.identity_store.list_settings(entity_type, entity_id)
        await self._cache_all_settings(entity_type, entity_id, settings)
        return settings

    async def _cache_all_settings(self, entity_type: str, entity_id: str, settings: Dict[str, Any]) -> bool:
        try:
            await self.session_cache.set_all_settings(entity_type, entity_id, settings, self.settings.setting_ttl)
            return True
        except CacheError as e:
            logger.warning(f"Could not cache settings of {entity_type}:{entity_id}: {e}")
            return False

    async def _forget_settings_listing(self, entity_type: str, entity_id: str) -> None:
        try:
            await self.session_cache.forget_settings_listing(entity_type, entity_id)
        except CacheError as e:
            logger.error(f"Could not drop cached settings listing of {entity_type}:{entity_id}: {e}")

    async def _cache_setting(self, entity_type: str, entity_id: str, key: str, value: Any) -> bool:
        try:
            await self.session_cache.set_setting(entity_type, entity_id, key, value, self.settings.setting_ttl)
            return True
        except CacheError as e:
            logger.warning(f"Could not cache setting {entity_type}:{entity_id}:{key}: {e}")
            return False

    async def _invalidate_setting(self, entity_type: str, entity_id: str, key: str) -> None:
        try:
            await self.session_cache.invalidate_setting(entity_type, entity_id, key)
        except CacheError as e:
            logger.error(f"Could not invalidate cached setting {entity_type}:{entity_id}:{key}: {e}")
