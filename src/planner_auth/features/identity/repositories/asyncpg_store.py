"""AsyncPG implementation of the identity store."""

import json
import logging
from contextlib import contextmanager
from importlib import resources
from typing import Any, Dict, List, Mapping, Optional

import asyncpg

from ....core.exceptions import DuplicateAccountError, IdentityStoreError
from ....database import DatabaseManager
from ..entities import (
    ROLE_ASSIGNMENT_FIELDS,
    AuditLogEntry,
    ExternalIdentity,
    Group,
    Organization,
    Role,
    User,
)

logger = logging.getLogger(__name__)

USER_COLUMNS = """
    id, email, password_hash, first_name, last_name, display_name, external_id,
    avatar_url, trust_level, is_admin, is_moderator, is_active,
    organization_id, group_id, role_id,
    created_at, updated_at, last_login_at, last_seen_at
"""


class AsyncPGIdentityStore:
    """
    PostgreSQL identity store using asyncpg.

    Organization, group and role deletes rely on the foreign keys in
    schema.sql: children cascade and user references are set to NULL.
    """

    def __init__(self, database: DatabaseManager):
        self.database = database

    @contextmanager
    def _errors(self, action: str):
        try:
            yield
        except asyncpg.UniqueViolationError as e:
            raise DuplicateAccountError() from e
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            logger.error(f"Identity store failed to {action}: {e}")
            raise IdentityStoreError(f"Identity store unavailable ({action})") from e

    async def initialize_schema(self) -> None:
        """Create tables that do not exist yet."""
        ddl = resources.files("planner_auth.features.identity").joinpath("schema.sql").read_text()
        with self._errors("initialize schema"):
            await self.database.execute(ddl)
        logger.info("Identity schema initialized")

    # Row mapping

    @staticmethod
    def _row_to_user(row) -> User:
        return User(**{key: row[key] for key in row.keys()})

    @staticmethod
    def _row_to_role(row) -> Role:
        permissions = row["permissions"]
        if isinstance(permissions, str):
            permissions = json.loads(permissions)
        return Role(
            id=row["id"],
            group_id=row["group_id"],
            name=row["name"],
            permissions=permissions or [],
            priority=row["priority"],
            color=row["color"],
            created_at=row["created_at"],
        )

    # Users

    async def _insert_user(self, conn, user: User) -> User:
        query = f"""
            INSERT INTO users (
                id, email, password_hash, first_name, last_name, display_name,
                external_id, avatar_url, trust_level, is_admin, is_moderator, is_active,
                organization_id, group_id, role_id, created_at, updated_at,
                last_login_at, last_seen_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17, $18, $19)
            RETURNING {USER_COLUMNS}
        """
        row = await conn.fetchrow(
            query,
            user.id,
            user.email.lower() if user.email else None,
            user.password_hash,
            user.first_name,
            user.last_name,
            user.display_name,
            user.external_id,
            user.avatar_url,
            user.trust_level,
            user.is_admin,
            user.is_moderator,
            user.is_active,
            user.organization_id,
            user.group_id,
            user.role_id,
            user.created_at,
            user.updated_at,
            user.last_login_at,
            user.last_seen_at,
        )
        return self._row_to_user(row)

    async def create_user(self, user: User) -> User:
        with self._errors("create user"):
            async with self.database.acquire() as conn:
                created = await self._insert_user(conn, user)
        logger.info(f"User created: {created.id}")
        return created

    async def create_account(self, user: User, organization: Organization) -> User:
        # The organization row goes first so the user's reference resolves
        with self._errors("create account"):
            async with self.database.transaction() as conn:
                await self._insert_organization(conn, organization)
                created = await self._insert_user(conn, user)
        logger.info(f"Account created: user {created.id}, organization {organization.id}")
        return created

    async def find_user_by_id(self, user_id: str) -> Optional[User]:
        with self._errors("find user"):
            row = await self.database.fetchrow(f"SELECT {USER_COLUMNS} FROM users WHERE id = $1", str(user_id))
        return self._row_to_user(row) if row else None

    async def find_user_by_email(self, email: str) -> Optional[User]:
        with self._errors("find user"):
            row = await self.database.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE lower(email) = lower($1) LIMIT 1", email
            )
        return self._row_to_user(row) if row else None

    async def find_user_by_external_id(self, external_id: str) -> Optional[User]:
        with self._errors("find user"):
            row = await self.database.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE external_id = $1 LIMIT 1", external_id
            )
        return self._row_to_user(row) if row else None

    async def update_external_profile(self, user_id: str, identity: ExternalIdentity) -> Optional[User]:
        query = f"""
            UPDATE users SET
                display_name = $2,
                avatar_url = $3,
                trust_level = $4,
                is_admin = $5,
                is_moderator = $6,
                last_login_at = now(),
                last_seen_at = now(),
                updated_at = now()
            WHERE id = $1
            RETURNING {USER_COLUMNS}
        """
        with self._errors("update profile"):
            row = await self.database.fetchrow(
                query,
                user_id,
                identity.display_name,
                identity.avatar_url,
                identity.trust_level,
                identity.is_admin,
                identity.is_moderator,
            )
        return self._row_to_user(row) if row else None

    async def update_last_login(self, user_id: str) -> None:
        with self._errors("update last login"):
            await self.database.execute("UPDATE users SET last_login_at = now() WHERE id = $1", user_id)

    async def update_last_seen(self, user_id: str) -> None:
        with self._errors("update last seen"):
            await self.database.execute("UPDATE users SET last_seen_at = now() WHERE id = $1", user_id)

    async def deactivate_user(self, user_id: str) -> bool:
        with self._errors("deactivate user"):
            status = await self.database.execute(
                "UPDATE users SET is_active = FALSE, updated_at = now() WHERE id = $1", user_id
            )
        return status.endswith(" 1")

    async def update_user_roles(self, user_id: str, changes: Mapping[str, Optional[str]]) -> Optional[User]:
        assignments = []
        params: List[Any] = [user_id]
        for field_name in ROLE_ASSIGNMENT_FIELDS:
            if field_name in changes:
                params.append(changes[field_name])
                assignments.append(f"{field_name} = ${len(params)}")

        if not assignments:
            return await self.find_user_by_id(user_id)

        query = f"""
            UPDATE users SET {', '.join(assignments)}, updated_at = now()
            WHERE id = $1
            RETURNING {USER_COLUMNS}
        """
        with self._errors("update user roles"):
            row = await self.database.fetchrow(query, *params)
        return self._row_to_user(row) if row else None

    # Organization hierarchy

    async def _insert_organization(self, conn, organization: Organization) -> None:
        await conn.execute(
            """
            INSERT INTO organizations (id, name, slug, created_by, color, created_at)
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            organization.id,
            organization.name,
            organization.slug,
            organization.created_by,
            organization.color,
            organization.created_at,
        )

    async def create_organization(self, organization: Organization) -> Organization:
        with self._errors("create organization"):
            async with self.database.acquire() as conn:
                await self._insert_organization(conn, organization)
        return organization

    async def get_organization(self, organization_id: str) -> Optional[Organization]:
        with self._errors("read organization"):
            row = await self.database.fetchrow(
                "SELECT id, name, slug, created_by, color, created_at FROM organizations WHERE id = $1",
                organization_id,
            )
        return Organization(**dict(row)) if row else None

    async def delete_organization(self, organization_id: str) -> bool:
        with self._errors("delete organization"):
            status = await self.database.execute("DELETE FROM organizations WHERE id = $1", organization_id)
        return status.endswith(" 1")

    async def create_group(self, group: Group) -> Group:
        with self._errors("create group"):
            await self.database.execute(
                """
                INSERT INTO groups (id, organization_id, name, color, created_at)
                VALUES ($1, $2, $3, $4, $5)
                """,
                group.id,
                group.organization_id,
                group.name,
                group.color,
                group.created_at,
            )
        return group

    async def get_group(self, group_id: str) -> Optional[Group]:
        with self._errors("read group"):
            row = await self.database.fetchrow(
                "SELECT id, organization_id, name, color, created_at FROM groups WHERE id = $1", group_id
            )
        return Group(**dict(row)) if row else None

    async def list_groups(self, organization_id: str) -> List[Group]:
        with self._errors("list groups"):
            rows = await self.database.fetch(
                """
                SELECT id, organization_id, name, color, created_at FROM groups
                WHERE organization_id = $1 ORDER BY name
                """,
                organization_id,
            )
        return [Group(**dict(row)) for row in rows]

    async def delete_group(self, group_id: str) -> bool:
        with self._errors("delete group"):
            status = await self.database.execute("DELETE FROM groups WHERE id = $1", group_id)
        return status.endswith(" 1")

    async def create_role(self, role: Role) -> Role:
        with self._errors("create role"):
            await self.database.execute(
                """
                INSERT INTO roles (id, group_id, name, permissions, priority, color, created_at)
                VALUES ($1, $2, $3, $4::jsonb, $5, $6, $7)
                """,
                role.id,
                role.group_id,
                role.name,
                json.dumps(role.permissions),
                role.priority,
                role.color,
                role.created_at,
            )
        return role

    async def get_role(self, role_id: str) -> Optional[Role]:
        with self._errors("read role"):
            row = await self.database.fetchrow(
                "SELECT id, group_id, name, permissions, priority, color, created_at FROM roles WHERE id = $1",
                role_id,
            )
        return self._row_to_role(row) if row else None

    async def list_roles(self, group_id: str) -> List[Role]:
        with self._errors("list roles"):
            rows = await self.database.fetch(
                """
                SELECT id, group_id, name, permissions, priority, color, created_at FROM roles
                WHERE group_id = $1 ORDER BY priority DESC, name
                """,
                group_id,
            )
        return [self._row_to_role(row) for row in rows]

    async def delete_role(self, role_id: str) -> bool:
        with self._errors("delete role"):
            status = await self.database.execute("DELETE FROM roles WHERE id = $1", role_id)
        return status.endswith(" 1")

    # Settings

    async def get_setting(self, entity_type: str, entity_id: str, key: str, default: Any = None) -> Any:
        with self._errors("read setting"):
            row = await self.database.fetchrow(
                """
                SELECT setting_value FROM settings
                WHERE entity_type = $1 AND entity_id = $2 AND setting_key = $3
                """,
                entity_type,
                str(entity_id),
                key,
            )
        if row is None:
            return default
        return _load_json(row["setting_value"])

    async def list_settings(self, entity_type: str, entity_id: str) -> Dict[str, Any]:
        with self._errors("list settings"):
            rows = await self.database.fetch(
                """
                SELECT setting_key, setting_value FROM settings
                WHERE entity_type = $1 AND entity_id = $2
                """,
                entity_type,
                str(entity_id),
            )
        return {row["setting_key"]: _load_json(row["setting_value"]) for row in rows}

    async def upsert_setting(self, entity_type: str, entity_id: str, key: str, value: Any) -> None:
        with self._errors("write setting"):
            await self.database.execute(
                """
                INSERT INTO settings (entity_type, entity_id, setting_key, setting_value)
                VALUES ($1, $2, $3, $4::jsonb)
                ON CONFLICT (entity_type, entity_id, setting_key)
                DO UPDATE SET setting_value = EXCLUDED.setting_value, updated_at = now()
                """,
                entity_type,
                str(entity_id),
                key,
                json.dumps(value),
            )

    async def delete_setting(self, entity_type: str, entity_id: str, key: str) -> bool:
        with self._errors("delete setting"):
            status = await self.database.execute(
                "DELETE FROM settings WHERE entity_type = $1 AND entity_id = $2 AND setting_key = $3",
                entity_type,
                str(entity_id),
                key,
            )
        return status.endswith(" 1")

    # Audit

    async def create_audit_log_entry(self, entry: AuditLogEntry) -> AuditLogEntry:
        with self._errors("write audit log"):
            entry_id = await self.database.fetchval(
                """
                INSERT INTO audit_logs (
                    user_id, action, entity_type, entity_id, old_value, new_value,
                    ip_address, user_agent, created_at
                ) VALUES ($1, $2, $3, $4, $5::jsonb, $6::jsonb, $7, $8, $9)
                RETURNING id
                """,
                entry.user_id,
                entry.action,
                entry.resource_type,
                entry.resource_id,
                _dump_json(entry.before_value),
                _dump_json(entry.after_value),
                entry.ip_address,
                entry.user_agent,
                entry.created_at,
            )
        entry.id = entry_id
        return entry

    async def list_audit_log(self, user_id: Optional[str] = None, limit: int = 50) -> List[AuditLogEntry]:
        with self._errors("read audit log"):
            rows = await self.database.fetch(
                """
                SELECT id, user_id, action, entity_type, entity_id, old_value, new_value,
                       ip_address, user_agent, created_at
                FROM audit_logs
                WHERE ($1::text IS NULL OR user_id = $1)
                ORDER BY created_at DESC, id DESC
                LIMIT $2
                """,
                user_id,
                limit,
            )
        return [
            AuditLogEntry(
                id=row["id"],
                user_id=row["user_id"],
                action=row["action"],
                resource_type=row["entity_type"],
                resource_id=row["entity_id"],
                before_value=_load_json(row["old_value"]),
                after_value=_load_json(row["new_value"]),
                ip_address=row["ip_address"],
                user_agent=row["user_agent"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    async def health_check(self) -> bool:
        return await self.database.health_check()


def _dump_json(value: Any) -> Optional[str]:
    return None if value is None else json.dumps(value, default=str)


def _load_json(value: Any) -> Any:
    # asyncpg hands jsonb back as text unless a codec is registered
    if isinstance(value, str):
        return json.loads(value)
    return value
