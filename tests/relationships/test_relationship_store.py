"""Tests for permission resolution on the in-memory relationship store."""

import asyncio

import pytest
import pytest_asyncio

from planner_auth.core.exceptions import (
    PermissionServiceUnavailableError,
    RelationshipCycleError,
    ValidationError,
)
from planner_auth.features.relationships import MemoryRelationshipStore, ObjectRef, RelationshipTuple
from planner_auth.features.relationships.entities import ParentLink, PermissionSchema, ResourceDefinition

FOLDER_SCHEMA = PermissionSchema([
    ResourceDefinition.build(
        "folder",
        relations={"owner"},
        parent=ParentLink("parent_folder", "folder"),
        permissions={"view": ["owner", "parent_folder->view"]},
    ),
])


@pytest_asyncio.fixture
async def hierarchy(relationship_store):
    """org-1 <- team-1 <- project-1 <- board-1 <- card-1, plus board-2 under project-1."""
    store = relationship_store
    await store.make_organization_admin("alice", "org-1")
    await store.link_team_to_organization("team-1", "org-1")
    await store.link_project_to_team("project-1", "team-1")
    await store.link_board_to_project("board-1", "project-1")
    await store.link_board_to_project("board-2", "project-1")
    await store.link_card_to_board("card-1", "board-1")
    await store.add_team_member("bob", "team-1")
    return store


class TestWriteAndDelete:
    """Touch semantics for writes and idempotent deletes."""

    @pytest.mark.asyncio
    async def test_write_twice_leaves_one_tuple(self, relationship_store):
        await relationship_store.write_relationship("board", "b1", "editor", "user", "u1")
        await relationship_store.write_relationship("board", "b1", "editor", "user", "u1")

        tuples = await relationship_store.read_relationships("board", "b1")
        assert tuples == [RelationshipTuple.of("board", "b1", "editor", "user", "u1")]
        assert len(relationship_store) == 1

    @pytest.mark.asyncio
    async def test_delete_absent_tuple_is_not_an_error(self, relationship_store):
        await relationship_store.delete_relationship("board", "b1", "editor", "user", "u1")
        assert len(relationship_store) == 0

    @pytest.mark.asyncio
    async def test_delete_removes_tuple(self, relationship_store):
        await relationship_store.write_relationship("board", "b1", "viewer", "user", "u1")
        await relationship_store.delete_relationship("board", "b1", "viewer", "user", "u1")

        assert await relationship_store.read_relationships("board", "b1") == []

    @pytest.mark.asyncio
    async def test_read_filters_by_relation(self, relationship_store):
        await relationship_store.write_relationship("board", "b1", "viewer", "user", "u1")
        await relationship_store.write_relationship("board", "b1", "editor", "user", "u2")

        viewers = await relationship_store.read_relationships("board", "b1", "viewer")
        assert [t.subject for t in viewers] == [ObjectRef("user", "u1")]

    @pytest.mark.asyncio
    async def test_delete_all_for_resource(self, relationship_store):
        await relationship_store.write_relationship("board", "b1", "viewer", "user", "u1")
        await relationship_store.write_relationship("board", "b1", "owner", "user", "u2")
        await relationship_store.write_relationship("board", "b2", "owner", "user", "u2")

        removed = await relationship_store.delete_all_relationships_for_resource("board", "b1")

        assert removed == 2
        assert await relationship_store.read_relationships("board", "b1") == []
        assert len(await relationship_store.read_relationships("board", "b2")) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "args",
        [
            ("widget", "w1", "owner", "user", "u1"),
            ("board", "b1", "admin", "user", "u1"),
            ("board", "b1", "parent_project", "team", "t1"),
            ("board", "b1", "parent_project", "user", "u1"),
            ("board", "b1", "owner", "team", "t1"),
            ("board", "", "owner", "user", "u1"),
        ],
    )
    async def test_write_rejects_tuples_outside_the_schema(self, relationship_store, args):
        with pytest.raises(ValidationError):
            await relationship_store.write_relationship(*args)


class TestPermissionResolution:
    """Direct relations and inheritance along parent links."""

    @pytest.mark.asyncio
    async def test_direct_relation(self, relationship_store):
        await relationship_store.write_relationship("board", "b1", "viewer", "user", "u1")

        assert await relationship_store.check_permission("u1", "view", "board", "b1")
        assert not await relationship_store.check_permission("u1", "update", "board", "b1")
        assert not await relationship_store.check_permission("u2", "view", "board", "b1")

    @pytest.mark.asyncio
    async def test_organization_admin_inherits_down_the_chain(self, hierarchy):
        for resource_type, resource_id in [
            ("team", "team-1"),
            ("project", "project-1"),
            ("board", "board-1"),
            ("card", "card-1"),
        ]:
            assert await hierarchy.check_permission("alice", "delete", resource_type, resource_id)
            assert await hierarchy.check_permission("alice", "view", resource_type, resource_id)

    @pytest.mark.asyncio
    async def test_team_member_can_view_but_not_update(self, hierarchy):
        assert await hierarchy.check_permission("bob", "view", "board", "board-1")
        assert await hierarchy.check_permission("bob", "create_project", "team", "team-1")
        assert not await hierarchy.check_permission("bob", "update", "board", "board-1")
        assert not await hierarchy.check_permission("bob", "delete", "team", "team-1")

    @pytest.mark.asyncio
    async def test_permission_does_not_flow_upwards(self, hierarchy):
        await hierarchy.write_relationship("board", "board-1", "owner", "user", "carol")

        assert await hierarchy.check_permission("carol", "delete", "board", "board-1")
        assert not await hierarchy.check_permission("carol", "view", "project", "project-1")
        assert not await hierarchy.check_permission("carol", "view", "board", "board-2")

    @pytest.mark.asyncio
    async def test_parent_link_is_not_a_grant(self, hierarchy):
        assert not await hierarchy.check_permission("org-1", "parent_organization", "team", "team-1")

    @pytest.mark.asyncio
    async def test_unknown_type_or_permission_is_denied(self, hierarchy):
        assert not await hierarchy.check_permission("alice", "view", "widget", "w1")
        assert not await hierarchy.check_permission("alice", "teleport", "board", "board-1")

    @pytest.mark.asyncio
    async def test_bulk_check(self, hierarchy):
        await hierarchy.write_relationship("board", "board-9", "viewer", "user", "bob")
        results = await hierarchy.check_permissions(
            "carol", "view", [ObjectRef("board", "board-1"), ObjectRef("board", "board-9")]
        )
        assert results == {"board-1": False, "board-9": False}

        results = await hierarchy.check_permissions(
            "bob", "view", [ObjectRef("board", "board-1"), ObjectRef("board", "board-9")]
        )
        assert results == {"board-1": True, "board-9": True}

    @pytest.mark.asyncio
    async def test_lookup_resources(self, hierarchy):
        await hierarchy.write_relationship("board", "board-x", "viewer", "user", "dave")

        assert await hierarchy.lookup_resources("alice", "view", "board") == {"board-1", "board-2"}
        assert await hierarchy.lookup_resources("dave", "view", "board") == {"board-x"}
        assert await hierarchy.lookup_resources("nobody", "view", "board") == set()
        assert await hierarchy.lookup_resources("alice", "view", "widget") == set()


class TestCycles:
    """Parent links must form a DAG."""

    @pytest.fixture
    def folders(self):
        return MemoryRelationshipStore(schema=FOLDER_SCHEMA)

    @pytest.mark.asyncio
    async def test_self_parent_is_rejected(self, folders):
        with pytest.raises(RelationshipCycleError):
            await folders.write_relationship("folder", "a", "parent_folder", "folder", "a")

    @pytest.mark.asyncio
    async def test_indirect_cycle_is_rejected(self, folders):
        await folders.write_relationship("folder", "a", "parent_folder", "folder", "b")
        await folders.write_relationship("folder", "b", "parent_folder", "folder", "c")

        with pytest.raises(RelationshipCycleError):
            await folders.write_relationship("folder", "c", "parent_folder", "folder", "a")

        assert await folders.read_relationships("folder", "c") == []

    @pytest.mark.asyncio
    async def test_inheritance_through_nested_folders(self, folders):
        await folders.write_relationship("folder", "a", "parent_folder", "folder", "b")
        await folders.write_relationship("folder", "b", "parent_folder", "folder", "c")
        await folders.write_relationship("folder", "c", "owner", "user", "u1")

        assert await folders.check_permission("u1", "view", "folder", "a")

    @pytest.mark.asyncio
    async def test_resolution_terminates_on_stored_cycle(self, folders):
        # Bypass validation to simulate a cycle already present in storage
        await folders._insert(RelationshipTuple.of("folder", "a", "parent_folder", "folder", "b"))
        await folders._insert(RelationshipTuple.of("folder", "b", "parent_folder", "folder", "a"))

        assert not await folders.check_permission("u1", "view", "folder", "a")


class TestFailClosed:
    """Unreachable or slow stores raise instead of answering."""

    @pytest.mark.asyncio
    async def test_unavailable_store_raises(self, hierarchy):
        hierarchy.available = False

        with pytest.raises(PermissionServiceUnavailableError):
            await hierarchy.check_permission("alice", "view", "board", "board-1")

    @pytest.mark.asyncio
    async def test_unavailable_store_fails_writes_and_lookups(self, relationship_store):
        relationship_store.available = False

        with pytest.raises(PermissionServiceUnavailableError):
            await relationship_store.write_relationship("board", "b1", "viewer", "user", "u1")
        with pytest.raises(PermissionServiceUnavailableError):
            await relationship_store.lookup_resources("u1", "view", "board")

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        class SlowStore(MemoryRelationshipStore):
            async def _subject_relations(self, resource, subject):
                await asyncio.sleep(1)
                return {"viewer"}

        store = SlowStore(check_timeout=0.05)
        await store.write_relationship("board", "b1", "viewer", "user", "u1")

        with pytest.raises(PermissionServiceUnavailableError):
            await store.check_permission("u1", "view", "board", "b1")

    @pytest.mark.asyncio
    async def test_health_check(self, relationship_store):
        assert await relationship_store.health_check() is True
        relationship_store.available = False
        assert await relationship_store.health_check() is False
