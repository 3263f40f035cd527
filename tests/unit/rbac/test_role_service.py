"""Tests for role/permission mutations and cache invalidation."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from authz.core.errors import Err, ErrorKind, Ok
from authz.db.models_user import UserEntity
from authz.db.unit_of_work import UnitOfWork
from authz.rbac.cache import InMemoryPermissionCache
from authz.rbac.resolver import SqlPermissionResolver
from authz.rbac.role_service import PermissionType, RoleService

ALICE = "user-alice"
BOB = "user-bob"


class _FailingInvalidateCache(InMemoryPermissionCache):
    async def invalidate(self, user_id: str) -> None:
        raise ConnectionError("cache unavailable")


@pytest.fixture
async def users(db_session: AsyncSession) -> None:
    """Insert two users."""
    db_session.add(UserEntity(id=ALICE, email="alice@example.com"))
    db_session.add(UserEntity(id=BOB, email="bob@example.com"))
    await db_session.flush()


@pytest.fixture
def roles(uow: UnitOfWork, permission_cache: InMemoryPermissionCache) -> RoleService:
    return RoleService(uow, permission_cache)


async def _role_with_permission(roles: RoleService, role: str, permission: str) -> tuple[str, str]:
    created_role = await roles.create_role(role)
    created_perm = await roles.create_permission(permission)
    assert isinstance(created_role, Ok)
    assert isinstance(created_perm, Ok)
    role_id = created_role.value.id
    perm_id = created_perm.value.id
    assert await roles.assign_permissions_to_role(role_id, [perm_id]) == Ok(None)
    return role_id, perm_id


class TestCreate:
    """Tests for create_role and create_permission."""

    async def test_create_role(self, roles: RoleService) -> None:
        result = await roles.create_role("editor", "Edits things")
        assert isinstance(result, Ok)
        assert result.value.name == "editor"

    async def test_duplicate_role_conflicts(self, roles: RoleService) -> None:
        await roles.create_role("editor")
        result = await roles.create_role("editor")
        assert isinstance(result, Err)
        assert result.kind == ErrorKind.CONFLICT

    async def test_create_permission_with_type(self, roles: RoleService) -> None:
        result = await roles.create_permission("menu:reports", PermissionType.MENU)
        assert isinstance(result, Ok)
        assert result.value.permission_type == PermissionType.MENU

    async def test_duplicate_permission_conflicts(self, roles: RoleService) -> None:
        await roles.create_permission("orders:read")
        result = await roles.create_permission("orders:read")
        assert isinstance(result, Err)
        assert result.kind == ErrorKind.CONFLICT

    async def test_permission_name_must_be_resource_action(self, roles: RoleService) -> None:
        result = await roles.create_permission("orders")
        assert isinstance(result, Err)
        assert result.kind == ErrorKind.VALIDATION

    async def test_unknown_permission_type(self, roles: RoleService) -> None:
        result = await roles.create_permission("orders:read", "SOMETHING")
        assert isinstance(result, Err)
        assert result.kind == ErrorKind.VALIDATION


class TestAssignments:
    """Tests for role/user and role/permission links."""

    async def test_assign_role_to_user_invalidates(
        self, roles: RoleService, permission_cache, users: None
    ) -> None:
        role_id, _ = await _role_with_permission(roles, "editor", "orders:write")
        permission_cache.invalidated.clear()
        assert await roles.assign_role_to_user(ALICE, role_id) == Ok(None)
        assert permission_cache.invalidated == [ALICE]

    async def test_assign_twice_conflicts(self, roles: RoleService, users: None) -> None:
        role_id, _ = await _role_with_permission(roles, "editor", "orders:write")
        await roles.assign_role_to_user(ALICE, role_id)
        result = await roles.assign_role_to_user(ALICE, role_id)
        assert isinstance(result, Err)
        assert result.kind == ErrorKind.CONFLICT

    async def test_assign_to_unknown_user(self, roles: RoleService, users: None) -> None:
        role_id, _ = await _role_with_permission(roles, "editor", "orders:write")
        result = await roles.assign_role_to_user("ghost", role_id)
        assert isinstance(result, Err)
        assert result.kind == ErrorKind.NOT_FOUND

    async def test_assign_unknown_permission(self, roles: RoleService) -> None:
        created = await roles.create_role("editor")
        assert isinstance(created, Ok)
        result = await roles.assign_permissions_to_role(created.value.id, ["missing"])
        assert isinstance(result, Err)
        assert result.kind == ErrorKind.NOT_FOUND

    async def test_assign_permissions_is_idempotent(self, roles: RoleService) -> None:
        role_id, perm_id = await _role_with_permission(roles, "editor", "orders:write")
        assert await roles.assign_permissions_to_role(role_id, [perm_id, perm_id]) == Ok(None)
        listed = await roles.get_role_permissions(role_id)
        assert isinstance(listed, Ok)
        assert [p.name for p in listed.value] == ["orders:write"]

    async def test_permission_change_invalidates_role_members(
        self, roles: RoleService, permission_cache, users: None
    ) -> None:
        role_id, _ = await _role_with_permission(roles, "editor", "orders:write")
        await roles.assign_role_to_user(ALICE, role_id)
        await roles.assign_role_to_user(BOB, role_id)
        extra = await roles.create_permission("orders:delete")
        assert isinstance(extra, Ok)
        permission_cache.invalidated.clear()

        await roles.assign_permissions_to_role(role_id, [extra.value.id])
        assert sorted(permission_cache.invalidated) == [ALICE, BOB]

        permission_cache.invalidated.clear()
        await roles.remove_permissions_from_role(role_id, [extra.value.id])
        assert sorted(permission_cache.invalidated) == [ALICE, BOB]

    async def test_get_user_roles(self, roles: RoleService, users: None) -> None:
        role_id, _ = await _role_with_permission(roles, "editor", "orders:write")
        await roles.assign_role_to_user(ALICE, role_id)
        result = await roles.get_user_roles(ALICE)
        assert isinstance(result, Ok)
        assert [r.name for r in result.value] == ["editor"]

    async def test_remove_missing_link(self, roles: RoleService, users: None) -> None:
        result = await roles.remove_role_from_user(ALICE, "no-role")
        assert isinstance(result, Err)
        assert result.kind == ErrorKind.NOT_FOUND


class TestLookupAndUpdate:
    """Tests for role lookups, listing and update_role."""

    async def test_find_by_id_and_name(self, roles: RoleService) -> None:
        created = await roles.create_role("auditor", "Reads the ledger")
        assert isinstance(created, Ok)
        by_id = await roles.find_role_by_id(created.value.id)
        by_name = await roles.find_role_by_name("auditor")
        assert by_id == by_name == Ok(created.value)

    async def test_find_missing(self, roles: RoleService) -> None:
        for result in (await roles.find_role_by_id("nope"), await roles.find_role_by_name("nope")):
            assert isinstance(result, Err)
            assert result.kind == ErrorKind.NOT_FOUND

    async def test_list_pages(self, roles: RoleService) -> None:
        for name in ("auditor", "editor", "viewer"):
            await roles.create_role(name)
        first = await roles.list_roles(limit=2)
        rest = await roles.list_roles(limit=2, offset=2)
        assert isinstance(first, Ok)
        assert isinstance(rest, Ok)
        assert len(first.value) == 2
        assert len(rest.value) == 1
        assert {r.name for r in first.value + rest.value} == {"auditor", "editor", "viewer"}

    async def test_list_rejects_bad_window(self, roles: RoleService) -> None:
        result = await roles.list_roles(limit=0)
        assert isinstance(result, Err)
        assert result.kind == ErrorKind.VALIDATION

    async def test_rename(self, roles: RoleService) -> None:
        created = await roles.create_role("editor", "Edits things")
        assert isinstance(created, Ok)
        renamed = await roles.update_role(created.value.id, name="writer")
        assert isinstance(renamed, Ok)
        assert renamed.value.name == "writer"
        assert renamed.value.description == "Edits things"
        assert isinstance(await roles.find_role_by_name("editor"), Err)

    async def test_description_only(self, roles: RoleService) -> None:
        created = await roles.create_role("editor")
        assert isinstance(created, Ok)
        updated = await roles.update_role(created.value.id, description="Edits drafts")
        assert isinstance(updated, Ok)
        assert (updated.value.name, updated.value.description) == ("editor", "Edits drafts")

    async def test_rename_onto_existing_name_conflicts(self, roles: RoleService) -> None:
        await roles.create_role("editor")
        other = await roles.create_role("viewer")
        assert isinstance(other, Ok)
        result = await roles.update_role(other.value.id, name="editor")
        assert isinstance(result, Err)
        assert result.kind == ErrorKind.CONFLICT
        assert await roles.find_role_by_id(other.value.id) == Ok(other.value)

    async def test_rename_to_same_name_is_allowed(self, roles: RoleService) -> None:
        created = await roles.create_role("editor")
        assert isinstance(created, Ok)
        assert await roles.update_role(created.value.id, name="editor") == Ok(created.value)

    async def test_update_validation(self, roles: RoleService) -> None:
        created = await roles.create_role("editor")
        assert isinstance(created, Ok)
        blank = await roles.update_role(created.value.id, name="  ")
        missing = await roles.update_role("nope", name="writer")
        assert isinstance(blank, Err)
        assert blank.kind == ErrorKind.VALIDATION
        assert isinstance(missing, Err)
        assert missing.kind == ErrorKind.NOT_FOUND


class TestCacheConsistency:
    """Permission lookups never serve a revoked grant after a mutation returns."""

    async def test_removing_only_role_clears_permissions(
        self, uow: UnitOfWork, permission_cache, roles: RoleService, users: None
    ) -> None:
        resolver = SqlPermissionResolver(uow, permission_cache, cache_ttl=300)
        role_id, _ = await _role_with_permission(roles, "editor", "orders:write")
        await roles.assign_role_to_user(ALICE, role_id)

        assert await resolver.get_user_permissions(ALICE) == Ok(["orders:write"])
        assert await permission_cache.get(ALICE) == ["orders:write"]

        assert await roles.remove_role_from_user(ALICE, role_id) == Ok(None)
        assert await resolver.get_user_permissions(ALICE) == Ok([])

    async def test_delete_role_invalidates_every_member(
        self, uow: UnitOfWork, permission_cache, roles: RoleService, users: None
    ) -> None:
        resolver = SqlPermissionResolver(uow, permission_cache)
        role_id, _ = await _role_with_permission(roles, "editor", "orders:write")
        await roles.assign_role_to_user(ALICE, role_id)
        await roles.assign_role_to_user(BOB, role_id)
        await resolver.get_user_permissions(ALICE)
        await resolver.get_user_permissions(BOB)

        assert await roles.delete_role(role_id) == Ok(None)
        assert await resolver.get_user_permissions(ALICE) == Ok([])
        assert await resolver.get_user_permissions(BOB) == Ok([])

    async def test_invalidation_repeated_after_commit(
        self, uow: UnitOfWork, permission_cache, roles: RoleService, users: None
    ) -> None:
        role_id, _ = await _role_with_permission(roles, "editor", "orders:write")
        permission_cache.invalidated.clear()
        await roles.assign_role_to_user(ALICE, role_id)
        await uow.commit()
        assert permission_cache.invalidated == [ALICE, ALICE]

    async def test_failed_invalidation_aborts_mutation(
        self, db_session: AsyncSession, users: None
    ) -> None:
        await db_session.commit()
        uow = UnitOfWork(db_session)
        setup = RoleService(uow, InMemoryPermissionCache())
        role_id, _ = await _role_with_permission(setup, "editor", "orders:write")
        await uow.commit()

        broken = RoleService(uow, _FailingInvalidateCache())
        with pytest.raises(ConnectionError):
            await broken.assign_role_to_user(ALICE, role_id)

        listed = await setup.get_user_roles(ALICE)
        assert listed == Ok([])

    async def test_disabling_role_drops_its_permissions(
        self, uow: UnitOfWork, permission_cache, roles: RoleService, users: None
    ) -> None:
        resolver = SqlPermissionResolver(uow, permission_cache)
        role_id, _ = await _role_with_permission(roles, "editor", "orders:write")
        await roles.assign_role_to_user(ALICE, role_id)
        await roles.assign_role_to_user(BOB, role_id)
        assert await resolver.get_user_permissions(ALICE) == Ok(["orders:write"])
        permission_cache.invalidated.clear()

        disabled = await roles.set_role_active(role_id, False)
        assert isinstance(disabled, Ok)
        assert disabled.value.is_active is False
        assert sorted(permission_cache.invalidated) == [ALICE, BOB]
        assert await resolver.get_user_permissions(ALICE) == Ok([])

        assert isinstance(await roles.set_role_active(role_id, True), Ok)
        assert await resolver.get_user_permissions(ALICE) == Ok(["orders:write"])

    async def test_disabling_permission_reaches_every_holder(
        self, uow: UnitOfWork, permission_cache, roles: RoleService, users: None
    ) -> None:
        resolver = SqlPermissionResolver(uow, permission_cache)
        editor_id, perm_id = await _role_with_permission(roles, "editor", "orders:write")
        admin = await roles.create_role("admin")
        assert isinstance(admin, Ok)
        await roles.assign_permissions_to_role(admin.value.id, [perm_id])
        await roles.assign_role_to_user(ALICE, editor_id)
        await roles.assign_role_to_user(BOB, admin.value.id)
        await resolver.get_user_permissions(ALICE)
        await resolver.get_user_permissions(BOB)
        permission_cache.invalidated.clear()

        disabled = await roles.set_permission_active(perm_id, False)
        assert isinstance(disabled, Ok)
        assert sorted(permission_cache.invalidated) == [ALICE, BOB]
        assert await resolver.get_user_permissions(ALICE) == Ok([])
        assert await resolver.get_user_permissions(BOB) == Ok([])

    async def test_toggling_unknown_ids(self, roles: RoleService) -> None:
        for result in (
            await roles.set_role_active("nope", False),
            await roles.set_permission_active("nope", False),
        ):
            assert isinstance(result, Err)
            assert result.kind == ErrorKind.NOT_FOUND
