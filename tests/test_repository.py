import pytest

from rolegate.features.permissions.defaults import default_matrix
from rolegate.features.permissions.repository import (
    MemoryPermissionSource,
    RemotePermissions,
    parse_custom_roles,
)
from rolegate.features.permissions.schemas import CUSTOM_ROLES_DOCUMENT_KEY, CustomRole, ResourceKind


class TestDatabaseSource:

    async def test_empty_database(self, db_source):
        remote = await db_source.fetch_permissions()
        assert remote == RemotePermissions()
        for kind in ResourceKind:
            assert remote.matrix(kind) is None
        assert remote.custom_roles is None

    async def test_round_trip(self, db_source):
        matrix = default_matrix(ResourceKind.FEATURE)
        matrix.find("Exportar a Excel").grants["custom_1"] = True
        await db_source.write_special_features(matrix)
        await db_source.write_custom_roles([CustomRole(id="custom_1", name="Auditor")])

        remote = await db_source.fetch_permissions()
        assert remote.special_features == matrix
        assert remote.module_access is None
        assert remote.custom_roles == [CustomRole(id="custom_1", name="Auditor")]

    async def test_write_replaces_document(self, db_source):
        await db_source.write_custom_roles([CustomRole(id="custom_1", name="Auditor")])
        await db_source.write_custom_roles([])
        remote = await db_source.fetch_permissions()
        assert remote.custom_roles == []

    async def test_store_on_database(self, db_source, clock):
        from rolegate.features.permissions.store import PermissionStore

        store = PermissionStore(db_source, ttl_seconds=300, clock=clock)
        snapshot = await store.refresh()
        await store.save(snapshot.permissions, [CustomRole(id="custom_1", name="Auditor")])
        reloaded = await store.refresh()
        assert reloaded.permissions == snapshot.permissions
        assert [role.id for role in reloaded.custom_roles] == ["custom_1"]


class TestMemorySource:

    async def test_values_are_copied(self):
        source = MemoryPermissionSource()
        matrix = default_matrix(ResourceKind.MODULE)
        await source.write_module_access(matrix)
        source.documents[ResourceKind.MODULE.document_key][0]["admin"] = False
        remote = await source.fetch_permissions()
        assert not remote.module_access.rows[0].allows("admin")
        remote.module_access.rows[0].grants["admin"] = True
        assert source.documents[ResourceKind.MODULE.document_key][0]["admin"] is False

    async def test_ignores_documents_of_wrong_shape(self):
        source = MemoryPermissionSource({
            ResourceKind.MODULE.document_key: {"module": "Dashboard"},
            CUSTOM_ROLES_DOCUMENT_KEY: "custom_1",
        })
        remote = await source.fetch_permissions()
        assert remote.module_access is None
        assert remote.custom_roles is None


def test_parse_custom_roles_skips_bad_records():
    roles = parse_custom_roles([
        {"id": "custom_1", "name": "Auditor", "bgColor": "bg-pink-50"},
        {"id": "custom_2"},
        "custom_3",
        {"id": "custom_1", "name": "Duplicado"},
    ])
    assert [role.id for role in roles] == ["custom_1"]
    assert roles[0].bg_color == "bg-pink-50"


@pytest.mark.parametrize("kind", list(ResourceKind))
async def test_write_matrix_uses_document_key(kind):
    source = MemoryPermissionSource()
    await source.write_matrix(default_matrix(kind))
    assert list(source.documents) == [kind.document_key]
