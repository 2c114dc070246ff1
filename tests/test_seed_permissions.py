from scripts.seed_permissions import seed_permissions

from rolegate.features.permissions.defaults import default_matrix
from rolegate.features.permissions.repository import MemoryPermissionSource
from rolegate.features.permissions.schemas import CUSTOM_ROLES_DOCUMENT_KEY, ResourceKind


async def test_seeds_empty_database(db_source):
    written = await seed_permissions(db_source)
    assert written == list(ResourceKind)
    remote = await db_source.fetch_permissions()
    for kind in ResourceKind:
        assert remote.matrix(kind) == default_matrix(kind)
    assert remote.custom_roles == []


async def test_keeps_existing_documents():
    existing = [{"module": "Dashboard", "admin": True}]
    source = MemoryPermissionSource({
        ResourceKind.MODULE.document_key: existing,
        CUSTOM_ROLES_DOCUMENT_KEY: [{"id": "custom_1", "name": "Auditor"}],
    })
    written = await seed_permissions(source)
    assert ResourceKind.MODULE not in written
    assert source.documents[ResourceKind.MODULE.document_key] == existing
    assert len(source.documents[CUSTOM_ROLES_DOCUMENT_KEY]) == 1


async def test_force_overwrites():
    source = MemoryPermissionSource({
        ResourceKind.MODULE.document_key: [{"module": "Dashboard", "admin": True}],
        CUSTOM_ROLES_DOCUMENT_KEY: [{"id": "custom_1", "name": "Auditor"}],
    })
    written = await seed_permissions(source, force=True)
    assert written == list(ResourceKind)
    assert source.documents[CUSTOM_ROLES_DOCUMENT_KEY] == []
    assert source.documents[ResourceKind.MODULE.document_key] == default_matrix(ResourceKind.MODULE).to_records()
