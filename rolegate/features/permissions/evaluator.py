"""
Access checks over the permission store.

The synchronous predicates read the store's current snapshot (or the default
tables if nothing has loaded yet) and never do I/O. The ``*_async`` variants
preload first, trading latency for fresher data.

Every check is closed-world: an unknown resource, an unknown role or a role
absent from the resource's row is denied.
"""
from typing import Optional

from rolegate.features.permissions.defaults import default_permission_set
from rolegate.features.permissions.roles import resolve_role
from rolegate.features.permissions.schemas import PermissionSet, ResourceKind
from rolegate.features.permissions.store import PermissionStore
from rolegate.utils import get_logger


log = get_logger(__name__)


def evaluate(permissions: PermissionSet, kind: ResourceKind, role: Optional[str], key: str) -> bool:
    """Decide one check against an explicit permission set."""
    role_id = resolve_role(role)
    if not role_id:
        return False
    row = permissions.matrix(kind).find(key)
    if row is None:
        return False
    return row.allows(role_id)


class AccessEvaluator:

    def __init__(self, store: PermissionStore):
        self.store = store
        self._defaults: Optional[PermissionSet] = None

    def _permissions(self) -> PermissionSet:
        snapshot = self.store.read_sync()
        if snapshot is not None:
            return snapshot.permissions
        if self._defaults is None:
            self._defaults = default_permission_set()
        return self._defaults

    def has_access(self, kind: ResourceKind, role: Optional[str], key: str) -> bool:
        granted = evaluate(self._permissions(), kind, role, key)
        log.debug("%s check role=%r key=%r -> %s", kind.value, role, key, granted)
        return granted

    def has_module_access(self, role: Optional[str], module: str) -> bool:
        return self.has_access(ResourceKind.MODULE, role, module)

    def has_crud_permission(self, role: Optional[str], operation: str) -> bool:
        return self.has_access(ResourceKind.CRUD, role, operation)

    def has_feature_access(self, role: Optional[str], feature: str) -> bool:
        return self.has_access(ResourceKind.FEATURE, role, feature)

    def has_data_access(self, role: Optional[str], data_category: str) -> bool:
        return self.has_access(ResourceKind.DATA, role, data_category)

    async def has_access_async(self, kind: ResourceKind, role: Optional[str], key: str) -> bool:
        snapshot = await self.store.preload()
        return evaluate(snapshot.permissions, kind, role, key)

    async def has_module_access_async(self, role: Optional[str], module: str) -> bool:
        return await self.has_access_async(ResourceKind.MODULE, role, module)

    async def has_crud_permission_async(self, role: Optional[str], operation: str) -> bool:
        return await self.has_access_async(ResourceKind.CRUD, role, operation)

    async def has_feature_access_async(self, role: Optional[str], feature: str) -> bool:
        return await self.has_access_async(ResourceKind.FEATURE, role, feature)

    async def has_data_access_async(self, role: Optional[str], data_category: str) -> bool:
        return await self.has_access_async(ResourceKind.DATA, role, data_category)
