"""
Administrative working copy of the permission set.

The editor keeps the last saved permissions next to a working copy that the
administrator edits. Every mutation marks the editor dirty; a successful
``save()`` publishes the working copy through the store and clears the flag.
"""
from typing import List, Optional

from rolegate.features.permissions.exceptions import (
    InvalidRoleNameError,
    UnknownCustomRoleError,
    UnknownResourceError,
)
from rolegate.features.permissions.roles import new_custom_role_id, resolve_role
from rolegate.features.permissions.schemas import (
    CustomRole,
    PermissionRow,
    PermissionSet,
    PermissionSnapshot,
    ResourceKind,
)
from rolegate.features.permissions.store import PermissionStore
from rolegate.utils import get_logger


log = get_logger(__name__)


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidRoleNameError("Role name must not be empty")
    return cleaned


class RoleEditor:

    def __init__(self, store: PermissionStore):
        self.store = store
        self.dirty = False
        self._permissions: Optional[PermissionSet] = None
        self._custom_roles: List[CustomRole] = []
        self._saved_permissions: Optional[PermissionSet] = None
        self._saved_custom_roles: List[CustomRole] = []

    # ------------------------------------------------------------------
    # Loading and inspection
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """
        Start editing from the stored permissions.

        Raises PermissionSourceError when they cannot be loaded. The defaults
        fallback is never edited.
        """
        snapshot = await self.store.refresh()
        self.load_snapshot(snapshot)

    def load_snapshot(self, snapshot: PermissionSnapshot) -> None:
        self._saved_permissions = snapshot.permissions.model_copy(deep=True)
        self._saved_custom_roles = [role.model_copy() for role in snapshot.custom_roles]
        self._reset_working_copy()

    def _reset_working_copy(self) -> None:
        self._permissions = self._saved_permissions.model_copy(deep=True)
        self._custom_roles = [role.model_copy() for role in self._saved_custom_roles]
        self.dirty = False

    @property
    def loaded(self) -> bool:
        return self._permissions is not None

    @property
    def permissions(self) -> PermissionSet:
        self._require_loaded()
        return self._permissions

    @property
    def custom_roles(self) -> List[CustomRole]:
        return list(self._custom_roles)

    def _require_loaded(self) -> None:
        if self._permissions is None:
            raise RuntimeError("RoleEditor.load() must be called before editing")

    def _row(self, kind: ResourceKind, key: str) -> PermissionRow:
        row = self.permissions.matrix(kind).find(key)
        if row is None:
            raise UnknownResourceError(kind.value, key)
        return row

    def _custom_role(self, role_id: str) -> CustomRole:
        for role in self._custom_roles:
            if role.id == role_id:
                return role
        raise UnknownCustomRoleError(role_id)

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    def set_grant(self, kind: ResourceKind, key: str, role: str, granted: bool) -> None:
        row = self._row(kind, key)
        row.grants[resolve_role(role)] = granted
        self.dirty = True

    def toggle(self, kind: ResourceKind, key: str, role: str) -> bool:
        """Flip one grant and return the new value."""
        row = self._row(kind, key)
        role_id = resolve_role(role)
        granted = not row.allows(role_id)
        row.grants[role_id] = granted
        self.dirty = True
        return granted

    # ------------------------------------------------------------------
    # Custom roles
    # ------------------------------------------------------------------

    def add_custom_role(self, name: str) -> CustomRole:
        """Create a role that is denied everything until granted."""
        self._require_loaded()
        role = CustomRole(id=new_custom_role_id(), name=_clean_name(name))
        for matrix in self._permissions.matrices():
            for row in matrix.rows:
                row.grants[role.id] = False
        self._custom_roles.append(role)
        self.dirty = True
        log.info("Added custom role %s (%s)", role.id, role.name)
        return role

    def rename_custom_role(self, role_id: str, name: str) -> CustomRole:
        role = self._custom_role(role_id)
        role.name = _clean_name(name)
        self.dirty = True
        return role

    def delete_custom_role(self, role_id: str) -> CustomRole:
        """Remove the role and its grants from every row of every matrix."""
        role = self._custom_role(role_id)
        for matrix in self._permissions.matrices():
            for row in matrix.rows:
                row.grants.pop(role_id, None)
        self._custom_roles = [r for r in self._custom_roles if r.id != role_id]
        self.dirty = True
        log.info("Deleted custom role %s (%s)", role.id, role.name)
        return role

    # ------------------------------------------------------------------
    # Save / discard
    # ------------------------------------------------------------------

    def discard(self) -> None:
        """Drop unsaved changes."""
        self._require_loaded()
        self._reset_working_copy()

    async def save(self) -> None:
        """
        Publish the working copy. On failure the editor stays dirty so the
        administrator can retry; some documents may already be stored.
        """
        self._require_loaded()
        await self.store.save(self._permissions, self._custom_roles)
        self._saved_permissions = self._permissions.model_copy(deep=True)
        self._saved_custom_roles = [role.model_copy() for role in self._custom_roles]
        self.dirty = False
