"""
Errors raised by the permission store, the role editor and the sources.

Unknown roles and unknown resource keys are not errors for access checks;
they evaluate to "denied". The exceptions here cover transport failures and
invalid administrative edits.
"""
from typing import Dict


class PermissionStoreError(Exception):
    """Base class for permission feature errors."""


class PermissionSourceError(PermissionStoreError):
    """Fetching permission documents from the source failed."""


class PermissionSaveError(PermissionStoreError):
    """
    One or more document writes failed during a save.

    Writes are independent: documents not listed in ``failures`` were stored.
    """

    def __init__(self, failures: Dict[str, BaseException]):
        self.failures = failures
        names = ", ".join(sorted(failures))
        super().__init__(f"Failed to write permission documents: {names}")


class InvalidRoleNameError(PermissionStoreError, ValueError):
    """Role display names must not be empty."""


class UnknownCustomRoleError(PermissionStoreError, KeyError):
    """The role id is not a custom role of the working copy."""

    def __init__(self, role_id: str):
        self.role_id = role_id
        super().__init__(role_id)

    def __str__(self) -> str:
        return f"Unknown custom role: {self.role_id}"


class UnknownResourceError(PermissionStoreError, KeyError):
    """The resource key has no row in the matrix being edited."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(key)

    def __str__(self) -> str:
        return f"Unknown {self.kind} resource: {self.key}"
