"""
FastAPI dependencies for the permission store and route guards.
"""
from fastapi import Depends, HTTPException, Request, status

from rolegate.features.permissions.evaluator import AccessEvaluator
from rolegate.features.permissions.schemas import ResourceKind
from rolegate.features.permissions.store import PermissionStore
from rolegate.features.users.dependencies import get_current_role
from rolegate.utils import get_logger


log = get_logger(__name__)

ROLE_MANAGEMENT_MODULE = "Gestión de Roles"


def get_permission_store(request: Request) -> PermissionStore:
    """The application's store, created at startup."""
    store = getattr(request.app.state, "permission_store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Permission store is not initialized",
        )
    return store


def get_access_evaluator(store: PermissionStore = Depends(get_permission_store)) -> AccessEvaluator:
    return AccessEvaluator(store)


def require_access(kind: ResourceKind, key: str):
    """
    FastAPI dependency requiring the caller's role to be granted ``key``.

    The check is synchronous against the cached permissions, so a guarded
    route never waits on the permission documents.

    Usage:
        @router.put("")
        async def save_permissions(
            role: str = Depends(require_access(ResourceKind.MODULE, "Gestión de Roles"))
        ):
            pass

    Returns:
        Dependency function that returns the caller's role if access is granted

    Raises:
        HTTPException: 403 if the role is not granted
    """
    async def access_dependency(
        role: str = Depends(get_current_role),
        evaluator: AccessEvaluator = Depends(get_access_evaluator),
    ) -> str:
        if not evaluator.has_access(kind, role, key):
            log.info("Denied %s access to %s %r", role, kind.value, key)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {kind.value} {key}",
            )
        return role

    return access_dependency


def require_module_access(module: str):
    return require_access(ResourceKind.MODULE, module)


require_role_management = require_module_access(ROLE_MANAGEMENT_MODULE)
