"""
Permission API routes.

Reads are open to any authenticated caller. Changing permissions or roles
requires module access to role management.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError

from rolegate.features.permissions.dependencies import (
    get_access_evaluator,
    get_permission_store,
    require_role_management,
)
from rolegate.features.permissions.editor import RoleEditor
from rolegate.features.permissions.evaluator import AccessEvaluator
from rolegate.features.permissions.exceptions import (
    InvalidRoleNameError,
    PermissionSaveError,
    PermissionSourceError,
    UnknownCustomRoleError,
)
from rolegate.features.permissions.roles import BUILTIN_ROLES, is_builtin_role, resolve_role
from rolegate.features.permissions.schemas import (
    CustomRole,
    CustomRoleCreate,
    CustomRoleUpdate,
    PermissionCheckResponse,
    PermissionSnapshot,
    PermissionsUpdate,
    ResourceKind,
    RoleResponse,
    StoreStatusResponse,
)
from rolegate.features.permissions.store import PermissionStore
from rolegate.features.users.dependencies import get_current_role
from rolegate.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


def _custom_role_response(role: CustomRole) -> RoleResponse:
    return RoleResponse(
        id=role.id,
        name=role.name,
        builtin=False,
        color=role.color,
        bg_color=role.bg_color,
        border_color=role.border_color,
    )


def _save_failed(e: PermissionSaveError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={
            "message": "Permissions may be only partially saved",
            "failed": sorted(e.failures),
        },
    )


async def _save(editor: RoleEditor) -> None:
    try:
        await editor.save()
    except PermissionSaveError as e:
        raise _save_failed(e)
    await editor.store.preload()


async def _load_editor(store: PermissionStore) -> RoleEditor:
    # Edits must start from stored data, never from the defaults fallback
    try:
        snapshot = await store.refresh()
    except PermissionSourceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    editor = RoleEditor(store)
    editor.load_snapshot(snapshot)
    return editor


# ============================================================================
# Permission Routes
# ============================================================================

@router.get("", response_model=PermissionSnapshot)
async def get_permissions(
    store: PermissionStore = Depends(get_permission_store),
    _role: str = Depends(get_current_role),
):
    """Current permissions, reloaded first if the cached copy has expired."""
    return await store.preload()


@router.get("/status", response_model=StoreStatusResponse)
async def get_store_status(
    store: PermissionStore = Depends(get_permission_store),
    _role: str = Depends(get_current_role),
):
    snapshot = store.read_sync()
    return StoreStatusResponse(
        state=store.state.value,
        source=snapshot.source if snapshot else None,
        fetched_at=snapshot.fetched_at if snapshot else None,
        custom_roles=len(snapshot.custom_roles) if snapshot else 0,
    )


@router.post("/refresh", response_model=PermissionSnapshot)
async def refresh_permissions(
    store: PermissionStore = Depends(get_permission_store),
    _role: str = Depends(require_role_management),
):
    """Load permissions now unless the cached copy is still fresh."""
    try:
        return await store.refresh()
    except PermissionSourceError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )


@router.post("/invalidate", status_code=status.HTTP_204_NO_CONTENT)
async def invalidate_permissions(
    store: PermissionStore = Depends(get_permission_store),
    role: str = Depends(require_role_management),
):
    """Make the next refresh fetch and notify subscribers."""
    log.info("Permissions cache invalidated by %s", role)
    store.invalidate()
    return None


@router.put("", response_model=PermissionSnapshot)
async def save_permissions(
    update: PermissionsUpdate,
    store: PermissionStore = Depends(get_permission_store),
    role: str = Depends(require_role_management),
):
    """Replace all matrices and the custom role list."""
    try:
        permissions = update.to_permission_set()
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        await store.save(permissions, update.custom_roles)
    except PermissionSaveError as e:
        raise _save_failed(e)
    log.info("Permissions replaced by %s", role)
    return await store.preload()


@router.get("/check", response_model=PermissionCheckResponse)
async def check_permission(
    kind: ResourceKind,
    key: str,
    role: Optional[str] = None,
    fresh: bool = False,
    current_role: str = Depends(get_current_role),
    evaluator: AccessEvaluator = Depends(get_access_evaluator),
):
    """
    Check one permission for the caller, or for ``role`` if given.

    With ``fresh=true`` the permissions are loaded first instead of
    answering from the cache.
    """
    role = role or current_role
    if fresh:
        granted = await evaluator.has_access_async(kind, role, key)
    else:
        granted = evaluator.has_access(kind, role, key)
    return PermissionCheckResponse(role=role, role_id=resolve_role(role), kind=kind, key=key, granted=granted)


# ============================================================================
# Role Routes
# ============================================================================

@router.get("/roles", response_model=List[RoleResponse])
async def list_roles(
    store: PermissionStore = Depends(get_permission_store),
    _role: str = Depends(get_current_role),
):
    """Built-in roles followed by custom roles."""
    snapshot = await store.preload()
    roles = [
        RoleResponse(id=role_id, builtin=True, **info)
        for role_id, info in BUILTIN_ROLES.items()
    ]
    roles.extend(_custom_role_response(role) for role in snapshot.custom_roles)
    return roles


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_custom_role(
    payload: CustomRoleCreate,
    store: PermissionStore = Depends(get_permission_store),
    role: str = Depends(require_role_management),
):
    """Create a custom role. It is denied everything until granted."""
    editor = await _load_editor(store)
    created = editor.add_custom_role(payload.name)
    await _save(editor)
    log.info("Custom role %s created by %s", created.id, role)
    return _custom_role_response(created)


@router.patch("/roles/{role_id}", response_model=RoleResponse)
async def rename_custom_role(
    role_id: str,
    payload: CustomRoleUpdate,
    store: PermissionStore = Depends(get_permission_store),
    role: str = Depends(require_role_management),
):
    if is_builtin_role(role_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Built-in roles cannot be renamed")
    editor = await _load_editor(store)
    try:
        renamed = editor.rename_custom_role(role_id, payload.name)
    except UnknownCustomRoleError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    except InvalidRoleNameError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    await _save(editor)
    log.info("Custom role %s renamed by %s", role_id, role)
    return _custom_role_response(renamed)


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_custom_role(
    role_id: str,
    store: PermissionStore = Depends(get_permission_store),
    role: str = Depends(require_role_management),
):
    """Delete a custom role and remove its grants from every matrix."""
    if is_builtin_role(role_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Built-in roles cannot be deleted")
    editor = await _load_editor(store)
    try:
        editor.delete_custom_role(role_id)
    except UnknownCustomRoleError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    await _save(editor)
    log.info("Custom role %s deleted by %s", role_id, role)
    return None
