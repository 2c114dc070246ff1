"""
Role identifiers.

Every permission row is keyed by a role id. Built-in roles have fixed ids
(admin, accounting, coordinator, user); custom roles get a generated
``custom_<ULID>`` id when an administrator creates them. Users may carry
either a display name ("Administrador", "contabilidad", ...) or an id, so
every check goes through ``resolve_role`` first.
"""
from typing import Dict, List, Optional
from ulid import ULID


ADMIN = "admin"
ACCOUNTING = "accounting"
COORDINATOR = "coordinator"
USER = "user"

# Column order used by the default policy table
BUILTIN_ROLE_IDS: List[str] = [ADMIN, ACCOUNTING, COORDINATOR, USER]

BUILTIN_ROLES: Dict[str, Dict[str, str]] = {
    ADMIN: {
        "name": "Administrador",
        "color": "text-red-600",
        "bg_color": "bg-red-50",
        "border_color": "border-red-200",
    },
    ACCOUNTING: {
        "name": "Contable",
        "color": "text-blue-600",
        "bg_color": "bg-blue-50",
        "border_color": "border-blue-200",
    },
    COORDINATOR: {
        "name": "Coordinador",
        "color": "text-green-600",
        "bg_color": "bg-green-50",
        "border_color": "border-green-200",
    },
    USER: {
        "name": "Usuario",
        "color": "text-gray-600",
        "bg_color": "bg-gray-50",
        "border_color": "border-gray-200",
    },
}

CUSTOM_ROLE_PREFIX = "custom_"

# Presentation defaults for newly created custom roles
CUSTOM_ROLE_STYLE: Dict[str, str] = {
    "color": "text-purple-600",
    "bg_color": "bg-purple-50",
    "border_color": "border-purple-200",
}

# Lower-cased names accepted for built-in roles.
# "contabilidad" is the pre-rename spelling of the accounting role.
ROLE_ALIASES: Dict[str, str] = {
    "administrador": ADMIN,
    "contable": ACCOUNTING,
    "contabilidad": ACCOUNTING,
    "coordinador": COORDINATOR,
    "usuario": USER,
    **{role_id: role_id for role_id in BUILTIN_ROLE_IDS},
}


def resolve_role(role: Optional[str]) -> str:
    """
    Map a role name or id to the id used in permission rows.

    Built-in names and ids match case-insensitively. Anything else (custom
    role ids, unknown names) is returned unchanged and simply has no grants.
    """
    if not role:
        return ""
    return ROLE_ALIASES.get(role.lower(), role)


def is_builtin_role(role_id: str) -> bool:
    return role_id in BUILTIN_ROLES


def new_custom_role_id() -> str:
    """Generate a custom role id. ULIDs are time-ordered and never repeat."""
    return f"{CUSTOM_ROLE_PREFIX}{ULID()}"
