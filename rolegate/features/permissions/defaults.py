"""
Default permission matrices for the built-in roles.

Used whenever the permission documents cannot be loaded, and to reconcile
loaded documents: every default row missing from a stored matrix is
appended with its default grants, so resources added in newer releases are
decidable against permission sets saved by older ones.

Each entry is (resource, admin, accounting, coordinator, user).
"""
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional, Tuple

from rolegate.features.permissions.roles import BUILTIN_ROLE_IDS
from rolegate.features.permissions.schemas import (
    PermissionMatrix,
    PermissionRow,
    PermissionSet,
    PermissionSnapshot,
    ResourceKind,
)


DefaultEntry = Tuple[str, bool, bool, bool, bool]


DEFAULT_MODULE_ACCESS: List[DefaultEntry] = [
    ("Dashboard", True, True, True, True),
    ("Gestión de Inventario", True, False, True, False),
    ("Sistema de Contabilidad", True, True, False, False),
    ("Gestión de Productos", True, False, True, False),
    ("Gestión de Categorías", True, True, False, False),
    ("Gestión de Proveedores", True, True, False, False),
    ("Gestión de Clientes", True, True, False, False),
    ("Gestión de Departamentos", True, True, False, False),
    ("Reportes y Estadísticas", True, True, True, True),
    ("Gestión de Roles", True, False, False, False),
]

DEFAULT_CRUD_PERMISSIONS: List[DefaultEntry] = [
    ("Crear Productos", True, False, True, False),
    ("Editar Productos", True, False, True, False),
    ("Eliminar Productos", True, False, False, False),
    ("Ver Productos", True, True, True, True),
    ("Crear Pedidos", True, True, True, False),
    ("Modificar Pedidos", True, True, False, False),
    ("Cancelar Pedidos", True, True, False, False),
    ("Ver Historial Completo", True, True, True, False),
    ("Gestionar Stock", True, False, True, False),
    ("Mover Unidades", True, False, True, False),
    ("Eliminar Unidades", True, False, False, False),
    ("Ver Papelera", True, False, True, False),
    ("Restaurar desde Papelera", True, False, False, False),
    ("Eliminar Permanentemente de Papelera", True, False, False, False),
]

DEFAULT_SPECIAL_FEATURES: List[DefaultEntry] = [
    ("Acceso a Contabilidad", True, True, False, False),
    ("Cambiar entre Sistemas", True, False, False, False),
    ("Generar PDFs de Pedidos", True, True, True, False),
    ("Exportar a Excel", True, True, True, False),
    ("Importar Datos Masivos", True, False, False, False),
    ("Escanear Códigos QR", True, False, True, True),
    ("Ver Precios de Compra", True, True, False, False),
    ("Ver Precios de Venta", True, True, True, True),
    ("Modificar Configuración", True, False, False, False),
    ("Gestionar Usuarios", True, False, False, False),
    ("Cambiar Posición Sidebar", True, True, True, True),
    ("Ver Ayuda/Soporte", True, True, True, True),
    ("Editar Inventario Compras", True, True, True, False),
    ("Eliminar Inventario Compras", True, True, False, False),
    ("Editar Inventario Ventas", True, True, True, False),
    ("Eliminar Inventario Ventas", True, True, False, False),
    ("Editar Proveedores", True, True, True, False),
    ("Eliminar Proveedores", True, True, False, False),
]

DEFAULT_FINANCIAL_ACCESS: List[DefaultEntry] = [
    ("Inventario de Compras", True, True, False, False),
    ("Inventario de Ventas", True, True, False, False),
    ("Datos de Facturación", True, True, False, False),
    ("Descuentos Aplicados", True, True, False, False),
    ("Márgenes de Beneficio", True, True, False, False),
    ("Información de Proveedores", True, True, False, False),
    ("Información de Clientes", True, True, False, False),
    ("Salarios de Empleados", True, False, False, False),
    ("Datos de Departamentos", True, True, False, False),
    ("Histórico Financiero", True, True, False, False),
    ("Ubicaciones y Almacenes", True, True, True, False),
    ("Números de Serie/SKU", True, False, True, False),
]

DEFAULT_TABLES: Dict[ResourceKind, List[DefaultEntry]] = {
    ResourceKind.MODULE: DEFAULT_MODULE_ACCESS,
    ResourceKind.CRUD: DEFAULT_CRUD_PERMISSIONS,
    ResourceKind.FEATURE: DEFAULT_SPECIAL_FEATURES,
    ResourceKind.DATA: DEFAULT_FINANCIAL_ACCESS,
}

# Resources of removed product features, dropped from stored matrices on load.
# The inventory edit/delete operations now live in the special features matrix.
LEGACY_KEYS: Dict[ResourceKind, FrozenSet[str]] = {
    ResourceKind.MODULE: frozenset({
        "Gestión de Empleados",
        "Configuración del Sistema",
    }),
    ResourceKind.CRUD: frozenset({
        "Editar Inventario Compras",
        "Eliminar Inventario Compras",
        "Editar Inventario Ventas",
        "Eliminar Inventario Ventas",
    }),
    ResourceKind.FEATURE: frozenset(),
    ResourceKind.DATA: frozenset(),
}


def _row(entry: DefaultEntry) -> PermissionRow:
    key, *flags = entry
    return PermissionRow(key=key, grants=dict(zip(BUILTIN_ROLE_IDS, flags)))


def default_matrix(kind: ResourceKind) -> PermissionMatrix:
    """A fresh copy of the default matrix for ``kind``."""
    return PermissionMatrix(kind=kind, rows=[_row(entry) for entry in DEFAULT_TABLES[kind]])


def default_permission_set() -> PermissionSet:
    return PermissionSet.from_matrices({kind: default_matrix(kind) for kind in ResourceKind})


def default_snapshot(fetched_at: Optional[datetime] = None) -> PermissionSnapshot:
    return PermissionSnapshot(
        permissions=default_permission_set(),
        custom_roles=[],
        fetched_at=fetched_at or datetime.now(timezone.utc),
        source="defaults",
    )


def reconcile_matrix(matrix: PermissionMatrix) -> PermissionMatrix:
    """
    Prune legacy rows and append missing default rows.

    Stored rows keep their order and grants; appended rows carry only the
    built-in roles' default grants, so custom roles start out denied on them.
    Reconciling an already reconciled matrix returns an equal matrix.
    """
    legacy = LEGACY_KEYS[matrix.kind]
    rows = [row.model_copy(deep=True) for row in matrix.rows if row.key not in legacy]
    present = {row.key for row in rows}
    for entry in DEFAULT_TABLES[matrix.kind]:
        if entry[0] not in present:
            rows.append(_row(entry))
    return PermissionMatrix(kind=matrix.kind, rows=rows)


def reconcile_permission_set(permissions: PermissionSet) -> PermissionSet:
    return PermissionSet.from_matrices({
        matrix.kind: reconcile_matrix(matrix) for matrix in permissions.matrices()
    })
