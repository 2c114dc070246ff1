"""
Permission data model and API schemas.

A permission matrix is an ordered list of rows, one per resource. Each row
maps role ids to an explicit grant flag; a role missing from a row is denied.
The remote documents store each matrix in its historical wire format, e.g.
``[{"module": "Dashboard", "admin": true, "user": false}]``, which
``PermissionMatrix.from_records`` / ``to_records`` translate.
"""
import enum
from datetime import datetime
from typing import Any, Dict, Iterable, List, Literal, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from rolegate.features.permissions.roles import CUSTOM_ROLE_STYLE
from rolegate.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Resource kinds
# ============================================================================

class ResourceKind(str, enum.Enum):
    """The four independent permission matrices."""
    MODULE = "module"
    CRUD = "crud"
    FEATURE = "feature"
    DATA = "data"

    @property
    def row_field(self) -> str:
        """Name of the resource key field in the wire format."""
        return _ROW_FIELDS[self]

    @property
    def document_key(self) -> str:
        """Key of the remote document holding this matrix."""
        return _DOCUMENT_KEYS[self]

    @property
    def set_field(self) -> str:
        """Attribute of PermissionSet holding this matrix."""
        return _SET_FIELDS[self]


_ROW_FIELDS = {
    ResourceKind.MODULE: "module",
    ResourceKind.CRUD: "operation",
    ResourceKind.FEATURE: "feature",
    ResourceKind.DATA: "data",
}

_DOCUMENT_KEYS = {
    ResourceKind.MODULE: "rolePermissions_moduleAccess",
    ResourceKind.CRUD: "rolePermissions_crudPermissions",
    ResourceKind.FEATURE: "rolePermissions_specialFeatures",
    ResourceKind.DATA: "rolePermissions_financialAccess",
}

_SET_FIELDS = {
    ResourceKind.MODULE: "module_access",
    ResourceKind.CRUD: "crud_permissions",
    ResourceKind.FEATURE: "special_features",
    ResourceKind.DATA: "financial_access",
}

CUSTOM_ROLES_DOCUMENT_KEY = "rolePermissions_customRoles"


# ============================================================================
# Matrices
# ============================================================================

class PermissionRow(BaseModel):
    """One resource and the roles granted or denied on it."""
    key: str = Field(..., min_length=1, description="Module, operation, feature or data category name")
    grants: Dict[str, bool] = Field(default_factory=dict, description="Role id -> granted")

    def allows(self, role_id: str) -> bool:
        return self.grants.get(role_id) is True


class PermissionMatrix(BaseModel):
    """All rows of one resource kind. Row keys are unique."""
    kind: ResourceKind
    rows: List[PermissionRow] = Field(default_factory=list)

    @model_validator(mode="after")
    def unique_keys(self) -> "PermissionMatrix":
        seen = set()
        for row in self.rows:
            if row.key in seen:
                raise ValueError(f"Duplicate {self.kind.value} resource: {row.key}")
            seen.add(row.key)
        return self

    def find(self, key: str) -> Optional[PermissionRow]:
        for row in self.rows:
            if row.key == key:
                return row
        return None

    def keys(self) -> List[str]:
        return [row.key for row in self.rows]

    def to_records(self) -> List[Dict[str, Any]]:
        field = self.kind.row_field
        return [{field: row.key, **row.grants} for row in self.rows]

    @classmethod
    def from_records(cls, kind: ResourceKind, records: Iterable[Any]) -> "PermissionMatrix":
        """
        Parse a stored matrix.

        Records without a resource key are skipped, later duplicates of a key
        are ignored and only boolean grant values are kept, so a damaged
        document degrades to fewer grants instead of failing the whole load.
        """
        field = kind.row_field
        rows: List[PermissionRow] = []
        seen = set()
        for record in records:
            if not isinstance(record, dict):
                log.warning("Skipping malformed %s record: %r", kind.value, record)
                continue
            key = record.get(field)
            if not isinstance(key, str) or not key:
                log.warning("Skipping %s record without '%s': %r", kind.value, field, record)
                continue
            if key in seen:
                log.warning("Ignoring duplicate %s record for %r", kind.value, key)
                continue
            seen.add(key)
            grants = {
                role_id: value
                for role_id, value in record.items()
                if role_id != field and isinstance(value, bool)
            }
            rows.append(PermissionRow(key=key, grants=grants))
        return cls(kind=kind, rows=rows)


class PermissionSet(BaseModel):
    """The four matrices that together decide every access check."""
    module_access: PermissionMatrix
    crud_permissions: PermissionMatrix
    special_features: PermissionMatrix
    financial_access: PermissionMatrix

    @model_validator(mode="after")
    def matrices_match_fields(self) -> "PermissionSet":
        for kind in ResourceKind:
            if self.matrix(kind).kind is not kind:
                raise ValueError(f"{kind.set_field} must hold a {kind.value} matrix")
        return self

    def matrix(self, kind: ResourceKind) -> PermissionMatrix:
        return getattr(self, kind.set_field)

    def matrices(self) -> List[PermissionMatrix]:
        return [self.matrix(kind) for kind in ResourceKind]

    @classmethod
    def from_matrices(cls, matrices: Dict[ResourceKind, PermissionMatrix]) -> "PermissionSet":
        return cls(**{kind.set_field: matrices[kind] for kind in ResourceKind})


# ============================================================================
# Roles and snapshots
# ============================================================================

class CustomRole(BaseModel):
    """An administrator-defined role. The id never changes; the name may."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=50)
    color: str = CUSTOM_ROLE_STYLE["color"]
    bg_color: str = Field(CUSTOM_ROLE_STYLE["bg_color"], alias="bgColor")
    border_color: str = Field(CUSTOM_ROLE_STYLE["border_color"], alias="borderColor")

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class PermissionSnapshot(BaseModel):
    """
    Permissions as currently cached.

    A snapshot is replaced as a whole by the next refresh and never edited
    in place.
    """
    model_config = ConfigDict(frozen=True)

    permissions: PermissionSet
    custom_roles: List[CustomRole] = Field(default_factory=list)
    fetched_at: datetime
    source: Literal["remote", "defaults"]

    def custom_role(self, role_id: str) -> Optional[CustomRole]:
        for role in self.custom_roles:
            if role.id == role_id:
                return role
        return None


# ============================================================================
# API Schemas
# ============================================================================

class RoleResponse(BaseModel):
    """A built-in or custom role as listed by the API."""
    id: str
    name: str
    builtin: bool
    color: str
    bg_color: str
    border_color: str


class CustomRoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50, description="Display name")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Role name must not be blank")
        return v.strip()


class CustomRoleUpdate(CustomRoleCreate):
    pass


class PermissionsUpdate(BaseModel):
    """Full replacement of all four matrices and the custom role list."""
    module_access: List[PermissionRow]
    crud_permissions: List[PermissionRow]
    special_features: List[PermissionRow]
    financial_access: List[PermissionRow]
    custom_roles: List[CustomRole] = Field(default_factory=list)

    def to_permission_set(self) -> PermissionSet:
        """Build the matrices. Raises ValidationError on duplicate row keys."""
        return PermissionSet.from_matrices({
            kind: PermissionMatrix(kind=kind, rows=getattr(self, kind.set_field))
            for kind in ResourceKind
        })


class PermissionCheckResponse(BaseModel):
    role: str
    role_id: str
    kind: ResourceKind
    key: str
    granted: bool


class StoreStatusResponse(BaseModel):
    state: str
    source: Optional[str] = None
    fetched_at: Optional[datetime] = None
    custom_roles: int = 0
