"""
Permission sources: where the authoritative permission documents live.

The store only talks to ``PermissionSource``. Fetches return whatever
documents exist (any of them may be missing); each write replaces one
document and is independent of the others, so a save can partially fail.
"""
import copy
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional
from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rolegate.core import config
from rolegate.features.permissions.models import PermissionDocument
from rolegate.features.permissions.schemas import (
    CUSTOM_ROLES_DOCUMENT_KEY,
    CustomRole,
    PermissionMatrix,
    ResourceKind,
)
from rolegate.utils import get_logger


log = get_logger(__name__)

ALL_DOCUMENT_KEYS: List[str] = [kind.document_key for kind in ResourceKind] + [CUSTOM_ROLES_DOCUMENT_KEY]


class RemotePermissions(BaseModel):
    """Result of a fetch. ``None`` means the document has never been saved."""
    module_access: Optional[PermissionMatrix] = None
    crud_permissions: Optional[PermissionMatrix] = None
    special_features: Optional[PermissionMatrix] = None
    financial_access: Optional[PermissionMatrix] = None
    custom_roles: Optional[List[CustomRole]] = None

    def matrix(self, kind: ResourceKind) -> Optional[PermissionMatrix]:
        return getattr(self, kind.set_field)


def parse_custom_roles(records: Iterable[Any]) -> List[CustomRole]:
    roles: List[CustomRole] = []
    seen = set()
    for record in records:
        try:
            role = CustomRole.model_validate(record)
        except ValidationError as e:
            log.warning("Skipping malformed custom role %r: %s", record, e)
            continue
        if role.id in seen:
            log.warning("Ignoring duplicate custom role %s", role.id)
            continue
        seen.add(role.id)
        roles.append(role)
    return roles


class PermissionSource(ABC):
    """
    Document-oriented access to the permission documents.

    Subclasses provide ``_read_documents`` and ``_write_document``; the named
    read/write operations are built on top of them.
    """

    @abstractmethod
    async def _read_documents(self, keys: List[str]) -> Dict[str, Any]:
        """Return the stored value for each existing key."""

    @abstractmethod
    async def _write_document(self, key: str, value: Any) -> None:
        """Create or replace one document."""

    async def fetch_permissions(self) -> RemotePermissions:
        documents = await self._read_documents(ALL_DOCUMENT_KEYS)
        fetched: Dict[str, Any] = {}
        for kind in ResourceKind:
            value = documents.get(kind.document_key)
            if value is None:
                continue
            if not isinstance(value, list):
                log.warning("Ignoring %s document of type %s", kind.document_key, type(value).__name__)
                continue
            fetched[kind.set_field] = PermissionMatrix.from_records(kind, value)
        roles = documents.get(CUSTOM_ROLES_DOCUMENT_KEY)
        if isinstance(roles, list):
            fetched["custom_roles"] = parse_custom_roles(roles)
        elif roles is not None:
            log.warning("Ignoring %s document of type %s", CUSTOM_ROLES_DOCUMENT_KEY, type(roles).__name__)
        return RemotePermissions(**fetched)

    async def write_matrix(self, matrix: PermissionMatrix) -> None:
        await self._write_document(matrix.kind.document_key, matrix.to_records())

    async def write_module_access(self, matrix: PermissionMatrix) -> None:
        await self._write_kind(ResourceKind.MODULE, matrix)

    async def write_crud_permissions(self, matrix: PermissionMatrix) -> None:
        await self._write_kind(ResourceKind.CRUD, matrix)

    async def write_special_features(self, matrix: PermissionMatrix) -> None:
        await self._write_kind(ResourceKind.FEATURE, matrix)

    async def write_financial_access(self, matrix: PermissionMatrix) -> None:
        await self._write_kind(ResourceKind.DATA, matrix)

    async def write_custom_roles(self, roles: List[CustomRole]) -> None:
        await self._write_document(CUSTOM_ROLES_DOCUMENT_KEY, [role.to_record() for role in roles])

    async def _write_kind(self, kind: ResourceKind, matrix: PermissionMatrix) -> None:
        if matrix.kind is not kind:
            raise ValueError(f"Expected a {kind.value} matrix, got {matrix.kind.value}")
        await self.write_matrix(matrix)


class DatabasePermissionSource(PermissionSource):
    """Permission documents stored in the ``permission_documents`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _read_documents(self, keys: List[str]) -> Dict[str, Any]:
        async with self.session_factory() as session:
            stmt = select(PermissionDocument).where(PermissionDocument.key.in_(keys))
            result = await session.execute(stmt)
            return {document.key: document.value for document in result.scalars().all()}

    async def _write_document(self, key: str, value: Any) -> None:
        # One session per document: writes succeed or fail independently
        async with self.session_factory() as session:
            try:
                document = await session.get(PermissionDocument, key)
                if document is None:
                    session.add(PermissionDocument(key=key, value=value))
                else:
                    document.value = value
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        log.debug("Stored permission document %s", key)


class MemoryPermissionSource(PermissionSource):
    """
    Process-local documents, for development and tests.

    Values are deep-copied in and out, mirroring a remote store where
    callers never share objects with the stored data.
    """

    def __init__(self, documents: Optional[Dict[str, Any]] = None):
        self.documents: Dict[str, Any] = copy.deepcopy(documents) if documents else {}

    async def _read_documents(self, keys: List[str]) -> Dict[str, Any]:
        return {key: copy.deepcopy(self.documents[key]) for key in keys if key in self.documents}

    async def _write_document(self, key: str, value: Any) -> None:
        self.documents[key] = copy.deepcopy(value)


def create_permission_source() -> PermissionSource:
    """Build the source selected by ``PERMISSIONS_BACKEND``."""
    if config.PERMISSIONS_BACKEND == "memory":
        log.warning("Using in-memory permission documents; changes are lost on restart")
        return MemoryPermissionSource()
    from rolegate.core.database.engine import AsyncSessionLocal
    return DatabasePermissionSource(AsyncSessionLocal)
