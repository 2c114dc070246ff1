"""
Two-tier permission cache.

Asynchronous tier: ``refresh()`` fetches the permission documents, reconciles
them against the defaults and installs a new snapshot. A successful fetch is
reused for ``ttl_seconds``; ``invalidate()`` drops that guard.

Synchronous tier: ``read_sync()`` returns the latest snapshot (or None before
the first refresh) without doing any I/O, so access checks never wait.

Failures keep whatever snapshot is already cached. Only a store that has never
loaded falls back to a defaults snapshot.

The store is meant for a single event loop. Concurrent refreshes are not
serialised; the one that finishes last wins and replaces the snapshot whole.
"""
import asyncio
import enum
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from rolegate.core import config
from rolegate.features.permissions.defaults import (
    default_matrix,
    default_snapshot,
    reconcile_matrix,
)
from rolegate.features.permissions.events import PermissionEvents
from rolegate.features.permissions.exceptions import PermissionSaveError, PermissionSourceError
from rolegate.features.permissions.repository import PermissionSource
from rolegate.features.permissions.schemas import (
    CUSTOM_ROLES_DOCUMENT_KEY,
    CustomRole,
    PermissionSet,
    PermissionSnapshot,
    ResourceKind,
)
from rolegate.utils import get_logger


log = get_logger(__name__)


class StoreState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    DEGRADED = "degraded"  # last refresh failed; serving stale or default data


class PermissionStore:
    """
    Owns the current permission snapshot and the change channel.

    Create one per application and inject it where checks are made.
    """

    def __init__(
        self,
        source: PermissionSource,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        events: Optional[PermissionEvents] = None,
    ):
        self.source = source
        self.ttl_seconds = config.PERMISSIONS_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.events = events or PermissionEvents()
        self._clock = clock
        self._snapshot: Optional[PermissionSnapshot] = None
        self._last_fetch: Optional[float] = None
        # Bumped whenever cached data is known to be out of date
        self._generation = 0
        self._state = StoreState.UNINITIALIZED
        self.fetch_count = 0

    @property
    def state(self) -> StoreState:
        return self._state

    def read_sync(self) -> Optional[PermissionSnapshot]:
        """Latest snapshot, or None if no refresh has completed yet."""
        return self._snapshot

    @property
    def custom_roles(self) -> List[CustomRole]:
        return [role.model_copy() for role in self._snapshot.custom_roles] if self._snapshot else []

    def is_fresh(self) -> bool:
        if self._last_fetch is None or self._snapshot is None:
            return False
        return self._clock() - self._last_fetch < self.ttl_seconds

    async def refresh(self) -> PermissionSnapshot:
        """
        Return the cached snapshot if it is still fresh, otherwise fetch.

        Raises PermissionSourceError if the fetch fails. The synchronous tier
        then keeps its previous snapshot, or gets a defaults snapshot if it
        had none.
        """
        if self.is_fresh():
            return self._snapshot

        generation = self._generation
        self._state = StoreState.LOADING
        self.fetch_count += 1
        try:
            remote = await self.source.fetch_permissions()
        except Exception as e:
            self._state = StoreState.DEGRADED
            if self._snapshot is None:
                self._snapshot = default_snapshot()
                log.warning("Permission fetch failed, serving defaults: %s", e)
            else:
                log.warning("Permission fetch failed, keeping snapshot from %s: %s", self._snapshot.fetched_at, e)
            raise PermissionSourceError(f"Failed to fetch permissions: {e}") from e

        matrices = {}
        for kind in ResourceKind:
            loaded = remote.matrix(kind)
            matrices[kind] = reconcile_matrix(loaded) if loaded is not None else default_matrix(kind)
        snapshot = PermissionSnapshot(
            permissions=PermissionSet.from_matrices(matrices),
            custom_roles=remote.custom_roles or [],
            fetched_at=datetime.now(timezone.utc),
            source="remote",
        )
        self._state = StoreState.READY
        if generation != self._generation:
            # Fetch overlapped an invalidation: never arms the TTL or replaces a newer snapshot
            log.debug("Permissions changed during fetch, not caching the result")
            if self._snapshot is None:
                self._snapshot = snapshot
            return snapshot
        self._snapshot = snapshot
        self._last_fetch = self._clock()
        log.info("Loaded permissions (%d custom roles)", len(snapshot.custom_roles))
        return snapshot

    async def preload(self) -> PermissionSnapshot:
        """
        Make sure at least one load has completed.

        Unlike ``refresh`` this never raises on a transport failure; the
        stale or default snapshot is returned instead.
        """
        try:
            return await self.refresh()
        except PermissionSourceError:
            return self._snapshot

    def _expire(self) -> None:
        self._last_fetch = None
        self._generation += 1

    def invalidate(self) -> None:
        """
        Force the next refresh to fetch and notify subscribers.

        The cached snapshot stays readable until that refresh replaces it.
        """
        self._expire()
        log.info("Permissions cache invalidated")
        self.events.emit()

    async def save(self, permissions: PermissionSet, custom_roles: List[CustomRole]) -> None:
        """
        Write all four matrices and the custom role list.

        The writes run concurrently and independently; a failed write does not
        undo the others. The TTL guard is cleared either way so the next
        refresh sees what was actually stored. Subscribers are notified only
        when every write succeeded; otherwise PermissionSaveError names the
        documents that failed.
        """
        writes = {
            ResourceKind.MODULE.document_key: self.source.write_module_access(permissions.module_access),
            ResourceKind.CRUD.document_key: self.source.write_crud_permissions(permissions.crud_permissions),
            ResourceKind.FEATURE.document_key: self.source.write_special_features(permissions.special_features),
            ResourceKind.DATA.document_key: self.source.write_financial_access(permissions.financial_access),
            CUSTOM_ROLES_DOCUMENT_KEY: self.source.write_custom_roles(custom_roles),
        }
        results = await asyncio.gather(*writes.values(), return_exceptions=True)
        failures: Dict[str, BaseException] = {
            key: result for key, result in zip(writes, results) if isinstance(result, BaseException)
        }
        if failures:
            self._expire()
            for key, error in failures.items():
                log.error("Failed to write %s: %s", key, error)
            raise PermissionSaveError(failures)

        log.info("Saved permissions (%d custom roles)", len(custom_roles))
        self.invalidate()
