"""
Long-lived permission consumer (navigation menus, views, sessions).

A watcher loads permissions when mounted, answers checks synchronously once
loaded and reloads whenever the store signals a change. Loads that finish
after ``unmount()`` are dropped instead of touching the disposed watcher.
"""
import asyncio
from typing import Optional

from rolegate.features.permissions.evaluator import AccessEvaluator
from rolegate.features.permissions.events import Subscription
from rolegate.features.permissions.schemas import ResourceKind
from rolegate.features.permissions.store import PermissionStore
from rolegate.utils import get_logger


log = get_logger(__name__)


class PermissionWatcher:

    def __init__(self, store: PermissionStore, role: Optional[str] = None):
        self.store = store
        self.role = role
        self.evaluator = AccessEvaluator(store)
        self.loaded = False
        self.reload_task: Optional[asyncio.Task] = None
        self._alive = False
        self._reload_pending = False
        self._subscription: Optional[Subscription] = None

    @property
    def mounted(self) -> bool:
        return self._alive

    async def mount(self) -> None:
        self._alive = True
        self._subscription = self.store.events.subscribe(self._on_permissions_updated)
        await self.load()

    def unmount(self) -> None:
        self._alive = False
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    async def load(self) -> None:
        await self.store.preload()
        if self._alive:
            self.loaded = True

    async def change_role(self, role: Optional[str]) -> None:
        self.role = role
        if role:
            await self.load()

    def _on_permissions_updated(self) -> None:
        if not self._alive:
            return
        self.loaded = False
        self._reload_pending = True
        if self.reload_task is not None and not self.reload_task.done():
            # The running reload goes round again
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("No running loop; permissions reload deferred to next load()")
            return
        self.reload_task = loop.create_task(self._reload())
        self.reload_task.add_done_callback(self._reload_done)

    async def _reload(self) -> None:
        while self._reload_pending and self._alive:
            self._reload_pending = False
            await self.store.preload()
        if self._alive and not self._reload_pending:
            self.loaded = True

    def _reload_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            log.error("Permissions reload failed: %s", error, exc_info=error)

    def _check(self, kind: ResourceKind, key: str) -> bool:
        if not self.loaded or not self.role:
            return False
        return self.evaluator.has_access(kind, self.role, key)

    def can_access_module(self, module: str) -> bool:
        return self._check(ResourceKind.MODULE, module)

    def can_use_crud(self, operation: str) -> bool:
        return self._check(ResourceKind.CRUD, operation)

    def can_use_feature(self, feature: str) -> bool:
        return self._check(ResourceKind.FEATURE, feature)

    def can_access_data(self, data_category: str) -> bool:
        return self._check(ResourceKind.DATA, data_category)
