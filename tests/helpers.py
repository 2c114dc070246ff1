"""Test doubles and token helpers."""

import asyncio
from typing import Any, Dict, List, Optional, Set

import jwt

from rolegate.features.permissions.repository import MemoryPermissionSource


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FlakySource(MemoryPermissionSource):
    """In-memory source with switchable transport failures."""

    def __init__(self, documents: Optional[Dict[str, Any]] = None):
        super().__init__(documents)
        self.fail_fetch = False
        # When set, fetches read the documents, then wait for the event before returning
        self.gate: Optional[asyncio.Event] = None
        self.failing_writes: Set[str] = set()
        self.fetches = 0
        self.writes: List[str] = []

    async def _read_documents(self, keys):
        self.fetches += 1
        if self.fail_fetch:
            raise ConnectionError("permission service unreachable")
        documents = await super()._read_documents(keys)
        if self.gate is not None:
            await self.gate.wait()
        return documents

    async def _write_document(self, key, value):
        if key in self.failing_writes:
            raise ConnectionError(f"write to {key} timed out")
        self.writes.append(key)
        await super()._write_document(key, value)


TEST_SECRET = "rolegate-test-secret-0123456789abcdef"


def make_token(role: Optional[str], secret: Optional[str] = TEST_SECRET, algorithm: str = "HS256", **claims) -> str:
    payload = dict(claims)
    if role is not None:
        payload["role"] = role
    return jwt.encode(payload, secret, algorithm=algorithm)


def auth_headers(role: Optional[str], **claims) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(role, **claims)}"}
