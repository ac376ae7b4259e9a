import asyncio

import pytest

from constructor.db.repositories.project_repository import ProjectRepository
from constructor.services.workspace_service import WorkspaceService


class StubRedis:
    def __init__(self):
        self.strings: dict[str, str] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.lists: dict[str, list[str]] = {}
        self.pings = 0
        # When set, the next hset signals `hset_started` and waits for the gate before storing.
        # Only that one call is held; later calls go straight through.
        self.hset_gate: asyncio.Event | None = None
        self.hset_started = asyncio.Event()

    async def get(self, key: str):
        return self.strings.get(key)

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False):
        if nx and key in self.strings:
            return False
        self.strings[key] = value
        return True

    async def hset(self, key: str, field: str, value: str):
        gate = self.hset_gate
        if gate is not None:
            self.hset_gate = None
            self.hset_started.set()
            await gate.wait()
        bucket = self.hashes.setdefault(key, {})
        is_new = field not in bucket
        bucket[field] = value
        return 1 if is_new else 0

    async def hgetall(self, key: str):
        return dict(self.hashes.get(key, {}))

    async def hdel(self, key: str, *fields: str):
        bucket = self.hashes.get(key, {})
        return sum(1 for field in fields if bucket.pop(field, None) is not None)

    async def rpush(self, key: str, *values: str):
        items = self.lists.setdefault(key, [])
        items.extend(values)
        return len(items)

    async def lrange(self, key: str, start: int, end: int):
        items = self.lists.get(key, [])
        return list(items[start:] if end == -1 else items[start:end + 1])

    async def lrem(self, key: str, count: int, value: str):
        items = self.lists.get(key, [])
        removed = len([item for item in items if item == value])
        self.lists[key] = [item for item in items if item != value]
        return removed

    async def ping(self):
        self.pings += 1
        return True


class FakeAIService:
    """Records calls; replies with `reply`, raises `error`, or waits on `gate` first."""

    def __init__(self, reply: str | None = "Here is the summary.", error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.gate: asyncio.Event | None = None
        self.calls: list[dict] = []

    async def generate_chat_response(self, message, history, context_sources, system_instruction=None):
        self.calls.append({
            "message": message,
            "history": list(history),
            "context_sources": list(context_sources),
            "system_instruction": system_instruction,
        })
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def stub_redis():
    return StubRedis()


@pytest.fixture
def repository(stub_redis):
    return ProjectRepository(stub_redis)


@pytest.fixture
def workspace_service(repository):
    return WorkspaceService(repository, save_delay=0.05)


@pytest.fixture
def fake_ai():
    return FakeAIService()
