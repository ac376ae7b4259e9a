import asyncio

import pytest
from fastapi import HTTPException

import constructor.main as main_module
from constructor.api import router as router_module
from constructor.main import app, health_check, lifespan, redis_health_check, root, RedisClient
from constructor.models.graph import NodeType
from constructor.services.workspace_service import DEFAULT_PROJECT_ID, WorkspaceService


class DummyRedis:
    def __init__(self, should_fail: bool = False):
        self.should_fail = should_fail
        self.pings = 0

    async def ping(self):
        self.pings += 1
        if self.should_fail:
            raise RuntimeError("connection refused")
        return "PONG"


@pytest.mark.asyncio
async def test_root_and_liveness():
    assert await root() == {"message": "Welcome to the construct0r API"}
    assert await health_check() == {"status": "ok"}


@pytest.mark.asyncio
async def test_redis_health_pings_the_shared_client(monkeypatch):
    dummy = DummyRedis()
    monkeypatch.setattr(RedisClient, "get_client", classmethod(lambda cls: dummy))

    assert await redis_health_check() == {"status": "ok", "ping": "PONG"}
    assert dummy.pings == 1


@pytest.mark.asyncio
async def test_redis_health_reports_unavailable(monkeypatch):
    monkeypatch.setattr(RedisClient, "get_client", classmethod(lambda cls: DummyRedis(should_fail=True)))

    with pytest.raises(HTTPException) as exc:
        await redis_health_check()

    assert exc.value.status_code == 503
    assert "connection refused" in str(exc.value.detail)


@pytest.mark.asyncio
async def test_shutdown_waits_for_saves_before_closing_redis(monkeypatch, repository, stub_redis):
    service = WorkspaceService(repository, save_delay=0.01)
    monkeypatch.setattr(router_module, "_workspace_service", service)
    monkeypatch.setattr(main_module, "setup_logging", lambda level, fmt: None)

    stored_at_close = []

    async def close_client():
        [project] = await repository.list_projects("user-1")
        stored_at_close.append([node.id for node in project.nodes])

    monkeypatch.setattr(RedisClient, "close_client", classmethod(lambda cls: close_client()))

    context = lifespan(app)
    await context.__aenter__()
    await service.get_workspace("user-1")
    gate = stub_redis.hset_gate = asyncio.Event()
    await service.add_node("user-1", NodeType.NOTE, node_id="a")
    await stub_redis.hset_started.wait()

    stopping = asyncio.create_task(context.__aexit__(None, None, None))
    await asyncio.sleep(0)
    gate.set()
    await stopping

    assert stored_at_close == [["1", "2", "a"]]
    assert not service.saver.has_pending("user-1", DEFAULT_PROJECT_ID)
