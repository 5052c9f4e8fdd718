"""Tests for cachelane.sync -- offline queues and replay on sync triggers."""

from __future__ import annotations

import json

import httpx
import pytest

from cachelane.exceptions import NetworkError, ReplayError
from cachelane.models import OfflineAction, SyncConfig
from cachelane.sync import BackgroundSyncAgent, DiskOfflineQueue, MemoryOfflineQueue

ORIGIN = "https://app.example.com"


@pytest.fixture
def agent(queue: MemoryOfflineQueue, fetcher) -> BackgroundSyncAgent:
    return BackgroundSyncAgent(queue, fetcher, SyncConfig(), ORIGIN)


# ------------------------------------------------------------------ #
# Queues
# ------------------------------------------------------------------ #


class TestQueues:
    @pytest.fixture(params=["memory", "disk"])
    def any_queue(self, request, tmp_path):
        if request.param == "memory":
            return MemoryOfflineQueue()
        return DiskOfflineQueue(tmp_path / "offline")

    async def test_add_list_remove(self, any_queue) -> None:
        a = OfflineAction(payload={"url": "/api/a"})
        b = OfflineAction(payload={"url": "/api/b"})
        await any_queue.add(a)
        await any_queue.add(b)
        assert [x.id for x in await any_queue.list()] == [a.id, b.id]
        assert await any_queue.remove(a.id) is True
        assert await any_queue.remove(a.id) is False
        assert [x.id for x in await any_queue.list()] == [b.id]

    async def test_add_same_id_replaces_in_place(self, any_queue) -> None:
        a = OfflineAction(payload={"url": "/api/a"})
        b = OfflineAction(payload={"url": "/api/b"})
        await any_queue.add(a)
        await any_queue.add(b)
        await any_queue.add(a.model_copy(update={"attempts": 3}))
        listed = await any_queue.list()
        assert [x.id for x in listed] == [a.id, b.id]
        assert listed[0].attempts == 3

    async def test_disk_queue_survives_reopen(self, tmp_path) -> None:
        action = OfflineAction(payload={"url": "/api/a", "body": {"n": 1}})
        await DiskOfflineQueue(tmp_path / "offline").add(action)
        reopened = await DiskOfflineQueue(tmp_path / "offline").list()
        assert reopened == [action]

    async def test_disk_queue_reopens_after_close(self, tmp_path) -> None:
        queue = DiskOfflineQueue(tmp_path / "offline")
        action = OfflineAction(payload={"url": "/api/a"})
        await queue.add(action)
        queue.close()
        reopened = DiskOfflineQueue(tmp_path / "offline")
        assert await reopened.list() == [action]
        reopened.close()


# ------------------------------------------------------------------ #
# Replay
# ------------------------------------------------------------------ #


class TestReplay:
    async def test_scenario_d_failed_action_stays_queued(self, queue: MemoryOfflineQueue, fetcher) -> None:
        actions = [OfflineAction(payload={"n": i}) for i in (1, 2, 3)]
        for action in actions:
            await queue.add(action)

        async def replayer(action: OfflineAction) -> None:
            if action.payload["n"] == 2:
                raise RuntimeError("server said no")

        agent = BackgroundSyncAgent(queue, fetcher, SyncConfig(), ORIGIN, replayer=replayer)
        report = await agent.handle_sync("background-sync")

        remaining = await queue.list()
        assert [a.id for a in remaining] == [actions[1].id]
        assert remaining[0].attempts == 1
        assert report.replayed == [actions[0].id, actions[2].id]
        assert report.failed == {actions[1].id: "server said no"}

    async def test_replays_against_origin(self, agent: BackgroundSyncAgent, queue, origin) -> None:
        origin.route("/api/posts", method="POST", status_code=201)
        await queue.add(OfflineAction(payload={"url": "/api/posts", "body": {"text": "hi"}}))

        report = await agent.replay_all()

        assert len(report.replayed) == 1
        sent = origin.calls_to("/api/posts")[0]
        assert sent.method == "POST"
        assert json.loads(sent.content) == {"text": "hi"}
        assert sent.headers["content-type"] == "application/json"
        assert await queue.list() == []

    async def test_method_and_headers_from_payload(self, agent: BackgroundSyncAgent, origin) -> None:
        origin.route("/api/posts/1", method="DELETE", status_code=204)
        action = OfflineAction(
            payload={"url": f"{ORIGIN}/api/posts/1", "method": "delete", "headers": {"x-csrf": "t"}}
        )
        response = await agent.replay(action)
        assert response.status_code == 204
        sent = origin.calls[0]
        assert sent.method == "DELETE"
        assert sent.headers["x-csrf"] == "t"
        assert sent.content == b""

    async def test_rejection_raises_replay_error(self, agent: BackgroundSyncAgent, origin) -> None:
        origin.route("/api/posts", method="POST", status_code=422)
        with pytest.raises(ReplayError) as exc_info:
            await agent.replay(OfflineAction(payload={"url": "/api/posts"}))
        assert exc_info.value.status_code == 422

    async def test_missing_url(self, agent: BackgroundSyncAgent) -> None:
        with pytest.raises(ReplayError, match="no url"):
            await agent.replay(OfflineAction(payload={}))

    async def test_offline_raises_network_error(self, agent: BackgroundSyncAgent, origin) -> None:
        origin.offline = True
        with pytest.raises(NetworkError):
            await agent.replay(OfflineAction(payload={"url": "/api/posts"}))

    async def test_failures_retry_on_every_trigger(self, agent: BackgroundSyncAgent, queue, origin) -> None:
        origin.offline = True
        await queue.add(OfflineAction(payload={"url": "/api/posts"}))
        for _ in range(3):
            await agent.handle_sync("background-sync")
        assert (await queue.list())[0].attempts == 3

        origin.offline = False
        origin.route("/api/posts", method="POST", status_code=200)
        report = await agent.handle_sync("background-sync")
        assert len(report.replayed) == 1
        assert await queue.list() == []


# ------------------------------------------------------------------ #
# Registration
# ------------------------------------------------------------------ #


class TestRegistration:
    async def test_other_tags_are_ignored(self, agent: BackgroundSyncAgent, queue) -> None:
        await queue.add(OfflineAction(payload={"url": "/api/posts"}))
        assert await agent.handle_sync("something-else") is None
        assert len(await queue.list()) == 1

    async def test_defer_queues_and_registers(self, agent: BackgroundSyncAgent, queue) -> None:
        action = await agent.defer(OfflineAction(payload={"url": "/api/posts"}))
        assert await queue.list() == [action]
        assert agent.registered == {"background-sync"}

    async def test_registration_cleared_after_clean_drain(self, agent: BackgroundSyncAgent, origin) -> None:
        origin.route("/api/posts", method="POST")
        await agent.defer(OfflineAction(payload={"url": "/api/posts"}))
        await agent.handle_sync("background-sync")
        assert agent.registered == set()

    async def test_registration_kept_while_actions_fail(self, agent: BackgroundSyncAgent, origin) -> None:
        origin.offline = True
        await agent.defer(OfflineAction(payload={"url": "/api/posts"}))
        await agent.handle_sync("background-sync")
        assert agent.registered == {"background-sync"}
