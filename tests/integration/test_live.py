"""
Integration tests for the tasktrack SDK against a real store.

Requires environment variables:
  TASKTRACK_URL        base URL of the store, e.g. http://localhost:54321
  TASKTRACK_ANON_KEY   public anon key
  TASKTRACK_EMAIL      existing test account
  TASKTRACK_PASSWORD

Run: TASKTRACK_INTEGRATION=1 pytest tests/integration/ -v
"""

import os

import pytest

from tasktrack import AsyncTaskTrack, Settings
from tasktrack.cache import STALE
from tasktrack.config import MemoryChannel

SKIP = not os.environ.get("TASKTRACK_INTEGRATION")
EMAIL = os.environ.get("TASKTRACK_EMAIL", "")
PASSWORD = os.environ.get("TASKTRACK_PASSWORD", "")

pytestmark = pytest.mark.skipif(SKIP, reason="TASKTRACK_INTEGRATION not set")


def make_client(channel=None) -> AsyncTaskTrack:
    return AsyncTaskTrack(Settings.load(), channel=channel or MemoryChannel())


class TestSession:
    @pytest.mark.asyncio
    async def test_sign_in_then_restore(self):
        channel = MemoryChannel()
        client = make_client(channel)
        session = await client.sign_in(EMAIL, PASSWORD)
        assert session.authenticated
        await client.close()

        again = make_client(channel)
        restored = await again.restore_session()
        assert restored.identity == session.identity
        await again.close()

    @pytest.mark.asyncio
    async def test_bad_credential_is_anonymous(self):
        client = make_client(MemoryChannel("garbage"))
        session = await client.restore_session()
        assert not session.authenticated
        assert client.channel.read() is None
        await client.close()


class TestTaskLifecycle:
    @pytest.mark.asyncio
    async def test_create_update_delete(self):
        client = make_client()
        await client.sign_in(EMAIL, PASSWORD)
        await client.list_tasks()

        created = await client.create_task({"title": "integration: buy milk"})
        assert created.ok, created.error
        task_id = created.task.id
        assert client.cached_tasks()[0].id == task_id

        toggled = await client.toggle_task(task_id)
        assert toggled.ok, toggled.error
        assert toggled.task.completed is True

        deleted = await client.delete_task(task_id)
        assert deleted.ok, deleted.error
        assert all(t.id != task_id for t in client.cached_tasks())

        entry = client.cache.get(("tasks", client.session.get_identity()))
        assert entry.state == STALE
        refreshed = await client.list_tasks()
        assert all(t.id != task_id for t in refreshed.data)

        await client.close()

    @pytest.mark.asyncio
    async def test_missing_task_is_conflict(self):
        client = make_client()
        await client.sign_in(EMAIL, PASSWORD)
        result = await client.update_task("00000000-0000-0000-0000-000000000000", {"title": "x"})
        assert not result.ok
        assert result.error.code == "conflict_or_not_found"
        await client.close()
