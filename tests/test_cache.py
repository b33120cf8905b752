import asyncio

import pytest

from fakes import make_task

from tasktrack.cache import ERROR, FETCHING, FRESH, IDLE, STALE, QueryCache
from tasktrack.errors import GatewayError, TransientNetworkError

KEY = ("tasks", "user-1")


def static(data):
    async def fetcher():
        return data
    return fetcher


class TestFetch:
    @pytest.mark.asyncio
    async def test_fetch_populates_entry(self, cache):
        rows = [make_task()]
        entry = await cache.fetch(KEY, static(rows))
        assert entry.state == FRESH
        assert entry.data == rows
        assert entry.error is None

    @pytest.mark.asyncio
    async def test_fetch_without_fetcher_is_an_error(self, cache):
        with pytest.raises(ValueError):
            await cache.fetch(KEY)

    @pytest.mark.asyncio
    async def test_fresh_entry_is_not_refetched(self, cache):
        calls = []

        async def fetcher():
            calls.append(1)
            return []

        await cache.fetch(KEY, fetcher)
        await cache.fetch(KEY)
        assert len(calls) == 1

        await cache.fetch(KEY, force=True)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_concurrent_fetches_share_one_request(self, cache):
        calls = []
        release = asyncio.Event()

        async def fetcher():
            calls.append(1)
            await release.wait()
            return [make_task()]

        first = asyncio.create_task(cache.fetch(KEY, fetcher))
        second = asyncio.create_task(cache.fetch(KEY, fetcher))
        await asyncio.sleep(0)
        assert cache.get(KEY).state == FETCHING
        release.set()
        a, b = await asyncio.gather(first, second)

        assert len(calls) == 1
        assert a is b
        assert a.state == FRESH

    @pytest.mark.asyncio
    async def test_slow_older_response_never_overwrites_newer(self, cache):
        old, new = [make_task(title="old")], [make_task(title="new")]
        release_first = asyncio.Event()
        calls = []

        async def fetcher():
            calls.append(1)
            if len(calls) == 1:
                await release_first.wait()
                return old
            return new

        slow = asyncio.create_task(cache.fetch(KEY, fetcher))
        await asyncio.sleep(0)
        entry = await cache.fetch(KEY, force=True)
        assert entry.data == new

        release_first.set()
        await slow
        assert cache.get_data(KEY) == new
        assert cache.get(KEY).state == FRESH


class TestFreshness:
    @pytest.mark.asyncio
    async def test_goes_stale_after_stale_time(self, cache, clock):
        await cache.fetch(KEY, static([]))
        clock.advance(299)
        assert cache.get(KEY).state == FRESH
        clock.advance(1)
        assert cache.get(KEY).state == STALE

    @pytest.mark.asyncio
    async def test_stale_entry_refetches(self, cache, clock):
        calls = []

        async def fetcher():
            calls.append(1)
            return []

        await cache.fetch(KEY, fetcher)
        clock.advance(301)
        entry = await cache.fetch(KEY)
        assert len(calls) == 2
        assert entry.state == FRESH

    @pytest.mark.asyncio
    async def test_invalidate_marks_stale(self, cache):
        await cache.fetch(KEY, static([make_task()]))
        cache.invalidate(KEY)
        entry = cache.get(KEY)
        assert entry.state == STALE
        assert entry.data is not None

    @pytest.mark.asyncio
    async def test_fetch_running_during_invalidate_lands_stale(self, cache):
        release = asyncio.Event()

        async def fetcher():
            await release.wait()
            return [make_task()]

        pending = asyncio.create_task(cache.fetch(KEY, fetcher))
        await asyncio.sleep(0)
        cache.invalidate(KEY)
        release.set()
        entry = await pending

        assert entry.data is not None
        assert entry.state == STALE

    def test_invalidate_unknown_key_is_noop(self, cache):
        cache.invalidate(KEY)
        assert cache.get(KEY) is None


class TestErrors:
    @pytest.mark.asyncio
    async def test_error_keeps_last_good_data(self, cache):
        rows = [make_task()]
        await cache.fetch(KEY, static(rows))

        async def failing():
            raise GatewayError("boom")

        entry = await cache.fetch(KEY, failing, force=True)
        assert entry.state == ERROR
        assert isinstance(entry.error, GatewayError)
        assert entry.data == rows

    @pytest.mark.asyncio
    async def test_transient_failure_retried_once(self, cache):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise TransientNetworkError("reset")
            return []

        entry = await cache.fetch(KEY, flaky)
        assert len(calls) == 2
        assert entry.state == FRESH

    @pytest.mark.asyncio
    async def test_retry_budget_is_respected(self, clock):
        cache = QueryCache(retry=0, clock=clock)
        calls = []

        async def down():
            calls.append(1)
            raise TransientNetworkError("down")

        entry = await cache.fetch(KEY, down)
        assert len(calls) == 1
        assert entry.state == ERROR

    @pytest.mark.asyncio
    async def test_unexpected_fetcher_failure_settles_as_error(self, cache):
        rows = [make_task()]
        await cache.fetch(KEY, static(rows))
        calls = []

        async def undecodable():
            calls.append(1)
            raise ValueError("bad row")

        entry = await cache.fetch(KEY, undecodable, force=True)
        assert entry.state == ERROR
        assert isinstance(entry.error, GatewayError)
        assert entry.data == rows
        assert not entry.is_fetching

        cache.subscribe(KEY, lambda e: None)
        assert len(calls) == 2
        await cache.get(KEY).inflight

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self, cache):
        calls = []

        async def broken():
            calls.append(1)
            raise GatewayError("nope")

        await cache.fetch(KEY, broken)
        assert len(calls) == 1


class TestSubscribe:
    @pytest.mark.asyncio
    async def test_subscribe_starts_fetch_and_notifies(self, cache):
        states = []
        remove = cache.subscribe(KEY, lambda e: states.append(e.state), static([make_task()]))
        await cache.get(KEY).inflight

        assert states == [FETCHING, FRESH]
        remove()

    @pytest.mark.asyncio
    async def test_subscribe_to_fresh_entry_does_not_fetch(self, cache):
        calls = []

        async def fetcher():
            calls.append(1)
            return []

        await cache.fetch(KEY, fetcher)
        cache.subscribe(KEY, lambda e: None)
        assert not cache.get(KEY).is_fetching
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_listener_failure_does_not_break_others(self, cache):
        seen = []

        def bad(entry):
            raise RuntimeError("listener bug")

        cache.subscribe(KEY, bad, static([]))
        cache.subscribe(KEY, lambda e: seen.append(e.state))
        await cache.get(KEY).inflight
        assert seen[-1] == FRESH


class TestWrites:
    @pytest.mark.asyncio
    async def test_set_data_needs_loaded_entry(self, cache):
        assert cache.set_data(KEY, []) is False
        await cache.fetch(KEY, static([]))
        rows = [make_task()]
        assert cache.set_data(KEY, rows) is True
        assert cache.get_data(KEY) == rows

    @pytest.mark.asyncio
    async def test_snapshot_and_restore(self, cache):
        rows = [make_task(), make_task()]
        await cache.fetch(KEY, static(rows))
        snap = cache.snapshot(KEY)
        cache.set_data(KEY, rows[:1])
        cache.restore(KEY, snap)
        assert cache.get_data(KEY) == rows

    @pytest.mark.asyncio
    async def test_write_supersedes_running_fetch(self, cache):
        await cache.fetch(KEY, static([]))
        release = asyncio.Event()
        written = [make_task(title="written")]

        async def slow():
            await release.wait()
            return [make_task(title="fetched")]

        pending = asyncio.create_task(cache.fetch(KEY, slow, force=True))
        await asyncio.sleep(0)
        cache.set_data(KEY, written)
        release.set()
        entry = await pending

        assert entry.data == written
        assert entry.state == STALE


class TestEviction:
    @pytest.mark.asyncio
    async def test_idle_entries_evicted_after_gc_time(self, cache, clock):
        await cache.fetch(KEY, static([]))
        clock.advance(599)
        assert cache.collect_garbage() == []
        clock.advance(1)
        assert cache.collect_garbage() == [KEY]
        assert cache.get(KEY) is None

    @pytest.mark.asyncio
    async def test_subscribed_entries_are_kept(self, cache, clock):
        await cache.fetch(KEY, static([]))
        remove = cache.subscribe(KEY, lambda e: None)
        clock.advance(10_000)
        assert cache.collect_garbage() == []

        remove()
        clock.advance(599)
        assert cache.collect_garbage() == []
        clock.advance(1)
        assert cache.collect_garbage() == [KEY]

    @pytest.mark.asyncio
    async def test_entry_with_running_fetch_is_kept(self, cache, clock):
        release = asyncio.Event()

        async def slow():
            await release.wait()
            return []

        pending = asyncio.create_task(cache.fetch(KEY, slow))
        await asyncio.sleep(0)
        assert cache.get(KEY).is_fetching
        clock.advance(10_000)
        assert cache.collect_garbage() == []

        release.set()
        await pending
        assert cache.collect_garbage() == [KEY]

    @pytest.mark.asyncio
    async def test_held_entries_are_kept(self, cache, clock):
        await cache.fetch(KEY, static([]))
        cache.hold(KEY)
        clock.advance(10_000)
        assert cache.collect_garbage() == []
        cache.release(KEY)
        assert cache.collect_garbage() == [KEY]

    @pytest.mark.asyncio
    async def test_close_stops_sweep_and_clears(self, cache):
        await cache.fetch(KEY, static([]))
        cache.start(interval=0.01)
        await cache.close()
        assert cache.keys() == []


def test_new_entry_starts_idle():
    from tasktrack.cache import CacheEntry

    entry = CacheEntry(KEY, None, 0.0)
    assert entry.state == IDLE
    assert not entry.is_fetching
    assert not entry.unconfirmed
