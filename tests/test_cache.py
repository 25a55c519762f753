"""
Tests for the TTL response cache: freshness, expiry, in-flight sharing and
failure handling.
"""

import asyncio
import threading

import pytest

from solar_quote import cache as cache_module
from solar_quote.cache import TTLCache


class FakeClock:
    """Manually advanced clock in seconds."""

    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance_ms(self, ms):
        self.now += ms / 1000


class CountingFetcher:
    """Async fetcher that records calls and can be held open."""

    def __init__(self, value='payload', error=None):
        self.value = value
        self.error = error
        self.calls = 0
        self.release = None

    async def __call__(self):
        self.calls += 1
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.value


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(clock=clock)


class TestGet:

    def test_absent_key(self, cache):
        assert cache.get('missing') is None

    def test_fresh_value(self, cache, clock):
        fetcher = CountingFetcher([1, 2, 3])
        asyncio.run(cache.fetch('k', fetcher, ttl_ms=100))
        clock.advance_ms(99)
        assert cache.get('k') == [1, 2, 3]

    def test_expired_value_is_evicted(self, cache, clock):
        asyncio.run(cache.fetch('k', CountingFetcher(), ttl_ms=10))
        clock.advance_ms(10)
        assert cache.get('k') is None
        assert 'k' not in cache
        # Repeated reads after expiry are harmless
        assert cache.get('k') is None


class TestFetch:

    def test_fresh_entry_skips_fetcher(self, cache, clock):
        fetcher = CountingFetcher()

        async def scenario():
            first = await cache.fetch('k', fetcher)
            clock.advance_ms(59_999)
            second = await cache.fetch('k', fetcher)
            return first, second

        assert asyncio.run(scenario()) == ('payload', 'payload')
        assert fetcher.calls == 1

    def test_default_ttl_is_one_minute(self, cache, clock):
        fetcher = CountingFetcher()
        asyncio.run(cache.fetch('k', fetcher))
        clock.advance_ms(60_000)
        asyncio.run(cache.fetch('k', fetcher))
        assert fetcher.calls == 2

    def test_expired_entry_refetches(self, cache, clock):
        fetcher = CountingFetcher()
        asyncio.run(cache.fetch('k', fetcher, ttl_ms=10))
        clock.advance_ms(11)
        assert cache.get('k') is None
        asyncio.run(cache.fetch('k', fetcher, ttl_ms=10))
        assert fetcher.calls == 2

    def test_concurrent_callers_share_one_fetch(self, cache):
        fetcher = CountingFetcher({'bookings': []})

        async def scenario():
            fetcher.release = asyncio.Event()
            first = asyncio.ensure_future(cache.fetch('k', fetcher))
            second = asyncio.ensure_future(cache.fetch('k', fetcher))
            await asyncio.sleep(0)
            fetcher.release.set()
            return await asyncio.gather(first, second)

        first, second = asyncio.run(scenario())
        assert fetcher.calls == 1
        assert first is second

    def test_pending_entry_reads_as_empty(self, cache):
        fetcher = CountingFetcher()

        async def scenario():
            fetcher.release = asyncio.Event()
            task = asyncio.ensure_future(cache.fetch('k', fetcher))
            await asyncio.sleep(0)
            during = cache.get('k')
            fetcher.release.set()
            await task
            return during

        assert asyncio.run(scenario()) is None
        assert cache.get('k') == 'payload'

    def test_different_keys_fetch_independently(self, cache):
        fetcher = CountingFetcher()

        async def scenario():
            await asyncio.gather(cache.fetch('a', fetcher), cache.fetch('b', fetcher))

        asyncio.run(scenario())
        assert fetcher.calls == 2


class TestFailures:

    def test_failure_leaves_no_entry(self, cache):
        error = RuntimeError("backend down")
        fetcher = CountingFetcher(error=error)

        with pytest.raises(RuntimeError) as excinfo:
            asyncio.run(cache.fetch('k', fetcher))

        assert excinfo.value is error
        assert cache.get('k') is None
        assert 'k' not in cache

    def test_retry_after_failure_fetches_again(self, cache):
        fetcher = CountingFetcher(error=RuntimeError("backend down"))
        with pytest.raises(RuntimeError):
            asyncio.run(cache.fetch('k', fetcher))

        fetcher.error = None
        assert asyncio.run(cache.fetch('k', fetcher)) == 'payload'
        assert fetcher.calls == 2

    def test_concurrent_callers_share_the_failure(self, cache):
        error = ValueError("bad response")
        fetcher = CountingFetcher(error=error)

        async def scenario():
            fetcher.release = asyncio.Event()
            first = asyncio.ensure_future(cache.fetch('k', fetcher))
            second = asyncio.ensure_future(cache.fetch('k', fetcher))
            await asyncio.sleep(0)
            fetcher.release.set()
            return await asyncio.gather(first, second, return_exceptions=True)

        results = asyncio.run(scenario())
        assert fetcher.calls == 1
        assert results[0] is error
        assert results[1] is error

    def test_cancelled_waiter_does_not_cancel_fetch(self, cache):
        fetcher = CountingFetcher()

        async def scenario():
            fetcher.release = asyncio.Event()
            first = asyncio.ensure_future(cache.fetch('k', fetcher))
            second = asyncio.ensure_future(cache.fetch('k', fetcher))
            await asyncio.sleep(0)
            first.cancel()
            await asyncio.sleep(0)
            fetcher.release.set()
            return await second

        assert asyncio.run(scenario()) == 'payload'
        assert cache.get('k') == 'payload'


class TestInvalidate:

    def test_single_key(self, cache):
        asyncio.run(cache.fetch('a', CountingFetcher('A')))
        asyncio.run(cache.fetch('b', CountingFetcher('B')))
        cache.invalidate('a')
        assert cache.get('a') is None
        assert cache.get('b') == 'B'

    def test_everything(self, cache):
        asyncio.run(cache.fetch('a', CountingFetcher('A')))
        asyncio.run(cache.fetch('b', CountingFetcher('B')))
        cache.invalidate()
        assert len(cache) == 0

    def test_empty_key_clears_everything(self, cache):
        asyncio.run(cache.fetch('a', CountingFetcher('A')))
        asyncio.run(cache.fetch('b', CountingFetcher('B')))
        cache.invalidate('')
        assert len(cache) == 0

    def test_unknown_key_is_noop(self, cache):
        cache.invalidate('never-cached')
        assert len(cache) == 0

    def test_invalidate_forces_refetch(self, cache):
        fetcher = CountingFetcher()
        asyncio.run(cache.fetch('k', fetcher))
        cache.invalidate('k')
        asyncio.run(cache.fetch('k', fetcher))
        assert fetcher.calls == 2

    def test_invalidate_during_fetch_keeps_newer_request(self, cache):
        slow = CountingFetcher('old')
        fast = CountingFetcher('new')

        async def scenario():
            slow.release = asyncio.Event()
            old = asyncio.ensure_future(cache.fetch('k', slow))
            await asyncio.sleep(0)
            cache.invalidate('k')
            assert await cache.fetch('k', fast) == 'new'
            slow.release.set()
            return await old

        assert asyncio.run(scenario()) == 'old'
        assert cache.get('k') == 'new'


class TestSessionThreads:
    """Each Streamlit session calls asyncio.run on its own thread."""

    def test_sessions_on_separate_loops_share_one_fetch(self, cache):
        started = threading.Event()
        release = threading.Event()
        calls = []
        results = {}

        async def slow():
            calls.append('slow')
            started.set()
            await asyncio.to_thread(release.wait, 5)
            return ['booking']

        async def fast():
            calls.append('fast')
            return ['other']

        def session_a():
            results['a'] = asyncio.run(cache.fetch('k', slow))

        thread = threading.Thread(target=session_a)
        thread.start()
        assert started.wait(5)

        async def session_b():
            waiter = asyncio.ensure_future(cache.fetch('k', fast))
            await asyncio.sleep(0.05)
            release.set()
            return await waiter

        results['b'] = asyncio.run(session_b())
        thread.join(5)

        assert results == {'a': ['booking'], 'b': ['booking']}
        assert results['a'] is results['b']
        assert calls == ['slow']
        assert cache.get('k') == ['booking']

    def test_waiter_refetches_when_owner_loop_closes(self, cache):
        started = threading.Event()
        joined = threading.Event()
        calls = []

        async def slow():
            calls.append('slow')
            started.set()
            await asyncio.sleep(10)
            return 'stale'

        async def fast():
            calls.append('fast')
            return 'fresh'

        async def abandoned_session():
            asyncio.ensure_future(cache.fetch('k', slow))
            await asyncio.to_thread(joined.wait, 5)

        thread = threading.Thread(target=asyncio.run, args=(abandoned_session(),))
        thread.start()
        assert started.wait(5)

        async def session_b():
            waiter = asyncio.ensure_future(cache.fetch('k', fast))
            await asyncio.sleep(0.05)
            joined.set()
            return await waiter

        assert asyncio.run(session_b()) == 'fresh'
        thread.join(5)
        assert calls == ['slow', 'fast']
        assert cache.get('k') == 'fresh'

    def test_threads_reading_and_invalidating(self, cache):
        errors = []

        def worker(n):
            try:
                for i in range(200):
                    key = f"k{i % 5}"
                    asyncio.run(cache.fetch(key, CountingFetcher(n), ttl_ms=60_000))
                    cache.get(key)
                    if i % 7 == 0:
                        cache.invalidate(key)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(10)

        assert errors == []


class TestModuleFunctions:

    def setup_method(self):
        cache_module.invalidate_cache()

    def teardown_method(self):
        cache_module.invalidate_cache()

    def test_shared_default_cache(self):
        fetcher = CountingFetcher('shared')
        assert asyncio.run(cache_module.fetch_with_cache('k', fetcher, ttl_ms=60_000)) == 'shared'
        assert cache_module.get_cached_value('k') == 'shared'
        assert cache_module.get_default_cache().get('k') == 'shared'

        cache_module.invalidate_cache('k')
        assert cache_module.get_cached_value('k') is None
