"""
Tests for the request deduplication cache.
"""

import threading

import pytest


class FakeClock:
    """Millisecond clock moved by hand."""

    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class CountingProducer:
    """Producer that records calls and returns or raises on demand."""

    def __init__(self, result="data", error=None):
        self.result = result
        self.error = error
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class TestCooldowns:
    """Tests for failure classification."""

    def test_cooldown_by_error_type(self):
        from netcache import cooldown_for
        from recognition.errors import UpstreamOther, UpstreamRateLimited, UpstreamServerError

        assert cooldown_for(UpstreamRateLimited()) == 8000
        assert cooldown_for(UpstreamServerError()) == 3000
        assert cooldown_for(UpstreamOther()) == 1500
        assert cooldown_for(ValueError("boom")) == 1500

    def test_cooldown_by_status_attribute(self):
        """Foreign exceptions carrying an HTTP status should be classified too."""
        from netcache import cooldown_for

        class HTTPLike(Exception):
            def __init__(self, status):
                super().__init__(status)
                self.status = status

        assert cooldown_for(HTTPLike(429)) == 8000
        assert cooldown_for(HTTPLike(503)) == 3000
        assert cooldown_for(HTTPLike(404)) == 1500

    def test_status_mapping(self):
        from recognition.errors import (
            UpstreamOther,
            UpstreamRateLimited,
            UpstreamServerError,
            upstream_error_for_status,
        )

        assert isinstance(upstream_error_for_status(429), UpstreamRateLimited)
        assert isinstance(upstream_error_for_status(502), UpstreamServerError)
        assert isinstance(upstream_error_for_status(400), UpstreamOther)


class TestRequestCache:
    """Tests for RequestDeduplicationCache.request."""

    def test_fresh_success_served_from_cache(self):
        from netcache import RequestDeduplicationCache

        clock = FakeClock()
        cache = RequestDeduplicationCache(clock=clock)
        producer = CountingProducer("v1")

        assert cache.request("k", producer, ttl_ms=1000) == "v1"
        clock.now = 999
        assert cache.request("k", producer, ttl_ms=1000) == "v1"
        assert producer.calls == 1

    def test_stale_success_refetched(self):
        from netcache import RequestDeduplicationCache

        clock = FakeClock()
        cache = RequestDeduplicationCache(clock=clock)
        producer = CountingProducer("v1")

        cache.request("k", producer, ttl_ms=1000)
        clock.now = 1000
        cache.request("k", producer, ttl_ms=1000)
        assert producer.calls == 2

    def test_keys_are_independent(self):
        from netcache import RequestDeduplicationCache

        cache = RequestDeduplicationCache(clock=FakeClock())
        producer = CountingProducer()
        cache.request("a", producer, ttl_ms=1000)
        cache.request("b", producer, ttl_ms=1000)
        assert producer.calls == 2

    def test_rate_limited_failure_cooldown(self):
        """A 429 at t=0 is replayed at t=5000 and retried at t=8001."""
        from netcache import RequestDeduplicationCache
        from recognition.errors import UpstreamRateLimited

        clock = FakeClock(0)
        cache = RequestDeduplicationCache(clock=clock)
        failing = CountingProducer(error=UpstreamRateLimited("slow down", status=429))

        with pytest.raises(UpstreamRateLimited):
            cache.request("k", failing, ttl_ms=1000)
        assert failing.calls == 1

        clock.now = 5000
        fresh = CountingProducer("ok")
        with pytest.raises(UpstreamRateLimited):
            cache.request("k", fresh, ttl_ms=1000)
        assert fresh.calls == 0

        clock.now = 8001
        assert cache.request("k", fresh, ttl_ms=1000) == "ok"
        assert fresh.calls == 1

    def test_server_error_cooldown(self):
        from netcache import RequestDeduplicationCache
        from recognition.errors import UpstreamServerError

        clock = FakeClock(0)
        cache = RequestDeduplicationCache(clock=clock)
        with pytest.raises(UpstreamServerError):
            cache.request("k", CountingProducer(error=UpstreamServerError(status=500)))

        retry = CountingProducer("ok")
        clock.now = 2999
        with pytest.raises(UpstreamServerError):
            cache.request("k", retry)
        clock.now = 3000
        assert cache.request("k", retry) == "ok"

    def test_success_supersedes_failure(self):
        """After a successful retry the failed entry should be gone."""
        from netcache import RequestDeduplicationCache
        from recognition.errors import UpstreamOther

        clock = FakeClock(0)
        cache = RequestDeduplicationCache(clock=clock)
        with pytest.raises(UpstreamOther):
            cache.request("k", CountingProducer(error=UpstreamOther()))
        assert cache.failure("k") is not None

        clock.now = 1500
        cache.request("k", CountingProducer("ok"), ttl_ms=10000)
        assert cache.failure("k") is None
        assert cache.peek("k").data == "ok"

    def test_abort_never_cached(self):
        """Cancellation should propagate and the next call should run again."""
        from netcache import RequestDeduplicationCache
        from recognition.errors import Aborted

        cache = RequestDeduplicationCache(clock=FakeClock(0))
        aborted = CountingProducer(error=Aborted("upload"))
        with pytest.raises(Aborted):
            cache.request("k", aborted)
        assert cache.failure("k") is None
        assert not cache.is_inflight("k")

        retry = CountingProducer("ok")
        assert cache.request("k", retry) == "ok"
        assert retry.calls == 1

    def test_concurrent_calls_share_one_producer(self):
        """N concurrent callers for one key should trigger a single producer call."""
        from netcache import RequestDeduplicationCache

        cache = RequestDeduplicationCache()
        started = threading.Event()
        release = threading.Event()
        calls = []

        def slow_producer():
            calls.append(1)
            started.set()
            release.wait(5)
            return "shared"

        results = []
        errors = []

        def caller():
            try:
                results.append(cache.request("k", slow_producer, ttl_ms=60000))
            except Exception as e:
                errors.append(e)

        owner = threading.Thread(target=caller)
        owner.start()
        assert started.wait(5)

        joiners = [threading.Thread(target=caller) for _ in range(7)]
        for thread in joiners:
            thread.start()
        # Joiners must be waiting on the in-flight call before it finishes
        assert cache.is_inflight("k")
        release.set()

        for thread in [owner] + joiners:
            thread.join(5)

        assert errors == []
        assert results == ["shared"] * 8
        assert len(calls) == 1

    def test_concurrent_failure_shared(self):
        """Joiners of a failing call should see the same error."""
        from netcache import RequestDeduplicationCache
        from recognition.errors import UpstreamServerError

        cache = RequestDeduplicationCache()
        started = threading.Event()
        release = threading.Event()

        def failing():
            started.set()
            release.wait(5)
            raise UpstreamServerError(status=503)

        seen = []

        def caller():
            try:
                cache.request("k", failing)
            except UpstreamServerError as e:
                seen.append(e)

        threads = [threading.Thread(target=caller) for _ in range(3)]
        threads[0].start()
        assert started.wait(5)
        for thread in threads[1:]:
            thread.start()
        release.set()
        for thread in threads:
            thread.join(5)

        assert len(seen) == 3

    def test_invalidate_and_clear(self):
        from netcache import RequestDeduplicationCache

        cache = RequestDeduplicationCache(clock=FakeClock())
        producer = CountingProducer()
        cache.request("k", producer, ttl_ms=10000)
        cache.invalidate("k")
        cache.request("k", producer, ttl_ms=10000)
        cache.clear()
        cache.request("k", producer, ttl_ms=10000)
        assert producer.calls == 3

    def test_interrupted_producer_releases_key(self):
        """A producer killed by a non-Exception error must not wedge the key."""
        from netcache import RequestDeduplicationCache

        class Interrupted(BaseException):
            pass

        cache = RequestDeduplicationCache(clock=FakeClock())

        with pytest.raises(Interrupted):
            cache.request("k", CountingProducer(error=Interrupted()))

        assert not cache.is_inflight("k")
        assert cache.failure("k") is None

        done = []
        retry = threading.Thread(target=lambda: done.append(cache.request("k", lambda: "ok")))
        retry.start()
        retry.join(5)
        assert done == ["ok"]

    def test_interrupted_producer_wakes_joiners(self):
        """Callers waiting on an interrupted request should see the interrupt."""
        from netcache import RequestDeduplicationCache

        class Interrupted(BaseException):
            pass

        cache = RequestDeduplicationCache()
        started = threading.Event()
        release = threading.Event()

        def interrupted():
            started.set()
            release.wait(5)
            raise Interrupted()

        seen = []

        def caller():
            try:
                cache.request("k", interrupted)
            except Interrupted as e:
                seen.append(e)

        owner = threading.Thread(target=caller)
        owner.start()
        assert started.wait(5)
        joiner = threading.Thread(target=caller)
        joiner.start()
        release.set()
        owner.join(5)
        joiner.join(5)

        assert not owner.is_alive()
        assert not joiner.is_alive()
        assert len(seen) == 2
        assert not cache.is_inflight("k")
