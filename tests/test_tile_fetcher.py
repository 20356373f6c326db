"""Tests for the fetch/decode pipeline."""

import threading

import pytest

from globetiles.errors import TileDecodeError, TileNotFoundError, TransportError
from globetiles.tile_fetcher import TileFetcher
from globetiles.tile_utils import TileId

from conftest import FakeDecoder, FakeTileSource


def tid(col):
    return TileId(5, 0, col)


class TestSubmit:

    def test_result_posted_once(self, source, decoder, executor):
        fetcher = TileFetcher(source, decoder, max_concurrent=2, executor=executor)
        assert fetcher.submit(tid(1), attempt=7)
        assert fetcher.drain() == []
        executor.run_all()
        results = fetcher.drain()
        assert len(results) == 1
        result = results[0]
        assert result.ok
        assert (result.tile_id, result.attempt) == (tid(1), 7)
        assert result.image.shape == (2, 2, 3)
        assert fetcher.drain() == []

    def test_duplicate_rejected(self, source, decoder, executor):
        fetcher = TileFetcher(source, decoder, executor=executor)
        assert fetcher.submit(tid(1), 1)
        assert not fetcher.submit(tid(1), 2)
        executor.run_all()
        assert source.fetch_count(tid(1)) == 1
        # finished jobs free the tile id
        assert fetcher.submit(tid(1), 3)

    def test_backpressure(self, source, decoder, executor):
        fetcher = TileFetcher(source, decoder, max_concurrent=2, executor=executor)
        for col in range(5):
            fetcher.submit(tid(col), col)
        assert fetcher.active_count == 2
        assert fetcher.pending_count == 3
        assert len(executor.calls) == 2
        executor.run_next()
        assert fetcher.active_count == 2
        assert fetcher.pending_count == 2
        executor.run_all()
        assert fetcher.active_count == 0
        assert len(fetcher.drain()) == 5

    def test_priority_order(self, source, decoder, executor):
        fetcher = TileFetcher(source, decoder, max_concurrent=1, executor=executor)
        fetcher.submit(tid(0), 0, priority=0)
        fetcher.submit(tid(1), 1, priority=5)
        fetcher.submit(tid(2), 2, priority=1)
        fetcher.submit(tid(3), 3, priority=3)
        fetcher.reprioritize(tid(1), -1)
        executor.run_all()
        assert source.fetches == [tid(0), tid(1), tid(2), tid(3)]

    def test_equal_priority_is_fifo(self, source, decoder, executor):
        fetcher = TileFetcher(source, decoder, max_concurrent=1, executor=executor)
        for col in (4, 2, 9):
            fetcher.submit(tid(col), col, priority=1)
        executor.run_all()
        assert source.fetches == [tid(4), tid(2), tid(9)]


class TestFailures:

    @pytest.mark.parametrize("error, kind", [
        (TransportError("down"), TransportError),
        (TileNotFoundError("gone"), TileNotFoundError),
    ])
    def test_source_errors(self, decoder, executor, error, kind):
        source = FakeTileSource({tid(1): error})
        fetcher = TileFetcher(source, decoder, executor=executor)
        fetcher.submit(tid(1), 1)
        executor.run_all()
        result, = fetcher.drain()
        assert not result.ok
        assert isinstance(result.error, kind)
        assert result.error.tile_id == tid(1)

    def test_decode_error(self, decoder, executor):
        source = FakeTileSource({tid(1): b"bad"})
        fetcher = TileFetcher(source, decoder, executor=executor)
        fetcher.submit(tid(1), 1)
        executor.run_all()
        result, = fetcher.drain()
        assert isinstance(result.error, TileDecodeError)

    def test_unexpected_error_becomes_transport_error(self, decoder, executor):
        source = FakeTileSource({tid(1): KeyError("boom")})
        fetcher = TileFetcher(source, decoder, executor=executor)
        fetcher.submit(tid(1), 1)
        executor.run_all()
        result, = fetcher.drain()
        assert isinstance(result.error, TransportError)
        assert "boom" in str(result.error)
        assert fetcher.active_count == 0


class TestCancelAndShutdown:

    def test_cancel_queued_only(self, source, decoder, executor):
        fetcher = TileFetcher(source, decoder, max_concurrent=1, executor=executor)
        fetcher.submit(tid(0), 0)
        fetcher.submit(tid(1), 1)
        assert not fetcher.cancel(tid(0))   # already running
        assert fetcher.cancel(tid(1))
        assert not fetcher.is_busy(tid(1))
        executor.run_all()
        assert source.fetches == [tid(0)]
        assert [r.tile_id for r in fetcher.drain()] == [tid(0)]

    def test_reset_drops_queue(self, source, decoder, executor):
        fetcher = TileFetcher(source, decoder, max_concurrent=1, executor=executor)
        for col in range(3):
            fetcher.submit(tid(col), col)
        assert fetcher.reset() == [tid(1), tid(2)]
        assert fetcher.is_busy(tid(0))
        executor.run_all()
        assert not fetcher.is_busy(tid(0))

    def test_shutdown_refuses_new_work(self, source, decoder, executor):
        fetcher = TileFetcher(source, decoder, executor=executor)
        fetcher.shutdown()
        assert source.closed
        assert not fetcher.submit(tid(0), 0)

    def test_refused_by_executor_posts_error(self, source, decoder, executor):
        fetcher = TileFetcher(source, decoder, executor=executor)
        executor.shutdown()
        assert fetcher.submit(tid(0), 4)
        result, = fetcher.drain()
        assert (result.tile_id, result.attempt) == (tid(0), 4)
        assert isinstance(result.error, TransportError)
        assert not fetcher.is_busy(tid(0))
        assert source.fetches == []

    def test_invalid_concurrency(self, source, decoder):
        with pytest.raises(ValueError):
            TileFetcher(source, decoder, max_concurrent=0)


class TestThreadPool:

    def test_real_worker_pool(self, decoder):
        source = FakeTileSource()
        fetcher = TileFetcher(source, decoder, max_concurrent=3)
        try:
            for col in range(10):
                assert fetcher.submit(tid(col), col)
            assert fetcher.wait_idle(timeout=10)
            results = fetcher.drain()
            assert sorted(r.tile_id for r in results) == [tid(c) for c in range(10)]
            assert all(r.ok for r in results)
        finally:
            fetcher.shutdown()

    def test_concurrency_never_exceeds_limit(self, decoder):
        running = 0
        peak = 0
        lock = threading.Lock()
        gate = threading.Event()

        class SlowSource(FakeTileSource):
            def fetch(self, tile_id):
                nonlocal running, peak
                with lock:
                    running += 1
                    peak = max(peak, running)
                gate.wait(5)
                with lock:
                    running -= 1
                return b"tile"

        fetcher = TileFetcher(SlowSource(), FakeDecoder(), max_concurrent=2)
        try:
            for col in range(6):
                fetcher.submit(tid(col), col)
            assert fetcher.active_count == 2
            assert fetcher.pending_count == 4
            gate.set()
            assert fetcher.wait_idle(timeout=10)
            assert peak <= 2
            assert len(fetcher.drain()) == 6
        finally:
            fetcher.shutdown()
