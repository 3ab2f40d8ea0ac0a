"""Tests for the frame buffer pool."""

import pytest

from stillreel.models.errors import PoolExhausted
from stillreel.rendering.buffer_pool import BufferState, FrameBufferPool


class TestFrameBufferPool:
    @pytest.fixture
    def pool(self):
        return FrameBufferPool(8, 4, capacity=2)

    def test_buffer_shape(self, pool):
        buffer = pool.acquire()
        assert buffer.pixels.shape == (4, 8, 4)
        assert buffer.size == (8, 4)
        assert buffer.nbytes == 8 * 4 * 4

    def test_acquire_marks_filling(self, pool):
        buffer = pool.acquire()
        assert buffer.state == BufferState.FILLING
        assert pool.available == 1
        assert pool.in_use == 1

    def test_exhausted(self, pool):
        pool.acquire()
        pool.acquire()
        with pytest.raises(PoolExhausted):
            pool.acquire()

    def test_release_reuses_buffer(self, pool):
        first = pool.acquire()
        pool.release(first)
        assert first.state == BufferState.FREE
        assert pool.acquire() is first

    def test_lifecycle(self, pool):
        buffer = pool.acquire()
        pool.mark_encoding(buffer)
        assert buffer.state == BufferState.ENCODING
        pool.release(buffer)
        assert pool.available == 2

    def test_mark_encoding_requires_filling(self, pool):
        buffer = pool.acquire()
        pool.release(buffer)
        with pytest.raises(ValueError):
            pool.mark_encoding(buffer)

    def test_double_release(self, pool):
        buffer = pool.acquire()
        pool.release(buffer)
        with pytest.raises(ValueError, match="twice"):
            pool.release(buffer)

    def test_foreign_buffer(self, pool):
        other = FrameBufferPool(8, 4, capacity=2).acquire()
        with pytest.raises(ValueError, match="does not belong"):
            pool.release(other)

    def test_borrow_releases_on_error(self, pool):
        with pytest.raises(RuntimeError):
            with pool.borrow() as buffer:
                assert buffer.state == BufferState.FILLING
                raise RuntimeError("draw failed")
        assert pool.available == 2

    def test_borrow_keeps_buffer_on_success(self, pool):
        with pool.borrow() as buffer:
            pass
        assert buffer.state == BufferState.FILLING
        assert pool.available == 1

    def test_closed_pool(self, pool):
        buffer = pool.acquire()
        pool.close()
        assert pool.closed
        with pytest.raises(PoolExhausted, match="closed"):
            pool.acquire()
        pool.release(buffer)
        assert pool.available == 2

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            FrameBufferPool(8, 8, capacity=0)

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            FrameBufferPool(0, 8, capacity=1)
