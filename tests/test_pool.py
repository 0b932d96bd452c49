import logging

import numpy as np
import pytest

from opspool import (
    NullArgumentError,
    PooledAllocator,
    ShapeError,
    TensorReleasedError,
    UnsupportedKindError,
)


def test_allocations_are_pooled():
    pool = PooledAllocator()
    a = pool.allocate_uninitialized((2, 3), "float")
    b = pool.allocate_zeros((4,), "int")
    c = pool.allocate_filled((2, 2), "float", [1, 2, 3, 4])
    assert len(pool) == 3
    assert a in pool and b in pool and c in pool
    assert list(pool) == [a, b, c]
    np.testing.assert_array_equal(b.numpy(), np.zeros(4, dtype=np.int32))
    np.testing.assert_array_equal(c.numpy(), [[1.0, 2.0], [3.0, 4.0]])
    assert c.numpy().dtype == np.float32


def test_filled_allocation_checks_element_count():
    pool = PooledAllocator()
    with pytest.raises(ShapeError, match="holds 3 elements"):
        pool.allocate_filled((2, 2), "float", [1, 2, 3])
    assert len(pool) == 0


def test_unsupported_kind_allocates_nothing():
    pool = PooledAllocator()
    with pytest.raises(UnsupportedKindError):
        pool.allocate_zeros((2,), "byte")
    assert len(pool) == 0


def test_take_transfers_ownership():
    pool = PooledAllocator()
    t = pool.allocate_zeros((3,), "float")
    assert pool.take(t) is t
    assert t not in pool
    pool.flush()
    assert not t.released
    np.testing.assert_array_equal(t.numpy(), np.zeros(3, dtype=np.float32))


def test_take_of_missing_tensor_returns_none_and_warns(caplog):
    pool = PooledAllocator()
    other = PooledAllocator()
    alien = other.allocate_zeros((1,), "float")
    kept = pool.allocate_zeros((1,), "float")
    with caplog.at_level(logging.WARNING, logger="opspool.core.pool"):
        assert pool.take(alien) is None
    assert "Unable to find" in caplog.text
    assert list(pool) == [kept]
    assert alien in other


def test_take_warning_can_be_disabled(caplog):
    pool = PooledAllocator(warn_on_missing_take=False)
    t = pool.allocate_zeros((1,), "float")
    pool.take(t)
    with caplog.at_level(logging.WARNING, logger="opspool.core.pool"):
        assert pool.take(t) is None
    assert caplog.text == ""


def test_take_none_raises():
    pool = PooledAllocator()
    with pytest.raises(NullArgumentError):
        pool.take(None)


def test_flush_releases_every_member_once():
    pool = PooledAllocator()
    tensors = [pool.allocate_zeros((2,), "float") for _ in range(3)]
    assert pool.flush() == 3
    assert len(pool) == 0
    assert all(t.released for t in tensors)
    with pytest.raises(TensorReleasedError):
        tensors[0].numpy()
    assert pool.flush() == 0


def test_flushed_tensor_cannot_be_taken():
    pool = PooledAllocator(warn_on_missing_take=False)
    t = pool.allocate_zeros((2,), "float")
    pool.flush()
    assert pool.take(t) is None


def test_discard_releases_single_member():
    pool = PooledAllocator()
    a = pool.allocate_zeros((2,), "float")
    b = pool.allocate_zeros((2,), "float")
    assert pool.discard(a) is True
    assert a.released and not b.released
    assert pool.discard(a) is False
    assert list(pool) == [b]


def test_identical_tensors_are_distinct_members():
    pool = PooledAllocator()
    a = pool.allocate_zeros((2,), "float")
    b = pool.allocate_zeros((2,), "float")
    pool.take(a)
    assert b in pool
    assert a not in pool
