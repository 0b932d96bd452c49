import math

import numpy as np
import pytest

from opspool import (
    BackendError,
    DataKind,
    ExecutionContext,
    KindMismatchError,
    NullArgumentError,
    ShapeError,
    TensorReleasedError,
)

from conftest import FailingBackend


def test_creation_ops(ctx):
    t = ctx.tensor([[1, 2], [3, 4]])
    assert t.kind is DataKind.INT and t.shape == (2, 2)
    f = ctx.tensor([1, 2, 3, 4], kind="float", shape=(2, 2))
    assert f.kind is DataKind.FLOAT
    np.testing.assert_array_equal(f.numpy(), [[1, 2], [3, 4]])
    assert ctx.scalar(2.5).shape == ()
    np.testing.assert_array_equal(ctx.ones((2,)).numpy(), [1.0, 1.0])
    np.testing.assert_array_equal(ctx.full((2,), 7, kind="int").numpy(), [7, 7])
    assert ctx.zeros((3,)).kind is DataKind.FLOAT
    assert ctx.empty((0, 2), "int").shape == (0, 2)
    assert len(ctx.pool) == 7


def test_binary_tensor_ops(ctx):
    a = ctx.tensor([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
    b = ctx.tensor([10.0, 20.0, 30.0])
    np.testing.assert_allclose(ctx.sub(a, b).numpy(), [[-9, -18, -27], [-6, -15, -24]])
    np.testing.assert_allclose(ctx.mul(a, b).numpy(), [[10, 40, 90], [40, 100, 180]])
    np.testing.assert_allclose(ctx.div(b, a).numpy(), [[10, 10, 10], [2.5, 4, 5]])
    np.testing.assert_allclose(ctx.minimum(a, ctx.scalar(3.5)).numpy(), [[1, 2, 3], [3.5, 3.5, 3.5]])
    np.testing.assert_allclose(ctx.maximum(a, ctx.scalar(3.5)).numpy(), [[3.5, 3.5, 3.5], [4, 5, 6]])


def test_scalar_forms_use_affine_kernel(counting_ctx, counting_backend):
    x = counting_ctx.tensor([1.0, 2.0, 4.0])
    np.testing.assert_allclose(counting_ctx.add(x, 1).numpy(), [2, 3, 5])
    np.testing.assert_allclose(counting_ctx.add(1, x).numpy(), [2, 3, 5])
    np.testing.assert_allclose(counting_ctx.sub(x, 1).numpy(), [0, 1, 3])
    np.testing.assert_allclose(counting_ctx.sub(10, x).numpy(), [9, 8, 6])
    np.testing.assert_allclose(counting_ctx.mul(x, 3).numpy(), [3, 6, 12])
    np.testing.assert_allclose(counting_ctx.div(x, 2).numpy(), [0.5, 1, 2])
    np.testing.assert_allclose(counting_ctx.mad(x, 2, -1).numpy(), [1, 3, 7])
    assert counting_backend.calls["scalar_mad"] == 7
    assert counting_backend.calls["add"] == 0


def test_scalar_over_tensor_division(ctx):
    x = ctx.tensor([1.0, 2.0, 4.0])
    before = len(ctx.pool)
    out = ctx.div(8, x)
    np.testing.assert_allclose(out.numpy(), [8, 4, 2])
    assert len(ctx.pool) == before + 1


def test_division_by_zero_scalar_follows_ieee(ctx):
    x = ctx.tensor([1.0, -2.0, 0.0])
    out = ctx.div(x, 0).numpy()
    assert out[0] == math.inf and out[1] == -math.inf and math.isnan(out[2])


def test_int_arithmetic_stays_integral(ctx):
    x = ctx.tensor([1, 2, 3])
    out = ctx.mul(ctx.add(x, 2), 3)
    assert out.kind is DataKind.INT
    np.testing.assert_array_equal(out.numpy(), [9, 12, 15])
    with pytest.raises(KindMismatchError, match="non-integral"):
        ctx.add(x, 0.5)
    with pytest.raises(KindMismatchError, match="expects float"):
        ctx.div(x, 2)


def test_mixed_kinds_are_rejected(ctx):
    with pytest.raises(KindMismatchError, match="one kind"):
        ctx.add(ctx.tensor([1.0]), ctx.tensor([1]))


def test_comparisons_produce_int(ctx):
    a = ctx.tensor([1.0, 2.0, 3.0])
    b = ctx.tensor([2.0, 2.0, 2.0])
    assert ctx.greater(a, b).kind is DataKind.INT
    np.testing.assert_array_equal(ctx.greater(a, b).numpy(), [0, 0, 1])
    np.testing.assert_array_equal(ctx.greater_equal(a, b).numpy(), [0, 1, 1])
    np.testing.assert_array_equal(ctx.less(a, b).numpy(), [1, 0, 0])
    np.testing.assert_array_equal(ctx.less_equal(a, b).numpy(), [1, 1, 0])
    np.testing.assert_array_equal(ctx.equal(a, b).numpy(), [0, 1, 0])


def test_logical_ops_require_int(ctx):
    p = ctx.tensor([1, 1, 0, 0])
    q = ctx.tensor([1, 0, 1, 0])
    np.testing.assert_array_equal(ctx.logical_and(p, q).numpy(), [1, 0, 0, 0])
    np.testing.assert_array_equal(ctx.logical_or(p, q).numpy(), [1, 1, 1, 0])
    np.testing.assert_array_equal(ctx.logical_xor(p, q).numpy(), [0, 1, 1, 0])
    np.testing.assert_array_equal(ctx.logical_not(p).numpy(), [0, 0, 1, 1])
    with pytest.raises(KindMismatchError):
        ctx.logical_not(ctx.tensor([1.0]))


def test_unary_ops(ctx):
    x = ctx.tensor([-4.0, 9.0])
    np.testing.assert_allclose(ctx.abs(x).numpy(), [4, 9])
    np.testing.assert_allclose(ctx.neg(x).numpy(), [4, -9])
    np.testing.assert_allclose(ctx.sqrt(ctx.abs(x)).numpy(), [2, 3])
    np.testing.assert_allclose(ctx.clip(x, -1, 5).numpy(), [-1, 5])
    with pytest.raises(KindMismatchError):
        ctx.sqrt(ctx.tensor([4]))


def test_cast_truncates_toward_zero(ctx):
    x = ctx.tensor([1.7, -1.7, 2.0])
    out = ctx.cast(x, "int")
    assert out.kind is DataKind.INT
    np.testing.assert_array_equal(out.numpy(), [1, -1, 2])
    back = ctx.cast(out, DataKind.FLOAT)
    np.testing.assert_allclose(back.numpy(), [1, -1, 2])


def test_softmax_rows_sum_to_one(ctx):
    x = ctx.tensor([[1.0, 2.0, 3.0], [1000.0, 1000.0, 1000.0]])
    out = ctx.softmax(x).numpy()
    np.testing.assert_allclose(out.sum(axis=-1), [1.0, 1.0], rtol=1e-6)
    np.testing.assert_allclose(out[1], [1 / 3] * 3, rtol=1e-6)


def test_cumsum_variants(ctx):
    x = ctx.tensor([1, 2, 3, 4])
    np.testing.assert_array_equal(ctx.cumsum(x, 0).numpy(), [1, 3, 6, 10])
    np.testing.assert_array_equal(ctx.cumsum(x, 0, exclusive=True).numpy(), [0, 1, 3, 6])
    np.testing.assert_array_equal(ctx.cumsum(x, 0, reverse=True).numpy(), [10, 9, 7, 4])
    np.testing.assert_array_equal(ctx.cumsum(x, 0, reverse=True, exclusive=True).numpy(), [9, 7, 4, 0])


def test_reductions(ctx):
    x = ctx.tensor([[1.0, 5.0, 3.0], [4.0, 2.0, 6.0]])
    assert ctx.reduce_sum(x).shape == (1, 1)
    np.testing.assert_allclose(ctx.reduce_sum(x, keepdims=False).numpy(), 21.0)
    np.testing.assert_allclose(ctx.reduce_mean(x, [0], keepdims=False).numpy(), [2.5, 3.5, 4.5])
    np.testing.assert_allclose(ctx.reduce_min(x, [1]).numpy(), [[1.0], [2.0]])
    np.testing.assert_allclose(ctx.reduce_max(x, [-1], keepdims=False).numpy(), [5.0, 6.0])
    with pytest.raises(KindMismatchError):
        ctx.reduce_mean(ctx.tensor([1, 2]))


def test_arg_reductions_tie_break(ctx):
    x = ctx.tensor([[3, 1, 3], [0, 0, -1]])
    out = ctx.arg_max(x, axis=1, keepdims=False)
    assert out.kind is DataKind.INT
    np.testing.assert_array_equal(out.numpy(), [0, 0])
    np.testing.assert_array_equal(ctx.arg_max(x, axis=1, keepdims=False, select_last_index=True).numpy(), [2, 1])
    np.testing.assert_array_equal(ctx.arg_min(x, axis=0).numpy(), [[1, 1, 1]])
    np.testing.assert_array_equal(ctx.arg_min(x, axis=-1, select_last_index=True).numpy(), [[1], [2]])


def test_layout_ops(ctx):
    x = ctx.tensor(np.arange(6, dtype=np.float32).reshape(2, 3))
    np.testing.assert_array_equal(ctx.reshape(x, (3, -1)).numpy(), np.arange(6).reshape(3, 2))
    np.testing.assert_array_equal(ctx.transpose(x).numpy(), np.arange(6).reshape(2, 3).T)
    np.testing.assert_array_equal(ctx.tile(x, (1, 2)).numpy(), np.tile(np.arange(6).reshape(2, 3), (1, 2)))
    row = ctx.tensor([1.0, 2.0, 3.0])
    np.testing.assert_array_equal(ctx.expand(row, (2, 3)).numpy(), [[1, 2, 3], [1, 2, 3]])


def test_transpose_with_permutation(ctx):
    data = np.arange(24, dtype=np.float32).reshape(2, 3, 4)
    out = ctx.transpose(ctx.tensor(data), (1, 2, 0))
    assert out.shape == (3, 4, 2)
    np.testing.assert_array_equal(out.numpy(), np.transpose(data, (1, 2, 0)))


def test_concat_and_split(ctx):
    a = ctx.tensor([[1, 2]])
    b = ctx.tensor([[3, 4], [5, 6]])
    joined = ctx.concat([a, b], 0)
    np.testing.assert_array_equal(joined.numpy(), [[1, 2], [3, 4], [5, 6]])
    np.testing.assert_array_equal(ctx.split(joined, 0, 1).numpy(), [[3, 4], [5, 6]])
    np.testing.assert_array_equal(ctx.split(joined, 0, -1).numpy(), [[5, 6]])
    first, empty, rest = ctx.split_sections(joined, [1, 0, 2], 0)
    np.testing.assert_array_equal(first.numpy(), [[1, 2]])
    assert empty.shape == (0, 2)
    np.testing.assert_array_equal(rest.numpy(), [[3, 4], [5, 6]])


def test_concat_rejects_mixed_kinds_and_empty_list(ctx):
    with pytest.raises(KindMismatchError):
        ctx.concat([ctx.tensor([1]), ctx.tensor([1.0])], 0)
    with pytest.raises(ShapeError, match="at least one"):
        ctx.concat([], 0)


def test_slice_with_steps_and_axes(ctx):
    data = np.arange(20, dtype=np.float32).reshape(4, 5)
    x = ctx.tensor(data)
    out = ctx.slice(x, [1, 4], [4, 0], axes=[0, 1], steps=[2, -2])
    np.testing.assert_array_equal(out.numpy(), data[1:4:2, 4:0:-2])


def test_gather_ops(ctx):
    data = np.arange(12, dtype=np.float32).reshape(4, 3)
    x = ctx.tensor(data)
    idx = ctx.tensor([[0, 3], [-1, 1]])
    out = ctx.gather(x, idx, 0)
    assert out.shape == (2, 2, 3)
    np.testing.assert_array_equal(out.numpy(), data[[[0, 3], [3, 1]]])
    el_idx = ctx.tensor([[2, 0, 1], [0, -1, 0]])
    picked = ctx.gather_elements(x, el_idx, 1)
    np.testing.assert_array_equal(picked.numpy(), [[2, 0, 1], [3, 5, 3]])
    with pytest.raises(KindMismatchError):
        ctx.gather(x, ctx.tensor([0.0]), 0)


def test_where_broadcasts_three_ways(ctx):
    cond = ctx.tensor([[1], [0]])
    a = ctx.tensor([1.0, 2.0])
    b = ctx.scalar(-1.0)
    out = ctx.where(cond, a, b)
    np.testing.assert_array_equal(out.numpy(), [[1, 2], [-1, -1]])
    assert out.kind is DataKind.FLOAT


def test_random_normal_is_seeded(ctx):
    a = ctx.random_normal((1000,), mean=5.0, scale=0.5, seed=7).numpy()
    b = ctx.random_normal((1000,), mean=5.0, scale=0.5, seed=7).numpy()
    np.testing.assert_array_equal(a, b)
    assert abs(a.mean() - 5.0) < 0.1
    # seeds are wrapped to 32 bits
    c = ctx.random_normal((4,), seed=-1).numpy()
    d = ctx.random_normal((4,), seed=2**32 - 1).numpy()
    np.testing.assert_array_equal(c, d)


def test_random_normal_uses_config_seed():
    from opspool import ExecutionConfig

    with ExecutionContext(config=ExecutionConfig(seed=3)) as first:
        a = first.random_normal((3,)).numpy().copy()
    with ExecutionContext(config=ExecutionConfig(seed=3)) as second:
        b = second.random_normal((3,)).numpy().copy()
    np.testing.assert_array_equal(a, b)


def test_top_k(ctx):
    x = ctx.tensor([[1.0, 4.0, 4.0, 2.0], [0.0, -1.0, 5.0, 3.0]])
    values, indices = ctx.top_k(x, 2)
    np.testing.assert_array_equal(values.numpy(), [[4, 4], [5, 3]])
    np.testing.assert_array_equal(indices.numpy(), [[1, 2], [2, 3]])
    assert indices.kind is DataKind.INT
    values, indices = ctx.top_k(x, 1, axis=1, largest=False)
    np.testing.assert_array_equal(values.numpy(), [[1], [-1]])
    np.testing.assert_array_equal(indices.numpy(), [[0], [1]])


def test_none_and_released_inputs(ctx):
    x = ctx.tensor([1.0])
    with pytest.raises(NullArgumentError):
        ctx.abs(None)
    with pytest.raises(NullArgumentError):
        ctx.add(x, None)
    ctx.flush()
    with pytest.raises(TensorReleasedError):
        ctx.abs(x)


def test_shape_errors_leave_pool_untouched(ctx):
    a = ctx.tensor([[1.0, 2.0, 3.0]])
    b = ctx.tensor([1.0, 2.0])
    before = list(ctx.pool)
    with pytest.raises(ShapeError):
        ctx.add(a, b)
    with pytest.raises(ShapeError):
        ctx.arg_max(a, axis=3)
    assert list(ctx.pool) == before


@pytest.mark.parametrize("kernel", ["add", "top_k", "split"])
def test_backend_failure_discards_outputs(kernel):
    with ExecutionContext(FailingBackend(kernel)) as context:
        x = context.tensor([[1.0, 2.0], [3.0, 4.0]])
        before = list(context.pool)
        with pytest.raises(RuntimeError, match="exploded"):
            if kernel == "add":
                context.add(x, x)
            elif kernel == "top_k":
                context.top_k(x, 1)
            else:
                context.split_sections(x, [1, 1], 0)
        assert list(context.pool) == before


def test_operations_after_dispose_raise():
    context = ExecutionContext()
    x = context.tensor([1.0])
    kept = context.take(x)
    context.dispose()
    assert context.disposed
    with pytest.raises(BackendError, match="disposed"):
        context.abs(kept)
    with pytest.raises(BackendError):
        context.zeros((1,))
    context.dispose()
