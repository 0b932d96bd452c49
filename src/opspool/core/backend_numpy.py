from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .backend import Backend
from .shapes import slice_range
from .storage import Tensor


def _write(out: Tensor, value) -> None:
    target = out.numpy()
    np.copyto(target, np.reshape(np.asarray(value), target.shape), casting="unsafe")


def _select_arg(arr: np.ndarray, axis: int, select_last_index: bool, fn) -> np.ndarray:
    if not select_last_index:
        return fn(arr, axis=axis)
    flipped = np.flip(arr, axis=axis)
    return arr.shape[axis] - 1 - fn(flipped, axis=axis)


class NumpyBackend(Backend):
    """Reference kernels executed with NumPy on host buffers."""

    name = "numpy"

    def __init__(self, device: str = "auto"):
        if device not in {"auto", "cpu"}:
            raise ValueError(
                f"NumPy backend only supports CPU execution; received device='{device}'"
            )
        super().__init__("cpu")

    # Elementwise -----------------------------------------------------------

    def add(self, a, b, out):
        np.add(a.numpy(), b.numpy(), out=out.numpy(), casting="unsafe")

    def sub(self, a, b, out):
        np.subtract(a.numpy(), b.numpy(), out=out.numpy(), casting="unsafe")

    def mul(self, a, b, out):
        np.multiply(a.numpy(), b.numpy(), out=out.numpy(), casting="unsafe")

    def div(self, a, b, out):
        with np.errstate(divide="ignore", invalid="ignore"):
            np.true_divide(a.numpy(), b.numpy(), out=out.numpy(), casting="unsafe")

    def minimum(self, a, b, out):
        np.minimum(a.numpy(), b.numpy(), out=out.numpy(), casting="unsafe")

    def maximum(self, a, b, out):
        np.maximum(a.numpy(), b.numpy(), out=out.numpy(), casting="unsafe")

    def scalar_mad(self, x, out, scale, bias):
        target = out.numpy()
        dtype = target.dtype
        with np.errstate(invalid="ignore", over="ignore"):
            np.multiply(x.numpy(), dtype.type(scale), out=target, casting="unsafe")
            np.add(target, dtype.type(bias), out=target, casting="unsafe")

    def greater(self, a, b, out):
        np.greater(a.numpy(), b.numpy(), out=out.numpy(), casting="unsafe")

    def greater_equal(self, a, b, out):
        np.greater_equal(a.numpy(), b.numpy(), out=out.numpy(), casting="unsafe")

    def less(self, a, b, out):
        np.less(a.numpy(), b.numpy(), out=out.numpy(), casting="unsafe")

    def less_equal(self, a, b, out):
        np.less_equal(a.numpy(), b.numpy(), out=out.numpy(), casting="unsafe")

    def equal(self, a, b, out):
        np.equal(a.numpy(), b.numpy(), out=out.numpy(), casting="unsafe")

    def logical_and(self, a, b, out):
        np.logical_and(a.numpy(), b.numpy(), out=out.numpy(), casting="unsafe")

    def logical_or(self, a, b, out):
        np.logical_or(a.numpy(), b.numpy(), out=out.numpy(), casting="unsafe")

    def logical_xor(self, a, b, out):
        np.logical_xor(a.numpy(), b.numpy(), out=out.numpy(), casting="unsafe")

    def logical_not(self, x, out):
        np.logical_not(x.numpy(), out=out.numpy(), casting="unsafe")

    def abs(self, x, out):
        np.abs(x.numpy(), out=out.numpy())

    def sqrt(self, x, out):
        with np.errstate(invalid="ignore"):
            np.sqrt(x.numpy(), out=out.numpy())

    def neg(self, x, out):
        np.negative(x.numpy(), out=out.numpy())

    def clip(self, x, out, min_value, max_value):
        dtype = out.numpy().dtype
        np.clip(x.numpy(), dtype.type(min_value), dtype.type(max_value), out=out.numpy())

    def cast(self, x, out):
        # float -> int truncates toward zero
        _write(out, x.numpy().astype(out.numpy().dtype))

    def softmax(self, x, out, axis):
        arr = x.numpy()
        shifted = arr - np.max(arr, axis=axis, keepdims=True)
        e = np.exp(shifted)
        _write(out, e / np.sum(e, axis=axis, keepdims=True))

    def cumsum(self, x, out, axis, reverse, exclusive):
        arr = x.numpy()
        if reverse:
            arr = np.flip(arr, axis=axis)
        acc = np.cumsum(arr, axis=axis, dtype=out.numpy().dtype)
        if exclusive:
            acc = acc - arr
        if reverse:
            acc = np.flip(acc, axis=axis)
        _write(out, acc)

    # Reductions ------------------------------------------------------------

    def reduce_sum(self, x, out, axes, keepdims):
        _write(out, np.sum(x.numpy(), axis=tuple(axes), keepdims=keepdims))

    def reduce_mean(self, x, out, axes, keepdims):
        _write(out, np.mean(x.numpy(), axis=tuple(axes), keepdims=keepdims))

    def reduce_min(self, x, out, axes, keepdims):
        _write(out, np.min(x.numpy(), axis=tuple(axes), keepdims=keepdims))

    def reduce_max(self, x, out, axes, keepdims):
        _write(out, np.max(x.numpy(), axis=tuple(axes), keepdims=keepdims))

    def arg_max(self, x, out, axis, keepdims, select_last_index):
        _write(out, _select_arg(x.numpy(), axis, select_last_index, np.argmax))

    def arg_min(self, x, out, axis, keepdims, select_last_index):
        _write(out, _select_arg(x.numpy(), axis, select_last_index, np.argmin))

    # Layout ----------------------------------------------------------------

    def reshape(self, x, out):
        _write(out, x.numpy())

    def expand(self, x, out):
        _write(out, np.broadcast_to(x.numpy(), out.shape))

    def transpose(self, x, out, perm: Optional[Sequence[int]] = None):
        _write(out, np.transpose(x.numpy(), None if perm is None else tuple(perm)))

    def tile(self, x, out, repeats):
        _write(out, np.tile(x.numpy(), tuple(repeats)))

    def slice_set(self, x, out, axis, start, step):
        target = out.numpy()
        length = x.shape[axis]
        index = [slice(None)] * target.ndim
        index[axis] = slice(start, start + length * step, step)
        target[tuple(index)] = x.numpy()

    def split(self, x, out, axis, start):
        length = out.shape[axis]
        _write(out, np.take(x.numpy(), np.arange(start, start + length), axis=axis))

    def slice(self, x, out, starts, ends, axes, steps):
        arr = x.numpy()
        for start, end, axis, step in zip(starts, ends, axes, steps):
            selected = slice_range(arr.shape[axis], start, end, step)
            arr = np.take(arr, np.asarray(selected, dtype=np.int64), axis=axis)
        _write(out, arr)

    def gather(self, x, indices, out, axis):
        _write(out, np.take(x.numpy(), indices.numpy(), axis=axis))

    def gather_elements(self, x, indices, out, axis):
        arr = x.numpy()
        idx = indices.numpy().astype(np.int64)
        idx = np.where(idx < 0, idx + arr.shape[axis], idx)
        window = tuple(slice(None) if d == axis else slice(0, n) for d, n in enumerate(idx.shape))
        _write(out, np.take_along_axis(arr[window], idx, axis=axis))

    # Misc ------------------------------------------------------------------

    def where(self, condition, a, b, out):
        _write(out, np.where(condition.numpy() != 0, a.numpy(), b.numpy()))

    def random_normal(self, out, mean, scale, seed):
        rng = np.random.default_rng(seed)
        _write(out, rng.normal(loc=mean, scale=scale, size=out.shape))

    def top_k(self, x, values, indices, k, axis, largest, sorted):
        arr = np.moveaxis(x.numpy(), axis, -1)
        keys = arr.astype(np.float64)
        if largest:
            keys = -keys
        # stable sort keeps the lower index first among ties
        order = np.argsort(keys, axis=-1, kind="stable")[..., :k]
        picked = np.take_along_axis(arr, order, axis=-1)
        _write(values, np.moveaxis(picked, -1, axis))
        _write(indices, np.moveaxis(order, -1, axis))

    def mem_copy(self, x, out):
        source = np.ascontiguousarray(x.numpy())
        target = out.numpy()
        raw = target.reshape(-1).view(np.uint8)
        raw[:] = source.reshape(-1).view(np.uint8)
