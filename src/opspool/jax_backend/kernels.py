from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from ..core.backend import Backend
from ..core.exceptions import BackendError
from ..core.shapes import slice_range
from ..core.storage import Tensor

try:
    import jax
    import jax.nn as jnn
    import jax.numpy as jnp
except Exception:  # pragma: no cover - jax optional
    jax = None
    jnp = None
    jnn = None


def _resolve_device(device_spec: str):
    spec = (device_spec or "auto").strip().lower()
    if not spec or spec == "auto":
        return None
    index: Optional[int] = None
    if ":" in spec:
        base, index_str = spec.split(":", 1)
        spec = base
        if index_str:
            try:
                index = int(index_str)
            except ValueError as exc:  # pragma: no cover - invalid user input
                raise ValueError(f"Invalid device index in '{device_spec}'") from exc
    if spec in {"cuda", "gpu", "mps"}:
        platform = "gpu"
    elif spec in {"cpu", "tpu"}:
        platform = spec
    else:
        raise ValueError(f"Unsupported JAX device spec '{device_spec}'")
    devices = jax.devices(platform)
    if not devices:
        raise ValueError(f"No JAX devices available for platform '{platform}'")
    if index is not None:
        for dev in devices:
            if getattr(dev, "id", None) == index:
                return dev
        raise ValueError(f"JAX device index {index} not found for platform '{platform}'")
    return devices[0]


def _signed_seed(seed: int) -> int:
    # PRNGKey takes a signed 32-bit value when x64 is disabled.
    seed = int(seed) & 0xFFFFFFFF
    return seed - (1 << 32) if seed >= (1 << 31) else seed


class JaxBackend(Backend):
    """Kernels executed with ``jax.numpy``; results are written back to host storage."""

    name = "jax"

    def __init__(self, device: str = "auto"):
        if jax is None:
            raise BackendError("JAX is not available; install opspool[jax]")
        self.jax_device = _resolve_device(device)
        platform = getattr(self.jax_device, "platform", "default")
        super().__init__(device if self.jax_device is not None else platform)

    def _j(self, tensor: Tensor):
        arr = jnp.asarray(tensor.numpy())
        if self.jax_device is not None:
            arr = jax.device_put(arr, self.jax_device)
        return arr

    @staticmethod
    def _store(out: Tensor, value) -> None:
        target = out.numpy()
        np.copyto(target, np.reshape(np.asarray(value), target.shape), casting="unsafe")

    # Elementwise -----------------------------------------------------------

    def add(self, a, b, out):
        self._store(out, jnp.add(self._j(a), self._j(b)))

    def sub(self, a, b, out):
        self._store(out, jnp.subtract(self._j(a), self._j(b)))

    def mul(self, a, b, out):
        self._store(out, jnp.multiply(self._j(a), self._j(b)))

    def div(self, a, b, out):
        self._store(out, jnp.true_divide(self._j(a), self._j(b)))

    def minimum(self, a, b, out):
        self._store(out, jnp.minimum(self._j(a), self._j(b)))

    def maximum(self, a, b, out):
        self._store(out, jnp.maximum(self._j(a), self._j(b)))

    def scalar_mad(self, x, out, scale, bias):
        data = self._j(x)
        dtype = data.dtype.type
        self._store(out, data * dtype(scale) + dtype(bias))

    def greater(self, a, b, out):
        self._store(out, jnp.greater(self._j(a), self._j(b)))

    def greater_equal(self, a, b, out):
        self._store(out, jnp.greater_equal(self._j(a), self._j(b)))

    def less(self, a, b, out):
        self._store(out, jnp.less(self._j(a), self._j(b)))

    def less_equal(self, a, b, out):
        self._store(out, jnp.less_equal(self._j(a), self._j(b)))

    def equal(self, a, b, out):
        self._store(out, jnp.equal(self._j(a), self._j(b)))

    def logical_and(self, a, b, out):
        self._store(out, jnp.logical_and(self._j(a), self._j(b)))

    def logical_or(self, a, b, out):
        self._store(out, jnp.logical_or(self._j(a), self._j(b)))

    def logical_xor(self, a, b, out):
        self._store(out, jnp.logical_xor(self._j(a), self._j(b)))

    def logical_not(self, x, out):
        self._store(out, jnp.logical_not(self._j(x)))

    def abs(self, x, out):
        self._store(out, jnp.abs(self._j(x)))

    def sqrt(self, x, out):
        self._store(out, jnp.sqrt(self._j(x)))

    def neg(self, x, out):
        self._store(out, jnp.negative(self._j(x)))

    def clip(self, x, out, min_value, max_value):
        self._store(out, jnp.clip(self._j(x), min_value, max_value))

    def cast(self, x, out):
        self._store(out, self._j(x).astype(out.numpy().dtype))

    def softmax(self, x, out, axis):
        self._store(out, jnn.softmax(self._j(x), axis=axis))

    def cumsum(self, x, out, axis, reverse, exclusive):
        data = self._j(x)
        if reverse:
            data = jnp.flip(data, axis=axis)
        acc = jnp.cumsum(data, axis=axis)
        if exclusive:
            acc = acc - data
        if reverse:
            acc = jnp.flip(acc, axis=axis)
        self._store(out, acc)

    # Reductions ------------------------------------------------------------

    def reduce_sum(self, x, out, axes, keepdims):
        self._store(out, jnp.sum(self._j(x), axis=tuple(axes), keepdims=keepdims))

    def reduce_mean(self, x, out, axes, keepdims):
        self._store(out, jnp.mean(self._j(x), axis=tuple(axes), keepdims=keepdims))

    def reduce_min(self, x, out, axes, keepdims):
        self._store(out, jnp.min(self._j(x), axis=tuple(axes), keepdims=keepdims))

    def reduce_max(self, x, out, axes, keepdims):
        self._store(out, jnp.max(self._j(x), axis=tuple(axes), keepdims=keepdims))

    def _arg(self, fn, x, out, axis, select_last_index):
        data = self._j(x)
        if not select_last_index:
            self._store(out, fn(data, axis=axis))
            return
        flipped = jnp.flip(data, axis=axis)
        self._store(out, data.shape[axis] - 1 - fn(flipped, axis=axis))

    def arg_max(self, x, out, axis, keepdims, select_last_index):
        self._arg(jnp.argmax, x, out, axis, select_last_index)

    def arg_min(self, x, out, axis, keepdims, select_last_index):
        self._arg(jnp.argmin, x, out, axis, select_last_index)

    # Layout ----------------------------------------------------------------

    def reshape(self, x, out):
        self._store(out, jnp.reshape(self._j(x), out.shape))

    def expand(self, x, out):
        self._store(out, jnp.broadcast_to(self._j(x), out.shape))

    def transpose(self, x, out, perm: Optional[Sequence[int]] = None):
        self._store(out, jnp.transpose(self._j(x), None if perm is None else tuple(perm)))

    def tile(self, x, out, repeats):
        self._store(out, jnp.tile(self._j(x), tuple(repeats)))

    def slice_set(self, x, out, axis, start, step):
        target = self._j(out)
        index = [slice(None)] * target.ndim
        index[axis] = slice(start, start + x.shape[axis] * step, step)
        self._store(out, target.at[tuple(index)].set(self._j(x)))

    def split(self, x, out, axis, start):
        data = self._j(x)
        self._store(out, jnp.take(data, jnp.arange(start, start + out.shape[axis]), axis=axis))

    def slice(self, x, out, starts, ends, axes, steps):
        data = self._j(x)
        for start, end, axis, step in zip(starts, ends, axes, steps):
            selected = np.asarray(slice_range(data.shape[axis], start, end, step), dtype=np.int32)
            data = jnp.take(data, selected, axis=axis)
        self._store(out, data)

    def gather(self, x, indices, out, axis):
        data = self._j(x)
        idx = self._j(indices)
        idx = jnp.where(idx < 0, idx + data.shape[axis], idx)
        self._store(out, jnp.take(data, idx, axis=axis))

    def gather_elements(self, x, indices, out, axis):
        data = self._j(x)
        idx = self._j(indices)
        idx = jnp.where(idx < 0, idx + data.shape[axis], idx)
        window = tuple(slice(None) if d == axis else slice(0, n) for d, n in enumerate(idx.shape))
        self._store(out, jnp.take_along_axis(data[window], idx, axis=axis))

    # Misc ------------------------------------------------------------------

    def where(self, condition, a, b, out):
        self._store(out, jnp.where(self._j(condition) != 0, self._j(a), self._j(b)))

    def random_normal(self, out, mean, scale, seed):
        key = jax.random.PRNGKey(_signed_seed(seed))
        sample = jax.random.normal(key, out.shape, dtype=jnp.float32)
        self._store(out, sample * scale + mean)

    def top_k(self, x, values, indices, k, axis, largest, sorted):
        data = self._j(x)
        # stable sort keeps the lower index first among ties
        order = jnp.argsort(data, axis=axis, stable=True, descending=largest)
        order = jnp.take(order, jnp.arange(k), axis=axis)
        self._store(values, jnp.take_along_axis(data, order, axis=axis))
        self._store(indices, order)

    def mem_copy(self, x, out):
        source = np.ascontiguousarray(x.numpy())
        raw = out.numpy().reshape(-1).view(np.uint8)
        raw[:] = source.reshape(-1).view(np.uint8)
