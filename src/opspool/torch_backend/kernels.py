from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from ..core.backend import Backend
from ..core.exceptions import BackendError
from ..core.shapes import slice_range
from ..core.storage import Tensor

try:
    import torch
except Exception:  # pragma: no cover - torch optional
    torch = None


def _resolve_device(device_spec: str) -> "torch.device":
    spec = device_spec or "auto"
    if spec == "auto":
        if torch.cuda.is_available():
            return torch.device("cuda")
        mps_backend = getattr(torch.backends, "mps", None)
        if mps_backend is not None and mps_backend.is_available():
            return torch.device("mps")
        return torch.device("cpu")
    device = torch.device(spec)
    if device.type == "cuda" and not torch.cuda.is_available():
        raise ValueError("Requested CUDA device but torch.cuda.is_available() is False")
    if device.type == "mps":
        mps_backend = getattr(torch.backends, "mps", None)
        if mps_backend is None or not mps_backend.is_available():
            raise ValueError("Requested MPS device but torch.backends.mps.is_available() is False")
    return device


class TorchBackend(Backend):
    """Kernels executed with PyTorch.

    Inputs are uploaded from host storage for each call and results are copied
    back into the pooled output buffer, so tensors never hold device memory
    between ops.
    """

    name = "torch"

    def __init__(self, device: str = "auto"):
        if torch is None:
            raise BackendError("PyTorch is not available; install opspool[torch]")
        self.torch_device = _resolve_device(device)
        super().__init__(str(self.torch_device))

    def _t(self, tensor: Tensor):
        return torch.as_tensor(tensor.numpy(), device=self.torch_device)

    def _store(self, out: Tensor, value) -> None:
        host = value.detach().cpu().numpy()
        target = out.numpy()
        np.copyto(target, np.reshape(host, target.shape), casting="unsafe")

    def _release_resources(self) -> None:
        if self.torch_device.type == "cuda":
            torch.cuda.empty_cache()

    # Elementwise -----------------------------------------------------------

    def add(self, a, b, out):
        self._store(out, torch.add(self._t(a), self._t(b)))

    def sub(self, a, b, out):
        self._store(out, torch.sub(self._t(a), self._t(b)))

    def mul(self, a, b, out):
        self._store(out, torch.mul(self._t(a), self._t(b)))

    def div(self, a, b, out):
        self._store(out, torch.true_divide(self._t(a), self._t(b)))

    def minimum(self, a, b, out):
        self._store(out, torch.minimum(self._t(a), self._t(b)))

    def maximum(self, a, b, out):
        self._store(out, torch.maximum(self._t(a), self._t(b)))

    def scalar_mad(self, x, out, scale, bias):
        self._store(out, self._t(x) * scale + bias)

    def greater(self, a, b, out):
        self._store(out, torch.gt(self._t(a), self._t(b)))

    def greater_equal(self, a, b, out):
        self._store(out, torch.ge(self._t(a), self._t(b)))

    def less(self, a, b, out):
        self._store(out, torch.lt(self._t(a), self._t(b)))

    def less_equal(self, a, b, out):
        self._store(out, torch.le(self._t(a), self._t(b)))

    def equal(self, a, b, out):
        self._store(out, torch.eq(self._t(a), self._t(b)))

    def logical_and(self, a, b, out):
        self._store(out, torch.logical_and(self._t(a), self._t(b)))

    def logical_or(self, a, b, out):
        self._store(out, torch.logical_or(self._t(a), self._t(b)))

    def logical_xor(self, a, b, out):
        self._store(out, torch.logical_xor(self._t(a), self._t(b)))

    def logical_not(self, x, out):
        self._store(out, torch.logical_not(self._t(x)))

    def abs(self, x, out):
        self._store(out, torch.abs(self._t(x)))

    def sqrt(self, x, out):
        self._store(out, torch.sqrt(self._t(x)))

    def neg(self, x, out):
        self._store(out, torch.neg(self._t(x)))

    def clip(self, x, out, min_value, max_value):
        self._store(out, torch.clamp(self._t(x), min=min_value, max=max_value))

    def cast(self, x, out):
        dtype = torch.from_numpy(out.numpy()).dtype
        self._store(out, self._t(x).to(dtype))

    def softmax(self, x, out, axis):
        self._store(out, torch.softmax(self._t(x), dim=axis))

    def cumsum(self, x, out, axis, reverse, exclusive):
        data = self._t(x)
        if reverse:
            data = torch.flip(data, dims=(axis,))
        acc = torch.cumsum(data, dim=axis)
        if exclusive:
            acc = acc - data
        if reverse:
            acc = torch.flip(acc, dims=(axis,))
        self._store(out, acc)

    # Reductions ------------------------------------------------------------

    def reduce_sum(self, x, out, axes, keepdims):
        self._store(out, torch.sum(self._t(x), dim=tuple(axes), keepdim=keepdims))

    def reduce_mean(self, x, out, axes, keepdims):
        self._store(out, torch.mean(self._t(x), dim=tuple(axes), keepdim=keepdims))

    def reduce_min(self, x, out, axes, keepdims):
        self._store(out, torch.amin(self._t(x), dim=tuple(axes), keepdim=keepdims))

    def reduce_max(self, x, out, axes, keepdims):
        self._store(out, torch.amax(self._t(x), dim=tuple(axes), keepdim=keepdims))

    def _arg(self, fn, x, out, axis, select_last_index):
        data = self._t(x)
        if not select_last_index:
            self._store(out, fn(data, dim=axis))
            return
        flipped = torch.flip(data, dims=(axis,))
        self._store(out, data.shape[axis] - 1 - fn(flipped, dim=axis))

    def arg_max(self, x, out, axis, keepdims, select_last_index):
        self._arg(torch.argmax, x, out, axis, select_last_index)

    def arg_min(self, x, out, axis, keepdims, select_last_index):
        self._arg(torch.argmin, x, out, axis, select_last_index)

    # Layout ----------------------------------------------------------------

    def reshape(self, x, out):
        self._store(out, self._t(x).reshape(out.shape))

    def expand(self, x, out):
        self._store(out, torch.broadcast_to(self._t(x), out.shape))

    def transpose(self, x, out, perm: Optional[Sequence[int]] = None):
        data = self._t(x)
        order = tuple(reversed(range(data.dim()))) if perm is None else tuple(perm)
        self._store(out, data.permute(order))

    def tile(self, x, out, repeats):
        self._store(out, torch.tile(self._t(x), tuple(repeats)))

    def slice_set(self, x, out, axis, start, step):
        target = self._t(out)
        index = [slice(None)] * target.dim()
        index[axis] = slice(start, start + x.shape[axis] * step, step)
        target[tuple(index)] = self._t(x)
        self._store(out, target)

    def split(self, x, out, axis, start):
        self._store(out, self._t(x).narrow(axis, start, out.shape[axis]))

    def slice(self, x, out, starts, ends, axes, steps):
        data = self._t(x)
        for start, end, axis, step in zip(starts, ends, axes, steps):
            selected = list(slice_range(data.shape[axis], start, end, step))
            index = torch.tensor(selected, dtype=torch.long, device=self.torch_device)
            data = torch.index_select(data, axis, index)
        self._store(out, data)

    def gather(self, x, indices, out, axis):
        data = self._t(x)
        idx = self._t(indices).long()
        idx = torch.where(idx < 0, idx + data.shape[axis], idx)
        picked = torch.index_select(data, axis, idx.reshape(-1))
        self._store(out, picked.reshape(out.shape))

    def gather_elements(self, x, indices, out, axis):
        data = self._t(x)
        idx = self._t(indices).long()
        idx = torch.where(idx < 0, idx + data.shape[axis], idx)
        self._store(out, torch.gather(data, axis, idx))

    # Misc ------------------------------------------------------------------

    def where(self, condition, a, b, out):
        self._store(out, torch.where(self._t(condition) != 0, self._t(a), self._t(b)))

    def random_normal(self, out, mean, scale, seed):
        generator = torch.Generator(device="cpu")
        generator.manual_seed(int(seed))
        sample = torch.randn(out.shape, generator=generator, dtype=torch.float32)
        self._store(out, sample * scale + mean)

    def top_k(self, x, values, indices, k, axis, largest, sorted):
        data = self._t(x)
        # stable sort keeps the lower index first among ties
        _, order = torch.sort(data, dim=axis, descending=largest, stable=True)
        order = order.narrow(axis, 0, k)
        self._store(values, torch.gather(data, axis, order))
        self._store(indices, order)

    def mem_copy(self, x, out):
        source = np.ascontiguousarray(x.numpy())
        raw = out.numpy().reshape(-1).view(np.uint8)
        raw[:] = source.reshape(-1).view(np.uint8)
