from __future__ import annotations

import importlib.util
import logging
import math
import random
from dataclasses import dataclass, replace
from numbers import Integral, Real
from typing import Any, Callable, Optional, Sequence, Tuple, Union

import numpy as np

from . import shapes
from .backend import Backend, available_backends, create_backend
from .exceptions import (
    BackendError,
    KindMismatchError,
    NullArgumentError,
    ShapeError,
    TensorReleasedError,
)
from .kinds import (
    DataKind,
    KindLike,
    highest_value,
    kind_of_array,
    kind_of_scalar,
    lowest_value,
    require_supported,
)
from .pool import PooledAllocator
from .storage import HostStorage, Tensor

logger = logging.getLogger(__name__)

Operand = Union[Tensor, int, float]

FLOAT = DataKind.FLOAT
INT = DataKind.INT


def _normalize_device_spec(spec: str) -> str:
    device = (spec or "").strip()
    if not device:
        return "auto"
    lowered = device.lower()
    if lowered == "gpu":
        return "cuda"
    if lowered.startswith("gpu:"):
        return "cuda:" + lowered.split(":", 1)[1]
    if lowered in {"auto", "cpu", "mps"}:
        return lowered
    if lowered.startswith("cuda"):
        return lowered
    if lowered.startswith("mps"):
        return "mps"
    raise ValueError(f"Unsupported device: {spec}")


@dataclass(frozen=True)
class ExecutionConfig:
    """
    Settings for one :class:`ExecutionContext`.

    * ``backend`` names the kernel provider (``"numpy"``, ``"torch"``, ``"jax"``
      or ``"auto"``). It is fixed for the lifetime of the context.
    * ``device`` is the target the backend computes on; tensor storage itself
      always lives on the host.
    * ``default_kind`` is used by creation ops when no kind is given.
    * ``seed`` is the fallback seed for :meth:`ExecutionContext.random_normal`.
    * ``warn_on_missing_take`` controls the warning logged when ``take`` is
      given a tensor the pool does not own.
    """

    backend: str = "numpy"  # "numpy" | "torch" | "jax" | "auto"
    device: str = "auto"  # "auto" | "cpu" | "cuda" | "mps" | "cuda:N"
    default_kind: str = "float"
    seed: Optional[int] = None
    warn_on_missing_take: bool = True

    def normalized(self) -> "ExecutionConfig":
        backend = (self.backend or "numpy").strip().lower()
        if backend != "auto" and backend not in available_backends():
            raise ValueError(f"Unsupported backend: {self.backend}")
        device = _normalize_device_spec(self.device)
        default_kind = require_supported(self.default_kind).value
        seed = self.seed
        if seed is not None:
            seed = int(seed)
        return replace(
            self,
            backend=backend,
            device=device,
            default_kind=default_kind,
            seed=seed,
            warn_on_missing_take=bool(self.warn_on_missing_take),
        )


def _choose_backend_auto(cfg: ExecutionConfig) -> str:
    if cfg.device in {"auto", "cpu"}:
        return "numpy"
    if importlib.util.find_spec("torch") is not None:
        return "torch"
    if importlib.util.find_spec("jax") is not None:
        return "jax"
    return "numpy"


def _normalize_seed(seed: int) -> int:
    # Signed and unsigned 32-bit seeds address the same generator state.
    return int(seed) & 0xFFFFFFFF


def _reciprocal(value: float) -> float:
    if value == 0:
        return math.copysign(math.inf, value)
    return 1.0 / value


class ExecutionContext:
    """Pooled execution surface over one backend.

    Every op computes its output shape first, allocates the output from the
    context's pool, returns it immediately when it holds no elements and
    otherwise asks the backend to fill it. Returned tensors stay pooled until
    :meth:`take` hands them to the caller or :meth:`flush` releases them.
    """

    def __init__(
        self,
        backend: Union[str, Backend, None] = None,
        *,
        config: Optional[ExecutionConfig] = None,
        storage: Optional[HostStorage] = None,
    ):
        cfg = config or ExecutionConfig()
        if isinstance(backend, str):
            cfg = replace(cfg, backend=backend)
        cfg = cfg.normalized()
        if isinstance(backend, Backend):
            backend_obj = backend
        elif backend is None or isinstance(backend, str):
            name = cfg.backend
            if name == "auto":
                name = _choose_backend_auto(cfg)
                cfg = replace(cfg, backend=name)
            backend_obj = create_backend(name, cfg.device)
        else:
            raise BackendError(f"Expected a backend name or Backend instance, got {type(backend).__name__}")
        self.config = cfg
        self._backend = backend_obj
        self._pool = PooledAllocator(storage, warn_on_missing_take=cfg.warn_on_missing_take)
        self._disposed = False
        logger.debug("Created execution context on %r", backend_obj)

    # Lifetime ---------------------------------------------------------------

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def backend_kind(self) -> str:
        return self._backend.name

    @property
    def pool(self) -> PooledAllocator:
        return self._pool

    @property
    def disposed(self) -> bool:
        return self._disposed

    def take(self, tensor: Optional[Tensor]) -> Optional[Tensor]:
        """Take ownership of a pooled tensor; ``None`` if this context does not own it."""

        return self._pool.take(tensor)

    def flush(self) -> int:
        return self._pool.flush()

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        try:
            self._pool.flush()
        finally:
            self._backend.dispose()
        logger.debug("Disposed execution context on %r", self._backend)

    def __enter__(self) -> "ExecutionContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else f"pooled={len(self._pool)}"
        return f"ExecutionContext(backend={self.backend_kind!r}, {state})"

    # Internal helpers -------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._disposed:
            raise BackendError("Execution context has been disposed")

    def _check(self, op: str, *tensors: Optional[Tensor]) -> None:
        self._ensure_open()
        for tensor in tensors:
            if tensor is None:
                raise NullArgumentError(f"{op} received None instead of a tensor")
            if not isinstance(tensor, Tensor):
                raise TypeError(f"{op} expects Tensor operands, got {type(tensor).__name__}")
            if tensor.released:
                raise TensorReleasedError(f"{op} received a released tensor {tensor!r}")

    @staticmethod
    def _common_kind(op: str, *tensors: Tensor) -> DataKind:
        kinds = {t.kind for t in tensors}
        if len(kinds) > 1:
            names = ", ".join(sorted(k.value for k in kinds))
            raise KindMismatchError(f"{op} expects operands of one kind, got {names}")
        return next(iter(kinds))

    @staticmethod
    def _expect_kind(op: str, kind: DataKind, *allowed: DataKind) -> None:
        if kind not in allowed:
            names = " or ".join(k.value for k in allowed)
            raise KindMismatchError(f"{op} expects {names} tensors, got {kind.value}")

    def _dispatch(self, outputs: Tuple[Tensor, ...], kernel: Callable[..., None], *args: Any) -> None:
        """Run ``kernel`` unless the outputs are degenerate; roll back on failure."""

        if any(out.is_degenerate for out in outputs):
            return
        try:
            kernel(*args)
        except Exception:
            for out in outputs:
                self._pool.discard(out)
            raise

    def _unary(self, op: str, x: Tensor, *params: Any, out_kind: Optional[DataKind] = None) -> Tensor:
        out = self._pool.allocate_uninitialized(x.shape, out_kind or x.kind)
        self._dispatch((out,), getattr(self._backend, op), x, out, *params)
        return out

    def _binary(
        self,
        op: str,
        a: Tensor,
        b: Tensor,
        *,
        out_kind: Optional[DataKind] = None,
        accept=(FLOAT, INT),
    ) -> Tensor:
        self._check(op, a, b)
        kind = self._common_kind(op, a, b)
        self._expect_kind(op, kind, *accept)
        shape = shapes.broadcast(a.shape, b.shape)
        out = self._pool.allocate_uninitialized(shape, out_kind or kind)
        self._dispatch((out,), getattr(self._backend, op), a, b, out)
        return out

    def _split_operands(self, op: str, a: Operand, b: Operand) -> Tuple[Tensor, Any, bool]:
        """Return ``(tensor, scalar, tensor_first)`` for a tensor/scalar pair."""

        if a is None or b is None:
            raise NullArgumentError(f"{op} received None as an operand")
        if isinstance(a, Tensor) and not isinstance(b, Tensor):
            return a, b, True
        if isinstance(b, Tensor) and not isinstance(a, Tensor):
            return b, a, False
        raise TypeError(f"{op} expects at least one Tensor operand")

    def _coerce_scalar(self, op: str, value: Any, kind: DataKind):
        if isinstance(value, (bool, np.bool_, Integral)):
            return int(value) if kind is INT else float(value)
        if isinstance(value, Real):
            if kind is INT:
                raise KindMismatchError(f"{op} cannot combine an int tensor with non-integral scalar {value!r}")
            return float(value)
        raise TypeError(f"{op} expects a numeric scalar, got {type(value).__name__}")

    def _affine(self, op: str, x: Tensor, scale: Any, bias: Any) -> Tensor:
        self._check(op, x)
        scale = self._coerce_scalar(op, scale, x.kind)
        bias = self._coerce_scalar(op, bias, x.kind)
        return self._unary("scalar_mad", x, scale, bias)

    # Creation ---------------------------------------------------------------

    def _kind_or_default(self, kind: Optional[KindLike]) -> DataKind:
        return require_supported(kind if kind is not None else self.config.default_kind)

    def tensor(self, data: Any, kind: Optional[KindLike] = None, shape: Optional[Sequence[int]] = None) -> Tensor:
        self._ensure_open()
        if data is None:
            raise NullArgumentError("tensor data was None")
        array = np.asarray(data)
        resolved = require_supported(kind) if kind is not None else require_supported(kind_of_array(array))
        return self._pool.allocate_filled(array.shape if shape is None else shape, resolved, array)

    def scalar(self, value: Any, kind: Optional[KindLike] = None) -> Tensor:
        self._ensure_open()
        resolved = require_supported(kind) if kind is not None else kind_of_scalar(value)
        return self._pool.allocate_filled((), resolved, [value])

    def empty(self, shape: Sequence[int], kind: Optional[KindLike] = None) -> Tensor:
        self._ensure_open()
        return self._pool.allocate_uninitialized(shape, self._kind_or_default(kind))

    def zeros(self, shape: Sequence[int], kind: Optional[KindLike] = None) -> Tensor:
        self._ensure_open()
        return self._pool.allocate_zeros(shape, self._kind_or_default(kind))

    def ones(self, shape: Sequence[int], kind: Optional[KindLike] = None) -> Tensor:
        self._ensure_open()
        return self._pool.allocate_full(shape, self._kind_or_default(kind), 1)

    def full(self, shape: Sequence[int], value: Any, kind: Optional[KindLike] = None) -> Tensor:
        self._ensure_open()
        resolved = self._kind_or_default(kind)
        return self._pool.allocate_full(shape, resolved, self._coerce_scalar("full", value, resolved))

    # Arithmetic -------------------------------------------------------------

    def add(self, a: Operand, b: Operand) -> Tensor:
        if isinstance(a, Tensor) and isinstance(b, Tensor):
            return self._binary("add", a, b)
        tensor, value, _ = self._split_operands("add", a, b)
        return self._affine("add", tensor, 1, value)

    def sub(self, a: Operand, b: Operand) -> Tensor:
        if isinstance(a, Tensor) and isinstance(b, Tensor):
            return self._binary("sub", a, b)
        tensor, value, tensor_first = self._split_operands("sub", a, b)
        if tensor_first:
            return self._affine("sub", tensor, 1, -value)
        return self._affine("sub", tensor, -1, value)

    def mul(self, a: Operand, b: Operand) -> Tensor:
        if isinstance(a, Tensor) and isinstance(b, Tensor):
            return self._binary("mul", a, b)
        tensor, value, _ = self._split_operands("mul", a, b)
        return self._affine("mul", tensor, value, 0)

    def div(self, a: Operand, b: Operand) -> Tensor:
        if isinstance(a, Tensor) and isinstance(b, Tensor):
            return self._binary("div", a, b, accept=(FLOAT,))
        tensor, value, tensor_first = self._split_operands("div", a, b)
        self._check("div", tensor)
        self._expect_kind("div", tensor.kind, FLOAT)
        if tensor_first:
            return self._affine("div", tensor, _reciprocal(float(value)), 0)
        numerator = self.scalar(float(value), FLOAT)
        try:
            return self._binary("div", numerator, tensor, accept=(FLOAT,))
        finally:
            self._pool.discard(numerator)

    def mad(self, x: Tensor, scale: Any, bias: Any) -> Tensor:
        """``x * scale + bias`` through the shared affine kernel."""

        return self._affine("mad", x, scale, bias)

    def minimum(self, a: Tensor, b: Tensor) -> Tensor:
        return self._binary("minimum", a, b)

    def maximum(self, a: Tensor, b: Tensor) -> Tensor:
        return self._binary("maximum", a, b)

    # Comparisons / logic ----------------------------------------------------

    def greater(self, a: Tensor, b: Tensor) -> Tensor:
        return self._binary("greater", a, b, out_kind=INT)

    def greater_equal(self, a: Tensor, b: Tensor) -> Tensor:
        return self._binary("greater_equal", a, b, out_kind=INT)

    def less(self, a: Tensor, b: Tensor) -> Tensor:
        return self._binary("less", a, b, out_kind=INT)

    def less_equal(self, a: Tensor, b: Tensor) -> Tensor:
        return self._binary("less_equal", a, b, out_kind=INT)

    def equal(self, a: Tensor, b: Tensor) -> Tensor:
        return self._binary("equal", a, b, out_kind=INT)

    def logical_and(self, a: Tensor, b: Tensor) -> Tensor:
        return self._binary("logical_and", a, b, accept=(INT,))

    def logical_or(self, a: Tensor, b: Tensor) -> Tensor:
        return self._binary("logical_or", a, b, accept=(INT,))

    def logical_xor(self, a: Tensor, b: Tensor) -> Tensor:
        return self._binary("logical_xor", a, b, accept=(INT,))

    def logical_not(self, x: Tensor) -> Tensor:
        self._check("logical_not", x)
        self._expect_kind("logical_not", x.kind, INT)
        return self._unary("logical_not", x)

    # Unary ------------------------------------------------------------------

    def abs(self, x: Tensor) -> Tensor:
        self._check("abs", x)
        return self._unary("abs", x)

    def neg(self, x: Tensor) -> Tensor:
        self._check("neg", x)
        return self._unary("neg", x)

    def sqrt(self, x: Tensor) -> Tensor:
        self._check("sqrt", x)
        self._expect_kind("sqrt", x.kind, FLOAT)
        return self._unary("sqrt", x)

    def clip(self, x: Tensor, min_value: Any, max_value: Any) -> Tensor:
        self._check("clip", x)
        lo = self._coerce_scalar("clip", min_value, x.kind)
        hi = self._coerce_scalar("clip", max_value, x.kind)
        return self._unary("clip", x, lo, hi)

    def cast(self, x: Tensor, kind: KindLike) -> Tensor:
        self._check("cast", x)
        return self._unary("cast", x, out_kind=require_supported(kind))

    def softmax(self, x: Tensor, axis: int = -1) -> Tensor:
        self._check("softmax", x)
        self._expect_kind("softmax", x.kind, FLOAT)
        axis = shapes.normalize_axis(axis, x.rank, op="softmax")
        return self._unary("softmax", x, axis)

    def cumsum(self, x: Tensor, axis: int, reverse: bool = False, exclusive: bool = False) -> Tensor:
        self._check("cumsum", x)
        axis = shapes.normalize_axis(axis, x.rank, op="cumsum")
        return self._unary("cumsum", x, axis, bool(reverse), bool(exclusive))

    # Reductions -------------------------------------------------------------

    def _reduce(
        self,
        op: str,
        x: Tensor,
        axes,
        keepdims: bool,
        empty_value: Callable[[DataKind], Any],
        accept=(FLOAT, INT),
    ) -> Tensor:
        self._check(op, x)
        self._expect_kind(op, x.kind, *accept)
        resolved = shapes.reduce_axes(x.shape, axes)
        shape = shapes.reduce(x.shape, resolved, keepdims)
        if x.is_degenerate and not shapes.is_degenerate(shape):
            # Reducing over an empty axis: the result is the reduction's identity.
            return self._pool.allocate_full(shape, x.kind, empty_value(x.kind))
        out = self._pool.allocate_uninitialized(shape, x.kind)
        self._dispatch((out,), getattr(self._backend, op), x, out, resolved, bool(keepdims))
        return out

    def reduce_sum(self, x: Tensor, axes: Optional[Sequence[int]] = None, keepdims: bool = True) -> Tensor:
        return self._reduce("reduce_sum", x, axes, keepdims, lambda kind: 0)

    def reduce_mean(self, x: Tensor, axes: Optional[Sequence[int]] = None, keepdims: bool = True) -> Tensor:
        return self._reduce("reduce_mean", x, axes, keepdims, lambda kind: np.nan, accept=(FLOAT,))

    def reduce_min(self, x: Tensor, axes: Optional[Sequence[int]] = None, keepdims: bool = True) -> Tensor:
        return self._reduce("reduce_min", x, axes, keepdims, highest_value)

    def reduce_max(self, x: Tensor, axes: Optional[Sequence[int]] = None, keepdims: bool = True) -> Tensor:
        return self._reduce("reduce_max", x, axes, keepdims, lowest_value)

    def _arg_reduce(self, op: str, x: Tensor, axis: int, keepdims: bool, select_last_index: bool) -> Tensor:
        self._check(op, x)
        axis = shapes.normalize_axis(axis, x.rank, op=op)
        shape = shapes.reduce(x.shape, (axis,), keepdims)
        if x.shape[axis] == 0 and not shapes.is_degenerate(shape):
            raise ShapeError(f"{op} over an empty axis has no result", op=op, shapes=[x.shape])
        out = self._pool.allocate_uninitialized(shape, INT)
        self._dispatch((out,), getattr(self._backend, op), x, out, axis, bool(keepdims), bool(select_last_index))
        return out

    def arg_max(self, x: Tensor, axis: int = 0, keepdims: bool = True, select_last_index: bool = False) -> Tensor:
        return self._arg_reduce("arg_max", x, axis, keepdims, select_last_index)

    def arg_min(self, x: Tensor, axis: int = 0, keepdims: bool = True, select_last_index: bool = False) -> Tensor:
        return self._arg_reduce("arg_min", x, axis, keepdims, select_last_index)

    # Shape-changing ---------------------------------------------------------

    def reshape(self, x: Tensor, shape: Sequence[int]) -> Tensor:
        self._check("reshape", x)
        out = self._pool.allocate_uninitialized(shapes.reshape(x.shape, shape), x.kind)
        self._dispatch((out,), self._backend.reshape, x, out)
        return out

    def expand(self, x: Tensor, shape: Sequence[int]) -> Tensor:
        self._check("expand", x)
        out = self._pool.allocate_uninitialized(shapes.expand(x.shape, shape), x.kind)
        self._dispatch((out,), self._backend.expand, x, out)
        return out

    def transpose(self, x: Tensor, perm: Optional[Sequence[int]] = None) -> Tensor:
        self._check("transpose", x)
        resolved = None if perm is None else shapes.resolve_permutation(perm, x.rank)
        out = self._pool.allocate_uninitialized(shapes.transpose(x.shape, resolved), x.kind)
        self._dispatch((out,), self._backend.transpose, x, out, resolved)
        return out

    def tile(self, x: Tensor, repeats: Sequence[int]) -> Tensor:
        self._check("tile", x)
        out = self._pool.allocate_uninitialized(shapes.tile(x.shape, repeats), x.kind)
        self._dispatch((out,), self._backend.tile, x, out, tuple(int(r) for r in repeats))
        return out

    def concat(self, tensors: Sequence[Tensor], axis: int) -> Tensor:
        tensors = list(tensors)
        if not tensors:
            raise ShapeError("concat requires at least one tensor", op="concat")
        self._check("concat", *tensors)
        kind = self._common_kind("concat", *tensors)
        input_shapes = [t.shape for t in tensors]
        shape = shapes.concat(input_shapes, axis)
        axis = shapes.normalize_axis(axis, len(shape), op="concat")
        # Offsets are fixed before the first write.
        offsets = shapes.concat_offsets(input_shapes, axis)
        out = self._pool.allocate_uninitialized(shape, kind)

        def write_slices() -> None:
            for idx, start in offsets:
                self._backend.slice_set(tensors[idx], out, axis, start, 1)

        self._dispatch((out,), write_slices)
        return out

    def split(self, x: Tensor, axis: int, start: int = 0, end: Optional[int] = None) -> Tensor:
        self._check("split", x)
        axis = shapes.normalize_axis(axis, x.rank, op="split")
        lo, _ = shapes.split_bounds(x.shape[axis], start, end)
        out = self._pool.allocate_uninitialized(shapes.split(x.shape, axis, start, end), x.kind)
        self._dispatch((out,), self._backend.split, x, out, axis, lo)
        return out

    def split_sections(self, x: Tensor, sizes: Sequence[int], axis: int) -> Tuple[Tensor, ...]:
        """Split ``x`` into consecutive pieces of ``sizes`` along ``axis``."""

        self._check("split", x)
        axis = shapes.normalize_axis(axis, x.rank, op="split")
        piece_shapes = shapes.split_sections(x.shape, sizes, axis)
        pieces = tuple(self._pool.allocate_uninitialized(s, x.kind) for s in piece_shapes)
        starts = []
        offset = 0
        for piece_shape in piece_shapes:
            starts.append(offset)
            offset += piece_shape[axis]

        def read_slices() -> None:
            for piece, start in zip(pieces, starts):
                if not piece.is_degenerate:
                    self._backend.split(x, piece, axis, start)

        try:
            read_slices()
        except Exception:
            for piece in pieces:
                self._pool.discard(piece)
            raise
        return pieces

    def slice(
        self,
        x: Tensor,
        starts: Sequence[int],
        ends: Sequence[int],
        axes: Optional[Sequence[int]] = None,
        steps: Optional[Sequence[int]] = None,
    ) -> Tensor:
        self._check("slice", x)
        axes, starts, ends, steps = shapes.resolve_slice_params(x.shape, starts, ends, axes, steps)
        out = self._pool.allocate_uninitialized(shapes.slice(x.shape, starts, ends, axes, steps), x.kind)
        self._dispatch((out,), self._backend.slice, x, out, starts, ends, axes, steps)
        return out

    def gather(self, x: Tensor, indices: Tensor, axis: int = 0) -> Tensor:
        self._check("gather", x, indices)
        self._expect_kind("gather", indices.kind, INT)
        axis = shapes.normalize_axis(axis, x.rank, op="gather")
        out = self._pool.allocate_uninitialized(shapes.gather(x.shape, indices.shape, axis), x.kind)
        self._dispatch((out,), self._backend.gather, x, indices, out, axis)
        return out

    def gather_elements(self, x: Tensor, indices: Tensor, axis: int = 0) -> Tensor:
        self._check("gather_elements", x, indices)
        self._expect_kind("gather_elements", indices.kind, INT)
        shape = shapes.gather_elements(x.shape, indices.shape, axis)
        axis = shapes.normalize_axis(axis, x.rank, op="gather_elements")
        out = self._pool.allocate_uninitialized(shape, x.kind)
        self._dispatch((out,), self._backend.gather_elements, x, indices, out, axis)
        return out

    # Selection / generation -------------------------------------------------

    def where(self, condition: Tensor, a: Tensor, b: Tensor) -> Tensor:
        self._check("where", condition, a, b)
        self._expect_kind("where", condition.kind, INT)
        kind = self._common_kind("where", a, b)
        shape = shapes.broadcast_many(a.shape, b.shape, condition.shape)
        out = self._pool.allocate_uninitialized(shape, kind)
        self._dispatch((out,), self._backend.where, condition, a, b, out)
        return out

    def random_normal(
        self,
        shape: Sequence[int],
        mean: float = 0.0,
        scale: float = 1.0,
        seed: Optional[int] = None,
    ) -> Tensor:
        self._ensure_open()
        if seed is None:
            seed = self.config.seed if self.config.seed is not None else random.getrandbits(32)
        out = self._pool.allocate_uninitialized(shapes.as_shape(shape), FLOAT)
        self._dispatch((out,), self._backend.random_normal, out, float(mean), float(scale), _normalize_seed(seed))
        return out

    def top_k(
        self,
        x: Tensor,
        k: int,
        axis: int = -1,
        largest: bool = True,
        sorted: bool = True,
    ) -> Tuple[Tensor, Tensor]:
        """Return ``(values, indices)`` of the ``k`` extreme entries along ``axis``."""

        self._check("top_k", x)
        shape = shapes.top_k(x.shape, k, axis)
        axis = shapes.normalize_axis(axis, x.rank, op="top_k")
        values = self._pool.allocate_uninitialized(shape, x.kind)
        indices = self._pool.allocate_uninitialized(shape, INT)
        self._dispatch(
            (values, indices),
            self._backend.top_k,
            x,
            values,
            indices,
            int(k),
            axis,
            bool(largest),
            bool(sorted),
        )
        return values, indices

    def copy(self, x: Tensor) -> Tensor:
        """Duplicate ``x``'s raw memory into a new float tensor of the same shape.

        The output is always ``FLOAT`` whatever the input kind; int inputs are
        bit-copied, not converted.
        """

        self._check("copy", x)
        out = self._pool.allocate_uninitialized(x.shape, FLOAT)
        self._dispatch((out,), self._backend.mem_copy, x, out)
        return out
