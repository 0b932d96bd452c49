"""Backend capability: numeric kernels invoked by the execution context.

Each kernel receives fully allocated input tensors, an output tensor whose shape
has already been computed by the context, and the op parameters. Kernels fill
the output in place and return ``None``; the context never inspects the result.
Backends are never called for degenerate (zero-element) outputs.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Sequence

from .exceptions import BackendError
from .storage import Tensor

logger = logging.getLogger(__name__)


class Backend(ABC):
    name: str = "abstract"

    def __init__(self, device: str = "auto"):
        self.device = device
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        if self._disposed:
            return
        self._release_resources()
        self._disposed = True
        logger.debug("Disposed %s backend", self.name)

    def _release_resources(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(device={self.device!r})"

    # Elementwise -----------------------------------------------------------

    @abstractmethod
    def add(self, a: Tensor, b: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def sub(self, a: Tensor, b: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def mul(self, a: Tensor, b: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def div(self, a: Tensor, b: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def minimum(self, a: Tensor, b: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def maximum(self, a: Tensor, b: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def scalar_mad(self, x: Tensor, out: Tensor, scale: float, bias: float) -> None:
        """``out = x * scale + bias``; shared by every tensor/scalar arithmetic op."""

    @abstractmethod
    def greater(self, a: Tensor, b: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def greater_equal(self, a: Tensor, b: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def less(self, a: Tensor, b: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def less_equal(self, a: Tensor, b: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def equal(self, a: Tensor, b: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def logical_and(self, a: Tensor, b: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def logical_or(self, a: Tensor, b: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def logical_xor(self, a: Tensor, b: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def logical_not(self, x: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def abs(self, x: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def sqrt(self, x: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def neg(self, x: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def clip(self, x: Tensor, out: Tensor, min_value, max_value) -> None: ...

    @abstractmethod
    def cast(self, x: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def softmax(self, x: Tensor, out: Tensor, axis: int) -> None: ...

    @abstractmethod
    def cumsum(self, x: Tensor, out: Tensor, axis: int, reverse: bool, exclusive: bool) -> None: ...

    # Reductions ------------------------------------------------------------

    @abstractmethod
    def reduce_sum(self, x: Tensor, out: Tensor, axes: Sequence[int], keepdims: bool) -> None: ...

    @abstractmethod
    def reduce_mean(self, x: Tensor, out: Tensor, axes: Sequence[int], keepdims: bool) -> None: ...

    @abstractmethod
    def reduce_min(self, x: Tensor, out: Tensor, axes: Sequence[int], keepdims: bool) -> None: ...

    @abstractmethod
    def reduce_max(self, x: Tensor, out: Tensor, axes: Sequence[int], keepdims: bool) -> None: ...

    @abstractmethod
    def arg_max(self, x: Tensor, out: Tensor, axis: int, keepdims: bool, select_last_index: bool) -> None: ...

    @abstractmethod
    def arg_min(self, x: Tensor, out: Tensor, axis: int, keepdims: bool, select_last_index: bool) -> None: ...

    # Layout ----------------------------------------------------------------

    @abstractmethod
    def reshape(self, x: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def expand(self, x: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def transpose(self, x: Tensor, out: Tensor, perm: Optional[Sequence[int]] = None) -> None: ...

    @abstractmethod
    def tile(self, x: Tensor, out: Tensor, repeats: Sequence[int]) -> None: ...

    @abstractmethod
    def slice_set(self, x: Tensor, out: Tensor, axis: int, start: int, step: int) -> None:
        """Write all of ``x`` into ``out`` along ``axis`` beginning at ``start``."""

    @abstractmethod
    def split(self, x: Tensor, out: Tensor, axis: int, start: int) -> None:
        """Copy ``out.shape[axis]`` entries of ``x`` from ``start`` along ``axis``."""

    @abstractmethod
    def slice(
        self,
        x: Tensor,
        out: Tensor,
        starts: Sequence[int],
        ends: Sequence[int],
        axes: Sequence[int],
        steps: Sequence[int],
    ) -> None: ...

    @abstractmethod
    def gather(self, x: Tensor, indices: Tensor, out: Tensor, axis: int) -> None: ...

    @abstractmethod
    def gather_elements(self, x: Tensor, indices: Tensor, out: Tensor, axis: int) -> None: ...

    # Misc ------------------------------------------------------------------

    @abstractmethod
    def where(self, condition: Tensor, a: Tensor, b: Tensor, out: Tensor) -> None: ...

    @abstractmethod
    def random_normal(self, out: Tensor, mean: float, scale: float, seed: int) -> None: ...

    @abstractmethod
    def top_k(
        self,
        x: Tensor,
        values: Tensor,
        indices: Tensor,
        k: int,
        axis: int,
        largest: bool,
        sorted: bool,
    ) -> None: ...

    @abstractmethod
    def mem_copy(self, x: Tensor, out: Tensor) -> None:
        """Duplicate the raw bytes of ``x`` into ``out`` without conversion."""


BackendFactory = Callable[[str], Backend]

_REGISTRY: Dict[str, BackendFactory] = {}


def register_backend(name: str, factory: BackendFactory) -> None:
    _REGISTRY[name.lower()] = factory


def available_backends() -> List[str]:
    names = set(_REGISTRY)
    names.update({"numpy", "torch", "jax"})
    return sorted(names)


def _resolve_factory(name: str) -> BackendFactory:
    key = (name or "").strip().lower()
    if key in _REGISTRY:
        return _REGISTRY[key]
    if key == "numpy":
        from .backend_numpy import NumpyBackend

        return NumpyBackend
    if key == "torch":
        from ..torch_backend.kernels import TorchBackend

        return TorchBackend
    if key == "jax":
        from ..jax_backend.kernels import JaxBackend

        return JaxBackend
    raise BackendError(f"Unknown backend '{name}'")


def create_backend(name: str, device: str = "auto") -> Backend:
    factory = _resolve_factory(name)
    backend = factory(device)
    logger.debug("Created %r for backend kind '%s'", backend, name)
    return backend
