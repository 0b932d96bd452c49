from __future__ import annotations

from typing import Any, Optional, Sequence

import numpy as np

from .exceptions import ShapeError, TensorReleasedError
from .kinds import DataKind, numpy_dtype, require_supported
from .shapes import Shape, as_shape, element_count, is_degenerate


class Tensor:
    """Host tensor handle.

    Identity is per instance: two tensors with the same shape, kind and values
    are still distinct, which is what pool membership relies on. Storage is a
    NumPy buffer until :meth:`HostStorage.release` drops it.
    """

    __slots__ = ("_data", "_shape", "_kind", "__weakref__")

    def __init__(self, data: np.ndarray, kind: DataKind):
        self._data: Optional[np.ndarray] = data
        self._shape: Shape = tuple(int(d) for d in data.shape)
        self._kind = kind

    @property
    def shape(self) -> Shape:
        return self._shape

    @property
    def kind(self) -> DataKind:
        return self._kind

    @property
    def rank(self) -> int:
        return len(self._shape)

    @property
    def size(self) -> int:
        return element_count(self._shape)

    @property
    def is_degenerate(self) -> bool:
        return is_degenerate(self._shape)

    @property
    def released(self) -> bool:
        return self._data is None

    def numpy(self) -> np.ndarray:
        """Return the backing buffer (not a copy)."""

        if self._data is None:
            raise TensorReleasedError(f"{self!r} has been released")
        return self._data

    def tolist(self) -> Any:
        return self.numpy().tolist()

    def __array__(self, dtype=None, copy=None):
        arr = self.numpy()
        if dtype is not None:
            return arr.astype(dtype)
        return arr

    def __len__(self) -> int:
        if not self._shape:
            raise TypeError("len() of a 0-d tensor")
        return self._shape[0]

    def __repr__(self) -> str:
        state = ", released" if self._data is None else ""
        return f"Tensor(shape={self._shape}, kind={self._kind.value}{state})"


class HostStorage:
    """Tensor storage capability backed by NumPy host buffers."""

    def empty(self, shape: Sequence[int], kind: Any) -> Tensor:
        kind = require_supported(kind)
        return Tensor(np.empty(as_shape(shape), dtype=numpy_dtype(kind)), kind)

    def zeros(self, shape: Sequence[int], kind: Any) -> Tensor:
        kind = require_supported(kind)
        return Tensor(np.zeros(as_shape(shape), dtype=numpy_dtype(kind)), kind)

    def full(self, shape: Sequence[int], kind: Any, value: Any) -> Tensor:
        kind = require_supported(kind)
        return Tensor(np.full(as_shape(shape), value, dtype=numpy_dtype(kind)), kind)

    def from_data(self, shape: Sequence[int], kind: Any, data: Any) -> Tensor:
        kind = require_supported(kind)
        shape = as_shape(shape)
        source = np.asarray(data)
        if source.size != element_count(shape):
            raise ShapeError(
                f"data holds {source.size} elements but shape needs {element_count(shape)}",
                op="allocate",
                shapes=[shape],
            )
        array = np.array(source, dtype=numpy_dtype(kind), copy=True).reshape(shape)
        return Tensor(array, kind)

    def release(self, tensor: Tensor) -> None:
        tensor._data = None
