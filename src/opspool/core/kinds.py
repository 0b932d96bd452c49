from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Union

import numpy as np

from .exceptions import InvalidKindError, UnsupportedKindError


class DataKind(str, Enum):
    """Element kinds a tensor can carry.

    ``FLOAT`` and ``INT`` are implemented. ``SHORT`` and ``BYTE`` are part of the
    closed kind set so callers can name them, but every allocation or op asking
    for them raises :class:`UnsupportedKindError`.
    """

    FLOAT = "float"
    INT = "int"
    SHORT = "short"
    BYTE = "byte"

    @classmethod
    def resolve(cls, value: Any) -> "DataKind":
        if isinstance(value, DataKind):
            return value
        if isinstance(value, str):
            kind = _NAME_ALIASES.get(value.strip().lower())
            if kind is None:
                raise InvalidKindError(value)
            return kind
        try:
            dtype = np.dtype(value)
        except (TypeError, ValueError):
            raise InvalidKindError(value) from None
        kind = _DTYPE_KINDS.get(dtype)
        if kind is None:
            raise InvalidKindError(value)
        return kind

    @property
    def supported(self) -> bool:
        return self in _SUPPORTED

    def __str__(self) -> str:
        return self.value


KindLike = Union[DataKind, str, np.dtype, type]

_SUPPORTED = frozenset({DataKind.FLOAT, DataKind.INT})

_NAME_ALIASES: Dict[str, DataKind] = {
    "float": DataKind.FLOAT,
    "float32": DataKind.FLOAT,
    "f32": DataKind.FLOAT,
    "int": DataKind.INT,
    "int32": DataKind.INT,
    "i32": DataKind.INT,
    "short": DataKind.SHORT,
    "int16": DataKind.SHORT,
    "byte": DataKind.BYTE,
    "uint8": DataKind.BYTE,
}

_NUMPY_DTYPES: Dict[DataKind, np.dtype] = {
    DataKind.FLOAT: np.dtype(np.float32),
    DataKind.INT: np.dtype(np.int32),
    DataKind.SHORT: np.dtype(np.int16),
    DataKind.BYTE: np.dtype(np.uint8),
}

_DTYPE_KINDS: Dict[np.dtype, DataKind] = {v: k for k, v in _NUMPY_DTYPES.items()}


def resolve_kind(value: KindLike) -> DataKind:
    return DataKind.resolve(value)


def require_supported(value: KindLike) -> DataKind:
    """Resolve ``value`` and reject kinds without an implementation."""

    kind = DataKind.resolve(value)
    if not kind.supported:
        raise UnsupportedKindError(kind)
    return kind


def numpy_dtype(kind: KindLike) -> np.dtype:
    return _NUMPY_DTYPES[DataKind.resolve(kind)]


def kind_of_array(array: np.ndarray) -> DataKind:
    """Infer the storage kind for host data.

    Floating arrays map to ``FLOAT``; integer and boolean arrays map to ``INT``.
    """

    dtype = np.asarray(array).dtype
    if np.issubdtype(dtype, np.floating):
        return DataKind.FLOAT
    if np.issubdtype(dtype, np.integer) or dtype == np.bool_:
        return DataKind.INT
    raise InvalidKindError(dtype)


def kind_of_scalar(value: Any) -> DataKind:
    if isinstance(value, (bool, np.bool_, int, np.integer)):
        return DataKind.INT
    if isinstance(value, (float, np.floating)):
        return DataKind.FLOAT
    raise InvalidKindError(type(value).__name__)


def lowest_value(kind: KindLike):
    dtype = numpy_dtype(kind)
    if np.issubdtype(dtype, np.floating):
        return -np.inf
    return np.iinfo(dtype).min


def highest_value(kind: KindLike):
    dtype = numpy_dtype(kind)
    if np.issubdtype(dtype, np.floating):
        return np.inf
    return np.iinfo(dtype).max
