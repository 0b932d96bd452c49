from __future__ import annotations

from typing import Any, Optional, Sequence


class OpsPoolError(Exception):
    """Base class for opspool-specific exceptions."""


class ShapeError(OpsPoolError, ValueError):
    def __init__(
        self,
        message: str,
        *,
        op: Optional[str] = None,
        shapes: Optional[Sequence[Sequence[int]]] = None,
    ):
        detail = _format_shapes(op, shapes)
        super().__init__(f"{message}{detail}")
        self.op = op
        self.shapes = tuple(tuple(int(d) for d in s) for s in shapes) if shapes else ()


class NullArgumentError(OpsPoolError, TypeError):
    pass


class InvalidKindError(OpsPoolError, ValueError):
    def __init__(self, value: Any):
        super().__init__(f"Invalid data kind '{value}'")
        self.value = value


class UnsupportedKindError(OpsPoolError, NotImplementedError):
    def __init__(self, kind: Any):
        name = getattr(kind, "value", kind)
        super().__init__(f"Data kind '{name}' is declared but not supported")
        self.kind = kind


class KindMismatchError(OpsPoolError, TypeError):
    pass


class TensorReleasedError(OpsPoolError, RuntimeError):
    pass


class BackendError(OpsPoolError, RuntimeError):
    pass


def _format_shapes(
    op: Optional[str],
    shapes: Optional[Sequence[Sequence[int]]],
) -> str:
    if op is None and not shapes:
        return ""
    parts = []
    if op is not None:
        parts.append(f"op {op}")
    if shapes:
        parts.append(", ".join(str(tuple(int(d) for d in s)) for s in shapes))
    return f" ({'; '.join(parts)})"
