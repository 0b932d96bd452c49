"""Shape algebra for pooled ops.

Every function here is pure: it receives shapes (sequences of non-negative
ints) plus op parameters and returns the output shape as a tuple, or raises
:class:`ShapeError`. Zero-sized dimensions propagate through sums and products
and are never rounded up.
"""

from __future__ import annotations

import builtins
import math
from typing import List, Optional, Sequence, Tuple

from .exceptions import ShapeError

Shape = Tuple[int, ...]


def as_shape(shape: Sequence[int]) -> Shape:
    if isinstance(shape, int):
        shape = (shape,)
    dims = tuple(int(d) for d in shape)
    for dim in dims:
        if dim < 0:
            raise ShapeError("shape dimensions must be non-negative", shapes=[dims])
    return dims


def element_count(shape: Sequence[int]) -> int:
    return math.prod(int(d) for d in shape)


def is_degenerate(shape: Sequence[int]) -> bool:
    return any(int(d) == 0 for d in shape)


def normalize_axis(axis: int, rank: int, *, op: Optional[str] = None) -> int:
    axis = int(axis)
    resolved = axis + rank if axis < 0 else axis
    if resolved < 0 or resolved >= rank:
        raise ShapeError(f"axis {axis} is out of range for rank {rank}", op=op)
    return resolved


def normalize_axes(
    axes: Sequence[int],
    rank: int,
    *,
    op: Optional[str] = None,
) -> Tuple[int, ...]:
    resolved = tuple(normalize_axis(axis, rank, op=op) for axis in axes)
    if len(set(resolved)) != len(resolved):
        raise ShapeError(f"duplicate axes {tuple(axes)}", op=op)
    return resolved


# Broadcasting ---------------------------------------------------------------


def broadcast(a: Sequence[int], b: Sequence[int]) -> Shape:
    a = as_shape(a)
    b = as_shape(b)
    rank = max(len(a), len(b))
    padded_a = (1,) * (rank - len(a)) + a
    padded_b = (1,) * (rank - len(b)) + b
    out: List[int] = []
    for dim_a, dim_b in zip(padded_a, padded_b):
        if dim_a == dim_b or dim_b == 1:
            out.append(dim_a)
        elif dim_a == 1:
            out.append(dim_b)
        else:
            raise ShapeError("shapes are not broadcast-compatible", op="broadcast", shapes=[a, b])
    return tuple(out)


def broadcast_many(*shapes: Sequence[int]) -> Shape:
    if not shapes:
        return ()
    result = as_shape(shapes[0])
    for shape in shapes[1:]:
        result = broadcast(result, shape)
    return result


def expand(shape: Sequence[int], target: Sequence[int]) -> Shape:
    return broadcast(shape, target)


# Concatenation / splitting ---------------------------------------------------


def concat(shapes: Sequence[Sequence[int]], axis: int) -> Shape:
    if not shapes:
        raise ShapeError("concat requires at least one shape", op="concat")
    normalized = [as_shape(s) for s in shapes]
    first = normalized[0]
    rank = len(first)
    axis = normalize_axis(axis, rank, op="concat")
    total = 0
    for shape in normalized:
        if len(shape) != rank:
            raise ShapeError("concat inputs must share the same rank", op="concat", shapes=normalized)
        for idx, (dim, ref) in enumerate(zip(shape, first)):
            if idx != axis and dim != ref:
                raise ShapeError(
                    f"concat inputs differ on non-concatenated axis {idx}",
                    op="concat",
                    shapes=normalized,
                )
        total += shape[axis]
    return first[:axis] + (total,) + first[axis + 1 :]


def concat_offsets(shapes: Sequence[Sequence[int]], axis: int) -> List[Tuple[int, int]]:
    """Return ``(input_index, start)`` for every input that contributes data.

    Starts accumulate in input order and the covered regions never overlap.
    Inputs whose ``axis`` dimension is zero are omitted.
    """

    concat(shapes, axis)
    axis = normalize_axis(axis, len(shapes[0]))
    offsets: List[Tuple[int, int]] = []
    start = 0
    for idx, shape in enumerate(shapes):
        length = int(shape[axis])
        if length == 0:
            continue
        offsets.append((idx, start))
        start += length
    return offsets


def split_bounds(dim: int, start: int = 0, end: Optional[int] = None) -> Tuple[int, int]:
    """Clamp ``[start, end)`` on a dimension of size ``dim`` with step 1."""

    bounds = builtins.slice(start, end, 1).indices(int(dim))
    stop = max(bounds[0], bounds[1])
    return bounds[0], stop


def split(shape: Sequence[int], axis: int, start: int = 0, end: Optional[int] = None) -> Shape:
    shape = as_shape(shape)
    axis = normalize_axis(axis, len(shape), op="split")
    lo, hi = split_bounds(shape[axis], start, end)
    return shape[:axis] + (hi - lo,) + shape[axis + 1 :]


def split_sections(shape: Sequence[int], sizes: Sequence[int], axis: int) -> List[Shape]:
    shape = as_shape(shape)
    axis = normalize_axis(axis, len(shape), op="split")
    sizes = [int(s) for s in sizes]
    if any(s < 0 for s in sizes) or sum(sizes) != shape[axis]:
        raise ShapeError(
            f"split sizes {tuple(sizes)} do not cover axis {axis} of size {shape[axis]}",
            op="split",
            shapes=[shape],
        )
    return [shape[:axis] + (size,) + shape[axis + 1 :] for size in sizes]


# Reductions ------------------------------------------------------------------


def reduce(
    shape: Sequence[int],
    axes: Optional[Sequence[int]] = None,
    keepdims: bool = True,
) -> Shape:
    shape = as_shape(shape)
    rank = len(shape)
    if axes is None or len(axes) == 0:
        resolved = tuple(range(rank))
    else:
        resolved = normalize_axes(axes, rank, op="reduce")
    if keepdims:
        return tuple(1 if idx in resolved else dim for idx, dim in enumerate(shape))
    return tuple(dim for idx, dim in enumerate(shape) if idx not in resolved)


def reduce_axes(shape: Sequence[int], axes: Optional[Sequence[int]] = None) -> Tuple[int, ...]:
    rank = len(shape)
    if axes is None or len(axes) == 0:
        return tuple(range(rank))
    return normalize_axes(axes, rank, op="reduce")


# Layout ------------------------------------------------------------------------


def transpose(shape: Sequence[int], perm: Optional[Sequence[int]] = None) -> Shape:
    shape = as_shape(shape)
    if perm is None:
        return tuple(reversed(shape))
    return tuple(shape[p] for p in resolve_permutation(perm, len(shape)))


def resolve_permutation(perm: Sequence[int], rank: int) -> Tuple[int, ...]:
    if len(perm) != rank:
        raise ShapeError(
            f"permutation {tuple(perm)} has length {len(perm)}, expected {rank}",
            op="transpose",
        )
    resolved = tuple(normalize_axis(p, rank, op="transpose") for p in perm)
    if sorted(resolved) != list(range(rank)):
        raise ShapeError(f"{tuple(perm)} is not a permutation of range({rank})", op="transpose")
    return resolved


def tile(shape: Sequence[int], repeats: Sequence[int]) -> Shape:
    shape = as_shape(shape)
    repeats = tuple(int(r) for r in repeats)
    if len(repeats) != len(shape):
        raise ShapeError(
            f"tile expects {len(shape)} repeats, got {len(repeats)}",
            op="tile",
            shapes=[shape],
        )
    if any(r < 0 for r in repeats):
        raise ShapeError(f"tile repeats must be non-negative, got {repeats}", op="tile")
    return tuple(dim * rep for dim, rep in zip(shape, repeats))


def reshape(shape: Sequence[int], target: Sequence[int]) -> Shape:
    shape = as_shape(shape)
    dims = [int(d) for d in target]
    inferred = [idx for idx, d in enumerate(dims) if d == -1]
    if len(inferred) > 1:
        raise ShapeError("reshape accepts at most one -1 dimension", op="reshape")
    if any(d < -1 for d in dims):
        raise ShapeError(f"invalid reshape target {tuple(dims)}", op="reshape")
    total = element_count(shape)
    if inferred:
        known = math.prod(d for d in dims if d != -1)
        if known == 0:
            raise ShapeError(
                "cannot infer -1 dimension when the remaining dimensions hold zero elements",
                op="reshape",
                shapes=[shape],
            )
        if total % known != 0:
            raise ShapeError(
                f"cannot reshape {total} elements into {tuple(dims)}",
                op="reshape",
                shapes=[shape],
            )
        dims[inferred[0]] = total // known
    if element_count(dims) != total:
        raise ShapeError(
            f"cannot reshape {total} elements into {tuple(dims)}",
            op="reshape",
            shapes=[shape],
        )
    return tuple(dims)


# Slicing / gathering -----------------------------------------------------------


def slice_range(dim: int, start: int, end: int, step: int = 1) -> range:
    """Indices selected on one axis, clamped like Python/ONNX slicing."""

    step = int(step)
    if step == 0:
        raise ShapeError("slice step cannot be zero", op="slice")
    return range(*builtins.slice(int(start), int(end), step).indices(int(dim)))


def slice(
    shape: Sequence[int],
    starts: Sequence[int],
    ends: Sequence[int],
    axes: Optional[Sequence[int]] = None,
    steps: Optional[Sequence[int]] = None,
) -> Shape:
    shape = as_shape(shape)
    axes, starts, ends, steps = resolve_slice_params(shape, starts, ends, axes, steps)
    out = list(shape)
    for axis, start, end, step in zip(axes, starts, ends, steps):
        out[axis] = len(slice_range(shape[axis], start, end, step))
    return tuple(out)


def resolve_slice_params(
    shape: Sequence[int],
    starts: Sequence[int],
    ends: Sequence[int],
    axes: Optional[Sequence[int]] = None,
    steps: Optional[Sequence[int]] = None,
) -> Tuple[Tuple[int, ...], Tuple[int, ...], Tuple[int, ...], Tuple[int, ...]]:
    starts = tuple(int(s) for s in starts)
    ends = tuple(int(e) for e in ends)
    if len(starts) != len(ends):
        raise ShapeError("slice starts and ends must have the same length", op="slice")
    if axes is None:
        axes = tuple(range(len(starts)))
    if steps is None:
        steps = (1,) * len(starts)
    steps = tuple(int(s) for s in steps)
    if len(axes) != len(starts) or len(steps) != len(starts):
        raise ShapeError("slice axes and steps must match the number of starts", op="slice")
    resolved = normalize_axes(axes, len(shape), op="slice")
    for step in steps:
        if step == 0:
            raise ShapeError("slice step cannot be zero", op="slice")
    return resolved, starts, ends, steps


def gather(shape: Sequence[int], index_shape: Sequence[int], axis: int) -> Shape:
    shape = as_shape(shape)
    index_shape = as_shape(index_shape)
    axis = normalize_axis(axis, len(shape), op="gather")
    return shape[:axis] + index_shape + shape[axis + 1 :]


def gather_elements(shape: Sequence[int], index_shape: Sequence[int], axis: int) -> Shape:
    shape = as_shape(shape)
    index_shape = as_shape(index_shape)
    if len(shape) != len(index_shape):
        raise ShapeError(
            "gather_elements indices must have the same rank as the data",
            op="gather_elements",
            shapes=[shape, index_shape],
        )
    axis = normalize_axis(axis, len(shape), op="gather_elements")
    for idx, (dim, ref) in enumerate(zip(index_shape, shape)):
        if idx != axis and dim > ref:
            raise ShapeError(
                f"gather_elements indices exceed the data on axis {idx}",
                op="gather_elements",
                shapes=[shape, index_shape],
            )
    return index_shape


def top_k(shape: Sequence[int], k: int, axis: int) -> Shape:
    shape = as_shape(shape)
    axis = normalize_axis(axis, len(shape), op="top_k")
    k = int(k)
    if k < 0 or k > shape[axis]:
        raise ShapeError(
            f"k={k} is out of range for axis {axis} of size {shape[axis]}",
            op="top_k",
            shapes=[shape],
        )
    return shape[:axis] + (k,) + shape[axis + 1 :]
