from __future__ import annotations

from collections.abc import Sequence
from math import prod

from shapeflow.errors import InferenceError


def normalize_dim(dim: int, rank: int, *, op: str, code: str) -> int:
    """Wrap a negative ``dim`` by ``rank`` and check it lands in ``[0, rank)``."""
    if dim < 0:
        dim += rank
    if dim < 0 or dim >= rank:
        raise InferenceError(
            f"{op}: dim {dim} is out of range for rank {rank}", code=code, op_type=op
        )
    return dim


def broadcast_shapes(
    a: Sequence[int], b: Sequence[int], *, op: str = "broadcast"
) -> list[int]:
    ra = list(reversed(a))
    rb = list(reversed(b))
    result: list[int] = []
    for i in range(max(len(ra), len(rb))):
        if i >= len(rb):
            result.append(ra[i])
        elif i >= len(ra) or ra[i] == 1:
            result.append(rb[i])
        elif rb[i] == 1:
            result.append(ra[i])
        elif ra[i] != rb[i]:
            raise InferenceError(
                f"{op}: the size of tensor a ({ra[i]}) must match the size of "
                f"tensor b ({rb[i]}) at non-singleton dimension {-1 - i}",
                code="EBROADCAST",
                op_type=op,
            )
        else:
            result.append(ra[i])
    return list(reversed(result))


def matmul_shape(
    a: Sequence[int], b: Sequence[int], *, op: str = "aten::mm"
) -> list[int]:
    if len(a) != 2 or len(b) != 2:
        raise InferenceError(
            f"{op}: expected 2-dimensional tensors, got ranks {len(a)} and {len(b)}",
            code="EMM_RANK",
            op_type=op,
        )
    if a[1] != b[0]:
        raise InferenceError(
            f"{op}: the size of tensor a ({a[1]}) at dimension 1 must match the "
            f"size of tensor b ({b[0]}) at dimension 0",
            code="EMM_DIMS",
            op_type=op,
        )
    return [a[0], b[1]]


def batch_matmul_shape(
    a: Sequence[int], b: Sequence[int], *, op: str = "aten::bmm"
) -> list[int]:
    if len(a) != 3 or len(b) != 3:
        raise InferenceError(
            f"{op}: expected 3-dimensional tensors, got ranks {len(a)} and {len(b)}",
            code="EBMM_RANK",
            op_type=op,
        )
    if a[0] != b[0]:
        raise InferenceError(
            f"{op}: batch sizes differ at dimension 0 ({a[0]} vs {b[0]})",
            code="EBMM_BATCH",
            op_type=op,
        )
    if a[2] != b[1]:
        raise InferenceError(
            f"{op}: the size of tensor a ({a[2]}) at dimension 2 must match the "
            f"size of tensor b ({b[1]}) at dimension 1",
            code="EBMM_DIMS",
            op_type=op,
        )
    return [a[0], a[1], b[2]]


def chunk_shapes(
    shape: Sequence[int], chunks: int, dim: int, *, op: str = "prim::ConstantChunk"
) -> list[list[int]]:
    """Split ``shape[dim]`` into ``chunks`` pieces; the last piece takes the remainder."""
    if chunks < 1:
        raise InferenceError(
            f"{op}: chunks must be positive, got {chunks}",
            code="ECHUNK_COUNT",
            op_type=op,
        )
    dim = normalize_dim(dim, len(shape), op=op, code="ECHUNK_DIM")
    size = shape[dim]
    c = (size + chunks - 1) // chunks
    r = size - c * (chunks - 1)
    if r < 0:
        raise InferenceError(
            f"{op}: cannot split size {size} into {chunks} chunks",
            code="ECHUNK_SIZE",
            op_type=op,
        )
    out: list[list[int]] = []
    for i in range(chunks):
        piece = list(shape)
        piece[dim] = r if i == chunks - 1 else c
        out.append(piece)
    return out


def concat_shape(
    shapes: Sequence[Sequence[int]], dim: int, *, op: str = "prim::FusedConcat"
) -> list[int]:
    if len(shapes) == 1:
        return list(shapes[0])
    rank = len(shapes[0])
    dim = normalize_dim(dim, rank, op=op, code="ECONCAT_DIM")
    out = list(shapes[0])
    for s in shapes[1:]:
        if len(s) != rank:
            raise InferenceError(
                f"{op}: all inputs must have the same number of dimensions "
                f"({rank} vs {len(s)})",
                code="ECONCAT_RANK",
                op_type=op,
            )
        for j in range(rank):
            if j == dim:
                out[dim] += s[dim]
            elif out[j] != s[j]:
                raise InferenceError(
                    f"{op}: sizes of tensors must match except in dimension {dim} "
                    f"(got {out[j]} and {s[j]} at dimension {j})",
                    code="ECONCAT_DIMS",
                    op_type=op,
                )
    return out


def stack_shape(
    shapes: Sequence[Sequence[int]], dim: int, *, op: str = "glow::fused_stack"
) -> list[int]:
    if len(shapes) == 1:
        return list(shapes[0])
    rank = len(shapes[0])
    # stacking inserts a new axis, so dim ranges over rank + 1 positions
    dim = normalize_dim(dim, rank + 1, op=op, code="ESTACK_DIM")
    first = list(shapes[0])
    for s in shapes[1:]:
        if list(s) != first:
            raise InferenceError(
                f"{op}: all inputs must have the same shape ({first} vs {list(s)})",
                code="ESTACK_SHAPE",
                op_type=op,
            )
    return first[:dim] + [len(shapes)] + first[dim:]


def slice_length(length: int, start: int, end: int, step: int) -> int:
    """Number of elements selected by ``[start:end:step]`` on an axis of ``length``."""
    if start >= length or end <= -length:
        return 0
    if start <= -length:
        start = 0
    elif start < 0:
        start += length
    if end > length:
        end = length
    elif end < 0:
        end += length
    if start >= end:
        return 0
    n = (end - start) // step
    if (end - start) % step:
        n += 1
    return n


def slice_shape(
    shape: Sequence[int],
    dim: int,
    start: int,
    end: int,
    step: int,
    *,
    op: str = "aten::slice",
) -> list[int]:
    if step < 1:
        raise InferenceError(
            f"{op}: step must be positive, got {step}", code="ESLICE_STEP", op_type=op
        )
    dim = normalize_dim(dim, len(shape), op=op, code="ESLICE_DIM")
    out = list(shape)
    out[dim] = slice_length(shape[dim], start, end, step)
    return out


def reshape_shape(
    shape: Sequence[int], target: Sequence[int], *, op: str = "aten::reshape"
) -> list[int]:
    if sum(1 for d in target if d == -1) > 1:
        raise InferenceError(
            f"{op}: unable to infer undetermined dimension in {list(target)}",
            code="ERESHAPE_NEG1",
            op_type=op,
        )
    s0 = prod(shape)
    explicit = [d for d in target if d != -1]
    s1 = prod(explicit)
    if len(explicit) == len(target):
        # zero-size targets only fit zero-size inputs
        valid = s0 == 0 if s1 == 0 else s0 % s1 == 0
    else:
        valid = s1 != 0 and s0 % s1 == 0
    if not valid or any(d < -1 for d in target):
        raise InferenceError(
            f"{op}: shape {list(target)} is invalid for input of size {s0}",
            code="ERESHAPE_SIZE",
            op_type=op,
        )
    return [s0 // s1 if d == -1 else d for d in target]


def permute_shape(
    shape: Sequence[int], axes: Sequence[int], *, op: str = "aten::permute"
) -> list[int]:
    rank = len(shape)
    if len(axes) != rank:
        raise InferenceError(
            f"{op}: permutation {list(axes)} must have the same number of "
            f"dimensions as the input tensor ({rank})",
            code="EPERMUTE_RANK",
            op_type=op,
        )
    out: list[int] = []
    for axis in axes:
        if axis < 0:
            raise InferenceError(
                f"{op}: negative permute axis {axis} is not supported",
                code="EPERMUTE_NEG",
                op_type=op,
            )
        if axis >= rank:
            raise InferenceError(
                f"{op}: permute axis {axis} must be less than the input rank {rank}",
                code="EPERMUTE_AXIS",
                op_type=op,
            )
        out.append(shape[axis])
    return out
