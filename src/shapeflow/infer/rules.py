from __future__ import annotations

import operator
from collections.abc import Callable
from dataclasses import dataclass, field

from shapeflow.errors import InferenceError
from shapeflow.infer.config import EngineConfig
from shapeflow.infer.ops import EMBEDDING_BAG_ARITY, ROWWISE_SCALE_BIAS_BYTES, OpKind
from shapeflow.infer.shapes import (
    batch_matmul_shape,
    broadcast_shapes,
    chunk_shapes,
    concat_shape,
    matmul_shape,
    permute_shape,
    reshape_shape,
    slice_shape,
    stack_shape,
)
from shapeflow.ir.graph import Node
from shapeflow.ir.meta import (
    IntListMeta,
    NoneMeta,
    ScalarMeta,
    TensorMeta,
    ValueMeta,
    describe,
)
from shapeflow.utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RuleContext:
    config: EngineConfig = field(default_factory=EngineConfig)
    output_types: tuple[str, ...] = ()


ShapeRuleFn = Callable[[list[ValueMeta], Node, RuleContext], list[ValueMeta]]


@dataclass(frozen=True)
class ShapeRule:
    kind: OpKind
    fn: ShapeRuleFn
    # Only output 0 carries a shape the pass needs; other outputs get no entry.
    first_output_only: bool = False


_REGISTRY: dict[OpKind, ShapeRule] = {}


def register_shape_rule(
    *kinds: OpKind, first_output_only: bool = False
) -> Callable[[ShapeRuleFn], ShapeRuleFn]:
    def wrapper(fn: ShapeRuleFn) -> ShapeRuleFn:
        for kind in kinds:
            _REGISTRY[kind] = ShapeRule(kind, fn, first_output_only)
        return fn

    return wrapper


def get_rule(op_type: str) -> ShapeRule:
    kind = OpKind.from_tag(op_type)
    rule = _REGISTRY.get(kind)
    if rule is None:
        raise InferenceError(
            f"Node's operator {op_type} is not supported",
            code="EUNSUPPORTED_OP",
            op_type=op_type,
        )
    return rule


def _expect_arity(
    metas: list[ValueMeta], op: str, lo: int, hi: int | None = None
) -> None:
    n = len(metas)
    if hi is None:
        hi = lo
    if n < lo or (hi >= 0 and n > hi):
        if lo == hi:
            expected = f"{lo}"
        elif hi < 0:
            expected = f"at least {lo}"
        else:
            expected = f"{lo} to {hi}"
        raise InferenceError(
            f"{op}: expected {expected} inputs, got {n}", code="EARITY", op_type=op
        )


def _tensor(meta: ValueMeta, op: str, what: str, code: str) -> list[int]:
    if not isinstance(meta, TensorMeta):
        raise InferenceError(
            f"{op}: expected {what} to be a tensor, got {describe(meta)}",
            code=code,
            op_type=op,
        )
    return meta.shape


def _scalar(meta: ValueMeta, op: str, what: str, code: str) -> int:
    if not isinstance(meta, ScalarMeta):
        raise InferenceError(
            f"{op}: expected int for {what}, got {describe(meta)}",
            code=code,
            op_type=op,
        )
    return meta.value


def _int_list(meta: ValueMeta, op: str, what: str, code: str) -> list[int]:
    if not isinstance(meta, IntListMeta):
        raise InferenceError(
            f"{op}: expected int[] for {what}, got {describe(meta)}",
            code=code,
            op_type=op,
        )
    return list(meta.values)


@register_shape_rule(OpKind.CONSTANT)
def infer_constant(
    metas: list[ValueMeta], node: Node, ctx: RuleContext
) -> list[ValueMeta]:
    out_type = ctx.output_types[0] if ctx.output_types else "Tensor"
    if out_type == "float":
        # the magnitude of a float never feeds a shape
        return [ScalarMeta(1)]
    if out_type in ("int", "bool"):
        return [ScalarMeta(node.i("value"))]
    if out_type == "None":
        return [NoneMeta()]
    if out_type == "Tensor":
        return [TensorMeta(tuple(int(s) for s in node.t("value").shape))]
    if out_type == "int[]":
        return [IntListMeta(tuple(node.ints("value")))]
    logger.debug("constant of type %s carries no shape", out_type)
    return [NoneMeta()]


@register_shape_rule(OpKind.TANH, OpKind.RELU, OpKind.SIGMOID)
def infer_unary(metas: list[ValueMeta], node: Node, ctx: RuleContext) -> list[ValueMeta]:
    _expect_arity(metas, node.op_type, 1)
    return [metas[0]]


_FOLDABLE: dict[OpKind, Callable[[int, int], int]] = {
    OpKind.ADD: operator.add,
    OpKind.SUB: operator.sub,
    OpKind.MUL: operator.mul,
    OpKind.POW: operator.pow,
}


def _binary(a: ValueMeta, b: ValueMeta, op: str) -> ValueMeta:
    for meta in (a, b):
        if not isinstance(meta, (TensorMeta, ScalarMeta)):
            raise InferenceError(
                f"{op}: expected tensor or scalar operands, got {describe(meta)}",
                code="EBINARY_ARG",
                op_type=op,
            )
    if isinstance(b, ScalarMeta):
        if isinstance(a, ScalarMeta):
            return _fold(a.value, b.value, op)
        return a
    if isinstance(a, ScalarMeta):
        return b
    return TensorMeta(tuple(broadcast_shapes(a.dims, b.dims, op=op)))


def _fold(x: int, y: int, op: str) -> ScalarMeta:
    kind = OpKind.from_tag(op)
    if kind not in _FOLDABLE:
        raise InferenceError(
            f"{op}: expected tensor operands, got two scalars",
            code="EBINARY_ARG",
            op_type=op,
        )
    if kind is OpKind.POW and y < 0:
        raise InferenceError(
            f"{op}: negative exponent {y} does not produce an integer",
            code="EBINARY_ARG",
            op_type=op,
        )
    return ScalarMeta(_FOLDABLE[kind](x, y))


@register_shape_rule(OpKind.ADD, OpKind.SUB, OpKind.MUL, OpKind.POW)
def infer_binary(
    metas: list[ValueMeta], node: Node, ctx: RuleContext
) -> list[ValueMeta]:
    # A third operand (alpha) never affects the shape
    _expect_arity(metas, node.op_type, 2, 3)
    return [_binary(metas[0], metas[1], node.op_type)]


@register_shape_rule(OpKind.MM)
def infer_mm(metas: list[ValueMeta], node: Node, ctx: RuleContext) -> list[ValueMeta]:
    op = node.op_type
    _expect_arity(metas, op, 2)
    a = _tensor(metas[0], op, "self", "EMM_RANK")
    b = _tensor(metas[1], op, "mat2", "EMM_RANK")
    return [TensorMeta(tuple(matmul_shape(a, b, op=op)))]


@register_shape_rule(OpKind.BMM)
def infer_bmm(metas: list[ValueMeta], node: Node, ctx: RuleContext) -> list[ValueMeta]:
    op = node.op_type
    _expect_arity(metas, op, 2)
    a = _tensor(metas[0], op, "self", "EBMM_RANK")
    b = _tensor(metas[1], op, "mat2", "EBMM_RANK")
    return [TensorMeta(tuple(batch_matmul_shape(a, b, op=op)))]


@register_shape_rule(OpKind.ADDMM)
def infer_addmm(
    metas: list[ValueMeta], node: Node, ctx: RuleContext
) -> list[ValueMeta]:
    """self + mat1 @ mat2, with optional beta/alpha scalars after mat2."""
    op = node.op_type
    _expect_arity(metas, op, 3, -1)
    if isinstance(metas[2], ScalarMeta):
        product = metas[1]
    else:
        mat1 = _tensor(metas[1], op, "mat1", "EMM_RANK")
        mat2 = _tensor(metas[2], op, "mat2", "EMM_RANK")
        product = TensorMeta(tuple(matmul_shape(mat1, mat2, op=op)))
    return [_binary(metas[0], product, op)]


@register_shape_rule(OpKind.CONSTANT_CHUNK)
def infer_constant_chunk(
    metas: list[ValueMeta], node: Node, ctx: RuleContext
) -> list[ValueMeta]:
    op = node.op_type
    _expect_arity(metas, op, 1)
    shape = _tensor(metas[0], op, "self", "ECHUNK_ARG")
    pieces = chunk_shapes(shape, node.i("chunks"), node.i("dim"), op=op)
    return [TensorMeta(tuple(p)) for p in pieces]


@register_shape_rule(OpKind.FUSED_CONCAT)
def infer_fused_concat(
    metas: list[ValueMeta], node: Node, ctx: RuleContext
) -> list[ValueMeta]:
    op = node.op_type
    _expect_arity(metas, op, 1, -1)
    if len(metas) == 1:
        return [metas[0]]
    shapes = [_tensor(m, op, f"input {i}", "ECONCAT_ARG") for i, m in enumerate(metas)]
    return [TensorMeta(tuple(concat_shape(shapes, node.i("dim"), op=op)))]


@register_shape_rule(OpKind.FUSED_STACK)
def infer_fused_stack(
    metas: list[ValueMeta], node: Node, ctx: RuleContext
) -> list[ValueMeta]:
    op = node.op_type
    _expect_arity(metas, op, 1, -1)
    if len(metas) == 1:
        return [metas[0]]
    shapes = [_tensor(m, op, f"input {i}", "ESTACK_ARG") for i, m in enumerate(metas)]
    return [TensorMeta(tuple(stack_shape(shapes, node.i("dim"), op=op)))]


@register_shape_rule(OpKind.LIST_CONSTRUCT)
def infer_list_construct(
    metas: list[ValueMeta], node: Node, ctx: RuleContext
) -> list[ValueMeta]:
    op = node.op_type
    _expect_arity(metas, op, 1, -1)
    values = [_scalar(m, op, f"element {i}", "ELIST_ARG") for i, m in enumerate(metas)]
    return [IntListMeta(tuple(values))]


@register_shape_rule(OpKind.SLICE)
def infer_slice(metas: list[ValueMeta], node: Node, ctx: RuleContext) -> list[ValueMeta]:
    """aten::slice(Tensor self, int dim, int start, int end, int step)"""
    op = node.op_type
    _expect_arity(metas, op, 5)
    shape = _tensor(metas[0], op, "self", "ESLICE_ARG")
    dim, start, end, step = (
        _scalar(m, op, name, "ESLICE_ARG")
        for m, name in zip(metas[1:], ("dim", "start", "end", "step"))
    )
    return [TensorMeta(tuple(slice_shape(shape, dim, start, end, step, op=op)))]


@register_shape_rule(OpKind.RESHAPE)
def infer_reshape(
    metas: list[ValueMeta], node: Node, ctx: RuleContext
) -> list[ValueMeta]:
    op = node.op_type
    _expect_arity(metas, op, 2)
    shape = _tensor(metas[0], op, "self", "ERESHAPE_ARG")
    target = _int_list(metas[1], op, "shape", "ERESHAPE_ARG")
    return [TensorMeta(tuple(reshape_shape(shape, target, op=op)))]


@register_shape_rule(OpKind.PERMUTE)
def infer_permute(
    metas: list[ValueMeta], node: Node, ctx: RuleContext
) -> list[ValueMeta]:
    op = node.op_type
    _expect_arity(metas, op, 2)
    shape = _tensor(metas[0], op, "self", "EPERMUTE_ARG")
    axes = _int_list(metas[1], op, "dims", "EPERMUTE_ARG")
    return [TensorMeta(tuple(permute_shape(shape, axes, op=op)))]


def _embedding_weight(metas: list[ValueMeta], op: str) -> list[int]:
    _expect_arity(metas, op, EMBEDDING_BAG_ARITY)
    weight = _tensor(metas[0], op, "weight", "EEMBED_ARG")
    if len(weight) != 2:
        raise InferenceError(
            f"{op}: expected 2D weight, got rank {len(weight)}",
            code="EEMBED_RANK",
            op_type=op,
        )
    return weight


def _offsets_length(meta: ValueMeta, op: str) -> int:
    offsets = _tensor(meta, op, "offsets", "EEMBED_ARG")
    if len(offsets) != 1:
        raise InferenceError(
            f"{op}: expected 1D offsets, got rank {len(offsets)}",
            code="EEMBED_RANK",
            op_type=op,
        )
    return offsets[0]


@register_shape_rule(OpKind.EMBEDDING_BAG, first_output_only=True)
def infer_embedding_bag(
    metas: list[ValueMeta], node: Node, ctx: RuleContext
) -> list[ValueMeta]:
    """Shape of the pooled result; offset2bag and bag_size outputs are not tracked."""
    op = node.op_type
    weight = _embedding_weight(metas, op)
    indices = _tensor(metas[1], op, "indices", "EEMBED_ARG")
    if len(indices) == 1:
        bags = _offsets_length(metas[2], op) - ctx.config.end_offset
    elif len(indices) == 2:
        bags = indices[0]
    else:
        raise InferenceError(
            f"{op}: only 1D and 2D indices are supported, got rank {len(indices)}",
            code="EEMBED_RANK",
            op_type=op,
        )
    return [TensorMeta((bags, weight[1]))]


@register_shape_rule(OpKind.EMBEDDING_BAG_BYTE_ROWWISE_OFFSETS)
def infer_embedding_bag_byte_rowwise_offsets(
    metas: list[ValueMeta], node: Node, ctx: RuleContext
) -> list[ValueMeta]:
    op = node.op_type
    weight = _embedding_weight(metas, op)
    bags = _offsets_length(metas[2], op) - ctx.config.end_offset
    return [TensorMeta((bags, weight[1] - ROWWISE_SCALE_BIAS_BYTES))]
