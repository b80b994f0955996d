from __future__ import annotations

from enum import Enum

from shapeflow.errors import InferenceError


class OpKind(str, Enum):
    CONSTANT = "prim::Constant"
    LIST_CONSTRUCT = "prim::ListConstruct"
    CONSTANT_CHUNK = "prim::ConstantChunk"
    FUSED_CONCAT = "prim::FusedConcat"
    FUSED_STACK = "glow::fused_stack"

    TANH = "aten::tanh"
    RELU = "aten::relu"
    SIGMOID = "aten::sigmoid"

    ADD = "aten::add"
    SUB = "aten::sub"
    MUL = "aten::mul"
    POW = "aten::pow"

    MM = "aten::mm"
    BMM = "aten::bmm"
    ADDMM = "aten::addmm"

    SLICE = "aten::slice"
    RESHAPE = "aten::reshape"
    PERMUTE = "aten::permute"

    EMBEDDING_BAG = "aten::embedding_bag"
    EMBEDDING_BAG_BYTE_ROWWISE_OFFSETS = "fb::embedding_bag_byte_rowwise_offsets"

    @classmethod
    def from_tag(cls, tag: str) -> OpKind:
        try:
            return cls(tag)
        except ValueError:
            raise InferenceError(
                f"Node's operator {tag} is not supported",
                code="EUNSUPPORTED_OP",
                op_type=tag,
            ) from None


# Operator contract of embedding_bag and its quantized variant:
# (weight, indices, offsets, scale_grad_by_freq, mode, sparse,
#  per_sample_weights, include_last_offset)
EMBEDDING_BAG_ARITY = 8

# Each row of a byte row-wise quantized table ends with a 4-byte scale and a
# 4-byte zero offset.
ROWWISE_SCALE_BIAS_BYTES = 8
