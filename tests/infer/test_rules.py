from __future__ import annotations

import numpy as np
import pytest

from shapeflow.errors import InferenceError
from shapeflow.infer import EngineConfig, OpKind, RuleContext, get_rule, rules
from shapeflow.ir import IntListMeta, Node, NoneMeta, ScalarMeta, TensorMeta, ValueMeta


def t(*dims: int) -> TensorMeta:
    return TensorMeta(tuple(dims))


def apply(
    op: str,
    metas: list[ValueMeta],
    attributes: dict | None = None,
    output_types: tuple[str, ...] = ("Tensor",),
    config: EngineConfig | None = None,
) -> list[ValueMeta]:
    node = Node(op, attributes=attributes or {})
    ctx = RuleContext(config=config or EngineConfig(), output_types=output_types)
    return get_rule(op).fn(metas, node, ctx)


def test_unknown_operator() -> None:
    with pytest.raises(InferenceError) as exc:
        get_rule("aten::conv2d")
    assert exc.value.code == "EUNSUPPORTED_OP"
    assert "aten::conv2d" in str(exc.value)


def test_operator_without_rule(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delitem(rules._REGISTRY, OpKind.TANH)
    with pytest.raises(InferenceError) as exc:
        get_rule("aten::tanh")
    assert exc.value.code == "EUNSUPPORTED_OP"


@pytest.mark.parametrize("op", ["aten::relu", "aten::tanh", "aten::sigmoid"])
def test_unary_passthrough(op: str) -> None:
    assert apply(op, [t(7, 8)]) == [t(7, 8)]


def test_unary_arity() -> None:
    with pytest.raises(InferenceError) as exc:
        apply("aten::relu", [t(1), t(2)])
    assert exc.value.code == "EARITY"


def test_binary_broadcast_with_alpha() -> None:
    assert apply("aten::add", [t(2, 1, 4), t(3, 4), ScalarMeta(1)]) == [t(2, 3, 4)]


def test_binary_scalar_other_keeps_self() -> None:
    assert apply("aten::mul", [t(2, 3), ScalarMeta(4)]) == [t(2, 3)]


def test_binary_scalar_self_takes_other() -> None:
    assert apply("aten::sub", [ScalarMeta(1), t(2, 3)]) == [t(2, 3)]


@pytest.mark.parametrize(
    "op,a,b,expected",
    [
        ("aten::add", 2, 3, 5),
        ("aten::sub", 2, 3, -1),
        ("aten::mul", 4, 3, 12),
        ("aten::pow", 2, 10, 1024),
    ],
)
def test_binary_folds_scalars(op: str, a: int, b: int, expected: int) -> None:
    assert apply(op, [ScalarMeta(a), ScalarMeta(b)], output_types=("int",)) == [
        ScalarMeta(expected)
    ]


def test_binary_rejects_lists_and_none() -> None:
    with pytest.raises(InferenceError) as exc:
        apply("aten::add", [t(2), IntListMeta((1, 2))])
    assert exc.value.code == "EBINARY_ARG"
    with pytest.raises(InferenceError):
        apply("aten::add", [NoneMeta(), t(2)])
    with pytest.raises(InferenceError):
        apply("aten::pow", [ScalarMeta(2), ScalarMeta(-1)])


def test_binary_arity() -> None:
    with pytest.raises(InferenceError) as exc:
        apply("aten::add", [t(2)])
    assert exc.value.code == "EARITY"


def test_mm_and_bmm() -> None:
    assert apply("aten::mm", [t(2, 3), t(3, 4)]) == [t(2, 4)]
    assert apply("aten::bmm", [t(5, 2, 3), t(5, 3, 4)]) == [t(5, 2, 4)]
    with pytest.raises(InferenceError) as exc:
        apply("aten::mm", [ScalarMeta(1), t(3, 4)])
    assert exc.value.code == "EMM_RANK"


def test_addmm_broadcasts_bias() -> None:
    out = apply("aten::addmm", [t(4), t(2, 3), t(3, 4), ScalarMeta(1), ScalarMeta(1)])
    assert out == [t(2, 4)]


def test_addmm_scalar_mat2_uses_mat1() -> None:
    assert apply("aten::addmm", [t(1, 3), t(2, 3), ScalarMeta(1)]) == [t(2, 3)]


def test_addmm_arity() -> None:
    with pytest.raises(InferenceError) as exc:
        apply("aten::addmm", [t(4), t(2, 3)])
    assert exc.value.code == "EARITY"


def test_constant_chunk() -> None:
    out = apply(
        "prim::ConstantChunk",
        [t(10, 2)],
        attributes={"chunks": 3, "dim": 0},
        output_types=("Tensor",) * 3,
    )
    assert out == [t(4, 2), t(4, 2), t(2, 2)]


def test_constant_chunk_missing_attribute() -> None:
    with pytest.raises(InferenceError) as exc:
        apply("prim::ConstantChunk", [t(10)], attributes={"chunks": 2})
    assert exc.value.code == "EATTR"


def test_fused_concat() -> None:
    assert apply("prim::FusedConcat", [t(1, 2, 3), t(1, 5, 3)], {"dim": 1}) == [t(1, 7, 3)]
    assert apply("prim::FusedConcat", [t(1, 2)], {"dim": 0}) == [t(1, 2)]


def test_fused_stack() -> None:
    out = apply("glow::fused_stack", [t(5, 6), t(5, 6), t(5, 6)], {"dim": 1})
    assert out == [t(5, 3, 6)]


def test_list_construct() -> None:
    out = apply(
        "prim::ListConstruct",
        [ScalarMeta(3), ScalarMeta(-1)],
        output_types=("int[]",),
    )
    assert out == [IntListMeta((3, -1))]
    assert out[0].shape == [2, 1]


def test_list_construct_rejects_tensor() -> None:
    with pytest.raises(InferenceError) as exc:
        apply("prim::ListConstruct", [ScalarMeta(3), t(2, 2)])
    assert exc.value.code == "ELIST_ARG"


def test_slice() -> None:
    metas: list[ValueMeta] = [
        t(10, 4),
        ScalarMeta(0),
        ScalarMeta(-12),
        ScalarMeta(100),
        ScalarMeta(1),
    ]
    assert apply("aten::slice", metas) == [t(10, 4)]
    metas[2] = ScalarMeta(6)
    metas[3] = ScalarMeta(2)
    assert apply("aten::slice", metas) == [t(0, 4)]


def test_slice_requires_scalar_arguments() -> None:
    metas: list[ValueMeta] = [t(10), t(1), ScalarMeta(0), ScalarMeta(5), ScalarMeta(1)]
    with pytest.raises(InferenceError) as exc:
        apply("aten::slice", metas)
    assert exc.value.code == "ESLICE_ARG"


def test_reshape_and_permute() -> None:
    assert apply("aten::reshape", [t(2, 3, 4), IntListMeta((-1, 4))]) == [t(6, 4)]
    assert apply("aten::permute", [t(2, 3, 4), IntListMeta((2, 0, 1))]) == [t(4, 2, 3)]


def test_reshape_needs_list() -> None:
    with pytest.raises(InferenceError) as exc:
        apply("aten::reshape", [t(2, 3), ScalarMeta(6)])
    assert exc.value.code == "ERESHAPE_ARG"


def _bag_args(weight: TensorMeta, indices: TensorMeta, offsets: TensorMeta) -> list[ValueMeta]:
    return [
        weight,
        indices,
        offsets,
        ScalarMeta(0),
        ScalarMeta(0),
        ScalarMeta(0),
        NoneMeta(),
        ScalarMeta(1),
    ]


def test_embedding_bag_1d_indices() -> None:
    args = _bag_args(t(100, 16), t(30), t(5))
    assert apply("aten::embedding_bag", args) == [t(4, 16)]
    no_sentinel = EngineConfig(has_end_offset=False)
    assert apply("aten::embedding_bag", args, config=no_sentinel) == [t(5, 16)]


def test_embedding_bag_2d_indices() -> None:
    args = _bag_args(t(100, 16), t(7, 3), t(7))
    assert apply("aten::embedding_bag", args) == [t(7, 16)]


def test_embedding_bag_errors() -> None:
    with pytest.raises(InferenceError) as exc:
        apply("aten::embedding_bag", _bag_args(t(100, 16), t(2, 3, 4), t(3)))
    assert exc.value.code == "EEMBED_RANK"
    with pytest.raises(InferenceError) as exc:
        apply("aten::embedding_bag", _bag_args(t(100, 16), t(30), t(5))[:7])
    assert exc.value.code == "EARITY"


def test_embedding_bag_rule_stores_first_output_only() -> None:
    assert get_rule(OpKind.EMBEDDING_BAG.value).first_output_only
    assert not get_rule(OpKind.EMBEDDING_BAG_BYTE_ROWWISE_OFFSETS.value).first_output_only


def test_rowwise_quantized_embedding_bag() -> None:
    args = _bag_args(t(100, 24), t(30), t(5))
    assert apply("fb::embedding_bag_byte_rowwise_offsets", args) == [t(4, 16)]


@pytest.mark.parametrize(
    "out_type,attrs,expected",
    [
        ("float", {"value": 0.5}, ScalarMeta(1)),
        ("int", {"value": 7}, ScalarMeta(7)),
        ("bool", {"value": True}, ScalarMeta(1)),
        ("None", {}, NoneMeta()),
        ("Tensor", {"value": np.zeros((2, 5))}, TensorMeta((2, 5))),
        ("int[]", {"value": [1, 0]}, IntListMeta((1, 0))),
        ("str", {"value": "cpu"}, NoneMeta()),
    ],
)
def test_constant(out_type: str, attrs: dict, expected: ValueMeta) -> None:
    assert apply("prim::Constant", [], attrs, output_types=(out_type,)) == [expected]


def test_constant_int_requires_int_attribute() -> None:
    with pytest.raises(InferenceError) as exc:
        apply("prim::Constant", [], {"value": "x"}, output_types=("int",))
    assert exc.value.code == "EATTR"
