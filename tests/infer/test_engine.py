from __future__ import annotations

import logging

import numpy as np
import pytest

from shapeflow import (
    EngineConfig,
    Graph,
    GraphConsistencyError,
    InferenceError,
    Node,
    ShapeInferenceEngine,
    TensorInput,
    ValidationError,
    Value,
    infer_shapes,
)
from shapeflow.ir import IntListMeta, ScalarMeta, TensorMeta


def relu_reshape_graph() -> Graph:
    g = Graph(inputs=["x"], outputs=["y"])
    g.add_value(Value("x"))
    g.add_value(Value("dims", type="int[]"))
    g.add_node(Node("aten::relu", ["x"], ["r"]))
    g.add_node(Node("prim::Constant", [], ["dims"], {"value": [3, 2]}))
    g.add_node(Node("aten::reshape", ["r", "dims"], ["y"]))
    return g


def test_end_to_end_relu_reshape() -> None:
    assert infer_shapes(relu_reshape_graph(), [np.zeros((2, 3))]) == [[3, 2]]


def test_shape_map_is_read_only() -> None:
    engine = ShapeInferenceEngine(relu_reshape_graph(), [TensorInput((2, 3))])
    engine.run()
    assert engine.shape_map["r"] == TensorMeta((2, 3))
    assert engine.shape_map["dims"] == IntListMeta((3, 2))
    with pytest.raises(TypeError):
        engine.shape_map["r"] = TensorMeta((1,))  # type: ignore[index]


def test_bind_inputs_kinds() -> None:
    g = Graph(inputs=["a", "b", "c", "d"], outputs=["a", "b", "c", "d"])
    engine = ShapeInferenceEngine(g, [np.zeros((4, 5)), True, 7, [1, 2, 3]])
    assert engine.run() == [[4, 5], [1], [1], [3, 1]]
    assert engine.shape_map["b"] == ScalarMeta(1)
    assert engine.shape_map["c"] == ScalarMeta(7)
    assert engine.shape_map["d"] == IntListMeta((1, 2, 3))


def test_input_count_mismatch() -> None:
    with pytest.raises(InferenceError) as exc:
        infer_shapes(relu_reshape_graph(), [])
    assert exc.value.code == "EINPUT_COUNT"


def test_unsupported_input_type() -> None:
    with pytest.raises(InferenceError) as exc:
        infer_shapes(relu_reshape_graph(), ["not a tensor"])
    assert exc.value.code == "EINPUT_TYPE"
    with pytest.raises(InferenceError):
        infer_shapes(relu_reshape_graph(), [1.5])


def test_unsupported_operator_aborts_run() -> None:
    g = relu_reshape_graph()
    g.nodes.insert(1, Node("aten::conv2d", ["x"], ["z"]))
    with pytest.raises(InferenceError) as exc:
        infer_shapes(g, [TensorInput((2, 3))])
    assert exc.value.code == "EUNSUPPORTED_OP"


def test_rule_failure_propagates_and_leaves_no_outputs() -> None:
    engine = ShapeInferenceEngine(relu_reshape_graph(), [TensorInput((5, 5))])
    with pytest.raises(InferenceError) as exc:
        engine.run()
    assert exc.value.code == "ERESHAPE_SIZE"
    assert exc.value.op_type == "aten::reshape"
    with pytest.raises(RuntimeError):
        engine.output_shapes


def test_out_of_order_value_is_consistency_violation() -> None:
    g = relu_reshape_graph()
    g.nodes.reverse()
    with pytest.raises(GraphConsistencyError):
        infer_shapes(g, [TensorInput((2, 3))])


def test_unbound_value_is_consistency_violation() -> None:
    g = Graph(inputs=["x"], outputs=["y"])
    g.add_node(Node("aten::add", ["x", "w"], ["y"]))
    with pytest.raises(GraphConsistencyError):
        infer_shapes(g, [TensorInput((2, 3))])


def test_output_never_assigned_is_consistency_violation() -> None:
    g = Graph(inputs=["x"], outputs=["missing"])
    with pytest.raises(GraphConsistencyError):
        infer_shapes(g, [TensorInput((2,))])


def test_value_produced_twice_is_consistency_violation() -> None:
    g = Graph(inputs=["x"], outputs=["y"])
    g.add_node(Node("aten::relu", ["x"], ["y"]))
    g.add_node(Node("aten::tanh", ["x"], ["y"]))
    with pytest.raises(GraphConsistencyError):
        infer_shapes(g, [TensorInput((2,))])


def test_constant_chunk_multiple_outputs() -> None:
    g = Graph(inputs=["x"], outputs=["a", "b", "c"])
    g.add_node(
        Node("prim::ConstantChunk", ["x"], ["a", "b", "c"], {"chunks": 3, "dim": 0})
    )
    assert infer_shapes(g, [TensorInput((10, 2))]) == [[4, 2], [4, 2], [2, 2]]


def test_output_count_mismatch() -> None:
    g = Graph(inputs=["x"], outputs=["a"])
    g.add_node(Node("prim::ConstantChunk", ["x"], ["a"], {"chunks": 2, "dim": 0}))
    with pytest.raises(InferenceError) as exc:
        infer_shapes(g, [TensorInput((10,))])
    assert exc.value.code == "EOUTPUT_COUNT"


def test_embedding_bag_stores_only_first_output() -> None:
    g = Graph(
        inputs=["w", "idx", "off", "f0", "mode", "sparse", "psw", "last"],
        outputs=["ret"],
    )
    g.add_node(
        Node(
            "aten::embedding_bag",
            ["w", "idx", "off", "f0", "mode", "sparse", "psw", "last"],
            ["ret", "offset2bag", "bag_size", "max_indices"],
        )
    )
    inputs = [
        TensorInput((100, 8)),
        TensorInput((40,)),
        TensorInput((11,)),
        False,
        0,
        False,
        np.zeros((40,)),
        True,
    ]
    engine = ShapeInferenceEngine(g, inputs)
    assert engine.run() == [[10, 8]]
    assert "offset2bag" not in engine.shape_map

    engine = ShapeInferenceEngine(g, inputs, EngineConfig(has_end_offset=False))
    assert engine.run() == [[11, 8]]


def test_scalar_arithmetic_feeds_reshape() -> None:
    # view(x, [n * 2, -1]) where n is a runtime int input
    g = Graph(inputs=["x", "n"], outputs=["y"])
    g.add_value(Value("two", type="int"))
    g.add_value(Value("minus_one", type="int"))
    g.add_value(Value("rows", type="int"))
    g.add_value(Value("dims", type="int[]"))
    g.add_node(Node("prim::Constant", [], ["two"], {"value": 2}))
    g.add_node(Node("prim::Constant", [], ["minus_one"], {"value": -1}))
    g.add_node(Node("aten::mul", ["n", "two"], ["rows"]))
    g.add_node(Node("prim::ListConstruct", ["rows", "minus_one"], ["dims"]))
    g.add_node(Node("aten::reshape", ["x", "dims"], ["y"]))
    assert infer_shapes(g, [TensorInput((3, 4, 2)), 3]) == [[6, 4]]


def test_slice_and_permute_pipeline() -> None:
    g = Graph(inputs=["x", "dim", "start", "end", "step", "perm"], outputs=["y"])
    g.add_node(Node("aten::slice", ["x", "dim", "start", "end", "step"], ["s"]))
    g.add_node(Node("aten::permute", ["s", "perm"], ["y"]))
    out = infer_shapes(g, [TensorInput((2, 10, 4)), 1, 2, -1, 3, [2, 0, 1]])
    assert out == [[4, 2, 3]]


def test_none_constant_reports_empty_shape() -> None:
    g = Graph(outputs=["n"])
    g.add_value(Value("n", type="None"))
    g.add_node(Node("prim::Constant", [], ["n"]))
    assert infer_shapes(g, []) == [[]]


def test_validate_graph_option() -> None:
    g = relu_reshape_graph()
    with pytest.raises(ValidationError) as exc:
        infer_shapes(g, [TensorInput((2, 3))], config=EngineConfig(validate_graph=True))
    # 'r' and 'y' are used but never declared
    assert exc.value.code in ("EINPUT_MISSING", "EOUTPUT_MISSING")


def test_format_shape_map() -> None:
    engine = ShapeInferenceEngine(relu_reshape_graph(), [TensorInput((2, 3))])
    engine.run()
    text = engine.format_shape_map().splitlines()
    assert "x:[ 2 3 ]" in text
    assert "dims:[ 2 1 ]" in text


def test_report() -> None:
    engine = ShapeInferenceEngine(relu_reshape_graph(), [TensorInput((2, 3))])
    engine.run()
    report = engine.report()
    assert report["outputs"] == {"y": [3, 2]}
    assert report["values"]["dims"] == {"shape": [2, 1], "int_values": [3, 2]}
    assert "int_values" not in report["values"]["r"]


def test_debug_logging(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.DEBUG, logger="shapeflow"):
        infer_shapes(relu_reshape_graph(), [TensorInput((2, 3))])
    assert any("aten::reshape" in r.getMessage() for r in caplog.records)
