from __future__ import annotations

import os
from typing import Any

import numpy as np
import onnx
from onnx import numpy_helper

from shapeflow.errors import ValidationError
from shapeflow.infer.ops import OpKind
from shapeflow.ir import Graph, GraphValidator, Node, Value

_UNARY = {
    "Relu": OpKind.RELU,
    "Tanh": OpKind.TANH,
    "Sigmoid": OpKind.SIGMOID,
}

_BINARY = {
    "Add": OpKind.ADD,
    "Sub": OpKind.SUB,
    "Mul": OpKind.MUL,
    "Pow": OpKind.POW,
}


def _shape_from_value_info(vi: onnx.ValueInfoProto) -> list[int] | None:
    if not vi.type.HasField("tensor_type"):
        return None
    t = vi.type.tensor_type
    if not t.HasField("shape"):
        return None
    out: list[int] = []
    for d in t.shape.dim:
        if d.HasField("dim_value"):
            out.append(int(d.dim_value))
        else:
            # symbolic dim -> use 1 as placeholder
            out.append(1)
    return out


def _parse_attributes(node: onnx.NodeProto) -> dict[str, Any]:
    attrs: dict[str, Any] = {}
    for a in node.attribute:
        if a.type == onnx.AttributeProto.INT:
            attrs[a.name] = int(a.i)
        elif a.type == onnx.AttributeProto.FLOAT:
            attrs[a.name] = float(a.f)
        elif a.type == onnx.AttributeProto.STRING:
            attrs[a.name] = a.s.decode("utf-8", errors="ignore")
        elif a.type == onnx.AttributeProto.INTS:
            attrs[a.name] = [int(x) for x in a.ints]
        elif a.type == onnx.AttributeProto.FLOATS:
            attrs[a.name] = [float(x) for x in a.floats]
        elif a.type == onnx.AttributeProto.TENSOR:
            attrs[a.name] = numpy_helper.to_array(a.t)
        else:
            # graphs, sparse tensors etc. are not needed for shapes
            continue
    return attrs


class OnnxParser:
    """Parse an ONNX model into a Graph of the engine's operators.

    Initializers become ``prim::Constant`` nodes. Reshape shape operands, from
    initializers or ``Constant`` nodes, become ``int[]`` constants; ``0``
    entries are resolved against the declared input shape at parse time. Ops
    without a mapping keep their ONNX op_type, so inference reports them as
    unsupported.
    """

    def parse(self, model_or_path: Any, *, validate: bool = True) -> Graph:
        model = self._load_model(model_or_path)
        g = Graph(metadata={"producer": model.producer_name})

        initializers = {
            init.name: numpy_helper.to_array(init) for init in model.graph.initializer
        }
        shape_operands = {
            n.input[1]
            for n in model.graph.node
            if n.op_type == "Reshape" and len(n.input) >= 2
        }
        # int[] payloads of Reshape shape operands, by value name
        shape_values: dict[str, list[int]] = {}
        for name, arr in initializers.items():
            if name in shape_operands:
                shape_values[name] = [int(v) for v in arr.reshape(-1)]
                self._add_constant(g, name, "int[]", shape_values[name])
            else:
                self._add_constant(g, name, "Tensor", arr)

        for inp in model.graph.input:
            if inp.name in initializers:
                continue
            g.add_value(Value(name=inp.name, shape=_shape_from_value_info(inp)))
            g.inputs.append(inp.name)

        for vi in list(model.graph.value_info) + list(model.graph.output):
            if vi.name not in g.values:
                g.add_value(Value(name=vi.name, shape=_shape_from_value_info(vi)))
        g.outputs = [out.name for out in model.graph.output]

        for index, n in enumerate(model.graph.node):
            self._convert_node(g, n, index, shape_operands, shape_values)

        if validate:
            GraphValidator(g).validate()
        return g

    def _add_constant(self, g: Graph, name: str, value_type: str, value: Any) -> None:
        shape = list(value.shape) if isinstance(value, np.ndarray) else None
        g.add_value(Value(name=name, type=value_type, shape=shape))
        g.add_node(
            Node(
                op_type=OpKind.CONSTANT.value,
                outputs=[name],
                attributes={"value": value},
            )
        )

    def _emit(
        self, g: Graph, op_type: str, inputs: list[str], outputs: list[str],
        attributes: dict[str, Any] | None = None,
    ) -> None:
        for name in outputs:
            if name not in g.values:
                g.add_value(Value(name=name))
        g.add_node(
            Node(
                op_type=op_type,
                inputs=inputs,
                outputs=outputs,
                attributes=attributes or {},
            )
        )

    def _convert_node(
        self,
        g: Graph,
        n: onnx.NodeProto,
        index: int,
        shape_operands: set[str],
        shape_values: dict[str, list[int]],
    ) -> None:
        attrs = _parse_attributes(n)
        inputs = [name for name in n.input if name]
        outputs = list(n.output)
        op = n.op_type

        if op in _UNARY:
            self._emit(g, _UNARY[op].value, inputs, outputs)
        elif op in _BINARY:
            self._emit(g, _BINARY[op].value, inputs, outputs)
        elif op == "MatMul":
            self._emit(g, OpKind.MM.value, inputs, outputs)
        elif op == "Gemm" and not attrs.get("transA") and not attrs.get("transB"):
            if len(inputs) == 2:
                self._emit(g, OpKind.MM.value, inputs, outputs)
            else:
                a, b, c = inputs[:3]
                self._emit(g, OpKind.ADDMM.value, [c, a, b], outputs)
        elif op == "Concat":
            self._emit(
                g, OpKind.FUSED_CONCAT.value, inputs, outputs,
                {"dim": attrs.get("axis", 0)},
            )
        elif op == "Transpose" and "perm" in attrs:
            perm_name = f"{outputs[0]}__perm"
            self._add_constant(g, perm_name, "int[]", attrs["perm"])
            self._emit(g, OpKind.PERMUTE.value, [inputs[0], perm_name], outputs)
        elif op == "Reshape" and len(inputs) == 2 and inputs[1] in shape_values:
            target = shape_values[inputs[1]]
            if 0 in target and not attrs.get("allowzero", 0):
                target = self._copy_zero_dims(g, n, index, inputs[0], target)
                shape_name = f"{outputs[0]}__shape"
                self._add_constant(g, shape_name, "int[]", target)
                inputs = [inputs[0], shape_name]
            self._emit(g, OpKind.RESHAPE.value, inputs, outputs)
        elif op == "Split" and len(inputs) == 1 and "split" not in attrs:
            self._emit(
                g, OpKind.CONSTANT_CHUNK.value, inputs, outputs,
                {"chunks": len(outputs), "dim": attrs.get("axis", 0)},
            )
        elif op == "Constant" and "value" in attrs:
            if outputs[0] in shape_operands:
                shape_values[outputs[0]] = [int(v) for v in attrs["value"].reshape(-1)]
                self._add_constant(g, outputs[0], "int[]", shape_values[outputs[0]])
            else:
                self._add_constant(g, outputs[0], "Tensor", attrs["value"])
        else:
            self._emit(g, op, inputs, outputs, attrs)

    def _copy_zero_dims(
        self, g: Graph, n: onnx.NodeProto, index: int, data: str, target: list[int]
    ) -> list[int]:
        """Resolve ONNX Reshape ``0`` entries, which copy the input dim at that position."""
        value = g.get_value(data)
        shape = value.shape if value is not None else None
        zeros = [i for i, d in enumerate(target) if d == 0]
        if shape is None or zeros[-1] >= len(shape):
            raise ValidationError(
                f"Reshape '{n.name or n.output[0]}': shape {target} copies input dims "
                f"but the shape of '{data}' is not declared",
                code="ERESHAPE_ZERO",
                node_index=index,
            )
        return [int(shape[i]) if d == 0 else d for i, d in enumerate(target)]

    def _load_model(self, model_or_path: Any) -> onnx.ModelProto:
        if isinstance(model_or_path, onnx.ModelProto):
            return model_or_path
        if isinstance(model_or_path, (bytes, bytearray)):
            return onnx.load_model_from_string(bytes(model_or_path))
        if isinstance(model_or_path, (str, os.PathLike)):
            return onnx.load(os.fspath(model_or_path))
        raise TypeError("Unsupported model type for ONNX parser")
