from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import numpy as np

from shapeflow.errors import ValidationError
from shapeflow.ir import Graph, GraphValidator, Node, Value


def _parse_attribute(value: Any) -> Any:
    # {"tensor": {"shape": [...]}} describes a tensor attribute by its sizes
    if isinstance(value, dict) and "tensor" in value:
        spec = value["tensor"]
        if not isinstance(spec, dict) or not isinstance(spec.get("shape"), list):
            raise ValidationError(
                "Tensor attribute needs a 'shape' list", code="EPARSE"
            )
        # only the sizes matter, so broadcast a single zero instead of allocating
        zero = np.zeros((), dtype=spec.get("dtype", "float32"))
        return np.broadcast_to(zero, tuple(spec["shape"]))
    return value


class JsonGraphParser:
    """Parse a JSON graph document into a Graph.

    Nodes are kept in document order; values not listed under ``values``
    default to tensors.
    """

    def parse(self, source: Any, *, validate: bool = True) -> Graph:
        doc = self._load(source)
        if not isinstance(doc, dict):
            raise ValidationError("Graph document must be an object", code="EPARSE")
        g = Graph(metadata=dict(doc.get("metadata", {})))

        for name, spec in doc.get("values", {}).items():
            spec = spec or {}
            g.add_value(
                Value(
                    name=name,
                    type=spec.get("type", "Tensor"),
                    shape=spec.get("shape"),
                )
            )

        for idx, raw in enumerate(doc.get("nodes", [])):
            if "op" not in raw:
                raise ValidationError(
                    f"Node {idx} is missing 'op'", code="EPARSE", node_index=idx
                )
            node = Node(
                op_type=raw["op"],
                inputs=list(raw.get("inputs", [])),
                outputs=list(raw.get("outputs", [])),
                attributes={
                    k: _parse_attribute(v)
                    for k, v in raw.get("attributes", {}).items()
                },
            )
            g.add_node(node)
            for name in node.inputs + node.outputs:
                if name not in g.values:
                    g.add_value(Value(name=name))

        g.inputs = list(doc.get("inputs", []))
        g.outputs = list(doc.get("outputs", []))
        for name in g.inputs + g.outputs:
            if name not in g.values:
                g.add_value(Value(name=name))

        if validate:
            GraphValidator(g).validate()
        return g

    def _load(self, source: Any) -> Any:
        if isinstance(source, dict):
            return source
        try:
            if isinstance(source, Path):
                return json.loads(source.read_text())
            if isinstance(source, str):
                if source.lstrip().startswith("{"):
                    return json.loads(source)
                return json.loads(Path(source).read_text())
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Invalid graph JSON: {exc}", code="EPARSE") from exc
        raise TypeError("Unsupported source type for JSON graph parser")
