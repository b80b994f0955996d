from __future__ import annotations

from collections.abc import Mapping, Sequence
from types import MappingProxyType
from typing import Any

from shapeflow.errors import GraphConsistencyError, InferenceError
from shapeflow.infer.config import EngineConfig
from shapeflow.infer.inputs import meta_from_input
from shapeflow.infer.rules import RuleContext, get_rule
from shapeflow.ir.graph import Graph, GraphValidator, Node
from shapeflow.ir.meta import ValueMeta, describe
from shapeflow.utils import get_logger

logger = get_logger(__name__)


class ShapeInferenceEngine:
    """
    Walk a graph once, in the given node order, computing a ValueMeta for
    every value from the concrete inputs bound to the graph inputs.

    Nodes must already be in dependency order; the engine never reorders.
    """

    def __init__(
        self,
        graph: Graph,
        inputs: Sequence[Any],
        config: EngineConfig | None = None,
    ) -> None:
        self.graph = graph
        self.inputs = list(inputs)
        self.config = config or EngineConfig()
        self._metas: dict[str, ValueMeta] = {}
        self._output_shapes: list[list[int]] | None = None

    @property
    def shape_map(self) -> Mapping[str, ValueMeta]:
        return MappingProxyType(self._metas)

    @property
    def output_shapes(self) -> list[list[int]]:
        if self._output_shapes is None:
            raise RuntimeError("run() has not completed")
        return [list(s) for s in self._output_shapes]

    def _store(self, name: str, meta: ValueMeta) -> None:
        if name in self._metas:
            raise GraphConsistencyError(f"Value '{name}' is assigned more than once")
        self._metas[name] = meta

    def _lookup(self, name: str, node: Node) -> ValueMeta:
        meta = self._metas.get(name)
        if meta is None:
            raise GraphConsistencyError(
                f"{node.op_type} consumes '{name}' before it is produced"
            )
        return meta

    def bind_inputs(self) -> None:
        if len(self.inputs) != len(self.graph.inputs):
            raise InferenceError(
                f"Number of inputs mismatch between graph ({len(self.graph.inputs)}) "
                f"and actual inputs ({len(self.inputs)})",
                code="EINPUT_COUNT",
            )
        for name, value in zip(self.graph.inputs, self.inputs):
            meta = meta_from_input(value)
            logger.debug("bind %s = %s", name, describe(meta))
            self._store(name, meta)

    def infer_node(self, node: Node) -> None:
        rule = get_rule(node.op_type)
        metas = [self._lookup(name, node) for name in node.inputs]
        ctx = RuleContext(
            config=self.config,
            output_types=tuple(self.graph.value_type(o) for o in node.outputs),
        )
        results = rule.fn(metas, node, ctx)
        if rule.first_output_only:
            outputs = node.outputs[:1]
        else:
            outputs = node.outputs
        if len(results) != len(outputs):
            raise InferenceError(
                f"{node.op_type}: produced {len(results)} results for "
                f"{len(outputs)} declared outputs",
                code="EOUTPUT_COUNT",
                op_type=node.op_type,
            )
        for name, meta in zip(outputs, results):
            logger.debug("%s -> %s = %s", node.op_type, name, describe(meta))
            self._store(name, meta)

    def run(self) -> list[list[int]]:
        if self.config.validate_graph:
            GraphValidator(self.graph).validate()
        self._metas = {}
        self._output_shapes = None
        self.bind_inputs()
        for node in self.graph.nodes:
            self.infer_node(node)

        shapes: list[list[int]] = []
        for name in self.graph.outputs:
            meta = self._metas.get(name)
            if meta is None:
                raise GraphConsistencyError(f"Graph output '{name}' has no shape")
            shapes.append(meta.shape)
        self._output_shapes = shapes
        logger.info(
            "inferred %d values over %d nodes", len(self._metas), len(self.graph.nodes)
        )
        return self.output_shapes

    def report(self) -> dict[str, Any]:
        """JSON-ready summary: output shapes by name plus every value's metadata."""
        values: dict[str, Any] = {}
        for name, meta in self._metas.items():
            entry: dict[str, Any] = {"shape": meta.shape}
            if meta.int_values is not None:
                entry["int_values"] = meta.int_values
            values[name] = entry
        return {
            "outputs": dict(zip(self.graph.outputs, self.output_shapes)),
            "values": values,
        }

    def format_shape_map(self) -> str:
        lines = []
        for name, meta in self._metas.items():
            dims = " ".join(str(d) for d in meta.shape)
            lines.append(f"{name}:[ {dims} ]" if dims else f"{name}:[ ]")
        return "\n".join(lines)


def infer_shapes(
    graph: Graph, inputs: Sequence[Any], *, config: EngineConfig | None = None
) -> list[list[int]]:
    """Run shape inference and return one shape per graph output."""
    return ShapeInferenceEngine(graph, inputs, config).run()
