from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from shapeflow.errors import InferenceError, ValidationError


@dataclass
class Value:
    name: str
    type: str = "Tensor"
    shape: list[int] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_tensor(self) -> bool:
        return self.type == "Tensor"


@dataclass
class Node:
    op_type: str
    inputs: list[str] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)
    attributes: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    def _attr(self, name: str) -> Any:
        if name not in self.attributes:
            raise InferenceError(
                f"{self.op_type} is missing attribute '{name}'",
                code="EATTR",
                op_type=self.op_type,
            )
        return self.attributes[name]

    def i(self, name: str) -> int:
        """Integer (or boolean) attribute."""
        val = self._attr(name)
        if isinstance(val, (bool, np.bool_)):
            return int(val)
        if isinstance(val, (int, np.integer)):
            return int(val)
        raise InferenceError(
            f"{self.op_type} attribute '{name}' must be int, got {type(val).__name__}",
            code="EATTR",
            op_type=self.op_type,
        )

    def ints(self, name: str) -> list[int]:
        val = self._attr(name)
        if not isinstance(val, (list, tuple)) or not all(
            isinstance(v, (int, np.integer)) for v in val
        ):
            raise InferenceError(
                f"{self.op_type} attribute '{name}' must be list[int]",
                code="EATTR",
                op_type=self.op_type,
            )
        return [int(v) for v in val]

    def t(self, name: str) -> np.ndarray:
        """Tensor attribute as a numpy array."""
        val = self._attr(name)
        if isinstance(val, np.ndarray):
            return val
        if hasattr(val, "shape"):
            # torch tensors and other array-likes only need to expose their sizes
            return np.broadcast_to(np.zeros((), dtype=np.uint8), tuple(val.shape))
        raise InferenceError(
            f"{self.op_type} attribute '{name}' must be a tensor",
            code="EATTR",
            op_type=self.op_type,
        )


@dataclass
class Graph:
    nodes: list[Node] = field(default_factory=list)
    values: dict[str, Value] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    inputs: list[str] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)

    def add_node(self, node: Node) -> None:
        self.nodes.append(node)

    def add_value(self, value: Value) -> None:
        self.values[value.name] = value

    def get_value(self, name: str) -> Value | None:
        return self.values.get(name)

    def value_type(self, name: str) -> str:
        # Undeclared values are tensors, matching the parsers' defaults
        value = self.values.get(name)
        return value.type if value is not None else "Tensor"


class GraphValidator:
    """Validates basic graph invariants and provides a toposort."""

    def __init__(self, graph: Graph) -> None:
        self.graph = graph

    def validate(self) -> None:
        producer_map = self._build_producer_map()
        self._validate_node_io_exist()
        self._validate_inputs_outputs_exist()
        self._validate_inputs_not_produced(producer_map)
        self._topological_order(producer_map)  # raises on cycles

    def _build_producer_map(self) -> dict[str, int]:
        """Map value name -> producing node index. Graph inputs have no producer."""
        producer: dict[str, int] = {}
        for idx, node in enumerate(self.graph.nodes):
            for out in node.outputs:
                if out in producer:
                    raise ValidationError(
                        f"Multiple producers for value '{out}' at node {idx} and {producer[out]}",
                        code="EDUP_PRODUCER",
                        node_index=idx,
                    )
                producer[out] = idx
        return producer

    def _validate_node_io_exist(self) -> None:
        for idx, node in enumerate(self.graph.nodes):
            for name in node.inputs:
                if name not in self.graph.values:
                    raise ValidationError(
                        f"Node {idx} input '{name}' not declared",
                        code="EINPUT_MISSING",
                        node_index=idx,
                    )
            for name in node.outputs:
                if name not in self.graph.values:
                    raise ValidationError(
                        f"Node {idx} output '{name}' not declared",
                        code="EOUTPUT_MISSING",
                        node_index=idx,
                    )

    def _validate_inputs_outputs_exist(self) -> None:
        for name in self.graph.inputs:
            if name not in self.graph.values:
                raise ValidationError(
                    f"Graph input '{name}' not declared", code="EGRAPH_INPUT"
                )
        for name in self.graph.outputs:
            if name not in self.graph.values:
                raise ValidationError(
                    f"Graph output '{name}' not declared", code="EGRAPH_OUTPUT"
                )

    def _validate_inputs_not_produced(self, producer_map: dict[str, int]) -> None:
        for name in self.graph.inputs:
            if name in producer_map:
                raise ValidationError(
                    f"Graph input '{name}' is also produced by node {producer_map[name]}",
                    code="EDUP_PRODUCER",
                    node_index=producer_map[name],
                )

    def _topological_order(
        self, producer_map: dict[str, int] | None = None
    ) -> list[int]:
        """
        Return topological order of node indices. Raise ValidationError on cycles.
        Ties keep the original node order.
        """
        if producer_map is None:
            producer_map = self._build_producer_map()

        indegree: list[int] = [0] * len(self.graph.nodes)
        adj: dict[int, set[int]] = {i: set() for i in range(len(self.graph.nodes))}

        # Build edges: u -> v if v consumes a value produced by u
        for v_idx, node in enumerate(self.graph.nodes):
            for inp in node.inputs:
                u_idx = producer_map.get(inp)
                if u_idx is not None:
                    if v_idx not in adj[u_idx]:
                        adj[u_idx].add(v_idx)
                        indegree[v_idx] += 1

        # Kahn's algorithm
        queue: list[int] = [i for i, d in enumerate(indegree) if d == 0]
        order: list[int] = []
        while queue:
            u = queue.pop(0)
            order.append(u)
            for v in sorted(adj[u]):
                indegree[v] -= 1
                if indegree[v] == 0:
                    queue.append(v)
            adj[u].clear()

        if len(order) != len(self.graph.nodes):
            raise ValidationError("Cycle detected in graph", code="ECYCLE")
        return order

    def toposort(self) -> list[Node]:
        order = self._topological_order()
        return [self.graph.nodes[i] for i in order]
