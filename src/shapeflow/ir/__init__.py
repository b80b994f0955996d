"""Graph IR data structures and value metadata."""

from shapeflow.errors import ValidationError

from .graph import Graph, GraphValidator, Node, Value
from .meta import IntListMeta, NoneMeta, ScalarMeta, TensorMeta, ValueMeta, describe

__all__ = [
    "Graph",
    "Node",
    "Value",
    "GraphValidator",
    "ValidationError",
    "TensorMeta",
    "ScalarMeta",
    "IntListMeta",
    "NoneMeta",
    "ValueMeta",
    "describe",
]
