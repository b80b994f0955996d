"""shapeflow: static shape inference for operator graphs."""

from shapeflow.errors import GraphConsistencyError, InferenceError, ValidationError
from shapeflow.infer import EngineConfig, ShapeInferenceEngine, TensorInput, infer_shapes
from shapeflow.ir import Graph, GraphValidator, Node, Value

__version__ = "0.1.0"

__all__ = [
    "Graph",
    "Node",
    "Value",
    "GraphValidator",
    "EngineConfig",
    "ShapeInferenceEngine",
    "TensorInput",
    "infer_shapes",
    "InferenceError",
    "GraphConsistencyError",
    "ValidationError",
]
