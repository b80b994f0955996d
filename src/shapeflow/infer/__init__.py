"""Static shape/value inference over operator graphs."""

from shapeflow.errors import GraphConsistencyError, InferenceError

from .config import EngineConfig
from .engine import ShapeInferenceEngine, infer_shapes
from .inputs import TensorInput, declared_inputs, meta_from_input, parse_input_spec
from .ops import EMBEDDING_BAG_ARITY, ROWWISE_SCALE_BIAS_BYTES, OpKind
from .rules import RuleContext, ShapeRule, get_rule, register_shape_rule

__all__ = [
    "EngineConfig",
    "ShapeInferenceEngine",
    "infer_shapes",
    "TensorInput",
    "meta_from_input",
    "parse_input_spec",
    "declared_inputs",
    "OpKind",
    "EMBEDDING_BAG_ARITY",
    "ROWWISE_SCALE_BIAS_BYTES",
    "RuleContext",
    "ShapeRule",
    "get_rule",
    "register_shape_rule",
    "InferenceError",
    "GraphConsistencyError",
]
