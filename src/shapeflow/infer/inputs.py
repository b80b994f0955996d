from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from shapeflow.errors import InferenceError
from shapeflow.ir.graph import Graph
from shapeflow.ir.meta import IntListMeta, ScalarMeta, TensorMeta, ValueMeta


@dataclass(frozen=True)
class TensorInput:
    """A tensor input known only by its sizes; no payload is allocated."""

    shape: tuple[int, ...]


def _is_int(value: Any) -> bool:
    return isinstance(value, (bool, int, np.bool_, np.integer))


def meta_from_input(value: Any) -> ValueMeta:
    """
    Describe a concrete input:
    tensor -> TensorMeta; bool/int -> ScalarMeta; list of ints -> IntListMeta.
    Anything with a tuple-like ``shape`` (numpy arrays, torch tensors) counts
    as a tensor; 0-d numpy arrays included.
    """
    if isinstance(value, TensorInput):
        return TensorMeta(tuple(int(d) for d in value.shape))
    if _is_int(value):
        return ScalarMeta(int(value))
    if isinstance(value, (list, tuple)) and all(_is_int(v) for v in value):
        return IntListMeta(tuple(int(v) for v in value))
    shape = getattr(value, "shape", None)
    if isinstance(shape, tuple) and not isinstance(value, np.generic):
        return TensorMeta(tuple(int(d) for d in shape))
    raise InferenceError(
        f"Input type {type(value).__name__} is not supported", code="EINPUT_TYPE"
    )


def parse_input_spec(text: str) -> Any:
    """
    Parse a command-line input description:
    ``2x3`` -> TensorInput((2, 3)), ``scalar`` -> TensorInput(()),
    ``int:5`` -> 5, ``bool:true`` -> True, ``ints:3,4`` -> [3, 4].
    """
    text = text.strip()
    try:
        if text.startswith("int:"):
            return int(text[4:])
        if text.startswith("bool:"):
            flag = text[5:].lower()
            if flag not in ("true", "false", "1", "0"):
                raise ValueError(flag)
            return flag in ("true", "1")
        if text.startswith("ints:"):
            body = text[5:]
            return [int(v) for v in body.split(",")] if body else []
        if text == "scalar":
            return TensorInput(())
        return TensorInput(tuple(int(d) for d in text.lower().split("x")))
    except ValueError:
        raise InferenceError(
            f"Cannot parse input description '{text}'", code="EINPUT_TYPE"
        ) from None


def declared_inputs(graph: Graph) -> list[Any]:
    """Tensor placeholders built from the shapes declared on the graph inputs."""
    out: list[Any] = []
    for name in graph.inputs:
        value = graph.get_value(name)
        if value is None or not value.is_tensor or value.shape is None:
            raise InferenceError(
                f"Graph input '{name}' has no declared tensor shape; pass it explicitly",
                code="EINPUT_TYPE",
            )
        out.append(TensorInput(tuple(value.shape)))
    return out
