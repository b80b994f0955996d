"""Model parsers producing the Graph IR, looked up by file suffix."""

from __future__ import annotations

import os
from pathlib import Path

from shapeflow.errors import ValidationError
from shapeflow.ir import Graph
from shapeflow.plugins import global_registry

from .base import Parser
from .json_graph import JsonGraphParser
from .onnx import OnnxParser

global_registry.register("parser", ".json", JsonGraphParser)
global_registry.register("parser", ".onnx", OnnxParser)


def load_graph(path: str | os.PathLike[str], *, validate: bool = True) -> Graph:
    """Parse a model file with the parser registered for its suffix."""
    suffix = Path(path).suffix.lower()
    if global_registry.get("parser", suffix) is None:
        known = ", ".join(global_registry.names("parser"))
        raise ValidationError(
            f"No parser for '{suffix}' files (known: {known})", code="EFORMAT"
        )
    parser: Parser = global_registry.create("parser", suffix)
    return parser.parse(os.fspath(path), validate=validate)


__all__ = ["Parser", "JsonGraphParser", "OnnxParser", "load_graph"]
