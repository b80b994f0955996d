from __future__ import annotations

from typing import Any, Protocol

from shapeflow.ir import Graph


class Parser(Protocol):
    """Parser interface for importing models into the Graph IR."""

    def parse(self, source: Any, *, validate: bool = True) -> Graph: ...
