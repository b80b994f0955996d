from __future__ import annotations


class ValidationError(Exception):
    """Graph validation error with optional code and context."""

    def __init__(
        self, message: str, code: str = "EVALID", node_index: int | None = None
    ) -> None:
        super().__init__(message)
        self.code = code
        self.node_index = node_index


class InferenceError(Exception):
    """A shape rule rejected its inputs. Carries the offending operator tag."""

    def __init__(
        self, message: str, code: str = "EINFER", op_type: str | None = None
    ) -> None:
        super().__init__(message)
        self.code = code
        self.op_type = op_type


class GraphConsistencyError(AssertionError):
    """The graph handed to the engine broke its ordering contract.

    Raised when a node consumes a value that has not been produced yet, when
    a value is produced twice, or when a declared output never receives
    metadata. These are precondition breaches, not input problems.
    """
