from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class EngineConfig:
    """Options fixed for a whole inference run.

    ``has_end_offset``: embedding-bag offsets carry a trailing sentinel entry,
    so the bag count is ``len(offsets) - 1``.
    ``validate_graph``: run ``GraphValidator.validate()`` before binding inputs.
    """

    has_end_offset: bool = True
    validate_graph: bool = False

    @property
    def end_offset(self) -> int:
        return 1 if self.has_end_offset else 0
