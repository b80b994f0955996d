"""Per-value metadata produced by shape inference.

A value is one of four kinds:

* ``TensorMeta``: a tensor with a known shape.
* ``ScalarMeta``: a compile-time integer or boolean.
* ``IntListMeta``: a compile-time list of integers (dims, axes).
* ``NoneMeta``: a value with no shape, e.g. a ``None`` constant.

Each kind also exposes the flat ``shape`` / ``int_values`` encoding used in
shape reports: scalars report ``[1]``, lists ``[len, 1]`` and ``None`` values
``[]``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class TensorMeta:
    dims: tuple[int, ...]

    @property
    def rank(self) -> int:
        return len(self.dims)

    @property
    def shape(self) -> list[int]:
        return list(self.dims)

    @property
    def int_values(self) -> list[int] | None:
        return None


@dataclass(frozen=True)
class ScalarMeta:
    value: int

    @property
    def shape(self) -> list[int]:
        return [1]

    @property
    def int_values(self) -> list[int] | None:
        return [self.value]


@dataclass(frozen=True)
class IntListMeta:
    values: tuple[int, ...]

    @property
    def shape(self) -> list[int]:
        return [len(self.values), 1]

    @property
    def int_values(self) -> list[int] | None:
        return list(self.values)


@dataclass(frozen=True)
class NoneMeta:
    @property
    def shape(self) -> list[int]:
        return []

    @property
    def int_values(self) -> list[int] | None:
        return None


ValueMeta = Union[TensorMeta, ScalarMeta, IntListMeta, NoneMeta]


def describe(meta: ValueMeta) -> str:
    if isinstance(meta, TensorMeta):
        return f"Tensor{list(meta.dims)}"
    if isinstance(meta, ScalarMeta):
        return f"Scalar({meta.value})"
    if isinstance(meta, IntListMeta):
        return f"IntList{list(meta.values)}"
    return "None"
