"""
Per-cell scalar fields and the naming context used for derived fields.

A ScalarField is a fixed-size float64 array over the mesh cells (or the
scalar DOFs of a DOLFINx space) plus per-patch boundary values. Boundary
values are produced by callables attached per patch, evaluated on
correct_boundary_conditions().
"""

from __future__ import annotations

from typing import Callable, Mapping

import numpy as np

BoundaryCondition = Callable[["ScalarField"], np.ndarray]


class ScalarField:
    """Named per-cell array with per-patch boundary values."""

    def __init__(
        self,
        name: str,
        values,
        *,
        bcs: Mapping[str, BoundaryCondition] | None = None,
        time_name: str | None = None,
    ) -> None:
        self.name = name
        self.time_name = time_name
        self._values = np.array(values, dtype=float).reshape(-1)
        self._bcs: dict[str, BoundaryCondition] = dict(bcs or {})
        self.boundary: dict[str, np.ndarray] = {}

    @property
    def values(self) -> np.ndarray:
        return self._values

    def __len__(self) -> int:
        return self._values.size

    def __repr__(self) -> str:
        return f"ScalarField({self.name!r}, n={self._values.size})"

    def assign(self, values) -> None:
        """Overwrite the cell values in place (scalars broadcast)."""
        arr = np.asarray(values, dtype=float)
        if arr.ndim > 0 and arr.size != self._values.size:
            raise ValueError(
                f"Field '{self.name}' has {self._values.size} cells, got {arr.size} values"
            )
        self._values[:] = arr.reshape(-1) if arr.ndim > 0 else arr

    def set_boundary_condition(self, patch: str, bc: BoundaryCondition) -> None:
        self._bcs[patch] = bc

    @property
    def patches(self) -> list[str]:
        return list(self._bcs)

    def correct_boundary_conditions(self) -> None:
        for patch, bc in self._bcs.items():
            self.boundary[patch] = np.asarray(bc(self), dtype=float).reshape(-1)

    def min(self) -> float:
        return float(np.min(self._values)) if self._values.size else float("inf")

    def max(self) -> float:
        return float(np.max(self._values)) if self._values.size else float("-inf")

    def __copy__(self):
        raise TypeError(f"{type(self).__name__} '{self.name}' is owned by its model and cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError(f"{type(self).__name__} '{self.name}' is owned by its model and cannot be copied")


# =============================================================================
# Boundary conditions
# =============================================================================


def fixed_value(value) -> BoundaryCondition:
    """Constant (or fixed array) boundary values."""
    def bc(field: ScalarField) -> np.ndarray:
        return np.asarray(value, dtype=float)
    return bc


def zero_gradient(face_cells: np.ndarray) -> BoundaryCondition:
    """Boundary value equal to the adjacent cell value."""
    face_cells = np.asarray(face_cells, dtype=np.int64)

    def bc(field: ScalarField) -> np.ndarray:
        return field.values[face_cells]
    return bc


def calculated(fn: Callable[[], np.ndarray]) -> BoundaryCondition:
    """Boundary values computed from other fields (fn takes no arguments)."""
    def bc(field: ScalarField) -> np.ndarray:
        return np.asarray(fn(), dtype=float)
    return bc


# =============================================================================
# Naming context
# =============================================================================


class FieldRegistry:
    """
    Explicit naming/registry context for derived diagnostic fields.

    time_name: current simulation time index, stamped on new fields.
    """

    def __init__(self, time_name: str = "0") -> None:
        self.time_name = time_name
        self._fields: dict[str, ScalarField] = {}

    def set_time(self, time_name) -> None:
        self.time_name = str(time_name)

    def new_field(
        self,
        name: str,
        values,
        *,
        bcs: Mapping[str, BoundaryCondition] | None = None,
    ) -> ScalarField:
        """Create a field stamped with the current time name and register it."""
        f = ScalarField(name, values, bcs=bcs, time_name=self.time_name)
        f.correct_boundary_conditions()
        self._fields[name] = f
        return f

    def lookup(self, name: str) -> ScalarField:
        try:
            return self._fields[name]
        except KeyError:
            raise KeyError(f"No field '{name}' registered (known: {sorted(self._fields)})") from None

    def __contains__(self, name: str) -> bool:
        return name in self._fields
