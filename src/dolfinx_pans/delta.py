"""
Filter-length (LES delta) models used by PANS to judge local resolution.

Usage:
    from dolfinx_pans.delta import create_delta
    delta_model = create_delta("cubeRootVol", mesh, {"deltaCoeff": 1.0})
    delta_model.correct()
    delta = delta_model.delta
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping

import numpy as np

from dolfinx_pans.config import KAPPA, as_coefficient
from dolfinx_pans.interfaces import MeshInterface


class FilterLengthModel(ABC):
    """Per-cell filter width, recomputed on correct()."""

    type_name: str = ""

    def __init__(self, mesh: MeshInterface, coeffs: Mapping[str, Any] | None = None) -> None:
        self._mesh = mesh
        self._delta = np.zeros(mesh.n_cells)
        self.read(coeffs)

    @property
    def delta(self) -> np.ndarray:
        return self._delta

    def read(self, coeffs: Mapping[str, Any] | None) -> None:
        """Re-read strategy coefficients (strict: unknown keys raise)."""
        coeffs = {} if coeffs is None else dict(coeffs)
        allowed = self.defaults()
        unknown = sorted(set(coeffs) - set(allowed))
        if unknown:
            raise ValueError(f"Unknown keys in {self.type_name}Coeffs: {unknown}")
        for key, default in allowed.items():
            if isinstance(default, float) and key in coeffs:
                coeffs[key] = as_coefficient(coeffs[key], key=key, name=f"{self.type_name}Coeffs")
        self.coeffs = {**allowed, **coeffs}

    def defaults(self) -> dict[str, Any]:
        return {}

    def correct(self) -> None:
        self._delta[:] = self.calc_delta()

    @abstractmethod
    def calc_delta(self) -> np.ndarray:
        """Return the filter width per cell (NaN where the geometry is degenerate)."""


class CubeRootVolDelta(FilterLengthModel):
    """delta = deltaCoeff * V^(1/3) (3D) or deltaCoeff * sqrt(A) (2D)."""

    type_name = "cubeRootVol"

    def defaults(self):
        return {"deltaCoeff": 1.0}

    def calc_delta(self):
        vol = np.asarray(self._mesh.cell_volumes(), dtype=float)
        with np.errstate(invalid="ignore"):
            if self._mesh.gdim == 2:
                base = np.sqrt(vol)
            else:
                base = np.cbrt(vol)
        base = np.where(vol > 0.0, base, np.nan)
        return float(self.coeffs["deltaCoeff"]) * base


class MaxDeltaxyzDelta(FilterLengthModel):
    """delta = deltaCoeff * largest cell extent."""

    type_name = "maxDeltaxyz"

    def defaults(self):
        return {"deltaCoeff": 1.0}

    def calc_delta(self):
        h = np.asarray(self._mesh.max_cell_extent(), dtype=float)
        return float(self.coeffs["deltaCoeff"]) * np.where(h > 0.0, h, np.nan)


class PrandtlDelta(FilterLengthModel):
    """
    Geometric delta capped by the wall mixing length:
        delta = min(geometric delta, (kappa/Cdelta) * y)
    """

    type_name = "Prandtl"

    def defaults(self):
        return {"delta": "cubeRootVol", "kappa": KAPPA, "Cdelta": 0.158}

    def read(self, coeffs):
        coeffs = {} if coeffs is None else dict(coeffs)
        sub_dicts = {
            k: coeffs.pop(k)
            for k in list(coeffs)
            if str(k).endswith("Coeffs") and isinstance(coeffs[k], Mapping)
        }
        super().read(coeffs)
        inner = str(self.coeffs["delta"])
        if inner == self.type_name:
            raise ValueError("Prandtl delta cannot wrap itself")
        self._geometric = create_delta(inner, self._mesh, sub_dicts.get(f"{inner}Coeffs"))

    def calc_delta(self):
        geometric = self._geometric.calc_delta()
        y = np.asarray(self._mesh.wall_distance(), dtype=float)
        mixing = (float(self.coeffs["kappa"]) / float(self.coeffs["Cdelta"])) * y
        return np.minimum(geometric, mixing)


_REGISTRY: dict[str, type[FilterLengthModel]] = {
    "cubeRootVol": CubeRootVolDelta,
    "maxDeltaxyz": MaxDeltaxyzDelta,
    "Prandtl": PrandtlDelta,
}


def create_delta(
    name: str | None, mesh: MeshInterface, coeffs: Mapping[str, Any] | None = None
) -> FilterLengthModel:
    """Factory: instantiate a filter-length model by config name."""
    if not name:
        raise ValueError("No filter-length model specified ('delta' is required)")
    cls = _REGISTRY.get(name)
    if cls is None:
        supported = ", ".join(sorted(_REGISTRY))
        raise ValueError(f"Unknown filter-length model '{name}'. Supported: {supported}")
    return cls(mesh, coeffs)
