"""
Turbulence model registry.

Usage:
    from dolfinx_pans.models import create_model
    model = create_model(
        "kOmegaSSTPANS", mesh, flow, solver,
        nu=nu, k=k, omega=omega, config_source=JsonConfigSource("case.json"),
    )
"""

from dolfinx_pans.models.base import BaselineClosureModel, TurbulenceClosure
from dolfinx_pans.models.blending import BlendingFunctions
from dolfinx_pans.models.filter_ratio import FilterRatioModel
from dolfinx_pans.models.sources import (
    SourceInputs,
    SourceTerms,
    TransportEquation,
    TransportEquationBuilder,
)
from dolfinx_pans.models.sst import KOmegaSST
from dolfinx_pans.models.sst_pans import KOmegaSSTPANS, ModelState
from dolfinx_pans.models.viscosity import ViscosityCorrector


def _create_sst(mesh, flow, solver, *, config_source=None, **kwargs) -> KOmegaSST:
    model = KOmegaSST(mesh, flow, solver, config_source=config_source, **kwargs)
    if config_source is not None and config_source.load() is not None and not model.read():
        raise ValueError("Invalid kOmegaSSTCoeffs in the configuration source")
    model.correct_nut()
    return model


def _create_sst_pans(mesh, flow, solver, *, config_source=None, **kwargs) -> KOmegaSSTPANS:
    if config_source is None:
        raise ValueError("kOmegaSSTPANS needs a configuration source with a 'delta' entry")
    baseline = KOmegaSST(mesh, flow, solver, **kwargs)
    return KOmegaSSTPANS(baseline, config_source)


_REGISTRY = {
    "kOmegaSST": _create_sst,
    "kOmegaSSTPANS": _create_sst_pans,
}


def create_model(name: str, mesh, flow, solver, **kwargs) -> TurbulenceClosure:
    """Factory: instantiate a closure by config name (case-insensitive)."""
    lookup = {key.lower(): key for key in _REGISTRY}
    key = lookup.get(str(name).lower())
    if key is None:
        supported = ", ".join(sorted(_REGISTRY))
        raise ValueError(
            f"Unknown turbulence model '{name}'. Supported: {supported}"
        )
    return _REGISTRY[key](mesh, flow, solver, **kwargs)


__all__ = [
    "TurbulenceClosure",
    "BaselineClosureModel",
    "BlendingFunctions",
    "FilterRatioModel",
    "SourceInputs",
    "SourceTerms",
    "TransportEquation",
    "TransportEquationBuilder",
    "ViscosityCorrector",
    "KOmegaSST",
    "KOmegaSSTPANS",
    "ModelState",
    "create_model",
]
