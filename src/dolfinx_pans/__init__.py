"""
dolfinx-pans: PANS k-ω SST turbulence closure for DOLFINx.

A Partially-Averaged Navier-Stokes (PANS) extension of the k-ω SST model:
a filter width sets the unresolved-to-total energy ratio fK per cell, and
the unresolved fields kU, omegaU are transported with fK-scaled sources.
The closure works on per-DOF numpy arrays; DOLFINx supplies the mesh,
velocity gradient and transport solves through dolfinx_pans.dolfinx_backend.

Requirements:
    - numpy, matplotlib
    - DOLFINx 0.10.0+ (backend, channel driver and CLI)

Example:
    from dolfinx_pans import JsonConfigSource, create_model
    model = create_model(
        "kOmegaSSTPANS", mesh, flow, solver,
        nu=nu, k=k, omega=omega, config_source=JsonConfigSource("case.json"),
    )
    model.correct()
"""

__version__ = "0.1.0"

from dolfinx_pans.config import (
    ChannelGeom,
    DictConfigSource,
    JsonConfigSource,
    NondimParams,
    PANSCoeffs,
    SASCoeffs,
    SolveParams,
    SSTCoeffs,
    TurbParams,
    parse_pans_coeffs,
)
from dolfinx_pans.delta import create_delta
from dolfinx_pans.fields import FieldRegistry, ScalarField
from dolfinx_pans.models import KOmegaSST, KOmegaSSTPANS, create_model

__all__ = [
    "__version__",
    "ChannelGeom",
    "NondimParams",
    "TurbParams",
    "SolveParams",
    "SSTCoeffs",
    "SASCoeffs",
    "PANSCoeffs",
    "parse_pans_coeffs",
    "DictConfigSource",
    "JsonConfigSource",
    "FieldRegistry",
    "ScalarField",
    "create_delta",
    "create_model",
    "KOmegaSST",
    "KOmegaSSTPANS",
]
