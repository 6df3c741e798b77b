"""
Configuration dataclasses and closure constants for dolfinx-pans.

Contains:
- k-omega SST model constants (Menter 1994, OpenFOAM defaults)
- PANS resolution-control constants (Luo et al. 2014)
- SAS constants (Menter & Egorov 2010)
- Coefficient dataclasses (SSTCoeffs, SASCoeffs, PANSCoeffs) and their parser
- Channel-run dataclasses (ChannelGeom, NondimParams, TurbParams, SolveParams)
- Configuration sources used by KOmegaSSTPANS.read()
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

import numpy as np

from dolfinx_pans.utils import dc_from_dict, load_json_config


# =============================================================================
# k-omega SST Model Constants (Menter 1994)
# Reference: Menter, F.R. "Two-equation eddy-viscosity turbulence models
#            for engineering applications." AIAA Journal, 32(8), 1994.
# =============================================================================

KAPPA = 0.41  # von Karman constant
BETA_STAR = 0.09  # k destruction coefficient

# Inner layer (k-omega) constants - subscript 1
SST_ALPHA_K1 = 0.85
SST_ALPHA_W1 = 0.5
SST_BETA1 = 0.075
SST_GAMMA1 = 5.0 / 9.0

# Outer layer (k-epsilon transformed) constants - subscript 2
SST_ALPHA_K2 = 1.0
SST_ALPHA_W2 = 0.856
SST_BETA2 = 0.0828
SST_GAMMA2 = 0.44

# Stress limiter / production limiter constants
SST_A1 = 0.31
SST_B1 = 1.0
SST_C1 = 10.0

# =============================================================================
# PANS constants
# Reference: Luo, D.; Yan, C.; Liu, H. & Zhao, R. "Comparative assessment of
#            PANS and DES for simulation of flow past a circular cylinder."
#            J. Wind Eng. Ind. Aerodyn., 134, 65-77, 2014.
# =============================================================================

PANS_F_EPSILON = 1.0
PANS_FK_UPPER = 1.0
PANS_FK_LOWER = 0.1

# =============================================================================
# SAS constants
# Reference: Menter, F.R. & Egorov, Y. "The scale-adaptive simulation method
#            for unsteady turbulent flow predictions. Part 1." Flow, Turbulence
#            and Combustion, 85, 113-138, 2010.
# =============================================================================

SAS_CS = 0.11
SAS_ZETA2 = 3.51
SAS_SIGMA_PHI = 2.0 / 3.0
SAS_C = 2.0

_SWITCH_WORDS = {
    "on": True, "yes": True, "true": True, "y": True,
    "off": False, "no": False, "false": False, "n": False, "none": False,
}


# =============================================================================
# Coefficient dataclasses
# =============================================================================


@dataclass(frozen=True)
class SSTCoeffs:
    """Baseline k-omega SST coefficients (OpenFOAM kOmegaSSTCoeffs names)."""

    alphaK1: float = SST_ALPHA_K1
    alphaK2: float = SST_ALPHA_K2
    alphaOmega1: float = SST_ALPHA_W1
    alphaOmega2: float = SST_ALPHA_W2
    beta1: float = SST_BETA1
    beta2: float = SST_BETA2
    betaStar: float = BETA_STAR
    gamma1: float = SST_GAMMA1
    gamma2: float = SST_GAMMA2
    a1: float = SST_A1
    b1: float = SST_B1
    c1: float = SST_C1
    F3: bool = False  # Roughness blending term (Hellsten)


@dataclass(frozen=True)
class SASCoeffs:
    """Scale-Adaptive-Simulation source term coefficients (disabled by default)."""

    enabled: bool = False
    Cs: float = SAS_CS
    kappa: float = KAPPA
    zeta2: float = SAS_ZETA2
    sigmaPhi: float = SAS_SIGMA_PHI
    C: float = SAS_C


@dataclass(frozen=True)
class PANSCoeffs(SSTCoeffs):
    """
    Complete PANS k-omega SST coefficient set.

    delta: filter-length strategy name (required, e.g. "cubeRootVol")
    deltaCoeffs: sub-dictionary of the selected strategy ("<delta>Coeffs")
    fEpsilon: unresolved-to-total dissipation ratio
    fKupperLimit/fKlowerLimit: clamp bounds for fK
    sas: optional SAS source term settings
    """

    delta: str = ""
    deltaCoeffs: Mapping[str, Any] = field(default_factory=dict)
    fEpsilon: float = PANS_F_EPSILON
    fKupperLimit: float = PANS_FK_UPPER
    fKlowerLimit: float = PANS_FK_LOWER
    sas: SASCoeffs = field(default_factory=SASCoeffs)

    def validate(self) -> None:
        """Raise ValueError unless 0 < fKlowerLimit <= fKupperLimit <= 1."""
        if not self.delta:
            raise ValueError("PANS requires a filter-length model: 'delta' must be specified")
        if not (0.0 < self.fKlowerLimit <= self.fKupperLimit <= 1.0):
            raise ValueError(
                "PANS limits must satisfy 0 < fKlowerLimit <= fKupperLimit <= 1, "
                f"got fKlowerLimit={self.fKlowerLimit}, fKupperLimit={self.fKupperLimit}"
            )
        if not (np.isfinite(self.fEpsilon) and self.fEpsilon > 0.0):
            raise ValueError(f"fEpsilon must be positive and finite, got {self.fEpsilon}")


def _as_switch(value: Any, *, name: str) -> bool:
    """Accept JSON booleans and OpenFOAM-style switch words (on/off, yes/no)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _SWITCH_WORDS:
        return _SWITCH_WORDS[value.strip().lower()]
    raise ValueError(f"Invalid switch value for '{name}': {value!r}")


def as_coefficient(value: Any, *, key: str, name: str) -> float:
    """Finite float from a JSON number; strings and booleans are rejected."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not np.isfinite(value):
        raise ValueError(f"Invalid value for '{key}' in {name}: {value!r} (expected a finite number)")
    return float(value)


def _coerce_coefficients(cls, data: dict[str, Any], *, name: str) -> dict[str, Any]:
    """Convert every float-valued field of dataclass `cls` present in `data`."""
    for f in fields(cls):
        if isinstance(f.default, float) and f.name in data:
            data[f.name] = as_coefficient(data[f.name], key=f.name, name=name)
    return data


def parse_sst_coeffs(data: Mapping[str, Any] | None, *, name: str = "kOmegaSSTCoeffs") -> SSTCoeffs:
    """Build SSTCoeffs from a coefficient dictionary (all keys optional)."""
    data = {} if data is None else dict(data)
    if "F3" in data:
        data["F3"] = _as_switch(data["F3"], name="F3")
    _coerce_coefficients(SSTCoeffs, data, name=name)
    return dc_from_dict(SSTCoeffs, data, name=name)


def parse_pans_coeffs(data: Mapping[str, Any] | None, *, name: str = "kOmegaSSTPANSCoeffs") -> PANSCoeffs:
    """
    Build and validate PANSCoeffs from a coefficient dictionary.

    The selected strategy's sub-dictionary "<delta>Coeffs" becomes deltaCoeffs;
    other "*Coeffs" sub-dictionaries are accepted and ignored, as in OpenFOAM
    dictionaries that keep settings for several strategies side by side.
    """
    data = {} if data is None else dict(data)
    data = {k: v for k, v in data.items() if not str(k).startswith("_")}

    delta = data.get("delta")
    if not isinstance(delta, str) or not delta.strip():
        raise ValueError(f"Missing keys in {name}: ['delta'] (PANS needs a filter-length model)")
    delta = delta.strip()
    data["delta"] = delta

    sub_dicts = {
        k: data.pop(k)
        for k in list(data)
        if str(k).endswith("Coeffs") and isinstance(data[k], Mapping)
    }
    data["deltaCoeffs"] = dict(sub_dicts.get(f"{delta}Coeffs", {}))

    if "F3" in data:
        data["F3"] = _as_switch(data["F3"], name="F3")
    if "sas" in data:
        if data["sas"] is not None and not isinstance(data["sas"], Mapping):
            raise ValueError(f"Invalid value for 'sas' in {name}: {data['sas']!r} (expected a dictionary)")
        sas = dict(data["sas"] or {})
        if "enabled" in sas:
            sas["enabled"] = _as_switch(sas["enabled"], name="sas.enabled")
        _coerce_coefficients(SASCoeffs, sas, name=f"{name}.sas")
        data["sas"] = dc_from_dict(SASCoeffs, sas, name=f"{name}.sas")
    _coerce_coefficients(PANSCoeffs, data, name=name)

    coeffs = dc_from_dict(PANSCoeffs, data, name=name)
    coeffs.validate()
    return coeffs


# =============================================================================
# Configuration sources
# =============================================================================


class DictConfigSource:
    """In-memory coefficient dictionary; `data=None` models an absent source."""

    def __init__(self, data: Mapping[str, Any] | None) -> None:
        self.data = data

    def load(self) -> dict[str, Any] | None:
        if self.data is None:
            return None
        return dict(self.data)


class JsonConfigSource:
    """
    Coefficient dictionary read from a JSON file on every load().

    section: top-level key holding the coefficients (None = whole file).
    Returns None when the file or the section is absent.
    """

    def __init__(self, path: str | Path, section: str | None = "kOmegaSSTPANSCoeffs") -> None:
        self.path = Path(path)
        self.section = section

    def load(self) -> dict[str, Any] | None:
        if not self.path.exists():
            return None
        cfg = load_json_config(self.path)
        if self.section is None:
            return cfg
        data = cfg.get(self.section)
        return dict(data) if isinstance(data, Mapping) else None


# =============================================================================
# Run configuration dataclasses
# =============================================================================


@dataclass(frozen=True)
class ChannelGeom:
    """Channel geometry parameters."""

    Lx: float  # Channel length (streamwise)
    Ly: float  # Channel height (delta if use_symmetry, else 2*delta)
    Nx: int  # Mesh cells in x
    Ny: int  # Mesh cells in y
    mesh_type: str  # "triangle" or "quad"
    y_first: float  # First cell height from wall (for y+ control)
    growth_rate: float  # Geometric stretching ratio (>1 for wall refinement)
    stretching: str = "geometric"  # "geometric" or "tanh"
    y_first_tol_rel: float = 0.05  # Hard-fail if implied y_first differs by more than this
    use_symmetry: bool = True  # Half-channel with symmetry BC at top (default: True)


@dataclass(frozen=True)
class NondimParams:
    """Nondimensional parameters for Re_tau-based scaling."""

    Re_tau: float  # Friction Reynolds number


@dataclass(frozen=True)
class TurbParams:
    """
    Closure parameters shared by all models.

    model: "kOmegaSSTPANS" or "kOmegaSST"
    k_min: Floor on k (0 keeps the zero-turbulence state exact)
    omega_min: Positive floor on omega (divisor in F1/F2, nut and fK)
    """

    model: str = "kOmegaSSTPANS"
    k_min: float = 0.0
    omega_min: float = 1e-15


@dataclass(frozen=True)
class SolveParams:
    """
    Frozen-flow iteration parameters.

    dt: Pseudo-time step handed to the transport solver
    max_iter: Max outer iterations (one correct() call each)
    steady_tol: Stop when the relative change of k and omega falls below this
    log_interval: Print every N iterations
    out_dir: Output directory for results
    """

    dt: float
    max_iter: int
    steady_tol: float
    log_interval: int
    out_dir: str
