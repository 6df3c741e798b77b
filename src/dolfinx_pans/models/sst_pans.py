"""
PANS k-omega SST closure.

Wraps a baseline SST model and transports the unresolved fields
kU = fK*k and omegaU = fOmega*omega. fK follows from a filter width
(FilterLengthModel) and the resolved integral length scale; fOmega =
fEpsilon/fK. With fK = fOmega = 1 the model is the baseline SST.

Reference: Luo, D.; Yan, C.; Liu, H. & Zhao, R. "Comparative assessment of
           PANS and DES for simulation of flow past a circular cylinder."
           J. Wind Eng. Ind. Aerodyn., 134, 65-77, 2014.

Usage:
    baseline = KOmegaSST(mesh, flow, solver, nu=nu, k=k, omega=omega)
    model = KOmegaSSTPANS(baseline, JsonConfigSource("case.json"))
    for _ in range(n):
        model.correct()
"""

import dataclasses
from dataclasses import dataclass

import numpy as np

from dolfinx_pans.config import PANSCoeffs, parse_pans_coeffs
from dolfinx_pans.delta import FilterLengthModel, create_delta
from dolfinx_pans.fields import ScalarField, calculated, zero_gradient
from dolfinx_pans.models.base import BaselineClosureModel, TurbulenceClosure
from dolfinx_pans.models.filter_ratio import FilterRatioModel
from dolfinx_pans.models.sources import SourceInputs, TransportEquationBuilder
from dolfinx_pans.models.viscosity import ViscosityCorrector


@dataclass
class ModelState:
    """PANS-owned fields and the filter-length strategy; overwritten in place."""

    fK: ScalarField
    fOmega: ScalarField
    kU: ScalarField
    omegaU: ScalarField
    delta_model: FilterLengthModel


class KOmegaSSTPANS(TurbulenceClosure):
    """
    PANS k-omega SST built by composition over a BaselineClosureModel.

    Args:
        baseline: the wrapped SST model (owns k, omega, nut and the collaborators)
        config_source: object with load() -> dict | None, e.g. JsonConfigSource

    Raises:
        ValueError: absent coefficients, missing or unknown 'delta', invalid limits
    """

    def __init__(self, baseline: BaselineClosureModel, config_source) -> None:
        self._baseline = baseline
        self._config_source = config_source

        data = config_source.load()
        if data is None:
            raise ValueError("kOmegaSSTPANSCoeffs not found in the configuration source")
        coeffs = parse_pans_coeffs(data)
        delta_model = create_delta(coeffs.delta, baseline.mesh, coeffs.deltaCoeffs)
        self._set_coeffs(coeffs)

        mesh = baseline.mesh
        registry = baseline.registry
        k, omega = baseline.k(), baseline.omega()

        def zg():
            return {p: zero_gradient(mesh.patch_face_cells(p)) for p in mesh.patches}

        delta_model.correct()
        fK = registry.new_field(
            "fK", self.filter_ratio.fK(delta_model.delta, k.values, omega.values), bcs=zg()
        )
        fOmega = registry.new_field("fOmega", self.filter_ratio.fOmega(fK.values), bcs=zg())

        kU_bcs, omegaU_bcs = zg(), zg()
        for p in mesh.patches:
            if p in k.boundary:
                kU_bcs[p] = calculated(lambda p=p: fK.boundary[p] * k.boundary[p])
            if p in omega.boundary:
                omegaU_bcs[p] = calculated(lambda p=p: fOmega.boundary[p] * omega.boundary[p])

        kU = registry.new_field(
            "kU", np.maximum(k.values * fK.values, 0.0), bcs=kU_bcs
        )
        omegaU = registry.new_field(
            "omegaU",
            np.maximum(omega.values * fOmega.values, baseline.turb.omega_min * fOmega.values),
            bcs=omegaU_bcs,
        )
        self.state = ModelState(fK=fK, fOmega=fOmega, kU=kU, omegaU=omegaU, delta_model=delta_model)

        self.correct_nut()

    def _set_coeffs(self, coeffs: PANSCoeffs) -> None:
        turb = self._baseline.turb
        self.coeffs = coeffs
        self._baseline.set_coeffs(coeffs)
        self.filter_ratio = FilterRatioModel(coeffs, turb.omega_min)
        self.builder = TransportEquationBuilder(coeffs, self._baseline.nu, turb.omega_min)
        self.corrector = ViscosityCorrector(coeffs, turb.omega_min)

    @property
    def model_name(self) -> str:
        return "kOmegaSSTPANS"

    @property
    def display_name(self) -> str:
        return "PANS k-ω SST (Luo 2014)"

    # ── Accessors ─────────────────────────────────────────────────

    @property
    def baseline(self) -> BaselineClosureModel:
        return self._baseline

    @property
    def nut(self) -> ScalarField:
        return self._baseline.nut

    def k(self) -> ScalarField:
        return self._baseline.k()

    def omega(self) -> ScalarField:
        return self._baseline.omega()

    def epsilon(self) -> ScalarField:
        return self._baseline.epsilon()

    def kU(self) -> ScalarField:
        return self.state.kU

    def omegaU(self) -> ScalarField:
        return self.state.omegaU

    @property
    def fK(self) -> ScalarField:
        return self.state.fK

    @property
    def fOmega(self) -> ScalarField:
        return self.state.fOmega

    def delta(self) -> np.ndarray:
        return self.state.delta_model.delta

    def DkUEff(self, F1):
        s = self.state
        return self.builder.DkUEff(F1, self.nut.values, s.fK.values, s.fOmega.values)

    def DomegaUEff(self, F1):
        s = self.state
        return self.builder.DomegaUEff(F1, self.nut.values, s.fK.values, s.fOmega.values)

    # ── Lifecycle ─────────────────────────────────────────────────

    def _update_filter_ratios(self) -> None:
        s = self.state
        self.filter_ratio.update(
            s.fK, s.fOmega, self.delta(), self.k().values, self.omega().values
        )

    def correct_nut(self, S2=None, F2=None) -> None:
        """
        nut = a1*kU/max(a1*omegaU, b1*F2*sqrt(S2)).

        Without arguments S2 and F23 are recomputed from the current state
        and fK/fOmega are refreshed afterwards.
        """
        if (S2 is None) != (F2 is None):
            raise ValueError("correct_nut() takes both S2 and F2, or neither")
        base = self._baseline
        s = self.state
        if S2 is not None:
            self.corrector.correct(base.nut, s.kU.values, s.omegaU.values, S2, F2)
            return

        S2, _, _ = base.strain_invariants()
        F23 = base.blending.F23(self.k().values, self.omega().values)
        self.corrector.correct(base.nut, s.kU.values, s.omegaU.values, S2, F23)
        self._update_filter_ratios()

    def correct(self) -> None:
        base = self._baseline
        base.pre_correct()

        s = self.state
        turb = base.turb
        mesh = base.mesh
        k, omega = self.k(), self.omega()
        kU, omegaU = s.kU, s.omegaU

        S2, GbyNu0, divU = base.strain_invariants()
        grad_kU = mesh.grad(kU.values)
        grad_omegaU = mesh.grad(omegaU.values)
        CDkOmegaU = self.builder.cross_diffusion(
            grad_kU, grad_omegaU, omegaU.values, s.fK.values, s.fOmega.values
        )
        # F1 sees the resolved cross-diffusion: CDkOmega = CDkOmegaU/fOmega
        F1 = base.blending.F1(k.values, omega.values, CDkOmegaU / s.fOmega.values)
        F23 = base.blending.F23(k.values, omega.values)

        self._update_filter_ratios()
        fK = s.fK.values.copy()
        fOmega = s.fOmega.values.copy()

        inp = SourceInputs(
            k=kU.values.copy(),
            omega=omegaU.values.copy(),
            nut=base.nut.values.copy(),
            S2=S2,
            GbyNu=GbyNu0,
            divU=divU,
            F1=F1,
            F23=F23,
            gamma=base.gamma(F1),
            beta=base.beta(F1),
            CDkOmega=CDkOmegaU,
            fK=fK,
            fOmega=fOmega,
            grad_k=grad_kU,
            grad_omega=grad_omegaU,
            delta=self.delta(),
            mag_lap_u=base.flow.mag_lap_u() if self.coeffs.sas.enabled else None,
        )

        omega_floor = turb.omega_min * fOmega
        omegaU_eqn = self.builder.omega_equation(omegaU, inp, lower_bound=omega_floor)
        omegaU.assign(np.maximum(base.solver.solve(omegaU_eqn), omega_floor))
        omegaU.correct_boundary_conditions()

        inp = dataclasses.replace(inp, omega=omegaU.values.copy())
        k_floor = turb.k_min * fK
        kU_eqn = self.builder.k_equation(kU, inp, lower_bound=k_floor)
        kU.assign(np.maximum(base.solver.solve(kU_eqn), k_floor))

        k.assign(np.maximum(kU.values / fK, turb.k_min))
        omega.assign(np.maximum(omegaU.values / fOmega, turb.omega_min))
        k.correct_boundary_conditions()
        omega.correct_boundary_conditions()
        kU.correct_boundary_conditions()
        omegaU.correct_boundary_conditions()

        self.correct_nut()

    def read(self) -> bool:
        """
        Reload coefficients and the filter-length strategy.

        Returns False, leaving every coefficient and the strategy untouched,
        when the source is absent or holds an invalid configuration.
        """
        try:
            data = self._config_source.load()
            if data is None:
                return False
            coeffs = parse_pans_coeffs(data)
            delta_model = self.state.delta_model
            if coeffs.delta != self.coeffs.delta or dict(coeffs.deltaCoeffs) != dict(
                self.coeffs.deltaCoeffs
            ):
                delta_model = create_delta(coeffs.delta, self._baseline.mesh, coeffs.deltaCoeffs)
            delta_model.correct()
        except (OSError, ValueError):
            return False

        self._set_coeffs(coeffs)
        self.state.delta_model = delta_model
        return True
