"""
k-omega SST turbulence model (Menter 2003 form, OpenFOAM source terms).

Reference: Menter, F.R., Kuntz, M. & Langtry, R. "Ten years of industrial
           experience with the SST turbulence model." Turbulence, Heat and
           Mass Transfer 4, 2003.
"""

import numpy as np

from dolfinx_pans.config import parse_sst_coeffs
from dolfinx_pans.models.base import BaselineClosureModel
from dolfinx_pans.models.sources import (
    SourceInputs,
    SourceTerms,
    Sp,
    Su,
    SuSp,
    TransportEquation,
)


class KOmegaSST(BaselineClosureModel):
    """k-omega SST with F1/F23 blending, production limiter and nut stress limiter."""

    def __init__(self, *args, config_source=None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._config_source = config_source

    @property
    def model_name(self) -> str:
        return "kOmegaSST"

    @property
    def display_name(self) -> str:
        return "k-ω SST (Menter 2003)"

    # ── Source terms ──────────────────────────────────────────────

    def cross_diffusion(self, grad_k, grad_omega, omega):
        """CDkOmega = 2*alphaOmega2*(grad k . grad omega)/omega."""
        omega = np.maximum(omega, self.turb.omega_min)
        return (2.0 * self.coeffs.alphaOmega2) * np.einsum("ni,ni->n", grad_k, grad_omega) / omega

    def GbyNu(self, GbyNu0, F23, S2, omega):
        """Production per unit nut, limited by the stress-limited nut."""
        c = self.coeffs
        return np.minimum(
            GbyNu0,
            (c.c1 / c.a1) * c.betaStar * omega
            * np.maximum(c.a1 * omega, c.b1 * F23 * np.sqrt(np.maximum(S2, 0.0))),
        )

    def k_source(self, inp: SourceInputs) -> SourceTerms:
        c = self.coeffs
        omega = np.maximum(inp.omega, self.turb.omega_min)
        Pk = np.minimum(inp.nut * inp.GbyNu, (c.c1 * c.betaStar) * inp.k * omega)
        return Su(Pk) + SuSp((2.0 / 3.0) * inp.divU, inp.k) + Sp(c.betaStar * omega)

    def omega_source(self, inp: SourceInputs) -> SourceTerms:
        omega = np.maximum(inp.omega, self.turb.omega_min)
        return (
            Su(inp.gamma * self.GbyNu(inp.GbyNu, inp.F23, inp.S2, omega))
            + SuSp((2.0 / 3.0) * inp.gamma * inp.divU, omega)
            + Sp(inp.beta * omega)
            + SuSp((inp.F1 - 1.0) * inp.CDkOmega / omega, omega)
        )

    def Qsas(self, S2, gamma, beta, inp: SourceInputs) -> SourceTerms:
        return SourceTerms.zeros(np.size(S2))

    def DkEff(self, F1):
        return self.alphaK(F1) * self._nut.values + self.nu

    def DomegaEff(self, F1):
        return self.alphaOmega(F1) * self._nut.values + self.nu

    # ── Lifecycle ─────────────────────────────────────────────────

    def correct_nut(self, S2=None, F2=None) -> None:
        if (S2 is None) != (F2 is None):
            raise ValueError("correct_nut() takes both S2 and F2, or neither")
        k, omega = self._k.values, self._omega.values
        if S2 is None:
            S2, _, _ = self.strain_invariants()
            F2 = self.blending.F23(k, omega)
        c = self.coeffs
        omega_safe = np.maximum(omega, self.turb.omega_min)
        nut = c.a1 * np.maximum(k, 0.0) / np.maximum(
            c.a1 * omega_safe, c.b1 * F2 * np.sqrt(np.maximum(S2, 0.0))
        )
        self._nut.assign(nut)
        self._nut.correct_boundary_conditions()

    def correct(self) -> None:
        self.pre_correct()
        turb = self.turb
        k, omega = self._k, self._omega

        S2, GbyNu0, divU = self.strain_invariants()
        grad_k = self.mesh.grad(k.values)
        grad_omega = self.mesh.grad(omega.values)
        CDkOmega = self.cross_diffusion(grad_k, grad_omega, omega.values)
        F1 = self.blending.F1(k.values, omega.values, CDkOmega)
        F23 = self.blending.F23(k.values, omega.values)

        inp = SourceInputs(
            k=k.values.copy(),
            omega=omega.values.copy(),
            nut=self._nut.values.copy(),
            S2=S2,
            GbyNu=GbyNu0,
            divU=divU,
            F1=F1,
            F23=F23,
            gamma=self.gamma(F1),
            beta=self.beta(F1),
            CDkOmega=CDkOmega,
            grad_k=grad_k,
            grad_omega=grad_omega,
        )

        omega_eqn = TransportEquation(
            name=omega.name,
            field=omega,
            diffusivity=self.DomegaEff(F1),
            source=self.omega_source(inp) + self.Qsas(S2, inp.gamma, inp.beta, inp),
            lower_bound=turb.omega_min,
        )
        omega.assign(np.maximum(self.solver.solve(omega_eqn), turb.omega_min))
        omega.correct_boundary_conditions()

        inp.omega = omega.values.copy()
        k_eqn = TransportEquation(
            name=k.name,
            field=k,
            diffusivity=self.DkEff(F1),
            source=self.k_source(inp),
            lower_bound=turb.k_min,
        )
        k.assign(np.maximum(self.solver.solve(k_eqn), turb.k_min))
        k.correct_boundary_conditions()

        self.correct_nut(S2, self.blending.F23(k.values, omega.values))

    def read(self) -> bool:
        if self._config_source is None:
            return False
        try:
            data = self._config_source.load()
            if data is None:
                return False
            coeffs = parse_sst_coeffs(data)
        except (OSError, ValueError):
            return False
        self.set_coeffs(coeffs)
        return True
