"""
Source-term assembly for the unresolved-k and unresolved-omega equations.

Every term is returned as SourceTerms(su, sp) with

    source = su + sp * phi,   sp <= 0

so the transport solver can treat `sp` implicitly. Helpers Sp/SuSp mirror
the usual finite-volume conventions: Sp(c) is the implicit sink -c*phi and
SuSp(c) is -c*phi, implicit where c > 0 and explicit where c < 0.

PANS k-omega SST (fK, fOmega uniform in the derivation):

    kU:     min(G, c1*betaStar*kU*omegaU) - 2/3*divU*kU - betaStar*omegaU*kU
    omegaU: gamma*min(GbyNu, c1/a1*betaStar*omegaU*max(a1*omegaU, b1*F23*sqrt(S2)))
            - 2/3*gamma*divU*omegaU - betaL*omegaU^2 + (1 - F1)*CDkOmegaU
    betaL = gamma*betaStar - gamma*betaStar/fOmega + beta/fOmega
    CDkOmegaU = 2*alphaOmega2*(fOmega/fK)*(grad kU . grad omegaU)/omegaU

With fK = fOmega = 1 all terms reduce to the baseline SST ones.
"""

from dataclasses import dataclass

import numpy as np

from dolfinx_pans.config import PANSCoeffs
from dolfinx_pans.fields import ScalarField
from dolfinx_pans.models.blending import BlendingFunctions

SMALL = 1e-15


@dataclass
class SourceTerms:
    """Linearised source: su + sp*phi."""

    su: np.ndarray
    sp: np.ndarray

    @classmethod
    def zeros(cls, n: int) -> "SourceTerms":
        return cls(np.zeros(n), np.zeros(n))

    def __add__(self, other: "SourceTerms") -> "SourceTerms":
        return SourceTerms(self.su + other.su, self.sp + other.sp)

    def evaluate(self, phi) -> np.ndarray:
        return self.su + self.sp * np.asarray(phi, dtype=float)


def Su(values) -> SourceTerms:
    values = np.asarray(values, dtype=float)
    return SourceTerms(values, np.zeros_like(values))


def Sp(coeff) -> SourceTerms:
    """Implicit sink -coeff*phi (coeff >= 0)."""
    coeff = np.asarray(coeff, dtype=float)
    return SourceTerms(np.zeros_like(coeff), -coeff)


def SuSp(coeff, phi) -> SourceTerms:
    """-coeff*phi: implicit where coeff > 0, explicit where coeff < 0."""
    coeff = np.asarray(coeff, dtype=float)
    phi = np.asarray(phi, dtype=float)
    return SourceTerms(-np.minimum(coeff, 0.0) * phi, -np.maximum(coeff, 0.0))


@dataclass
class TransportEquation:
    """
    One scalar transport equation handed to the TransportSolver:

        ddt(phi) + div(phi*U) - laplacian(diffusivity, phi) = su + sp*phi

    lower_bound: floor applied by the closure after the solve.
    """

    name: str
    field: ScalarField
    diffusivity: np.ndarray
    source: SourceTerms
    lower_bound: float | np.ndarray = 0.0

    @property
    def su(self) -> np.ndarray:
        return self.source.su

    @property
    def sp(self) -> np.ndarray:
        return self.source.sp


@dataclass
class SourceInputs:
    """Per-iteration cell data needed to assemble the two equations."""

    k: np.ndarray  # transported k (kU for PANS)
    omega: np.ndarray  # transported omega (omegaU for PANS)
    nut: np.ndarray
    S2: np.ndarray
    GbyNu: np.ndarray
    divU: np.ndarray
    F1: np.ndarray
    F23: np.ndarray
    gamma: np.ndarray
    beta: np.ndarray
    CDkOmega: np.ndarray
    fK: np.ndarray | float = 1.0
    fOmega: np.ndarray | float = 1.0
    grad_k: np.ndarray | None = None
    grad_omega: np.ndarray | None = None
    delta: np.ndarray | None = None
    mag_lap_u: np.ndarray | None = None


def velocity_gradient_invariants(grad_u) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    From the velocity gradient (n, 3, 3) return:
        S2    = 2 |symm(gradU)|^2
        GbyNu = gradU && dev(twoSymm(gradU))
        divU  = tr(gradU)
    """
    grad_u = np.asarray(grad_u, dtype=float)
    symm = 0.5 * (grad_u + np.swapaxes(grad_u, 1, 2))
    S2 = 2.0 * np.einsum("nij,nij->n", symm, symm)
    divU = np.trace(grad_u, axis1=1, axis2=2)
    dev_two_symm = 2.0 * symm - (2.0 / 3.0) * divU[:, None, None] * np.eye(3)
    GbyNu = np.einsum("nij,nij->n", grad_u, dev_two_symm)
    return S2, GbyNu, divU


class TransportEquationBuilder:
    """Assembles the PANS source terms and diffusivities (no solving)."""

    def __init__(self, coeffs: PANSCoeffs, nu, omega_min: float = 1e-15) -> None:
        self.coeffs = coeffs
        self._nu = nu
        self._omega_min = omega_min

    # ── Coefficients ──────────────────────────────────────────────

    def alphaK(self, F1):
        return BlendingFunctions.blend(F1, self.coeffs.alphaK1, self.coeffs.alphaK2)

    def alphaOmega(self, F1):
        return BlendingFunctions.blend(F1, self.coeffs.alphaOmega1, self.coeffs.alphaOmega2)

    def betaL(self, gamma, beta, fOmega):
        """fOmega-scaled omegaU destruction coefficient."""
        bs = self.coeffs.betaStar
        return gamma * bs - gamma * bs / fOmega + beta / fOmega

    def cross_diffusion(self, grad_k, grad_omega, omega, fK, fOmega):
        """CDkOmegaU = 2*alphaOmega2*(fOmega/fK)*(grad kU . grad omegaU)/omegaU."""
        omega = np.maximum(omega, self._omega_min)
        dot = np.einsum("ni,ni->n", np.asarray(grad_k), np.asarray(grad_omega))
        return (2.0 * self.coeffs.alphaOmega2) * (fOmega / fK) * dot / omega

    def DkUEff(self, F1, nut, fK, fOmega):
        return (fK / fOmega) * self.alphaK(F1) * nut + self._nu

    def DomegaUEff(self, F1, nut, fK, fOmega):
        return (fK / fOmega) * self.alphaOmega(F1) * nut + self._nu

    # ── Sources ───────────────────────────────────────────────────

    def k_source(self, inp: SourceInputs) -> SourceTerms:
        c = self.coeffs
        kU = inp.k
        omegaU = np.maximum(inp.omega, self._omega_min)
        G = inp.nut * inp.GbyNu

        return (
            Su(np.minimum(G, (c.c1 * c.betaStar) * kU * omegaU))
            + SuSp((2.0 / 3.0) * inp.divU, kU)
            + Sp(c.betaStar * omegaU)
        )

    def omega_source(self, inp: SourceInputs) -> SourceTerms:
        c = self.coeffs
        omegaU = np.maximum(inp.omega, self._omega_min)
        S2 = np.maximum(inp.S2, 0.0)
        betaL = self.betaL(inp.gamma, inp.beta, inp.fOmega)

        production = inp.gamma * np.minimum(
            inp.GbyNu,
            (c.c1 / c.a1) * c.betaStar * omegaU
            * np.maximum(c.a1 * omegaU, c.b1 * inp.F23 * np.sqrt(S2)),
        )
        return (
            Su(production)
            + SuSp((2.0 / 3.0) * inp.gamma * inp.divU, omegaU)
            + Sp(betaL * omegaU)
            + SuSp((inp.F1 - 1.0) * inp.CDkOmega / omegaU, omegaU)
        )

    def Qsas(self, S2, gamma, beta, inp: SourceInputs) -> SourceTerms:
        """
        Scale-Adaptive-Simulation source for the omegaU equation (Menter & Egorov 2010):

            Qsas = max(zeta2*kappa*S2*(L/Lvk)^2
                       - C*(2/sigmaPhi)*kU*max(|grad omegaU|^2/omegaU^2, |grad kU|^2/kU^2), 0)
            L    = sqrt(kU)/(betaStar^(1/4)*omegaU)
            Lvk  = max(kappa*sqrt(S2)/|lap U|, Cs*sqrt(kappa*zeta2/(beta/betaStar - gamma))*delta)
        """
        S2 = np.maximum(np.asarray(S2, dtype=float), 0.0)
        sas = self.coeffs.sas
        if not sas.enabled:
            return SourceTerms.zeros(S2.size)
        if inp.delta is None or inp.mag_lap_u is None or inp.grad_k is None or inp.grad_omega is None:
            raise ValueError("SAS source needs delta, |lap U| and the k/omega gradients")

        bs = self.coeffs.betaStar
        k = np.maximum(inp.k, 0.0)
        omega = np.maximum(inp.omega, self._omega_min)
        L = np.sqrt(k) / (bs**0.25 * omega)

        Lvk_min = sas.Cs * np.sqrt(
            sas.kappa * sas.zeta2 / np.maximum(beta / bs - gamma, SMALL)
        ) * inp.delta
        with np.errstate(divide="ignore", invalid="ignore"):
            Lvk = sas.kappa * np.sqrt(S2) / np.asarray(inp.mag_lap_u, dtype=float)
        Lvk = np.where(np.isnan(Lvk), Lvk_min, np.maximum(Lvk, Lvk_min))
        Lvk = np.maximum(Lvk, SMALL)

        T1 = sas.zeta2 * sas.kappa * S2 * (L / Lvk) ** 2
        grad_w2 = np.einsum("ni,ni->n", inp.grad_omega, inp.grad_omega) / omega**2
        grad_k2 = np.einsum("ni,ni->n", inp.grad_k, inp.grad_k) / np.maximum(k, SMALL) ** 2
        T2 = sas.C * (2.0 / sas.sigmaPhi) * k * np.maximum(grad_w2, grad_k2)

        return Su(np.maximum(T1 - T2, 0.0))

    # ── Equations ─────────────────────────────────────────────────

    def k_equation(self, kU: ScalarField, inp: SourceInputs, lower_bound=0.0) -> TransportEquation:
        return TransportEquation(
            name=kU.name,
            field=kU,
            diffusivity=self.DkUEff(inp.F1, inp.nut, inp.fK, inp.fOmega),
            source=self.k_source(inp),
            lower_bound=lower_bound,
        )

    def omega_equation(self, omegaU: ScalarField, inp: SourceInputs, lower_bound) -> TransportEquation:
        return TransportEquation(
            name=omegaU.name,
            field=omegaU,
            diffusivity=self.DomegaUEff(inp.F1, inp.nut, inp.fK, inp.fOmega),
            source=self.omega_source(inp) + self.Qsas(inp.S2, inp.gamma, inp.beta, inp),
            lower_bound=lower_bound,
        )
