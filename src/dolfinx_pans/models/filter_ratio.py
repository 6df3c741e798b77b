"""
PANS filter ratios: unresolved-to-total energy (fK) and frequency (fOmega).

    Lambda = k^(3/2) / epsilon = sqrt(k) / (betaStar * omega)
    fK     = clamp( (1/sqrt(betaStar)) * (delta/Lambda)^(2/3), fKlowerLimit, fKupperLimit )
    fOmega = fEpsilon / fK

Reference: Luo, D. et al., J. Wind Eng. Ind. Aerodyn., 134, 65-77, 2014.
"""

import numpy as np

from dolfinx_pans.config import PANSCoeffs

F_OMEGA_MIN = 1e-10


class FilterRatioModel:
    """Per-cell fK and fOmega from the filter width and the resolved (k, omega)."""

    def __init__(self, coeffs: PANSCoeffs, omega_min: float = 1e-15) -> None:
        self.coeffs = coeffs
        self._omega_min = omega_min

    def length_scale(self, k, omega):
        """Resolved integral length scale Lambda."""
        k = np.maximum(k, 0.0)
        omega = np.maximum(omega, self._omega_min)
        return np.sqrt(k) / (self.coeffs.betaStar * omega)

    def fK(self, delta, k, omega):
        c = self.coeffs
        delta = np.asarray(delta, dtype=float)
        lam = self.length_scale(k, omega)

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            ratio = delta / lam
            raw = np.power(ratio, 2.0 / 3.0) / np.sqrt(c.betaStar)

        # Degenerate filter width or vanishing Lambda: fall back to the upper
        # limit so the model reduces to the baseline closure there.
        usable = np.isfinite(delta) & (delta > 0.0) & ~np.isnan(raw)
        raw = np.where(usable, raw, c.fKupperLimit)
        return np.clip(raw, c.fKlowerLimit, c.fKupperLimit)

    def fOmega(self, fK):
        with np.errstate(divide="ignore", invalid="ignore"):
            fOmega = self.coeffs.fEpsilon / np.asarray(fK, dtype=float)
        fOmega = np.where(np.isfinite(fOmega), fOmega, self.coeffs.fEpsilon)
        return np.maximum(fOmega, F_OMEGA_MIN)

    def update(self, fK_field, fOmega_field, delta, k, omega) -> None:
        """Overwrite the fK/fOmega fields in place and refresh their boundaries."""
        fK = self.fK(delta, k, omega)
        fK_field.assign(fK)
        fOmega_field.assign(self.fOmega(fK))
        fK_field.correct_boundary_conditions()
        fOmega_field.correct_boundary_conditions()
