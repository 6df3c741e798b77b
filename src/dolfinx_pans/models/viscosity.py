"""
SST eddy-viscosity stress limiter.

    nut = a1*k / max(a1*omega, b1*F2*sqrt(S2))

For PANS the (k, omega) pair is the unresolved one (kU, omegaU).
"""

import numpy as np

from dolfinx_pans.config import SSTCoeffs


class ViscosityCorrector:
    """Writes the limited eddy viscosity into a `nut` ScalarField."""

    def __init__(self, coeffs: SSTCoeffs, omega_min: float = 1e-15) -> None:
        self.coeffs = coeffs
        self._omega_min = omega_min

    def nut(self, k, omega, S2, F2):
        c = self.coeffs
        k = np.maximum(np.asarray(k, dtype=float), 0.0)
        omega = np.maximum(np.asarray(omega, dtype=float), self._omega_min)
        S = np.sqrt(np.maximum(S2, 0.0))
        return c.a1 * k / np.maximum(c.a1 * omega, c.b1 * F2 * S)

    def correct(self, nut_field, k, omega, S2, F2) -> np.ndarray:
        nut_field.assign(self.nut(k, omega, S2, F2))
        nut_field.correct_boundary_conditions()
        return nut_field.values
