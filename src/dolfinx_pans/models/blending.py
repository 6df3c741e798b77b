"""
SST blending functions F1, F2, F3.

Reference: Menter, F.R., Kuntz, M. & Langtry, R. "Ten years of industrial
           experience with the SST turbulence model." Turbulence, Heat and
           Mass Transfer 4, 2003. F3: Hellsten, A. AIAA-98-2554, 1998.
"""

import numpy as np

from dolfinx_pans.config import SSTCoeffs

CD_K_OMEGA_MIN = 1e-10  # Floor on the cross-diffusion term inside F1
Y_MIN = 1e-10  # Wall-distance floor


class BlendingFunctions:
    """Stateless per-cell blending functions; results lie in [0, 1]."""

    def __init__(self, coeffs: SSTCoeffs, y: np.ndarray, nu, omega_min: float = 1e-15) -> None:
        self.coeffs = coeffs
        self._y = np.maximum(np.asarray(y, dtype=float), Y_MIN)
        self._nu = nu
        self._omega_min = omega_min

    def _safe(self, k, omega):
        return np.maximum(k, 0.0), np.maximum(omega, self._omega_min)

    def F1(self, k, omega, CDkOmega):
        """
        Inner (k-omega) vs outer (k-epsilon) coefficient blend.

        With the F3 switch on the result is max(F1, F3).
        """
        c = self.coeffs
        k, omega = self._safe(k, omega)
        y = self._y
        CDkOmegaPlus = np.maximum(CDkOmega, CD_K_OMEGA_MIN)

        arg1 = np.minimum(
            np.minimum(
                np.maximum(
                    np.sqrt(k) / (c.betaStar * omega * y),
                    500.0 * self._nu / (y**2 * omega),
                ),
                (4.0 * c.alphaOmega2) * k / (CDkOmegaPlus * y**2),
            ),
            10.0,
        )
        F1 = np.tanh(arg1**4)
        if c.F3:
            F1 = np.maximum(F1, self.F3(omega))
        return F1

    def F2(self, k, omega):
        """Blend used by the eddy-viscosity stress limiter."""
        c = self.coeffs
        k, omega = self._safe(k, omega)
        y = self._y

        arg2 = np.minimum(
            np.maximum(
                2.0 * np.sqrt(k) / (c.betaStar * omega * y),
                500.0 * self._nu / (y**2 * omega),
            ),
            100.0,
        )
        return np.tanh(arg2**2)

    def F3(self, omega):
        """
        Roughness correction; identically 1 unless the F3 switch is on.

        When enabled it enters F1 by elementwise max and scales F2 in F23.
        """
        omega = np.maximum(omega, self._omega_min)
        if not self.coeffs.F3:
            return np.ones_like(omega, dtype=float)
        arg3 = np.minimum(150.0 * self._nu / (omega * self._y**2), 10.0)
        return 1.0 - np.tanh(arg3**4)

    def F23(self, k, omega):
        """Limiter blend: F2, times F3 when the roughness term is enabled."""
        F23 = self.F2(k, omega)
        if self.coeffs.F3:
            F23 = F23 * self.F3(omega)
        return F23

    @staticmethod
    def blend(F1, psi1: float, psi2: float):
        """psi = F1*psi1 + (1 - F1)*psi2."""
        return F1 * (psi1 - psi2) + psi2
