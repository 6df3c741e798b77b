"""
Interfaces of the external collaborators used by the closure models.

The closures only see per-cell numpy arrays. Everything that needs mesh
topology (gradients, boundary faces), the velocity solve, or a linear
solver goes through these interfaces. `dolfinx_pans.dolfinx_backend`
implements them on DOLFINx.
"""

from abc import ABC, abstractmethod

import numpy as np


class MeshInterface(ABC):
    """Mesh geometry and differential operators seen by the closure."""

    @property
    @abstractmethod
    def n_cells(self) -> int:
        """Number of local cells (or scalar DOFs) carried by every field."""

    @property
    @abstractmethod
    def gdim(self) -> int:
        """Geometric dimension (2 or 3)."""

    @abstractmethod
    def cell_volumes(self) -> np.ndarray:
        """Cell volume (area in 2D) per cell."""

    @abstractmethod
    def max_cell_extent(self) -> np.ndarray:
        """Largest edge length of the cell bounding box, per cell."""

    @abstractmethod
    def wall_distance(self) -> np.ndarray:
        """Distance to the nearest wall, per cell."""

    @abstractmethod
    def grad(self, values: np.ndarray) -> np.ndarray:
        """Cell gradient of a per-cell array, shape (n_cells, gdim)."""

    @property
    @abstractmethod
    def patches(self) -> list[str]:
        """Names of the boundary patches."""

    @abstractmethod
    def patch_face_cells(self, patch: str) -> np.ndarray:
        """Indices of the cells adjacent to each face of a patch."""


class FlowInterface(ABC):
    """Resolved velocity data supplied by the momentum/pressure solve."""

    @abstractmethod
    def grad_u(self) -> np.ndarray:
        """Velocity gradient tensor per cell, shape (n_cells, 3, 3)."""

    def div_u(self) -> np.ndarray:
        """Velocity divergence per cell (trace of grad_u by default)."""
        return np.trace(self.grad_u(), axis1=1, axis2=2)

    def mag_lap_u(self) -> np.ndarray:
        """|laplacian(U)| per cell; only needed by the SAS source term."""
        raise NotImplementedError(
            f"{type(self).__name__} does not provide |laplacian(U)| required by the SAS term"
        )


class TransportSolver(ABC):
    """
    Linear assembly/solve service for one scalar transport equation.

    The solver owns time discretisation, convection by the resolved flux and
    boundary conditions; the closure supplies diffusivity and sources.
    Divergence must be raised (RuntimeError), never returned.
    """

    @abstractmethod
    def solve(self, equation) -> np.ndarray:
        """Assemble and solve `equation` (a TransportEquation); return new cell values."""
