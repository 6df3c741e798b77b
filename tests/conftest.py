"""
Shared pytest fixtures: a numpy-only wall-normal line mesh, a uniform shear
flow and a point-implicit transport solver, so the closures can be exercised
without DOLFINx.
"""

import numpy as np
import pytest

from dolfinx_pans.config import DictConfigSource
from dolfinx_pans.fields import FieldRegistry, ScalarField, fixed_value, zero_gradient
from dolfinx_pans.interfaces import FlowInterface, MeshInterface, TransportSolver


class LineMesh(MeshInterface):
    """
    A column of n cells stacked in y between a wall (y=0) and a top patch.

    Cell i has centre y = (i + 0.5)*dy, width dx in the other directions.
    """

    def __init__(self, n: int = 20, H: float = 1.0, dx: float = 0.1, gdim: int = 2) -> None:
        self._n = n
        self._gdim = gdim
        self.dx = dx
        self.dy = H / n
        self.y = (np.arange(n) + 0.5) * self.dy

    @property
    def n_cells(self):
        return self._n

    @property
    def gdim(self):
        return self._gdim

    def cell_volumes(self):
        vol = self.dx * self.dy
        if self._gdim == 3:
            vol *= self.dx
        return np.full(self._n, vol)

    def max_cell_extent(self):
        return np.full(self._n, max(self.dx, self.dy))

    def wall_distance(self):
        return self.y.copy()

    def grad(self, values):
        g = np.zeros((self._n, self._gdim))
        g[:, 1] = np.gradient(np.asarray(values, dtype=float), self.y)
        return g

    @property
    def patches(self):
        return ["wall", "top"]

    def patch_face_cells(self, patch):
        return {"wall": np.array([0]), "top": np.array([self._n - 1])}[patch]


class UniformShearFlow(FlowInterface):
    """U = (dudy*y, 0, 0); optional constant |lap U|."""

    def __init__(self, n: int, dudy: float = 10.0, mag_lap: float | None = None) -> None:
        self.n = n
        self.dudy = dudy
        self.mag_lap = mag_lap

    def grad_u(self):
        g = np.zeros((self.n, 3, 3))
        g[:, 1, 0] = self.dudy
        return g

    def mag_lap_u(self):
        if self.mag_lap is None:
            return super().mag_lap_u()
        return np.full(self.n, self.mag_lap)


class PointImplicitSolver(TransportSolver):
    """(phi - phi_n)/dt = su + sp*phi per cell, no transport."""

    def __init__(self, dt: float = 0.1) -> None:
        self.dt = dt
        self.solved = []

    def solve(self, equation):
        self.solved.append(equation.name)
        phi_n = equation.field.values
        return (phi_n / self.dt + equation.su) / (1.0 / self.dt - equation.sp)


def make_k_omega(mesh, k0: float = 0.01, omega0: float = 100.0, omega_wall: float = 1.0e3):
    top = mesh.patch_face_cells("top")
    k = ScalarField(
        "k",
        np.full(mesh.n_cells, k0),
        bcs={"wall": fixed_value(0.0), "top": zero_gradient(top)},
    )
    omega = ScalarField(
        "omega",
        np.full(mesh.n_cells, omega0),
        bcs={"wall": fixed_value(omega_wall), "top": zero_gradient(top)},
    )
    return k, omega


def pans_config(**overrides):
    data = {
        "delta": "cubeRootVol",
        "cubeRootVolCoeffs": {"deltaCoeff": 1.0},
    }
    data.update(overrides)
    return data


@pytest.fixture
def mesh():
    return LineMesh()


@pytest.fixture
def flow(mesh):
    return UniformShearFlow(mesh.n_cells)


@pytest.fixture
def solver():
    return PointImplicitSolver()


@pytest.fixture
def registry():
    return FieldRegistry(time_name="0")


@pytest.fixture
def build_model(mesh, flow, solver, registry):
    """Factory fixture: build_model(name, config) -> closure on the line mesh."""
    from dolfinx_pans.models import create_model

    def _build(name="kOmegaSSTPANS", config=None, **kwargs):
        k, omega = make_k_omega(mesh)
        source = DictConfigSource(pans_config() if config is None else config)
        return create_model(
            name, mesh, flow, solver,
            nu=1e-3, k=k, omega=omega, registry=registry,
            config_source=source, **kwargs,
        )

    return _build
