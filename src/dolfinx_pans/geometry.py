"""
Channel geometry for the frozen-flow PANS runs.

Half channel (default): wall at y = 0, symmetry plane at y = Ly = delta.
Full channel: walls at y = 0 and y = Ly = 2*delta. The wall-normal
direction can be clustered towards the wall by a geometric series or a
tanh map; the first spacing implied by (Ly, Ny, growth) is checked against
geom.y_first.
"""

import numpy as np
from mpi4py import MPI
from petsc4py import PETSc

from dolfinx import mesh
from dolfinx.mesh import CellType

from dolfinx_pans.config import KAPPA, SST_BETA1, ChannelGeom

STRETCHING_MODES = ("geometric", "tanh")


# =============================================================================
# Wall-normal node distribution
# =============================================================================


def generate_stretched_coords(
    y_first: float, H: float, N: int, growth: float, stretching: str
) -> np.ndarray:
    """N + 1 wall-clustered node positions on [0, H]."""
    if stretching == "geometric":
        return _stretched_coords_geometric(H, N, growth)
    if stretching == "tanh":
        return _stretched_coords_tanh(y_first, H, N)
    raise ValueError(f"Unsupported stretching mode: {stretching}")


def _stretched_coords_geometric(H: float, N: int, growth: float) -> np.ndarray:
    """Spacings dy1*growth^i, scaled so that they sum to H."""
    widths = growth ** np.arange(N, dtype=float)
    y = np.concatenate([[0.0], np.cumsum(widths / widths.sum())]) * H
    y[-1] = H
    return y


def _stretched_coords_tanh(y_first: float, H: float, N: int) -> np.ndarray:
    """
    y(eta) = H * [1 - tanh(b*(1 - eta))/tanh(b)], eta uniform on [0, 1].

    The clustering parameter b is bracketed by doubling and then bisected
    until the first spacing equals y_first.
    """
    if N < 1:
        raise ValueError(f"tanh stretching needs at least one interval, got N={N}")
    if not 0.0 < y_first < H:
        raise ValueError(f"tanh stretching needs 0 < y_first < H (y_first={y_first}, H={H})")
    eta = np.linspace(0.0, 1.0, N + 1)
    if y_first >= H / N:
        return eta * H

    def first_spacing(b: float) -> float:
        return H * (1.0 - np.tanh(b * (1.0 - eta[1])) / np.tanh(b))

    lo, hi = 1e-12, 1.0
    while first_spacing(hi) > y_first:
        lo, hi = hi, 2.0 * hi
        if hi > 1e6:
            raise ValueError(f"tanh stretching cannot reach y_first={y_first:.6e} (H={H}, N={N})")
    for _ in range(80):
        mid = 0.5 * (lo + hi)
        lo, hi = (mid, hi) if first_spacing(mid) > y_first else (lo, mid)

    b = 0.5 * (lo + hi)
    y = H * (1.0 - np.tanh(b * (1.0 - eta)) / np.tanh(b))
    y[0], y[-1] = 0.0, H
    return y


def _wall_normal_coords(geom: ChannelGeom, stretching: str) -> np.ndarray:
    """Node y-coordinates over [0, Ly]; the full channel is mirrored about Ly/2."""
    if geom.use_symmetry:
        return generate_stretched_coords(geom.y_first, geom.Ly, geom.Ny, geom.growth_rate, stretching)
    half = generate_stretched_coords(
        geom.y_first, 0.5 * geom.Ly, geom.Ny // 2, geom.growth_rate, stretching
    )
    return np.concatenate([half, geom.Ly - half[-2::-1]])


# =============================================================================
# Mesh
# =============================================================================


def create_channel_mesh(geom: ChannelGeom, Re_tau: float | None = None):
    """
    Rectangle [0, Lx] x [0, Ly] of triangles or quads.

    With y_first > 0 and stretching requested (tanh, or geometric with
    growth_rate > 1) the wall-normal nodes are moved onto the stretched
    distribution; otherwise the spacing is uniform. Raises ValueError when
    the implied first spacing misses geom.y_first by more than
    geom.y_first_tol_rel.
    """
    comm = MPI.COMM_WORLD
    if geom.y_first_tol_rel < 0:
        raise ValueError(f"geom.y_first_tol_rel must be >= 0, got {geom.y_first_tol_rel}")
    stretching = geom.stretching.lower()
    if stretching not in STRETCHING_MODES:
        raise ValueError(
            f"Unknown geom.stretching='{geom.stretching}'. Expected one of {STRETCHING_MODES}."
        )
    cell_type = CellType.triangle if geom.mesh_type == "triangle" else CellType.quadrilateral
    corners = [[0.0, 0.0], [geom.Lx, geom.Ly]]

    stretched = geom.y_first > 0 and (stretching == "tanh" or geom.growth_rate > 1.0)
    if not stretched:
        if comm.rank == 0 and Re_tau is not None:
            print(f"Uniform mesh: dy = {geom.Ly / geom.Ny:.6f}, y+ = {geom.Ly / geom.Ny * Re_tau:.1f}")
        return mesh.create_rectangle(comm, corners, [geom.Nx, geom.Ny], cell_type=cell_type)

    y_nodes = _wall_normal_coords(geom, stretching)
    dy1 = float(y_nodes[1])
    rel_err = abs(dy1 - geom.y_first) / max(abs(geom.y_first), 1e-16)
    if rel_err > geom.y_first_tol_rel:
        raise ValueError(
            f"Inconsistent wall spacing settings: y_first={geom.y_first:.6e} requested but "
            f"(Ly, Ny, growth_rate, {stretching}) gives {dy1:.6e} "
            f"({100.0 * rel_err:.1f}% off, tolerance {100.0 * geom.y_first_tol_rel:.1f}%)."
        )
    if comm.rank == 0 and Re_tau is not None:
        print(f"Wall-refined mesh ({stretching}): y_first = {dy1:.6f}, y+ = {dy1 * Re_tau:.2f}", flush=True)

    domain = mesh.create_rectangle(comm, corners, [geom.Nx, y_nodes.size - 1], cell_type=cell_type)
    # Piecewise-linear map from the uniform rows onto y_nodes
    x = domain.geometry.x
    x[:, 1] = np.interp(x[:, 1], np.linspace(0.0, geom.Ly, y_nodes.size), y_nodes)
    return domain


# =============================================================================
# Boundary patches
# =============================================================================


def mark_channel_boundaries(domain, geom: ChannelGeom) -> dict[str, np.ndarray]:
    """
    Boundary facets per patch name.

    Half channel: "wall" (y=0), "symmetry" (y=Ly), "inlet", "outlet".
    Full channel: "wall" holds both y=0 and y=Ly.
    """
    fdim = domain.topology.dim - 1

    def on(axis, value):
        return mesh.locate_entities_boundary(
            domain, fdim, lambda x: np.isclose(x[axis], value, atol=1e-10)
        )

    patches = {"inlet": on(0, 0.0), "outlet": on(0, geom.Lx)}
    bottom, top = on(1, 0.0), on(1, geom.Ly)
    if geom.use_symmetry:
        patches["wall"] = bottom
        patches["symmetry"] = top
    else:
        patches["wall"] = np.union1d(bottom, top).astype(np.int32)
    return patches


def infer_first_offwall_spacing(domain, Ly: float, use_symmetry: bool, tol: float = 1e-12) -> float:
    """Smallest positive node wall distance over all ranks."""
    d = channel_wall_distance(domain.geometry.x[:, 1], Ly, use_symmetry)
    d = d[d > tol]
    y_first = domain.comm.allreduce(float(d.min()) if d.size else np.inf, op=MPI.MIN)
    if not np.isfinite(y_first):
        raise RuntimeError("No off-wall mesh node found; cannot infer the first wall spacing")
    return float(y_first)


# =============================================================================
# Frozen velocity and initial conditions (wall units: u_tau = 1, delta = 1)
# =============================================================================


def reichardt_u_plus(y_plus):
    """Reichardt (1951) composite law of the wall."""
    y_plus = np.asarray(y_plus, dtype=float)
    return (
        np.log1p(KAPPA * y_plus) / KAPPA
        + 7.8 * (1.0 - np.exp(-y_plus / 11.0) - (y_plus / 11.0) * np.exp(-y_plus / 3.0))
    )


def channel_wall_distance(y, Ly: float, use_symmetry: bool = True):
    y = np.asarray(y, dtype=float)
    return y if use_symmetry else np.minimum(y, Ly - y)


def frozen_velocity_channel(x, Re_tau: float, Ly: float, use_symmetry: bool = True):
    """Streamwise Reichardt profile u+(y+), y+ = y_wall*Re_tau."""
    y_wall = channel_wall_distance(x[1], Ly, use_symmetry)
    u = reichardt_u_plus(y_wall * Re_tau)
    return np.vstack([u, np.zeros(x.shape[1])]).astype(PETSc.ScalarType)


def initial_k_channel(y_wall, intensity: float = 0.05, u_ref: float = 20.0):
    """Uniform TKE from turbulence intensity, damped to zero at the wall."""
    k_val = max(1.5 * (intensity * u_ref) ** 2, 1e-8)
    y_wall = np.asarray(y_wall, dtype=float)
    return k_val * np.tanh(y_wall / 0.05) ** 2


def omega_wall_value(nu: float, y_first: float) -> float:
    """Near-wall asymptote omega = 6*nu/(beta1*y1^2)."""
    return 6.0 * nu / (SST_BETA1 * y_first**2)


def initial_omega_channel(y_wall, nu: float, H: float = 1.0, intensity: float = 0.05, u_ref: float = 20.0):
    """omega blended from the wall asymptote to a mixing-length bulk value."""
    k_val = max(1.5 * (intensity * u_ref) ** 2, 1e-8)
    omega_bulk = np.sqrt(k_val) / (0.07 * H)

    y_wall = np.maximum(np.asarray(y_wall, dtype=float), 1e-10)
    omega_wall = np.minimum(6.0 * nu / (SST_BETA1 * y_wall**2), 1e8)
    blend = np.tanh(y_wall / (0.1 * H)) ** 2
    return np.maximum((1.0 - blend) * omega_wall + blend * omega_bulk, 1e-6)


def compute_wall_distance_channel(S, Ly: float, use_symmetry: bool = True):
    """Wall distance Function on S: y (half channel) or min(y, Ly - y)."""
    from dolfinx.fem import Function

    y_wall = Function(S, name="wall_distance")
    y_coords = S.tabulate_dof_coordinates()[:, 1]
    y_wall.x.array[:] = np.maximum(channel_wall_distance(y_coords, Ly, use_symmetry), 1e-10)
    y_wall.x.scatter_forward()
    return y_wall
