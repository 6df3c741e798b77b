"""DOLFINx backend (requires DOLFINx)."""

import numpy as np
import pytest


def _can_import_dolfinx():
    """Check if DOLFINx is available."""
    try:
        import dolfinx  # noqa: F401
        return True
    except ImportError:
        return False


pytestmark = pytest.mark.skipif(not _can_import_dolfinx(), reason="DOLFINx not available")


def _geom(**overrides):
    from dolfinx_pans.config import ChannelGeom

    data = dict(
        Lx=1.0, Ly=1.0, Nx=4, Ny=16,
        mesh_type="quad", y_first=0.0278, growth_rate=1.1,
    )
    data.update(overrides)
    return ChannelGeom(**data)


def _backend(geom):
    from dolfinx.fem import functionspace

    from dolfinx_pans.dolfinx_backend import DolfinxMesh
    from dolfinx_pans.geometry import (
        compute_wall_distance_channel,
        create_channel_mesh,
        mark_channel_boundaries,
    )

    domain = create_channel_mesh(geom)
    S = functionspace(domain, ("Lagrange", 1))
    y_wall = compute_wall_distance_channel(S, geom.Ly, geom.use_symmetry)
    mesh_if = DolfinxMesh(S, y_wall, mark_channel_boundaries(domain, geom))
    return domain, S, mesh_if


def test_mesh_creation():
    from dolfinx_pans.geometry import create_channel_mesh

    domain = create_channel_mesh(_geom(y_first=0.0, growth_rate=1.0))
    assert domain.topology.dim == 2


def test_inconsistent_wall_spacing_raises():
    from dolfinx_pans.geometry import create_channel_mesh

    with pytest.raises(ValueError, match="Inconsistent wall spacing"):
        create_channel_mesh(_geom(y_first=0.5, growth_rate=1.1))


def test_mesh_interface():
    from mpi4py import MPI

    geom = _geom(y_first=0.0, growth_rate=1.0)
    domain, S, mesh_if = _backend(geom)

    n_local = S.dofmap.index_map.size_local
    area = domain.comm.allreduce(float(np.sum(mesh_if.cell_volumes()[:n_local])), op=MPI.SUM)
    assert area == pytest.approx(geom.Lx * geom.Ly)

    assert mesh_if.gdim == 2
    assert mesh_if.n_cells == S.dofmap.index_map.size_local + S.dofmap.index_map.num_ghosts
    assert set(mesh_if.patches) == {"inlet", "outlet", "wall", "symmetry"}
    assert np.all(mesh_if.max_cell_extent() > 0.0)

    # Gradient of a linear field is exact on P1
    y = S.tabulate_dof_coordinates()[:, 1]
    g = mesh_if.grad(3.0 * y)
    np.testing.assert_allclose(g[:, 0], 0.0, atol=1e-10)
    np.testing.assert_allclose(g[:, 1], 3.0, rtol=1e-10)


def test_pans_correct_on_channel(tmp_path):
    from dolfinx_pans.config import DictConfigSource, NondimParams, SolveParams, TurbParams
    from dolfinx_pans.geometry import create_channel_mesh
    from dolfinx_pans.solver import solve_channel_pans

    geom = _geom()
    domain = create_channel_mesh(geom, Re_tau=100.0)
    source = DictConfigSource({"delta": "cubeRootVol"})
    solve = SolveParams(dt=0.01, max_iter=3, steady_tol=1e-12, log_interval=1, out_dir=str(tmp_path))

    model, u, S, mesh_if, n_iter = solve_channel_pans(
        domain, geom, NondimParams(Re_tau=100.0), TurbParams(), solve, source, tmp_path
    )
    assert n_iter == 3
    for f in (model.k(), model.omega(), model.nut, model.kU(), model.omegaU()):
        assert np.all(np.isfinite(f.values)), f.name
    assert np.all(model.fK.values >= 0.1) and np.all(model.fK.values <= 1.0)
    if domain.comm.rank == 0:
        assert (tmp_path / "history.csv").exists()
