"""
Frozen-flow channel driver for the PANS k-ω SST closure - DOLFINx 0.10.0+

The mean velocity is imposed (Reichardt law of the wall in wall units) and
held fixed; the closure is iterated with one correct() per outer iteration
until the relative change of k falls below solve.steady_tol. This exercises
the full closure (filter width, fK/fOmega, both transport solves and the
nut limiter) on a realistic wall-bounded shear profile.
"""

from pathlib import Path

import numpy as np

from dolfinx.fem import Function, functionspace

from dolfinx_pans.config import ChannelGeom, NondimParams, SolveParams, TurbParams
from dolfinx_pans.dolfinx_backend import DolfinxFlow, DolfinxMesh, DolfinxTransportSolver
from dolfinx_pans.fields import FieldRegistry, ScalarField, fixed_value, zero_gradient
from dolfinx_pans.geometry import (
    channel_wall_distance,
    compute_wall_distance_channel,
    frozen_velocity_channel,
    infer_first_offwall_spacing,
    initial_k_channel,
    initial_omega_channel,
    mark_channel_boundaries,
    omega_wall_value,
    reichardt_u_plus,
)
from dolfinx_pans.models import create_model
from dolfinx_pans.utils import (
    HistoryWriterCSV,
    StepTablePrinter,
    field_range,
    fmt_pair_sci,
    fmt_sci,
    relative_change,
)


def _wall_bcs(mesh_if: DolfinxMesh, wall_value: float) -> dict:
    bcs = {p: zero_gradient(mesh_if.patch_face_cells(p)) for p in mesh_if.patches}
    bcs["wall"] = fixed_value(np.full(mesh_if.patch_face_cells("wall").size, wall_value))
    return bcs


def solve_channel_pans(
    domain,
    geom: ChannelGeom,
    nondim: NondimParams,
    turb: TurbParams,
    solve: SolveParams,
    config_source,
    results_dir: Path,
):
    """
    Iterate the closure on a frozen channel profile.

    Returns:
        (model, u, S, mesh_if, n_iter)
    """
    comm = domain.comm
    nu = 1.0 / nondim.Re_tau

    S = functionspace(domain, ("Lagrange", 1))
    V = functionspace(domain, ("Lagrange", 1, (domain.geometry.dim,)))

    u = Function(V, name="velocity")
    u.interpolate(lambda x: frozen_velocity_channel(x, nondim.Re_tau, geom.Ly, geom.use_symmetry))
    u.x.scatter_forward()

    patches = mark_channel_boundaries(domain, geom)
    y_wall = compute_wall_distance_channel(S, geom.Ly, geom.use_symmetry)
    mesh_if = DolfinxMesh(S, y_wall, patches)
    flow = DolfinxFlow(u, S)

    y_first = infer_first_offwall_spacing(domain, geom.Ly, geom.use_symmetry)
    omega_wall = omega_wall_value(nu, y_first)
    H = geom.Ly if geom.use_symmetry else geom.Ly / 2.0

    y = y_wall.x.array
    k = ScalarField("k", initial_k_channel(y), bcs=_wall_bcs(mesh_if, 0.0))
    omega = ScalarField(
        "omega", initial_omega_channel(y, nu, H=H), bcs=_wall_bcs(mesh_if, omega_wall)
    )

    wall = ["wall"]
    transport = DolfinxTransportSolver(
        mesh_if, u, solve.dt,
        dirichlet={"k": wall, "omega": wall, "kU": wall, "omegaU": wall},
    )
    registry = FieldRegistry(time_name="0")

    model = create_model(
        turb.model, mesh_if, flow, transport,
        nu=nu, k=k, omega=omega, turb=turb, registry=registry,
        config_source=config_source,
    )
    is_pans = model.model_name == "kOmegaSSTPANS"

    if comm.rank == 0:
        print(f"\nIterating {model.display_name} on a frozen Reichardt profile", flush=True)
        print(f"nu = {nu:.3e}, omega_wall = {omega_wall:.3e}, dt = {solve.dt}", flush=True)
        if is_pans:
            print(f"Filter width: {model.coeffs.delta}", flush=True)
        print(flush=True)

    table = None
    hist = None
    if comm.rank == 0 and solve.log_interval > 0:
        table = StepTablePrinter([
            ("iter", 6),
            ("res_k", 9),
            ("res_w", 9),
            ("k[min,max]", 20),
            ("ω[min,max]", 20),
            ("fK[min,max]", 20),
            ("nu_t/nu", 10),
        ])
        hist = HistoryWriterCSV(
            results_dir / "history.csv",
            ["iter", "res_k", "res_w", "k_min", "k_max", "omega_min", "omega_max",
             "fK_min", "fK_max", "nu_t_nu_max"],
        )

    n_iter = 0
    try:
        for it in range(1, solve.max_iter + 1):
            registry.set_time(it)
            k_old = model.k().values.copy()
            w_old = model.omega().values.copy()

            model.correct()
            n_iter = it

            res_k = relative_change(model.k().values, k_old, comm)
            res_w = relative_change(model.omega().values, w_old, comm)
            kd = field_range(model.k().values, comm)
            wd = field_range(model.omega().values, comm)
            nd = field_range(model.nut.values / nu, comm)
            fd = field_range(model.fK.values, comm) if is_pans else {"min": 1.0, "max": 1.0}

            if not (kd["finite"] and wd["finite"] and nd["finite"]):
                raise RuntimeError(f"Non-finite turbulence fields at iteration {it}")

            if comm.rank == 0:
                if hist is not None:
                    hist.write({
                        "iter": it, "res_k": res_k, "res_w": res_w,
                        "k_min": kd["min"], "k_max": kd["max"],
                        "omega_min": wd["min"], "omega_max": wd["max"],
                        "fK_min": fd["min"], "fK_max": fd["max"],
                        "nu_t_nu_max": nd["max"],
                    })
                if table is not None and (it == 1 or it % solve.log_interval == 0):
                    table.row([
                        it,
                        fmt_sci(res_k, prec=2),
                        fmt_sci(res_w, prec=2),
                        fmt_pair_sci(kd["min"], kd["max"]),
                        fmt_pair_sci(wd["min"], wd["max"]),
                        fmt_pair_sci(fd["min"], fd["max"]),
                        f"{nd['max']:.2f}",
                    ])

            if max(res_k, res_w) < solve.steady_tol:
                if comm.rank == 0:
                    print(f"\nConverged at iteration {it} (res < {solve.steady_tol:.1e})", flush=True)
                break
        else:
            if comm.rank == 0:
                print(f"\nReached max_iter={solve.max_iter} without meeting steady_tol", flush=True)
    finally:
        if hist is not None:
            hist.close()
        transport.destroy()

    return model, u, S, mesh_if, n_iter


def write_profiles_csv(model, S, geom: ChannelGeom, Re_tau: float, save_path: Path) -> None:
    """
    Wall-normal profiles averaged over x (nodes sharing a y coordinate).

    Columns: y, y_plus, u_plus, k, omega, nu_t_over_nu, fK, fOmega
    """
    comm = S.mesh.comm
    n_local = S.dofmap.index_map.size_local
    y_local = S.tabulate_dof_coordinates()[:n_local, 1]
    y_w_local = channel_wall_distance(y_local, geom.Ly, geom.use_symmetry)
    ux = reichardt_u_plus(y_w_local * Re_tau)
    is_pans = model.model_name == "kOmegaSSTPANS"
    ones = np.ones(n_local)
    columns = [
        ux,
        model.k().values[:n_local],
        model.omega().values[:n_local],
        model.nut.values[:n_local] * Re_tau,
        model.fK.values[:n_local] if is_pans else ones,
        model.fOmega.values[:n_local] if is_pans else ones,
    ]
    local = np.column_stack([y_local] + columns)
    gathered = comm.gather(local, root=0)
    if comm.rank != 0:
        return

    data = np.concatenate(gathered, axis=0)
    y_round = np.round(data[:, 0], 12)
    y_unique, inverse = np.unique(y_round, return_inverse=True)
    counts = np.bincount(inverse)
    means = np.column_stack([
        np.bincount(inverse, weights=data[:, j]) / counts for j in range(1, data.shape[1])
    ])
    y_w = y_unique if geom.use_symmetry else np.minimum(y_unique, geom.Ly - y_unique)

    save_path.parent.mkdir(parents=True, exist_ok=True)
    np.savetxt(
        save_path,
        np.column_stack([y_unique, y_w * Re_tau, means]),
        delimiter=",",
        header="y,y_plus,u_plus,k,omega,nu_t_over_nu,fK,fOmega",
        comments="",
    )
    print(f"  Saved profile CSV: {save_path}")


def print_summary(model, comm, results_dir: Path) -> None:
    """Final field ranges (all ranks must call)."""
    ranges = {
        "k": field_range(model.k().values, comm),
        "ω": field_range(model.omega().values, comm),
        "ν_t": field_range(model.nut.values, comm),
        "ε": field_range(model.epsilon().values, comm),
    }
    if model.model_name == "kOmegaSSTPANS":
        ranges["kU"] = field_range(model.kU().values, comm)
        ranges["fK"] = field_range(model.fK.values, comm)
        ranges["fOmega"] = field_range(model.fOmega.values, comm)
    if comm.rank == 0:
        print("\n" + "─" * 50)
        print("FINAL CLOSURE SUMMARY")
        print("─" * 50)
        for name, r in ranges.items():
            print(f"  {name + ':':<10} [{r['min']:.4e}, {r['max']:.4e}]")
        print("─" * 50)
        print(f"Results saved to {results_dir}/")
        print("=" * 60, flush=True)

