"""
Command-line interface for dolfinx-pans.

Usage:
    dolfinx-pans config.json
    dolfinx-pans --print-only config.json
"""

import argparse
import sys
from pathlib import Path

from dolfinx_pans.config import (
    ChannelGeom,
    JsonConfigSource,
    NondimParams,
    SolveParams,
    TurbParams,
    parse_pans_coeffs,
)
from dolfinx_pans.utils import (
    dc_from_dict,
    load_json_config,
    prepare_case_dir,
    print_dc_json,
)

PANS_SECTION = "kOmegaSSTPANSCoeffs"
SST_SECTION = "kOmegaSSTCoeffs"


def _run_channel(cfg, cfg_path, turb, solve_params):
    """Run the frozen-flow channel case."""
    from mpi4py import MPI

    from dolfinx_pans.geometry import create_channel_mesh
    from dolfinx_pans.plotting import plot_convergence, plot_profiles
    from dolfinx_pans.solver import print_summary, solve_channel_pans, write_profiles_csv

    geom = dc_from_dict(ChannelGeom, cfg["geom"], name="geom")
    nondim = dc_from_dict(NondimParams, cfg["nondim"], name="nondim")
    Re_tau = nondim.Re_tau
    comm = MPI.COMM_WORLD

    results_dir = Path(solve_params.out_dir)
    if comm.rank == 0:
        prepare_case_dir(results_dir, config_path=cfg_path, cfg=cfg)
    comm.barrier()

    if comm.rank == 0:
        print("=" * 60)
        print("PANS k-ω SST CHANNEL (FROZEN FLOW) - dolfinx-pans")
        print("=" * 60)
        print(f"Mode: NONDIMENSIONAL (Re_τ = {Re_tau})")
        print(f"Scaling: δ = 1, u_τ = 1, ν* = 1/Re_τ = {1.0/Re_tau:.6f}")
        print(f"Mesh: {geom.Nx}×{geom.Ny} ({geom.mesh_type}, {geom.stretching})")
        print(f"Domain: {geom.Lx:.2f} × {geom.Ly:.2f}")
        print(f"Model: {turb.model}")
        print(flush=True)

    domain = create_channel_mesh(geom, Re_tau=Re_tau)
    section = PANS_SECTION if turb.model.lower() == "komegasstpans" else SST_SECTION
    source = JsonConfigSource(cfg_path, section=section)

    model, u, S, mesh_if, n_iter = solve_channel_pans(
        domain, geom, nondim, turb, solve_params, source, results_dir
    )

    profiles_csv = results_dir / "profiles.csv"
    write_profiles_csv(model, S, geom, Re_tau, profiles_csv)
    if comm.rank == 0:
        plot_profiles(profiles_csv, save_path=results_dir / "profiles.png")
        history_file = results_dir / "history.csv"
        if history_file.exists():
            plot_convergence(history_file, save_path=results_dir / "convergence.png")

    print_summary(model, comm, results_dir)
    return 0


def main():
    """Run the PANS closure on a channel from the command line."""
    p = argparse.ArgumentParser(
        description="PANS k-ω SST closure for DOLFINx (frozen-flow channel)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    dolfinx-pans channel_pans.json
    dolfinx-pans --print-only channel_pans.json

Environment:
    Requires DOLFINx 0.10.0+ (except --print-only).
    Activate your FEniCSx environment before running.
        """,
    )
    p.add_argument("config", type=str, help="JSON config file")
    p.add_argument("--print-only", action="store_true", help="Print config and exit")
    args = p.parse_args()

    cfg_path = Path(args.config)
    cfg = load_json_config(cfg_path)

    turb = dc_from_dict(TurbParams, cfg.get("turb", {}), name="turb")
    solve_params = dc_from_dict(SolveParams, cfg["solve"], name="solve")

    if args.print_only:
        print_dc_json(dc_from_dict(ChannelGeom, cfg["geom"], name="geom"))
        print_dc_json(dc_from_dict(NondimParams, cfg["nondim"], name="nondim"))
        print_dc_json(turb)
        print_dc_json(solve_params)
        if turb.model.lower() == "komegasstpans":
            print_dc_json(parse_pans_coeffs(cfg.get(PANS_SECTION)))
        return 0

    return _run_channel(cfg, cfg_path, turb, solve_params)


if __name__ == "__main__":
    sys.exit(main())
