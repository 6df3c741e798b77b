"""
Utility functions for dolfinx-pans.

Config loading and strict dataclass construction, run metadata for a
results folder, iteration tables, CSV history and MPI-reduced field
diagnostics.
"""

from __future__ import annotations

import csv
import dataclasses
import json
import math
import os
import platform
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, TypeVar

import numpy as np

T = TypeVar("T")


# =============================================================================
# Configuration
# =============================================================================


def load_json_config(config_path: str | Path) -> dict[str, Any]:
    """Parse a JSON case file (FileNotFoundError when absent)."""
    path = Path(config_path)
    if not path.is_file():
        raise FileNotFoundError(f"Config not found: {path}")
    with open(path) as fh:
        return json.load(fh)


def dc_from_dict(cls: type[T], data: Mapping[str, Any] | None, *, name: str = "config") -> T:
    """
    Instantiate dataclass `cls` from `data`, rejecting unknown keys and
    reporting every missing required field. Keys starting with "_" are
    treated as comments.
    """
    given = {k: v for k, v in (data or {}).items() if not str(k).startswith("_")}
    fields = {f.name: f for f in dataclasses.fields(cls)}

    unknown = sorted(k for k in given if k not in fields)
    if unknown:
        raise ValueError(f"Unknown keys in {name}: {unknown}")

    missing = sorted(
        f.name
        for f in fields.values()
        if f.name not in given
        and f.default is dataclasses.MISSING
        and f.default_factory is dataclasses.MISSING
    )
    if missing:
        raise ValueError(f"Missing keys in {name}: {missing}")

    return cls(**given)


def print_dc_json(obj: Any) -> None:
    """Dump a dataclass (or mapping) as indented, key-sorted JSON."""
    payload = dataclasses.asdict(obj) if dataclasses.is_dataclass(obj) else obj
    print(json.dumps(payload, indent=2, sort_keys=True, default=dict))


# =============================================================================
# Results folder
# =============================================================================


@dataclasses.dataclass(frozen=True)
class CasePaths:
    case_dir: Path
    config_used_json: Path
    run_info_json: Path
    history_csv: Path
    profiles_csv: Path


def _git_state(start_dir: Path) -> dict[str, str] | None:
    """Repository root, HEAD and dirty flag, or None outside a git checkout."""
    def git(*args, cwd):
        out = subprocess.check_output(["git", *args], cwd=str(cwd), stderr=subprocess.DEVNULL)
        return out.decode().strip()

    try:
        root = git("rev-parse", "--show-toplevel", cwd=start_dir)
        return {
            "root": root,
            "sha": git("rev-parse", "HEAD", cwd=root),
            "dirty": "1" if git("status", "--porcelain", cwd=root) else "0",
        }
    except (OSError, subprocess.CalledProcessError):
        return None


def _dump_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, sort_keys=True))


def prepare_case_dir(
    out_dir: str | Path,
    *,
    config_path: Path | None,
    cfg: Mapping[str, Any],
) -> CasePaths:
    """
    Create the results folder with config_used.json (the parsed case file)
    and run_info.json (interpreter, platform, package version, git state).
    """
    from dolfinx_pans import __version__

    case_dir = Path(out_dir)
    paths = CasePaths(
        case_dir=case_dir,
        config_used_json=case_dir / "config_used.json",
        run_info_json=case_dir / "run_info.json",
        history_csv=case_dir / "history.csv",
        profiles_csv=case_dir / "profiles.csv",
    )
    case_dir.mkdir(parents=True, exist_ok=True)
    _dump_json(paths.config_used_json, dict(cfg))

    run_info: dict[str, Any] = {
        "timestamp_utc": datetime.now(timezone.utc).isoformat(),
        "cwd": os.getcwd(),
        "config_path": str(config_path) if config_path else None,
        "python": {"executable": sys.executable, "version": sys.version},
        "platform": {
            "system": platform.system(),
            "release": platform.release(),
            "machine": platform.machine(),
        },
        "dolfinx_pans_version": __version__,
    }
    git = _git_state(Path(__file__).parent)
    if git:
        run_info["git"] = git
    _dump_json(paths.run_info_json, run_info)
    return paths


# =============================================================================
# Iteration logging
# =============================================================================


def fmt_sci(x: float, *, prec: int = 1, sign: bool = False) -> str:
    """Scientific notation; non-finite values print as 'nan'."""
    x = float(x)
    if not math.isfinite(x):
        return "nan"
    return f"{x:{'+' if sign else ''}.{prec}e}"


def fmt_pair_sci(a: float, b: float, *, prec: int = 1, sign: bool = True) -> str:
    """'min,max' pair, e.g. '+1.0e-01,+1.0e+00'."""
    return ",".join(fmt_sci(v, prec=prec, sign=sign) for v in (a, b))


class StepTablePrinter:
    """
    Fixed-width iteration table; the header is printed before the first row.

    Example:
        table = StepTablePrinter([("iter", 6), ("fK[min,max]", 20), ("res_k", 9)])
        table.row([100, "+1.0e-01,+1.0e+00", "1.2e-04"])
    """

    def __init__(self, columns: list[tuple[str, int]], *, gap: str = " ") -> None:
        self.columns = list(columns)
        self.gap = gap
        self._header_done = False

    def _format(self, cells) -> str:
        return self.gap.join(str(c).rjust(w) for c, (_, w) in zip(cells, self.columns))

    def row(self, values: list[object]) -> None:
        if len(values) != len(self.columns):
            raise ValueError(f"Expected {len(self.columns)} columns, got {len(values)} values")
        if not self._header_done:
            print(self._format([label for label, _ in self.columns]), flush=True)
            self._header_done = True
        print(self._format(values), flush=True)


class HistoryWriterCSV:
    """Per-iteration scalar history; appends to an existing file, flushes every row."""

    def __init__(self, path: Path, fieldnames: list[str]) -> None:
        self.path = Path(path)
        self.fieldnames = list(fieldnames)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        write_header = not self.path.exists()
        self._fh = open(self.path, "a", newline="")
        self._writer = csv.DictWriter(self._fh, fieldnames=self.fieldnames, extrasaction="ignore")
        if write_header:
            self._writer.writeheader()
            self._fh.flush()

    def write(self, row: Mapping[str, object]) -> None:
        if self._fh is None:
            return
        self._writer.writerow(
            {k: (f"{v:.16e}" if isinstance(v, float) else v) for k, v in row.items()}
        )
        self._fh.flush()

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None


# =============================================================================
# Field diagnostics
# =============================================================================


def field_range(values: np.ndarray, comm=None) -> dict[str, float | bool]:
    """
    min/max of a per-cell array and whether every entry is finite.

    comm: optional mpi4py communicator; local reduction only when None.
    """
    a = np.asarray(values, dtype=float)
    lo = float(np.nanmin(a)) if a.size else math.inf
    hi = float(np.nanmax(a)) if a.size else -math.inf
    finite = bool(np.isfinite(a).all())

    if comm is not None:
        from mpi4py import MPI

        lo = float(comm.allreduce(lo, op=MPI.MIN))
        hi = float(comm.allreduce(hi, op=MPI.MAX))
        finite = bool(comm.allreduce(finite, op=MPI.LAND))
    return {"min": lo, "max": hi, "finite": finite}


def relative_change(new_arr: np.ndarray, old_arr: np.ndarray, comm=None) -> float:
    """||new - old|| / ||new|| (floored at 1e-10), summed over ranks when comm is given."""
    new_arr = np.asarray(new_arr, dtype=float)
    diff = new_arr - np.asarray(old_arr, dtype=float)
    sums = np.array([diff @ diff, new_arr @ new_arr])
    if comm is not None:
        from mpi4py import MPI

        sums = np.array([comm.allreduce(float(s), op=MPI.SUM) for s in sums])
    return float(np.sqrt(sums[0]) / max(np.sqrt(sums[1]), 1e-10))
