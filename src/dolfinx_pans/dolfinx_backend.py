"""
DOLFINx implementations of the closure collaborators - DOLFINx 0.10.0+

Closure "cells" are the DOFs of a P1 scalar space S (local + ghosts, i.e.
Function.x.array). Per-DOF control volumes come from the lumped mass
vector; gradients are interpolated from UFL expressions, as done for
grad(k)·grad(omega) in the RANS models.

The transport solver discretises

    (phi - phi_n)/dt + u·grad(phi) - div(D grad(phi)) = su + sp*phi

with the generic k/omega weak-form template and the same PETSc set-up
(BCGS + BoomerAMG).
"""

import numpy as np
from petsc4py import PETSc

import ufl
from dolfinx.fem import (
    Constant,
    Expression,
    Function,
    dirichletbc,
    form,
    functionspace,
    locate_dofs_topological,
)
from dolfinx.fem.petsc import (
    apply_lifting,
    assemble_matrix,
    assemble_vector,
    create_matrix,
    create_vector,
    set_bc,
)
from ufl import TestFunction, TrialFunction, div, dot, dx, grad, inner, lhs, rhs

from dolfinx_pans.interfaces import FlowInterface, MeshInterface, TransportSolver


def _interpolate(expr, space, name=None) -> Function:
    f = Function(space, name=name)
    f.interpolate(Expression(expr, space.element.interpolation_points))
    f.x.scatter_forward()
    return f


# =============================================================================
# Mesh
# =============================================================================


class DolfinxMesh(MeshInterface):
    """
    Mesh view on the P1 scalar space S.

    Args:
        S: scalar Lagrange-1 function space
        y_wall: wall-distance Function on S
        patches: patch name -> boundary facet indices
    """

    def __init__(self, S, y_wall: Function, patches: dict[str, np.ndarray]) -> None:
        self.S = S
        self.domain = S.mesh
        self._y_wall = y_wall
        self._patches = dict(patches)
        tdim = self.domain.topology.dim
        self._fdim = tdim - 1
        self.domain.topology.create_connectivity(self._fdim, tdim)

        gdim = self.domain.geometry.dim
        self._V_grad = functionspace(self.domain, ("Lagrange", 1, (gdim,)))
        self._tmp = Function(S)
        self._grad_expr = Expression(grad(self._tmp), self._V_grad.element.interpolation_points)
        self._grad_fn = Function(self._V_grad)

        self._volumes = self._lumped_volumes()
        self._extent = _interpolate(ufl.MaxCellEdgeLength(self.domain), S).x.array.copy()
        self._face_cells = {
            name: locate_dofs_topological(S, self._fdim, facets)
            for name, facets in self._patches.items()
        }

    def _lumped_volumes(self) -> np.ndarray:
        """Row sums of the P1 mass matrix: the control volume of each DOF."""
        b = create_vector(self.S)
        with b.localForm() as loc:
            loc.set(0.0)
        assemble_vector(b, form(TestFunction(self.S) * dx))
        b.ghostUpdate(addv=PETSc.InsertMode.ADD_VALUES, mode=PETSc.ScatterMode.REVERSE)
        b.ghostUpdate(addv=PETSc.InsertMode.INSERT_VALUES, mode=PETSc.ScatterMode.FORWARD)
        with b.localForm() as loc:
            vol = loc.array.copy()
        b.destroy()
        return vol

    @property
    def n_cells(self) -> int:
        return self._tmp.x.array.size

    @property
    def gdim(self) -> int:
        return self.domain.geometry.dim

    def cell_volumes(self) -> np.ndarray:
        return self._volumes

    def max_cell_extent(self) -> np.ndarray:
        return self._extent

    def wall_distance(self) -> np.ndarray:
        return self._y_wall.x.array

    def grad(self, values: np.ndarray) -> np.ndarray:
        self._tmp.x.array[:] = values
        self._tmp.x.scatter_forward()
        self._grad_fn.interpolate(self._grad_expr)
        self._grad_fn.x.scatter_forward()
        return self._grad_fn.x.array.reshape(-1, self.gdim).copy()

    @property
    def patches(self) -> list[str]:
        return list(self._patches)

    def patch_face_cells(self, patch: str) -> np.ndarray:
        return self._face_cells[patch]


# =============================================================================
# Flow
# =============================================================================


class DolfinxFlow(FlowInterface):
    """Velocity gradient and |lap U| from a (frozen or evolving) velocity Function."""

    def __init__(self, u: Function, S) -> None:
        self.u = u
        self.S = S
        domain = S.mesh
        gdim = domain.geometry.dim
        self._gdim = gdim
        T = functionspace(domain, ("Lagrange", 1, (gdim, gdim)))
        self._grad_u_fn = Function(T)
        self._grad_u_expr = Expression(grad(u), T.element.interpolation_points)

        # |lap U| from the divergence of the interpolated P1 gradient
        # (the Laplacian of a P1 field vanishes cellwise).
        self._lap_fn = Function(S)
        self._lap_expr = Expression(
            ufl.sqrt(dot(div(self._grad_u_fn), div(self._grad_u_fn)) + 1e-30),
            S.element.interpolation_points,
        )

    def _update_grad(self) -> np.ndarray:
        self._grad_u_fn.interpolate(self._grad_u_expr)
        self._grad_u_fn.x.scatter_forward()
        return self._grad_u_fn.x.array.reshape(-1, self._gdim, self._gdim)

    def grad_u(self) -> np.ndarray:
        g = self._update_grad()
        out = np.zeros((g.shape[0], 3, 3))
        out[:, : self._gdim, : self._gdim] = g
        return out

    def mag_lap_u(self) -> np.ndarray:
        self._update_grad()
        self._lap_fn.interpolate(self._lap_expr)
        self._lap_fn.x.scatter_forward()
        return self._lap_fn.x.array.copy()


# =============================================================================
# Transport solver
# =============================================================================


class _EquationForms:
    """Cached forms, coefficient Functions and KSP for one named equation."""

    def __init__(self, S, u, dt_c, bcs) -> None:
        self.phi_n = Function(S)
        self.phi = Function(S)
        self.D = Function(S)
        self.su = Function(S)
        self.sp = Function(S)
        self.bcs = bcs

        phi_trial = TrialFunction(S)
        v = TestFunction(S)
        F = (
            (phi_trial - self.phi_n) / dt_c * v * dx
            + dot(u, grad(phi_trial)) * v * dx
            + self.D * inner(grad(phi_trial), grad(v)) * dx
            - self.sp * phi_trial * v * dx
            - self.su * v * dx
        )
        self.a = form(lhs(F))
        self.L = form(rhs(F))
        self.A = create_matrix(self.a)
        self.b = create_vector(S)

        self.ksp = PETSc.KSP().create(S.mesh.comm)
        self.ksp.setOperators(self.A)
        self.ksp.setType(PETSc.KSP.Type.BCGS)
        pc = self.ksp.getPC()
        pc.setType(PETSc.PC.Type.HYPRE)
        pc.setHYPREType("boomeramg")
        self.ksp.setTolerances(rtol=1e-8)


class DolfinxTransportSolver(TransportSolver):
    """
    Pseudo-transient assemble/solve of closure transport equations.

    Args:
        mesh: DolfinxMesh (gives S and the patch DOFs)
        u: advecting velocity Function
        dt: pseudo-time step
        dirichlet: equation name -> patches whose field.boundary values are
            imposed strongly; other patches get the natural zero-flux condition
    """

    def __init__(self, mesh: DolfinxMesh, u: Function, dt: float, dirichlet: dict[str, list[str]]) -> None:
        self.mesh = mesh
        self.S = mesh.S
        self.u = u
        self.dt_c = Constant(self.S.mesh, PETSc.ScalarType(dt))
        self.dirichlet = {name: list(p) for name, p in dirichlet.items()}
        self._forms: dict[str, _EquationForms] = {}
        self._bc_values: dict[str, Function] = {}

    def _get_forms(self, name: str) -> _EquationForms:
        forms = self._forms.get(name)
        if forms is None:
            bc_fn = Function(self.S)
            bcs = [
                dirichletbc(bc_fn, self.mesh.patch_face_cells(p))
                for p in self.dirichlet.get(name, [])
            ]
            forms = _EquationForms(self.S, self.u, self.dt_c, bcs)
            self._forms[name] = forms
            self._bc_values[name] = bc_fn
        return forms

    def solve(self, equation) -> np.ndarray:
        f = self._get_forms(equation.name)
        field = equation.field

        bc_fn = self._bc_values[equation.name]
        for patch in self.dirichlet.get(equation.name, []):
            dofs = self.mesh.patch_face_cells(patch)
            bc_fn.x.array[dofs] = field.boundary[patch]
        bc_fn.x.scatter_forward()

        for fn, values in (
            (f.phi_n, field.values),
            (f.D, equation.diffusivity),
            (f.su, equation.su),
            (f.sp, equation.sp),
        ):
            fn.x.array[:] = values
            fn.x.scatter_forward()

        f.A.zeroEntries()
        assemble_matrix(f.A, f.a, bcs=f.bcs)
        f.A.assemble()

        with f.b.localForm() as loc:
            loc.set(0.0)
        assemble_vector(f.b, f.L)
        apply_lifting(f.b, [f.a], [f.bcs])
        f.b.ghostUpdate(addv=PETSc.InsertMode.ADD_VALUES, mode=PETSc.ScatterMode.REVERSE)
        set_bc(f.b, f.bcs)

        f.ksp.solve(f.b, f.phi.x.petsc_vec)
        f.phi.x.scatter_forward()

        reason = f.ksp.getConvergedReason()
        if reason < 0:
            raise RuntimeError(
                f"Linear solve for '{equation.name}' diverged (KSP reason {reason})"
            )
        if not np.all(np.isfinite(f.phi.x.array)):
            raise RuntimeError(f"Linear solve for '{equation.name}' produced non-finite values")
        return f.phi.x.array.copy()

    def destroy(self) -> None:
        for f in self._forms.values():
            f.ksp.destroy()
            f.A.destroy()
            f.b.destroy()
        self._forms.clear()
