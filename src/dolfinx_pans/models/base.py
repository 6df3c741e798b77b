"""
Abstract base classes for the k-omega closures.

TurbulenceClosure is what the flow solver sees: nut, k, omega, correct()
and read(). BaselineClosureModel is the capability interface a resolution
control extension (PANS) needs from the model it wraps: fields, blended
coefficients, blending functions and the baseline source terms.

Closures own mesh-sized field buffers and cannot be copied.
"""

from abc import ABC, abstractmethod

import numpy as np

from dolfinx_pans.config import SSTCoeffs, TurbParams
from dolfinx_pans.fields import FieldRegistry, ScalarField, calculated, zero_gradient
from dolfinx_pans.interfaces import FlowInterface, MeshInterface, TransportSolver
from dolfinx_pans.models.blending import BlendingFunctions
from dolfinx_pans.models.sources import SourceInputs, SourceTerms, velocity_gradient_invariants


class TurbulenceClosure(ABC):
    """Abstract interface for a two-equation eddy-viscosity closure."""

    # ── Metadata ──────────────────────────────────────────────────

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Registry key, e.g. 'kOmegaSSTPANS'."""

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable label."""

    # ── Fields ────────────────────────────────────────────────────

    @property
    @abstractmethod
    def nut(self) -> ScalarField:
        """Eddy viscosity consumed by the momentum solve."""

    @abstractmethod
    def k(self) -> ScalarField:
        """Resolved-model turbulence kinetic energy."""

    @abstractmethod
    def omega(self) -> ScalarField:
        """Resolved-model specific dissipation rate."""

    @abstractmethod
    def epsilon(self) -> ScalarField:
        """Diagnostic dissipation rate betaStar*k*omega (a new registered field)."""

    # ── Lifecycle ─────────────────────────────────────────────────

    @abstractmethod
    def correct(self) -> None:
        """One outer iteration: solve the transport equations, update nut."""

    @abstractmethod
    def read(self) -> bool:
        """Reload coefficients; False (and no state change) on failure."""

    def __copy__(self):
        raise TypeError(f"{type(self).__name__} owns its fields and cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError(f"{type(self).__name__} owns its fields and cannot be copied")


class BaselineClosureModel(TurbulenceClosure):
    """
    Shared state and extension points of a k-omega SST style baseline.

    Args:
        mesh, flow, solver: external collaborators (see dolfinx_pans.interfaces)
        nu: kinematic viscosity
        k, omega: transported fields, owned by the model from here on
        coeffs: SST coefficient set
        turb: k/omega floors
        registry: naming context for derived fields (nut, epsilon)
    """

    def __init__(
        self,
        mesh: MeshInterface,
        flow: FlowInterface,
        solver: TransportSolver,
        *,
        nu: float,
        k: ScalarField,
        omega: ScalarField,
        coeffs: SSTCoeffs | None = None,
        turb: TurbParams | None = None,
        registry: FieldRegistry | None = None,
    ) -> None:
        for f in (k, omega):
            if len(f) != mesh.n_cells:
                raise ValueError(
                    f"Field '{f.name}' has {len(f)} cells, mesh has {mesh.n_cells}"
                )
        self.mesh = mesh
        self.flow = flow
        self.solver = solver
        self.nu = float(nu)
        self.turb = turb or TurbParams()
        self.registry = registry or FieldRegistry()
        self._k = k
        self._omega = omega
        k.correct_boundary_conditions()
        omega.correct_boundary_conditions()
        self._y = np.asarray(mesh.wall_distance(), dtype=float)
        self.set_coeffs(coeffs or SSTCoeffs())

        self._nut = self.registry.new_field(
            "nut",
            np.zeros(mesh.n_cells),
            bcs={p: zero_gradient(mesh.patch_face_cells(p)) for p in mesh.patches},
        )

    # ── Coefficients ──────────────────────────────────────────────

    def set_coeffs(self, coeffs: SSTCoeffs) -> None:
        """Replace the coefficient set (and the blending functions built from it)."""
        self.coeffs = coeffs
        self.blending = BlendingFunctions(coeffs, self._y, self.nu, self.turb.omega_min)

    def alphaK(self, F1):
        return BlendingFunctions.blend(F1, self.coeffs.alphaK1, self.coeffs.alphaK2)

    def alphaOmega(self, F1):
        return BlendingFunctions.blend(F1, self.coeffs.alphaOmega1, self.coeffs.alphaOmega2)

    def beta(self, F1):
        return BlendingFunctions.blend(F1, self.coeffs.beta1, self.coeffs.beta2)

    def gamma(self, F1):
        return BlendingFunctions.blend(F1, self.coeffs.gamma1, self.coeffs.gamma2)

    # ── Fields ────────────────────────────────────────────────────

    @property
    def nut(self) -> ScalarField:
        return self._nut

    def k(self) -> ScalarField:
        return self._k

    def omega(self) -> ScalarField:
        return self._omega

    def epsilon(self) -> ScalarField:
        k, omega = self._k, self._omega
        bs = self.coeffs.betaStar
        bcs = {}
        for patch in self.mesh.patches:
            if patch in k.boundary and patch in omega.boundary:
                bcs[patch] = calculated(
                    lambda p=patch: bs * k.boundary[p] * omega.boundary[p]
                )
            else:
                bcs[patch] = zero_gradient(self.mesh.patch_face_cells(patch))
        return self.registry.new_field("epsilon", bs * k.values * omega.values, bcs=bcs)

    # ── Shared per-iteration helpers ──────────────────────────────

    def strain_invariants(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """(S2, GbyNu, divU) from the current velocity gradient."""
        S2, GbyNu, _ = velocity_gradient_invariants(self.flow.grad_u())
        return S2, GbyNu, np.asarray(self.flow.div_u(), dtype=float)

    def pre_correct(self) -> None:
        """Bookkeeping before an iteration: sync the boundary values of k and omega."""
        self._k.correct_boundary_conditions()
        self._omega.correct_boundary_conditions()

    # ── Extension points ──────────────────────────────────────────

    @abstractmethod
    def k_source(self, inp: SourceInputs) -> SourceTerms:
        """Baseline k-equation source."""

    @abstractmethod
    def omega_source(self, inp: SourceInputs) -> SourceTerms:
        """Baseline omega-equation source (without Qsas)."""

    @abstractmethod
    def Qsas(self, S2, gamma, beta, inp: SourceInputs) -> SourceTerms:
        """Optional SAS source of the baseline (zero for plain SST)."""

    @abstractmethod
    def correct_nut(self, S2=None, F2=None) -> None:
        """Recompute nut (from the current velocity when S2/F2 are omitted)."""
