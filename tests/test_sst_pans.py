"""KOmegaSST and the PANS closure on the numpy line mesh."""

import copy

import numpy as np
import pytest

from conftest import LineMesh, PointImplicitSolver, UniformShearFlow, make_k_omega, pans_config
from dolfinx_pans.config import DictConfigSource, TurbParams
from dolfinx_pans.fields import FieldRegistry
from dolfinx_pans.models import KOmegaSST, KOmegaSSTPANS, create_model


def _assert_state_ok(model, lower=0.1, upper=1.0):
    for f in (model.k(), model.omega(), model.nut, model.kU(), model.omegaU()):
        assert np.all(np.isfinite(f.values)), f.name
    assert np.all(model.k().values >= 0.0)
    assert np.all(model.omega().values > 0.0)
    assert np.all(model.nut.values >= 0.0)
    assert np.all(model.fK.values >= lower) and np.all(model.fK.values <= upper)
    np.testing.assert_allclose(model.fOmega.values, model.coeffs.fEpsilon / model.fK.values)


# =============================================================================
# Construction
# =============================================================================


def test_construction(build_model, registry):
    model = build_model()
    assert isinstance(model, KOmegaSSTPANS)
    assert model.model_name == "kOmegaSSTPANS"
    assert isinstance(model.baseline, KOmegaSST)
    _assert_state_ok(model)

    # Unresolved fields start from the resolved ones scaled by the filter ratios
    np.testing.assert_allclose(model.kU().values, model.k().values * model.fK.values)
    np.testing.assert_allclose(
        model.omegaU().values, model.omega().values * model.fOmega.values
    )
    for name in ("nut", "fK", "fOmega", "kU", "omegaU"):
        assert name in registry

    # kU/omegaU wall values follow the resolved boundary values
    np.testing.assert_array_equal(model.kU().boundary["wall"], [0.0])
    np.testing.assert_allclose(
        model.omegaU().boundary["wall"], model.fOmega.boundary["wall"] * 1.0e3
    )


def test_initial_nut_uses_unresolved_fields(build_model, mesh):
    model = build_model()
    c = model.coeffs
    S2 = 100.0  # dudy = 10
    F2 = model.baseline.blending.F2(model.k().values, model.omega().values)
    expected = c.a1 * model.kU().values / np.maximum(
        c.a1 * model.omegaU().values, c.b1 * F2 * np.sqrt(S2)
    )
    np.testing.assert_allclose(model.nut.values, expected)


def test_absent_source_raises(mesh, flow, solver):
    k, omega = make_k_omega(mesh)
    with pytest.raises(ValueError, match="needs a configuration source"):
        create_model("kOmegaSSTPANS", mesh, flow, solver, nu=1e-3, k=k, omega=omega)


def test_missing_coefficients_raise(mesh, flow, solver):
    k, omega = make_k_omega(mesh)
    baseline = KOmegaSST(mesh, flow, solver, nu=1e-3, k=k, omega=omega)
    with pytest.raises(ValueError, match="not found"):
        KOmegaSSTPANS(baseline, DictConfigSource(None))
    with pytest.raises(ValueError, match="Missing keys"):
        KOmegaSSTPANS(baseline, DictConfigSource({"fEpsilon": 1.0}))
    with pytest.raises(ValueError, match="Unknown filter-length model"):
        KOmegaSSTPANS(baseline, DictConfigSource({"delta": "bogus"}))


def test_field_size_mismatch(flow, solver):
    mesh = LineMesh(n=20)
    k, omega = make_k_omega(LineMesh(n=10))
    with pytest.raises(ValueError, match="has 10 cells, mesh has 20"):
        KOmegaSST(mesh, flow, solver, nu=1e-3, k=k, omega=omega)


def test_create_model_registry(build_model):
    assert build_model("komegasstpans").model_name == "kOmegaSSTPANS"
    assert build_model("kOmegaSST", config={}).model_name == "kOmegaSST"
    with pytest.raises(ValueError, match="Unknown turbulence model 'kEpsilon'"):
        build_model("kEpsilon")
    with pytest.raises(ValueError, match="Invalid kOmegaSSTCoeffs"):
        build_model("kOmegaSST", config={"F3": "maybe"})


# =============================================================================
# correct()
# =============================================================================


def test_correct_keeps_state_bounded(build_model, solver):
    model = build_model()
    for _ in range(5):
        model.correct()
        _assert_state_ok(model)
    # omegaU is solved before kU in every iteration
    assert solver.solved[:2] == ["omegaU", "kU"]


def test_correct_clamps_to_lower_limit(build_model):
    config = pans_config(cubeRootVolCoeffs={"deltaCoeff": 1e-8}, fKlowerLimit=0.25)
    model = build_model(config=config)
    np.testing.assert_array_equal(model.fK.values, 0.25)
    model.correct()
    _assert_state_ok(model, lower=0.25)
    np.testing.assert_array_equal(model.fK.values, 0.25)
    np.testing.assert_allclose(model.fOmega.values, 4.0)


def test_resolved_fields_follow_unresolved(build_model):
    model = build_model()
    model.correct()
    fK_used = model.kU().values / np.maximum(model.k().values, 1e-300)
    assert np.all(fK_used <= 1.0 + 1e-12) and np.all(fK_used >= 0.1 - 1e-12)


def test_coarse_filter_reduces_to_sst(mesh, flow):
    """With fK = fOmega = 1 everywhere the PANS iteration is the SST one."""
    config = pans_config(delta="maxDeltaxyz", maxDeltaxyzCoeffs={"deltaCoeff": 1e6})

    k1, w1 = make_k_omega(mesh)
    sst = create_model(
        "kOmegaSST", mesh, flow, PointImplicitSolver(),
        nu=1e-3, k=k1, omega=w1, registry=FieldRegistry(),
    )
    k2, w2 = make_k_omega(mesh)
    pans = create_model(
        "kOmegaSSTPANS", mesh, flow, PointImplicitSolver(),
        nu=1e-3, k=k2, omega=w2, registry=FieldRegistry(),
        config_source=DictConfigSource(config),
    )
    np.testing.assert_array_equal(pans.fK.values, 1.0)
    np.testing.assert_allclose(pans.nut.values, sst.nut.values, rtol=1e-12)

    for _ in range(3):
        sst.correct()
        pans.correct()
        np.testing.assert_array_equal(pans.fK.values, 1.0)
        np.testing.assert_allclose(pans.k().values, sst.k().values, rtol=1e-10)
        np.testing.assert_allclose(pans.omega().values, sst.omega().values, rtol=1e-10)
        np.testing.assert_allclose(pans.nut.values, sst.nut.values, rtol=1e-10)


def test_zero_turbulence_stays_zero(mesh, flow, solver):
    k, omega = make_k_omega(mesh, k0=0.0)
    model = create_model(
        "kOmegaSSTPANS", mesh, flow, solver,
        nu=1e-3, k=k, omega=omega, config_source=DictConfigSource(pans_config()),
    )
    model.correct()
    np.testing.assert_array_equal(model.k().values, 0.0)
    np.testing.assert_array_equal(model.nut.values, 0.0)
    # fK falls back to the upper limit when Lambda vanishes
    np.testing.assert_array_equal(model.fK.values, 1.0)


def test_k_min_floor(mesh, flow, solver):
    k, omega = make_k_omega(mesh, k0=0.0)
    model = create_model(
        "kOmegaSSTPANS", mesh, flow, solver,
        nu=1e-3, k=k, omega=omega, turb=TurbParams(k_min=1e-8),
        config_source=DictConfigSource(pans_config()),
    )
    model.correct()
    assert np.all(model.k().values >= 1e-8)


def test_sas_enabled(mesh, solver):
    flow = UniformShearFlow(mesh.n_cells, mag_lap=50.0)
    k, omega = make_k_omega(mesh)
    model = create_model(
        "kOmegaSSTPANS", mesh, flow, solver,
        nu=1e-3, k=k, omega=omega,
        config_source=DictConfigSource(pans_config(sas={"enabled": True})),
    )
    model.correct()
    _assert_state_ok(model)


def test_sas_needs_laplacian(build_model):
    model = build_model(config=pans_config(sas={"enabled": "on"}))
    with pytest.raises(NotImplementedError, match="laplacian"):
        model.correct()


def test_correct_nut_arguments(build_model):
    model = build_model()
    with pytest.raises(ValueError, match="both S2 and F2"):
        model.correct_nut(S2=np.zeros(20))
    with pytest.raises(ValueError, match="both S2 and F2"):
        model.baseline.correct_nut(F2=np.ones(20))

    fK_before = model.fK.values.copy()
    # Zero strain: the limiter is inactive and fK is left alone
    model.correct_nut(np.zeros(20), np.ones(20))
    np.testing.assert_allclose(model.nut.values, model.kU().values / model.omegaU().values)
    np.testing.assert_array_equal(model.fK.values, fK_before)


def test_correct_nut_limits_unresolved_fields(build_model):
    model = build_model()
    model.kU().assign(2.0)
    model.omegaU().assign(1.0)
    # b1*F2*sqrt(S2) = 2 > a1*omegaU = 0.31: nut = 0.31*2/2
    model.correct_nut(np.full(20, 4.0), np.ones(20))
    np.testing.assert_allclose(model.nut.values, 0.31)


def test_diffusivities(build_model):
    model = build_model()
    F1 = np.ones(20)
    expected = (model.fK.values / model.fOmega.values) * 0.85 * model.nut.values + 1e-3
    np.testing.assert_allclose(model.DkUEff(F1), expected)
    expected = (model.fK.values / model.fOmega.values) * 0.5 * model.nut.values + 1e-3
    np.testing.assert_allclose(model.DomegaUEff(F1), expected)


# =============================================================================
# read()
# =============================================================================


def test_read_is_idempotent(build_model):
    model = build_model()
    coeffs = model.coeffs
    delta_model = model.state.delta_model
    delta = model.delta().copy()

    assert model.read()
    assert model.read()
    assert model.coeffs == coeffs
    assert model.state.delta_model is delta_model
    np.testing.assert_array_equal(model.delta(), delta)


def test_read_picks_up_changes(mesh, flow, solver):
    k, omega = make_k_omega(mesh)
    source = DictConfigSource(pans_config())
    model = create_model(
        "kOmegaSSTPANS", mesh, flow, solver, nu=1e-3, k=k, omega=omega, config_source=source
    )
    state = model.state
    source.data = pans_config(delta="maxDeltaxyz", fKlowerLimit=0.2, F3="on")
    assert model.read()
    assert model.state is state
    assert model.coeffs.delta == "maxDeltaxyz"
    assert model.coeffs.fKlowerLimit == 0.2
    assert model.baseline.coeffs is model.coeffs
    assert model.baseline.blending.coeffs.F3 is True
    for part in (model.filter_ratio, model.builder, model.corrector):
        assert part.coeffs is model.coeffs
    assert model.state.delta_model.type_name == "maxDeltaxyz"
    np.testing.assert_allclose(model.delta(), max(mesh.dx, mesh.dy))


@pytest.mark.parametrize(
    "bad",
    [
        None,
        {"fEpsilon": 1.0},
        {"delta": "bogus"},
        {"delta": "cubeRootVol", "fKlowerLimit": 0.9, "fKupperLimit": 0.5},
        {"delta": "cubeRootVol", "cubeRootVolCoeffs": {"unknown": 1.0}},
        {"delta": "cubeRootVol", "fKlowerLimit": "low"},
        {"delta": "cubeRootVol", "alphaK1": "abc"},
        {"delta": "cubeRootVol", "fKlowerLimit": 0.3, "cubeRootVolCoeffs": {"deltaCoeff": "abc"}},
        {"delta": "Prandtl", "fKlowerLimit": 0.3, "PrandtlCoeffs": {"Cdelta": "x"}},
        {"delta": "cubeRootVol", "sas": "on"},
    ],
)
def test_failed_read_changes_nothing(mesh, flow, solver, bad):
    k, omega = make_k_omega(mesh)
    source = DictConfigSource(pans_config())
    model = create_model(
        "kOmegaSSTPANS", mesh, flow, solver, nu=1e-3, k=k, omega=omega, config_source=source
    )
    coeffs = model.coeffs
    delta_model = model.state.delta_model
    builder = model.builder
    delta = model.delta().copy()

    source.data = bad
    assert model.read() is False
    assert model.coeffs is coeffs
    assert model.baseline.coeffs is coeffs
    assert model.state.delta_model is delta_model
    assert model.builder is builder
    np.testing.assert_array_equal(model.delta(), delta)


def test_sst_read(mesh, flow, solver):
    k, omega = make_k_omega(mesh)
    source = DictConfigSource({})
    model = create_model(
        "kOmegaSST", mesh, flow, solver, nu=1e-3, k=k, omega=omega, config_source=source
    )
    source.data = {"a1": 0.3}
    assert model.read()
    assert model.coeffs.a1 == 0.3
    source.data = {"a1": 0.3, "delta": "cubeRootVol"}
    assert model.read() is False
    assert model.coeffs.a1 == 0.3
    source.data = None
    assert model.read() is False


# =============================================================================
# Misc
# =============================================================================


def test_models_cannot_be_copied(build_model):
    model = build_model()
    with pytest.raises(TypeError):
        copy.copy(model)
    with pytest.raises(TypeError):
        copy.deepcopy(model)
    with pytest.raises(TypeError):
        copy.deepcopy(model.baseline)


def test_epsilon(build_model, registry):
    model = build_model()
    registry.set_time(3)
    eps = model.epsilon()
    assert eps.name == "epsilon"
    assert eps.time_name == "3"
    assert registry.lookup("epsilon") is eps
    bs = model.coeffs.betaStar
    np.testing.assert_allclose(eps.values, bs * model.k().values * model.omega().values)
    np.testing.assert_allclose(eps.boundary["wall"], [0.0])
    np.testing.assert_allclose(
        eps.boundary["top"], bs * model.k().boundary["top"] * model.omega().boundary["top"]
    )
