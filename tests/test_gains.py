import numpy as np
import pytest
from control import dlqr

from GCMPC import CostModel, ReferenceModel, SystemModel
from GCMPC.gains import resolve_gains, synthesize_gcc, synthesize_gcrt, synthesize_nilpotent
from gcmpc_cases import double_integrator_config, scalar_config

Ts = 0.1
DOUBLE_INTEGRATOR = SystemModel(np.array([[1.0, Ts], [0.0, 1.0]]), np.array([[Ts ** 2 / 2], [Ts]]))
COST = CostModel(np.diag([1.0, 0.1]), np.array([[0.1]]))


def test_gcc_is_lqr():
    gcc = synthesize_gcc(DOUBLE_INTEGRATOR, COST)
    k, s, _ = dlqr(DOUBLE_INTEGRATOR.a, DOUBLE_INTEGRATOR.b_u, COST.q, COST.r)

    np.testing.assert_allclose(gcc.k, k)
    np.testing.assert_allclose(gcc.p, s)
    np.testing.assert_allclose(gcc.r_bar, COST.r + DOUBLE_INTEGRATOR.b_u.T @ s @ DOUBLE_INTEGRATOR.b_u)
    assert gcc.l is None
    # Stabilizing
    a_cl = DOUBLE_INTEGRATOR.a - DOUBLE_INTEGRATOR.b_u @ gcc.k
    assert np.max(np.abs(np.linalg.eigvals(a_cl))) < 1.0


def test_gcrt_feedforward():
    reference = ReferenceModel(np.array([[0.0], [0.5]]), np.zeros((2, 1)))
    gcrt = synthesize_gcrt(DOUBLE_INTEGRATOR, COST, reference)
    np.testing.assert_allclose(gcrt.l, np.linalg.pinv(DOUBLE_INTEGRATOR.b_u) @ reference.b_r)
    np.testing.assert_allclose(gcrt.k, synthesize_gcc(DOUBLE_INTEGRATOR, COST).k)


def test_nilpotent_single_input_is_deadbeat():
    nilpotent = synthesize_nilpotent(DOUBLE_INTEGRATOR)
    np.testing.assert_allclose(nilpotent.a_cl, DOUBLE_INTEGRATOR.a - DOUBLE_INTEGRATOR.b_u @ nilpotent.k)
    np.testing.assert_allclose(np.linalg.matrix_power(nilpotent.a_cl, 2), np.zeros((2, 2)), atol=1e-8)


def test_nilpotent_multi_input_is_deadbeat():
    system = SystemModel(np.array([[1.0, 0.1], [0.0, 1.0]]), np.eye(2))
    nilpotent = synthesize_nilpotent(system)
    np.testing.assert_allclose(nilpotent.a_cl, system.a - system.b_u @ nilpotent.k)
    np.testing.assert_allclose(np.linalg.matrix_power(nilpotent.a_cl, 2), np.zeros((2, 2)), atol=1e-8)


@pytest.mark.parametrize(
    "a, b_u",
    [
        # Non cyclic A, no single input column controls the system alone
        (np.eye(2), np.eye(2)),
        (np.diag([1.2, 1.2, 0.5]), np.array([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])),
        (np.array([[1.0, 0.1, 0.0], [0.0, 1.0, 0.1], [0.0, 0.0, 0.9]]), np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])),
    ],
)
def test_nilpotent_multi_input_power_vanishes(a, b_u):
    system = SystemModel(a, b_u)
    nilpotent = synthesize_nilpotent(system)
    assert nilpotent.k.shape == (system.n_u, system.n_x)
    np.testing.assert_allclose(
        np.linalg.matrix_power(nilpotent.a_cl, system.n_x), np.zeros((system.n_x, system.n_x)), atol=1e-6
    )


def test_nilpotent_uncontrollable_raises():
    system = SystemModel(np.diag([1.0, 2.0]), np.array([[1.0], [0.0]]))
    with pytest.raises(ValueError, match="deadbeat"):
        synthesize_nilpotent(system)


def test_resolve_gains_keeps_given_laws():
    config = scalar_config()
    resolved = resolve_gains(config)
    assert resolved.gcc is config.gcc
    assert resolved.nilpotent is config.nilpotent


def test_resolve_gains_fills_missing():
    config = double_integrator_config()
    assert config.gcc is None and config.nilpotent is None
    resolved = resolve_gains(config)
    assert resolved.gcc is not None and resolved.nilpotent is not None
    assert resolved.gcc.k.shape == (1, 2)
