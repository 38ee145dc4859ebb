"""
Robust constraint tightening for GCMPC.

A disturbance w = Delta y with ||Delta|| <= 1 excites the closed loop
through B_w. Its effect on constraint row c at step k is bounded by

    cap_phi[c, k] = sum_j factor[k, j, c] * phi_bar[j],    phi_bar = C phi,

where phi[k] is the norm of the nominal output at step k, C aggregates
how past disturbances feed back into the output (decay through the
auxiliary closed loop) and factor holds the decay of each constraint row
through the primary closed loop.
"""
import cvxpy as cp
import numpy as np

from .models import GCMPCConfig

# Entries below this are numerical noise
ZERO_TEST = 1e-10


def output_sensitivity(config: GCMPCConfig) -> np.ndarray:
    """C_y - D_y_u K: output produced by the state under the primary law."""
    return config.disturbance.c_y - config.disturbance.d_y_u @ config.gcc.k


def constraint_sensitivity(config: GCMPCConfig) -> np.ndarray:
    """H_x - H_u K: constraint rows seen by the state under the primary law."""
    return config.constraint.h_x - config.constraint.h_u @ config.gcc.k


def rho(config: GCMPCConfig, i: int) -> float:
    """Worst case amplification of a unit disturbance after i steps of the auxiliary closed loop."""
    a_pow = np.linalg.matrix_power(config.nilpotent.a_cl, i)
    return np.linalg.norm(output_sensitivity(config) @ a_pow @ config.disturbance.b_w, 2)


def decay_sequence(config: GCMPCConfig, n_t: int) -> np.ndarray:
    """rho(i) for i = 0..n_t-2."""
    return np.array([rho(config, i) for i in range(n_t - 1)], dtype=float)


def coefficient_matrix(decay: np.ndarray, n_t: int) -> np.ndarray:
    """
    Lower triangular propagation weights with unit diagonal.

    Row k only reads rows above it, so a single pass over increasing k
    fills the matrix.
    """
    c = np.eye(n_t)
    for k in range(1, n_t):
        for i in range(k):
            for j in range(k - i):
                c[k, i] += decay[j] * c[k - j - 1, i]
    c[np.abs(c) < ZERO_TEST] = 0.0
    return c


def tightening_tensor(config: GCMPCConfig, n_t: int) -> np.ndarray:
    """
    factor[k, j, c] = ||(H_x - H_u K)[c] (A - B_u K)^(k-j-1) B_w|| for j < k, zero otherwise.

    Shape (n_t, n_t, n_c).
    """
    n_c = config.n_c
    factor = np.zeros((n_t, n_t, n_c))
    if n_c == 0:
        return factor

    h_tilda = constraint_sensitivity(config)
    a_tilda = config.system.a - config.system.b_u @ config.gcc.k

    # a_tilda^m B_w for every gap m that occurs
    propagated = [config.disturbance.b_w]
    for _ in range(n_t - 2):
        propagated.append(a_tilda @ propagated[-1])

    for c in range(n_c):
        for k in range(1, n_t):
            for j in range(k):
                factor[k, j, c] = np.linalg.norm(h_tilda[c:c + 1, :] @ propagated[k - j - 1], 2)
    factor[np.abs(factor) < ZERO_TEST] = 0.0
    return factor


def robust_bound(
    config: GCMPCConfig,
    c: np.ndarray,
    factor: np.ndarray,
    x: cp.Variable,
    v: cp.Variable,
    r: cp.Parameter = None,
):
    """
    Tightening expressions cap_phi of shape (n_c, n_t).

    phi[k] stays a norm of the decision variables, so the tightened
    constraints are second order cone constraints. Returns None when there
    are no constraint rows.
    """
    n_t = c.shape[0]
    if config.n_c == 0:
        return None

    # Nominal output at every step, one column per step
    d_y_u = config.disturbance.d_y_u
    y = output_sensitivity(config) @ x[:, :n_t] + d_y_u @ v
    if r is not None:
        y = y + (config.reference.d_y_r - d_y_u @ config.feedforward) @ r
    phi = cp.norm(y, 2, axis=0)

    phi_bar = c @ phi
    return cp.vstack([factor[:, :, i] @ phi_bar for i in range(config.n_c)])
