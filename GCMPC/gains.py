import numpy as np
from control import acker, ctrb, dlqr

from .models import CostModel, FeedbackLaw, GCMPCConfig, NilpotentLaw, ReferenceModel, SystemModel


def synthesize_gcc(system: SystemModel, cost: CostModel) -> FeedbackLaw:
    """
    Guaranteed cost controller from the discrete LQR.

    With P the Riccati solution, the cost of any input sequence written as
    u = -K x + v is x_0' P x_0 + sum v' (R + B_u' P B_u) v, hence R_bar.
    """
    k, p, _ = dlqr(system.a, system.b_u, cost.q, cost.r)
    k = np.asarray(k, dtype=float)
    p = np.asarray(p, dtype=float)
    r_bar = cost.r + system.b_u.T @ p @ system.b_u
    return FeedbackLaw(k=k, p=p, r_bar=r_bar)


def synthesize_gcrt(system: SystemModel, cost: CostModel, reference: ReferenceModel) -> FeedbackLaw:
    """Reference tracking variant: GCC plus a feedforward cancelling B_r r where B_u can reach it."""
    gcc = synthesize_gcc(system, cost)
    l = np.linalg.pinv(system.b_u) @ reference.b_r
    return FeedbackLaw(k=gcc.k, p=gcc.p, r_bar=gcc.r_bar, l=l)


def _single_input_deadbeat(a: np.ndarray, b: np.ndarray):
    """Deadbeat row gain for (a, b) with one input column, None when (a, b) is not controllable."""
    if np.linalg.matrix_rank(ctrb(a, b)) < a.shape[0]:
        return None
    return np.atleast_2d(np.asarray(acker(a, b, np.zeros(a.shape[0])), dtype=float))


def synthesize_nilpotent(system: SystemModel, max_tries: int = 20, seed: int = 0) -> NilpotentLaw:
    """
    Deadbeat auxiliary gain for the disturbance decay bound, (A - B_u K)^n_x = 0.

    Several inputs are reduced to one direction e, K = F + e k with k from
    Ackermann on (A - B_u F, B_u e). Each input column and their sum are
    tried with F = 0 first; if A is not cyclic none of them is controllable,
    so a random F is drawn to make A - B_u F cyclic.
    """
    a, b_u = system.a, system.b_u
    nx, nu = system.n_x, system.n_u
    rng = np.random.default_rng(seed)

    candidates = [(np.zeros((nu, nx)), e) for e in np.eye(nu)]
    if nu > 1:
        candidates.append((np.zeros((nu, nx)), np.ones(nu)))
    candidates += [(rng.normal(size=(nu, nx)), rng.normal(size=nu)) for _ in range(max_tries)]

    for f, e in candidates:
        a_f = a - b_u @ f
        k_e = _single_input_deadbeat(a_f, b_u @ e.reshape(nu, 1))
        if k_e is None:
            continue
        k = f + e.reshape(nu, 1) @ k_e
        a_cl = a - b_u @ k
        scale = max(1.0, np.linalg.norm(a_cl, 2)) ** nx
        if np.allclose(np.linalg.matrix_power(a_cl, nx), 0.0, atol=1e-6 * scale):
            return NilpotentLaw(k=k, a_cl=a_cl)

    raise ValueError("no deadbeat auxiliary gain found, check that (A, B_u) is controllable")


def resolve_gains(config: GCMPCConfig) -> GCMPCConfig:
    """Fill in the primary and auxiliary feedback laws that are missing from `config`."""
    gcc, nilpotent = config.gcc, config.nilpotent
    if gcc is None:
        if config.is_reference_set:
            gcc = synthesize_gcrt(config.system, config.cost, config.reference)
        else:
            gcc = synthesize_gcc(config.system, config.cost)
    if nilpotent is None:
        nilpotent = synthesize_nilpotent(config.system)
    return config.with_gains(gcc=gcc, nilpotent=nilpotent)
