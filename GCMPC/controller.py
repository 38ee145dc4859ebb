import threading
import warnings

import cvxpy as cp
import numpy as np

from .errors import DimensionError, SolveError, UnconstrainedWarning
from .gains import resolve_gains
from .models import GCMPCConfig
from .tightening import coefficient_matrix, constraint_sensitivity, decay_sequence, robust_bound, tightening_tensor


class GCMPCController:
    """
    Compiled GCMPC problem, solved for the first control action u_0.

    The optimization problem is built once; each call to `solve` only sets
    the initial state (and reference trajectory) parameters. Nothing is
    warm started, so every solve is independent of the previous ones.
    """

    """Optimization problem"""
    ocp: cp.Problem
    objective: cp.Expression
    constraints: list
    variables: dict
    x0_param: cp.Parameter

    """Tightening"""
    c: np.ndarray
    factor: np.ndarray
    cap_phi: cp.Expression

    def __init__(self, config, n_t, ocp, objective, constraints, variables, x0_param, c, factor, cap_phi):
        self.config = config
        self.n_t = n_t
        self.ocp = ocp
        self.objective = objective
        self.constraints = constraints
        self.variables = variables
        self.x0_param = x0_param
        self.c = c
        self.factor = factor
        self.cap_phi = cap_phi
        self._lock = threading.Lock()

    def _reference_value(self, r) -> np.ndarray:
        n_r, n_t = self.config.n_r, self.n_t
        r = np.asarray(r, dtype=float)
        if r.ndim <= 1 and r.size == n_r:
            # Constant reference over the horizon
            return np.tile(r.reshape(n_r, 1), (1, n_t))
        if r.shape != (n_r, n_t):
            raise DimensionError(f"reference has shape {r.shape}, expected ({n_r}, {n_t}) or ({n_r},)")
        return r

    def solve(self, x0: np.ndarray, r: np.ndarray = None) -> np.ndarray:
        """
        Solve for the current state x0 (and reference r when tracking).

        Returns the first control action, feedback term included. Raises
        SolveError when the solver does not report an optimal solution.
        """
        x0 = np.asarray(x0, dtype=float).reshape(-1)
        if x0.shape[0] != self.config.n_x:
            raise DimensionError(f"x0 has {x0.shape[0]} entries, expected {self.config.n_x}")

        if self.config.is_reference_set:
            if r is None:
                raise DimensionError("a reference trajectory is required when reference tracking is enabled")
            r = self._reference_value(r)
        elif r is not None:
            raise DimensionError("reference tracking is disabled, r must not be given")

        options = self.config.options
        with self._lock:
            self.x0_param.value = x0
            if r is not None:
                self.variables["r"].value = r

            self.ocp.solve(solver=options.solver, verbose=options.verbose, warm_start=False)

            if self.ocp.status not in [cp.OPTIMAL, cp.OPTIMAL_INACCURATE]:
                raise SolveError(self.ocp.status)

            return np.asarray(self.variables["u"][:, 0].value, dtype=float).reshape(-1)

    __call__ = solve


def build_controller(config: GCMPCConfig, n_t: int) -> GCMPCController:
    """
    Assemble the GCMPC horizon problem for horizon n_t and compile it.

    Missing feedback laws are synthesized first (reference tracking variant
    when a reference model is present).
    """
    if int(n_t) != n_t or n_t < 1:
        raise DimensionError(f"horizon must be a positive integer, got {n_t}")
    n_t = int(n_t)

    if not config.is_constraint_set:
        warnings.warn("Constraint matrices not set, assuming system is unconstrained", UnconstrainedWarning)

    config = resolve_gains(config)
    a, b_u = config.system.a, config.system.b_u
    gcc = config.gcc
    use_r = config.is_reference_set

    # Define optimization variables
    x = cp.Variable((config.n_x, n_t + 1), name="x")
    v = cp.Variable((config.n_u, n_t), name="v")
    x0_param = cp.Parameter(config.n_x, name="x0")
    u = -gcc.k @ x[:, :n_t] + v
    variables = {"x": x, "v": v}

    r = None
    if use_r:
        # Reference enters with feedforward, u = -K x - L r + v
        r = cp.Parameter((config.n_r, n_t), name="r")
        u = u - config.feedforward @ r
        variables["r"] = r
    variables["u"] = u

    # Cost-to-go of the primary law plus the cost of deviating from it
    objective = cp.quad_form(x[:, 0], gcc.p)
    for i in range(n_t):
        objective += cp.quad_form(v[:, i], gcc.r_bar)

    # Initial condition and closed-loop dynamics
    constraints = [x[:, 0] == x0_param]
    dynamics = (a - b_u @ gcc.k) @ x[:, :-1] + b_u @ v
    if use_r:
        dynamics = dynamics + (config.reference.b_r - b_u @ config.feedforward) @ r
    constraints.append(x[:, 1:] == dynamics)

    # Robust constraint tightening
    c = coefficient_matrix(decay_sequence(config, n_t), n_t)
    factor = tightening_tensor(config, n_t)
    cap_phi = robust_bound(config, c, factor, x, v, r)

    if config.n_c > 0:
        constraint = config.constraint
        h_tilda = constraint_sensitivity(config)
        if not constraint.soft:
            for k in range(n_t):
                constraints.append(
                    h_tilda @ x[:, k] + constraint.h_u @ v[:, k] + constraint.g + cap_phi[:, k] <= 0
                )
        else:
            slack = cp.Variable((config.n_c, n_t), name="slack")
            variables["slack"] = slack
            objective += constraint.slack_weight * cp.sum(slack)
            for k in range(n_t):
                constraints.append(
                    h_tilda @ x[:, k] + constraint.h_u @ v[:, k] + constraint.g + cap_phi[:, k] <= slack[:, k]
                )
            constraints.append(slack >= 0)

    ocp = cp.Problem(cp.Minimize(objective), constraints)

    if config.options.verbose:
        print(
            f"GCMPC: horizon {n_t}, {config.n_x} states, {config.n_u} inputs, {config.n_c} constraint rows"
            f"{' (soft)' if config.n_c and config.constraint.soft else ''}, reference {'on' if use_r else 'off'}"
        )

    return GCMPCController(
        config=config,
        n_t=n_t,
        ocp=ocp,
        objective=objective,
        constraints=constraints,
        variables=variables,
        x0_param=x0_param,
        c=c,
        factor=factor,
        cap_phi=cap_phi,
    )
