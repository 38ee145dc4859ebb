from dataclasses import dataclass, field, replace
from typing import Optional

import cvxpy as cp
import numpy as np
from scipy.signal import cont2discrete

from .errors import ConfigurationError, DimensionError


def _as_matrix(name: str, value, shape: tuple = None) -> np.ndarray:
    """Convert `value` to a 2D float array and check it against `shape` (None entries are free)."""
    mat = np.atleast_2d(np.asarray(value, dtype=float))
    if mat.ndim != 2:
        raise DimensionError(f"{name} must be a matrix, got {mat.ndim} dimensions")
    if shape is not None:
        for axis, expected in enumerate(shape):
            if expected is not None and mat.shape[axis] != expected:
                raise DimensionError(
                    f"{name} has shape {mat.shape}, expected {tuple('*' if s is None else s for s in shape)}"
                )
    return mat


def _as_vector(name: str, value, size: int = None) -> np.ndarray:
    vec = np.asarray(value, dtype=float).reshape(-1)
    if size is not None and vec.shape[0] != size:
        raise DimensionError(f"{name} has {vec.shape[0]} entries, expected {size}")
    return vec


def _symmetrize(mat: np.ndarray) -> np.ndarray:
    return 0.5 * (mat + mat.T)


@dataclass(frozen=True, eq=False)
class SystemModel:
    """Nominal dynamics x+ = A x + B_u u"""

    a: np.ndarray
    b_u: np.ndarray

    def __post_init__(self) -> None:
        a = _as_matrix("a", self.a)
        if a.shape[0] != a.shape[1]:
            raise DimensionError(f"a must be square, got {a.shape}")
        object.__setattr__(self, "a", a)
        object.__setattr__(self, "b_u", _as_matrix("b_u", self.b_u, (a.shape[0], None)))

    @property
    def n_x(self) -> int:
        return self.a.shape[0]

    @property
    def n_u(self) -> int:
        return self.b_u.shape[1]

    @staticmethod
    def from_continuous(a: np.ndarray, b_u: np.ndarray, ts: float) -> "SystemModel":
        """Zero-order-hold discretization of x' = A x + B_u u with sampling time ts."""
        a = _as_matrix("a", a)
        b_u = _as_matrix("b_u", b_u, (a.shape[0], None))
        nx, nu = b_u.shape
        c = np.zeros((1, nx))
        d = np.zeros((1, nu))
        a_d, b_d, _, _, _ = cont2discrete(system=(a, b_u, c, d), dt=ts)
        return SystemModel(a_d, b_d)


@dataclass(frozen=True, eq=False)
class DisturbanceModel:
    """
    Disturbance channel w = Delta y, ||Delta|| <= 1, entering as B_w w.

    The output y = C_y x + D_y_u u (+ D_y_r r) drives the disturbance size.
    """

    b_w: np.ndarray
    c_y: np.ndarray
    d_y_u: np.ndarray

    def __post_init__(self) -> None:
        b_w = _as_matrix("b_w", self.b_w)
        c_y = _as_matrix("c_y", self.c_y)
        object.__setattr__(self, "b_w", b_w)
        object.__setattr__(self, "c_y", c_y)
        object.__setattr__(self, "d_y_u", _as_matrix("d_y_u", self.d_y_u, (c_y.shape[0], None)))

    @property
    def n_w(self) -> int:
        return self.b_w.shape[1]

    @property
    def n_y(self) -> int:
        return self.c_y.shape[0]


@dataclass(frozen=True, eq=False)
class ReferenceModel:
    b_r: np.ndarray
    d_y_r: np.ndarray

    def __post_init__(self) -> None:
        b_r = _as_matrix("b_r", self.b_r)
        object.__setattr__(self, "b_r", b_r)
        object.__setattr__(self, "d_y_r", _as_matrix("d_y_r", self.d_y_r, (None, b_r.shape[1])))

    @property
    def n_r(self) -> int:
        return self.b_r.shape[1]


@dataclass(frozen=True, eq=False)
class CostModel:
    q: np.ndarray
    r: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "q", _symmetrize(_as_matrix("q", self.q)))
        object.__setattr__(self, "r", _symmetrize(_as_matrix("r", self.r)))


@dataclass(frozen=True, eq=False)
class ConstraintModel:
    """Constraint rows H_x x + H_u u + g <= 0, optionally softened with a linear slack penalty."""

    h_x: np.ndarray
    h_u: np.ndarray
    g: np.ndarray
    soft: bool = False
    slack_weight: float = 1e3

    def __post_init__(self) -> None:
        h_x = _as_matrix("h_x", self.h_x)
        n_c = h_x.shape[0]
        object.__setattr__(self, "h_x", h_x)
        object.__setattr__(self, "h_u", _as_matrix("h_u", self.h_u, (n_c, None)))
        object.__setattr__(self, "g", _as_vector("g", self.g, n_c))
        if self.slack_weight < 0:
            raise ValueError(f"slack_weight must be nonnegative, got {self.slack_weight}")

    @property
    def n_c(self) -> int:
        return self.h_x.shape[0]

    @staticmethod
    def from_bounds(
        x_min: np.ndarray,
        x_max: np.ndarray,
        u_min: np.ndarray,
        u_max: np.ndarray,
        soft: bool = False,
        slack_weight: float = 1e3,
    ) -> "ConstraintModel":
        """
        Build box constraints x_min <= x <= x_max, u_min <= u <= u_max.

        Infinite bounds are dropped, so unbounded directions produce no rows.
        """
        x_min, x_max = _as_vector("x_min", x_min), _as_vector("x_max", x_max)
        u_min, u_max = _as_vector("u_min", u_min), _as_vector("u_max", u_max)
        nx, nu = x_min.shape[0], u_min.shape[0]
        if x_max.shape[0] != nx or u_max.shape[0] != nu:
            raise DimensionError("lower and upper bounds must have matching sizes")

        rows_x, rows_u, g = [], [], []
        for i in range(nx):
            if np.isfinite(x_max[i]):
                rows_x.append(np.eye(nx)[i])
                rows_u.append(np.zeros(nu))
                g.append(-x_max[i])
            if np.isfinite(x_min[i]):
                rows_x.append(-np.eye(nx)[i])
                rows_u.append(np.zeros(nu))
                g.append(x_min[i])
        for i in range(nu):
            if np.isfinite(u_max[i]):
                rows_x.append(np.zeros(nx))
                rows_u.append(np.eye(nu)[i])
                g.append(-u_max[i])
            if np.isfinite(u_min[i]):
                rows_x.append(np.zeros(nx))
                rows_u.append(-np.eye(nu)[i])
                g.append(u_min[i])

        return ConstraintModel(
            h_x=np.array(rows_x).reshape(-1, nx),
            h_u=np.array(rows_u).reshape(-1, nu),
            g=np.array(g),
            soft=soft,
            slack_weight=slack_weight,
        )


@dataclass(frozen=True, eq=False)
class FeedbackLaw:
    """
    Primary (guaranteed cost) feedback law u = -K x - L r + v.

    P is the cost-to-go applied to the first predicted state and R_bar
    weights the perturbation v.
    """

    k: np.ndarray
    p: np.ndarray
    r_bar: np.ndarray
    l: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "k", _as_matrix("k", self.k))
        object.__setattr__(self, "p", _symmetrize(_as_matrix("p", self.p)))
        object.__setattr__(self, "r_bar", _symmetrize(_as_matrix("r_bar", self.r_bar)))
        if self.l is not None:
            object.__setattr__(self, "l", _as_matrix("l", self.l))


@dataclass(frozen=True, eq=False)
class NilpotentLaw:
    """Auxiliary gain used only to bound disturbance decay, a_cl = A - B_u K."""

    k: np.ndarray
    a_cl: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "k", _as_matrix("k", self.k))
        object.__setattr__(self, "a_cl", _as_matrix("a_cl", self.a_cl))


@dataclass(frozen=True)
class SolverOptions:
    solver: str = cp.CLARABEL
    verbose: bool = False


@dataclass(frozen=True, eq=False)
class GCMPCConfig:
    """
    Ready-to-build GCMPC configuration.

    System, disturbance and cost models are required; a missing constraint
    model means the problem is unconstrained and missing feedback laws are
    synthesized when the controller is built.
    """

    system: SystemModel
    disturbance: DisturbanceModel
    cost: CostModel
    constraint: Optional[ConstraintModel] = None
    reference: Optional[ReferenceModel] = None
    gcc: Optional[FeedbackLaw] = None
    nilpotent: Optional[NilpotentLaw] = None
    options: SolverOptions = field(default_factory=SolverOptions)

    def __post_init__(self) -> None:
        for name in ("system", "disturbance", "cost"):
            if getattr(self, name) is None:
                raise ConfigurationError(
                    f"{name.capitalize()} matrices not set, define them before generating the GCMPC"
                )

        nx, nu = self.system.n_x, self.system.n_u

        _as_matrix("b_w", self.disturbance.b_w, (nx, None))
        _as_matrix("c_y", self.disturbance.c_y, (None, nx))
        _as_matrix("d_y_u", self.disturbance.d_y_u, (self.disturbance.n_y, nu))

        _as_matrix("q", self.cost.q, (nx, nx))
        _as_matrix("r", self.cost.r, (nu, nu))

        if self.constraint is not None:
            _as_matrix("h_x", self.constraint.h_x, (None, nx))
            _as_matrix("h_u", self.constraint.h_u, (None, nu))

        if self.reference is not None:
            _as_matrix("b_r", self.reference.b_r, (nx, None))
            _as_matrix("d_y_r", self.reference.d_y_r, (self.disturbance.n_y, None))

        if self.gcc is not None:
            _as_matrix("gcc.k", self.gcc.k, (nu, nx))
            _as_matrix("gcc.p", self.gcc.p, (nx, nx))
            _as_matrix("gcc.r_bar", self.gcc.r_bar, (nu, nu))
            if self.gcc.l is not None:
                _as_matrix("gcc.l", self.gcc.l, (nu, self.n_r))

        if self.nilpotent is not None:
            _as_matrix("nilpotent.k", self.nilpotent.k, (nu, nx))
            _as_matrix("nilpotent.a_cl", self.nilpotent.a_cl, (nx, nx))

    @property
    def n_x(self) -> int:
        return self.system.n_x

    @property
    def n_u(self) -> int:
        return self.system.n_u

    @property
    def n_w(self) -> int:
        return self.disturbance.n_w

    @property
    def n_y(self) -> int:
        return self.disturbance.n_y

    @property
    def n_r(self) -> int:
        return 0 if self.reference is None else self.reference.n_r

    @property
    def n_c(self) -> int:
        return 0 if self.constraint is None else self.constraint.n_c

    @property
    def is_reference_set(self) -> bool:
        return self.reference is not None

    @property
    def is_constraint_set(self) -> bool:
        return self.constraint is not None

    @property
    def feedforward(self) -> np.ndarray:
        """Feedforward gain L, zero when the primary law carries none."""
        if self.gcc is None or self.gcc.l is None:
            return np.zeros((self.n_u, self.n_r))
        return self.gcc.l

    def with_gains(self, gcc: FeedbackLaw = None, nilpotent: NilpotentLaw = None) -> "GCMPCConfig":
        return replace(
            self,
            gcc=self.gcc if gcc is None else gcc,
            nilpotent=self.nilpotent if nilpotent is None else nilpotent,
        )
