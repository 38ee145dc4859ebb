import numpy as np

from .controller import GCMPCController, build_controller
from .errors import ConfigurationError
from .gains import synthesize_gcc, synthesize_gcrt, synthesize_nilpotent
from .models import (
    ConstraintModel,
    CostModel,
    DisturbanceModel,
    FeedbackLaw,
    GCMPCConfig,
    NilpotentLaw,
    ReferenceModel,
    SolverOptions,
    SystemModel,
)


class GCMPC:
    r"""
    Guaranteed cost robust MPC for x+ = A x + B_u u + B_r r + B_w w.

    Models are set one by one; `generate` checks that the mandatory ones
    are present, synthesizes any missing feedback law and compiles the
    horizon problem:

    .. math::
        \min_{v} \quad x_0^T P x_0 + \sum_{k=0}^{N-1} v_k^T \bar R v_k \\
        x_{k+1} = (A - B_u K) x_k + B_u v_k + (B_r - B_u L) r_k \\
        (H_x - H_u K) x_k + H_u v_k + g + \Phi_k \le 0
    """

    kSlackWeight: float = 1e3

    """Models"""
    system: SystemModel
    disturbance: DisturbanceModel
    reference: ReferenceModel
    cost: CostModel
    constraint: ConstraintModel

    """Feedback laws"""
    gcc: FeedbackLaw
    nilpotent: NilpotentLaw

    """Generated controller"""
    n_t: int
    controller: GCMPCController

    def __init__(self, options: SolverOptions = None) -> None:
        self.options = SolverOptions() if options is None else options
        self.system = None
        self.disturbance = None
        self.reference = None
        self.cost = None
        self.constraint = None
        self.gcc = None
        self._gcc_synthesized = False
        self.nilpotent = None
        self.n_t = None
        self.controller = None

    # Readiness flags
    @property
    def is_system_set(self) -> bool:
        return self.system is not None

    @property
    def is_disturbance_set(self) -> bool:
        return self.disturbance is not None

    @property
    def is_reference_set(self) -> bool:
        return self.reference is not None

    @property
    def is_cost_set(self) -> bool:
        return self.cost is not None

    @property
    def is_constraint_set(self) -> bool:
        return self.constraint is not None

    @property
    def is_constraint_soft(self) -> bool:
        return self.is_constraint_set and self.constraint.soft

    @property
    def is_gcc_set(self) -> bool:
        return self.gcc is not None

    @property
    def is_nilpotent_set(self) -> bool:
        return self.nilpotent is not None

    def _reset_gains(self) -> None:
        self.gcc = None
        self._gcc_synthesized = False
        self.nilpotent = None

    def _discard_synthesized_gcc(self) -> None:
        # A law given through set_gcc is kept until set_system or set_gcc replaces it
        if self._gcc_synthesized:
            self.gcc = None
            self._gcc_synthesized = False

    # Setters
    def set_system(self, a: np.ndarray, b_u: np.ndarray) -> None:
        self.system = SystemModel(a, b_u)
        self._reset_gains()

    def set_disturbance(self, b_w: np.ndarray, c_y: np.ndarray, d_y_u: np.ndarray) -> None:
        self.disturbance = DisturbanceModel(b_w, c_y, d_y_u)

    def set_reference(self, b_r: np.ndarray, d_y_r: np.ndarray) -> None:
        self.reference = ReferenceModel(b_r, d_y_r)
        self._discard_synthesized_gcc()

    def set_cost(self, q: np.ndarray, r: np.ndarray) -> None:
        self.cost = CostModel(q, r)
        self._discard_synthesized_gcc()

    def set_constraint(
        self, h_x: np.ndarray, h_u: np.ndarray, g: np.ndarray, soft: bool = False, slack_weight: float = None
    ) -> None:
        slack_weight = self.kSlackWeight if slack_weight is None else slack_weight
        self.constraint = ConstraintModel(h_x, h_u, g, soft=soft, slack_weight=slack_weight)

    def set_gcc(self, gcc: FeedbackLaw) -> None:
        self.gcc = gcc
        self._gcc_synthesized = False

    def set_nilpotent(self, nilpotent: NilpotentLaw) -> None:
        self.nilpotent = nilpotent

    # Gain synthesis
    def _require(self, *names: str) -> None:
        for name in names:
            if getattr(self, name) is None:
                raise ConfigurationError(
                    f"{name.capitalize()} matrices not set, define them before generating the GCMPC"
                )

    def calculate_gcc(self) -> FeedbackLaw:
        self._require("system", "cost")
        self.gcc = synthesize_gcc(self.system, self.cost)
        self._gcc_synthesized = True
        return self.gcc

    def calculate_gcrt(self) -> FeedbackLaw:
        self._require("system", "cost", "reference")
        self.gcc = synthesize_gcrt(self.system, self.cost, self.reference)
        self._gcc_synthesized = True
        return self.gcc

    def calculate_nilpotent(self) -> NilpotentLaw:
        self._require("system")
        self.nilpotent = synthesize_nilpotent(self.system)
        return self.nilpotent

    def config(self) -> GCMPCConfig:
        self._require("system", "disturbance", "cost")
        return GCMPCConfig(
            system=self.system,
            disturbance=self.disturbance,
            cost=self.cost,
            constraint=self.constraint,
            reference=self.reference,
            gcc=self.gcc,
            nilpotent=self.nilpotent,
            options=self.options,
        )

    def generate(self, n_t: int) -> GCMPCController:
        """
        Build the GCMPC controller for horizon n_t.

        Raises ConfigurationError if the system, disturbance or cost model
        is missing. Without constraints the problem is generated
        unconstrained (UnconstrainedWarning).
        """
        config = self.config()

        if not self.is_gcc_set:
            if not self.is_reference_set:
                self.calculate_gcc()
            else:
                self.calculate_gcrt()

        if not self.is_nilpotent_set:
            self.calculate_nilpotent()

        self.n_t = n_t
        self.controller = build_controller(config.with_gains(gcc=self.gcc, nilpotent=self.nilpotent), n_t)
        return self.controller
