"""
Systems shared by the GCMPC tests.

The scalar case is x+ = 0.5 x + u + w with output y = x, primary gain 0.5
(closed loop 0), auxiliary gain 0.5 and the constraint x <= 5.
"""
import numpy as np

from GCMPC import (
    ConstraintModel,
    CostModel,
    DisturbanceModel,
    FeedbackLaw,
    GCMPC,
    GCMPCConfig,
    NilpotentLaw,
    ReferenceModel,
    SystemModel,
)


def scalar_config(b_w=1.0, soft=False, constrained=True, reference=False, k=0.5) -> GCMPCConfig:
    return GCMPCConfig(
        system=SystemModel([[0.5]], [[1.0]]),
        disturbance=DisturbanceModel([[b_w]], [[1.0]], [[0.0]]),
        cost=CostModel([[1.0]], [[1.0]]),
        constraint=ConstraintModel([[1.0]], [[0.0]], [-5.0], soft=soft) if constrained else None,
        reference=ReferenceModel([[1.0]], [[2.0]]) if reference else None,
        gcc=FeedbackLaw(k=[[k]], p=[[1.0]], r_bar=[[1.0]], l=[[0.0]] if reference else None),
        nilpotent=NilpotentLaw(k=[[0.5]], a_cl=[[0.0]]),
    )


def scalar_gcmpc(soft=False) -> GCMPC:
    mpc = GCMPC()
    mpc.set_system([[0.5]], [[1.0]])
    mpc.set_disturbance([[1.0]], [[1.0]], [[0.0]])
    mpc.set_cost([[1.0]], [[1.0]])
    mpc.set_constraint([[1.0]], [[0.0]], [-5.0], soft=soft)
    mpc.set_gcc(FeedbackLaw(k=[[0.5]], p=[[1.0]], r_bar=[[1.0]]))
    mpc.set_nilpotent(NilpotentLaw(k=[[0.5]], a_cl=[[0.0]]))
    return mpc


def double_integrator_config(b_w=None, constrained=True, soft=False) -> GCMPCConfig:
    """Double integrator, Ts = 0.1, |p| <= 5, |v| <= 2, |u| <= 1, gains synthesized on build."""
    system = SystemModel.from_continuous(np.array([[0.0, 1.0], [0.0, 0.0]]), np.array([[0.0], [1.0]]), 0.1)
    b_w = 0.05 * np.eye(2) if b_w is None else b_w
    constraint = None
    if constrained:
        constraint = ConstraintModel.from_bounds(
            np.array([-5.0, -2.0]), np.array([5.0, 2.0]), np.array([-1.0]), np.array([1.0]), soft=soft
        )
    return GCMPCConfig(
        system=system,
        disturbance=DisturbanceModel(b_w, np.eye(2), np.array([[0.0], [0.2]])),
        cost=CostModel(np.diag([1.0, 0.1]), np.array([[0.1]])),
        constraint=constraint,
    )


def assign_values(controller, seed=0) -> None:
    """Give every variable and parameter of `controller` a reproducible value."""
    rng = np.random.default_rng(seed)
    for name, var in controller.variables.items():
        if name == "u":
            continue
        if name in ("r", "slack"):
            var.value = np.zeros(var.shape)
        else:
            var.value = rng.normal(size=var.shape)
    controller.x0_param.value = controller.variables["x"].value[:, 0]


def constraint_values(controller) -> list:
    return [np.asarray(con.expr.value) for con in controller.constraints]
