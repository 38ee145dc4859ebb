"""Guaranteed Cost Robust MPC with disturbance-propagation constraint tightening"""

from .GCMPC_base import GCMPC
from .controller import GCMPCController, build_controller
from .errors import ConfigurationError, DimensionError, SolveError, UnconstrainedWarning
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

__all__ = [
    "GCMPC",
    "GCMPCController",
    "build_controller",
    "ConfigurationError",
    "DimensionError",
    "SolveError",
    "UnconstrainedWarning",
    "ConstraintModel",
    "CostModel",
    "DisturbanceModel",
    "FeedbackLaw",
    "GCMPCConfig",
    "NilpotentLaw",
    "ReferenceModel",
    "SolverOptions",
    "SystemModel",
]
