class ConfigurationError(ValueError):
    """A mandatory model (system, disturbance or cost) has not been set."""


class DimensionError(ValueError):
    """Matrix or parameter shapes are inconsistent."""


class UnconstrainedWarning(UserWarning):
    """No constraint model was given, the problem is generated unconstrained."""


class SolveError(RuntimeError):
    """The compiled problem did not return an optimal solution."""

    def __init__(self, status: str):
        super().__init__(f"GCMPC solver status: {status}")
        self.status = status
