from __future__ import annotations

from typing import Any, Optional


class ConfigurationError(ValueError):
    """
    Raised eagerly, before any sampling state is mutated, when a run cannot be
    configured: invalid dispersion, budgets, data or an incompatible G0/F pair.
    """


class InvalidParameterError(ConfigurationError):
    """Raised by the partition generators for an invalid `alpha` or size."""


class NumericalError(ArithmeticError):
    """
    Raised when a sweep hits a degenerate or non-finite evaluation.

    Attributes:
        result: The fit result as of the last successful sweep, when available.
    """

    def __init__(self, message: str, result: Optional[Any] = None):
        super().__init__(message)
        self.result = result


class ConvergenceWarning(UserWarning):
    """Emitted when the sweep budget runs out before the stopping rule holds."""
