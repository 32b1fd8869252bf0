"""
Exception hierarchy for distribution fitting and uncertainty analysis.
"""

from typing import Any, Optional


class FreqFitError(Exception):
    """Base exception for all freqfit errors."""
    pass


class ParameterError(FreqFitError, ValueError):
    """Invalid parameter, probability outside [0, 1], or insufficient sample."""
    pass


class BracketError(FreqFitError, ValueError):
    """Root finder interval does not bracket a sign change."""
    pass


class ConvergenceError(FreqFitError):
    """
    Optimizer or root finder exhausted its budget without converging.

    :param message: description of the failure
    :param status: terminal status reported by the solver
    :param best: best result found before the budget ran out, if any
    """

    def __init__(self, message: str, status: Any = None, best: Optional[Any] = None):
        super().__init__(message)
        self.status = status
        self.best = best


class UnsupportedMethodError(FreqFitError, NotImplementedError):
    """Estimation method or uncertainty computation not available for a family."""
    pass


class FittingError(FreqFitError):
    """Estimation produced a non-finite or invalid parameter set."""
    pass
