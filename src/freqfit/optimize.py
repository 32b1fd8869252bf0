"""
Derivative-free optimization over a bounded parameter box.

The Nelder-Mead downhill simplex is used by maximum likelihood estimation:
the log-likelihood of a distribution family is maximized inside a box of
initial/lower/upper values derived from the sample.

References:
    - Nelder, J.A., Mead, R. (1965). A simplex method for function
      minimization. The Computer Journal, 7(4), 308-313.
    - Press, W.H., et al. (2007). Numerical Recipes, 3rd ed., section 10.5.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence

import numpy as np

from .config import (
    ABSOLUTE_TOLERANCE,
    CONTRACTION,
    EXPANSION,
    MAX_FUNCTION_EVALUATIONS,
    MAX_ITERATIONS,
    MIN_ITERATIONS,
    REFLECTION,
    RELATIVE_TOLERANCE,
    SHRINKAGE,
    SIMPLEX_PERTURBATION,
    SIMPLEX_ZERO_PERTURBATION,
    get_logger,
)
from .exceptions import ConvergenceError, ParameterError

# Module logger
_logger = get_logger(__name__)


class OptimizationStatus(Enum):
    """Terminal state of an optimizer run."""
    NONE = "none"
    SUCCESS = "success"
    MAXIMUM_ITERATIONS_REACHED = "maximum_iterations_reached"
    MAXIMUM_FUNCTION_EVALUATIONS_REACHED = "maximum_function_evaluations_reached"
    FAILURE = "failure"


@dataclass
class ParameterSet:
    """Parameter vector and the objective value attained there."""
    values: np.ndarray
    fitness: float = np.nan

    def copy(self) -> ParameterSet:
        return ParameterSet(self.values.copy(), self.fitness)


# =============================================================================
# OPTIMIZER BASE
# =============================================================================

class Optimizer:
    """
    Base class holding optimizer settings, evaluation bookkeeping and
    convergence logic.

    Subclasses implement _optimize(), working on the internal objective
    returned by evaluate(), which is always minimized. Maximization negates
    the user objective; reported fitness values are on the caller's scale.

    :param objective: function of a parameter vector returning a scalar
    :param n_parameters: number of parameters
    :param max_iterations: iteration budget (default: 10000)
    :param max_function_evaluations: evaluation budget (default: unbounded)
    :param absolute_tolerance: absolute convergence tolerance (default: 1e-8)
    :param relative_tolerance: relative convergence tolerance (default: 1e-8)
    :param report_failure: raise ConvergenceError when a budget is exhausted;
        otherwise keep the best point found as a best-effort result
    """

    def __init__(
        self,
        objective: Callable[[np.ndarray], float],
        n_parameters: int,
        max_iterations: int = MAX_ITERATIONS,
        max_function_evaluations: int = MAX_FUNCTION_EVALUATIONS,
        absolute_tolerance: float = ABSOLUTE_TOLERANCE,
        relative_tolerance: float = RELATIVE_TOLERANCE,
        report_failure: bool = True
    ):
        if n_parameters < 1:
            raise ParameterError(
                f"Number of parameters must be >= 1, got: {n_parameters}"
            )

        self.objective = objective
        self.n_parameters = int(n_parameters)
        self.max_iterations = max_iterations
        self.max_function_evaluations = max_function_evaluations
        self.absolute_tolerance = absolute_tolerance
        self.relative_tolerance = relative_tolerance
        self.report_failure = report_failure

        self.status = OptimizationStatus.NONE
        self.iterations = 0
        self.function_evaluations = 0
        self._scale = 1.0
        self._best_values: Optional[np.ndarray] = None
        self._best_internal = np.inf

    # -------------------------------------------------------------------------
    # Public interface
    # -------------------------------------------------------------------------

    def minimize(self) -> ParameterSet:
        """
        Minimize the objective.

        :return: best ParameterSet found
        :raises ConvergenceError: if a budget is exhausted and report_failure is set
        """
        self._scale = 1.0
        return self._run()

    def maximize(self) -> ParameterSet:
        """
        Maximize the objective.

        :return: best ParameterSet found
        :raises ConvergenceError: if a budget is exhausted and report_failure is set
        """
        self._scale = -1.0
        return self._run()

    @property
    def best_parameter_set(self) -> Optional[ParameterSet]:
        """Best point evaluated so far, with fitness on the caller's scale."""
        if self._best_values is None:
            return None
        return ParameterSet(self._best_values.copy(), self._scale * self._best_internal)

    def evaluate(self, x: np.ndarray) -> float:
        """
        Evaluate the internal (minimized) objective and track the best point.

        NaN objective values rank as the worst possible value.

        :param x: parameter vector
        :return: internal objective value
        """
        values = np.array(x, dtype=np.float64, copy=True)
        self.function_evaluations += 1

        fitness = self._scale * float(self.objective(values))
        if np.isnan(fitness):
            fitness = np.inf

        if self._best_values is None or fitness < self._best_internal:
            self._best_values = values
            self._best_internal = fitness

        return fitness

    def check_convergence(self, old_value: float, new_value: float) -> bool:
        """
        Relative convergence test between two objective values.

        :param old_value: previous (or best) objective value
        :param new_value: current (or worst) objective value
        :return: True if 2|new - old| / (|new| + |old| + atol) < rtol
        """
        if not (np.isfinite(old_value) and np.isfinite(new_value)):
            return False
        spread = 2.0 * abs(new_value - old_value)
        scale = abs(new_value) + abs(old_value) + self.absolute_tolerance
        return spread / scale < self.relative_tolerance

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def validate_settings(self):
        """
        Check the optimizer settings.

        :raises ParameterError: on an invalid budget or tolerance
        """
        if self.max_iterations < MIN_ITERATIONS:
            raise ParameterError(
                f"Maximum iterations must be >= {MIN_ITERATIONS}, "
                f"got: {self.max_iterations}"
            )
        if self.max_function_evaluations < 1:
            raise ParameterError(
                f"Maximum function evaluations must be >= 1, "
                f"got: {self.max_function_evaluations}"
            )
        for name, tol in (
            ("Absolute tolerance", self.absolute_tolerance),
            ("Relative tolerance", self.relative_tolerance),
        ):
            if not 0.0 < tol <= 1.0:
                raise ParameterError(f"{name} must be in (0, 1], got: {tol}")

    def _run(self) -> ParameterSet:
        self.validate_settings()
        self.status = OptimizationStatus.NONE
        self.iterations = 0
        self.function_evaluations = 0
        self._best_values = None
        self._best_internal = np.inf

        self._optimize()
        return self.best_parameter_set

    def _budget_exhausted(self) -> bool:
        return self.function_evaluations >= self.max_function_evaluations

    def _finish(self, status: OptimizationStatus):
        """Record the terminal status and raise if failure reporting is on."""
        self.status = status
        if status == OptimizationStatus.SUCCESS:
            return

        message = (
            f"{type(self).__name__} stopped with status '{status.value}' after "
            f"{self.iterations} iterations and "
            f"{self.function_evaluations} function evaluations"
        )
        if self.report_failure:
            raise ConvergenceError(message, status=status, best=self.best_parameter_set)
        _logger.warning(f"{message}; returning best-effort result")

    def _optimize(self):
        raise NotImplementedError


# =============================================================================
# NELDER-MEAD SIMPLEX
# =============================================================================

class NelderMead(Optimizer):
    """
    Nelder-Mead downhill simplex with box constraints.

    Candidate points outside the box are clamped to the nearest bound
    before evaluation. Infeasible points should be signalled by the
    objective itself (-inf when maximizing, +inf when minimizing) so they
    rank as the worst vertex and the simplex is pushed back inward.

    :param objective: function of a parameter vector returning a scalar
    :param n_parameters: number of parameters
    :param initial_values: starting point, inside the bounds
    :param lower_bounds: per-parameter lower bounds
    :param upper_bounds: per-parameter upper bounds
    :param kwargs: settings forwarded to Optimizer

    Example:
        >>> solver = NelderMead(lambda x: (x[0] - 1) ** 2, 1, [0.0], [-5.0], [5.0])
        >>> best = solver.minimize()
        >>> print(f"x = {best.values[0]:.4f}, f = {best.fitness:.2e}")
    """

    def __init__(
        self,
        objective: Callable[[np.ndarray], float],
        n_parameters: int,
        initial_values: Sequence[float],
        lower_bounds: Sequence[float],
        upper_bounds: Sequence[float],
        **kwargs
    ):
        super().__init__(objective, n_parameters, **kwargs)

        self.initial_values = np.asarray(initial_values, dtype=np.float64).copy()
        self.lower_bounds = np.asarray(lower_bounds, dtype=np.float64).copy()
        self.upper_bounds = np.asarray(upper_bounds, dtype=np.float64).copy()

        for name, arr in (
            ("initial values", self.initial_values),
            ("lower bounds", self.lower_bounds),
            ("upper bounds", self.upper_bounds),
        ):
            if arr.shape != (self.n_parameters,):
                raise ParameterError(
                    f"Length of {name} must equal the number of parameters "
                    f"({self.n_parameters}), got shape {arr.shape}"
                )

        if np.any(self.upper_bounds < self.lower_bounds):
            raise ParameterError("Upper bounds must be >= lower bounds")

        if np.any(self.initial_values < self.lower_bounds) or np.any(
            self.initial_values > self.upper_bounds
        ):
            raise ParameterError(
                f"Initial values {self.initial_values} must lie within "
                f"bounds [{self.lower_bounds}, {self.upper_bounds}]"
            )

        self.reflection = REFLECTION
        self.contraction = CONTRACTION
        self.expansion = EXPANSION
        self.shrinkage = SHRINKAGE

    def repair(self, x: np.ndarray) -> np.ndarray:
        """Clamp a candidate point to the bounds."""
        return np.clip(x, self.lower_bounds, self.upper_bounds)

    def initial_simplex(self) -> np.ndarray:
        """
        Build the k+1 starting vertices.

        Vertex i moves coordinate i-1 of the initial point by 5 percent, or
        by a small absolute step when that coordinate is zero. A step that
        would be clamped away entirely is taken in the opposite direction.

        :return: array of shape (k + 1, k)
        """
        k = self.n_parameters
        simplex = np.tile(self.initial_values, (k + 1, 1))

        for i in range(1, k + 1):
            j = i - 1
            x0 = self.initial_values[j]
            step = SIMPLEX_PERTURBATION * x0 if x0 != 0.0 else SIMPLEX_ZERO_PERTURBATION

            vertex = simplex[i]
            vertex[j] = x0 + step
            vertex[:] = self.repair(vertex)
            if vertex[j] == x0:
                vertex[j] = x0 - step
                vertex[:] = self.repair(vertex)

        return simplex

    def _optimize(self):
        k = self.n_parameters
        simplex = self.initial_simplex()
        fvals = np.array([self.evaluate(v) for v in simplex])

        while self.iterations < self.max_iterations:
            order = np.argsort(fvals, kind="stable")
            simplex = simplex[order]
            fvals = fvals[order]

            if self.check_convergence(fvals[0], fvals[-1]):
                self._finish(OptimizationStatus.SUCCESS)
                return

            if self._budget_exhausted():
                self._finish(OptimizationStatus.MAXIMUM_FUNCTION_EVALUATIONS_REACHED)
                return

            self.iterations += 1

            # Centroid of every vertex except the worst
            centroid = simplex[:k].mean(axis=0)
            worst = simplex[k]

            x_r = self.repair(centroid + self.reflection * (centroid - worst))
            f_r = self.evaluate(x_r)

            if f_r < fvals[0]:
                x_e = self.repair(centroid + self.expansion * (x_r - centroid))
                f_e = self.evaluate(x_e)
                if f_e < f_r:
                    simplex[k], fvals[k] = x_e, f_e
                else:
                    simplex[k], fvals[k] = x_r, f_r
                continue

            if f_r < fvals[k - 1]:
                simplex[k], fvals[k] = x_r, f_r
                continue

            # Contraction: outside if the reflection improved on the worst
            if f_r < fvals[k]:
                x_c = centroid + self.contraction * (x_r - centroid)
            else:
                x_c = centroid + self.contraction * (worst - centroid)
            x_c = self.repair(x_c)
            f_c = self.evaluate(x_c)

            if f_c < min(f_r, fvals[k]):
                simplex[k], fvals[k] = x_c, f_c
                continue

            # Shrink toward the best vertex
            best = simplex[0]
            for i in range(1, k + 1):
                simplex[i] = self.repair(best + self.shrinkage * (simplex[i] - best))
                fvals[i] = self.evaluate(simplex[i])

        self._finish(OptimizationStatus.MAXIMUM_ITERATIONS_REACHED)
