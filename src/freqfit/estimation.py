"""
Parameter estimation.

Three interchangeable strategies selected by EstimationMethod:

1. Method of moments - closed-form map from sample product moments
2. Method of L-moments - map from sample L-moments, with 1-D root finding
   for shape parameters that have no closed form
3. Maximum likelihood - Nelder-Mead maximization of the log-likelihood
   inside a box derived from a cheaper closed-form estimate

Sample moments are computed once per estimation call; the sample itself
is never modified.
"""

from typing import Callable, List, Optional, Sequence, Union

import numpy as np

from .config import DISTRIBUTION_DISPLAY_NAMES, DistributionType, EstimationMethod, get_logger
from .distributions import (
    Censoring,
    UnivariateDistribution,
    available_distributions,
    create_distribution,
)
from .exceptions import BracketError, ConvergenceError, FittingError, UnsupportedMethodError
from .optimize import NelderMead, ParameterSet
from .utils import linear_moments, product_moments, validate_sample

# Module logger
_logger = get_logger(__name__)


def as_method(method: Union[str, EstimationMethod]) -> EstimationMethod:
    """Convert a method name or enum to EstimationMethod."""
    if isinstance(method, EstimationMethod):
        return method
    return EstimationMethod.from_string(method)


# =============================================================================
# MAXIMUM LIKELIHOOD
# =============================================================================

def log_likelihood_objective(
    distribution: UnivariateDistribution,
    sample: np.ndarray,
    censoring: Optional[Censoring] = None
) -> Callable[[np.ndarray], float]:
    """
    Build the log-likelihood objective for a family and a sample.

    One working copy of the distribution is created up front; each call
    checks feasibility explicitly and only then sets the parameters on the
    working copy and evaluates the log-likelihood.

    :param distribution: distribution whose family is being fitted
    :param sample: validated 1-D sample
    :param censoring: censored and interval observations added to the
        likelihood, if any
    :return: function mapping a parameter vector to its log-likelihood,
        -inf for infeasible parameter vectors
    """
    working = distribution.clone()

    def objective(parameters: np.ndarray) -> float:
        if working.validate_parameters(parameters) is not None:
            return -np.inf
        working.set_parameters(parameters)
        if censoring is not None:
            return working.censored_log_likelihood(sample, censoring)
        return working.log_likelihood(sample)

    return objective


def maximum_likelihood(
    distribution: UnivariateDistribution,
    sample: Union[Sequence[float], np.ndarray],
    report_failure: bool = True,
    censoring: Optional[Censoring] = None
) -> ParameterSet:
    """
    Maximum likelihood parameter estimate.

    Families with a closed-form MLE return it directly. Otherwise the
    log-likelihood is maximized with Nelder-Mead inside the family's
    constraints, recomputed from the sample on every call. With censoring,
    the censored and interval observations join the likelihood and the
    numerical search is always used; the exact sample still sets the
    search box.

    :param distribution: distribution whose family is being fitted
        (not modified)
    :param sample: observations
    :param report_failure: raise if the optimizer does not converge;
        otherwise return the best point found with a warning
    :param censoring: censored and interval observations, if any
    :return: ParameterSet of estimated parameters and their log-likelihood
    :raises ParameterError: if the sample is invalid
    :raises UnsupportedMethodError: if the family lacks maximum likelihood
    :raises ConvergenceError: on non-convergence when report_failure is set
    """
    distribution.require_method(EstimationMethod.MLE)
    values = validate_sample(sample)

    closed_form = None
    if censoring is None:
        closed_form = distribution.closed_form_mle(distribution.prepare_sample(values))
    if closed_form is not None:
        objective = log_likelihood_objective(distribution, values)
        return ParameterSet(np.asarray(closed_form, dtype=np.float64), objective(closed_form))

    constraints = distribution.parameter_constraints(values)
    solver = NelderMead(
        log_likelihood_objective(distribution, values, censoring),
        distribution.number_of_parameters,
        constraints.initial,
        constraints.lower,
        constraints.upper,
        report_failure=report_failure,
    )

    try:
        result = solver.maximize()
    except ConvergenceError as e:
        raise ConvergenceError(
            f"Maximum likelihood fit of {distribution.display_name} did not converge: {e}",
            status=e.status,
            best=e.best,
        ) from e

    _logger.debug(
        f"{distribution.display_name} MLE: {solver.status.value} after "
        f"{solver.iterations} iterations, log-likelihood {result.fitness:.6g}"
    )
    return result


# =============================================================================
# UNIFIED INTERFACE
# =============================================================================

def estimate(
    distribution: UnivariateDistribution,
    sample: Union[Sequence[float], np.ndarray],
    method: Union[str, EstimationMethod] = EstimationMethod.LMOMENTS,
    report_failure: bool = True,
    censoring: Optional[Censoring] = None
) -> UnivariateDistribution:
    """
    Estimate a distribution's parameters from a sample, in place.

    :param distribution: distribution to fit; its parameters are replaced
    :param sample: observations (at least 2, all finite)
    :param method: estimation method (string or EstimationMethod)
    :param report_failure: for maximum likelihood, raise on optimizer
        non-convergence instead of accepting the best-effort result
    :param censoring: censored and interval observations (maximum
        likelihood only)
    :return: the same distribution, for chaining
    :raises ParameterError: if the sample is invalid
    :raises UnsupportedMethodError: if the family lacks the method, or
        censoring is given with another method
    :raises FittingError: if the estimate is non-finite or invalid
    :raises ConvergenceError: on MLE non-convergence when report_failure is set

    Example:
        >>> gev = create_distribution('gev')
        >>> estimate(gev, annual_maxima, 'lmoments')
        >>> gev.inverse_cdf(0.99)
    """
    method = as_method(method)
    distribution.require_method(method)
    if censoring is not None and method != EstimationMethod.MLE:
        raise UnsupportedMethodError(
            f"Censored data requires maximum likelihood, got '{method.value}'"
        )
    values = validate_sample(sample)

    try:
        if method == EstimationMethod.MOMENTS:
            moments = product_moments(distribution.prepare_sample(values))
            parameters = distribution.parameters_from_moments(moments)
        elif method == EstimationMethod.LMOMENTS:
            lmoments = linear_moments(distribution.prepare_sample(values))
            parameters = distribution.parameters_from_linear_moments(lmoments)
        else:
            parameters = maximum_likelihood(distribution, values, report_failure, censoring).values
    except (BracketError, ArithmeticError) as e:
        raise FittingError(
            f"{distribution.display_name} fit by '{method.value}' failed: {e}"
        ) from e

    with np.errstate(invalid='ignore'):
        parameters = distribution.finalize_parameters(np.asarray(parameters, dtype=np.float64))

    if not np.all(np.isfinite(parameters)):
        raise FittingError(
            f"{distribution.display_name} fit by '{method.value}' produced "
            f"non-finite parameters: {parameters}"
        )

    error = distribution.validate_parameters(parameters)
    if error is not None:
        raise FittingError(
            f"{distribution.display_name} fit by '{method.value}' produced "
            f"invalid parameters: {error}"
        ) from error

    distribution.set_parameters(parameters)
    _logger.debug(f"Fitted {distribution!r} by '{method.value}' on {len(values)} values")
    return distribution


def fit(
    distribution: Union[str, DistributionType],
    sample: Union[Sequence[float], np.ndarray],
    method: Union[str, EstimationMethod] = EstimationMethod.LMOMENTS,
    report_failure: bool = True,
    censoring: Optional[Censoring] = None
) -> UnivariateDistribution:
    """
    Create a distribution of the given type and fit it to a sample.

    :param distribution: distribution type (string or DistributionType)
    :param sample: observations
    :param method: estimation method (string or EstimationMethod)
    :param report_failure: see estimate()
    :param censoring: see estimate()
    :return: new fitted distribution

    Example:
        >>> gamma = fit('gamma', rainfall, 'mle')
        >>> print(gamma.parameters_dict)
    """
    return estimate(create_distribution(distribution), sample, method, report_failure, censoring)


def supported_methods(distribution: Union[str, DistributionType]) -> List[EstimationMethod]:
    """
    Estimation methods available for a distribution type.

    :param distribution: distribution type (string or DistributionType)
    :return: list of EstimationMethod values, in enum order
    """
    proto = create_distribution(distribution)
    return [m for m in EstimationMethod if m in proto.supported_methods]


def describe_methods() -> dict:
    """Supported estimation methods for every registered family, keyed by display name."""
    return {
        DISTRIBUTION_DISPLAY_NAMES.get(t, t.value): [m.value for m in supported_methods(t)]
        for t in available_distributions()
    }
