"""
Asymptotic (delta-method) uncertainty of fitted quantiles.

For a distribution fitted to n observations with a given estimation method,
the variance of the quantile estimate x(p) is approximated by

    Var[x(p)] = g(p)^T C g(p)

where C is the family's asymptotic parameter covariance for that method and
g(p) the gradient of the quantile function with respect to the parameters.

The Jacobian of the quantiles with respect to the parameters, taken at as
many probabilities as there are parameters, is square; its determinant is
used when transforming joint densities between parameter and quantile space.
"""

from typing import Sequence, Union

import numpy as np
import pandas as pd
from scipy import linalg, special

from .config import DEFAULT_ALPHA, MIN_SAMPLE_SIZE, EstimationMethod, get_logger
from .distributions import StandardError, UnivariateDistribution
from .estimation import as_method
from .exceptions import ParameterError, UnsupportedMethodError

# Module logger
_logger = get_logger(__name__)


def _require_standard_error(distribution: UnivariateDistribution):
    if not isinstance(distribution, StandardError):
        raise UnsupportedMethodError(
            f"{distribution.display_name} has no asymptotic standard error formulas"
        )
    distribution.validate_parameters(distribution.parameters, raise_error=True)


def _check_probability(probability: float):
    if not 0.0 < probability < 1.0:
        raise ParameterError(f"Probability must be in (0, 1), got: {probability}")


# =============================================================================
# COVARIANCE AND GRADIENTS
# =============================================================================

def parameter_covariance(
    distribution: UnivariateDistribution,
    sample_size: int,
    method: Union[str, EstimationMethod]
) -> np.ndarray:
    """
    Asymptotic covariance matrix of the fitted parameters.

    :param distribution: fitted distribution
    :param sample_size: number of observations used in the fit
    :param method: estimation method used in the fit
    :return: (k, k) symmetric covariance matrix
    :raises UnsupportedMethodError: if the family has no covariance formula
        for the method
    :raises ParameterError: if the sample size is too small or the
        parameters are invalid
    """
    method = as_method(method)
    _require_standard_error(distribution)

    if method not in distribution.covariance_methods:
        available = ", ".join(sorted(m.value for m in distribution.covariance_methods))
        raise UnsupportedMethodError(
            f"{distribution.display_name} has no covariance formula for "
            f"'{method.value}' (available: {available})"
        )
    if sample_size < MIN_SAMPLE_SIZE:
        raise ParameterError(
            f"Sample size must be >= {MIN_SAMPLE_SIZE}, got: {sample_size}"
        )

    return np.asarray(distribution.parameter_covariance(sample_size, method), dtype=np.float64)


def quantile_gradient(distribution: UnivariateDistribution, probability: float) -> np.ndarray:
    """
    Partial derivatives of the quantile x(p) with respect to each parameter.

    :param distribution: fitted distribution
    :param probability: non-exceedance probability in (0, 1)
    :return: gradient vector, one entry per parameter
    """
    _require_standard_error(distribution)
    _check_probability(probability)
    return np.asarray(distribution.quantile_gradient(probability), dtype=np.float64)


def quantile_variance(
    distribution: UnivariateDistribution,
    probability: float,
    sample_size: int,
    method: Union[str, EstimationMethod]
) -> float:
    """
    Delta-method variance of a fitted quantile.

    :param distribution: fitted distribution
    :param probability: non-exceedance probability in (0, 1)
    :param sample_size: number of observations used in the fit
    :param method: estimation method used in the fit
    :return: variance of x(p), non-negative

    Example:
        >>> normal = fit('normal', sample, 'mle')
        >>> np.sqrt(quantile_variance(normal, 0.99, len(sample), 'mle'))
    """
    covariance = parameter_covariance(distribution, sample_size, method)
    gradient = quantile_gradient(distribution, probability)
    return float(gradient @ covariance @ gradient)


def quantile_jacobian(
    distribution: UnivariateDistribution,
    probabilities: Sequence[float]
) -> np.ndarray:
    """
    Jacobian of quantiles with respect to parameters.

    :param distribution: fitted distribution with k parameters
    :param probabilities: exactly k probabilities in (0, 1)
    :return: (k, k) matrix with one row per probability and one column
        per parameter
    :raises ParameterError: if the number of probabilities differs from k
    """
    probabilities = np.atleast_1d(probabilities)
    if len(probabilities) != distribution.number_of_parameters:
        raise ParameterError(
            f"{distribution.display_name} needs {distribution.number_of_parameters} "
            f"probabilities for a square Jacobian, got {len(probabilities)}"
        )
    return np.vstack([quantile_gradient(distribution, p) for p in probabilities])


# =============================================================================
# DETERMINANT
# =============================================================================

def determinant(matrix: Union[Sequence[Sequence[float]], np.ndarray]) -> float:
    """
    Determinant of a square matrix.

    Orders 1 to 3 are expanded explicitly; larger matrices use an LU
    factorization with partial pivoting.

    :param matrix: square matrix
    :return: determinant
    :raises ParameterError: if the matrix is not square
    """
    m = np.asarray(matrix, dtype=np.float64)
    if m.ndim != 2 or m.shape[0] != m.shape[1] or m.shape[0] == 0:
        raise ParameterError(f"Determinant requires a non-empty square matrix, got shape {m.shape}")

    n = m.shape[0]
    if n == 1:
        return float(m[0, 0])
    if n == 2:
        return float(m[0, 0] * m[1, 1] - m[0, 1] * m[1, 0])
    if n == 3:
        return float(
            m[0, 0] * (m[1, 1] * m[2, 2] - m[1, 2] * m[2, 1])
            - m[0, 1] * (m[1, 0] * m[2, 2] - m[1, 2] * m[2, 0])
            + m[0, 2] * (m[1, 0] * m[2, 1] - m[1, 1] * m[2, 0])
        )

    lu, pivots = linalg.lu_factor(m, check_finite=False)
    swaps = np.count_nonzero(pivots != np.arange(n))
    sign = -1.0 if swaps % 2 else 1.0
    return float(sign * np.prod(np.diag(lu)))


def jacobian_determinant(
    distribution: UnivariateDistribution,
    probabilities: Sequence[float]
) -> float:
    """
    Determinant of the quantile Jacobian.

    :param distribution: fitted distribution with k parameters
    :param probabilities: exactly k probabilities in (0, 1)
    :return: determinant of the (k, k) Jacobian
    """
    return determinant(quantile_jacobian(distribution, probabilities))


# =============================================================================
# CONFIDENCE INTERVALS
# =============================================================================

def quantile_confidence_interval(
    distribution: UnivariateDistribution,
    probabilities: Sequence[float],
    sample_size: int,
    method: Union[str, EstimationMethod],
    alpha: float = DEFAULT_ALPHA
) -> pd.DataFrame:
    """
    Normal-approximation confidence intervals for fitted quantiles.

    :param distribution: fitted distribution
    :param probabilities: non-exceedance probabilities in (0, 1)
    :param sample_size: number of observations used in the fit
    :param method: estimation method used in the fit
    :param alpha: significance level; the interval covers 1 - alpha
    :return: DataFrame indexed by probability with columns quantile,
        standard_error, lower, upper
    """
    if not 0.0 < alpha < 1.0:
        raise ParameterError(f"alpha must be in (0, 1), got: {alpha}")

    z = special.ndtri(1.0 - 0.5 * alpha)
    rows = []
    for p in np.atleast_1d(probabilities):
        quantile = distribution.inverse_cdf(p)
        se = np.sqrt(quantile_variance(distribution, p, sample_size, method))
        rows.append({
            'probability': float(p),
            'quantile': quantile,
            'standard_error': se,
            'lower': quantile - z * se,
            'upper': quantile + z * se,
        })

    _logger.debug(
        f"{distribution.display_name}: {len(rows)} quantile intervals at "
        f"{100 * (1 - alpha):.0f}% confidence"
    )
    return pd.DataFrame(rows).set_index('probability')
