"""
Univariate distribution contract.

Every distribution family plugs into UnivariateDistribution, which owns the
parameter vector, its validation state, the boundary semantics of the PDF,
CDF and inverse CDF, memoized numerical moments, cloning, and inverse-CDF
random sampling. Families supply only their closed-form formulas.

Estimation and uncertainty capabilities are attached per family by
composing the trait mixins defined here:

- MomentEstimation: method of moments
- LinearMomentEstimation: method of L-moments
- MaximumLikelihoodEstimation: maximum likelihood (Nelder-Mead)
- StandardError: asymptotic parameter covariance and quantile gradients
- Bootstrappable: parametric bootstrap

The set of estimation methods a family supports is fixed when the class is
defined (``supported_methods``), so asking for an unsupported method fails
before any computation is attempted.
"""

from __future__ import annotations

import copy
from typing import Dict, FrozenSet, NamedTuple, Optional, Sequence, Tuple, Type, Union

import numpy as np
from numba import jit

from .config import (
    DEFAULT_SEED,
    DISTRIBUTION_DISPLAY_NAMES,
    MOMENT_INTEGRATION_STEPS,
    MOMENT_TAIL_PROBABILITY,
    DistributionType,
    EstimationMethod,
)
from .exceptions import ParameterError, UnsupportedMethodError
from .rootfinding import bracket, brent_solve


class Constraints(NamedTuple):
    """Initial guess and box bounds for maximum likelihood estimation."""
    initial: np.ndarray
    lower: np.ndarray
    upper: np.ndarray


class Censoring(NamedTuple):
    """
    Observations known only by bounds, added to the exact-sample likelihood.

    number_below values lie at or below left_threshold, number_above values
    lie above right_threshold, and each (lower_limits[i], upper_limits[i])
    pair holds one value.
    """
    left_threshold: float = -np.inf
    number_below: int = 0
    right_threshold: float = np.inf
    number_above: int = 0
    lower_limits: Sequence[float] = ()
    upper_limits: Sequence[float] = ()


# =============================================================================
# CAPABILITY TRAITS
# =============================================================================

class MomentEstimation:
    """Family maps product moments to parameters in closed form."""

    def parameters_from_moments(self, moments: np.ndarray) -> np.ndarray:
        """
        Map product moments to a parameter vector.

        :param moments: [mean, standard deviation, skewness, kurtosis]
        :return: parameter vector
        """
        raise NotImplementedError


class LinearMomentEstimation:
    """Family maps L-moments to parameters."""

    def parameters_from_linear_moments(self, lmoments: np.ndarray) -> np.ndarray:
        """
        Map sample L-moments to a parameter vector.

        :param lmoments: [L1, L2, T3, T4]
        :return: parameter vector
        """
        raise NotImplementedError


class MaximumLikelihoodEstimation:
    """Family can be fitted by maximizing its log-likelihood."""

    def parameter_constraints(self, sample: np.ndarray) -> Constraints:
        """
        Initial values and bounds for the likelihood search.

        Derived from cheap closed-form estimates and the order of magnitude
        of the data. Recomputed on every call.

        :param sample: validated 1-D sample
        :return: Constraints(initial, lower, upper)
        """
        raise NotImplementedError

    def closed_form_mle(self, sample: np.ndarray) -> Optional[np.ndarray]:
        """
        Closed-form maximum likelihood estimate, when one exists.

        :param sample: validated 1-D sample
        :return: parameter vector, or None to use the numerical search
        """
        return None


class StandardError:
    """Family has asymptotic parameter covariance and quantile gradients."""

    # Estimation methods with a derived covariance formula
    covariance_methods: FrozenSet[EstimationMethod] = frozenset()

    def parameter_covariance(self, sample_size: int, method: EstimationMethod) -> np.ndarray:
        """
        Asymptotic covariance of the estimated parameters.

        :param sample_size: number of observations the fit was based on
        :param method: estimation method used for the fit
        :return: (k, k) covariance matrix
        """
        raise NotImplementedError

    def quantile_gradient(self, probability: float) -> np.ndarray:
        """
        Partial derivatives of the quantile function with respect to each
        parameter.

        :param probability: non-exceedance probability in (0, 1)
        :return: gradient vector of length k
        """
        raise NotImplementedError


class Bootstrappable:
    """Family supports the parametric bootstrap."""

    def bootstrap(
        self,
        method: Union[str, EstimationMethod],
        sample_size: int,
        seed: Optional[int] = DEFAULT_SEED
    ) -> UnivariateDistribution:
        """
        Re-estimate this distribution from a synthetic sample drawn from it.

        See freqfit.bootstrap.bootstrap().
        """
        from .bootstrap import bootstrap
        return bootstrap(self, method, sample_size, seed)


_TRAIT_METHODS = (
    (MomentEstimation, EstimationMethod.MOMENTS),
    (LinearMomentEstimation, EstimationMethod.LMOMENTS),
    (MaximumLikelihoodEstimation, EstimationMethod.MLE),
)


# =============================================================================
# NUMERICAL MOMENTS
# =============================================================================

@jit(nopython=True, cache=True)
def _stratified_moments(edges: np.ndarray, cdf_values: np.ndarray) -> np.ndarray:
    """
    Numba-optimized moments from CDF values on stratified bin edges.

    The first and last bins carry the tail mass below/above the trimmed
    range at their inner edge; interior bins are represented by midpoints.

    :param edges: bin edges, length steps + 1
    :param cdf_values: CDF evaluated at each edge
    :return: [mean, standard deviation, skewness, kurtosis]
    """
    steps = len(edges) - 1
    points = np.empty(steps)
    weights = np.empty(steps)

    points[0] = edges[1]
    weights[0] = cdf_values[1]
    for i in range(1, steps - 1):
        points[i] = 0.5 * (edges[i] + edges[i + 1])
        weights[i] = cdf_values[i + 1] - cdf_values[i]
    points[steps - 1] = edges[steps - 1]
    weights[steps - 1] = 1.0 - cdf_values[steps - 1]

    s1 = 0.0
    s2 = 0.0
    for i in range(steps):
        s1 += points[i] * weights[i]
        s2 += points[i] * points[i] * weights[i]
    mean = s1
    sd = np.sqrt(max(s2 - mean * mean, 0.0))

    s3 = 0.0
    s4 = 0.0
    for i in range(steps):
        z = (points[i] - mean) / sd
        s3 += z * z * z * weights[i]
        s4 += z * z * z * z * weights[i]

    result = np.empty(4)
    result[0] = mean
    result[1] = sd
    result[2] = s3
    result[3] = s4
    return result


# =============================================================================
# DISTRIBUTION BASE
# =============================================================================

class UnivariateDistribution:
    """
    Base class for univariate distributions.

    Parameters are held as an ordered float vector. Every mutation
    re-validates the vector and stores the outcome (None, or the error that
    describes the problem); statistical queries raise that error at the
    point of use while the parameters remain invalid.

    Subclasses define:
        distribution_type, parameter_names, parameter_bounds,
        default_parameters, minimum, maximum, _pdf, _cdf
    and optionally _log_pdf, _inverse_cdf, closed-form moments, and the
    capability traits.
    """

    distribution_type: Optional[DistributionType] = None
    parameter_names: Tuple[str, ...] = ()
    # Open (exclusive) admissible interval per parameter
    parameter_bounds: Tuple[Tuple[float, float], ...] = ()
    default_parameters: Tuple[float, ...] = ()
    is_discrete = False

    supported_methods: FrozenSet[EstimationMethod] = frozenset()

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        cls.supported_methods = frozenset(
            method for trait, method in _TRAIT_METHODS if issubclass(cls, trait)
        )

    def __init__(self, *parameters: float):
        if len(parameters) == 1 and np.ndim(parameters[0]) == 1:
            parameters = tuple(parameters[0])
        if not parameters:
            parameters = self.default_parameters

        self._parameters = np.empty(0)
        self._validation_error: Optional[ParameterError] = None
        self._moment_cache: Optional[Tuple[tuple, np.ndarray]] = None
        self.set_parameters(parameters)

    # -------------------------------------------------------------------------
    # Parameters
    # -------------------------------------------------------------------------

    @property
    def number_of_parameters(self) -> int:
        return len(self.parameter_names)

    @property
    def parameters(self) -> np.ndarray:
        """Copy of the current parameter vector."""
        return self._parameters.copy()

    @property
    def parameters_dict(self) -> Dict[str, float]:
        return dict(zip(self.parameter_names, self._parameters.tolist()))

    def set_parameters(self, parameters: Sequence[float]):
        """
        Replace the parameter vector.

        The vector is validated without raising; the outcome is available
        from validation_error and is raised lazily by statistical queries.

        :param parameters: ordered parameter values
        :raises ParameterError: if the vector has the wrong length
        """
        values = np.array(parameters, dtype=np.float64).ravel()
        if values.shape != (self.number_of_parameters,):
            raise ParameterError(
                f"{type(self).__name__} expects {self.number_of_parameters} "
                f"parameters {self.parameter_names}, got {len(values)}"
            )

        self._parameters = values
        self._validation_error = self.validate_parameters(values)
        self._moment_cache = None

    def _set_parameter(self, index: int, value: float):
        values = self._parameters.copy()
        values[index] = value
        self.set_parameters(values)

    def validate_parameters(
        self,
        parameters: Sequence[float],
        raise_error: bool = False
    ) -> Optional[ParameterError]:
        """
        Check a parameter vector against the family's admissible ranges.

        :param parameters: parameter vector to check
        :param raise_error: raise the error instead of returning it
        :return: None if valid, otherwise the ParameterError describing why
        :raises ParameterError: if invalid and raise_error is set
        """
        values = np.asarray(parameters, dtype=np.float64)
        error = self._check_parameters(values)
        if error is not None and raise_error:
            raise error
        return error

    def _check_parameters(self, values: np.ndarray) -> Optional[ParameterError]:
        for name, value, (low, high) in zip(
            self.parameter_names, values, self.parameter_bounds
        ):
            if not np.isfinite(value):
                return ParameterError(f"Parameter '{name}' must be finite, got: {value}")
            if not low < value < high:
                return ParameterError(
                    f"Parameter '{name}' must be in ({low}, {high}), got: {value}"
                )
        return None

    @property
    def validation_error(self) -> Optional[ParameterError]:
        return self._validation_error

    @property
    def parameters_valid(self) -> bool:
        return self._validation_error is None

    def _require_valid(self):
        if self._validation_error is not None:
            self.validate_parameters(self._parameters, raise_error=True)

    # -------------------------------------------------------------------------
    # Support
    # -------------------------------------------------------------------------

    @property
    def minimum(self) -> float:
        return -np.inf

    @property
    def maximum(self) -> float:
        return np.inf

    def _outside_support(self, x: float) -> bool:
        return x < self.minimum or x > self.maximum

    # -------------------------------------------------------------------------
    # Core functions
    # -------------------------------------------------------------------------

    def pdf(self, x: float) -> float:
        """
        Probability density (probability mass for discrete families).

        :param x: any real value
        :return: density at x; exactly 0 outside [minimum, maximum]
        :raises ParameterError: if the parameters are invalid
        """
        self._require_valid()
        if np.isnan(x):
            return np.nan
        if self._outside_support(x):
            return 0.0
        return float(self._pdf(x))

    def cdf(self, x: float) -> float:
        """
        Cumulative probability P(X <= x).

        :param x: any real value
        :return: probability; exactly 0 below the support and exactly 1 at
            or above the maximum
        :raises ParameterError: if the parameters are invalid
        """
        self._require_valid()
        if np.isnan(x):
            return np.nan
        if x < self.minimum or (x == self.minimum and not self.is_discrete):
            return 0.0
        if x >= self.maximum:
            return 1.0
        return float(self._cdf(x))

    def inverse_cdf(self, probability: float) -> float:
        """
        Quantile function.

        Probabilities 0 and 1 return the support bounds directly, without
        any numerical solving.

        :param probability: probability in [0, 1]
        :return: quantile value
        :raises ParameterError: if the probability is outside [0, 1] or the
            parameters are invalid
        """
        self._require_valid()
        if not 0.0 <= probability <= 1.0:
            raise ParameterError(
                f"Probability must be in [0, 1], got: {probability}"
            )
        if probability == 0.0:
            return self.minimum
        if probability == 1.0:
            return self.maximum
        return float(self._inverse_cdf(probability))

    def ccdf(self, x: float) -> float:
        """Complementary CDF, P(X > x)."""
        return 1.0 - self.cdf(x)

    def log_pdf(self, x: float) -> float:
        """Natural log of the PDF; -inf outside the support."""
        self._require_valid()
        if self._outside_support(x):
            return -np.inf
        return float(self._log_pdf(np.asarray(x, dtype=np.float64)))

    def log_cdf(self, x: float) -> float:
        """Natural log of the CDF."""
        with np.errstate(divide='ignore'):
            return float(np.log(self.cdf(x)))

    def log_ccdf(self, x: float) -> float:
        """Natural log of the complementary CDF."""
        with np.errstate(divide='ignore'):
            return float(np.log(self.ccdf(x)))

    def hazard(self, x: float) -> float:
        """Hazard function, PDF / CCDF."""
        survival = self.ccdf(x)
        if survival <= 0.0:
            return np.inf
        return self.pdf(x) / survival

    def log_likelihood(self, sample: Union[Sequence[float], np.ndarray]) -> float:
        """
        Sum of log-densities over a sample.

        :param sample: observations
        :return: log-likelihood; -inf if any observation lies outside the
            support or the sum is not finite
        :raises ParameterError: if the parameters are invalid
        """
        self._require_valid()
        x = np.asarray(sample, dtype=np.float64)
        if np.any((x < self.minimum) | (x > self.maximum)):
            return -np.inf
        with np.errstate(all='ignore'):
            total = float(np.sum(self._log_pdf(x)))
        if not np.isfinite(total):
            return -np.inf
        return total

    def log_likelihood_left_censored(self, threshold: float, number_below: int) -> float:
        """
        Log-likelihood of values known only to lie at or below a threshold.

        :param threshold: censoring threshold
        :param number_below: number of censored values
        :return: number_below * log CDF(threshold)
        :raises ParameterError: if number_below is negative
        """
        if number_below < 0:
            raise ParameterError(f"Number of censored values must be >= 0, got: {number_below}")
        if number_below == 0:
            return 0.0
        return number_below * self.log_cdf(threshold)

    def log_likelihood_right_censored(self, threshold: float, number_above: int) -> float:
        """
        Log-likelihood of values known only to lie above a threshold.

        :param threshold: censoring threshold
        :param number_above: number of censored values
        :return: number_above * log CCDF(threshold)
        :raises ParameterError: if number_above is negative
        """
        if number_above < 0:
            raise ParameterError(f"Number of censored values must be >= 0, got: {number_above}")
        if number_above == 0:
            return 0.0
        return number_above * self.log_ccdf(threshold)

    def log_likelihood_intervals(
        self,
        lower: Union[float, Sequence[float]],
        upper: Union[float, Sequence[float]]
    ) -> float:
        """
        Log-likelihood of values known only to lie within intervals.

        :param lower: lower interval limit(s)
        :param upper: upper interval limit(s), same length as lower
        :return: sum of log(CDF(upper) - CDF(lower)); -inf if an interval
            carries no probability
        :raises ParameterError: if the limits differ in length or an
            interval is reversed
        """
        lower = np.atleast_1d(np.asarray(lower, dtype=np.float64))
        upper = np.atleast_1d(np.asarray(upper, dtype=np.float64))
        if lower.shape != upper.shape:
            raise ParameterError(
                f"Interval limits differ in length: {len(lower)} and {len(upper)}"
            )
        if np.any(lower > upper):
            raise ParameterError("Interval lower limits must not exceed upper limits")

        mass = np.array([self.cdf(u) - self.cdf(l) for l, u in zip(lower, upper)])
        with np.errstate(divide='ignore', invalid='ignore'):
            total = float(np.sum(np.log(mass)))
        if not np.isfinite(total):
            return -np.inf
        return total

    def censored_log_likelihood(
        self,
        sample: Union[Sequence[float], np.ndarray],
        censoring: Censoring
    ) -> float:
        """
        Log-likelihood of exact observations plus censored and interval data.

        :param sample: exact observations (may be empty)
        :param censoring: bounds-only observations
        :return: combined log-likelihood; -inf if it is not finite
        """
        total = self.log_likelihood(sample) if len(sample) else 0.0
        total += self.log_likelihood_left_censored(censoring.left_threshold, censoring.number_below)
        total += self.log_likelihood_right_censored(censoring.right_threshold, censoring.number_above)
        if len(censoring.lower_limits) or len(censoring.upper_limits):
            total += self.log_likelihood_intervals(censoring.lower_limits, censoring.upper_limits)
        if not np.isfinite(total):
            return -np.inf
        return total

    # -------------------------------------------------------------------------
    # Formula hooks
    # -------------------------------------------------------------------------

    def _pdf(self, x):
        raise NotImplementedError

    def _cdf(self, x):
        raise NotImplementedError

    def _log_pdf(self, x):
        with np.errstate(divide='ignore'):
            return np.log(self._pdf(x))

    def _search_interval(self, probability: float) -> Tuple[float, float]:
        """Starting interval for the bracketed quantile search."""
        low = self.minimum if np.isfinite(self.minimum) else None
        high = self.maximum if np.isfinite(self.maximum) else None
        if low is None and high is None:
            return -1.0, 1.0
        if low is None:
            return high - 1.0, high
        if high is None:
            return low, low + 1.0
        return low, high

    def _inverse_cdf(self, probability: float) -> float:
        """
        Quantile by root finding, for families without a closed form.

        Brackets CDF(x) - p = 0 by geometric expansion from the family's
        search interval and solves it with Brent's method.
        """
        def objective(x):
            return self.cdf(x) - probability

        low, high = self._search_interval(probability)
        low, high = bracket(objective, low, high)
        return brent_solve(objective, low, high)

    # -------------------------------------------------------------------------
    # Moments
    # -------------------------------------------------------------------------

    def central_moments(self, steps: int = MOMENT_INTEGRATION_STEPS) -> np.ndarray:
        """
        Mean, standard deviation, skewness and kurtosis by stratified
        summation of CDF differences over the central range of the
        distribution.

        The result is memoized for the current parameter vector and cleared
        by any parameter change.

        :param steps: number of strata (default: 1000)
        :return: [mean, standard deviation, skewness, kurtosis]
        """
        self._require_valid()
        key = (steps, tuple(self._parameters.tolist()))
        if self._moment_cache is not None and self._moment_cache[0] == key:
            return self._moment_cache[1].copy()

        low = self.inverse_cdf(MOMENT_TAIL_PROBABILITY)
        high = self.inverse_cdf(1.0 - MOMENT_TAIL_PROBABILITY)
        if not low < high:
            moments = np.array([low, np.nan, np.nan, np.nan])
        else:
            edges = np.linspace(low, high, steps + 1)
            cdf_values = np.array([self.cdf(x) for x in edges])
            moments = _stratified_moments(edges, cdf_values)

        self._moment_cache = (key, moments)
        return moments.copy()

    @property
    def mean(self) -> float:
        self._require_valid()
        return float(self._mean())

    @property
    def standard_deviation(self) -> float:
        self._require_valid()
        return float(self._standard_deviation())

    @property
    def skewness(self) -> float:
        self._require_valid()
        return float(self._skewness())

    @property
    def kurtosis(self) -> float:
        """Kurtosis (not excess); 3 for the normal distribution."""
        self._require_valid()
        return float(self._kurtosis())

    # Closed-form moment hooks; the defaults fall back to numerical moments
    def _mean(self) -> float:
        return self.central_moments()[0]

    def _standard_deviation(self) -> float:
        return self.central_moments()[1]

    def _skewness(self) -> float:
        return self.central_moments()[2]

    def _kurtosis(self) -> float:
        return self.central_moments()[3]

    @property
    def variance(self) -> float:
        return self.standard_deviation ** 2

    @property
    def median(self) -> float:
        return self.inverse_cdf(0.5)

    @property
    def mode(self) -> float:
        """Value of highest density (highest probability for discrete families)."""
        self._require_valid()
        return float(self._mode())

    @property
    def coefficient_of_variation(self) -> float:
        """Standard deviation divided by the mean."""
        return self.standard_deviation / self.mean

    def _mode(self) -> float:
        raise NotImplementedError

    # -------------------------------------------------------------------------
    # Sampling and copies
    # -------------------------------------------------------------------------

    def generate_random_values(self, sample_size: int, seed: Optional[int] = None) -> np.ndarray:
        """
        Draw a sample by inverse-CDF sampling on uniform variates.

        :param sample_size: number of values to draw
        :param seed: seed for numpy.random.default_rng (None for entropy)
        :return: array of sample_size values
        :raises ParameterError: if sample_size < 1 or parameters are invalid
        """
        if sample_size < 1:
            raise ParameterError(f"Sample size must be >= 1, got: {sample_size}")
        self._require_valid()

        rng = np.random.default_rng(seed)
        # Open interval (0, 1) so draws never land on an infinite support bound
        u = rng.uniform(np.nextafter(0.0, 1.0), 1.0, sample_size)
        return np.array([self.inverse_cdf(p) for p in u])

    def clone(self) -> UnivariateDistribution:
        """Independent copy of this distribution."""
        return copy.deepcopy(self)

    def prepare_sample(self, sample: np.ndarray) -> np.ndarray:
        """
        Transform a validated sample into the space the estimators work in.

        :param sample: validated 1-D sample
        :return: the sample itself, unless a family overrides this
        """
        return sample

    def finalize_parameters(self, parameters: np.ndarray) -> np.ndarray:
        """Adjust estimated parameters before they are set (e.g. rounding)."""
        return parameters

    def require_method(self, method: EstimationMethod):
        """
        :raises UnsupportedMethodError: if the family lacks the method
        """
        if method not in self.supported_methods:
            supported = ", ".join(sorted(m.value for m in self.supported_methods)) or "none"
            raise UnsupportedMethodError(
                f"{self.display_name} does not support estimation by "
                f"'{method.value}' (supported: {supported})"
            )

    # -------------------------------------------------------------------------
    # Display and comparison
    # -------------------------------------------------------------------------

    @property
    def display_name(self) -> str:
        return DISTRIBUTION_DISPLAY_NAMES.get(self.distribution_type, type(self).__name__)

    def __eq__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return np.array_equal(self._parameters, other._parameters)

    def __repr__(self):
        params = ", ".join(f"{k}={v:.6g}" for k, v in self.parameters_dict.items())
        return f"{type(self).__name__}({params})"


# =============================================================================
# REGISTRY
# =============================================================================

_DISTRIBUTION_CLASSES: Dict[DistributionType, Type[UnivariateDistribution]] = {}


def register_distribution(cls: Type[UnivariateDistribution]) -> Type[UnivariateDistribution]:
    """Class decorator adding a family to the factory registry."""
    _DISTRIBUTION_CLASSES[cls.distribution_type] = cls
    return cls


def available_distributions() -> Tuple[DistributionType, ...]:
    """Distribution types registered with the factory."""
    return tuple(_DISTRIBUTION_CLASSES)


def create_distribution(
    distribution: Union[str, DistributionType],
    parameters: Optional[Sequence[float]] = None
) -> UnivariateDistribution:
    """
    Construct a distribution by type.

    :param distribution: distribution type (string or DistributionType)
    :param parameters: optional parameter vector; family defaults if None
    :return: new distribution instance
    :raises ValueError: if the type is unknown

    Example:
        >>> gamma = create_distribution('gamma', [10.0, 2.0])
        >>> gamma.inverse_cdf(0.99)
    """
    if isinstance(distribution, str):
        distribution = DistributionType.from_string(distribution)

    try:
        cls = _DISTRIBUTION_CLASSES[distribution]
    except KeyError:
        raise ValueError(f"No distribution registered for type: {distribution}")

    if parameters is None:
        return cls()
    return cls(*parameters)
