"""
Parametric bootstrap.

A fitted distribution generates a synthetic sample of the original size,
which is re-fitted with the same estimation method. Repeating this many
times gives the sampling distribution of the parameters and of any derived
quantity (quantiles, moments), from which confidence intervals follow
without asymptotic approximations.

Replicates are independent and seeded deterministically from one master
seed, so an analysis is reproducible end to end.
"""

from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy import special

from .config import (
    BOOTSTRAP_RETRIES,
    DEFAULT_ALPHA,
    DEFAULT_REPLICATIONS,
    DEFAULT_SEED,
    MIN_BOOTSTRAP_REPLICATIONS,
    MIN_BOOTSTRAP_SAMPLE_SIZE,
    MIN_SAMPLE_SIZE,
    EstimationMethod,
    get_logger,
)
from .distributions import Bootstrappable, UnivariateDistribution
from .estimation import as_method, estimate
from .exceptions import FreqFitError, ParameterError, UnsupportedMethodError
from .utils import linear_moments, product_moments

# Module logger
_logger = get_logger(__name__)

# Seed offset between retries of a failed replicate
_RETRY_SEED_STEP = 10


def _resample(
    distribution: UnivariateDistribution,
    method: EstimationMethod,
    sample_size: int,
    seed: Optional[int]
) -> Tuple[np.ndarray, UnivariateDistribution]:
    """Draw a synthetic sample and fit a copy of the distribution to it."""
    sample = distribution.generate_random_values(sample_size, seed)
    fitted = estimate(distribution.clone(), sample, method)
    return sample, fitted


def bootstrap(
    distribution: UnivariateDistribution,
    method: Union[str, EstimationMethod],
    sample_size: int,
    seed: Optional[int] = DEFAULT_SEED
) -> UnivariateDistribution:
    """
    Re-estimate a distribution from a synthetic sample drawn from it.

    :param distribution: fitted distribution (not modified)
    :param method: estimation method used for the re-fit
    :param sample_size: size of the synthetic sample
    :param seed: random seed; the same seed gives the same result
    :return: new distribution fitted to the synthetic sample
    :raises UnsupportedMethodError: if the family lacks the bootstrap or the method
    :raises ParameterError: if the sample size is too small or the
        parameters are invalid
    :raises FittingError: if the re-fitted parameters are invalid

    Example:
        >>> gamma = create_distribution('gamma', [10.0, 2.0])
        >>> replicate = bootstrap(gamma, 'moments', 10000, seed=12345)
    """
    method = as_method(method)
    if not isinstance(distribution, Bootstrappable):
        raise UnsupportedMethodError(f"{distribution.display_name} does not support the bootstrap")
    distribution.require_method(method)
    if sample_size < MIN_SAMPLE_SIZE:
        raise ParameterError(
            f"Bootstrap sample size must be >= {MIN_SAMPLE_SIZE}, got: {sample_size}"
        )

    return _resample(distribution, method, sample_size, seed)[1]


# =============================================================================
# BOOTSTRAP ANALYSIS
# =============================================================================

class BootstrapAnalysis:
    """
    Repeated parametric bootstrap of a fitted distribution.

    Replicate i is seeded from a master generator; if its fit fails it is
    retried with seeds offset by 10, up to 20 times, and otherwise recorded
    as missing. Missing replicates are excluded from every statistic.

    Example:
        >>> gev = fit('gev', annual_maxima, 'lmoments')
        >>> analysis = BootstrapAnalysis(gev, 'lmoments', len(annual_maxima))
        >>> analysis.run()
        >>> analysis.percentile_ci([0.9, 0.99])
    """

    def __init__(
        self,
        distribution: UnivariateDistribution,
        method: Union[str, EstimationMethod],
        sample_size: int,
        replications: int = DEFAULT_REPLICATIONS,
        seed: int = DEFAULT_SEED
    ):
        """
        :param distribution: fitted distribution (copied)
        :param method: estimation method for each re-fit
        :param sample_size: size of each synthetic sample (>= 10)
        :param replications: number of replicates (>= 100)
        :param seed: master seed
        """
        self.method = as_method(method)
        if not isinstance(distribution, Bootstrappable):
            raise UnsupportedMethodError(f"{distribution.display_name} does not support the bootstrap")
        distribution.require_method(self.method)
        distribution.validate_parameters(distribution.parameters, raise_error=True)

        if sample_size < MIN_BOOTSTRAP_SAMPLE_SIZE:
            raise ParameterError(
                f"Sample size must be >= {MIN_BOOTSTRAP_SAMPLE_SIZE}, got: {sample_size}"
            )
        if replications < MIN_BOOTSTRAP_REPLICATIONS:
            raise ParameterError(
                f"Replications must be >= {MIN_BOOTSTRAP_REPLICATIONS}, got: {replications}"
            )

        self.distribution = distribution.clone()
        self.sample_size = int(sample_size)
        self.replications = int(replications)
        self.seed = seed

        self._distributions: Optional[List[Optional[UnivariateDistribution]]] = None
        self._sample_moments: Optional[np.ndarray] = None
        self._sample_lmoments: Optional[np.ndarray] = None

    def __repr__(self):
        return (
            f"BootstrapAnalysis({self.distribution!r}, method='{self.method.value}', "
            f"sample_size={self.sample_size}, replications={self.replications})"
        )

    # -------------------------------------------------------------------------
    # Running
    # -------------------------------------------------------------------------

    def _replicate(self, seed: int) -> Tuple[Optional[np.ndarray], Optional[UnivariateDistribution]]:
        error = None
        for attempt in range(BOOTSTRAP_RETRIES):
            try:
                return _resample(
                    self.distribution, self.method, self.sample_size,
                    seed + _RETRY_SEED_STEP * attempt,
                )
            except FreqFitError as e:
                error = e

        _logger.warning(
            f"Bootstrap replicate with seed {seed} failed after "
            f"{BOOTSTRAP_RETRIES} attempts: {error}"
        )
        return None, None

    def run(self) -> List[Optional[UnivariateDistribution]]:
        """
        Generate and fit all replicates.

        :return: fitted distribution per replicate, None where the fit failed
        """
        _logger.info(
            f"Bootstrapping {self.distribution.display_name} by "
            f"'{self.method.value}': {self.replications} replicates of "
            f"{self.sample_size} values"
        )

        rng = np.random.default_rng(self.seed)
        seeds = rng.integers(0, np.iinfo(np.int32).max, size=self.replications)

        distributions = []
        moments = np.full((self.replications, 4), np.nan)
        lmoments = np.full((self.replications, 4), np.nan)
        for i, replicate_seed in enumerate(seeds):
            sample, fitted = self._replicate(int(replicate_seed))
            distributions.append(fitted)
            if sample is not None:
                moments[i] = product_moments(sample)
                lmoments[i] = linear_moments(sample)

        failed = sum(d is None for d in distributions)
        if failed:
            _logger.warning(f"{failed} of {self.replications} bootstrap replicates failed")

        self._distributions = distributions
        self._sample_moments = moments
        self._sample_lmoments = lmoments
        return list(distributions)

    @property
    def distributions(self) -> List[Optional[UnivariateDistribution]]:
        """Fitted distribution per replicate (runs the analysis on first use)."""
        if self._distributions is None:
            self.run()
        return list(self._distributions)

    @property
    def failed_replications(self) -> int:
        return sum(d is None for d in self.distributions)

    # -------------------------------------------------------------------------
    # Replicate statistics
    # -------------------------------------------------------------------------

    def parameters(self) -> np.ndarray:
        """(replications, k) parameter array, NaN rows for failed replicates."""
        k = self.distribution.number_of_parameters
        return np.vstack([
            d.parameters if d is not None else np.full(k, np.nan)
            for d in self.distributions
        ])

    def parameter_table(self) -> pd.DataFrame:
        """Replicate parameters as a DataFrame, one column per parameter."""
        table = pd.DataFrame(self.parameters(), columns=list(self.distribution.parameter_names))
        table.index.name = 'replicate'
        return table

    def product_moments(self) -> np.ndarray:
        """(replications, 4) product moments of each synthetic sample."""
        if self._sample_moments is None:
            self.run()
        return self._sample_moments.copy()

    def linear_moments(self) -> np.ndarray:
        """(replications, 4) L-moments [L1, L2, T3, T4] of each synthetic sample."""
        if self._sample_lmoments is None:
            self.run()
        return self._sample_lmoments.copy()

    def quantiles(self, probabilities: Sequence[float]) -> np.ndarray:
        """
        Quantiles of every replicate.

        :param probabilities: non-exceedance probabilities
        :return: (replications, len(probabilities)) array, NaN rows for
            failed replicates
        """
        probabilities = np.atleast_1d(probabilities)
        return np.vstack([
            [d.inverse_cdf(p) for p in probabilities] if d is not None
            else np.full(len(probabilities), np.nan)
            for d in self.distributions
        ])

    # -------------------------------------------------------------------------
    # Confidence intervals
    # -------------------------------------------------------------------------

    @staticmethod
    def _check_alpha(alpha: float):
        if not 0.0 < alpha < 1.0:
            raise ParameterError(f"alpha must be in (0, 1), got: {alpha}")

    def _interval_frame(self, probabilities, lower, upper) -> pd.DataFrame:
        frame = pd.DataFrame({
            'probability': np.atleast_1d(probabilities).astype(float),
            'quantile': [self.distribution.inverse_cdf(p) for p in np.atleast_1d(probabilities)],
            'lower': lower,
            'upper': upper,
        })
        return frame.set_index('probability')

    def percentile_ci(
        self,
        probabilities: Sequence[float],
        alpha: float = DEFAULT_ALPHA
    ) -> pd.DataFrame:
        """
        Percentile confidence intervals for quantiles.

        :param probabilities: non-exceedance probabilities
        :param alpha: significance level; the interval covers 1 - alpha
        :return: DataFrame indexed by probability with columns quantile,
            lower, upper
        """
        self._check_alpha(alpha)
        values = self.quantiles(probabilities)
        lower = np.nanpercentile(values, 100 * 0.5 * alpha, axis=0)
        upper = np.nanpercentile(values, 100 * (1 - 0.5 * alpha), axis=0)
        return self._interval_frame(probabilities, lower, upper)

    def bias_corrected_ci(
        self,
        probabilities: Sequence[float],
        alpha: float = DEFAULT_ALPHA
    ) -> pd.DataFrame:
        """
        Bias-corrected percentile intervals.

        The percentile levels are shifted by z0, the normal score of the
        fraction of replicate quantiles below the fitted quantile.
        """
        self._check_alpha(alpha)
        probabilities = np.atleast_1d(probabilities)
        values = self.quantiles(probabilities)
        z_low = special.ndtri(0.5 * alpha)
        z_high = special.ndtri(1.0 - 0.5 * alpha)

        lower, upper = [], []
        for j, p in enumerate(probabilities):
            column = values[:, j][np.isfinite(values[:, j])]
            n = len(column)
            if n == 0:
                lower.append(np.nan)
                upper.append(np.nan)
                continue
            fraction = np.count_nonzero(column < self.distribution.inverse_cdf(p)) / n
            fraction = np.clip(fraction, 1.0 / (n + 1), n / (n + 1))
            z0 = special.ndtri(fraction)
            lower.append(np.percentile(column, 100 * special.ndtr(2 * z0 + z_low)))
            upper.append(np.percentile(column, 100 * special.ndtr(2 * z0 + z_high)))

        return self._interval_frame(probabilities, lower, upper)

    def normal_ci(
        self,
        probabilities: Sequence[float],
        alpha: float = DEFAULT_ALPHA
    ) -> pd.DataFrame:
        """
        Normal-approximation intervals on cube-root transformed quantiles.

        The cube root makes skewed quantile distributions closer to normal
        while keeping the sign, so it works for negative quantiles too.
        """
        self._check_alpha(alpha)
        values = np.cbrt(self.quantiles(probabilities))
        z = special.ndtri(1.0 - 0.5 * alpha)
        centre = np.nanmean(values, axis=0)
        spread = np.nanstd(values, axis=0, ddof=1)
        return self._interval_frame(
            probabilities, (centre - z * spread) ** 3, (centre + z * spread) ** 3,
        )

    def summary(
        self,
        probabilities: Sequence[float],
        alpha: float = DEFAULT_ALPHA
    ) -> pd.DataFrame:
        """
        Quantile summary: fitted value, bootstrap mean and standard error,
        and percentile interval bounds.
        """
        values = self.quantiles(probabilities)
        frame = self.percentile_ci(probabilities, alpha)
        frame.insert(1, 'bootstrap_mean', np.nanmean(values, axis=0))
        frame.insert(2, 'standard_error', np.nanstd(values, axis=0, ddof=1))
        return frame
