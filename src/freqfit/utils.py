"""
Sample statistics and numerical helpers.

Provides the sample-moment and L-moment computations consumed by the
estimators, plus small numerical utilities shared by the distribution
families (magnitude bounds for optimizer boxes, finite differences).

References:
    - Hosking, J.R.M. (1990). L-moments: Analysis and estimation of
      distributions using linear combinations of order statistics.
    - Joanes, D.N., Gill, C.A. (1998). Comparing measures of sample
      skewness and kurtosis.
"""

import math
from typing import Callable, Optional, Sequence, Tuple, Union

import numpy as np
from numba import jit

from .config import MIN_SAMPLE_SIZE
from .exceptions import ParameterError


# =============================================================================
# SAMPLE VALIDATION
# =============================================================================

def validate_sample(
    sample: Union[Sequence[float], np.ndarray],
    min_size: int = MIN_SAMPLE_SIZE
) -> np.ndarray:
    """
    Validate a sample and return a float64 copy of it.

    The caller's sequence is never modified.

    :param sample: 1-D sequence of observations
    :param min_size: minimum number of observations required (default: 2)
    :return: 1-D float64 array copy of the sample
    :raises ParameterError: if the sample is not 1-D, contains non-finite
        values, or has fewer than min_size observations
    """
    values = np.array(sample, dtype=np.float64, copy=True)

    if values.ndim != 1:
        raise ParameterError(f"Sample must be 1-D, got shape {values.shape}")

    if len(values) < min_size:
        raise ParameterError(
            f"Sample must contain at least {min_size} observations, "
            f"got {len(values)}"
        )

    if not np.all(np.isfinite(values)):
        n_bad = int(np.sum(~np.isfinite(values)))
        raise ParameterError(f"Sample contains {n_bad} non-finite values")

    return values


# =============================================================================
# PRODUCT MOMENTS
# =============================================================================

@jit(nopython=True, cache=True)
def _central_moment_sums(values: np.ndarray) -> Tuple[float, float, float, float]:
    """
    Numba-optimized mean and central moment averages of a 1-D array.

    :param values: 1-D array of observations
    :return: (mean, m2, m3, m4) where mk is the average of (x - mean)**k
    """
    n = len(values)
    mean = 0.0
    for i in range(n):
        mean += values[i]
    mean /= n

    m2 = 0.0
    m3 = 0.0
    m4 = 0.0
    for i in range(n):
        d = values[i] - mean
        d2 = d * d
        m2 += d2
        m3 += d2 * d
        m4 += d2 * d2
    return mean, m2 / n, m3 / n, m4 / n


def product_moments(sample: Union[Sequence[float], np.ndarray]) -> np.ndarray:
    """
    Compute the unbiased product moments of a sample.

    Skewness uses the adjusted Fisher-Pearson coefficient and kurtosis the
    unbiased excess estimator shifted by 3, so a normal sample has a
    kurtosis near 3.

    :param sample: 1-D sequence of observations (at least 2)
    :return: array [mean, standard deviation, skewness, kurtosis]; skewness
        is NaN for fewer than 3 observations and kurtosis for fewer than 4
    :raises ParameterError: if the sample is invalid
    """
    values = validate_sample(sample)
    n = float(len(values))

    mean, m2, m3, m4 = _central_moment_sums(values)

    # Unbiased variance
    sd = math.sqrt(m2 * n / (n - 1.0))

    skew = np.nan
    kurt = np.nan

    if n >= 3 and sd > 0:
        skew = n * n * m3 / ((n - 1.0) * (n - 2.0) * sd ** 3)

    if n >= 4 and sd > 0:
        excess = (
            n * n * (n + 1.0) * m4
            / ((n - 1.0) * (n - 2.0) * (n - 3.0) * sd ** 4)
            - 3.0 * (n - 1.0) ** 2 / ((n - 2.0) * (n - 3.0))
        )
        kurt = excess + 3.0

    return np.array([mean, sd, skew, kurt])


# =============================================================================
# L-MOMENTS COMPUTATION
# =============================================================================

@jit(nopython=True, cache=True)
def _probability_weighted_moments(x: np.ndarray, nmom: int) -> np.ndarray:
    """
    Numba-optimized unbiased probability weighted moments b0..b(nmom-1).

    :param x: sorted 1-D array of observations
    :param nmom: number of PWMs to compute
    :return: array of PWMs
    """
    n = len(x)
    b = np.zeros(nmom)
    for i in range(n):
        # Weight for rank i is C(i, r) / C(n-1, r), built incrementally
        weight = 1.0
        for r in range(nmom):
            if r > 0:
                if i - r + 1 <= 0:
                    weight = 0.0
                else:
                    weight *= (i - r + 1.0) / (n - r)
            b[r] += weight * x[i]
    for r in range(nmom):
        b[r] /= n
    return b


def compute_lmoments(data: Union[Sequence[float], np.ndarray], nmom: int = 4) -> np.ndarray:
    """
    Compute L-moments from sample data.

    L-moments are more robust to outliers than conventional moments
    and provide better parameter estimates for small samples.

    :param data: 1-D array of sample values (any order)
    :param nmom: number of L-moments to compute, 1 to 4 (default: 4)
    :return: array of L-moments [l1, l2, l3, l4]; NaN-filled when the
        sample is shorter than nmom

    Reference: Hosking (1990)
    """
    if not 1 <= nmom <= 4:
        raise ParameterError(f"nmom must be between 1 and 4, got: {nmom}")

    x = np.sort(np.asarray(data, dtype=np.float64))
    if len(x) < nmom:
        return np.full(nmom, np.nan)

    b = _probability_weighted_moments(x, nmom)

    # Convert PWMs to L-moments
    lmom = np.zeros(nmom)
    lmom[0] = b[0]  # L1 = mean

    if nmom >= 2:
        lmom[1] = 2 * b[1] - b[0]  # L2

    if nmom >= 3:
        lmom[2] = 6 * b[2] - 6 * b[1] + b[0]  # L3

    if nmom >= 4:
        lmom[3] = 20 * b[3] - 30 * b[2] + 12 * b[1] - b[0]  # L4

    return lmom


def compute_lmoment_ratios(lmom: np.ndarray) -> Tuple[float, float, float]:
    """
    Compute L-moment ratios (L-CV, L-skewness, L-kurtosis).

    :param lmom: array of L-moments [l1, l2, l3, l4]
    :return: (t2, t3, t4) = (L-CV, L-skewness, L-kurtosis)
    """
    if len(lmom) < 4 or not lmom[1] > 0:
        return np.nan, np.nan, np.nan

    t2 = lmom[1] / lmom[0] if lmom[0] != 0 else np.nan  # L-CV
    t3 = lmom[2] / lmom[1]  # L-skewness
    t4 = lmom[3] / lmom[1]  # L-kurtosis

    return t2, t3, t4


def linear_moments(sample: Union[Sequence[float], np.ndarray]) -> np.ndarray:
    """
    Compute the sample L-moments used by the L-moment estimators.

    :param sample: 1-D sequence of observations (at least 2)
    :return: array [L1, L2, T3, T4] (mean, L-scale, L-skewness, L-kurtosis);
        T3/T4 are NaN when the sample is too short or has zero L-scale
    :raises ParameterError: if the sample is invalid
    """
    values = validate_sample(sample)
    nmom = min(4, len(values))
    lmom = np.full(4, np.nan)
    lmom[:nmom] = compute_lmoments(values, nmom)

    t3 = t4 = np.nan
    if lmom[1] > 0:
        t3 = lmom[2] / lmom[1]
        t4 = lmom[3] / lmom[1]

    return np.array([lmom[0], lmom[1], t3, t4])


# =============================================================================
# NUMERICAL HELPERS
# =============================================================================

def magnitude_bound(value: float) -> float:
    """
    Order-of-magnitude bound used to box optimizer searches.

    :param value: reference value (e.g. an initial parameter estimate)
    :return: 10 ** ceil(log10(|value|) + 1); 10 for a zero value
    """
    if value == 0 or not np.isfinite(value):
        return 10.0
    return 10.0 ** math.ceil(math.log10(abs(value)) + 1.0)


def numerical_derivative(
    func: Callable[[float], float],
    x: float,
    step: Optional[float] = None
) -> float:
    """
    Central finite-difference derivative of a scalar function.

    :param func: scalar function of one variable
    :param x: evaluation point
    :param step: difference step; defaults to cbrt(eps) * max(|x|, 1)
    :return: approximate derivative f'(x)
    """
    if step is None:
        step = np.cbrt(np.finfo(float).eps) * max(abs(x), 1.0)
    return (func(x + step) - func(x - step)) / (2.0 * step)
