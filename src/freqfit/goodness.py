"""
Goodness of fit and distribution selection.

Fitted candidates are compared by information criteria computed from the
exact log-likelihood (AIC, AICc, BIC), by the Kolmogorov-Smirnov and
Anderson-Darling statistics of the probability integral transform, and by
the RMSE between sorted observations and fitted quantiles at Weibull
plotting positions.
"""

from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy import stats

from .config import DISTRIBUTION_DISPLAY_NAMES, DistributionType, EstimationMethod, get_logger
from .distributions import UnivariateDistribution, available_distributions, create_distribution
from .estimation import as_method, estimate
from .exceptions import FittingError, FreqFitError, ParameterError
from .utils import validate_sample

# Module logger
_logger = get_logger(__name__)

_CRITERIA = ('aic', 'aicc', 'bic', 'ks', 'rmse')


class GoodnessOfFit(NamedTuple):
    """Goodness-of-fit statistics of a fitted distribution."""
    log_likelihood: float
    aic: float           # Akaike Information Criterion
    aicc: float          # AIC with small-sample correction
    bic: float           # Bayesian Information Criterion
    ks_statistic: float
    ks_pvalue: float
    ad_statistic: float  # Anderson-Darling
    rmse: float          # Quantile RMSE at Weibull plotting positions


# =============================================================================
# GOODNESS OF FIT TESTING
# =============================================================================

def plotting_positions(n: int) -> np.ndarray:
    """Weibull plotting positions i / (n + 1), i = 1..n."""
    return np.arange(1, n + 1) / (n + 1.0)


def _anderson_darling(cdf_values: np.ndarray) -> float:
    u = np.clip(np.sort(cdf_values), 1e-300, 1.0 - 1e-16)
    n = len(u)
    i = np.arange(1, n + 1)
    return float(-n - np.sum((2 * i - 1) * (np.log(u) + np.log1p(-u[::-1]))) / n)


def goodness_of_fit(
    distribution: UnivariateDistribution,
    sample: Union[Sequence[float], np.ndarray]
) -> GoodnessOfFit:
    """
    Goodness-of-fit statistics for a fitted distribution.

    Computes:
    - log-likelihood, AIC, AICc and BIC
    - Kolmogorov-Smirnov test of the CDF values against uniform
    - Anderson-Darling statistic
    - RMSE of sorted observations against fitted quantiles

    :param distribution: fitted distribution
    :param sample: the observations it was fitted to
    :return: GoodnessOfFit named tuple
    :raises ParameterError: if the sample or the parameters are invalid
    """
    values = validate_sample(sample)
    n = len(values)
    k = distribution.number_of_parameters

    log_likelihood = distribution.log_likelihood(values)
    aic = 2 * k - 2 * log_likelihood
    bic = k * np.log(n) - 2 * log_likelihood
    aicc = aic + 2 * k * (k + 1) / (n - k - 1) if n - k - 1 > 0 else np.nan

    # Kolmogorov-Smirnov test (probability integral transform against uniform)
    cdf_values = np.array([distribution.cdf(x) for x in values])
    ks_stat, ks_pvalue = stats.kstest(cdf_values, 'uniform')

    quantiles = np.array([distribution.inverse_cdf(p) for p in plotting_positions(n)])
    rmse = float(np.sqrt(np.mean((np.sort(values) - quantiles) ** 2)))

    return GoodnessOfFit(
        log_likelihood, aic, aicc, bic,
        float(ks_stat), float(ks_pvalue), _anderson_darling(cdf_values), rmse,
    )


def information_weights(criteria: Sequence[float]) -> np.ndarray:
    """
    Akaike-style weights exp(-delta / 2), normalized to sum to 1.

    Non-finite criteria get weight 0.

    :param criteria: AIC, AICc or BIC values of the candidate models
    :return: weights in [0, 1]
    """
    values = np.asarray(criteria, dtype=np.float64)
    finite = np.isfinite(values)
    weights = np.zeros_like(values)
    if not finite.any():
        return weights
    delta = values[finite] - values[finite].min()
    w = np.exp(-0.5 * delta)
    weights[finite] = w / w.sum()
    return weights


# =============================================================================
# DISTRIBUTION COMPARISON
# =============================================================================

def _fit_candidates(
    values: np.ndarray,
    distributions: Optional[List[Union[str, DistributionType]]],
    method: EstimationMethod
) -> Tuple[pd.DataFrame, Dict[DistributionType, UnivariateDistribution]]:
    if distributions is None:
        distributions = list(available_distributions())

    rows = []
    fitted = {}
    for dist in distributions:
        dist_type = DistributionType.from_string(dist) if isinstance(dist, str) else dist
        candidate = create_distribution(dist_type)
        row = {
            'distribution': dist_type.value,
            'name': DISTRIBUTION_DISPLAY_NAMES.get(dist_type, dist_type.value),
        }

        if method not in candidate.supported_methods:
            row.update(valid=False, error=f"'{method.value}' not supported")
            rows.append(row)
            continue

        try:
            estimate(candidate, values, method)
            gof = goodness_of_fit(candidate, values)
        except FreqFitError as e:
            _logger.warning(f"{candidate.display_name} fit failed: {e}")
            row.update(valid=False, error=str(e))
            rows.append(row)
            continue

        fitted[dist_type] = candidate
        row.update(parameters=candidate.parameters_dict, **gof._asdict())
        row.update(valid=bool(np.isfinite(gof.log_likelihood)), error=None)
        rows.append(row)

    table = pd.DataFrame(rows).set_index('distribution')
    for column in ('aic', 'bic'):
        if column in table:
            table[f'{column}_weight'] = information_weights(table[column].to_numpy(dtype=float))
    return table, fitted


def compare_distributions(
    sample: Union[Sequence[float], np.ndarray],
    distributions: Optional[List[Union[str, DistributionType]]] = None,
    method: Union[str, EstimationMethod] = EstimationMethod.LMOMENTS
) -> pd.DataFrame:
    """
    Fit several distributions to one sample and tabulate their fit.

    Candidates that do not support the method, or whose fit fails, are kept
    in the table with valid=False and the reason in the error column.

    :param sample: observations
    :param distributions: candidate types (default: all registered)
    :param method: estimation method
    :return: DataFrame indexed by distribution type value

    Example:
        >>> table = compare_distributions(annual_maxima)
        >>> print(table.sort_values('aic')[['aic', 'aic_weight']])
    """
    values = validate_sample(sample)
    table, _ = _fit_candidates(values, distributions, as_method(method))
    return table


def select_best_distribution(
    sample: Union[Sequence[float], np.ndarray],
    distributions: Optional[List[Union[str, DistributionType]]] = None,
    method: Union[str, EstimationMethod] = EstimationMethod.LMOMENTS,
    criterion: str = 'aic'
) -> Tuple[DistributionType, UnivariateDistribution]:
    """
    Automatically select the best-fitting distribution.

    :param sample: observations
    :param distributions: candidate types (default: all registered)
    :param method: estimation method
    :param criterion: 'aic', 'aicc', 'bic', 'rmse' (lowest wins) or 'ks'
        (highest p-value wins)
    :return: tuple of (best distribution type, fitted distribution)
    :raises ParameterError: for an unknown criterion
    :raises FittingError: if no candidate could be fitted
    """
    if criterion not in _CRITERIA:
        raise ParameterError(f"Unknown criterion '{criterion}'. Valid options: {list(_CRITERIA)}")

    values = validate_sample(sample)
    table, fitted = _fit_candidates(values, distributions, as_method(method))

    column = 'ks_pvalue' if criterion == 'ks' else criterion
    if column not in table:
        raise FittingError("No candidate distribution could be fitted")
    scores = table.loc[table['valid'].astype(bool), column].astype(float).dropna()
    if scores.empty:
        raise FittingError("No candidate distribution could be fitted")

    best_name = scores.idxmax() if criterion == 'ks' else scores.idxmin()
    best_type = DistributionType(best_name)
    _logger.info(f"Selected {fitted[best_type].display_name} by {criterion} = {scores[best_name]:.6g}")
    return best_type, fitted[best_type]
