"""
freqfit - Univariate Distribution Fitting and Uncertainty Analysis

Fit univariate probability distributions to samples by the method of
moments, the method of L-moments or maximum likelihood, and quantify the
uncertainty of fitted quantiles with delta-method standard errors or the
parametric bootstrap.

Families: Normal, Log-Normal (base 10), Exponential, Gamma, Gumbel,
Generalized Extreme Value, Weibull, Logistic, Pearson Type III,
Chi-Squared and Poisson.

References:
    Hosking, J.R.M. (1990). L-moments: Analysis and estimation of
    distributions using linear combinations of order statistics. Journal of
    the Royal Statistical Society B, 52(1), 105-124.

    Rao, A.R., Hamed, K.H. (2000). Flood Frequency Analysis. CRC Press.

Example:
    >>> from freqfit import fit, quantile_confidence_interval, BootstrapAnalysis
    >>>
    >>> # Fit a GEV to annual maxima by maximum likelihood
    >>> gev = fit('gev', annual_maxima, 'mle')
    >>> gev.inverse_cdf(0.99)
    >>>
    >>> # Delta-method confidence intervals for the 10- and 100-year events
    >>> quantile_confidence_interval(gev, [0.9, 0.99], len(annual_maxima), 'mle')
    >>>
    >>> # Parametric bootstrap
    >>> analysis = BootstrapAnalysis(gev, 'mle', len(annual_maxima))
    >>> analysis.percentile_ci([0.9, 0.99])
"""

__version__ = "2026.1"

# Configuration
from .config import (
    DistributionType,
    EstimationMethod,
    DEFAULT_SEED,
    DEFAULT_ALPHA,
)

# Errors
from .exceptions import (
    FreqFitError,
    ParameterError,
    BracketError,
    ConvergenceError,
    UnsupportedMethodError,
    FittingError,
)

# Distribution contract and factory
from .distributions import (
    UnivariateDistribution,
    Censoring,
    Constraints,
    create_distribution,
    available_distributions,
)

# Families (importing registers them with the factory)
from .families import (
    Normal,
    LogNormal,
    Exponential,
    Gamma,
    Gumbel,
    GeneralizedExtremeValue,
    Weibull,
    Logistic,
    PearsonTypeIII,
    ChiSquared,
    Poisson,
)

# Estimation
from .estimation import (
    estimate,
    fit,
    maximum_likelihood,
    log_likelihood_objective,
)

# Uncertainty
from .uncertainty import (
    parameter_covariance,
    quantile_gradient,
    quantile_variance,
    quantile_jacobian,
    determinant,
    jacobian_determinant,
    quantile_confidence_interval,
)

# Bootstrap
from .bootstrap import (
    bootstrap,
    BootstrapAnalysis,
)

# Goodness of fit and selection
from .goodness import (
    GoodnessOfFit,
    goodness_of_fit,
    information_weights,
    compare_distributions,
    select_best_distribution,
)

# Gridded data
from .batch import (
    fit_dataarray,
    quantile_dataarray,
)

# Numerical building blocks (for advanced users)
from .optimize import NelderMead, OptimizationStatus, ParameterSet
from .rootfinding import brent, brent_solve, bracket
from .utils import product_moments, linear_moments, compute_lmoments

__all__ = [
    # Version
    "__version__",
    # Configuration
    "DistributionType",
    "EstimationMethod",
    "DEFAULT_SEED",
    "DEFAULT_ALPHA",
    # Errors
    "FreqFitError",
    "ParameterError",
    "BracketError",
    "ConvergenceError",
    "UnsupportedMethodError",
    "FittingError",
    # Distributions
    "UnivariateDistribution",
    "Censoring",
    "Constraints",
    "create_distribution",
    "available_distributions",
    "Normal",
    "LogNormal",
    "Exponential",
    "Gamma",
    "Gumbel",
    "GeneralizedExtremeValue",
    "Weibull",
    "Logistic",
    "PearsonTypeIII",
    "ChiSquared",
    "Poisson",
    # Estimation
    "estimate",
    "fit",
    "maximum_likelihood",
    "log_likelihood_objective",
    # Uncertainty
    "parameter_covariance",
    "quantile_gradient",
    "quantile_variance",
    "quantile_jacobian",
    "determinant",
    "jacobian_determinant",
    "quantile_confidence_interval",
    # Bootstrap
    "bootstrap",
    "BootstrapAnalysis",
    # Goodness of fit
    "GoodnessOfFit",
    "goodness_of_fit",
    "information_weights",
    "compare_distributions",
    "select_best_distribution",
    # Gridded data
    "fit_dataarray",
    "quantile_dataarray",
    # Numerical building blocks
    "NelderMead",
    "OptimizationStatus",
    "ParameterSet",
    "brent",
    "brent_solve",
    "bracket",
    "product_moments",
    "linear_moments",
    "compute_lmoments",
]
