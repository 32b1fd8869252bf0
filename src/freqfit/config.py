"""
Configuration module for distribution fitting and uncertainty analysis.

Contains enums, numerical constants, display names, and logging setup.
"""

import logging
import sys
from enum import Enum


# =============================================================================
# ENUMS
# =============================================================================

class DistributionType(Enum):
    """Supported univariate distribution families."""
    NORMAL = "normal"
    LOGNORMAL = "lognormal"
    EXPONENTIAL = "exponential"
    GAMMA = "gamma"
    GUMBEL = "gumbel"
    GEV = "gev"
    WEIBULL = "weibull"
    LOGISTIC = "logistic"
    PEARSON3 = "pearson3"
    CHI_SQUARED = "chi_squared"
    POISSON = "poisson"

    def __str__(self):
        return self.value

    @staticmethod
    def from_string(s: str) -> 'DistributionType':
        """
        Convert string to DistributionType enum.

        :param s: distribution name (e.g. 'gamma', 'chi-squared', 'GEV')
        :return: DistributionType enum value
        :raises ValueError: if string doesn't match any distribution
        """
        try:
            return DistributionType(s.strip().lower().replace('-', '_'))
        except ValueError:
            valid = ", ".join(d.value for d in DistributionType)
            raise ValueError(
                f"Invalid distribution: '{s}'. Must be one of: {valid}"
            )


class EstimationMethod(Enum):
    """Parameter estimation methods."""
    MOMENTS = "moments"      # Method of moments (product moments)
    LMOMENTS = "lmoments"    # Method of L-moments (robust)
    MLE = "mle"              # Maximum likelihood (Nelder-Mead)

    def __str__(self):
        return self.value

    @staticmethod
    def from_string(s: str) -> 'EstimationMethod':
        """
        Convert string to EstimationMethod enum.

        :param s: method name ('moments', 'lmoments' or 'mle')
        :return: EstimationMethod enum value
        :raises ValueError: if string doesn't match any method
        """
        aliases = {
            'mom': 'moments',
            'l-moments': 'lmoments',
            'l_moments': 'lmoments',
            'maximum_likelihood': 'mle',
        }
        key = s.strip().lower()
        try:
            return EstimationMethod(aliases.get(key, key))
        except ValueError:
            raise ValueError(
                f"Invalid estimation method: '{s}'. "
                f"Must be 'moments', 'lmoments' or 'mle'."
            )


# =============================================================================
# CONSTANTS
# =============================================================================

# Optimizer defaults
ABSOLUTE_TOLERANCE = 1e-8
RELATIVE_TOLERANCE = 1e-8
MAX_ITERATIONS = 10000
MAX_FUNCTION_EVALUATIONS = sys.maxsize
MIN_ITERATIONS = 10

# Nelder-Mead simplex coefficients
REFLECTION = 1.0
CONTRACTION = 0.5
EXPANSION = 2.0
SHRINKAGE = 0.5

# Initial simplex: relative step along each axis, absolute step for zeros
SIMPLEX_PERTURBATION = 0.05
SIMPLEX_ZERO_PERTURBATION = 0.00025

# Brent root finder defaults
BRENT_TOLERANCE = 1e-8
BRENT_MAX_ITERATIONS = 1000

# Geometric bracket search
BRACKET_FACTOR = 1.6
BRACKET_MAX_ITERATIONS = 10

# Doubling search for discrete quantiles
DOUBLING_MAX_ITERATIONS = 64

# Numerical moments: number of strata and tail probability trimmed each side
MOMENT_INTEGRATION_STEPS = 1000
MOMENT_TAIL_PROBABILITY = 1e-8

# Shape parameters closer to zero than this use the limiting form
NEAR_ZERO = 1e-4

# Positive floor substituted for non-positive values before log transforms
LOG_FLOOR = 1e-10

# Machine epsilon, used as the lower bound of scale parameters in MLE
EPSILON = sys.float_info.epsilon

# Bootstrap defaults
DEFAULT_SEED = 12345
BOOTSTRAP_RETRIES = 20
MIN_BOOTSTRAP_SAMPLE_SIZE = 10
MIN_BOOTSTRAP_REPLICATIONS = 100
DEFAULT_REPLICATIONS = 1000

# Default two-sided significance level for confidence intervals (90%)
DEFAULT_ALPHA = 0.1

# Minimum sample size accepted by any estimator
MIN_SAMPLE_SIZE = 2

# Display names for reporting
DISTRIBUTION_DISPLAY_NAMES = {
    DistributionType.NORMAL: "Normal",
    DistributionType.LOGNORMAL: "Log-Normal (base 10)",
    DistributionType.EXPONENTIAL: "Exponential",
    DistributionType.GAMMA: "Gamma",
    DistributionType.GUMBEL: "Gumbel",
    DistributionType.GEV: "Generalized Extreme Value",
    DistributionType.WEIBULL: "Weibull",
    DistributionType.LOGISTIC: "Logistic",
    DistributionType.PEARSON3: "Pearson Type III",
    DistributionType.CHI_SQUARED: "Chi-Squared",
    DistributionType.POISSON: "Poisson",
}

# Long descriptions of each parameter name, used for dataset attributes
PARAMETER_DESCRIPTIONS = {
    'mu': "Location (mean)",
    'sigma': "Scale (standard deviation)",
    'xi': "Location",
    'alpha': "Scale",
    'theta': "Scale",
    'kappa': "Shape",
    'gamma': "Shape (skewness)",
    'dof': "Degrees of freedom",
    'rate': "Rate (mean)",
}


# =============================================================================
# LOGGING
# =============================================================================

def get_logger(
    name: str,
    level: int = logging.INFO
) -> logging.Logger:
    """
    Set up and return a logger with consistent formatting.

    :param name: logger name (typically __name__ of calling module)
    :param level: logging level (default: logging.INFO)
    :return: configured logger instance
    """
    logging.basicConfig(
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger = logging.getLogger(name)
    logger.setLevel(level)
    return logger


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_parameter_attributes(
    distribution: DistributionType,
    parameter: str,
    method: EstimationMethod
) -> dict:
    """
    Generate dataset attributes for a fitted parameter variable.

    :param distribution: DistributionType enum value
    :param parameter: parameter name (e.g. 'theta', 'kappa')
    :param method: EstimationMethod used for the fit
    :return: dictionary of attributes
    """
    display = DISTRIBUTION_DISPLAY_NAMES.get(distribution, distribution.value)
    description = PARAMETER_DESCRIPTIONS.get(parameter, parameter)
    return {
        'long_name': f"{display} {parameter} parameter",
        'description': f"{description} parameter of the {display} distribution",
        'distribution': distribution.value,
        'estimation_method': method.value,
        'units': '1',
    }
