"""
Shared pytest configuration and fixtures for freqfit tests.

Samples are generated from scipy.stats with fixed seeds so every test is
deterministic and independent of freqfit's own sampler.
"""

import numpy as np
import pytest
from scipy import stats

from freqfit import DistributionType, create_distribution


# Probabilities used for quantile round-trip checks
PROBABILITIES = np.concatenate([
    [1e-4, 1e-3, 0.01],
    np.linspace(0.02, 0.98, 49),
    [0.99, 0.999, 0.9999],
])


@pytest.fixture(scope="session")
def probabilities():
    """Probabilities spread over (0, 1), denser in the body."""
    return PROBABILITIES


@pytest.fixture
def rng():
    """Fresh seeded generator per test."""
    return np.random.default_rng(20240101)


@pytest.fixture(scope="session")
def normal_sample():
    """Normal(mu=100, sigma=15), n=2000."""
    return stats.norm.rvs(loc=100.0, scale=15.0, size=2000, random_state=1)


@pytest.fixture(scope="session")
def gamma_sample():
    """Gamma(theta=10, kappa=2), n=2000."""
    return stats.gamma.rvs(a=2.0, scale=10.0, size=2000, random_state=2)


@pytest.fixture(scope="session")
def gumbel_sample():
    """Gumbel(xi=50, alpha=8), n=1000."""
    return stats.gumbel_r.rvs(loc=50.0, scale=8.0, size=1000, random_state=3)


@pytest.fixture(scope="session")
def annual_maxima():
    """GEV(xi=100, alpha=20, kappa=-0.1) in Hosking's sign convention, n=80."""
    # scipy's genextreme shape c matches Hosking's kappa
    return stats.genextreme.rvs(c=-0.1, loc=100.0, scale=20.0, size=80, random_state=4)


@pytest.fixture(params=[t for t in DistributionType], ids=lambda t: t.value)
def any_distribution(request):
    """Every registered family at its default parameters."""
    return create_distribution(request.param)
