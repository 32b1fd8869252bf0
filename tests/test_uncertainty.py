"""
Tests for delta-method quantile uncertainty and the Jacobian determinant.
"""

import numpy as np
import pytest
from scipy import special, stats

from freqfit import (
    ChiSquared,
    EstimationMethod,
    Exponential,
    Gamma,
    GeneralizedExtremeValue,
    Gumbel,
    Logistic,
    LogNormal,
    Normal,
    ParameterError,
    PearsonTypeIII,
    UnsupportedMethodError,
    Weibull,
    fit,
)
from freqfit.uncertainty import (
    determinant,
    jacobian_determinant,
    parameter_covariance,
    quantile_confidence_interval,
    quantile_gradient,
    quantile_jacobian,
    quantile_variance,
)

GRADIENT_CASES = [
    Normal(100.0, 15.0),
    LogNormal(1.0, 0.2),
    Exponential(100.0, 10.0),
    Gamma(10.0, 2.0),
    Gumbel(100.0, 10.0),
    GeneralizedExtremeValue(100.0, 10.0, -0.1),
    GeneralizedExtremeValue(100.0, 10.0, 0.15),
    Weibull(10.0, 2.0),
    Logistic(50.0, 5.0),
]


def finite_difference_gradient(dist, p):
    gradient = []
    for i, value in enumerate(dist.parameters):
        step = 1e-6 * max(abs(value), 1.0)
        up, down = dist.clone(), dist.clone()
        up._set_parameter(i, value + step)
        down._set_parameter(i, value - step)
        gradient.append((up.inverse_cdf(p) - down.inverse_cdf(p)) / (2.0 * step))
    return np.array(gradient)


class TestQuantileVariance:

    @pytest.mark.parametrize("method", [EstimationMethod.MOMENTS, EstimationMethod.MLE])
    @pytest.mark.parametrize("p", [0.01, 0.5, 0.9, 0.99])
    def test_normal_closed_form(self, method, p):
        sigma, n = 15.0, 50
        z = special.ndtri(p)
        expected = sigma ** 2 / n * (1.0 + 0.5 * z * z)
        variance = quantile_variance(Normal(100.0, sigma), p, n, method)
        assert variance == pytest.approx(expected, rel=1e-12)

    @pytest.mark.parametrize("dist", GRADIENT_CASES, ids=repr)
    def test_gradient_matches_finite_difference(self, dist):
        for p in (0.1, 0.5, 0.9, 0.99):
            np.testing.assert_allclose(
                quantile_gradient(dist, p), finite_difference_gradient(dist, p),
                rtol=1e-4, atol=1e-6,
            )

    @pytest.mark.parametrize("dist", GRADIENT_CASES, ids=repr)
    def test_covariance_symmetric_positive(self, dist):
        cov = parameter_covariance(dist, 100, EstimationMethod.MLE)
        k = dist.number_of_parameters
        assert cov.shape == (k, k)
        np.testing.assert_allclose(cov, cov.T)
        assert np.all(np.linalg.eigvalsh(cov) > 0.0)

    def test_variance_shrinks_with_sample_size(self):
        gev = GeneralizedExtremeValue(100.0, 10.0, -0.1)
        small = quantile_variance(gev, 0.99, 50, 'mle')
        large = quantile_variance(gev, 0.99, 500, 'mle')
        assert large == pytest.approx(small / 10.0)

    def test_gev_near_zero_shape_is_finite(self):
        variance = quantile_variance(GeneralizedExtremeValue(100.0, 10.0, 0.0), 0.99, 50, 'mle')
        assert np.isfinite(variance) and variance > 0.0

    def test_gev_information_undefined_for_large_shape(self):
        with pytest.raises(ParameterError):
            parameter_covariance(GeneralizedExtremeValue(100.0, 10.0, 0.6), 50, 'mle')


class TestUnsupported:

    def test_family_without_standard_error(self):
        with pytest.raises(UnsupportedMethodError):
            quantile_variance(PearsonTypeIII(100.0, 10.0, 0.5), 0.9, 50, 'mle')
        with pytest.raises(UnsupportedMethodError):
            quantile_gradient(ChiSquared(5.0), 0.9)

    @pytest.mark.parametrize("dist, method", [
        (Gamma(10.0, 2.0), EstimationMethod.MOMENTS),
        (Gumbel(100.0, 10.0), EstimationMethod.MOMENTS),
        (Normal(0.0, 1.0), EstimationMethod.LMOMENTS),
    ], ids=repr)
    def test_method_without_covariance(self, dist, method):
        with pytest.raises(UnsupportedMethodError):
            parameter_covariance(dist, 50, method)

    def test_invalid_inputs(self):
        with pytest.raises(ParameterError):
            quantile_gradient(Normal(), 1.0)
        with pytest.raises(ParameterError):
            parameter_covariance(Normal(), 1, 'mle')
        with pytest.raises(ParameterError):
            quantile_variance(Normal(0.0, -1.0), 0.5, 50, 'mle')


class TestDeterminant:

    @pytest.mark.parametrize("size", [1, 2, 3, 4, 6])
    def test_matches_numpy(self, size):
        matrix = np.random.default_rng(size).normal(size=(size, size))
        assert determinant(matrix) == pytest.approx(np.linalg.det(matrix), rel=1e-10)

    def test_permuted_identity_sign(self):
        swap = np.eye(5)[[1, 0, 2, 3, 4]]
        assert determinant(swap) == pytest.approx(-1.0)

    def test_singular(self):
        assert determinant([[1.0, 2.0, 3.0], [2.0, 4.0, 6.0], [0.0, 1.0, 1.0]]) == 0.0

    @pytest.mark.parametrize("matrix", [[[1.0, 2.0]], [1.0, 2.0], np.zeros((0, 0))])
    def test_non_square(self, matrix):
        with pytest.raises(ParameterError):
            determinant(matrix)

    def test_gumbel_jacobian(self):
        gumbel = Gumbel(100.0, 10.0)
        p1, p2 = 0.5, 0.99
        jacobian = quantile_jacobian(gumbel, [p1, p2])
        assert jacobian.shape == (2, 2)
        expected = np.log(-np.log(p1)) - np.log(-np.log(p2))
        assert jacobian_determinant(gumbel, [p1, p2]) == pytest.approx(expected)

    def test_jacobian_needs_one_probability_per_parameter(self):
        with pytest.raises(ParameterError):
            quantile_jacobian(GeneralizedExtremeValue(100.0, 10.0, -0.1), [0.5, 0.9])


class TestConfidenceInterval:

    def test_interval_table(self):
        normal = Normal(100.0, 15.0)
        table = quantile_confidence_interval(normal, [0.5, 0.9, 0.99], 50, 'mle', alpha=0.1)
        assert list(table.columns) == ['quantile', 'standard_error', 'lower', 'upper']
        assert list(table.index) == [0.5, 0.9, 0.99]
        assert np.all(table['lower'] < table['quantile'])
        assert np.all(table['quantile'] < table['upper'])
        half_width = table.loc[0.5, 'upper'] - table.loc[0.5, 'quantile']
        assert half_width == pytest.approx(special.ndtri(0.95) * 15.0 / np.sqrt(50))

    def test_invalid_alpha(self):
        with pytest.raises(ParameterError):
            quantile_confidence_interval(Normal(), [0.5], 50, 'mle', alpha=1.5)


# =============================================================================
# COVARIANCE REFERENCES
# =============================================================================

NORMAL_SCORES = np.linspace(-8.5, 8.5, 4001)


def numerical_information(dist, frozen):
    """
    Per-observation Fisher information E[score score'] by quadrature over
    normal scores t, x = F^-1(Phi(t)), with scores from central differences
    of the log-density.
    """
    t = NORMAL_SCORES
    lower = t < 0.0
    x = np.where(lower, frozen.ppf(special.ndtr(t)), frozen.isf(special.ndtr(-t)))
    weights = np.exp(-0.5 * t * t)
    weights /= weights.sum()
    scores = []
    for i, value in enumerate(dist.parameters):
        step = 1e-5 * max(abs(value), 1.0)
        up, down = dist.clone(), dist.clone()
        up._set_parameter(i, value + step)
        down._set_parameter(i, value - step)
        scores.append((up._log_pdf(x) - down._log_pdf(x)) / (2.0 * step))
    scores = np.array(scores)
    return (scores * weights) @ scores.T


class TestCovarianceReferences:

    @pytest.mark.parametrize("dist, frozen", [
        (Gamma(10.0, 2.0), stats.gamma(2.0, scale=10.0)),
        (Gumbel(100.0, 10.0), stats.gumbel_r(100.0, 10.0)),
        (Weibull(10.0, 2.0), stats.weibull_min(2.0, scale=10.0)),
        (Weibull(5.0, 0.8), stats.weibull_min(0.8, scale=5.0)),
        (Logistic(50.0, 5.0), stats.logistic(50.0, 5.0)),
        (GeneralizedExtremeValue(100.0, 10.0, -0.2), stats.genextreme(-0.2, 100.0, 10.0)),
        (GeneralizedExtremeValue(100.0, 10.0, 0.1), stats.genextreme(0.1, 100.0, 10.0)),
        (Normal(100.0, 15.0), stats.norm(100.0, 15.0)),
    ], ids=repr)
    def test_mle_covariance_inverts_fisher_information(self, dist, frozen):
        n = 100
        expected = n * numerical_information(dist, frozen)
        information = np.linalg.inv(parameter_covariance(dist, n, 'mle'))
        np.testing.assert_allclose(
            information, expected, rtol=2e-2, atol=2e-3 * np.abs(expected).max(),
        )

    @pytest.mark.parametrize("dist, draw", [
        (Normal(100.0, 15.0), lambda rng, size: rng.normal(100.0, 15.0, size)),
        (Exponential(100.0, 10.0), lambda rng, size: 100.0 + rng.exponential(10.0, size)),
        (Logistic(50.0, 5.0), lambda rng, size: rng.logistic(50.0, 5.0, size)),
        (LogNormal(1.0, 0.2), lambda rng, size: 10.0 ** rng.normal(1.0, 0.2, size)),
    ], ids=repr)
    def test_moment_covariance_matches_monte_carlo(self, dist, draw):
        n, replications = 200, 1000
        samples = draw(np.random.default_rng(17), (replications, n))
        estimates = np.array([
            fit(dist.distribution_type, sample, 'moments').parameters for sample in samples
        ])

        empirical = np.cov(estimates, rowvar=False)
        expected = parameter_covariance(dist, n, 'moments')
        np.testing.assert_allclose(np.diag(empirical), np.diag(expected), rtol=0.15)
        scale = np.sqrt(expected[0, 0] * expected[1, 1])
        assert empirical[0, 1] == pytest.approx(expected[0, 1], abs=0.1 * scale)
