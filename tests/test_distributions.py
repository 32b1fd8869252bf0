"""
Tests for the distribution contract and the families.
"""

import numpy as np
import pytest
from scipy import optimize, stats

import freqfit.distributions
import freqfit.families
from freqfit import (
    Censoring,
    ChiSquared,
    DistributionType,
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
    Poisson,
    UnsupportedMethodError,
    Weibull,
    available_distributions,
    create_distribution,
)
from freqfit.exceptions import BracketError


# =============================================================================
# QUANTILE ROUND TRIP
# =============================================================================

class TestQuantileRoundTrip:

    def test_cdf_of_quantile(self, any_distribution, probabilities):
        dist = any_distribution
        for p in probabilities:
            x = dist.inverse_cdf(p)
            if dist.is_discrete:
                assert dist.cdf(x) >= p - 1e-12
                assert x == np.floor(x)
                if x > dist.minimum:
                    assert dist.cdf(x - 1.0) < p
            else:
                assert dist.cdf(x) == pytest.approx(p, abs=1e-6)

    @pytest.mark.parametrize("dist", [
        GeneralizedExtremeValue(100.0, 10.0, 0.2),
        GeneralizedExtremeValue(100.0, 10.0, -0.2),
        PearsonTypeIII(100.0, 10.0, -0.8),
        PearsonTypeIII(100.0, 10.0, 0.0),
        ChiSquared(3.5),
        Poisson(25.0),
    ], ids=repr)
    def test_cdf_of_quantile_shapes(self, dist, probabilities):
        for p in probabilities:
            x = dist.inverse_cdf(p)
            if dist.is_discrete:
                assert dist.cdf(x) >= p - 1e-12
                assert x == 0.0 or dist.cdf(x - 1.0) < p
            else:
                assert dist.cdf(x) == pytest.approx(p, abs=1e-6)

    def test_monotone(self, any_distribution, probabilities):
        quantiles = [any_distribution.inverse_cdf(p) for p in probabilities]
        assert np.all(np.diff(quantiles) >= 0.0)


class TestSupportBounds:

    @pytest.fixture
    def no_root_finding(self, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("root finder must not be called")

        monkeypatch.setattr(freqfit.distributions, "bracket", fail)
        monkeypatch.setattr(freqfit.distributions, "brent_solve", fail)
        monkeypatch.setattr(freqfit.families, "brent_solve", fail)
        monkeypatch.setattr(freqfit.families, "expand_upper", fail)

    def test_probability_bounds_exact(self, any_distribution, no_root_finding):
        dist = any_distribution
        assert dist.inverse_cdf(0.0) == dist.minimum
        assert dist.inverse_cdf(1.0) == dist.maximum

    @pytest.mark.parametrize("p", [-0.1, 1.1, np.nan])
    def test_probability_outside_unit_interval(self, any_distribution, p):
        with pytest.raises(ParameterError):
            any_distribution.inverse_cdf(p)

    def test_gev_bounds_follow_shape(self):
        bounded_above = GeneralizedExtremeValue(100.0, 10.0, 0.25)
        assert bounded_above.maximum == pytest.approx(140.0)
        assert bounded_above.minimum == -np.inf
        bounded_below = GeneralizedExtremeValue(100.0, 10.0, -0.25)
        assert bounded_below.minimum == pytest.approx(60.0)
        assert bounded_below.maximum == np.inf

    def test_cdf_saturates_at_bounds(self):
        gev = GeneralizedExtremeValue(100.0, 10.0, 0.25)
        assert gev.cdf(gev.maximum) == 1.0
        assert gev.cdf(1e6) == 1.0
        gamma = Gamma(10.0, 2.0)
        assert gamma.cdf(0.0) == 0.0
        assert gamma.cdf(-5.0) == 0.0


class TestDensity:

    def test_pdf_non_negative(self, any_distribution, probabilities):
        dist = any_distribution
        low, high = dist.inverse_cdf(0.001), dist.inverse_cdf(0.999)
        for x in np.linspace(low - (high - low), high + (high - low), 101):
            assert dist.pdf(x) >= 0.0

    def test_pdf_zero_outside_support(self, any_distribution):
        dist = any_distribution
        if np.isfinite(dist.minimum):
            assert dist.pdf(dist.minimum - 1.0) == 0.0
            assert dist.log_pdf(dist.minimum - 1.0) == -np.inf
        if np.isfinite(dist.maximum):
            assert dist.pdf(dist.maximum + 1.0) == 0.0

    def test_pdf_defined_at_finite_bounds(self, any_distribution):
        dist = any_distribution
        for bound in (dist.minimum, dist.maximum):
            if np.isfinite(bound):
                assert dist.pdf(bound) >= 0.0
                assert not np.isnan(dist.log_pdf(bound))

    @pytest.mark.parametrize("kappa, bound, expected", [
        (-0.2, 'minimum', 0.0),
        (0.2, 'maximum', 0.0),
        (1.0, 'maximum', 0.1),
        (1.5, 'maximum', np.inf),
    ])
    def test_gev_density_at_bound(self, kappa, bound, expected):
        gev = GeneralizedExtremeValue(100.0, 10.0, kappa)
        x = getattr(gev, bound)
        assert gev.pdf(x) == pytest.approx(expected)
        with np.errstate(divide='ignore'):
            assert gev.log_pdf(x) == pytest.approx(np.log(expected))

    @pytest.mark.parametrize("dist", [
        GeneralizedExtremeValue(100.0, 10.0, -0.2),
        GeneralizedExtremeValue(100.0, 10.0, 0.2),
        GeneralizedExtremeValue(100.0, 10.0, 1.5),
        Exponential(100.0, 10.0),
        Gamma(10.0, 2.0),
        Weibull(10.0, 2.0),
        PearsonTypeIII(100.0, 10.0, 0.5),
        PearsonTypeIII(100.0, 10.0, -0.5),
        ChiSquared(4.0),
        Poisson(3.0),
    ], ids=repr)
    def test_bounded_families_at_bounds(self, dist):
        for bound in (dist.minimum, dist.maximum):
            if np.isfinite(bound):
                assert dist.pdf(bound) >= 0.0
                assert not np.isnan(dist.log_pdf(bound))

    def test_pdf_nan_in_nan_out(self, any_distribution):
        assert np.isnan(any_distribution.pdf(np.nan))
        assert np.isnan(any_distribution.cdf(np.nan))

    @pytest.mark.parametrize("dist, frozen", [
        (Normal(10.0, 2.0), stats.norm(10.0, 2.0)),
        (Gamma(10.0, 2.0), stats.gamma(2.0, scale=10.0)),
        (Weibull(10.0, 2.0), stats.weibull_min(2.0, scale=10.0)),
        (GeneralizedExtremeValue(100.0, 10.0, 0.2), stats.genextreme(0.2, 100.0, 10.0)),
        (ChiSquared(4.0), stats.chi2(4.0)),
    ], ids=repr)
    def test_matches_scipy(self, dist, frozen):
        for p in (0.05, 0.3, 0.5, 0.9, 0.99):
            x = frozen.ppf(p)
            assert dist.pdf(x) == pytest.approx(frozen.pdf(x), rel=1e-8)
            assert dist.cdf(x) == pytest.approx(p, rel=1e-8)

    def test_lognormal_is_base_ten(self):
        dist = LogNormal(2.0, 0.3)
        assert dist.median == pytest.approx(100.0)
        assert dist.cdf(100.0) == pytest.approx(0.5)

    def test_poisson_mass(self):
        dist = Poisson(3.0)
        assert dist.pdf(2.0) == pytest.approx(stats.poisson.pmf(2, 3.0))
        assert dist.pdf(2.5) == 0.0
        assert dist.cdf(2.5) == pytest.approx(stats.poisson.cdf(2, 3.0))

    def test_log_likelihood(self, normal_sample):
        dist = Normal(100.0, 15.0)
        expected = np.sum(stats.norm.logpdf(normal_sample, 100.0, 15.0))
        assert dist.log_likelihood(normal_sample) == pytest.approx(expected)

    def test_log_likelihood_outside_support(self):
        assert Gamma(10.0, 2.0).log_likelihood([1.0, -1.0, 5.0]) == -np.inf


# =============================================================================
# PARAMETERS AND VALIDATION
# =============================================================================

class TestParameters:

    def test_invalid_parameters_stored_not_raised(self):
        dist = Normal(0.0, -1.0)
        assert not dist.parameters_valid
        assert isinstance(dist.validation_error, ParameterError)

    @pytest.mark.parametrize("query", [
        lambda d: d.pdf(0.0),
        lambda d: d.cdf(0.0),
        lambda d: d.inverse_cdf(0.5),
        lambda d: d.mean,
        lambda d: d.kurtosis,
        lambda d: d.log_likelihood([0.0, 1.0]),
        lambda d: d.generate_random_values(5, seed=1),
    ])
    def test_queries_raise_while_invalid(self, query):
        with pytest.raises(ParameterError):
            query(Normal(0.0, -1.0))

    def test_revalidated_on_every_change(self):
        dist = Normal(0.0, 1.0)
        dist.sigma = -2.0
        assert not dist.parameters_valid
        dist.sigma = 2.0
        assert dist.parameters_valid
        assert dist.standard_deviation == 2.0

    def test_wrong_length(self):
        with pytest.raises(ParameterError):
            Normal(1.0, 2.0, 3.0)
        with pytest.raises(ParameterError):
            Normal().set_parameters([1.0])

    def test_non_finite_parameter(self):
        assert Gamma(np.inf, 2.0).validation_error is not None
        assert Gamma(np.nan, 2.0).validation_error is not None

    def test_validate_parameters_without_setting(self):
        dist = Gamma(10.0, 2.0)
        assert dist.validate_parameters([1.0, -1.0]) is not None
        with pytest.raises(ParameterError):
            dist.validate_parameters([1.0, -1.0], raise_error=True)
        assert dist.parameters_valid

    def test_parameters_property_is_copy(self):
        dist = Gamma(10.0, 2.0)
        values = dist.parameters
        values[0] = -1.0
        assert dist.theta == 10.0

    def test_list_constructor(self):
        assert Gamma([10.0, 2.0]) == Gamma(10.0, 2.0)
        assert Gamma().parameters_dict == {'theta': 10.0, 'kappa': 2.0}


class TestCloneAndMoments:

    def test_clone_is_independent(self):
        original = GeneralizedExtremeValue(100.0, 10.0, 0.1)
        copy = original.clone()
        copy.kappa = -0.2
        assert original.kappa == 0.1
        assert copy == GeneralizedExtremeValue(100.0, 10.0, -0.2)
        assert copy != original

    def test_clone_of_invalid_keeps_error(self):
        copy = Normal(0.0, -1.0).clone()
        assert not copy.parameters_valid

    @pytest.mark.parametrize("dist", [
        Normal(10.0, 2.0),
        Gamma(10.0, 2.0),
        LogNormal(1.0, 0.1),
        GeneralizedExtremeValue(100.0, 10.0, 0.1),
        PearsonTypeIII(100.0, 10.0, 0.5),
        ChiSquared(10.0),
    ], ids=repr)
    def test_numerical_moments_match_closed_form(self, dist):
        mean, sd, skew, kurt = dist.central_moments()
        assert mean == pytest.approx(dist.mean, rel=1e-3)
        assert sd == pytest.approx(dist.standard_deviation, rel=1e-2)
        assert skew == pytest.approx(dist.skewness, abs=0.05)
        assert kurt == pytest.approx(dist.kurtosis, rel=0.05)

    def test_normal_kurtosis_not_excess(self):
        assert Normal(0.0, 1.0).kurtosis == 3.0

    def test_moment_cache_follows_parameters(self):
        dist = Weibull(10.0, 2.0)
        first = dist.central_moments()
        np.testing.assert_array_equal(dist.central_moments(), first)
        dist.alpha = 20.0
        assert dist.central_moments()[0] == pytest.approx(2.0 * first[0], rel=1e-6)

    def test_weibull_mean(self):
        assert Weibull(10.0, 2.0).mean == pytest.approx(stats.weibull_min(2.0, scale=10.0).mean())

    def test_random_values_reproducible(self):
        dist = Gamma(10.0, 2.0)
        a = dist.generate_random_values(500, seed=42)
        b = dist.generate_random_values(500, seed=42)
        np.testing.assert_array_equal(a, b)
        assert np.all(a > 0.0)
        assert np.mean(a) == pytest.approx(20.0, rel=0.1)

    def test_random_values_invalid_size(self):
        with pytest.raises(ParameterError):
            Normal().generate_random_values(0)


# =============================================================================
# FACTORY AND CAPABILITIES
# =============================================================================

class TestFactory:

    def test_every_type_registered(self):
        assert set(available_distributions()) == set(DistributionType)

    @pytest.mark.parametrize("name, cls", [
        ("gamma", Gamma), ("GEV", GeneralizedExtremeValue),
        ("chi-squared", ChiSquared), (DistributionType.POISSON, Poisson),
    ])
    def test_create_by_name(self, name, cls):
        assert type(create_distribution(name)) is cls

    def test_create_with_parameters(self):
        assert create_distribution('normal', [5.0, 2.0]).parameters_dict == {'mu': 5.0, 'sigma': 2.0}

    def test_unknown_name(self):
        with pytest.raises(ValueError):
            create_distribution('cauchy')

    def test_supported_methods(self):
        assert Weibull.supported_methods == frozenset({EstimationMethod.MLE})
        assert ChiSquared.supported_methods == frozenset({EstimationMethod.MOMENTS, EstimationMethod.MLE})
        assert Normal.supported_methods == frozenset(EstimationMethod)

    def test_require_method(self):
        with pytest.raises(UnsupportedMethodError):
            Weibull().require_method(EstimationMethod.LMOMENTS)
        with pytest.raises(NotImplementedError):
            Poisson().require_method(EstimationMethod.LMOMENTS)


class TestRootFindingQuantiles:

    def test_chi_squared_uses_bracket(self):
        dist = ChiSquared(4.0)
        assert dist.inverse_cdf(0.95) == pytest.approx(stats.chi2.ppf(0.95, 4.0), abs=1e-6)

    def test_poisson_quantile_matches_scipy(self):
        dist = Poisson(7.5)
        for p in (0.01, 0.2, 0.5, 0.8, 0.999):
            assert dist.inverse_cdf(p) == stats.poisson.ppf(p, 7.5)

    def test_bracket_failure_propagates(self, monkeypatch):
        def no_bracket(*args, **kwargs):
            raise BracketError("no sign change")

        monkeypatch.setattr(freqfit.distributions, "bracket", no_bracket)
        with pytest.raises(BracketError):
            ChiSquared(4.0).inverse_cdf(0.5)


# =============================================================================
# CENSORED AND INTERVAL LIKELIHOOD
# =============================================================================

class TestCensoredLikelihood:

    def test_left_censored(self):
        dist = Normal(100.0, 15.0)
        expected = 3 * stats.norm.logcdf(80.0, 100.0, 15.0)
        assert dist.log_likelihood_left_censored(80.0, 3) == pytest.approx(expected)
        assert dist.log_ccdf(80.0) == pytest.approx(stats.norm.logsf(80.0, 100.0, 15.0))

    def test_right_censored(self):
        dist = Gumbel(100.0, 10.0)
        expected = 2 * stats.gumbel_r.logsf(140.0, 100.0, 10.0)
        assert dist.log_likelihood_right_censored(140.0, 2) == pytest.approx(expected)

    def test_no_censored_values_contribute_nothing(self):
        dist = Normal(100.0, 15.0)
        assert dist.log_likelihood_left_censored(80.0, 0) == 0.0
        assert dist.log_likelihood_right_censored(130.0, 0) == 0.0

    def test_negative_count(self):
        dist = Normal(100.0, 15.0)
        with pytest.raises(ParameterError):
            dist.log_likelihood_left_censored(80.0, -1)
        with pytest.raises(ParameterError):
            dist.log_likelihood_right_censored(130.0, -2)

    def test_intervals(self):
        dist = Normal(100.0, 15.0)
        frozen = stats.norm(100.0, 15.0)
        lower, upper = [80.0, 100.0], [90.0, 130.0]
        expected = sum(np.log(frozen.cdf(u) - frozen.cdf(l)) for l, u in zip(lower, upper))
        assert dist.log_likelihood_intervals(lower, upper) == pytest.approx(expected)
        assert dist.log_likelihood_intervals(80.0, 90.0) == pytest.approx(
            np.log(frozen.cdf(90.0) - frozen.cdf(80.0))
        )

    def test_empty_interval_is_minus_inf(self):
        assert Normal(100.0, 15.0).log_likelihood_intervals([90.0], [90.0]) == -np.inf
        assert Gamma(10.0, 2.0).log_likelihood_intervals([-5.0], [-1.0]) == -np.inf

    def test_invalid_intervals(self):
        dist = Normal(100.0, 15.0)
        with pytest.raises(ParameterError):
            dist.log_likelihood_intervals([80.0, 90.0], [95.0])
        with pytest.raises(ParameterError):
            dist.log_likelihood_intervals([95.0], [90.0])

    def test_combined_terms(self):
        dist = Normal(100.0, 15.0)
        sample = [95.0, 105.0, 112.0]
        censoring = Censoring(80.0, 3, 130.0, 2, [85.0], [90.0])
        expected = (
            dist.log_likelihood(sample)
            + dist.log_likelihood_left_censored(80.0, 3)
            + dist.log_likelihood_right_censored(130.0, 2)
            + dist.log_likelihood_intervals([85.0], [90.0])
        )
        assert dist.censored_log_likelihood(sample, censoring) == pytest.approx(expected)

    def test_default_censoring_is_plain_likelihood(self, normal_sample):
        dist = Normal(100.0, 15.0)
        assert dist.censored_log_likelihood(normal_sample, Censoring()) == pytest.approx(
            dist.log_likelihood(normal_sample)
        )

    def test_censored_only(self):
        dist = Normal(100.0, 15.0)
        censoring = Censoring(left_threshold=80.0, number_below=4)
        assert dist.censored_log_likelihood([], censoring) == pytest.approx(
            4 * stats.norm.logcdf(80.0, 100.0, 15.0)
        )

    def test_censoring_outside_support(self):
        censoring = Censoring(left_threshold=-1.0, number_below=1)
        assert Gamma(10.0, 2.0).censored_log_likelihood([5.0, 20.0], censoring) == -np.inf


# =============================================================================
# MODE AND DISPERSION
# =============================================================================

class TestModeAndDispersion:

    @pytest.mark.parametrize("dist", [
        Normal(10.0, 2.0),
        LogNormal(1.0, 0.1),
        Exponential(100.0, 10.0),
        Gamma(10.0, 2.0),
        Gumbel(100.0, 10.0),
        GeneralizedExtremeValue(100.0, 10.0, -0.2),
        GeneralizedExtremeValue(100.0, 10.0, 0.1),
        GeneralizedExtremeValue(100.0, 10.0, 0.5),
        Weibull(10.0, 2.0),
        Logistic(50.0, 5.0),
        PearsonTypeIII(100.0, 10.0, 0.5),
        PearsonTypeIII(100.0, 10.0, -0.5),
        ChiSquared(4.0),
    ], ids=repr)
    def test_mode_is_density_maximum(self, dist):
        h = 1e-4 * dist.standard_deviation
        peak = dist.pdf(dist.mode)
        assert peak >= dist.pdf(dist.mode - h)
        assert peak >= dist.pdf(dist.mode + h)

    @pytest.mark.parametrize("kappa", [-0.2, 0.1, 0.5])
    def test_gev_mode_matches_scipy(self, kappa):
        frozen = stats.genextreme(kappa, 100.0, 10.0)
        result = optimize.minimize_scalar(
            lambda x: -frozen.pdf(x), bounds=(frozen.ppf(0.001), frozen.ppf(0.999)),
            method='bounded', options={'xatol': 1e-8},
        )
        assert GeneralizedExtremeValue(100.0, 10.0, kappa).mode == pytest.approx(result.x, abs=1e-4)

    @pytest.mark.parametrize("dist, expected", [
        (Normal(10.0, 2.0), 10.0),
        (Gamma(10.0, 2.0), 10.0),
        (Gamma(10.0, 0.5), 0.0),
        (Weibull(10.0, 0.8), 0.0),
        (PearsonTypeIII(100.0, 10.0, 0.5), 97.5),
        (PearsonTypeIII(100.0, 10.0, -0.5), 102.5),
        (PearsonTypeIII(100.0, 10.0, 0.0), 100.0),
        (ChiSquared(1.0), 0.0),
        (Poisson(3.5), 3.0),
        (GeneralizedExtremeValue(100.0, 10.0, 0.0), 100.0),
        (GeneralizedExtremeValue(100.0, 10.0, 1.5), 100.0 + 10.0 / 1.5),
    ], ids=repr)
    def test_known_modes(self, dist, expected):
        assert dist.mode == pytest.approx(expected)

    def test_poisson_mode_is_most_probable_count(self):
        dist = Poisson(7.5)
        counts = np.arange(30)
        assert dist.mode == counts[np.argmax([dist.pdf(k) for k in counts])]

    def test_coefficient_of_variation(self):
        assert Normal(100.0, 15.0).coefficient_of_variation == pytest.approx(0.15)
        assert Gamma(10.0, 4.0).coefficient_of_variation == pytest.approx(0.5)
        assert Poisson(4.0).coefficient_of_variation == pytest.approx(0.5)

    def test_invalid_parameters(self):
        dist = Normal(0.0, -1.0)
        with pytest.raises(ParameterError):
            dist.mode
        with pytest.raises(ParameterError):
            dist.coefficient_of_variation
