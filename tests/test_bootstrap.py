"""
Tests for the parametric bootstrap.
"""

import numpy as np
import pandas as pd
import pytest

import importlib
from freqfit import (
    BootstrapAnalysis,
    EstimationMethod,
    FittingError,
    Gamma,
    Normal,
    ParameterError,
    UnsupportedMethodError,
    Weibull,
    bootstrap,
)
from freqfit.estimation import estimate

# `freqfit.bootstrap` resolves to the exported function, so fetch the submodule
bootstrap_module = importlib.import_module("freqfit.bootstrap")


@pytest.fixture(scope="module")
def normal_analysis():
    analysis = BootstrapAnalysis(Normal(100.0, 15.0), 'mle', sample_size=30, replications=200, seed=99)
    analysis.run()
    return analysis


class TestBootstrap:

    def test_gamma_reproducible(self):
        gamma = Gamma(10.0, 2.0)
        first = bootstrap(gamma, 'moments', 10000, seed=12345)
        second = bootstrap(gamma, 'moments', 10000, seed=12345)
        np.testing.assert_array_equal(first.parameters, second.parameters)
        np.testing.assert_allclose(first.parameters, [10.0, 2.0], rtol=0.1)

    def test_different_seeds_differ(self):
        gamma = Gamma(10.0, 2.0)
        a = bootstrap(gamma, 'moments', 1000, seed=1)
        b = bootstrap(gamma, 'moments', 1000, seed=2)
        assert a != b

    def test_original_not_mutated(self):
        gamma = Gamma(10.0, 2.0)
        replicate = bootstrap(gamma, 'lmoments', 500, seed=3)
        assert gamma.parameters_dict == {'theta': 10.0, 'kappa': 2.0}
        assert replicate is not gamma

    def test_trait_method(self):
        gamma = Gamma(10.0, 2.0)
        assert gamma.bootstrap('mle', 300, seed=4) == bootstrap(gamma, 'mle', 300, seed=4)

    def test_unsupported_method(self):
        with pytest.raises(UnsupportedMethodError):
            bootstrap(Weibull(), 'lmoments', 100)

    def test_invalid_sample_size(self):
        with pytest.raises(ParameterError):
            bootstrap(Normal(), 'mle', 1)

    def test_invalid_refit_raises(self, monkeypatch):
        def invalid(distribution, sample, method):
            raise FittingError("invalid parameters")

        monkeypatch.setattr(bootstrap_module, "estimate", invalid)
        with pytest.raises(FittingError):
            bootstrap(Normal(), 'mle', 50)


class TestBootstrapAnalysis:

    def test_replicates(self, normal_analysis):
        assert len(normal_analysis.distributions) == 200
        assert normal_analysis.failed_replications == 0
        assert normal_analysis.parameters().shape == (200, 2)

    def test_parameter_table(self, normal_analysis):
        table = normal_analysis.parameter_table()
        assert isinstance(table, pd.DataFrame)
        assert list(table.columns) == ['mu', 'sigma']
        assert table.index.name == 'replicate'
        assert table['mu'].mean() == pytest.approx(100.0, abs=1.0)

    def test_sample_moments(self, normal_analysis):
        moments = normal_analysis.product_moments()
        lmoments = normal_analysis.linear_moments()
        assert moments.shape == lmoments.shape == (200, 4)
        assert np.mean(moments[:, 0]) == pytest.approx(100.0, abs=1.0)
        np.testing.assert_allclose(moments[:, 0], lmoments[:, 0])

    def test_reproducible(self, normal_analysis):
        again = BootstrapAnalysis(Normal(100.0, 15.0), 'mle', sample_size=30, replications=200, seed=99)
        np.testing.assert_array_equal(again.parameters(), normal_analysis.parameters())

    def test_standard_error_matches_delta_method(self, normal_analysis):
        # Median of a normal fit: sigma / sqrt(n)
        summary = normal_analysis.summary([0.5])
        assert summary.loc[0.5, 'standard_error'] == pytest.approx(15.0 / np.sqrt(30), rel=0.2)
        assert summary.loc[0.5, 'quantile'] == pytest.approx(100.0)

    @pytest.mark.parametrize("interval", ["percentile_ci", "bias_corrected_ci", "normal_ci"])
    def test_intervals_bracket_fitted_quantile(self, normal_analysis, interval):
        table = getattr(normal_analysis, interval)([0.1, 0.5, 0.9], alpha=0.1)
        assert list(table.index) == [0.1, 0.5, 0.9]
        assert np.all(table['lower'] < table['quantile'])
        assert np.all(table['quantile'] < table['upper'])

    def test_quantiles_shape(self, normal_analysis):
        assert normal_analysis.quantiles([0.5, 0.99]).shape == (200, 2)

    def test_invalid_alpha(self, normal_analysis):
        with pytest.raises(ParameterError):
            normal_analysis.percentile_ci([0.5], alpha=0.0)

    @pytest.mark.parametrize("kwargs", [
        {"sample_size": 5},
        {"sample_size": 30, "replications": 50},
    ])
    def test_invalid_settings(self, kwargs):
        with pytest.raises(ParameterError):
            BootstrapAnalysis(Normal(), 'mle', **kwargs)

    def test_invalid_distribution(self):
        with pytest.raises(ParameterError):
            BootstrapAnalysis(Normal(0.0, -1.0), 'mle', 30)

    def test_failed_replicates_are_missing(self, monkeypatch):
        def always_fail(distribution, sample, method):
            raise FittingError("cannot fit")

        monkeypatch.setattr(bootstrap_module, "estimate", always_fail)
        analysis = BootstrapAnalysis(Normal(), 'mle', sample_size=10, replications=100)
        assert all(d is None for d in analysis.distributions)
        assert analysis.failed_replications == 100
        assert np.all(np.isnan(analysis.parameters()))

    def test_bias_corrected_ci_without_replicates(self, monkeypatch):
        def always_fail(distribution, sample, method):
            raise FittingError("cannot fit")

        monkeypatch.setattr(bootstrap_module, "estimate", always_fail)
        analysis = BootstrapAnalysis(Normal(100.0, 15.0), 'mle', sample_size=10, replications=100)
        frame = analysis.bias_corrected_ci([0.5, 0.99])
        assert np.all(np.isnan(frame['lower']))
        assert np.all(np.isnan(frame['upper']))
        assert frame.loc[0.5, 'quantile'] == pytest.approx(100.0)

    def test_failed_replicate_retried_with_offset_seed(self, monkeypatch):
        calls = []

        def fail_first(distribution, sample, method):
            calls.append(1)
            if len(calls) == 1:
                raise FittingError("first attempt fails")
            return estimate(distribution, sample, method)

        monkeypatch.setattr(bootstrap_module, "estimate", fail_first)
        normal = Normal(100.0, 15.0)
        analysis = BootstrapAnalysis(normal, EstimationMethod.MLE, sample_size=20, replications=100, seed=5)
        assert analysis.failed_replications == 0

        monkeypatch.undo()
        first_seed = int(np.random.default_rng(5).integers(0, np.iinfo(np.int32).max, size=100)[0])
        expected = bootstrap(normal, 'mle', 20, seed=first_seed + 10)
        assert analysis.distributions[0] == expected
