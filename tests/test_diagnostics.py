import numpy as np
import pytest

from neohazard import (
    ConvergenceDiagnostics,
    PosteriorSampler,
    SamplerConfig,
    ShapeError,
    autocorrelation,
    effective_sample_size,
    split_rhat,
)


def _ar1(phi, n, rng, d=1):
    out = np.empty((n, d))
    out[0] = rng.standard_normal(d)
    scale = np.sqrt(1.0 - phi ** 2)
    for t in range(1, n):
        out[t] = phi * out[t - 1] + scale * rng.standard_normal(d)
    return out


def test_iid_draws_look_converged():
    rng = np.random.default_rng(0)
    draws = rng.standard_normal((4000, 3))
    report = ConvergenceDiagnostics().diagnose(draws)
    assert report.converged
    assert report.reasons == ()
    assert np.all(report.ess > 0.8 * 4000)
    assert np.all(report.ess < 1.25 * 4000)
    assert np.all(np.abs(report.autocorr_at(1)) < 0.1)
    assert np.allclose(report.rhat, 1.0, atol=0.02)
    assert report.n_samples == 4000
    assert report.n_chains == 1


def test_ar1_chain_is_flagged():
    rng = np.random.default_rng(1)
    draws = _ar1(0.9, 20_000, rng, d=2)
    report = ConvergenceDiagnostics().diagnose(draws)
    # theoretical ESS is n * (1 - phi) / (1 + phi), about 1053
    assert np.all((report.ess > 500) & (report.ess < 2000))
    assert np.allclose(report.autocorr_at(1), 0.9, atol=0.03)
    assert not report.converged
    assert any("ACF(5)" in r for r in report.reasons)


def test_ess_threshold_is_reported():
    rng = np.random.default_rng(2)
    draws = rng.standard_normal((150, 2))
    report = ConvergenceDiagnostics(ess_threshold=200).diagnose(draws)
    assert not report.converged
    assert any("ESS" in r for r in report.reasons)


def test_autocorrelation_matches_direct_estimate():
    rng = np.random.default_rng(3)
    x = _ar1(0.5, 2000, rng)[:, 0]
    acf = autocorrelation(x, max_lag=3)
    xc = x - x.mean()
    direct = [np.sum(xc[:-k] * xc[k:]) / np.sum(xc * xc) for k in (1, 2, 3)]
    assert np.allclose(acf, direct)


def test_split_rhat_detects_disagreeing_chains():
    rng = np.random.default_rng(4)
    a = rng.standard_normal(1000)
    b = rng.standard_normal(1000) + 3.0
    assert split_rhat([a, b]) > 1.1
    assert split_rhat([a, rng.standard_normal(1000)]) == pytest.approx(1.0, abs=0.02)
    assert split_rhat(np.linspace(0.0, 1.0, 1000)) > 1.1


def test_constant_trace():
    draws = np.full((100, 2), 3.5)
    report = ConvergenceDiagnostics().diagnose(draws)
    assert np.all(report.autocorr == 1.0)
    assert np.all(report.ess == 1.0)
    assert np.all(np.isnan(report.rhat))
    assert not report.converged
    assert effective_sample_size(np.full(10, 2.0)) == 1.0


def test_single_draw_chain():
    report = ConvergenceDiagnostics().diagnose(np.ones((1, 3)))
    assert np.all(np.isnan(report.autocorr))
    assert np.all(report.ess == 1.0)
    assert np.all(np.isnan(report.rhat))
    assert np.all(report.sd == 0.0)
    assert not report.converged


def test_diagnose_does_not_modify_draws():
    rng = np.random.default_rng(5)
    draws = rng.standard_normal((500, 2))
    before = draws.copy()
    ConvergenceDiagnostics().diagnose(draws)
    assert np.array_equal(draws, before)


def test_bad_input_shapes():
    diag = ConvergenceDiagnostics()
    with pytest.raises(ShapeError):
        diag.diagnose(np.zeros(10))
    with pytest.raises(ShapeError):
        diag.diagnose(np.zeros((0, 3)))
    with pytest.raises(ShapeError):
        diag.diagnose([np.zeros((10, 3)), np.zeros((10, 2))])
    with pytest.raises(ValueError):
        ConvergenceDiagnostics(max_lag=3, reference_lag=5)


def test_report_frame():
    rng = np.random.default_rng(6)
    report = ConvergenceDiagnostics(max_lag=4, reference_lag=2).diagnose(rng.standard_normal((300, 2)))
    frame = report.to_frame()
    assert list(frame.index) == ["intercept", "x0"]
    assert list(frame.columns) == [
        "mean", "median", "sd", "q2.5", "q97.5", "ess", "rhat", "acf1", "acf2", "acf3", "acf4",
    ]
    assert np.all(frame["q2.5"] < frame["q97.5"])
    with pytest.raises(ValueError):
        report.autocorr_at(5)


def test_sampler_output_is_diagnosed_across_chains(logistic_data):
    X, y, _ = logistic_data
    cfg = SamplerConfig(n_chains=2, iterations=6000, burn_in=1000, thin=5, seed=9)
    fit = PosteriorSampler().sample(X, y, cfg)
    report = ConvergenceDiagnostics(ess_threshold=100).diagnose(fit)
    assert report.n_chains == 2
    assert report.n_samples == 2 * cfg.n_retained
    assert np.all(np.isfinite(report.ess))
    assert np.all(report.rhat < 1.1)
    assert np.allclose(report.mean, fit.posterior_mean())


def test_longer_chains_mix_at_least_as_well(logistic_data):
    X, y, _ = logistic_data
    base = SamplerConfig(burn_in=200, seed=5)
    diag = ConvergenceDiagnostics()
    ess = []
    for iterations in (1200, 4200, 16200):
        fit = PosteriorSampler().sample(X, y, base.replace(iterations=iterations))
        ess.append(diag.diagnose(fit).min_ess)
    assert ess[0] < ess[1] < ess[2]
