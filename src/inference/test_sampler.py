"""
Tests for the NUTS sampler wrapper and diagnostics.

Diagnostics are computed on synthetic draws. Tests marked slow run short NUTS
chains on toy models.
"""

import numpy as np
import pytest
import arviz as az
import pymc as pm

from inference.sampler import (
    NUTSSampler,
    DiagnosticsComputer,
    PosteriorPredictiveCheck,
    InferenceSummary,
)


def make_idata(offsets=(0.0, 0.0, 0.0, 0.0), n_draws=500, n_divergent=0, seed=0):
    rng = np.random.default_rng(seed)
    n_chains = len(offsets)
    a = rng.normal(size=(n_chains, n_draws)) + np.asarray(offsets)[:, None]
    b = rng.normal(size=(n_chains, n_draws, 3))
    diverging = np.zeros((n_chains, n_draws), dtype=bool)
    diverging.flat[:n_divergent] = True
    return az.from_dict(
        posterior={"a": a, "b": b},
        sample_stats={"diverging": diverging},
    )


# ============================================================================
# R-hat and ESS
# ============================================================================

def test_rhat_identical_constant_chains():
    chains = np.ones((2, 100))
    assert DiagnosticsComputer.rhat(chains) == pytest.approx(1.0)


def test_rhat_mixed_chains_near_one():
    rng = np.random.default_rng(1)
    chains = rng.normal(size=(4, 1000))
    assert DiagnosticsComputer.rhat(chains) < 1.01


def test_rhat_separated_chains():
    rng = np.random.default_rng(42)
    chains = np.array([
        rng.normal(-5, 1, 100),
        rng.normal(5, 1, 100),
    ])
    assert DiagnosticsComputer.rhat(chains) > 1.05


def test_rhat_detects_drift_within_chain():
    rng = np.random.default_rng(3)
    trend = np.linspace(-3, 3, 400)
    chains = np.array([trend + rng.normal(0, 0.1, 400), trend + rng.normal(0, 0.1, 400)])
    assert DiagnosticsComputer.rhat(chains) > 1.05


def test_rhat_requires_multiple_chains():
    with pytest.raises(ValueError, match="2 chains"):
        DiagnosticsComputer.rhat(np.random.default_rng(0).normal(size=(1, 100)))


def test_rhat_requires_2d():
    with pytest.raises(ValueError, match="chains, draws"):
        DiagnosticsComputer.rhat(np.zeros(100))


def test_ess_white_noise():
    x = np.random.default_rng(42).normal(size=(2, 1000))
    assert DiagnosticsComputer.ess(x) > 1000


def test_ess_random_walk_is_low():
    x = np.cumsum(np.random.default_rng(0).normal(size=(2, 1000)), axis=1)
    assert DiagnosticsComputer.ess(x) < 200


def test_ess_constant():
    assert DiagnosticsComputer.ess(np.ones(1000)) == 1000


# ============================================================================
# Divergences and convergence report
# ============================================================================

def test_divergence_rate():
    idata = make_idata(n_divergent=40)
    assert DiagnosticsComputer.divergence_rate(idata) == pytest.approx(40 / 2000)


def test_convergence_report_passes():
    report = DiagnosticsComputer.convergence_report(make_idata(), min_ess=400)
    assert report.passed
    assert report.max_rhat < 1.01
    assert report.n_divergences == 0
    assert report.failing == []


def test_convergence_report_flags_separated_chains():
    idata = make_idata(offsets=(0.0, 0.0, 3.0, 3.0))
    report = DiagnosticsComputer.convergence_report(idata, var_names=["a"])
    assert not report.passed
    assert report.failing == ["a"]
    assert report.max_rhat > 1.1


def test_convergence_report_counts_divergences():
    report = DiagnosticsComputer.convergence_report(make_idata(n_divergent=7))
    assert report.n_divergences == 7


# ============================================================================
# Sampler configuration
# ============================================================================

def test_nutsampler_init():
    sampler = NUTSSampler(target_accept=0.9, max_treedepth=12, max_divergence_rate=0.01)
    assert sampler.target_accept == 0.9
    assert sampler.max_treedepth == 12
    assert sampler.max_divergence_rate == 0.01


def test_nutsampler_invalid_target_accept():
    with pytest.raises(ValueError, match="target_accept"):
        NUTSSampler(target_accept=0.5)
    with pytest.raises(ValueError, match="target_accept"):
        NUTSSampler(target_accept=0.995)


def test_nutsampler_invalid_treedepth():
    with pytest.raises(ValueError, match="max_treedepth"):
        NUTSSampler(max_treedepth=3)


def test_nutsampler_invalid_divergence_rate():
    with pytest.raises(ValueError, match="max_divergence_rate"):
        NUTSSampler(max_divergence_rate=1.5)


def test_inference_summary():
    idata = make_idata(n_divergent=3)
    summary = InferenceSummary(idata, n_draws=500, n_tune=500, n_chains=4, sampling_time=1.5)
    assert summary.total_samples == 2000
    assert summary.n_divergences == 3
    assert summary.draws("b").shape == (2000, 3)
    assert "chains=4" in repr(summary)


def test_sample_rejects_divergent_run(monkeypatch):
    def divergent_sample(**kwargs):
        return make_idata(n_divergent=10, n_draws=kwargs["draws"])

    monkeypatch.setattr(pm, "sample", divergent_sample)
    with pm.Model() as model:
        pm.Normal("a")

    sampler = NUTSSampler(max_divergence_rate=0.0)
    with pytest.raises(RuntimeError, match="Divergence rate too high"):
        sampler.sample(model, draws=50, tune=10, chains=4)

    summary = NUTSSampler(max_divergence_rate=0.1).sample(model, draws=50, tune=10, chains=4)
    assert summary.n_divergences == 10


@pytest.mark.slow
def test_sample_funnel_diverges():
    with pm.Model() as funnel:
        v = pm.Normal("v", 0.0, 3.0)
        pm.Normal("x", 0.0, pm.math.exp(v / 2), shape=9)

    sampler = NUTSSampler(target_accept=0.6, max_divergence_rate=0.0)
    with pytest.raises(RuntimeError, match="Divergence rate too high"):
        sampler.sample(funnel, draws=500, tune=200, chains=2, cores=1, random_seed=3)


@pytest.mark.slow
def test_sample_standard_normal():
    with pm.Model() as model:
        pm.Normal("a", 0.0, 1.0, shape=2)

    summary = NUTSSampler().sample(model, draws=200, tune=200, chains=2, cores=1, random_seed=1)
    assert summary.total_samples == 400
    assert summary.draws("a").shape == (400, 2)
    assert abs(summary.draws("a").mean()) < 0.3


# ============================================================================
# Posterior predictive checks
# ============================================================================

def test_ppcheck_identical_replicates():
    observed = np.array([[0, 1, 2], [1, 1, 0]], dtype=float)
    replicated = np.stack([observed] * 10)
    ppc = PosteriorPredictiveCheck.compute_ppcheck(replicated, observed)
    assert ppc == {"mean_pvalue": 1.0, "std_pvalue": 1.0, "max_pvalue": 1.0}


def test_ppcheck_shifted_replicates():
    rng = np.random.default_rng(0)
    observed = rng.normal(size=50)
    replicated = rng.normal(loc=-10.0, size=(100, 50))
    ppc = PosteriorPredictiveCheck.compute_ppcheck(replicated, observed)
    assert ppc["mean_pvalue"] == 0.0


def test_ppcheck_ignores_nan_and_custom_statistic():
    observed = np.array([1.0, np.nan, 0.0])
    replicated = np.array([[1.0, np.nan, 1.0], [0.0, np.nan, 0.0]])
    ppc = PosteriorPredictiveCheck.compute_ppcheck(
        replicated, observed, statistics={"total": np.nansum}
    )
    assert ppc == {"total_pvalue": 0.5}


def test_ppcheck_shape_mismatch():
    with pytest.raises(ValueError, match="do not match"):
        PosteriorPredictiveCheck.compute_ppcheck(np.zeros((5, 4)), np.zeros(3))


def test_summary_stats():
    stats = PosteriorPredictiveCheck.summary_stats(make_idata(), var_names=["a"], hdi_prob=0.9)
    assert set(stats) == {"a"}
    assert stats["a"]["hdi_low"] < stats["a"]["mean"] < stats["a"]["hdi_high"]
    assert stats["a"]["rhat"] < 1.05
