"""
Tests for the PyMC model builders.

The builders are checked by evaluating their log-density terms at fixed
parameter values and comparing with the numpy models. No MCMC is run.
"""

import numpy as np
import pytest
from scipy.stats import norm

from inference.model_builder import (
    OccupancyModelBuilder,
    RatingScaleModelBuilder,
    GeneralizedRatingScaleModelBuilder,
    OccupancyPriorSpec,
    RatingScalePriorSpec,
)
from occupancy.data import OccupancyData, design_matrix
from occupancy.site_occupancy import SiteOccupancyModel
from irt.data import ResponseData
from irt.rating_scale import RatingScaleModel, GeneralizedRatingScaleModel, sum_to_zero


def make_occupancy_data(seed: int = 0) -> OccupancyData:
    rng = np.random.default_rng(seed)
    X = design_matrix(rng.normal(size=30))
    V = np.concatenate([np.ones((30, 3, 1)), rng.normal(size=(30, 3, 1))], axis=-1)
    mask = np.ones((30, 3), dtype=bool)
    mask[:5, 2] = False
    y, _ = SiteOccupancyModel([0.3, 1.0], [-0.3, 0.8]).simulate(X, V, mask=mask, random_seed=seed)
    return OccupancyData(y, site_covariates=X, visit_covariates=V)


def make_response_data(n_steps: int = 2, seed: int = 0) -> ResponseData:
    rng = np.random.default_rng(seed)
    n_items, n_persons = 4, 12
    person_idx, item_idx = np.divmod(np.arange(n_items * n_persons), n_items)
    responses = rng.integers(0, n_steps + 1, size=person_idx.size)
    responses[0] = n_steps
    W = np.column_stack([np.ones(n_persons), rng.normal(size=n_persons)])
    return ResponseData(item_idx, person_idx, responses, person_covariates=W, n_steps=n_steps)


# ============================================================================
# Prior specifications
# ============================================================================

def test_occupancy_prior_spec_defaults():
    spec = OccupancyPriorSpec()
    assert spec.occupancy_scale == 2.0
    assert spec.detection_scale == 2.0


def test_occupancy_prior_spec_invalid():
    with pytest.raises(ValueError):
        OccupancyPriorSpec(occupancy_scale=0.0)


def test_rating_scale_prior_spec_defaults():
    spec = RatingScalePriorSpec()
    assert spec.difficulty_scale == 3.0
    assert spec.step_scale == 3.0
    assert spec.regression_df == 3.0
    assert spec.ability_sd_rate == 0.1
    assert spec.discrimination_mu == 1.0


def test_rating_scale_prior_spec_invalid():
    with pytest.raises(ValueError, match="step_scale"):
        RatingScalePriorSpec(step_scale=-1.0)


# ============================================================================
# Builder lifecycle
# ============================================================================

def test_get_model_before_build():
    with pytest.raises(RuntimeError, match="not been built"):
        OccupancyModelBuilder().get_model()


def test_wrong_data_type_rejected():
    with pytest.raises(ValueError, match="OccupancyData"):
        OccupancyModelBuilder().build(make_response_data())
    with pytest.raises(ValueError, match="ResponseData"):
        RatingScaleModelBuilder().build(make_occupancy_data())


def test_build_keeps_model():
    builder = RatingScaleModelBuilder()
    model = builder.build(make_response_data())
    assert builder.get_model() is model


# ============================================================================
# Occupancy model
# ============================================================================

def test_occupancy_model_variables():
    data = make_occupancy_data()
    model = OccupancyModelBuilder().build(data)

    for name in ["occupancy_coefs", "detection_coefs", "psi", "p", "site_occupied_prob", "n_occupied"]:
        assert name in model.named_vars
    assert len(model.coords["site"]) == data.n_sites
    assert len(model.coords["detection_covariate"]) == 2
    assert {v.name for v in model.free_RVs} == {"occupancy_coefs", "detection_coefs"}


def test_occupancy_likelihood_matches_numpy():
    data = make_occupancy_data()
    model = OccupancyModelBuilder().build(data)

    beta = np.array([0.1, 0.7])
    alpha = np.array([-0.4, 0.5])
    logp = model.compile_logp(vars=[model["detection_likelihood"]])
    value = logp({"occupancy_coefs": beta, "detection_coefs": alpha})

    expected = SiteOccupancyModel(beta, alpha).log_likelihood(data).sum()
    assert value == pytest.approx(expected, rel=1e-6)


def test_occupancy_prior_scale_used():
    data = make_occupancy_data()
    model = OccupancyModelBuilder(OccupancyPriorSpec(occupancy_scale=0.5)).build(data)

    beta = np.array([0.1, 0.7])
    logp = model.compile_logp(vars=[model["occupancy_coefs"]])
    value = logp({"occupancy_coefs": beta})
    assert value == pytest.approx(norm.logpdf(beta, 0, 0.5).sum(), rel=1e-6)


# ============================================================================
# Rating Scale Model
# ============================================================================

def test_rsm_variables_and_coords():
    data = make_response_data(n_steps=3)
    model = RatingScaleModelBuilder().build(data)

    free = {v.name for v in model.free_RVs}
    assert free == {"beta_free", "kappa_free", "lambda", "sigma", "theta"}
    assert "beta" in model.named_vars
    assert "kappa" in model.named_vars
    assert list(model.coords["step"]) == [1, 2, 3]
    assert len(model.coords["person"]) == data.n_persons


def test_rsm_likelihood_matches_numpy():
    data = make_response_data(n_steps=2)
    model = RatingScaleModelBuilder().build(data)

    beta_free = np.array([0.4, -0.2, 0.1])
    kappa_free = np.array([-0.6])
    theta = np.linspace(-1.5, 1.5, data.n_persons)

    logp = model.compile_logp(vars=[model["y"]])
    value = logp({"beta_free": beta_free, "kappa_free": kappa_free, "theta": theta})

    numpy_model = RatingScaleModel(sum_to_zero(beta_free), sum_to_zero(kappa_free))
    expected = numpy_model.log_likelihood(data, theta).sum()
    assert value == pytest.approx(expected, rel=1e-6)


def test_sum_to_zero_prior_covers_all_elements():
    data = make_response_data(n_steps=2)
    model = RatingScaleModelBuilder().build(data)

    beta_free = np.array([0.4, -0.2, 0.1])
    logp = model.compile_logp(vars=[model["beta_free"], model["beta_last_prior"]])
    value = logp({"beta_free": beta_free})

    expected = norm.logpdf(sum_to_zero(beta_free), 0, 3.0).sum()
    assert value == pytest.approx(expected, rel=1e-6)


def test_rsm_dichotomous_items():
    data = make_response_data(n_steps=1)
    model = RatingScaleModelBuilder().build(data)

    assert "kappa_free" not in model.named_vars
    assert "kappa" in model.named_vars

    beta_free = np.array([0.4, -0.2, 0.1])
    theta = np.linspace(-1.0, 1.0, data.n_persons)
    logp = model.compile_logp(vars=[model["y"]])
    value = logp({"beta_free": beta_free, "theta": theta})

    expected = RatingScaleModel(sum_to_zero(beta_free), [0.0]).log_likelihood(data, theta).sum()
    assert value == pytest.approx(expected, rel=1e-6)


def test_rsm_initial_point_finite():
    model = RatingScaleModelBuilder().build(make_response_data(n_steps=3))
    logp = model.compile_logp()
    assert np.isfinite(logp(model.initial_point()))


# ============================================================================
# Generalized Rating Scale Model
# ============================================================================

def test_grsm_has_discriminations_and_fixed_scale():
    model = GeneralizedRatingScaleModelBuilder().build(make_response_data())

    free = {v.name for v in model.free_RVs}
    assert "alpha" in free
    assert "sigma" not in free


def test_grsm_likelihood_matches_numpy():
    data = make_response_data(n_steps=2)
    model = GeneralizedRatingScaleModelBuilder().build(data)

    alpha = np.array([0.6, 1.0, 1.4, 2.0])
    beta_free = np.array([0.4, -0.2, 0.1])
    kappa_free = np.array([-0.6])
    theta = np.linspace(-1.5, 1.5, data.n_persons)

    logp = model.compile_logp(vars=[model["y"]])
    value = logp({
        "alpha_log__": np.log(alpha),
        "beta_free": beta_free,
        "kappa_free": kappa_free,
        "theta": theta,
    })

    numpy_model = GeneralizedRatingScaleModel(alpha, sum_to_zero(beta_free), sum_to_zero(kappa_free))
    expected = numpy_model.log_likelihood(data, theta).sum()
    assert value == pytest.approx(expected, rel=1e-6)


def test_grsm_initial_point_finite():
    model = GeneralizedRatingScaleModelBuilder().build(make_response_data(n_steps=3))
    logp = model.compile_logp()
    assert np.isfinite(logp(model.initial_point()))
