"""
Bayesian model builders: PyMC specifications of the occupancy and rating-scale models.

Each builder turns a dataset into a PyMC model whose log-density matches the
numpy models in ``occupancy`` and ``irt``:

Site occupancy:
    β ~ Normal(0, σ_β²)                           # Occupancy coefficients
    α ~ Normal(0, σ_α²)                           # Detection coefficients
    log L_i = marginal over z_i ∈ {0, 1}          # Latent state summed out

Rating Scale Model (latent regression):
    β = [β_free, -Σ β_free] ~ Normal(0, 3²)       # Item difficulties
    κ = [κ_free, -Σ κ_free] ~ Normal(0, 3²)       # Step parameters
    λ ~ StudentT(3, 0, 1)                         # Regression coefficients
    σ ~ Exponential(0.1)                          # Ability scale
    θ_j ~ Normal(W_j λ, σ²)                       # Abilities
    y_n ~ Categorical(softmax(cumsum([0, θ - β - κ])))

Generalized Rating Scale Model:
    α_i ~ LogNormal(1, 1)                         # Item discriminations
    θ_j ~ Normal(W_j λ, 1)                        # Ability scale fixed
    y_n ~ Categorical(softmax(cumsum([0, α (θ - β - κ)])))

The prior on a sum-to-zero vector covers all of its elements: the free
elements get the Normal prior directly and the dependent last element adds a
Potential with the same density.
"""

from typing import Dict, Optional
import numpy as np
import pymc as pm
import pytensor.tensor as pt

from occupancy.data import OccupancyData
from irt.data import ResponseData


def _log_sigmoid(x):
    """log(logistic(x)) computed as -log(1 + exp(-x))."""
    return -pm.math.log1pexp(-x)


def _sum_to_zero(name: str, n: int, scale: float, dims: str):
    """
    Constrained vector of length n whose elements sum to zero.

    Registers ``{name}_free`` (n - 1 free elements), the deterministic
    ``name`` and the prior term for the last element.
    """
    free = pm.Normal(f"{name}_free", mu=0.0, sigma=scale, shape=n - 1)
    last = -free.sum(keepdims=True)
    full = pm.Deterministic(name, pt.concatenate([free, last]), dims=dims)
    pm.Potential(f"{name}_last_prior", pm.logp(pm.Normal.dist(mu=0.0, sigma=scale), last).sum())
    return full


class OccupancyPriorSpec:
    """Specification of priors for the site-occupancy model."""

    def __init__(
        self,
        occupancy_scale: float = 2.0,
        detection_scale: float = 2.0,
    ) -> None:
        """
        Initialize prior specification.

        Parameters
        ----------
        occupancy_scale : float
            Prior std of occupancy coefficients (logit scale). Default 2.0.
        detection_scale : float
            Prior std of detection coefficients (logit scale). Default 2.0.
        """
        if occupancy_scale <= 0 or detection_scale <= 0:
            raise ValueError(
                f"Prior scales must be positive. Got occupancy_scale={occupancy_scale}, "
                f"detection_scale={detection_scale}"
            )
        self.occupancy_scale = occupancy_scale
        self.detection_scale = detection_scale

    def __repr__(self) -> str:
        return (
            f"OccupancyPriorSpec(occupancy_scale={self.occupancy_scale}, "
            f"detection_scale={self.detection_scale})"
        )


class RatingScalePriorSpec:
    """Specification of priors for the RSM and GRSM."""

    def __init__(
        self,
        difficulty_scale: float = 3.0,
        step_scale: float = 3.0,
        regression_df: float = 3.0,
        regression_scale: float = 1.0,
        ability_sd_rate: float = 0.1,
        discrimination_mu: float = 1.0,
        discrimination_sigma: float = 1.0,
    ) -> None:
        """
        Initialize prior specification.

        Parameters
        ----------
        difficulty_scale : float
            Prior std of item difficulties β. Default 3.0.
        step_scale : float
            Prior std of step parameters κ. Default 3.0.
        regression_df : float
            Degrees of freedom of the Student-t prior on λ. Default 3.0.
        regression_scale : float
            Scale of the Student-t prior on λ. Default 1.0.
        ability_sd_rate : float
            Rate of the Exponential prior on the ability scale σ (RSM only).
            Default 0.1.
        discrimination_mu : float
            Log-scale location of the LogNormal prior on α (GRSM only).
            Default 1.0.
        discrimination_sigma : float
            Log-scale std of the LogNormal prior on α (GRSM only). Default 1.0.
        """
        positive = {
            "difficulty_scale": difficulty_scale,
            "step_scale": step_scale,
            "regression_df": regression_df,
            "regression_scale": regression_scale,
            "ability_sd_rate": ability_sd_rate,
            "discrimination_sigma": discrimination_sigma,
        }
        bad = {name: value for name, value in positive.items() if value <= 0}
        if bad:
            raise ValueError(f"Prior parameters must be positive. Got {bad}")

        self.difficulty_scale = difficulty_scale
        self.step_scale = step_scale
        self.regression_df = regression_df
        self.regression_scale = regression_scale
        self.ability_sd_rate = ability_sd_rate
        self.discrimination_mu = discrimination_mu
        self.discrimination_sigma = discrimination_sigma

    def __repr__(self) -> str:
        return (
            f"RatingScalePriorSpec(difficulty_scale={self.difficulty_scale}, "
            f"step_scale={self.step_scale}, λ~StudentT({self.regression_df}, 0, "
            f"{self.regression_scale}), σ_rate={self.ability_sd_rate}, "
            f"α~LogNormal({self.discrimination_mu}, {self.discrimination_sigma}))"
        )


class ModelBuilder:
    """
    Base class for PyMC model builders.

    Subclasses implement ``_validate`` and ``_build``; ``build`` opens the
    model context and keeps the result.

    Attributes
    ----------
    prior_spec : object
        Prior specification
    model : pm.Model or None
        PyMC model (None until built)
    """

    prior_spec_class = None

    def __init__(self, prior_spec=None) -> None:
        self.prior_spec = prior_spec or self.prior_spec_class()
        self.model: Optional[pm.Model] = None

    def _validate(self, data) -> None:
        raise NotImplementedError

    def _coords(self, data) -> Dict:
        raise NotImplementedError

    def _build(self, data) -> None:
        raise NotImplementedError

    def build(self, data) -> pm.Model:
        """
        Build the PyMC model for a dataset.

        Returns
        -------
        model : pm.Model
            PyMC model ready for inference.
        """
        self._validate(data)

        with pm.Model(coords=self._coords(data)) as model:
            self._build(data)

        self.model = model
        return model

    def get_model(self) -> pm.Model:
        """
        Get the built model.

        Raises
        ------
        RuntimeError
            If model has not been built yet.
        """
        if self.model is None:
            raise RuntimeError("Model has not been built. Call .build() first.")
        return self.model

    def __repr__(self) -> str:
        return f"{type(self).__name__}(prior_spec={self.prior_spec}, built={self.model is not None})"


class OccupancyModelBuilder(ModelBuilder):
    """
    Site-occupancy model with the latent occupancy state marginalized.

    Deterministics: ``psi`` (occupancy probability per site), ``p`` (detection
    probability per visit), ``site_occupied_prob`` (Pr(z_i = 1 | y_i)) and
    ``n_occupied`` (expected number of occupied surveyed sites).
    """

    prior_spec_class = OccupancyPriorSpec

    def _validate(self, data: OccupancyData) -> None:
        if not isinstance(data, OccupancyData):
            raise ValueError(f"Expected OccupancyData. Got {type(data).__name__}")

    def _coords(self, data: OccupancyData) -> Dict:
        return {
            "site": np.arange(data.n_sites),
            "visit": np.arange(data.n_visits),
            "occupancy_covariate": np.arange(data.n_site_covariates),
            "detection_covariate": np.arange(data.n_visit_covariates),
        }

    def _build(self, data: OccupancyData) -> None:
        X = pm.Data("site_covariates", data.site_covariates, dims=("site", "occupancy_covariate"))
        V = pm.Data(
            "visit_covariates",
            data.visit_covariates_filled,
            dims=("site", "visit", "detection_covariate"),
        )
        y = data.detections_filled.astype(np.float64)
        mask = data.mask.astype(np.float64)
        detected = data.detected

        beta = pm.Normal(
            "occupancy_coefs", mu=0.0, sigma=self.prior_spec.occupancy_scale,
            dims="occupancy_covariate",
        )
        alpha = pm.Normal(
            "detection_coefs", mu=0.0, sigma=self.prior_spec.detection_scale,
            dims="detection_covariate",
        )

        occ_logit = pt.dot(X, beta)
        det_logit = (V * alpha).sum(axis=-1)

        log_psi = _log_sigmoid(occ_logit)
        log_not_psi = _log_sigmoid(-occ_logit)

        visit_ll = mask * (y * _log_sigmoid(det_logit) + (1.0 - y) * _log_sigmoid(-det_logit))
        history_ll = visit_ll.sum(axis=1)
        occupied_ll = log_psi + history_ll
        site_ll = pt.switch(
            detected,
            occupied_ll,
            pt.logsumexp(pt.stack([occupied_ll, log_not_psi]), axis=0),
        )
        pm.Potential("detection_likelihood", site_ll.sum())

        pm.Deterministic("psi", pm.math.sigmoid(occ_logit), dims="site")
        pm.Deterministic("p", mask * pm.math.sigmoid(det_logit), dims=("site", "visit"))

        log_missed = log_psi + (mask * _log_sigmoid(-det_logit)).sum(axis=1)
        missed_prob = pt.exp(
            log_missed - pt.logsumexp(pt.stack([log_missed, log_not_psi]), axis=0)
        )
        occupied_prob = pm.Deterministic(
            "site_occupied_prob", pt.switch(detected, 1.0, missed_prob), dims="site"
        )
        pm.Deterministic("n_occupied", occupied_prob.sum())


class RatingScaleModelBuilder(ModelBuilder):
    """
    Rating Scale Model with latent regression of ability on person covariates.

    Free variables: ``beta_free``, ``kappa_free``, ``lambda``, ``sigma``,
    ``theta``. Deterministics ``beta`` and ``kappa`` hold the full
    sum-to-zero vectors. The response likelihood is the observed ``y``.
    """

    prior_spec_class = RatingScalePriorSpec

    def _validate(self, data: ResponseData) -> None:
        if not isinstance(data, ResponseData):
            raise ValueError(f"Expected ResponseData. Got {type(data).__name__}")

    def _coords(self, data: ResponseData) -> Dict:
        return {
            "item": data.item_labels,
            "person": data.person_labels,
            "step": np.arange(1, data.n_steps + 1),
            "covariate": np.arange(data.n_covariates),
            "response": np.arange(data.n_responses),
        }

    def _build_discrimination(self, data: ResponseData):
        return None

    def _build_ability_sd(self):
        return pm.Exponential("sigma", lam=self.prior_spec.ability_sd_rate)

    def _build_steps(self, data: ResponseData):
        if data.n_steps == 1:
            # Dichotomous items: a single step that must be zero
            return pm.Deterministic("kappa", pt.zeros(1), dims="step")
        return _sum_to_zero("kappa", data.n_steps, self.prior_spec.step_scale, dims="step")

    def _build(self, data: ResponseData) -> None:
        spec = self.prior_spec
        W = pm.Data("person_covariates", data.person_covariates, dims=("person", "covariate"))

        beta = _sum_to_zero("beta", data.n_items, spec.difficulty_scale, dims="item")
        kappa = self._build_steps(data)
        alpha = self._build_discrimination(data)

        lam = pm.StudentT(
            "lambda", nu=spec.regression_df, mu=0.0, sigma=spec.regression_scale,
            dims="covariate",
        )
        sigma = self._build_ability_sd()
        theta = pm.Normal("theta", mu=pt.dot(W, lam), sigma=sigma, dims="person")

        ii = data.item_idx
        jj = data.person_idx
        step_terms = theta[jj][:, None] - beta[ii][:, None] - kappa[None, :]
        if alpha is not None:
            step_terms = alpha[ii][:, None] * step_terms

        logits = pt.concatenate(
            [pt.zeros((data.n_responses, 1)), pt.cumsum(step_terms, axis=1)], axis=1
        )
        pm.Categorical("y", logit_p=logits, observed=data.responses, dims="response")


class GeneralizedRatingScaleModelBuilder(RatingScaleModelBuilder):
    """
    Generalized Rating Scale Model with latent regression.

    Adds item discriminations ``alpha`` and fixes the residual ability scale
    to 1 so that the discriminations are identified.
    """

    def _build_discrimination(self, data: ResponseData):
        return pm.LogNormal(
            "alpha",
            mu=self.prior_spec.discrimination_mu,
            sigma=self.prior_spec.discrimination_sigma,
            dims="item",
        )

    def _build_ability_sd(self):
        return 1.0
