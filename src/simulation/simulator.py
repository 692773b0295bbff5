"""
Synthetic data generators for parameter-recovery studies.

Each simulator draws covariates, fixes generating parameter values, and
simulates a dataset from the numpy model. The generating values are returned
alongside the data so that fitted posteriors can be checked against them.
Simulators also draw posterior predictive replicates from a fitted model.

Defaults:
- Occupancy: 200 sites × 4 visits, one site and one visit covariate
- Rating scale: 10 items × 500 persons, 4 categories, covariates
  [1, N(0, 1), Bernoulli(0.5)]
"""

from typing import Dict, Optional, Sequence
import numpy as np
import arviz as az
from numpy.typing import NDArray

from occupancy.data import OccupancyData, design_matrix
from occupancy.site_occupancy import SiteOccupancyModel
from irt.data import ResponseData
from irt.rating_scale import RatingScaleModel, GeneralizedRatingScaleModel


class SimulatedDataset:
    """
    A simulated dataset with its generating values.

    Attributes
    ----------
    data : OccupancyData or ResponseData
        The simulated observations
    truths : Dict[str, NDArray]
        Generating values keyed by posterior variable name
    latent : Dict[str, NDArray]
        Simulated latent quantities (occupancy states, abilities)
    """

    def __init__(self, data, truths: Dict[str, NDArray], latent: Dict[str, NDArray]) -> None:
        self.data = data
        self.truths = truths
        self.latent = latent

    def __repr__(self) -> str:
        return f"SimulatedDataset(data={self.data}, truths={sorted(self.truths)})"


def _posterior_draw_indices(
    idata: az.InferenceData,
    n_replicates: int,
    rng: np.random.Generator,
) -> NDArray[np.int64]:
    n_total = idata.posterior.sizes["chain"] * idata.posterior.sizes["draw"]
    return rng.choice(n_total, size=n_replicates, replace=n_replicates > n_total)


def _pooled(idata: az.InferenceData, var_name: str) -> NDArray[np.float64]:
    values = idata.posterior[var_name].values
    return values.reshape(-1, *values.shape[2:])


class OccupancySimulator:
    """
    Simulator for single-season occupancy surveys.

    Site covariates and visit covariates are standard normal; both linear
    predictors include an intercept, so ``occupancy_coefs`` and
    ``detection_coefs`` start with the intercept.
    """

    def __init__(
        self,
        n_sites: int = 200,
        n_visits: int = 4,
        occupancy_coefs: Sequence[float] = (0.3, 1.0),
        detection_coefs: Sequence[float] = (-0.3, 0.8),
        missing_rate: float = 0.0,
    ) -> None:
        """
        Initialize occupancy simulator.

        Parameters
        ----------
        n_sites : int
            Number of sites. Default 200.
        n_visits : int
            Planned visits per site. Default 4.
        occupancy_coefs : sequence of float
            Intercept and slopes of logit(ψ). Default (0.3, 1.0).
        detection_coefs : sequence of float
            Intercept and slopes of logit(p). Default (-0.3, 0.8).
        missing_rate : float
            Probability that a planned visit is skipped. The first visit of
            every site always happens. Default 0.0.
        """
        if n_sites <= 0 or n_visits <= 0:
            raise ValueError(f"n_sites and n_visits must be positive. Got {n_sites}, {n_visits}")
        if not (0.0 <= missing_rate < 1.0):
            raise ValueError(f"missing_rate must be in [0, 1). Got {missing_rate}")
        if len(occupancy_coefs) < 1 or len(detection_coefs) < 1:
            raise ValueError("Coefficient vectors need at least an intercept")

        self.n_sites = n_sites
        self.n_visits = n_visits
        self.occupancy_coefs = np.asarray(occupancy_coefs, dtype=np.float64)
        self.detection_coefs = np.asarray(detection_coefs, dtype=np.float64)
        self.missing_rate = missing_rate

    def simulate(self, random_seed: Optional[int] = None) -> SimulatedDataset:
        """
        Simulate covariates, occupancy states and detection histories.

        Returns
        -------
        SimulatedDataset
            Data plus truths ``occupancy_coefs`` and ``detection_coefs``; latent
            ``z`` and its realized count ``n_occupied``.
        """
        rng = np.random.default_rng(random_seed)

        n_site_slopes = self.occupancy_coefs.size - 1
        n_visit_slopes = self.detection_coefs.size - 1

        X = design_matrix(
            rng.normal(size=(self.n_sites, n_site_slopes)) if n_site_slopes else None,
            n_rows=self.n_sites,
        )
        V = np.concatenate(
            [
                np.ones((self.n_sites, self.n_visits, 1)),
                rng.normal(size=(self.n_sites, self.n_visits, n_visit_slopes)),
            ],
            axis=-1,
        )

        mask = rng.random((self.n_sites, self.n_visits)) >= self.missing_rate
        mask[:, 0] = True

        model = SiteOccupancyModel(self.occupancy_coefs, self.detection_coefs)
        detections, z = model.simulate(X, V, mask=mask, random_seed=rng.integers(2**32))

        data = OccupancyData(detections, site_covariates=X, visit_covariates=V)
        truths = {
            "occupancy_coefs": self.occupancy_coefs.copy(),
            "detection_coefs": self.detection_coefs.copy(),
        }
        return SimulatedDataset(data, truths, {"z": z, "n_occupied": int(z.sum())})

    def replicate(
        self,
        idata: az.InferenceData,
        data: OccupancyData,
        n_replicates: int = 200,
        random_seed: Optional[int] = None,
    ) -> NDArray[np.float64]:
        """
        Posterior predictive detection histories.

        Returns
        -------
        NDArray[np.float64]
            Replicated detections, shape (n_replicates, n_sites, n_visits),
            NaN on unsurveyed visits.
        """
        rng = np.random.default_rng(random_seed)
        beta = _pooled(idata, "occupancy_coefs")
        alpha = _pooled(idata, "detection_coefs")

        replicates = np.empty((n_replicates, data.n_sites, data.n_visits))
        for r, idx in enumerate(_posterior_draw_indices(idata, n_replicates, rng)):
            model = SiteOccupancyModel(beta[idx], alpha[idx])
            replicates[r], _ = model.simulate(
                data.site_covariates, data.visit_covariates_filled,
                mask=data.mask, random_seed=rng.integers(2**32),
            )
        return replicates

    def __repr__(self) -> str:
        return (
            f"OccupancySimulator(n_sites={self.n_sites}, n_visits={self.n_visits}, "
            f"missing_rate={self.missing_rate})"
        )


class RatingScaleSimulator:
    """
    Simulator for rating-scale data with latent regression.

    Abilities follow θ_j = W_j λ + σ ε_j. Every person answers every item.
    With ``generalized=True`` responses come from the GRSM with item
    discriminations and σ is fixed to 1.
    """

    def __init__(
        self,
        n_items: int = 10,
        n_persons: int = 500,
        steps: Sequence[float] = (-1.0, 0.0, 1.0),
        regression_coefs: Sequence[float] = (0.5, 0.5, -0.5),
        ability_sd: float = 1.0,
        difficulties: Optional[Sequence[float]] = None,
        discriminations: Optional[Sequence[float]] = None,
        generalized: bool = False,
    ) -> None:
        """
        Initialize rating-scale simulator.

        Parameters
        ----------
        n_items : int
            Number of items. Default 10.
        n_persons : int
            Number of persons. Default 500.
        steps : sequence of float
            Step parameters κ, must sum to zero. Default (-1, 0, 1).
        regression_coefs : sequence of float
            λ for covariates [1, N(0,1), Bernoulli(0.5)]; only the first
            len(regression_coefs) columns are used. Default (0.5, 0.5, -0.5).
        ability_sd : float
            Residual ability std σ (ignored for the GRSM). Default 1.0.
        difficulties : sequence of float, optional
            Item difficulties β. Default evenly spaced in [-1, 1].
        discriminations : sequence of float, optional
            Item discriminations α. Default evenly spaced in [0.5, 1.5].
        generalized : bool
            Simulate from the GRSM. Default False.
        """
        if n_items < 2 or n_persons < 1:
            raise ValueError(f"Need n_items >= 2 and n_persons >= 1. Got {n_items}, {n_persons}")
        if not (1 <= len(regression_coefs) <= 3):
            raise ValueError("regression_coefs must have 1 to 3 elements")
        if ability_sd <= 0:
            raise ValueError(f"ability_sd must be positive. Got {ability_sd}")

        self.n_items = n_items
        self.n_persons = n_persons
        self.steps = np.asarray(steps, dtype=np.float64)
        self.regression_coefs = np.asarray(regression_coefs, dtype=np.float64)
        self.generalized = generalized
        self.ability_sd = 1.0 if generalized else ability_sd

        if difficulties is None:
            difficulties = np.linspace(-1.0, 1.0, n_items)
        self.difficulties = np.asarray(difficulties, dtype=np.float64)

        if discriminations is None:
            discriminations = np.linspace(0.5, 1.5, n_items)
        self.discriminations = np.asarray(discriminations, dtype=np.float64)

        self.model = self._make_model(self.difficulties, self.steps, self.discriminations)

    def _make_model(self, difficulties, steps, discriminations=None, validate=True):
        if self.generalized:
            return GeneralizedRatingScaleModel(discriminations, difficulties, steps, validate=validate)
        return RatingScaleModel(difficulties, steps, validate=validate)

    def person_covariates(self, rng: np.random.Generator) -> NDArray[np.float64]:
        """Covariate matrix [1, N(0, 1), Bernoulli(0.5)] truncated to len(λ)."""
        W = np.column_stack([
            np.ones(self.n_persons),
            rng.normal(size=self.n_persons),
            rng.binomial(1, 0.5, size=self.n_persons),
        ])
        return W[:, : self.regression_coefs.size]

    def simulate(self, random_seed: Optional[int] = None) -> SimulatedDataset:
        """
        Simulate covariates, abilities and a complete response matrix.

        Returns
        -------
        SimulatedDataset
            Data plus truths ``beta``, ``kappa``, ``lambda``, ``theta`` and
            ``sigma`` (RSM) or ``alpha`` (GRSM).
        """
        rng = np.random.default_rng(random_seed)

        W = self.person_covariates(rng)
        theta = W @ self.regression_coefs + self.ability_sd * rng.normal(size=self.n_persons)

        person_idx, item_idx = np.divmod(np.arange(self.n_persons * self.n_items), self.n_items)
        responses = self.model.simulate(theta, item_idx, person_idx, random_seed=rng.integers(2**32))

        data = ResponseData(
            item_idx=item_idx,
            person_idx=person_idx,
            responses=responses,
            person_covariates=W,
            n_items=self.n_items,
            n_persons=self.n_persons,
            n_steps=self.steps.size,
        )

        truths = {
            "beta": self.difficulties.copy(),
            "kappa": self.steps.copy(),
            "lambda": self.regression_coefs.copy(),
            "theta": theta,
        }
        if self.generalized:
            truths["alpha"] = self.discriminations.copy()
        else:
            truths["sigma"] = np.array(self.ability_sd)

        return SimulatedDataset(data, truths, {"theta": theta})

    def replicate(
        self,
        idata: az.InferenceData,
        data: ResponseData,
        n_replicates: int = 200,
        random_seed: Optional[int] = None,
    ) -> NDArray[np.int64]:
        """
        Posterior predictive responses for the observed (item, person) pairs.

        Returns
        -------
        NDArray[np.int64]
            Replicated responses, shape (n_replicates, n_responses).
        """
        rng = np.random.default_rng(random_seed)
        beta = _pooled(idata, "beta")
        kappa = _pooled(idata, "kappa")
        theta = _pooled(idata, "theta")
        alpha = _pooled(idata, "alpha") if self.generalized else None

        replicates = np.empty((n_replicates, data.n_responses), dtype=np.int64)
        for r, idx in enumerate(_posterior_draw_indices(idata, n_replicates, rng)):
            model = self._make_model(
                beta[idx], kappa[idx], None if alpha is None else alpha[idx], validate=False
            )
            replicates[r] = model.simulate(
                theta[idx], data.item_idx, data.person_idx, random_seed=rng.integers(2**32)
            )
        return replicates

    def __repr__(self) -> str:
        return (
            f"RatingScaleSimulator(n_items={self.n_items}, n_persons={self.n_persons}, "
            f"n_steps={self.steps.size}, generalized={self.generalized})"
        )
