"""
Single-season site-occupancy model with imperfect detection.

Each site i is either occupied (z_i = 1) or not, and a survey only detects
the species at an occupied site with some probability:

    z_i ~ Bernoulli(ψ_i),           logit(ψ_i) = X_i β
    y_ij | z_i ~ Bernoulli(z_i p_ij), logit(p_ij) = V_ij α

The latent occupancy state is summed out of the likelihood. A site with at
least one detection must be occupied:

    log L_i = log ψ_i + Σ_j log Bernoulli(y_ij | p_ij)

while an all-zero history is either an occupied site that was missed every
time, or an empty site:

    log L_i = logsumexp(log ψ_i + Σ_j log(1 - p_ij), log(1 - ψ_i))

Only surveyed visits enter the sums.
"""

from typing import Optional, Tuple
import numpy as np
from numpy.typing import NDArray
from scipy.special import expit, log_expit

from occupancy.data import OccupancyData


class SiteOccupancyModel:
    """
    Site-occupancy model with logistic occupancy and detection regressions.

    Attributes
    ----------
    occupancy_coefs : NDArray[np.float64]
        Occupancy regression coefficients β, shape (K,)
    detection_coefs : NDArray[np.float64]
        Detection regression coefficients α, shape (L,)
    """

    def __init__(
        self,
        occupancy_coefs: NDArray[np.float64],
        detection_coefs: NDArray[np.float64],
    ) -> None:
        self.occupancy_coefs = np.atleast_1d(np.asarray(occupancy_coefs, dtype=np.float64))
        self.detection_coefs = np.atleast_1d(np.asarray(detection_coefs, dtype=np.float64))

        if self.occupancy_coefs.ndim != 1 or self.detection_coefs.ndim != 1:
            raise ValueError("Coefficients must be 1-D vectors")
        if not (np.all(np.isfinite(self.occupancy_coefs)) and np.all(np.isfinite(self.detection_coefs))):
            raise ValueError("Coefficients must be finite")

    def _check_data(self, data: OccupancyData) -> None:
        if data.n_site_covariates != self.occupancy_coefs.size:
            raise ValueError(
                f"Data has {data.n_site_covariates} site covariates, "
                f"model has {self.occupancy_coefs.size} occupancy coefficients"
            )
        if data.n_visit_covariates != self.detection_coefs.size:
            raise ValueError(
                f"Data has {data.n_visit_covariates} visit covariates, "
                f"model has {self.detection_coefs.size} detection coefficients"
            )

    def occupancy_probability(self, site_covariates: NDArray[np.float64]) -> NDArray[np.float64]:
        """ψ_i = logistic(X_i β), shape (n_sites,)."""
        return expit(site_covariates @ self.occupancy_coefs)

    def detection_probability(self, visit_covariates: NDArray[np.float64]) -> NDArray[np.float64]:
        """p_ij = logistic(V_ij α), shape (n_sites, n_visits)."""
        return expit(visit_covariates @ self.detection_coefs)

    def log_likelihood(self, data: OccupancyData) -> NDArray[np.float64]:
        """
        Marginal log-likelihood of each site's detection history.

        Parameters
        ----------
        data : OccupancyData
            Detection histories and covariates.

        Returns
        -------
        NDArray[np.float64]
            Per-site log-likelihood, shape (n_sites,).
        """
        self._check_data(data)

        occ_logit = data.site_covariates @ self.occupancy_coefs
        det_logit = data.visit_covariates_filled @ self.detection_coefs
        y = data.detections_filled

        log_psi = log_expit(occ_logit)
        log_not_psi = log_expit(-occ_logit)

        # log Bernoulli(y | p) on the logit scale, zero for unsurveyed visits
        visit_ll = np.where(data.mask, y * log_expit(det_logit) + (1 - y) * log_expit(-det_logit), 0.0)
        history_ll = visit_ll.sum(axis=1)

        return np.where(
            data.detected,
            log_psi + history_ll,
            np.logaddexp(log_psi + history_ll, log_not_psi),
        )

    def conditional_occupancy(self, data: OccupancyData) -> NDArray[np.float64]:
        """
        Posterior probability that each site is occupied given its history.

        Sites with a detection are occupied with certainty. For a site never
        detected:

            Pr(z_i = 1 | y_i = 0) = ψ_i Π_j (1 - p_ij) / (ψ_i Π_j (1 - p_ij) + 1 - ψ_i)

        Returns
        -------
        NDArray[np.float64]
            Conditional occupancy probabilities, shape (n_sites,).
        """
        self._check_data(data)

        occ_logit = data.site_covariates @ self.occupancy_coefs
        det_logit = data.visit_covariates_filled @ self.detection_coefs

        log_missed = np.where(data.mask, log_expit(-det_logit), 0.0).sum(axis=1)
        log_occupied_missed = log_expit(occ_logit) + log_missed
        log_empty = log_expit(-occ_logit)

        prob = np.exp(log_occupied_missed - np.logaddexp(log_occupied_missed, log_empty))
        return np.where(data.detected, 1.0, prob)

    def expected_occupied(self, data: OccupancyData) -> float:
        """Expected number of occupied sites among the surveyed ones."""
        return float(self.conditional_occupancy(data).sum())

    def simulate(
        self,
        site_covariates: NDArray[np.float64],
        visit_covariates: NDArray[np.float64],
        mask: Optional[NDArray[np.bool_]] = None,
        random_seed: Optional[int] = None,
    ) -> Tuple[NDArray[np.float64], NDArray[np.int64]]:
        """
        Simulate latent occupancy states and detection histories.

        Parameters
        ----------
        site_covariates : NDArray[np.float64]
            Occupancy design matrix, shape (n_sites, K)
        visit_covariates : NDArray[np.float64]
            Detection design array, shape (n_sites, n_visits, L)
        mask : NDArray[np.bool_], optional
            Surveyed visits. Unsurveyed visits are returned as NaN.
        random_seed : int, optional
            Seed for the random generator.

        Returns
        -------
        detections : NDArray[np.float64]
            Simulated detections, shape (n_sites, n_visits)
        z : NDArray[np.int64]
            Latent occupancy states, shape (n_sites,)
        """
        rng = np.random.default_rng(random_seed)

        psi = self.occupancy_probability(site_covariates)
        n_sites, n_visits = visit_covariates.shape[:2]
        if psi.shape != (n_sites,):
            raise ValueError(
                f"site_covariates has {psi.shape[0]} rows but visit_covariates has {n_sites} sites"
            )

        if mask is None:
            mask = np.ones((n_sites, n_visits), dtype=bool)
        p = self.detection_probability(np.where(mask[:, :, None], visit_covariates, 0.0))

        z = rng.binomial(1, psi).astype(np.int64)
        detections = rng.binomial(1, p * z[:, None]).astype(np.float64)
        detections[~mask] = np.nan

        return detections, z

    def __repr__(self) -> str:
        return (
            f"SiteOccupancyModel(occupancy_coefs={self.occupancy_coefs}, "
            f"detection_coefs={self.detection_coefs})"
        )
