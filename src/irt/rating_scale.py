"""
Rating Scale Model (RSM) and Generalized Rating Scale Model (GRSM).

Both are adjacent-category logit models for ordinal responses y ∈ {0, …, m}.
All items share the same m step parameters κ, and each item has its own
difficulty β_i. For person j with ability θ_j:

    RSM:   Pr(y_ij = k) ∝ exp( Σ_{s=1..k} (θ_j - β_i - κ_s) )
    GRSM:  Pr(y_ij = k) ∝ exp( Σ_{s=1..k} α_i (θ_j - β_i - κ_s) )

with the empty sum (k = 0) equal to 0. The GRSM adds an item
discrimination α_i > 0 and reduces to the RSM when every α_i = 1.

Identification: difficulties and step parameters each sum to zero, so the
last element of each vector is minus the sum of the others.
"""

from typing import Optional
import numpy as np
from numpy.typing import NDArray
from scipy.special import log_softmax

from irt.data import ResponseData


def sum_to_zero(free: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Append the element that makes a vector sum to zero.

    Parameters
    ----------
    free : NDArray[np.float64]
        Free elements, shape (n - 1,)

    Returns
    -------
    NDArray[np.float64]
        Constrained vector, shape (n,)
    """
    free = np.asarray(free, dtype=np.float64)
    return np.append(free, -free.sum())


class RatingScaleModel:
    """
    Rating Scale Model with fixed item parameters.

    Attributes
    ----------
    difficulties : NDArray[np.float64]
        Item difficulties β, shape (I,), sum to zero
    steps : NDArray[np.float64]
        Step parameters κ, shape (m,), sum to zero
    """

    def __init__(
        self,
        difficulties: NDArray[np.float64],
        steps: NDArray[np.float64],
        validate: bool = True,
    ) -> None:
        self.difficulties = np.asarray(difficulties, dtype=np.float64)
        self.steps = np.asarray(steps, dtype=np.float64)

        if validate:
            self._validate_parameters()

    def _validate_parameters(self) -> None:
        if self.difficulties.ndim != 1 or self.difficulties.size < 2:
            raise ValueError("difficulties must be a 1-D vector with at least 2 items")
        if self.steps.ndim != 1 or self.steps.size < 1:
            raise ValueError("steps must be a 1-D vector with at least 1 step")
        if not np.isclose(self.difficulties.sum(), 0.0, atol=1e-8):
            raise ValueError(f"difficulties must sum to zero. Got sum {self.difficulties.sum()}")
        if not np.isclose(self.steps.sum(), 0.0, atol=1e-8):
            raise ValueError(f"steps must sum to zero. Got sum {self.steps.sum()}")

    @property
    def n_items(self) -> int:
        return self.difficulties.size

    @property
    def n_steps(self) -> int:
        return self.steps.size

    @property
    def n_categories(self) -> int:
        return self.n_steps + 1

    def _discrimination(self, item_idx: NDArray[np.int64]) -> NDArray[np.float64]:
        return np.ones(np.shape(item_idx))

    def category_logits(
        self,
        theta: NDArray[np.float64],
        item_idx: NDArray[np.int64],
    ) -> NDArray[np.float64]:
        """
        Unnormalized log-probabilities of each category.

        Parameters
        ----------
        theta : NDArray[np.float64]
            Ability of the person behind each response, shape (N,)
        item_idx : NDArray[np.int64]
            Item of each response, shape (N,)

        Returns
        -------
        NDArray[np.float64]
            Cumulative step sums, shape (N, m + 1), first column 0.
        """
        theta = np.atleast_1d(np.asarray(theta, dtype=np.float64))
        item_idx = np.atleast_1d(np.asarray(item_idx, dtype=np.int64))
        if theta.shape != item_idx.shape:
            raise ValueError(
                f"theta and item_idx must have the same shape. Got {theta.shape}, {item_idx.shape}"
            )
        if np.any(item_idx < 0) or np.any(item_idx >= self.n_items):
            raise ValueError(f"item_idx must be in [0, {self.n_items - 1}]")

        alpha = self._discrimination(item_idx)
        step_terms = alpha[:, None] * (
            theta[:, None] - self.difficulties[item_idx][:, None] - self.steps[None, :]
        )
        return np.column_stack([np.zeros(theta.size), np.cumsum(step_terms, axis=1)])

    def category_probabilities(
        self,
        theta: NDArray[np.float64],
        item_idx: NDArray[np.int64],
    ) -> NDArray[np.float64]:
        """Category probabilities, shape (N, m + 1), rows sum to 1."""
        return np.exp(log_softmax(self.category_logits(theta, item_idx), axis=1))

    def expected_scores(
        self,
        theta: NDArray[np.float64],
        item_idx: NDArray[np.int64],
    ) -> NDArray[np.float64]:
        """Expected response E[y] = Σ_k k Pr(y = k), shape (N,)."""
        probs = self.category_probabilities(theta, item_idx)
        return probs @ np.arange(self.n_categories)

    def log_likelihood(
        self,
        data: ResponseData,
        theta: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """
        Log-probability of each observed response.

        Parameters
        ----------
        data : ResponseData
            Observed responses.
        theta : NDArray[np.float64]
            Person abilities, shape (J,)

        Returns
        -------
        NDArray[np.float64]
            Log-likelihood per response, shape (N,)
        """
        theta = np.asarray(theta, dtype=np.float64)
        if theta.shape != (data.n_persons,):
            raise ValueError(f"theta must have shape ({data.n_persons},). Got {theta.shape}")
        if data.n_items != self.n_items:
            raise ValueError(f"Data has {data.n_items} items, model has {self.n_items}")
        if data.n_steps > self.n_steps:
            raise ValueError(f"Data has {data.n_steps} steps, model has {self.n_steps}")

        logp = log_softmax(self.category_logits(theta[data.person_idx], data.item_idx), axis=1)
        return logp[np.arange(data.n_responses), data.responses]

    def simulate(
        self,
        theta: NDArray[np.float64],
        item_idx: NDArray[np.int64],
        person_idx: NDArray[np.int64],
        random_seed: Optional[int] = None,
    ) -> NDArray[np.int64]:
        """
        Draw responses for the given (item, person) pairs.

        Parameters
        ----------
        theta : NDArray[np.float64]
            Person abilities, shape (J,)
        item_idx, person_idx : NDArray[np.int64]
            Item and person of each response, shape (N,)
        random_seed : int, optional
            Seed for the random generator.

        Returns
        -------
        NDArray[np.int64]
            Responses in {0, …, m}, shape (N,)
        """
        rng = np.random.default_rng(random_seed)
        theta = np.asarray(theta, dtype=np.float64)
        probs = self.category_probabilities(theta[person_idx], item_idx)

        # Inverse-CDF draw per row
        cdf = np.cumsum(probs, axis=1)
        u = rng.random(probs.shape[0])[:, None]
        return np.minimum((u > cdf).sum(axis=1), self.n_steps).astype(np.int64)

    def __repr__(self) -> str:
        return f"RatingScaleModel(n_items={self.n_items}, n_steps={self.n_steps})"


class GeneralizedRatingScaleModel(RatingScaleModel):
    """
    Rating Scale Model with item discriminations.

    Attributes
    ----------
    discriminations : NDArray[np.float64]
        Item discriminations α, shape (I,), strictly positive
    """

    def __init__(
        self,
        discriminations: NDArray[np.float64],
        difficulties: NDArray[np.float64],
        steps: NDArray[np.float64],
        validate: bool = True,
    ) -> None:
        self.discriminations = np.asarray(discriminations, dtype=np.float64)
        super().__init__(difficulties, steps, validate=validate)

    def _validate_parameters(self) -> None:
        super()._validate_parameters()
        if self.discriminations.shape != self.difficulties.shape:
            raise ValueError(
                f"discriminations must have shape {self.difficulties.shape}. "
                f"Got {self.discriminations.shape}"
            )
        if np.any(self.discriminations <= 0):
            raise ValueError("discriminations must be strictly positive")

    def _discrimination(self, item_idx: NDArray[np.int64]) -> NDArray[np.float64]:
        return self.discriminations[item_idx]

    def __repr__(self) -> str:
        return f"GeneralizedRatingScaleModel(n_items={self.n_items}, n_steps={self.n_steps})"
