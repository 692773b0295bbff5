"""
Long-format ordinal response data for rating-scale models.

Each row n records that person jj[n] gave response y[n] ∈ {0, …, m} to item
ii[n]. Persons carry a covariate matrix W used in the latent regression of
ability. Indices are zero-based.
"""

from typing import Optional, Sequence
import numpy as np
import pandas as pd
from numpy.typing import NDArray


class ResponseData:
    """
    Ordinal responses in long format with person covariates.

    Attributes
    ----------
    item_idx : NDArray[np.int64]
        Item index of each response, shape (N,)
    person_idx : NDArray[np.int64]
        Person index of each response, shape (N,)
    responses : NDArray[np.int64]
        Response categories 0 … m, shape (N,)
    person_covariates : NDArray[np.float64]
        Latent regression design matrix W, shape (J, K)
    n_items : int
        Number of items (I)
    n_persons : int
        Number of persons (J)
    n_steps : int
        Number of steps m (categories are 0 … m)
    """

    def __init__(
        self,
        item_idx: NDArray[np.int64],
        person_idx: NDArray[np.int64],
        responses: NDArray[np.int64],
        person_covariates: Optional[NDArray[np.float64]] = None,
        n_items: Optional[int] = None,
        n_persons: Optional[int] = None,
        n_steps: Optional[int] = None,
        item_labels: Optional[Sequence] = None,
        person_labels: Optional[Sequence] = None,
    ) -> None:
        """
        Initialize response data.

        Parameters
        ----------
        item_idx, person_idx, responses : array-like
            Equal-length integer vectors.
        person_covariates : NDArray, optional
            Design matrix W with one row per person. Defaults to an intercept.
        n_items, n_persons : int, optional
            Defaults to one more than the largest index.
        n_steps : int, optional
            Number of steps m. Defaults to max(responses).
        item_labels, person_labels : sequence, optional
            Names carried through to model coordinates.

        Raises
        ------
        ValueError
            If lengths, indices or responses are invalid.
        """
        self.item_idx = np.asarray(item_idx, dtype=np.int64)
        self.person_idx = np.asarray(person_idx, dtype=np.int64)
        self.responses = np.asarray(responses, dtype=np.int64)

        if not (self.item_idx.shape == self.person_idx.shape == self.responses.shape):
            raise ValueError(
                f"item_idx, person_idx and responses must have equal length. Got "
                f"{self.item_idx.shape}, {self.person_idx.shape}, {self.responses.shape}"
            )
        if self.responses.ndim != 1 or self.responses.size == 0:
            raise ValueError("Responses must be a non-empty 1-D vector")

        self.n_items = int(n_items) if n_items is not None else int(self.item_idx.max()) + 1
        self.n_persons = int(n_persons) if n_persons is not None else int(self.person_idx.max()) + 1
        self.n_steps = int(n_steps) if n_steps is not None else int(self.responses.max())

        if person_covariates is None:
            person_covariates = np.ones((self.n_persons, 1))
        self.person_covariates = np.asarray(person_covariates, dtype=np.float64)
        if self.person_covariates.ndim == 1:
            self.person_covariates = self.person_covariates[:, None]

        self.item_labels = list(item_labels) if item_labels is not None else list(range(self.n_items))
        self.person_labels = (
            list(person_labels) if person_labels is not None else list(range(self.n_persons))
        )

        self._validate()

    def _validate(self) -> None:
        if np.any(self.item_idx < 0) or np.any(self.item_idx >= self.n_items):
            raise ValueError(f"item_idx must be in [0, {self.n_items - 1}]")
        if np.any(self.person_idx < 0) or np.any(self.person_idx >= self.n_persons):
            raise ValueError(f"person_idx must be in [0, {self.n_persons - 1}]")
        if np.any(self.responses < 0):
            raise ValueError("Responses must be non-negative category codes")
        if self.n_items < 2:
            raise ValueError(f"At least 2 items are required. Got {self.n_items}")
        if self.n_steps < 1:
            raise ValueError("Responses need at least two categories (n_steps >= 1)")
        if np.any(self.responses > self.n_steps):
            raise ValueError(f"Responses exceed n_steps={self.n_steps}")
        if self.person_covariates.shape[0] != self.n_persons:
            raise ValueError(
                f"person_covariates must have {self.n_persons} rows. "
                f"Got {self.person_covariates.shape[0]}"
            )
        if not np.all(np.isfinite(self.person_covariates)):
            raise ValueError("person_covariates must be finite")
        if len(self.item_labels) != self.n_items or len(self.person_labels) != self.n_persons:
            raise ValueError("Label lists must match n_items and n_persons")

    @property
    def n_responses(self) -> int:
        return int(self.responses.size)

    @property
    def n_categories(self) -> int:
        return self.n_steps + 1

    @property
    def n_covariates(self) -> int:
        return self.person_covariates.shape[1]

    def item_scores(self) -> NDArray[np.float64]:
        """Mean observed response per item, NaN for items without responses."""
        totals = np.bincount(self.item_idx, weights=self.responses, minlength=self.n_items)
        counts = np.bincount(self.item_idx, minlength=self.n_items)
        with np.errstate(invalid="ignore", divide="ignore"):
            return totals / counts

    def category_counts(self) -> NDArray[np.int64]:
        """Count of responses per item and category, shape (n_items, n_categories)."""
        counts = np.zeros((self.n_items, self.n_categories), dtype=np.int64)
        np.add.at(counts, (self.item_idx, self.responses), 1)
        return counts

    def to_wide(self) -> NDArray[np.float64]:
        """Person × item matrix of responses, NaN where missing."""
        wide = np.full((self.n_persons, self.n_items), np.nan)
        wide[self.person_idx, self.item_idx] = self.responses
        return wide

    @classmethod
    def from_wide(
        cls,
        matrix: NDArray[np.float64],
        person_covariates: Optional[NDArray[np.float64]] = None,
        n_steps: Optional[int] = None,
    ) -> "ResponseData":
        """
        Convert a person × item response matrix to long format.

        Missing cells (NaN) are dropped. Rows are persons, columns are items.
        """
        matrix = np.asarray(matrix, dtype=np.float64)
        if matrix.ndim != 2:
            raise ValueError(f"Response matrix must be 2-D. Got shape {matrix.shape}")

        person_idx, item_idx = np.nonzero(~np.isnan(matrix))
        responses = matrix[person_idx, item_idx]
        if not np.all(responses == np.round(responses)):
            raise ValueError("Responses must be whole-number category codes")

        return cls(
            item_idx=item_idx,
            person_idx=person_idx,
            responses=responses.astype(np.int64),
            person_covariates=person_covariates,
            n_items=matrix.shape[1],
            n_persons=matrix.shape[0],
            n_steps=n_steps,
        )

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        item: str,
        person: str,
        response: str,
        covariates: Optional[Sequence[str]] = None,
        add_intercept: bool = True,
        n_steps: Optional[int] = None,
    ) -> "ResponseData":
        """
        Build response data from a long table with item and person labels.

        Labels are encoded in order of first appearance. Person covariates are
        read from the first row of each person.
        """
        covariates = list(covariates or [])
        for col in [item, person, response, *covariates]:
            if col not in df.columns:
                raise ValueError(f"Column '{col}' not found in dataframe")

        frame = df.dropna(subset=[response])
        item_codes, item_labels = pd.factorize(frame[item])
        person_codes, person_labels = pd.factorize(frame[person])

        if covariates:
            W = (
                frame.groupby(person, sort=False)[covariates]
                .first()
                .reindex(person_labels)
                .to_numpy(dtype=np.float64)
            )
            if add_intercept:
                W = np.column_stack([np.ones(W.shape[0]), W])
        else:
            W = None

        return cls(
            item_idx=item_codes,
            person_idx=person_codes,
            responses=frame[response].to_numpy(dtype=np.int64),
            person_covariates=W,
            n_items=len(item_labels),
            n_persons=len(person_labels),
            n_steps=n_steps,
            item_labels=item_labels,
            person_labels=person_labels,
        )

    def __repr__(self) -> str:
        return (
            f"ResponseData(n_items={self.n_items}, n_persons={self.n_persons}, "
            f"n_responses={self.n_responses}, n_steps={self.n_steps}, "
            f"n_covariates={self.n_covariates})"
        )
