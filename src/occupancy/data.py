"""
Detection-history data for site-occupancy models.

A survey visits each of N sites up to J times and records whether the species
was detected. Sites can have unequal survey effort: visits that did not take
place are stored as NaN and excluded from the likelihood through a mask.

Layout:
    detections : (n_sites, n_visits)      0/1, NaN = not surveyed
    X          : (n_sites, K)             occupancy design matrix
    V          : (n_sites, n_visits, L)   detection design array
"""

from typing import Optional, Sequence
import numpy as np
import pandas as pd
from numpy.typing import NDArray


def design_matrix(
    columns: Optional[NDArray[np.float64]],
    n_rows: Optional[int] = None,
    add_intercept: bool = True,
) -> NDArray[np.float64]:
    """
    Build a design matrix with an optional leading intercept column.

    Parameters
    ----------
    columns : NDArray[np.float64] or None
        Covariate values, shape (n,) or (n, k). None means intercept only.
    n_rows : int, optional
        Number of rows, required when ``columns`` is None.
    add_intercept : bool
        Prepend a column of ones. Default True.

    Returns
    -------
    NDArray[np.float64]
        Design matrix of shape (n, k + add_intercept).
    """
    if columns is None:
        if n_rows is None:
            raise ValueError("n_rows is required when no covariates are given")
        if not add_intercept:
            raise ValueError("A design matrix needs covariates or an intercept")
        return np.ones((n_rows, 1))

    columns = np.asarray(columns, dtype=np.float64)
    if columns.ndim == 1:
        columns = columns[:, None]
    if columns.ndim != 2:
        raise ValueError(f"Covariates must be 1-D or 2-D. Got shape {columns.shape}")

    if add_intercept:
        columns = np.column_stack([np.ones(columns.shape[0]), columns])
    return columns


class OccupancyData:
    """
    Detection histories with site and visit covariates.

    Attributes
    ----------
    detections : NDArray[np.float64]
        Detection matrix, shape (n_sites, n_visits); NaN for missing visits.
    mask : NDArray[np.bool_]
        True where a visit was surveyed.
    site_covariates : NDArray[np.float64]
        Occupancy design matrix, shape (n_sites, K).
    visit_covariates : NDArray[np.float64]
        Detection design array, shape (n_sites, n_visits, L).
    """

    def __init__(
        self,
        detections: NDArray[np.float64],
        site_covariates: Optional[NDArray[np.float64]] = None,
        visit_covariates: Optional[NDArray[np.float64]] = None,
    ) -> None:
        """
        Initialize and validate a detection dataset.

        Parameters
        ----------
        detections : NDArray
            0/1 detections, shape (n_sites, n_visits). NaN marks visits that
            were not surveyed.
        site_covariates : NDArray, optional
            Occupancy design matrix (n_sites, K). Defaults to an intercept.
        visit_covariates : NDArray, optional
            Detection design array (n_sites, n_visits, L). Defaults to an
            intercept.

        Raises
        ------
        ValueError
            If values or shapes are invalid.
        """
        detections = np.asarray(detections, dtype=np.float64)
        if detections.ndim != 2:
            raise ValueError(
                f"detections must be 2-D (n_sites, n_visits). Got shape {detections.shape}"
            )

        self.detections = detections
        self.mask = ~np.isnan(detections)
        self.n_sites, self.n_visits = detections.shape

        if site_covariates is None:
            site_covariates = np.ones((self.n_sites, 1))
        if visit_covariates is None:
            visit_covariates = np.ones((self.n_sites, self.n_visits, 1))

        self.site_covariates = np.asarray(site_covariates, dtype=np.float64)
        self.visit_covariates = np.asarray(visit_covariates, dtype=np.float64)

        self._validate()

    def _validate(self) -> None:
        observed = self.detections[self.mask]
        if not np.all((observed == 0) | (observed == 1)):
            raise ValueError("detections must contain only 0, 1 or NaN")

        if np.any(self.mask.sum(axis=1) == 0):
            empty = np.flatnonzero(self.mask.sum(axis=1) == 0)
            raise ValueError(f"Every site needs at least one surveyed visit. Empty sites: {empty}")

        if self.site_covariates.ndim != 2 or self.site_covariates.shape[0] != self.n_sites:
            raise ValueError(
                f"site_covariates must have shape ({self.n_sites}, K). "
                f"Got {self.site_covariates.shape}"
            )
        if not np.all(np.isfinite(self.site_covariates)):
            raise ValueError("site_covariates must be finite")

        if (
            self.visit_covariates.ndim != 3
            or self.visit_covariates.shape[:2] != (self.n_sites, self.n_visits)
        ):
            raise ValueError(
                f"visit_covariates must have shape ({self.n_sites}, {self.n_visits}, L). "
                f"Got {self.visit_covariates.shape}"
            )
        if not np.all(np.isfinite(self.visit_covariates[self.mask])):
            raise ValueError("visit_covariates must be finite on surveyed visits")

    @property
    def n_site_covariates(self) -> int:
        return self.site_covariates.shape[1]

    @property
    def n_visit_covariates(self) -> int:
        return self.visit_covariates.shape[2]

    @property
    def detections_filled(self) -> NDArray[np.int64]:
        """Detections with unsurveyed visits set to 0 (use with ``mask``)."""
        return np.where(self.mask, self.detections, 0.0).astype(np.int64)

    @property
    def visit_covariates_filled(self) -> NDArray[np.float64]:
        """Visit covariates with unsurveyed visits set to 0."""
        return np.where(self.mask[:, :, None], self.visit_covariates, 0.0)

    @property
    def detected(self) -> NDArray[np.bool_]:
        """Sites with at least one detection."""
        return self.detections_filled.sum(axis=1) > 0

    @property
    def n_surveys(self) -> NDArray[np.int64]:
        """Number of surveyed visits per site."""
        return self.mask.sum(axis=1)

    @property
    def naive_occupancy(self) -> float:
        """Fraction of sites where the species was detected at least once."""
        return float(np.mean(self.detected))

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        site: str,
        visit: str,
        detection: str,
        site_covariates: Optional[Sequence[str]] = None,
        visit_covariates: Optional[Sequence[str]] = None,
        add_intercept: bool = True,
    ) -> "OccupancyData":
        """
        Build detection matrices from a long table (one row per visit).

        Site covariates are taken from the first row of each site. Missing
        (site, visit) combinations become unsurveyed visits. Sites and visits
        are ordered by their sorted labels.
        """
        site_covariates = list(site_covariates or [])
        visit_covariates = list(visit_covariates or [])
        for col in [site, visit, detection, *site_covariates, *visit_covariates]:
            if col not in df.columns:
                raise ValueError(f"Column '{col}' not found in dataframe")

        detections = df.pivot_table(
            index=site, columns=visit, values=detection, aggfunc="max"
        ).sort_index()
        sites = detections.index
        visits = detections.columns

        if site_covariates:
            site_frame = df.groupby(site)[site_covariates].first().reindex(sites)
            X = design_matrix(site_frame.to_numpy(), add_intercept=add_intercept)
        else:
            X = design_matrix(None, n_rows=len(sites))

        layers = []
        for col in visit_covariates:
            layer = df.pivot_table(index=site, columns=visit, values=col, aggfunc="first")
            layers.append(layer.reindex(index=sites, columns=visits).to_numpy(dtype=np.float64))
        if add_intercept or not layers:
            layers.insert(0, np.ones((len(sites), len(visits))))
        V = np.stack(layers, axis=-1)

        return cls(detections.to_numpy(dtype=np.float64), X, V)

    def __repr__(self) -> str:
        return (
            f"OccupancyData(n_sites={self.n_sites}, n_visits={self.n_visits}, "
            f"naive_occupancy={self.naive_occupancy:.3f})"
        )
