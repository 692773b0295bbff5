"""
Parameter recovery: compare posterior draws with the values that generated the data.

A model is recovering its parameters when the central posterior intervals
bracket the generating values at roughly their nominal rate and the
posterior means show no systematic bias.

For each scalar parameter θ with true value θ*:
    covered  = q_{(1-p)/2}(θ) <= θ* <= q_{(1+p)/2}(θ)
    error    = E[θ | y] - θ*
"""

import logging
from typing import Dict, Optional
import numpy as np
import pandas as pd
import arviz as az
from numpy.typing import NDArray

logger = logging.getLogger(__name__)


def _flat_draws(idata: az.InferenceData, var_name: str) -> NDArray[np.float64]:
    """Draws of a variable as (samples, n_elements)."""
    if var_name not in idata.posterior:
        raise ValueError(f"Variable '{var_name}' not found in posterior")
    values = idata.posterior[var_name].values
    n_samples = values.shape[0] * values.shape[1]
    return values.reshape(n_samples, -1)


def parameter_recovery(
    idata: az.InferenceData,
    truths: Dict[str, NDArray[np.float64]],
    prob: float = 0.9,
) -> pd.DataFrame:
    """
    Tabulate recovery of every scalar element of the given parameters.

    Parameters
    ----------
    idata : arviz.InferenceData
        Posterior inference data
    truths : dict
        Variable name → generating value (scalar or array matching the
        variable's shape per draw)
    prob : float
        Central interval probability. Default 0.9.

    Returns
    -------
    pd.DataFrame
        Columns: parameter, index, true, mean, sd, lower, upper, covered, error.
    """
    if not (0.0 < prob < 1.0):
        raise ValueError(f"prob must be in (0, 1). Got {prob}")

    lower_q = (1.0 - prob) / 2.0
    upper_q = 1.0 - lower_q

    rows = []
    for name, true_value in truths.items():
        draws = _flat_draws(idata, name)
        true_flat = np.ravel(np.asarray(true_value, dtype=np.float64))
        if true_flat.size != draws.shape[1]:
            raise ValueError(
                f"True value of '{name}' has {true_flat.size} elements, "
                f"posterior has {draws.shape[1]}"
            )

        means = draws.mean(axis=0)
        sds = draws.std(axis=0, ddof=1)
        lower, upper = np.quantile(draws, [lower_q, upper_q], axis=0)

        for k in range(true_flat.size):
            rows.append({
                "parameter": name,
                "index": k,
                "true": true_flat[k],
                "mean": means[k],
                "sd": sds[k],
                "lower": lower[k],
                "upper": upper[k],
                "covered": bool(lower[k] <= true_flat[k] <= upper[k]),
                "error": means[k] - true_flat[k],
            })

    return pd.DataFrame(
        rows,
        columns=["parameter", "index", "true", "mean", "sd", "lower", "upper", "covered", "error"],
    )


class RecoveryReport:
    """
    Aggregate recovery statistics per parameter group.

    Attributes
    ----------
    table : pd.DataFrame
        Per-element table from ``parameter_recovery``
    prob : float
        Nominal interval probability
    """

    def __init__(self, table: pd.DataFrame, prob: float) -> None:
        self.table = table
        self.prob = prob

    @classmethod
    def from_idata(
        cls,
        idata: az.InferenceData,
        truths: Dict[str, NDArray[np.float64]],
        prob: float = 0.9,
    ) -> "RecoveryReport":
        return cls(parameter_recovery(idata, truths, prob=prob), prob)

    @property
    def coverage(self) -> float:
        """Overall fraction of intervals covering the true value."""
        return float(self.table["covered"].mean())

    def by_parameter(self) -> pd.DataFrame:
        """Coverage, bias and RMSE per parameter."""
        grouped = self.table.groupby("parameter", sort=False)
        return pd.DataFrame({
            "n": grouped.size(),
            "coverage": grouped["covered"].mean(),
            "bias": grouped["error"].mean(),
            "rmse": grouped["error"].apply(lambda e: float(np.sqrt(np.mean(e ** 2)))),
        })

    def passed(self, min_coverage: Optional[float] = None) -> bool:
        """
        Whether overall coverage reaches ``min_coverage``.

        Defaults to ``prob - 0.15``, allowing coverage somewhat below nominal.
        """
        if min_coverage is None:
            min_coverage = max(self.prob - 0.15, 0.0)
        ok = self.coverage >= min_coverage
        if not ok:
            logger.warning(
                "Coverage %.2f below %.2f for %.0f%% intervals",
                self.coverage, min_coverage, 100 * self.prob,
            )
        return ok

    def __repr__(self) -> str:
        return (
            f"RecoveryReport(n_parameters={len(self.table)}, prob={self.prob}, "
            f"coverage={self.coverage:.3f})"
        )
