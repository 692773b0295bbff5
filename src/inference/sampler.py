"""
NUTS sampler and convergence diagnostics for the occupancy and rating-scale models.

Orchestrates PyMC sampling, computes convergence diagnostics (R-hat, ESS,
divergences), performs posterior predictive checks, and generates summary
statistics.

Key diagnostics:
- R-hat (split-chain potential scale reduction): <1.01 indicates convergence
- ESS (bulk effective sample size): >400 in total recommended
- Divergences: a few percent of draws at most
- Posterior predictive p-value: should not sit near 0 or 1
"""

import logging
import time
from typing import Callable, Dict, List, Optional
import numpy as np
from numpy.typing import NDArray
import pymc as pm
import arviz as az

logger = logging.getLogger(__name__)


class InferenceSummary:
    """Posterior draws and bookkeeping from one MCMC run."""

    def __init__(
        self,
        idata: az.InferenceData,
        n_draws: int,
        n_tune: int,
        n_chains: int,
        sampling_time: float,
    ) -> None:
        """
        Initialize inference summary.

        Parameters
        ----------
        idata : arviz.InferenceData
            Posterior inference data from PyMC
        n_draws : int
            Number of post-warmup draws per chain
        n_tune : int
            Number of warmup steps per chain
        n_chains : int
            Number of chains
        sampling_time : float
            Wall-clock sampling time (seconds)
        """
        self.idata = idata
        self.n_draws = n_draws
        self.n_tune = n_tune
        self.n_chains = n_chains
        self.sampling_time = sampling_time
        self.total_samples = n_draws * n_chains

    @property
    def n_divergences(self) -> int:
        return int(self.idata.sample_stats["diverging"].sum().item())

    def draws(self, var_name: str) -> NDArray[np.float64]:
        """Posterior draws of a variable pooled over chains, shape (samples, ...)."""
        values = self.idata.posterior[var_name].values
        return values.reshape(-1, *values.shape[2:])

    def __repr__(self) -> str:
        return (
            f"InferenceSummary(draws={self.n_draws}, tune={self.n_tune}, "
            f"chains={self.n_chains}, time={self.sampling_time:.1f}s)"
        )


class NUTSSampler:
    """
    NUTS sampler wrapper.

    Runs ``pm.sample`` with fixed adaptation settings and rejects runs whose
    divergence rate is too high.
    """

    def __init__(
        self,
        target_accept: float = 0.85,
        max_treedepth: int = 10,
        max_divergence_rate: float = 0.05,
    ) -> None:
        """
        Initialize sampler.

        Parameters
        ----------
        target_accept : float
            NUTS target acceptance rate, in (0.5, 0.99). Default 0.85.
        max_treedepth : int
            Maximum tree depth for NUTS. Default 10.
        max_divergence_rate : float
            Largest tolerated fraction of divergent draws. Default 0.05.
        """
        if not (0.5 < target_accept < 0.99):
            raise ValueError(f"target_accept must be in (0.5, 0.99). Got {target_accept}")
        if max_treedepth < 5:
            raise ValueError(f"max_treedepth must be >= 5. Got {max_treedepth}")
        if not (0.0 <= max_divergence_rate <= 1.0):
            raise ValueError(f"max_divergence_rate must be in [0, 1]. Got {max_divergence_rate}")

        self.target_accept = target_accept
        self.max_treedepth = max_treedepth
        self.max_divergence_rate = max_divergence_rate

    def sample(
        self,
        model: pm.Model,
        draws: int = 1000,
        tune: int = 1000,
        chains: int = 4,
        cores: Optional[int] = None,
        random_seed: Optional[int] = None,
        progressbar: bool = False,
    ) -> InferenceSummary:
        """
        Run NUTS on a PyMC model.

        Parameters
        ----------
        model : pm.Model
            PyMC model (from a ModelBuilder)
        draws : int
            Post-warmup draws per chain. Default 1000.
        tune : int
            Warmup steps per chain. Default 1000.
        chains : int
            Number of chains. Default 4.
        cores : int, optional
            Number of processes. Default lets PyMC decide.
        random_seed : int, optional
            Random seed for reproducibility.
        progressbar : bool
            Show progress bar. Default False.

        Returns
        -------
        summary : InferenceSummary

        Raises
        ------
        RuntimeError
            If the divergence rate exceeds ``max_divergence_rate``.
        """
        if draws <= 0 or tune < 0 or chains <= 0:
            raise ValueError(f"Invalid sampler sizes: draws={draws}, tune={tune}, chains={chains}")

        logger.info(
            "Sampling %d chains: %d warmup + %d draws (target_accept=%.2f)",
            chains, tune, draws, self.target_accept,
        )
        start_time = time.time()

        with model:
            idata = pm.sample(
                draws=draws,
                tune=tune,
                chains=chains,
                cores=cores,
                random_seed=random_seed,
                progressbar=progressbar,
                target_accept=self.target_accept,
                max_treedepth=self.max_treedepth,
                discard_tuned_samples=True,
            )

        sampling_time = time.time() - start_time

        summary = InferenceSummary(
            idata=idata,
            n_draws=draws,
            n_tune=tune,
            n_chains=chains,
            sampling_time=sampling_time,
        )

        div_rate = summary.n_divergences / summary.total_samples
        logger.info(
            "Sampling finished in %.1fs with %d divergences", sampling_time, summary.n_divergences
        )
        if div_rate > self.max_divergence_rate:
            raise RuntimeError(
                f"Divergence rate too high: {div_rate:.1%} "
                f"({summary.n_divergences}/{summary.total_samples}). "
                f"Consider increasing tune or target_accept."
            )

        return summary

    def __repr__(self) -> str:
        return (
            f"NUTSSampler(target_accept={self.target_accept}, "
            f"max_treedepth={self.max_treedepth}, "
            f"max_divergence_rate={self.max_divergence_rate})"
        )


class ConvergenceReport:
    """Outcome of a convergence check over a set of parameters."""

    def __init__(
        self,
        max_rhat: float,
        min_ess: float,
        n_divergences: int,
        failing: List[str],
        rhat_threshold: float,
        min_ess_threshold: float,
    ) -> None:
        self.max_rhat = max_rhat
        self.min_ess = min_ess
        self.n_divergences = n_divergences
        self.failing = failing
        self.rhat_threshold = rhat_threshold
        self.min_ess_threshold = min_ess_threshold

    @property
    def passed(self) -> bool:
        return not self.failing

    def __repr__(self) -> str:
        return (
            f"ConvergenceReport(passed={self.passed}, max_rhat={self.max_rhat:.3f}, "
            f"min_ess={self.min_ess:.0f}, divergences={self.n_divergences}, "
            f"failing={len(self.failing)})"
        )


class DiagnosticsComputer:
    """
    Convergence diagnostics from posterior samples.

    Includes: split R-hat, bulk ESS, divergence rates and a combined report.
    """

    @staticmethod
    def rhat(posterior_samples: NDArray[np.float64]) -> float:
        """
        Split-chain R-hat.

        Each chain is cut in half so that drift within a chain also shows up
        as between-chain disagreement.

        Parameters
        ----------
        posterior_samples : NDArray[np.float64]
            Draws of one scalar, shape (chains, draws).

        Returns
        -------
        rhat : float
            Potential scale reduction factor. <1.01 is good.
        """
        posterior_samples = np.asarray(posterior_samples, dtype=np.float64)
        if posterior_samples.ndim != 2:
            raise ValueError(f"Expected shape (chains, draws). Got {posterior_samples.shape}")

        n_chains, n_draws = posterior_samples.shape
        if n_chains < 2:
            raise ValueError("Need at least 2 chains for R-hat")
        if n_draws < 4:
            raise ValueError("Need at least 4 draws per chain for split R-hat")

        half = n_draws // 2
        split = np.concatenate(
            [posterior_samples[:, :half], posterior_samples[:, n_draws - half:]], axis=0
        )
        n = split.shape[1]

        chain_means = split.mean(axis=1)
        between = n * np.var(chain_means, ddof=1)
        within = np.mean(np.var(split, axis=1, ddof=1))

        if within <= 0:
            return 1.0

        var_hat = ((n - 1) / n) * within + between / n
        return float(np.sqrt(var_hat / within))

    @staticmethod
    def ess(posterior_samples: NDArray[np.float64]) -> float:
        """
        Bulk effective sample size.

        Parameters
        ----------
        posterior_samples : NDArray[np.float64]
            Draws of one scalar, shape (chains, draws) or (draws,).

        Returns
        -------
        ess : float
            Effective sample size across all chains.
        """
        posterior_samples = np.atleast_2d(np.asarray(posterior_samples, dtype=np.float64))
        if np.ptp(posterior_samples) == 0:
            return float(posterior_samples.size)
        return float(az.ess(posterior_samples, method="bulk"))

    @staticmethod
    def divergence_rate(idata: az.InferenceData) -> float:
        """Fraction of post-warmup draws that diverged."""
        n_divergences = idata.sample_stats["diverging"].sum().item()
        n_total = idata.posterior.sizes["draw"] * idata.posterior.sizes["chain"]
        return float(n_divergences / n_total)

    @staticmethod
    def convergence_report(
        idata: az.InferenceData,
        var_names: Optional[List[str]] = None,
        rhat_threshold: float = 1.01,
        min_ess: float = 400.0,
    ) -> ConvergenceReport:
        """
        Check R-hat and bulk ESS of every scalar parameter.

        Parameters
        ----------
        idata : arviz.InferenceData
            Posterior inference data
        var_names : list, optional
            Variables to check. If None, all posterior variables.
        rhat_threshold : float
            Largest acceptable R-hat. Default 1.01.
        min_ess : float
            Smallest acceptable bulk ESS. Default 400.

        Returns
        -------
        ConvergenceReport
        """
        table = az.summary(idata, var_names=var_names, kind="diagnostics")

        bad_rhat = table["r_hat"] > rhat_threshold
        bad_ess = table["ess_bulk"] < min_ess
        failing = list(table.index[(bad_rhat | bad_ess).to_numpy()])

        n_divergences = 0
        if "sample_stats" in idata.groups():
            n_divergences = int(idata.sample_stats["diverging"].sum().item())

        report = ConvergenceReport(
            max_rhat=float(table["r_hat"].max()),
            min_ess=float(table["ess_bulk"].min()),
            n_divergences=n_divergences,
            failing=failing,
            rhat_threshold=rhat_threshold,
            min_ess_threshold=min_ess,
        )

        if report.passed:
            logger.info("Convergence check passed: %r", report)
        else:
            logger.warning(
                "Convergence check failed for %d parameters (first: %s)",
                len(failing), ", ".join(failing[:5]),
            )
        return report


class PosteriorPredictiveCheck:
    """
    Posterior predictive checks for model validation.

    Compares observed data to replicated datasets drawn from the posterior
    predictive distribution.
    """

    @staticmethod
    def compute_ppcheck(
        replicated: NDArray[np.float64],
        observed: NDArray[np.float64],
        statistics: Optional[Dict[str, Callable]] = None,
    ) -> Dict[str, float]:
        """
        Tail-area probabilities Pr(T(y_rep) >= T(y)).

        Parameters
        ----------
        replicated : NDArray[np.float64]
            Replicated datasets, shape (n_replicates, ...) matching ``observed``
        observed : NDArray[np.float64]
            Observed data
        statistics : dict, optional
            Name → function of one dataset returning a scalar. NaN entries are
            ignored by the defaults. Defaults: mean, std, max.

        Returns
        -------
        ppc_stats : Dict[str, float]
            ``{name}_pvalue`` per statistic.
        """
        replicated = np.asarray(replicated, dtype=np.float64)
        observed = np.asarray(observed, dtype=np.float64)
        if replicated.shape[1:] != observed.shape:
            raise ValueError(
                f"Replicated datasets {replicated.shape[1:]} do not match observed {observed.shape}"
            )

        if statistics is None:
            statistics = {"mean": np.nanmean, "std": np.nanstd, "max": np.nanmax}

        results = {}
        for name, stat in statistics.items():
            obs_value = stat(observed)
            rep_values = np.array([stat(rep) for rep in replicated])
            results[f"{name}_pvalue"] = float(np.mean(rep_values >= obs_value))
        return results

    @staticmethod
    def summary_stats(
        idata: az.InferenceData,
        var_names: Optional[List[str]] = None,
        hdi_prob: float = 0.95,
    ) -> Dict:
        """
        Posterior summary statistics per scalar parameter.

        Returns
        -------
        stats : Dict
            Mean, std, HDI bounds, R-hat and bulk ESS per parameter.
        """
        summary_df = az.summary(idata, var_names=var_names, hdi_prob=hdi_prob)

        tail = (1.0 - hdi_prob) / 2.0 * 100
        low_col = f"hdi_{tail:g}%"
        high_col = f"hdi_{100 - tail:g}%"

        stats = {}
        for var_name in summary_df.index:
            row = summary_df.loc[var_name]
            stats[var_name] = {
                "mean": float(row["mean"]),
                "std": float(row["sd"]),
                "hdi_low": float(row[low_col]),
                "hdi_high": float(row[high_col]),
                "rhat": float(row["r_hat"]),
                "ess_bulk": float(row["ess_bulk"]),
            }
        return stats
