"""
Bayesian inference module for the occupancy and rating-scale models.

This module provides the PyMC-based inference pipeline:
1. Model builders: PyMC models with priors and identifiability constraints
2. NUTSSampler: NUTS sampling with a divergence check
3. DiagnosticsComputer: R-hat, ESS, divergence rates, convergence report
4. PosteriorPredictiveCheck: Model validation
5. Recovery: posterior intervals against generating values

**Usage:**
```python
from inference.model_builder import RatingScaleModelBuilder
from inference.sampler import NUTSSampler, DiagnosticsComputer
from inference.recovery import RecoveryReport

model = RatingScaleModelBuilder().build(data)
summary = NUTSSampler().sample(model, draws=1000, tune=1000, chains=4)

report = DiagnosticsComputer.convergence_report(summary.idata, var_names=["beta", "kappa"])
recovery = RecoveryReport.from_idata(summary.idata, truths)
```
"""

from inference.model_builder import (
    ModelBuilder,
    OccupancyModelBuilder,
    RatingScaleModelBuilder,
    GeneralizedRatingScaleModelBuilder,
    OccupancyPriorSpec,
    RatingScalePriorSpec,
)
from inference.sampler import (
    NUTSSampler,
    DiagnosticsComputer,
    ConvergenceReport,
    PosteriorPredictiveCheck,
    InferenceSummary,
)
from inference.recovery import parameter_recovery, RecoveryReport

__all__ = [
    "ModelBuilder",
    "OccupancyModelBuilder",
    "RatingScaleModelBuilder",
    "GeneralizedRatingScaleModelBuilder",
    "OccupancyPriorSpec",
    "RatingScalePriorSpec",
    "NUTSSampler",
    "DiagnosticsComputer",
    "ConvergenceReport",
    "PosteriorPredictiveCheck",
    "InferenceSummary",
    "parameter_recovery",
    "RecoveryReport",
]
