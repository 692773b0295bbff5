"""
Simulation module for parameter-recovery studies.

This module provides synthetic data and the end-to-end recovery workflow:
- OccupancySimulator: detection histories with known coefficients
- RatingScaleSimulator: RSM / GRSM responses with latent regression
- run_recovery_study: simulate → fit → convergence → recovery table

**Usage:**
```python
from simulation.simulator import RatingScaleSimulator
from simulation.workflow import run_recovery_study

dataset = RatingScaleSimulator(n_items=10, n_persons=500).simulate(random_seed=1)
study = run_recovery_study("grsm", draws=1000, tune=1000, chains=4)
print(study.recovery.by_parameter())
```
"""

from simulation.simulator import OccupancySimulator, RatingScaleSimulator, SimulatedDataset

__all__ = [
    "OccupancySimulator",
    "RatingScaleSimulator",
    "SimulatedDataset",
]
