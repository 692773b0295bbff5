"""
Site-occupancy models: detection histories and the marginal likelihood.

**Detection data (data.py):**
- Detection matrices with unequal survey effort (NaN = not surveyed)
- Site and visit design matrices
- Conversion from long survey tables

**Occupancy model (site_occupancy.py):**
- Logistic occupancy and detection regressions
- Latent occupancy summed out of the likelihood
- Conditional occupancy of sites never detected
- Simulation of detection histories
"""

from occupancy.data import OccupancyData, design_matrix
from occupancy.site_occupancy import SiteOccupancyModel

__all__ = [
    "OccupancyData",
    "design_matrix",
    "SiteOccupancyModel",
]
