"""
Item-response models for ordinal (Likert-type) responses.

**Response data (data.py):**
- Long-format responses with person covariates for latent regression
- Conversion from wide matrices and labelled tables

**Rating scale models (rating_scale.py):**
- Rating Scale Model with shared step parameters
- Generalized Rating Scale Model with item discriminations
- Sum-to-zero identification of difficulties and steps
"""

from irt.data import ResponseData
from irt.rating_scale import (
    RatingScaleModel,
    GeneralizedRatingScaleModel,
    sum_to_zero,
)

__all__ = [
    "ResponseData",
    "RatingScaleModel",
    "GeneralizedRatingScaleModel",
    "sum_to_zero",
]
