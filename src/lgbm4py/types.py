"""Enumerations shared by the booster wrapper.

Each enum maps 1:1 onto an integer constant of the LightGBM C API
(``C_API_PREDICT_*``, ``C_API_FEATURE_IMPORTANCE_*``, ``C_API_DTYPE_*``).
"""

from __future__ import annotations

from enum import Enum, IntEnum

__all__: list[str] = [
    "DType",
    "FeatureImportanceType",
    "PredictionType",
]


class DType(IntEnum):
    """Element type tag passed next to raw data buffers."""

    FLOAT32 = 0
    FLOAT64 = 1
    INT32 = 2
    INT64 = 3


class PredictionType(str, Enum):
    """What a prediction call should produce.

    - ``NORMAL``: transformed scores (probabilities for classification).
    - ``RAW_SCORE``: raw margins before the objective's link function.
    - ``LEAF_INDEX``: index of the leaf reached in every tree.
    - ``CONTRIB``: per-feature contributions plus the expected value.
    """

    NORMAL = "normal"
    RAW_SCORE = "raw_score"
    LEAF_INDEX = "leaf_index"
    CONTRIB = "contrib"

    @property
    def code(self) -> int:
        """Native ``C_API_PREDICT_*`` constant."""
        return _PREDICTION_CODES[self]


class FeatureImportanceType(str, Enum):
    """How feature importance is measured."""

    SPLIT = "split"
    GAIN = "gain"

    @property
    def code(self) -> int:
        """Native ``C_API_FEATURE_IMPORTANCE_*`` constant."""
        return _IMPORTANCE_CODES[self]


_PREDICTION_CODES: dict[PredictionType, int] = {
    PredictionType.NORMAL: 0,
    PredictionType.RAW_SCORE: 1,
    PredictionType.LEAF_INDEX: 2,
    PredictionType.CONTRIB: 3,
}

_IMPORTANCE_CODES: dict[FeatureImportanceType, int] = {
    FeatureImportanceType.SPLIT: 0,
    FeatureImportanceType.GAIN: 1,
}
