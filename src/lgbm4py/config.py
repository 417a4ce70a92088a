"""Configuration models.

This module defines the Pydantic models for booster parameters and for the
sizes of the scratch buffers used by the introspection calls.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

__all__: list[str] = [
    "BoosterParams",
    "BufferSettings",
    "ParamsInput",
    "params_to_string",
]

MODEL_SAVE_BUFFER_SIZE = 10 * 1024 * 1024
EVAL_RESULTS_BUFFER_SIZE = 1024
FEATURE_NAME_BUFFER_SIZE = 255


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_format_value(v) for v in value)
    return str(value)


class BoosterParams(BaseModel):
    """LightGBM training parameters.

    Only the common parameters are typed; any other LightGBM parameter can
    be passed as an extra keyword and is forwarded verbatim. Unset values
    are left out of the native parameter string so LightGBM's own defaults
    apply.

    Example:
        >>> BoosterParams(objective="regression", num_leaves=15).to_param_string()
        'objective=regression num_leaves=15'
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    objective: str | None = None
    boosting: str | None = None
    learning_rate: float | None = None
    num_leaves: int | None = None
    max_depth: int | None = None
    min_data_in_leaf: int | None = None
    feature_fraction: float | None = None
    bagging_fraction: float | None = None
    bagging_freq: int | None = None
    lambda_l1: float | None = None
    lambda_l2: float | None = None
    metric: str | list[str] | None = None
    num_threads: int | None = None
    seed: int | None = None
    verbose: int | None = None

    @field_validator("learning_rate")
    @classmethod
    def validate_learning_rate(cls, v: float | None) -> float | None:
        """Validate learning rate is positive."""
        if v is not None and v <= 0:
            raise ValueError("learning_rate must be positive")
        return v

    @field_validator("num_leaves")
    @classmethod
    def validate_num_leaves(cls, v: int | None) -> int | None:
        """Validate a tree can have at least two leaves."""
        if v is not None and v < 2:
            raise ValueError("num_leaves must be at least 2")
        return v

    @field_validator("feature_fraction", "bagging_fraction")
    @classmethod
    def validate_fraction(cls, v: float | None) -> float | None:
        """Validate sampling fractions lie in (0, 1]."""
        if v is not None and not 0.0 < v <= 1.0:
            raise ValueError("fractions must be in (0, 1]")
        return v

    def to_param_string(self) -> str:
        """Render as ``key1=value1 key2=value2``."""
        items = self.model_dump(exclude_none=True)
        return " ".join(f"{key}={_format_value(value)}" for key, value in items.items())


ParamsInput = BoosterParams | Mapping[str, Any] | str | None


def params_to_string(params: ParamsInput) -> str:
    """Normalize any accepted parameter form to the native string format."""
    if params is None:
        return ""
    if isinstance(params, str):
        return params
    if isinstance(params, BoosterParams):
        return params.to_param_string()
    return BoosterParams(**params).to_param_string()


class BufferSettings(BaseModel):
    """Sizes of the fixed scratch buffers used by introspection calls.

    Model text longer than ``model_save_buffer_size`` bytes is not copied
    at all, and only the first ``eval_buffer_size`` metric values are kept.
    The defaults are also the smallest sizes accepted for those two buffers.
    """

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_save_buffer_size: int = MODEL_SAVE_BUFFER_SIZE
    eval_buffer_size: int = EVAL_RESULTS_BUFFER_SIZE
    feature_name_buffer_size: int = FEATURE_NAME_BUFFER_SIZE

    @field_validator("model_save_buffer_size")
    @classmethod
    def validate_model_save_buffer_size(cls, v: int) -> int:
        """Validate the model text buffer is at least 10 MiB."""
        if v < MODEL_SAVE_BUFFER_SIZE:
            raise ValueError(f"model_save_buffer_size must be at least {MODEL_SAVE_BUFFER_SIZE}")
        return v

    @field_validator("eval_buffer_size")
    @classmethod
    def validate_eval_buffer_size(cls, v: int) -> int:
        """Validate the metric buffer holds at least 1024 values."""
        if v < EVAL_RESULTS_BUFFER_SIZE:
            raise ValueError(f"eval_buffer_size must be at least {EVAL_RESULTS_BUFFER_SIZE}")
        return v

    @field_validator("feature_name_buffer_size")
    @classmethod
    def validate_feature_name_buffer_size(cls, v: int) -> int:
        """Validate the feature name buffer is positive."""
        if v <= 0:
            raise ValueError("feature_name_buffer_size must be positive")
        return v

    @classmethod
    def from_env(cls) -> BufferSettings:
        """Read overrides from ``LGBM4PY_*_BUFFER_SIZE`` environment variables."""
        overrides: dict[str, Any] = {}
        for field, env in (
            ("model_save_buffer_size", "LGBM4PY_MODEL_SAVE_BUFFER_SIZE"),
            ("eval_buffer_size", "LGBM4PY_EVAL_BUFFER_SIZE"),
            ("feature_name_buffer_size", "LGBM4PY_FEATURE_NAME_BUFFER_SIZE"),
        ):
            if env in os.environ:
                overrides[field] = os.environ[env]
        return cls(**overrides)
