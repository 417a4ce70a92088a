"""lgbm4py - LightGBM boosters through the native C API.

This package owns native LightGBM booster and dataset handles, marshals
NumPy arrays into native buffers for training and prediction, and turns
negative native status codes into `NativeCallError`.

Example:
    >>> import numpy as np
    >>> import lgbm4py
    >>> X = np.random.rand(100, 3)
    >>> y = np.random.rand(100)
    >>> with lgbm4py.Dataset.from_mat(X, label=y) as train_set:  # doctest: +SKIP
    ...     with lgbm4py.train({"objective": "regression"}, train_set, 10) as booster:
    ...         preds = booster.predict(X)
"""

from lgbm4py.booster import Booster
from lgbm4py.buffers import output_capacity
from lgbm4py.config import BoosterParams, BufferSettings
from lgbm4py.dataset import Dataset
from lgbm4py.errors import LibraryNotFoundError, NativeCallError, NativeLibraryError
from lgbm4py.library import NativeAPI, get_api, is_native_loaded, load_library
from lgbm4py.training import CallbackEnv, EarlyStopException, EvalRecord, log_evaluation, train
from lgbm4py.types import DType, FeatureImportanceType, PredictionType

__all__ = [
    # Handles
    "Booster",
    "Dataset",
    # Training
    "CallbackEnv",
    "EarlyStopException",
    "EvalRecord",
    "log_evaluation",
    "train",
    # Configuration
    "BoosterParams",
    "BufferSettings",
    # Enums
    "DType",
    "FeatureImportanceType",
    "PredictionType",
    # Errors
    "LibraryNotFoundError",
    "NativeCallError",
    "NativeLibraryError",
    # Native library
    "NativeAPI",
    "get_api",
    "is_native_loaded",
    "load_library",
    "output_capacity",
]

__version__ = "0.1.0"
