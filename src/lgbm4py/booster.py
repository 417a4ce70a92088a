"""The LightGBM booster handle.

`Booster` owns exactly one native ``BoosterHandle``. It is created through
one of three factories and released exactly once by `Booster.close` (or by
leaving a ``with`` block). Every method that reaches native code allocates
its temporary buffers inside a single ``ExitStack`` so they are freed before
the method returns, whether it succeeds or raises `NativeCallError`.

Example:
    >>> with Booster.create_from_modelfile("model.txt") as booster:  # doctest: +SKIP
    ...     booster.predict_for_mat(x, rows=2, cols=3)
"""

from __future__ import annotations

import ctypes
import logging
import os
from collections.abc import Callable
from contextlib import ExitStack
from types import TracebackType
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from lgbm4py.buffers import (
    MatrixInput,
    NativeBuffer,
    StringArrayBuffer,
    copy_out,
    input_buffer,
    output_capacity,
)
from lgbm4py.config import BufferSettings, ParamsInput, params_to_string
from lgbm4py.errors import check_call
from lgbm4py.library import NativeAPI, get_api
from lgbm4py.types import FeatureImportanceType, PredictionType

if TYPE_CHECKING:
    from lgbm4py.dataset import Dataset

_log = logging.getLogger(__name__)

__all__: list[str] = [
    "Booster",
]


class Booster:
    """Owner of one native LightGBM booster.

    Do not call the constructor directly; use `create`,
    `create_from_modelfile` or `load_model_from_string`.

    Not thread-safe: calls on one booster must be serialized by the caller.
    `predict_for_mat_single_row` additionally reuses a predictor cached
    inside the native booster between calls.
    """

    def __init__(
        self,
        api: NativeAPI,
        handle: int | None,
        iterations: int,
        settings: BufferSettings | None = None,
    ) -> None:
        self._api = api
        self._handle: ctypes.c_void_p | None = ctypes.c_void_p(handle)
        self._iterations = iterations
        self._settings = settings or BufferSettings.from_env()
        _log.debug("Acquired booster handle %s (iterations=%d)", handle, iterations)

    # =========================================================================
    # Factories
    # =========================================================================

    @classmethod
    def create_from_modelfile(
        cls,
        filename: str | os.PathLike[str],
        *,
        api: NativeAPI | None = None,
        settings: BufferSettings | None = None,
    ) -> Booster:
        """Load a booster from a model file written by LightGBM.

        Raises:
            NativeCallError: If the native library cannot read the model.
        """
        api = api or get_api()
        return cls._load(
            api,
            api.booster_create_from_modelfile,
            os.fspath(filename),
            settings,
            "LGBM_BoosterCreateFromModelfile",
        )

    @classmethod
    def load_model_from_string(
        cls,
        model_str: str,
        *,
        api: NativeAPI | None = None,
        settings: BufferSettings | None = None,
    ) -> Booster:
        """Load a booster from model text, e.g. from `save_model_to_string`.

        Raises:
            NativeCallError: If the native library cannot parse the model.
        """
        api = api or get_api()
        return cls._load(
            api,
            api.booster_load_model_from_string,
            model_str,
            settings,
            "LGBM_BoosterLoadModelFromString",
        )

    @classmethod
    def _load(
        cls,
        api: NativeAPI,
        entry: Callable[..., int],
        source: str,
        settings: BufferSettings | None,
        function: str,
    ) -> Booster:
        with ExitStack() as stack:
            out_iterations = stack.enter_context(NativeBuffer(api, ctypes.c_int, 1))
            out_handle = stack.enter_context(NativeBuffer(api, ctypes.c_void_p, 1))
            status = entry(source, out_iterations.data, out_handle.data)
            check_call(api, status, function)
            return cls(api, out_handle.value, out_iterations.value, settings)

    @classmethod
    def create(
        cls,
        dataset: Dataset,
        params: ParamsInput = None,
        *,
        api: NativeAPI | None = None,
        settings: BufferSettings | None = None,
    ) -> Booster:
        """Create an untrained booster for ``dataset``.

        Args:
            dataset: Training data. It is borrowed, not owned.
            params: `BoosterParams`, a mapping, or a ``key=value`` string.

        Raises:
            NativeCallError: If the native library rejects the parameters.
        """
        api = api or get_api()
        with NativeBuffer(api, ctypes.c_void_p, 1) as out_handle:
            status = api.booster_create(dataset.handle, params_to_string(params), out_handle.data)
            check_call(api, status, "LGBM_BoosterCreate")
            return cls(api, out_handle.value, 0, settings)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def handle(self) -> ctypes.c_void_p:
        """Borrowed native handle, valid until `close`."""
        if self._handle is None:
            raise ValueError("Booster has been released")
        return self._handle

    @property
    def is_released(self) -> bool:
        return self._handle is None

    @property
    def iterations(self) -> int:
        """Boosting rounds known to this wrapper; bounds prediction depth."""
        return self._iterations

    @property
    def api(self) -> NativeAPI:
        return self._api

    def close(self) -> None:
        """Free the native booster.

        The handle is invalidated before the native call, so a second
        ``close()`` never frees the same memory twice.

        Raises:
            NativeCallError: If the native free call fails.
        """
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        _log.debug("Releasing booster handle %s", handle.value)
        check_call(self._api, self._api.booster_free(handle), "LGBM_BoosterFree")

    def __enter__(self) -> Booster:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "released" if self._handle is None else f"iterations={self._iterations}"
        return f"Booster({state})"

    # =========================================================================
    # Training
    # =========================================================================

    def update_one_iter(self) -> bool:
        """Run one boosting round.

        The iteration counter is advanced even when the native call fails.

        Returns:
            True if no further splits were possible and training is finished.

        Raises:
            NativeCallError: If the native update fails.
        """
        with NativeBuffer(self._api, ctypes.c_int, 1) as is_finished:
            status = self._api.booster_update_one_iter(self.handle, is_finished.data)
            self._iterations += 1
            check_call(self._api, status, "LGBM_BoosterUpdateOneIter")
            return is_finished.value == 1

    def add_valid_data(self, dataset: Dataset) -> None:
        """Register a validation set; it gets eval index ``1 + number already added``."""
        status = self._api.booster_add_valid_data(self.handle, dataset.handle)
        check_call(self._api, status, "LGBM_BoosterAddValidData")

    def current_iteration(self) -> int:
        """Iteration count as reported by the native booster."""
        with NativeBuffer(self._api, ctypes.c_int, 1) as out:
            status = self._api.booster_get_current_iteration(self.handle, out.data)
            check_call(self._api, status, "LGBM_BoosterGetCurrentIteration")
            return int(out.value)

    # =========================================================================
    # Prediction
    # =========================================================================

    def predict_for_mat(
        self,
        data: MatrixInput,
        rows: int,
        cols: int,
        is_row_major: bool = True,
        prediction_type: PredictionType = PredictionType.NORMAL,
    ) -> NDArray[np.float64]:
        """Predict for a flattened ``rows x cols`` matrix.

        ``data`` must hold exactly ``rows * cols`` values. float32 input is
        passed to the native library as float32 and float64 as float64.

        Returns:
            The values reported by the native call, as float64.

        Raises:
            NativeCallError: If the native prediction fails.
        """
        capacity = output_capacity(rows, cols, prediction_type, self._iterations)
        with ExitStack() as stack:
            matrix = stack.enter_context(input_buffer(self._api, data))
            out_len = stack.enter_context(NativeBuffer(self._api, ctypes.c_int64, 1))
            out_result = stack.enter_context(NativeBuffer(self._api, ctypes.c_double, capacity))
            status = self._api.booster_predict_for_mat(
                self.handle,
                matrix.data,
                int(matrix.dtype),
                rows,
                cols,
                1 if is_row_major else 0,
                prediction_type.code,
                0,
                self._iterations,
                "",
                out_len.data,
                out_result.data,
            )
            check_call(self._api, status, "LGBM_BoosterPredictForMat")
            return copy_out(out_result, out_len.value)

    def predict_for_mat_single_row(
        self,
        data: MatrixInput,
        prediction_type: PredictionType = PredictionType.NORMAL,
    ) -> float:
        """Predict one row, reusing the native predictor from the previous call.

        Returns:
            The first value of the result; for `PredictionType.NORMAL` and
            `PredictionType.RAW_SCORE` on single-output models the only one.

        Raises:
            NativeCallError: If the native prediction fails.
            ValueError: If native code returns no values, as
                `PredictionType.LEAF_INDEX` does on a booster without trees.
        """
        with ExitStack() as stack:
            row = stack.enter_context(input_buffer(self._api, data))
            capacity = output_capacity(1, row.length, prediction_type, self._iterations)
            out_len = stack.enter_context(NativeBuffer(self._api, ctypes.c_int64, 1))
            out_result = stack.enter_context(NativeBuffer(self._api, ctypes.c_double, capacity))
            status = self._api.booster_predict_for_mat_single_row(
                self.handle,
                row.data,
                int(row.dtype),
                row.length,
                1,
                prediction_type.code,
                0,
                self._iterations,
                "",
                out_len.data,
                out_result.data,
            )
            check_call(self._api, status, "LGBM_BoosterPredictForMatSingleRow")
            if out_len.value == 0:
                raise ValueError(f"Single-row {prediction_type.value} prediction returned no values")
            values = copy_out(out_result, out_len.value)
        return float(values[0])

    def predict(
        self,
        data: NDArray[np.float32] | NDArray[np.float64],
        prediction_type: PredictionType = PredictionType.NORMAL,
    ) -> NDArray[np.float64]:
        """Predict for a 2-D array without flattening it by hand.

        Fortran-ordered arrays are passed column-major, so they are not
        copied into row-major order first.

        Returns:
            1-D array with one value per row for single-output predictions,
            otherwise an array of shape ``(n_rows, values_per_row)``.
        """
        arr = np.asarray(data)
        if arr.ndim != 2:
            raise ValueError(f"data must be 2D array, got {arr.ndim}D")
        rows, cols = arr.shape
        is_row_major = not (arr.flags.f_contiguous and not arr.flags.c_contiguous)
        flat = np.ravel(arr, order="C" if is_row_major else "F")
        result = self.predict_for_mat(flat, rows, cols, is_row_major, prediction_type)
        if rows == 0 or result.size == rows:
            return result
        return result.reshape(rows, -1)

    # =========================================================================
    # Introspection and persistence
    # =========================================================================

    def save_model_to_string(
        self,
        start_iteration: int = 0,
        num_iteration: int = -1,
        importance_type: FeatureImportanceType = FeatureImportanceType.SPLIT,
    ) -> str:
        """Serialize the model to LightGBM's text format.

        Args:
            start_iteration: First iteration to include.
            num_iteration: Iterations to include; ``<= 0`` means all remaining.
            importance_type: Importance written into the model text.

        The text is written into a scratch buffer of
        ``BufferSettings.model_save_buffer_size`` bytes. The native library
        copies nothing when the model does not fit, so a longer model comes
        back as the empty string and a warning is logged.

        Returns:
            The model text, or ``""`` if it exceeds the save buffer.
        """
        size = self._settings.model_save_buffer_size
        with ExitStack() as stack:
            out_len = stack.enter_context(NativeBuffer(self._api, ctypes.c_int64, 1))
            out_str = stack.enter_context(NativeBuffer(self._api, ctypes.c_char, size))
            status = self._api.booster_save_model_to_string(
                self.handle,
                start_iteration,
                num_iteration,
                importance_type.code,
                size,
                out_len.data,
                out_str.data,
            )
            check_call(self._api, status, "LGBM_BoosterSaveModelToString")
            if out_len.value > size:
                _log.warning(
                    "Model text needs %d bytes but the save buffer holds %d; no text is available",
                    out_len.value,
                    size,
                )
                return ""
            return out_str.data.value.decode("utf-8")

    def save_model(
        self,
        filename: str | os.PathLike[str],
        start_iteration: int = 0,
        num_iteration: int = -1,
        importance_type: FeatureImportanceType = FeatureImportanceType.SPLIT,
    ) -> None:
        """Write the model text to ``filename``; arguments as in `save_model_to_string`."""
        status = self._api.booster_save_model(
            self.handle, start_iteration, num_iteration, importance_type.code, os.fspath(filename)
        )
        check_call(self._api, status, "LGBM_BoosterSaveModel")

    def get_num_feature(self) -> int:
        """Number of features the model was trained on."""
        with NativeBuffer(self._api, ctypes.c_int, 1) as out:
            status = self._api.booster_get_num_feature(self.handle, out.data)
            check_call(self._api, status, "LGBM_BoosterGetNumFeature")
            return int(out.value)

    def get_feature_names(self) -> list[str]:
        """Feature names in column order."""
        count = self.get_num_feature()
        return self._read_strings(self._api.booster_get_feature_names, count, "LGBM_BoosterGetFeatureNames")

    def get_eval_names(self) -> list[str]:
        """Names of the evaluation metrics, in the order `get_eval` returns them."""
        with NativeBuffer(self._api, ctypes.c_int, 1) as out:
            status = self._api.booster_get_eval_counts(self.handle, out.data)
            check_call(self._api, status, "LGBM_BoosterGetEvalCounts")
            count = int(out.value)
        return self._read_strings(self._api.booster_get_eval_names, count, "LGBM_BoosterGetEvalNames")

    def _read_strings(self, entry: Callable[..., int], count: int, function: str) -> list[str]:
        width = self._settings.feature_name_buffer_size
        # The first call reports the buffer width actually needed; retry once with it.
        for _ in range(2):
            with ExitStack() as stack:
                out_len = stack.enter_context(NativeBuffer(self._api, ctypes.c_int, 1))
                out_buffer_len = stack.enter_context(NativeBuffer(self._api, ctypes.c_size_t, 1))
                strings = stack.enter_context(StringArrayBuffer(self._api, count, width))
                status = entry(self.handle, count, out_len.data, width, out_buffer_len.data, strings.pointers)
                check_call(self._api, status, function)
                required = int(out_buffer_len.value)
                if required <= width:
                    return strings.values(out_len.value)
            width = required
        raise RuntimeError(f"{function} kept requesting larger string buffers")

    def feature_importance(
        self,
        num_iteration: int = 0,
        importance_type: FeatureImportanceType = FeatureImportanceType.SPLIT,
    ) -> NDArray[np.float64]:
        """Importance of every feature.

        Args:
            num_iteration: Iterations to account for; ``<= 0`` means all.
            importance_type: Split counts or total gain.

        Returns:
            Array of length `get_num_feature`.
        """
        num_features = self.get_num_feature()
        with NativeBuffer(self._api, ctypes.c_double, num_features) as out:
            status = self._api.booster_feature_importance(
                self.handle, num_iteration, importance_type.code, out.data
            )
            check_call(self._api, status, "LGBM_BoosterFeatureImportance")
            return copy_out(out, num_features)

    def get_eval(self, data_idx: int) -> NDArray[np.float64]:
        """Current metric values for one dataset.

        Args:
            data_idx: 0 for the training data, ``i`` for the i-th validation
                set added with `add_valid_data`.
        """
        size = self._settings.eval_buffer_size
        with ExitStack() as stack:
            out_len = stack.enter_context(NativeBuffer(self._api, ctypes.c_int, 1))
            out_results = stack.enter_context(NativeBuffer(self._api, ctypes.c_double, size))
            status = self._api.booster_get_eval(self.handle, data_idx, out_len.data, out_results.data)
            check_call(self._api, status, "LGBM_BoosterGetEval")
            return copy_out(out_results, min(out_len.value, size))
