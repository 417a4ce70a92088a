"""Native training data.

`Dataset` owns one native ``DatasetHandle``. A `Booster` only borrows it,
so a dataset must stay open for as long as boosters trained on it are
being updated or evaluated.
"""

from __future__ import annotations

import ctypes
import logging
from collections.abc import Sequence
from contextlib import ExitStack
from types import TracebackType
from typing import Any

import numpy as np
from numpy.typing import NDArray

from lgbm4py.buffers import NativeBuffer, StringArrayBuffer, input_buffer
from lgbm4py.config import ParamsInput, params_to_string
from lgbm4py.errors import check_call
from lgbm4py.library import NativeAPI, get_api
from lgbm4py.types import DType

_log = logging.getLogger(__name__)

__all__: list[str] = [
    "Dataset",
]


class Dataset:
    """Owner of one native LightGBM dataset.

    Build it with `from_mat`.

    Example:
        >>> X = np.random.rand(100, 3)
        >>> y = np.random.rand(100)
        >>> with Dataset.from_mat(X, label=y) as train:  # doctest: +SKIP
        ...     print(train.num_data, train.num_feature)
    """

    def __init__(self, api: NativeAPI, handle: int | None) -> None:
        self._api = api
        self._handle: ctypes.c_void_p | None = ctypes.c_void_p(handle)
        _log.debug("Acquired dataset handle %s", handle)

    @classmethod
    def from_mat(
        cls,
        data: NDArray[np.float32] | NDArray[np.float64] | Sequence[Sequence[float]],
        params: ParamsInput = None,
        *,
        label: Sequence[float] | NDArray[Any] | None = None,
        weight: Sequence[float] | NDArray[Any] | None = None,
        feature_names: Sequence[str] | None = None,
        reference: Dataset | None = None,
        api: NativeAPI | None = None,
    ) -> Dataset:
        """Bin a dense 2-D matrix into a native dataset.

        Args:
            data: Feature matrix of shape ``(n_samples, n_features)``.
            params: Dataset parameters (e.g. ``max_bin``).
            label: Optional target per sample.
            weight: Optional weight per sample.
            feature_names: Optional name per column.
            reference: Training dataset whose bin boundaries a validation
                set must share.

        Raises:
            ValueError: If shapes do not line up.
            NativeCallError: If the native library rejects the data.
        """
        arr = data if isinstance(data, np.ndarray) else np.asarray(data, dtype=np.float64)
        if arr.ndim != 2:
            raise ValueError(f"data must be 2D array, got {arr.ndim}D")
        rows, cols = arr.shape
        if feature_names is not None and len(feature_names) != cols:
            raise ValueError(f"feature_names has {len(feature_names)} entries, data has {cols} columns")

        api = api or get_api()
        with ExitStack() as stack:
            matrix = stack.enter_context(input_buffer(api, np.ascontiguousarray(arr)))
            out = stack.enter_context(NativeBuffer(api, ctypes.c_void_p, 1))
            status = api.dataset_create_from_mat(
                matrix.data,
                int(matrix.dtype),
                rows,
                cols,
                1,
                params_to_string(params),
                reference.handle if reference is not None else None,
                out.data,
            )
            check_call(api, status, "LGBM_DatasetCreateFromMat")
            dataset = cls(api, out.value)

        try:
            if label is not None:
                dataset.set_field("label", label)
            if weight is not None:
                dataset.set_field("weight", weight)
            if feature_names is not None:
                dataset.set_feature_names(feature_names)
        except BaseException:
            dataset.close()
            raise
        return dataset

    @property
    def handle(self) -> ctypes.c_void_p:
        """Borrowed native handle, valid until `close`."""
        if self._handle is None:
            raise ValueError("Dataset has been released")
        return self._handle

    @property
    def api(self) -> NativeAPI:
        return self._api

    def set_field(self, name: str, values: Sequence[float] | NDArray[Any]) -> None:
        """Set a per-sample float field such as ``label`` or ``weight``."""
        arr = np.asarray(values, dtype=np.float32).ravel()
        expected = self.num_data
        if arr.size != expected:
            raise ValueError(f"{name} shape mismatch: expected {expected} samples, got {arr.size}")
        with input_buffer(self._api, arr) as buf:
            status = self._api.dataset_set_field(self.handle, name, buf.data, arr.size, int(DType.FLOAT32))
            check_call(self._api, status, "LGBM_DatasetSetField")

    def set_feature_names(self, names: Sequence[str]) -> None:
        encoded = [name.encode("utf-8") for name in names]
        width = max((len(b) for b in encoded), default=0) + 1
        with StringArrayBuffer(self._api, len(encoded), width) as strings:
            for buf_ptr, value in zip(_addresses(strings), encoded, strict=True):
                ctypes.memmove(buf_ptr, value, len(value))
            status = self._api.dataset_set_feature_names(self.handle, strings.pointers, len(encoded))
            check_call(self._api, status, "LGBM_DatasetSetFeatureNames")

    @property
    def num_data(self) -> int:
        with NativeBuffer(self._api, ctypes.c_int32, 1) as out:
            check_call(self._api, self._api.dataset_get_num_data(self.handle, out.data), "LGBM_DatasetGetNumData")
            return int(out.value)

    @property
    def num_feature(self) -> int:
        with NativeBuffer(self._api, ctypes.c_int32, 1) as out:
            status = self._api.dataset_get_num_feature(self.handle, out.data)
            check_call(self._api, status, "LGBM_DatasetGetNumFeature")
            return int(out.value)

    def close(self) -> None:
        """Free the native dataset. A second call does nothing."""
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        _log.debug("Releasing dataset handle %s", handle.value)
        check_call(self._api, self._api.dataset_free(handle), "LGBM_DatasetFree")

    def __enter__(self) -> Dataset:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        if self._handle is None:
            return "Dataset(released)"
        return f"Dataset(num_data={self.num_data}, num_feature={self.num_feature})"


def _addresses(strings: StringArrayBuffer) -> list[int]:
    pointers = ctypes.cast(strings.pointers, ctypes.POINTER(ctypes.c_void_p))
    return [pointers[i] for i in range(strings.count)]
