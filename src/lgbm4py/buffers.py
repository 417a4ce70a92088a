"""Marshalling between NumPy arrays and short-lived native buffers.

Every buffer here is a context manager: entering it does nothing, leaving
it hands the memory back to the `NativeAPI` it came from. Booster methods
stack them in a ``contextlib.ExitStack`` so the release happens exactly
once on both the success and the failure path.
"""

from __future__ import annotations

import ctypes
from collections.abc import Sequence
from types import TracebackType
from typing import TYPE_CHECKING, Any

import numpy as np
from numpy.typing import NDArray

from lgbm4py.types import DType, PredictionType

if TYPE_CHECKING:
    from lgbm4py.library import NativeAPI

__all__: list[str] = [
    "NativeBuffer",
    "StringArrayBuffer",
    "copy_out",
    "input_buffer",
    "output_capacity",
]

_FLOAT_TYPES: dict[np.dtype[Any], tuple[type[Any], DType]] = {
    np.dtype(np.float32): (ctypes.c_float, DType.FLOAT32),
    np.dtype(np.float64): (ctypes.c_double, DType.FLOAT64),
}

MatrixInput = NDArray[np.float32] | NDArray[np.float64] | Sequence[float]


class NativeBuffer:
    """One native array owned by a single call.

    Args:
        api: Allocator the memory comes from and goes back to.
        ctype: Element type, e.g. ``ctypes.c_double``.
        length: Number of elements.
        dtype: Native type tag for data buffers passed with a ``data_type``
            argument; ``None`` for out-parameters.
    """

    def __init__(self, api: NativeAPI, ctype: type[Any], length: int, dtype: DType | None = None) -> None:
        self._api = api
        self._data: ctypes.Array[Any] | None = api.new_array(ctype, length)
        self.length = length
        self.dtype = dtype

    @property
    def data(self) -> ctypes.Array[Any]:
        """The underlying ctypes array."""
        if self._data is None:
            raise ValueError("native buffer has already been released")
        return self._data

    @property
    def value(self) -> Any:
        """First element, for single-value out-parameters."""
        return self.data[0]

    def release(self) -> None:
        """Free the native memory. Calling it again does nothing."""
        if self._data is not None:
            data, self._data = self._data, None
            self._api.free_array(data)

    def __enter__(self) -> NativeBuffer:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


class StringArrayBuffer:
    """``count`` fixed-width native string buffers plus the ``char**`` to them."""

    def __init__(self, api: NativeAPI, count: int, width: int) -> None:
        self._api = api
        self.count = count
        self.width = width
        self._strings: list[ctypes.Array[Any]] = []
        self._pointers: ctypes.Array[Any] | None = None
        try:
            for _ in range(count):
                self._strings.append(api.new_array(ctypes.c_char, width))
            self._pointers = api.new_array(ctypes.c_char_p, count)
        except BaseException:
            self.release()
            raise
        for i, buf in enumerate(self._strings):
            self._pointers[i] = ctypes.addressof(buf)

    @property
    def pointers(self) -> ctypes.Array[Any]:
        """The ``char**`` handed to the native call."""
        if self._pointers is None:
            raise ValueError("native string array has already been released")
        return self._pointers

    def values(self, length: int | None = None) -> list[str]:
        """Decode the first ``length`` strings (all of them by default)."""
        n = self.count if length is None else min(length, self.count)
        return [self._strings[i].value.decode("utf-8") for i in range(n)]

    def release(self) -> None:
        if self._pointers is not None:
            pointers, self._pointers = self._pointers, None
            self._api.free_array(pointers)
        while self._strings:
            self._api.free_array(self._strings.pop())

    def __enter__(self) -> StringArrayBuffer:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


def _as_float_array(values: MatrixInput) -> NDArray[np.floating[Any]]:
    """Return a 1-D view of ``values`` keeping its floating-point width."""
    if isinstance(values, np.ndarray):
        if values.dtype not in _FLOAT_TYPES:
            raise TypeError(f"input must be a float32 or float64 array, got {values.dtype}")
        # order="K" keeps the memory layout, so no copy for contiguous input
        return np.ravel(values, order="K")
    try:
        return np.asarray(values, dtype=np.float64).ravel()
    except (ValueError, TypeError) as e:
        type_name = type(values).__name__
        raise TypeError(f"Cannot convert {type_name} to a numeric input buffer") from e


def input_buffer(api: NativeAPI, values: MatrixInput) -> NativeBuffer:
    """Copy ``values`` into a new native buffer of the same element width.

    float32 arrays become ``C_API_DTYPE_FLOAT32`` buffers and float64 arrays
    ``C_API_DTYPE_FLOAT64``; plain Python sequences are read as float64.
    """
    arr = np.ascontiguousarray(_as_float_array(values))
    ctype, dtype = _FLOAT_TYPES[arr.dtype]
    buf = NativeBuffer(api, ctype, arr.size, dtype)
    if arr.size:
        ctypes.memmove(buf.data, arr.ctypes.data, arr.nbytes)
    return buf


def output_capacity(rows: int, cols: int, prediction_type: PredictionType, iterations: int) -> int:
    """Number of doubles to reserve for a prediction result.

    Matches the sizing rules documented for ``LGBM_BoosterPredictForMat``:
    two values per row, times ``cols + 1`` for contributions or times the
    number of iterations for leaf indices.
    """
    base = 2 * rows
    if prediction_type is PredictionType.CONTRIB:
        return base * (cols + 1)
    if prediction_type is PredictionType.LEAF_INDEX:
        return base * iterations
    return base


def copy_out(buffer: NativeBuffer, length: int) -> NDArray[np.float64]:
    """Copy the first ``length`` doubles of ``buffer`` into a new array."""
    if length > buffer.length:
        raise ValueError(f"native call reported {length} values but only {buffer.length} were reserved")
    result = np.empty(length, dtype=np.float64)
    if length:
        ctypes.memmove(result.ctypes.data, buffer.data, length * result.itemsize)
    return result
