"""Loading of the LightGBM shared library and its C entry points.

`NativeAPI` is the only place that touches ``ctypes.CDLL`` functions. Every
method forwards to exactly one ``LGBM_*`` function and returns its raw
status code, so the rest of the package can be exercised against a test
double that overrides these methods.

Short-lived native memory (input matrices, out-parameters, result arrays,
string scratch space) is handed out by `NativeAPI.new_array` and returned
through `NativeAPI.free_array`. The counters kept there make leaks visible.
"""

from __future__ import annotations

import ctypes
import importlib.util
import logging
import os
import sys
import threading
from pathlib import Path
from typing import Any

from lgbm4py.errors import LibraryNotFoundError, NativeLibraryError

_log = logging.getLogger(__name__)

__all__: list[str] = [
    "LIB_PATH_ENV",
    "NativeAPI",
    "find_lib_path",
    "get_api",
    "is_native_loaded",
    "load_library",
]

LIB_PATH_ENV = "LGBM4PY_LIB_PATH"

_c_int_p = ctypes.POINTER(ctypes.c_int)
_c_int32_p = ctypes.POINTER(ctypes.c_int32)
_c_int64_p = ctypes.POINTER(ctypes.c_int64)
_c_size_t_p = ctypes.POINTER(ctypes.c_size_t)
_c_double_p = ctypes.POINTER(ctypes.c_double)
_c_char_p_p = ctypes.POINTER(ctypes.c_char_p)
_c_void_p_p = ctypes.POINTER(ctypes.c_void_p)

# name -> (restype, argtypes)
_SIGNATURES: dict[str, tuple[Any, list[Any]]] = {
    "LGBM_GetLastError": (ctypes.c_char_p, []),
    "LGBM_BoosterCreate": (ctypes.c_int, [ctypes.c_void_p, ctypes.c_char_p, _c_void_p_p]),
    "LGBM_BoosterCreateFromModelfile": (ctypes.c_int, [ctypes.c_char_p, _c_int_p, _c_void_p_p]),
    "LGBM_BoosterLoadModelFromString": (ctypes.c_int, [ctypes.c_char_p, _c_int_p, _c_void_p_p]),
    "LGBM_BoosterFree": (ctypes.c_int, [ctypes.c_void_p]),
    "LGBM_BoosterAddValidData": (ctypes.c_int, [ctypes.c_void_p, ctypes.c_void_p]),
    "LGBM_BoosterUpdateOneIter": (ctypes.c_int, [ctypes.c_void_p, _c_int_p]),
    "LGBM_BoosterGetCurrentIteration": (ctypes.c_int, [ctypes.c_void_p, _c_int_p]),
    "LGBM_BoosterGetNumFeature": (ctypes.c_int, [ctypes.c_void_p, _c_int_p]),
    "LGBM_BoosterGetFeatureNames": (
        ctypes.c_int,
        [ctypes.c_void_p, ctypes.c_int, _c_int_p, ctypes.c_size_t, _c_size_t_p, _c_char_p_p],
    ),
    "LGBM_BoosterGetEvalCounts": (ctypes.c_int, [ctypes.c_void_p, _c_int_p]),
    "LGBM_BoosterGetEvalNames": (
        ctypes.c_int,
        [ctypes.c_void_p, ctypes.c_int, _c_int_p, ctypes.c_size_t, _c_size_t_p, _c_char_p_p],
    ),
    "LGBM_BoosterGetEval": (ctypes.c_int, [ctypes.c_void_p, ctypes.c_int, _c_int_p, _c_double_p]),
    "LGBM_BoosterFeatureImportance": (ctypes.c_int, [ctypes.c_void_p, ctypes.c_int, ctypes.c_int, _c_double_p]),
    "LGBM_BoosterPredictForMat": (
        ctypes.c_int,
        [
            ctypes.c_void_p,  # handle
            ctypes.c_void_p,  # data
            ctypes.c_int,  # data_type
            ctypes.c_int32,  # nrow
            ctypes.c_int32,  # ncol
            ctypes.c_int,  # is_row_major
            ctypes.c_int,  # predict_type
            ctypes.c_int,  # start_iteration
            ctypes.c_int,  # num_iteration
            ctypes.c_char_p,  # parameter
            _c_int64_p,  # out_len
            _c_double_p,  # out_result
        ],
    ),
    "LGBM_BoosterPredictForMatSingleRow": (
        ctypes.c_int,
        [
            ctypes.c_void_p,
            ctypes.c_void_p,
            ctypes.c_int,
            ctypes.c_int,  # ncol
            ctypes.c_int,
            ctypes.c_int,
            ctypes.c_int,
            ctypes.c_int,
            ctypes.c_char_p,
            _c_int64_p,
            _c_double_p,
        ],
    ),
    "LGBM_BoosterSaveModel": (
        ctypes.c_int,
        [ctypes.c_void_p, ctypes.c_int, ctypes.c_int, ctypes.c_int, ctypes.c_char_p],
    ),
    "LGBM_BoosterSaveModelToString": (
        ctypes.c_int,
        [ctypes.c_void_p, ctypes.c_int, ctypes.c_int, ctypes.c_int, ctypes.c_int64, _c_int64_p, ctypes.c_void_p],
    ),
    "LGBM_DatasetCreateFromMat": (
        ctypes.c_int,
        [
            ctypes.c_void_p,
            ctypes.c_int,
            ctypes.c_int32,
            ctypes.c_int32,
            ctypes.c_int,
            ctypes.c_char_p,
            ctypes.c_void_p,  # reference
            _c_void_p_p,
        ],
    ),
    "LGBM_DatasetSetField": (
        ctypes.c_int,
        [ctypes.c_void_p, ctypes.c_char_p, ctypes.c_void_p, ctypes.c_int, ctypes.c_int],
    ),
    "LGBM_DatasetSetFeatureNames": (ctypes.c_int, [ctypes.c_void_p, _c_char_p_p, ctypes.c_int]),
    "LGBM_DatasetGetNumData": (ctypes.c_int, [ctypes.c_void_p, _c_int32_p]),
    "LGBM_DatasetGetNumFeature": (ctypes.c_int, [ctypes.c_void_p, _c_int32_p]),
    "LGBM_DatasetFree": (ctypes.c_int, [ctypes.c_void_p]),
}


def _c_str(value: str) -> bytes:
    return value.encode("utf-8")


class NativeAPI:
    """Typed facade over the LightGBM C API.

    Args:
        lib: The loaded shared library. ``None`` is only meaningful for
            subclasses that replace every entry point.
        path: Where ``lib`` was loaded from, for diagnostics.
    """

    def __init__(self, lib: ctypes.CDLL | None, path: Path | None = None) -> None:
        self._lib = lib
        self.path = path
        self.allocated = 0
        self.released = 0
        if lib is not None:
            _declare_signatures(lib)

    # ------------------------------------------------------------------
    # Native memory
    # ------------------------------------------------------------------

    def new_array(self, ctype: type[Any], length: int) -> ctypes.Array[Any]:
        """Allocate a zeroed native array of ``length`` elements."""
        self.allocated += 1
        return (ctype * length)()

    def free_array(self, array: ctypes.Array[Any]) -> None:
        """Return an array obtained from `new_array`."""
        self.released += 1

    @property
    def outstanding(self) -> int:
        """Arrays allocated but not yet freed."""
        return self.allocated - self.released

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def get_last_error(self) -> str:
        raw = self._lib.LGBM_GetLastError()
        return raw.decode("utf-8", errors="replace") if raw else ""

    # ------------------------------------------------------------------
    # Booster
    # ------------------------------------------------------------------

    def booster_create(self, train_data: ctypes.c_void_p, parameters: str, out: ctypes.Array[Any]) -> int:
        return self._lib.LGBM_BoosterCreate(train_data, _c_str(parameters), out)

    def booster_create_from_modelfile(
        self, filename: str, out_num_iterations: ctypes.Array[Any], out: ctypes.Array[Any]
    ) -> int:
        return self._lib.LGBM_BoosterCreateFromModelfile(_c_str(filename), out_num_iterations, out)

    def booster_load_model_from_string(
        self, model_str: str, out_num_iterations: ctypes.Array[Any], out: ctypes.Array[Any]
    ) -> int:
        return self._lib.LGBM_BoosterLoadModelFromString(_c_str(model_str), out_num_iterations, out)

    def booster_free(self, handle: ctypes.c_void_p) -> int:
        return self._lib.LGBM_BoosterFree(handle)

    def booster_add_valid_data(self, handle: ctypes.c_void_p, valid_data: ctypes.c_void_p) -> int:
        return self._lib.LGBM_BoosterAddValidData(handle, valid_data)

    def booster_update_one_iter(self, handle: ctypes.c_void_p, is_finished: ctypes.Array[Any]) -> int:
        return self._lib.LGBM_BoosterUpdateOneIter(handle, is_finished)

    def booster_get_current_iteration(self, handle: ctypes.c_void_p, out_iteration: ctypes.Array[Any]) -> int:
        return self._lib.LGBM_BoosterGetCurrentIteration(handle, out_iteration)

    def booster_get_num_feature(self, handle: ctypes.c_void_p, out_len: ctypes.Array[Any]) -> int:
        return self._lib.LGBM_BoosterGetNumFeature(handle, out_len)

    def booster_get_feature_names(
        self,
        handle: ctypes.c_void_p,
        length: int,
        out_len: ctypes.Array[Any],
        buffer_len: int,
        out_buffer_len: ctypes.Array[Any],
        out_strs: ctypes.Array[Any],
    ) -> int:
        return self._lib.LGBM_BoosterGetFeatureNames(handle, length, out_len, buffer_len, out_buffer_len, out_strs)

    def booster_get_eval_counts(self, handle: ctypes.c_void_p, out_len: ctypes.Array[Any]) -> int:
        return self._lib.LGBM_BoosterGetEvalCounts(handle, out_len)

    def booster_get_eval_names(
        self,
        handle: ctypes.c_void_p,
        length: int,
        out_len: ctypes.Array[Any],
        buffer_len: int,
        out_buffer_len: ctypes.Array[Any],
        out_strs: ctypes.Array[Any],
    ) -> int:
        return self._lib.LGBM_BoosterGetEvalNames(handle, length, out_len, buffer_len, out_buffer_len, out_strs)

    def booster_get_eval(
        self, handle: ctypes.c_void_p, data_idx: int, out_len: ctypes.Array[Any], out_results: ctypes.Array[Any]
    ) -> int:
        return self._lib.LGBM_BoosterGetEval(handle, data_idx, out_len, out_results)

    def booster_feature_importance(
        self, handle: ctypes.c_void_p, num_iteration: int, importance_type: int, out_results: ctypes.Array[Any]
    ) -> int:
        return self._lib.LGBM_BoosterFeatureImportance(handle, num_iteration, importance_type, out_results)

    def booster_predict_for_mat(
        self,
        handle: ctypes.c_void_p,
        data: ctypes.Array[Any],
        data_type: int,
        nrow: int,
        ncol: int,
        is_row_major: int,
        predict_type: int,
        start_iteration: int,
        num_iteration: int,
        parameter: str,
        out_len: ctypes.Array[Any],
        out_result: ctypes.Array[Any],
    ) -> int:
        return self._lib.LGBM_BoosterPredictForMat(
            handle,
            data,
            data_type,
            nrow,
            ncol,
            is_row_major,
            predict_type,
            start_iteration,
            num_iteration,
            _c_str(parameter),
            out_len,
            out_result,
        )

    def booster_predict_for_mat_single_row(
        self,
        handle: ctypes.c_void_p,
        data: ctypes.Array[Any],
        data_type: int,
        ncol: int,
        is_row_major: int,
        predict_type: int,
        start_iteration: int,
        num_iteration: int,
        parameter: str,
        out_len: ctypes.Array[Any],
        out_result: ctypes.Array[Any],
    ) -> int:
        return self._lib.LGBM_BoosterPredictForMatSingleRow(
            handle,
            data,
            data_type,
            ncol,
            is_row_major,
            predict_type,
            start_iteration,
            num_iteration,
            _c_str(parameter),
            out_len,
            out_result,
        )

    def booster_save_model(
        self,
        handle: ctypes.c_void_p,
        start_iteration: int,
        num_iteration: int,
        feature_importance_type: int,
        filename: str,
    ) -> int:
        return self._lib.LGBM_BoosterSaveModel(
            handle, start_iteration, num_iteration, feature_importance_type, _c_str(filename)
        )

    def booster_save_model_to_string(
        self,
        handle: ctypes.c_void_p,
        start_iteration: int,
        num_iteration: int,
        feature_importance_type: int,
        buffer_len: int,
        out_len: ctypes.Array[Any],
        out_str: ctypes.Array[Any],
    ) -> int:
        return self._lib.LGBM_BoosterSaveModelToString(
            handle, start_iteration, num_iteration, feature_importance_type, buffer_len, out_len, out_str
        )

    # ------------------------------------------------------------------
    # Dataset
    # ------------------------------------------------------------------

    def dataset_create_from_mat(
        self,
        data: ctypes.Array[Any],
        data_type: int,
        nrow: int,
        ncol: int,
        is_row_major: int,
        parameters: str,
        reference: ctypes.c_void_p | None,
        out: ctypes.Array[Any],
    ) -> int:
        return self._lib.LGBM_DatasetCreateFromMat(
            data, data_type, nrow, ncol, is_row_major, _c_str(parameters), reference, out
        )

    def dataset_set_field(
        self, handle: ctypes.c_void_p, field_name: str, field_data: ctypes.Array[Any], num_element: int, dtype: int
    ) -> int:
        return self._lib.LGBM_DatasetSetField(handle, _c_str(field_name), field_data, num_element, dtype)

    def dataset_set_feature_names(self, handle: ctypes.c_void_p, names: ctypes.Array[Any], num_names: int) -> int:
        return self._lib.LGBM_DatasetSetFeatureNames(handle, names, num_names)

    def dataset_get_num_data(self, handle: ctypes.c_void_p, out: ctypes.Array[Any]) -> int:
        return self._lib.LGBM_DatasetGetNumData(handle, out)

    def dataset_get_num_feature(self, handle: ctypes.c_void_p, out: ctypes.Array[Any]) -> int:
        return self._lib.LGBM_DatasetGetNumFeature(handle, out)

    def dataset_free(self, handle: ctypes.c_void_p) -> int:
        return self._lib.LGBM_DatasetFree(handle)


def _declare_signatures(lib: ctypes.CDLL) -> None:
    for name, (restype, argtypes) in _SIGNATURES.items():
        func = getattr(lib, name)
        func.restype = restype
        func.argtypes = argtypes


# =============================================================================
# Library discovery and loading
# =============================================================================


def _lib_filename() -> str:
    if sys.platform == "win32":
        return "lib_lightgbm.dll"
    if sys.platform == "darwin":
        return "lib_lightgbm.dylib"
    return "lib_lightgbm.so"


def find_lib_path(path: str | os.PathLike[str] | None = None) -> list[Path]:
    """List existing candidate paths for the LightGBM shared library.

    Order: the explicit ``path``, then ``$LGBM4PY_LIB_PATH``, then the copy
    bundled with the installed ``lightgbm`` distribution.
    """
    candidates: list[Path] = []
    if path is not None:
        candidates.append(Path(path))
    env_path = os.environ.get(LIB_PATH_ENV)
    if env_path:
        candidates.append(Path(env_path))

    # Locate without importing lightgbm itself, which would load the library too
    spec = importlib.util.find_spec("lightgbm")
    if spec is not None and spec.submodule_search_locations:
        pkg_dir = Path(next(iter(spec.submodule_search_locations)))
        filename = _lib_filename()
        candidates.extend([pkg_dir / "lib" / filename, pkg_dir / filename])

    return [p for p in candidates if p.is_file()]


_api: NativeAPI | None = None
_load_lock = threading.Lock()


def load_library(path: str | os.PathLike[str] | None = None) -> NativeAPI:
    """Load the LightGBM shared library once per process.

    Later calls return the already loaded `NativeAPI` and ignore ``path``.

    Raises:
        LibraryNotFoundError: If no candidate path exists.
        NativeLibraryError: If every candidate failed to load.
    """
    global _api  # noqa: PLW0603

    with _load_lock:
        if _api is not None:
            return _api

        lib_paths = find_lib_path(path)
        if not lib_paths:
            raise LibraryNotFoundError(
                f"Cannot find {_lib_filename()}. Install the `lightgbm` package or set ${LIB_PATH_ENV}."
            )

        errors: list[str] = []
        for lib_path in lib_paths:
            _log.info("Loading native library %s", lib_path)
            try:
                lib = ctypes.cdll.LoadLibrary(str(lib_path))
            except OSError as e:
                _log.debug("Cannot load %s: %s", lib_path, e)
                errors.append(f"{lib_path}: {e}")
                continue
            _api = NativeAPI(lib, lib_path)
            return _api

        raise NativeLibraryError(f"LightGBM library could not be loaded. Error message(s): {errors}")


def is_native_loaded() -> bool:
    """Whether `load_library` has completed successfully."""
    return _api is not None


def get_api() -> NativeAPI:
    """Return the process-wide `NativeAPI`, loading the library on first use."""
    api = _api
    if api is None:
        api = load_library()
    return api
