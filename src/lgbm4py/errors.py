"""Exceptions raised by lgbm4py and the native status-code check."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lgbm4py.library import NativeAPI

_log = logging.getLogger(__name__)

__all__: list[str] = [
    "LibraryNotFoundError",
    "NativeCallError",
    "NativeLibraryError",
    "check_call",
]


class NativeCallError(RuntimeError):
    """A LightGBM C API call returned a negative status.

    The message is the diagnostic text reported by ``LGBM_GetLastError``
    right after the failing call.
    """

    def __init__(self, message: str, *, function: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.function = function
        self.status = status

    def __str__(self) -> str:
        if self.function is None:
            return self.message
        return f"{self.function} failed: {self.message}"


class NativeLibraryError(OSError):
    """The LightGBM shared library could not be loaded."""


class LibraryNotFoundError(NativeLibraryError):
    """No candidate path for the LightGBM shared library exists."""


def check_call(api: NativeAPI, status: int, function: str) -> None:
    """Raise `NativeCallError` when ``status`` signals a failure.

    The native error text is read immediately, before the caller gets a
    chance to run cleanup code that might call into the library again.
    """
    if status < 0:
        message = api.get_last_error()
        _log.debug("%s returned %d: %s", function, status, message)
        raise NativeCallError(message, function=function, status=status)
