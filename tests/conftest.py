"""Pytest configuration for lgbm4py tests.

Most tests run against `FakeNativeAPI`, a stand-in for the LightGBM shared
library that scripts native results and counts every native allocation and
release. Tests marked ``native`` use the real library and are skipped when
the ``lightgbm`` distribution is not installed.
"""

from __future__ import annotations

from collections.abc import Iterator

import numpy as np
import pytest
from fake_native import FakeNativeAPI

from lgbm4py import Booster, Dataset


def _check_lightgbm() -> bool:
    """Check if lightgbm (and its shared library) is available."""
    try:
        import lightgbm  # noqa: F401

        return True
    except ImportError:
        return False


# Cache availability check
_LIGHTGBM_AVAILABLE = _check_lightgbm()


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "native: tests that load the real LightGBM shared library")


def pytest_collection_modifyitems(
    config: pytest.Config,
    items: list[pytest.Item],
) -> None:
    """Skip native tests when lightgbm is not installed."""
    skip_native = pytest.mark.skip(reason="lightgbm not installed")

    for item in items:
        if "native" in item.keywords and not _LIGHTGBM_AVAILABLE:
            item.add_marker(skip_native)


@pytest.fixture(autouse=True)
def _default_buffer_sizes(monkeypatch: pytest.MonkeyPatch) -> None:
    """Boosters read buffer sizes from the environment; start from the defaults."""
    for env in (
        "LGBM4PY_MODEL_SAVE_BUFFER_SIZE",
        "LGBM4PY_EVAL_BUFFER_SIZE",
        "LGBM4PY_FEATURE_NAME_BUFFER_SIZE",
    ):
        monkeypatch.delenv(env, raising=False)


@pytest.fixture
def fake_api() -> FakeNativeAPI:
    """A fresh fake native library."""
    return FakeNativeAPI()


@pytest.fixture
def booster(fake_api: FakeNativeAPI) -> Iterator[Booster]:
    """A booster loaded from a fake model file with 7 iterations."""
    b = Booster.create_from_modelfile("model.txt", api=fake_api)
    yield b
    b.close()


@pytest.fixture
def dataset(fake_api: FakeNativeAPI) -> Iterator[Dataset]:
    """A fake native dataset with 10 rows and 3 features."""
    rng = np.random.default_rng(42)
    ds = Dataset.from_mat(rng.random((10, 3)), label=rng.random(10), api=fake_api)
    yield ds
    ds.close()
