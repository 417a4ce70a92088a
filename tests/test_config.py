"""Tests for parameter and buffer configuration."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from lgbm4py import BoosterParams, BufferSettings
from lgbm4py.config import params_to_string


class TestBoosterParams:
    """Tests for BoosterParams validation and rendering."""

    def test_unset_fields_are_omitted(self) -> None:
        """Only explicitly set values reach the native string."""
        assert BoosterParams().to_param_string() == ""
        assert BoosterParams(objective="regression").to_param_string() == "objective=regression"

    def test_value_formatting(self) -> None:
        """Lists are comma-joined and booleans lower-cased."""
        params = BoosterParams(metric=["l2", "l1"], learning_rate=0.1, force_col_wise=True)
        assert params.to_param_string() == "learning_rate=0.1 metric=l2,l1 force_col_wise=true"

    def test_extra_parameters_pass_through(self) -> None:
        """Unknown LightGBM parameters are forwarded verbatim."""
        assert BoosterParams(max_bin=63).to_param_string() == "max_bin=63"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"learning_rate": 0.0},
            {"learning_rate": -0.1},
            {"num_leaves": 1},
            {"feature_fraction": 0.0},
            {"bagging_fraction": 1.5},
        ],
    )
    def test_invalid_values(self, kwargs: dict) -> None:
        """Out-of-range values are rejected."""
        with pytest.raises(ValidationError):
            BoosterParams(**kwargs)

    def test_frozen(self) -> None:
        """Parameters cannot be mutated after construction."""
        params = BoosterParams(objective="regression")
        with pytest.raises(ValidationError):
            params.objective = "binary"


class TestParamsToString:
    """Tests for normalizing the accepted parameter forms."""

    def test_none(self) -> None:
        """No parameters render as the empty string."""
        assert params_to_string(None) == ""

    def test_string_passthrough(self) -> None:
        """Strings are forwarded untouched."""
        assert params_to_string("objective=regression  verbose=-1") == "objective=regression  verbose=-1"

    def test_mapping(self) -> None:
        """Mappings are validated through BoosterParams."""
        assert params_to_string({"objective": "binary", "seed": 1}) == "objective=binary seed=1"

    def test_mapping_validated(self) -> None:
        """Invalid mapping values raise."""
        with pytest.raises(ValidationError):
            params_to_string({"num_leaves": 0})


class TestBufferSettings:
    """Tests for scratch buffer sizes."""

    def test_defaults(self) -> None:
        """Defaults match the sizes LightGBM's own wrappers use."""
        settings = BufferSettings()
        assert settings.model_save_buffer_size == 10 * 1024 * 1024
        assert settings.eval_buffer_size == 1024
        assert settings.feature_name_buffer_size == 255

    def test_rejects_non_positive(self) -> None:
        """Sizes must be positive."""
        with pytest.raises(ValidationError):
            BufferSettings(eval_buffer_size=0)
        with pytest.raises(ValidationError):
            BufferSettings(feature_name_buffer_size=0)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"eval_buffer_size": 1023},
            {"model_save_buffer_size": 1024},
            {"model_save_buffer_size": 10 * 1024 * 1024 - 1},
        ],
    )
    def test_rejects_below_default(self, kwargs: dict) -> None:
        """Model and metric buffers cannot shrink below the defaults."""
        with pytest.raises(ValidationError, match="at least"):
            BufferSettings(**kwargs)

    def test_accepts_larger_sizes(self) -> None:
        """Growing a buffer past its default is allowed."""
        settings = BufferSettings(eval_buffer_size=1024, model_save_buffer_size=64 * 1024 * 1024)
        assert settings.model_save_buffer_size == 64 * 1024 * 1024

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Environment variables override the defaults."""
        monkeypatch.setenv("LGBM4PY_MODEL_SAVE_BUFFER_SIZE", str(20 * 1024 * 1024))
        monkeypatch.setenv("LGBM4PY_FEATURE_NAME_BUFFER_SIZE", "64")
        monkeypatch.delenv("LGBM4PY_EVAL_BUFFER_SIZE", raising=False)

        settings = BufferSettings.from_env()

        assert settings.model_save_buffer_size == 20 * 1024 * 1024
        assert settings.eval_buffer_size == 1024
        assert settings.feature_name_buffer_size == 64

    def test_from_env_below_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Environment overrides obey the same lower bounds."""
        monkeypatch.setenv("LGBM4PY_MODEL_SAVE_BUFFER_SIZE", "2048")
        with pytest.raises(ValidationError):
            BufferSettings.from_env()

    def test_from_env_invalid(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Non-numeric overrides are rejected."""
        monkeypatch.setenv("LGBM4PY_EVAL_BUFFER_SIZE", "lots")
        with pytest.raises(ValidationError):
            BufferSettings.from_env()
