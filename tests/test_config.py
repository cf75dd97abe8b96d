"""
Unit tests for settings loading.
"""
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from bgremover.config import Settings, get_settings


class TestSettings:
    """Tests for Settings defaults and environment overrides"""

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)
        assert settings.default_model == "u2netp"
        assert settings.execution_providers == ["CPUExecutionProvider"]
        assert settings.model_cache_dir is None
        assert settings.output_filename == "removed-bg.png"
        assert settings.debug is False

    def test_environment_overrides(self):
        env = {
            "BGREMOVER_DEFAULT_MODEL": "rmbg_fp16",
            "BGREMOVER_MODEL_CACHE_DIR": "/tmp/models",
            "BGREMOVER_EXECUTION_PROVIDERS": '["CUDAExecutionProvider", "CPUExecutionProvider"]',
        }
        with patch.dict(os.environ, env, clear=False):
            settings = Settings(_env_file=None)
        assert settings.default_model == "rmbg_fp16"
        assert settings.model_cache_dir == Path("/tmp/models")
        assert settings.execution_providers[0] == "CUDAExecutionProvider"

    def test_unknown_default_model_is_rejected(self):
        with patch.dict(os.environ, {"BGREMOVER_DEFAULT_MODEL": "modnet"}, clear=False):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_chunk_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, download_chunk_size=0)

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
