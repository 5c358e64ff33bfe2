"""Tests for config module."""

import json

import pytest

from steward.config import (
    CHECKPOINTS_SUBDIR,
    DEFAULT_MODEL,
    StewardConfig,
    get_api_key,
    load_config,
    save_config,
)
from steward.exceptions import ConfigError

ENV_VARS = (
    "STEWARD_API_KEY",
    "OPENAI_API_KEY",
    "STEWARD_MODEL",
    "STEWARD_PROVIDER",
    "STEWARD_BASE_URL",
    "STEWARD_CONTEXT_WINDOW",
    "STEWARD_TIMEOUT",
    "STEWARD_MAX_SELF_CORRECTIONS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestStewardConfig:
    """Tests for StewardConfig dataclass."""

    def test_defaults(self):
        config = StewardConfig()
        assert config.model == DEFAULT_MODEL
        assert config.max_checkpoint_files == 50
        assert config.bash_output_max_chars == 2000
        assert config.max_self_corrections is None
        assert config.context_window is None

    def test_workspace_expansion(self):
        config = StewardConfig(workspace_root="~/projects/demo")
        assert not config.workspace_root.startswith("~")
        assert config.workspace_root.endswith("projects/demo")

    def test_checkpoints_dir(self, tmp_path):
        config = StewardConfig(workspace_root=str(tmp_path))
        assert config.checkpoints_dir == tmp_path / CHECKPOINTS_SUBDIR

    def test_to_dict_excludes_api_key(self):
        config = StewardConfig(api_key="secret")
        assert "api_key" not in config.to_dict()

    def test_from_dict_ignores_unknown_and_api_key(self):
        config = StewardConfig.from_dict({"model": "m", "api_key": "secret", "colour": "blue"})
        assert config.model == "m"
        assert config.api_key == ""


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.json")
        assert config.model == DEFAULT_MODEL

    def test_file_values(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"model": "local-model", "context_window": 8192}))
        config = load_config(path)
        assert config.model == "local-model"
        assert config.context_window == 8192

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{broken")
        with pytest.raises(ConfigError, match="Invalid JSON"):
            load_config(path)

    def test_non_object_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[]")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_env_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("STEWARD_API_KEY", "key-1")
        monkeypatch.setenv("STEWARD_MODEL", "env-model")
        monkeypatch.setenv("STEWARD_BASE_URL", "http://localhost:1234/v1")
        monkeypatch.setenv("STEWARD_TIMEOUT", "12.5")
        config = load_config(tmp_path / "missing.json")
        assert config.api_key == "key-1"
        assert config.model == "env-model"
        assert config.base_url == "http://localhost:1234/v1"
        assert config.non_interactive_timeout == 12.5

    def test_openai_key_fallback(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "key-2")
        assert load_config(tmp_path / "missing.json").api_key == "key-2"

    def test_bad_integer_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("STEWARD_CONTEXT_WINDOW", "lots")
        with pytest.raises(ConfigError, match="STEWARD_CONTEXT_WINDOW"):
            load_config(tmp_path / "missing.json")

    def test_zero_correction_limit_means_unbounded(self, tmp_path, monkeypatch):
        monkeypatch.setenv("STEWARD_MAX_SELF_CORRECTIONS", "0")
        assert load_config(tmp_path / "missing.json").max_self_corrections is None

    def test_save_then_load(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        save_config(StewardConfig(model="saved", api_key="secret"), path)
        assert "secret" not in path.read_text()
        assert load_config(path).model == "saved"


class TestGetApiKey:
    """Tests for get_api_key."""

    def test_missing_key(self):
        with pytest.raises(ConfigError, match="No API key"):
            get_api_key(StewardConfig())

    def test_present_key(self):
        assert get_api_key(StewardConfig(api_key="k")) == "k"
