"""Tests for configuration loading."""

from pathlib import Path

import pytest

from promptengine.config import CONFIG_FILE_NAME, EngineConfig, load_config
from promptengine.exceptions import ConfigError


def test_defaults():
    config = EngineConfig()
    assert config.prompts_dir == Path("./prompts")
    assert config.extensions == [".tmpl"]
    assert config.partial_prefix == "_"
    assert config.strict_undefined is True


def test_extensions_get_leading_dot():
    config = EngineConfig(extensions=["tmpl", ".txt"])
    assert config.extensions == [".tmpl", ".txt"]


def test_load_yaml_file(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text("prompts_dir: templates\ndebounce_seconds: 1.5\n")

    config = load_config(path, environ={})

    assert config.prompts_dir == Path("templates")
    assert config.debounce_seconds == 1.5


def test_environment_overrides_yaml(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text("prompts_dir: from_yaml\n")

    config = load_config(path, environ={"PROMPTS_DIR": "from_env"})

    assert config.prompts_dir == Path("from_env")


def test_explicit_override_wins(tmp_path):
    config = load_config(
        environ={"PROMPTS_DIR": "from_env"}, prompts_dir=tmp_path, date_format=None
    )
    assert config.prompts_dir == tmp_path
    # None overrides are ignored
    assert config.date_format == "%Y-%m-%d %H:%M:%S"


def test_config_file_in_cwd_is_picked_up(tmp_path, monkeypatch):
    (tmp_path / CONFIG_FILE_NAME).write_text("partial_prefix: 'partial_'\n")
    monkeypatch.chdir(tmp_path)

    config = load_config(environ={})

    assert config.partial_prefix == "partial_"


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.yaml", environ={})


def test_invalid_yaml_raises(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text("prompts_dir: [unclosed\n")
    with pytest.raises(ConfigError):
        load_config(path, environ={})


def test_non_mapping_yaml_raises(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_config(path, environ={})


def test_invalid_values_raise_config_error(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text("debounce_seconds: -1\n")
    with pytest.raises(ConfigError):
        load_config(path, environ={})
