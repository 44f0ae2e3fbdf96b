"""Tests for config loading."""
from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from basecamp.config import DEFAULT_CONFIG, BasecampConfig, get_config, load_config
from basecamp.config import loader as config_loader
from basecamp.config.schema import ToolLoopConfig


def test_get_config_default(monkeypatch):
    monkeypatch.delenv("BASECAMP_CONFIG_PATH", raising=False)
    monkeypatch.delenv("BASECAMP_OPENROUTER_API_KEY", raising=False)
    cfg = get_config()
    assert cfg is DEFAULT_CONFIG
    assert cfg.openrouter.base_url == "https://openrouter.ai/api/v1"
    assert cfg.tool_loop.max_iterations == 10
    assert cfg.tool_loop.approval_policy == "manual"


def test_get_config_from_file(monkeypatch, tmp_path):
    path = tmp_path / "basecamp.json"
    path.write_text(json.dumps({
        "openrouter": {"base_url": "http://127.0.0.1:9000/v1", "timeout_s": 10},
        "tool_loop": {"max_iterations": 3, "approval_policy": "auto-safe"},
        "default_model": "openai/gpt-4o-mini",
    }), encoding="utf-8")
    monkeypatch.setenv("BASECAMP_CONFIG_PATH", str(path))
    monkeypatch.delenv("BASECAMP_OPENROUTER_API_KEY", raising=False)

    cfg = load_config()
    assert cfg.openrouter.base_url == "http://127.0.0.1:9000/v1"
    assert cfg.openrouter.timeout_s == 10
    assert cfg.tool_loop.max_iterations == 3
    assert cfg.tool_loop.approval_policy == "auto-safe"
    assert cfg.default_model == "openai/gpt-4o-mini"


def test_missing_config_file_falls_back_to_default(monkeypatch, tmp_path):
    monkeypatch.setenv("BASECAMP_CONFIG_PATH", str(tmp_path / "absent.json"))
    monkeypatch.delenv("BASECAMP_OPENROUTER_API_KEY", raising=False)
    assert load_config() is DEFAULT_CONFIG


def test_api_key_env_overrides_file(monkeypatch, tmp_path):
    path = tmp_path / "basecamp.json"
    path.write_text(json.dumps({"openrouter": {"api_key": "from-file"}}), encoding="utf-8")
    monkeypatch.setenv("BASECAMP_CONFIG_PATH", str(path))
    monkeypatch.setenv("BASECAMP_OPENROUTER_API_KEY", "from-env")
    assert load_config().openrouter.api_key == "from-env"
    assert DEFAULT_CONFIG.openrouter.api_key == ""


def test_load_config_is_cached(monkeypatch):
    monkeypatch.delenv("BASECAMP_CONFIG_PATH", raising=False)
    assert load_config() is load_config()


def test_cache_clear_rereads(monkeypatch, tmp_path):
    monkeypatch.delenv("BASECAMP_CONFIG_PATH", raising=False)
    monkeypatch.delenv("BASECAMP_OPENROUTER_API_KEY", raising=False)
    assert load_config() is DEFAULT_CONFIG

    path = tmp_path / "basecamp.json"
    path.write_text(json.dumps({"max_tokens": 99}), encoding="utf-8")
    monkeypatch.setenv("BASECAMP_CONFIG_PATH", str(path))
    assert load_config().max_tokens == 1024
    load_config.cache_clear()
    config_loader._env = None
    assert load_config().max_tokens == 99


def test_invalid_approval_policy_rejected():
    with pytest.raises(ValidationError):
        ToolLoopConfig(approval_policy="always")


@pytest.mark.parametrize("value", [0, 51])
def test_max_iterations_out_of_range_rejected(value):
    with pytest.raises(ValidationError):
        ToolLoopConfig(max_iterations=value)


def test_empty_default_model_rejected():
    with pytest.raises(ValidationError):
        BasecampConfig(default_model="  ")


def test_temperature_range_enforced():
    with pytest.raises(ValidationError):
        BasecampConfig(temperature=2.5)
