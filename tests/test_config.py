import json
import logging

import pytest

from circuitry_mcp import config
from circuitry_mcp.models import DEFAULT_ESERVER_URL, MCPConfig


@pytest.fixture(autouse=True)
def config_home(tmp_path, monkeypatch):
    monkeypatch.setenv("CIRCUITRY_CONFIG_DIR", str(tmp_path))
    monkeypatch.delenv("CIRCUITRY_ESERVER_URL", raising=False)
    monkeypatch.delenv("CIRCUITRY_ACCESS_KEY", raising=False)
    monkeypatch.delenv("CIRCUITRY_LOG_LEVEL", raising=False)
    return tmp_path


def _write(path, data):
    path.write_text(data if isinstance(data, str) else json.dumps(data))


def test_missing_file_yields_defaults(config_home):
    assert config.config_path() == config_home / "mcp-config.json"
    cfg = config.load_config()
    assert cfg == MCPConfig()
    assert config.get_eserver_url() == DEFAULT_ESERVER_URL
    assert config.get_access_key() == ""
    assert config.is_configured() is False


def test_corrupt_file_yields_defaults(config_home, caplog):
    _write(config_home / "mcp-config.json", "{not json")
    with caplog.at_level(logging.ERROR, logger="circuitry_mcp.config"):
        assert config.load_config() == MCPConfig()
    assert "Error loading config" in caplog.text


def test_non_object_file_yields_defaults(config_home):
    _write(config_home / "mcp-config.json", [1, 2])
    assert config.load_config() == MCPConfig()


def test_save_then_load(tmp_path, monkeypatch):
    nested = tmp_path / "a" / "b"
    monkeypatch.setenv("CIRCUITRY_CONFIG_DIR", str(nested))
    path = config.save_config(MCPConfig("http://10.0.0.5:4000", "k-1", True))
    assert path == nested / "mcp-config.json"
    assert json.loads(path.read_text()) == {
        "eserverUrl": "http://10.0.0.5:4000", "accessKey": "k-1", "configured": True,
    }
    assert config.load_config() == MCPConfig("http://10.0.0.5:4000", "k-1", True)
    assert config.is_configured() is True


def test_environment_wins_over_file(config_home, monkeypatch):
    _write(config_home / "mcp-config.json",
           {"eserverUrl": "http://file:1", "accessKey": "file-key", "configured": True})
    monkeypatch.setenv("CIRCUITRY_ESERVER_URL", "http://env:2/")
    monkeypatch.setenv("CIRCUITRY_ACCESS_KEY", "env-key")
    assert config.get_eserver_url() == "http://env:2"
    assert config.get_access_key() == "env-key"
    endpoint = config.get_endpoint()
    assert endpoint.base_url == "http://env:2"
    assert endpoint.access_key == "env-key"


def test_environment_read_at_call_time(monkeypatch):
    assert config.get_access_key() == ""
    monkeypatch.setenv("CIRCUITRY_ACCESS_KEY", "late")
    assert config.get_access_key() == "late"


def test_env_key_alone_counts_as_configured(monkeypatch):
    monkeypatch.setenv("CIRCUITRY_ACCESS_KEY", "env-key")
    assert config.is_configured() is True


@pytest.mark.parametrize("stored", [
    {"accessKey": "k", "configured": False},
    {"accessKey": "", "configured": True},
])
def test_incomplete_setup_is_not_configured(config_home, stored):
    _write(config_home / "mcp-config.json", stored)
    assert config.is_configured() is False


def test_trailing_slash_stripped_from_file_url(config_home):
    _write(config_home / "mcp-config.json", {"eserverUrl": "http://localhost:3030/"})
    assert config.get_eserver_url() == "http://localhost:3030"


def test_clear_config(config_home):
    config.save_config(MCPConfig(access_key="k", configured=True))
    config.clear_config()
    assert not config.config_path().exists()
    config.clear_config()


@pytest.mark.parametrize("value,level", [
    (None, logging.INFO),
    ("debug", logging.DEBUG),
    ("WARNING", logging.WARNING),
    ("verbose", logging.INFO),
])
def test_log_level(monkeypatch, value, level):
    if value is not None:
        monkeypatch.setenv("CIRCUITRY_LOG_LEVEL", value)
    assert config.get_log_level() == level
