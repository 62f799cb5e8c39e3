"""
Config provider for the Circuitry MCP server.

Persisted config lives in ~/.circuitry/mcp-config.json. Environment variables
take precedence over the file and are read at call time, never cached:

  CIRCUITRY_ESERVER_URL   override the EServer URL
  CIRCUITRY_ACCESS_KEY    override the access key
  CIRCUITRY_CONFIG_DIR    relocate the config directory
  CIRCUITRY_LOG_LEVEL     DEBUG | INFO | WARNING | ERROR
"""
import json
import logging
import os
import pathlib

from circuitry_mcp.models import Endpoint, MCPConfig

log = logging.getLogger("circuitry_mcp.config")

_CONFIG_FILENAME = "mcp-config.json"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def config_dir() -> pathlib.Path:
    override = os.environ.get("CIRCUITRY_CONFIG_DIR", "")
    if override:
        return pathlib.Path(override)
    return pathlib.Path.home() / ".circuitry"


def config_path() -> pathlib.Path:
    return config_dir() / _CONFIG_FILENAME


def load_config() -> MCPConfig:
    """
    Load the persisted config, falling back to defaults.
    A missing or corrupt file yields the default config rather than an error.
    """
    path = config_path()
    if not path.exists():
        return MCPConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("config root must be an object")
        return MCPConfig.from_dict(data)
    except (OSError, ValueError) as exc:
        log.error("Error loading config from %s: %s", path, exc)
        return MCPConfig()


def save_config(config: MCPConfig) -> pathlib.Path:
    path = config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")
    log.info("Config saved to %s", path)
    return path


def clear_config() -> None:
    path = config_path()
    if path.exists():
        path.unlink()


def get_eserver_url() -> str:
    return (os.environ.get("CIRCUITRY_ESERVER_URL") or load_config().eserver_url).rstrip("/")


def get_access_key() -> str:
    return os.environ.get("CIRCUITRY_ACCESS_KEY") or load_config().access_key


def is_configured() -> bool:
    """True when an access key is available from the environment or a completed setup."""
    if os.environ.get("CIRCUITRY_ACCESS_KEY"):
        return True
    config = load_config()
    return config.configured and len(config.access_key) > 0


def get_endpoint() -> Endpoint:
    return Endpoint(base_url=get_eserver_url(), access_key=get_access_key())


def get_log_level() -> int:
    name = os.environ.get("CIRCUITRY_LOG_LEVEL", "INFO").upper()
    if name not in _LOG_LEVELS:
        name = "INFO"
    return getattr(logging, name)
