"""Configuration loader for the gold catalog service."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv


DEFAULT_SOURCE_URL = "https://www.kitco.com/charts/gold"
DEFAULT_FALLBACK_PRICE = 92.67

CONFIG_ENV_VAR = "GOLDCATALOG_CONFIG"
CONFIG_CANDIDATES = ("config.yaml", "config.yml", "/app/config.yaml")

# ${NAME} or ${NAME:default}; the default runs to the closing brace, colons included.
ENV_PLACEHOLDER = re.compile(r"\$\{(?P<name>[^}:]+)(?::(?P<default>[^}]*))?\}")


def find_config_path(config_path: Optional[str] = None) -> Path:
    """Resolve the config file: explicit path, then $GOLDCATALOG_CONFIG, then the working directory."""
    if config_path is not None:
        candidates = [config_path]
    else:
        candidates = [os.getenv(CONFIG_ENV_VAR), *CONFIG_CANDIDATES]

    for candidate in candidates:
        if candidate and Path(candidate).is_file():
            return Path(candidate).resolve()

    searched = ", ".join(c for c in candidates if c)
    raise FileNotFoundError(f"Configuration file not found (looked for: {searched})")


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Read the YAML config, expanding ``${VAR}`` placeholders from the environment.

    ``.env`` is loaded first so its values take part in the expansion. The
    resolved directory of the file is recorded under ``_config_dir`` and used
    by :func:`resolve_path` for relative paths.
    """
    load_dotenv()
    path = find_config_path(config_path)

    config = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(config, dict):
        raise ValueError(f"Configuration root in {path} must be a mapping")

    config = expand_env(config)
    config["_config_dir"] = str(path.parent)
    return config


def expand_env(value: Any) -> Any:
    """Expand environment placeholders in every string of a parsed config tree.

    Unset variables without a default are left as written.
    """
    if isinstance(value, str):
        return ENV_PLACEHOLDER.sub(_placeholder_value, value)
    if isinstance(value, dict):
        return {key: expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env(item) for item in value]
    return value


def _placeholder_value(match: "re.Match") -> str:
    default = match.group("default")
    return os.environ.get(match.group("name"), match.group(0) if default is None else default)


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = config.get(name, {})
    return section if isinstance(section, dict) else {}


def get_source_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get acquisition source configuration."""
    return _section(config, "source")


def get_extraction_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get extraction locator configuration."""
    return _section(config, "extraction")


def get_refresh_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get refresh scheduler configuration."""
    return _section(config, "refresh")


def get_catalog_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get catalog configuration."""
    return _section(config, "catalog")


def get_api_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get HTTP API configuration."""
    return _section(config, "api")


def as_int(value: Any, default: int) -> int:
    """Coerce a config value (possibly an env-substituted string) to int."""
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def as_float(value: Any, default: float) -> float:
    """Coerce a config value (possibly an env-substituted string) to float."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def as_bool(value: Any, default: bool) -> bool:
    """Coerce a config value to bool, accepting the usual string spellings."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    return default


def resolve_path(config: Dict[str, Any], value: str) -> Path:
    """Resolve a config-relative path against the directory of config.yaml."""
    path = Path(value)
    if path.is_absolute():
        return path
    base_dir = config.get("_config_dir")
    if base_dir:
        return Path(base_dir) / path
    return path


def ensure_directories(config: Dict[str, Any]):
    """Ensure all required directories exist."""
    log_path = config.get("logging", {}).get("file", "data/logs/goldcatalog.log")
    resolve_path(config, log_path).parent.mkdir(parents=True, exist_ok=True)
