"""
Board configuration loading.

Loads backend and interaction settings from YAML with environment variable expansion.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml


DEFAULT_API_URL = "http://localhost:3000/api/v1"
DEFAULT_TIMEOUT_S = 15.0
DEFAULT_MOVE_TIMEOUT_S = 30.0


ENV_REF = re.compile(r"\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<default>[^}]*))?\}")


def expand_env_vars(value: Any) -> Any:
    """
    Expand ${VAR} and ${VAR:-default} references throughout a loaded config.

    Unset or empty variables fall back to the default, else to "".
    Non-string leaves (numbers, booleans) pass through untouched.
    """
    if isinstance(value, dict):
        return {key: expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    if not isinstance(value, str):
        return value
    return ENV_REF.sub(
        lambda m: os.environ.get(m.group("name")) or (m.group("default") or ""),
        value,
    )


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def default_config() -> dict:
    """Minimal configuration built from environment variables."""
    return {
        "default_backend": "http",
        "move_timeout_s": _float_env("PRINTSHOP_MOVE_TIMEOUT_S", DEFAULT_MOVE_TIMEOUT_S),
        "backends": {
            "http": {
                "url": os.environ.get("PRINTSHOP_API_URL", DEFAULT_API_URL),
                "token": os.environ.get("PRINTSHOP_API_TOKEN", ""),
                "timeout_s": _float_env("PRINTSHOP_TIMEOUT_S", DEFAULT_TIMEOUT_S),
            }
        },
    }


def load_board_config(config_path: str | Path | None = None) -> dict:
    """
    Load board configuration from YAML file.

    Looks for config in this order:
    1. Explicitly provided path
    2. config/board.yaml relative to project root
    3. Returns minimal default config from environment

    Environment variables in the format ${VAR} are expanded.

    Args:
        config_path: Optional path to config file

    Returns:
        Dict with board configuration
    """
    if config_path is None:
        # printshop/config.py -> project root is ../..
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config" / "board.yaml"

    config_path = Path(config_path)

    if not config_path.exists():
        return default_config()

    with open(config_path) as f:
        config = yaml.safe_load(f) or {}

    config = expand_env_vars(config)
    config.setdefault("default_backend", "http")
    config.setdefault("move_timeout_s", DEFAULT_MOVE_TIMEOUT_S)
    config.setdefault("backends", {})

    return config


def get_backend_config(backend_name: str, config: dict | None = None) -> dict:
    """
    Get configuration for a specific backend.

    Args:
        backend_name: Name of the backend (e.g., "http")
        config: Optional pre-loaded config dict

    Returns:
        Backend-specific configuration dict

    Raises:
        ValueError: If backend not found in config
    """
    if config is None:
        config = load_board_config()

    backends = config.get("backends", {})

    if backend_name not in backends:
        raise ValueError(f"Backend '{backend_name}' not found in config")

    return backends[backend_name]
