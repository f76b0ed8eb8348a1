"""
Configuration loader with YAML and environment variable support.

Layers, applied in order (later wins):
1. Built-in defaults: cmd_sandbox/config/defaults/settings.yaml
2. User config: --config-dir path / ~/.cmd-sandbox/config.yaml
3. Environment variables: CMD_SANDBOX_EXECUTOR__BACKEND=kubernetes
"""

import os
from functools import reduce
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from cmd_sandbox.config.models import SandboxConfig
from cmd_sandbox.utils import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".cmd-sandbox"
PACKAGE_DEFAULTS_DIR = Path(__file__).parent / "defaults"
DEFAULT_POLICY_PATH = PACKAGE_DEFAULTS_DIR / "command-policy.yaml"

ENV_PREFIX = "CMD_SANDBOX_"
ENV_DELIMITER = "__"


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge `override` into a copy of `base`, recursing into nested dicts."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Read one YAML layer; a missing, unparseable or non-mapping file is an empty layer."""
    if not path.is_file():
        return {}
    try:
        with open(path) as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.warning(f"Ignoring unparseable config file {path}: {e}")
        return {}
    return content if isinstance(content, dict) else {}


def _parse_env_value(value: str) -> Any:
    """
    Interpret an env var as a YAML scalar.

    "true"/"no" become booleans, "42" and "0.5" numbers; everything else
    (paths, names, empty strings) is kept as the raw string.
    """
    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError:
        return value
    if isinstance(parsed, (bool, int, float)):
        return parsed
    return value


def _get_env_overrides(environ: Optional[Mapping[str, str]] = None) -> dict[str, Any]:
    """
    Collect CMD_SANDBOX_SECTION__KEY=value variables into a nested dict.

    CMD_SANDBOX_EXECUTOR__BACKEND=kubernetes -> {"executor": {"backend": "kubernetes"}}
    CMD_SANDBOX_KUBERNETES__MAX_POLL_ATTEMPTS=10 -> {"kubernetes": {"max_poll_attempts": 10}}
    """
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}

    for key, raw in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        *sections, name = key[len(ENV_PREFIX):].lower().split(ENV_DELIMITER)
        if not name or not all(sections):
            continue

        target = overrides
        for section in sections:
            if not isinstance(target.get(section), dict):
                target[section] = {}
            target = target[section]
        target[name] = _parse_env_value(raw)

    return overrides


def _config_layers(config_dir: Optional[str | Path]) -> list[dict[str, Any]]:
    user_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
    return [
        _load_yaml_file(PACKAGE_DEFAULTS_DIR / "settings.yaml"),
        _load_yaml_file(user_dir / "config.yaml"),
        _get_env_overrides(),
    ]


def load_config(config_dir: Optional[str | Path] = None) -> SandboxConfig:
    """
    Load configuration from all layers.

    Args:
        config_dir: Directory holding config.yaml (default: ~/.cmd-sandbox/)

    Returns:
        SandboxConfig: Validated configuration object

    Raises:
        pydantic.ValidationError: If the merged configuration is invalid
    """
    merged = reduce(_deep_merge, _config_layers(config_dir), {})
    return SandboxConfig.model_validate(merged)


def reload_config(
    current_config: SandboxConfig, config_dir: Optional[str | Path] = None
) -> SandboxConfig:
    """
    Reload configuration, keeping `current_config` if the new one is invalid.

    Returns:
        SandboxConfig: New configuration, or current if reload fails
    """
    try:
        return load_config(config_dir)
    except Exception as e:
        logger.warning(f"Config reload failed, keeping current config: {e}")
        return current_config


def resolve_policy_path(config: SandboxConfig) -> Path:
    """Return the configured policy path, or the packaged default policy."""
    if config.policy.path:
        return Path(config.policy.path).expanduser()
    return DEFAULT_POLICY_PATH
