import os
from pathlib import Path
from typing import Any

import yaml

from pubstress.errors import ConfigError
from pubstress.models.config import PublisherConfig

PROFILES_DIR = Path(__file__).parent.parent.parent.parent / "profiles"

ENV_OVERRIDES = {
    "PUBSTRESS_BOOTSTRAP_SERVERS": ("cluster", "bootstrap_servers"),
    "PUBSTRESS_SASL_USERNAME": ("cluster", "sasl_username"),
    "PUBSTRESS_SASL_PASSWORD": ("cluster", "sasl_password"),
    "PUBSTRESS_TOPIC": (None, "topic"),
}


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Profile {path} must be a mapping")
    return data


def apply_overrides(
    data: dict[str, Any],
    overrides: dict[str, Any] | None = None,
    environ: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Layer environment variables, then explicit overrides, onto profile data.

    ``overrides`` uses dotted keys, e.g. ``{"publishing.concurrent_sends": 4}``.
    """
    merged: dict[str, Any] = {
        key: dict(value) if isinstance(value, dict) else value for key, value in data.items()
    }
    environ = os.environ if environ is None else environ

    for variable, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(variable)
        if value:
            _set(merged, section, key, value)

    for dotted, value in (overrides or {}).items():
        if value is None:
            continue
        section, _, key = dotted.rpartition(".")
        _set(merged, section or None, key, value)

    return merged


def _set(data: dict[str, Any], section: str | None, key: str, value: Any) -> None:
    if section is None:
        data[key] = value
        return
    target = data.get(section)
    if not isinstance(target, dict):
        target = {}
        data[section] = target
    target[key] = value


def load_profile(
    path: Path,
    overrides: dict[str, Any] | None = None,
    environ: dict[str, str] | None = None,
) -> PublisherConfig:
    data = apply_overrides(_read_yaml(path), overrides, environ)
    return PublisherConfig.from_dict(data)


def discover_profiles(base_dir: Path | None = None) -> dict[str, Path]:
    if base_dir is None:
        base_dir = PROFILES_DIR

    if not base_dir.exists():
        return {}

    profiles = {}

    for yaml_file in base_dir.rglob("*.yaml"):
        try:
            with yaml_file.open() as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError):
            continue
        if isinstance(data, dict) and "name" in data:
            profiles[data["name"]] = yaml_file

    return profiles


def get_profile(
    name: str,
    base_dir: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> PublisherConfig:
    paths = discover_profiles(base_dir)

    if name not in paths:
        available = ", ".join(sorted(paths.keys()))
        raise ConfigError(f"Unknown profile: '{name}'. Available: {available}")

    return load_profile(paths[name], overrides)


def list_profiles(base_dir: Path | None = None) -> dict[str, str]:
    paths = discover_profiles(base_dir)
    return {name: _read_yaml(path).get("description", "") for name, path in paths.items()}
