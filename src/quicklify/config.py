"""Configuration loader for quicklify.

Values are read from several sources, later sources winning:

1. Built-in defaults.
2. ``~/.quicklify/config.yml`` (or an override path).
3. Environment variables prefixed with ``QUICKLIFY_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export QUICKLIFY_SAFE_MODE=true
    export QUICKLIFY_SSH__CONNECT_TIMEOUT=5

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses``.
"""
from __future__ import annotations

import copy
import os
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

import yaml

ENV_PREFIX = "QUICKLIFY_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

ALLOWED_HOST_KEY_POLICIES = {"accept-new", "yes", "no"}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class SshConfig:
    """SSH client settings used by the remote executor."""

    key_file: str | None = None
    user: str = "root"
    connect_timeout: int = 10
    command_timeout: float = 300.0
    strict_host_key_checking: str = "accept-new"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "key_file": self.key_file,
            "user": self.user,
            "connect_timeout": self.connect_timeout,
            "command_timeout": self.command_timeout,
            "strict_host_key_checking": self.strict_host_key_checking,
        }


@dataclass(frozen=True)
class ProvidersConfig:
    """Cloud API client settings."""

    request_timeout: float = 30.0

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"request_timeout": self.request_timeout}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for quicklify."""

    config_file: Path
    state_dir: Path
    logs_dir: Path
    safe_mode: bool = False
    ssh: SshConfig = field(default_factory=SshConfig)
    providers: ProvidersConfig = field(default_factory=ProvidersConfig)

    @property
    def inventory_file(self) -> Path:
        """Return the path of the server inventory document."""
        return self.state_dir / "servers.yml"

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "state_dir": str(self.state_dir),
            "logs_dir": str(self.logs_dir),
            "safe_mode": self.safe_mode,
            "ssh": self.ssh.to_dict(),
            "providers": self.providers.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "~/.quicklify/config.yml",
    "state_dir": "~/.quicklify",
    "logs_dir": None,  # derived from state_dir when absent
    "safe_mode": False,
    "ssh": {
        "key_file": None,
        "user": "root",
        "connect_timeout": 10,
        "command_timeout": 300.0,
        "strict_host_key_checking": "accept-new",
    },
    "providers": {
        "request_timeout": 30.0,
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_SSH_KEYS = {
    "key_file",
    "user",
    "connect_timeout",
    "command_timeout",
    "strict_host_key_checking",
}
ALLOWED_PROVIDER_KEYS = {"request_timeout"}
SECTION_KEYS = {"ssh": ALLOWED_SSH_KEYS, "providers": ALLOWED_PROVIDER_KEYS}

_TRUE_WORDS = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS = frozenset({"0", "false", "no", "off", ""})


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`.

    A missing config file is not an error; defaults and environment values
    still apply.
    """
    environ = os.environ if env is None else env
    config_path = _determine_config_path(config_file, environ)

    merged = copy.deepcopy(DEFAULTS)
    layers = (_load_yaml_file(config_path), _build_env_overrides(environ), overrides or {})
    for layer in layers:
        _deep_merge(merged, layer)
    merged["config_file"] = str(config_path)

    _validate_structure(merged)
    return _build_app_config(merged)


def _determine_config_path(
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    chosen = cli_override or env.get(CONFIG_ENV_VAR) or _expect_str(
        DEFAULTS["config_file"], "config_file"
    )
    return Path(chosen).expanduser()


def _load_yaml_file(path: Path) -> dict[str, object]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, str(path))


def _validate_structure(raw: Mapping[str, object]) -> None:
    _reject_unknown(raw, ALLOWED_TOP_LEVEL_KEYS, "configuration")
    for section, allowed in SECTION_KEYS.items():
        _reject_unknown(_as_dict(raw.get(section), section), allowed, f"{section} configuration")

    ssh_map = _as_dict(raw.get("ssh"), "ssh")
    policy = _host_key_policy(ssh_map.get("strict_host_key_checking"))
    if policy is not None and policy not in ALLOWED_HOST_KEY_POLICIES:
        allowed = ", ".join(sorted(ALLOWED_HOST_KEY_POLICIES))
        raise ConfigError(
            f"Unsupported ssh.strict_host_key_checking '{policy}'. Allowed: {allowed}."
        )


def _reject_unknown(mapping: Mapping[str, object], allowed: set[str], label: str) -> None:
    unknown = sorted(set(mapping) - allowed)
    if unknown:
        raise ConfigError(f"Unknown {label} keys: {', '.join(unknown)}.")


def _host_key_policy(value: object) -> str | None:
    # YAML reads bare yes/no as booleans.
    if value is None:
        return None
    if isinstance(value, bool):
        return "yes" if value else "no"
    return str(value)


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    state_dir = _to_path(raw.get("state_dir"))
    logs_dir_value = raw.get("logs_dir")

    ssh_defaults = SshConfig()
    ssh_map = _as_dict(raw.get("ssh"), "ssh")
    ssh = SshConfig(
        key_file=_optional_str(ssh_map.get("key_file"), "ssh.key_file"),
        user=_expect_str(ssh_map.get("user", ssh_defaults.user), "ssh.user"),
        connect_timeout=_expect_positive_int(
            ssh_map.get("connect_timeout"),
            "ssh.connect_timeout",
            default=ssh_defaults.connect_timeout,
        ),
        command_timeout=_expect_positive_float(
            ssh_map.get("command_timeout"),
            "ssh.command_timeout",
            default=ssh_defaults.command_timeout,
        ),
        strict_host_key_checking=_host_key_policy(ssh_map.get("strict_host_key_checking"))
        or ssh_defaults.strict_host_key_checking,
    )

    providers_map = _as_dict(raw.get("providers"), "providers")
    providers = ProvidersConfig(
        request_timeout=_expect_positive_float(
            providers_map.get("request_timeout"),
            "providers.request_timeout",
            default=ProvidersConfig().request_timeout,
        ),
    )

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        state_dir=state_dir,
        logs_dir=_to_path(logs_dir_value) if logs_dir_value else state_dir / "logs",
        safe_mode=_expect_bool(raw.get("safe_mode"), "safe_mode", default=False),
        ssh=ssh,
        providers=providers,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS or not key.startswith(ENV_PREFIX):
            continue
        path = [part.lower() for part in key.removeprefix(ENV_PREFIX).split("__") if part]
        if path:
            _assign_nested(overrides, path, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    node = tree
    for segment in path[:-1]:
        child = node.setdefault(segment, {})
        if not isinstance(child, MutableMapping):
            raise ConfigError(
                f"Environment override {'.'.join(path)} conflicts with a scalar value."
            )
        node = cast(MutableMapping[str, object], child)
    node[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], layer: Mapping[str, object]) -> None:
    for key, value in layer.items():
        current = target.get(key)
        if isinstance(current, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(current, _as_dict(value, key))
        else:
            target[key] = value


def _coerce_value(raw: str) -> object:
    text = raw.strip()
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def _to_path(value: object) -> Path:
    if isinstance(value, (str, Path)):
        return Path(value).expanduser()
    raise ConfigError(f"Expected a filesystem path. Got {value!r}.")


def _expect_bool(value: object | None, label: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    word = value.strip().lower() if isinstance(value, str) else None
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ConfigError(f"Expected {label} to be a boolean. Got {value!r}.")


def _expect_str(value: object, label: str) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"Expected {label} to be a string. Got {value!r}.")
    return value


def _optional_str(value: object | None, label: str) -> str | None:
    if value is None or value == "":
        return None
    return str(Path(_expect_str(value, label)).expanduser())


def _expect_positive_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ConfigError(f"Expected {label} to be an integer. Got {value!r}.")
    try:
        number = int(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    if number <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {number}.")
    return number


def _expect_positive_float(value: object | None, label: str, *, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ConfigError(f"Expected {label} to be a number. Got {value!r}.")
    try:
        number = float(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    if number <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {number}.")
    return number


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    for key in value:
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
    return dict(value)


__all__ = [
    "AppConfig",
    "ConfigError",
    "ProvidersConfig",
    "SshConfig",
    "load_config",
]
