"""Configuration management with validation.

Wait defaults are chosen per resource kind and can be overridden from the
environment or from a YAML file. Every value is validated at load time so
a bad setting fails before the first remote call is made.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

import yaml


class ResourceKind(str, Enum):
    """Resource kinds the orchestrator knows how to wait for."""

    PROJECT = "project"
    VIRTUAL_CLUSTER = "virtual_cluster"
    APPLICATION = "application"
    SERVER = "server"


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Per-kind wait defaults (seconds)
PROJECT_POLL_INTERVAL_SECONDS = 30
PROJECT_READY_TIMEOUT_SECONDS = 600
PROJECT_DELETE_TIMEOUT_SECONDS = 300

VIRTUAL_CLUSTER_POLL_INTERVAL_SECONDS = 10
VIRTUAL_CLUSTER_READY_TIMEOUT_SECONDS = 900
VIRTUAL_CLUSTER_DELETE_TIMEOUT_SECONDS = 900

# Applications install in about a minute; deletion is quicker
APPLICATION_POLL_INTERVAL_SECONDS = 10
APPLICATION_READY_TIMEOUT_SECONDS = 60
APPLICATION_DELETE_TIMEOUT_SECONDS = 30

# Servers are only ever verified after an add, never waited on for deletion
SERVER_POLL_INTERVAL_SECONDS = 5
SERVER_READY_TIMEOUT_SECONDS = 300

MIN_POLL_INTERVAL_SECONDS = 1
MAX_POLL_INTERVAL_SECONDS = 3600
MIN_TIMEOUT_SECONDS = 1
MAX_TIMEOUT_SECONDS = 86400

DEFAULT_API_HOST = "api.taikun.cloud"
DEFAULT_HTTP_TIMEOUT_SECONDS = 30

# Cursor pages are requested with this size when the window is unbounded
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 1000

MAX_WAIT_DEFAULTS_FILE_SIZE_BYTES = 64 * 1024  # 64KB max overrides file

VALID_SCHEMES = ("https", "http")


@dataclass(frozen=True)
class WaitDefaults:
    """Poll interval and timeouts applied when a caller passes none."""

    poll_interval_seconds: float
    ready_timeout_seconds: float
    delete_timeout_seconds: float | None = None

    def timeout_for(self, wait_for_deletion: bool) -> float:
        if wait_for_deletion:
            if self.delete_timeout_seconds is None:
                raise ValueError("this resource kind has no deletion wait")
            return self.delete_timeout_seconds
        return self.ready_timeout_seconds

    def validate(self, label: str) -> list[str]:
        """Return a list of problems with these defaults, empty when valid."""
        errors: list[str] = []
        if not (MIN_POLL_INTERVAL_SECONDS <= self.poll_interval_seconds <= MAX_POLL_INTERVAL_SECONDS):
            errors.append(
                f"{label}_POLL_INTERVAL must be between {MIN_POLL_INTERVAL_SECONDS} "
                f"and {MAX_POLL_INTERVAL_SECONDS} seconds"
            )
        timeouts = [("TIMEOUT", self.ready_timeout_seconds)]
        if self.delete_timeout_seconds is not None:
            timeouts.append(("DELETE_TIMEOUT", self.delete_timeout_seconds))
        for suffix, value in timeouts:
            if not (MIN_TIMEOUT_SECONDS <= value <= MAX_TIMEOUT_SECONDS):
                errors.append(
                    f"{label}_{suffix} must be between {MIN_TIMEOUT_SECONDS} "
                    f"and {MAX_TIMEOUT_SECONDS} seconds"
                )
        return errors


BUILTIN_WAIT_DEFAULTS: dict[ResourceKind, WaitDefaults] = {
    ResourceKind.PROJECT: WaitDefaults(
        PROJECT_POLL_INTERVAL_SECONDS,
        PROJECT_READY_TIMEOUT_SECONDS,
        PROJECT_DELETE_TIMEOUT_SECONDS,
    ),
    ResourceKind.VIRTUAL_CLUSTER: WaitDefaults(
        VIRTUAL_CLUSTER_POLL_INTERVAL_SECONDS,
        VIRTUAL_CLUSTER_READY_TIMEOUT_SECONDS,
        VIRTUAL_CLUSTER_DELETE_TIMEOUT_SECONDS,
    ),
    ResourceKind.APPLICATION: WaitDefaults(
        APPLICATION_POLL_INTERVAL_SECONDS,
        APPLICATION_READY_TIMEOUT_SECONDS,
        APPLICATION_DELETE_TIMEOUT_SECONDS,
    ),
    ResourceKind.SERVER: WaitDefaults(
        SERVER_POLL_INTERVAL_SECONDS,
        SERVER_READY_TIMEOUT_SECONDS,
    ),
}


def _env_prefix(kind: ResourceKind) -> str:
    return kind.value.upper()


@dataclass(frozen=True)
class Config:
    """Orchestrator configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-wait.
    """

    api_host: str = DEFAULT_API_HOST
    api_scheme: str = "https"
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    default_page_size: int = DEFAULT_PAGE_SIZE
    wait_defaults: dict[ResourceKind, WaitDefaults] = field(
        default_factory=lambda: dict(BUILTIN_WAIT_DEFAULTS)
    )

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.api_host:
            errors.append("TAIKUN_API_HOST is required")
        elif "/" in self.api_host or " " in self.api_host:
            errors.append(f"TAIKUN_API_HOST must be a bare host name: {self.api_host}")

        if self.api_scheme not in VALID_SCHEMES:
            errors.append(f"TAIKUN_API_SCHEME must be one of {list(VALID_SCHEMES)}: {self.api_scheme}")

        if self.http_timeout_seconds <= 0:
            errors.append("HTTP_TIMEOUT must be positive")

        if not (1 <= self.default_page_size <= MAX_PAGE_SIZE):
            errors.append(f"DEFAULT_PAGE_SIZE must be between 1 and {MAX_PAGE_SIZE}")

        for kind in ResourceKind:
            defaults = self.wait_defaults.get(kind)
            if defaults is None:
                errors.append(f"wait defaults missing for {kind.value}")
                continue
            errors.extend(defaults.validate(_env_prefix(kind)))

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def base_url(self) -> str:
        return f"{self.api_scheme}://{self.api_host}"

    def defaults_for(self, kind: ResourceKind) -> WaitDefaults:
        return self.wait_defaults[kind]

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            TAIKUN_API_HOST: Control-plane API host (default: api.taikun.cloud)
            TAIKUN_API_SCHEME: https or http (default: https)
            HTTP_TIMEOUT: Per-request timeout in seconds (default: 30)
            DEFAULT_PAGE_SIZE: Page size for unbounded windows (default: 50)
            WAIT_DEFAULTS_FILE: Optional YAML file with per-kind wait overrides

        Per-kind Variables (PROJECT, VIRTUAL_CLUSTER, APPLICATION, SERVER):
            <KIND>_POLL_INTERVAL: Seconds between status probes
            <KIND>_TIMEOUT: Seconds to wait for readiness
            <KIND>_DELETE_TIMEOUT: Seconds to wait for deletion

        Environment variables take precedence over the YAML file.
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_float(key: str, default: float | None) -> float | None:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return float(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number: {value}") from e

        defaults = dict(BUILTIN_WAIT_DEFAULTS)
        defaults_file = os.environ.get("WAIT_DEFAULTS_FILE")
        if defaults_file:
            defaults = load_wait_defaults(Path(defaults_file), base=defaults)

        for kind, current in list(defaults.items()):
            prefix = _env_prefix(kind)
            delete_timeout = current.delete_timeout_seconds
            if delete_timeout is not None:
                delete_timeout = get_float(f"{prefix}_DELETE_TIMEOUT", delete_timeout)
            defaults[kind] = WaitDefaults(
                poll_interval_seconds=get_float(f"{prefix}_POLL_INTERVAL", current.poll_interval_seconds),
                ready_timeout_seconds=get_float(f"{prefix}_TIMEOUT", current.ready_timeout_seconds),
                delete_timeout_seconds=delete_timeout,
            )

        return cls(
            api_host=os.environ.get("TAIKUN_API_HOST", DEFAULT_API_HOST),
            api_scheme=os.environ.get("TAIKUN_API_SCHEME", "https").lower(),
            http_timeout_seconds=get_int("HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT_SECONDS),
            default_page_size=get_int("DEFAULT_PAGE_SIZE", DEFAULT_PAGE_SIZE),
            wait_defaults=defaults,
        )


# YAML keys accepted per kind in the overrides file
_YAML_FIELDS = {
    "poll_interval": "poll_interval_seconds",
    "timeout": "ready_timeout_seconds",
    "delete_timeout": "delete_timeout_seconds",
}


def load_wait_defaults(
    path: Path, base: dict[ResourceKind, WaitDefaults] | None = None
) -> dict[ResourceKind, WaitDefaults]:
    """Load per-kind wait overrides from a YAML file.

    The file maps kind names to any of poll_interval, timeout and
    delete_timeout. Kinds and keys not listed keep their base values.

    Raises:
        ConfigurationError: If the file is missing, too large, malformed,
            or names an unknown kind or key.
    """
    result = dict(base if base is not None else BUILTIN_WAIT_DEFAULTS)

    if not path.exists():
        raise ConfigurationError(f"Wait defaults file does not exist: {path}")

    file_size = path.stat().st_size
    if file_size > MAX_WAIT_DEFAULTS_FILE_SIZE_BYTES:
        raise ConfigurationError(
            f"Wait defaults file exceeds maximum size ({file_size} > "
            f"{MAX_WAIT_DEFAULTS_FILE_SIZE_BYTES} bytes): {path}"
        )

    try:
        with open(path) as f:
            data: Any = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML in {path}: {e}") from e

    if data is None:
        return result
    if not isinstance(data, dict):
        raise ConfigurationError(f"Wait defaults file must contain a mapping: {path}")

    errors: list[str] = []
    for kind_name, overrides in data.items():
        try:
            kind = ResourceKind(kind_name)
        except ValueError:
            valid = [k.value for k in ResourceKind]
            errors.append(f"unknown resource kind {kind_name!r} (expected one of {valid})")
            continue
        if not isinstance(overrides, dict):
            errors.append(f"{kind_name}: overrides must be a mapping")
            continue

        changes: dict[str, float] = {}
        for key, value in overrides.items():
            attr = _YAML_FIELDS.get(key)
            if attr is None:
                errors.append(f"{kind_name}: unknown key {key!r}")
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                errors.append(f"{kind_name}.{key} must be a number")
                continue
            if attr == "delete_timeout_seconds" and result[kind].delete_timeout_seconds is None:
                errors.append(f"{kind_name}: delete_timeout is not supported")
                continue
            changes[attr] = float(value)
        result[kind] = replace(result[kind], **changes)

    if errors:
        raise ConfigurationError(f"Invalid wait defaults in {path}:\n  - " + "\n  - ".join(errors))

    return result
