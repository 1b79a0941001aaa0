# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Configuration for the SMTP to webhook bridge.

Settings come from two sources, later ones winning:

1. An optional YAML file.  The default location follows the XDG Base
   Directory Specification: ``$XDG_CONFIG_HOME/smtp2wwpm/smtp2wwpm.yaml``
   (typically ``~/.config/smtp2wwpm/smtp2wwpm.yaml``).
2. Command-line overrides passed by the entry point (``--url`` and
   friends).

``!env`` tags in the YAML file resolve values from environment variables,
after ``.env`` files have been loaded.  Example::

    webhook:
      url: !env SMTP2WWPM_WEBHOOK_URL
      timeout: 10
    smtp:
      host: 0.0.0.0
      port: 25
    smtps:
      enabled: true
      port: 465

The resulting ``ServerConfig`` is constructed once at startup and passed
explicitly to every component that needs it.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar, overload
from urllib.parse import urlsplit

import yaml
from platformdirs import user_config_path

from smtp2wwpm.dotenv_loader import load_dotenv_once
from smtp2wwpm.logging import SecretFilter


logger = logging.getLogger(__name__)

#: Directory name under the XDG config home.
_APP_NAME = "smtp2wwpm"

_BOOL_TRUTHY = frozenset({"true", "1", "yes", "on"})
_BOOL_FALSY = frozenset({"false", "0", "no", "off"})


class ConfigError(Exception):
    """Configuration that is missing or invalid."""


def get_config_path() -> Path:
    """Return the default config file path.

    Uses XDG: ``$XDG_CONFIG_HOME/smtp2wwpm/smtp2wwpm.yaml``.
    """
    return user_config_path(_APP_NAME) / "smtp2wwpm.yaml"


def get_dotenv_path() -> Path:
    """Return the ``.env`` path inside the XDG config directory."""
    return user_config_path(_APP_NAME) / ".env"


# ---------------------------------------------------------------------------
# YAML tag placeholders
# ---------------------------------------------------------------------------


class _EnvVar:
    """An environment variable name read from an ``!env`` tag."""

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name


def _env_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> _EnvVar:
    """Turn ``!env NAME`` into an ``_EnvVar`` for later lookup."""
    value = loader.construct_scalar(node)  # type: ignore[arg-type]
    return _EnvVar(str(value))


def _make_loader() -> type[yaml.SafeLoader]:
    """Return a ``SafeLoader`` subclass with the ``!env`` tag registered."""

    class EnvLoader(yaml.SafeLoader):
        pass

    EnvLoader.add_constructor("!env", _env_constructor)
    return EnvLoader


# ---------------------------------------------------------------------------
# Value resolution
# ---------------------------------------------------------------------------


def _coerce_bool(value: object) -> bool:
    """Accept real booleans and the usual yes/no spellings."""
    if isinstance(value, bool):
        return value
    s = str(value).lower().strip()
    if s in _BOOL_TRUTHY:
        return True
    if s in _BOOL_FALSY:
        return False
    raise ConfigError(f"Cannot convert {value!r} to bool")


def _raw_resolve(value: object) -> str | None:
    """Resolve an ``_EnvVar`` to its string value, or stringify literals.

    Returns None if the value is None or the env var is unset or empty.
    """
    if isinstance(value, _EnvVar):
        return os.environ.get(value.var_name) or None
    if value is None:
        return None
    return str(value)


_MISSING = object()

_T = TypeVar("_T")


@overload
def _resolve(value: object, coerce: type[_T], *, default: _T) -> _T: ...


@overload
def _resolve(value: object, coerce: type[_T]) -> _T | None: ...


def _resolve(
    value: object,
    coerce: type[Any],
    *,
    default: object = _MISSING,
) -> Any:
    """Resolve a YAML value, handling ``!env`` tags and type coercion.

    Args:
        value: Raw value from YAML (may be ``_EnvVar``, None, or a
            literal already parsed by PyYAML).
        coerce: Target type (``str``, ``int``, ``float``, ``bool``,
            ``Path``).
        default: Default when value is absent.

    Returns:
        The resolved, coerced value, or None when absent without default.

    Raises:
        ConfigError: If the value cannot be coerced.
    """
    if not isinstance(value, _EnvVar) and value is not None:
        if coerce is bool:
            return _coerce_bool(value)
        if isinstance(value, coerce) and not isinstance(value, bool):
            return value

    resolved = _raw_resolve(value)
    if resolved is None:
        return None if default is _MISSING else default

    if coerce is bool:
        return _coerce_bool(resolved)
    if coerce is Path:
        return Path(resolved).expanduser()
    try:
        return coerce(resolved)
    except ValueError as e:
        raise ConfigError(
            f"Cannot convert {resolved!r} to {coerce.__name__}"
        ) from e


def _section(raw: dict, name: str) -> dict:
    """Return a YAML sub-mapping, treating an absent section as empty."""
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a YAML mapping")
    return section


# ---------------------------------------------------------------------------
# Server configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ServerConfig:
    """Complete process configuration.

    Attributes:
        webhook_url: Notification endpoint receiving extracted messages
            (auto-redacted in logs).
        notify_timeout_seconds: Timeout for one webhook POST.
        host: Bind address for both listeners.
        smtp_port: Plaintext SMTP port.
        smtps_enabled: Whether to open the implicit-TLS listener.
        smtps_port: Implicit-TLS SMTP port.
        tls_cert_file: PEM certificate for the TLS listener.  When unset
            (together with ``tls_key_file``), an ephemeral self-signed
            certificate is generated at startup.
        tls_key_file: PEM private key matching ``tls_cert_file``.
        idle_timeout_seconds: Seconds a connection may stay silent before
            its session is closed.
        max_workers: Concurrent extraction and delivery tasks.
    """

    webhook_url: str
    notify_timeout_seconds: float = 10.0
    host: str = "0.0.0.0"
    smtp_port: int = 25
    smtps_enabled: bool = True
    smtps_port: int = 465
    tls_cert_file: Path | None = None
    tls_key_file: Path | None = None
    idle_timeout_seconds: int = 300
    max_workers: int = 4

    def __post_init__(self) -> None:
        """Validate configuration and register the webhook URL as secret.

        Raises:
            ConfigError: If configuration is invalid.
        """
        if not self.webhook_url:
            raise ConfigError(
                "Webhook URL is required (pass --url or set webhook.url)"
            )
        SecretFilter.register_url(self.webhook_url)

        parts = urlsplit(self.webhook_url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ConfigError("Webhook URL must be an http(s) URL")
        if self.notify_timeout_seconds <= 0:
            raise ConfigError(
                f"Webhook timeout must be > 0s: {self.notify_timeout_seconds}"
            )
        for name, port in (
            ("SMTP", self.smtp_port),
            ("SMTPS", self.smtps_port),
        ):
            if not (1 <= port <= 65535):
                raise ConfigError(f"Invalid {name} port: {port}")
        if self.smtps_enabled and self.smtp_port == self.smtps_port:
            raise ConfigError(
                f"SMTP and SMTPS cannot share port {self.smtp_port}"
            )
        if (self.tls_cert_file is None) != (self.tls_key_file is None):
            raise ConfigError(
                "smtps.cert_file and smtps.key_file must be set together"
            )
        if self.idle_timeout_seconds < 1:
            raise ConfigError(
                f"Idle timeout must be >= 1s: {self.idle_timeout_seconds}"
            )
        if self.max_workers < 1:
            raise ConfigError(
                f"Delivery workers must be >= 1: {self.max_workers}"
            )

        logger.info(
            "Config loaded: smtp=%s:%d, smtps=%s, webhook=%s",
            self.host,
            self.smtp_port,
            self.smtps_port if self.smtps_enabled else "disabled",
            self.webhook_url,
        )

    @classmethod
    def load(
        cls,
        config_path: Path | None = None,
        **overrides: Any,
    ) -> "ServerConfig":
        """Load configuration from an optional file plus overrides.

        An explicit ``config_path`` must exist; the default XDG file is
        read only when present.  Overrides are field names of this class;
        ``None`` values are ignored so unset command-line flags fall
        through to the file or to the defaults.

        Raises:
            ConfigError: If an explicit file is missing, an override is
                unknown, or the resulting values are invalid.
        """
        load_dotenv_once()

        raw: dict = {}
        if config_path is not None:
            if not config_path.exists():
                raise ConfigError(f"Config file not found: {config_path}")
            raw = _read_yaml(config_path)
        else:
            default_path = get_config_path()
            if default_path.exists():
                logger.debug("Reading config from %s", default_path)
                raw = _read_yaml(default_path)

        return cls._from_raw(raw, overrides)

    @classmethod
    def _from_raw(cls, raw: dict, overrides: dict[str, Any]) -> "ServerConfig":
        """Build config from parsed (but unresolved) YAML plus overrides."""
        webhook = _section(raw, "webhook")
        smtp = _section(raw, "smtp")
        smtps = _section(raw, "smtps")
        delivery = _section(raw, "delivery")

        values: dict[str, Any] = {
            "webhook_url": _resolve(webhook.get("url"), str, default=""),
            "notify_timeout_seconds": _resolve(
                webhook.get("timeout"), float, default=10.0
            ),
            "host": _resolve(smtp.get("host"), str, default="0.0.0.0"),
            "smtp_port": _resolve(smtp.get("port"), int, default=25),
            "idle_timeout_seconds": _resolve(
                smtp.get("idle_timeout"), int, default=300
            ),
            "smtps_enabled": _resolve(
                smtps.get("enabled"), bool, default=True
            ),
            "smtps_port": _resolve(smtps.get("port"), int, default=465),
            "tls_cert_file": _resolve(smtps.get("cert_file"), Path),
            "tls_key_file": _resolve(smtps.get("key_file"), Path),
            "max_workers": _resolve(
                delivery.get("max_workers"), int, default=4
            ),
        }

        for key, value in overrides.items():
            if key not in values:
                raise ConfigError(f"Unknown config override: {key}")
            if value is not None:
                values[key] = value

        return cls(**values)


def _read_yaml(config_path: Path) -> dict:
    """Read a YAML mapping with ``!env`` support."""
    with open(config_path) as f:
        try:
            raw = yaml.load(f, Loader=_make_loader())
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must be a YAML mapping: {config_path}")
    return raw
