# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration loader for the contact intake service.

Settings come from environment variables and may be overridden by an
INI-style configuration file. Missing relay settings are a startup error:
:func:`load_config` raises :class:`ConfigurationError` so the process never
starts serving requests it cannot deliver.

Example:
    Configuration file format (config.ini)::

        [smtp]
        host = smtp.example.com
        port = 465
        secure = true
        user = mailer@example.com
        password = secret
        timeout = 15

        [contact]
        to = team@example.com
        from = website@example.com

        [rate_limit]
        window_seconds = 60
        max_requests = 3
        sweep_seconds = 300
        redis_url = redis://cache:6379/0
        store_timeout = 0.5

        [api]
        token = metrics-token

    Loading the configuration::

        config = load_config("/etc/contact-intake/config.ini")
        # Returns IntakeConfig dataclass
"""

from __future__ import annotations

import configparser
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from .logger import get_logger

CONFIG_PATH_ENV = "CONTACT_CONFIG"

logger = get_logger("contact_intake.config_loader")


class ConfigurationError(RuntimeError):
    """Raised at startup when a required setting is missing or invalid."""

    def __init__(self, message: str):
        super().__init__(message)
        self.code = "missing_configuration"


@dataclass(frozen=True)
class IntakeConfig:
    """Resolved service configuration.

    Attributes:
        smtp_host: SMTP relay hostname.
        smtp_port: SMTP relay port.
        smtp_user: SMTP username.
        smtp_password: SMTP password.
        contact_to: Mailbox receiving contact requests.
        contact_from: Sender address; defaults to ``smtp_user``.
        smtp_secure: Use TLS (implicit on 465, STARTTLS elsewhere). Only the
            value "true", in any case, enables it; an empty value disables it.
        smtp_timeout: Seconds allowed for one delivery.
        rate_window_seconds: Sliding window length.
        rate_max_requests: Admissions per identity per window.
        rate_sweep_seconds: Interval of the local store sweep.
        redis_url: Optional shared rate store.
        redis_password: Password for the shared store.
        rate_store_timeout: Seconds allowed for one shared-store lookup.
        api_token: Optional token protecting ``/metrics``.
    """

    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    contact_to: str
    contact_from: str
    smtp_secure: bool = True
    smtp_timeout: float = 15.0
    rate_window_seconds: int = 60
    rate_max_requests: int = 3
    rate_sweep_seconds: int = 300
    redis_url: str | None = None
    redis_password: str | None = None
    rate_store_timeout: float = 0.5
    api_token: str | None = None

    def redacted(self) -> dict[str, Any]:
        """Return the settings as a dict with secrets masked."""
        values = asdict(self)
        for key in ("smtp_password", "redis_password", "api_token"):
            if values.get(key):
                values[key] = "********"
        return values


def _is_truthy(value: str | None) -> bool:
    # Only the literal "true" enables a flag; "", "yes" or "1" disable it
    return value is not None and value.strip().lower() == "true"


def _is_set(value: str | None, type_fn: type) -> bool:
    # An empty flag is an explicit false, an empty string setting is unset
    return value is not None and (type_fn is bool or bool(value.strip()))


# field -> (env var, INI section, INI key, type)
_SETTINGS: dict[str, tuple[str, str, str, type]] = {
    "smtp_host": ("SMTP_HOST", "smtp", "host", str),
    "smtp_port": ("SMTP_PORT", "smtp", "port", int),
    "smtp_secure": ("SMTP_SECURE", "smtp", "secure", bool),
    "smtp_user": ("SMTP_USER", "smtp", "user", str),
    "smtp_password": ("SMTP_PASS", "smtp", "password", str),
    "smtp_timeout": ("SMTP_TIMEOUT", "smtp", "timeout", float),
    "contact_to": ("CONTACT_TO", "contact", "to", str),
    "contact_from": ("CONTACT_FROM", "contact", "from", str),
    "rate_window_seconds": ("CONTACT_RATE_WINDOW_SECONDS", "rate_limit", "window_seconds", int),
    "rate_max_requests": ("CONTACT_RATE_MAX_REQUESTS", "rate_limit", "max_requests", int),
    "rate_sweep_seconds": ("CONTACT_RATE_SWEEP_SECONDS", "rate_limit", "sweep_seconds", int),
    "redis_url": ("CONTACT_REDIS_URL", "rate_limit", "redis_url", str),
    "redis_password": ("CONTACT_REDIS_PASSWORD", "rate_limit", "redis_password", str),
    "rate_store_timeout": ("CONTACT_RATE_STORE_TIMEOUT", "rate_limit", "store_timeout", float),
    "api_token": ("CONTACT_API_TOKEN", "api", "token", str),
}

REQUIRED = ("smtp_host", "smtp_port", "smtp_user", "smtp_password", "contact_to")


def _convert(field: str, raw: str, type_fn: type) -> Any:
    if type_fn is bool:
        return _is_truthy(raw)
    try:
        return type_fn(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid value for {field}: {raw!r}") from exc


def load_config(config_path: str | None = None, environ: dict[str, str] | None = None) -> IntakeConfig:
    """Load the service configuration.

    Priority: config file > environment variables > defaults.

    Args:
        config_path: Optional path to an INI file. Defaults to the path in
            ``CONTACT_CONFIG`` when set.
        environ: Environment mapping, ``os.environ`` when omitted.

    Returns:
        A fully resolved :class:`IntakeConfig`.

    Raises:
        ConfigurationError: If a required relay setting is missing or a value
            cannot be parsed.
    """
    env = os.environ if environ is None else environ
    raw: dict[str, str] = {}

    for field, (env_var, _section, _key, type_fn) in _SETTINGS.items():
        value = env.get(env_var)
        if _is_set(value, type_fn):
            raw[field] = value

    path = config_path or env.get(CONFIG_PATH_ENV)
    if path:
        if not Path(path).exists():
            raise ConfigurationError(f"Configuration file not found: {path}")
        parser = configparser.ConfigParser(interpolation=None)
        parser.read(path)
        for field, (_env_var, section, key, type_fn) in _SETTINGS.items():
            value = parser.get(section, key, fallback=None)
            if _is_set(value, type_fn):
                raw[field] = value.strip()
        logger.info("Loaded configuration file %s", path)

    missing = [_SETTINGS[field][0] for field in REQUIRED if not raw.get(field)]
    if missing:
        raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

    values: dict[str, Any] = {
        field: _convert(field, value, _SETTINGS[field][3]) for field, value in raw.items()
    }
    values.setdefault("contact_from", values["smtp_user"])
    return IntakeConfig(**values)
