"""
Configuration — string-keyed settings merged with built-in defaults.

The core only ever consumes a flat `dict[str, str]`: callers pass their
own map (per call, via RequestContext) and any missing key is filled from
the process-wide defaults below. The defaults are immutable and created
once at import.

SdkSettings loads the same keys from the environment/.env with
pydantic-settings (PAYPAL_CLIENT_ID, PAYPAL_MODE, ...) for applications
that prefer 12-factor configuration. `load_settings()` returns the single
process-wide instance.
"""

from __future__ import annotations

import platform
import struct
import threading
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from paypal_core import __version__
from paypal_core.errors import ConfigError

# ─────────────────────── Keys ───────────────────────

CLIENT_ID = "clientId"
CLIENT_SECRET = "clientSecret"
OAUTH_ENDPOINT = "oauth.EndPoint"
ENDPOINT = "endpoint"
REQUEST_RETRIES = "requestRetries"
CONNECTION_TIMEOUT = "connectionTimeout"
APPLICATION_MODE = "mode"
TRUSTED_CERTIFICATE_LOCATION = "trustedCertificateLocation"

SANDBOX_MODE = "sandbox"
LIVE_MODE = "live"

SANDBOX_ENDPOINT = "https://api.sandbox.paypal.com/"
LIVE_ENDPOINT = "https://api.paypal.com/"

# ─────────────────────── Headers ───────────────────────

AUTHORIZATION_HEADER = "Authorization"
CONTENT_TYPE_HEADER = "Content-Type"
REQUEST_ID_HEADER = "PayPal-Request-Id"
USER_AGENT_HEADER = "User-Agent"
CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_FORM_URLENCODED = "application/x-www-form-urlencoded"

SDK_NAME = "paypal-core"

_DEFAULT_CONFIG: Mapping[str, str] = MappingProxyType(
    {
        CONNECTION_TIMEOUT: "30000",
        REQUEST_RETRIES: "3",
        APPLICATION_MODE: SANDBOX_MODE,
    }
)


def get_config_with_defaults(config: Mapping[str, str] | None) -> dict[str, str]:
    """Return a new map: caller values first, defaults for anything missing."""
    merged = dict(config) if config else {}
    for key, value in _DEFAULT_CONFIG.items():
        merged.setdefault(key, value)
    return merged


def get_default(key: str) -> str | None:
    return _DEFAULT_CONFIG.get(key)


def is_live_mode_enabled(config: Mapping[str, str] | None) -> bool:
    return config is not None and config.get(APPLICATION_MODE) == LIVE_MODE


def get_int(config: Mapping[str, str], key: str) -> int:
    """
    Read an integer setting, falling back to the default for a missing key.

    Raises ConfigError when the value is present but not an integer.
    """
    raw = config.get(key, get_default(key))
    if raw is None:
        raise ConfigError(f"Missing required configuration: {key}")
    try:
        return int(str(raw).strip())
    except ValueError as exc:
        raise ConfigError(f"Configuration {key} must be an integer, got {raw!r}") from exc


def default_endpoint(config: Mapping[str, str]) -> str:
    """REST endpoint for the configured mode (sandbox unless mode=live)."""
    return LIVE_ENDPOINT if is_live_mode_enabled(config) else SANDBOX_ENDPOINT


def user_agent() -> str:
    """Product/version identification sent as the User-Agent header."""
    bits = struct.calcsize("P") * 8
    return (
        f"PayPalSDK/{SDK_NAME} {__version__} "
        f"(lang=Python;v={platform.python_version()};bit={bits};"
        f"os={platform.system()} {platform.release()})"
    )


# ─────────────────────── Environment Settings ───────────────────────


class SdkSettings(BaseSettings):
    """
    Environment-backed SDK settings.

    Load order (highest priority first):
      1. Environment variables (PAYPAL_*)
      2. .env file in the working directory
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="PAYPAL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    client_id: str | None = Field(default=None, description="REST app client ID")
    client_secret: SecretStr | None = Field(default=None, description="REST app secret")
    mode: str = Field(default=SANDBOX_MODE, description="sandbox or live")
    oauth_endpoint: str | None = Field(default=None, description="OAuth endpoint override")
    endpoint: str | None = Field(default=None, description="REST endpoint override")
    request_retries: int = Field(default=3, ge=0)
    connection_timeout: int = Field(default=30000, ge=1, description="Milliseconds")
    trusted_certificate_location: Path | None = Field(default=None)
    log_level: str = Field(default="INFO")

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, value: str) -> str:
        mode = value.strip().lower()
        if mode not in (SANDBOX_MODE, LIVE_MODE):
            raise ValueError(f"mode must be '{SANDBOX_MODE}' or '{LIVE_MODE}', got {value!r}")
        return mode

    def to_config(self) -> dict[str, str]:
        """Render as the string map the core consumes; unset keys are omitted."""
        config = {
            APPLICATION_MODE: self.mode,
            REQUEST_RETRIES: str(self.request_retries),
            CONNECTION_TIMEOUT: str(self.connection_timeout),
        }
        optional = {
            CLIENT_ID: self.client_id,
            CLIENT_SECRET: (
                self.client_secret.get_secret_value() if self.client_secret is not None else None
            ),
            OAUTH_ENDPOINT: self.oauth_endpoint,
            ENDPOINT: self.endpoint,
            TRUSTED_CERTIFICATE_LOCATION: (
                str(self.trusted_certificate_location)
                if self.trusted_certificate_location is not None
                else None
            ),
        }
        config.update({k: v for k, v in optional.items() if v})
        return config


_settings_lock = threading.Lock()
_settings: SdkSettings | None = None


def load_settings() -> SdkSettings:
    """
    Return the process-wide SdkSettings, created on first use.

    Raises ConfigError when the PAYPAL_* settings do not validate.
    """
    global _settings
    with _settings_lock:
        if _settings is None:
            try:
                _settings = SdkSettings()
            except ValidationError as exc:
                fields = ", ".join(".".join(map(str, error["loc"])) for error in exc.errors())
                raise ConfigError(f"Invalid PAYPAL_* settings: {fields}") from exc
        return _settings
