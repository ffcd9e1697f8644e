"""Environment-driven settings for zeebe-testbed.

The core components (wait strategy, container handle, gateway client) take
explicit arguments. ``TestbedSettings`` only feeds the orchestration glue
and the CLI, so a CI job can swap the broker image or stretch the readiness
window without touching code::

    ZEEBE_TESTBED_IMAGE=camunda/zeebe:8.3.4
    ZEEBE_TESTBED_MAX_WAIT_SECONDS=90

Fields
──────
image                    : Broker image reference
gateway_port             : Exposed gateway port inside the container
ready_marker             : Log line that marks the broker as ready
poll_interval_seconds    : Readiness poll interval
max_wait_seconds         : Readiness max wait
connect_timeout_seconds  : Gateway channel-ready timeout
send_timeout_seconds     : Deadline applied to each command send
host                     : Host the runtime publishes ports on
keep_containers          : Skip teardown (debugging only)
log_level / log_json     : Logging configuration
"""

from __future__ import annotations

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from zeebe_testbed.core.errors import ConfigError
from zeebe_testbed.deploy.broker import ZEEBE


class TestbedSettings(BaseSettings):
    """Settings for a testbed run, read from ``ZEEBE_TESTBED_*`` env vars."""

    __test__ = False

    model_config = SettingsConfigDict(
        env_prefix="ZEEBE_TESTBED_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Broker ───────────────────────────────────────────────────
    image: str = ZEEBE.image
    gateway_port: int = Field(default=ZEEBE.gateway_port, gt=0, lt=65536)
    ready_marker: str = ZEEBE.ready_marker

    # ── Timing ───────────────────────────────────────────────────
    poll_interval_seconds: float = Field(default=1.0, gt=0)
    max_wait_seconds: float = Field(default=float(ZEEBE.startup_timeout), gt=0)
    connect_timeout_seconds: float = Field(default=10.0, gt=0)
    send_timeout_seconds: float = Field(default=30.0, gt=0)

    # ── Runtime ──────────────────────────────────────────────────
    host: str = "localhost"
    keep_containers: bool = False

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None


_settings_cache: dict[str, TestbedSettings] = {}


def get_settings(*, _force_reload: bool = False) -> TestbedSettings:
    """Load, validate, and cache a :class:`TestbedSettings` instance.

    Raises
    ------
    ConfigError
        If an environment override fails validation.
    """
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    try:
        settings = TestbedSettings()
    except ValidationError as exc:
        raise ConfigError(f"invalid testbed settings: {exc}", cause=exc) from exc
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    _settings_cache.clear()


__all__ = ["TestbedSettings", "get_settings", "clear_settings_cache"]
