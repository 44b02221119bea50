"""
Runtime configuration for the marketing command center.

Values come from ``config/settings.yaml``; a handful of deployment keys can
be overridden from the environment (or a ``.env`` file).  A missing YAML
file means every default applies.

Provides:
    - SchedulerSettings: Publication timeout, stuck recovery and startup retry
    - PlatformSettings: Social platform API settings
    - Settings: Top-level settings with both sections attached
    - get_settings(): Singleton accessor for Settings
    - validate_env(): Report which credentials are present at startup
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

from command_center.exceptions import ConfigurationError

# ---------------------------------------------------------------------------
# .env values become process environment before anything reads them
# ---------------------------------------------------------------------------
load_dotenv()

# ---------------------------------------------------------------------------
# Project root directory (parent of command_center/)
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)


# ===========================================================================
# SCHEDULER SETTINGS
# ===========================================================================


@dataclass
class SchedulerSettings:
    """
    Tuning knobs for the scheduling and publication core.

    Attributes:
        publish_timeout_seconds: Upper bound on one platform-publish call.
            Exceeding it records the item as ``FAILED`` / network-timeout.
        stuck_timeout_minutes: Items left in ``PUBLISHING`` longer than
            this (e.g. after a crash) are recovered as ``FAILED``.  Must
            exceed ``publish_timeout_seconds``.
        maintenance_interval_seconds: Period of the maintenance loop.
        rehydrate_max_attempts: Store read attempts at startup before the
            process gives up.
        rehydrate_base_delay: Initial backoff between those attempts.
        notify_on_success: Send an owner notification on ``PUBLISHED``.
        notify_on_failure: Send an owner notification on ``FAILED``.
    """

    publish_timeout_seconds: float = 30.0
    stuck_timeout_minutes: int = 10
    maintenance_interval_seconds: float = 60.0
    rehydrate_max_attempts: int = 3
    rehydrate_base_delay: float = 2.0
    notify_on_success: bool = True
    notify_on_failure: bool = True

    def __post_init__(self) -> None:
        if self.publish_timeout_seconds <= 0:
            raise ConfigurationError(
                f"publish_timeout_seconds must be positive, "
                f"got {self.publish_timeout_seconds}"
            )
        if self.stuck_timeout_minutes <= 0:
            raise ConfigurationError(
                f"stuck_timeout_minutes must be positive, "
                f"got {self.stuck_timeout_minutes}"
            )
        if self.rehydrate_max_attempts < 1:
            raise ConfigurationError(
                f"rehydrate_max_attempts must be >= 1, "
                f"got {self.rehydrate_max_attempts}"
            )
        # stuck recovery must never see a claim whose platform call can still finish
        if self.stuck_timeout_minutes * 60 <= self.publish_timeout_seconds:
            raise ConfigurationError(
                f"stuck_timeout_minutes ({self.stuck_timeout_minutes}) must be "
                f"longer than publish_timeout_seconds "
                f"({self.publish_timeout_seconds:g}s)"
            )


@dataclass
class PlatformSettings:
    """Settings shared by the social platform clients."""

    facebook_api_version: str = "v18.0"
    request_timeout_seconds: float = 30.0


# ===========================================================================
# SETTINGS
# ===========================================================================

# env var -> (section, attribute, cast)
_ENV_OVERRIDES: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "PUBLISH_TIMEOUT_SECONDS": ("scheduler", "publish_timeout_seconds", float),
    "STUCK_TIMEOUT_MINUTES": ("scheduler", "stuck_timeout_minutes", int),
    "MAINTENANCE_INTERVAL_SECONDS": ("scheduler", "maintenance_interval_seconds", float),
    "FACEBOOK_API_VERSION": ("platforms", "facebook_api_version", str),
    "LOG_LEVEL": ("", "log_level", str),
    "APP_URL": ("", "app_url", str),
}


@dataclass
class Settings:
    """Everything the process needs to know at startup.

    ``dashboard_url`` is the link embedded in owner notifications.
    """

    app_name: str = "Marketing Command Center"
    app_url: str = "http://localhost:3000"

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    platforms: PlatformSettings = field(default_factory=PlatformSettings)

    @property
    def dashboard_url(self) -> str:
        return f"{self.app_url.rstrip('/')}/dashboard"

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "Settings":
        """
        Build ``Settings`` from *path*, then apply ``_ENV_OVERRIDES``.

        Unknown keys inside a section are logged and dropped.

        Raises:
            ConfigurationError: If the YAML file exists but cannot be parsed,
                or an override holds an invalid value.
        """
        path = path or PROJECT_ROOT / "config" / "settings.yaml"

        data: Dict[str, Any] = {}
        if path.exists():
            try:
                with path.open(encoding="utf-8") as handle:
                    data = yaml.safe_load(handle) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(
                    f"Could not parse {path}: {exc}"
                ) from exc

        # -----------------------------------------------------------------
        # Flatten YAML into section dicts, then apply env overrides
        # -----------------------------------------------------------------
        top: Dict[str, Any] = {
            key: data[key]
            for key in ("app_name", "app_url", "log_level", "log_dir")
            if key in data
        }
        sections: Dict[str, Dict[str, Any]] = {
            "scheduler": _known_keys(SchedulerSettings, data.get("scheduler", {})),
            "platforms": _known_keys(PlatformSettings, data.get("platforms", {})),
        }

        for env_key, (section, attr_name, cast_fn) in _ENV_OVERRIDES.items():
            raw = os.environ.get(env_key)
            if raw is None:
                continue
            try:
                value = cast_fn(raw)
            except (ValueError, TypeError) as exc:
                raise ConfigurationError(
                    f"{env_key}={raw!r} is not a valid {cast_fn.__name__}"
                ) from exc
            target = sections[section] if section else top
            target[attr_name] = value

        return cls(
            scheduler=SchedulerSettings(**sections["scheduler"]),
            platforms=PlatformSettings(**sections["platforms"]),
            **top,
        )


def _known_keys(section_cls: type, values: Any) -> Dict[str, Any]:
    """Keep only the YAML keys that *section_cls* declares."""
    if not isinstance(values, dict):
        raise ConfigurationError(
            f"Section for {section_cls.__name__} must be a mapping, got {values!r}"
        )
    unknown = set(values) - set(section_cls.__dataclass_fields__)
    if unknown:
        logger.warning(
            "Ignoring unknown %s keys: %s", section_cls.__name__, sorted(unknown)
        )
    return {
        key: value for key, value in values.items()
        if key in section_cls.__dataclass_fields__
    }


# ===========================================================================
# CACHED SETTINGS
# ===========================================================================

_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """Load settings once and hand back the same object afterwards."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings.from_yaml()
    return _settings_instance


def reset_settings() -> None:
    """Forget the cached settings so the next call reloads them."""
    global _settings_instance
    _settings_instance = None


# ===========================================================================
# STARTUP CREDENTIAL CHECK
# ===========================================================================

# without these the store is unreachable
REQUIRED_ENV_VARS: List[str] = [
    "SUPABASE_URL",
    "SUPABASE_SERVICE_KEY",
]

# Optional: without them the matching platform reports invalid-credential
OPTIONAL_ENV_VARS: List[str] = [
    "FACEBOOK_PAGE_ID",
    "FACEBOOK_ACCESS_TOKEN",
    "INSTAGRAM_ACCOUNT_ID",
    "INSTAGRAM_ACCESS_TOKEN",
    "TIKTOK_ACCESS_TOKEN",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
]


def validate_env(strict: bool = True) -> Dict[str, bool]:
    """
    Map every known variable name to whether it is set and non-empty.

    With ``strict`` (the default) a missing Supabase variable raises
    ``ConfigurationError`` instead of being reported.
    """
    status = {
        var: bool(os.environ.get(var))
        for var in REQUIRED_ENV_VARS + OPTIONAL_ENV_VARS
    }
    missing = [var for var in REQUIRED_ENV_VARS if not status[var]]

    if strict and missing:
        raise ConfigurationError(
            f"Supabase is not configured, set {', '.join(missing)} "
            "(see .env.example)"
        )

    return status


__all__ = [
    "SchedulerSettings",
    "PlatformSettings",
    "Settings",
    "get_settings",
    "reset_settings",
    "validate_env",
    "REQUIRED_ENV_VARS",
    "OPTIONAL_ENV_VARS",
    "PROJECT_ROOT",
]
