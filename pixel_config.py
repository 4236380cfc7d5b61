import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

ACCESS_TOKEN_KEY = "FACEBOOK_PIXEL_ACCESS_TOKEN"
PIXEL_ID_KEY = "FACEBOOK_PIXEL_ID"
TEST_EVENT_CODE_KEY = "FACEBOOK_PIXEL_TEST_EVENT_CODE"
API_VERSION_KEY = "FACEBOOK_PIXEL_API_VERSION"
TIMEOUT_KEY = "FACEBOOK_PIXEL_TIMEOUT"
ENVIRONMENT_KEY = "APP_ENV"

DEFAULT_API_VERSION = "v17.0"
DEFAULT_ENVIRONMENT = "production"
DEFAULT_TIMEOUT = 10.0


class ConfigurationError(ValueError):
    pass


@dataclass(frozen=True)
class PixelSettings:
    access_token: str
    pixel_id: str
    test_event_code: Optional[str] = None
    environment: str = DEFAULT_ENVIRONMENT
    api_version: str = DEFAULT_API_VERSION
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self):
        if not (self.access_token or "").strip():
            raise ConfigurationError(f"{ACCESS_TOKEN_KEY} is not configured")
        if not (self.pixel_id or "").strip():
            raise ConfigurationError(f"{PIXEL_ID_KEY} is not configured")

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def active_test_event_code(self) -> Optional[str]:
        # Test codes route events to the sandbox stream, never in production
        if self.is_production:
            return None
        return self.test_event_code or None


SETTING_KEYS = (
    ACCESS_TOKEN_KEY,
    PIXEL_ID_KEY,
    TEST_EVENT_CODE_KEY,
    API_VERSION_KEY,
    TIMEOUT_KEY,
    ENVIRONMENT_KEY,
)


def load_postman_environment_values(env_json: Path) -> dict[str, str]:
    """
    Pixel settings from a Postman environment export. Only the SETTING_KEYS
    entries that are enabled and have a value are returned; a missing file
    gives an empty dict.
    """
    if not env_json.exists():
        return {}
    data = json.loads(env_json.read_text(encoding="utf-8"))
    settings = {}
    for entry in data.get("values") or []:
        if not isinstance(entry, dict) or entry.get("enabled") is False:
            continue
        if entry.get("key") in SETTING_KEYS and entry.get("value") is not None:
            settings[entry["key"]] = str(entry["value"])
    return settings


def settings_from_mapping(values: Mapping[str, object]) -> PixelSettings:
    """
    Build settings from any mapping holding the FACEBOOK_PIXEL_* keys
    (os.environ, a Flask app.config, a Postman environment).
    """
    raw_timeout = values.get(TIMEOUT_KEY)
    if raw_timeout in (None, ""):
        timeout = DEFAULT_TIMEOUT
    else:
        try:
            timeout = float(raw_timeout)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"{TIMEOUT_KEY} must be a number, got {raw_timeout!r}") from e

    return PixelSettings(
        access_token=str(values.get(ACCESS_TOKEN_KEY) or ""),
        pixel_id=str(values.get(PIXEL_ID_KEY) or ""),
        test_event_code=values.get(TEST_EVENT_CODE_KEY) or None,
        environment=str(values.get(ENVIRONMENT_KEY) or DEFAULT_ENVIRONMENT),
        api_version=str(values.get(API_VERSION_KEY) or DEFAULT_API_VERSION),
        timeout=timeout,
    )


def load_settings(env_file: Optional[str] = None, postman_env: Optional[Path] = None) -> PixelSettings:
    load_dotenv(env_file)

    values: dict[str, object] = dict(os.environ)
    if postman_env is not None:
        values.update(load_postman_environment_values(Path(postman_env)))
    return settings_from_mapping(values)
