"""Settings with JSON persistence."""

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

from src.errors import ConfigurationError
from src.utils.logger import logger as LOGGER


HOME_ENV_VAR = "CHAPTERDL_HOME"
DEFAULT_HOME = Path.home() / ".chapterdl"
SETTINGS_FILENAME = "settings.json"

DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


def get_home_dir() -> Path:
    """Return the configuration directory, honouring CHAPTERDL_HOME."""
    value = os.environ.get(HOME_ENV_VAR)
    if value:
        return Path(value).expanduser()
    return DEFAULT_HOME


@dataclass
class Settings:
    """Runtime settings for the download engine."""

    storage_path: Optional[str] = None
    request_timeout: float = 30.0
    download_timeout: float = 60.0
    max_page_failure_ratio: float = 1.0
    job_ttl_seconds: float = 3600.0
    verify_images: bool = True
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self):
        for name in ("request_timeout", "download_timeout", "job_ttl_seconds"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive number, got {value!r}")
            setattr(self, name, float(value))

        ratio = self.max_page_failure_ratio
        if isinstance(ratio, bool) or not isinstance(ratio, (int, float)) or not 0 <= ratio <= 1:
            raise ConfigurationError(f"max_page_failure_ratio must be between 0 and 1, got {ratio!r}")
        self.max_page_failure_ratio = float(ratio)

        if not isinstance(self.verify_images, bool):
            raise ConfigurationError(f"verify_images must be a boolean, got {self.verify_images!r}")

    def storage_root(self, home: Optional[Path] = None) -> Path:
        """Return the directory holding staging and chapter folders."""
        if self.storage_path:
            return Path(self.storage_path).expanduser()
        return (home or get_home_dir()) / "downloads"


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load settings from disk, falling back to defaults.

    Args:
        path: Settings file, defaults to <home>/settings.json

    Returns:
        Settings instance
    """
    path = path or get_home_dir() / SETTINGS_FILENAME
    if not path.exists():
        LOGGER.debug(f"No settings file found at {path}, using defaults")
        return Settings()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        LOGGER.warning(f"Failed to read settings file {path}: {e}, using defaults")
        return Settings()

    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {path} must contain a JSON object")

    known = {f.name for f in fields(Settings)}
    for key in data:
        if key not in known:
            LOGGER.warning(f"Ignoring unknown setting: {key}")

    return Settings(**{k: v for k, v in data.items() if k in known})


def save_settings(settings: Settings, path: Optional[Path] = None) -> None:
    """Save settings to disk.

    Args:
        settings: Settings to persist
        path: Settings file, defaults to <home>/settings.json
    """
    path = path or get_home_dir() / SETTINGS_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(asdict(settings), f, indent=2, ensure_ascii=False)
    LOGGER.info(f"Settings saved to {path}")
