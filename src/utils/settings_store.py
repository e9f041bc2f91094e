"""
File-based JSON storage for app settings.

Settings are read once at startup and written only when the user saves
them. Everything in between receives an explicit AppConfig value.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

from config import GOOGLE_MAPS_API_KEY, SETTINGS_PATH, TELEGRAM_BOT_TOKEN, TELEGRAM_CHAT_ID

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppConfig:
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    google_maps_api_key: str = ""

    @property
    def is_transport_configured(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    @classmethod
    def from_env(cls) -> "AppConfig":
        return cls(
            telegram_bot_token=TELEGRAM_BOT_TOKEN,
            telegram_chat_id=TELEGRAM_CHAT_ID,
            google_maps_api_key=GOOGLE_MAPS_API_KEY,
        )


class SettingsStore:
    """JSON file holding the saved AppConfig."""

    def __init__(self, path: Path = SETTINGS_PATH):
        """
        Args:
            path: Settings file location. Parent directory is created on save.
        """
        self.path = Path(path)

    def _read(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Corrupt settings file {self.path}: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Ignoring settings file {self.path}: expected an object")
            return None
        return data

    def load(self, defaults: Optional[AppConfig] = None) -> AppConfig:
        """
        Load saved settings over the defaults.

        Saved settings only apply when they include both Telegram fields;
        a partial file is ignored.

        Args:
            defaults: Values used when nothing valid is saved. Defaults to .env values.
        """
        config = defaults if defaults is not None else AppConfig.from_env()
        saved = self._read()
        if saved is None:
            return config

        if not (saved.get("telegram_bot_token") and saved.get("telegram_chat_id")):
            logger.warning(f"Ignoring settings file {self.path}: Telegram credentials incomplete")
            return config

        known = {f.name for f in fields(AppConfig)}
        overrides = {k: str(v) for k, v in saved.items() if k in known and v is not None}
        logger.debug(f"Loaded settings from {self.path}")
        return replace(config, **overrides)

    def save(self, config: AppConfig) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(asdict(config), f, indent=2)
        logger.info(f"Saved settings to {self.path}")

    def clear(self) -> bool:
        """Remove the settings file. Returns True if one existed."""
        if not self.path.exists():
            return False
        self.path.unlink()
        return True
