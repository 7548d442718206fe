"""
Persisted user settings.

A small JSON key-value file holding the webhook URL and the debug output
flag. Values are read when they are used, so changes take effect without a
restart.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger("video_uploader")

DEFAULT_WEBHOOK_URL = "https://api.thunk.ai/webhook"

DEFAULTS: Dict[str, Any] = {
    "webhookURL": DEFAULT_WEBHOOK_URL,
    "debugOutputEnabled": False,
}


class AppSettings:
    """Key-value settings with defaults, persisted on every change"""

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._values: Dict[str, Any] = dict(DEFAULTS)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            stored = json.loads(self.path.read_text())
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable settings file {self.path}: {e}")
            return
        if not isinstance(stored, dict):
            logger.warning(f"Ignoring malformed settings file {self.path}")
            return
        for key in DEFAULTS:
            if key in stored:
                self._values[key] = stored[key]

    def _save(self) -> None:
        # Caller holds the lock
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._values, indent=2))
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Any:
        with self._lock:
            return self._values.get(key, DEFAULTS.get(key))

    def set(self, key: str, value: Any) -> None:
        if key not in DEFAULTS:
            raise KeyError(f"Unknown setting: {key}")
        with self._lock:
            self._values[key] = value
            self._save()

    @property
    def webhook_url(self) -> str:
        return str(self.get("webhookURL") or "")

    @webhook_url.setter
    def webhook_url(self, value: str) -> None:
        self.set("webhookURL", value)

    @property
    def debug_output_enabled(self) -> bool:
        return bool(self.get("debugOutputEnabled"))

    @debug_output_enabled.setter
    def debug_output_enabled(self, value: bool) -> None:
        self.set("debugOutputEnabled", bool(value))

    def reset_to_defaults(self) -> None:
        with self._lock:
            self._values = dict(DEFAULTS)
            self._save()
        logger.info("Settings reset to defaults")
