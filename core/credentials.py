"""
Credential Store - key-value settings file for the API token.

The panel keeps a single Replicate token under STORAGE_KEY_API_KEY. The
generation core never reads this file itself; callers fetch the token here
and pass it into each call.

Usage:
    store = CredentialStore()
    store.set_api_key("r8_...")
    token = store.get_api_key()
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from core.config import get_config

logger = logging.getLogger(__name__)

STORAGE_KEY_API_KEY = "kling_replicate_api_key"
ENV_API_KEY = "REPLICATE_API_TOKEN"


class CredentialStore:
    """JSON file backed key-value store with an environment fallback."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or get_config().storage.credentials_path).expanduser()

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning(f"Settings file {self.path} is not valid JSON, ignoring it")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return value if isinstance(value, str) and value else None

    def set(self, key: str, value: str):
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key: str):
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)

    def get_api_key(self) -> Optional[str]:
        """Stored token, or REPLICATE_API_TOKEN when nothing is stored."""
        return self.get(STORAGE_KEY_API_KEY) or os.getenv(ENV_API_KEY) or None

    def set_api_key(self, api_key: str):
        api_key = api_key.strip()
        if not api_key:
            raise ValueError("API key must not be empty")
        self.set(STORAGE_KEY_API_KEY, api_key)
        logger.info(f"API key saved to {self.path}")

    def clear_api_key(self):
        self.delete(STORAGE_KEY_API_KEY)


def mask_secret(value: str, visible: int = 4) -> str:
    """Mask all but the last few characters of a secret for display."""
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]
