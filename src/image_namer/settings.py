"""Durable settings: key-value stores, the settings document and debounced saving."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol

import pydantic
import typer

from .models import ConnectionState, Settings

logger = logging.getLogger(__name__)

APP_NAME = "image-namer"
SETTINGS_KEY = "image-namer-settings"
SAVE_DELAY = 0.1  # seconds


def default_settings_path() -> Path:
    """Location of the settings file in the per-user application directory."""
    return Path(typer.get_app_dir(APP_NAME)) / "settings.json"


class KeyValueStore(Protocol):
    """A durable string-keyed blob store."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryStore:
    """In-memory key-value store."""

    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class JsonFileStore:
    """Key-value store kept as a single JSON object on disk."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read settings file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)


class SettingsStore:
    """Serializes the settings document to and from a key-value store."""

    def __init__(self, store: KeyValueStore, key: str = SETTINGS_KEY):
        self.store = store
        self.key = key

    def load(self) -> Settings:
        """
        Load the settings document, merged over the defaults.

        Missing fields fall back to defaults and unknown fields are ignored. An
        unreadable or invalid document yields the defaults.
        """
        raw = self.store.get(self.key)
        if not raw:
            return Settings()

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("settings document is not an object")
            settings = Settings.model_validate(data)
        except (ValueError, pydantic.ValidationError) as e:
            logger.warning("Ignoring unreadable settings, using defaults: %s", e)
            return Settings()

        # No test can be running at startup
        if settings.connection_state == ConnectionState.TESTING:
            settings.connection_state = ConnectionState.IDLE
        return settings

    def save(self, settings: Settings) -> None:
        self.store.set(self.key, settings.model_dump_json())


class DebouncedSaver:
    """
    Coalesces save requests into a single pending flush.

    Each request marks the slot dirty; under a running event loop it also
    re-arms one delayed flush. The snapshot is taken when the flush runs, so
    a burst of mutations produces one write of the latest state.
    """

    def __init__(
        self,
        snapshot: Callable[[], Settings],
        settings_store: SettingsStore,
        delay: float = SAVE_DELAY,
    ):
        self._snapshot = snapshot
        self._settings_store = settings_store
        self._delay = delay
        self._dirty = False
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._dirty

    def schedule(self) -> None:
        self._dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Flushed explicitly by the owner
            return

        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self._delay, self.flush)

    def flush(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if not self._dirty:
            return

        try:
            self._settings_store.save(self._snapshot())
        except OSError as e:
            logger.error("Failed to save settings: %s", e)
            return

        self._dirty = False
        logger.debug("Settings saved")
