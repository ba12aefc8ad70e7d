"""
Classification External Integrations
====================================

YAML-backed snapshot managers with watchdog hot reload:
- KeywordConfigManager: team keywords and trigger vocabularies
- UserDirectoryManager: user id -> display name, title, role, team

A reload parses the whole file first and only then swaps the reference, so
readers keep seeing the previous snapshot until the new one is complete.
"""

import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Generic, Optional, TypeVar

import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from incident_desk.classification.application.services import (
    IKeywordProvider, IUserDirectoryProvider
)
from incident_desk.classification.domain import (
    KeywordSnapshot, UserDirectorySnapshot
)
from incident_desk.core import ConfigurationException
from incident_desk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

SnapshotT = TypeVar("SnapshotT")


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler that reloads a manager when its file changes."""

    def __init__(self, manager: "WatchedYAMLManager", path: Path):
        self.manager = manager
        self.path = path
        super().__init__()

    def _matches(self, event) -> bool:
        if event.is_directory:
            return False
        return Path(event.src_path).resolve() == self.path.resolve()

    def on_modified(self, event):
        if self._matches(event):
            logger.info("Config file changed", extra={"path": str(self.path)})
            self.manager.reload()

    def on_created(self, event):
        self.on_modified(event)


class WatchedYAMLManager(ABC, Generic[SnapshotT]):
    """
    Thread-safe snapshot holder with hot-reload support.

    Subclasses define how a parsed YAML document becomes a snapshot.
    """

    kind = "config"

    def __init__(self):
        self._snapshot: Optional[SnapshotT] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    @abstractmethod
    def _default(self) -> SnapshotT:
        """Snapshot used when the file does not exist."""

    @abstractmethod
    def _build(self, data: dict) -> SnapshotT:
        """Validate a parsed YAML document into a snapshot."""

    def load(self, path: Path) -> SnapshotT:
        """Initial load. A malformed file is a startup error."""
        self._path = Path(path)
        snapshot = self._load_from_file(self._path)
        with self._lock:
            self._snapshot = snapshot
        return snapshot

    def _load_from_file(self, path: Path) -> SnapshotT:
        if not path.exists():
            logger.warning(
                f"{self.kind} file not found, using defaults",
                extra={"path": str(path)}
            )
            return self._default()

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationException(
                f"Invalid YAML in {path}", {"error": str(e)}
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationException(f"{path} must contain a mapping")

        try:
            return self._build(data)
        except ValidationError as e:
            raise ConfigurationException(
                f"Invalid {self.kind} in {path}", {"error": str(e)}
            ) from e

    def reload(self) -> bool:
        """Reload from file, keeping the previous snapshot on failure."""
        if self._path is None:
            return False

        try:
            snapshot = self._load_from_file(self._path)
        except ConfigurationException as e:
            logger.error(
                f"Failed to reload {self.kind}",
                extra={"path": str(self._path), "error": e.message}
            )
            return False

        with self._lock:
            self._snapshot = snapshot
        logger.info(f"{self.kind} reloaded", extra={"path": str(self._path)})
        return True

    def start_watching(self) -> None:
        """
        Start watching the file for changes.

        Skips watching when the directory doesn't exist or inotify is
        unavailable (some containers).
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.parent.exists():
            logger.info(
                f"{self.kind} directory doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            self._observer.schedule(
                ConfigFileHandler(self, self._path),
                str(self._path.parent),
                recursive=False
            )
            self._observer.start()
            logger.info(f"Started watching {self.kind}", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning(f"File watching not available, using static {self.kind}: {e}")
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def get_snapshot(self) -> SnapshotT:
        with self._lock:
            snapshot = self._snapshot
        if snapshot is None:
            raise RuntimeError(f"{self.kind} not loaded")
        return snapshot


class KeywordConfigManager(WatchedYAMLManager[KeywordSnapshot], IKeywordProvider):
    """
    Keyword vocabulary file.

    Expected layout::

        teams:
          it: {words: [internet, wifi], phrases: [no hay senal]}
        references:            # optional, overrides the built-in table
          it: [it, sistemas]
        confirmation: {words: [listo], phrases: [ya quedo]}
        cancellation: {words: [cancelar], phrases: []}
        feedback_request: {words: [retro], phrases: []}
    """

    kind = "keywords"

    def _default(self) -> KeywordSnapshot:
        return KeywordSnapshot()

    def _build(self, data: dict) -> KeywordSnapshot:
        fields: dict[str, Any] = {"teams": data.get("teams") or {}}
        for key in ("references", "confirmation", "cancellation", "feedback_request"):
            if data.get(key) is not None:
                fields[key] = data[key]
        return KeywordSnapshot(**fields)


class UserDirectoryManager(WatchedYAMLManager[UserDirectorySnapshot], IUserDirectoryProvider):
    """
    User directory file.

    Expected layout::

        "5216621234567@c.us":
          display_name: Ana
          title: Supervisor
          role: admin
          team: it
    """

    kind = "user directory"

    def _default(self) -> UserDirectorySnapshot:
        return UserDirectorySnapshot()

    def _build(self, data: dict) -> UserDirectorySnapshot:
        users = data.get("users", data)
        return UserDirectorySnapshot(users={str(k): v for k, v in users.items()})
