"""
Session-scoped record of assets moved out during the current build.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_SESSION_KEY = "build_excluder.excluded_paths"
PATH_DELIMITER = "\n"


class SessionStore(Protocol):
    """Keyed string storage shared by the pre-build and post-build hooks."""

    def get(self, key: str, default: str = "") -> str: ...

    def set(self, key: str, value: str) -> None: ...

    def erase(self, key: str) -> None: ...


class InMemorySessionStore:
    """Process-lifetime store, lost when the process exits."""

    def __init__(self):
        self._values: Dict[str, str] = {}

    def get(self, key: str, default: str = "") -> str:
        return self._values.get(key, default)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def erase(self, key: str) -> None:
        self._values.pop(key, None)


class FileSessionStore:
    """Store each key in a small file so separate instances see the same state.

    A single file holds a single key; the key name is written on the first
    line so a file written for another key is ignored.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def get(self, key: str, default: str = "") -> str:
        if not self.path.exists():
            return default
        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read session state {self.path}: {e}")
            return default

        stored_key, _, value = text.partition("\n")
        if stored_key != key:
            logger.warning(f"Ignoring session state for unknown key in {self.path}")
            return default
        return value

    def set(self, key: str, value: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(f"{key}\n{value}", encoding="utf-8")

    def erase(self, key: str) -> None:
        if self.get(key, default=None) is None:
            return
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


# Shared by every tracker built without an explicit store in this process
default_session_store = InMemorySessionStore()


class SessionTracker:
    """Remember which logical paths were excluded so they can be restored exactly."""

    def __init__(
        self, store: Optional[SessionStore] = None, key: str = DEFAULT_SESSION_KEY
    ):
        self.store = store if store is not None else default_session_store
        self.key = key

    def peek(self) -> List[str]:
        """Recorded paths, in recording order, without clearing them."""
        raw = self.store.get(self.key, "")
        return [path for path in raw.split(PATH_DELIMITER) if path]

    def record(self, path: str) -> bool:
        """
        Add a path to the session.

        Args:
            path: Logical asset path that was moved to holding

        Returns:
            False if the path is empty or cannot be stored
        """
        if not path or PATH_DELIMITER in path or "\r" in path:
            logger.warning(f"Cannot track asset path {path!r}")
            return False

        paths = self.peek()
        if path in paths:
            return True
        paths.append(path)
        try:
            self.store.set(self.key, PATH_DELIMITER.join(paths))
        except OSError as e:
            logger.error(f"Failed to record {path} in session state: {e}")
            return False
        return True

    def drain(self) -> List[str]:
        """Return every recorded path and clear the session."""
        paths = self.peek()
        self.clear()
        return paths

    def clear(self):
        try:
            self.store.erase(self.key)
        except OSError as e:
            logger.error(f"Failed to clear session state: {e}")

    def is_empty(self) -> bool:
        return not self.peek()
