"""File-backed key/value persistence for last-known client state."""
import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class LocalStorage:
    """
    Persists one JSON document at a fixed path.

    Writes go to a temporary file that replaces the target, so a crash mid-write
    leaves the previous state intact.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        """Location of the persisted document."""
        return self._path

    def load(self) -> dict[str, Any] | None:
        """Return the stored document, or None if absent or unreadable."""
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("local_storage_unreadable path=%s error=%s", self._path, e)
            return None
        if not isinstance(data, dict):
            logger.warning("local_storage_unexpected_shape path=%s", self._path)
            return None
        return data

    def save(self, data: dict[str, Any]) -> None:
        """Replace the stored document."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, default=str), encoding="utf-8")
        os.replace(tmp_path, self._path)

    def clear(self) -> None:
        """Remove the stored document if present."""
        self._path.unlink(missing_ok=True)
