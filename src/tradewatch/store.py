"""
Two-slot snapshot store.

Slots:
- current: snapshot captured by the running cycle
- previous: baseline the next cycle diffs against

Writes go through a temp file plus os.replace, and promote() is a single
os.replace of current onto previous, so at no point are both slots absent.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

import orjson
from pydantic import ValidationError

from tradewatch.contracts import Snapshot

logger = logging.getLogger(__name__)

CURRENT_FILENAME = "current.json"
PREVIOUS_FILENAME = "previous.json"


class SnapshotStore:
    """File-backed current/previous snapshot slots."""

    def __init__(self, state_dir: Path | str = ".") -> None:
        self._dir = Path(state_dir)

    @property
    def current_path(self) -> Path:
        return self._dir / CURRENT_FILENAME

    @property
    def previous_path(self) -> Path:
        return self._dir / PREVIOUS_FILENAME

    def has_previous(self) -> bool:
        return self.previous_path.exists()

    def save_current(self, snapshot: Snapshot) -> bool:
        """Persist snapshot into the current slot. Returns False on I/O failure."""
        try:
            self._atomic_write(self.current_path, snapshot.to_json())
        except OSError as e:
            logger.error(
                "Failed to save current snapshot",
                extra={"path": str(self.current_path), "error": str(e)},
            )
            return False
        logger.info("Saved current snapshot", extra={"models": len(snapshot.models)})
        return True

    def load_current(self) -> Snapshot | None:
        return self._load(self.current_path)

    def load_previous(self) -> Snapshot | None:
        """Load the baseline snapshot; None if absent or unreadable."""
        return self._load(self.previous_path)

    def promote(self) -> bool:
        """Atomically move current onto previous, discarding the old previous."""
        if not self.current_path.exists():
            logger.warning("No current snapshot to promote")
            return False
        try:
            os.replace(self.current_path, self.previous_path)
        except OSError as e:
            logger.error("Failed to promote snapshot", extra={"error": str(e)})
            return False
        logger.info("Promoted current snapshot to previous")
        return True

    def _load(self, path: Path) -> Snapshot | None:
        if not path.exists():
            logger.debug("Snapshot slot empty", extra={"path": str(path)})
            return None
        try:
            return Snapshot.from_json(path.read_bytes())
        except (OSError, orjson.JSONDecodeError, ValidationError) as e:
            logger.error(
                "Failed to load snapshot",
                extra={"path": str(path), "error": str(e)},
            )
            return None

    def _atomic_write(self, path: Path, data: bytes) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._dir, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
