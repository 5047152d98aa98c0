"""
JSON file storage backend; the authoritative on-disk index format.
"""

from __future__ import annotations

import json
import logging
import os
import stat
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from .base import KnowledgeIndex, StorageError


logger = logging.getLogger(__name__)

# mode for a newly created index file; an existing file keeps its own
NEW_FILE_MODE = 0o644


class JsonFileStorage:
    """Persist the whole index as a single JSON document."""

    def __init__(self, path: str) -> None:
        self.path = str(Path(path).expanduser().resolve())

    def load(self) -> KnowledgeIndex | None:
        path = Path(self.path)
        if not path.exists():
            return None
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Cannot read index file {self.path}: {exc}") from exc

        try:
            payload = json.loads(raw.decode("utf-8"))
            if not isinstance(payload, dict):
                raise ValueError("index root must be a JSON object")
            return KnowledgeIndex.from_json(payload)
        except (ValueError, KeyError, TypeError, RecursionError) as exc:
            backup = self._move_aside_corrupt_file()
            logger.warning(
                "Index file %s is corrupt (%s); moved it to %s and starting empty",
                self.path,
                exc,
                backup,
            )
            return None

    def save(self, index: KnowledgeIndex) -> None:
        path = Path(self.path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(index.to_json(), f, ensure_ascii=False, separators=(",", ":"))
                os.chmod(tmp_name, self._target_mode())
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageError(f"Cannot write index file {self.path}: {exc}") from exc

    def _target_mode(self) -> int:
        try:
            return stat.S_IMODE(os.stat(self.path).st_mode)
        except FileNotFoundError:
            return NEW_FILE_MODE

    def _move_aside_corrupt_file(self) -> str:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        backup = f"{self.path}.corrupt-{stamp}"
        try:
            os.replace(self.path, backup)
        except OSError as exc:
            raise StorageError(
                f"Index file {self.path} is corrupt and could not be backed up: {exc}"
            ) from exc
        return backup
