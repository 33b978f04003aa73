from __future__ import annotations

from collections.abc import Iterator
import contextlib
from contextlib import contextmanager
import json
import logging
import os
from pathlib import Path
import re
import tempfile
from typing import Any, TextIO

from cashrecon.errors import PersistenceCorruptionError

JSONType = Any

__all__ = ["FileStore"]

logger = logging.getLogger(__name__)


class FileStore:
    """
    Device-scoped durable key-value store holding one JSON document per key.

    - Each key maps to a single JSON file under ``base_dir``.
    - Writes are atomic via write-to-temp + os.replace(), so a crash leaves
      either the previous or the new document, never a torn one.
    - Keys are validated to avoid path traversal or unsafe filenames.
    """

    def __init__(self, base_dir: str | Path) -> None:
        self.base_dir = Path(base_dir).expanduser().resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    # -------- Public API --------

    def get(self, key: str) -> JSONType | None:
        """Return the stored document, or None when the key was never written.

        Raises:
            PersistenceCorruptionError: If the file exists but cannot be read
                or decoded.
        """
        path = self._key_path(key)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as exc:
            logger.debug("FileStore JSON decode failed at %s", path)
            raise PersistenceCorruptionError(f"Unreadable JSON in {path.name}") from exc
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("FileStore read failed at %s: %s", path, exc)
            raise PersistenceCorruptionError(f"Cannot read {path.name}: {exc}") from exc

    def set(self, key: str, value: JSONType) -> None:
        serialized = json.dumps(value, ensure_ascii=True, sort_keys=True)
        with self._atomic_writer(key) as tmp_file:
            tmp_file.write(serialized)

    def exists(self, key: str) -> bool:
        return self._key_path(key).exists()

    def delete(self, key: str) -> bool:
        path = self._key_path(key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.debug("FileStore delete failed at %s: %s", path, exc)
            return False

    def path_for(self, key: str) -> str:
        return str(self._key_path(key))

    # -------- Internal helpers --------

    _UNSAFE = re.compile(r"[^A-Za-z0-9._-]")

    def _key_path(self, key: str) -> Path:
        if not isinstance(key, str) or not key.strip():
            raise ValueError("key must be a non-empty string")
        if ".." in key or any(sep in key for sep in ("/", "\\", os.sep)):
            raise ValueError(f"key {key!r} would escape the store directory")
        filename = self._UNSAFE.sub("_", "_".join(key.split()))
        return self.base_dir / f"{filename}.json"

    @contextmanager
    def _atomic_writer(self, key: str) -> Iterator[TextIO]:
        """Yield a temp file in the store directory; on clean exit it replaces ``key``."""
        target = self._key_path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.base_dir, prefix=".tmp", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                yield handle
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name)
            raise
