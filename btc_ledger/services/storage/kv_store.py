"""
On-Device Key-Value Store

The local backend persists exactly three values, each under its own stable
key: the transaction collection, the version record and the backup slot.
Values are JSON text, so a corrupted value can be detected per key.

DESIGN DECISION: Store handles are injected into every component that needs
them instead of living in a module-level singleton. Tests pass an
``InMemoryStore``; the application passes a ``JSONFileStore``.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from btc_ledger.services.storage.interface import (
    CorruptedDataError,
    StorageError,
    StorageQuotaExceededError,
)


class KeyValueStore(ABC):
    """Minimal string-valued store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Raises:
            StorageQuotaExceededError: If the write exceeds the quota
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        pass

    def get_json(self, key: str):
        """
        Parse the JSON value under ``key``.

        Returns None when the key is absent.

        Raises:
            CorruptedDataError: If the value is not valid JSON
        """
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise CorruptedDataError(f"Value under {key!r} is not valid JSON: {e}")

    def set_json(self, key: str, value) -> None:
        self.set(key, json.dumps(value, default=str))


def _check_quota(entries: dict[str, str], max_size_bytes: Optional[int]) -> None:
    if max_size_bytes is None:
        return
    size = sum(len(k.encode("utf-8")) + len(v.encode("utf-8")) for k, v in entries.items())
    if size > max_size_bytes:
        raise StorageQuotaExceededError(
            f"Store quota exceeded: {size} bytes > {max_size_bytes} bytes"
        )


class InMemoryStore(KeyValueStore):
    """Dict-backed store for tests and ephemeral sessions."""

    def __init__(self, max_size_bytes: Optional[int] = None):
        self._data: dict[str, str] = {}
        self._max_size_bytes = max_size_bytes

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        candidate = dict(self._data)
        candidate[key] = value
        _check_quota(candidate, self._max_size_bytes)
        self._data = candidate

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JSONFileStore(KeyValueStore):
    """
    Store backed by a single JSON document on disk.

    Each write replaces the file atomically (temp file + rename) so a crash
    mid-write leaves the previous contents intact. Several processes may share
    the file; the last writer wins per write, which the version-gated
    migration and id-keyed merge tolerate.
    """

    def __init__(
        self,
        path: Union[str, Path],
        max_size_bytes: Optional[int] = None,
    ):
        self._path = Path(path).expanduser()
        self._max_size_bytes = max_size_bytes

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, encoding="utf-8") as handle:
                data = json.load(handle)
        except ValueError as e:
            raise CorruptedDataError(f"Store file {self._path} is not valid JSON: {e}")
        except OSError as e:
            raise StorageError(f"Failed to read store file {self._path}: {e}")

        if not isinstance(data, dict):
            raise CorruptedDataError(f"Store file {self._path} does not hold an object")
        return {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in data.items()}

    def _write_all(self, entries: dict[str, str]) -> None:
        _check_quota(entries, self._max_size_bytes)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self._path.name}.",
                dir=str(self._path.parent),
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(entries, handle)
                os.replace(tmp_path, self._path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write store file {self._path}: {e}")

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        entries = self._read_all()
        entries[key] = value
        self._write_all(entries)

    def remove(self, key: str) -> None:
        entries = self._read_all()
        if key in entries:
            del entries[key]
            self._write_all(entries)

    def keys(self) -> list[str]:
        return list(self._read_all())
