from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Protocol

from pydantic_core import to_jsonable_python

from coinconvert.errors import InvalidKeyError

logger = logging.getLogger(__name__)

_RESERVED_KEY_CHARS = re.compile(r"[{}()/@:]")


def validate_key(key: object) -> str:
    """Return ``key`` unchanged or raise :class:`InvalidKeyError`."""
    if not isinstance(key, str) or not key:
        raise InvalidKeyError("Invalid cache key provided: key must be a non-empty string.")
    if _RESERVED_KEY_CHARS.search(key):
        raise InvalidKeyError(f"Invalid cache key provided: {key!r} contains a reserved character.")
    return key


class KeyValueStore(Protocol):
    """Durable key/value contract. Records never expire on their own."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> bool: ...

    def delete(self, key: str) -> bool: ...

    def has(self, key: str) -> bool: ...

    def get_many(self, keys: Iterable[str], default: Any = None) -> Dict[str, Any]: ...

    def set_many(self, values: Mapping[str, Any]) -> bool: ...

    def delete_many(self, keys: Iterable[str]) -> bool: ...

    def clear(self) -> bool: ...


class JsonFileStore:
    """Single JSON document holding every record.

    Each write replaces the whole file through ``os.replace`` so readers see
    either the previous or the new document.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _safe_read(self) -> Dict[str, Any]:
        """Read the document; if missing or unreadable, return an empty dict."""
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.warning("Cache file unreadable at %s, treating as empty: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Cache file at %s does not hold an object, treating as empty", self.path)
            return {}
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, separators=(",", ":"))
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def get(self, key: str, default: Any = None) -> Any:
        validate_key(key)
        return self._safe_read().get(key, default)

    def set(self, key: str, value: Any) -> bool:
        validate_key(key)
        encoded = to_jsonable_python(value, by_alias=True)
        with self._lock:
            data = self._safe_read()
            data[key] = encoded
            self._write(data)
        logger.debug("Stored record %s in %s", key, self.path)
        return True

    def delete(self, key: str) -> bool:
        validate_key(key)
        with self._lock:
            data = self._safe_read()
            if key not in data:
                return False
            del data[key]
            self._write(data)
        return True

    def has(self, key: str) -> bool:
        validate_key(key)
        return key in self._safe_read()

    def get_many(self, keys: Iterable[str], default: Any = None) -> Dict[str, Any]:
        keys = [validate_key(key) for key in keys]
        data = self._safe_read()
        return {key: data.get(key, default) for key in keys}

    def set_many(self, values: Mapping[str, Any]) -> bool:
        encoded = {validate_key(key): to_jsonable_python(value, by_alias=True) for key, value in values.items()}
        with self._lock:
            data = self._safe_read()
            data.update(encoded)
            self._write(data)
        return True

    def delete_many(self, keys: Iterable[str]) -> bool:
        keys = [validate_key(key) for key in keys]
        with self._lock:
            data = self._safe_read()
            for key in keys:
                data.pop(key, None)
            self._write(data)
        return True

    def clear(self) -> bool:
        with self._lock:
            if self.path.exists():
                self.path.unlink()
        logger.info("Cleared cache file %s", self.path)
        return True
