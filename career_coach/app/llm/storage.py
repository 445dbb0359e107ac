"""Persistent key/value stores backing the second tier of the result cache.

Every store satisfies the `KeyValueStore` protocol through structural typing.
Stores are free to raise; the cache wraps every call and treats a failure as
"not stored".
"""

import base64
import logging
import os
from pathlib import Path
from typing import Protocol, runtime_checkable

import redis

log = logging.getLogger(__name__)


class StoreQuotaError(Exception):
    """Raised when a store refuses a write because it is full."""


@runtime_checkable
class KeyValueStore(Protocol):
    """Synchronous string key/value store with key enumeration."""

    def get_item(self, key: str) -> str | None:
        """Return the stored value, or None when the key is absent."""
        ...

    def set_item(self, key: str, value: str) -> None:
        """Store `value` under `key`, replacing any previous value."""
        ...

    def remove_item(self, key: str) -> None:
        """Remove `key`. Removing an absent key is not an error."""
        ...

    def keys(self, prefix: str = "") -> list[str]:
        """Return every stored key starting with `prefix`."""
        ...


class MemoryStore:
    """Dict-backed store.

    Sharing one instance between two caches simulates a process restart
    where the persistent tier survives and the in-process tier does not.

    Args:
        quota_bytes (int | None): Optional limit on the total size of stored
            keys and values. Writes that would exceed it raise `StoreQuotaError`.

    """

    def __init__(self, quota_bytes: int | None = None):
        self._items: dict[str, str] = {}
        self._quota_bytes = quota_bytes

    def _size_with(self, key: str, value: str) -> int:
        size = len(key) + len(value)
        for existing_key, existing_value in self._items.items():
            if existing_key != key:
                size += len(existing_key) + len(existing_value)
        return size

    def get_item(self, key: str) -> str | None:
        """Return the stored value, or None when the key is absent."""
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        """Store `value` under `key`.

        Args:
            key (str): The key.
            value (str): The value.

        Raises:
            StoreQuotaError: The write would take the store over its quota. Nothing is stored.

        """
        if self._quota_bytes is not None and self._size_with(key, value) > self._quota_bytes:
            raise StoreQuotaError(f"Storing '{key}' would exceed the {self._quota_bytes} byte quota")
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        """Return every stored key starting with `prefix`."""
        return [key for key in self._items if key.startswith(prefix)]


class JsonFileStore:
    """Store keeping one file per key inside a directory.

    Keys are encoded with URL-safe base64 so that any key maps to a valid
    file name. Values are written as UTF-8 text.

    Args:
        directory (str | Path): Where the files live. Created on first write.

    Notes:
        1. Writes go to a temporary file that is then renamed over the target,
           so a reader never sees a half-written value.
        2. This class performs disk access on every operation.

    """

    _suffix = ".json"

    def __init__(self, directory: str | Path):
        self._directory = Path(directory)

    def _path_for(self, key: str) -> Path:
        encoded = base64.urlsafe_b64encode(key.encode("utf-8")).decode("ascii")
        return self._directory / f"{encoded}{self._suffix}"

    def _key_for(self, path: Path) -> str:
        encoded = path.name[: -len(self._suffix)]
        return base64.urlsafe_b64decode(encoded.encode("ascii")).decode("utf-8")

    def get_item(self, key: str) -> str | None:
        """Read the file for `key`, or return None when there is none."""
        path = self._path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        """Write `value` to the file for `key`.

        Args:
            key (str): The key.
            value (str): The value, written as UTF-8 text.

        Notes:
            1. Create the directory if needed.
            2. Write a temporary file beside the target and rename it into place.

        """
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._path_for(key)
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_text(value, encoding="utf-8")
        os.replace(tmp_path, path)

    def remove_item(self, key: str) -> None:
        self._path_for(key).unlink(missing_ok=True)

    def keys(self, prefix: str = "") -> list[str]:
        """Decode the file names in the directory and return the keys starting with `prefix`."""
        if not self._directory.exists():
            return []
        found = []
        for path in self._directory.glob(f"*{self._suffix}"):
            key = self._key_for(path)
            if key.startswith(prefix):
                found.append(key)
        return found


class RedisStore:
    """Redis implementation of the persistent tier.

    Entry expiry is still decided by the cache from the stored `written_at`
    and `ttl`; Redis-side expiry is not used.

    Args:
        client (redis.Redis): A client created with `decode_responses=True`.

    """

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisStore":
        """Create a store connected to `url`.

        Args:
            url (str): A redis:// or rediss:// connection URL.

        Returns:
            RedisStore: The connected store. No network access happens until first use.

        """
        return cls(redis.from_url(url, decode_responses=True))

    def get_item(self, key: str) -> str | None:
        return self._client.get(key)

    def set_item(self, key: str, value: str) -> None:
        """Store `value` under `key` with no Redis-side expiry.

        Raises:
            StoreQuotaError: Redis refused the write because it is out of memory.
            redis.exceptions.RedisError: Any other Redis failure.

        """
        try:
            self._client.set(key, value)
        except redis.exceptions.ResponseError as e:
            if "OOM" in str(e):
                raise StoreQuotaError(str(e)) from e
            raise

    def remove_item(self, key: str) -> None:
        self._client.delete(key)

    def keys(self, prefix: str = "") -> list[str]:
        """Return the keys starting with `prefix`, found with SCAN rather than KEYS."""
        return list(self._client.scan_iter(match=f"{prefix}*"))

    def health_check(self) -> bool:
        """Check if Redis is accessible.

        Returns:
            bool: True if the server answered a ping, False otherwise.

        """
        try:
            return bool(self._client.ping())
        except redis.exceptions.RedisError:
            _msg = "Redis health check failed"
            log.warning(_msg)
            return False


def create_store(
    kind: str,
    cache_dir: str | None = None,
    redis_url: str | None = None,
) -> KeyValueStore:
    """Create the persistent store selected by configuration.

    Args:
        kind (str): One of "memory", "file" or "redis".
        cache_dir (str | None): Directory for the "file" store.
        redis_url (str | None): Connection URL for the "redis" store.

    Returns:
        KeyValueStore: The configured store.

    Raises:
        ValueError: If `kind` is unknown or a required location is missing.

    """
    _msg = f"create_store starting for kind '{kind}'"
    log.debug(_msg)

    if kind == "memory":
        return MemoryStore()
    if kind == "file":
        if not cache_dir:
            raise ValueError("A cache directory is required for the file store.")
        return JsonFileStore(cache_dir)
    if kind == "redis":
        if not redis_url:
            raise ValueError("A Redis URL is required for the redis store.")
        return RedisStore.from_url(redis_url)
    raise ValueError(f"Invalid cache store: {kind}")
