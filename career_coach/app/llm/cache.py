import json
import logging
import re
import string
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable

from career_coach.app.llm.storage import KeyValueStore

log = logging.getLogger(__name__)

DEFAULT_STORAGE_PREFIX = "coach:cache:"
DEFAULT_CATEGORY = "general"

_BASE36_DIGITS = string.digits + string.ascii_lowercase


class TTLClass(str, Enum):
    """Named expiration buckets used to parameterize cache writes."""

    CLASSIFICATION = "classification"
    ANALYSIS = "analysis"
    STORY_MATCH = "story_match"
    RESEARCH = "research"


DEFAULT_TTL_SECONDS: dict[TTLClass, float] = {
    TTLClass.CLASSIFICATION: 60 * 60,
    TTLClass.ANALYSIS: 24 * 60 * 60,
    TTLClass.STORY_MATCH: 24 * 60 * 60,
    TTLClass.RESEARCH: 7 * 24 * 60 * 60,
}


@dataclass(frozen=True)
class CacheEntry:
    """A cached value together with the time it was written and its lifetime.

    Attributes:
        data (Any): The cached value. Must be JSON-serializable to reach the persistent tier.
        written_at (float): Seconds since the epoch at write time.
        ttl (float): Lifetime in seconds.

    """

    data: Any
    written_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.written_at < self.ttl


@dataclass(frozen=True)
class CacheStats:
    """Sizes of both cache tiers."""

    memory_size: int
    storage_keys: int


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def stable_hash(text: str) -> str:
    """Hash a string into a short, stable, non-cryptographic base-36 token.

    This is the classic `h * 31 + c` string hash folded to a signed 32-bit
    integer. Collisions are possible and accepted; the value is only used to
    keep cache keys short.

    Args:
        text (str): The text to hash.

    Returns:
        str: The absolute value of the 32-bit hash, in base 36.

    """
    value = 0
    for char in text:
        value = ((value << 5) - value + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return _to_base36(abs(value))


def normalize_text(text: str) -> str:
    """Normalize free text so that cosmetic edits do not change its cache key.

    Args:
        text (str): Text such as a pasted job description.

    Returns:
        str: The text lowercased, with whitespace collapsed and punctuation removed.

    """
    lowered = text.lower()
    collapsed = re.sub(r"\s+", " ", lowered)
    return re.sub(r"[^\w\s]", "", collapsed).strip()


def make_key(namespace: str, *key_inputs: Any, category: str = DEFAULT_CATEGORY) -> str:
    """Build a cache key of the form `{namespace}:{category}:{hash}`.

    Args:
        namespace (str): The use case, e.g. "analysis" or "research".
        *key_inputs (Any): The semantic inputs of the request. Must be JSON-serializable.
        category (str): A sub-partition of the namespace.

    Returns:
        str: The cache key.

    Notes:
        1. The inputs are serialized as compact JSON with sorted object keys so
           that equal inputs always produce the same text.
        2. The text is hashed with `stable_hash`.

    """
    serialized = json.dumps(list(key_inputs), sort_keys=True, separators=(",", ":"), default=str)
    return f"{namespace}:{category}:{stable_hash(serialized)}"


class ResultCache:
    """Two-tier key/value cache with lazy per-entry expiration.

    The first tier is an in-process dict; the second is a persistent
    `KeyValueStore` holding JSON-encoded entries under `storage_prefix + key`.
    The in-process tier is authoritative for the current process: persistent
    failures are logged and otherwise ignored.

    Args:
        store (KeyValueStore | None): The persistent tier. When None, only the
            in-process tier is used.
        storage_prefix (str): Namespace applied to every persistent key.
        clock (Callable[[], float]): Returns the current time in seconds.

    Notes:
        1. `get` and `set` never await; each read-check-mutate sequence runs
           without yielding to the event loop.
        2. Concurrent misses for the same key are not de-duplicated here.
        3. Expired persistent entries stay in the store until they are read,
           overwritten or cleared.

    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        storage_prefix: str = DEFAULT_STORAGE_PREFIX,
        clock: Callable[[], float] = time.time,
    ):
        self._memory: dict[str, CacheEntry] = {}
        self._store = store
        self._storage_prefix = storage_prefix
        self._clock = clock

    @property
    def storage_prefix(self) -> str:
        return self._storage_prefix

    def _storage_key(self, key: str) -> str:
        return f"{self._storage_prefix}{key}"

    def get(self, key: str) -> Any | None:
        """Return the cached value for `key`, or None when absent or expired.

        Args:
            key (str): The cache key.

        Returns:
            Any | None: The cached value.

        Notes:
            1. Check the in-process tier. A valid entry is returned; an expired one is deleted.
            2. Read the persistent tier. A valid entry is promoted into the
               in-process tier and returned; an expired one is removed from the store.
            3. Store errors and undecodable entries are treated as a miss.

        """
        now = self._clock()

        entry = self._memory.get(key)
        if entry is not None:
            if entry.is_valid(now):
                return entry.data
            del self._memory[key]

        if self._store is None:
            return None

        storage_key = self._storage_key(key)
        try:
            stored = self._store.get_item(storage_key)
            if stored is None:
                return None
            raw = json.loads(stored)
            entry = CacheEntry(data=raw["data"], written_at=float(raw["written_at"]), ttl=float(raw["ttl"]))
            if entry.is_valid(now):
                self._memory[key] = entry
                return entry.data
            self._store.remove_item(storage_key)
        except Exception as e:
            _msg = f"Ignoring persistent cache read failure for '{key}': {e!s}"
            log.warning(_msg)
        return None

    def set(self, key: str, data: Any, ttl: float) -> None:
        """Cache `data` under `key` for `ttl` seconds.

        Args:
            key (str): The cache key.
            data (Any): The value. Must be JSON-serializable to reach the persistent tier.
            ttl (float): Lifetime in seconds.

        """
        entry = CacheEntry(data=data, written_at=self._clock(), ttl=ttl)
        self._memory[key] = entry

        if self._store is None:
            return
        try:
            self._store.set_item(self._storage_key(key), json.dumps(asdict(entry)))
        except Exception as e:
            _msg = f"Persistent cache write failed for '{key}', keeping in-process copy only: {e!s}"
            log.warning(_msg)

    def remove(self, key: str) -> None:
        """Remove `key` from both tiers.

        Args:
            key (str): The cache key. Removing an absent key is not an error.

        Notes:
            1. The in-process entry is always dropped.
            2. A persistent removal failure is logged and otherwise ignored.

        """
        self._memory.pop(key, None)
        if self._store is None:
            return
        try:
            self._store.remove_item(self._storage_key(key))
        except Exception as e:
            _msg = f"Persistent cache removal failed for '{key}': {e!s}"
            log.warning(_msg)

    def clear(self, namespace: str | None = None) -> None:
        """Remove every entry, or only those under `namespace`.

        Args:
            namespace (str | None): When given, only keys starting with
                `"{namespace}:"` are removed from both tiers.

        Notes:
            1. Persistent keys are found by scanning the store for the storage prefix,
               so unrelated data in a shared store is left untouched.

        """
        _msg = f"clear starting for namespace '{namespace}'"
        log.debug(_msg)

        key_prefix = f"{namespace}:" if namespace else ""
        for key in [k for k in self._memory if k.startswith(key_prefix)]:
            del self._memory[key]

        if self._store is None:
            return
        try:
            for storage_key in self._store.keys(self._storage_key(key_prefix)):
                self._store.remove_item(storage_key)
        except Exception as e:
            _msg = f"Persistent cache clear failed: {e!s}"
            log.warning(_msg)

    def get_stats(self) -> CacheStats:
        """Count the entries held by each tier.

        Returns:
            CacheStats: The in-process entry count and the number of persistent
                keys under the storage prefix, expired ones included.

        Notes:
            1. When the store cannot be enumerated the persistent count is reported as 0.

        """
        storage_keys = 0
        if self._store is not None:
            try:
                storage_keys = len(self._store.keys(self._storage_prefix))
            except Exception as e:
                _msg = f"Could not count persistent cache keys: {e!s}"
                log.warning(_msg)
        return CacheStats(memory_size=len(self._memory), storage_keys=storage_keys)
