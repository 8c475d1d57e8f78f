"""
Key-value store for BlueMercantile collections.

Each key holds one JSON document (the pending registrations, approved users
and email logs are each stored as a whole list under a single key).

Rows carry a version counter. Writes made through ``mutate`` are
compare-and-set on the version that was read, so two admins acting on the
same collection cannot silently overwrite each other: the loser re-reads
and re-applies its change.

Supabase table layout (one row per key):

    create table kv_store_c7236e13 (
        key        text primary key,
        value      jsonb not null,
        version    integer not null default 1,
        updated_at timestamptz not null default now()
    );
"""

import copy
import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from config import config

logger = logging.getLogger(__name__)

PENDING_REGISTRATIONS = 'pending_registrations'
APPROVED_USERS = 'approved_users'
EMAIL_LOGS = 'email_logs'


class KVStoreError(Exception):
    pass


class ConcurrentUpdateError(KVStoreError):
    """Raised when a compare-and-set write keeps losing to other writers."""


class KVStore:
    """Base class: subclasses implement ``_read`` and ``_write``."""

    def __init__(self, max_retries: int = 5):
        self.max_retries = max_retries

    def _read(self, key: str) -> Tuple[Any, Optional[int]]:
        """Return (value, version). Version is None when the key does not exist."""
        raise NotImplementedError

    def _write(self, key: str, value: Any, expected_version: Optional[int]) -> bool:
        """Write value if the stored version still equals expected_version."""
        raise NotImplementedError

    def get(self, key: str, default: Any = None) -> Any:
        value, version = self._read(key)
        if version is None:
            return copy.deepcopy(default)
        return value

    def set(self, key: str, value: Any) -> None:
        """Unconditional write (last writer wins)."""
        for _ in range(self.max_retries):
            _, version = self._read(key)
            if self._write(key, value, version):
                return
        raise ConcurrentUpdateError(f"Could not write key '{key}'")

    def mutate(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        """
        Read-modify-write ``key`` under optimistic concurrency.

        ``fn`` receives the current value (or a copy of ``default``), may
        modify it in place and returns an arbitrary result that is passed
        back to the caller. If ``fn`` raises, nothing is written.

        Raises:
            ConcurrentUpdateError: if every attempt lost the race.
        """
        for attempt in range(1, self.max_retries + 1):
            value, version = self._read(key)
            if version is None:
                value = copy.deepcopy(default)
            result = fn(value)
            if self._write(key, value, version):
                return result
            logger.warning("Version conflict on '%s' (attempt %d/%d)", key, attempt, self.max_retries)
        raise ConcurrentUpdateError(
            f"Key '{key}' was modified concurrently {self.max_retries} times, giving up"
        )


class MemoryKVStore(KVStore):
    """Process-local backend used for development and tests."""

    def __init__(self, max_retries: int = 5):
        super().__init__(max_retries)
        self._rows: Dict[str, Tuple[str, int]] = {}
        self._lock = threading.Lock()

    def _read(self, key: str) -> Tuple[Any, Optional[int]]:
        with self._lock:
            row = self._rows.get(key)
        if row is None:
            return None, None
        raw, version = row
        return json.loads(raw), version

    def _write(self, key: str, value: Any, expected_version: Optional[int]) -> bool:
        raw = json.dumps(value)
        with self._lock:
            row = self._rows.get(key)
            current = row[1] if row else None
            if current != expected_version:
                return False
            self._rows[key] = (raw, (current or 0) + 1)
        return True


class SupabaseKVStore(KVStore):
    """Backend storing one row per key in a Supabase table."""

    def __init__(self, client, table: str, max_retries: int = 5):
        super().__init__(max_retries)
        self.client = client
        self.table = table

    def _read(self, key: str) -> Tuple[Any, Optional[int]]:
        try:
            result = self.client.table(self.table) \
                .select('value, version') \
                .eq('key', key) \
                .execute()
        except Exception as e:
            raise KVStoreError(f"Failed to read '{key}': {e}") from e

        if not result.data:
            return None, None
        row = result.data[0]
        return row['value'], row['version']

    def _write(self, key: str, value: Any, expected_version: Optional[int]) -> bool:
        now = datetime.now(timezone.utc).isoformat()

        if expected_version is None:
            try:
                self.client.table(self.table).insert({
                    'key': key,
                    'value': value,
                    'version': 1,
                    'updated_at': now
                }).execute()
            except Exception as e:
                # Another writer created the row first (unique violation)
                if getattr(e, 'code', None) == '23505':
                    return False
                raise KVStoreError(f"Failed to create '{key}': {e}") from e
            return True

        try:
            result = self.client.table(self.table).update({
                'value': value,
                'version': expected_version + 1,
                'updated_at': now
            }).eq('key', key).eq('version', expected_version).execute()
        except Exception as e:
            raise KVStoreError(f"Failed to write '{key}': {e}") from e

        return bool(result.data)


_store: Optional[KVStore] = None


def get_kv_store() -> KVStore:
    global _store

    if _store is None:
        if config.KV_BACKEND == 'memory':
            _store = MemoryKVStore(config.KV_MAX_RETRIES)
        elif config.KV_BACKEND == 'supabase':
            from utils.database import get_supabase_client
            _store = SupabaseKVStore(get_supabase_client(), config.KV_TABLE, config.KV_MAX_RETRIES)
        else:
            raise ValueError(
                f"Unknown KV_BACKEND '{config.KV_BACKEND}'. Use 'supabase' or 'memory'"
            )

    return _store


def set_kv_store(store: Optional[KVStore]) -> None:
    """Replace the process-wide store (None resets to the configured backend)."""
    global _store
    _store = store
