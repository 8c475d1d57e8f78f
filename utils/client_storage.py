"""
Durable client-side storage for BlueMercantile.

A single JSON document on disk holding values under fixed string keys
(the logged-in user, the wallet address used for auto-reconnect, the Web3
config override and the transaction history). Every write rewrites the
whole document through a temp file so a crash never leaves it half-written.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

STORAGE_KEYS = {
    'USER': 'bluemercantile_user',
    'WALLET_ADDRESS': 'bluemercantile_wallet_address',
    'WEB3_CONFIG': 'bluemercantile_web3_config',
    'TRANSACTIONS': 'bluemercantile_transactions',
}


class ClientStorage:
    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._lock = threading.Lock()
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable client storage %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix='.storage-')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(self._data, f, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value
            self._flush()

    def remove(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._flush()


def open_client_storage() -> ClientStorage:
    from config import config
    return ClientStorage(Path(config.CLIENT_STORAGE_PATH).expanduser())
