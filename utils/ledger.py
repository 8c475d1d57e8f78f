"""Local transaction history for the connected wallet.

Newest entries first, capped at 50. The whole list is written to client
storage after every change and read back on start-up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from utils.client_storage import STORAGE_KEYS, ClientStorage

logger = logging.getLogger(__name__)

MAX_ENTRIES = 50


class TxStatus(str, Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    FAILED = 'failed'


class TxType(str, Enum):
    TRANSFER = 'transfer'
    MINT = 'mint'


@dataclass(frozen=True)
class Transaction:
    hash: str
    status: TxStatus = TxStatus.PENDING
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    type: TxType = TxType.TRANSFER
    amount: Optional[str] = None
    to: Optional[str] = None
    sender: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            'hash': self.hash,
            'status': self.status.value,
            'timestamp': self.timestamp.isoformat(),
            'type': self.type.value,
        }
        for key, value in (('amount', self.amount), ('to', self.to), ('from', self.sender)):
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Transaction':
        """Raises KeyError / ValueError / TypeError on malformed input."""
        if not isinstance(data, dict) or not data.get('hash'):
            raise ValueError(f"Not a transaction entry: {data!r}")
        return cls(
            hash=str(data['hash']),
            status=TxStatus(data['status']),
            timestamp=datetime.fromisoformat(str(data['timestamp']).replace('Z', '+00:00')),
            type=TxType(data.get('type', TxType.TRANSFER.value)),
            amount=data.get('amount'),
            to=data.get('to'),
            sender=data.get('from'),
        )


class TransactionLedger:
    """Bounded, persisted append-log of transfer attempts."""

    def __init__(self, storage: ClientStorage | None = None, max_entries: int = MAX_ENTRIES) -> None:
        self.storage = storage
        self.max_entries = max_entries
        self._entries: list[Transaction] = self._load()

    def _load(self) -> list[Transaction]:
        if self.storage is None:
            return []
        raw = self.storage.get(STORAGE_KEYS['TRANSACTIONS'], [])
        if not isinstance(raw, list):
            logger.warning("Discarding stored transactions: expected a list, got %s", type(raw).__name__)
            return []

        entries = []
        for item in raw:
            try:
                entries.append(Transaction.from_dict(item))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("Skipping malformed stored transaction: %s", e)
        return entries[: self.max_entries]

    def _save(self) -> None:
        if self.storage is not None:
            self.storage.set(STORAGE_KEYS['TRANSACTIONS'], [tx.to_dict() for tx in self._entries])

    @property
    def entries(self) -> list[Transaction]:
        return list(self._entries)

    @property
    def pending_count(self) -> int:
        return sum(1 for tx in self._entries if tx.status is TxStatus.PENDING)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, tx_hash: str) -> Transaction | None:
        for tx in self._entries:
            if tx.hash == tx_hash:
                return tx
        return None

    def append(self, tx: Transaction) -> None:
        """Prepend ``tx``; the oldest entries fall off past ``max_entries``."""
        self._entries = [tx, *self._entries][: self.max_entries]
        self._save()

    def update_status(self, tx_hash: str, status: TxStatus | str) -> bool:
        """Set the status of the entry with ``tx_hash``.

        Returns ``False`` (and changes nothing) when no entry matches.
        """
        status = TxStatus(status)
        found = False
        updated = []
        for tx in self._entries:
            if tx.hash == tx_hash:
                tx = replace(tx, status=status)
                found = True
            updated.append(tx)

        if not found:
            logger.warning("Status update for unknown transaction %s dropped", tx_hash)
            return False

        self._entries = updated
        self._save()
        return True
