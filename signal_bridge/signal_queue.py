"""
FIFO signal queue for terminals that poll instead of receiving webhooks.

Each account owns one list stored under ``q:<ACCOUNT>`` in a key-value
store. TradingView pushes with enqueue; the terminal EA pops with dequeue.
"""

import random
import string
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

from signal_bridge.database import get_db
from signal_bridge.utils.errors import DatabaseError
from signal_bridge.utils.logger import get_logger
from signal_bridge.utils.retry import retry_db_operation


QUEUE_TABLE = "signal_queue"
_ID_ALPHABET = string.digits + string.ascii_lowercase


def new_signal_id() -> str:
    """'<epoch ms>-<9 base36 chars>'"""
    suffix = ''.join(random.choices(_ID_ALPHABET, k=9))
    return f"{int(time.time() * 1000)}-{suffix}"


class MemoryKVStore:
    """In-process store, used when Supabase is not configured. Lost on restart."""

    def __init__(self):
        self._data: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[List[Dict[str, Any]]]:
        with self._lock:
            value = self._data.get(key)
            return list(value) if value is not None else None

    def put(self, key: str, value: List[Dict[str, Any]]):
        with self._lock:
            self._data[key] = list(value)


class SupabaseKVStore:
    """
    Queue lists stored as jsonb rows in the signal_queue table.

    See setup_database.py for the schema.
    """

    def __init__(self, db, table: str = QUEUE_TABLE):
        self.db = db
        self.table = table

    @retry_db_operation(max_attempts=2)
    def get(self, key: str) -> Optional[List[Dict[str, Any]]]:
        try:
            result = self.db.table(self.table).select("value").eq("key", key).execute()
        except Exception as e:
            raise DatabaseError(
                f"Failed to read queue '{key}'",
                context={'key': key, 'error': str(e)}
            ) from e

        if result.data:
            return result.data[0]['value'] or []
        return None

    @retry_db_operation(max_attempts=2)
    def put(self, key: str, value: List[Dict[str, Any]]):
        try:
            self.db.table(self.table).upsert({"key": key, "value": value}).execute()
        except Exception as e:
            raise DatabaseError(
                f"Failed to write queue '{key}'",
                context={'key': key, 'error': str(e)}
            ) from e


class SignalQueue:
    """
    Per-account FIFO of raw signals.

    Example:
        queue = SignalQueue(MemoryKVStore())
        signal_id, size = queue.enqueue("ftmo", {"symbol": "EURUSD", "action": "buy"})
        queue.dequeue("FTMO")  # -> {..., "signalId": signal_id, "receivedAt": ...}
    """

    def __init__(self, store, default_account: str = "FTMO"):
        self.store = store
        self.default_account = default_account.upper()
        self.logger = get_logger(__name__, role="Queue")
        # Serializes read-modify-write within this process
        self._lock = threading.Lock()

    def _key(self, account: Optional[str]) -> str:
        return f"q:{(account or self.default_account).upper()}"

    def enqueue(self, account: Optional[str], signal: Dict[str, Any]) -> Tuple[str, int]:
        """
        Append a signal to the account's queue.

        Returns:
            (generated signalId, queue length after the append)

        Raises:
            DatabaseError: storage failed after retry
        """
        key = self._key(account)
        signal_id = new_signal_id()
        entry = {**signal, 'signalId': signal_id, 'receivedAt': int(time.time() * 1000)}

        with self._lock:
            queue = self.store.get(key) or []
            queue.append(entry)
            self.store.put(key, queue)
            size = len(queue)

        self.logger.info("Signal queued", key=key, signal_id=signal_id, size=size)
        return signal_id, size

    def dequeue(self, account: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        Pop the oldest signal, or None if the queue is empty or storage fails.
        """
        key = self._key(account)

        try:
            with self._lock:
                queue = self.store.get(key) or []
                if not queue:
                    return None

                entry = queue.pop(0)
                self.store.put(key, queue)
        except DatabaseError as e:
            # Pollers retry on their own schedule
            self.logger.error("Queue read failed", key=key, error=str(e))
            return None

        self.logger.info("Signal dequeued", key=key, signal_id=entry.get('signalId'), remaining=len(queue))
        return entry

    def pending(self, account: Optional[str]) -> int:
        """Number of queued signals for account"""
        return len(self.store.get(self._key(account)) or [])


def build_queue(settings) -> SignalQueue:
    """Supabase-backed queue when credentials exist, in-memory otherwise"""
    db = get_db(settings.supabase_url, settings.supabase_key)
    store = SupabaseKVStore(db) if db is not None else MemoryKVStore()
    return SignalQueue(store, default_account=settings.default_account)
