"""
Subscription storage.

The bot only relies on the SubscriptionStore contract; two backends are
provided: an in-memory store and a JSON file store that keeps the whole
table in memory and rewrites the file on every change.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from .errors import StorageError
from .models import Subscription

logger = logging.getLogger(__name__)


class SubscriptionStore(ABC):
    """Create/read/delete access to one subscription per chat."""

    async def open(self) -> None:
        """Acquire the underlying resource."""

    async def close(self) -> None:
        """Release the underlying resource."""

    @abstractmethod
    async def get(self, chat_id: int) -> Optional[Subscription]:
        ...

    @abstractmethod
    async def put(self, subscription: Subscription) -> None:
        ...

    @abstractmethod
    async def delete(self, chat_id: int) -> bool:
        """Remove a chat's record. Returns True if one existed."""

    @abstractmethod
    async def list_active(self) -> list[Subscription]:
        ...


class InMemorySubscriptionStore(SubscriptionStore):
    """Process-local store, used for tests and ephemeral deployments."""

    def __init__(self) -> None:
        self._records: dict[int, Subscription] = {}

    async def get(self, chat_id: int) -> Optional[Subscription]:
        return self._records.get(chat_id)

    async def put(self, subscription: Subscription) -> None:
        self._records[subscription.chat_id] = subscription

    async def delete(self, chat_id: int) -> bool:
        return self._records.pop(chat_id, None) is not None

    async def list_active(self) -> list[Subscription]:
        return [sub for sub in self._records.values() if sub.active]


class JsonSubscriptionStore(SubscriptionStore):
    """
    Subscriptions persisted to a JSON file.

    File format: {"subscriptions": [Subscription.to_dict(), ...]}

    Args:
        path: Location of the JSON file (parent directory is created)
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._records: dict[int, Subscription] = {}
        self._opened = False
        # Serializes the copy, save, swap sequence in put() and delete()
        self._write_lock = asyncio.Lock()

    async def open(self) -> None:
        """Load the file. A missing file is an empty store."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if self.path.exists():
                data = json.loads(self.path.read_text())
                self._records = {
                    sub.chat_id: sub
                    for sub in (
                        Subscription.from_dict(item)
                        for item in data.get("subscriptions", [])
                    )
                }
        except (
            OSError,
            json.JSONDecodeError,
            KeyError,
            ValueError,
            AttributeError,
            TypeError,
        ) as e:
            raise StorageError(f"Failed to load subscriptions from {self.path}: {e}") from e

        self._opened = True
        logger.info(f"Loaded {len(self._records)} subscription(s) from {self.path}")

    async def close(self) -> None:
        if self._opened:
            self._opened = False
            logger.info(f"Closed subscription store {self.path}")

    def _check_open(self) -> None:
        if not self._opened:
            raise StorageError("Subscription store is not open")

    def _write(self, payload: str) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(payload)
        tmp_path.replace(self.path)

    async def _save(self, records: dict[int, Subscription]) -> None:
        payload = json.dumps(
            {"subscriptions": [sub.to_dict() for sub in records.values()]},
            indent=2,
        )
        try:
            await asyncio.to_thread(self._write, payload)
        except OSError as e:
            raise StorageError(f"Failed to save subscriptions to {self.path}: {e}") from e

    async def get(self, chat_id: int) -> Optional[Subscription]:
        self._check_open()
        return self._records.get(chat_id)

    async def put(self, subscription: Subscription) -> None:
        self._check_open()
        async with self._write_lock:
            records = dict(self._records)
            records[subscription.chat_id] = subscription
            await self._save(records)
            self._records = records

    async def delete(self, chat_id: int) -> bool:
        self._check_open()
        async with self._write_lock:
            if chat_id not in self._records:
                return False
            records = dict(self._records)
            del records[chat_id]
            await self._save(records)
            self._records = records
            return True

    async def list_active(self) -> list[Subscription]:
        self._check_open()
        return [sub for sub in self._records.values() if sub.active]
