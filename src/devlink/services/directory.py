"""User directory: the store of user records behind the social graph.

This module provides the storage abstraction the social graph service reads
and writes through:

- ``UserDirectory``: backend interface with plain reads and a transactional
  scope for multi-record read-modify-write.
- ``InMemoryUserDirectory``: process-local backend. Each record has its own
  ``asyncio.Lock``; a transaction acquires the locks of every record it
  touches in sorted id order, hands out working copies, and commits all
  staged records together when the scope exits cleanly.

Records are replaced wholesale on commit and never mutated in place, so
plain reads see a whole committed record without taking any lock.

Example:
    directory = InMemoryUserDirectory()
    alice = await directory.create_user(name="Alice", email="alice@example.com")

    async with directory.transaction(alice.id, timeout=5.0) as txn:
        record = await txn.get(alice.id)
        record.avatar = "https://example.com/a.png"
        txn.save(record)
"""

import asyncio
import heapq
import json
import secrets
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import AsyncIterator, Iterable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import datetime
from pathlib import Path

from ..core.exceptions import DuplicateEmailError, StorageError, StorageTimeoutError
from ..core.logging import ContextLogger
from ..schemas.users import UserRecord, utcnow

logger = ContextLogger(__name__)


def new_user_id() -> str:
    """Generate a 24 character hex user id."""
    return secrets.token_hex(12)


class DirectoryTransaction(ABC):
    """Read-modify-write scope over a fixed set of user records."""

    @abstractmethod
    async def get(self, user_id: str) -> UserRecord | None:
        """Return a working copy of a record in scope, or None if missing."""
        raise NotImplementedError

    @abstractmethod
    def save(self, record: UserRecord) -> None:
        """Stage a working copy to be written on commit."""
        raise NotImplementedError


class UserDirectory(ABC):
    """Store of user records with embedded relationship lists."""

    name: str = "abstract"

    @abstractmethod
    async def get(self, user_id: str) -> UserRecord | None:
        raise NotImplementedError

    @abstractmethod
    async def get_many(self, user_ids: Iterable[str]) -> dict[str, UserRecord]:
        raise NotImplementedError

    @abstractmethod
    async def create_user(
        self,
        *,
        name: str,
        email: str,
        password_hash: str = "",
        avatar: str = "",
        is_private: bool = False,
        user_id: str | None = None,
        created_at: datetime | None = None,
    ) -> UserRecord:
        raise NotImplementedError

    @abstractmethod
    async def top_by_followers(
        self, exclude: set[str], limit: int
    ) -> list[UserRecord]:
        """Users not in ``exclude``, most followed first, newest account on ties."""
        raise NotImplementedError

    @abstractmethod
    async def count(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def transaction(
        self, *user_ids: str, timeout: float | None = None
    ) -> AbstractAsyncContextManager[DirectoryTransaction]:
        """Open an all-or-nothing scope over ``user_ids``.

        Raises:
            StorageTimeoutError: If the scope cannot be acquired within
                ``timeout`` seconds.
            StorageError: If committing the staged records fails. Nothing
                is written in that case.
        """
        raise NotImplementedError


class _InMemoryTransaction(DirectoryTransaction):
    def __init__(self, directory: "InMemoryUserDirectory", user_ids: list[str]) -> None:
        self._directory = directory
        self._user_ids = frozenset(user_ids)
        self._working: dict[str, UserRecord | None] = {}
        self.staged: dict[str, UserRecord] = {}

    def _check_scope(self, user_id: str) -> None:
        if user_id not in self._user_ids:
            raise StorageError(
                f"User {user_id} is outside this transaction",
                details={"user_id": user_id},
            )

    async def get(self, user_id: str) -> UserRecord | None:
        self._check_scope(user_id)
        if user_id not in self._working:
            record = self._directory._records.get(user_id)
            self._working[user_id] = record.model_copy(deep=True) if record else None
        return self._working[user_id]

    def save(self, record: UserRecord) -> None:
        self._check_scope(record.id)
        self.staged[record.id] = record


class InMemoryUserDirectory(UserDirectory):
    """Process-local user directory with per-record locking."""

    name = "memory"

    def __init__(self) -> None:
        self._records: dict[str, UserRecord] = {}
        self._emails: dict[str, str] = {}
        # A lock lives only while some transaction holds or waits for it.
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_refs: Counter[str] = Counter()

    async def get(self, user_id: str) -> UserRecord | None:
        record = self._records.get(user_id)
        return record.model_copy(deep=True) if record else None

    async def get_many(self, user_ids: Iterable[str]) -> dict[str, UserRecord]:
        found = {}
        for user_id in user_ids:
            record = self._records.get(user_id)
            if record is not None:
                found[user_id] = record.model_copy(deep=True)
        return found

    async def create_user(
        self,
        *,
        name: str,
        email: str,
        password_hash: str = "",
        avatar: str = "",
        is_private: bool = False,
        user_id: str | None = None,
        created_at: datetime | None = None,
    ) -> UserRecord:
        """Create a record with empty relationship lists.

        Raises:
            DuplicateEmailError: If the email is already registered.
            StorageError: If ``user_id`` is already taken.
        """
        key = email.strip().lower()
        if key in self._emails:
            raise DuplicateEmailError(
                f"Email {key} is already registered", details={"email": key}
            )

        user_id = (user_id or new_user_id()).lower()
        if user_id in self._records:
            raise StorageError(
                f"User {user_id} already exists", details={"user_id": user_id}
            )

        now = created_at or utcnow()
        record = UserRecord(
            id=user_id,
            name=name,
            email=key,
            password_hash=password_hash,
            avatar=avatar,
            is_private=is_private,
            created_at=now,
            updated_at=now,
        )
        self._records[record.id] = record
        self._emails[record.email] = record.id
        logger.debug("User record created", extra={"user_id": record.id})
        return record.model_copy(deep=True)

    async def top_by_followers(
        self, exclude: set[str], limit: int
    ) -> list[UserRecord]:
        candidates = (r for r in self._records.values() if r.id not in exclude)
        ranked = heapq.nsmallest(
            limit,
            candidates,
            key=lambda r: (-r.followers_count, -r.created_at.timestamp()),
        )
        return [record.model_copy(deep=True) for record in ranked]

    async def count(self) -> int:
        return len(self._records)

    async def load_fixture(self, path: str | Path) -> int:
        """Create users from a JSON list of records.

        Each item needs ``name`` and ``email``; ``id``, ``avatar``,
        ``password_hash``, ``is_private`` and ``created_at`` are optional.

        Returns:
            Number of users created.
        """
        with open(path, encoding="utf-8") as f:
            items = json.load(f)

        for item in items:
            created_at = item.get("created_at")
            await self.create_user(
                name=item["name"],
                email=item["email"],
                password_hash=item.get("password_hash", ""),
                avatar=item.get("avatar", ""),
                is_private=item.get("is_private", False),
                user_id=item.get("id"),
                created_at=datetime.fromisoformat(created_at) if created_at else None,
            )

        logger.info(
            "Loaded user fixture", extra={"path": str(path), "count": len(items)}
        )
        return len(items)

    @asynccontextmanager
    async def transaction(
        self, *user_ids: str, timeout: float | None = None
    ) -> AsyncIterator[DirectoryTransaction]:
        ordered = sorted(set(user_ids))
        acquired: list[asyncio.Lock] = []
        locks = [self._ref_lock(user_id) for user_id in ordered]
        try:
            try:
                async with asyncio.timeout(timeout):
                    for lock in locks:
                        await lock.acquire()
                        acquired.append(lock)
            except TimeoutError as e:
                raise StorageTimeoutError(
                    "Timed out waiting for transaction",
                    details={"user_ids": ordered, "timeout": timeout},
                ) from e

            txn = _InMemoryTransaction(self, ordered)
            yield txn
            if txn.staged:
                self._commit(txn.staged)
        finally:
            for lock in reversed(acquired):
                lock.release()
            for user_id in ordered:
                self._unref_lock(user_id)

    def _ref_lock(self, user_id: str) -> asyncio.Lock:
        self._lock_refs[user_id] += 1
        return self._locks.setdefault(user_id, asyncio.Lock())

    def _unref_lock(self, user_id: str) -> None:
        self._lock_refs[user_id] -= 1
        if self._lock_refs[user_id] <= 0:
            del self._lock_refs[user_id]
            del self._locks[user_id]

    def _prepare_for_write(self, record: UserRecord, now: datetime) -> UserRecord:
        # Counters are always derived from the lists at write time.
        return record.model_copy(
            update={
                "followers_count": len(record.followers),
                "following_count": len(record.following),
                "updated_at": now,
            }
        )

    def _write(self, record: UserRecord) -> None:
        self._records[record.id] = record

    def _commit(self, staged: dict[str, UserRecord]) -> None:
        now = utcnow()
        prepared = [self._prepare_for_write(r, now) for r in staged.values()]
        originals = {r.id: self._records.get(r.id) for r in prepared}
        try:
            for record in prepared:
                self._write(record)
        except Exception as e:
            for user_id, original in originals.items():
                if original is None:
                    self._records.pop(user_id, None)
                else:
                    self._records[user_id] = original
            logger.exception(
                "Commit failed, transaction rolled back",
                extra={"user_ids": list(originals)},
            )
            raise StorageError(
                f"Commit failed: {e}", details={"user_ids": list(originals)}
            ) from e
