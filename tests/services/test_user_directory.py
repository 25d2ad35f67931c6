from __future__ import annotations

import json

import pytest

from devlink.core.exceptions import (
    DuplicateEmailError,
    StorageError,
    StorageTimeoutError,
)
from devlink.schemas.users import FollowerEntry, FollowingEntry
from devlink.services.directory import InMemoryUserDirectory, new_user_id


def test_new_user_id_format() -> None:
    user_id = new_user_id()
    assert len(user_id) == 24
    int(user_id, 16)


@pytest.mark.asyncio
async def test_create_user_starts_with_empty_graph(directory) -> None:
    record = await directory.create_user(name="  Ada  ", email="Ada@Example.COM")

    assert record.name == "Ada"
    assert record.email == "ada@example.com"
    assert record.following == []
    assert record.followers == []
    assert record.followers_count == 0
    assert record.following_count == 0
    assert await directory.count() == 1


@pytest.mark.asyncio
async def test_email_is_unique_case_insensitively(directory) -> None:
    await directory.create_user(name="Ada", email="ada@example.com")

    with pytest.raises(DuplicateEmailError):
        await directory.create_user(name="Other", email="ADA@example.com")


@pytest.mark.asyncio
async def test_get_returns_copies(directory, users) -> None:
    alice = users["alice"]

    record = await directory.get(alice.id)
    record.following.append(FollowingEntry(user_id=users["bob"].id))

    assert (await directory.get(alice.id)).following == []


@pytest.mark.asyncio
async def test_get_missing_user(directory) -> None:
    assert await directory.get("f" * 24) is None
    assert await directory.get_many(["f" * 24]) == {}


@pytest.mark.asyncio
async def test_transaction_commits_staged_records_with_counters(
    directory, users
) -> None:
    alice, bob = users["alice"], users["bob"]

    async with directory.transaction(alice.id, bob.id) as txn:
        a = await txn.get(alice.id)
        b = await txn.get(bob.id)
        a.following.insert(0, FollowingEntry(user_id=bob.id))
        b.followers.insert(0, FollowerEntry(user_id=alice.id))
        txn.save(a)
        txn.save(b)

    stored_a = await directory.get(alice.id)
    stored_b = await directory.get(bob.id)
    assert stored_a.following_count == 1
    assert stored_b.followers_count == 1
    assert stored_a.updated_at >= alice.updated_at


@pytest.mark.asyncio
async def test_transaction_discards_changes_on_error(directory, users) -> None:
    alice, bob = users["alice"], users["bob"]

    with pytest.raises(RuntimeError):
        async with directory.transaction(alice.id, bob.id) as txn:
            a = await txn.get(alice.id)
            a.following.insert(0, FollowingEntry(user_id=bob.id))
            txn.save(a)
            raise RuntimeError("abort")

    assert await directory.get(alice.id) == alice
    # Locks were released
    async with directory.transaction(alice.id, bob.id, timeout=0.1):
        pass


@pytest.mark.asyncio
async def test_transaction_rejects_records_outside_scope(directory, users) -> None:
    alice, bob = users["alice"], users["bob"]

    async with directory.transaction(alice.id) as txn:
        with pytest.raises(StorageError):
            await txn.get(bob.id)


@pytest.mark.asyncio
async def test_transaction_timeout(directory, users) -> None:
    alice = users["alice"]

    async with directory.transaction(alice.id):
        with pytest.raises(StorageTimeoutError):
            async with directory.transaction(alice.id, timeout=0.05):
                pass


@pytest.mark.asyncio
async def test_top_by_followers_orders_and_excludes(directory, users) -> None:
    alice, bob, carol = users["alice"], users["bob"], users["carol"]
    async with directory.transaction(bob.id) as txn:
        b = await txn.get(bob.id)
        b.followers.append(FollowerEntry(user_id=carol.id))
        txn.save(b)

    ranked = await directory.top_by_followers({carol.id}, limit=5)

    assert [r.id for r in ranked] == [bob.id, alice.id]


@pytest.mark.asyncio
async def test_load_fixture(directory, tmp_path) -> None:
    fixture = tmp_path / "users.json"
    fixture.write_text(
        json.dumps(
            [
                {"id": "AB" * 12, "name": "Grace", "email": "grace@example.com"},
                {
                    "name": "Linus",
                    "email": "linus@example.com",
                    "avatar": "https://example.com/l.png",
                    "created_at": "2024-02-01T00:00:00+00:00",
                },
            ]
        )
    )

    assert await directory.load_fixture(fixture) == 2

    grace = await directory.get("ab" * 12)
    assert grace.name == "Grace"
    assert await directory.count() == 2


@pytest.mark.asyncio
async def test_duplicate_user_id_is_rejected() -> None:
    directory = InMemoryUserDirectory()
    await directory.create_user(name="A", email="a@example.com", user_id="c" * 24)

    with pytest.raises(StorageError):
        await directory.create_user(name="B", email="b@example.com", user_id="c" * 24)


@pytest.mark.asyncio
async def test_locks_are_dropped_when_released(directory, users) -> None:
    alice, bob = users["alice"], users["bob"]

    async with directory.transaction(alice.id, bob.id):
        assert set(directory._locks) == {alice.id, bob.id}
        with pytest.raises(StorageTimeoutError):
            async with directory.transaction(alice.id, timeout=0.05):
                pass
        assert set(directory._locks) == {alice.id, bob.id}

    async with directory.transaction("f" * 24) as txn:
        assert await txn.get("f" * 24) is None

    assert directory._locks == {}
    assert not directory._lock_refs
