"""Tests for the ObjectRepository over SQLite."""

from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import OTHER_OWNER_ID, OWNER_ID, MakePending
from object_vault.errors import InvariantViolation, ObjectNotFoundError
from object_vault.models import IndexState, ObjectFlag
from object_vault.services.catalog import ObjectRepository, make_slug


class TestInsertMany:
    async def test_inserts_batch(self, repository: ObjectRepository, make_pending: MakePending) -> None:
        pending = [make_pending() for _ in range(3)]
        created = await repository.insert_many(OWNER_ID, pending)

        assert [row.object_id for row in created] == [p.object_id for p in pending]
        for item in pending:
            row = await repository.get(OWNER_ID, item.object_id)
            assert row.content_hash == item.content_hash
            assert row.slug is None
            assert row.is_public is False

    async def test_initial_flags_from_content_type(
        self, repository: ObjectRepository, make_pending: MakePending
    ) -> None:
        png = make_pending(content_type="image/png")
        pdf = make_pending(content_type="application/pdf")
        await repository.insert_many(OWNER_ID, [png, pdf])

        assert (await repository.get(OWNER_ID, png.object_id)).flags == ObjectFlag.SEARCHABLE
        assert (await repository.get(OWNER_ID, pdf.object_id)).flags == 0

    async def test_empty_batch(self, repository: ObjectRepository) -> None:
        assert await repository.insert_many(OWNER_ID, []) == []

    async def test_foreign_owner_aborts_whole_batch(
        self, repository: ObjectRepository, make_pending: MakePending
    ) -> None:
        mine = make_pending()
        theirs = make_pending(owner_id=OTHER_OWNER_ID)

        with pytest.raises(InvariantViolation):
            await repository.insert_many(OWNER_ID, [mine, theirs])

        assert await repository.list_for_owner(OWNER_ID, limit=10) == []

    async def test_primary_key_collision_rolls_back_batch(
        self, repository: ObjectRepository, make_pending: MakePending
    ) -> None:
        existing = make_pending()
        await repository.insert_many(OWNER_ID, [existing])
        new = make_pending()
        clash = make_pending(object_id=existing.object_id)

        with pytest.raises(IntegrityError):
            await repository.insert_many(OWNER_ID, [new, clash])

        with pytest.raises(ObjectNotFoundError):
            await repository.get(OWNER_ID, new.object_id)
        assert not await repository.find_by_hash(OWNER_ID, new.content_hash)
        assert [row.object_id for row in await repository.list_for_owner(OWNER_ID, limit=10)] == [
            existing.object_id
        ]


class TestLookups:
    async def test_find_by_hash_is_owner_scoped(
        self, repository: ObjectRepository, make_pending: MakePending
    ) -> None:
        item = make_pending(content=b"same bytes")
        await repository.insert_many(OWNER_ID, [item])

        assert await repository.find_by_hash(OWNER_ID, item.content_hash)
        assert not await repository.find_by_hash(OTHER_OWNER_ID, item.content_hash)
        assert not await repository.find_by_hash(OWNER_ID, "0" * 64)

    async def test_get_wrong_owner_not_found(
        self, repository: ObjectRepository, make_pending: MakePending
    ) -> None:
        item = make_pending()
        await repository.insert_many(OWNER_ID, [item])

        with pytest.raises(ObjectNotFoundError):
            await repository.get(OTHER_OWNER_ID, item.object_id)

    async def test_get_unknown(self, repository: ObjectRepository) -> None:
        with pytest.raises(ObjectNotFoundError):
            await repository.get(OWNER_ID, uuid4())

    async def test_list_for_owner_pages(
        self, repository: ObjectRepository, make_pending: MakePending
    ) -> None:
        mine = [make_pending() for _ in range(5)]
        await repository.insert_many(OWNER_ID, mine)
        await repository.insert_many(OTHER_OWNER_ID, [make_pending(owner_id=OTHER_OWNER_ID)])

        first = await repository.list_for_owner(OWNER_ID, limit=3)
        rest = await repository.list_for_owner(OWNER_ID, limit=3, skip=3)

        assert len(first) == 3
        assert len(rest) == 2
        listed = {row.object_id for row in first + rest}
        assert listed == {item.object_id for item in mine}

    async def test_fetch_many_ignores_unknown_and_foreign(
        self, repository: ObjectRepository, make_pending: MakePending
    ) -> None:
        mine = make_pending()
        theirs = make_pending(owner_id=OTHER_OWNER_ID)
        await repository.insert_many(OWNER_ID, [mine])
        await repository.insert_many(OTHER_OWNER_ID, [theirs])

        rows = await repository.fetch_many(OWNER_ID, [mine.object_id, theirs.object_id, uuid4()])
        assert [row.object_id for row in rows] == [mine.object_id]
        assert await repository.fetch_many(OWNER_ID, []) == []


class TestFlags:
    async def test_update_flags_or(self, repository: ObjectRepository, make_pending: MakePending) -> None:
        item = make_pending()
        await repository.insert_many(OWNER_ID, [item])

        assert await repository.update_flags_or(item.object_id, ObjectFlag.INDEXED)
        row = await repository.get(OWNER_ID, item.object_id)
        assert row.flags == ObjectFlag.SEARCHABLE | ObjectFlag.INDEXED
        assert row.index_state is IndexState.INDEXED

    async def test_update_flags_or_is_monotonic(
        self, repository: ObjectRepository, make_pending: MakePending
    ) -> None:
        item = make_pending()
        await repository.insert_many(OWNER_ID, [item])

        await repository.update_flags_or(item.object_id, ObjectFlag.INDEXED)
        await repository.update_flags_or(item.object_id, ObjectFlag.NONE)
        await repository.update_flags_or(item.object_id, ObjectFlag.INDEXED)

        row = await repository.get(OWNER_ID, item.object_id)
        assert row.flags == ObjectFlag.SEARCHABLE | ObjectFlag.INDEXED

    async def test_update_flags_or_missing_row(self, repository: ObjectRepository) -> None:
        assert not await repository.update_flags_or(uuid4(), ObjectFlag.INDEXED)

    async def test_list_pending_index(self, repository: ObjectRepository, make_pending: MakePending) -> None:
        pending = make_pending(content_type="image/jpeg")
        indexed = make_pending(content_type="image/png")
        raw = make_pending(content_type="application/pdf")
        await repository.insert_many(OWNER_ID, [pending, indexed, raw])
        await repository.update_flags_or(indexed.object_id, ObjectFlag.INDEXED)

        rows = await repository.list_pending_index()
        assert [row.object_id for row in rows] == [pending.object_id]

    async def test_count_by_state(self, repository: ObjectRepository, make_pending: MakePending) -> None:
        items = [
            make_pending(content_type="image/png"),
            make_pending(content_type="image/png"),
            make_pending(content_type="text/plain"),
        ]
        await repository.insert_many(OWNER_ID, items)
        await repository.insert_many(OTHER_OWNER_ID, [make_pending(owner_id=OTHER_OWNER_ID)])
        await repository.update_flags_or(items[0].object_id, ObjectFlag.INDEXED)

        counts = await repository.count_by_state(OWNER_ID)
        assert counts == {IndexState.RAW: 1, IndexState.PENDING: 1, IndexState.INDEXED: 1}

        everyone = await repository.count_by_state()
        assert everyone[IndexState.PENDING] == 2


class TestPublishAndDelete:
    async def test_publish_once(self, repository: ObjectRepository, make_pending: MakePending) -> None:
        item = make_pending()
        await repository.insert_many(OWNER_ID, [item])
        slug = make_slug(item.object_id)

        assert await repository.publish(item.object_id, slug)
        assert not await repository.publish(item.object_id, "another")

        row = await repository.get_by_slug(slug)
        assert row.object_id == item.object_id
        assert row.is_public

    async def test_private_object_has_no_slug_lookup(
        self, repository: ObjectRepository, make_pending: MakePending
    ) -> None:
        item = make_pending()
        await repository.insert_many(OWNER_ID, [item])

        with pytest.raises(ObjectNotFoundError):
            await repository.get_by_slug(make_slug(item.object_id))

    async def test_delete_many_owner_scoped(
        self, repository: ObjectRepository, make_pending: MakePending
    ) -> None:
        mine = make_pending()
        theirs = make_pending(owner_id=OTHER_OWNER_ID)
        await repository.insert_many(OWNER_ID, [mine])
        await repository.insert_many(OTHER_OWNER_ID, [theirs])

        deleted = await repository.delete_many(OWNER_ID, [mine.object_id, theirs.object_id])

        assert deleted == [mine.object_id]
        with pytest.raises(ObjectNotFoundError):
            await repository.get(OWNER_ID, mine.object_id)
        assert (await repository.get(OTHER_OWNER_ID, theirs.object_id)).object_id == theirs.object_id

    async def test_delete_frees_hash_for_reupload(
        self, repository: ObjectRepository, make_pending: MakePending
    ) -> None:
        item = make_pending(content=b"payload")
        await repository.insert_many(OWNER_ID, [item])
        await repository.delete_many(OWNER_ID, [item.object_id])

        assert not await repository.find_by_hash(OWNER_ID, item.content_hash)


def test_make_slug() -> None:
    object_id = uuid4()
    slug = make_slug(object_id)
    assert slug == f"{object_id.fields[0]:x}"
    assert len(slug) <= 8
