"""Metadata repository for the object catalog.

Every method opens its own session from the factory, so the repository is safe
to share between concurrent ingest calls, request handlers and the indexing
scheduler. Atomicity comes from the database alone: batch inserts run in one
transaction and flag updates are a single ``flags = flags | :bits`` statement.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from object_vault.errors import InvariantViolation, ObjectNotFoundError
from object_vault.models import IndexState, ObjectFlag, StoredObject, index_state, initial_flags
from object_vault.models.object import utcnow


@dataclass
class PendingObject:
    """A blob that has been uploaded but not yet committed to the catalog."""

    object_id: UUID
    owner_id: UUID
    content_type: str
    content_size: int
    file_name: str
    content_hash: str

    def to_row(self) -> StoredObject:
        return StoredObject(
            object_id=self.object_id,
            owner_id=self.owner_id,
            content_type=self.content_type,
            content_size=self.content_size,
            file_name=self.file_name,
            content_hash=self.content_hash,
            slug=None,
            is_public=False,
            flags=int(initial_flags(self.content_type)),
            uploaded_at=utcnow(),
        )


def _has_bits(bits: ObjectFlag):
    return StoredObject.flags.bitwise_and(int(bits)) == int(bits)


def _lacks_bits(bits: ObjectFlag):
    return StoredObject.flags.bitwise_and(int(bits)) == 0


def make_slug(object_id: UUID) -> str:
    """Public slug: lowercase hex of the id's first 32-bit field."""
    return f"{object_id.fields[0]:x}"


class ObjectRepository:
    """Transactional catalog of ``StoredObject`` rows.

    Usage:
        repository = ObjectRepository(async_session_factory)
        if not await repository.find_by_hash(owner_id, digest):
            ...
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_by_hash(self, owner_id: UUID, content_hash: str) -> bool:
        """Whether ``owner_id`` already has a live object with this content hash."""
        stmt = (
            select(StoredObject.object_id)
            .where(StoredObject.owner_id == owner_id, StoredObject.content_hash == content_hash)
            .limit(1)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none() is not None

    async def insert_many(self, owner_id: UUID, pending: Sequence[PendingObject]) -> list[StoredObject]:
        """Insert a batch of rows in one transaction.

        Either every row becomes visible or none do. Initial flags are computed
        from each row's content type.

        Args:
            owner_id: Owner of the batch. Every pending row must carry it.
            pending: Rows whose blobs are already stored.

        Returns:
            The inserted rows, in input order.

        Raises:
            InvariantViolation: If a pending row belongs to another owner.
        """
        for item in pending:
            if item.owner_id != owner_id:
                msg = f"Pending object {item.object_id} owned by {item.owner_id}, batch owner is {owner_id}"
                raise InvariantViolation(msg)

        rows = [item.to_row() for item in pending]
        if not rows:
            return rows

        async with self._session_factory() as session:
            async with session.begin():
                session.add_all(rows)
        return rows

    async def update_flags_or(self, object_id: UUID, bits: ObjectFlag) -> bool:
        """Atomically OR ``bits`` onto an object's flags.

        Args:
            object_id: Object to update.
            bits: Flags to set. Bits already set are left alone.

        Returns:
            False if the object no longer exists.
        """
        stmt = (
            update(StoredObject)
            .where(StoredObject.object_id == object_id)
            .values(flags=StoredObject.flags.bitwise_or(int(bits)))
        )
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt)
            return result.rowcount > 0

    async def list_pending_index(self) -> list[StoredObject]:
        """All objects with SEARCHABLE set and INDEXED unset, oldest first."""
        stmt = (
            select(StoredObject)
            .where(_has_bits(ObjectFlag.SEARCHABLE), _lacks_bits(ObjectFlag.INDEXED))
            .order_by(StoredObject.uploaded_at)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get(self, owner_id: UUID, object_id: UUID) -> StoredObject:
        """Fetch one of ``owner_id``'s objects.

        Args:
            owner_id: Owner the object must belong to.
            object_id: Object to fetch.

        Returns:
            The catalog row.

        Raises:
            ObjectNotFoundError: If no such object exists for this owner.
        """
        stmt = select(StoredObject).where(
            StoredObject.owner_id == owner_id, StoredObject.object_id == object_id
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            obj = result.scalar_one_or_none()
        if obj is None:
            raise ObjectNotFoundError(object_id)
        return obj

    async def get_by_slug(self, slug: str) -> StoredObject:
        """Fetch a published object by slug.

        Raises:
            ObjectNotFoundError: If no public object has this slug.
        """
        stmt = select(StoredObject).where(StoredObject.slug == slug, StoredObject.is_public.is_(True))
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            obj = result.scalar_one_or_none()
        if obj is None:
            raise ObjectNotFoundError(slug)
        return obj

    async def list_for_owner(self, owner_id: UUID, *, limit: int, skip: int = 0) -> list[StoredObject]:
        """Page through an owner's objects, newest first.

        Args:
            owner_id: Owner whose objects to list.
            limit: Maximum rows to return.
            skip: Rows to skip from the newest.

        Returns:
            Up to ``limit`` rows ordered by upload time, newest first.
        """
        stmt = (
            select(StoredObject)
            .where(StoredObject.owner_id == owner_id)
            .order_by(StoredObject.uploaded_at.desc(), StoredObject.object_id)
            .limit(limit)
            .offset(skip)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def fetch_many(self, owner_id: UUID, object_ids: Sequence[UUID]) -> list[StoredObject]:
        """Fetch an owner's objects by id. Unknown ids are silently absent."""
        if not object_ids:
            return []
        stmt = select(StoredObject).where(
            StoredObject.owner_id == owner_id, StoredObject.object_id.in_(list(object_ids))
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def delete_many(self, owner_id: UUID, object_ids: Sequence[UUID]) -> list[UUID]:
        """Delete an owner's rows in one transaction.

        Args:
            owner_id: Owner the rows must belong to. Other owners' ids are ignored.
            object_ids: Ids to delete. Unknown ids are ignored.

        Returns:
            The ids actually deleted.
        """
        if not object_ids:
            return []
        async with self._session_factory() as session:
            async with session.begin():
                found = await session.execute(
                    select(StoredObject.object_id).where(
                        StoredObject.owner_id == owner_id,
                        StoredObject.object_id.in_(list(object_ids)),
                    )
                )
                deleted = list(found.scalars().all())
                if deleted:
                    await session.execute(
                        delete(StoredObject).where(
                            StoredObject.owner_id == owner_id,
                            StoredObject.object_id.in_(deleted),
                        )
                    )
        return deleted

    async def publish(self, object_id: UUID, slug: str) -> bool:
        """Set the slug and mark the object public, only if it is still private.

        Args:
            object_id: Object to publish.
            slug: Public slug, normally ``make_slug(object_id)``.

        Returns:
            False if the object was already public (slugs are immutable).
        """
        stmt = (
            update(StoredObject)
            .where(StoredObject.object_id == object_id, StoredObject.slug.is_(None))
            .values(slug=slug, is_public=True)
        )
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt)
            return result.rowcount > 0

    async def count_by_state(self, owner_id: UUID | None = None) -> dict[IndexState, int]:
        """Count objects per indexing state, optionally for a single owner."""
        stmt = select(StoredObject.flags, func.count()).group_by(StoredObject.flags)
        if owner_id is not None:
            stmt = stmt.where(StoredObject.owner_id == owner_id)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        counts = dict.fromkeys(IndexState, 0)
        for flags, count in rows:
            counts[index_state(flags)] += count
        return counts
