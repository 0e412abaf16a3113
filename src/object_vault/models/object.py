"""StoredObject model: the catalog entry for one stored blob."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import BigInteger, Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from object_vault.models.base import Base
from object_vault.models.enums import IndexState
from object_vault.models.flags import index_state


def utcnow() -> datetime:
    return datetime.now(UTC)


class StoredObject(Base):
    """A user-owned blob recorded in the catalog.

    Rows are created in the same transaction for a whole upload batch, so the
    indexing scheduler never sees an object whose blob upload is still in
    flight. ``(owner_id, content_hash)`` is unique among live rows by way of
    the dedup check at ingest; the composite index backs that lookup.
    """

    __tablename__ = "objects"
    __table_args__ = (Index("ix_objects_owner_hash", "owner_id", "content_hash"),)

    object_id: Mapped[UUID] = mapped_column(primary_key=True)
    owner_id: Mapped[UUID] = mapped_column(index=True)
    content_type: Mapped[str] = mapped_column(String(255))
    content_size: Mapped[int] = mapped_column(BigInteger)
    file_name: Mapped[str] = mapped_column(String(1024))
    content_hash: Mapped[str] = mapped_column(String(64))

    slug: Mapped[str | None] = mapped_column(String(32), unique=True)
    """Public handle, set together with ``is_public`` on publish and never changed."""

    is_public: Mapped[bool] = mapped_column(Boolean, default=False)

    flags: Mapped[int] = mapped_column(BigInteger, default=0)
    """``ObjectFlag`` bits. Only ever OR-ed, see ``object_vault.models.flags``."""

    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    @property
    def index_state(self) -> IndexState:
        return index_state(self.flags)

    def __repr__(self) -> str:
        return f"<StoredObject {self.object_id} owner={self.owner_id} {self.file_name!r}>"
