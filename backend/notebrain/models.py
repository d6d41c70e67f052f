from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notebrain.database import Base
from notebrain.utils.note_utils import MAX_TITLE_LENGTH

# JSONB on PostgreSQL, plain JSON (text) elsewhere; Python None is stored as SQL NULL
JSONType = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


def generate_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(UTC)


class Note(Base):
    """A text note with an optional whole-note embedding."""

    __tablename__ = "notes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_id)
    title: Mapped[str] = mapped_column(String(MAX_TITLE_LENGTH), default="")
    content: Mapped[str] = mapped_column(Text, default="")
    tags: Mapped[list | None] = mapped_column(JSONType, nullable=True)  # ["tag1", "tag2"]
    embedding: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    # updated_at is set explicitly on content edits; embedding backfill leaves it alone
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    chunks: Mapped[list[NoteChunk]] = relationship(
        back_populates="note",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="NoteChunk.chunk_index",
        lazy="raise",
    )

    __table_args__ = (Index("idx_notes_updated_at", "updated_at"),)

    def __repr__(self) -> str:
        return f"<Note id={self.id!r} title={self.title[:30]!r}>"


class NoteChunk(Base):
    """An independently embedded slice of a long note's content."""

    __tablename__ = "note_chunks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_id)
    note_id: Mapped[str] = mapped_column(String(64), ForeignKey("notes.id", ondelete="CASCADE"), index=True)
    content: Mapped[str] = mapped_column(Text)
    embedding: Mapped[list] = mapped_column(JSONType)
    chunk_index: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    note: Mapped[Note] = relationship(back_populates="chunks", lazy="raise")

    __table_args__ = (UniqueConstraint("note_id", "chunk_index", name="uq_note_chunks_note_index"),)
