from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, TSVECTOR
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notecatalog.config import get_settings
from notecatalog.database import Base

EMBEDDING_DIM = get_settings().EMBEDDING_DIMENSION

DOC_KIND_NOTE = "note"
DOC_KIND_RECIPE = "recipe"


class Document(Base):
    """A note or recipe in the catalog.

    Rows are written by the CRUD and import layers. The search core only
    reads them, apart from the embedding columns maintained by
    :mod:`notecatalog.search.freshness` and the admin maintenance backfills.
    """

    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(500), default="")
    body: Mapped[str] = mapped_column(Text, default="")  # Markdown
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str]] = mapped_column(ARRAY(String), default=list, server_default="{}")
    subject_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    topic_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    doc_kind: Mapped[str] = mapped_column(String(20), default=DOC_KIND_NOTE, server_default=DOC_KIND_NOTE)
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    source_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    import_batch_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    # Bumped only when searchable content changes (not on moves/reorders)
    content_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Note embedding
    embedding = mapped_column(Vector(EMBEDDING_DIM), nullable=True)
    embedding_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    embedding_text_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    embedding_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    embedding_checked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Recipe fields
    recipe_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    cuisine: Mapped[str | None] = mapped_column(String(100), nullable=True)
    category: Mapped[list[str]] = mapped_column(ARRAY(String), default=list, server_default="{}")
    keywords: Mapped[list[str]] = mapped_column(ARRAY(String), default=list, server_default="{}")
    recipe_yield: Mapped[str | None] = mapped_column(String(100), nullable=True)
    prep_time_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cook_time_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_time_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ingredients: Mapped[list | None] = mapped_column(JSONB, nullable=True)  # [{"raw", "name", "deleted"}]
    ingredients_raw: Mapped[list[str]] = mapped_column(ARRAY(Text), default=list, server_default="{}")
    steps_raw: Mapped[list[str]] = mapped_column(ARRAY(Text), default=list, server_default="{}")
    ingredient_tokens: Mapped[list[str]] = mapped_column(ARRAY(String), default=list, server_default="{}")

    # Recipe embedding (recipe-semantic text)
    recipe_embedding = mapped_column(Vector(EMBEDDING_DIM), nullable=True)
    recipe_embedding_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    recipe_embedding_text_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    recipe_embedding_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    recipe_embedding_checked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Cooking history: precomputed aggregate plus the legacy raw list
    cooked_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_cooked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    avg_cooked_rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    cooked_notes_text: Mapped[str | None] = mapped_column(Text, nullable=True)  # keyword-searchable
    cooked_history: Mapped[list | None] = mapped_column(JSONB, nullable=True)  # [{"cookedAt", "rating", "notes"}]

    # Full-text search vector (maintained by trigger)
    search_vector: Mapped[str | None] = mapped_column(TSVECTOR, nullable=True)

    snapshots: Mapped[list["LinkedPageSnapshot"]] = relationship(
        back_populates="document", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint("doc_kind IN ('note', 'recipe')", name="ck_documents_doc_kind"),
        Index("idx_documents_search_vector", "search_vector", postgresql_using="gin"),
        Index("idx_documents_tags", "tags", postgresql_using="gin"),
        Index("idx_documents_ingredient_tokens", "ingredient_tokens", postgresql_using="gin"),
        Index("idx_documents_kind_content_updated", "doc_kind", "content_updated_at"),
    )


class LinkedPageSnapshot(Base):
    """Fetched text of a page linked from a document.

    Deleted together with its owning document.
    """

    __tablename__ = "linked_page_snapshots"

    id: Mapped[int] = mapped_column(primary_key=True)
    document_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    excerpt: Mapped[str | None] = mapped_column(Text, nullable=True)
    extracted_text: Mapped[str] = mapped_column(Text, default="")
    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    status: Mapped[str] = mapped_column(String(20), default="ok", server_default="ok")
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    text_chars: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    embedding = mapped_column(Vector(EMBEDDING_DIM), nullable=True)
    embedding_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    embedding_text_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    embedding_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    embedding_checked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    search_vector: Mapped[str | None] = mapped_column(TSVECTOR, nullable=True)

    document: Mapped[Document] = relationship(back_populates="snapshots")

    __table_args__ = (
        UniqueConstraint("document_id", "url", name="uq_snapshots_document_url"),
        CheckConstraint(
            "status IN ('ok', 'error', 'blocked', 'timeout')",
            name="ck_snapshots_status",
        ),
        Index("idx_snapshots_search_vector", "search_vector", postgresql_using="gin"),
    )
