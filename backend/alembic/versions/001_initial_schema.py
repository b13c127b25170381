"""Create documents and linked_page_snapshots with search infrastructure.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-18 08:00:00.000000

Full-text search vectors are maintained by triggers (english config):
documents weigh title A, summary and tags B, body C, cooked notes D;
snapshots weigh title A, excerpt B, extracted text C.  Vector columns get
HNSW cosine indexes sized by EMBEDDING_DIMENSION.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

from notecatalog.config import get_settings

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIM = get_settings().EMBEDDING_DIMENSION


def _embedding_columns(prefix: str) -> list[sa.Column]:
    return [
        sa.Column(prefix, Vector(EMBEDDING_DIM), nullable=True),
        sa.Column(f"{prefix}_model", sa.String(100), nullable=True),
        sa.Column(f"{prefix}_text_hash", sa.String(64), nullable=True),
        sa.Column(f"{prefix}_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(f"{prefix}_checked_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Apply schema migrations."""
    op.execute('CREATE EXTENSION IF NOT EXISTS "vector"')

    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(500), nullable=False, server_default=""),
        sa.Column("body", sa.Text(), nullable=False, server_default=""),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("tags", postgresql.ARRAY(sa.String()), nullable=False, server_default="{}"),
        sa.Column("subject_id", sa.String(64), nullable=True),
        sa.Column("topic_id", sa.String(64), nullable=True),
        sa.Column("doc_kind", sa.String(20), nullable=False, server_default="note"),
        sa.Column("status", sa.String(50), nullable=True),
        sa.Column("source_type", sa.String(50), nullable=True),
        sa.Column("import_batch_id", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("content_updated_at", sa.DateTime(timezone=True), nullable=True),
        *_embedding_columns("embedding"),
        sa.Column("recipe_description", sa.Text(), nullable=True),
        sa.Column("cuisine", sa.String(100), nullable=True),
        sa.Column("category", postgresql.ARRAY(sa.String()), nullable=False, server_default="{}"),
        sa.Column("keywords", postgresql.ARRAY(sa.String()), nullable=False, server_default="{}"),
        sa.Column("recipe_yield", sa.String(100), nullable=True),
        sa.Column("prep_time_minutes", sa.Integer(), nullable=True),
        sa.Column("cook_time_minutes", sa.Integer(), nullable=True),
        sa.Column("total_time_minutes", sa.Integer(), nullable=True),
        sa.Column("ingredients", postgresql.JSONB(), nullable=True),
        sa.Column("ingredients_raw", postgresql.ARRAY(sa.Text()), nullable=False, server_default="{}"),
        sa.Column("steps_raw", postgresql.ARRAY(sa.Text()), nullable=False, server_default="{}"),
        sa.Column("ingredient_tokens", postgresql.ARRAY(sa.String()), nullable=False, server_default="{}"),
        *_embedding_columns("recipe_embedding"),
        sa.Column("cooked_count", sa.Integer(), nullable=True),
        sa.Column("last_cooked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("avg_cooked_rating", sa.Float(), nullable=True),
        sa.Column("cooked_notes_text", sa.Text(), nullable=True),
        sa.Column("cooked_history", postgresql.JSONB(), nullable=True),
        sa.Column("search_vector", postgresql.TSVECTOR(), nullable=True),
        sa.CheckConstraint("doc_kind IN ('note', 'recipe')", name="ck_documents_doc_kind"),
    )
    op.create_index("ix_documents_subject_id", "documents", ["subject_id"])
    op.create_index("ix_documents_topic_id", "documents", ["topic_id"])
    op.create_index("ix_documents_import_batch_id", "documents", ["import_batch_id"])
    op.create_index("idx_documents_kind_content_updated", "documents", ["doc_kind", "content_updated_at"])
    op.create_index("idx_documents_search_vector", "documents", ["search_vector"], postgresql_using="gin")
    op.create_index("idx_documents_tags", "documents", ["tags"], postgresql_using="gin")
    op.create_index(
        "idx_documents_ingredient_tokens", "documents", ["ingredient_tokens"], postgresql_using="gin"
    )

    op.create_table(
        "linked_page_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "document_id",
            sa.Integer(),
            sa.ForeignKey("documents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("title", sa.String(500), nullable=True),
        sa.Column("excerpt", sa.Text(), nullable=True),
        sa.Column("extracted_text", sa.Text(), nullable=False, server_default=""),
        sa.Column("content_hash", sa.String(64), nullable=True),
        sa.Column("fetched_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("status", sa.String(20), nullable=False, server_default="ok"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("text_chars", sa.Integer(), nullable=False, server_default="0"),
        *_embedding_columns("embedding"),
        sa.Column("search_vector", postgresql.TSVECTOR(), nullable=True),
        sa.UniqueConstraint("document_id", "url", name="uq_snapshots_document_url"),
        sa.CheckConstraint(
            "status IN ('ok', 'error', 'blocked', 'timeout')",
            name="ck_snapshots_status",
        ),
    )
    op.create_index("ix_linked_page_snapshots_document_id", "linked_page_snapshots", ["document_id"])
    op.create_index(
        "idx_snapshots_search_vector", "linked_page_snapshots", ["search_vector"], postgresql_using="gin"
    )

    # HNSW cosine indexes for the vector columns
    for index_name, table, column in (
        ("idx_documents_embedding_hnsw", "documents", "embedding"),
        ("idx_documents_recipe_embedding_hnsw", "documents", "recipe_embedding"),
        ("idx_snapshots_embedding_hnsw", "linked_page_snapshots", "embedding"),
    ):
        op.execute(f"CREATE INDEX {index_name} ON {table} USING hnsw ({column} vector_cosine_ops)")

    op.execute("""
        CREATE OR REPLACE FUNCTION documents_search_vector_update()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.search_vector :=
                setweight(to_tsvector('english', coalesce(NEW.title, '')), 'A') ||
                setweight(to_tsvector('english', coalesce(NEW.summary, '')), 'B') ||
                setweight(to_tsvector('english', coalesce(array_to_string(NEW.tags, ' '), '')), 'B') ||
                setweight(to_tsvector('english', coalesce(NEW.body, '')), 'C') ||
                setweight(to_tsvector('english', coalesce(NEW.cooked_notes_text, '')), 'D');
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER trg_documents_search_vector
        BEFORE INSERT OR UPDATE OF title, summary, tags, body, cooked_notes_text ON documents
        FOR EACH ROW EXECUTE FUNCTION documents_search_vector_update();
    """)

    op.execute("""
        CREATE OR REPLACE FUNCTION snapshots_search_vector_update()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.search_vector :=
                setweight(to_tsvector('english', coalesce(NEW.title, '')), 'A') ||
                setweight(to_tsvector('english', coalesce(NEW.excerpt, '')), 'B') ||
                setweight(to_tsvector('english', coalesce(NEW.extracted_text, '')), 'C');
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER trg_snapshots_search_vector
        BEFORE INSERT OR UPDATE OF title, excerpt, extracted_text ON linked_page_snapshots
        FOR EACH ROW EXECUTE FUNCTION snapshots_search_vector_update();
    """)


def downgrade() -> None:
    """Revert schema migrations."""
    op.execute("DROP TRIGGER IF EXISTS trg_snapshots_search_vector ON linked_page_snapshots")
    op.execute("DROP FUNCTION IF EXISTS snapshots_search_vector_update()")
    op.execute("DROP TRIGGER IF EXISTS trg_documents_search_vector ON documents")
    op.execute("DROP FUNCTION IF EXISTS documents_search_vector_update()")
    op.drop_table("linked_page_snapshots")
    op.drop_table("documents")
