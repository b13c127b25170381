import os
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

# Set test environment variables before importing notecatalog modules
os.environ.setdefault("DATABASE_URL", "postgresql+asyncpg://notecatalog:notecatalog@db:5432/notecatalog_test")
os.environ.setdefault("OPENAI_API_KEY", "")
os.environ.setdefault("ADMIN_TOKEN", "")


def make_result(rows=None, scalar=None, rowcount: int = 1) -> MagicMock:
    """Build a mock SQLAlchemy Result exposing the accessors the code uses."""
    rows = list(rows or [])
    result = MagicMock()
    result.fetchall.return_value = rows
    result.scalars.return_value.all.return_value = rows
    result.scalar_one.return_value = scalar
    result.rowcount = rowcount
    return result


def make_session(*results) -> AsyncMock:
    """AsyncSession mock whose ``execute`` returns *results* in order."""
    session = AsyncMock()
    session.execute = AsyncMock(side_effect=list(results))
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


def make_session_factory(session) -> MagicMock:
    """``async_sessionmaker`` stand-in: ``async with factory() as s`` yields *session*."""
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=session)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    return factory


def doc_row(doc_id: int, **overrides) -> SimpleNamespace:
    """A document-shaped row with every column the search code reads."""
    values = {
        "id": doc_id,
        "title": f"Doc {doc_id}",
        "body": "",
        "summary": None,
        "tags": [],
        "subject_id": None,
        "topic_id": None,
        "doc_kind": "note",
        "status": None,
        "source_type": None,
        "import_batch_id": None,
        "created_at": None,
        "updated_at": None,
        "content_updated_at": None,
        "embedding": None,
        "embedding_model": None,
        "embedding_text_hash": None,
        "recipe_description": None,
        "cuisine": None,
        "category": [],
        "keywords": [],
        "recipe_yield": None,
        "prep_time_minutes": None,
        "cook_time_minutes": None,
        "total_time_minutes": None,
        "ingredients": None,
        "ingredients_raw": [],
        "steps_raw": [],
        "ingredient_tokens": [],
        "recipe_embedding": None,
        "recipe_embedding_model": None,
        "recipe_embedding_text_hash": None,
        "cooked_count": None,
        "last_cooked_at": None,
        "avg_cooked_rating": None,
        "cooked_history": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)
