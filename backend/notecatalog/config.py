from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Notes catalog search settings.

    All values are loaded from environment variables.
    A .env file in the backend directory is also supported.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Database ---
    DATABASE_URL: str = "postgresql+asyncpg://notecatalog:notecatalog@db:5432/notecatalog"

    # --- Embeddings ---
    OPENAI_API_KEY: str = ""
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_DIMENSION: int = Field(1536, ge=1, le=2000)  # vector column width; HNSW indexes cap at 2000
    EMBEDDING_SERVICE_URL: str = ""  # Local embedding service; overrides OpenAI when set
    EMBEDDING_MAX_TOKENS: int = 8191

    # --- Admin ---
    ADMIN_TOKEN: str = ""  # Shared secret for X-Admin-Token; empty disables admin routes

    # --- Search ---
    SEARCH_MAX_LIMIT: int = 50
    SEARCH_CHANNEL_TIMEOUT_SECONDS: float = 8.0
    SEARCH_PARAMS: dict[str, float] = {}  # JSON overrides for DEFAULT_SEARCH_PARAMS

    # --- Logging ---
    LOG_LEVEL: str = "INFO"

    @property
    def async_database_url(self) -> str:
        """Ensure the database URL uses the asyncpg driver."""
        url = self.DATABASE_URL
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings singleton."""
    return Settings()
