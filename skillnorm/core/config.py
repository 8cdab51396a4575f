# skillnorm/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'
    )

    APP_NAME: str = "SkillNorm"
    APP_ENV: str = "dev"

    LOG_LEVEL: str | None = None
    LOG_JSON: bool = False
    LOG_FILE: str | None = None

    # SQLite by default; any SQLAlchemy URL works (postgresql+psycopg://...)
    DATABASE_URL: str = "sqlite:///./skillnorm.db"

    # ---------- LLM ----------
    OPENAI_API_KEY: str = ""
    OPENAI_MAX_RETRIES: int = 2
    OPENAI_TIMEOUT_SECONDS: float = 60.0
    EXTRACT_MODEL: str = "gpt-4o-mini"
    EXTRACT_MAX_TOKENS: int = 1000
    NORMALIZE_MODEL: str = "gpt-4o-mini"
    NORMALIZE_MAX_TOKENS: int = 4000
    USER_SKILLS_MODEL: str = "gpt-4o-mini"
    LLM_TEMPERATURE: float | None = 0.0
    LLM_MAX_CONCURRENCY: int = 5
    LLM_BATCH_DELAY_SECONDS: float = 1.0

    # ---------- Extraction ----------
    EXTRACT_CHUNK_CHARS: int = 3000
    EXTRACT_CHUNK_BATCH_SIZE: int = 5
    EXTRACT_DOC_BATCH_SIZE: int = 5
    LEDGER_FLUSH_EVERY: int = 10

    # ---------- Normalization ----------
    NORMALIZE_CHUNK_SIZE: int = 200
    NORMALIZE_MIN_BATCH: int = 5
    # prompt suggestions (loose) and merge decisions (tight) are different contracts
    GROUNDING_MAX_RESULTS: int = 10
    GROUNDING_THRESHOLD: float = 0.4
    CONSOLIDATION_THRESHOLD: float = 0.85
    USER_MATCH_THRESHOLD: float = 0.85
    USER_BATCH_SIZE: int = 25

    # ---------- Clustering / embeddings ----------
    CLUSTER_TOP_K: int = 5
    CLUSTER_SIM_THRESHOLD: float = 0.7
    EMBED_MODEL: str = "sentence-transformers/all-MiniLM-L6-v2"
    EMBED_BATCH_SIZE: int = 100

    PAGE_SIZE: int = 1000
    LOCK_TTL_SECONDS: int = 3600


settings = Settings()
