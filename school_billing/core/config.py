from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Store configuration loaded from environment variables."""

    database_url: str = Field("sqlite+aiosqlite:///./school_billing.db", alias="DATABASE_URL")
    sql_echo: bool = Field(False, alias="SQL_ECHO")
    sqlite_journal_mode: str = Field("WAL", alias="SQLITE_JOURNAL_MODE")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
