from functools import lru_cache
import os
from pydantic import BaseModel, Field


class Settings(BaseModel):
    env: str = Field(default="dev", alias="ENV")
    timezone: str = Field(default="Europe/Paris", alias="TIMEZONE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    postgres_db: str = Field(default="sport", alias="POSTGRES_DB")
    postgres_user: str = Field(default="sport", alias="POSTGRES_USER")
    postgres_password: str = Field(default="sport", alias="POSTGRES_PASSWORD")
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")
    database_url: str = Field(default="", alias="DATABASE_URL")

    storage_backend: str = Field(default="sql", alias="STORAGE_BACKEND")

    jwt_secret: str = Field(default="secret", alias="JWT_SECRET")

    session_horizon_weeks: int = Field(default=2, alias="SESSION_HORIZON_WEEKS")
    session_extension_interval_hours: int = Field(
        default=6, alias="SESSION_EXTENSION_INTERVAL_HOURS"
    )
    participation_max_attempts: int = Field(default=3, alias="PARTICIPATION_MAX_ATTEMPTS")

    class Config:
        populate_by_name = True

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(**os.environ)
