from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MES_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "Plant Floor MES"
    # SQLite 檔案在專案根目錄；部署時改成託管 Postgres 的連線字串
    DATABASE_URL: str = "sqlite:///./database.db"
    ALERT_REFRESH_SECONDS: float = 60.0
    ANALYTICS_DEFAULT_RANGE: Literal["7d", "30d", "90d", "custom"] = "30d"
    LOG_LEVEL: str = "INFO"

    @field_validator("DATABASE_URL")
    @classmethod
    def use_psycopg_driver(cls, v: str) -> str:
        if v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+psycopg://", 1)
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql+psycopg://", 1)
        return v

    @field_validator("ALERT_REFRESH_SECONDS")
    @classmethod
    def positive_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("ALERT_REFRESH_SECONDS must be positive")
        return v


settings = Settings()
