from functools import lru_cache
import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class Settings(BaseModel):
    env: str = Field(default="dev", alias="ENV")
    timezone: str = Field(default="Asia/Kuala_Lumpur", alias="TIMEZONE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    database_url: str = Field(default="", alias="DATABASE_URL")
    postgres_db: str = Field(default="ntt", alias="POSTGRES_DB")
    postgres_user: str = Field(default="ntt", alias="POSTGRES_USER")
    postgres_password: str = Field(default="ntt", alias="POSTGRES_PASSWORD")
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")

    jwt_secret: str = Field(default="secret", alias="JWT_SECRET")
    jwt_expire_min: int = Field(default=43200, alias="JWT_EXPIRE_MIN")

    app_url: str = Field(default="http://localhost:3000", alias="APP_URL")

    payment_provider: str = Field(default="stub", alias="PAYMENT_PROVIDER")
    payment_currency: str = Field(default="MYR", alias="PAYMENT_CURRENCY")
    bayarcash_sandbox: bool = Field(default=True, alias="BAYARCASH_SANDBOX")
    bayarcash_portal_key: str = Field(default="", alias="BAYARCASH_PORTAL_KEY")
    bayarcash_api_token: str = Field(default="", alias="BAYARCASH_API_TOKEN")
    bayarcash_api_secret_key: str = Field(default="", alias="BAYARCASH_API_SECRET_KEY")
    gateway_timeout_seconds: float = Field(default=10.0, alias="GATEWAY_TIMEOUT_SECONDS")

    cron_secret: str = Field(default="", alias="CRON_SECRET")
    auto_cancel_sweep_seconds: int = Field(default=60, alias="AUTO_CANCEL_SWEEP_SECONDS")

    default_admin_login: str = Field(default="admin", alias="DEFAULT_ADMIN_LOGIN")
    default_admin_password: str = Field(default="admin123", alias="DEFAULT_ADMIN_PASSWORD")

    class Config:
        populate_by_name = True

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            for prefix in ("postgres://", "postgresql://"):
                if self.database_url.startswith(prefix):
                    return "postgresql+psycopg2://" + self.database_url[len(prefix):]
            return self.database_url
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    load_dotenv(override=False)
    return Settings(**os.environ)
