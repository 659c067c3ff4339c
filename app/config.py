from typing import Literal, Optional
from pydantic_settings import BaseSettings
from urllib.parse import quote_plus

AmountUnit = Literal["minor", "major", "infer"]


class Settings(BaseSettings):
    ENV: str = "local"
    LOG_LEVEL: str = "INFO"

    postgres_user: str = "postgres"
    postgres_password: str = ""
    postgres_db: str = "fulfillment"
    postgres_host: str = "localhost"
    postgres_port: str = "5432"

    # full URL wins over the postgres_* parts (sqlite for local runs)
    DATABASE_URL: Optional[str] = None

    DODO_API_BASE: str = "https://live.dodopayments.com"
    DODO_API_KEY: str = ""
    DODO_BUSINESS_ID: str = ""
    DODO_WEBHOOK_SECRET: str = ""
    DODO_AMOUNT_UNIT: AmountUnit = "infer"

    PADDLE_WEBHOOK_SECRET: str = ""
    PADDLE_AMOUNT_UNIT: AmountUnit = "minor"

    R2_ACCOUNT_ID: str = ""
    R2_ACCESS_KEY_ID: str = ""
    R2_SECRET_ACCESS_KEY: str = ""
    R2_BUCKET_NAME: str = "products"

    SITE_URL: str = "http://localhost:8000"

    DOWNLOAD_TOKEN_TTL_HOURS: int = 24
    PLACEHOLDER_RETENTION_DAYS: int = 7
    PRESIGNED_URL_TTL_SECONDS: int = 900

    DEFAULT_AFFILIATE_RATE: float = 0.5

    @property
    def database_url(self):
        if self.DATABASE_URL:
            return self.DATABASE_URL
        encoded_password = quote_plus(self.postgres_password)
        return (
            f"postgresql+psycopg2://{self.postgres_user}:"
            f"{encoded_password}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )

    def amount_unit_for(self, provider: str) -> AmountUnit:
        if provider == "paddle":
            return self.PADDLE_AMOUNT_UNIT
        return self.DODO_AMOUNT_UNIT

    def webhook_secret_for(self, provider: str) -> str:
        if provider == "paddle":
            return self.PADDLE_WEBHOOK_SECRET
        return self.DODO_WEBHOOK_SECRET

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"

settings = Settings()
