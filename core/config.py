from decimal import Decimal
from pydantic_settings import BaseSettings
from pydantic import ConfigDict

class Settings(BaseSettings):
    model_config = ConfigDict(env_file=".env")

    ENV: str = "development"

    DATABASE_URL: str
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    MAIL_USERNAME: str = ""
    MAIL_PASSWORD: str = ""
    MAIL_FROM: str = "orders@example.com"
    MAIL_SERVER: str = "localhost"
    MAIL_PORT: int = 587
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Blob storage
    STORAGE_DIR: str = "storage"
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    SIGNED_URL_EXPIRE_SECONDS: int = 3600
    MAX_UPLOAD_BYTES: int = 25 * 1024 * 1024

    # Orders
    TAX_RATE: Decimal = Decimal("0.00")


settings = Settings()
