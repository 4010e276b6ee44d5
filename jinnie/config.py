# jinnie/config.py
from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from pathlib import Path
from functools import lru_cache


class Settings(BaseSettings):
    ENV: str = "development"
    DATA_DIR: Path = Path("data")  # where the CSV tables live
    USERS_FILE: str = "users.csv"
    WISHLISTS_FILE: str = "wishlists.csv"
    WISHES_FILE: str = "wishes.csv"

    # identity tokens
    JWT_SECRET: str = "dev-secret-change-me"
    JWT_ALGORITHM: str = "HS256"
    ID_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 30
    EMAIL_LINK_EXPIRE_MINUTES: int = 60
    # reservation-only sessions obtained through an email link
    RESERVATION_SESSION_HOURS: int = 48

    PUBLIC_BASE_URL: str = "http://localhost:3000"
    CORS_ORIGINS: str = ""

    # server-side product scraping
    SCRAPER_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    )
    SCRAPER_TIMEOUT: float = 15.0
    SCRAPER_MAX_ATTEMPTS: int = 3

    # sign-in link mail; without credentials links are only logged
    SMTP_SERVER: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    EMAIL_USER: str = ""
    EMAIL_PASSWORD: str = ""
    EMAIL_FROM: str = "noreply@jinnie.app"

    LOG_LEVEL: str = "INFO"

    # Example .env:
    # DATA_DIR=./data
    # JWT_SECRET=something-long-and-random

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()


settings = Settings()
