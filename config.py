"""Application configuration."""
import os
from dotenv import load_dotenv

load_dotenv()


def _database_url() -> str:
    url = os.getenv("DATABASE_URL", "sqlite:///./harvestshare.db")
    # Hosted Postgres providers still hand out postgres:// URLs
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg2://", 1)
    return url


class Config:
    """Base configuration."""
    DATABASE_URL = _database_url()
    SECRET_KEY = os.getenv("SECRET_KEY", "harvestshare-dev-key-change-in-production")
    TOKEN_ALGORITHM = "HS256"
    TOKEN_TTL_MINUTES = int(os.getenv("TOKEN_TTL_MINUTES", "1440"))
    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    DEBUG = False


class DevelopmentConfig(Config):
    DEBUG = True


class ProductionConfig(Config):
    pass


class TestingConfig(Config):
    DATABASE_URL = "sqlite://"
    SECRET_KEY = "harvestshare-test-key"
    LOG_LEVEL = "WARNING"


config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}


def get_config():
    return config.get(os.getenv("APP_ENV", "default"), DevelopmentConfig)
