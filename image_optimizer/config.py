# image_optimizer/config.py
from functools import lru_cache
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings

from image_optimizer.core.processors.image import OUTPUT_FORMATS

env_path = Path.cwd() / ".env"
load_dotenv(dotenv_path=env_path)


class Settings(BaseSettings):
    # App configuration from environment variables

    # Basic info
    APP_NAME: str = "Image Optimizer API"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "API for image optimization"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Paths
    UPLOAD_DIR: Path = Path("./uploads")
    PUBLIC_URL: str = "/uploads"
    PUBLIC_DIR: Path = Path("./public")

    # Processing
    MAX_FILE_SIZE_MB: int = 40
    DEFAULT_QUALITY: int = 80
    DEFAULT_FORMAT: str = "webp"

    # Responses smaller than this are sent uncompressed
    COMPRESSION_MINIMUM_SIZE: int = 2048

    CORS_ORIGINS: List[str] = ["*"]

    @field_validator("PUBLIC_URL")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("LOG_LEVEL")
    @classmethod
    def upper_log_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("DEFAULT_FORMAT")
    @classmethod
    def check_format(cls, value: str) -> str:
        value = value.lower()
        if value not in OUTPUT_FORMATS:
            raise ValueError(f"DEFAULT_FORMAT must be one of {', '.join(OUTPUT_FORMATS)}")
        return value

    @field_validator("DEFAULT_QUALITY")
    @classmethod
    def check_quality(cls, value: int) -> int:
        if not 1 <= value <= 100:
            raise ValueError("DEFAULT_QUALITY must be between 1 and 100")
        return value

    @property
    def max_file_size_bytes(self) -> int:
        return self.MAX_FILE_SIZE_MB * 1024 * 1024


@lru_cache()
def get_settings() -> Settings:
    """Cache settings to avoid re-reading env file"""
    return Settings()
