"""
Configuration settings for the Smart Palette application.
"""
from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Smart Palette"

    # Image loading
    IMAGE_FETCH_TIMEOUT: float = Field(10.0, description="Seconds to wait for a remote image")
    MAX_IMAGE_PIXELS: int = Field(50_000_000, description="Reject images larger than this many pixels")
    ALLOW_LOCAL_FILES: bool = True
    # Empty list means any host may be fetched
    ALLOWED_IMAGE_HOSTS: List[str] = Field(default_factory=list)

    # Video sampling
    VIDEO_OPEN_TIMEOUT: float = Field(10.0, description="Seconds to wait for a video to open")
    VIDEO_SEEK_TIMEOUT: float = Field(5.0, description="Seconds to wait for a single frame seek")

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_TO_FILE: bool = True

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "extra": "ignore"
    }

settings = Settings()
