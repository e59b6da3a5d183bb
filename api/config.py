"""
Configuration management for the equity ETL read API.
"""

import os
from pathlib import Path
from typing import List

from etl.config import settings as etl_settings


class Settings:
    """API server configuration."""

    # Paths
    BASE_DIR: Path = Path(__file__).parent.parent
    DB_PATH: str = os.getenv("ETL_DB_PATH", etl_settings.DB_PATH)

    # Server
    API_TITLE: str = "Equity ETL Data API"
    API_DESCRIPTION: str = "Read-only access to daily prices, indicators and ETL run history"
    API_VERSION: str = "1.0.0"
    HOST: str = os.getenv("ETL_API_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("ETL_API_PORT", "8000"))

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    # Database
    DB_TIMEOUT: int = etl_settings.DB_TIMEOUT

    # Row cap for series endpoints
    MAX_LIMIT: int = 5000


settings = Settings()
