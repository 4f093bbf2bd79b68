# app/core/config.py
# -----------------------------------------------------------------------------
# Global settings (pydantic-settings v2)
# - read from .env and OS environment into a single Settings object
# - defaults cover local development with SQLite
# -----------------------------------------------------------------------------
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


class Settings(BaseSettings):
    # base
    APP_NAME: str = "Venuescope"
    ENV: str = "dev"
    DATABASE_URL: str = "sqlite+aiosqlite:///./venuescope.db"

    # POI provider (Azure Maps category search)
    AZURE_MAPS_KEY: str | None = None
    POI_SEARCH_URL: str = "https://atlas.microsoft.com/search/poi/category/json"
    POI_PAGE_LIMIT: int = 50
    POI_MAX_PAGES: int = 2
    POI_TIMEOUT_S: float = 10.0
    POI_CACHE_TTL_MIN: int = 10
    CATEGORY_MAP_PATH: str = str(DATA_DIR / "categories.json")

    # analysis
    GRID_TARGET_CELLS: int = 250
    TOP_N: int = 10
    RECOMPUTE_DEBOUNCE_MS: int = 200

    # logging
    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore"  # ignore unrelated keys in .env
    )


settings = Settings()
