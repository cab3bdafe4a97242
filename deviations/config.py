from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


PLACEHOLDER_MARKERS = ("COLE_AQUI", "YOUR_", "<")


class Settings(BaseSettings):
    PROJECT_NAME: str = "Gestão de Desvios de Frota"
    VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    SUPABASE_TABLE: str = "deviations"

    TOP_DRIVERS_RANKING: int = 10
    TOP_DRIVERS_DETAIL: int = 50

    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def supabase_configured(self) -> bool:
        url, key = self.SUPABASE_URL.strip(), self.SUPABASE_KEY.strip()
        if not url or not key:
            return False
        if not url.startswith(("http://", "https://")):
            return False
        return not any(marker in value for value in (url, key) for marker in PLACEHOLDER_MARKERS)


@lru_cache()
def get_settings() -> Settings:
    """Settings are read once from the environment / .env and reused."""
    return Settings()
