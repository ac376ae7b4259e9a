# constructor/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    REDIS_URL: str
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash"
    EXTRACTOR_API_URL: str = "http://localhost:3001"
    EXTRACTOR_API_TOKEN: str = ""
    EXTRACTION_TIMEOUT_SECONDS: float = 120.0
    SAVE_DEBOUNCE_SECONDS: float = 1.0
    LIMITER_STORAGE_URI: str = ""
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"
    ALLOWED_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
