from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "blossom-server"
    app_env: str = "dev"
    host: str = "127.0.0.1"
    port: int = 8000
    database_path: str = "data/blobs.db"
    base_url: str = "http://127.0.0.1:8000"
    whitelisted_pubkeys: list[str] = []
    allowed_mime_types: list[str] = []
    min_upload_size_bytes: int = 1
    max_upload_size_bytes: int = 50 * 1024 * 1024
    index_file: str | None = None
    log_level: str = "INFO"
    log_format: str = "json"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="BLOSSOM_")


@lru_cache
def get_settings() -> Settings:
    return Settings()
