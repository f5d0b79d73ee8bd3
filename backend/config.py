from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = "sqlite:///./lab_test_desk.db"
    app_env: str = "dev"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"

    api_base_url: str = "http://localhost:8000"
    allowed_origins: str = "http://localhost:8501"
    max_upload_size_mb: int = 5

    # Unset means the deterministic mock source is used.
    identity_source_url: str | None = None
    identity_source_timeout_seconds: float = 10.0

    category_delete_policy: Literal["orphan", "restrict"] = "orphan"
    patient_search_fuzzy_threshold: int = 70
    seed_demo_taxonomy: bool = False


settings = Settings()
