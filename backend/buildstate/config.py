# backend/buildstate/config.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    app_version: str = "2026.10.1"
    database_url: str = "sqlite:///./buildstate.db"

    # ---- Logging ----
    log_level: str = "INFO"
    sql_log_level: str = "WARNING"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["http://localhost:5173"]

    # ---- JWT ----
    jwt_secret: str = "dev-change-me"
    jwt_algorithm: str = "HS256"
    jwt_exp_minutes: int = 60 * 24 * 7  # 7 days

    # ---- Password hashing ----
    auth_pbkdf2_iters: int = 210_000

    # ---- Billing ----
    trial_period_days: int = 14

    # ---- Uploads ----
    upload_dir: str = "./uploads"
    upload_public_prefix: str = "/uploads"
    upload_max_bytes: int = 10 * 1024 * 1024
    upload_max_files: int = 10

    # ---- Notifications ----
    notification_dispatch: str = "inline"  # inline|celery

    # ---- Celery ----
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        if env not in ("prod", "production"):
            return

        if self.jwt_secret == "dev-change-me":
            raise ValueError("SECURITY: jwt_secret must be set in prod")

        origins = self.cors_allow_origins
        if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
            raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")


settings = Settings()
