from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # ─────────── APP ───────────
    app_name: str = "CivicFlow Issue Workflow Service"
    environment: str = "dev"
    log_level: str = "INFO"

    # ─────────── API ───────────
    api_prefix: str = "/api/v1"
    request_id_header: str = "X-Request-Id"

    # ─────────── DATABASE ───────────
    database_url: str
    database_echo: bool = False

    # ─────────── JWT / AUTH ───────────
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    jwt_access_token_minutes: int = 1440  # 24 hours

    # ─────────── IDEMPOTENCY ───────────
    idempotency_key_max_length: int = 128

    # ─────────── WORKFLOW ───────────
    auto_assign_notes: str = "Auto-assigned based on location"
    points_issue_reported_low: int = 5
    points_issue_reported_medium: int = 10
    points_issue_reported_high: int = 15
    points_issue_reported_urgent: int = 20

    def points_for_priority(self, priority: str) -> int:
        return {
            "low": self.points_issue_reported_low,
            "medium": self.points_issue_reported_medium,
            "high": self.points_issue_reported_high,
            "urgent": self.points_issue_reported_urgent,
        }.get(priority, self.points_issue_reported_medium)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
