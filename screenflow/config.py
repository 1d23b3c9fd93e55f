from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"
    log_json: bool = False

    # Conversation defaults (the sandbox's own app config may override these)
    default_lang: str = "en"
    reset_keyword: str = "!reset"  # Inbound content that wipes the user's record

    # Sandbox host
    # Base URL the HTTP sandbox adapter posts API requests to, e.g. "http://sandbox:8000/api"
    sandbox_url: str | None = None
    sandbox_token: str | None = None  # Sent as a Bearer token when set
    sandbox_timeout_seconds: float = 10.0

    # Monitoring & Metrics
    enable_metrics: bool = True

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        missing = []
        required_fields = [
            ("sandbox_url", self.sandbox_url),
            ("sandbox_token", self.sandbox_token),
        ]
        for field_name, value in required_fields:
            if not value:
                missing.append(field_name)

        return missing


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    if s.sandbox_url and not s.sandbox_token:
        warnings.append("sandbox_url is set but sandbox_token is missing (requests go out unauthenticated).")

    if s.sandbox_url and s.sandbox_url.startswith("http://") and s.is_production:
        warnings.append("prod: sandbox_url uses plain http.")

    if s.sandbox_timeout_seconds <= 0:
        warnings.append("sandbox_timeout_seconds <= 0: host requests will fail immediately.")

    if not s.reset_keyword.strip():
        warnings.append("reset_keyword is empty: every empty message would reset the user.")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In non-prod: warn only.
    """
    missing = s.validate_required_for_production()

    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    for msg in warn_on_risky_config(s):
        print(f"[WARN][config] {msg}")


settings = Settings()
validate_or_warn(settings)
