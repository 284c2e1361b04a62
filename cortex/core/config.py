from functools import lru_cache
import os


class Settings:
    app_name: str = "Turbo Cortex"
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./cortex.db")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    cors_origins: list[str] = [x.strip() for x in os.getenv("CORS_ORIGINS", "*").split(",") if x.strip()]

    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o")
    openai_classifier_model: str = os.getenv("OPENAI_CLASSIFIER_MODEL", "gpt-4o-mini")
    openai_dfc_model: str = os.getenv("OPENAI_DFC_MODEL", "gpt-5")

    cases_webhook_url: str = os.getenv(
        "N8N_CASES_WEBHOOK_URL", "https://n8n.turbopartners.com.br/webhook/assistente-cases"
    )
    cases_webhook_timeout: float = float(os.getenv("CASES_WEBHOOK_TIMEOUT", "60"))

    dfc_cache_ttl: float = float(os.getenv("DFC_CACHE_TTL", "60"))
    dfc_cache_max_entries: int = int(os.getenv("DFC_CACHE_MAX_ENTRIES", "128"))


@lru_cache
def get_settings() -> Settings:
    return Settings()


def env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}
