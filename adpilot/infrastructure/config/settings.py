from __future__ import annotations
import os
from functools import lru_cache
import dotenv

# Load environment from .env if present (local dev)
dotenv.load_dotenv()


class Settings:
    # Supabase
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_key: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", os.getenv("SUPABASE_ANON_KEY", ""))

    # Runtime
    environment: str = os.getenv("ENV", os.getenv("ENVIRONMENT", "local"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    cors_allow_origins: list[str] = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "").split(",") if o.strip()]

    # Conversation backend (webhook)
    chat_webhook_url: str = os.getenv("CHAT_WEBHOOK_URL", "")
    chat_webhook_timeout_seconds: float = float(os.getenv("CHAT_WEBHOOK_TIMEOUT_SECONDS", "120"))
    chat_execution_mode: str = os.getenv("CHAT_EXECUTION_MODE", "production")
    chat_currency: str = os.getenv("CHAT_CURRENCY", "USD")

    # Message store
    chat_page_size: int = int(os.getenv("CHAT_PAGE_SIZE", "200"))
    chat_history_window: int = int(os.getenv("CHAT_HISTORY_WINDOW", "6"))
    # Trailing window (days) for campaign snapshot / timeframe descriptor
    chat_context_days: int = int(os.getenv("CHAT_CONTEXT_DAYS", "7"))

    # Throttled reveal of assistant text
    chat_reveal_duration_ms: int = int(os.getenv("CHAT_REVEAL_DURATION_MS", "400"))
    chat_reveal_steps: int = int(os.getenv("CHAT_REVEAL_STEPS", "20"))

    # Quota
    free_message_limit: int = int(os.getenv("FREE_MESSAGE_LIMIT", "10"))

    # Execution service (Supabase edge function)
    execution_function_name: str = os.getenv("EXECUTION_FUNCTION_NAME", "bront-execution")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    s = Settings()
    # Local development default for the Expo dev server
    if not s.cors_allow_origins and s.environment == "local":
        s.cors_allow_origins = ["http://localhost:8081"]
    return s
