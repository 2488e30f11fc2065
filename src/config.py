"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PURCHASE_PHRASES = [
    "yes i want to buy",
    "i want to buy",
    "i want to purchase",
    "yes i want to purchase",
    "i'll buy it",
    "ill buy it",
    "i will buy it",
    "yes i'll buy",
    "yes ill buy",
    "i'd like to buy",
    "id like to buy",
    "i would like to buy",
    "gusto ko bumili",
    "bibilhin ko",
    "yes please",
    "yes, i want to buy",
    "yes, i'll buy",
    "oo bibili ako",
    "oo gusto ko",
    "avail",
    "i want to avail",
    "avail ako",
    "pabili",
    "buy na",
    "yes buy",
]

DEFAULT_PURCHASE_EXACT_PHRASES = ["yes", "oo", "sure", "okay", "ok"]


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Assistant configuration. All values come from environment variables."""

    # OpenRouter (OpenAI-compatible completions)
    openrouter_api_key: str = Field(default="")
    openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1")
    chat_model: str = Field(default="openai/gpt-oss-120b")
    vision_model: str = Field(default="google/gemini-2.0-flash-lite-001")
    completion_max_tokens: int = Field(default=300)
    completion_temperature: float = Field(default=0.3)

    # Instagram
    instagram_access_token: str = Field(default="")
    instagram_app_secret: str = Field(default="")
    instagram_verify_token: str = Field(default="")
    instagram_app_id: str = Field(default="")
    instagram_graph_url: str = Field(default="https://graph.instagram.com/v21.0")
    verify_signatures: bool = Field(default=False)
    message_chunk_size: int = Field(default=1900)

    # Telegram (staff alerts)
    telegram_bot_token: str = Field(default="")
    telegram_chat_id: str = Field(default="")
    telegram_notifications_enabled: bool = Field(default=False)

    # Webhook server
    webhook_port: int = Field(default=3000)
    public_url: str = Field(default="")

    # Automation
    ai_enabled: bool = Field(default=True)

    # Conversation lifecycle
    conversation_window_size: int = Field(default=50)
    conversation_ttl_minutes: int = Field(default=24 * 60)
    takeover_cooldown_minutes: int = Field(default=30)
    sweep_interval_seconds: int = Field(default=300)
    sent_message_capacity: int = Field(default=1000)

    # Purchase intent
    purchase_phrases: list[str] = Field(default_factory=lambda: list(DEFAULT_PURCHASE_PHRASES))
    purchase_exact_phrases: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PURCHASE_EXACT_PHRASES)
    )

    # Scripted replies
    purchase_confirmation_reply: str = Field(
        default=(
            "Great! Darwin will message you shortly to help you with your purchase. "
            "Please make sure you're following him so he can send you a message!"
        )
    )
    payment_ack_reply: str = Field(
        default="Thank you! We received your payment screenshot. Darwin will verify it shortly."
    )
    fallback_reply: str = Field(default="")

    # Prompt files (empty -> bundled config/ files)
    system_prompt_path: Path | None = Field(default=None)
    knowledge_base_path: Path | None = Field(default=None)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def missing_required(self) -> list[str]:
        """Names of unset credentials the service needs to do its job."""
        required = {
            "OPENROUTER_API_KEY": self.openrouter_api_key,
            "INSTAGRAM_ACCESS_TOKEN": self.instagram_access_token,
            "TELEGRAM_BOT_TOKEN": self.telegram_bot_token,
            "TELEGRAM_CHAT_ID": self.telegram_chat_id,
        }
        return [name for name, value in required.items() if not value]


settings = Settings()
