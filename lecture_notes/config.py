from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Soniox (speech-to-text)
    soniox_api_key: str = ""
    soniox_base_url: str = "https://api.soniox.com"
    soniox_model: str = "stt-async-v3"
    language_hints: list[str] = ["en", "ur"]
    target_language: str = "en"

    # Groq (primary LLM provider)
    groq_api_key: str = ""
    groq_model: str | None = None  # operator override, tried first
    groq_fallback_models: list[str] = [
        "llama-3.3-70b-versatile",
        "meta-llama/llama-4-scout-17b-16e-instruct",
        "llama-3.1-8b-instant",
    ]

    # OpenAI (secondary LLM provider, used only when Groq is unconfigured)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    # Providers allowed to run the fact-check pass
    fact_check_providers: list[str] = ["groq"]

    # Generation
    notes_temperature: float = 0.4
    notes_max_tokens: int = 4000
    fact_check_temperature: float = 0.2
    translation_temperature: float = 0.2
    notes_backoff_seconds: float = 2.0
    fact_check_backoff_seconds: float = 1.5

    # Transcription jobs
    preflight_timeout_seconds: float = 10.0
    poll_interval_seconds: float = 2.0
    max_polling_seconds: float | None = 30 * 60

    # Storage
    database_path: str = "lecture_notes.db"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}

    def groq_model_chain(self) -> tuple[str, ...]:
        """Ordered Groq models: the override first, then the fallbacks (deduplicated)."""
        models: list[str] = []
        for name in [self.groq_model, *self.groq_fallback_models]:
            if name and name not in models:
                models.append(name)
        return tuple(models)


settings = Settings()
