from pydantic_settings import BaseSettings
from functools import lru_cache
import os


class Settings(BaseSettings):
    # "openai" talks to any OpenAI-compatible endpoint (DeepSeek by default)
    llm_provider: str = "openai"

    openai_api_key: str = ""
    openai_base_url: str = "https://api.deepseek.com"
    openai_fast_model: str = "deepseek-chat"
    openai_reasoning_model: str = "deepseek-reasoner"

    anthropic_api_key: str = ""
    anthropic_fast_model: str = "claude-sonnet-4-5-20250929"
    anthropic_reasoning_model: str = "claude-sonnet-4-5-20250929"

    supabase_url: str = ""
    supabase_key: str = ""

    # Generation pipeline
    page_batch_size: int = 4
    max_pages: int = 10
    stale_job_minutes: int = 10
    stream_update_interval: float = 2.0  # seconds between streamed progress writes
    history_turns: int = 6
    worker_count: int = 2
    agent_workflow_enabled: bool = True

    class Config:
        # Look for .env in the repo root (two levels up from backend/promptsite/)
        # In production, env vars are injected directly; .env is optional
        _env_path = os.path.join(os.path.dirname(__file__), "..", "..", ".env")
        env_file = _env_path if os.path.exists(_env_path) else None
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def supabase_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


@lru_cache()
def get_settings():
    return Settings()
