"""
Runtime configuration.

All settings come from environment variables (optionally loaded from a
``.env`` file at the repository root). Accessed through ``get_settings()``,
which builds the settings object once per process.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from pharmassist.core.logging import get_logger

logger = get_logger(__name__)

env_path = Path(__file__).parent.parent.parent.parent / ".env"


def _float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)) or default)


def _int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)) or default)


@dataclass(frozen=True)
class Settings:
    # Workflow backend (n8n webhooks)
    workflow_base_url: str = "https://primary-production-4416.up.railway.app/webhook"
    workflow_timeout_seconds: float = 15.0

    # Completion API (OpenAI-compatible, Groq by default)
    llm_api_base: str = "https://api.groq.com/openai/v1"
    llm_api_key: Optional[str] = None
    llm_model: str = "llama-3.3-70b-versatile"
    llm_timeout_seconds: float = 20.0

    # Vision (Gemini generateContent)
    vision_api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    vision_api_key: Optional[str] = None
    vision_model: str = "gemini-1.5-flash"
    vision_timeout_seconds: float = 30.0

    # Speech (Whisper over the completion API host)
    speech_model: str = "whisper-large-v3"

    # Drug references
    rxnav_api_base: str = "https://rxnav.nlm.nih.gov/REST"
    openfda_api_base: str = "https://api.fda.gov/drug/label.json"
    reference_timeout_seconds: float = 8.0

    # Orchestration policy
    rate_limit_window_seconds: float = 2.0
    history_limit: int = 10
    min_profit_gain: float = 5.0
    min_margin_gain_points: float = 5.0

    # Storage
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    redis_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            workflow_base_url=os.getenv("N8N_WEBHOOK_URL", cls.workflow_base_url).rstrip("/"),
            workflow_timeout_seconds=_float("WORKFLOW_TIMEOUT_SECONDS", cls.workflow_timeout_seconds),
            llm_api_base=os.getenv("LLM_API_BASE", cls.llm_api_base),
            llm_api_key=os.getenv("LLM_API_KEY") or os.getenv("GROQ_API_KEY"),
            llm_model=os.getenv("LLM_MODEL", cls.llm_model),
            llm_timeout_seconds=_float("LLM_TIMEOUT_SECONDS", cls.llm_timeout_seconds),
            vision_api_base=os.getenv("VISION_API_BASE", cls.vision_api_base),
            vision_api_key=os.getenv("VISION_API_KEY") or os.getenv("GEMINI_API_KEY"),
            vision_model=os.getenv("VISION_MODEL", cls.vision_model),
            vision_timeout_seconds=_float("VISION_TIMEOUT_SECONDS", cls.vision_timeout_seconds),
            speech_model=os.getenv("SPEECH_MODEL", cls.speech_model),
            rxnav_api_base=os.getenv("RXNAV_API_BASE", cls.rxnav_api_base),
            openfda_api_base=os.getenv("OPENFDA_API_BASE", cls.openfda_api_base),
            reference_timeout_seconds=_float("REFERENCE_TIMEOUT_SECONDS", cls.reference_timeout_seconds),
            rate_limit_window_seconds=_float("RATE_LIMIT_WINDOW_SECONDS", cls.rate_limit_window_seconds),
            history_limit=_int("HISTORY_LIMIT", cls.history_limit),
            min_profit_gain=_float("MIN_PROFIT_GAIN", cls.min_profit_gain),
            min_margin_gain_points=_float("MIN_MARGIN_GAIN_POINTS", cls.min_margin_gain_points),
            supabase_url=os.getenv("SUPABASE_URL"),
            supabase_key=os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_KEY"),
            redis_url=os.getenv("REDIS_URL"),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Global settings accessor."""
    global _settings
    if _settings is None:
        if env_path.exists():
            load_dotenv(env_path)
            logger.info("env_loaded", env_path=str(env_path))
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global _settings
    _settings = None
