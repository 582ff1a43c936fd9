"""
Configuration for Dispute Document Service
==========================================

Environment variables:
- LLM_MODE: none|openrouter (default: none)
- OPENROUTER_API_KEY: API key for OpenRouter
- OPENROUTER_MODEL: Model to use (default: anthropic/claude-3-haiku)
- GENERATION_TIMEOUT: Seconds to wait for the generation backend (default: 60)
- READINESS_THRESHOLD: Readiness score needed before summary confirmation (default: 75)
- COMPLEXITY_THRESHOLD: Score at which a case becomes COMPLEX (default: 10)
- GATE_CONFIDENCE_THRESHOLD: Minimum routing confidence for generation (default: 0.40)
- DATABASE_URL: SQLAlchemy URL (default: sqlite:///./dev.db, read by db.session)
"""

from typing import Optional, List
from pydantic_settings import BaseSettings
from functools import lru_cache

from .schemas import LLMMode


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # LLM Configuration
    llm_mode: LLMMode = LLMMode.NONE

    # OpenRouter (generation and optional extraction)
    openrouter_api_key: Optional[str] = None
    openrouter_model: str = "anthropic/claude-3-haiku"
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    llm_extraction_enabled: bool = False

    # Timeouts (seconds)
    generation_timeout: float = 60.0
    extraction_timeout: float = 30.0

    # Gathering / planning
    readiness_threshold: int = 75
    complexity_threshold: int = 10

    # Routing gate
    gate_confidence_threshold: float = 0.40
    clarification_confidence_threshold: float = 0.80

    # Audit
    small_claim_value: float = 1000.0
    deadline_warning_days: int = 14
    statutory_interest_rate: float = 0.08

    # Service info
    service_version: str = "1.0.0"

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        env_file_encoding = "utf-8"

    def validate_llm_config(self) -> List[str]:
        """Validate LLM configuration, return list of warnings"""
        warnings = []

        if self.llm_mode == LLMMode.OPENROUTER:
            if not self.openrouter_api_key:
                warnings.append("LLM_MODE=openrouter but OPENROUTER_API_KEY not set (deterministic generator will be used)")

        if self.llm_extraction_enabled and self.llm_mode == LLMMode.NONE:
            warnings.append("LLM_EXTRACTION_ENABLED=true but LLM_MODE=none (rule-based extraction will be used)")

        if self.generation_timeout <= 0:
            warnings.append("GENERATION_TIMEOUT must be positive")

        return warnings


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


def get_llm_mode() -> LLMMode:
    """Get current LLM mode"""
    return get_settings().llm_mode
