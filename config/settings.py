"""
leadgraph Settings

One pydantic-settings model holds every tunable; values come from the
process environment or a local .env file and are validated on load.

Features:
- Record-store connection (base URL, bearer token, timeout)
- Lead-discovery safety limits (iterations, entity cap, result cap)
- Optional LLM summarizer configuration (Ollama, OpenAI, Claude)
- Masked secrets for log output
- Cross-field checks run once at import time

Every field has a default, so the package imports cleanly with no
environment configured; the LLM summarizer simply falls back to
heuristics when no provider is reachable.

Usage:
    >>> from config.settings import settings
    >>> settings.RECORD_API_BASE_URL
    'http://localhost:8080'
    >>> settings.MAX_TOTAL_ENTITIES
    50
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SECRET_FIELDS = ("RECORD_API_BEARER_TOKEN", "OPENAI_API_KEY", "ANTHROPIC_API_KEY")


class Settings(BaseSettings):
    """
    leadgraph configuration; each field is overridable by an environment
    variable of the same name.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
    )

    # ========================================================================
    # ENVIRONMENT
    # ========================================================================
    ENVIRONMENT: str = Field(default="development", description="Runtime environment")
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_DIR: str = Field(default="logs", description="Directory for JSONL execution logs")

    # ========================================================================
    # RECORD STORE (search backend)
    # ========================================================================
    RECORD_API_BASE_URL: str = Field(
        default="http://localhost:8080",
        description="Base URL of the record-search backend"
    )
    RECORD_API_SEARCH_PATH: str = Field(
        default="/api/search",
        description="Path of the search endpoint (GET ?q=&limit=)"
    )
    RECORD_API_BEARER_TOKEN: Optional[str] = Field(
        default=None,
        description="Bearer token sent with every record lookup"
    )
    RECORD_API_TIMEOUT: int = Field(default=60, ge=1, le=600)

    # ========================================================================
    # LEAD DISCOVERY LIMITS
    # ========================================================================
    MAX_ITERATIONS: int = Field(
        default=5,
        description="Maximum discovery iterations per investigation",
        ge=1,
        le=50
    )
    MAX_TOTAL_ENTITIES: int = Field(
        default=50,
        description="Hard cap on distinct entities searched per investigation",
        ge=1,
        le=1000
    )
    MAX_RESULTS_PER_ENTITY: int = Field(default=100, ge=1, le=10000)
    RESULT_CAP: int = Field(
        default=500,
        description="Maximum results returned to callers",
        ge=1
    )

    # ========================================================================
    # LLM SUMMARIZER
    # ========================================================================
    LLM_ENABLED: bool = Field(default=True, description="Try an LLM for the summary")
    # IMPORTANT: Load as string, parse in validator (comma-separated env var)
    llm_provider_order_raw: str = Field(
        default="ollama,openai,anthropic",
        alias="LLM_PROVIDER_ORDER",
        description="Comma-separated provider preference order"
    )
    llm_provider_order_list: List[str] = []
    LLM_TIMEOUT: int = Field(default=60, ge=5, le=600)

    # Ollama (local, OpenAI-compatible endpoint)
    OLLAMA_BASE_URL: str = Field(default="http://localhost:11434")
    OLLAMA_MODEL: str = Field(default="qwen3:4b")
    ollama_fallback_models_raw: str = Field(
        default="ministral:8b,llama3.2-vision:11b,mistral:7b",
        alias="OLLAMA_FALLBACK_MODELS"
    )
    ollama_fallback_models_list: List[str] = []
    OLLAMA_RATE_LIMIT: int = Field(default=120, ge=1)
    OLLAMA_MAX_TOKENS: int = Field(default=2000, ge=1, le=32000)
    OLLAMA_TEMPERATURE: float = Field(default=0.3, ge=0.0, le=2.0)

    # OpenAI
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    OPENAI_MODEL: str = Field(default="gpt-4o-mini")
    OPENAI_RATE_LIMIT: int = Field(default=500, ge=1)
    OPENAI_MAX_TOKENS: int = Field(default=2000, ge=1, le=128000)
    OPENAI_TEMPERATURE: float = Field(default=0.3, ge=0.0, le=2.0)
    OPENAI_INPUT_COST_PER_1M: float = Field(default=0.15)
    OPENAI_OUTPUT_COST_PER_1M: float = Field(default=0.60)

    # Anthropic
    ANTHROPIC_API_KEY: Optional[str] = Field(default=None)
    CLAUDE_MODEL: str = Field(default="claude-3-5-haiku-latest")
    CLAUDE_RATE_LIMIT: int = Field(default=50, ge=1)
    CLAUDE_MAX_TOKENS: int = Field(default=2000, ge=1, le=100000)
    CLAUDE_TEMPERATURE: float = Field(default=0.3, ge=0.0, le=2.0)
    CLAUDE_INPUT_COST_PER_1M: float = Field(default=0.80)
    CLAUDE_OUTPUT_COST_PER_1M: float = Field(default=4.0)

    # ========================================================================
    # PYDANTIC VALIDATORS
    # ========================================================================

    @model_validator(mode='after')
    def parse_comma_lists(self):
        """
        Parse the comma-separated provider order and Ollama fallback models.

        pydantic-settings tries to JSON-decode List[str] env vars, so both are
        loaded as strings and split here.
        """
        self.llm_provider_order_list = [
            p.strip().lower()
            for p in self.llm_provider_order_raw.split(",")
            if p.strip()
        ]
        self.ollama_fallback_models_list = [
            m.strip()
            for m in self.ollama_fallback_models_raw.split(",")
            if m.strip()
        ]
        return self

    # ========================================================================
    # HELPER METHODS
    # ========================================================================

    @property
    def LLM_PROVIDER_ORDER(self) -> List[str]:
        return self.llm_provider_order_list

    @property
    def OLLAMA_FALLBACK_MODELS(self) -> List[str]:
        return self.ollama_fallback_models_list

    @property
    def record_search_url(self) -> str:
        """Full URL of the record-search endpoint."""
        return self.RECORD_API_BASE_URL.rstrip("/") + "/" + self.RECORD_API_SEARCH_PATH.lstrip("/")

    def mask_sensitive(self, key: str) -> str:
        """
        Loggable form of a secret: first 10 and last 4 characters kept.

        Short or missing values come back as "***".

        Example:
            >>> settings.mask_sensitive('OPENAI_API_KEY')
            'sk-proj-ab...4xyz'
        """
        secret = getattr(self, key, None)
        if not isinstance(secret, str) or len(secret) <= 14:
            return "***"
        return f"{secret[:10]}...{secret[-4:]}"

    def get_all_api_keys_masked(self) -> dict:
        """Masked copies of the secrets that are set."""
        return {
            name: self.mask_sensitive(name)
            for name in SECRET_FIELDS
            if getattr(self, name, None)
        }


@lru_cache()
def get_settings() -> Settings:
    """
    Process-wide Settings, built on first use.

    Example:
        >>> settings = get_settings()
        >>> settings.OLLAMA_MODEL
        'qwen3:4b'
    """
    return Settings()


def validate_settings() -> bool:
    """
    Sanity-check settings that pydantic cannot validate field by field.

    Nothing here is a required secret: the record store may be open and the
    summarizer degrades to heuristics, so only structural problems fail.

    Raises:
        ValueError: If a setting is unusable
    """
    problems = []

    if not settings.RECORD_API_BASE_URL.startswith(("http://", "https://")):
        problems.append("RECORD_API_BASE_URL must start with http:// or https://")

    if not settings.OLLAMA_BASE_URL.startswith(("http://", "https://")):
        problems.append("OLLAMA_BASE_URL must start with http:// or https://")

    known = {"ollama", "openai", "anthropic"}
    unknown = [p for p in settings.LLM_PROVIDER_ORDER if p not in known]
    if unknown:
        problems.append(f"Unknown LLM providers in LLM_PROVIDER_ORDER: {', '.join(unknown)}")

    if problems:
        raise ValueError(
            "\n❌ Invalid settings:\n   " + "\n   ".join(problems) + "\n"
        )

    return True


# ============================================================================
# INITIALIZATION & EXPORTS
# ============================================================================

# Global singleton instance
settings = get_settings()

# Auto-validate on import (fail fast)
validate_settings()


__all__ = [
    "Settings",
    "settings",
    "get_settings",
    "validate_settings"
]
