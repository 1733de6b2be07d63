"""Configuration management for the Scout research engine."""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMConfig(BaseModel):
    """Configuration for a specific LLM.

    Attributes:
        provider: LLM provider (openrouter)
        model: Model identifier (e.g., 'google/gemini-2.5-flash-lite')
        temperature: Sampling temperature (0.0-2.0)
        max_tokens: Maximum tokens to generate (100-32000)
        timeout: Request timeout in seconds (10-600)
    """

    provider: str = Field(..., description="LLM provider (openrouter)")
    model: str = Field(..., description="Model identifier")
    temperature: float = Field(..., ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int = Field(..., ge=100, le=32000, description="Maximum tokens to generate")
    timeout: int = Field(..., ge=10, le=600, description="Request timeout (seconds)")

    model_config = {"frozen": True}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration (domain quality statistics)
    DATABASE_URL: str | None = Field(
        default=None,
        description="Async SQLAlchemy URL (postgresql+asyncpg://...). Unset = static exclusions only",
    )

    # OpenRouter (LLM)
    OPENROUTER_API_KEY: str | None = Field(
        default=None, description="OpenRouter API key (unset = deterministic planner only)"
    )
    OPENROUTER_BASE_URL: str = Field(
        default="https://openrouter.ai/api/v1", description="OpenRouter API base URL"
    )

    # Langfuse (Monitoring)
    LANGFUSE_PUBLIC_KEY: str | None = Field(default=None, description="Langfuse public key")
    LANGFUSE_SECRET_KEY: str | None = Field(default=None, description="Langfuse secret key")
    LANGFUSE_BASE_URL: str = Field(
        default="https://cloud.langfuse.com", description="Langfuse base URL"
    )

    # Lexical search provider (Tavily)
    TAVILY_API_KEY: str | None = Field(default=None, description="Tavily API key")
    TAVILY_BASE_URL: str = Field(
        default="https://api.tavily.com", description="Tavily API base URL"
    )
    TAVILY_TIMEOUT: float = Field(
        default=30.0, ge=1.0, le=300.0, description="Tavily request timeout (seconds)"
    )
    TAVILY_COST_PER_CREDIT: float = Field(
        default=0.008, ge=0.0, description="USD per Tavily API credit (basic=1, advanced=2)"
    )

    # Semantic search provider (Exa)
    EXA_API_KEY: str | None = Field(default=None, description="Exa API key")
    EXA_BASE_URL: str = Field(default="https://api.exa.ai", description="Exa API base URL")
    EXA_TIMEOUT: float = Field(
        default=30.0, ge=1.0, le=300.0, description="Exa request timeout (seconds)"
    )
    EXA_SEARCH_TYPE: str = Field(
        default="neural",
        pattern=r"^(neural|deep|auto|keyword|fast)$",
        description="Exa search type",
    )
    EXA_MAX_CHARACTERS: int = Field(
        default=20000, ge=500, le=100000, description="Max text characters per Exa result"
    )
    EXA_NEURAL_COST: float = Field(default=0.005, ge=0.0, description="USD per neural search")
    EXA_DEEP_COST: float = Field(default=0.015, ge=0.0, description="USD per deep search")
    EXA_TEXT_COST_PER_PAGE: float = Field(
        default=0.001, ge=0.0, description="USD per page of text contents"
    )

    # Retry Policy
    RETRY_MAX_RETRIES: int = Field(default=3, ge=0, le=10, description="Retries after first try")
    RETRY_INITIAL_DELAY: float = Field(
        default=1.0, ge=0.0, le=60.0, description="First backoff delay (seconds)"
    )
    RETRY_MAX_DELAY: float = Field(
        default=10.0, ge=0.0, le=300.0, description="Backoff delay cap (seconds)"
    )
    RETRY_BACKOFF_MULTIPLIER: float = Field(
        default=2.0, ge=1.0, le=10.0, description="Exponential backoff multiplier"
    )
    RETRY_JITTER: float = Field(
        default=0.25, ge=0.0, le=1.0, description="Relative jitter applied to each delay"
    )

    # Scout Search Parameters
    OVERVIEW_SEARCH_RESULTS: int = Field(default=8, ge=1, le=10)
    OVERVIEW_SEARCH_DEPTH: str = Field(default="advanced", pattern=r"^(basic|advanced)$")
    CATEGORY_SEARCH_RESULTS: int = Field(default=6, ge=1, le=10)
    CATEGORY_SEARCH_DEPTH: str = Field(default="advanced", pattern=r"^(basic|advanced)$")
    RECENT_SEARCH_RESULTS: int = Field(default=5, ge=1, le=10)
    RECENT_SEARCH_DEPTH: str = Field(default="basic", pattern=r"^(basic|advanced)$")
    DISCOVERY_SEARCH_RESULTS: int = Field(default=5, ge=1, le=10)
    SEMANTIC_RESULTS_PER_QUERY: int = Field(
        default=5, ge=1, le=25, description="Results requested from the semantic provider"
    )
    INCLUDE_RAW_CONTENT: bool = Field(
        default=False, description="Ask the lexical provider for full page content"
    )
    RESULTS_PER_SEARCH_CONTEXT: int = Field(default=5, ge=1, le=20)
    MAX_SNIPPET_LENGTH: int = Field(default=800, ge=50, le=10000)
    DISCOVERY_CONTEXT_RESULTS: int = Field(default=3, ge=1, le=10)
    DISCOVERY_SNIPPET_LENGTH: int = Field(default=500, ge=50, le=5000)

    # Query Planner
    PLANNER_ENABLED: bool = Field(
        default=True, description="Use the LLM planner (False = deterministic templates)"
    )
    PLANNER_MIN_QUERIES: int = Field(default=2, ge=1, le=10)
    PLANNER_MAX_QUERIES: int = Field(default=4, ge=1, le=10)
    PLANNER_LLM_MODEL: str = Field(
        default="google/gemini-2.5-flash-lite", description="Model for discovery and planning"
    )
    PLANNER_LLM_TEMPERATURE: float = Field(default=0.2, ge=0.0, le=2.0)
    PLANNER_LLM_MAX_TOKENS: int = Field(default=2048, ge=100, le=32000)
    PLANNER_LLM_TIMEOUT: int = Field(default=60, ge=10, le=600)

    # Confidence Thresholds (medium level; high = 2x counts, 4x evidence)
    MIN_SOURCES_WARNING: int = Field(default=5, ge=1, description="Medium source threshold")
    MIN_QUERIES_WARNING: int = Field(default=3, ge=1, description="Medium query threshold")
    MIN_EVIDENCE_LENGTH: int = Field(
        default=50, ge=1, description="Medium evidence volume threshold (characters)"
    )
    MAX_SOURCE_SUMMARIES: int = Field(
        default=15, ge=1, le=100, description="Maximum ranked source summaries"
    )

    # Content Cleaning
    ENABLE_CONTENT_CLEANING: bool = Field(
        default=False, description="Route raw provider results through the LLM cleaner"
    )
    CLEANER_LLM_MODEL: str = Field(default="google/gemini-2.5-flash-lite")
    CLEANER_LLM_TEMPERATURE: float = Field(default=0.1, ge=0.0, le=2.0)
    CLEANER_LLM_MAX_TOKENS: int = Field(default=4096, ge=100, le=32000)
    CLEANER_LLM_TIMEOUT: int = Field(default=90, ge=10, le=600)
    CLEANER_MIN_RELEVANCE: int = Field(default=70, ge=0, le=100)
    CLEANER_MIN_QUALITY: int = Field(default=35, ge=0, le=100)
    CLEANER_PREFILTER_MIN_RELEVANCE: int = Field(default=30, ge=0, le=100)
    CLEANER_MAX_INPUT_CHARS: int = Field(default=12000, ge=500, le=200000)

    # Domain Exclusion Settings
    ENABLE_DOMAIN_EXCLUSION: bool = Field(
        default=True, description="Pass excluded domains to search providers"
    )
    DOMAIN_EXCLUSION_CACHE_TTL: int = Field(
        default=300, ge=0, le=3600, description="Cache TTL for excluded domains (seconds)"
    )
    DOMAIN_EXCLUSION_MIN_SAMPLES: int = Field(default=5, ge=1)
    DOMAIN_AUTO_EXCLUDE_MIN_QUALITY: float = Field(default=25.0, ge=0.0, le=100.0)
    DOMAIN_AUTO_EXCLUDE_MIN_RELEVANCE: float = Field(default=20.0, ge=0.0, le=100.0)
    SCRAPE_FAILURE_MIN_ATTEMPTS: int = Field(default=3, ge=1)
    SCRAPE_FAILURE_RATE_THRESHOLD: float = Field(default=0.7, ge=0.0, le=1.0)

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="json", description="Log format (json/text)")

    # Development
    DEBUG: bool = Field(default=False, description="Debug mode")

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    @property
    def planner_llm_config(self) -> LLMConfig:
        """LLMConfig for discovery checks and query planning."""
        return LLMConfig(
            provider="openrouter",
            model=self.PLANNER_LLM_MODEL,
            temperature=self.PLANNER_LLM_TEMPERATURE,
            max_tokens=self.PLANNER_LLM_MAX_TOKENS,
            timeout=self.PLANNER_LLM_TIMEOUT,
        )

    @property
    def cleaner_llm_config(self) -> LLMConfig:
        """LLMConfig for content cleaning."""
        return LLMConfig(
            provider="openrouter",
            model=self.CLEANER_LLM_MODEL,
            temperature=self.CLEANER_LLM_TEMPERATURE,
            max_tokens=self.CLEANER_LLM_MAX_TOKENS,
            timeout=self.CLEANER_LLM_TIMEOUT,
        )


# Global settings instance
settings = Settings()
