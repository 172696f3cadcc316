from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Agent configuration, read from the environment and an optional .env file"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Model provider
    openai_api_key: str = Field(default="", description="OpenAI API key")
    llm_model: str = Field(default="gpt-4o-mini", description="Chat model used for responses")
    llm_temperature: float = Field(default=0.7, description="Sampling temperature for conversational replies")
    oracle_temperature: float = Field(default=0.0, description="Sampling temperature for extraction and scoring")
    generation_max_retries: int = Field(default=2, description="Provider-level retry count per generation call")
    embedding_model: str = Field(default="text-embedding-3-small", description="Embedding model")

    # Knowledge base
    knowledge_base_dir: str = Field(default="./knowledge_base")
    chunk_size: int = Field(default=1000)
    chunk_overlap: int = Field(default=200)
    top_k_documents: int = Field(default=3, description="Documents retrieved per simple-agent turn")
    vector_store_path: str = Field(default="./data/vector_documents.json")

    # Memory
    memory_db_path: str = Field(default="./data/memory_store.db")
    max_active_memories: int = Field(default=10, description="Maximum memories kept in active context")
    memory_importance_threshold: float = Field(
        default=5.0, description="Active memories scored below this are archived first"
    )
    max_context_length: int = Field(default=4000, description="Token budget for active memories")
    consolidation_trigger: float = Field(
        default=0.8, description="Fraction of the token budget that triggers consolidation"
    )
    memory_context_size: int = Field(default=5, description="Active memories pulled into each turn")

    # Ticket triage
    min_questions_before_ticket: int = Field(default=3)
    max_questions_before_forced_ticket: int = Field(default=5)
    min_description_length: int = Field(default=100)
    category_search_top_k: int = Field(default=10)
    critical_keywords: List[str] = Field(
        default_factory=lambda: [
            "down", "outage", "production", "security", "breach", "data loss",
            "all users", "multiple users", "critical", "emergency",
        ]
    )
    high_urgency_keywords: List[str] = Field(
        default_factory=lambda: [
            "urgent", "asap", "immediately", "deadline", "today", "tomorrow",
            "blocked", "cannot work", "stuck",
        ]
    )

    # Logging
    log_level: str = Field(default="WARNING")
    log_format: str = Field(default="console", description="json or console")
    service_name: str = Field(default="memrag-agent")


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance"""
    return Settings()
