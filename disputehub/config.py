"""
Configuration for DisputeHub
============================

Environment variables:
- DATABASE_URL: SQLAlchemy URL (default: sqlite:///./disputehub.db)
- OPENROUTER_API_KEY: API key for document drafting via OpenRouter
- OPENROUTER_MODEL: Model to use (default: openai/gpt-4o-mini)
- STORAGE_PATH: Directory for generated document files
- MAX_DOCUMENT_RETRIES: Retry ceiling for failed documents (default: 3)
- GENERATION_STALE_MINUTES: Age after which a GENERATING document is retryable (default: 15)
- NOTIFICATION_DEDUP_MINUTES: Window for duplicate notifications (default: 60)
- RESPONSE_DEADLINE_DAYS: Days to wait after a document is sent (default: 14)
- SCORING_DEV_BOOST: Points added to every complexity score (default: 0)
- ADMIN_TOKEN: Shared secret for /admin and /cron endpoints

Readiness thresholds are grouped into three named policies. They are
deliberately separate: the completeness policy decides when the decision
gate may lock a case, while the sufficiency and conversation-state
policies police individual chat turns.
"""

from typing import Optional, List
from functools import lru_cache

from pydantic import BaseModel
from pydantic_settings import BaseSettings


class CompletenessPolicy(BaseModel):
    """Thresholds for locking a strategy (decision gate)"""
    policy_version: str = "completeness-v2"
    min_key_facts: int = 8
    min_outcome_chars: int = 30
    min_evidence_mentioned: int = 1


class SufficiencyPolicy(BaseModel):
    """Per-turn sufficiency scoring (conversation layer)"""
    policy_version: str = "sufficiency-v1"
    points_per_rule: int = 25
    required_score: int = 100
    min_outcome_chars: int = 10


class ConversationStatePolicy(BaseModel):
    """Core-fact classifier thresholds (conversation layer)"""
    policy_version: str = "conversation-state-v1"
    min_key_facts: int = 5
    min_party_fact_chars: int = 10


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # Database
    database_url: str = "sqlite:///./disputehub.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    sql_echo: bool = False

    # Document drafting (OpenRouter)
    openrouter_api_key: Optional[str] = None
    openrouter_model: str = "openai/gpt-4o-mini"
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    llm_timeout: int = 60

    # Generated files
    storage_path: str = "./storage"

    # Documents
    max_document_retries: int = 3
    generation_stale_minutes: int = 15

    # Notifications & deadlines
    notification_dedup_minutes: int = 60
    response_deadline_days: int = 14
    deadline_warning_days: int = 3
    app_url: str = "http://localhost:3000"

    # Email (unset host = log instead of sending)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "noreply@disputehub.com"
    smtp_use_tls: bool = True

    # Complexity scoring
    scoring_dev_boost: int = 0

    # Readiness policies
    completeness: CompletenessPolicy = CompletenessPolicy()
    sufficiency: SufficiencyPolicy = SufficiencyPolicy()
    conversation_state: ConversationStatePolicy = ConversationStatePolicy()

    # Admin / cron endpoints (unset = open, development only)
    admin_token: Optional[str] = None

    # Service info
    service_version: str = "1.0.0"

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_nested_delimiter = "__"

    def validate_config(self) -> List[str]:
        """Validate configuration, return list of warnings"""
        warnings = []

        if not self.openrouter_api_key:
            warnings.append("OPENROUTER_API_KEY not set - documents will fail to generate")

        if self.max_document_retries < 1:
            warnings.append("MAX_DOCUMENT_RETRIES < 1 - failed documents can never be retried")

        if not self.admin_token:
            warnings.append("ADMIN_TOKEN not set - admin and cron endpoints are unauthenticated")

        if self.scoring_dev_boost:
            warnings.append(f"SCORING_DEV_BOOST={self.scoring_dev_boost} - complexity scores are inflated")

        return warnings


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
