"""
Application configuration using environment variables.
"""
import os
from dataclasses import dataclass, field
from typing import List
from dotenv import load_dotenv

# Load .env file
load_dotenv()

@dataclass
class Settings:
    """Application settings."""
    APP_NAME: str = "Audit Engine"

    # API Keys
    ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")
    PAGESPEED_API_KEY: str = os.getenv("PAGESPEED_API_KEY", "")

    # AI batch scorer
    AI_MODEL: str = os.getenv("AI_MODEL", "claude-opus-4-1")
    AI_MAX_TOKENS: int = int(os.getenv("AI_MAX_TOKENS", "16000"))
    AI_BATCH_SIZE: int = int(os.getenv("AI_BATCH_SIZE", "3"))
    AI_MAX_RETRIES: int = int(os.getenv("AI_MAX_RETRIES", "3"))
    AI_RETRY_BASE_DELAY: float = float(os.getenv("AI_RETRY_BASE_DELAY", "1.0"))

    # HTTP client settings
    HTTP_TIMEOUT: int = int(os.getenv("HTTP_TIMEOUT", "15"))
    HTTP_MAX_RETRIES: int = int(os.getenv("HTTP_MAX_RETRIES", "2"))
    HTTP_MAX_REDIRECTS: int = int(os.getenv("HTTP_MAX_REDIRECTS", "5"))
    CHECK_HTTP_TIMEOUT: int = int(os.getenv("CHECK_HTTP_TIMEOUT", "5"))

    # Crawl
    CRAWL_MAX_PAGES: int = int(os.getenv("CRAWL_MAX_PAGES", "50"))
    ALLOW_PRIVATE_TARGETS: bool = os.getenv("ALLOW_PRIVATE_TARGETS", "false").lower() == "true"

    # Check execution
    CHECK_CONCURRENCY: int = int(os.getenv("CHECK_CONCURRENCY", "5"))
    CHECK_TIMEOUT_SECONDS: float = float(os.getenv("CHECK_TIMEOUT_SECONDS", "30"))
    DEFAULT_SAMPLE_SIZE: int = int(os.getenv("DEFAULT_SAMPLE_SIZE", "5"))

    # Performance
    PAGESPEED_ENABLED: bool = os.getenv("PAGESPEED_ENABLED", "true").lower() == "true"
    PAGESPEED_TIMEOUT: int = int(os.getenv("PAGESPEED_TIMEOUT", "60"))

    # Lifecycle
    STALE_AUDIT_MINUTES: int = int(os.getenv("STALE_AUDIT_MINUTES", "5"))
    LEASE_TTL_SECONDS: int = int(os.getenv("LEASE_TTL_SECONDS", "900"))
    PROGRESS_RECENT_CHECKS: int = int(os.getenv("PROGRESS_RECENT_CHECKS", "10"))

    # CORS
    CORS_ORIGINS: List[str] = field(default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"])

settings = Settings()
