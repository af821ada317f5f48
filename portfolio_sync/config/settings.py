"""Application settings and configuration"""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Portfolio Sync"
    APP_VERSION: str = "1.0.0"

    # GitHub identity
    GITHUB_USERNAME: str = "gderamchi"
    GITHUB_TOKEN: Optional[str] = None
    GITHUB_ORGS: str = "algosup"  # Comma-separated organizations to scan for contributions

    # GitHub client resilience controls
    GITHUB_TIMEOUT_SECONDS: float = 30.0
    GITHUB_MAX_RETRIES: int = 3
    GITHUB_BACKOFF_BASE_SECONDS: float = 1.0
    GITHUB_BACKOFF_MAX_SECONDS: float = 16.0
    GITHUB_RATE_LIMIT_BUFFER_SECONDS: int = 2
    GITHUB_MAX_RATE_LIMIT_WAIT_SECONDS: float = 60.0

    # Repository discovery
    GITHUB_PAGE_SIZE: int = 100
    GITHUB_MAX_PAGES: int = 10
    GITHUB_COMMIT_SEARCH_PAGES: int = 3
    GITHUB_PAGE_DELAY_SECONDS: float = 1.0
    PORTFOLIO_TOPIC: str = "portfolio"

    # Pipeline pacing
    REPO_PROCESS_DELAY_SECONDS: float = 0.1
    DUPLICATE_CHECK_DELAY_SECONDS: float = 0.2

    # Duplicate detection
    PREFILTER_NAME_SIMILARITY_THRESHOLD: float = 0.7
    PREFILTER_DESCRIPTION_SIMILARITY_THRESHOLD: float = 0.8
    DUPLICATE_CONFIDENCE_THRESHOLD: float = 0.85

    # LLM provider ("openai", "anthropic" or "gemini")
    LLM_PROVIDER: str = "openai"
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: Optional[str] = None  # Any OpenAI-compatible endpoint
    OPENAI_MODEL: str = "gpt-4o-mini"
    ANTHROPIC_API_KEY: Optional[str] = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-20241022"
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-flash-lite"

    # LLM retry policy
    LLM_MAX_ATTEMPTS: int = 3
    LLM_BACKOFF_BASE_SECONDS: float = 2.0
    LLM_BACKOFF_MAX_SECONDS: float = 20.0
    LLM_TIMEOUT_SECONDS: float = 45.0

    # Enhancement limits
    TITLE_MAX_CHARS: int = 50
    DESCRIPTION_MAX_CHARS: int = 120
    MAX_PROJECT_TOPICS: int = 8
    DESCRIPTION_LOCALES: str = "en,fr"

    # Project images
    GENERATE_IMAGES: bool = False
    IMAGE_MODEL: str = "gpt-image-1"
    PROJECT_IMAGES_DIR: str = "images/projects"
    DEFAULT_PROJECT_IMAGE: str = "images/projects/default.webp"

    # Persisted data file (paths relative to SITE_ROOT)
    SITE_ROOT: Path = Path(".")
    PROJECTS_DATA_FILE: str = "projects-data.js"
    PROJECTS_BACKUP_FILE: str = "projects-data.backup.js"

    # Webhook receiver
    WEBHOOK_SECRET: Optional[str] = None
    WEBHOOK_BRANCHES: str = "main,master"
    WEBHOOK_HOST: str = "0.0.0.0"
    WEBHOOK_PORT: int = 3000

    USER_AGENT: str = "PortfolioSync/1.0"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env

    @property
    def github_organizations(self) -> list[str]:
        return _split_csv(self.GITHUB_ORGS)

    @property
    def description_locales(self) -> list[str]:
        return _split_csv(self.DESCRIPTION_LOCALES) or ["en"]

    @property
    def webhook_branches(self) -> list[str]:
        return _split_csv(self.WEBHOOK_BRANCHES)

    @property
    def projects_data_path(self) -> Path:
        return Path(self.SITE_ROOT) / self.PROJECTS_DATA_FILE

    @property
    def projects_backup_path(self) -> Path:
        return Path(self.SITE_ROOT) / self.PROJECTS_BACKUP_FILE


def _split_csv(raw: str) -> list[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


settings = Settings()
