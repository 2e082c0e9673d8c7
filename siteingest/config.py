"""Centralised settings for the SiteIngest crawler.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (two levels up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


def _env_list(name: str, default: str) -> list[str]:
    """Split a comma-separated environment variable into a clean list."""
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("SITEINGEST_WORKSPACE", Path.home() / ".siteingest")
        )
    )

    @property
    def db_path(self) -> Path:
        """Absolute path to the SQLite vector store."""
        return self.workspace_dir / "site_context.db"

    @property
    def schema_path(self) -> Path:
        """Absolute path to the schema SQL file bundled with the package."""
        return Path(__file__).resolve().parent / "db" / "schema.sql"

    # ------------------------------------------------------------------
    # Embedding model
    # ------------------------------------------------------------------
    embedding_provider: str = field(
        default_factory=lambda: os.environ.get("EMBEDDING_PROVIDER", "ollama")
    )
    ollama_base_url: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434")
    )
    ollama_embed_model: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_EMBED_MODEL", "embeddinggemma:latest")
    )
    openai_embed_model: str = field(
        default_factory=lambda: os.environ.get(
            "OPENAI_EMBED_MODEL", "text-embedding-3-small"
        )
    )
    embedding_dim: int = field(
        default_factory=lambda: int(os.environ.get("EMBEDDING_DIM", "768"))
    )

    # ------------------------------------------------------------------
    # Crawler / HTTP transport
    # ------------------------------------------------------------------
    website_hostname: str = field(
        default_factory=lambda: os.environ.get("WEBSITE_HOSTNAME", "")
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "30.0"))
    )
    user_agent: str = field(
        default_factory=lambda: os.environ.get(
            "CRAWL_USER_AGENT", "Mozilla/5.0 (compatible; SiteIngest-Bot/1.0)"
        )
    )
    max_depth: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_MAX_DEPTH", "10"))
    )
    crawl_workers: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_WORKERS", "1"))
    )
    # 0 means "no page budget".
    max_pages: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_MAX_PAGES", "0"))
    )
    login_redirect_patterns: list[str] = field(
        default_factory=lambda: _env_list(
            "LOGIN_REDIRECT_PATTERNS", "login.microsoftonline.com,/.auth/login"
        )
    )

    # ------------------------------------------------------------------
    # Bearer-token authentication (optional)
    # ------------------------------------------------------------------
    auth_audience: str = field(
        default_factory=lambda: os.environ.get("EASYAUTH_AUDIENCE", "")
    )
    # User-assigned managed identity; empty means DefaultAzureCredential.
    managed_client_id: str = field(
        default_factory=lambda: os.environ.get("MANAGED_CLIENT_ID", "")
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO")
    )
    log_json: bool = field(default_factory=lambda: _env_bool("LOG_JSON"))

    @property
    def root_url(self) -> str:
        """Default crawl root derived from ``WEBSITE_HOSTNAME`` (empty if unset)."""
        if not self.website_hostname:
            return ""
        return f"https://{self.website_hostname}"

    def ensure_workspace(self) -> None:
        """Create the workspace directory if it does not exist."""
        self.workspace_dir.mkdir(parents=True, exist_ok=True)


# Module-level singleton, import this everywhere:
#   from siteingest.config import settings
settings = Settings()
