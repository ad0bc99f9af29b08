# question_bank/config.py
# Created: 2026-10-02
# Purpose: Configuration system for the question bank fetcher

"""
Configuration Management

Loads all environment variables once at module import.
Provides typed, immutable configuration objects.
Components receive the pieces they need as constructor arguments; only the
CLI reads APP_CONFIG directly.

Usage:
    from question_bank.config import APP_CONFIG

    db_name = APP_CONFIG.database.db_name
    model = APP_CONFIG.llm_profiles['deepseek']['model']
    batch_sizes = APP_CONFIG.fetch.batch_sizes
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# ============================================================================
# Helper Functions
# ============================================================================

def _env(key: str, default: str = "") -> str:
    """Get string environment variable."""
    return os.environ.get(key, default)


def _env_int(key: str, default: int) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    """Get float environment variable."""
    try:
        return float(os.environ.get(key, str(default)))
    except ValueError:
        return default


def _env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    value = os.environ.get(key, "").lower()
    if value in ("1", "true", "yes", "on"):
        return True
    elif value in ("0", "false", "no", "off"):
        return False
    return default


def _env_list(key: str, default: List[str]) -> List[str]:
    """Get comma-separated list environment variable."""
    value = os.environ.get(key, "")
    items = [item.strip() for item in value.split(",") if item.strip()]
    return items or list(default)


def _env_int_list(key: str, default: List[int]) -> List[int]:
    try:
        return [int(item) for item in _env_list(key, [str(d) for d in default])]
    except ValueError:
        return list(default)


# ============================================================================
# Static Option Lists
# ============================================================================

DEFAULT_TOPICS = ["javascript", "typescript", "nodejs", "sql", "react", "python"]
DIFFICULTIES = ["easy", "medium", "hard", "mixed"]
QUESTION_COUNTS = [3, 5, 10, 15]


# ============================================================================
# Configuration Dataclasses
# ============================================================================

@dataclass(frozen=True)
class DatabaseConfig:
    """MongoDB configuration."""
    uri: str
    db_name: str
    questions_collection: str
    server_selection_timeout_ms: int
    connect_timeout_ms: int
    socket_timeout_ms: int
    max_pool_size: int


@dataclass(frozen=True)
class ProviderConfig:
    """Configuration for a specific LLM provider."""
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout: float = 30.0
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy for completion calls (fixed delay between attempts)."""
    attempts: int = 3
    delay_s: float = 1.0
    timeout_s: float = 30.0


@dataclass(frozen=True)
class FetchConfig:
    """Recursive fetching configuration."""
    max_total_questions: int = 1000
    batch_sizes: List[int] = field(default_factory=lambda: [5, 10, 15, 20])
    default_batch_size: int = 10
    delay_between_batches_ms: int = 2000
    retry_delay_ms: int = 5000
    max_consecutive_failures: int = 3
    progress_update_interval_ms: int = 1000


@dataclass(frozen=True)
class DedupConfig:
    """Duplicate detection configuration."""
    similarity_threshold: float = 0.85


@dataclass(frozen=True)
class BackupConfig:
    """JSON backup configuration."""
    directory: str = "backups"
    retention_days: int = 7


@dataclass(frozen=True)
class FileStoreConfig:
    """JSON file store configuration (alternative to MongoDB)."""
    data_dir: str = "data"


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""

    # Storage
    database: DatabaseConfig
    file_store: FileStoreConfig
    storage_backend: str  # "mongo" or "file"
    backup: BackupConfig

    # LLM
    providers: Dict[str, ProviderConfig]
    llm_profiles: Dict[str, Dict[str, Any]]
    default_profile: str
    retry: RetryConfig

    # Pipeline
    fetch: FetchConfig
    dedup: DedupConfig

    # Option lists
    topics: List[str]
    difficulties: List[str]
    question_counts: List[int]

    # Application
    environment: str
    debug_mode: bool
    log_level: str
    log_file: Optional[str]


# ============================================================================
# Configuration Loader
# ============================================================================

class ConfigLoader:
    """Loads configuration from environment variables."""

    @staticmethod
    def from_env() -> AppConfig:
        """Load complete configuration from environment."""

        # --- Database Configuration ---
        database = DatabaseConfig(
            uri=_env("MONGODB_URI") or _env("MONGO_URI", "mongodb://localhost:27017"),
            db_name=_env("MONGO_DB_NAME", "question-bank"),
            questions_collection=_env("QUESTIONS_COLLECTION", "questions"),
            server_selection_timeout_ms=_env_int("MONGO_SERVER_TIMEOUT_MS", 10000),
            connect_timeout_ms=_env_int("MONGO_CONNECT_TIMEOUT_MS", 10000),
            socket_timeout_ms=_env_int("MONGO_SOCKET_TIMEOUT_MS", 45000),
            max_pool_size=_env_int("MONGO_MAX_POOL_SIZE", 10),
        )

        file_store = FileStoreConfig(data_dir=_env("DATA_DIR", "data"))

        backup = BackupConfig(
            directory=_env("BACKUP_DIR", "backups"),
            retention_days=_env_int("BACKUP_RETENTION_DAYS", 7),
        )

        # --- Provider Configurations ---
        site_headers = {
            "HTTP-Referer": _env("SITE_URL", "http://localhost:3000"),
            "X-Title": _env("SITE_NAME", "Question Bank CLI"),
        }
        retry = RetryConfig(
            attempts=_env_int("API_RETRY_ATTEMPTS", 3),
            delay_s=_env_float("API_RETRY_DELAY", 1.0),
            timeout_s=_env_float("API_TIMEOUT", 30.0),
        )

        providers = {
            "openrouter": ProviderConfig(
                base_url=_env("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"),
                api_key=_env("API_KEY", ""),
                timeout=retry.timeout_s,
                headers=site_headers,
            ),
            "openai": ProviderConfig(
                api_key=_env("OPENAI_API_KEY", ""),
                timeout=retry.timeout_s,
            ),
        }

        # --- LLM Profiles ---
        llm_profiles = {
            "deepseek": {
                "provider": "openrouter",
                "model": _env("DEEPSEEK_MODEL", "deepseek/deepseek-chat-v3-0324:free"),
                "temperature": 0.7,
                "timeout": retry.timeout_s,
            },
            "openai": {
                "provider": "openrouter",
                "model": _env("OPENAI_MODEL", "openai/gpt-4o-mini"),
                "temperature": 0.7,
                "timeout": retry.timeout_s,
            },
            # Direct to api.openai.com through the SDK; needs OPENAI_API_KEY
            "openai-direct": {
                "provider": "openai",
                "model": _env("OPENAI_DIRECT_MODEL", "gpt-4o-mini"),
                "temperature": 0.7,
                "timeout": retry.timeout_s,
            },
        }

        # --- Recursive Fetching ---
        fetch = FetchConfig(
            max_total_questions=_env_int("MAX_TOTAL_QUESTIONS", 1000),
            batch_sizes=_env_int_list("BATCH_SIZES", [5, 10, 15, 20]),
            default_batch_size=_env_int("DEFAULT_BATCH_SIZE", 10),
            delay_between_batches_ms=_env_int("DELAY_BETWEEN_BATCHES_MS", 2000),
            retry_delay_ms=_env_int("RETRY_DELAY_MS", 5000),
            max_consecutive_failures=_env_int("MAX_CONSECUTIVE_FAILURES", 3),
            progress_update_interval_ms=_env_int("PROGRESS_UPDATE_INTERVAL_MS", 1000),
        )

        dedup = DedupConfig(
            similarity_threshold=_env_float("DUPLICATE_SIMILARITY_THRESHOLD", 0.85),
        )

        return AppConfig(
            database=database,
            file_store=file_store,
            storage_backend=_env("STORAGE_BACKEND", "mongo").lower(),
            backup=backup,
            providers=providers,
            llm_profiles=llm_profiles,
            default_profile=_env("DEFAULT_MODEL", "deepseek"),
            retry=retry,
            fetch=fetch,
            dedup=dedup,
            topics=_env_list("TOPICS", DEFAULT_TOPICS),
            difficulties=list(DIFFICULTIES),
            question_counts=list(QUESTION_COUNTS),
            environment=_env("ENVIRONMENT", "development"),
            debug_mode=_env_bool("DEBUG_MODE", False),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            log_file=_env("LOG_FILE") or None,
        )


# ============================================================================
# Global Configuration Instance
# ============================================================================

# Load configuration once at module import
APP_CONFIG = ConfigLoader.from_env()


__all__ = [
    "APP_CONFIG",
    "AppConfig",
    "ConfigLoader",
    "DatabaseConfig",
    "ProviderConfig",
    "RetryConfig",
    "FetchConfig",
    "DedupConfig",
    "BackupConfig",
    "FileStoreConfig",
    "DEFAULT_TOPICS",
    "DIFFICULTIES",
    "QUESTION_COUNTS",
]


# ============================================================================
# Configuration Validation
# ============================================================================

def _validate_config():
    """Validate critical configuration at startup."""
    issues = []

    if APP_CONFIG.storage_backend == "mongo" and not APP_CONFIG.database.uri:
        issues.append("MONGODB_URI not set")

    if APP_CONFIG.storage_backend not in ("mongo", "file"):
        issues.append(f"STORAGE_BACKEND '{APP_CONFIG.storage_backend}' is not one of mongo/file")

    if not APP_CONFIG.providers["openrouter"].api_key:
        issues.append("API_KEY not set - completion calls will be rejected")

    if APP_CONFIG.default_profile not in APP_CONFIG.llm_profiles:
        issues.append(f"DEFAULT_MODEL '{APP_CONFIG.default_profile}' has no profile")

    if APP_CONFIG.fetch.default_batch_size not in APP_CONFIG.fetch.batch_sizes:
        issues.append("DEFAULT_BATCH_SIZE is not one of BATCH_SIZES")

    if issues and APP_CONFIG.debug_mode:
        import sys
        sys.stderr.write("\n⚠️  Configuration Issues:\n")
        for issue in issues:
            sys.stderr.write(f"   - {issue}\n")
        sys.stderr.write("\n")


# Run validation on import
_validate_config()
