"""bacmap configuration management.

Loads configuration from environment variables with sensible defaults.
Threshold constants used by the scorer and the auto-assignment orchestrator
live here so they can be overridden per deployment or per instance.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class DBConfig:
    """Database connection configuration."""

    url: str = "sqlite+aiosqlite:///./bacmap.db"
    pool_size: int = 10
    pool_max_overflow: int = 20
    pool_timeout: int = 30
    echo: bool = False  # SQL logging


@dataclass
class NormalizationConfig:
    """Point-name normalization cache and rule sources."""

    cache_ttl_seconds: float = 30 * 60  # 30 minutes
    cache_max_size: int = 10000
    vendor_rules_path: Path | None = None


@dataclass
class ScoringConfig:
    """Confidence scoring thresholds and learning parameters."""

    auto_assign_threshold: float = 95.0
    name_match_threshold: float = 0.6
    type_match_threshold: float = 0.7
    semantic_overlap_threshold: float = 0.5
    learning_rate: float = 0.1  # share of the correlation target blended per update
    min_learning_samples: int = 10
    max_learning_samples: int = 1000


@dataclass
class AssignmentConfig:
    """Auto-assignment decision thresholds and switches."""

    confidence_threshold: float = 95.0
    high_confidence_threshold: float = 90.0
    error_rate_alert_threshold: float = 5.0  # percent
    error_rate_eviction_threshold: float = 15.0  # percent
    min_alert_attempts: int = 5
    min_success_rate: float = 0.85
    min_pool_confirmations: int = 3
    review_threshold: float = 98.0
    batch_size: int = 10
    batch_item_delay_seconds: float = 0.01
    enable_learning: bool = True
    rollback_enabled: bool = True
    allow_reassignment_after_rollback: bool = True
    audit_log_limit: int = 1000


@dataclass
class AppConfig:
    """Root application configuration."""

    db: DBConfig = field(default_factory=DBConfig)
    log_level: str = "INFO"
    log_format: str = "console"  # console or json

    normalization: NormalizationConfig = field(default_factory=NormalizationConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    assignment: AssignmentConfig = field(default_factory=AssignmentConfig)

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load configuration from environment variables.

        All settings are optional. DATABASE_URL defaults to a local SQLite
        file; thresholds default to the values documented on each dataclass.

        Raises:
            ValueError: If a numeric environment variable cannot be parsed
        """
        rules_path = os.getenv("VENDOR_RULES_PATH")

        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format="json" if _env_bool("JSON_LOGS", "false") else "console",
            db=DBConfig(
                url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./bacmap.db"),
                pool_size=int(os.getenv("DB_POOL_SIZE", "10")),
                pool_max_overflow=int(os.getenv("DB_POOL_MAX_OVERFLOW", "20")),
                pool_timeout=int(os.getenv("DB_POOL_TIMEOUT", "30")),
                echo=_env_bool("DB_ECHO", "false"),
            ),
            normalization=NormalizationConfig(
                cache_ttl_seconds=float(os.getenv("NORMALIZATION_CACHE_TTL", "1800")),
                cache_max_size=int(os.getenv("NORMALIZATION_CACHE_SIZE", "10000")),
                vendor_rules_path=Path(rules_path) if rules_path else None,
            ),
            scoring=ScoringConfig(
                auto_assign_threshold=float(
                    os.getenv("AUTO_ASSIGN_CONFIDENCE_THRESHOLD", "95")
                ),
                name_match_threshold=float(os.getenv("NAME_MATCH_THRESHOLD", "0.6")),
                type_match_threshold=float(os.getenv("TYPE_MATCH_THRESHOLD", "0.7")),
                learning_rate=float(os.getenv("LEARNING_RATE", "0.1")),
                min_learning_samples=int(os.getenv("MIN_LEARNING_SAMPLES", "10")),
                max_learning_samples=int(os.getenv("MAX_LEARNING_SAMPLES", "1000")),
            ),
            assignment=AssignmentConfig(
                confidence_threshold=float(
                    os.getenv("AUTO_ASSIGN_CONFIDENCE_THRESHOLD", "95")
                ),
                high_confidence_threshold=float(
                    os.getenv("HIGH_CONFIDENCE_THRESHOLD", "90")
                ),
                error_rate_alert_threshold=float(
                    os.getenv("ERROR_RATE_ALERT_THRESHOLD", "5")
                ),
                batch_size=int(os.getenv("AUTO_ASSIGN_BATCH_SIZE", "10")),
                batch_item_delay_seconds=float(
                    os.getenv("AUTO_ASSIGN_ITEM_DELAY", "0.01")
                ),
                enable_learning=_env_bool("ENABLE_LEARNING", "true"),
                rollback_enabled=_env_bool("ROLLBACK_ENABLED", "true"),
                allow_reassignment_after_rollback=_env_bool(
                    "ALLOW_REASSIGNMENT_AFTER_ROLLBACK", "true"
                ),
                audit_log_limit=int(os.getenv("AUDIT_LOG_LIMIT", "1000")),
            ),
        )


# Singleton instance (lazy-loaded)
_config: AppConfig | None = None


def get_config(reload: bool = False) -> AppConfig:
    """Get or create singleton AppConfig instance from environment.

    Args:
        reload: Re-read the environment even if a config is cached

    Returns:
        AppConfig: Application configuration
    """
    global _config
    if _config is None or reload:
        _config = AppConfig.from_env()
    return _config
