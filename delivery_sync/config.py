# ==============================================
# Configuration Management
# ==============================================
#
# PURPOSE:
#   Load and validate all configuration from environment
#   variables / .env file. Provides typed config objects
#   to all other modules.
#
# CLASSES:
# --------
# - SheetSourceConfig (dataclass)
#     sheet_url: str                 (default "")
#     sheet_gid: str                 (default "0")
#     request_timeout_seconds: float (default 15.0)
#
# - MySQLConfig (dataclass)
#     host/port/user/password/database (database default "delivery_sync")
#
# - MongoConfig (dataclass)
#     host/port/user/password/database (database default "delivery_sync")
#
# - CacheConfig (dataclass)
#     backend: str       ("json" or "mongo", default "json")
#     cache_dir: str     (default "metadata/")
#
# - SyncConfig (dataclass)
#     resync_interval_seconds: float (default 300)
#     sample_size: int               (default 50)
#     history_size: int              (default 5)
#     queue_file: str                (default "metadata/pending_changes.json")
#     connectivity_probe_url: str
#
# - AppConfig (dataclass)
#     source, mysql, mongo, cache, sync, thresholds, log_level
#
# FUNCTIONS:
# ----------
# - get_config() -> AppConfig
#     Load .env using python-dotenv, construct AppConfig.
#     Returns the same singleton on repeated calls.
#
# - reset_config() -> None
#     Drop the singleton (tests).
#
# USAGE:
# ------
#   from delivery_sync.config import get_config
#   config = get_config()
#   print(config.source.sheet_url)
#   print(config.thresholds.min_assign_score)
#
# ==============================================

import os
from dataclasses import dataclass, field
from typing import Optional
from pathlib import Path

from dotenv import load_dotenv

from delivery_sync.analysis.mapping import ClassificationThresholds


@dataclass
class SheetSourceConfig:
    """Remote spreadsheet source configuration."""
    sheet_url: str = ""
    sheet_gid: str = "0"
    request_timeout_seconds: float = 15.0


@dataclass
class MySQLConfig:
    """MySQL database configuration."""
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = "root"
    database: str = "delivery_sync"


@dataclass
class MongoConfig:
    """MongoDB database configuration."""
    host: str = "localhost"
    port: int = 27017
    user: Optional[str] = None
    password: Optional[str] = None
    database: str = "delivery_sync"


@dataclass
class CacheConfig:
    """Snapshot cache configuration."""
    backend: str = "json"
    cache_dir: str = "metadata/"


@dataclass
class SyncConfig:
    """Sync session, sampling and offline queue configuration."""
    resync_interval_seconds: float = 300.0
    sample_size: int = 50
    history_size: int = 5
    queue_file: str = "metadata/pending_changes.json"
    connectivity_probe_url: str = "https://docs.google.com/"


@dataclass
class AppConfig:
    """Main application configuration."""
    source: SheetSourceConfig = field(default_factory=SheetSourceConfig)
    mysql: MySQLConfig = field(default_factory=MySQLConfig)
    mongo: MongoConfig = field(default_factory=MongoConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    thresholds: ClassificationThresholds = field(default_factory=ClassificationThresholds)
    log_level: str = "INFO"


# Singleton instance
_config_instance: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Load configuration from environment variables / .env file.
    Returns the same singleton instance on repeated calls.

    Returns:
        AppConfig: Application configuration
    """
    global _config_instance

    if _config_instance is not None:
        return _config_instance

    # Load .env file from project root
    env_path = Path(__file__).parent.parent / ".env"
    load_dotenv(dotenv_path=env_path)

    source_config = SheetSourceConfig(
        sheet_url=os.getenv("SHEET_URL", ""),
        sheet_gid=os.getenv("SHEET_GID", "0"),
        request_timeout_seconds=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "15.0"))
    )

    mysql_config = MySQLConfig(
        host=os.getenv("MYSQL_HOST", "localhost"),
        port=int(os.getenv("MYSQL_PORT", "3306")),
        user=os.getenv("MYSQL_USER", "root"),
        password=os.getenv("MYSQL_PASSWORD", "root"),
        database=os.getenv("MYSQL_DATABASE", "delivery_sync")
    )

    mongo_config = MongoConfig(
        host=os.getenv("MONGO_HOST", "localhost"),
        port=int(os.getenv("MONGO_PORT", "27017")),
        user=os.getenv("MONGO_USER") or None,
        password=os.getenv("MONGO_PASSWORD") or None,
        database=os.getenv("MONGO_DATABASE", "delivery_sync")
    )

    cache_config = CacheConfig(
        backend=os.getenv("CACHE_BACKEND", "json").lower(),
        cache_dir=os.getenv("CACHE_DIR", "metadata/")
    )

    sync_config = SyncConfig(
        resync_interval_seconds=float(os.getenv("RESYNC_INTERVAL_SECONDS", "300")),
        sample_size=int(os.getenv("SAMPLE_SIZE", "50")),
        history_size=int(os.getenv("MAPPING_HISTORY_SIZE", "5")),
        queue_file=os.getenv("QUEUE_FILE", "metadata/pending_changes.json"),
        connectivity_probe_url=os.getenv("CONNECTIVITY_PROBE_URL", "https://docs.google.com/")
    )

    # Only the two boundary thresholds are exposed through the environment
    defaults = ClassificationThresholds()
    thresholds = ClassificationThresholds(
        min_assign_score=float(os.getenv("MIN_ASSIGN_SCORE", str(defaults.min_assign_score))),
        manual_resolution_confidence=float(
            os.getenv("MANUAL_RESOLUTION_CONFIDENCE", str(defaults.manual_resolution_confidence))
        )
    )

    _config_instance = AppConfig(
        source=source_config,
        mysql=mysql_config,
        mongo=mongo_config,
        cache=cache_config,
        sync=sync_config,
        thresholds=thresholds,
        log_level=os.getenv("LOG_LEVEL", "INFO")
    )

    return _config_instance


def reset_config() -> None:
    """Forget the cached configuration so the next get_config() reloads it."""
    global _config_instance
    _config_instance = None
