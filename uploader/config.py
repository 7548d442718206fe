"""
Configuration management for the uploader.

Centralizes all configuration loading from environment variables
and provides type-safe access to configuration values.
"""

import os
from typing import Dict, Any, Optional
from dataclasses import dataclass, field


@dataclass
class UploaderConfig:
    """Configuration for the uploader client"""

    # Remote document store settings
    DOCUMENT_STORE_TYPE: str = "memory"  # postgres, memory
    DOCUMENT_STORE_CONFIG: Dict[str, Any] = field(default_factory=dict)

    # Object store settings
    OBJECT_STORE_TYPE: str = "memory"  # s3, memory
    OBJECT_STORE_CONFIG: Dict[str, Any] = field(default_factory=dict)

    # Change stream reconnect backoff
    SUBSCRIPTION_RETRY_MS: int = 1500
    BACKOFF_MULTIPLIER: float = 1.5
    MAX_BACKOFF_MS: int = 12000

    # Webhook
    WEBHOOK_TIMEOUT_SEC: float = 30.0

    # Logging
    LOG_LEVEL: str = "INFO"

    # HTTP server
    ENABLE_HTTP_SERVER: bool = False
    HTTP_PORT: int = 8000

    # Data directory and persisted settings
    DATA_DIR: str = "/app/data"
    SETTINGS_PATH: Optional[str] = None

    # Session used by the command line client
    USER_ID: Optional[str] = None
    USER_EMAIL: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'UploaderConfig':
        """Load configuration from environment variables"""
        config = cls()

        config.DOCUMENT_STORE_TYPE = os.getenv("DOCUMENT_STORE_TYPE", "memory")
        config.DOCUMENT_STORE_CONFIG = cls._parse_document_store_config()

        config.OBJECT_STORE_TYPE = os.getenv("OBJECT_STORE_TYPE", "memory")
        config.OBJECT_STORE_CONFIG = cls._parse_object_store_config()

        config.SUBSCRIPTION_RETRY_MS = int(os.getenv("SUBSCRIPTION_RETRY_MS", "1500"))
        config.BACKOFF_MULTIPLIER = float(os.getenv("SUBSCRIPTION_BACKOFF_MULTIPLIER", "1.5"))
        config.MAX_BACKOFF_MS = int(os.getenv("SUBSCRIPTION_MAX_BACKOFF_MS", "12000"))

        config.WEBHOOK_TIMEOUT_SEC = float(os.getenv("WEBHOOK_TIMEOUT_SEC", "30"))

        config.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

        config.ENABLE_HTTP_SERVER = os.getenv("UPLOADER_DEV_HTTP", "false").lower() == "true"
        config.HTTP_PORT = int(os.getenv("UPLOADER_HTTP_PORT", "8000"))

        config.DATA_DIR = os.getenv("DATA_DIR", "/app/data")
        config.SETTINGS_PATH = os.getenv("SETTINGS_PATH") or None

        config.USER_ID = os.getenv("UPLOADER_USER_ID") or None
        config.USER_EMAIL = os.getenv("UPLOADER_USER_EMAIL") or None

        return config

    @classmethod
    def _parse_document_store_config(cls) -> Dict[str, Any]:
        """Parse document store specific configuration"""
        store_type = os.getenv("DOCUMENT_STORE_TYPE", "memory")

        if store_type == "postgres":
            return {
                "database_url": os.getenv("DATABASE_URL"),
                "connection_pool_size": int(os.getenv("POSTGRES_POOL_SIZE", "5")),
                "connection_timeout": int(os.getenv("POSTGRES_TIMEOUT", "10")),
                "channel": os.getenv("POSTGRES_NOTIFY_CHANNEL", "video_documents")
            }
        else:
            return {}

    @classmethod
    def _parse_object_store_config(cls) -> Dict[str, Any]:
        """Parse object store specific configuration"""
        store_type = os.getenv("OBJECT_STORE_TYPE", "memory")

        if store_type == "s3":
            return {
                "bucket": os.getenv("AWS_S3_BUCKET"),
                "region": os.getenv("AWS_REGION", "us-east-1"),
                "endpoint_url": os.getenv("S3_ENDPOINT_URL") or None,
                "public_url": os.getenv("S3_PUBLIC_URL") or None,
                "url_expiry": int(os.getenv("S3_URL_EXPIRY_SEC", "604800"))
            }
        elif store_type == "memory":
            return {
                "base_url": os.getenv("MEMORY_OBJECT_BASE_URL", "memory://videos")
            }
        else:
            return {}

    @property
    def settings_path(self) -> str:
        return self.SETTINGS_PATH or os.path.join(self.DATA_DIR, "uploader", "settings.json")

    def validate(self) -> None:
        """Validate configuration and raise errors for missing required values"""
        problems = []

        if self.DOCUMENT_STORE_TYPE not in ("postgres", "memory"):
            problems.append(f"unsupported DOCUMENT_STORE_TYPE {self.DOCUMENT_STORE_TYPE!r}")

        if self.OBJECT_STORE_TYPE not in ("s3", "memory"):
            problems.append(f"unsupported OBJECT_STORE_TYPE {self.OBJECT_STORE_TYPE!r}")

        if self.DOCUMENT_STORE_TYPE == "postgres" and not self.DOCUMENT_STORE_CONFIG.get("database_url"):
            problems.append("DATABASE_URL")

        if self.OBJECT_STORE_TYPE == "s3" and not self.OBJECT_STORE_CONFIG.get("bucket"):
            problems.append("AWS_S3_BUCKET")

        if problems:
            raise ValueError(f"Missing or invalid configuration: {', '.join(problems)}")
