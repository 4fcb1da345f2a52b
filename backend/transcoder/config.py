"""
Runtime configuration.

Read from environment variables (prefix TRANSCODER_) and an optional .env
file. Backend selectors choose between the in-process implementations used
for local runs and the AWS / Redis ones used in deployment.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TRANSCODER_", env_file=".env", extra="ignore")

    # Backend selection
    job_store_backend: Literal["memory", "dynamodb"] = "memory"
    blob_store_backend: Literal["local", "s3"] = "local"
    queue_backend: Literal["memory", "sqs"] = "memory"
    cache_backend: Literal["memory", "redis", "none"] = "memory"

    # AWS
    aws_region: str = "ap-southeast-2"
    sqs_queue_url: Optional[str] = None
    dynamodb_table: str = "transcode-jobs"
    s3_endpoint: Optional[str] = None
    s3_original_bucket: str = "transcoder-original"
    s3_processed_bucket: str = "transcoder-processed"

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Local storage
    storage_root: Path = Path("./uploads")
    work_dir: Path = Path("/tmp/transcoder")

    # Worker
    queue_wait_seconds: int = 20  # SQS long-poll maximum
    idle_poll_seconds: float = 1.0
    visibility_timeout: float = 900.0  # In-memory queue only
    max_receives: Optional[int] = 5  # In-memory queue only
    progress_store_interval: float = 5.0
    input_url_ttl: int = 7200
    ffmpeg_path: Optional[str] = None

    # Cache TTLs (seconds)
    progress_cache_ttl: int = 300
    job_list_cache_ttl: int = 600

    # Limits
    max_input_bytes: int = 5 * 1024 ** 3

    # Monitoring
    download_url_ttl: int = 3600
    host: str = "127.0.0.1"
    port: int = 8085

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings instance."""
    return Settings()
