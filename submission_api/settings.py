from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    database_url: str = "sqlite:///./submissions.db"
    host: str = "0.0.0.0"
    port: int = 5000
    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]

    # admin routes stay disabled until a key is configured
    admin_api_key: Optional[str] = None

    paystack_secret_key: str = ""
    paystack_base_url: str = "https://api.paystack.co"
    request_timeout_seconds: float = 30.0
    gateway_max_attempts: int = 3
    gateway_backoff_seconds: float = 0.5

    storage_backend: str = "local"  # local | s3
    upload_dir: str = "uploads"
    public_base_url: str = "http://localhost:5000"
    s3_bucket: str = ""
    s3_endpoint_url: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_default_region: Optional[str] = None
    storage_public_base_url: Optional[str] = None
    storage_folder: str = "assignments"
    storage_use_filename: bool = True

    max_files: int = 5
    max_file_bytes: int = 10 * 1024 * 1024
    truncate_extra_files: bool = False
    unit_price: int = 200
    require_verified_payment: bool = False

    token_prefix: str = "ICT-"
    max_token_batch: int = 500

    scoring_enabled: bool = True
    score_min: int = 13
    score_max: int = 19

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

settings = Settings()
