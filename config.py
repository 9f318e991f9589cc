# config.py
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./water_billing.db"

    jwt_secret: str = "your-secret-key-change-this"
    jwt_algorithm: str = "HS256"
    access_token_expire_hours: int = 24

    cloudinary_cloud_name: Optional[str] = None
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None
    cloudinary_folder: str = "anopog-readings"

    semaphore_api_key: Optional[str] = None
    semaphore_url: str = "https://api.semaphore.co/api/v4/messages"
    sms_timeout_seconds: float = 10.0

    cors_origins: List[str] = ["http://localhost:3000"]
    default_roles: List[str] = ["admin", "consumer"]
    notification_feed_limit: int = 10
    subscriber_queue_size: int = 100

    host: str = "0.0.0.0"
    port: int = 4000
    log_level: str = "INFO"


settings = Settings()
