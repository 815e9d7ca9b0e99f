"""
Application settings

Values are read from the environment (or a local .env file):
- DATABASE_URL / DATABASE_NAME: MongoDB connection
- JWT_SECRET: shared secret used to sign access tokens
- FIREBASE_PROJECT_ID: audience for federated (Google) sign-in tokens
- CLOUDINARY_CLOUD_NAME / CLOUDINARY_API_KEY / CLOUDINARY_API_SECRET: image hosting
"""
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    app_name: str = "Blog Platform API"

    # Database
    database_url: Optional[str] = None
    database_name: str = "blog"

    # Security
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: Optional[int] = None
    bcrypt_rounds: int = 10

    # External services
    firebase_project_id: Optional[str] = None
    cloudinary_cloud_name: Optional[str] = None
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None

    # File uploads
    upload_dir: str = "/tmp/uploads"

    # CORS
    allowed_origins: List[str] = ["*"]

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    return Settings()
