from pydantic_settings import BaseSettings
from typing import List, Any
import json
from pathlib import Path


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        # Try JSON parsing first
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        # Fall back to comma-separated
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


def parse_extensions(v: Any) -> List[str]:
    """Parse allowed extensions from string or list"""
    if isinstance(v, list):
        return [ext.lower().lstrip('.') for ext in v]
    if isinstance(v, str):
        if v.startswith('['):
            try:
                return [ext.lower().lstrip('.') for ext in json.loads(v)]
            except json.JSONDecodeError:
                pass
        return [ext.strip().lower().lstrip('.') for ext in v.split(',') if ext.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "ENCG Portal"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"

    # Server Configuration
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000

    # ==========================================
    # Tree store (users, resources, seminars)
    # ==========================================
    TREE_BACKEND: str = "sql"  # "sql" or "memory"
    DATABASE_URL: str = "sqlite+aiosqlite:///./encg_portal.db"
    DB_ECHO: bool = False

    # ==========================================
    # Authentication / Session
    # ==========================================
    JWT_SECRET_KEY: str = "CHANGE_ME"
    JWT_ALGORITHM: str = "HS256"
    SESSION_TIMEOUT_SECONDS: int = 365 * 24 * 60 * 60  # 1 year
    SESSION_REFRESH_THRESHOLD_SECONDS: int = 24 * 60 * 60  # 24 hours
    ACTIVITY_THROTTLE_SECONDS: int = 30

    USERNAME_MIN_LENGTH: int = 3
    USERNAME_MAX_LENGTH: int = 20
    PASSWORD_MIN_LENGTH: int = 6
    PASSWORD_MAX_LENGTH: int = 128

    # ==========================================
    # Bot check (Cloudflare Turnstile)
    # ==========================================
    TURNSTILE_SECRET_KEY: str = ""
    TURNSTILE_VERIFY_URL: str = "https://challenges.cloudflare.com/turnstile/v0/siteverify"
    TURNSTILE_DEV_BYPASS: bool = True
    TURNSTILE_TIMEOUT: float = 10.0

    # ==========================================
    # Storage Configuration
    # ==========================================
    STORAGE_MODE: str = "local"  # "local" or "s3" (S3, R2 and MinIO compatible)
    STORAGE_LOCAL_DIR: str = "storage"

    # S3 / R2
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "auto"
    S3_BUCKET_NAME: str = "encg-resources"
    S3_ENDPOINT_URL: str = ""  # e.g. https://<account>.r2.cloudflarestorage.com

    # Gateway exposed to clients (upload/download/delete)
    STORAGE_GATEWAY_MODE: str = "local"  # "local" (served here) or "remote"
    STORAGE_GATEWAY_URL: str = "http://localhost:8000"
    STORAGE_GATEWAY_TIMEOUT: float = 60.0

    # ==========================================
    # CORS (stored as comma-separated string, parsed to list)
    # ==========================================
    CORS_ORIGINS_STR: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return parse_cors_origins(self.CORS_ORIGINS_STR)

    # ==========================================
    # Rate Limiting
    # ==========================================
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_PER_MINUTE: int = 120
    LOGIN_RATE_LIMIT: str = "5/15minutes"

    # ==========================================
    # File Upload
    # ==========================================
    MAX_UPLOAD_SIZE: int = 52428800  # 50MB
    ALLOWED_EXTENSIONS_STR: str = "pdf,ppt,pptx,doc,docx,xls,xlsx,zip,rar"

    @property
    def ALLOWED_EXTENSIONS(self) -> List[str]:
        """Parse allowed extensions from comma-separated string"""
        return parse_extensions(self.ALLOWED_EXTENSIONS_STR)

    # ==========================================
    # Cache
    # ==========================================
    CACHE_BACKEND: str = "memory"  # "memory" or "redis"
    REDIS_URL: str = "redis://localhost:6379/1"
    CACHE_DEFAULT_TTL: int = 300  # 5 minutes
    CACHE_TTL_PUBLIC_FILES: int = 300  # 5 minutes
    CACHE_TTL_SEMINARS: int = 600  # 10 minutes
    RECENT_ITEMS_LIMIT: int = 3

    # ==========================================
    # Static fallback (offline generated {kind}/index.json)
    # ==========================================
    STATIC_INDEX_DIR: str = "public"

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env that aren't defined in Settings

    @property
    def STORAGE_LOCAL_PATH(self) -> Path:
        return Path(self.STORAGE_LOCAL_DIR)

    @property
    def STATIC_INDEX_PATH(self) -> Path:
        return Path(self.STATIC_INDEX_DIR)

    def is_dev_mode(self) -> bool:
        """Check if running in development mode"""
        return self.ENVIRONMENT == "development" or self.DEBUG

    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def get_download_url(self, path: str) -> str:
        """Public gateway URL for an object key"""
        from urllib.parse import quote
        return f"{self.STORAGE_GATEWAY_URL.rstrip('/')}/download?path={quote(path, safe='')}"


# Create settings instance
settings = Settings()
