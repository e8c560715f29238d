from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Used for notification fan-out to other users (bypasses RLS)
    supabase_timeout_seconds: int = 10

    # Storage buckets
    avatar_bucket: str = "avatars"
    group_image_bucket: str = "group-images"
    post_image_bucket: str = "post-images"
    chat_image_bucket: str = "chat-images"
    max_upload_bytes: int = 5 * 1024 * 1024

    # Groups
    group_max_members: int = 120
    secondary_admin_limit: int = 3

    # Auth token cache
    auth_cache_ttl_seconds: int = 60
    auth_cache_max_size: int = 500

    # Realtime
    realtime_queue_size: int = 100

    # App
    app_name: str = "campusnet-backend"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",
        extra="ignore"
    )


settings = Settings()
