from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Writing Research API"
    app_env: str = "development"
    cors_origins: str = "http://localhost:3000"
    cors_allow_credentials: bool = True
    log_level: str = "INFO"
    request_id_header: str = "X-Request-ID"

    storage_backend: str = "local"  # local|s3
    storage_root: str = "data/local-data"
    s3_bucket: str = "writingresearch-dev"
    s3_prefix: str = "local-data"
    aws_region: str = "us-east-1"

    presence_ttl_seconds: float = 20.0
    # Groups that include the peer-notes stage (stage 3).
    peer_groups: str = "A,B"
    # Upper bound applied to requested jump targets; one above the final stage.
    jump_stage_ceiling: int = 5
    chat_history_limit: int = 5000

    # Empty disables the X-API-Key check on participant routes.
    api_key: str = ""
    admin_password: str = ""
    admin_token_secret: str = ""
    admin_token_ttl_seconds: int = 60 * 60 * 12

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def peer_groups_set(self) -> frozenset[str]:
        return frozenset(group.strip().upper() for group in self.peer_groups.split(",") if group.strip())


settings = Settings()
