"""Configuration management for the application."""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Azure AD Credentials (app-only access to Microsoft Graph)
    azure_tenant_id: str = ""
    azure_client_id: str = ""
    azure_client_secret: str = ""

    # Drive that holds both source and destination folders
    drive_id: str = ""
    graph_endpoint: str = "https://graph.microsoft.com/v1.0"
    authority_host: str = "https://login.microsoftonline.com"

    # API key callers must send as `apiKey` in the request body
    api_key: str = ""

    # Report file settings
    json_report_filename: str = "_folder_structure_report.json"
    save_json_report_default: bool = True

    # Allowed characters for folder ids
    folder_id_pattern: str = r"^[A-Za-z0-9!_-]+$"

    # Graph rejects ':' in item names, so the time part uses dots
    collision_timestamp_format: str = "%d-%b-%Y %H.%M.%S"

    # Rate limiting (synchronous requests only)
    rate_limit_window_seconds: float = 1.0
    rate_limit_cache_ttl_seconds: int = 60

    # Job queue
    job_payload_ttl_seconds: int = 21600  # 6 hours
    job_cache_max_size: int = 1000
    queue_state_path: str = "data/job_queue.json"
    queue_lock_timeout_seconds: float = 30.0
    job_tick_interval_seconds: float = 60.0
    enable_job_scheduler: bool = True

    # Outbound callbacks
    callback_timeout_seconds: float = 30.0

    # Graph copy monitor polling
    copy_poll_interval_seconds: float = 1.0
    copy_poll_timeout_seconds: float = 300.0

    # Logging
    log_level: str = "INFO"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = Field(default=8000, description="Server port (use PORT env var for Cloud Run)")

    # Auto-detect port from environment (for Cloud Run)
    def __init__(self, **kwargs):
        import os
        if "PORT" in os.environ and "port" not in kwargs:
            kwargs["port"] = int(os.environ["PORT"])
        super().__init__(**kwargs)

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
