from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # PostgreSQL (credential store)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "yt_user"
    postgres_password: str = "changeme"
    postgres_db: str = "yt_automation"
    database_url: str = ""  # overrides the postgres_* fields when set

    @property
    def postgres_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Encryption for provider credentials at rest
    fernet_key: str = ""

    # Generation provider
    tool: str = "whisk"  # whisk | imagefx
    whisk_api_url: str = "https://aisandbox-pa.googleapis.com/v1/whisk:generateImage"
    imagefx_api_url: str = "https://aisandbox-pa.googleapis.com/v1:runImageFx"
    user_agent: str = "ytassets HTTP Client"
    accept_header: str = "application/json"
    output_directory: str = "./assets/images/"

    # Dispatch
    max_concurrency: int = 2
    request_timeout: float = 60.0  # seconds, per provider call
    seed_mode: str = "random"  # random | static
    static_seed: int = 12345
    requests_per_minute: int = 15  # 0 disables the rate limiter
    retry_attempts: int = 3  # infrastructure retries per job
    max_content_retries: int = 3  # prompt rewrites per job
    initial_retry_delay: float = 2.0
    backoff_multiplier: float = 2.0
    max_retry_delay: float = 30.0

    # Comma-separated terms removed from prompts rejected by the content policy
    banned_terms: str = (
        "violence,violent,blood,poison,death,kill,murder,"
        "nude,naked,sexual,explicit,adult,porn,nsfw,"
        "weapon,gun,knife,bomb,explosive,terrorist,"
        "hate,racism,discrimination,offensive"
    )

    @property
    def banned_terms_list(self) -> list[str]:
        return [t.strip() for t in self.banned_terms.split(",") if t.strip()]

    # App
    app_env: str = "development"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # set True in production for structured JSON logs

    # Sentry
    sentry_dsn: str = ""  # leave empty to disable


settings = Settings()


def validate_settings_for_production() -> None:
    """Validate critical settings. Called by the batch runner before dispatching."""
    errors: list[str] = []

    if settings.tool not in ("whisk", "imagefx"):
        errors.append(f"TOOL must be 'whisk' or 'imagefx', got {settings.tool!r}")

    if settings.seed_mode not in ("random", "static"):
        errors.append(f"SEED_MODE must be 'random' or 'static', got {settings.seed_mode!r}")

    if settings.max_concurrency < 1:
        errors.append("MAX_CONCURRENCY must be at least 1")

    if settings.app_env == "production" and not settings.fernet_key:
        errors.append(
            'FERNET_KEY must be set (generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())")'
        )

    if errors:
        raise SystemExit("Configuration errors:\n  - " + "\n  - ".join(errors))
