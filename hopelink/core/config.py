from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    jwt_secret: str = "dev"
    jwt_alg: str = "HS256"
    access_ttl_min: int = 30

    use_mongo: bool = False
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "hopelink"

    # matching
    parameter_group: str = "DONOR_RECIPIENT_VOLUNTEER"
    candidate_page_limit: int = 200
    overload_threshold: int = 3
    acceptance_timeout_minutes: int = 30

    # expiry job
    expiry_retention_days: int = 30
    expiry_interval_minutes: int = 60
    run_expiry_job: bool = True

    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
