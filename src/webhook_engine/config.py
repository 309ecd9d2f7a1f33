from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    stripe_webhook_secret: str = ""
    signature_tolerance_seconds: int = 300
    processing_timeout_seconds: float = 10.0
    handler_timeout_seconds: float = 5.0
    outbound_max_concurrency: int = 10
    outbound_timeout_seconds: float = 10.0
    db_path: str = "/data/webhooks.db"
    log_level: str = "INFO"
    log_format: str = "pretty"
