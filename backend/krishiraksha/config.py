"""
Krishiraksha Configuration Module

Loads environment variables for the integrity and transaction backend.
"""
from pydantic_settings import BaseSettings
from typing import Literal, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Notes:
    - The QR signing secret is environment-based and handed explicitly to the
      codec by the API layer; the codec never reads settings itself
    - Transaction timings are in seconds
    - Demo mode exposes extra error details and enables auto-reload
    """

    # Demo Configuration
    demo_mode: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Signed QR payloads (HMAC-SHA256)
    qr_signature_secret: str = "krishiraksha-qr-secret-demo-only-change-me"
    qr_max_age_days: int = 30
    qr_payload_version: str = "1.0"

    # Transaction lifecycle
    tx_required_confirmations: int = 3
    tx_max_retries: int = 3
    tx_retry_delay_seconds: float = 2.0
    tx_confirmation_interval_seconds: float = 1.0
    tx_submit_timeout_seconds: Optional[float] = None

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
