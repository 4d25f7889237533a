"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with TAGRELAY_ prefix.
No YAML files, no file-based config — just env vars (12-factor app style).

Learn: the keepalive timings default to the values the relay has always
run with (30s heartbeat, 120s inactivity window, 60s sweep).
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings

OVERFLOW_POLICIES = ("drop_oldest", "drop_new", "disconnect")


class Settings(BaseSettings):
    """All app configuration. Set via TAGRELAY_* env vars."""

    # Server
    environment: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 3000

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Redis (rate limiting only; empty string disables it)
    redis_url: str = "redis://localhost:6379/0"

    # CORS
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Rate limiting
    rate_limit_rpm: int = 100  # requests per minute per IP
    producer_rate_limit_rpm: int = 10  # stricter limit for item submission

    # Keepalive
    heartbeat_interval_seconds: float = 30.0
    inactivity_timeout_seconds: float = 120.0
    sweep_interval_seconds: float = 60.0

    # Per-connection outbound queue
    send_queue_max: int = 100
    send_overflow_policy: str = "disconnect"

    model_config = {"env_prefix": "TAGRELAY_"}

    @model_validator(mode="after")
    def validate_keepalive_settings(self):
        """Reject timings that would evict connections that are answering heartbeats."""
        if self.inactivity_timeout_seconds <= self.heartbeat_interval_seconds:
            raise ValueError(
                "TAGRELAY_INACTIVITY_TIMEOUT_SECONDS must be greater than "
                "TAGRELAY_HEARTBEAT_INTERVAL_SECONDS"
            )
        if self.sweep_interval_seconds <= 0 or self.heartbeat_interval_seconds <= 0:
            raise ValueError("Keepalive intervals must be positive")
        if self.send_queue_max < 1:
            raise ValueError("TAGRELAY_SEND_QUEUE_MAX must be at least 1")
        self.send_overflow_policy = self.send_overflow_policy.lower()
        if self.send_overflow_policy not in OVERFLOW_POLICIES:
            raise ValueError(
                f"TAGRELAY_SEND_OVERFLOW_POLICY must be one of {', '.join(OVERFLOW_POLICIES)}"
            )
        return self


# Singleton, import this everywhere
settings = Settings()
