"""
MODULE OVERVIEW:
This module provides application-wide configuration using Pydantic Settings.

WHAT IS HAPPENING HERE:
Everything that tunes how we talk to a ship lives here: where the ship is,
how to log in, and the reconnect policy. The CLI and the mock ship read the
`settings` singleton. The client itself takes plain keyword arguments so that
two clients in one process can run with different policies.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        # Tolerate unrelated env vars so a shared .env does not break start-up
        extra="ignore",
    )

    LOG_LEVEL: str = "INFO"

    # Ship
    URBIT_URL: str = "http://localhost:8080"
    URBIT_SHIP: str | None = None
    URBIT_CODE: str = ""

    # Reconnect policy
    AUTO_RECONNECT: bool = True
    MAX_RECONNECT_ATTEMPTS: int = 10
    RECONNECT_DELAY_MS: int = 1000
    MAX_RECONNECT_DELAY_MS: int = 30000

    # Requests (the event stream itself never times out on read)
    REQUEST_TIMEOUT_S: float = 30.0
    SUPPRESS_DUPLICATE_EVENTS: bool = False

    # Mock ship
    MOCK_SHIP_PORT: int = 8080
    MOCK_SHIP_NAME: str = "zod"
    MOCK_SHIP_CODE: str = "lidlut-tabwed-pillex-ridrup"
    MOCK_SSE_PING_INTERVAL_S: int = 15
    # 0 disables the fake DM traffic
    MOCK_CHATTER_INTERVAL_S: float = 5.0


settings = Settings()
