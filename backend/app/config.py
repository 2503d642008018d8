from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./canteen.db"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    FRONTEND_ORIGINS: List[str] = ["http://localhost:5173"]
    RESET_DB: bool = False

    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # order placement
    DEFAULT_ORDER_NOTES: str = "Cash on pickup"
    PICKUP_ESTIMATE_MINUTES: int = 30

    # in-memory carts
    CART_IDLE_MINUTES: int = 240
    CART_MAX_DRAFTS: int = 10000

    # live order stream
    ORDER_STREAM_HEARTBEAT_SECONDS: float = 15.0

    # auto-advance sweep
    AUTO_ADVANCE_ENABLED: bool = True
    AUTO_ADVANCE_INTERVAL_SECONDS: int = 60
    PENDING_TO_PREPARING_MINUTES: int = 2
    PREPARING_TO_READY_MINUTES: int = 15
    READY_TO_COMPLETED_MINUTES: int = 30
    AUTO_ADVANCE_CLOCK: str = "created_at"  # created_at | status_changed_at
    AUTO_ADVANCE_TOKEN: Optional[str] = None
    SWEEP_LOCK_TIMEOUT_SECONDS: float = 5.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
