import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


load_dotenv()


class Settings:

    def __init__(self) -> None:
        self.mongodb_url: str = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
        self.mongodb_db: str = os.getenv("MONGODB_DB", "marketchat")
        self.redis_url: Optional[str] = os.getenv("REDIS_URL") or None
        self.jwt_secret_key: str = os.getenv("JWT_SECRET_KEY", "change-me")
        self.jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
        self.display_timezone: str = os.getenv("DISPLAY_TIMEZONE", "UTC")
        # "directional" keeps "{sender}_{receiver}" summary ids, "canonical" sorts the pair
        self.chat_summary_key_mode: str = os.getenv("CHAT_SUMMARY_KEY_MODE", "directional")
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")


@lru_cache
def get_settings() -> Settings:
    return Settings()
