from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    APP_NAME: str = "NexLink"
    VERSION: str = "0.1.0"

    # Persistence
    STATE_PATH: str = "NexLink/state.json"
    AUTOSAVE: bool = True

    # Content lifecycle
    STORY_TTL_HOURS: int = 24

    # Presence
    PRESENCE_WINDOW_SECONDS: int = 60
    HEARTBEAT_INTERVAL_SECONDS: float = 30.0

    # AI responder
    RESPONDER_HISTORY_WINDOW: int = 10
    ASSISTANT_AUTOPOST: bool = True
    ASSISTANT_POST_INTERVAL_SECONDS: float = 10.0
    ASSISTANT_POST_CHANCE: float = 0.2

    # Security
    NEXLINK_API_KEY: str = "change-me-in-prod"

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings():
    return Settings()
