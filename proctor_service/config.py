# proctor_service/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path

class Settings(BaseSettings):
    STORE_BACKEND: str = "mongo"  # mongo | memory
    MONGODB_URI: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "proctoring_db"
    RECORDING_STORAGE_PATH: str = "./data/recordings"
    MAX_UPLOAD_SIZE_MB: int = 100
    DEDUP_WINDOW: int = 64
    UPDATE_MAX_RETRIES: int = 8
    MONITOR_QUEUE_SIZE: int = 256
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

settings = Settings()
Path(settings.RECORDING_STORAGE_PATH).mkdir(parents=True, exist_ok=True)
