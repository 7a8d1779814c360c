from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"
    HTTP_TIMEOUT: Optional[float] = 30.0  # seconds; None disables the timeout
    CORS_ORIGINS: List[str] = ["*"]
    BACKEND_URL: str = "http://localhost:8001"  # used by manage_forms.py

    class Config:
        env_file = ".env"


settings = Settings()
