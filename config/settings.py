import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env next to this file
BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")


class Settings:
    TRANSFORM_API_URL: str = os.getenv("TRANSFORM_API_URL", "http://127.0.0.1:8000")

    POLL_INTERVAL: float = float(os.getenv("POLL_INTERVAL", "0.5"))  # seconds
    TRANSFORM_TIMEOUT: float = float(os.getenv("TRANSFORM_TIMEOUT", "120"))
    REQUEST_TIMEOUT: float = float(os.getenv("REQUEST_TIMEOUT", "30"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()
