"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    DATABASE_URL: str
    LOG_LEVEL: str
    ALLOW_DEV_CORS: bool
    MESSAGE_TOPIC: str
    MAX_MESSAGE_LENGTH: int
    API_HOST: str
    API_PORT: int

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'tutorium.db'}")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.MESSAGE_TOPIC = os.getenv("MESSAGE_TOPIC", "/topic/messages")
        self.MAX_MESSAGE_LENGTH = int(os.getenv("MAX_MESSAGE_LENGTH", "4000"))
        self.API_HOST = os.getenv("API_HOST", "127.0.0.1")
        self.API_PORT = int(os.getenv("API_PORT", "8000"))
        self._validate()

    def _validate(self):
        if not self.MESSAGE_TOPIC.strip():
            raise RuntimeError("MESSAGE_TOPIC must not be empty")
        if self.MAX_MESSAGE_LENGTH <= 0:
            raise RuntimeError("MAX_MESSAGE_LENGTH must be a positive integer")


settings = Settings()
