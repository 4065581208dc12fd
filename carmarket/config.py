"""Application settings read from the environment."""

import os
from pathlib import Path

from carmarket.utils.constants import BAHRAIN_PHONE_PATTERN

BASE_DIR = Path(__file__).resolve().parents[1]


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
    APP_ENV = os.getenv("APP_ENV", "development")
    TESTING = False

    DATA_PATH = os.getenv("DATA_PATH", str(BASE_DIR / "data.pkl"))
    UPLOAD_DIR = os.getenv("UPLOAD_DIR", str(BASE_DIR / "uploads"))
    UPLOAD_URL_PREFIX = os.getenv("UPLOAD_URL_PREFIX", "/uploads")
    MAX_IMAGES = int(os.getenv("MAX_IMAGES", "5"))

    # Rental dates are date-only; datetimes are converted to this zone first
    MARKET_TZ = os.getenv("MARKET_TZ", "Asia/Bahrain")
    PHONE_PATTERN = os.getenv("PHONE_PATTERN", BAHRAIN_PHONE_PATTERN)

    # Optimistic car writes when the store has no transaction support
    CAR_WRITE_ATTEMPTS = int(os.getenv("CAR_WRITE_ATTEMPTS", "3"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    APP_ENV = "test"
    SECRET_KEY = "test"
