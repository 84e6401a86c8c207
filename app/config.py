"""Application configuration read from the environment."""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
    APP_ENV = os.getenv("APP_ENV", "development")

    # pickle file backing the Store
    DATA_PATH = os.getenv("DATA_PATH", str(BASE_DIR / "data.pkl"))

    # naive timestamps from clients are read in this zone
    LOCAL_TZ = os.getenv("LOCAL_TZ", "Pacific/Auckland")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
