# backend/cafepos/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # SQLite DB stored in backend/instance/cafepos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///cafepos.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Primary store: "relational" (local SQL, replicated in the background)
    # or "document" (remote document store used directly, no replication).
    STORAGE_BACKEND = os.environ.get("STORAGE_BACKEND", "relational")

    MONGO_URI = os.environ.get("MONGO_URI", "mongodb://localhost:27017")
    MONGO_DATABASE = os.environ.get("MONGO_DATABASE", "cafepos")
    MONGO_SERVER_SELECTION_TIMEOUT_MS = int(os.environ.get("MONGO_SERVER_SELECTION_TIMEOUT_MS", "3000"))

    # Document backends cap membership queries; relational IN lists are
    # chunked too so list views have no product-count ceiling.
    DOCUMENT_IN_BATCH_SIZE = int(os.environ.get("DOCUMENT_IN_BATCH_SIZE", "30"))
    RELATIONAL_IN_BATCH_SIZE = int(os.environ.get("RELATIONAL_IN_BATCH_SIZE", "500"))

    SYNC_ENABLED = _env_bool("SYNC_ENABLED", False)
    SYNC_BATCH_SIZE = int(os.environ.get("SYNC_BATCH_SIZE", "100"))
    SYNC_INTERVAL_SECONDS = float(os.environ.get("SYNC_INTERVAL_SECONDS", "15"))
    SYNC_BACKOFF_BASE_SECONDS = float(os.environ.get("SYNC_BACKOFF_BASE_SECONDS", "1"))
    SYNC_BACKOFF_MAX_SECONDS = float(os.environ.get("SYNC_BACKOFF_MAX_SECONDS", "300"))

    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "UTC")
    DEFAULT_TAX_RATE_BPS = int(os.environ.get("DEFAULT_TAX_RATE_BPS", "0"))
    MAX_DISCOUNT_PERCENT = float(os.environ.get("MAX_DISCOUNT_PERCENT", "100"))
    LOW_STOCK_THRESHOLD = float(os.environ.get("LOW_STOCK_THRESHOLD", "5"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
