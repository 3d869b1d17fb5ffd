import os
import tempfile
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "default-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'wishlist.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "1") == "1"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    CRAWLER_TIMEOUT = float(os.environ.get("CRAWLER_TIMEOUT", "15"))
    CRAWLER_MAX_BYTES = int(os.environ.get("CRAWLER_MAX_BYTES", "4000000"))
    CRAWLER_USER_AGENT = os.environ.get(
        "CRAWLER_USER_AGENT",
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36",
    )

    UPLOAD_ROOT = os.environ.get("UPLOAD_ROOT", str(BASE_DIR / "uploads"))
    PUBLIC_UPLOAD_URL = os.environ.get("PUBLIC_UPLOAD_URL", "")
    MAX_UPLOAD_BYTES = int(os.environ.get("MAX_UPLOAD_BYTES", str(8 * 1024 * 1024)))
    MAX_CONTENT_LENGTH = MAX_UPLOAD_BYTES

    PRICE_REFRESH_INTERVAL_MINUTES = int(
        os.environ.get("PRICE_REFRESH_INTERVAL_MINUTES", "720")
    )
    PRICE_REFRESH_BATCH_SIZE = int(os.environ.get("PRICE_REFRESH_BATCH_SIZE", "50"))
    PRICE_REFRESH_STALE_HOURS = int(os.environ.get("PRICE_REFRESH_STALE_HOURS", "24"))
    PRICE_REFRESH_WORKERS = int(os.environ.get("PRICE_REFRESH_WORKERS", "4"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SCHEDULER_ENABLED = False
    UPLOAD_ROOT = os.path.join(tempfile.gettempdir(), "wishlist-test-uploads")
    PUBLIC_UPLOAD_URL = "https://cdn.wishlist.test/uploads"
