import os
from pathlib import Path
from dotenv import load_dotenv


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default):
    value = os.getenv(name)
    if not value:
        return list(default)
    return [part.strip() for part in value.split(",") if part.strip()]


# Load the main .env first (to get ENV_FILE)
load_dotenv()

# If ENV_FILE exists, load that specific file too
env_file = os.getenv("ENV_FILE")
if env_file:
    load_dotenv(env_file)

DATA_DIR = Path(os.getenv("DATA_DIR") or Path.home() / "AssetDesk_data")


class Config:
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv("SECRET_KEY", "fallback-secret")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URI", "sqlite:///:memory:")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    AUTO_CREATE_SCHEMA = _env_flag("AUTO_CREATE_SCHEMA", False)
    # File-backed SQLite databases are kept in this folder
    DATA_DIR = DATA_DIR

    LOG_FILE = os.getenv("LOG_FILE", str(DATA_DIR / "logs" / "assetdesk.log"))
    APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:5000")

    BRANCHES = _env_list("BRANCHES", ["Head Office", "Branch A", "Branch B", "Branch C"])
    DEPARTMENTS = _env_list("DEPARTMENTS", ["IT", "HR", "Finance", "Operations", "Sales", "Marketing"])

    # Session cookie auth, so state-changing requests carry an X-CSRFToken header
    WTF_CSRF_ENABLED = _env_flag("WTF_CSRF_ENABLED", True)
    WTF_CSRF_HEADERS = ["X-CSRFToken", "X-CSRF-Token"]
    RATELIMIT_ENABLED = _env_flag("RATELIMIT_ENABLED", False)


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URI", "sqlite:///assetdesk.db")


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URI", "sqlite:///development.db")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URI", "sqlite:///:memory:")
    # Tests log to stderr so nothing lands in the user's data folder
    LOG_FILE = os.getenv("LOG_FILE") or None
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False


def get_config(env=None):
    env = env or os.getenv("ENV", "development").lower()

    if env == "production":
        return ProductionConfig
    elif env == "testing":
        return TestingConfig
    else:
        return DevelopmentConfig
