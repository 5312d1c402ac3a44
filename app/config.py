"""
Team Resource Planner
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])

Product settings (calendar feeds, nickname map, backup schedule, ...) can be
overridden with a YAML file named by PLANNING_CONFIG_PATH; see
load_planning_overrides().
"""

import json
import logging
import os
import secrets
from datetime import date

import yaml

logger = logging.getLogger(__name__)

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'resource_planner.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_list(name, default=None):
    raw = os.getenv(name, "")
    if not raw:
        return list(default or [])
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_json(name, default):
    raw = os.getenv(name)
    if not raw:
        return default
    return json.loads(raw)


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
    }

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Uploads (Miro PDFs / board screenshots)
    MAX_CONTENT_LENGTH = 20 * 1024 * 1024

    # JWT
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_EXPIRES_HOURS = int(os.getenv("JWT_EXPIRES_HOURS", "24"))

    # Backups
    BACKUP_DIR = os.getenv("BACKUP_DIR", os.path.join(basedir, "backups"))
    MAX_BACKUPS = int(os.getenv("MAX_BACKUPS", "4"))
    BACKUP_CRON = {"day_of_week": "fri", "hour": 23, "minute": 0}
    BACKUP_TIMEZONE = os.getenv("BACKUP_TIMEZONE", "Europe/Dublin")
    SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "false").lower() == "true"

    # Calendar (iCal) sync
    CALENDAR_FEEDS = _env_list("CALENDAR_FEEDS")
    CALENDAR_IMPORT_YEAR = int(os.getenv("CALENDAR_IMPORT_YEAR", str(date.today().year)))
    CALENDAR_HOURS_PER_DAY = 8
    # country label -> member names observing that country's public holidays
    CALENDAR_COUNTRY_MEMBERS = _env_json("CALENDAR_COUNTRY_MEMBERS", {})
    # calendar display name -> team member name
    CALENDAR_NAME_MAPPINGS = _env_json("CALENDAR_NAME_MAPPINGS", {})
    CALENDAR_FETCH_TIMEOUT = 30

    # Imports
    # short / nick name (lowercase) -> full team member name
    IMPORT_NICKNAMES = _env_json("IMPORT_NICKNAMES", {})
    MIRO_CATEGORY_KEYWORDS = _env_list(
        "MIRO_CATEGORY_KEYWORDS",
        ["backlog", "to do", "todo", "in progress", "doing", "done", "blocked",
         "bau", "ideas", "parking lot"],
    )
    DUPLICATE_SIMILARITY_THRESHOLD = 50
    IMPORT_DEFAULT_TEAM = os.getenv("IMPORT_DEFAULT_TEAM", "Ecosystem Engineering")
    MIRO_INITIATIVE_TEAM = "General"


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL") or _SQLITE_DEV


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    RATELIMIT_ENABLED = False
    SCHEDULER_ENABLED = False
    JWT_SECRET_KEY = "test-jwt-secret"
    CALENDAR_IMPORT_YEAR = 2025
    BCRYPT_ROUNDS = 4


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


def load_planning_overrides(app):
    """Apply product settings from the YAML file named by PLANNING_CONFIG_PATH.

    Top-level keys are upper-cased and copied onto app.config, e.g.::

        calendar_feeds:
          - https://example.invalid/team.ics
        import_nicknames:
          gio: Giovanni Rossi
    """
    path = os.getenv("PLANNING_CONFIG_PATH")
    if not path:
        return
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise RuntimeError(f"{path}: expected a mapping at the top level")
    for key, value in data.items():
        app.config[key.upper()] = value
    logger.info("Loaded %d planning settings from %s", len(data), path)


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
