# backend/sitestock/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/sitestock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///sitestock.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Who may record purchases into project stores:
    # - "store_manager": admins and the project's own store manager
    # - "admin_only": admins only
    PROJECT_STORE_PURCHASES = os.environ.get("PROJECT_STORE_PURCHASES", "store_manager")

    # Central stores normally issue to project stores only. When enabled they may
    # also issue straight to a named individual.
    CENTRAL_ISSUE_TO_INDIVIDUALS = _env_flag("CENTRAL_ISSUE_TO_INDIVIDUALS")

    # Optimistic retry budget for ledger transactions
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "WARNING"
    LEDGER_RETRY_ATTEMPTS = 5
