import os
from typing import Any, Dict


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Config:
    """Environment-driven application settings.

    Values are read when :meth:`from_env` is called, not at import time, so
    tests can patch the environment before building an app.
    """

    @staticmethod
    def from_env() -> Dict[str, Any]:
        return {
            "SECRET_KEY": os.environ.get("SECRET_KEY", "a_default_secret_key"),
            "SQLALCHEMY_DATABASE_URI": os.environ.get("DATABASE_URL"),
            "SQLALCHEMY_TRACK_MODIFICATIONS": False,
            "TESTING": _flag("TESTING", "false"),
            "CORS_ALLOWED_ORIGINS": os.environ.get(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:3000,http://localhost:3001"),
            "LOG_JSON": _flag("SPRKZ_LOG_JSON", "true"),
            "LOG_LEVEL": os.environ.get("LOG_LEVEL", "INFO").upper(),
            "METRICS_ENABLED": _flag("SPRKZ_METRICS_ENABLED", "true"),
            "DB_AUTOCREATE": _flag("SPRKZ_DB_AUTOCREATE", "false"),
            "DB_MIGRATE_ON_START": _flag("SPRKZ_DB_MIGRATE_ON_START", "true"),
        }
