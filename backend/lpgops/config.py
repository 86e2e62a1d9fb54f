# backend/lpgops/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/lpgops.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///lpgops.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bill numbers: <PREFIX><YYYYMMDD><zero-padded sequence>
    B2B_BILL_PREFIX = os.environ.get("B2B_BILL_PREFIX", "B2B-")
    B2C_BILL_PREFIX = os.environ.get("B2C_BILL_PREFIX", "B2C-")
    BILL_SEQUENCE_PAD = int(os.environ.get("BILL_SEQUENCE_PAD", "4"))

    # When true, a reversal that cannot find every physical cylinder fails
    # instead of committing with a reconciliation warning.
    STRICT_INVENTORY_REVERSAL = _env_flag("STRICT_INVENTORY_REVERSAL")
