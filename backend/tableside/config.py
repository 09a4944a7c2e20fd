# backend/tableside/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tableside.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tableside.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Order pricing
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "USD")
    ORDER_TAX_RATE = os.environ.get("ORDER_TAX_RATE", "0.08")

    # Payments
    GATEWAY_SIMULATION_DELAY = float(os.environ.get("GATEWAY_SIMULATION_DELAY", "0"))
    # "group_by" reads real per-method totals; "proportional" keeps the fixed 60/25/15 split
    PAYMENT_ANALYTICS_AGGREGATOR = os.environ.get("PAYMENT_ANALYTICS_AGGREGATOR", "group_by")
