# backend/florapos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Terminal-local SQLite DB (activity log persistence)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///florapos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # External content store (inventory + shift records)
    CONTENT_STORE_URL = os.environ.get("CONTENT_STORE_URL", "http://localhost:1337")
    CONTENT_STORE_TOKEN = os.environ.get("CONTENT_STORE_TOKEN", "")
    CONTENT_STORE_TIMEOUT = float(os.environ.get("CONTENT_STORE_TIMEOUT", "15"))
    # Optional httpx transport; tests inject httpx.MockTransport here
    CONTENT_STORE_TRANSPORT = None

    INVENTORY_CACHE_TTL_SECONDS = int(os.environ.get("INVENTORY_CACHE_TTL_SECONDS", "300"))

    ACTIVITY_LOG_MAX_ENTRIES = int(os.environ.get("ACTIVITY_LOG_MAX_ENTRIES", "500"))
    ACTIVITY_LOG_STORAGE = os.environ.get("ACTIVITY_LOG_STORAGE", "database")  # database | memory
    ACTIVITY_LOG_KEY = "recentActivities"

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    ]
