"""Конфигурация приложения."""
import os
from functools import lru_cache


@lru_cache
def get_config():
    return type("Config", (), {
        "host": os.environ.get("HOST", "0.0.0.0"),
        "port": int(os.environ.get("PORT", "8080")),
        "debug": os.environ.get("DEBUG", "0").lower() in ("1", "true", "yes"),
        "allowed_origins": os.environ.get("ALLOWED_ORIGINS", "*").split(","),
        "reap_interval_seconds": float(os.environ.get("REAP_INTERVAL_SECONDS", "300")),
        "stale_room_seconds": float(os.environ.get("STALE_ROOM_SECONDS", "600")),
    })()
