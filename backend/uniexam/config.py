from dotenv import load_dotenv
import os

load_dotenv()


def _get_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./uniexam.db")
SCHEMA_SEARCH_PATH = os.getenv("SCHEMA_SEARCH_PATH")
DB_ECHO = _get_bool("DB_ECHO")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# directory of the station-local progress cache (one JSON file per student/exam)
LOCAL_CACHE_DIR = os.getenv("LOCAL_CACHE_DIR", "./.progress_cache")

CODE_RUNNER_URL = os.getenv("CODE_RUNNER_URL", "http://localhost:2358")
CODE_RUNNER_LANGUAGE = os.getenv("CODE_RUNNER_LANGUAGE", "java")
CODE_RUNNER_TIMEOUT = float(os.getenv("CODE_RUNNER_TIMEOUT", "10"))

TICK_INTERVAL_SECONDS = float(os.getenv("TICK_INTERVAL_SECONDS", "1"))
SYNC_INTERVAL_SECONDS = int(os.getenv("SYNC_INTERVAL_SECONDS", "30"))
LOW_TIME_WARNING_SECONDS = int(os.getenv("LOW_TIME_WARNING_SECONDS", "300"))

# NOTE: exact origins of the frontend dev server (no trailing slash)
CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000").split(",")
    if o.strip()
]
