"""Configuration module for the session service.

This module provides centralized configuration management, including directory
paths, API server settings, invite and quick-play defaults, and collaborator
endpoints. All configuration values can be overridden via environment
variables.
"""

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# --- Directory Configuration ---

# Root directory of the project
ROOT_DIR = Path(__file__).parent.parent.resolve()

# Data directory name
DATA_DIR_NAME = "data"
DATA_DIR = ROOT_DIR / DATA_DIR_NAME

# --- Database Configuration ---

DATABASE_URL: str = os.getenv(
    "DATABASE_URL", f"sqlite:///{DATA_DIR}/sessions.db"
)

# --- API Server Configuration ---

API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "8000"))

# CORS allowed origins (comma-separated list)
_CORS_ALLOWED_ORIGINS_STR: str = os.getenv(
    "CORS_ALLOWED_ORIGINS",
    "http://localhost:8081,http://127.0.0.1:8081,http://localhost:19006",
)
CORS_ALLOWED_ORIGINS: List[str] = [
    origin.strip()
    for origin in _CORS_ALLOWED_ORIGINS_STR.split(",")
    if origin.strip()
]

# --- Logging Configuration ---

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# --- Authentication Configuration ---

JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "your-secret-key-change-in-production")
JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15"))

# --- Invite Configuration ---

# Deep link scheme used for invite links: <scheme>://invite/<code>
INVITE_LINK_SCHEME: str = os.getenv("INVITE_LINK_SCHEME", "lagalaga")

# Visually ambiguous characters (0/O, 1/I/l) are excluded
INVITE_CODE_ALPHABET: str = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_LENGTH: int = 9

# How many fresh codes to try when the store reports a code collision
INVITE_CODE_MAX_ATTEMPTS: int = int(os.getenv("INVITE_CODE_MAX_ATTEMPTS", "5"))

# --- Session Defaults ---

MAX_PARTICIPANTS_LIMIT: int = int(os.getenv("MAX_PARTICIPANTS_LIMIT", "50"))
MAX_TITLE_LENGTH: int = 120
DEFAULT_LIST_LIMIT: int = 20
MAX_LIST_LIMIT: int = 100
MAX_BULK_DELETE_IDS: int = 100

QUICK_SESSION_VISIBILITY: str = os.getenv("QUICK_SESSION_VISIBILITY", "friends")
QUICK_SESSION_MAX_PARTICIPANTS: int = int(
    os.getenv("QUICK_SESSION_MAX_PARTICIPANTS", "6")
)

# --- Schema Capabilities ---

# Older schema generations have no session_participants.handoff_state column.
# Decided once at startup and passed to the engine.
SCHEMA_HANDOFF_STATE_SUPPORTED: bool = (
    os.getenv("SCHEMA_HANDOFF_STATE_SUPPORTED", "true").lower() == "true"
)

# --- Collaborator Configuration ---

HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "5"))

PUSH_API_URL: str = os.getenv("PUSH_API_URL", "https://exp.host/--/api/v2/push/send")
PUSH_BATCH_SIZE: int = int(os.getenv("PUSH_BATCH_SIZE", "100"))

# Enriched activity metadata older than this is fetched again
ENRICHMENT_TTL_HOURS: int = int(os.getenv("ENRICHMENT_TTL_HOURS", "24"))

ACTIVITY_WEB_URL_TEMPLATE: str = "https://www.roblox.com/games/{activity_id}"
ACTIVITY_START_URL_TEMPLATE: str = (
    "https://www.roblox.com/games/start?placeId={activity_id}"
)

# --- Lifecycle Maintenance ---

LIFECYCLE_AUTO_COMPLETE_AFTER_HOURS: int = int(
    os.getenv("LIFECYCLE_AUTO_COMPLETE_AFTER_HOURS", "2")
)
LIFECYCLE_COMPLETED_RETENTION_HOURS: int = int(
    os.getenv("LIFECYCLE_COMPLETED_RETENTION_HOURS", "2")
)
LIFECYCLE_BATCH_SIZE: int = int(os.getenv("LIFECYCLE_BATCH_SIZE", "200"))


def build_invite_link(code: str, scheme: Optional[str] = None) -> str:
    """Build the deep link that redeems an invite code."""
    return f"{scheme or INVITE_LINK_SCHEME}://invite/{code}"
