"""Configuration management for glyph."""

import logging
import os
from collections import OrderedDict
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def get_env(key: str, default: str | None = None) -> str | None:
    """Get environment variable with optional default."""
    return os.getenv(key, default)


def get_env_int(key: str, default: int) -> int:
    """Get environment variable as integer."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


VERSION = "2.1.0"

# Storage
DATA_DIR = Path(get_env("GLYPH_DATA_DIR") or Path.home() / ".glyph")
DATABASE_PATH = Path(get_env("GLYPH_DB_PATH") or DATA_DIR / "notes.db")

# Shell
LOG_LEVEL = get_env("GLYPH_LOG_LEVEL", "WARNING")
HISTORY_SIZE = get_env_int("GLYPH_HISTORY_SIZE", 100)

# Shell preferences stored in the notes database
AVAILABLE_THEMES = (
    "crt", "amber", "mono", "matrix", "solarized", "dracula", "nord", "cyberpunk",
)

DEFAULT_CONFIG = OrderedDict([
    ("theme", "crt"),
    ("scanlines", "true"),
    ("autosave", "true"),
    ("dateFormat", "short"),
])

CONFIG_KEYS = (
    "theme", "scanlines", "autosave", "dateFormat",
    "crtEnabled", "glowIntensity", "soundEnabled",
)
BOOLEAN_CONFIG_KEYS = ("scanlines", "autosave", "crtEnabled", "soundEnabled")


def canonical_config_key(key: str) -> str | None:
    """Known preference key matching key case-insensitively, or None."""
    for known in CONFIG_KEYS:
        if known.lower() == key.lower():
            return known
    return None


def validate_config_value(key: str, value: str) -> tuple[bool, list[str]]:
    """
    Validate a shell preference before it is stored.

    Returns:
        (is_valid, messages) - messages[0] is the error, the rest are hints.
    """
    key = canonical_config_key(key) or key
    if key not in CONFIG_KEYS:
        return False, [f"Unknown config key: {key}", f"Valid keys: {', '.join(CONFIG_KEYS)}"]

    if key == "theme" and value not in AVAILABLE_THEMES:
        return False, [
            f"Invalid theme: {value}",
            f"Available themes: {', '.join(AVAILABLE_THEMES)}",
        ]

    if key in BOOLEAN_CONFIG_KEYS and value not in ("true", "false"):
        return False, [f"Invalid value for {key}: {value}", "Use: true or false"]

    if key == "glowIntensity":
        try:
            number = float(value)
        except ValueError:
            number = None
        if number is None or not 0 <= number <= 1:
            return False, [
                f"Invalid value for {key}: {value}",
                "Use a number between 0 and 1",
            ]

    return True, []


def setup_logging() -> logging.Logger:
    """Configure and return logger."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, LOG_LEVEL.upper(), logging.WARNING),
    )
    return logging.getLogger("glyph")
