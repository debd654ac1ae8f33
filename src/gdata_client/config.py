"""Centralized configuration for gdata-client.

Credentials and settings live under a single home directory:
    .env                            - settings and API keys (GDATA_*, GOOGLE_API_KEY)
    google/credentials.json         - Google OAuth client credentials
    google/token.json               - Google OAuth tokens
    google/service_account_key.json - Google service account key

The home directory defaults to ~/.gdata-client and can be moved with the
GDATA_CLIENT_HOME environment variable.

This module auto-loads the .env file on import. Variables that are already
set in the environment always win over the file.
"""

import os
from pathlib import Path

CLIENT_HOME = Path(os.environ.get("GDATA_CLIENT_HOME", Path.home() / ".gdata-client"))
GOOGLE_DIR = CLIENT_HOME / "google"

# Credential file paths
ENV_FILE = CLIENT_HOME / ".env"
GOOGLE_CREDENTIALS = GOOGLE_DIR / "credentials.json"
GOOGLE_TOKEN = GOOGLE_DIR / "token.json"
GOOGLE_SERVICE_ACCOUNT = GOOGLE_DIR / "service_account_key.json"


def _load_env_file(env_path: Path) -> dict[str, str]:
    """Load environment variables from a file.

    Args:
        env_path: Path to .env file.

    Returns:
        Dictionary of loaded variables.
    """
    loaded = {}
    if not env_path.exists():
        return loaded

    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue

            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip()

            # Remove surrounding quotes
            if (value.startswith('"') and value.endswith('"')) or (
                value.startswith("'") and value.endswith("'")
            ):
                value = value[1:-1]

            # Only set if not already in environment (env vars take precedence)
            if key and key not in os.environ:
                os.environ[key] = value
                loaded[key] = value

    return loaded


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e


def ensure_google_dir() -> Path:
    """Create google credentials directory if it doesn't exist.

    Returns:
        Path to google directory.
    """
    GOOGLE_DIR.mkdir(parents=True, exist_ok=True)
    return GOOGLE_DIR


def get_credential_status() -> dict:
    """Get status of all configured credentials.

    Returns:
        Dictionary with credential status.
    """
    return {
        "client_home": str(CLIENT_HOME),
        "env_file": ENV_FILE.exists(),
        "google": {
            "credentials": GOOGLE_CREDENTIALS.exists(),
            "token": GOOGLE_TOKEN.exists(),
            "service_account": GOOGLE_SERVICE_ACCOUNT.exists(),
            "api_key": bool(os.environ.get("GOOGLE_API_KEY")),
        },
        "client_login": {
            "username": bool(os.environ.get("GDATA_USERNAME")),
            "password": bool(os.environ.get("GDATA_PASSWORD")),
        },
    }


# Auto-load .env from the client home on import
_loaded = _load_env_file(ENV_FILE)

# Bytes moved per copy-loop iteration; also the cancellation check granularity
CHUNK_SIZE = _env_int("GDATA_CHUNK_SIZE", 4096)

DEFAULT_PROTOCOL_MAJOR = _env_int("GDATA_PROTOCOL_MAJOR", 2)
DEFAULT_PROTOCOL_MINOR = _env_int("GDATA_PROTOCOL_MINOR", 0)
DEFAULT_RETRIES = _env_int("GDATA_RETRIES", 3)
DEFAULT_TIMEOUT = _env_float("GDATA_TIMEOUT", 30.0)
APPLICATION_NAME = os.environ.get("GDATA_APPLICATION_NAME", "gdata-client")
