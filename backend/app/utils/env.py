"""Local .env loading for scripts and the database module."""

import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# backend/.env, regardless of the current working directory
BACKEND_ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


def load_env_file(path: Optional[Path] = None) -> bool:
    """Load variables from a .env file into os.environ.

    Existing variables always win; the file only fills gaps.

    Returns:
        True if a file was found and read.
    """
    env_path = path or (Path(".env") if Path(".env").exists() else BACKEND_ENV_FILE)
    loaded = load_dotenv(env_path, override=False)
    if loaded:
        logger.info("[ENV] Loaded %s (existing variables were not overwritten)", env_path)
    else:
        logger.debug("[ENV] No .env file at %s", env_path)
    return loaded

