"""
Data path and environment configuration helpers for storyloom.

Centralized path management for story files, the document store and archives.

Directory structure:
stories/
 └── station<N>/
     └── input/
         └── story.json        # {"blocks": [...]} for story id N
data/
 └── database.sqlite           # shared player document (app_data table)
archives/
 └── database_<from>_to_<to>.json
logs/

Environment Variables:
- STORY_ROOT_DIR: Override story root directory (default: stories)
- STORY_FILE_PATTERN: Story path below the root (default: station{story_id}/input/story.json)
- STORY_IDS: Comma-separated story ids meaning "all stories" (default: 1,2)
- DATABASE_PATH: Document store file (default: data/database.sqlite)
- ARCHIVE_DIR: Archive directory (default: archives)
- DB_MAX_AGE_DAYS: Archive the document once it is this old (default: 5)
- LOG_DIR: Log directory (default: logs)
"""

import logging
import os
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)

DEFAULT_STORY_FILE_PATTERN = "station{story_id}/input/story.json"
DEFAULT_STORY_IDS = "1,2"
DEFAULT_DB_MAX_AGE_DAYS = 5

# =============================================================================
# Environment Variable Helpers
# =============================================================================


def _get_env_int(key: str, default: int) -> int:
    """Get integer value from environment variable."""
    val = os.getenv(key)
    if val is not None:
        try:
            return int(val)
        except ValueError:
            logger.warning(f"[DataPaths] Invalid integer for {key}: {val}, using default: {default}")
    return default


def _get_env_float(key: str, default: float) -> float:
    """Get float value from environment variable."""
    val = os.getenv(key)
    if val is not None:
        try:
            return float(val)
        except ValueError:
            logger.warning(f"[DataPaths] Invalid float for {key}: {val}, using default: {default}")
    return default


# =============================================================================
# Base Paths
# =============================================================================

def get_project_root() -> Path:
    """
    Get the project root directory.

    File is at storyloom/infra/data_paths.py, so project root is 2 levels up.

    Returns:
        Path: Project root directory
    """
    return Path(__file__).parent.parent.parent.resolve()


def _resolve(env_key: str, default: Path) -> Path:
    """Resolve a path from env (relative paths are taken from project root)."""
    raw = os.getenv(env_key)
    if not raw:
        return default
    path = Path(raw)
    if not path.is_absolute():
        path = get_project_root() / path
    return path


# =============================================================================
# Story Paths
# =============================================================================

def get_story_root() -> Path:
    """Get the directory holding the per-story folders."""
    return _resolve("STORY_ROOT_DIR", get_project_root() / "stories")


def get_story_file_pattern() -> str:
    """Get the story file pattern (must contain {story_id})."""
    return os.getenv("STORY_FILE_PATTERN", DEFAULT_STORY_FILE_PATTERN)


def get_story_file_path(story_id: int) -> Path:
    """
    Get the story file path for a story id.

    Args:
        story_id: Numeric story id (1, 2, ...)

    Returns:
        Path: story.json path for that story
    """
    return get_story_root() / get_story_file_pattern().format(story_id=story_id)


def get_default_story_ids() -> List[int]:
    """
    Get the story ids that story id 0 ("all stories") expands to.

    Returns:
        List[int]: Story ids in ascending configured order
    """
    raw = os.getenv("STORY_IDS", DEFAULT_STORY_IDS)
    story_ids = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            story_ids.append(int(part))
        except ValueError:
            logger.warning(f"[DataPaths] Ignoring invalid story id in STORY_IDS: {part}")
    return story_ids or [1, 2]


# =============================================================================
# Document Store Paths
# =============================================================================

def get_database_path() -> Path:
    """Get the SQLite document store path."""
    return _resolve("DATABASE_PATH", get_project_root() / "data" / "database.sqlite")


def get_archive_dir() -> Path:
    """Get the directory for archived documents."""
    return _resolve("ARCHIVE_DIR", get_project_root() / "archives")


def get_db_max_age_days() -> int:
    """Get the document age (days) after which it is archived."""
    return _get_env_int("DB_MAX_AGE_DAYS", DEFAULT_DB_MAX_AGE_DAYS)


def get_log_dir() -> Path:
    """Get the log directory."""
    return _resolve("LOG_DIR", get_project_root() / "logs")


# =============================================================================
# LLM Configuration
# =============================================================================

def get_llm_config() -> dict:
    """
    Build the generation config passed to model providers.

    Returns:
        dict with max_tokens, temperature, timeout (None = no timeout)
    """
    timeout = _get_env_float("LLM_TIMEOUT_SECONDS", 0.0)
    return {
        "max_tokens": _get_env_int("LLM_MAX_TOKENS", 4096),
        "temperature": _get_env_float("LLM_TEMPERATURE", 0.8),
        "timeout": timeout if timeout > 0 else None,
    }


def ensure_directories() -> None:
    """Create the data, archive and log directories if missing."""
    for directory in (get_database_path().parent, get_archive_dir(), get_log_dir()):
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
            logger.info(f"[DataPaths] Created directory: {directory}")
