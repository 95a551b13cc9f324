"""
Infrastructure helpers: configuration paths and logging.
"""

from .data_paths import (
    get_project_root,
    get_story_root,
    get_story_file_pattern,
    get_story_file_path,
    get_default_story_ids,
    get_database_path,
    get_archive_dir,
    get_log_dir,
    get_db_max_age_days,
)
from .logging_config import setup_logging, DailyRotatingFileHandler

__all__ = [
    "get_project_root",
    "get_story_root",
    "get_story_file_pattern",
    "get_story_file_path",
    "get_default_story_ids",
    "get_database_path",
    "get_archive_dir",
    "get_log_dir",
    "get_db_max_age_days",
    "setup_logging",
    "DailyRotatingFileHandler",
]
