"""
Document Store - the shared player document persisted in SQLite.

The whole application state is one JSON document:
{
  "players": {playerId: {"choices": {...}, "dynamicContent": {...}, "codename": ...}},
  "blocks": [],
  "creationDate": ISO timestamp,
  "cleanup": {...}
}

Stored as a single row of the app_data table. All access is serialized by
one asyncio.Lock so that update() is an atomic read-modify-write; blocking
sqlite calls run in a worker thread.
"""

import asyncio
import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar, Union

from ..infra.data_paths import get_archive_dir, get_database_path, get_db_max_age_days
from ..story.errors import PersistenceError
from ..story.models import now_iso

logger = logging.getLogger(__name__)

DOCUMENT_ROW_ID = "app_data"

T = TypeVar("T")


def default_document() -> Dict[str, Any]:
    """Build an empty document with a fresh creation date."""
    return {
        "players": {},
        "blocks": [],
        "creationDate": now_iso(),
        "cleanup": {
            "lastCompletedMonday": None,
            "currentOperation": {
                "status": "idle",
                "startedAt": None,
                "error": None,
            },
        },
    }


def _parse_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class DocumentStore:
    """
    SQLite-backed JSON document with serialized read()/write()/update().

    Use ":memory:" as db_path for testing.
    """

    def __init__(
        self,
        db_path: Optional[Union[str, Path]] = None,
        archive_dir: Optional[Union[str, Path]] = None,
    ):
        """
        Initialize the document store.

        Args:
            db_path: SQLite file path. If None, uses DATABASE_PATH.
            archive_dir: Directory for archived documents. If None, uses ARCHIVE_DIR.
        """
        self.db_path = str(db_path or get_database_path())
        self.archive_dir = Path(archive_dir) if archive_dir else get_archive_dir()
        self._lock = asyncio.Lock()
        self._conn: Optional[sqlite3.Connection] = None

        logger.info(f"[DocumentStore] Initializing SQLite document store at: {self.db_path}")
        self._ensure_directory()
        self._init_db()

    def _ensure_directory(self) -> None:
        if self.db_path == ":memory:":
            return
        db_dir = Path(self.db_path).parent
        if not db_dir.exists():
            db_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"[DocumentStore] Created directory: {db_dir}")

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            if self.db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def _init_db(self) -> None:
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS app_data (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL
            )
        """)
        conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # -------------------------------------------------------------------------
    # Blocking primitives (always called with the lock held)
    # -------------------------------------------------------------------------

    def _load(self) -> Dict[str, Any]:
        try:
            row = self._get_connection().execute(
                "SELECT data FROM app_data WHERE id = ?", (DOCUMENT_ROW_ID,)
            ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Error reading from database: {e}") from e

        if row is None:
            logger.info("[DocumentStore] No data found in database, using default data")
            document = default_document()
            self._save(document)
            return document

        try:
            document = json.loads(row[0])
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Stored document is not valid JSON: {e}") from e

        if not isinstance(document, dict):
            raise PersistenceError("Stored document is not a JSON object")
        document.setdefault("players", {})
        document.setdefault("blocks", [])
        return document

    def _save(self, document: Dict[str, Any]) -> None:
        try:
            payload = json.dumps(document, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Document is not JSON serializable: {e}") from e

        conn = self._get_connection()
        try:
            conn.execute(
                "INSERT OR REPLACE INTO app_data (id, data) VALUES (?, ?)",
                (DOCUMENT_ROW_ID, payload),
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"Error writing to database: {e}") from e

    # -------------------------------------------------------------------------
    # Async API
    # -------------------------------------------------------------------------

    async def read(self) -> Dict[str, Any]:
        """
        Read the whole document.

        Returns:
            A fresh copy of the stored document

        Raises:
            PersistenceError: If the document cannot be read
        """
        async with self._lock:
            return await asyncio.to_thread(self._load)

    async def write(self, document: Dict[str, Any]) -> None:
        """
        Replace the whole document.

        Raises:
            PersistenceError: If the document cannot be written
        """
        async with self._lock:
            await asyncio.to_thread(self._save, document)
        logger.debug("[DocumentStore] Data successfully written")

    async def update(self, mutator: Callable[[Dict[str, Any]], T]) -> T:
        """
        Atomically read, mutate and write the document.

        The mutator runs with the lock held and must not await. If it raises,
        nothing is written and the exception propagates.

        Args:
            mutator: Function that edits the document in place and returns a value

        Returns:
            The mutator's return value

        Raises:
            PersistenceError: If the document cannot be read or written
        """
        async with self._lock:
            document = await asyncio.to_thread(self._load)
            result = mutator(document)
            await asyncio.to_thread(self._save, document)
            return result

    async def archive_if_stale(
        self,
        max_age_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Path]:
        """
        Archive and reset the document once it is older than max_age_days.

        A document without a creation date gets one and is kept.

        Args:
            max_age_days: Age threshold (default: DB_MAX_AGE_DAYS)
            now: Current time (for testing)

        Returns:
            Path of the archive file, or None if nothing was archived
        """
        if max_age_days is None:
            max_age_days = get_db_max_age_days()
        current = now or datetime.now(timezone.utc)
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)

        async with self._lock:
            document = await asyncio.to_thread(self._load)

            creation_date = document.get("creationDate")
            if not creation_date:
                document["creationDate"] = current.isoformat().replace("+00:00", "Z")
                await asyncio.to_thread(self._save, document)
                logger.info(f"[DocumentStore] Initialized database creation date: {document['creationDate']}")
                return None

            try:
                created = _parse_iso(creation_date)
            except ValueError:
                logger.warning(f"[DocumentStore] Unreadable creation date: {creation_date}")
                return None

            age_days = (current - created).total_seconds() / 86400
            if age_days < max_age_days:
                logger.info(f"[DocumentStore] Database age: {age_days:.2f} days; no archive needed")
                return None

            logger.info(f"[DocumentStore] Database is {age_days:.2f} days old; archiving...")
            archive_name = f"database_{created.date().isoformat()}_to_{current.date().isoformat()}.json"
            archive_path = self.archive_dir / archive_name

            def _archive_and_reset() -> None:
                self.archive_dir.mkdir(parents=True, exist_ok=True)
                with open(archive_path, "w", encoding="utf-8") as f:
                    json.dump(document, f, ensure_ascii=False, indent=2)
                fresh = default_document()
                fresh["creationDate"] = current.isoformat().replace("+00:00", "Z")
                self._save(fresh)

            await asyncio.to_thread(_archive_and_reset)
            logger.info(f"[DocumentStore] Database archived to {archive_path}; created a fresh database")
            return archive_path
