"""SQLite storage for window tree snapshots.

This module owns the snapshot database: connection handling, schema
creation, the single write transaction of a capture run and the writer that
inserts the snapshot header and one row per window.

Database Schema:
    snapshot table:
        - snapshot_id: Primary key (rowid)
        - timestamp: UTC capture time, 'YYYY-MM-DDTHH:MM:SS:SS.SSSZ'
        - sample_time: Seconds this snapshot stands for
        - idle_time: Milliseconds since the last user input

    window table:
        - snapshot_id: Owning snapshot
        - window_id: X window id as decimal text
        - parent_id: Parent window id as decimal text, NULL for the root
        - depth: Distance from the root, root = 1
        - focused: Depth of the focused window if it is this one or a
          descendant, else 0
        - name, class, title: Resolved properties, NULL when absent

Window ids are stored as text so that the full unsigned 64-bit range
survives without going through SQLite's signed integers.

Foreign keys are declared but enforcement is left off: rows are written
children-first and excluded blank windows leave dangling parent links.

Example:
    >>> with SnapshotStore("/tmp/wtsnap.db") as store:
    ...     store.init_db()
    ...     with store.transaction(), store.writer() as writer:
    ...         snapshot_id = writer.begin_snapshot(60, 0)
    ...         writer.write_window(WindowRecord(snapshot_id, 1, None, 1, 0))
"""

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from . import CaptureError

logger = logging.getLogger(__name__)

MAX_WINDOW_ID = 2**64 - 1

CREATE_SNAPSHOT_TABLE = """
    CREATE TABLE IF NOT EXISTS snapshot (
        snapshot_id INTEGER PRIMARY KEY NOT NULL,
        timestamp   TEXT    NOT NULL,
        sample_time INTEGER NOT NULL,
        idle_time   INTEGER
    )
"""

CREATE_WINDOW_TABLE = """
    CREATE TABLE IF NOT EXISTS window (
        snapshot_id INTEGER NOT NULL,
        window_id   TEXT    NOT NULL,
        parent_id   TEXT,
        depth       INTEGER NOT NULL,
        focused     INTEGER NOT NULL,
        name        TEXT,
        class       TEXT,
        title       TEXT,
        PRIMARY KEY (snapshot_id, window_id),
        FOREIGN KEY (snapshot_id)
            REFERENCES snapshot (snapshot_id)
            ON DELETE CASCADE,
        FOREIGN KEY (snapshot_id, parent_id)
            REFERENCES window (snapshot_id, window_id)
            ON DELETE SET NULL
    )
"""

INSERT_SNAPSHOT = """
    INSERT INTO snapshot (timestamp, sample_time, idle_time)
    VALUES (strftime('%Y-%m-%dT%H:%M:%S:%fZ', 'now'), ?, ?)
"""

SELECT_LAST_ID = "SELECT last_insert_rowid()"

INSERT_WINDOW = """
    INSERT INTO window (snapshot_id, window_id, parent_id, depth, focused,
                        name, class, title)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""


class StorageError(CaptureError):
    """A database operation failed; the current run can't be committed."""
    pass


def encode_window_id(window_id: int) -> str:
    """Encode a window id as decimal text.

    Raises:
        ValueError: If the id is outside the unsigned 64-bit range
    """
    if not 0 <= window_id <= MAX_WINDOW_ID:
        raise ValueError(f"Window id {window_id} out of range")
    return str(window_id)


def decode_window_id(text: Optional[str]) -> Optional[int]:
    return None if text is None else int(text)


@dataclass
class WindowRecord:
    """One row of the window table, before encoding."""
    snapshot_id: int
    window_id: int
    parent_id: Optional[int]
    depth: int
    focused: int
    name: Optional[str] = None
    wm_class: Optional[str] = None
    title: Optional[str] = None

    def as_params(self) -> tuple:
        parent = None if self.parent_id is None else encode_window_id(self.parent_id)
        return (self.snapshot_id, encode_window_id(self.window_id), parent,
                self.depth, self.focused, self.name, self.wm_class, self.title)


class SnapshotWriter:
    """Writes one snapshot inside an already open transaction.

    The window insert always runs the same SQL text on one cursor, so
    sqlite3's statement cache compiles it once and every window only rebinds
    parameters. ``close()`` finalizes the cursor; call it once the walk is
    done.
    """

    def __init__(self, connection: sqlite3.Connection):
        self.connection = connection
        self._cursor: Optional[sqlite3.Cursor] = connection.cursor()
        self.rows_written = 0

    def begin_snapshot(self, sample_time: int, idle_time: int) -> int:
        """Insert the snapshot header and return its generated id.

        Raises:
            StorageError: If the insert fails or the id read-back doesn't
                return exactly one row
        """
        try:
            self.connection.execute(INSERT_SNAPSHOT, (sample_time, idle_time))
            rows = self.connection.execute(SELECT_LAST_ID).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to insert snapshot: {e}") from e

        if len(rows) != 1:
            raise StorageError(
                f"Wanted 1 id row from inserting snapshot, but got {len(rows)}")
        snapshot_id = rows[0][0]
        logger.debug(f"Snapshot id is {snapshot_id}")
        return snapshot_id

    def write_window(self, record: WindowRecord) -> None:
        if self._cursor is None:
            raise StorageError("Window insert statement already finalized")
        try:
            self._cursor.execute(INSERT_WINDOW, record.as_params())
        except (sqlite3.Error, ValueError) as e:
            raise StorageError(f"Failed to insert window {record.window_id}: {e}") from e
        self.rows_written += 1

    def close(self) -> None:
        if self._cursor is not None:
            logger.debug("Finalizing window insert statement")
            self._cursor.close()
            self._cursor = None


class SnapshotStore:
    """SQLite database holding snapshots.

    Attributes:
        db_path (str): Path to the database file
        read_only (bool): Open without write access (reporting)
        connection: Open ``sqlite3.Connection`` or None

    Example:
        >>> with SnapshotStore("~/.wtsnap.db") as store:
        ...     store.init_db()
        ...     print(len(store.get_snapshots()))
    """

    def __init__(self, db_path: str, read_only: bool = False):
        self.db_path = str(Path(db_path).expanduser())
        self.read_only = read_only
        self.connection: Optional[sqlite3.Connection] = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def open(self) -> None:
        """Open the database file, creating it unless read-only.

        Raises:
            StorageError: If the file can't be opened
        """
        logger.debug(f"Opening db '{self.db_path}'")
        try:
            if self.read_only:
                uri = Path(self.db_path).resolve().as_uri() + "?mode=ro"
                self.connection = sqlite3.connect(uri, uri=True, isolation_level=None)
            else:
                self.connection = sqlite3.connect(self.db_path, isolation_level=None)
            self.connection.row_factory = sqlite3.Row
        except sqlite3.Error as e:
            raise StorageError(f"Can't open database '{self.db_path}': {e}") from e

    def close(self) -> None:
        if self.connection is None:
            return
        logger.debug("Closing database")
        try:
            self.connection.close()
        except sqlite3.Error as e:
            logger.warning(f"Can't close database: {e}")
        self.connection = None

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        if self.connection is None:
            raise StorageError("Database is not open")
        logger.debug(f"Executing {sql.strip()}")
        try:
            return self.connection.execute(sql, params)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to execute statement '{sql.strip()}': {e}") from e

    def init_db(self) -> None:
        """Create the snapshot and window tables if they don't exist yet."""
        self._execute(CREATE_SNAPSHOT_TABLE)
        self._execute(CREATE_WINDOW_TABLE)

    @contextmanager
    def transaction(self):
        """Run the body inside BEGIN ... COMMIT, rolling back on any error.

        A failed COMMIT is rolled back as well, so the transaction is never
        left open.
        """
        self._execute("BEGIN")
        try:
            yield self
        except BaseException:
            self._rollback()
            raise
        try:
            self._execute("COMMIT")
        except StorageError:
            self._rollback()
            raise

    def _rollback(self) -> None:
        if self.connection is None or not self.connection.in_transaction:
            return
        logger.debug("Executing rollback")
        try:
            self.connection.execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.warning(f"Failed to execute statement 'ROLLBACK': {e}")

    @contextmanager
    def writer(self):
        """Yield a SnapshotWriter whose statement is finalized on exit."""
        if self.connection is None:
            raise StorageError("Database is not open")
        writer = SnapshotWriter(self.connection)
        try:
            yield writer
        finally:
            writer.close()

    def query(self, sql: str, params=()) -> List[Dict]:
        """Run a read query and return its rows as dicts.

        Raises:
            StorageError: If the query fails
        """
        cursor = self._execute(sql, params)
        try:
            return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read query results: {e}") from e

    def get_snapshots(self) -> List[Dict]:
        """Return all snapshot headers, oldest first."""
        return self.query("""
            SELECT snapshot_id, timestamp, sample_time, idle_time
            FROM snapshot
            ORDER BY snapshot_id
        """)

    def get_windows(self, snapshot_id: int) -> List[Dict]:
        """Return the window rows of one snapshot with ids decoded to ints.

        Rows come back in insertion order, i.e. children before parents.
        """
        windows = self.query("""
            SELECT window_id, parent_id, depth, focused, name, class, title
            FROM window
            WHERE snapshot_id = ?
            ORDER BY rowid
        """, (snapshot_id,))
        for window in windows:
            window['window_id'] = decode_window_id(window['window_id'])
            window['parent_id'] = decode_window_id(window['parent_id'])
        return windows
