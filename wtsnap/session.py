"""Capture session: one complete snapshot run.

The session sequences the run and owns every resource it acquires:

1. Resolve the database path and open the store, creating the schema.
2. Open the X display.
3. Probe idle time (best effort).
4. Begin the transaction and insert the snapshot header.
5. Probe input focus (best effort).
6. Walk the window tree, writing one row per window.
7. Commit.

All resources are entered on one ExitStack, so whatever happens they are
released in reverse order: the insert statement is finalized, an open
transaction is rolled back, the display is closed and the store is closed.
Any CaptureError propagates to the caller after that teardown; nothing of
the run is committed in that case.
"""

import logging
from contextlib import ExitStack
from typing import Callable, Optional

from .config import SnapshotConfig, resolve_database_path
from .probes import focused_window, idle_time_ms
from .properties import PropertyResolver
from .storage import SnapshotStore
from .walker import WindowTreeWalker
from .xconn import XConnection

logger = logging.getLogger(__name__)


class CaptureSession:
    """Takes one snapshot according to ``options``.

    Args:
        options: SnapshotConfig for this run
        connect: Callable opening a display connection by name; returns a
            context manager (default: XConnection.open)
        store_factory: Callable creating a store from a path (default:
            SnapshotStore)

    Example:
        >>> snapshot_id = CaptureSession(SnapshotConfig(sample_time=300)).run()
    """

    def __init__(self, options: Optional[SnapshotConfig] = None,
                 connect: Callable = XConnection.open,
                 store_factory: Callable = SnapshotStore):
        self.options = options or SnapshotConfig()
        self.connect = connect
        self.store_factory = store_factory

    def run(self) -> int:
        """Capture and commit one snapshot.

        Returns:
            The id of the committed snapshot

        Raises:
            ConfigError: Invalid options or no usable database path
            StorageError: Any database failure
            DisplayOpenError: The display can't be opened
        """
        options = self.options
        options.validate()
        db_path = resolve_database_path(options.database)

        with ExitStack() as stack:
            store = stack.enter_context(self.store_factory(db_path))
            store.init_db()

            conn = stack.enter_context(self.connect(options.display))
            idle_time = idle_time_ms(conn)

            stack.enter_context(store.transaction())
            writer = stack.enter_context(store.writer())
            snapshot_id = writer.begin_snapshot(options.sample_time, idle_time)

            walker = WindowTreeWalker(
                conn,
                PropertyResolver(conn),
                writer,
                snapshot_id,
                focus=focused_window(conn),
                exclude_blanks=options.exclude_blanks,
            )
            walker.walk(conn.root)

        logger.info(f"Committed snapshot {snapshot_id}: {walker.visited} windows "
                    f"visited, {walker.excluded} blank windows excluded")
        return snapshot_id
