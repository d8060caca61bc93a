"""Recursive walk over the X window tree.

The walk starts at the root window with depth 1 and visits every window the
server reports. Children are walked before their parent's row is written,
because a window's ``focused`` value depends on whether any descendant holds
input focus:

    root(1) -> A(2) -> B(3)        focus on B
    root(1) -> C(2)

    written: B focused=3, A focused=3, C focused=0, root focused=3

A window that fails its tree query is treated as childless. Only writer
errors abort the walk.

Blank exclusion only decides whether a row is written. Focus still
propagates through an excluded window, so its ancestors keep their
``focused`` value.
"""

import logging
from typing import Optional

from .storage import WindowRecord
from .xconn import XQueryError

logger = logging.getLogger(__name__)


class WindowTreeWalker:
    """Walks the tree and hands one WindowRecord per window to a writer.

    Args:
        conn: Connection providing ``query_children(window_id)``
        resolver: PropertyResolver (or anything with ``resolve(window_id)``)
        writer: Object with ``write_window(record)``, usually a SnapshotWriter
        snapshot_id: Id of the snapshot the records belong to
        focus: Id of the focused window, or None
        exclude_blanks: Skip windows without name, class and title, even
            on the path to the focused window
    """

    def __init__(self, conn, resolver, writer, snapshot_id: int,
                 focus: Optional[int] = None, exclude_blanks: bool = False):
        self.conn = conn
        self.resolver = resolver
        self.writer = writer
        self.snapshot_id = snapshot_id
        self.focus = focus
        self.exclude_blanks = exclude_blanks
        self.visited = 0
        self.excluded = 0

    def walk(self, window_id: int, parent_id: Optional[int] = None,
             depth: int = 1) -> int:
        """Walk the subtree at ``window_id`` and write its rows.

        Returns:
            The focus depth reached through this window, or 0
        """
        logger.debug(f"Capturing snapshot of window {window_id}")
        self.visited += 1

        focused = self._walk_children(window_id, depth + 1)
        if not focused and window_id == self.focus:
            focused = depth

        props = self.resolver.resolve(window_id)
        if self.exclude_blanks and props.is_blank:
            logger.debug(f"Not inserting empty entry for window {window_id}")
            self.excluded += 1
        else:
            self.writer.write_window(WindowRecord(
                snapshot_id=self.snapshot_id,
                window_id=window_id,
                parent_id=parent_id,
                depth=depth,
                focused=focused,
                name=props.name,
                wm_class=props.wm_class,
                title=props.title,
            ))
        return focused

    def _walk_children(self, window_id: int, depth: int) -> int:
        try:
            children = self.conn.query_children(window_id)
        except XQueryError as e:
            logger.debug(f"Can't get children of window {window_id}: {e}")
            return 0

        focused = 0
        for child in children:
            child_focused = self.walk(child, window_id, depth)
            if child_focused:
                # Single input focus means at most one child reports a
                # value; if several do, the last one in server order wins.
                if focused:
                    logger.warning(f"Several children of window {window_id} "
                                   f"report focus, keeping window {child}")
                focused = child_focused
        return focused
