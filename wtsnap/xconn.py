"""X11 connection wrapper built on python-xlib.

This module owns the display connection used during one snapshot run. It
resolves the root window, interns and caches atoms, and exposes the handful
of raw protocol queries the capture engine needs: tree queries, property
reads, input focus and the MIT-SCREEN-SAVER idle counter.

Every query that can fail for a single window raises ``XQueryError`` so the
caller can degrade that window's data without aborting the run. Errors the
X server reports asynchronously (for requests without replies) are handed to
an injected error sink, which by default only logs them: such errors are
usually races with windows closing mid-walk.

Example:
    >>> from wtsnap.xconn import XConnection
    >>> with XConnection.open() as conn:
    ...     print(conn.root, conn.query_children(conn.root))
"""

import logging
from collections import namedtuple
from typing import Callable, Dict, List, Optional

from Xlib import X, display, error

from . import CaptureError

logger = logging.getLogger(__name__)

SCREENSAVER_EXTENSION = "MIT-SCREEN-SAVER"

TextProperty = namedtuple("TextProperty", ["encoding", "value"])
TextProperty.__doc__ = """Raw 8-bit property value and the name of its type atom."""


class DisplayOpenError(CaptureError):
    """The requested X display could not be opened."""
    pass


class XQueryError(Exception):
    """A single protocol query failed (bad window, closed connection, ...)."""
    pass


def log_protocol_error(err, request=None):
    """Default error sink: log the X error and carry on."""
    logger.warning(f"X11 error: {err}")


class XConnection:
    """An open X display plus the queries the snapshot engine issues.

    Attributes:
        display: Underlying ``Xlib.display.Display``
        root (int): Identifier of the default screen's root window
        error_sink: Callable receiving asynchronous X errors
    """

    def __init__(self, xdisplay, error_sink: Optional[Callable] = None):
        self.display = xdisplay
        self.error_sink = error_sink or log_protocol_error
        self.display.set_error_handler(self._handle_error)
        self.root = self.display.screen().root.id
        self._atoms: Dict[str, int] = {}
        self._atom_names: Dict[int, str] = {}
        self._closed = False

    @classmethod
    def open(cls, name: Optional[str] = None,
             error_sink: Optional[Callable] = None) -> "XConnection":
        """Open a display connection.

        Args:
            name: Display name such as ``:0``. ``None`` or empty uses $DISPLAY.
            error_sink: Optional replacement for the default error logger.

        Raises:
            DisplayOpenError: If the display can't be opened.
        """
        name = name or None
        label = f"display '{name}'" if name else "default display"
        logger.debug(f"Opening {label}")
        try:
            xdisplay = display.Display(name)
        except (error.DisplayError, error.ConnectionClosedError,
                error.XauthError, OSError) as e:
            raise DisplayOpenError(f"Can't open {label}: {e}") from e
        return cls(xdisplay, error_sink)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug("Closing display")
        try:
            self.display.close()
        except (error.ConnectionClosedError, OSError) as e:
            logger.warning(f"Can't close display cleanly: {e}")

    def _handle_error(self, err, request=None):
        self.error_sink(err, request)

    def _window(self, window_id: int):
        return self.display.create_resource_object("window", window_id)

    def atom(self, name: str) -> int:
        """Intern an atom by name, cached for the lifetime of the connection."""
        if name not in self._atoms:
            atom = self.display.intern_atom(name)
            self._atoms[name] = atom
            self._atom_names[atom] = name
        return self._atoms[name]

    def atom_name(self, atom: int) -> str:
        if atom not in self._atom_names:
            self._atom_names[atom] = self.display.get_atom_name(atom)
        return self._atom_names[atom]

    def query_children(self, window_id: int) -> List[int]:
        """Return child window ids in the order the server reports them."""
        try:
            reply = self._window(window_id).query_tree()
            return [child.id for child in reply.children]
        except (error.XError, error.ConnectionClosedError) as e:
            raise XQueryError(f"QueryTree failed for window {window_id}: {e}") from e

    def get_property(self, window_id: int, name: str) -> Optional[TextProperty]:
        """Read an 8-bit property of any type.

        Returns:
            TextProperty, or None if the window has no such property or the
            property isn't 8-bit data.
        """
        try:
            reply = self._window(window_id).get_full_property(
                self.atom(name), X.AnyPropertyType)
            if reply is None:
                return None
            if reply.format != 8:
                logger.debug(f"Property {name} of window {window_id} has "
                             f"format {reply.format}, expected 8")
                return None
            value = reply.value
            if isinstance(value, str):
                value = value.encode("latin-1")
            return TextProperty(self.atom_name(reply.property_type), bytes(value))
        except (error.XError, error.ConnectionClosedError) as e:
            raise XQueryError(f"GetProperty {name} failed for window {window_id}: {e}") from e

    def input_focus(self) -> Optional[int]:
        """Return the focused window id, or None for None/PointerRoot focus."""
        try:
            focus = self.display.get_input_focus().focus
        except (error.XError, error.ConnectionClosedError) as e:
            raise XQueryError(f"GetInputFocus failed: {e}") from e
        if isinstance(focus, int):
            return None
        return focus.id

    def has_extension(self, name: str) -> bool:
        return bool(self.display.has_extension(name))

    def screensaver_idle(self) -> int:
        """Milliseconds since the last input event, as reported by the server."""
        try:
            return int(self._window(self.root).screensaver_query_info().idle)
        except (error.XError, error.ConnectionClosedError, AttributeError) as e:
            raise XQueryError(f"Querying screen saver info failed: {e}") from e
