"""Session-wide probes: idle time and input focus.

Both probes are best effort. An unsupported extension or a failed query is
logged and reported as "no information" (0 ms idle, no focused window) so
the snapshot still gets taken.
"""

import logging
from typing import Optional

from .xconn import SCREENSAVER_EXTENSION, XQueryError

logger = logging.getLogger(__name__)

# Idle values are stored as a signed 32-bit integer.
IDLE_TIME_MAX = 2**31 - 1


def idle_time_ms(conn) -> int:
    """Milliseconds since the last user input, clamped to ``IDLE_TIME_MAX``.

    Args:
        conn: XConnection (or anything with ``has_extension`` and
            ``screensaver_idle``)

    Returns:
        Idle time in milliseconds, 0 if it can't be determined
    """
    logger.debug("Getting idle time")
    if not conn.has_extension(SCREENSAVER_EXTENSION):
        logger.warning("Can't get idle time: XScreenSaver not supported")
        return 0

    try:
        idle = conn.screensaver_idle()
    except XQueryError as e:
        logger.warning(f"Can't get idle time: {e}")
        return 0

    idle = max(0, min(idle, IDLE_TIME_MAX))
    logger.debug(f"Idle time: {idle} ms")
    return idle


def focused_window(conn) -> Optional[int]:
    """Return the id of the window holding input focus, or None."""
    logger.debug("Getting input focus")
    try:
        focus = conn.input_focus()
    except XQueryError as e:
        logger.warning(f"Can't get input focus: {e}")
        return None

    if focus is None:
        logger.debug("No window has input focus")
    else:
        logger.debug(f"Input focus is window {focus}")
    return focus
