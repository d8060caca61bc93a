"""wtsnap - periodic snapshots of the X11 window tree for time tracking.

Each run records every window's name, class, title and focus state plus the
session idle time into SQLite. ``wtstats`` later sums the recorded sample
time per user-defined classification.
"""

__version__ = "0.1.0"


class CaptureError(Exception):
    """Base class for errors that abort a snapshot run.

    Raised for store failures, an unusable display and invalid options.
    Per-window protocol failures never raise this; they degrade the
    affected values instead.
    """
    pass
