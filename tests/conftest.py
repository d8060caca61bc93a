"""Shared fakes for the wtsnap tests.

No X server is needed: ``FakeConnection`` stands in for XConnection with a
window tree and per-window properties held in dicts.
"""

import pytest

from wtsnap.xconn import TextProperty, XQueryError


def window_properties(name=None, wm_class=None, title=None, legacy_title=None):
    """Build the raw properties a client would set on a window."""
    props = {}
    if name is not None or wm_class is not None:
        raw = (name or "").encode("latin-1") + b"\0" + (wm_class or "").encode("latin-1") + b"\0"
        props["WM_CLASS"] = TextProperty("STRING", raw)
    if title is not None:
        props["_NET_WM_NAME"] = TextProperty("UTF8_STRING", title.encode("utf-8"))
    if legacy_title is not None:
        props["WM_NAME"] = TextProperty("STRING", legacy_title.encode("latin-1"))
    return props


class FakeConnection:
    """In-memory replacement for XConnection.

    Args:
        tree: window id -> list of child ids
        root: root window id
        properties: window id -> {property name: TextProperty}
        focus: focused window id, None, or an exception to raise
        idle: idle milliseconds, or an exception to raise
        screensaver: whether MIT-SCREEN-SAVER is available
        broken: window ids whose queries fail
    """

    def __init__(self, tree, root=1, properties=None, focus=None, idle=0,
                 screensaver=True, broken=()):
        self.tree = tree
        self.root = root
        self.properties = properties or {}
        self.focus = focus
        self.idle = idle
        self.screensaver = screensaver
        self.broken = set(broken)
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True
        return False

    def query_children(self, window_id):
        if window_id in self.broken:
            raise XQueryError(f"BadWindow {window_id}")
        return list(self.tree.get(window_id, []))

    def get_property(self, window_id, name):
        if window_id in self.broken:
            raise XQueryError(f"BadWindow {window_id}")
        return self.properties.get(window_id, {}).get(name)

    def input_focus(self):
        if isinstance(self.focus, Exception):
            raise self.focus
        return self.focus

    def has_extension(self, name):
        return self.screensaver

    def screensaver_idle(self):
        if isinstance(self.idle, Exception):
            raise self.idle
        return self.idle


class FakeWriter:
    """Collects WindowRecords; optionally fails on the n-th write."""

    def __init__(self, fail_at=None):
        self.records = []
        self.fail_at = fail_at

    def write_window(self, record):
        if self.fail_at is not None and len(self.records) + 1 == self.fail_at:
            raise RuntimeError(f"write {self.fail_at} failed")
        self.records.append(record)

    def by_id(self):
        return {r.window_id: r for r in self.records}


@pytest.fixture
def scenario_conn():
    """root(1) -> A(2) -> B(3), root -> C(2), focus on B."""
    return FakeConnection(
        tree={1: [10, 30], 10: [20]},
        root=1,
        properties={
            10: window_properties("term", "XTerm", "shell"),
            20: window_properties("code-oss", "Code", "wtsnap.c - Code"),
            30: window_properties("navigator", "firefox", "Hacker News"),
        },
        focus=20,
        idle=1234,
    )


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "wtsnap.db")
