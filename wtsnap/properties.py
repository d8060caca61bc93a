"""Window property resolution: name, class and title.

Name and class both come from the ``WM_CLASS`` property (the "class hint"),
a NUL-separated pair of instance and class names. The title is looked up in
``_NET_WM_NAME`` first and falls back to the legacy ``WM_NAME``, which
clients commonly set as ``STRING`` or ``COMPOUND_TEXT`` rather than UTF-8.
The title lookup follows the way dwm reads window titles.

Nothing in here raises for a missing or undecodable property: the value is
simply absent and the reason is logged at debug level.

Example:
    >>> resolver = PropertyResolver(conn)
    >>> props = resolver.resolve(0x3a00007)
    >>> props.wm_class, props.title
    ('firefox', 'Hacker News - Mozilla Firefox')
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .xconn import XQueryError

logger = logging.getLogger(__name__)

TITLE_PROPERTIES = ("_NET_WM_NAME", "WM_NAME")

# ISO 2022 escape sequence: ESC, intermediate bytes, final byte
_ESCAPE_SEQUENCE = re.compile(rb"(\x1b[\x20-\x2f]*[\x30-\x7e])")
_UTF8_ON = b"\x1b%G"
_UTF8_OFF = b"\x1b%@"


@dataclass
class WindowProperties:
    """Resolved textual properties of one window.

    Attributes:
        name: Instance name from WM_CLASS (e.g. "navigator")
        wm_class: Class name from WM_CLASS (e.g. "firefox")
        title: Window title
    """
    name: Optional[str] = None
    wm_class: Optional[str] = None
    title: Optional[str] = None

    @property
    def is_blank(self) -> bool:
        return not (self.name or self.wm_class or self.title)


def _decode_compound_text(value: bytes) -> str:
    # Only the UTF-8 switch is honoured; other charset designations are
    # dropped and their bytes read as Latin-1.
    parts = []
    utf8 = False
    for chunk in _ESCAPE_SEQUENCE.split(value):
        if chunk == _UTF8_ON:
            utf8 = True
        elif chunk == _UTF8_OFF:
            utf8 = False
        elif chunk.startswith(b"\x1b"):
            continue
        elif chunk:
            parts.append(chunk.decode("utf-8") if utf8 else chunk.decode("latin-1"))
    return "".join(parts)


def _decode_item(encoding: str, item: bytes) -> str:
    if encoding == "STRING":
        return item.decode("latin-1")
    if encoding == "UTF8_STRING":
        return item.decode("utf-8")
    if encoding == "COMPOUND_TEXT":
        return _decode_compound_text(item)
    try:
        return item.decode("utf-8")
    except UnicodeDecodeError:
        return item.decode("latin-1")


def decode_text_list(encoding: str, value: bytes) -> List[str]:
    """Convert a raw text property into its list of strings.

    Text properties hold NUL-separated items; a single terminating NUL does
    not start another item.

    Args:
        encoding: Name of the property's type atom (STRING, UTF8_STRING, ...)
        value: Raw property bytes

    Returns:
        Decoded items, possibly empty

    Raises:
        UnicodeDecodeError: If a UTF-8 item is malformed
    """
    if not value:
        return []
    items = value.split(b"\0")
    if value.endswith(b"\0"):
        items.pop()
    return [_decode_item(encoding, item) for item in items]


class PropertyResolver:
    """Resolves name, class and title for windows on one connection."""

    def __init__(self, conn):
        self.conn = conn

    def resolve(self, window_id: int) -> WindowProperties:
        name, wm_class = self.class_hint(window_id)
        return WindowProperties(name=name, wm_class=wm_class,
                                title=self.title(window_id))

    def class_hint(self, window_id: int) -> Tuple[Optional[str], Optional[str]]:
        """Return (name, class) from WM_CLASS; either may be None."""
        items = self._text_list(window_id, "WM_CLASS")
        if not items:
            logger.debug(f"No class hint for window {window_id}")
            return None, None
        name = items[0] or None
        wm_class = (items[1] or None) if len(items) > 1 else None
        return name, wm_class

    def title(self, window_id: int) -> Optional[str]:
        for prop_name in TITLE_PROPERTIES:
            items = self._text_list(window_id, prop_name)
            if items and items[0]:
                logger.debug(f"Got '{prop_name}' value: '{items[0]}'")
                return items[0]
        logger.debug(f"No title for window {window_id}")
        return None

    def _text_list(self, window_id: int, prop_name: str) -> List[str]:
        try:
            prop = self.conn.get_property(window_id, prop_name)
        except XQueryError as e:
            logger.debug(f"Can't get property '{prop_name}': {e}")
            return []
        if prop is None:
            logger.debug(f"No '{prop_name}' property on window {window_id}")
            return []
        try:
            return decode_text_list(prop.encoding, prop.value)
        except UnicodeDecodeError as e:
            logger.debug(f"Can't convert '{prop_name}' ({prop.encoding}) "
                         f"of window {window_id}: {e}")
            return []
