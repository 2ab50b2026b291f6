"""Conversion of plain-text note bodies into the rich-text dialect files accept.

Rich-text notes are stored as escaped HTML fragments: markup characters are
entity-escaped, every line break becomes a single `<br>`, and apostrophes use
the numeric entity because the named `&apos;` entity is rejected.
"""

import re
from xml.sax.saxutils import escape

LINE_BREAK = "<br>"

_ESCAPE_ENTITIES = {'"': "&quot;", "'": "&apos;"}
_LINE_BREAK_PATTERN = re.compile(r"\r\n|\r|\n")


def escape_note_body(body: str | None) -> str:
    """Escape a plain-text note body for embedding as rich text.

    Args:
        body: Plain text, may be None

    Returns:
        Escaped HTML fragment ('' for a None or empty body)

    Example:
        >>> escape_note_body("Tom's <b>\\r\\nnote")
        'Tom&#39;s &lt;b&gt;<br>note'
    """
    if not body:
        return ""
    escaped = escape(body, _ESCAPE_ENTITIES)
    escaped = _LINE_BREAK_PATTERN.sub(LINE_BREAK, escaped)
    return escaped.replace("&apos;", "&#39;")
