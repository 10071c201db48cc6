import html
import re
from typing import Any, Optional

import bleach

CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def sanitize_string(value: Optional[str], max_length: Optional[int] = None) -> Optional[str]:
    """
    Strip markup and control characters from a plain-text field.

    Text is stored unescaped; HTML escaping happens when it is rendered into
    a document or email. Returns None if input is None.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        return value
    cleaned = html.unescape(bleach.clean(value, tags=set(), attributes={}, strip=True))
    cleaned = CONTROL_CHARS_RE.sub("", cleaned).strip()
    if max_length is not None:
        cleaned = cleaned[:max_length]
    return cleaned


def sanitize_multiline(value: Optional[str], max_length: Optional[int] = None) -> Optional[str]:
    """Like sanitize_string but keeps newlines and tabs of long-form content"""
    if value is None:
        return None
    if not isinstance(value, str):
        return value
    cleaned = html.unescape(bleach.clean(value, tags=set(), attributes={}, strip=True))
    cleaned = CONTROL_CHARS_RE.sub("", cleaned.replace("\r\n", "\n"))
    if max_length is not None:
        cleaned = cleaned[:max_length]
    return cleaned


def escape(value: Any) -> str:
    """HTML-escape a value for direct interpolation into markup"""
    if value is None:
        return ""
    return html.escape(str(value), quote=True)
