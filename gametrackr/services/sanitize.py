from __future__ import annotations

import html
import re
from typing import Optional

import bleach

_WHITESPACE_RE = re.compile(r"[ \t]+")


def clean_text(value: Optional[str]) -> str:
    """Strip markup from user-supplied text, keeping the readable content."""
    if not value:
        return ""
    stripped = bleach.clean(value, tags=[], attributes={}, strip=True)
    # bleach escapes entities; the API stores plain text and the client escapes on render.
    text = html.unescape(stripped)
    lines = [_WHITESPACE_RE.sub(" ", line).strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line).strip()


def clean_optional(value: Optional[str]) -> Optional[str]:
    cleaned = clean_text(value)
    return cleaned or None


def is_encodable(value: str) -> bool:
    """False for strings holding lone surrogates, which JSON allows but UTF-8 does not."""
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True
