"""Message content sanitization."""

from __future__ import annotations

import re

import bleach

# Raw-text elements whose body is code, not prose; an unclosed one runs to the end
_RAW_TEXT_ELEMENTS = re.compile(r"<(script|style)\b[^>]*>.*?(?:</\1\s*>|$)", re.IGNORECASE | re.DOTALL)


def sanitize_message_content(text: str | None) -> str:
    """Strip every HTML tag from ``text`` and trim surrounding whitespace.

    Tag contents are kept, markup is dropped: ``"<b>hi</b>"`` becomes ``"hi"``.
    ``<script>`` and ``<style>`` elements are removed together with their body.
    Entities produced by the cleaner are left escaped so clients render the
    text literally.
    """

    if not text:
        return ""
    text = _RAW_TEXT_ELEMENTS.sub("", text)
    return bleach.clean(text, tags=set(), attributes={}, strip=True).strip()
