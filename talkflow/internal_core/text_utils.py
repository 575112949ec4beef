from __future__ import annotations

import unicodedata


def is_blank(text: str | None) -> bool:
    return not (text or "").strip()


def truncated(text: str, length: int, trailing: str = "...") -> str:
    if len(text) <= length:
        return text
    return text[:length] + trailing


def strip_punctuation(text: str) -> str:
    # Unicode "P*" categories, so curly quotes and CJK marks go too.
    return "".join(ch for ch in text if not unicodedata.category(ch).startswith("P"))
