"""
Search-term normalization shared by writes and lookups.

The stored ``normalized_*`` columns and every incoming search term go
through the same function, so matching is case- and diacritic-insensitive.
"""

from __future__ import annotations

import unicodedata

# Polish letters are mapped explicitly; "Ł"/"ł" have no decomposition.
_POLISH_FROM = "ĄĆĘŁŃÓŚŹŻąćęłńóśźż"
_POLISH_TO = "ACELNOSZZacelnoszz"
_POLISH_TABLE = str.maketrans(_POLISH_FROM, _POLISH_TO)


def _strip_marks(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_for_search(value: str) -> str:
    """
    Lowercase, trim and strip diacritics from ``value``.

    Decomposition runs again after lowercasing because some lowercase
    forms (e.g. of "İ") introduce new combining marks.
    """
    result = (value or "").translate(_POLISH_TABLE)
    result = _strip_marks(result).lower()
    result = _strip_marks(result)
    return result.strip()
