"""Person name normalization shared by the client and staff repositories.

Names are stored in one normalized form so that searching and sorting by
client or staff name behave the same regardless of how they were typed.
"""

import unicodedata
from typing import Optional


def normalize_display_name(name: Optional[str]) -> str:
    """Normalize a person's display name.

    - Trims whitespace and collapses inner runs of spaces
    - Normalizes unicode to NFC so accented names compare equal
    - Applies title-case

    Returns an empty string for falsy input.
    """
    if not name:
        return ""

    n = unicodedata.normalize("NFC", str(name))
    parts = n.split()
    if not parts:
        return ""
    return " ".join(parts).title()
