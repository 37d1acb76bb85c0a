"""URL slugs for jobs and companies."""

import re
import time

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """``"Senior Go Engineer!"`` -> ``"senior-go-engineer"``."""
    return _NON_ALNUM.sub("-", str(text).lower()).strip("-")


def timestamped(slug: str) -> str:
    """Disambiguate a taken slug with a millisecond timestamp suffix."""
    return f"{slug}-{int(time.time() * 1000)}"
