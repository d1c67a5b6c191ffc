import re

USERNAME_MAX_LEN = 50
_USERNAME_STRIP = re.compile(r"[^a-z0-9_-]")
_PAGE_PATH = re.compile(r"^/([A-Za-z0-9_-]+)/?$")


def normalize_username(raw: str | None) -> str:
    """Lower-case, drop characters outside ``[a-z0-9_-]`` and cap the length.

    May return an empty string; callers decide whether that is an error.
    """
    s = (raw or "").strip().lower()
    return _USERNAME_STRIP.sub("", s)[:USERNAME_MAX_LEN]


def username_from_path(path: str | None) -> str | None:
    """Username named by a page path like ``/alice``; ``None`` for anything else."""
    m = _PAGE_PATH.match(path or "")
    if not m:
        return None
    return normalize_username(m.group(1)) or None
