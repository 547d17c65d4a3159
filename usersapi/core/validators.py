"""Input validation helpers for user data."""
from __future__ import annotations
import re
from typing import Any, Iterable

CONTEXTS = ("view", "view-private", "edit")

ALLOWED_PROTOCOLS = (
    "http", "https", "ftp", "ftps", "mailto", "news", "irc", "gopher", "nntp",
    "feed", "telnet", "mms", "rtsp", "svn", "tel", "fax", "xmpp", "webcal", "urn",
)

_URL_UNSAFE_CHARS = re.compile(r"[^a-z0-9\-~+_.?#=!&;,/:%@$|*'()\[\]\x80-\xff]", re.IGNORECASE)
_URL_LINEBREAKS = ("%0d", "%0a", "%0D", "%0A")
_PHP_FILE = re.compile(r"^[a-z0-9-]+?\.php", re.IGNORECASE)
_LEADING_INT = re.compile(r"^\s*[-+]?\d+")
_USERNAME_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9 _.\-@]")


def absint(value: Any) -> int:
    """Convert a value to a non-negative integer (0 when not numeric)."""
    if isinstance(value, bool):
        return int(value)
    try:
        return abs(int(value))
    except (TypeError, ValueError):
        pass
    match = _LEADING_INT.match(str(value)) if value is not None else None
    if match:
        return abs(int(match.group(0)))
    return 0


def is_known_context(context: str) -> bool:
    return context in CONTEXTS


def sanitize_url(url: str, protocols: Iterable[str] = ALLOWED_PROTOCOLS) -> str:
    """Sanitize a URL for storage.

    Strips characters outside the URL-safe set, removes encoded line breaks,
    prefixes ``http://`` to bare hosts and returns an empty string for
    disallowed protocols. A URL is acceptable as-is when
    ``sanitize_url(url) == url``.

    Args:
        url: Raw URL
        protocols: Allowed URL schemes

    Returns:
        Sanitized URL, or "" if it cannot be made safe
    """
    if not url:
        return ""

    url = url.lstrip().replace(" ", "%20")
    url = _URL_UNSAFE_CHARS.sub("", url)
    if not url:
        return ""

    if not url.lower().startswith("mailto:"):
        # Repeat until stable so "%0%0ad" cannot reassemble into "%0d"
        previous = None
        while previous != url:
            previous = url
            for needle in _URL_LINEBREAKS:
                url = url.replace(needle, "")

    url = url.replace(";//", "://")

    if ":" not in url and url[0] not in "/#?" and not _PHP_FILE.match(url):
        url = "http://" + url

    # Relative references carry no scheme to check
    if url[0] in "/#?":
        return url

    scheme = url.split(":", 1)[0].lower()
    if scheme not in {p.lower() for p in protocols}:
        return ""

    return url


def sanitize_username(raw: str) -> str:
    """Strip characters not allowed in a login name.

    Args:
        raw: Raw username input

    Returns:
        Sanitized username (may be empty)
    """
    cleaned = _USERNAME_UNSAFE_CHARS.sub("", raw.strip())
    return re.sub(r"\s+", " ", cleaned)


def validate_email(email: str) -> str:
    """Validate email address.

    Args:
        email: Email address to validate

    Returns:
        Trimmed email address

    Raises:
        ValueError: If email is invalid
    """
    email = email.strip()
    if not email or "@" not in email:
        raise ValueError("Invalid email format")

    local, domain = email.rsplit("@", 1)
    if not local or not domain or "." not in domain:
        raise ValueError("Invalid email format")
    if any(char.isspace() for char in email):
        raise ValueError("Invalid email format")
    if len(email) > 254:
        raise ValueError("Email exceeds maximum length")

    return email


def slugify(value: str) -> str:
    """URL-safe slug used for the user_nicename field."""
    slug = re.sub(r"[^a-z0-9_\-]+", "-", value.strip().lower())
    return re.sub(r"-{2,}", "-", slug).strip("-")
