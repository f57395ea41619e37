"""
Domain and Handle Normalization

Every key that identifies a site or a social account passes through these
helpers so that "https://www.Example.com/" and "example.com", or
"@Acme" and "https://instagram.com/acme/", compare equal.
"""

import re
from typing import Optional

_PROFILE_URL = re.compile(
    r"^(?:https?://)?(?:www\.|m\.)?"
    r"(?:facebook\.com|fb\.com|instagram\.com|linkedin\.com)/"
    r"(?:company/|in/|pages/)?",
    re.IGNORECASE,
)


def normalize_domain(domain: str) -> str:
    """Lowercase a site and strip scheme, leading www. and trailing slashes."""
    domain = domain.lower().strip()
    domain = domain.replace("https://", "").replace("http://", "")
    if domain.startswith("www."):
        domain = domain[4:]
    return domain.rstrip("/")


def normalize_identity(identity: str) -> str:
    """Caller identities are case-insensitive (emails, subject ids)."""
    return identity.strip().lower()


def normalize_handle(handle: Optional[str]) -> Optional[str]:
    """
    Normalize a social handle for comparison.

    Strips profile URL prefixes, a leading '@' and trailing slashes, then
    lowercases. Blank input normalizes to None so that "absent" and ""
    are the same identity.
    """
    if handle is None:
        return None
    handle = handle.strip()
    handle = _PROFILE_URL.sub("", handle)
    handle = handle.split("?", 1)[0].strip("/")
    handle = handle.lstrip("@").lower()
    return handle or None
