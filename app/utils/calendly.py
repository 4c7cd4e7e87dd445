"""
Scheduling-link cleanup for the directory's trailing column.

The CSV carries Calendly links in several shapes ("calendly.com/xyz",
"http://www.calendly.com/xyz", or mistakenly saved as a path under our own
site such as "https://www.meetingsfor1000.com/calendly.com/xyz"). Everything
is folded to https://calendly.com/... before it is stored or returned.
"""
import re
from typing import List, Optional

from app.core.config import settings

CANONICAL_HOST = "https://calendly.com"

_CALENDLY_WITH_SCHEME = re.compile(r"^https?://(?:www\.)?calendly\.com(?=[/?#]|$)", re.IGNORECASE)
_BARE_CALENDLY = re.compile(r"^(?:www\.)?calendly\.com(?=[/?#]|$)", re.IGNORECASE)


def _own_prefix(site_domain: Optional[str] = None) -> "re.Pattern[str]":
    domain = site_domain or settings.site_domain
    return re.compile(r"^https?://(?:www\.)?" + re.escape(domain) + "/", re.IGNORECASE)


def normalize_calendly_link(value, site_domain: Optional[str] = None) -> str:
    """
    Return the canonical form of a single scheduling-link candidate.

    Total over any input: None, empty and whitespace-only values give "".
    Idempotent: normalizing an already normalized link returns it unchanged.
    """
    if value is None:
        return ""
    href = str(value).strip()
    if not href:
        return ""

    # The prefix can be stacked more than once; strip until nothing changes
    own_prefix = _own_prefix(site_domain)
    while True:
        stripped = own_prefix.sub("", href, count=1).strip()
        if stripped == href:
            break
        href = stripped

    href = _CALENDLY_WITH_SCHEME.sub(CANONICAL_HOST, href, count=1)
    href = _BARE_CALENDLY.sub(CANONICAL_HOST, href, count=1)
    return href


def split_calendly_links(raw, site_domain: Optional[str] = None) -> List[str]:
    """Split a comma-separated cell into normalized links, dropping empties."""
    if not isinstance(raw, str):
        return []
    links = []
    for part in raw.split(","):
        href = normalize_calendly_link(part, site_domain=site_domain)
        if href:
            links.append(href)
    return links
