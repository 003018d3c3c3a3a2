"""
URL helper utilities for grounding citations.

This module provides functions for URL normalization, redirect unwrapping and
domain matching against a school name.
"""

import re
from urllib.parse import parse_qs, quote_plus, urlparse

from ..constants import AGGREGATOR_DOMAINS, GROUNDING_REDIRECT_HOSTS, SCHOOL_STOPWORDS

# Query parameters that carry the destination on redirector URLs
_REDIRECT_PARAMS = ("q", "url", "u")


def normalize_url(url: str) -> str:
    """
    Normalize URL by adding scheme if missing.

    Examples:
        >>> normalize_url("business.example.edu")
        'https://business.example.edu'
        >>> normalize_url("//example.edu/mba")
        'https://example.edu/mba'
    """
    url = url.strip()
    if url.startswith("//"):
        return f"https:{url}"
    if not url.startswith(("http://", "https://")):
        return f"https://{url}"
    return url


def is_valid_url(url: str) -> bool:
    """True for absolute http(s) URLs with a host."""
    if not url or not isinstance(url, str):
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def get_domain(url: str) -> str | None:
    """
    Extract the lowercase host from a URL, without a leading ``www.``.

    Examples:
        >>> get_domain("https://www.Example.edu/tuition")
        'example.edu'
    """
    if not url:
        return None
    try:
        host = urlparse(normalize_url(url)).hostname
    except ValueError:
        return None
    if not host:
        return None
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def resolve_redirect(url: str) -> str:
    """
    Unwrap a redirector URL that embeds its destination as a query parameter.

    Handles ``google.com/url?q=TARGET`` and generic ``?url=`` / ``?u=``
    redirectors. Returns the input unchanged when no valid destination is
    embedded.

    Examples:
        >>> resolve_redirect("https://www.google.com/url?q=https://example.edu/mba&sa=U")
        'https://example.edu/mba'
        >>> resolve_redirect("https://example.edu/mba")
        'https://example.edu/mba'
    """
    if not url:
        return url
    try:
        parsed = urlparse(url)
    except ValueError:
        return url

    params = parse_qs(parsed.query)
    for name in _REDIRECT_PARAMS:
        # A plain search URL (google.com/search?q=...) has a q that is not a URL
        for candidate in params.get(name, []):
            if is_valid_url(candidate) and get_domain(candidate) != get_domain(url):
                return candidate
    return url


def is_grounding_redirect(url: str) -> bool:
    """True when the URL points at the grounding service's own redirect host."""
    domain = get_domain(url)
    return bool(domain) and domain in GROUNDING_REDIRECT_HOSTS


def is_aggregator_domain(domain: str | None) -> bool:
    """True for known third-party rankings/news/forum sites (subdomains included)."""
    if not domain:
        return False
    return any(domain == blocked or domain.endswith("." + blocked) for blocked in AGGREGATOR_DOMAINS)


_ACADEMIC_SUFFIX = re.compile(r"\.(edu|edu\.[a-z]{2}|ac\.[a-z]{2})$")


def is_academic_domain(domain: str | None) -> bool:
    """
    True for institution-registered academic domains.

    Examples:
        >>> is_academic_domain("business.example.edu")
        True
        >>> is_academic_domain("ox.ac.uk")
        True
        >>> is_academic_domain("washingtonpost.com")
        False
    """
    return bool(domain) and bool(_ACADEMIC_SUFFIX.search(domain.lower()))


def _significant_words(school: str) -> list[str]:
    words = re.split(r"[^a-z0-9]+", school.lower())
    return [w for w in words if len(w) > 3 and w not in SCHOOL_STOPWORDS]


def domain_matches_school(domain: str | None, school: str) -> bool:
    """
    Decide whether a domain plausibly belongs to the named school.

    A match is any significant word of the school name (longer than three
    characters, not a generic word like "university") appearing in the
    domain, or the first five characters of the condensed school name doing
    so. Acronym domains ("mit.edu" for "Massachusetts Institute of
    Technology") are matched through the initials of the significant words.

    Examples:
        >>> domain_matches_school("business.example.edu", "Example University")
        True
        >>> domain_matches_school("clearadmit.com", "Example University")
        False
    """
    if not domain or not school:
        return False

    condensed_domain = re.sub(
        r"\.(edu|com|org|net|ac\.[a-z]{2})$|^(www|business|graduate|grad|mba)\.", "", domain.lower()
    )
    condensed_domain = re.sub(r"[^a-z0-9]", "", condensed_domain)
    if not condensed_domain:
        return False

    words = _significant_words(school)
    if any(word in condensed_domain for word in words):
        return True

    condensed_school = "".join(w for w in re.split(r"[^a-z0-9]+", school.lower()) if w and w not in SCHOOL_STOPWORDS)
    if len(condensed_school) >= 5 and condensed_school[:5] in condensed_domain:
        return True

    all_words = [w for w in re.split(r"[^a-z0-9]+", school.lower()) if w and w not in ("the", "of", "and", "at", "in")]
    initials = "".join(w[0] for w in all_words)
    return len(initials) >= 3 and condensed_domain.startswith(initials)


def build_search_url(school: str, program: str) -> str:
    """Google search URL used as a last-resort source link."""
    return f"https://www.google.com/search?q={quote_plus(f'{school} {program} tuition')}"
