# services/url_normalizer.py
"""
Canonical product URL rules shared by every source adapter.

The same physical listing must collapse to one URL (and one id) no matter
which adapter found it, so tracking parameters and fragments are stripped
and relative links are resolved against the retailer origin.
"""
import hashlib
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

TRACKING_PARAMS = {
    "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
    "mcid", "mc_eid", "fbclid", "gclid", "igshid",
    "ranmid", "ransiteid", "raneaid",
    "tag", "affid", "affidv", "affsource",
    "aff_sub", "aff_sub2", "aff_sub3", "aff_sub4", "aff_sub5",
    "cjevent", "awc", "srsltid", "ref", "ref_",
}


def is_http_url(candidate: Optional[str]) -> bool:
    if not candidate or not isinstance(candidate, str):
        return False
    parsed = urlparse(candidate.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def ensure_absolute_url(href: Optional[str], base: Optional[str] = None) -> Optional[str]:
    """
    Resolve *href* against *base*; protocol-relative and bare-host links get https.

    Returns None when nothing usable can be built.
    """
    if not href or not isinstance(href, str):
        return None
    href = href.strip()
    if not href or href.startswith(("javascript:", "mailto:", "data:", "#")):
        return None
    if href.startswith("//"):
        href = f"https:{href}"
    if is_http_url(href):
        return href
    if base and is_http_url(base):
        joined = urljoin(base, href)
        return joined if is_http_url(joined) else None
    if "." in href.split("/")[0]:
        candidate = f"https://{href.lstrip('/')}"
        return candidate if is_http_url(candidate) else None
    return None


def normalize_product_url(url: Optional[str], base: Optional[str] = None) -> Optional[str]:
    """
    Canonical form of a product URL: absolute, lowercase host, no fragment,
    no tracking parameters. Returns None if the input is not a usable URL.
    """
    absolute = ensure_absolute_url(url, base)
    if not absolute:
        return None
    parsed = urlparse(absolute)
    # Sorted so parameter order never splits one listing into two keys
    kept = sorted(
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if key.lower() not in TRACKING_PARAMS
    )
    path = parsed.path or "/"
    return urlunparse((
        parsed.scheme.lower(),
        parsed.netloc.lower(),
        path,
        "",
        urlencode(kept),
        "",
    ))


def dedupe_key(url: Optional[str], brand: Optional[str] = None, title: Optional[str] = None) -> str:
    """Normalized URL, or brand+title when there is no URL."""
    normalized = normalize_product_url(url) if url else None
    if normalized:
        parsed = urlparse(normalized)
        host = parsed.netloc.replace("www.", "", 1)
        query = f"?{parsed.query}" if parsed.query else ""
        return f"{host}{parsed.path.rstrip('/') or '/'}{query}"
    return f"{(brand or '').strip().lower()}|{(title or '').strip().lower()}"


def stable_id(url: str, prefix: str = "prd") -> str:
    """Deterministic id derived from the canonical URL."""
    canonical = normalize_product_url(url) or url
    digest = hashlib.sha1(canonical.encode("utf-8")).hexdigest()[:16]
    return f"{prefix}_{digest}"


def retailer_from_url(url: Optional[str]) -> Optional[str]:
    if not is_http_url(url):
        return None
    host = urlparse(url).netloc.lower()
    if host.startswith("www."):
        host = host[4:]
    return host or None


def host_matches(url: Optional[str], domain: str) -> bool:
    """True if the URL host is *domain* or one of its subdomains."""
    host = retailer_from_url(url)
    if not host:
        return False
    domain = domain.lower().lstrip(".")
    if domain.startswith("www."):
        domain = domain[4:]
    return host == domain or host.endswith(f".{domain}")
