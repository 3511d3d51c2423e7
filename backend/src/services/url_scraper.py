"""URL scraping service for fetching best-effort page metadata."""
import asyncio
import ipaddress
import logging
import socket
from dataclasses import asdict, dataclass, fields
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

USER_AGENT = 'Mozilla/5.0 (compatible; BookmarkManager/1.0)'
DEFAULT_TIMEOUT = 5.0

HTML_CONTENT_TYPES = ('text/html', 'application/xhtml+xml')

# Ordered (css selector, attribute) candidates per metadata field.
# The first candidate yielding a non-blank value wins; attribute None reads element text.
METADATA_SELECTORS: dict[str, tuple[tuple[str, str | None], ...]] = {
    'title': (
        ('meta[property="og:title"]', 'content'),
        ('meta[name="twitter:title"]', 'content'),
        ('meta[name="title"]', 'content'),
        ('title', None),
    ),
    'description': (
        ('meta[property="og:description"]', 'content'),
        ('meta[name="twitter:description"]', 'content'),
        ('meta[name="description"]', 'content'),
        ('meta[itemprop="description"]', 'content'),
    ),
    'image': (
        ('meta[property="og:image"]', 'content'),
        ('meta[name="twitter:image"]', 'content'),
        ('meta[itemprop="image"]', 'content'),
        ('link[rel~="image_src"]', 'href'),
        ('link[rel~="icon"]', 'href'),
        ('link[rel~="apple-touch-icon"]', 'href'),
    ),
    'video': (
        ('meta[property="og:video"]', 'content'),
        ('meta[property="og:video:url"]', 'content'),
        ('meta[name="twitter:player"]', 'content'),
    ),
    'site_name': (
        ('meta[property="og:site_name"]', 'content'),
        ('meta[name="application-name"]', 'content'),
    ),
    'published_at': (
        ('meta[property="article:published_time"]', 'content'),
        ('meta[name="date"]', 'content'),
        ('time[datetime]', 'datetime'),
    ),
    'author': (
        ('meta[name="author"]', 'content'),
        ('meta[property="article:author"]', 'content'),
    ),
    'type': (
        ('meta[property="og:type"]', 'content'),
        ('meta[name="twitter:card"]', 'content'),
    ),
}


class SSRFBlockedError(Exception):
    """Raised when a URL targets a private/internal network address."""

    pass


def is_private_ip(ip_str: str) -> bool:
    """
    Check if an IP address is private, loopback, or otherwise internal.

    Args:
        ip_str: IP address string (IPv4 or IPv6).

    Returns:
        True if the IP is private/internal, False if public.
    """
    try:
        ip = ipaddress.ip_address(ip_str)
        return (
            ip.is_private
            or ip.is_loopback
            or ip.is_link_local
            or ip.is_multicast
            or ip.is_reserved
            or ip.is_unspecified
        )
    except ValueError:
        # Unparseable addresses are treated as internal
        return True


def validate_url_not_private(url: str) -> None:
    """
    Validate that a URL does not target a private/internal network.

    Resolves the hostname to check the actual IP address, preventing
    DNS rebinding attacks where a hostname resolves to an internal IP.

    Args:
        url: The URL to validate.

    Raises:
        SSRFBlockedError: If the URL targets a private network.
        ValueError: If the URL is malformed or the hostname does not resolve.
    """
    parsed = urlparse(url)
    hostname = parsed.hostname

    if not hostname:
        raise ValueError(f"Invalid URL (no hostname): {url}")

    if hostname.lower() in ('localhost', 'localhost.localdomain'):
        raise SSRFBlockedError(f"Blocked request to localhost: {url}")

    try:
        # sockaddr is (ip, port) for IPv4 or (ip, port, flow, scope) for IPv6
        addrinfo = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
    except socket.gaierror as e:
        raise ValueError(f"Could not resolve hostname: {hostname}") from e

    for _, _, _, _, sockaddr in addrinfo:
        ip_str = sockaddr[0]
        if is_private_ip(ip_str):
            raise SSRFBlockedError(
                f"Blocked request to private/internal address: {url} resolves to {ip_str}",
            )


async def check_url_not_private(url: str, timeout: float = DEFAULT_TIMEOUT) -> None:  # noqa: ASYNC109
    """
    Run validate_url_not_private in a worker thread, bounded by timeout.

    Raises:
        SSRFBlockedError: If the URL targets a private network.
        ValueError: If the URL is malformed, does not resolve, or resolution
            takes longer than timeout.
    """
    try:
        await asyncio.wait_for(asyncio.to_thread(validate_url_not_private, url), timeout)
    except TimeoutError as e:
        raise ValueError(f"Timed out resolving hostname for {url}") from e


@dataclass
class FetchResult:
    """Result of fetching a URL (raw HTML before extraction)."""

    content: str | None
    final_url: str
    status_code: int | None
    content_type: str | None
    error: str | None

    @property
    def is_html(self) -> bool:
        """Check if the content type indicates HTML; a missing header is treated as HTML."""
        if not self.content_type:
            return True
        return any(t in self.content_type.lower() for t in HTML_CONTENT_TYPES)


@dataclass
class PageMetadata:
    """
    Best-effort metadata extracted from a web page.

    Every field is independently optional. An instance with all fields None
    is the result of any failed fetch.
    """

    title: str | None = None
    description: str | None = None
    image: str | None = None
    video: str | None = None
    site_name: str | None = None
    published_at: datetime | None = None
    author: str | None = None
    type: str | None = None

    @property
    def is_empty(self) -> bool:
        """True when no field could be extracted."""
        return all(getattr(self, f.name) is None for f in fields(self))

    def to_dict(self) -> dict[str, Any]:
        """Return the fields as a plain dict."""
        return asdict(self)


async def fetch_url(url: str, timeout: float = DEFAULT_TIMEOUT) -> FetchResult:  # noqa: ASYNC109
    """
    Fetch HTML content from a URL.

    Best-effort fetch that returns error info on failure rather than raising.
    Follows redirects and captures the final URL.

    Security: Validates that the URL does not target private/internal networks
    to prevent SSRF attacks, both before the request and after redirects.

    Args:
        url:
            The URL to fetch.
        timeout:
            Request timeout in seconds.

    Returns:
        FetchResult containing the HTML or error info.
    """
    try:
        await check_url_not_private(url, timeout)
    except (SSRFBlockedError, ValueError) as e:
        return FetchResult(
            content=None,
            final_url=url,
            status_code=None,
            content_type=None,
            error=str(e),
        )

    try:
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=timeout,
            headers={'User-Agent': USER_AGENT},
            http2=True,
        ) as client:
            response = await client.get(url)

            final_url = str(response.url)
            try:
                await check_url_not_private(final_url, timeout)
            except (SSRFBlockedError, ValueError) as e:
                return FetchResult(
                    content=None,
                    final_url=final_url,
                    status_code=response.status_code,
                    content_type=None,
                    error=f"Redirect blocked: {e}",
                )

            content_type = response.headers.get('content-type', '')

            if not response.is_success:
                return FetchResult(
                    content=None,
                    final_url=final_url,
                    status_code=response.status_code,
                    content_type=content_type,
                    error=f"HTTP {response.status_code}",
                )

            result = FetchResult(
                content=None,
                final_url=final_url,
                status_code=response.status_code,
                content_type=content_type,
                error=None,
            )
            if not result.is_html:
                result.error = f"Unsupported content type: {content_type}"
                return result

            result.content = response.text
            return result
    except httpx.TimeoutException:
        return FetchResult(
            content=None,
            final_url=url,
            status_code=None,
            content_type=None,
            error="Request timed out",
        )
    except (httpx.RequestError, httpx.InvalidURL) as e:
        return FetchResult(
            content=None,
            final_url=url,
            status_code=None,
            content_type=None,
            error=f"Request failed: {e}",
        )


def _first_match(soup: BeautifulSoup, candidates: tuple[tuple[str, str | None], ...]) -> str | None:  # noqa: E501
    """Return the first non-blank value produced by the ordered candidates."""
    for selector, attribute in candidates:
        element = soup.select_one(selector)
        if element is None:
            continue
        value = element.get(attribute) if attribute else element.get_text()
        if isinstance(value, list):
            # Multi-valued attributes (e.g. rel) come back as lists
            value = ' '.join(value)
        if value and value.strip():
            return value.strip()
    return None


def parse_published_at(value: str | None) -> datetime | None:
    """
    Parse a publish date string into an aware datetime.

    Accepts ISO 8601 and RFC 2822 forms. Naive values are taken as UTC.
    Anything unparseable yields None.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError, IndexError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def absolutize_url(value: str, page_url: str) -> str:
    """
    Resolve a possibly relative resource URL against the page origin.

    'a.png', '/a.png' and '//cdn.example.com/a.png' all resolve against
    scheme://host of page_url. Absolute http(s) URLs are returned unchanged.
    """
    if value.startswith(('http://', 'https://')):
        return value
    parsed = urlparse(page_url)
    if not parsed.scheme or not parsed.netloc:
        return value
    return urljoin(f'{parsed.scheme}://{parsed.netloc}/', value)


def extract_page_metadata(html: str, url: str) -> PageMetadata:
    """
    Extract page metadata from HTML.

    Pure function with no I/O. Uses BeautifulSoup CSS selectors; see
    METADATA_SELECTORS for the per-field candidate order (Open Graph first,
    then Twitter card, then generic HTML).

    Args:
        html:
            Raw HTML string to parse.
        url:
            URL the HTML was served from. Used to absolutize the image URL and
            as the site name fallback (its host name).

    Returns:
        PageMetadata with whatever fields could be found.
    """
    soup = BeautifulSoup(html, 'lxml')
    values = {
        field: _first_match(soup, candidates)
        for field, candidates in METADATA_SELECTORS.items()
    }

    if not values['site_name']:
        values['site_name'] = urlparse(url).hostname

    if values['image']:
        values['image'] = absolutize_url(values['image'], url)

    return PageMetadata(
        title=values['title'],
        description=values['description'],
        image=values['image'],
        video=values['video'],
        site_name=values['site_name'],
        published_at=parse_published_at(values['published_at']),
        author=values['author'],
        type=values['type'],
    )


async def fetch_metadata(url: str, timeout: float = DEFAULT_TIMEOUT) -> PageMetadata:  # noqa: ASYNC109
    """
    Fetch a URL and extract its metadata.

    Never raises: network errors, non-success statuses, non-HTML responses,
    timeouts and unparseable markup all produce an empty PageMetadata.
    This is the entry point used when creating or refreshing bookmarks.

    Args:
        url: The URL to fetch.
        timeout: Request timeout in seconds.

    Returns:
        PageMetadata (empty on any failure).
    """
    result = await fetch_url(url, timeout)

    if result.error or result.content is None:
        logger.info("Metadata fetch failed for %s: %s", url, result.error)
        return PageMetadata()

    try:
        return extract_page_metadata(result.content, result.final_url)
    except Exception:
        logger.warning("Metadata extraction failed for %s", url, exc_info=True)
        return PageMetadata()
