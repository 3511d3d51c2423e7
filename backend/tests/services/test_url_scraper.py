"""
Tests for URL scraper service.

Tests cover:
- fetch_url: HTTP fetching with mocked responses (success, timeout, errors, non-HTML)
- SSRF guard: private/internal targets are refused before and after redirects
- extract_page_metadata: pure function tests for each metadata field and its fallbacks
- fetch_metadata: never raises, empty result on any failure
"""
import socket
import threading
import time
from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from services.url_scraper import (
    DEFAULT_TIMEOUT,
    USER_AGENT,
    FetchResult,
    PageMetadata,
    SSRFBlockedError,
    absolutize_url,
    extract_page_metadata,
    fetch_metadata,
    fetch_url,
    is_private_ip,
    parse_published_at,
    validate_url_not_private,
)


def _mock_response(
    text: str = '<html><head><title>Test</title></head></html>',
    url: str = 'https://example.com/page',
    status_code: int = 200,
    content_type: str = 'text/html; charset=utf-8',
) -> MagicMock:
    response = MagicMock()
    response.text = text
    response.url = url
    response.status_code = status_code
    response.is_success = 200 <= status_code < 300
    response.headers = {'content-type': content_type}
    return response


def _patch_client(response: MagicMock | None = None, side_effect: Exception | None = None):  # noqa: ANN202
    """Patch httpx.AsyncClient so `get` returns response (or raises side_effect)."""
    patcher = patch('services.url_scraper.httpx.AsyncClient')
    mock_client_class = patcher.start()
    mock_client = AsyncMock()
    if side_effect is not None:
        mock_client.get.side_effect = side_effect
    else:
        mock_client.get.return_value = response
    mock_client.__aenter__.return_value = mock_client
    mock_client.__aexit__.return_value = None
    mock_client_class.return_value = mock_client
    return patcher, mock_client_class, mock_client


@pytest.fixture
def allow_all_hosts() -> Generator[MagicMock]:
    """Skip DNS-based SSRF validation for tests that exercise HTTP handling."""
    with patch('services.url_scraper.validate_url_not_private') as mock:
        yield mock


class TestFetchUrl:
    """Tests for fetch_url function."""

    async def test__fetch_url__success(self, allow_all_hosts: MagicMock) -> None:
        """Successful fetch returns HTML content and the final URL."""
        html = '<html><head><title>Test</title></head><body>Content</body></html>'
        patcher, mock_client_class, mock_client = _patch_client(_mock_response(text=html))
        try:
            result = await fetch_url('https://example.com')
        finally:
            patcher.stop()

        assert result.content == html
        assert result.final_url == 'https://example.com/page'
        assert result.status_code == 200
        assert result.error is None
        mock_client.get.assert_awaited_once_with('https://example.com')
        kwargs = mock_client_class.call_args.kwargs
        assert kwargs['follow_redirects'] is True
        assert kwargs['timeout'] == DEFAULT_TIMEOUT
        assert kwargs['headers'] == {'User-Agent': USER_AGENT}
        # Validated before the request and again after redirects
        assert allow_all_hosts.call_count == 2

    async def test__fetch_url__custom_timeout(self, allow_all_hosts: MagicMock) -> None:  # noqa: ARG002
        """The timeout argument is passed through to the HTTP client."""
        patcher, mock_client_class, _ = _patch_client(_mock_response())
        try:
            await fetch_url('https://example.com', timeout=1.5)
        finally:
            patcher.stop()
        assert mock_client_class.call_args.kwargs['timeout'] == 1.5

    async def test__fetch_url__non_2xx_status(self, allow_all_hosts: MagicMock) -> None:  # noqa: ARG002
        """Non-success status codes produce an error, not content."""
        patcher, _, _ = _patch_client(_mock_response(status_code=404))
        try:
            result = await fetch_url('https://example.com/missing')
        finally:
            patcher.stop()

        assert result.content is None
        assert result.status_code == 404
        assert result.error == 'HTTP 404'

    async def test__fetch_url__non_html_content(self, allow_all_hosts: MagicMock) -> None:  # noqa: ARG002
        """Non-HTML responses are not read."""
        patcher, _, _ = _patch_client(_mock_response(content_type='application/pdf'))
        try:
            result = await fetch_url('https://example.com/file.pdf')
        finally:
            patcher.stop()

        assert result.content is None
        assert result.error == 'Unsupported content type: application/pdf'

    async def test__fetch_url__xhtml_is_html(self, allow_all_hosts: MagicMock) -> None:  # noqa: ARG002
        """application/xhtml+xml counts as HTML."""
        patcher, _, _ = _patch_client(_mock_response(content_type='application/xhtml+xml'))
        try:
            result = await fetch_url('https://example.com')
        finally:
            patcher.stop()
        assert result.error is None
        assert result.content is not None

    async def test__fetch_url__missing_content_type_is_html(self, allow_all_hosts: MagicMock) -> None:  # noqa: ARG002, E501
        """A 2xx response without a Content-Type header is parsed as HTML."""
        html = '<html><head><title>Untyped</title></head></html>'
        response = _mock_response(text=html)
        response.headers = {}
        patcher, _, _ = _patch_client(response)
        try:
            result = await fetch_url('https://example.com/untyped')
        finally:
            patcher.stop()

        assert result.error is None
        assert result.content == html

    async def test__fetch_metadata__missing_content_type_extracts(self, allow_all_hosts: MagicMock) -> None:  # noqa: ARG002, E501
        """Metadata is extracted from an untyped HTML body."""
        response = _mock_response(text='<html><head><title>Untyped</title></head></html>')
        response.headers = {}
        patcher, _, _ = _patch_client(response)
        try:
            meta = await fetch_metadata('https://example.com/untyped')
        finally:
            patcher.stop()

        assert meta.title == 'Untyped'

    async def test__fetch_url__host_check_runs_off_event_loop(self) -> None:
        """The DNS-based host check runs in a worker thread."""
        loop_thread = threading.get_ident()
        check_threads: list[int] = []

        def record_thread(url: str) -> None:  # noqa: ARG001
            check_threads.append(threading.get_ident())

        patcher, _, _ = _patch_client(_mock_response())
        try:
            with patch(
                'services.url_scraper.validate_url_not_private', side_effect=record_thread,
            ):
                result = await fetch_url('https://example.com')
        finally:
            patcher.stop()

        assert result.error is None
        assert len(check_threads) == 2
        assert loop_thread not in check_threads

    async def test__fetch_url__slow_dns_counts_against_timeout(self) -> None:
        """Hostname resolution longer than the timeout fails without a request."""
        patcher, _, mock_client = _patch_client(_mock_response())
        try:
            with patch(
                'services.url_scraper.validate_url_not_private',
                side_effect=lambda url: time.sleep(0.5),  # noqa: ARG005
            ):
                result = await fetch_url('https://slow-dns.example.com', timeout=0.05)
        finally:
            patcher.stop()

        assert result.content is None
        assert result.error == 'Timed out resolving hostname for https://slow-dns.example.com'
        mock_client.get.assert_not_called()

    async def test__fetch_url__timeout(self, allow_all_hosts: MagicMock) -> None:  # noqa: ARG002
        """Timeouts are reported, not raised."""
        patcher, _, _ = _patch_client(side_effect=httpx.ReadTimeout('slow'))
        try:
            result = await fetch_url('https://example.com')
        finally:
            patcher.stop()

        assert result.content is None
        assert result.error == 'Request timed out'

    async def test__fetch_url__connection_error(self, allow_all_hosts: MagicMock) -> None:  # noqa: ARG002
        """Transport errors are reported, not raised."""
        patcher, _, _ = _patch_client(side_effect=httpx.ConnectError('refused'))
        try:
            result = await fetch_url('https://example.com')
        finally:
            patcher.stop()

        assert result.content is None
        assert result.error is not None
        assert result.error.startswith('Request failed:')

    async def test__fetch_url__blocks_private_target_without_request(self) -> None:
        """A URL resolving to a private address is refused before any request."""
        patcher, _, mock_client = _patch_client(_mock_response())
        try:
            result = await fetch_url('http://127.0.0.1/admin')
        finally:
            patcher.stop()

        assert result.content is None
        assert result.error is not None
        mock_client.get.assert_not_called()

    async def test__fetch_url__blocks_redirect_to_private_target(self) -> None:
        """A redirect that lands on an internal address is refused."""
        def fake_validate(url: str) -> None:
            if '169.254.169.254' in url:
                raise SSRFBlockedError(f'blocked {url}')

        response = _mock_response(url='http://169.254.169.254/latest/meta-data')
        patcher, _, _ = _patch_client(response)
        try:
            with patch(
                'services.url_scraper.validate_url_not_private', side_effect=fake_validate,
            ):
                result = await fetch_url('https://example.com/redirect')
        finally:
            patcher.stop()

        assert result.content is None
        assert result.error is not None
        assert result.error.startswith('Redirect blocked:')


class TestSSRFGuard:
    """Tests for is_private_ip and validate_url_not_private."""

    @pytest.mark.parametrize(
        'ip',
        ['127.0.0.1', '10.0.0.1', '192.168.1.1', '172.16.0.1', '169.254.169.254', '::1',
         '0.0.0.0', '224.0.0.1', 'not-an-ip'],
    )
    def test__is_private_ip__internal_addresses(self, ip: str) -> None:
        """Internal and unparseable addresses are treated as private."""
        assert is_private_ip(ip) is True

    @pytest.mark.parametrize('ip', ['8.8.8.8', '93.184.216.34', '2606:4700:4700::1111'])
    def test__is_private_ip__public_addresses(self, ip: str) -> None:
        """Public addresses are allowed."""
        assert is_private_ip(ip) is False

    def test__validate_url_not_private__localhost(self) -> None:
        """localhost is refused without DNS lookup."""
        with pytest.raises(SSRFBlockedError):
            validate_url_not_private('http://localhost:8000/')

    def test__validate_url_not_private__no_hostname(self) -> None:
        """A URL without a host is malformed."""
        with pytest.raises(ValueError, match='no hostname'):
            validate_url_not_private('not a url')

    def test__validate_url_not_private__resolves_to_private(self) -> None:
        """A public-looking hostname resolving internally is refused."""
        addrinfo = [(socket.AF_INET, socket.SOCK_STREAM, 6, '', ('10.1.2.3', 0))]
        with (
            patch('services.url_scraper.socket.getaddrinfo', return_value=addrinfo),
            pytest.raises(SSRFBlockedError),
        ):
            validate_url_not_private('https://internal.example.com/')

    def test__validate_url_not_private__public_passes(self) -> None:
        """A hostname resolving to a public address passes."""
        addrinfo = [(socket.AF_INET, socket.SOCK_STREAM, 6, '', ('93.184.216.34', 0))]
        with patch('services.url_scraper.socket.getaddrinfo', return_value=addrinfo):
            validate_url_not_private('https://example.com/')

    def test__validate_url_not_private__unresolvable(self) -> None:
        """DNS failures surface as ValueError."""
        with (
            patch(
                'services.url_scraper.socket.getaddrinfo',
                side_effect=socket.gaierror('nope'),
            ),
            pytest.raises(ValueError, match='Could not resolve'),
        ):
            validate_url_not_private('https://nonexistent.invalid/')


class TestExtractPageMetadata:
    """Tests for extract_page_metadata pure function."""

    def test__extract_page_metadata__open_graph_wins(self) -> None:
        """Open Graph values take precedence over Twitter and generic tags."""
        html = '''
        <html><head>
            <title>HTML Title</title>
            <meta name="description" content="Meta description">
            <meta name="twitter:title" content="Twitter Title">
            <meta property="og:title" content="OG Title">
            <meta property="og:description" content="OG description">
            <meta property="og:image" content="https://cdn.example.com/og.png">
            <meta property="og:video" content="https://cdn.example.com/v.mp4">
            <meta property="og:site_name" content="Example Site">
            <meta property="og:type" content="article">
            <meta property="article:published_time" content="2024-03-01T12:30:00+00:00">
            <meta name="author" content="Jane Doe">
        </head></html>
        '''
        metadata = extract_page_metadata(html, 'https://example.com/post')

        assert metadata.title == 'OG Title'
        assert metadata.description == 'OG description'
        assert metadata.image == 'https://cdn.example.com/og.png'
        assert metadata.video == 'https://cdn.example.com/v.mp4'
        assert metadata.site_name == 'Example Site'
        assert metadata.type == 'article'
        assert metadata.author == 'Jane Doe'
        assert metadata.published_at == datetime(2024, 3, 1, 12, 30, tzinfo=UTC)

    def test__extract_page_metadata__twitter_fallback(self) -> None:
        """Twitter card values are used when Open Graph is missing."""
        html = '''
        <html><head>
            <title>HTML Title</title>
            <meta name="twitter:title" content="Twitter Title">
            <meta name="twitter:description" content="Twitter description">
            <meta name="twitter:image" content="https://example.com/tw.png">
            <meta name="twitter:player" content="https://example.com/player">
            <meta name="twitter:card" content="summary_large_image">
        </head></html>
        '''
        metadata = extract_page_metadata(html, 'https://example.com')

        assert metadata.title == 'Twitter Title'
        assert metadata.description == 'Twitter description'
        assert metadata.image == 'https://example.com/tw.png'
        assert metadata.video == 'https://example.com/player'
        assert metadata.type == 'summary_large_image'

    def test__extract_page_metadata__generic_fallbacks(self) -> None:
        """Plain HTML tags are the last resort."""
        html = '''
        <html><head>
            <title>  Plain Title  </title>
            <meta name="description" content="Plain description">
            <meta name="application-name" content="PlainApp">
            <meta name="date" content="Tue, 05 Mar 2024 10:00:00 GMT">
            <meta property="article:author" content="https://example.com/jane">
            <link rel="icon" href="/favicon.ico">
        </head></html>
        '''
        metadata = extract_page_metadata(html, 'https://example.com/a/b')

        assert metadata.title == 'Plain Title'
        assert metadata.description == 'Plain description'
        assert metadata.site_name == 'PlainApp'
        assert metadata.author == 'https://example.com/jane'
        assert metadata.image == 'https://example.com/favicon.ico'
        assert metadata.published_at == datetime(2024, 3, 5, 10, 0, tzinfo=UTC)

    def test__extract_page_metadata__itemprop_and_link_image(self) -> None:
        """itemprop description and link[rel=image_src] are recognized."""
        html = '''
        <html><head>
            <meta itemprop="description" content="Schema description">
            <link rel="image_src" href="img/cover.jpg">
            <link rel="icon" href="/favicon.ico">
        </head></html>
        '''
        metadata = extract_page_metadata(html, 'https://example.com/deep/page')

        assert metadata.description == 'Schema description'
        assert metadata.image == 'https://example.com/img/cover.jpg'

    def test__extract_page_metadata__time_element(self) -> None:
        """A <time datetime> element supplies the publish date."""
        html = '<html><body><time datetime="2023-12-24">Christmas Eve</time></body></html>'
        metadata = extract_page_metadata(html, 'https://example.com')
        assert metadata.published_at == datetime(2023, 12, 24, tzinfo=UTC)

    def test__extract_page_metadata__blank_values_skipped(self) -> None:
        """Blank candidates fall through to the next one."""
        html = '''
        <html><head>
            <meta property="og:title" content="   ">
            <title>Real Title</title>
        </head></html>
        '''
        metadata = extract_page_metadata(html, 'https://example.com')
        assert metadata.title == 'Real Title'

    def test__extract_page_metadata__site_name_falls_back_to_host(self) -> None:
        """Without a site name tag, the requested URL's host name is used."""
        metadata = extract_page_metadata('<html></html>', 'https://news.example.org/x')
        assert metadata.site_name == 'news.example.org'

    def test__extract_page_metadata__nothing_found(self) -> None:
        """A page with no metadata yields only the host fallback."""
        metadata = extract_page_metadata('<html><body>hi</body></html>', 'https://example.com')
        assert metadata.title is None
        assert metadata.description is None
        assert metadata.image is None
        assert metadata.published_at is None
        assert metadata.site_name == 'example.com'

    def test__extract_page_metadata__invalid_date_is_none(self) -> None:
        """An unparseable publish date becomes None without failing extraction."""
        html = '<meta property="article:published_time" content="last tuesday">'
        metadata = extract_page_metadata(html, 'https://example.com')
        assert metadata.published_at is None


class TestHelpers:
    """Tests for absolutize_url and parse_published_at."""

    @pytest.mark.parametrize(
        ('value', 'expected'),
        [
            ('/a.png', 'https://example.com/a.png'),
            ('a.png', 'https://example.com/a.png'),
            ('//cdn.example.net/a.png', 'https://cdn.example.net/a.png'),
            ('http://other.com/a.png', 'http://other.com/a.png'),
            ('https://other.com/a.png', 'https://other.com/a.png'),
        ],
    )
    def test__absolutize_url(self, value: str, expected: str) -> None:
        """Relative image URLs resolve against the page origin."""
        assert absolutize_url(value, 'https://example.com/blog/post') == expected

    def test__parse_published_at__naive_is_utc(self) -> None:
        """Naive ISO values are interpreted as UTC."""
        assert parse_published_at('2024-01-02T03:04:05') == datetime(
            2024, 1, 2, 3, 4, 5, tzinfo=UTC,
        )

    def test__parse_published_at__keeps_offset(self) -> None:
        """Explicit offsets are preserved."""
        parsed = parse_published_at('2024-01-02T03:04:05+02:00')
        assert parsed is not None
        assert parsed.utcoffset() == timedelta(hours=2)
        assert parsed == datetime(2024, 1, 2, 1, 4, 5, tzinfo=UTC)

    @pytest.mark.parametrize('value', [None, '', 'garbage'])
    def test__parse_published_at__invalid(self, value: str | None) -> None:
        """Missing or unparseable values yield None."""
        assert parse_published_at(value) is None


class TestFetchMetadata:
    """Tests for fetch_metadata."""

    async def test__fetch_metadata__success(self) -> None:
        """Fetched HTML is run through extraction using the final URL."""
        html = '<html><head><meta property="og:title" content="Hello"></head></html>'
        fetch_result = FetchResult(
            content=html,
            final_url='https://www.example.com/landing',
            status_code=200,
            content_type='text/html',
            error=None,
        )
        with patch(
            'services.url_scraper.fetch_url',
            new_callable=AsyncMock,
            return_value=fetch_result,
        ) as mock_fetch:
            metadata = await fetch_metadata('https://example.com', timeout=2.0)

        mock_fetch.assert_awaited_once_with('https://example.com', 2.0)
        assert metadata.title == 'Hello'
        assert metadata.site_name == 'www.example.com'

    async def test__fetch_metadata__failure_is_empty(self) -> None:
        """Any fetch error yields an empty record."""
        fetch_result = FetchResult(
            content=None,
            final_url='https://example.com',
            status_code=500,
            content_type='text/html',
            error='HTTP 500',
        )
        with patch(
            'services.url_scraper.fetch_url',
            new_callable=AsyncMock,
            return_value=fetch_result,
        ):
            metadata = await fetch_metadata('https://example.com')

        assert metadata == PageMetadata()
        assert metadata.is_empty

    async def test__fetch_metadata__extraction_error_is_empty(self) -> None:
        """Unexpected parser errors never escape."""
        fetch_result = FetchResult(
            content='<html></html>',
            final_url='https://example.com',
            status_code=200,
            content_type='text/html',
            error=None,
        )
        with (
            patch(
                'services.url_scraper.fetch_url',
                new_callable=AsyncMock,
                return_value=fetch_result,
            ),
            patch(
                'services.url_scraper.extract_page_metadata',
                side_effect=RuntimeError('parser blew up'),
            ),
        ):
            metadata = await fetch_metadata('https://example.com')

        assert metadata.is_empty

    def test__page_metadata__is_empty(self) -> None:
        """is_empty is true only when every field is None."""
        assert PageMetadata().is_empty
        assert not PageMetadata(author='x').is_empty
