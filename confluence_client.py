"""Confluence REST API client with retry logic and cursor-based pagination."""

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from models import FetchResult, SourceConfig

SEARCH_ENDPOINT = '/rest/api/search'
DOWNLOAD_CHUNK_SIZE = 64 * 1024


class ConfluenceClient:
    """Confluence REST API client with static header authentication and capped retries."""

    def __init__(
        self,
        base_url: str,
        auth_header: str,
        verify_ssl: bool = True,
        timeout: float = 30,
        max_retries: int = 3,
        retry_backoff_factor: float = 2.0,
        page_size: int = 25,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize Confluence client with authentication and retry configuration.

        Args:
            base_url: Confluence base URL (e.g., "https://confluence.example.com")
            auth_header: Value sent verbatim as the ``Authorization`` header
            verify_ssl: Whether to verify SSL certificates
            timeout: HTTP request timeout in seconds
            max_retries: Maximum retry attempts for transient errors
            retry_backoff_factor: Exponential backoff factor
            page_size: Results requested per page (``limit``), fixed for the client's lifetime
            logger: Logger instance
        """
        if page_size < 1:
            raise ValueError("page_size must be a positive integer")

        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.page_size = page_size
        self.logger = logger or logging.getLogger('confluence_offline_copy.client')

        self.session = requests.Session()
        self.session.headers.update({
            'Authorization': auth_header,
            'Accept': 'application/json'
        })

        self.session.verify = verify_ssl
        if not verify_ssl:
            self.logger.warning("SSL verification disabled - this is insecure!")
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

        # Retries happen per page request, so a retried page is never accumulated twice
        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=retry_backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS"]
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        self.logger.debug(f"Client configured for {self.base_url} with timeout={timeout}s, "
                          f"max_retries={max_retries}, backoff_factor={retry_backoff_factor}, "
                          f"page_size={page_size}")

    def absolute_url(self, relative_url: str) -> str:
        """Resolve a relative API or web UI link against the base URL."""
        if relative_url.startswith(('http://', 'https://')):
            return relative_url
        return self.base_url + '/' + relative_url.lstrip('/')

    def _make_request(
        self,
        method: str,
        endpoint: str,
        full_url: Optional[str] = None,
        **kwargs
    ) -> requests.Response:
        """
        Make HTTP request to Confluence API, raising for any non-2xx status.

        Args:
            method: HTTP method (GET, HEAD, ...)
            endpoint: API endpoint path (e.g., "/rest/api/search")
            full_url: Optional full URL (overrides base_url + endpoint)
            **kwargs: Additional arguments for requests

        Returns:
            Response object

        Raises:
            requests.exceptions.HTTPError: For non-2xx responses
            requests.exceptions.Timeout: For timeout errors
            requests.exceptions.RequestException: For other request errors
        """
        url = full_url if full_url else urljoin(self.base_url + '/', endpoint.lstrip('/'))

        start_time = time.time()
        self.logger.debug(f"API Request: {method} {url} params={kwargs.get('params')}")

        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            elapsed = time.time() - start_time
            self.logger.debug(f"API Response: {response.status_code} {url} ({elapsed:.3f}s)")

            if not 200 <= response.status_code < 300:
                self._log_error_body(response)
                response.raise_for_status()
                # raise_for_status() ignores 1xx/3xx
                raise requests.exceptions.HTTPError(
                    f"Unexpected status {response.status_code} for {url}", response=response
                )

            return response

        except requests.exceptions.Timeout:
            self.logger.error(f"Request timeout after {self.timeout}s: {method} {url}")
            raise

        except requests.exceptions.HTTPError:
            self.logger.error(f"HTTP Error: {method} {url}")
            raise

        except requests.exceptions.RequestException as e:
            self.logger.error(f"Request error: {method} {url} - {str(e)}")
            raise

    def _log_error_body(self, response: requests.Response) -> None:
        try:
            error_data = response.json()
            self.logger.error(f"{response.status_code} - {json.dumps(error_data)[:500]}")
        except ValueError:
            self.logger.error(f"{response.status_code} - {response.text[:500]}")

    def paginated_fetch(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> FetchResult:
        """
        Fetch every page of a paginated endpoint into one ordered sequence.

        Pages are requested strictly one after another with ``start`` advancing
        by the ``limit`` the server echoes back (the configured page size when
        it echoes none). Pagination stops at the first page holding fewer than
        ``limit`` results, which includes an empty page. Any failure abandons
        the whole query: the result carries the cause and no partial data.

        Args:
            endpoint: API endpoint path or absolute URL
            params: Query parameters other than ``start``/``limit``

        Returns:
            FetchResult with raw JSON records in fetch order, or the failure cause
        """
        base_params = dict(params or {})
        records = []
        start = 0
        pages = 0
        full_url = endpoint if endpoint.startswith(('http://', 'https://')) else None

        self.logger.info(f"Paginated fetch from {endpoint} with params: {base_params}")

        while True:
            page_params = {**base_params, 'start': start, 'limit': self.page_size}
            try:
                response = self._make_request('GET', endpoint, full_url=full_url, params=page_params)
                data = response.json()
                results = data['results']
                if not isinstance(results, list):
                    raise TypeError(f"'results' is {type(results).__name__}, expected a list")
            except (requests.exceptions.RequestException, ValueError, KeyError, TypeError) as e:
                error = f"{type(e).__name__}: {e}"
                self.logger.error(f"Paginated fetch from {endpoint} failed at start={start}: {error}")
                return FetchResult.failure(error, pages_fetched=pages)

            # The server may cap the page size below the requested limit
            limit = data.get('limit')
            if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
                limit = self.page_size

            pages += 1
            records.extend(results)
            self.logger.debug(f"Got {len(results)} new results (start={start}, limit={limit}, total={len(records)})")

            if len(results) < limit:
                break

            start += limit

        self.logger.info(f"Fetched {len(records)} results from {endpoint} in {pages} page(s)")
        return FetchResult(items=records, pages_fetched=pages)

    def search(self, cql: str) -> FetchResult:
        """
        Search content using Confluence Query Language (CQL).

        Args:
            cql: CQL search query

        Returns:
            FetchResult with raw search records
        """
        result = self.paginated_fetch(SEARCH_ENDPOINT, {'cql': cql})
        if result.ok:
            self.logger.info(f"CQL search returned {len(result.items)} results for query: {cql}")
        return result

    def get_attachments(self, attachments_url: str) -> FetchResult:
        """
        List the attachments of a content item.

        Args:
            attachments_url: Relative attachment collection URL of the item

        Returns:
            FetchResult with raw attachment records
        """
        return self.paginated_fetch(attachments_url)

    def download_attachment(self, download_url: str, dest_path: Path) -> int:
        """
        Stream an attachment to disk.

        Args:
            download_url: Relative or absolute download URL
            dest_path: File to write

        Returns:
            Number of bytes written

        Raises:
            requests.exceptions.RequestException: For download errors
            OSError: For write errors
        """
        url = self.absolute_url(download_url)
        written = 0

        with self._make_request('GET', '', full_url=url, stream=True) as response:
            with open(dest_path, 'wb') as f:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)

        self.logger.debug(f"Downloaded {written} bytes to {dest_path}")
        return written

    def close(self) -> None:
        self.session.close()

    @classmethod
    def from_source_config(cls, source: SourceConfig, logger: Optional[logging.Logger] = None) -> 'ConfluenceClient':
        """
        Initialize Confluence client from a resolved source configuration.

        Args:
            source: Resolved source configuration
            logger: Optional logger instance

        Returns:
            ConfluenceClient instance
        """
        return cls(
            base_url=source.base_url,
            auth_header=source.auth_header,
            verify_ssl=source.verify_ssl,
            timeout=source.request_timeout,
            max_retries=source.max_retries,
            retry_backoff_factor=source.retry_backoff_factor,
            page_size=source.page_size,
            logger=logger
        )
