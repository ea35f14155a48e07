"""
Shared HTTP plumbing for every outbound client.

Bibliographic sources, the extraction service, LLM providers, the synonym
registry and the PDF downloader all send requests through
``BaseAPIClient._make_request``. It never raises for upstream trouble:
error statuses, exhausted 429 retries, transport failures, an open
circuit and unparseable JSON bodies all come back as ``None``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx
from typing_extensions import Self

from first_record.domain.entities import LiteratureItem, SearchOptions, SourceId
from first_record.shared.async_utils import CircuitBreaker
from first_record.shared.exceptions import RateLimitError

logger = logging.getLogger(__name__)

USER_AGENT = "first-record-finder/1.0"

Payload = dict[str, Any] | list[Any] | str | bytes

# Returned by _handle_expected_status when the response needs normal handling
CONTINUE = object()


def _default_client(timeout: float, headers: dict[str, str] | None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=timeout,
        headers={"User-Agent": USER_AGENT, **(headers or {})},
        follow_redirects=True,
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=10, keepalive_expiry=30.0),
    )


class BaseAPIClient:
    """
    Base class for outbound HTTP clients.

    Subclasses set ``_service_name`` (used in log lines) and may tune
    ``_MAX_RETRIES``. Hooks:

    - ``_handle_expected_status``: answer early for statuses that are not
      errors for this service (WoRMS 204, oversized downloads)
    - ``_parse_response``: custom body handling (raw bytes for PDFs)
    - ``_execute_request``: custom transport

    Example:
        class RegistryClient(BaseAPIClient):
            _service_name = "Registry"

            async def lookup(self, name: str) -> dict | None:
                return await self._make_request(f"/names/{name}")
    """

    _service_name: str = "API"
    _MAX_RETRIES: int = 3

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 30.0,
        min_interval: float = 0.1,
        headers: dict[str, str] | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            base_url: Prefix for relative request paths
            timeout: Request timeout in seconds
            min_interval: Minimum spacing between requests, in seconds
            headers: Default headers (User-Agent is always set)
            circuit_breaker: Defaults to one opening after 10 failures for 60s
            client: Pre-built httpx client, e.g. one backed by MockTransport
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._min_interval = min_interval
        self._last_request_time = 0.0
        self._client = client or _default_client(timeout, headers)
        self._circuit_breaker = circuit_breaker or CircuitBreaker(failure_threshold=10, recovery_timeout=60.0)

    async def _rate_limit(self) -> None:
        wait = self._min_interval - (time.monotonic() - self._last_request_time)
        if wait > 0:
            await asyncio.sleep(wait)
        self._last_request_time = time.monotonic()

    def _build_url(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        return f"{self._base_url}{url}"

    async def _make_request(
        self,
        url: str,
        *,
        method: str = "GET",
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        files: dict[str, Any] | None = None,
        expect_json: bool = True,
        circuit_breaker: CircuitBreaker | None = None,
    ) -> Payload | None:
        """
        Send one logical request.

        429 responses are retried after Retry-After (or exponential
        backoff); transport errors are retried with backoff. Both give up
        after ``_MAX_RETRIES`` retries.

        Args:
            url: Absolute URL or a path appended to ``base_url``
            method: "GET" or "POST"
            data: JSON body, or form fields when ``files`` is given
            headers: Extra headers for this request only
            files: Multipart files
            expect_json: Decode the body as JSON instead of returning text
            circuit_breaker: Breaker for this call instead of the client-wide one

        Returns:
            Decoded body, or None when the upstream call failed
        """
        target = self._build_url(url)
        breaker = circuit_breaker or self._circuit_breaker
        attempts = self._MAX_RETRIES + 1

        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            await self._rate_limit()
            try:
                async with breaker:
                    response = await self._execute_request(
                        target, method=method, data=data, headers=headers, files=files
                    )
                    early = self._handle_expected_status(response, target)
                    if early is not CONTINUE:
                        return early
                    if response.status_code != 429:
                        response.raise_for_status()
                        return self._parse_response(response, expect_json)
            except RateLimitError:
                logger.warning(f"{self._service_name}: circuit open, skipped {target}")
                return None
            except httpx.HTTPStatusError as e:
                logger.error(f"{self._service_name}: HTTP {e.response.status_code} from {target}")
                return None
            except httpx.RequestError as e:
                if last_attempt:
                    logger.error(f"{self._service_name}: giving up on {target}: {e!r}")
                    return None
                delay = self._backoff(attempt)
                logger.warning(
                    f"{self._service_name}: transport error {e!r} "
                    f"(attempt {attempt + 1}/{attempts}), retrying in {delay:.0f}s"
                )
                await asyncio.sleep(delay)
                continue
            except ValueError as e:
                logger.error(f"{self._service_name}: unparseable body from {target}: {e}")
                return None

            # 429: wait, then retry
            if last_attempt:
                logger.warning(f"{self._service_name}: still rate limited after {attempts} attempts")
                return None
            delay = self._get_retry_after(response, attempt)
            logger.warning(
                f"{self._service_name}: rate limited (attempt {attempt + 1}/{attempts}), "
                f"retrying in {delay:.1f}s"
            )
            await asyncio.sleep(delay)

        return None

    async def _execute_request(
        self,
        url: str,
        *,
        method: str = "GET",
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        files: dict[str, Any] | None = None,
    ) -> httpx.Response:
        request_headers = headers or {}
        if method != "POST":
            return await self._client.get(url, headers=request_headers)
        if files:
            return await self._client.post(url, data=data, files=files, headers=request_headers)
        return await self._client.post(url, json=data, headers=request_headers)

    def _handle_expected_status(self, response: httpx.Response, url: str) -> Payload | None:
        """Return ``CONTINUE`` to proceed, anything else to answer with it directly."""
        return CONTINUE  # type: ignore[return-value]

    def _parse_response(self, response: httpx.Response, expect_json: bool) -> Payload:
        return response.json() if expect_json else response.text

    @staticmethod
    def _backoff(attempt: int) -> float:
        return float(2 ** (attempt + 1))

    @classmethod
    def _get_retry_after(cls, response: httpx.Response, attempt: int) -> float:
        """Seconds from the Retry-After header, falling back to exponential backoff."""
        header = response.headers.get("Retry-After")
        if header is None:
            return cls._backoff(attempt)
        try:
            return float(header)
        except ValueError:
            return cls._backoff(attempt)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()


class LiteratureSourceClient(BaseAPIClient):
    """
    Base class for bibliographic source adapters.

    Adds the uniform ``search(name, options)`` contract on top of the HTTP
    plumbing. Subclasses set ``source_id`` and implement ``search``;
    sources that need credentials override ``is_configured``.
    """

    source_id: SourceId
    korea_keyword: str = "Korea"
    snippet_length: int = 300

    @property
    def is_configured(self) -> bool:
        return True

    def _search_term(self, name: str, options: SearchOptions) -> str:
        if options.include_korea_keyword:
            return f"{name} {self.korea_keyword}"
        return name

    @staticmethod
    def _within_years(year: int | None, options: SearchOptions) -> bool:
        """Post-filter for sources that ignore year parameters. Unknown years pass."""
        if year is None:
            return True
        if options.year_from is not None and year < options.year_from:
            return False
        if options.year_to is not None and year > options.year_to:
            return False
        return True

    def _snippet(self, text: str | None) -> str | None:
        if not text:
            return None
        return text[: self.snippet_length]

    async def search(self, name: str, options: SearchOptions) -> list[LiteratureItem]:
        raise NotImplementedError
